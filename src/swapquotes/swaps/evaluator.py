"""Quote evaluation: all-in cost per aggregator and best-quote selection.

Everything is expressed in reference units (the native asset, 18 decimals).
A quote's overall value is what the wallet receives; the network fee is netted
against it only when the destination is the native asset, because otherwise the
two are different currencies.
"""

import logging
from decimal import Decimal
from typing import Optional

from swapquotes.swaps.errors import NoQuotesAvailableError
from swapquotes.swaps.gas import MAX_GAS_LIMIT
from swapquotes.swaps.models import (
    NATIVE_DECIMALS,
    EvaluationResult,
    PerAggregatorCost,
    Quote,
    Token,
    is_native_token,
)
from swapquotes.utils.fixed_point import MONEY_CONTEXT, calc_token_amount

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = Decimal(10000)


class QuoteEvaluationError(ValueError):
    """A single quote cannot be priced and is left out of the ranking."""


def trade_gas_units(quote: Quote, max_gas_limit: int = MAX_GAS_LIMIT) -> int:
    """Gas units charged for the trade itself.

    Refund-adjusted estimate when present and non-zero, then the aggregator's
    average, then the ceiling.
    """
    if quote.gas_estimate_with_refund:
        return quote.gas_estimate_with_refund
    if quote.average_gas:
        return quote.average_gas
    return max_gas_limit


def price_quote(
    quote: Quote,
    gas_price_wei: int,
    destination_token_info: Token,
    *,
    source_token: str,
    destination_token: str,
    conversion_rate: Optional[Decimal] = None,
    approval_gas: int = 0,
    max_gas_limit: int = MAX_GAS_LIMIT,
) -> PerAggregatorCost:
    """Compute the all-in cost and value of one quote.

    Raises:
        QuoteEvaluationError: If the quote cannot be priced
    """
    if destination_token_info is None or destination_token_info.decimals is None:
        raise QuoteEvaluationError("destination token decimals are unknown")

    ctx = MONEY_CONTEXT
    total_gas = trade_gas_units(quote, max_gas_limit) + (approval_gas or 0)
    total_wei = total_gas * gas_price_wei + quote.trade.value_wei

    # A native source amount travels in trade.value; it is principal, not fee
    fee_wei = total_wei - quote.source_amount if is_native_token(source_token) else total_wei
    if fee_wei < 0:
        raise QuoteEvaluationError(f"negative total cost ({fee_wei} wei)")
    fee = calc_token_amount(fee_wei, NATIVE_DECIMALS)

    rate = conversion_rate if conversion_rate is not None else Decimal(1)
    destination_amount = calc_token_amount(
        quote.destination_amount, destination_token_info.decimals
    )
    destination_value = ctx.multiply(destination_amount, rate)

    share_after_meta_fee = ctx.divide(
        ctx.subtract(BPS_DENOMINATOR, quote.meta_fee_bps), BPS_DENOMINATOR
    )
    if share_after_meta_fee <= 0:
        raise QuoteEvaluationError(f"meta fee of {quote.meta_fee_bps} bps leaves nothing")
    amount_before_meta_fee = ctx.divide(destination_amount, share_after_meta_fee)
    meta_fee_in_tokens = ctx.subtract(amount_before_meta_fee, destination_amount)
    meta_fee = ctx.multiply(meta_fee_in_tokens, rate)

    if is_native_token(destination_token):
        overall_value = ctx.subtract(destination_value, fee)
    else:
        overall_value = destination_value

    return PerAggregatorCost(
        aggregator=quote.aggregator,
        fee_in_reference_units=fee,
        destination_value_in_reference_units=destination_value,
        meta_fee_in_reference_units=meta_fee,
        overall_value=overall_value,
    )


def evaluate(
    quotes: dict[str, Quote],
    gas_price_wei: int,
    destination_token_info: Token,
    *,
    source_token: str,
    destination_token: str,
    conversion_rate: Optional[Decimal] = None,
    approval_gas: Optional[int] = None,
    max_gas_limit: int = MAX_GAS_LIMIT,
) -> EvaluationResult:
    """Price every quote and pick the best one.

    Aggregator ids are visited in ascending order; a quote replaces the current
    best only with a strictly greater overall value, so ties keep the first id.

    Args:
        quotes: QuoteSet keyed by aggregator id
        gas_price_wei: Gas price used for every quote
        destination_token_info: Destination token (decimals are required)
        source_token: Source token address of the session
        destination_token: Destination token address of the session
        conversion_rate: Destination token price in the native asset (default 1)
        approval_gas: Approval gas units added to every quote

    Returns:
        Best aggregator id and the cost of every quote that could be priced

    Raises:
        NoQuotesAvailableError: If no quote could be priced
    """
    costs: dict[str, PerAggregatorCost] = {}
    best_id: Optional[str] = None
    best_value: Optional[Decimal] = None

    for aggregator in sorted(quotes):
        try:
            cost = price_quote(
                quotes[aggregator],
                gas_price_wei,
                destination_token_info,
                source_token=source_token,
                destination_token=destination_token,
                conversion_rate=conversion_rate,
                approval_gas=approval_gas or 0,
                max_gas_limit=max_gas_limit,
            )
        except (ValueError, ArithmeticError, TypeError) as e:
            logger.warning(f"Excluding {aggregator} from ranking: {e}")
            continue

        costs[aggregator] = cost
        if best_value is None or cost.overall_value > best_value:
            best_id = aggregator
            best_value = cost.overall_value

    if best_id is None:
        raise NoQuotesAvailableError("No quote could be priced")

    logger.info(
        f"Selected best quote: {best_id} (value: {best_value}, "
        f"fee: {costs[best_id].fee_in_reference_units}) out of {len(costs)}"
    )
    return EvaluationResult(best_aggregator_id=best_id, costs=costs)
