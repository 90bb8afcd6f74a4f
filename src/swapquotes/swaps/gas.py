"""Gas estimation guard.

Every estimation is bounded by its own timeout and degrades to a Failed
GasEstimate instead of raising, so that one slow RPC call never stalls a quote
cycle. Callers fall back to the aggregator's gas figures.
"""

import asyncio
import logging
from typing import Optional

from swapquotes.swaps.errors import AllowanceCheckError, RpcError
from swapquotes.swaps.models import GasEstimate, Quote, TxParams
from swapquotes.swaps.rpc import EthRpcClient
from swapquotes.utils.fixed_point import hex_to_int

logger = logging.getLogger(__name__)

# Higher than the maximum gas cost observed on any aggregator
MAX_GAS_LIMIT = 2500000
DEFAULT_ERC20_APPROVE_GAS = "0x1d4c0"
GAS_ESTIMATE_TIMEOUT = 5.0
SIMPLE_SEND_GAS = 21000


def calculate_gas_estimate_with_refund(
    max_gas: Optional[int] = MAX_GAS_LIMIT,
    estimated_refund: Optional[int] = 0,
    estimated_gas: Optional[int] = 0,
) -> int:
    """Gas a trade is expected to use once refunds are applied.

    min(max_gas - estimated_refund, estimated_gas)
    """
    if max_gas is None:
        max_gas = MAX_GAS_LIMIT
    max_gas_minus_refund = max_gas - (estimated_refund or 0)
    return min(max_gas_minus_refund, estimated_gas or 0)


def calculate_max_network_gas(
    approval_gas: Optional[int],
    estimated_gas: Optional[int],
    max_gas: Optional[int],
) -> int:
    """Upper bound of gas units for approval plus trade."""
    return (approval_gas or 0) + max(max_gas or 0, estimated_gas or 0)


def calculate_estimated_network_gas(
    approval_gas: Optional[int],
    estimated_gas: Optional[int],
    max_gas: Optional[int],
    estimated_refund: Optional[int],
    average_gas: Optional[int],
) -> int:
    """Expected gas units for approval plus trade.

    Uses the refund-adjusted estimate when there is one, the aggregator's
    average otherwise.
    """
    trade_gas = 0
    if estimated_gas:
        trade_gas = calculate_gas_estimate_with_refund(max_gas, estimated_refund, estimated_gas)
    if not trade_gas:
        trade_gas = average_gas or 0
    return (approval_gas or 0) + trade_gas


async def estimate_transaction_gas(rpc: EthRpcClient, tx: dict) -> int:
    """Estimate gas units for a transaction object.

    1. A transaction that already carries gas keeps it.
    2. A plain transfer (no data, no contract at `to`) costs 21000.
    3. Otherwise ask the node, capped at 95% of the latest block gas limit,
       and pad the result by 1.5x without exceeding 90% of that limit.
    """
    if tx.get("gas"):
        return hex_to_int(tx["gas"])

    to = tx.get("to")
    data = tx.get("data")
    if not data:
        code = await rpc.get_code(to) if to else None
        if not code or code == "0x":
            return SIMPLE_SEND_GAS

    block = await rpc.get_block_by_number("latest")
    block_gas_limit = hex_to_int(block["gasLimit"])

    params = dict(tx)
    params["value"] = tx.get("value") or "0x0"
    params["gas"] = hex(block_gas_limit * 19 // 20)
    gas = await rpc.estimate_gas(params)

    max_gas = block_gas_limit * 9 // 10
    padded_gas = gas * 3 // 2
    if gas > max_gas:
        return gas
    if padded_gas < max_gas:
        return padded_gas
    return max_gas


class GasEstimationGuard:
    """Bounded-time gas estimation and allowance reads."""

    def __init__(
        self,
        rpc: EthRpcClient,
        swaps_contract_address: str,
        timeout: float = GAS_ESTIMATE_TIMEOUT,
        max_gas_limit: int = MAX_GAS_LIMIT,
    ):
        self.rpc = rpc
        self.swaps_contract_address = swaps_contract_address.lower()
        self.timeout = timeout
        self.max_gas_limit = max_gas_limit

    async def estimate(self, tx: Optional[TxParams]) -> GasEstimate:
        """Estimate gas for a skeleton. Never raises."""
        if tx is None:
            return GasEstimate.failed("no_transaction")

        params = tx.to_rpc_dict()
        # An aggregator's gas field is its max gas, not an estimate
        params.pop("gas", None)
        try:
            units = await asyncio.wait_for(
                estimate_transaction_gas(self.rpc, params), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Gas estimation for {tx.to} timed out after {self.timeout}s")
            return GasEstimate.failed("timeout")
        except RpcError as e:
            logger.warning(f"Gas estimation for {tx.to} failed: {e}")
            return GasEstimate.failed("rpc_error")
        except Exception as e:
            logger.warning(f"Gas estimation for {tx.to} failed: {type(e).__name__}: {e}")
            return GasEstimate.failed("rpc_error")
        return GasEstimate.estimated(units)

    async def estimate_gas_with_timeout(self, tx: Optional[TxParams]) -> Optional[int]:
        """Gas units, or None on timeout, RPC error or missing transaction."""
        return (await self.estimate(tx)).units

    async def get_allowance(self, token_address: str, owner_address: str) -> int:
        """Allowance of the swaps contract over the owner's tokens.

        Raises:
            AllowanceCheckError: If the allowance cannot be read
        """
        try:
            return await self.rpc.get_allowance(
                token_address, owner_address, self.swaps_contract_address
            )
        except (RpcError, ValueError) as e:
            raise AllowanceCheckError(f"Allowance check for {token_address} failed: {e}")

    async def estimate_all(
        self,
        quotes: dict[str, Quote],
        approval_gas: Optional[int] = None,
    ) -> dict[str, Quote]:
        """Estimate every quote's trade concurrently and attach the results.

        Returns new Quote objects; quotes whose estimate failed are kept.
        """
        aggregators = list(quotes)
        estimates = await asyncio.gather(
            *(self.estimate(quotes[agg].trade) for agg in aggregators)
        )

        annotated: dict[str, Quote] = {}
        for agg, estimate in zip(aggregators, estimates):
            quote = quotes[agg]
            with_refund = None
            if estimate.is_estimated:
                with_refund = calculate_gas_estimate_with_refund(
                    quote.max_gas if quote.max_gas is not None else self.max_gas_limit,
                    quote.estimated_refund,
                    estimate.units,
                )
            annotated[agg] = quote.copy_with(
                gas_estimate=estimate,
                gas_estimate_with_refund=with_refund,
                max_network_gas=calculate_max_network_gas(
                    approval_gas, estimate.units, quote.max_gas
                ),
                estimated_network_gas=calculate_estimated_network_gas(
                    approval_gas,
                    estimate.units,
                    quote.max_gas,
                    quote.estimated_refund,
                    quote.average_gas,
                ),
            )

        failed = [agg for agg, est in zip(aggregators, estimates) if not est.is_estimated]
        if failed:
            logger.info(f"Using aggregator gas for {', '.join(failed)}")
        return annotated
