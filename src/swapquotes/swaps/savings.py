"""Savings of the best quote relative to the median of the field."""

from swapquotes.swaps.models import PerAggregatorCost, SavingsBreakdown
from swapquotes.utils.fixed_point import MONEY_CONTEXT, get_median


def compute_savings(
    best_aggregator_id: str,
    costs: dict[str, PerAggregatorCost],
) -> SavingsBreakdown:
    """Compare the best quote with the median of every priced quote.

    Medians are taken independently per series (destination value, fee, meta
    fee), so the median fee and the median value can come from different
    aggregators.

        performance = value[best] - median(value)
        fee         = median(fee) - fee[best]
        total       = performance + fee - meta_fee[best]

    Raises:
        KeyError: If best_aggregator_id has no cost entry
        ValueError: If costs is empty
    """
    best = costs[best_aggregator_id]
    field = list(costs.values())

    median_value = get_median([c.destination_value_in_reference_units for c in field])
    median_fee = get_median([c.fee_in_reference_units for c in field])
    median_meta_fee = get_median([c.meta_fee_in_reference_units for c in field])

    ctx = MONEY_CONTEXT
    performance = ctx.subtract(best.destination_value_in_reference_units, median_value)
    fee = ctx.subtract(median_fee, best.fee_in_reference_units)
    total = ctx.subtract(ctx.add(performance, fee), best.meta_fee_in_reference_units)

    return SavingsBreakdown(
        performance=performance,
        fee=fee,
        total=total,
        median_meta_fee=median_meta_fee,
    )
