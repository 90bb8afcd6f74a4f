"""Tests for the savings calculator."""

from decimal import Decimal

import pytest

from swapquotes.swaps.models import PerAggregatorCost
from swapquotes.swaps.savings import compute_savings


def cost(aggregator, value, fee, meta_fee="0"):
    value, fee, meta_fee = Decimal(value), Decimal(fee), Decimal(meta_fee)
    return PerAggregatorCost(
        aggregator=aggregator,
        fee_in_reference_units=fee,
        destination_value_in_reference_units=value,
        meta_fee_in_reference_units=meta_fee,
        overall_value=value,
    )


class TestComputeSavings:
    """Tests for compute_savings."""

    def test_worked_example(self):
        costs = {
            "A": cost("A", "10", "1"),
            "B": cost("B", "12", "2", meta_fee="0.105"),
            "C": cost("C", "8", "0.5"),
        }

        savings = compute_savings("B", costs)

        assert savings.performance == Decimal(2)
        assert savings.fee == Decimal(-1)
        assert savings.total == Decimal("0.895")
        assert savings.median_meta_fee == Decimal(0)

    def test_total_identity(self):
        costs = {
            "A": cost("A", "1.000000000000000001", "0.003", "0.0087"),
            "B": cost("B", "1.2", "0.004", "0.0105"),
            "C": cost("C", "0.9", "0.002", "0.0079"),
            "D": cost("D", "1.1", "0.0025", "0.0096"),
        }

        savings = compute_savings("B", costs)

        assert savings.total == savings.performance + savings.fee - costs["B"].meta_fee_in_reference_units

    def test_medians_are_per_series(self):
        """Median value and median fee may come from different quotes."""
        costs = {
            "A": cost("A", "10", "3"),
            "B": cost("B", "20", "1"),
            "C": cost("C", "30", "2"),
            "D": cost("D", "40", "4"),
        }

        savings = compute_savings("D", costs)

        assert savings.performance == Decimal(15)
        assert savings.fee == Decimal("-1.5")

    def test_single_quote_saves_nothing(self):
        savings = compute_savings("A", {"A": cost("A", "5", "1", "0.1")})

        assert savings.performance == 0
        assert savings.fee == 0
        assert savings.total == Decimal("-0.1")

    def test_unknown_best_raises(self):
        with pytest.raises(KeyError):
            compute_savings("Z", {"A": cost("A", "1", "1")})
