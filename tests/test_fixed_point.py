"""Tests for fixed-point helpers and transaction normalization."""

from decimal import Decimal

import pytest

from swapquotes.swaps.gas import calculate_gas_estimate_with_refund
from swapquotes.utils.fixed_point import (
    calc_token_amount,
    get_median,
    hex_to_int,
    int_to_hex,
    parse_int,
    to_decimal,
)
from swapquotes.utils.transactions import construct_tx_params, normalize_transaction


class TestGetMedian:
    """Tests for get_median."""

    def test_odd_sample(self):
        """Odd samples return the middle element."""
        values = [Decimal(v) for v in [1, 2, 3, 4, 5, 6, 7, 8, 9]]
        assert get_median(values) == Decimal(5)

    def test_even_sample(self):
        """Even samples return the mean of the two central elements."""
        values = [Decimal(v) for v in range(1, 11)]
        assert get_median(values) == Decimal("5.5")

    def test_unsorted_input(self):
        assert get_median([Decimal(3), Decimal(1), Decimal(2)]) == Decimal(2)

    def test_single_value(self):
        assert get_median([Decimal("0.1")]) == Decimal("0.1")

    def test_empty_sample_raises(self):
        with pytest.raises(ValueError, match="Expected non-empty sequence"):
            get_median([])

    def test_exact_for_wei_scale_values(self):
        """No precision is lost at 18 decimals."""
        values = [Decimal("0.000000000000000001"), Decimal("0.000000000000000002")]
        assert get_median(values) == Decimal("0.0000000000000000015")


class TestCalcTokenAmount:
    """Tests for calc_token_amount."""

    def test_eighteen_decimals(self):
        assert calc_token_amount(10**18, 18) == Decimal(1)

    def test_six_decimals(self):
        assert calc_token_amount("2500000", 6) == Decimal("2.5")

    def test_hex_amount(self):
        assert calc_token_amount("0xde0b6b3a7640000", 18) == Decimal(1)

    def test_zero_decimals(self):
        assert calc_token_amount(42, 0) == Decimal(42)

    def test_missing_decimals_raise(self):
        with pytest.raises(ValueError):
            calc_token_amount(1, None)

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            calc_token_amount(1.5, 18)


class TestParsing:
    """Tests for integer and hex parsing."""

    def test_hex_to_int(self):
        assert hex_to_int("0x1d4c0") == 120000
        assert hex_to_int("0x") == 0
        assert hex_to_int("ff") == 255

    def test_int_to_hex(self):
        assert int_to_hex(120000) == "0x1d4c0"
        assert int_to_hex("120000") == "0x1d4c0"

    def test_int_to_hex_rejects_negative(self):
        with pytest.raises(ValueError):
            int_to_hex(-1)

    def test_int_to_hex_rejects_fraction(self):
        with pytest.raises(ValueError):
            int_to_hex(Decimal("1.5"))

    def test_parse_int(self):
        assert parse_int("1000") == 1000
        assert parse_int("0x10") == 16
        assert parse_int(Decimal("7")) == 7

    def test_to_decimal_rejects_float(self):
        with pytest.raises(TypeError):
            to_decimal(0.1)

    def test_to_decimal_rejects_bool(self):
        with pytest.raises(TypeError):
            to_decimal(True)


class TestGasEstimateWithRefund:
    """Tests for calculate_gas_estimate_with_refund."""

    @pytest.mark.parametrize(
        "max_gas,refund,estimated,expected",
        [
            (0, 0, 0, 0),
            (None, 2000000, 501000, 500000),
            (3, 2, 1, 1),
            (3, 3, 1, 0),
            (10, 5, 6, 5),
        ],
    )
    def test_min_of_refund_adjusted_max_and_estimate(self, max_gas, refund, estimated, expected):
        assert calculate_gas_estimate_with_refund(max_gas, refund, estimated) == expected


class TestTransactionNormalization:
    """Tests for transaction skeleton normalization."""

    def test_normalize_prefixes_and_lowercases(self):
        tx = normalize_transaction(
            {
                "from": "0xABCDEF0000000000000000000000000000000001",
                "to": "ABCDEF0000000000000000000000000000000002",
                "data": "095ea7b3",
                "value": "0x0",
                "extra": "ignored",
            }
        )

        assert tx == {
            "from": "0xabcdef0000000000000000000000000000000001",
            "to": "0xabcdef0000000000000000000000000000000002",
            "data": "0x095ea7b3",
            "value": "0x0",
        }

    def test_empty_fields_dropped(self):
        tx = normalize_transaction({"from": "0x01", "data": "", "gas": None})
        assert tx == {"from": "0x01"}

    def test_construct_tx_params(self):
        tx = construct_tx_params(
            from_address="0xAB", to="0xCD", data="0x", amount=1000, gas="21000", gas_price=10
        )

        assert tx["value"] == "0x3e8"
        assert tx["gas"] == "0x5208"
        assert tx["gasPrice"] == "0xa"
        assert tx["from"] == "0xab"
