"""Exact decimal arithmetic for token amounts, gas and fee percentages.

Minimal-unit amounts are Python ints; scaled amounts are Decimals computed
under MONEY_CONTEXT. Floats are rejected: rounding at the wei scale can flip
which quote ranks first.
"""

from decimal import Context, Decimal, ROUND_HALF_EVEN
from typing import Sequence, Union

# uint256 has 78 decimal digits
MONEY_CONTEXT = Context(prec=78, rounding=ROUND_HALF_EVEN)

NumberLike = Union[int, str, Decimal]


def add_hex_prefix(value: str) -> str:
    """Prefix a hex string with 0x if it is missing."""
    if value.startswith(("0x", "0X")):
        return "0x" + value[2:]
    return "0x" + value


def strip_hex_prefix(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def hex_to_int(value: Union[str, int]) -> int:
    """Parse a 0x-prefixed (or bare) hex string. Empty payloads are zero."""
    if isinstance(value, int):
        return value
    digits = strip_hex_prefix(value.strip())
    return int(digits, 16) if digits else 0


def int_to_hex(value: NumberLike) -> str:
    """Render a non-negative integer amount as a 0x-prefixed hex string."""
    if isinstance(value, str):
        value = parse_int(value)
    elif isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError(f"Cannot hex-encode fractional amount {value}")
        value = int(value)
    if value < 0:
        raise ValueError(f"Cannot hex-encode negative amount {value}")
    return hex(value)


def parse_int(value: NumberLike) -> int:
    """Parse an integer amount given as int, decimal string or hex string."""
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError(f"Expected an integer amount, got {value}")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("0x", "0X")):
            return hex_to_int(text)
        return int(Decimal(text))
    raise TypeError(f"Unsupported amount type: {type(value).__name__}")


def to_decimal(value: NumberLike) -> Decimal:
    """Convert an int, numeric string or Decimal into a Decimal.

    Hex strings are read as integers. Floats raise TypeError.
    """
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("0x", "0X")):
            return Decimal(hex_to_int(text))
        return Decimal(text)
    raise TypeError(f"Unsupported amount type: {type(value).__name__}")


def calc_token_amount(amount: NumberLike, decimals: int) -> Decimal:
    """Scale a minimal-unit amount by 10**decimals.

    Args:
        amount: Amount in minimal units (wei for 18-decimal tokens)
        decimals: Token decimals

    Returns:
        Human-readable amount, exact
    """
    if decimals is None or decimals < 0:
        raise ValueError(f"Invalid token decimals: {decimals}")
    return MONEY_CONTEXT.divide(to_decimal(amount), Decimal(10) ** decimals)


def get_median(values: Sequence[Decimal]) -> Decimal:
    """Median of a sample of Decimal values.

    Odd counts return the middle element; even counts return the mean of the
    two central elements.

    Raises:
        ValueError: If the sample is empty
    """
    if not values:
        raise ValueError("Expected non-empty sequence")
    ordered = sorted(to_decimal(v) for v in values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[middle]
    return MONEY_CONTEXT.divide(
        MONEY_CONTEXT.add(ordered[middle - 1], ordered[middle]), Decimal(2)
    )
