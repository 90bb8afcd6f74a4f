"""Transaction skeleton normalization.

Addresses are lower-cased and every field is 0x-prefixed, so that skeletons
coming from different aggregators compare and serialize the same way.
"""

from typing import Any, Callable, Optional

from swapquotes.utils.fixed_point import NumberLike, add_hex_prefix, int_to_hex

NORMALIZERS: dict[str, Callable[[str], str]] = {
    "data": lambda data: add_hex_prefix(data),
    "from": lambda address: add_hex_prefix(address).lower(),
    "gas": lambda gas: add_hex_prefix(gas),
    "gasPrice": lambda gas_price: add_hex_prefix(gas_price),
    "nonce": lambda nonce: add_hex_prefix(nonce),
    "to": lambda address: add_hex_prefix(address).lower(),
    "value": lambda value: add_hex_prefix(value),
}


def normalize_transaction(transaction: dict[str, Any]) -> dict[str, str]:
    """Keep the known transaction fields and normalize them.

    Empty or missing fields are dropped. Unknown keys are ignored.
    """
    normalized: dict[str, str] = {}
    for key, normalizer in NORMALIZERS.items():
        value = transaction.get(key)
        if value:
            normalized[key] = normalizer(str(value))
    return normalized


def construct_tx_params(
    *,
    from_address: str,
    to: Optional[str] = None,
    data: Optional[str] = None,
    amount: Optional[NumberLike] = None,
    gas: Optional[NumberLike] = None,
    gas_price: Optional[NumberLike] = None,
) -> dict[str, str]:
    """Build a normalized transaction skeleton.

    Numeric fields may be given as ints, decimal strings or hex strings.
    """
    params: dict[str, Any] = {
        "from": from_address,
        "to": to,
        "data": data,
        "value": _as_hex(amount),
        "gas": _as_hex(gas),
        "gasPrice": _as_hex(gas_price),
    }
    return normalize_transaction(params)


def _as_hex(value: Optional[NumberLike]) -> Optional[str]:
    if value is None or value == "":
        return None
    return int_to_hex(value)
