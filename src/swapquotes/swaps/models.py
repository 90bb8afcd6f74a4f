"""Data model for quote sessions.

Minimal-unit amounts (wei, token base units, gas units) are ints. Scaled
amounts in the reference unit (native asset) are Decimals.
"""

import copy
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from web3 import Web3

from swapquotes.swaps.errors import SwapsError
from swapquotes.utils.fixed_point import hex_to_int, parse_int, to_decimal
from swapquotes.utils.transactions import normalize_transaction

# Address the aggregator service recognizes as the native asset
NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"

NATIVE_DECIMALS = 18


def is_native_token(address: Optional[str]) -> bool:
    return bool(address) and address.lower() == NATIVE_TOKEN_ADDRESS


@dataclass(frozen=True)
class Token:
    """A swappable token. The address is the unique key."""

    address: str
    symbol: str
    decimals: int
    name: Optional[str] = None
    icon_url: Optional[str] = None
    occurrences: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "address", self.address.lower())

    @property
    def is_native(self) -> bool:
        return is_native_token(self.address)

    @classmethod
    def from_api(cls, data: dict) -> "Token":
        address = data["address"]
        if not isinstance(address, str):
            raise ValueError(f"Token address must be a string, got {address!r}")
        return cls(
            address=address,
            symbol=data.get("symbol", ""),
            decimals=int(data["decimals"]),
            name=data.get("name"),
            icon_url=data.get("iconUrl"),
            occurrences=data.get("occurances", data.get("occurrences")),
        )

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "name": self.name,
            "icon_url": self.icon_url,
            "occurrences": self.occurrences,
        }


NATIVE_TOKEN = Token(
    address=NATIVE_TOKEN_ADDRESS,
    symbol="ETH",
    decimals=NATIVE_DECIMALS,
    name="Ether",
    icon_url="images/black-eth-logo.svg",
)


@dataclass(frozen=True)
class AggregatorMetadata:
    """Display metadata for an aggregator."""

    color: str
    title: str
    icon: str

    @classmethod
    def from_api(cls, data: dict) -> "AggregatorMetadata":
        return cls(
            color=data.get("color", ""),
            title=data.get("title", ""),
            icon=data.get("icon", ""),
        )


@dataclass(frozen=True)
class TxParams:
    """Normalized transaction skeleton: hex-prefixed, lower-cased addresses."""

    from_address: str
    to: Optional[str] = None
    data: Optional[str] = None
    value: Optional[str] = None
    gas: Optional[str] = None
    gas_price: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "TxParams":
        normalized = normalize_transaction(raw)
        return cls(
            from_address=normalized.get("from", ""),
            to=normalized.get("to"),
            data=normalized.get("data"),
            value=normalized.get("value"),
            gas=normalized.get("gas"),
            gas_price=normalized.get("gasPrice"),
        )

    @property
    def value_wei(self) -> int:
        return hex_to_int(self.value) if self.value else 0

    @property
    def gas_units(self) -> Optional[int]:
        return hex_to_int(self.gas) if self.gas else None

    def to_rpc_dict(self) -> dict[str, str]:
        """Render as a JSON-RPC transaction object, omitting empty fields."""
        tx = {
            "from": self.from_address,
            "to": self.to,
            "data": self.data,
            "value": self.value,
            "gas": self.gas,
            "gasPrice": self.gas_price,
        }
        return {k: v for k, v in tx.items() if v}


class GasEstimateStatus(str, Enum):
    PENDING = "pending"
    ESTIMATED = "estimated"
    FAILED = "failed"


@dataclass(frozen=True)
class GasEstimate:
    """Outcome of a gas estimation: Pending, Estimated(units) or Failed(reason)."""

    status: GasEstimateStatus = GasEstimateStatus.PENDING
    units: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def pending(cls) -> "GasEstimate":
        return cls()

    @classmethod
    def estimated(cls, units: int) -> "GasEstimate":
        return cls(status=GasEstimateStatus.ESTIMATED, units=units)

    @classmethod
    def failed(cls, reason: str) -> "GasEstimate":
        return cls(status=GasEstimateStatus.FAILED, reason=reason)

    @property
    def is_estimated(self) -> bool:
        return self.status == GasEstimateStatus.ESTIMATED


@dataclass(frozen=True)
class SavingsBreakdown:
    """Savings of the best quote against the median of the field."""

    performance: Decimal
    fee: Decimal
    total: Decimal
    median_meta_fee: Decimal

    def to_dict(self) -> dict:
        return {
            "performance": str(self.performance),
            "fee": str(self.fee),
            "total": str(self.total),
            "median_meta_fee": str(self.median_meta_fee),
        }


@dataclass
class Quote:
    """One aggregator's candidate trade."""

    aggregator: str
    trade: TxParams
    source_token: str
    destination_token: str
    source_amount: int
    destination_amount: int
    max_gas: Optional[int] = None
    average_gas: Optional[int] = None
    estimated_refund: int = 0
    meta_fee_bps: Decimal = Decimal(0)
    approval_needed: Optional[TxParams] = None
    agg_type: Optional[str] = None
    fetch_time: Optional[int] = None
    slippage: Optional[Decimal] = None
    gas_multiplier: Optional[Decimal] = None

    # Filled in by the gas estimation guard
    gas_estimate: GasEstimate = field(default_factory=GasEstimate.pending)
    gas_estimate_with_refund: Optional[int] = None
    max_network_gas: Optional[int] = None
    estimated_network_gas: Optional[int] = None

    # Attached to the best quote only
    savings: Optional[SavingsBreakdown] = None

    @classmethod
    def from_api(cls, raw: dict, slippage: Optional[Decimal] = None) -> "Quote":
        """Build a quote from a raw trade entry of the aggregator service.

        The trade skeleton carries the trade value and the aggregator's max gas
        as hex. Raises KeyError/ValueError on malformed entries.
        """
        raw_trade = raw["trade"]
        max_gas = _optional_int(raw.get("maxGas"))
        trade = TxParams.from_dict(
            {
                "from": raw_trade.get("from"),
                "to": raw_trade.get("to"),
                "data": raw_trade.get("data"),
                "value": hex(parse_int(raw_trade.get("value") or 0)),
                "gas": hex(max_gas) if max_gas is not None else None,
            }
        )
        approval = raw.get("approvalNeeded")
        return cls(
            aggregator=raw["aggregator"],
            trade=trade,
            source_token=(raw.get("sourceToken") or "").lower(),
            destination_token=(raw.get("destinationToken") or "").lower(),
            source_amount=parse_int(raw.get("sourceAmount") or 0),
            destination_amount=parse_int(raw.get("destinationAmount") or 0),
            max_gas=max_gas,
            average_gas=_optional_int(raw.get("averageGas")),
            estimated_refund=_optional_int(raw.get("estimatedRefund")) or 0,
            # The service reports its fee as a percentage
            meta_fee_bps=to_decimal(str(raw.get("fee") or 0)) * 100,
            approval_needed=TxParams.from_dict(approval) if approval else None,
            agg_type=raw.get("aggType"),
            fetch_time=_optional_int(raw.get("fetchTime")),
            slippage=slippage,
            gas_multiplier=(
                to_decimal(str(raw["gasMultiplier"]))
                if raw.get("gasMultiplier") is not None
                else None
            ),
        )

    def copy_with(self, **changes) -> "Quote":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "aggregator": self.aggregator,
            "agg_type": self.agg_type,
            "trade": self.trade.to_rpc_dict(),
            "approval_needed": (
                self.approval_needed.to_rpc_dict() if self.approval_needed else None
            ),
            "source_token": self.source_token,
            "destination_token": self.destination_token,
            "source_amount": str(self.source_amount),
            "destination_amount": str(self.destination_amount),
            "max_gas": self.max_gas,
            "average_gas": self.average_gas,
            "estimated_refund": self.estimated_refund,
            "meta_fee_bps": str(self.meta_fee_bps),
            "gas_estimate": self.gas_estimate.units,
            "gas_estimate_status": self.gas_estimate.status.value,
            "gas_estimate_with_refund": self.gas_estimate_with_refund,
            "max_network_gas": self.max_network_gas,
            "estimated_network_gas": self.estimated_network_gas,
            "savings": self.savings.to_dict() if self.savings else None,
        }


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return parse_int(value if not isinstance(value, float) else str(value))


@dataclass(frozen=True)
class FetchRequest:
    """Parameters of one polling session."""

    source_token: str
    destination_token: str
    source_amount: int
    slippage_bps: int
    wallet_address: str
    exchange_list: Optional[tuple[str, ...]] = None
    balance_insufficient: bool = False

    def __post_init__(self):
        for name in ("source_token", "destination_token", "wallet_address"):
            address = getattr(self, name)
            if not Web3.is_address(address):
                raise ValueError(f"{name} is not a valid address: {address!r}")
            object.__setattr__(self, name, address.lower())
        if self.source_amount <= 0:
            raise ValueError("source_amount must be positive")
        if self.slippage_bps < 0:
            raise ValueError("slippage_bps must not be negative")
        if self.exchange_list is not None:
            object.__setattr__(self, "exchange_list", tuple(self.exchange_list))

    @property
    def slippage_percent(self) -> Decimal:
        return Decimal(self.slippage_bps) / 100

    @property
    def is_native_source(self) -> bool:
        return is_native_token(self.source_token)

    @property
    def is_native_destination(self) -> bool:
        return is_native_token(self.destination_token)


@dataclass(frozen=True)
class FetchMetadata:
    """Token information the wallet already holds for the requested pair."""

    source_token_info: Token
    destination_token_info: Token
    account_balance: int = 0
    destination_token_conversion_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class PerAggregatorCost:
    """All-in cost and value of one quote, in reference units."""

    aggregator: str
    fee_in_reference_units: Decimal
    destination_value_in_reference_units: Decimal
    meta_fee_in_reference_units: Decimal
    overall_value: Decimal

    def to_dict(self) -> dict:
        return {
            "aggregator": self.aggregator,
            "fee": str(self.fee_in_reference_units),
            "destination_value": str(self.destination_value_in_reference_units),
            "meta_fee": str(self.meta_fee_in_reference_units),
            "overall_value": str(self.overall_value),
        }


@dataclass(frozen=True)
class EvaluationResult:
    best_aggregator_id: str
    costs: dict[str, PerAggregatorCost]


class SessionStatus(str, Enum):
    """Quote session state machine states."""

    IDLE = "idle"
    POLLING = "polling"
    FETCHING = "fetching"
    STOPPED = "stopped"
    ERRORED = "errored"


@dataclass
class SessionState:
    """State owned by one SwapsController."""

    status: SessionStatus = SessionStatus.IDLE
    fetch_request: Optional[FetchRequest] = None
    fetch_metadata: Optional[FetchMetadata] = None
    custom_gas_price: Optional[int] = None
    quotes: dict[str, Quote] = field(default_factory=dict)
    best_aggregator_id: Optional[str] = None
    savings: Optional[SavingsBreakdown] = None
    costs: dict[str, PerAggregatorCost] = field(default_factory=dict)
    last_fetched_at_ms: Optional[int] = None
    poll_cycles_remaining: int = 0
    is_polling: bool = False
    is_fetching: bool = False
    error_kind: Optional[SwapsError] = None
    approval_tx: Optional[TxParams] = None

    # Caches that survive a reset
    tokens: Optional[list[Token]] = None
    tokens_last_fetched_ms: int = 0
    aggregator_metadata: Optional[dict[str, AggregatorMetadata]] = None
    aggregator_metadata_last_fetched_ms: int = 0
    swaps_feature_is_live: Optional[bool] = None

    def reset(self, poll_count_limit: int) -> "SessionState":
        """Fresh state that keeps the token and metadata caches."""
        return SessionState(
            status=SessionStatus.STOPPED,
            poll_cycles_remaining=poll_count_limit,
            tokens=self.tokens,
            tokens_last_fetched_ms=self.tokens_last_fetched_ms,
            aggregator_metadata=self.aggregator_metadata,
            aggregator_metadata_last_fetched_ms=self.aggregator_metadata_last_fetched_ms,
            swaps_feature_is_live=self.swaps_feature_is_live,
        )

    def copy(self) -> "SessionState":
        return copy.deepcopy(self)

    @property
    def best_quote(self) -> Optional[Quote]:
        if self.best_aggregator_id is None:
            return None
        return self.quotes.get(self.best_aggregator_id)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "quotes": {agg: q.to_dict() for agg, q in self.quotes.items()},
            "best_aggregator_id": self.best_aggregator_id,
            "savings": self.savings.to_dict() if self.savings else None,
            "costs": {agg: c.to_dict() for agg, c in self.costs.items()},
            "last_fetched_at_ms": self.last_fetched_at_ms,
            "poll_cycles_remaining": self.poll_cycles_remaining,
            "is_polling": self.is_polling,
            "is_fetching": self.is_fetching,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "approval_tx": self.approval_tx.to_rpc_dict() if self.approval_tx else None,
        }
