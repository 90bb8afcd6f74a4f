"""Quote session request and response contracts."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from swapquotes.swaps.models import FetchMetadata, FetchRequest, Token


class TokenInfo(BaseModel):
    """Token as known to the wallet."""

    address: str = Field(..., description="Token contract address (zero address for ETH)")
    symbol: str = Field(..., description="Token symbol")
    decimals: int = Field(..., ge=0, le=77, description="Token decimals")
    name: Optional[str] = Field(None, description="Token name")

    def to_token(self) -> Token:
        return Token(
            address=self.address,
            symbol=self.symbol,
            decimals=self.decimals,
            name=self.name,
        )


class StartQuotesRequest(BaseModel):
    """Request to start polling for quotes."""

    source_token: TokenInfo = Field(..., description="Token to sell")
    destination_token: TokenInfo = Field(..., description="Token to buy")
    source_amount: int = Field(..., gt=0, description="Amount to sell in minimal units")
    slippage_bps: int = Field(default=300, ge=0, le=5000, description="Slippage tolerance in bps")
    wallet_address: str = Field(..., description="Wallet that will send the swap")
    exchange_list: Optional[list[str]] = Field(None, description="Restrict to these venues")
    balance_insufficient: bool = Field(default=False)
    account_balance: int = Field(default=0, ge=0, description="Native balance in wei")
    destination_token_conversion_rate: Optional[Decimal] = Field(
        None, gt=0, description="Destination token price in ETH"
    )
    custom_gas_price: Optional[int] = Field(
        None, gt=0, description="Gas price in wei (node price when omitted)"
    )

    def to_fetch_request(self) -> FetchRequest:
        """Raises ValueError on invalid addresses."""
        return FetchRequest(
            source_token=self.source_token.address,
            destination_token=self.destination_token.address,
            source_amount=self.source_amount,
            slippage_bps=self.slippage_bps,
            wallet_address=self.wallet_address,
            exchange_list=tuple(self.exchange_list) if self.exchange_list else None,
            balance_insufficient=self.balance_insufficient,
        )

    def to_fetch_metadata(self) -> FetchMetadata:
        return FetchMetadata(
            source_token_info=self.source_token.to_token(),
            destination_token_info=self.destination_token.to_token(),
            account_balance=self.account_balance,
            destination_token_conversion_rate=self.destination_token_conversion_rate,
        )


class SessionResponse(BaseModel):
    """Snapshot of the quote session."""

    success: bool = Field(..., description="Whether the operation was accepted")
    status: str = Field(..., description="Session status")
    is_polling: bool = False
    is_fetching: bool = False
    poll_cycles_remaining: int = 0
    last_fetched_at_ms: Optional[int] = None
    best_aggregator_id: Optional[str] = None
    error_kind: Optional[str] = Field(None, description="Failure kind if errored")
    quotes: dict[str, Any] = Field(default_factory=dict)
    costs: dict[str, Any] = Field(default_factory=dict)
    savings: Optional[dict[str, str]] = None
    approval_tx: Optional[dict[str, str]] = None

    @classmethod
    def from_state(cls, state, success: bool = True) -> "SessionResponse":
        return cls(success=success, **state.to_dict())


class TokenListResponse(BaseModel):
    success: bool = True
    tokens: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0


class AggregatorListResponse(BaseModel):
    success: bool = True
    aggregators: dict[str, dict[str, Optional[str]]] = Field(default_factory=dict)


class TokenPriceResponse(BaseModel):
    """Display price of a token; price_eth is None when unknown."""

    success: bool = True
    address: str
    price_eth: Optional[Decimal] = None
