"""Request and response contracts for the web layer."""

from swapquotes.web.contracts.quotes import (
    AggregatorListResponse,
    SessionResponse,
    StartQuotesRequest,
    TokenInfo,
    TokenListResponse,
    TokenPriceResponse,
)

__all__ = [
    "AggregatorListResponse",
    "SessionResponse",
    "StartQuotesRequest",
    "TokenInfo",
    "TokenListResponse",
    "TokenPriceResponse",
]
