"""Typed failure kinds for quote sessions."""

from enum import Enum
from typing import Optional


class SwapsError(str, Enum):
    """Failure kinds reported through the session's error_kind."""

    QUOTES_EXPIRED = "quotes-expired-error"
    SWAP_FAILED = "swap-failed-error"
    ERROR_FETCHING_QUOTES = "error-fetching-quotes"
    QUOTES_NOT_AVAILABLE = "quotes-not-available"
    OFFLINE_FOR_MAINTENANCE = "offline-for-maintenance"
    FETCH_ORDER_CONFLICT = "fetch-order-conflict"


class SwapsException(Exception):
    """Base class for failures that map onto a SwapsError kind."""

    kind: SwapsError = SwapsError.ERROR_FETCHING_QUOTES

    def __init__(self, message: str = "", kind: Optional[SwapsError] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)


class QuoteFetchError(SwapsException):
    """Transport or parse failure while talking to the aggregator service."""

    kind = SwapsError.ERROR_FETCHING_QUOTES


class NoQuotesAvailableError(SwapsException):
    """The aggregator returned no usable quote, or none survived evaluation."""

    kind = SwapsError.QUOTES_NOT_AVAILABLE


class SwapsOfflineError(SwapsException):
    """The aggregator service is down for maintenance."""

    kind = SwapsError.OFFLINE_FOR_MAINTENANCE


class AllowanceCheckError(SwapsException):
    """The ERC-20 allowance could not be read, or no approval skeleton exists."""

    kind = SwapsError.ERROR_FETCHING_QUOTES


class FetchOrderConflictError(SwapsException):
    """A cycle finished after a newer cycle had already committed."""

    kind = SwapsError.FETCH_ORDER_CONFLICT

    def __init__(self, sequence: int, min_commit_sequence: int):
        self.sequence = sequence
        self.min_commit_sequence = min_commit_sequence
        super().__init__(
            f"Cycle {sequence} discarded: commits require sequence >= {min_commit_sequence}"
        )


class RpcError(Exception):
    """JSON-RPC error object or transport failure."""

    def __init__(self, method: str, message: str, code: Optional[int] = None):
        self.method = method
        self.code = code
        super().__init__(f"{method} failed: {message}")


def error_kind_for(exc: BaseException) -> SwapsError:
    """Map any exception raised inside a cycle onto a failure kind."""
    if isinstance(exc, SwapsException):
        return exc.kind
    return SwapsError.ERROR_FETCHING_QUOTES
