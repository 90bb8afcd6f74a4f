"""Utility modules for swapquotes."""

from swapquotes.utils.fixed_point import calc_token_amount, get_median
from swapquotes.utils.locks import LockTimeoutError, RefreshLock

__all__ = ["calc_token_amount", "get_median", "LockTimeoutError", "RefreshLock"]
