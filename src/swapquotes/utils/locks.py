"""Concurrency control for cache refreshes.

A cache that can be refreshed from several paths (scheduled refresh, on-demand
reads) holds one RefreshLock. Callers re-check freshness after acquiring it, so
concurrent triggers collapse into a single network call.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class RefreshLock:
    """Named asyncio lock with an acquisition timeout.

    Example:
        async with lock.hold("tokens"):
            if cache.is_stale():
                await cache.refresh()
    """

    def __init__(self, name: str, timeout: Optional[float] = 30.0):
        """Initialize the lock.

        Args:
            name: Name of the guarded resource, used for logging
            timeout: Maximum time to wait for the lock (None = wait forever)
        """
        self.name = name
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, operation: str = "refresh") -> AsyncIterator[None]:
        """Acquire the lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within the timeout
        """
        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for {self.name} after {self.timeout}s: {operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for {self.name} within {self.timeout}s"
            )

        logger.debug(f"Lock acquired for {self.name}: {operation}")
        try:
            yield
        finally:
            self._lock.release()
            logger.debug(f"Lock released for {self.name}: {operation}")
