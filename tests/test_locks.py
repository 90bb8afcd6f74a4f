"""Tests for the cache refresh lock."""

import asyncio

import pytest

from swapquotes.utils.locks import LockTimeoutError, RefreshLock


class TestRefreshLock:
    """Tests for RefreshLock."""

    @pytest.mark.asyncio
    async def test_hold_context_manager(self):
        """Test that the lock is held only inside the block."""
        lock = RefreshLock("tokens")

        async with lock.hold("test"):
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_prevents_concurrent_access(self):
        """Test that a second holder waits for the first."""
        lock = RefreshLock("tokens", timeout=10.0)
        results = []

        async def task(name, delay):
            async with lock.hold(f"task_{name}"):
                results.append(f"{name}_start")
                await asyncio.sleep(delay)
                results.append(f"{name}_end")

        await asyncio.gather(task("A", 0.05), task("B", 0.05))

        assert results in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that waiting past the timeout raises LockTimeoutError."""
        lock = RefreshLock("tokens", timeout=0.05)

        async with lock.hold("holder"):
            with pytest.raises(LockTimeoutError):
                async with lock.hold("waiter"):
                    pass

    @pytest.mark.asyncio
    async def test_released_on_exception(self):
        """Test that the lock is released when the block raises."""
        lock = RefreshLock("tokens")

        with pytest.raises(ValueError):
            async with lock.hold("failing"):
                raise ValueError("boom")

        assert not lock.locked()
