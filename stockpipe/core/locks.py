"""Per-key serialization for merge and compute sequences.

Writers and the metrics engine for the same security share one lock, so a
recompute never reads a quote history that an in-flight merge is changing.
Different keys never contend.

Usage:
    from stockpipe.core.locks import security_locks

    async with security_locks.hold("2330"):
        await merge_quotes(...)
        await recompute_security(...)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .logging import get_logger


logger = get_logger("core.locks")


class KeyedLock:
    """One ``asyncio.Lock`` per key, created on demand and pruned when idle."""

    def __init__(self, name: str = "keyed"):
        self.name = name
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Get or create lock for a key."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
            self._waiters[key] = 0
        return self._locks[key]

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get_lock(key)
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody queued on this key any more
                del self._waiters[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        """True while some task holds the lock for ``key``."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide lock shared by the merger and the metrics engine
security_locks = KeyedLock("security")
