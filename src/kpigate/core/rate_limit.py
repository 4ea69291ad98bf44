"""
Fixed-window rate limiting.

Counts requests per key in fixed time windows. State lives in a
``RateLimitStore`` so deployments can swap the in-memory backing for a
shared one, and tests can inject a clock.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class RateLimitEntry:
    """Request count for one key within the current window."""
    count: int
    reset_at: float


class RateLimitStore(Protocol):
    """Backing storage for rate-limit entries."""

    lock: asyncio.Lock

    async def get(self, key: str) -> Optional[RateLimitEntry]:
        ...

    async def set(self, key: str, entry: RateLimitEntry) -> None:
        ...

    def __len__(self) -> int:
        ...


class InMemoryRateLimitStore:
    """
    Process-local store.

    Entries are never evicted, so the map grows with the number of
    distinct callers seen by this process.
    """

    def __init__(self) -> None:
        self.entries: Dict[str, RateLimitEntry] = {}
        self.lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[RateLimitEntry]:
        return self.entries.get(key)

    async def set(self, key: str, entry: RateLimitEntry) -> None:
        self.entries[key] = entry

    def __len__(self) -> int:
        return len(self.entries)


class FixedWindowRateLimiter:
    """
    Per-key fixed-window rate limiter.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock

    async def allow(self, key: str, max_requests: int, window_ms: int) -> bool:
        """
        Record a request for ``key`` and report whether it is allowed.

        A missing or expired entry starts a new window with count 1.
        """
        async with self.store.lock:
            now = self.clock()
            entry = await self.store.get(key)

            if entry is None or now > entry.reset_at:
                await self.store.set(
                    key, RateLimitEntry(count=1, reset_at=now + window_ms / 1000.0)
                )
                return True

            if entry.count >= max_requests:
                return False

            entry.count += 1
            await self.store.set(key, entry)
            return True

    async def retry_after(self, key: str) -> int:
        """Seconds until the key's current window resets (at least 1)."""
        entry = await self.store.get(key)
        if entry is None:
            return 1
        return max(1, math.ceil(entry.reset_at - self.clock()))
