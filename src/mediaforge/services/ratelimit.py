"""Fixed-window rate limiting over an injectable TTL store.

Counters live in a TTLStore. Expired entries are only removed by ``sweep``,
which the rate-limit sweeper worker calls periodically.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class TTLStore(Protocol):
    def incr(self, key: str, ttl_seconds: float, now: float) -> tuple[int, float]:
        """Count one hit for ``key`` and return (count, expires_at).

        A missing or expired entry starts a new window ending at ``now + ttl_seconds``.
        """
        ...

    def sweep(self, now: float) -> int:
        """Delete entries expired at ``now``; return how many were removed."""
        ...


class InMemoryTTLStore:
    """Process-local TTLStore backed by a dict."""

    def __init__(self):
        self._entries: dict[str, tuple[int, float]] = {}

    def incr(self, key: str, ttl_seconds: float, now: float) -> tuple[int, float]:
        count, expires_at = self._entries.get(key, (0, 0.0))
        if expires_at <= now:
            count, expires_at = 0, now + ttl_seconds
        count += 1
        self._entries[key] = (count, expires_at)
        return count, expires_at

    def sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int


class RateLimiter:
    """Allow at most ``limit`` hits per key within ``window_seconds``."""

    def __init__(
        self,
        store: TTLStore,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key: str) -> RateLimitDecision:
        """Count a hit for ``key`` and decide whether it is allowed."""
        now = self.clock()
        count, expires_at = self.store.incr(key, self.window_seconds, now)
        if count > self.limit:
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                retry_after_seconds=max(1, int(expires_at - now + 0.999)),
            )
        return RateLimitDecision(allowed=True, remaining=self.limit - count, retry_after_seconds=0)

    def sweep(self) -> int:
        return self.store.sweep(self.clock())
