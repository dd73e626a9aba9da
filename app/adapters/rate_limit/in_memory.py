"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  It is the fallback used while the shared store is unreachable.
- Thread-safe: uses a lock around shared state.
- Windows start at a key's first request (not aligned to the clock) and
  expired entries are dropped lazily or by :meth:`sweep`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitPolicy,
    RateLimitResult,
    decide,
)

logger = logging.getLogger(__name__)


@dataclass
class CounterEntry:
    """Requests seen for one key in its current window."""

    count: int
    reset_at: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimitBackend):
    """Fixed-window counters kept in a process-local dict.

    Args:
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, CounterEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._entries

    def consume(self, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request synchronously.

        Never blocks on I/O, so callers on the event loop can use it directly.
        """

        now = self._clock()

        with self._lock:
            entry = self._entries.get(policy.identifier)
            if entry is None or entry.reset_at < now:
                entry = CounterEntry(count=0, reset_at=now + policy.window_seconds)
                self._entries[policy.identifier] = entry

            entry.count += 1
            return decide(entry.count, policy, entry.reset_at)

    async def hit(self, policy: RateLimitPolicy) -> RateLimitResult:
        return self.consume(policy)

    def sweep(self) -> int:
        """Drop every entry whose window has ended.

        Returns:
            Number of entries removed.
        """

        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.reset_at < now]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"cleaned_count": len(expired), "entries": len(self)},
            )
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
