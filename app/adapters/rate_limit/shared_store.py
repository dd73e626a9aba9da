"""Fixed-window rate limiting on a shared key-value store.

The counter for an identifier lives at ``<prefix><identifier>``. The first
``INCR`` of a window creates it at 1 and sets its expiry, so the store's own
clock ends the window and every process sharing the store sees one total
order of increments.
"""

from __future__ import annotations

import enum
import logging
import math
import time
from typing import Callable, Protocol

from app.adapters.rate_limit.base import (
    AbstractRateLimitBackend,
    RateLimitPolicy,
    RateLimitResult,
    decide,
)

logger = logging.getLogger(__name__)

# PTTL replies for a key without expiry / a missing key
TTL_NO_EXPIRY = -1
TTL_MISSING = -2

# Debug notice when remaining requests drop to this share of the limit
THRESHOLD_RATIO = 0.2


class StoreEvent(str, enum.Enum):
    """Connection lifecycle events emitted by a shared store client."""

    CONNECT = "connect"
    ERROR = "error"
    CLOSE = "close"


StoreListener = Callable[[StoreEvent, "BaseException | None"], None]


class SharedStoreClient(Protocol):
    """What the limiter needs from a shared store client.

    The client owns connection management (retries, backoff, reconnects) and
    reports connection changes through listeners.
    """

    def add_listener(self, listener: StoreListener) -> None: ...

    async def connect(self) -> bool: ...

    async def incr(self, key: str) -> int: ...

    async def pexpire(self, key: str, milliseconds: int) -> bool: ...

    async def pttl(self, key: str) -> int: ...

    async def close(self) -> None: ...


class SharedStoreFixedWindowRateLimiter(AbstractRateLimitBackend):
    """Counts requests with atomic ``INCR`` + ``PEXPIRE`` on a shared store.

    Store failures propagate to the caller unchanged.
    """

    def __init__(
        self,
        client: SharedStoreClient,
        *,
        key_prefix: str = "ratelimit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._clock = clock

    def build_key(self, identifier: str) -> str:
        return f"{self._key_prefix}{identifier}"

    async def hit(self, policy: RateLimitPolicy) -> RateLimitResult:
        now_ms = self._clock() * 1000
        key = self.build_key(policy.identifier)

        count = await self._client.incr(key)
        if count == 1:
            await self._client.pexpire(key, policy.window_ms)

        ttl = await self._client.pttl(key)
        if ttl == TTL_NO_EXPIRY:
            # Counter outlived a failed PEXPIRE; put the window back on it.
            await self._client.pexpire(key, policy.window_ms)

        if ttl > 0:
            reset_at = (now_ms + ttl) / 1000
        else:
            reset_at = (now_ms + policy.window_ms) / 1000

        result = decide(count, policy, reset_at)

        if result.remaining == math.ceil(policy.max_requests * THRESHOLD_RATIO):
            logger.debug(
                "rate_limit.threshold_approaching",
                extra={
                    "identifier": policy.identifier,
                    "count": count,
                    "max_requests": policy.max_requests,
                    "remaining": result.remaining,
                },
            )

        return result
