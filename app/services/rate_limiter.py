"""Rate limiter with a shared store and an in-memory fallback.

The limiter owns both counter strategies and a two-state machine that picks
between them:

- ``SHARED_ACTIVE``: requests are counted in the shared store (Redis).
- ``SHARED_DEGRADED``: requests are counted in process memory.

Transitions come from the store client's ``connect`` / ``error`` / ``close``
events and from failed store commands. The limiter never reconnects by
itself; the client does and reports back with a ``connect`` event.

Backend failures never escape :meth:`RateLimiter.check`: a request whose
shared-store round-trip fails is counted in memory within the same call.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import RateLimitPolicy, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.adapters.rate_limit.shared_store import (
    SharedStoreClient,
    SharedStoreFixedWindowRateLimiter,
    StoreEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0


class BackendState(str, enum.Enum):
    SHARED_ACTIVE = "shared_active"
    SHARED_DEGRADED = "shared_degraded"


@dataclass(frozen=True)
class StateTransition:
    """Record of a backend switch, kept for auditing."""

    previous: BackendState
    current: BackendState
    reason: str
    at: float


class RateLimiter:
    """Process-wide rate limiter.

    Build one per process and hand it to request handlers (the FastAPI app
    keeps it on ``app.state``).

    Args:
        shared_store: Shared store client, or None to run on memory only.
        key_prefix: Namespace for shared-store keys.
        sweep_interval: Seconds between in-memory sweeps.
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(
        self,
        shared_store: SharedStoreClient | None = None,
        *,
        key_prefix: str = "ratelimit:",
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = shared_store
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._memory = InMemoryFixedWindowRateLimiter(clock=clock)
        self._shared = (
            SharedStoreFixedWindowRateLimiter(shared_store, key_prefix=key_prefix, clock=clock)
            if shared_store is not None
            else None
        )
        self._state = BackendState.SHARED_DEGRADED
        self._transitions: list[StateTransition] = []
        self._sweep_task: asyncio.Task[None] | None = None

        if shared_store is not None:
            shared_store.add_listener(self.handle_store_event)

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def transitions(self) -> tuple[StateTransition, ...]:
        return tuple(self._transitions)

    @property
    def memory(self) -> InMemoryFixedWindowRateLimiter:
        return self._memory

    async def start(self) -> None:
        """Handshake with the shared store and start the sweep task."""

        if self._store is None:
            logger.info("rate_limiter.memory_only")
        elif await self._handshake():
            self._set_state(BackendState.SHARED_ACTIVE, "handshake_succeeded")
        else:
            logger.warning("rate_limiter.shared_store_unreachable_at_startup")

        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_periodically())

    async def close(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        if self._store is not None:
            await self._store.close()

    async def check(self, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request for ``policy.identifier`` and decide on it.

        Every call counts, so call it exactly once per request attempt.
        """

        if self._state is BackendState.SHARED_ACTIVE and self._shared is not None:
            try:
                return await self._shared.hit(policy)
            except Exception as exc:
                logger.warning(
                    "rate_limit.shared_store_failed",
                    extra={
                        "identifier": policy.identifier,
                        "error_type": type(exc).__name__,
                        "error_msg": str(exc),
                    },
                )
                self._set_state(BackendState.SHARED_DEGRADED, "operation_failed")

        return self._memory.consume(policy)

    def handle_store_event(self, event: StoreEvent, error: BaseException | None = None) -> None:
        """Apply a connection lifecycle event reported by the store client."""

        if event is StoreEvent.CONNECT:
            self._set_state(BackendState.SHARED_ACTIVE, "store_connected")
        elif event is StoreEvent.ERROR:
            self._set_state(BackendState.SHARED_DEGRADED, "store_error")
        elif event is StoreEvent.CLOSE:
            self._set_state(BackendState.SHARED_DEGRADED, "store_closed")

    async def _handshake(self) -> bool:
        try:
            return await self._store.connect()
        except Exception as exc:
            logger.warning(
                "rate_limiter.handshake_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return False

    def sweep(self) -> int:
        return self._memory.sweep()

    async def _sweep_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def _set_state(self, new_state: BackendState, reason: str) -> None:
        if new_state is self._state:
            return

        transition = StateTransition(
            previous=self._state,
            current=new_state,
            reason=reason,
            at=self._clock(),
        )
        self._state = new_state
        self._transitions.append(transition)

        log = logger.info if new_state is BackendState.SHARED_ACTIVE else logger.warning
        log(
            "rate_limiter.state_changed",
            extra={
                "previous_state": transition.previous.value,
                "current_state": transition.current.value,
                "reason": reason,
            },
        )
