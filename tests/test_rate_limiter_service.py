"""Tests for the dual-backend RateLimiter and its backend state machine."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from app.adapters.rate_limit.base import RateLimitPolicy
from app.adapters.rate_limit.shared_store import StoreEvent
from app.services.rate_limiter import BackendState, RateLimiter


def _policy(max_requests: int = 3, window_seconds: int = 60, identifier: str = "k") -> RateLimitPolicy:
    return RateLimitPolicy(
        max_requests=max_requests,
        window_seconds=window_seconds,
        identifier=identifier,
    )


@pytest_asyncio.fixture
async def limiter(shared_store, clock):
    rate_limiter = RateLimiter(shared_store, clock=clock)
    await rate_limiter.start()
    yield rate_limiter
    await rate_limiter.close()


class TestStartup:
    """Initial backend selection."""

    @pytest.mark.asyncio
    async def test_active_when_handshake_succeeds(self, limiter) -> None:
        assert limiter.state is BackendState.SHARED_ACTIVE
        assert limiter.transitions[-1].reason == "handshake_succeeded"

    @pytest.mark.asyncio
    async def test_degraded_when_store_unreachable(self, shared_store, clock) -> None:
        shared_store.reachable = False
        rate_limiter = RateLimiter(shared_store, clock=clock)
        await rate_limiter.start()
        try:
            assert rate_limiter.state is BackendState.SHARED_DEGRADED
            result = await rate_limiter.check(_policy())
            assert result.allowed is True
            assert shared_store.commands == []
        finally:
            await rate_limiter.close()

    @pytest.mark.asyncio
    async def test_degraded_when_handshake_raises(self, shared_store, clock) -> None:
        shared_store.connect = AsyncMock(side_effect=OSError("reset"))
        rate_limiter = RateLimiter(shared_store, clock=clock)
        await rate_limiter.start()
        try:
            assert rate_limiter.state is BackendState.SHARED_DEGRADED
            assert rate_limiter.transitions == ()
            assert (await rate_limiter.check(_policy())).allowed is True
        finally:
            await rate_limiter.close()

    @pytest.mark.asyncio
    async def test_memory_only_without_store(self, clock) -> None:
        rate_limiter = RateLimiter(None, clock=clock)
        await rate_limiter.start()
        try:
            assert rate_limiter.state is BackendState.SHARED_DEGRADED
            assert (await rate_limiter.check(_policy(max_requests=1))).allowed is True
            assert (await rate_limiter.check(_policy(max_requests=1))).allowed is False
        finally:
            await rate_limiter.close()


class TestCounting:
    """Same limit semantics on both backends."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reachable", [True, False])
    @pytest.mark.parametrize("max_requests", [1, 3, 5])
    async def test_n_allowed_then_denied(self, shared_store, clock, reachable, max_requests) -> None:
        shared_store.reachable = reachable
        rate_limiter = RateLimiter(shared_store, clock=clock)
        await rate_limiter.start()
        try:
            policy = _policy(max_requests=max_requests)
            for k in range(1, max_requests + 1):
                result = await rate_limiter.check(policy)
                assert result.allowed is True
                assert result.remaining == max_requests - k

            denied = await rate_limiter.check(policy)
            assert denied.allowed is False
            assert denied.remaining == 0
            assert denied.limit == max_requests
        finally:
            await rate_limiter.close()

    @pytest.mark.asyncio
    async def test_uses_shared_store_when_active(self, limiter, shared_store) -> None:
        await limiter.check(_policy(identifier="forgot-password:a@x.com"))

        assert shared_store.value("ratelimit:forgot-password:a@x.com") == 1
        assert len(limiter.memory) == 0

    @pytest.mark.asyncio
    async def test_fresh_window_after_expiry(self, limiter, clock) -> None:
        policy = _policy(max_requests=1, window_seconds=60)
        assert (await limiter.check(policy)).allowed is True
        assert (await limiter.check(policy)).allowed is False

        clock.advance(61)
        result = await limiter.check(policy)
        assert result.allowed is True
        assert result.remaining == 0


class TestFallback:
    """Degrading to memory when the shared store fails."""

    @pytest.mark.asyncio
    async def test_failed_operation_is_served_from_memory(self, limiter, shared_store) -> None:
        shared_store.failing = True

        result = await limiter.check(_policy(max_requests=3))

        assert result.allowed is True
        assert result.remaining == 2
        assert limiter.state is BackendState.SHARED_DEGRADED
        assert limiter.transitions[-1].reason == "operation_failed"
        assert "k" in limiter.memory

    @pytest.mark.asyncio
    async def test_counting_continues_locally_after_failure(self, limiter, shared_store) -> None:
        shared_store.failing = True
        policy = _policy(max_requests=2)

        results = [await limiter.check(policy) for _ in range(3)]

        assert [r.allowed for r in results] == [True, True, False]
        # Only the first call touched the store; later calls go straight to memory.
        assert len(shared_store.commands) == 1

    @pytest.mark.asyncio
    async def test_error_and_close_events_degrade(self, limiter, shared_store) -> None:
        shared_store.emit(StoreEvent.ERROR, ConnectionError("boom"))
        assert limiter.state is BackendState.SHARED_DEGRADED

        shared_store.emit(StoreEvent.CONNECT)
        assert limiter.state is BackendState.SHARED_ACTIVE

        shared_store.emit(StoreEvent.CLOSE)
        assert limiter.state is BackendState.SHARED_DEGRADED
        assert [t.reason for t in limiter.transitions] == [
            "handshake_succeeded",
            "store_error",
            "store_connected",
            "store_closed",
        ]

    @pytest.mark.asyncio
    async def test_reconnect_event_restores_shared_store(self, limiter, shared_store) -> None:
        shared_store.failing = True
        await limiter.check(_policy())
        assert limiter.state is BackendState.SHARED_DEGRADED

        shared_store.failing = False
        shared_store.emit(StoreEvent.CONNECT)
        await limiter.check(_policy(identifier="after-reconnect"))

        assert limiter.state is BackendState.SHARED_ACTIVE
        assert shared_store.value("ratelimit:after-reconnect") == 1

    @pytest.mark.asyncio
    async def test_repeated_events_record_single_transition(self, limiter, shared_store) -> None:
        shared_store.emit(StoreEvent.ERROR)
        shared_store.emit(StoreEvent.CLOSE)
        shared_store.emit(StoreEvent.ERROR)

        assert len(limiter.transitions) == 2

    @pytest.mark.asyncio
    async def test_degraded_state_without_store_ignores_connect(self, clock) -> None:
        rate_limiter = RateLimiter(None, clock=clock)
        rate_limiter.handle_store_event(StoreEvent.CONNECT)

        result = await rate_limiter.check(_policy())

        assert result.allowed is True
        assert "k" in rate_limiter.memory


class TestLifecycle:
    """Sweep task and shutdown."""

    @pytest.mark.asyncio
    async def test_periodic_sweep_drops_idle_keys(self, shared_store, clock) -> None:
        shared_store.reachable = False
        rate_limiter = RateLimiter(shared_store, clock=clock, sweep_interval=0.01)
        await rate_limiter.start()
        try:
            await rate_limiter.check(_policy(window_seconds=60, identifier="idle"))
            assert len(rate_limiter.memory) == 1

            clock.advance(61)
            await asyncio.sleep(0.05)

            assert len(rate_limiter.memory) == 0
        finally:
            await rate_limiter.close()

    @pytest.mark.asyncio
    async def test_close_closes_store(self, shared_store, clock) -> None:
        rate_limiter = RateLimiter(shared_store, clock=clock)
        await rate_limiter.start()

        await rate_limiter.close()

        assert shared_store.closed is True
