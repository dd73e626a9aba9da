"""Tests for the HTTP-facing rate limit helpers."""

import pytest
from fastapi import Request

from app.adapters.rate_limit.base import RateLimitResult
from app.core.errors import AppError, RateLimitExceededError
from app.core.rate_limit import (
    check_rate_limit,
    get_request_ip,
    retry_after_minutes,
    throw_rate_limit_error,
)
from app.services.rate_limiter import RateLimiter

NOW = 1_700_000_000.0


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("9.9.9.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def _denied(reset_at: float, limit: int = 3) -> RateLimitResult:
    return RateLimitResult(allowed=False, remaining=0, reset_at=int(reset_at), limit=limit)


class TestThrowRateLimitError:
    def test_raises_429_with_one_minute_hint(self) -> None:
        with pytest.raises(RateLimitExceededError) as exc_info:
            throw_rate_limit_error(_denied(NOW + 60), now=NOW)

        exc = exc_info.value
        assert isinstance(exc, AppError)
        assert exc.status_code == 429
        assert exc.code == "rate_limit_exceeded"
        assert "1 minute." in exc.message
        assert exc.details["limit"] == 3
        assert exc.details["remaining"] == 0
        assert exc.details["reset_at"] == int(NOW + 60)
        assert exc.details["retry_after_minutes"] == 1

    def test_pluralizes_minutes(self) -> None:
        with pytest.raises(RateLimitExceededError) as exc_info:
            throw_rate_limit_error(_denied(NOW + 3600), now=NOW)

        assert "in 60 minutes." in exc_info.value.message

    def test_uses_wall_clock_by_default(self) -> None:
        import time

        with pytest.raises(RateLimitExceededError) as exc_info:
            throw_rate_limit_error(_denied(time.time() + 60))

        assert "1 minute." in exc_info.value.message

    def test_custom_message(self) -> None:
        with pytest.raises(RateLimitExceededError) as exc_info:
            throw_rate_limit_error(
                _denied(NOW + 30),
                message="Too many log requests. Please slow down.",
                now=NOW,
            )

        assert exc_info.value.message == "Too many log requests. Please slow down."
        assert exc_info.value.details["reset_date"].startswith("2023-11-14T22:13:50")

    @pytest.mark.parametrize(
        ("seconds_left", "expected"),
        [(1, 1), (59, 1), (60, 1), (61, 2), (3600, 60), (0, 1), (-30, 1)],
    )
    def test_retry_after_minutes_rounds_up(self, seconds_left: int, expected: int) -> None:
        assert retry_after_minutes(int(NOW) + seconds_left, now=NOW) == expected


class TestGetRequestIp:
    def test_prefers_first_forwarded_for_entry(self) -> None:
        request = _request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1", "X-Real-IP": "5.6.7.8"})
        assert get_request_ip(request) == "1.2.3.4"

    def test_uses_real_ip_header(self) -> None:
        assert get_request_ip(_request({"X-Real-IP": "5.6.7.8"})) == "5.6.7.8"

    def test_falls_back_to_socket_peer(self) -> None:
        assert get_request_ip(_request()) == "9.9.9.9"

    def test_unknown_without_any_source(self) -> None:
        assert get_request_ip(_request(client=None)) == "unknown"


class TestCheckRateLimit:
    @pytest.mark.asyncio
    async def test_defaults_identifier_to_client_ip(self, clock) -> None:
        limiter = RateLimiter(None, clock=clock)
        request = _request({"X-Forwarded-For": "1.2.3.4"})

        first = await check_rate_limit(request, limiter, max_requests=1, window_seconds=60)
        second = await check_rate_limit(request, limiter, max_requests=1, window_seconds=60)

        assert first.allowed is True
        assert second.allowed is False
        assert "1.2.3.4" in limiter.memory

    @pytest.mark.asyncio
    async def test_rejects_invalid_policy(self, clock) -> None:
        limiter = RateLimiter(None, clock=clock)

        with pytest.raises(ValueError):
            await check_rate_limit(_request(), limiter, max_requests=0, window_seconds=60)
