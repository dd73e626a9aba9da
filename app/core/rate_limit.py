"""Rate limiting helpers for FastAPI routes.

This module wires the rate limiter into the HTTP layer:

- ``get_rate_limiter``: dependency returning the process-wide limiter kept on
  ``app.state`` by the app factory.
- ``check_rate_limit``: builds a policy for the current request and counts it.
- ``throw_rate_limit_error``: turns a denied result into a 429 error carrying
  the limit metadata and a retry-after hint in minutes.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from datetime import datetime, timezone
from typing import NoReturn

from fastapi import Request

from app.adapters.rate_limit.base import RateLimitPolicy, RateLimitResult
from app.core.errors import RateLimitExceededError
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> RateLimiter:
    """Return the limiter created at application startup."""

    return request.app.state.rate_limiter


def get_request_ip(request: Request) -> str:
    """Best-effort client IP, honouring proxy headers.

    Order: first ``X-Forwarded-For`` entry, ``X-Real-IP``, socket peer.

    Returns:
        The client address or ``"unknown"``.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _hash_identifier(identifier: str) -> str:
    """Hash the identifier for logging without exposing emails or IPs."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


async def check_rate_limit(
    request: Request,
    limiter: RateLimiter,
    *,
    max_requests: int,
    window_seconds: int,
    identifier: str | None = None,
) -> RateLimitResult:
    """Count the current request against a fixed-window policy.

    Args:
        request: Incoming request (used for the IP fallback identifier).
        limiter: Process-wide limiter.
        max_requests: Requests allowed per window.
        window_seconds: Window length in seconds.
        identifier: Counter key; defaults to the client IP.

    Returns:
        The limiter decision. Callers stop with :func:`throw_rate_limit_error`
        when ``allowed`` is false.
    """

    policy = RateLimitPolicy(
        max_requests=max_requests,
        window_seconds=window_seconds,
        identifier=identifier or get_request_ip(request),
    )
    result = await limiter.check(policy)

    logger.debug(
        "rate_limit.checked",
        extra={
            "key_hash": _hash_identifier(policy.identifier),
            "allowed": result.allowed,
            "limit": result.limit,
            "remaining": result.remaining,
            "backend": limiter.state.value,
        },
    )
    return result


def retry_after_minutes(reset_at: int, now: float | None = None) -> int:
    """Minutes until ``reset_at``, rounded up and never below 1."""

    now_ms = (time.time() if now is None else now) * 1000
    return max(1, math.ceil((reset_at * 1000 - now_ms) / 60000))


def throw_rate_limit_error(
    result: RateLimitResult,
    *,
    message: str | None = None,
    now: float | None = None,
) -> NoReturn:
    """Fail the current request with HTTP 429.

    Args:
        result: A denied limiter result.
        message: Override for the default "try again in N minutes" message.
        now: Current UNIX time (defaults to the wall clock).

    Raises:
        RateLimitExceededError: Always.
    """

    minutes = retry_after_minutes(result.reset_at, now)
    reset_date = datetime.fromtimestamp(result.reset_at, tz=timezone.utc).isoformat()

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
            "reset_date": reset_date,
        },
    )

    plural = "" if minutes == 1 else "s"
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message=message or f"Rate limit exceeded. Please try again in {minutes} minute{plural}.",
        details={
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
            "reset_date": reset_date,
            "retry_after_minutes": minutes,
        },
    )
