"""Client-side log ingestion endpoint.

Meant for critical browser-side events only; throttled per client IP.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.logging import log_client_event
from app.core.rate_limit import (
    check_rate_limit,
    get_rate_limiter,
    get_request_ip,
    throw_rate_limit_error,
)
from app.schemas.log import ClientLogRequest, ClientLogResponse
from app.services.rate_limiter import RateLimiter

router = APIRouter(prefix="/api", tags=["Log"])


async def enforce_client_log_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """Count the request before the body is validated, so malformed
    submissions use up the budget too."""

    result = await check_rate_limit(
        request,
        limiter,
        max_requests=settings.rate_limit.client_log_max_requests,
        window_seconds=settings.rate_limit.client_log_window_seconds,
        identifier=f"client-log:{get_request_ip(request)}",
    )
    if not result.allowed:
        throw_rate_limit_error(result, message="Too many log requests. Please slow down.")


@router.post(
    "/log",
    response_model=ClientLogResponse,
    dependencies=[Depends(enforce_client_log_rate_limit)],
)
async def ingest_client_log(body: ClientLogRequest, request: Request) -> ClientLogResponse:
    """Write a browser log event to the server log."""
    client_info = {
        "user_agent": request.headers.get("user-agent"),
        "ip": get_request_ip(request),
        "referer": request.headers.get("referer"),
        "user_id": body.user_id,
        "session_id": body.session_id,
    }
    log_client_event(body.level, body.context, body.message, body.data, client_info)
    return ClientLogResponse(success=True, logged=True)
