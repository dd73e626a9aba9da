"""HTTP middleware for request correlation and access logging.

Every request gets a correlation id (taken from the configured header or a
fresh UUID) stored in a contextvar for the duration of the request, so log
lines written by handlers, the rate limiter and the mailer share it. The id
and the total duration are echoed back in the response headers.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign a request id, time the request and log its completion.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        The downstream response with ``X-Request-ID`` (or the configured
        header) and ``X-Request-Duration-ms`` added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.completed",
            extra={
                "request_method": request.method,
                "request_path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
