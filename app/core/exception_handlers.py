"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → their ``status_code`` (400, 429, 500)
- RateLimitExceededError → 429 plus Retry-After / X-RateLimit-* headers
- RequestValidationError → 400 "validation_error" in the same envelope
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging
import math
import time

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import AppError, RateLimitExceededError, ValidationAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _rate_limit_headers(exc: RateLimitExceededError) -> dict[str, str]:
    """Build throttling headers from the error details."""
    details = exc.details or {}
    reset_at = int(details.get("reset_at", 0))
    retry_after = max(0, math.ceil(reset_at - time.time()))
    return {
        "Retry-After": str(retry_after),
        "X-RateLimit-Limit": str(details.get("limit", "")),
        "X-RateLimit-Remaining": str(details.get("remaining", 0)),
        "X-RateLimit-Reset": str(reset_at),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error's status code and details.
    """
    status_code = exc.status_code

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    headers = None
    if isinstance(exc, RateLimitExceededError) and settings.app.rate_limit_include_headers:
        headers = _rate_limit_headers(exc)

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as 400 ``validation_error``."""
    fields = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    app_error = ValidationAppError(
        code="validation_error",
        message="Request validation failed",
        details={"fields": fields},
    )
    return await app_error_handler(request, app_error)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message. No stack traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Specific handlers are registered before the general fallback.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
