"""Application factory for FastAPI app.

Centralizes app construction (logging, middleware, handlers, routers) and
owns the lifetime of the process-wide rate limiter: it is built once here,
started with the app and closed on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.mail.base import AbstractAuthMailer
from app.adapters.mail.factory import create_mailer
from app.adapters.rate_limit.redis_store import RedisSharedStore
from app.api.routes import auth_router, health_router, log_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def build_rate_limiter() -> RateLimiter:
    """Create the limiter from settings (memory only when Redis is disabled)."""
    shared_store = (
        RedisSharedStore.from_settings(settings.redis) if settings.redis.enabled else None
    )
    return RateLimiter(
        shared_store,
        key_prefix=settings.rate_limit.key_prefix,
        sweep_interval=settings.rate_limit.sweep_interval_seconds,
    )


def create_app(
    *,
    rate_limiter: RateLimiter | None = None,
    mailer: AbstractAuthMailer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter: Limiter to use instead of one built from settings.
        mailer: Mailer to use instead of the configured provider.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    limiter = rate_limiter or build_rate_limiter()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await limiter.start()
        logger.info("app.started", extra={"rate_limit_backend": limiter.state.value})
        try:
            yield
        finally:
            await limiter.close()

    app = FastAPI(
        title="Auth Rate Limit Service",
        description=(
            "Password reset, verification email and client log endpoints "
            "protected by a Redis-backed fixed-window rate limiter with an "
            "in-memory fallback."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.rate_limiter = limiter
    app.state.mailer = mailer or create_mailer()

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(log_router)
    app.include_router(health_router)

    return app
