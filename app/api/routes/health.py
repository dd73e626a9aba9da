from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.rate_limit import get_rate_limiter
from app.services.rate_limiter import RateLimiter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(limiter: RateLimiter = Depends(get_rate_limiter)) -> dict:
    """Health check endpoint.

    Reports liveness plus which rate limit backend is in use, so a degraded
    (memory-only) instance is visible to monitoring.
    """

    return {
        "status": "ok",
        "rate_limiter": {
            "backend": limiter.state.value,
            "local_entries": len(limiter.memory),
        },
    }
