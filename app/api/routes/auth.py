"""Password reset and verification email endpoints.

Both endpoints are rate limited per email address before anything is sent.
Token issuance and validation belong to the auth provider; these handlers
only build the links and hand them to the mailer.
"""

from __future__ import annotations

import logging
import secrets
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request

from app.adapters.mail.base import AbstractAuthMailer
from app.core.config import settings
from app.core.errors import MailDeliveryAppError
from app.core.rate_limit import (
    check_rate_limit,
    get_rate_limiter,
    get_request_ip,
    throw_rate_limit_error,
)
from app.schemas.auth import (
    AuthMailResponse,
    ForgotPasswordRequest,
    ResendVerificationRequest,
)
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def get_mailer(request: Request) -> AbstractAuthMailer:
    return request.app.state.mailer


def _base_url() -> str:
    return settings.app.public_base_url.rstrip("/")


@router.post("/forgot-password", response_model=AuthMailResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    mailer: AbstractAuthMailer = Depends(get_mailer),
) -> AuthMailResponse:
    """Send a password reset link.

    Always answers with success once the rate limit passes, whether or not
    the address has an account or the email could be sent, so the endpoint
    cannot be used to enumerate accounts.

    Raises:
        RateLimitExceededError: 429 after too many requests for this email.
    """
    result = await check_rate_limit(
        request,
        limiter,
        max_requests=settings.rate_limit.forgot_password_max_requests,
        window_seconds=settings.rate_limit.forgot_password_window_seconds,
        identifier=f"forgot-password:{body.email}",
    )
    if not result.allowed:
        throw_rate_limit_error(result)

    query = urlencode({"token": secrets.token_urlsafe(32), "redirectTo": body.redirect_to})
    try:
        await mailer.send_password_reset(
            user_email=body.email,
            user_name=body.email.split("@")[0],
            reset_link=f"{_base_url()}/auth/reset-password?{query}",
            login_url=f"{_base_url()}/auth/login",
            ip_address=get_request_ip(request),
        )
    except Exception as exc:
        logger.warning(
            "forgot_password.mail_failed",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
        )

    return AuthMailResponse(success=True, message="Password reset email sent")


@router.post("/resend-verification", response_model=AuthMailResponse)
async def resend_verification(
    body: ResendVerificationRequest,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    mailer: AbstractAuthMailer = Depends(get_mailer),
) -> AuthMailResponse:
    """Send a new email verification link.

    Raises:
        RateLimitExceededError: 429 after too many requests for this email.
        MailDeliveryAppError: 500 when the email could not be sent.
    """
    result = await check_rate_limit(
        request,
        limiter,
        max_requests=settings.rate_limit.resend_verification_max_requests,
        window_seconds=settings.rate_limit.resend_verification_window_seconds,
        identifier=f"resend-verification:{body.email}",
    )
    if not result.allowed:
        throw_rate_limit_error(result)

    query = urlencode({"token": secrets.token_urlsafe(32)})
    try:
        await mailer.send_verification(
            user_email=body.email,
            user_name=body.email.split("@")[0],
            verification_link=f"{_base_url()}/verify-email?{query}",
            login_url=f"{_base_url()}/auth/login",
        )
    except MailDeliveryAppError:
        raise
    except Exception as exc:
        raise MailDeliveryAppError(
            code="mail_delivery_failed",
            message="Failed to send verification email",
        ) from exc

    return AuthMailResponse(success=True, message="Verification email sent successfully")
