"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    limit: int
    remaining: int
    reset_at: int
    reset_date: str
    retry_after_minutes: int
    provider: str
    fields: list[dict[str, Any]]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code: ClassVar[int] = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class RateLimitExceededError(AppError):
    """Raised when a caller has used up its request budget for the window."""

    status_code: ClassVar[int] = 429


class MailDeliveryAppError(AppError):
    """Raised when a transactional email could not be handed to the provider."""

    status_code: ClassVar[int] = 500


class SharedStoreUnavailableError(AppError):
    """Raised by the shared counter store when it cannot serve a command.

    Never surfaced over HTTP: the rate limiter catches it and degrades to the
    in-memory store.
    """

    status_code: ClassVar[int] = 503
