"""Pydantic schemas for the password reset and verification endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class _EmailRequest(BaseModel):
    model_config = {"populate_by_name": True}

    email: str = Field(..., min_length=3, max_length=254, description="Account email address.")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value


class ForgotPasswordRequest(_EmailRequest):
    """Request body for ``POST /api/auth/forgot-password``."""

    redirect_to: str = Field(
        ...,
        alias="redirectTo",
        min_length=1,
        description="Page the user lands on after resetting the password.",
    )


class ResendVerificationRequest(_EmailRequest):
    """Request body for ``POST /api/auth/resend-verification``."""


class AuthMailResponse(BaseModel):
    success: bool
    message: str
