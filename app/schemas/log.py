"""Pydantic schemas for client-side log ingestion."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ClientLogRequest(BaseModel):
    """A log event reported by the browser."""

    level: Literal["error", "warn", "info", "debug"]
    context: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=5000)
    data: dict[str, Any] | None = None
    user_id: str | None = Field(default=None, alias="userId")
    session_id: str | None = Field(default=None, alias="sessionId")

    model_config = {"populate_by_name": True}


class ClientLogResponse(BaseModel):
    success: bool
    logged: bool
