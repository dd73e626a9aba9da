"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
# Values already present in the environment win over the file.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    public_base_url: str = Field(
        "http://localhost:3000",
        description="Public URL used to build links sent by email",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection parameters for the shared rate limit store."""

    enabled: bool = Field(
        True,
        description="Use Redis as the shared counter store (memory only when false)",
    )
    host: str = Field("localhost", description="Redis server host")
    port: int = Field(6379, description="Redis server port", ge=1, le=65535)
    password: str | None = Field(None, description="Optional Redis password")
    db: int = Field(0, description="Redis logical database", ge=0)
    max_retries: int = Field(
        3,
        description="Retries for transient connection errors before giving up",
        ge=0,
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Socket read/write and connect timeout",
        gt=0,
    )
    health_check_interval_seconds: float = Field(
        5.0,
        description="How often the client pings Redis to detect disconnects and reconnects",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-endpoint rate limit policies and limiter housekeeping."""

    key_prefix: str = Field(
        "ratelimit:",
        description="Namespace prepended to identifiers in the shared store",
    )
    sweep_interval_seconds: float = Field(
        300.0,
        description="Interval of the expired-entry sweep for the in-memory store",
        gt=0,
    )

    forgot_password_max_requests: int = Field(3, ge=1)
    forgot_password_window_seconds: int = Field(3600, ge=1)

    resend_verification_max_requests: int = Field(3, ge=1)
    resend_verification_window_seconds: int = Field(3600, ge=1)

    client_log_max_requests: int = Field(100, ge=1)
    client_log_window_seconds: int = Field(60, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class MailSettings(BaseSettings):
    """Transactional mail configuration."""

    provider: str = Field(
        "log",
        description="Mail provider name (log writes deliveries to the application log)",
    )
    from_address: str = Field(
        "no-reply@localhost",
        description="Sender address for transactional emails",
    )

    model_config = SettingsConfigDict(
        env_prefix="MAIL_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    mail: MailSettings = Field(default_factory=MailSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
