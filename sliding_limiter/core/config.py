"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    Pydantic Settings (v2) populates values from environment variables.
    Static type checkers still treat fields as constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    """Build Redis connection settings from environment."""

    return RedisSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class RateLimitSettings(BaseSettings):
    """Sliding-window admission control configuration.

    Values are validated once at startup; the limiter built from them is
    immutable for the lifetime of the process.
    """

    enabled: bool = Field(
        True,
        description="Enable admission control on rate-limited routes",
    )
    time_window: float = Field(
        5,
        description="Width of the sliding window in seconds",
        ge=0.001,
        allow_inf_nan=False,
    )
    max_requests: int = Field(
        10,
        description="Requests admitted per window per client key",
        gt=0,
    )
    identifier: Literal["address", "forwarded", "header", "header_or_address"] = Field(
        "address",
        description="How client keys are derived from requests",
    )
    identifier_header: str = Field(
        "X-API-Key",
        description="Header read by the header-based identifier strategies",
    )
    deny_undefined_identifier: bool = Field(
        True,
        description="Reject requests whose client key cannot be resolved (403)",
    )
    enable_logging: bool = Field(
        False,
        description="Report denied requests to the denial observer",
    )
    denial_sink: Literal["logger", "stdout"] = Field(
        "logger",
        description="Where denial reports go: the logging pipeline (hashed key) or stdout",
    )
    failure_policy: Literal["closed", "open", "propagate"] = Field(
        "closed",
        description="Decision taken when the window store is unavailable",
    )
    consistency: Literal["strict", "racy"] = Field(
        "strict",
        description="Whether the count read joins the atomic evict+record unit",
    )
    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Window store backend",
    )
    key_prefix: str = Field(
        "rate",
        description="Namespace prepended to every store key",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the Redis window store."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        1.0,
        description="Per-command socket timeout; expiry counts as store unavailable",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        0,
        description="Rotate the log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(3, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
