"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

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
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    ``points`` and ``duration`` are required and only come from the
    environment; type checkers would otherwise flag the missing arguments.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


class RateLimitSettings(BaseSettings):
    """Rate limiter configuration."""

    enabled: bool = Field(
        True,
        description="Install the rate limiter when the app is created",
    )
    points: int = Field(
        ...,
        description="Points a key may consume per window",
        ge=1,
    )
    duration: int = Field(
        ...,
        description="Window length in seconds",
        ge=1,
    )
    key_prefix: str = Field(
        "rate-limiter",
        description="Prefix for every store key, isolates limiters sharing a store",
    )
    store: Literal["memory", "redis"] = Field(
        "memory",
        description="Counter store backend",
    )
    headers: bool = Field(
        True,
        description="Emit X-RateLimit-* headers on processed requests",
    )
    header_limit: bool = Field(True, description="Emit X-RateLimit-Limit")
    header_remaining: bool = Field(True, description="Emit X-RateLimit-Remaining")
    header_reset: bool = Field(True, description="Emit X-RateLimit-Reset")
    header_retry_after: bool = Field(True, description="Emit Retry-After on denial")
    fail_on_store_error: Literal["open", "closed"] = Field(
        "open",
        description="Let requests through (open) or reject them (closed) when the store fails",
    )
    hook: Literal["middleware", "dependency"] = Field(
        "middleware",
        description="Lifecycle stage the limiter runs at",
    )
    exempt_paths: str = Field(
        "/health",
        description="Comma-separated URL paths that bypass rate limiting",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection parameters for the Redis counter store."""

    host: str | None = Field(
        None,
        description="Redis host (required when RATE_LIMIT_STORE=redis)",
    )
    port: int = Field(6379, description="Redis port")
    password: str | None = Field(None, description="Redis password")
    db: int = Field(0, description="Logical database index", ge=0)
    socket_timeout: float = Field(
        1.0,
        description="Seconds before a Redis call is treated as a store failure",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate file after this size (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on startup if required settings are missing,
    so a misconfigured limiter never accepts traffic.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, read from the environment on first use.

    Deferred so that importing the limiter as a library does not require
    RATE_LIMIT_* variables; the service fails fast when it first asks.
    """

    return Settings()
