"""Gatekeeper configuration.

Settings are grouped per concern (app, csrf, rate limit, cache, log), each
group reading its own env prefix. ``APP_ENV`` picks an optional dotenv file
at the project root (``.env.development``, ``.env.testing``,
``.env.staging`` or ``.env.production``) that is loaded into the process
environment before any group is built. Values in that file override
variables already exported.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_ENV = os.getenv("APP_ENV", "development")

PROJECT_ROOT = Path(__file__).resolve().parents[2]

KNOWN_ENVIRONMENTS = ("development", "testing", "staging", "production")


def env_file_for(app_env: str) -> Path | None:
    """Dotenv file for an environment, or None when it is absent.

    Unknown environment names fall back to the development file.
    """

    name = app_env if app_env in KNOWN_ENVIRONMENTS else "development"
    path = PROJECT_ROOT / f".env.{name}"
    return path if path.is_file() else None


# Nested BaseSettings ignore ``env_file``, so the file is pushed into
# os.environ once, up front.
_env_file = env_file_for(APP_ENV)
if _env_file is not None:
    load_dotenv(_env_file, override=True)


# ``default_factory`` builders: instantiating a group reads the environment
# at Settings() time rather than at import of the class.
def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_csrf_settings() -> "CsrfSettings":
    return CsrfSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_cache_settings() -> "CacheSettings":
    return CacheSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated list of API key entries in the form "
            "key:user_id:role (role defaults to 'user')"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class CsrfSettings(BaseSettings):
    """Anti-forgery token configuration."""

    enabled: bool = Field(
        True,
        description="Require CSRF tokens on state-changing requests",
    )
    token_bytes: int = Field(
        32,
        description="Random bytes per token (rendered as hex)",
        ge=32,
    )
    token_lifetime_seconds: int = Field(
        7200,
        description="Token lifetime in seconds",
        ge=1,
    )
    storage: str = Field(
        "cache",
        description="Token storage backend: cache or file",
    )
    file_path: str = Field(
        "uploads/csrf_tokens.json",
        description="Token file location when storage=file",
    )

    model_config = SettingsConfigDict(
        env_prefix="CSRF_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Request rate limiting configuration."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on guarded routes",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """Keyed cache backing the rate limiter and CSRF token store."""

    backend: str = Field(
        "memory",
        description="Cache backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL when backend=redis",
    )
    key_prefix: str = Field(
        "gatekeeper",
        description="Namespace prepended to every Redis key",
    )
    max_entries: int | None = Field(
        100_000,
        description="Maximum in-memory entries before LRU eviction (None for unlimited)",
    )
    protected_prefixes: list[str] = Field(
        default_factory=lambda: ["csrf:"],
        description="In-memory key prefixes never evicted by LRU pressure (JSON list)",
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """All configuration groups.

    Invalid values fail at import time, so a misconfigured deployment never
    starts serving.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    csrf: CsrfSettings = Field(default_factory=_build_csrf_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    cache: CacheSettings = Field(default_factory=_build_cache_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Process-wide settings; tests override attributes with monkeypatch.
settings = Settings()
