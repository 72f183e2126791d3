"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Components never read the global ``settings`` object themselves; the app
factory resolves values here and passes them in explicitly.
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


# Nested BaseSettings don't inherit env_file, so populate os.environ first.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) populates values from environment variables.
    Static type checkers treat fields as constructor arguments, which is not
    how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_cors_settings() -> "CorsSettings":
    return CorsSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable verbose diagnostics (stack traces in error bodies)",
    )
    auth_required: bool = Field(
        True,
        description="Whether requests must carry an Authorization header",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated list of accepted bearer tokens. When unset, any "
            "non-empty token is accepted and a principal is derived from it"
        ),
    )
    public_paths: str = Field(
        "/health,/docs,/redoc,/openapi.json",
        description="Comma-separated paths that bypass auth and rate limiting",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable sliding-window rate limiting per client address",
    )
    rate_limit_capacity: int = Field(
        100,
        description="Maximum admitted requests per client within the window",
    )
    rate_limit_window_ms: int = Field(
        60000,
        description="Sliding window length in milliseconds",
    )
    rate_limit_sweep_interval_ms: int = Field(
        60000,
        description="Minimum interval between idle-key sweeps (0 disables)",
        ge=0,
    )
    rate_limit_lock_shards: int = Field(
        64,
        description="Number of lock shards guarding per-key rate limit state",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    slow_request_ms: int = Field(
        1000,
        description="Requests slower than this are logged as warnings",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class CorsSettings(BaseSettings):
    """Cross-origin response headers."""

    allow_origin: str = Field("*")
    allow_methods: str = Field("GET, POST, PUT, DELETE, PATCH, OPTIONS")
    allow_headers: str = Field(
        "Origin, X-Requested-With, Content-Type, Accept, Authorization"
    )

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    cors: CorsSettings = Field(default_factory=_build_cors_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
