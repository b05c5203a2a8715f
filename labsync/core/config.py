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


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()


def _build_api_settings() -> "ApiSettings":
    """Build API settings from environment."""

    return ApiSettings()


class LogSettings(BaseSettings):
    """Logging configuration.

    ``format`` left unset means JSON in production and plain text elsewhere.
    """

    level: str = Field("INFO", description="Root log level")
    format: str | None = Field(
        None,
        description="Log format: 'json' or 'plain' (default depends on APP_ENV)",
    )
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int | None = Field(
        10 * 1024 * 1024,
        description="Rotate log file after this many bytes (None disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the per-request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ApiSettings(BaseSettings):
    """API gateway configuration: auth, rate limits, CORS and request limits."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is enforced on protected routes",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated API keys. Each entry is 'key' or 'key:principal_id'; "
            "the principal id drives per-user rate limiting."
        ),
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-identifier rate limiting",
    )
    rate_limit_read_requests: int = Field(
        60,
        description="Maximum GET/HEAD requests per window",
        ge=1,
    )
    rate_limit_write_requests: int = Field(
        30,
        description="Maximum POST/PUT/PATCH requests per window",
        ge=1,
    )
    rate_limit_delete_requests: int = Field(
        5,
        description="Maximum DELETE requests per window",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on responses",
    )
    rate_limit_sweep_interval_seconds: int = Field(
        60,
        description="How often expired rate limit entries are purged",
        ge=1,
    )

    max_request_size_mb: int = Field(
        10,
        description="Maximum accepted request body size in megabytes",
        ge=1,
    )
    cors_origins: str = Field(
        "*",
        description="Comma-separated list of allowed CORS origins ('*' for any)",
    )
    cors_methods: str = Field(
        "GET,POST,PUT,PATCH,DELETE,OPTIONS",
        description="Comma-separated list of methods announced on CORS preflight",
    )
    vendor_media_name: str = Field(
        "labsync",
        description="Vendor name used in versioned media types (application/vnd.<name>.vN+json)",
    )
    response_cache_ttl_seconds: int = Field(
        60,
        description="TTL for cached list responses",
        ge=1,
    )
    response_cache_max_entries: int = Field(
        512,
        description="Maximum number of cached list responses",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (verbose errors, plain logs)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (generic errors, JSON logs)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    api: ApiSettings = Field(default_factory=_build_api_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
