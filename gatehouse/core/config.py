"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Every protection mechanism is configured independently so endpoints can be
tuned (or switched off) one at a time. Disabling a mechanism is an explicit
bypass, never an error.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
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

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="json for machine-friendly logs, plain for local reading",
    )
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to receive and echo the correlation id",
    )

    model_config = SettingsConfigDict(env_prefix="LOG_", case_sensitive=False)


class DatabaseSettings(BaseSettings):
    """Durable storage for users and sessions."""

    url: str = Field("sqlite:///./gatehouse.db", description="SQLAlchemy database URL")
    echo: bool = Field(False, description="Log emitted SQL")
    busy_timeout_seconds: float = Field(
        30.0,
        description="How long a SQLite writer waits for the database lock",
    )

    model_config = SettingsConfigDict(env_prefix="DB_", case_sensitive=False)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(False, description="Enable debug mode with verbose logging")
    trust_address_override_header: bool = Field(
        True,
        description=(
            "Honour the address override header when resolving the caller. "
            "Meant for local testing; switch off when the header can reach "
            "the service from the internet."
        ),
    )
    address_override_header: str = Field(
        "X-Test-IP",
        description="Header that overrides the caller address when trusted",
    )

    model_config = SettingsConfigDict(env_prefix="APP_", case_sensitive=False)


class EndpointRateLimit(BaseModel):
    """Fixed-window limit for one endpoint.

    ``max_requests <= 0`` or ``window_ms <= 0`` behaves like ``enable=False``.
    """

    enable: bool = False
    max_requests: int = 10
    window_ms: int = 1000


class RateLimitSettings(BaseSettings):
    """Per-endpoint, per-address request rate limits."""

    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    register: EndpointRateLimit = Field(default_factory=EndpointRateLimit)
    login: EndpointRateLimit = Field(default_factory=EndpointRateLimit)
    logout: EndpointRateLimit = Field(default_factory=EndpointRateLimit)
    profile: EndpointRateLimit = Field(default_factory=EndpointRateLimit)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )


class EndpointBodySize(BaseModel):
    """Request body ceiling for one endpoint (normalised before use)."""

    enable: bool = True
    max_bytes: int = 4096


class BodySizeSettings(BaseSettings):
    """Per-endpoint request body limits."""

    register: EndpointBodySize = Field(default_factory=EndpointBodySize)
    login: EndpointBodySize = Field(default_factory=EndpointBodySize)

    model_config = SettingsConfigDict(
        env_prefix="BODY_SIZE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )


class AccountQuotaSettings(BaseSettings):
    """Persistent cap on accounts created from one address."""

    enable: bool = Field(False, description="Enforce the per-address account quota")
    max_accounts: int = Field(3, description="Accounts allowed per address")
    on_storage_error: Literal["error", "allow", "deny"] = Field(
        "error",
        description=(
            "What to do when the quota count cannot be read: surface an "
            "internal error, fail open, or fail closed"
        ),
    )

    model_config = SettingsConfigDict(env_prefix="ACCOUNT_QUOTA_", case_sensitive=False)


class PowSettings(BaseSettings):
    """Proof-of-work challenge configuration for account creation."""

    enable: bool = Field(False, description="Require proof of work on registration")
    difficulty: int = Field(
        20,
        ge=0,
        le=256,
        description="Required leading zero bits of SHA-256(challenge || nonce)",
    )
    ttl_seconds: int = Field(120, description="Challenge lifetime in seconds")
    secret_key: str = Field("", description="HMAC key used to sign challenge tokens")
    single_use: bool = Field(
        False,
        description="Reject a solved token the second time it is presented",
    )

    model_config = SettingsConfigDict(env_prefix="POW_", case_sensitive=False)


class AuthSettings(BaseSettings):
    """Session and password hashing settings."""

    session_cookie_name: str = Field("gatehouse_session", description="Session cookie name")
    session_ttl_hours: int = Field(24 * 30, description="Session lifetime in hours")
    bcrypt_rounds: int = Field(12, ge=4, le=31, description="bcrypt cost factor")

    model_config = SettingsConfigDict(env_prefix="AUTH_", case_sensitive=False)


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=LogSettings)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    body_size: BodySizeSettings = Field(default_factory=BodySizeSettings)
    account_quota: AccountQuotaSettings = Field(default_factory=AccountQuotaSettings)
    pow: PowSettings = Field(default_factory=PowSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings.
# The application factory accepts an explicit Settings object; this one is
# the default for the ASGI entrypoint and the admin CLI.
settings = Settings()
