"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Rate limit values are read from unprefixed variables (``MAX_REQUESTS``,
``WINDOW_SECONDS_IP``...) and resolved per dimension, falling back to the
shared value when the dimension-specific one is absent.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratewall.core.errors import ConfigurationError
from ratewall.services.sliding_window import LimiterConfig


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
    load_dotenv(_env_file, override=False)


DIMENSIONS = ("ip", "token")


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(
        "DEBUG",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        3,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """HTTP server binding used by ``ratewall.main.run``."""

    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(8080, description="Port to listen on", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Ordered counter store configuration.

    ``store_backend`` picks the implementation; validation of the value
    happens in the store factory.
    """

    store_backend: str = Field(
        "redis",
        description="Counter store backend: redis or memory",
    )
    redis_url: str = Field(
        "redis://redis:6379/0",
        description="Redis connection URL",
    )
    redis_connect_timeout_seconds: float = Field(
        5.0,
        description="Timeout for establishing the Redis connection",
        gt=0,
    )
    redis_socket_timeout_seconds: float = Field(
        5.0,
        description="Timeout for individual Redis commands",
        gt=0,
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    All durations are whole seconds. Per-dimension values (``*_IP``,
    ``*_TOKEN``) override the shared ones.
    """

    rate_limit_enabled: bool = Field(
        True,
        description="Enable the rate limiting middleware",
    )
    rate_limit_token_header: str = Field(
        "API_KEY",
        description="Request header carrying the API token",
    )
    rate_limit_exempt_paths: str = Field(
        "/health",
        description="Comma-separated paths that bypass rate limiting",
    )

    max_requests: int | None = Field(None, ge=1)
    max_requests_ip: int | None = Field(None, ge=1)
    max_requests_token: int | None = Field(None, ge=1)
    window_seconds: int | None = Field(None, ge=1)
    window_seconds_ip: int | None = Field(None, ge=1)
    window_seconds_token: int | None = Field(None, ge=1)
    block_seconds: int | None = Field(None, ge=1)
    block_seconds_ip: int | None = Field(None, ge=1)
    block_seconds_token: int | None = Field(None, ge=1)

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
    )

    @property
    def exempt_paths(self) -> frozenset[str]:
        return frozenset(
            path.strip() for path in self.rate_limit_exempt_paths.split(",") if path.strip()
        )

    def _resolve(self, name: str, dimension: str) -> int:
        value = getattr(self, f"{name}_{dimension}")
        if value is None:
            value = getattr(self, name)
        if value is None:
            specific = f"{name}_{dimension}".upper()
            raise ConfigurationError(
                code="missing_rate_limit_setting",
                message=f"{specific} or {name.upper()} must be set and must be an integer",
                details={"variable": specific},
            )
        return value

    def limiter_config(self, dimension: str) -> LimiterConfig:
        """Resolve the limiter configuration for one identity dimension.

        Args:
            dimension: Either ``"ip"`` or ``"token"``.

        Returns:
            LimiterConfig with durations converted to milliseconds.

        Raises:
            ConfigurationError: If a required value is missing.
            ValueError: If ``dimension`` is unknown.
        """

        if dimension not in DIMENSIONS:
            raise ValueError(f"unknown rate limit dimension: {dimension!r}")

        return LimiterConfig.from_seconds(
            capacity=self._resolve("max_requests", dimension),
            window_seconds=self._resolve("window_seconds", dimension),
            block_seconds=self._resolve("block_seconds", dimension),
        )


def _build_log_settings() -> LogSettings:
    return LogSettings()


def _build_server_settings() -> ServerSettings:
    return ServerSettings()


def _build_store_settings() -> StoreSettings:
    return StoreSettings()


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    server: ServerSettings = Field(default_factory=_build_server_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def load_settings() -> Settings:
    """Read settings from the environment.

    Returns:
        Settings: Fresh settings instance.

    Raises:
        ConfigurationError: If any value fails validation (non-numeric,
            non-positive, out of range).
    """

    try:
        # Build sections explicitly so validation errors keep their field names
        return Settings(
            log=LogSettings(),
            server=ServerSettings(),
            store=StoreSettings(),
            rate_limit=RateLimitSettings(),
        )
    except ValidationError as exc:
        fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        raise ConfigurationError(
            code="invalid_configuration",
            message=f"invalid configuration values: {', '.join(fields)}",
            details={"context": {"fields": fields}},
        ) from exc
