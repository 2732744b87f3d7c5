"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app and the scheduled token
refresh worker share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class _GroupSettings(BaseSettings):
    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class SchwabSettings(_GroupSettings):
    """Credentials and endpoints for the Schwab developer API."""

    app_key: str = Field(..., validation_alias="SCHWAB_APP_KEY")
    app_secret: str = Field(..., validation_alias="SCHWAB_APP_SECRET", repr=False)
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="SCHWAB_REDIRECT_URI",
        description="Callback URL registered with Schwab. Derived from the request when omitted.",
    )
    authorization_endpoint: str = Field(
        "https://api.schwabapi.com/v1/oauth/authorize",
        validation_alias="SCHWAB_AUTHORIZATION_ENDPOINT",
    )
    token_endpoint: str = Field(
        "https://api.schwabapi.com/v1/oauth/token",
        validation_alias="SCHWAB_TOKEN_ENDPOINT",
    )
    marketdata_base_url: str = Field(
        "https://api.schwabapi.com/marketdata/v1",
        validation_alias="SCHWAB_MARKETDATA_BASE_URL",
    )


class RefreshSettings(_GroupSettings):
    """Tuning for the shared refresh lock and upstream timeouts."""

    lock_ttl_seconds: int = Field(60, validation_alias="REFRESH_LOCK_TTL", gt=0)
    lock_wait_seconds: float = Field(2.0, validation_alias="REFRESH_LOCK_WAIT", ge=0)
    lock_poll_interval_seconds: float = Field(
        2.0,
        validation_alias="REFRESH_LOCK_POLL",
        gt=0,
        description="Interval between store reads while another worker holds the lock.",
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT_SECONDS", gt=0)
    schedule_interval_seconds: float = Field(
        1500.0,
        validation_alias="SCHEDULE_INTERVAL_SECONDS",
        gt=0,
        description="Cadence of the local proactive refresh worker.",
    )


class StoreSettings(_GroupSettings):
    """Selects and configures the credential store backend."""

    backend: Literal["memory", "sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="CREDENTIAL_STORE_BACKEND"
    )
    sqlite_path: str = Field("data/credentials.db", validation_alias="CREDENTIAL_STORE_PATH")
    key_prefix: str = Field(
        "schwab#",
        validation_alias="CREDENTIAL_KEY_PREFIX",
        description="Namespace applied to every key in shared backends.",
    )


class AWSSettings(_GroupSettings):
    """Settings for AWS services used by the platform."""

    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")
    dynamodb_table_name: Optional[str] = Field(None, validation_alias="DYNAMODB_TABLE_NAME")


class SecuritySettings(_GroupSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        repr=False,
        description="Enables encryption of stored tokens when provided.",
    )
    oauth_state_ttl_seconds: int = Field(300, validation_alias="OAUTH_STATE_TTL", gt=0)


class AppSettings(_GroupSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    cors_allow_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        ("*",), validation_alias="CORS_ALLOW_ORIGINS"
    )
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back after authorization.",
    )
    schwab: SchwabSettings = Field(default_factory=SchwabSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        """Support providing origins as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(origin.strip() for origin in value.split(",") if origin.strip())

    def redaction_secrets(self) -> tuple[str, ...]:
        """Configured secrets that must never appear in log output."""
        candidates = (self.schwab.app_secret, self.security.token_encryption_secret)
        return tuple(secret for secret in candidates if secret)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "AWSSettings",
    "RefreshSettings",
    "SchwabSettings",
    "SecuritySettings",
    "StoreSettings",
    "get_settings",
]
