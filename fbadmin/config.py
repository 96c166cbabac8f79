"""Library settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "fbadmin"}


def _require_http_url(value: str, field_name: str) -> str:
    """Ensure an endpoint setting is an absolute HTTP(S) URL without trailing slash."""
    if not value.startswith(("https://", "http://")):
        raise ValueError(f"{field_name} must start with 'https://' or 'http://'.")
    return value.rstrip("/")


class AppSettings(BaseModel):
    """Runtime identity and log level."""

    environment: Literal["development", "staging", "production"] = "development"
    service: str = "fbadmin"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class FirebaseSettings(BaseModel):
    """Firebase project and service-account credential source."""

    project_id: str | None = None
    credentials_path: Path | None = None
    credentials_json: SecretStr | None = None

    @model_validator(mode="after")
    def validate_single_credential_source(self) -> FirebaseSettings:
        """Reject configurations that name two credential sources."""
        if self.credentials_path is not None and self.credentials_json is not None:
            raise ValueError(
                "Set only one of firebase.credentials_path and firebase.credentials_json."
            )
        return self


class KeyCacheSettings(BaseModel):
    """Public-key cache storage and refresh policy."""

    database_url: str = "sqlite+aiosqlite:///priv/cache/firebase_public_keys.db"
    certs_url: str = GOOGLE_CERTS_URL
    ttl_seconds: int = Field(default=3600, ge=1)
    refresh_check_interval_seconds: float = Field(default=10.0, gt=0)
    refresh_wait_seconds: float = Field(default=5.0, ge=0)
    min_refresh_interval_seconds: float = Field(default=10.0, ge=0)
    max_fetch_retries: int = Field(default=10, ge=0)

    @field_validator("database_url")
    @classmethod
    def validate_aiosqlite_url(cls, value: str) -> str:
        """Ensure SQLAlchemy uses the aiosqlite driver."""
        if not value.startswith("sqlite+aiosqlite://"):
            raise ValueError("key_cache.database_url must start with 'sqlite+aiosqlite://'.")
        return value

    @field_validator("certs_url")
    @classmethod
    def validate_certs_url(cls, value: str) -> str:
        """Ensure the certificate endpoint is an HTTP(S) URL."""
        return _require_http_url(value, "key_cache.certs_url")


class MessagingSettings(BaseModel):
    """FCM endpoint and multicast limits."""

    fcm_base_url: str = "https://fcm.googleapis.com/v1"
    max_concurrent_requests: int = Field(default=10, ge=1)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_multicast_size: int = Field(default=500, ge=1)

    @field_validator("fcm_base_url")
    @classmethod
    def validate_fcm_base_url(cls, value: str) -> str:
        """Ensure the FCM endpoint is an HTTP(S) URL."""
        return _require_http_url(value, "messaging.fcm_base_url")


class IdentityToolkitSettings(BaseModel):
    """Identity Toolkit endpoint used for refresh-token revocation."""

    base_url: str = "https://identitytoolkit.googleapis.com/v1"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Ensure the Identity Toolkit endpoint is an HTTP(S) URL."""
        return _require_http_url(value, "identity_toolkit.base_url")


class Settings(BaseSettings):
    """Root settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = AppSettings()
    firebase: FirebaseSettings = FirebaseSettings()
    key_cache: KeyCacheSettings = KeyCacheSettings()
    messaging: MessagingSettings = MessagingSettings()
    identity_toolkit: IdentityToolkitSettings = IdentityToolkitSettings()


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache settings from environment variables."""
    return Settings()
