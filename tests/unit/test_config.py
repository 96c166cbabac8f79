"""Unit tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fbadmin.config import GOOGLE_CERTS_URL, KeyCacheSettings, Settings


def test_defaults_match_documented_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Defaults give a one-hour TTL, 10s checks, 500 targets and 10 workers."""
    monkeypatch.delenv("FIREBASE__PROJECT_ID", raising=False)
    settings = Settings(_env_file=None)

    assert settings.key_cache.ttl_seconds == 3600
    assert settings.key_cache.refresh_check_interval_seconds == 10.0
    assert settings.key_cache.certs_url == GOOGLE_CERTS_URL
    assert settings.key_cache.database_url.startswith("sqlite+aiosqlite:///")
    assert settings.messaging.max_multicast_size == 500
    assert settings.messaging.max_concurrent_requests == 10
    assert settings.firebase.project_id is None


def test_nested_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Nested sections are configured with double-underscore variables."""
    monkeypatch.setenv("FIREBASE__PROJECT_ID", "demo-project")
    monkeypatch.setenv("KEY_CACHE__TTL_SECONDS", "60")
    monkeypatch.setenv("MESSAGING__FCM_BASE_URL", "https://fcm.local/v1/")

    settings = Settings(_env_file=None)

    assert settings.firebase.project_id == "demo-project"
    assert settings.key_cache.ttl_seconds == 60
    assert settings.messaging.fcm_base_url == "https://fcm.local/v1"


def test_database_url_requires_aiosqlite_driver() -> None:
    """Only the aiosqlite driver is accepted for the key cache."""
    with pytest.raises(ValidationError):
        KeyCacheSettings(database_url="postgresql+asyncpg://localhost/keys")


def test_rejects_two_credential_sources(monkeypatch: pytest.MonkeyPatch) -> None:
    """A credential file and inline JSON cannot both be configured."""
    monkeypatch.setenv("FIREBASE__CREDENTIALS_PATH", "/tmp/service-account.json")
    monkeypatch.setenv("FIREBASE__CREDENTIALS_JSON", "{}")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
