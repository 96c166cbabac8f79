"""Service-account credentials and OAuth2 access-token acquisition."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from jose import jwt
from jose.exceptions import JOSEError

from fbadmin.client import GoogleAPIClient
from fbadmin.exceptions import CredentialsError

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/firebase.messaging",
    "https://www.googleapis.com/auth/identitytoolkit",
)
ASSERTION_LIFETIME_SECONDS = 3600
EXPIRY_MARGIN_SECONDS = 60

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ServiceAccountCredentials:
    """Fields of a Google service-account key needed to mint access tokens."""

    project_id: str
    client_email: str
    private_key: str
    private_key_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI

    @classmethod
    def from_info(cls, info: Mapping[str, Any]) -> ServiceAccountCredentials:
        """Build credentials from a parsed service-account JSON document."""
        account_type = info.get("type", "service_account")
        if account_type != "service_account":
            raise CredentialsError(f"Unsupported credential type: {account_type}.")
        missing = [
            name
            for name in ("project_id", "client_email", "private_key")
            if not isinstance(info.get(name), str) or not info.get(name)
        ]
        if missing:
            raise CredentialsError(f"Service account is missing fields: {', '.join(missing)}.")
        private_key_id = info.get("private_key_id")
        return cls(
            project_id=str(info["project_id"]),
            client_email=str(info["client_email"]),
            private_key=str(info["private_key"]),
            private_key_id=str(private_key_id) if private_key_id else None,
            token_uri=str(info.get("token_uri") or DEFAULT_TOKEN_URI),
        )

    @classmethod
    def from_json(cls, raw: str) -> ServiceAccountCredentials:
        """Build credentials from a service-account JSON string."""
        try:
            info = json.loads(raw)
        except ValueError as exc:
            raise CredentialsError("Service account JSON is invalid.") from exc
        if not isinstance(info, dict):
            raise CredentialsError("Service account JSON must be an object.")
        return cls.from_info(info)

    @classmethod
    def from_file(cls, path: str | Path) -> ServiceAccountCredentials:
        """Load credentials from a service-account JSON file."""
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise CredentialsError(f"Unable to read service account file: {path}.") from exc
        return cls.from_json(raw)


class AccessTokenProvider:
    """Mint and cache OAuth2 access tokens using the JWT-bearer grant."""

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        client: GoogleAPIClient,
        scopes: tuple[str, ...] = DEFAULT_SCOPES,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._credentials = credentials
        self._client = client
        self._scopes = scopes
        self._now = now or time.time
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_access_token(self) -> str:
        """Return a cached access token, exchanging a new assertion when near expiry."""
        if self._access_token is not None and self._now() < self._expires_at:
            return self._access_token

        async with self._lock:
            if self._access_token is not None and self._now() < self._expires_at:
                return self._access_token
            issued_at = self._now()
            response = await self._client.exchange_assertion(
                self._credentials.token_uri, self._build_assertion(int(issued_at))
            )
            self._access_token = response["access_token"]
            self._expires_at = issued_at + response["expires_in"] - EXPIRY_MARGIN_SECONDS
            logger.info("access_token_refreshed", expires_in=response["expires_in"])
            return self._access_token

    def _build_assertion(self, issued_at: int) -> str:
        """Sign the JWT-bearer assertion with the service-account key."""
        claims = {
            "iss": self._credentials.client_email,
            "scope": " ".join(self._scopes),
            "aud": self._credentials.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        headers = (
            {"kid": self._credentials.private_key_id}
            if self._credentials.private_key_id
            else None
        )
        try:
            return jwt.encode(
                claims, self._credentials.private_key, algorithm="RS256", headers=headers
            )
        except JOSEError as exc:
            raise CredentialsError("Unable to sign service account assertion.") from exc
