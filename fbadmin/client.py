"""Async HTTP client for the Google endpoints used by fbadmin."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx
import structlog

from fbadmin.exceptions import (
    KeyFetchError,
    RemoteServiceError,
    ServiceResponseError,
    ServiceUnavailableError,
)
from fbadmin.types import AccessTokenResponse, KeySet

DEFAULT_TIMEOUT = httpx.Timeout(connect=5.0, read=10.0, write=10.0, pool=5.0)
TRANSIENT_STATUS_CODES = frozenset({408, 429})
MAX_BACKOFF_SECONDS = 30.0

logger = structlog.get_logger(__name__)


class GoogleAPIClient:
    """Async client for certificate fetches, FCM sends and Identity Toolkit calls."""

    def __init__(
        self,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
        retry_backoff_seconds: float = 1.0,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)
        self._retry_backoff_seconds = retry_backoff_seconds

    async def fetch_public_keys(self, url: str, max_retries: int = 10) -> KeySet:
        """Fetch the kid -> PEM certificate mapping, retrying transient failures."""
        attempt = 0
        while True:
            try:
                response = await self._request("GET", url)
                break
            except ServiceUnavailableError as exc:
                if attempt >= max_retries:
                    raise KeyFetchError(
                        f"Public key fetch failed after {attempt + 1} attempts: {exc.detail}"
                    ) from exc
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "public_key_fetch_retry",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 3),
                    status_code=exc.status_code,
                )
                attempt += 1
                await asyncio.sleep(delay)
            except RemoteServiceError as exc:
                raise KeyFetchError(f"Public key fetch failed: {exc.detail}") from exc

        try:
            payload = self._json_object(response)
        except ServiceResponseError as exc:
            raise KeyFetchError(exc.detail) from exc

        keys: KeySet = {}
        for kid, certificate in payload.items():
            if not isinstance(certificate, str) or not certificate.strip():
                raise KeyFetchError("Invalid public key entry in certificate payload.")
            keys[str(kid)] = certificate
        return keys

    async def send_message(self, url: str, payload: dict[str, Any], access_token: str) -> str:
        """POST one FCM message and return the provider message id."""
        response = await self._request(
            "POST", url, json=payload, headers=self._bearer(access_token)
        )
        body = self._json_object(response)
        name = body.get("name")
        if not isinstance(name, str) or not name:
            raise ServiceResponseError(
                "FCM response did not include a message name.", response.status_code, body
            )
        return name

    async def update_account(
        self, url: str, payload: dict[str, Any], access_token: str
    ) -> dict[str, Any]:
        """POST an Identity Toolkit ``accounts:update`` request."""
        response = await self._request(
            "POST", url, json=payload, headers=self._bearer(access_token)
        )
        return self._json_object(response)

    async def exchange_assertion(self, token_uri: str, assertion: str) -> AccessTokenResponse:
        """Exchange a signed JWT-bearer assertion for an OAuth2 access token."""
        response = await self._request(
            "POST",
            token_uri,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": assertion,
            },
        )
        body = self._json_object(response)
        access_token = body.get("access_token")
        expires_in = body.get("expires_in", 3600)
        if not isinstance(access_token, str) or not isinstance(expires_in, int):
            raise ServiceResponseError(
                "Invalid OAuth2 token response payload.", response.status_code
            )
        return {
            "access_token": access_token,
            "expires_in": expires_in,
            "token_type": str(body.get("token_type", "Bearer")),
        }

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GoogleAPIClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Execute request and normalize upstream failures."""
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise ServiceUnavailableError(f"Request to {url} failed: {exc}") from exc

        if response.is_success:
            return response

        message, details = self._provider_error(response)
        if response.status_code >= 500 or response.status_code in TRANSIENT_STATUS_CODES:
            raise ServiceUnavailableError(message, response.status_code, details)
        raise ServiceResponseError(message, response.status_code, details)

    def _backoff_delay(self, attempt: int) -> float:
        """Capped exponential backoff with 10% jitter."""
        delay = min(self._retry_backoff_seconds * (2**attempt), MAX_BACKOFF_SECONDS)
        return max(0.0, delay + random.uniform(-delay * 0.1, delay * 0.1))

    @staticmethod
    def _bearer(access_token: str) -> dict[str, str]:
        """Build the bearer authorization header."""
        return {"authorization": f"Bearer {access_token}"}

    @staticmethod
    def _provider_error(response: httpx.Response) -> tuple[str, Any]:
        """Extract ``error.message`` and ``error.details`` from a Google error body."""
        fallback = f"Request failed with status {response.status_code}."
        try:
            body = response.json()
        except ValueError:
            return fallback, None
        if not isinstance(body, dict):
            return fallback, body
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            return (str(message) if message else fallback), error.get("details")
        if isinstance(error, str) and error:
            return error, body.get("error_description")
        return fallback, body

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceResponseError(
                "Google API returned invalid JSON.", response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise ServiceResponseError(
                "Google API returned invalid JSON object.", response.status_code
            )
        return payload
