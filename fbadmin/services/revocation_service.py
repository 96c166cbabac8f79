"""Refresh-token revocation through the Identity Toolkit API."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog

from fbadmin.client import GoogleAPIClient
from fbadmin.exceptions import RemoteServiceError

logger = structlog.get_logger(__name__)


class RevocationService:
    """Invalidate every refresh token issued to a user before now."""

    def __init__(
        self,
        project_id: str,
        client: GoogleAPIClient,
        access_token: Callable[[], Awaitable[str]],
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        now: Callable[[], float] | None = None,
    ) -> None:
        self._client = client
        self._access_token = access_token
        self._update_url = f"{base_url.rstrip('/')}/projects/{project_id}/accounts:update"
        self._now = now or time.time

    async def revoke_refresh_tokens(self, uid: str) -> None:
        """Set the user's ``validSince`` to the current time."""
        if not uid:
            raise ValueError("uid must be a non-empty string.")
        access_token = await self._access_token()
        payload = {"localId": uid, "validSince": int(self._now())}
        try:
            await self._client.update_account(self._update_url, payload, access_token)
        except RemoteServiceError as exc:
            logger.error(
                "refresh_token_revocation_failed",
                uid=uid,
                status_code=exc.status_code,
                reason=exc.detail,
            )
            raise
        logger.info("refresh_tokens_revoked", uid=uid)
