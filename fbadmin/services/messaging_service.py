"""FCM single-target send and multicast orchestration."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from fbadmin.client import GoogleAPIClient
from fbadmin.core.dispatch import BatchResponse, MulticastDispatcher
from fbadmin.exceptions import CredentialsError, DispatchError, RemoteServiceError
from fbadmin.schemas.message import Message, MulticastMessage

logger = structlog.get_logger(__name__)

AccessTokenSource = Callable[[], Awaitable[str]]


class MessagingService:
    """Send FCM messages for one Firebase project."""

    def __init__(
        self,
        project_id: str,
        client: GoogleAPIClient,
        access_token: AccessTokenSource,
        fcm_base_url: str = "https://fcm.googleapis.com/v1",
        max_multicast_size: int = 500,
        max_concurrent_requests: int = 10,
        request_timeout_seconds: float = 30.0,
    ) -> None:
        self._client = client
        self._access_token = access_token
        self._send_url = f"{fcm_base_url.rstrip('/')}/projects/{project_id}/messages:send"
        self._dispatcher = MulticastDispatcher(
            send=self.send,
            max_targets=max_multicast_size,
            concurrency=max_concurrent_requests,
            per_item_timeout=request_timeout_seconds,
        )

    async def send(self, message: Message) -> str:
        """Send one message and return the FCM message name."""
        access_token = await self._access_token()
        return await self._post(message, access_token)

    async def send_multicast(self, message: MulticastMessage) -> BatchResponse:
        """Send ``message`` to each of its tokens and aggregate the outcomes."""
        self._dispatcher.validate_targets(message.tokens)
        try:
            access_token = await self._access_token()
        except (CredentialsError, RemoteServiceError) as exc:
            logger.error("multicast_unavailable", reason=exc.detail)
            raise DispatchError("Unable to obtain an FCM access token.", "unavailable") from exc

        async def send_with_token(target: Message) -> str:
            return await self._post(target, access_token)

        return await self._dispatcher.send_multicast(
            message, message.tokens, send=send_with_token
        )

    async def _post(self, message: Message, access_token: str) -> str:
        """POST one message, logging provider failures before re-raising."""
        try:
            return await self._client.send_message(
                self._send_url, message.to_payload(), access_token
            )
        except RemoteServiceError as exc:
            logger.error(
                "fcm_send_failed",
                status_code=exc.status_code,
                reason=exc.detail,
                details=exc.details,
            )
            raise
