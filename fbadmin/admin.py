"""Facade wiring the key cache, verifier and messaging services from settings."""

from __future__ import annotations

from functools import lru_cache, partial
from typing import Any

from fbadmin.client import GoogleAPIClient
from fbadmin.config import Settings, get_settings
from fbadmin.core.dispatch import BatchResponse
from fbadmin.core.keystore import KeyStore, SQLKeyStore
from fbadmin.core.refresher import KeyRefresher
from fbadmin.core.verifier import TokenVerifier
from fbadmin.credentials import AccessTokenProvider, ServiceAccountCredentials
from fbadmin.exceptions import CredentialsError
from fbadmin.schemas.message import Message, MulticastMessage
from fbadmin.services.messaging_service import MessagingService
from fbadmin.services.revocation_service import RevocationService
from fbadmin.types import FirebaseClaims


def load_credentials(settings: Settings) -> ServiceAccountCredentials | None:
    """Load service-account credentials from the configured source, if any."""
    if settings.firebase.credentials_json is not None:
        return ServiceAccountCredentials.from_json(
            settings.firebase.credentials_json.get_secret_value()
        )
    if settings.firebase.credentials_path is not None:
        return ServiceAccountCredentials.from_file(settings.firebase.credentials_path)
    return None


class FirebaseAdmin:
    """Entry point for ID-token verification, FCM sends and token revocation."""

    def __init__(
        self,
        project_id: str,
        client: GoogleAPIClient,
        store: KeyStore,
        refresher: KeyRefresher,
        credentials: ServiceAccountCredentials | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or Settings()
        self.project_id = project_id
        self._client = client
        self._store = store
        self._refresher = refresher
        self._token_provider = (
            AccessTokenProvider(credentials=credentials, client=client)
            if credentials is not None
            else None
        )
        self.verifier = TokenVerifier(project_id=project_id, store=store, refresher=refresher)
        self.messaging = MessagingService(
            project_id=project_id,
            client=client,
            access_token=self._get_access_token,
            fcm_base_url=settings.messaging.fcm_base_url,
            max_multicast_size=settings.messaging.max_multicast_size,
            max_concurrent_requests=settings.messaging.max_concurrent_requests,
            request_timeout_seconds=settings.messaging.request_timeout_seconds,
        )
        self.revocation = RevocationService(
            project_id=project_id,
            client=client,
            access_token=self._get_access_token,
            base_url=settings.identity_toolkit.base_url,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: GoogleAPIClient | None = None,
        store: KeyStore | None = None,
    ) -> FirebaseAdmin:
        """Build every collaborator from ``settings``."""
        credentials = load_credentials(settings)
        project_id = settings.firebase.project_id or (
            credentials.project_id if credentials is not None else None
        )
        if not project_id:
            raise CredentialsError(
                "A Firebase project id must be configured or present in the credentials."
            )
        client = client or GoogleAPIClient()
        store = store or SQLKeyStore.from_url(settings.key_cache.database_url)
        refresher = KeyRefresher(
            store=store,
            fetch_keys=partial(
                client.fetch_public_keys,
                settings.key_cache.certs_url,
                max_retries=settings.key_cache.max_fetch_retries,
            ),
            ttl_seconds=settings.key_cache.ttl_seconds,
            check_interval_seconds=settings.key_cache.refresh_check_interval_seconds,
            max_wait_seconds=settings.key_cache.refresh_wait_seconds,
            min_refresh_interval_seconds=settings.key_cache.min_refresh_interval_seconds,
        )
        return cls(
            project_id=project_id,
            client=client,
            store=store,
            refresher=refresher,
            credentials=credentials,
            settings=settings,
        )

    async def verify_token(self, token: str) -> FirebaseClaims:
        """Verify a Firebase ID token and return its claims."""
        return await self.verifier.verify(token)

    async def refresh_keys(self) -> bool:
        """Force a public-key refresh, waiting a bounded time for it."""
        await self._store.ensure_initialized()
        return await self._refresher.refresh_now()

    async def send_message(self, message: Message) -> str:
        """Send one FCM message and return its message name."""
        return await self.messaging.send(message)

    async def send_multicast(self, message: MulticastMessage) -> BatchResponse:
        """Send one FCM message body to many device tokens."""
        return await self.messaging.send_multicast(message)

    async def revoke_refresh_tokens(self, uid: str) -> None:
        """Revoke all refresh tokens issued to ``uid``."""
        await self.revocation.revoke_refresh_tokens(uid)

    async def aclose(self) -> None:
        """Stop background refreshes and release HTTP and database resources."""
        await self._refresher.aclose()
        await self._client.aclose()
        if isinstance(self._store, SQLKeyStore):
            await self._store.dispose()

    async def __aenter__(self) -> FirebaseAdmin:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and release resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _get_access_token(self) -> str:
        """Return an OAuth2 access token from the configured service account."""
        if self._token_provider is None:
            raise CredentialsError("Service account credentials are not configured.")
        return await self._token_provider.get_access_token()


@lru_cache
def get_firebase_admin() -> FirebaseAdmin:
    """Build and cache the facade from environment settings."""
    return FirebaseAdmin.from_settings(get_settings())
