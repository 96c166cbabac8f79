"""Firebase ID-token verification and Cloud Messaging for asyncio services."""

from fbadmin.admin import FirebaseAdmin, get_firebase_admin
from fbadmin.core.dispatch import BatchResponse, MulticastDispatcher, SendResponse
from fbadmin.core.keystore import CachedKeySet, InMemoryKeyStore, KeyStore, SQLKeyStore
from fbadmin.core.refresher import KeyRefresher
from fbadmin.core.verifier import TokenVerifier
from fbadmin.exceptions import (
    DispatchError,
    FirebaseAdminError,
    ServiceResponseError,
    ServiceUnavailableError,
    TokenVerificationError,
)
from fbadmin.middleware import FirebaseAuthMiddleware
from fbadmin.schemas.message import Message, MulticastMessage, Notification

__all__ = [
    "BatchResponse",
    "CachedKeySet",
    "DispatchError",
    "FirebaseAdmin",
    "FirebaseAdminError",
    "FirebaseAuthMiddleware",
    "InMemoryKeyStore",
    "KeyRefresher",
    "KeyStore",
    "Message",
    "MulticastDispatcher",
    "MulticastMessage",
    "Notification",
    "SQLKeyStore",
    "SendResponse",
    "ServiceResponseError",
    "ServiceUnavailableError",
    "TokenVerificationError",
    "TokenVerifier",
    "get_firebase_admin",
]
