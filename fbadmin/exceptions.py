"""Exception hierarchy for token verification, key caching and messaging."""

from __future__ import annotations

from typing import Any

from fbadmin.types import DispatchErrorCode, VerifyErrorCode

_RETRYABLE_VERIFY_CODES = frozenset(
    {"no_keys_available", "key_not_found", "signature_verification_failed"}
)


class FirebaseAdminError(Exception):
    """Base class for all fbadmin exceptions."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class CredentialsError(FirebaseAdminError):
    """Raised when service-account credentials are missing or malformed."""


class KeyFetchError(FirebaseAdminError):
    """Raised when the public certificate endpoint cannot be read."""


class KeyStoreError(FirebaseAdminError):
    """Raised when the durable key cache cannot be read or written."""


class RemoteServiceError(FirebaseAdminError):
    """Raised when a Google API call fails."""

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        """Initialize with HTTP status and provider error details when available."""
        super().__init__(detail)
        self.status_code = status_code
        self.details = details


class ServiceUnavailableError(RemoteServiceError):
    """Raised for transport failures and transient HTTP statuses."""


class ServiceResponseError(RemoteServiceError):
    """Raised for permanent HTTP failures and malformed payloads."""


class SendTimeoutError(FirebaseAdminError):
    """Raised when a single multicast send exceeds its timeout."""


class TokenVerificationError(FirebaseAdminError):
    """Raised when an ID token is rejected."""

    def __init__(self, detail: str, code: VerifyErrorCode) -> None:
        """Initialize with user-facing detail and machine-readable code."""
        super().__init__(detail)
        self.code = code

    @property
    def retryable(self) -> bool:
        """Whether a later call may succeed once the key cache has refreshed."""
        return self.code in _RETRYABLE_VERIFY_CODES


class DispatchError(FirebaseAdminError):
    """Raised when a multicast is rejected before any message is sent."""

    def __init__(self, detail: str, code: DispatchErrorCode) -> None:
        super().__init__(detail)
        self.code = code
