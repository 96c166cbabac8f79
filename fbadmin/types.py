"""Data contract types."""

from __future__ import annotations

from typing import Any, Literal, TypedDict

VerifyErrorCode = Literal[
    "token_too_long",
    "invalid_format",
    "invalid_header",
    "no_key_id",
    "no_keys_available",
    "key_not_found",
    "signature_verification_failed",
    "token_expired",
    "issued_in_future",
    "invalid_issuer",
    "invalid_audience",
    "invalid_subject",
]

DispatchErrorCode = Literal["no_targets", "invalid_targets", "too_many_targets", "unavailable"]

KeySet = dict[str, str]
"""Mapping of key id to PEM-encoded certificate or public key."""

FirebaseClaims = dict[str, Any]


class AccessTokenResponse(TypedDict):
    """OAuth2 token endpoint response."""

    access_token: str
    expires_in: int
    token_type: str
