"""Firebase ID token verification against the cached Google public keys."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import structlog
from cachetools import LRUCache, cached
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from jose import jws
from jose.exceptions import JOSEError
from jose.utils import base64url_decode

from fbadmin.core.keystore import CachedKeySet, KeyStore
from fbadmin.core.refresher import KeyRefresher
from fbadmin.exceptions import TokenVerificationError
from fbadmin.types import FirebaseClaims

JWT_ALGORITHM = "RS256"
MAX_TOKEN_LENGTH = 2500
CLOCK_SKEW_SECONDS = 300
MAX_SUBJECT_LENGTH = 128
ISSUER_PREFIX = "https://securetoken.google.com/"

logger = structlog.get_logger(__name__)


@cached(cache=LRUCache(maxsize=64))
def public_key_pem(key_material: str) -> str:
    """Return the SubjectPublicKeyInfo PEM for a PEM certificate or public key.

    Raises ValueError when the material is not an RSA certificate or key.
    """
    encoded = key_material.encode("utf-8")
    if key_material.lstrip().startswith("-----BEGIN CERTIFICATE-----"):
        public_key = x509.load_pem_x509_certificate(encoded).public_key()
    else:
        public_key = serialization.load_pem_public_key(encoded)
    if not isinstance(public_key, RSAPublicKey):
        raise ValueError("Verification key must be RSA.")
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


class TokenVerifier:
    """Validate Firebase ID token structure, signature and claims.

    Verification never waits on a refresh triggered by an unknown key or a
    bad signature: the current call fails and a later call sees the
    refreshed keys.
    """

    def __init__(
        self,
        project_id: str,
        store: KeyStore,
        refresher: KeyRefresher | None = None,
        now: Callable[[], float] | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id is required for token verification.")
        self._project_id = project_id
        self._expected_issuer = f"{ISSUER_PREFIX}{project_id}"
        self._store = store
        self._refresher = refresher
        self._now = now or time.time

    @property
    def project_id(self) -> str:
        """Firebase project the tokens must be issued for."""
        return self._project_id

    async def verify(self, token: str) -> FirebaseClaims:
        """Verify ``token`` and return its full claim mapping."""
        self._check_structure(token)
        await self._store.ensure_initialized()
        cached_keys = await self._load_keys()

        kid = self._read_kid(token)
        key_material = cached_keys.keys.get(kid)
        if key_material is None:
            self._trigger_refresh(reason="key_not_found", kid=kid)
            raise TokenVerificationError(
                "No public key matches the token key id.", "key_not_found"
            )

        claims = self._verify_signature(token, key_material, kid)
        self._validate_claims(claims)
        return claims

    def _check_structure(self, token: str) -> None:
        """Reject oversized tokens and tokens without three segments."""
        if len(token.encode("utf-8")) > MAX_TOKEN_LENGTH:
            raise TokenVerificationError("Token exceeds maximum length.", "token_too_long")
        if len(token.split(".")) != 3:
            raise TokenVerificationError("Token must have three segments.", "invalid_format")

    async def _load_keys(self) -> CachedKeySet:
        """Read cached keys, doing one bounded refresh when none are cached yet."""
        cached_keys = await self._store.load()
        if (cached_keys is None or cached_keys.is_empty) and self._refresher is not None:
            await self._refresher.refresh_now()
            cached_keys = await self._store.load()
        if cached_keys is None or cached_keys.is_empty:
            raise TokenVerificationError("No public keys available.", "no_keys_available")
        return cached_keys

    @staticmethod
    def _read_kid(token: str) -> str:
        """Decode only the header segment; payload and signature are left to jws.verify."""
        header_segment = token.split(".", 1)[0]
        try:
            header = json.loads(base64url_decode(header_segment.encode("ascii")))
        except (TypeError, ValueError) as exc:
            raise TokenVerificationError("Invalid token header.", "invalid_header") from exc
        if not isinstance(header, dict):
            raise TokenVerificationError("Invalid token header.", "invalid_header")

        algorithm = str(header.get("alg", ""))
        if algorithm != JWT_ALGORITHM:
            raise TokenVerificationError("Invalid token algorithm.", "invalid_header")

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid.strip():
            raise TokenVerificationError("Token header has no key id.", "no_key_id")
        return kid

    def _verify_signature(self, token: str, key_material: str, kid: str) -> FirebaseClaims:
        """Verify the RS256 signature and decode the claim payload."""
        try:
            verification_key = public_key_pem(key_material)
            payload = jws.verify(token, verification_key, algorithms=[JWT_ALGORITHM])
        except (JOSEError, ValueError) as exc:
            self._trigger_refresh(reason="signature_verification_failed", kid=kid)
            raise TokenVerificationError(
                "Token signature verification failed.", "signature_verification_failed"
            ) from exc

        try:
            claims = json.loads(payload)
        except ValueError as exc:
            raise TokenVerificationError("Token payload is not JSON.", "invalid_format") from exc
        if not isinstance(claims, dict):
            raise TokenVerificationError("Token payload is not an object.", "invalid_format")
        return claims

    def _validate_claims(self, claims: dict[str, Any]) -> None:
        """Check exp, iat, iss, aud and sub in that order."""
        now = self._now()

        expires_at = claims.get("exp")
        if not _is_number(expires_at) or not expires_at > now:
            raise TokenVerificationError("Token has expired.", "token_expired")

        issued_at = claims.get("iat")
        if not _is_number(issued_at) or not issued_at <= now + CLOCK_SKEW_SECONDS:
            raise TokenVerificationError("Token was issued in the future.", "issued_in_future")

        issuer = claims.get("iss")
        if not isinstance(issuer, str) or issuer != self._expected_issuer:
            raise TokenVerificationError("Token has an invalid issuer.", "invalid_issuer")

        audience = claims.get("aud")
        if not isinstance(audience, str) or audience != self._project_id:
            raise TokenVerificationError("Token has an invalid audience.", "invalid_audience")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject or len(subject) > MAX_SUBJECT_LENGTH:
            raise TokenVerificationError("Token has an invalid subject.", "invalid_subject")

    def _trigger_refresh(self, reason: str, kid: str) -> None:
        """Start a background refresh so a later call can see rotated keys."""
        if self._refresher is None:
            return
        if self._refresher.request_recovery_refresh() is None:
            logger.info("public_key_refresh_suppressed", reason=reason, kid=kid)
            return
        logger.info("public_key_refresh_requested", reason=reason, kid=kid)


def _is_number(value: Any) -> bool:
    """Return True for int or float values, excluding bool."""
    return isinstance(value, int | float) and not isinstance(value, bool)
