"""Shared fixtures: ephemeral signing keys, certificates and ID tokens."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from jose import jwt

PROJECT_ID = "demo-project"
NOW = int(time.time())


@dataclass(frozen=True)
class SigningMaterial:
    """Private key plus the certificate Google would publish for it."""

    kid: str
    private_key_pem: str
    certificate_pem: str
    public_key_pem: str


def _generate_signing_material(kid: str) -> SigningMaterial:
    """Generate an RSA keypair and a self-signed PEM certificate."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )
    name = x509.Name(
        [x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.system.gserviceaccount.com")]
    )
    issued = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(issued - timedelta(days=1))
        .not_valid_after(issued + timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )
    certificate_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")
    return SigningMaterial(
        kid=kid,
        private_key_pem=private_pem,
        certificate_pem=certificate_pem,
        public_key_pem=public_pem,
    )


@pytest.fixture(scope="session")
def signing_material() -> SigningMaterial:
    """Primary signing key published under ``kid-1``."""
    return _generate_signing_material("kid-1")


@pytest.fixture(scope="session")
def rotated_material() -> SigningMaterial:
    """Second signing key published under ``kid-2``."""
    return _generate_signing_material("kid-2")


def valid_claims(**overrides: Any) -> dict[str, Any]:
    """Return a Firebase ID-token claim set valid at ``NOW``."""
    claims: dict[str, Any] = {
        "iss": f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": PROJECT_ID,
        "sub": "user-1",
        "iat": NOW - 10,
        "exp": NOW + 3600,
        "auth_time": NOW - 10,
        "user_id": "user-1",
        "email": "user@example.com",
        "firebase": {"sign_in_provider": "password", "identities": {}},
    }
    claims.update(overrides)
    return {key: value for key, value in claims.items() if value is not None}


@pytest.fixture
def make_token(signing_material: SigningMaterial) -> Callable[..., str]:
    """Build RS256 ID tokens signed by ``signing_material`` unless overridden."""

    def build(
        claims: dict[str, Any] | None = None,
        material: SigningMaterial | None = None,
        kid: str | None = None,
    ) -> str:
        signer = material or signing_material
        return jwt.encode(
            claims if claims is not None else valid_claims(),
            signer.private_key_pem,
            algorithm="RS256",
            headers={"kid": kid or signer.kid},
        )

    return build
