"""Bearer ID-token authentication middleware for ASGI services."""

from __future__ import annotations

from collections.abc import Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from fbadmin.core.verifier import TokenVerifier
from fbadmin.exceptions import KeyStoreError, TokenVerificationError

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build auth error response payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _extract_bearer_token(request: Request) -> str | None:
    """Return the bearer credential, or None when the header is absent or another scheme."""
    authorization = request.headers.get("authorization", "").strip()
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    stripped = token.strip()
    return stripped or None


class FirebaseAuthMiddleware(BaseHTTPMiddleware):
    """Verify Firebase ID tokens and inject the caller's uid and claims."""

    def __init__(
        self,
        app,
        verifier: TokenVerifier,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        """Initialize middleware with a shared token verifier."""
        super().__init__(app)
        self._verifier = verifier
        self._exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next) -> Response:
        """Reject unauthenticated requests with 401 and key cache failures with 503."""
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        token = _extract_bearer_token(request)
        if token is None:
            return _error_response(401, "Missing bearer token.", "invalid_format")

        try:
            claims = await self._verifier.verify(token)
        except TokenVerificationError as exc:
            logger.info("id_token_rejected", code=exc.code, path=request.url.path)
            return _error_response(401, exc.detail, exc.code)
        except KeyStoreError as exc:
            logger.error("public_key_cache_unavailable", reason=exc.detail, path=request.url.path)
            return _error_response(503, "Public key cache unavailable.", "key_cache_unavailable")

        request.state.user_id = claims["sub"]
        request.state.firebase_claims = claims
        return await call_next(request)
