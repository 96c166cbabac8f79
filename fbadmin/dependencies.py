"""FastAPI dependencies exposing the authenticated Firebase identity."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request


def get_firebase_claims(request: Request) -> dict[str, Any]:
    """Return verified ID-token claims set by ``FirebaseAuthMiddleware``."""
    claims = getattr(request.state, "firebase_claims", None)
    if not isinstance(claims, dict):
        raise HTTPException(status_code=401, detail="Invalid token.")
    return claims


def get_current_user_id(claims: Annotated[dict[str, Any], Depends(get_firebase_claims)]) -> str:
    """Return the Firebase uid of the authenticated caller."""
    return str(claims["sub"])
