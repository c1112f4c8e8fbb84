"""Session token verification for the external identity provider."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from .config import settings


def decode_session_token(token: str) -> dict[str, Any]:
    """Verify a session token and return its claims.

    Raises ``ValueError`` for any malformed, expired or foreign token so
    callers never have to know about PyJWT's exception hierarchy.
    """
    options = {"require": ["sub", "exp"]}
    try:
        payload = jwt.decode(
            token,
            settings.session_token_secret,
            algorithms=[settings.session_token_algorithm],
            issuer=settings.session_token_issuer,
            options=options,
        )
    except jwt.PyJWTError as exc:
        raise ValueError("Invalid session token") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise ValueError("Session token is missing a subject")
    return payload


def create_session_token(
    external_id: str,
    *,
    name: str | None = None,
    email: str | None = None,
    expires_minutes: int | None = None,
) -> str:
    """Mint a session token for local development, seeding and tests."""
    now = datetime.now(timezone.utc)
    ttl = timedelta(minutes=expires_minutes or settings.session_token_ttl_minutes)
    claims: dict[str, Any] = {
        "sub": external_id,
        "iat": now,
        "exp": now + ttl,
    }
    if settings.session_token_issuer:
        claims["iss"] = settings.session_token_issuer
    if name is not None:
        claims["name"] = name
    if email is not None:
        claims["email"] = email
    return jwt.encode(
        claims,
        settings.session_token_secret,
        algorithm=settings.session_token_algorithm,
    )
