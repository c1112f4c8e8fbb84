"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from core import decode_session_token, settings
from db import get_session
from models import User
from services.user_directory import resolve_by_external_id


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def _extract_session_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    cookie_token = request.cookies.get(settings.session_cookie_name)
    if cookie_token and cookie_token.strip():
        return cookie_token.strip()
    return None


async def get_optional_claims(request: Request) -> dict[str, Any] | None:
    """Verified session claims, or None for anonymous and invalid tokens."""
    token = _extract_session_token(request)
    if token is None:
        return None
    try:
        return decode_session_token(token)
    except ValueError:
        return None


async def get_optional_identity(
    claims: dict[str, Any] | None = Depends(get_optional_claims),
) -> str | None:
    if claims is None:
        return None
    return claims["sub"].strip()


async def require_claims(
    claims: dict[str, Any] | None = Depends(get_optional_claims),
) -> dict[str, Any]:
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return claims


async def require_identity(
    identity: str | None = Depends(get_optional_identity),
) -> str:
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return identity


async def get_current_user(
    identity: str = Depends(require_identity),
    session: AsyncSession = Depends(get_db),
) -> User:
    """Local record of the authenticated caller; 404 until it has been synced."""
    user = await resolve_by_external_id(session, identity)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def get_optional_user(
    identity: str | None = Depends(get_optional_identity),
    session: AsyncSession = Depends(get_db),
) -> User | None:
    if identity is None:
        return None
    return await resolve_by_external_id(session, identity)
