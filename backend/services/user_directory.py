"""Lookups and profile updates for local user records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from db.errors import is_unique_violation
from models import MAX_DISPLAY_NAME_LENGTH, Follow, Post, User

logger = logging.getLogger(__name__)

NAME_CLAIMS = ("name", "username", "email")


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


@dataclass(slots=True)
class UserStats:
    posts_count: int = 0
    followers_count: int = 0
    following_count: int = 0


def _looks_like_internal_id(value: str) -> bool:
    try:
        UUID(value)
    except ValueError:
        return False
    return True


async def resolve_by_internal_id(session: AsyncSession, user_id: str) -> User | None:
    result = await session.execute(select(User).where(_eq(User.id, user_id)))
    return result.scalar_one_or_none()


async def resolve_by_external_id(session: AsyncSession, external_id: str) -> User | None:
    result = await session.execute(select(User).where(_eq(User.external_id, external_id)))
    return result.scalar_one_or_none()


async def resolve_user(session: AsyncSession, id_or_external_id: str) -> User | None:
    """Resolve a route parameter that may hold either identifier form.

    UUID-shaped values are tried as internal ids first; anything else (the
    identity provider's ``user_...`` ids, for instance) is tried as an
    external id first. The other form is always tried as a fallback.
    """
    value = id_or_external_id.strip()
    if not value:
        return None

    if _looks_like_internal_id(value):
        lookups = (resolve_by_internal_id, resolve_by_external_id)
    else:
        lookups = (resolve_by_external_id, resolve_by_internal_id)

    for lookup in lookups:
        user = await lookup(session, value)
        if user is not None:
            return user
    return None


def normalize_display_name(value: str | None) -> str:
    """Trim a display name and enforce the 1..50 character rule."""
    normalized = (value or "").strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name cannot be empty",
        )
    if len(normalized) > MAX_DISPLAY_NAME_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Name must be at most {MAX_DISPLAY_NAME_LENGTH} characters",
        )
    return normalized


async def require_editable_user(
    session: AsyncSession,
    acting_user: User,
    target_id: str,
) -> User:
    """Return the target user, raising 404 when unknown and 403 when not self."""
    target = await resolve_user(session, target_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if target.id != acting_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own profile",
        )
    return target


async def update_profile(
    session: AsyncSession,
    acting_user: User,
    target_id: str,
    *,
    name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """Apply profile changes to the acting user's own record.

    The name is validated before the target is looked up. Changes are added
    to the session; committing is left to the caller.
    """
    normalized_name = normalize_display_name(name) if name is not None else None
    target = await require_editable_user(session, acting_user, target_id)

    if normalized_name is not None:
        target.name = normalized_name
    if avatar_url is not None:
        target.avatar_url = avatar_url
    session.add(target)
    return target


async def collect_user_stats(
    session: AsyncSession,
    user_ids: list[str],
) -> dict[str, UserStats]:
    """Live post, follower and following counts for each user id."""
    stats = {user_id: UserStats() for user_id in user_ids}
    if not user_ids:
        return stats

    post_author_column = cast(ColumnElement[str], Post.author_id)
    posts_result = await session.execute(
        select(post_author_column, func.count())
        .where(post_author_column.in_(user_ids))
        .group_by(post_author_column)
    )
    for user_id, total in posts_result.all():
        stats[user_id].posts_count = int(total)

    followee_column = cast(ColumnElement[str], Follow.followee_id)
    followers_result = await session.execute(
        select(followee_column, func.count())
        .where(followee_column.in_(user_ids))
        .group_by(followee_column)
    )
    for user_id, total in followers_result.all():
        stats[user_id].followers_count = int(total)

    follower_column = cast(ColumnElement[str], Follow.follower_id)
    following_result = await session.execute(
        select(follower_column, func.count())
        .where(follower_column.in_(user_ids))
        .group_by(follower_column)
    )
    for user_id, total in following_result.all():
        stats[user_id].following_count = int(total)

    return stats


def display_name_from_claims(external_id: str, claims: Mapping[str, Any]) -> str:
    for claim in NAME_CLAIMS:
        value = claims.get(claim)
        if isinstance(value, str) and value.strip():
            return value.strip()[:MAX_DISPLAY_NAME_LENGTH]
    return external_id[:MAX_DISPLAY_NAME_LENGTH]


async def sync_user(
    session: AsyncSession,
    external_id: str,
    claims: Mapping[str, Any],
) -> tuple[User, bool]:
    """Return the local record for an identity, creating it on first sight."""
    existing = await resolve_by_external_id(session, external_id)
    if existing is not None:
        return existing, False

    user = User(
        external_id=external_id,
        name=display_name_from_claims(external_id, claims),
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            raise
        # A concurrent sync created the row first.
        existing = await resolve_by_external_id(session, external_id)
        if existing is None:
            raise
        return existing, False

    await session.refresh(user)
    logger.info("Synced new user", extra={"user_id": user.id, "external_id": external_id})
    return user, True
