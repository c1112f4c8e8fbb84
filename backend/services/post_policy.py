"""Ownership checks shared by the post, comment and like endpoints."""

from __future__ import annotations

from typing import Any, cast

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Post


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def require_post_exists(
    session: AsyncSession,
    post_id: int,
) -> str:
    """Return the post author id or raise 404 when the post does not exist."""
    post_author_column = cast(ColumnElement[str], Post.author_id)
    result = await session.execute(
        select(post_author_column)
        .where(_eq(Post.id, post_id))
        .limit(1)
    )
    author_id = result.scalar_one_or_none()
    if author_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return author_id


def require_owner(owner_id: str, acting_user_id: str, *, detail: str) -> None:
    """Raise 403 unless the acting user owns the row."""
    if owner_id != acting_user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


MAX_POST_ID = 2**63 - 1


def parse_post_id(value: str) -> int | None:
    """Path segment as a post id; ``None`` when it cannot name any post."""
    if not value.isascii() or not value.isdigit():
        return None
    post_id = int(value)
    if post_id > MAX_POST_ID:
        return None
    return post_id
