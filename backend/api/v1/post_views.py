"""Shared post/feed view models and query helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Comment, Like, Post, User


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


class AuthorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_id: str
    name: str
    avatar_url: str | None = None


class PostView(BaseModel):
    id: int
    author: AuthorSummary
    image_url: str
    caption: str | None = None
    created_at: datetime
    updated_at: datetime
    likes_count: int = 0
    comments_count: int = 0

    @classmethod
    def from_post(
        cls,
        post: Post,
        author: User,
        *,
        likes_count: int = 0,
        comments_count: int = 0,
    ) -> "PostView":
        if post.id is None:
            raise ValueError("Post record missing identifier")
        return cls(
            id=post.id,
            author=AuthorSummary.model_validate(author),
            image_url=post.image_url,
            caption=post.caption,
            created_at=post.created_at,
            updated_at=post.updated_at,
            likes_count=likes_count,
            comments_count=comments_count,
        )


PostView.model_rebuild()


@dataclass(slots=True)
class PostStats:
    likes_count: int = 0
    comments_count: int = 0


PostRow = tuple[Post, User]


def post_with_author_query() -> Any:
    """``SELECT post, author`` in feed order, ready for filtering and paging."""
    return (
        select(cast(Any, Post), cast(Any, User))
        .join(User, _eq(User.id, Post.author_id))
        .order_by(
            _desc(cast(Any, Post.created_at)),
            _desc(cast(Any, Post.id)),
        )
    )


async def collect_post_stats(
    session: AsyncSession,
    post_ids: list[int],
) -> dict[int, PostStats]:
    """Live like and comment counts for each post id."""
    stats = {post_id: PostStats() for post_id in post_ids}
    if not post_ids:
        return stats

    like_post_column = cast(ColumnElement[int], Like.post_id)
    like_result = await session.execute(
        select(like_post_column, func.count())
        .where(like_post_column.in_(post_ids))
        .group_by(like_post_column)
    )
    for post_id, total in like_result.all():
        stats[post_id].likes_count = int(total)

    comment_post_column = cast(ColumnElement[int], Comment.post_id)
    comment_result = await session.execute(
        select(comment_post_column, func.count())
        .where(comment_post_column.in_(post_ids))
        .group_by(comment_post_column)
    )
    for post_id, total in comment_result.all():
        stats[post_id].comments_count = int(total)

    return stats


async def build_post_views(
    session: AsyncSession,
    rows: list[PostRow],
) -> list[PostView]:
    post_ids = [post.id for post, _author in rows if post.id is not None]
    stats = await collect_post_stats(session, post_ids)
    views: list[PostView] = []
    for post, author in rows:
        post_stats = stats.get(cast(int, post.id), PostStats())
        views.append(
            PostView.from_post(
                post,
                author,
                likes_count=post_stats.likes_count,
                comments_count=post_stats.comments_count,
            )
        )
    return views


async def list_feed(
    session: AsyncSession,
    *,
    limit: int,
    offset: int,
    author_id: str | None = None,
) -> tuple[list[PostView], bool]:
    """Return one page of posts, newest first, and whether more may follow.

    ``has_more`` is true whenever the page came back full, so a caller that
    lands exactly on the end performs one extra, empty fetch.
    """
    query = post_with_author_query()
    if author_id is not None:
        query = query.where(_eq(Post.author_id, author_id))
    if offset > 0:
        query = query.offset(offset)
    query = query.limit(limit)

    result = await session.execute(query)
    rows = cast(list[PostRow], result.all())
    views = await build_post_views(session, rows)
    return views, len(views) == limit


async def get_post_view(session: AsyncSession, post_id: int) -> PostView:
    result = await session.execute(
        post_with_author_query().where(_eq(Post.id, post_id)).limit(1)
    )
    row = result.first()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    views = await build_post_views(session, [cast(PostRow, tuple(row))])
    return views[0]
