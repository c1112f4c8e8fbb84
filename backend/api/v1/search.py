"""Substring search over display names and captions."""

from __future__ import annotations

from typing import Annotated, Any, Literal, cast

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import get_db
from models import Post, User
from .post_views import PostRow, PostView, build_post_views, post_with_author_query

router = APIRouter(prefix="/search", tags=["search"])

DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 50
LIKE_ESCAPE_CHAR = "\\"

SearchType = Literal["all", "users", "posts"]


def _ilike(column: Any, pattern: str) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column.ilike(pattern, escape=LIKE_ESCAPE_CHAR))


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


def contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` as a raw substring."""
    escaped = (
        term.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", f"{LIKE_ESCAPE_CHAR}%")
        .replace("_", f"{LIKE_ESCAPE_CHAR}_")
    )
    return f"%{escaped}%"


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_id: str
    name: str
    avatar_url: str | None = None


class SearchResponse(BaseModel):
    users: list[UserSummary] = []
    posts: list[PostView] = []


async def search_users(session: AsyncSession, term: str, limit: int) -> list[UserSummary]:
    result = await session.execute(
        select(cast(Any, User))
        .where(_ilike(User.name, contains_pattern(term)))
        .order_by(_asc(User.name), _asc(User.id))
        .limit(limit)
    )
    return [UserSummary.model_validate(user) for user in result.scalars().all()]


async def search_posts(session: AsyncSession, term: str, limit: int) -> list[PostView]:
    result = await session.execute(
        post_with_author_query()
        .where(_ilike(Post.caption, contains_pattern(term)))
        .limit(limit)
    )
    rows = cast(list[PostRow], result.all())
    return await build_post_views(session, rows)


@router.get("", response_model=SearchResponse)
async def search(
    q: Annotated[str, Query()] = "",
    type: Annotated[SearchType, Query()] = "all",
    limit: Annotated[int, Query(ge=1, le=MAX_SEARCH_LIMIT)] = DEFAULT_SEARCH_LIMIT,
    session: AsyncSession = Depends(get_db),
) -> SearchResponse:
    """Case-insensitive substring match; a blank query matches nothing."""
    term = q.strip()
    if not term:
        return SearchResponse()

    response = SearchResponse()
    if type in ("all", "users"):
        response.users = await search_users(session, term, limit)
    if type in ("all", "posts"):
        response.posts = await search_posts(session, term, limit)
    return response
