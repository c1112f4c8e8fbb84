"""Post feed, creation and deletion endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import get_current_user, get_db
from core import settings
from models import MAX_CAPTION_LENGTH, Comment, Like, Post, User
from services import (
    build_object_filename,
    delete_object,
    load_image_upload,
    object_key_from_url,
    upload_object,
)
from services.post_policy import parse_post_id, require_owner
from services.user_directory import resolve_user

from .pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, set_next_offset_header
from .post_views import PostView, get_post_view, list_feed

router = APIRouter(prefix="/posts", tags=["posts"])
logger = logging.getLogger(__name__)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _normalize_caption(caption: str | None) -> str | None:
    if caption is None:
        return None

    normalized_caption = caption.strip()
    if len(normalized_caption) > MAX_CAPTION_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Caption must be at most {MAX_CAPTION_LENGTH} characters",
        )
    if normalized_caption == "":
        return None
    return normalized_caption


class FeedPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: list[PostView]
    count: int
    has_more: bool = Field(alias="hasMore")


class PostDetailResponse(BaseModel):
    data: PostView


class PostCreatedResponse(BaseModel):
    success: bool = True
    post: PostView


class SuccessResponse(BaseModel):
    success: bool = True


@router.get("", response_model=FeedPage)
async def list_posts(
    response: Response,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    offset: Annotated[int, Query(ge=0)] = 0,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
    session: AsyncSession = Depends(get_db),
) -> FeedPage:
    """Newest-first feed, optionally restricted to one author."""
    author_id: str | None = None
    if user_id is not None:
        author = await resolve_user(session, user_id)
        if author is None:
            return FeedPage(data=[], count=0, has_more=False)
        author_id = author.id

    posts, has_more = await list_feed(
        session,
        limit=limit,
        offset=offset,
        author_id=author_id,
    )
    set_next_offset_header(response, offset=offset, limit=limit, has_more=has_more)
    return FeedPage(data=posts, count=len(posts), has_more=has_more)


@router.get("/{post_id}", response_model=PostDetailResponse)
async def get_post(
    post_id: str,
    session: AsyncSession = Depends(get_db),
) -> PostDetailResponse:
    parsed_id = parse_post_id(post_id)
    if parsed_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return PostDetailResponse(data=await get_post_view(session, parsed_id))


@router.post("", status_code=status.HTTP_200_OK, response_model=PostCreatedResponse)
async def create_post(
    image: UploadFile | None = File(default=None),
    caption: str | None = Form(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostCreatedResponse:
    normalized_caption = _normalize_caption(caption)
    data, content_type = await load_image_upload(image, settings.upload_max_bytes)

    filename = image.filename if image is not None else None
    object_key = f"posts/{current_user.id}/{build_object_filename(filename)}"
    try:
        image_url = await asyncio.to_thread(
            upload_object,
            object_key,
            data,
            content_type,
        )
    except Exception as exc:
        logger.warning(
            "Failed to upload post image",
            extra={"object_key": object_key},
            exc_info=exc,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload image",
        ) from exc

    post = Post(
        author_id=current_user.id,
        image_url=image_url,
        caption=normalized_caption,
    )
    session.add(post)
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        try:
            await asyncio.to_thread(delete_object, object_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to cleanup uploaded post image after commit failure",
                extra={"object_key": object_key},
                exc_info=cleanup_error,
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create post",
        ) from exc
    await session.refresh(post)
    return PostCreatedResponse(post=PostView.from_post(post, current_user))


@router.delete("/{post_id}", status_code=status.HTTP_200_OK, response_model=SuccessResponse)
async def delete_post(
    post_id: str,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SuccessResponse:
    parsed_id = parse_post_id(post_id)
    post = None
    if parsed_id is not None:
        result = await session.execute(
            select(cast(Any, Post))
            .where(_eq(Post.id, parsed_id))
            .limit(1)
        )
        post = result.scalar_one_or_none()
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    require_owner(post.author_id, current_user.id, detail="You can only delete your own posts")

    object_key = object_key_from_url(post.image_url)
    if object_key is not None:
        try:
            await asyncio.to_thread(delete_object, object_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to delete post image; removing post anyway",
                extra={"post_id": post.id, "object_key": object_key},
                exc_info=cleanup_error,
            )

    await session.execute(
        delete(Like).where(_eq(Like.post_id, post.id))
    )
    await session.execute(
        delete(Comment).where(_eq(Comment.post_id, post.id))
    )
    await session.delete(post)
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete post",
        ) from exc

    return SuccessResponse()
