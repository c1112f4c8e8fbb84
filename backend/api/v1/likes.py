"""Like, unlike and like-status endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import get_current_user, get_db, get_optional_user
from db.errors import is_foreign_key_violation, is_unique_violation
from models import Like, User
from services.post_policy import parse_post_id, require_post_exists

router = APIRouter(prefix="/likes", tags=["likes"])


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class LikeRequest(BaseModel):
    post_id: int = Field(validation_alias=AliasChoices("postId", "post_id"))


class LikeView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    user_id: str
    created_at: datetime


class LikeCreatedResponse(BaseModel):
    success: bool = True
    like: LikeView


class LikeStatusResponse(BaseModel):
    liked: bool


class SuccessResponse(BaseModel):
    success: bool = True


@router.post("", status_code=status.HTTP_200_OK, response_model=LikeCreatedResponse)
async def like_post(
    payload: LikeRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LikeCreatedResponse:
    await require_post_exists(session, payload.post_id)

    # Duplicates are rejected by uq_likes_post_user, not by a pre-check.
    like = Like(post_id=payload.post_id, user_id=current_user.id)
    session.add(like)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Post already liked",
            ) from exc
        if is_foreign_key_violation(exc):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Post not found",
            ) from exc
        raise
    await session.refresh(like)
    return LikeCreatedResponse(like=LikeView.model_validate(like))


@router.delete("", status_code=status.HTTP_200_OK, response_model=SuccessResponse)
async def unlike_post(
    payload: LikeRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SuccessResponse:
    await session.execute(
        delete(Like).where(
            _eq(Like.post_id, payload.post_id),
            _eq(Like.user_id, current_user.id),
        )
    )
    await session.commit()
    return SuccessResponse()


@router.get("/{post_id}", response_model=LikeStatusResponse)
async def get_like_status(
    post_id: str,
    session: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> LikeStatusResponse:
    if current_user is None:
        return LikeStatusResponse(liked=False)
    parsed_id = parse_post_id(post_id)
    if parsed_id is None:
        return LikeStatusResponse(liked=False)

    result = await session.execute(
        select(cast(ColumnElement[int], Like.id))
        .where(
            _eq(Like.post_id, parsed_id),
            _eq(Like.user_id, current_user.id),
        )
        .limit(1)
    )
    return LikeStatusResponse(liked=result.scalar_one_or_none() is not None)
