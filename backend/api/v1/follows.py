"""Follow graph endpoints."""

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
from models import Follow, User
from services.user_directory import resolve_user

router = APIRouter(prefix="/follows", tags=["follows"])


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class FollowRequest(BaseModel):
    following_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("followingId", "following_id"),
    )


class FollowView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    follower_id: str
    followee_id: str
    created_at: datetime


class FollowCreatedResponse(BaseModel):
    success: bool = True
    follow: FollowView


class FollowStatusResponse(BaseModel):
    following: bool


class SuccessResponse(BaseModel):
    success: bool = True


async def _require_target(session: AsyncSession, target_id: str) -> User:
    target = await resolve_user(session, target_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return target


@router.post("", status_code=status.HTTP_200_OK, response_model=FollowCreatedResponse)
async def follow_user(
    payload: FollowRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowCreatedResponse:
    target = await _require_target(session, payload.following_id)
    if target.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot follow yourself",
        )

    follow = Follow(follower_id=current_user.id, followee_id=target.id)
    session.add(follow)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Already following",
            ) from exc
        if is_foreign_key_violation(exc):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            ) from exc
        raise
    await session.refresh(follow)
    return FollowCreatedResponse(follow=FollowView.model_validate(follow))


@router.delete("", status_code=status.HTTP_200_OK, response_model=SuccessResponse)
async def unfollow_user(
    payload: FollowRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SuccessResponse:
    target = await _require_target(session, payload.following_id)
    await session.execute(
        delete(Follow).where(
            _eq(Follow.follower_id, current_user.id),
            _eq(Follow.followee_id, target.id),
        )
    )
    await session.commit()
    return SuccessResponse()


@router.get("/{user_id}", response_model=FollowStatusResponse)
async def get_follow_status(
    user_id: str,
    session: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> FollowStatusResponse:
    if current_user is None:
        return FollowStatusResponse(following=False)

    target = await resolve_user(session, user_id)
    if target is None:
        return FollowStatusResponse(following=False)

    result = await session.execute(
        select(cast(ColumnElement[int], Follow.id))
        .where(
            _eq(Follow.follower_id, current_user.id),
            _eq(Follow.followee_id, target.id),
        )
        .limit(1)
    )
    return FollowStatusResponse(following=result.scalar_one_or_none() is not None)
