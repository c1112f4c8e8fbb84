"""User profile endpoints."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_claims
from core import settings
from models import User
from services import (
    build_object_filename,
    delete_object,
    load_image_upload,
    object_key_from_url,
    upload_object,
)
from services.user_directory import (
    UserStats,
    collect_user_stats,
    require_editable_user,
    resolve_user,
    sync_user,
    update_profile,
)

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_id: str
    name: str
    avatar_url: str | None = None
    created_at: datetime
    posts_count: int = 0
    followers_count: int = 0
    following_count: int = 0

    @classmethod
    def from_user(cls, user: User, stats: UserStats | None = None) -> "UserProfile":
        stats = stats or UserStats()
        return cls(
            id=user.id,
            external_id=user.external_id,
            name=user.name,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
            posts_count=stats.posts_count,
            followers_count=stats.followers_count,
            following_count=stats.following_count,
        )


UserProfile.model_rebuild()


class UserResponse(BaseModel):
    user: UserProfile


class UserSyncResponse(BaseModel):
    user: UserProfile
    created: bool


class UserUpdateRequest(BaseModel):
    name: str


class UserUpdatedResponse(BaseModel):
    success: bool = True
    user: UserProfile


class AvatarUploadResponse(BaseModel):
    success: bool = True
    profile_image_url: str
    user: UserProfile


async def _profile_with_stats(session: AsyncSession, user: User) -> UserProfile:
    stats = await collect_user_stats(session, [user.id])
    return UserProfile.from_user(user, stats[user.id])


@router.post("/sync", response_model=UserSyncResponse)
async def sync_current_user(
    claims: dict[str, Any] = Depends(require_claims),
    session: AsyncSession = Depends(get_db),
) -> UserSyncResponse:
    """Create the local record for the caller's identity if it is missing."""
    user, created = await sync_user(session, claims["sub"].strip(), claims)
    return UserSyncResponse(
        user=await _profile_with_stats(session, user),
        created=created,
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    session: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Return a profile by internal or identity-provider id, with live counts."""
    user = await resolve_user(session, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse(user=await _profile_with_stats(session, user))


@router.put("/{user_id}", response_model=UserUpdatedResponse)
async def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserUpdatedResponse:
    user = await update_profile(session, current_user, user_id, name=payload.name)
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile",
        ) from exc
    await session.refresh(user)
    return UserUpdatedResponse(user=await _profile_with_stats(session, user))


@router.post("/{user_id}/upload-image", response_model=AvatarUploadResponse)
async def upload_profile_image(
    user_id: str,
    image: UploadFile | None = File(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AvatarUploadResponse:
    target = await require_editable_user(session, current_user, user_id)
    data, content_type = await load_image_upload(image, settings.upload_max_bytes)
    previous_avatar_url = target.avatar_url

    filename = image.filename if image is not None else None
    object_key = f"avatars/{target.id}/{build_object_filename(filename, prefix='profile-')}"
    try:
        avatar_url = await asyncio.to_thread(
            upload_object,
            object_key,
            data,
            content_type,
        )
    except Exception as exc:
        logger.warning(
            "Failed to upload avatar",
            extra={"object_key": object_key},
            exc_info=exc,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload image",
        ) from exc

    target.avatar_url = avatar_url
    session.add(target)
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        try:
            await asyncio.to_thread(delete_object, object_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to cleanup uploaded avatar after profile update commit failure",
                extra={"object_key": object_key},
                exc_info=cleanup_error,
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile",
        ) from exc
    await session.refresh(target)

    previous_object_key = object_key_from_url(previous_avatar_url)
    if previous_object_key is not None and previous_object_key != object_key:
        try:
            await asyncio.to_thread(delete_object, previous_object_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to cleanup replaced avatar object after profile update",
                extra={"object_key": previous_object_key},
                exc_info=cleanup_error,
            )

    return AvatarUploadResponse(
        profile_image_url=avatar_url,
        user=await _profile_with_stats(session, target),
    )
