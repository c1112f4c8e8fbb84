"""Comment thread endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import get_current_user, get_db
from db.errors import is_foreign_key_violation
from models import MAX_COMMENT_LENGTH, Comment, User
from services.post_policy import parse_post_id, require_owner, require_post_exists

from .post_views import AuthorSummary

router = APIRouter(prefix="/comments", tags=["comments"])


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


class CommentView(BaseModel):
    id: int
    post_id: int
    author: AuthorSummary
    content: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment, author: User) -> "CommentView":
        if comment.id is None:
            raise ValueError("Comment record missing identifier")
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            author=AuthorSummary.model_validate(author),
            content=comment.content,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


CommentView.model_rebuild()


class CommentListResponse(BaseModel):
    data: list[CommentView]
    count: int


class CommentCreateRequest(BaseModel):
    post_id: int = Field(validation_alias=AliasChoices("postId", "post_id"))
    content: str


class CommentCreatedResponse(BaseModel):
    success: bool = True
    comment: CommentView


class CommentDeleteRequest(BaseModel):
    comment_id: int = Field(validation_alias=AliasChoices("commentId", "comment_id"))


class SuccessResponse(BaseModel):
    success: bool = True


def _normalize_content(content: str) -> str:
    normalized = content.strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Comment cannot be empty",
        )
    if len(normalized) > MAX_COMMENT_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Comment must be at most {MAX_COMMENT_LENGTH} characters",
        )
    return normalized


@router.get("/{post_id}", response_model=CommentListResponse)
async def list_comments(
    post_id: str,
    session: AsyncSession = Depends(get_db),
) -> CommentListResponse:
    """Oldest-first thread of a post; an unknown post simply has no comments."""
    parsed_id = parse_post_id(post_id)
    if parsed_id is None:
        return CommentListResponse(data=[], count=0)

    result = await session.execute(
        select(cast(Any, Comment), cast(Any, User))
        .join(User, _eq(User.id, Comment.author_id))
        .where(_eq(Comment.post_id, parsed_id))
        .order_by(
            _asc(Comment.created_at),
            _asc(Comment.id),
        )
    )
    comments = [CommentView.from_comment(comment, author) for comment, author in result.all()]
    return CommentListResponse(data=comments, count=len(comments))


@router.post("", status_code=status.HTTP_200_OK, response_model=CommentCreatedResponse)
async def create_comment(
    payload: CommentCreateRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CommentCreatedResponse:
    content = _normalize_content(payload.content)
    await require_post_exists(session, payload.post_id)

    comment = Comment(
        post_id=payload.post_id,
        author_id=current_user.id,
        content=content,
    )
    session.add(comment)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_foreign_key_violation(exc):
            # The post was deleted between the existence check and the insert.
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Post not found",
            ) from exc
        raise
    await session.refresh(comment)
    return CommentCreatedResponse(comment=CommentView.from_comment(comment, current_user))


@router.delete("", status_code=status.HTTP_200_OK, response_model=SuccessResponse)
async def delete_comment(
    payload: CommentDeleteRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SuccessResponse:
    result = await session.execute(
        select(cast(Any, Comment))
        .where(_eq(Comment.id, payload.comment_id))
        .limit(1)
    )
    comment = result.scalar_one_or_none()
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    require_owner(comment.author_id, current_user.id, detail="You can only delete your own comments")

    await session.delete(comment)
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete comment",
        ) from exc

    return SuccessResponse()
