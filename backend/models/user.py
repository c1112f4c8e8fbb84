"""User domain model."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, func
from sqlmodel import Field, SQLModel

MAX_DISPLAY_NAME_LENGTH = 50


class User(SQLModel, table=True):
    """Local record of an identity-provider account."""

    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid4()), sa_column=Column(String(36), primary_key=True))
    # Subject of the identity provider's session tokens.
    external_id: str = Field(
        sa_column=Column(String(255), unique=True, nullable=False, index=True)
    )
    name: str = Field(
        sa_column=Column(String(MAX_DISPLAY_NAME_LENGTH), nullable=False)
    )
    avatar_url: str | None = Field(
        default=None, sa_column=Column(String(1024), nullable=True)
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        )
    )
