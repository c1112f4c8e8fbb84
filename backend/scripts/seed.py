"""Database seed script for local development.

Usage:
    python scripts/seed.py

Creates demo users (external ids ``demo_user_*``), a handful of posts with
placeholder images, a follow ring, likes and comments. Running it twice is
safe: existing rows are reused. Session tokens for the demo users can be
minted with ``core.security.create_session_token``.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, cast

from minio.error import S3Error
from PIL import Image
from sqlalchemy import select
from sqlalchemy.sql import ColumnElement

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from core import settings  # noqa: E402
from db.session import AsyncSessionMaker  # noqa: E402
from models import Comment, Follow, Like, Post, User  # noqa: E402
from services.storage import build_public_url, ensure_bucket, get_minio_client  # noqa: E402


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


@dataclass(frozen=True)
class SeedUser:
    external_id: str
    name: str


@dataclass(frozen=True)
class SeedPost:
    external_id: str
    object_key: str
    caption: str


@dataclass(frozen=True)
class SeedComment:
    external_id: str
    post_key: str
    content: str


@dataclass(frozen=True)
class SeedPlan:
    users: list[SeedUser]
    posts: list[SeedPost]
    follows: list[tuple[str, str]]
    likes: list[tuple[str, str]]
    comments: list[SeedComment]


BASE_USERS: Sequence[SeedUser] = [
    SeedUser(external_id="demo_user_alex", name="Alex Demo"),
    SeedUser(external_id="demo_user_bella", name="Bella Demo"),
    SeedUser(external_id="demo_user_cara", name="Cara Demo"),
    SeedUser(external_id="demo_user_dan", name="Dan Demo"),
    SeedUser(external_id="demo_user_ella", name="Ella Demo"),
]

BASE_CAPTIONS: Sequence[tuple[str, str]] = [
    ("demo_user_alex", "Sunny day snapshots."),
    ("demo_user_alex", "Morning run before work."),
    ("demo_user_bella", "First latte art attempt!"),
    ("demo_user_cara", "Golden hour on the way home."),
    ("demo_user_dan", "Sunday hill climb complete."),
    ("demo_user_ella", "Tiny museum with huge energy."),
]

COMMENT_TEXTS: Sequence[str] = [
    "Love this!",
    "Great shot.",
    "Where was this taken?",
]

PLACEHOLDER_COLORS: Sequence[tuple[int, int, int]] = [
    (243, 189, 80),
    (109, 163, 224),
    (170, 128, 215),
    (90, 170, 120),
    (219, 121, 146),
]


def _build_follow_ring(external_ids: Sequence[str]) -> list[tuple[str, str]]:
    if len(external_ids) < 2:
        return []
    total = len(external_ids)
    return [
        (follower, external_ids[(index + 1) % total])
        for index, follower in enumerate(external_ids)
    ]


def build_seed_plan(users: Sequence[SeedUser] = BASE_USERS) -> SeedPlan:
    """Pure description of the demo dataset; touches neither DB nor storage."""
    external_ids = [user.external_id for user in users]
    known = set(external_ids)

    posts: list[SeedPost] = []
    for index, (external_id, caption) in enumerate(BASE_CAPTIONS):
        if external_id not in known:
            continue
        posts.append(
            SeedPost(
                external_id=external_id,
                object_key=f"posts/seed/{external_id}-{index + 1}.jpg",
                caption=caption,
            )
        )

    follows = _build_follow_ring(external_ids)

    # Each user likes and comments on the first post of the user they follow.
    first_post_by_author: dict[str, str] = {}
    for post in posts:
        first_post_by_author.setdefault(post.external_id, post.object_key)

    likes: list[tuple[str, str]] = []
    comments: list[SeedComment] = []
    for index, (follower, followee) in enumerate(follows):
        post_key = first_post_by_author.get(followee)
        if post_key is None:
            continue
        likes.append((follower, post_key))
        comments.append(
            SeedComment(
                external_id=follower,
                post_key=post_key,
                content=COMMENT_TEXTS[index % len(COMMENT_TEXTS)],
            )
        )

    return SeedPlan(
        users=list(users),
        posts=posts,
        follows=follows,
        likes=likes,
        comments=comments,
    )


def _build_placeholder_jpeg(seed_index: int) -> bytes:
    color = PLACEHOLDER_COLORS[seed_index % len(PLACEHOLDER_COLORS)]
    image = Image.new("RGB", (1080, 1080), color)
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=88)
    return buffer.getvalue()


def _object_exists(client, bucket_name: str, object_key: str) -> bool:
    try:
        client.stat_object(bucket_name, object_key)
        return True
    except S3Error as exc:
        if exc.code in {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}:
            return False
        raise


def ensure_seed_post_media(posts: Sequence[SeedPost]) -> None:
    """Best-effort media seeding so demo posts render immediately."""
    try:
        client = get_minio_client()
        ensure_bucket(client)
    except Exception as exc:
        print(f"⚠️ Could not initialize MinIO for seed media: {exc}")
        return

    bucket_name = settings.minio_bucket
    for index, post in enumerate(posts):
        try:
            if _object_exists(client, bucket_name, post.object_key):
                continue
            payload = _build_placeholder_jpeg(index)
            client.put_object(
                bucket_name,
                post.object_key,
                data=BytesIO(payload),
                length=len(payload),
                content_type="image/jpeg",
            )
        except Exception as exc:
            print(f"⚠️ Failed to seed media object '{post.object_key}': {exc}")


async def get_or_create_user(session, payload: SeedUser) -> User:
    result = await session.execute(
        select(User).where(_eq(User.external_id, payload.external_id))
    )
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(external_id=payload.external_id, name=payload.name)
    session.add(user)
    await session.flush()
    return user


async def ensure_posts(
    session,
    users: dict[str, User],
    posts: Sequence[SeedPost],
) -> dict[str, Post]:
    by_key: dict[str, Post] = {}
    for seed_post in posts:
        author = users[seed_post.external_id]
        image_url = build_public_url(seed_post.object_key)
        result = await session.execute(
            select(Post).where(
                _eq(Post.author_id, author.id),
                _eq(Post.image_url, image_url),
            )
        )
        post = result.scalar_one_or_none()
        if post is None:
            post = Post(author_id=author.id, image_url=image_url, caption=seed_post.caption)
            session.add(post)
            await session.flush()
        by_key[seed_post.object_key] = post
    return by_key


async def ensure_follows(
    session,
    users: dict[str, User],
    follows: Sequence[tuple[str, str]],
) -> None:
    for follower_external_id, followee_external_id in follows:
        follower = users[follower_external_id]
        followee = users[followee_external_id]
        result = await session.execute(
            select(Follow).where(
                _eq(Follow.follower_id, follower.id),
                _eq(Follow.followee_id, followee.id),
            )
        )
        if result.scalar_one_or_none():
            continue
        session.add(Follow(follower_id=follower.id, followee_id=followee.id))


async def ensure_likes(
    session,
    users: dict[str, User],
    posts: dict[str, Post],
    likes: Sequence[tuple[str, str]],
) -> None:
    for external_id, post_key in likes:
        user = users[external_id]
        post = posts[post_key]
        result = await session.execute(
            select(Like).where(
                _eq(Like.post_id, post.id),
                _eq(Like.user_id, user.id),
            )
        )
        if result.scalar_one_or_none():
            continue
        session.add(Like(post_id=post.id, user_id=user.id))


async def ensure_comments(
    session,
    users: dict[str, User],
    posts: dict[str, Post],
    comments: Sequence[SeedComment],
) -> None:
    for seed_comment in comments:
        author = users[seed_comment.external_id]
        post = posts[seed_comment.post_key]
        result = await session.execute(
            select(Comment).where(
                _eq(Comment.post_id, post.id),
                _eq(Comment.author_id, author.id),
                _eq(Comment.content, seed_comment.content),
            )
        )
        if result.scalar_one_or_none():
            continue
        session.add(
            Comment(post_id=post.id, author_id=author.id, content=seed_comment.content)
        )


async def seed() -> None:
    plan = build_seed_plan()
    ensure_seed_post_media(plan.posts)

    async with AsyncSessionMaker() as session:
        users: dict[str, User] = {}
        for payload in plan.users:
            user = await get_or_create_user(session, payload)
            users[user.external_id] = user

        posts = await ensure_posts(session, users, plan.posts)
        await ensure_follows(session, users, plan.follows)
        await ensure_likes(session, users, posts, plan.likes)
        await ensure_comments(session, users, posts, plan.comments)
        await session.commit()

    print("✅ Seed data inserted.")
    print("   Users:", ", ".join(user.external_id for user in plan.users))
    print("   Posts:", len(plan.posts))
    print("   Follows:", len(plan.follows))
    print("   Likes:", len(plan.likes))
    print("   Comments:", len(plan.comments))


if __name__ == "__main__":
    asyncio.run(seed())
