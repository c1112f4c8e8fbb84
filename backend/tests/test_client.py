"""Tests for the Python API client, feed loader and optimistic toggles."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from client import ApiError, FeedLoader, FollowToggle, LikeToggle, MinigramClient, OptimisticToggle
from core import create_session_token
from models import Post


@pytest_asyncio.fixture()
async def http_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def _api(http_client: AsyncClient, external_id: str | None = None) -> MinigramClient:
    token = create_session_token(external_id) if external_id else None
    return MinigramClient(session_token=token, http_client=http_client)


class StubFeedClient:
    """Serves canned feed pages and records the offsets requested."""

    def __init__(self, pages: list[dict[str, Any]], *, delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.calls: list[int] = []

    async def list_posts(self, *, limit: int, offset: int, user_id: str | None = None) -> dict[str, Any]:
        self.calls.append(offset)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.pages[len(self.calls) - 1]


def _page(ids: list[int], has_more: bool) -> dict[str, Any]:
    return {"data": [{"id": post_id} for post_id in ids], "count": len(ids), "hasMore": has_more}


@pytest.mark.asyncio
async def test_feed_loader_appends_unique_posts_and_tracks_offset():
    stub = StubFeedClient(
        [
            _page([5, 4], True),
            # A post created meanwhile shifts the window; 4 is served again.
            _page([4, 3], True),
            _page([2], False),
        ]
    )
    loader = FeedLoader(stub, page_size=2)  # type: ignore[arg-type]

    assert [post["id"] for post in await loader.load_more()] == [5, 4]
    assert [post["id"] for post in await loader.load_more()] == [3]
    assert [post["id"] for post in await loader.load_more()] == [2]
    assert [post["id"] for post in loader.posts] == [5, 4, 3, 2]
    assert stub.calls == [0, 2, 4]
    assert loader.has_more is False

    assert await loader.load_more() == []
    assert len(stub.calls) == 3


@pytest.mark.asyncio
async def test_feed_loader_ignores_overlapping_loads():
    stub = StubFeedClient([_page([1, 2], True), _page([3], False)], delay=0.01)
    loader = FeedLoader(stub, page_size=2)  # type: ignore[arg-type]

    first, second = await asyncio.gather(loader.load_more(), loader.load_more())

    assert [post["id"] for post in first] == [1, 2]
    assert second == []
    assert stub.calls == [0]
    assert loader.loading is False


@pytest.mark.asyncio
async def test_feed_loader_against_api(
    http_client: AsyncClient,
    db_session: AsyncSession,
    create_user,
):
    author = await create_user()
    db_session.add_all(
        [
            Post(author_id=author.id, image_url=f"http://media.test/uploads/posts/{index}.jpg")
            for index in range(12)
        ]
    )
    await db_session.commit()

    loader = FeedLoader(_api(http_client))
    await loader.load_more()
    assert len(loader.posts) == 10
    assert loader.has_more is True
    await loader.load_more()
    assert len(loader.posts) == 12
    assert loader.has_more is False


class FailingLikeClient:
    def __init__(self, *, error: Exception | None = None, body: dict[str, Any] | None = None) -> None:
        self.error = error
        self.body = body or {"success": False}
        self.calls = 0

    async def like(self, post_id: int) -> dict[str, Any]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.body

    async def unlike(self, post_id: int) -> dict[str, Any]:
        return await self.like(post_id)


@pytest.mark.asyncio
async def test_like_toggle_rolls_back_on_error_without_retry():
    stub = FailingLikeClient(error=ApiError(500, "Internal server error"))
    toggle = LikeToggle(stub, 1, liked=False, likes_count=3)  # type: ignore[arg-type]

    assert await toggle.toggle() is False
    assert toggle.active is False
    assert toggle.count == 3
    assert stub.calls == 1


@pytest.mark.asyncio
async def test_like_toggle_rolls_back_on_unsuccessful_body():
    stub = FailingLikeClient(body={"success": False})
    toggle = LikeToggle(stub, 1, liked=True, likes_count=1)  # type: ignore[arg-type]

    assert await toggle.toggle() is False
    assert (toggle.active, toggle.count) == (True, 1)


@pytest.mark.asyncio
async def test_like_toggle_against_api(
    http_client: AsyncClient,
    db_session: AsyncSession,
    create_user,
):
    author = await create_user()
    fan = await create_user()
    post = Post(author_id=author.id, image_url="http://media.test/uploads/posts/p.jpg")
    db_session.add(post)
    await db_session.commit()
    await db_session.refresh(post)

    api = _api(http_client, fan.external_id)
    toggle = LikeToggle(api, post.id, liked=False, likes_count=0)

    assert await toggle.toggle() is True
    assert (toggle.active, toggle.count) == (True, 1)
    assert await api.like_status(post.id) is True

    # A stale toggle that still believes the post is unliked hits 409 and rolls back.
    stale = LikeToggle(api, post.id, liked=False, likes_count=0)
    assert await stale.toggle() is False
    assert (stale.active, stale.count) == (False, 0)

    assert await toggle.toggle() is True
    assert (toggle.active, toggle.count) == (False, 0)
    assert await api.like_status(post.id) is False


@pytest.mark.asyncio
async def test_follow_toggle_self_follow_rolls_back(http_client: AsyncClient, create_user):
    user = await create_user()
    api = _api(http_client, user.external_id)
    toggle = FollowToggle(api, user.id, following=False, followers_count=0)

    assert await toggle.toggle() is False
    assert (toggle.active, toggle.count) == (False, 0)


@pytest.mark.asyncio
async def test_client_raises_api_error_with_server_message(http_client: AsyncClient):
    api = _api(http_client)

    with pytest.raises(ApiError) as exc_info:
        await api.get_post(123456)
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Post not found"

    with pytest.raises(ApiError) as unauthorized:
        await api.like(1)
    assert unauthorized.value.status_code == 401


@pytest.mark.asyncio
async def test_client_round_trip_for_profile_and_search(
    http_client: AsyncClient,
    image_bytes,
    dummy_minio,
):
    api = _api(http_client, "user_client_flow")
    synced = await api.sync_user()
    user_id = synced["user"]["id"]

    await api.update_user(user_id, name="Client Flow")
    created = await api.create_post(image_bytes(), filename="shot.png", content_type="image/png", caption="client caption")
    post_id = created["post"]["id"]

    comment = await api.add_comment(post_id, "from the client")
    comments = await api.list_comments(post_id)
    assert comments["data"][0]["id"] == comment["comment"]["id"]

    results = await api.search("client")
    assert [user["id"] for user in results["users"]] == [user_id]
    assert [post["id"] for post in results["posts"]] == [post_id]

    profile = await api.get_user("user_client_flow")
    assert profile["posts_count"] == 1

    await api.delete_comment(comment["comment"]["id"])
    await api.delete_post(post_id)
    assert (await api.list_posts())["count"] == 0


def test_optimistic_toggle_requires_concrete_transitions():
    with pytest.raises(TypeError):
        OptimisticToggle(FailingLikeClient(), active=False)  # type: ignore[abstract, arg-type]
