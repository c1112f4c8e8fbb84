"""Tests for the Redis-backed rate limiter middleware."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from core import create_session_token
from core.config import settings
from services import RateLimiter, set_rate_limiter
from services import rate_limiter as rate_limiter_module
from services.rate_limiter import default_client_identifier


class InMemoryRedis:
    def __init__(self) -> None:
        self.data: dict[str, int] = {}
        self.expirations: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        value = self.data.get(key, 0) + 1
        self.data[key] = value
        return value

    async def expire(self, key: str, ttl: int) -> None:
        self.expirations[key] = ttl


class BrokenRedis:
    async def incr(self, key: str) -> int:
        raise RedisConnectionError("redis is down")

    async def expire(self, key: str, ttl: int) -> None:  # pragma: no cover - never reached
        return None


def _build_request(
    *,
    cookie_header: str | None = None,
    authorization: str | None = None,
    forwarded_for: str | None = None,
    client_host: str = "10.0.0.12",
) -> Request:
    headers: list[tuple[bytes, bytes]] = []
    if cookie_header is not None:
        headers.append((b"cookie", cookie_header.encode("ascii")))
    if authorization is not None:
        headers.append((b"authorization", authorization.encode("ascii")))
    if forwarded_for is not None:
        headers.append((b"x-forwarded-for", forwarded_for.encode("ascii")))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": headers,
        "query_string": b"",
        "client": (client_host, 1234),
        "app": None,
    }
    return Request(scope)


@pytest.fixture()
def trusted_proxies(monkeypatch: pytest.MonkeyPatch):
    rate_limiter_module._trusted_proxy_networks.cache_clear()
    monkeypatch.setattr(settings, "rate_limit_trusted_proxies", ["127.0.0.0/8"])
    yield
    rate_limiter_module._trusted_proxy_networks.cache_clear()


def test_default_client_identifier_uses_bearer_token() -> None:
    token = create_session_token("user_bearer")
    request = _build_request(authorization=f"Bearer {token}")

    assert default_client_identifier(request) == "user:user_bearer"


def test_default_client_identifier_uses_session_cookie() -> None:
    token = create_session_token("user_cookie")
    request = _build_request(cookie_header=f"{settings.session_cookie_name}={token}")

    assert default_client_identifier(request) == "user:user_cookie"


def test_default_client_identifier_falls_back_to_remote_ip_for_bad_tokens() -> None:
    request = _build_request(authorization="Bearer nonsense")

    assert default_client_identifier(request) == "10.0.0.12"


def test_forwarded_ip_is_ignored_from_untrusted_peers() -> None:
    request = _build_request(forwarded_for="203.0.113.9", client_host="10.0.0.12")

    assert default_client_identifier(request) == "10.0.0.12"


def test_forwarded_ip_is_used_from_trusted_proxies(trusted_proxies) -> None:
    request = _build_request(forwarded_for="not-an-ip, 203.0.113.9", client_host="127.0.0.1")

    assert default_client_identifier(request) == "203.0.113.9"


@pytest.mark.asyncio
async def test_rate_limiter_sets_window_expiry_once() -> None:
    redis = InMemoryRedis()
    limiter = RateLimiter(redis, limit=5, window_seconds=30)

    assert await limiter.allow("client") is True
    assert await limiter.allow("client") is True
    assert list(redis.expirations.values()) == [30]


@pytest.mark.asyncio
async def test_rate_limiter_reports_seconds_left_in_window() -> None:
    limiter = RateLimiter(InMemoryRedis(), limit=1, window_seconds=60)

    first = await limiter.check("client", now=120.0)
    second = await limiter.check("client", now=135.5)
    next_window = await limiter.check("client", now=180.0)

    assert first.allowed is True
    assert second.allowed is False
    assert second.retry_after == 44
    assert next_window.allowed is True


@pytest.mark.asyncio
async def test_rate_limiter_blocks_after_threshold(async_client: AsyncClient) -> None:
    set_rate_limiter(RateLimiter(InMemoryRedis(), limit=2, window_seconds=60))

    first = await async_client.get("/api/v1/posts")
    second = await async_client.get("/api/v1/posts")
    third = await async_client.get("/api/v1/posts")

    assert first.status_code == 200
    assert second.status_code == 200
    assert third.status_code == 429
    assert third.json() == {"error": "Too Many Requests"}
    assert 1 <= int(third.headers["retry-after"]) <= 60


@pytest.mark.asyncio
async def test_health_is_exempt(async_client: AsyncClient) -> None:
    set_rate_limiter(RateLimiter(InMemoryRedis(), limit=1, window_seconds=60))

    for _ in range(3):
        response = await async_client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_limits_are_tracked_per_identity(async_client: AsyncClient) -> None:
    set_rate_limiter(RateLimiter(InMemoryRedis(), limit=1, window_seconds=60))
    alice = {"Authorization": f"Bearer {create_session_token('user_alice')}"}
    bob = {"Authorization": f"Bearer {create_session_token('user_bob')}"}

    assert (await async_client.get("/api/v1/posts", headers=alice)).status_code == 200
    assert (await async_client.get("/api/v1/posts", headers=alice)).status_code == 429
    assert (await async_client.get("/api/v1/posts", headers=bob)).status_code == 200


@pytest.mark.asyncio
async def test_rate_limiter_can_be_disabled(async_client: AsyncClient) -> None:
    set_rate_limiter(RateLimiter(InMemoryRedis(), limit=0, window_seconds=60))

    for _ in range(5):
        response = await async_client.get("/api/v1/posts")
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_redis_outage_fails_open(async_client: AsyncClient) -> None:
    set_rate_limiter(RateLimiter(BrokenRedis(), limit=1, window_seconds=60))

    for _ in range(3):
        response = await async_client.get("/api/v1/posts")
        assert response.status_code == 200
