"""Fixed-window request throttling backed by Redis."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import Callable, Iterable, Iterator, Protocol, runtime_checkable

from fastapi import status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.types import ASGIApp

from core import decode_session_token, settings

logger = logging.getLogger(__name__)

ANONYMOUS_CLIENT = "anonymous"
TOO_MANY_REQUESTS_MESSAGE = "Too Many Requests"


@runtime_checkable
class SupportsRateLimitClient(Protocol):
    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> None: ...


@lru_cache
def _trusted_proxy_networks() -> tuple[IPv4Network | IPv6Network, ...]:
    networks: list[IPv4Network | IPv6Network] = []
    for cidr in settings.rate_limit_trusted_proxies:
        try:
            networks.append(ip_network(cidr, strict=False))
        except ValueError as exc:  # pragma: no cover - invalid configuration
            raise ValueError(f"Invalid CIDR in RATE_LIMIT_TRUSTED_PROXIES: {cidr}") from exc
    return tuple(networks)


def _session_tokens(request: Request) -> Iterator[str]:
    scheme, _, value = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        yield value.strip()
    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        yield cookie


def _session_subject(request: Request) -> str | None:
    for token in _session_tokens(request):
        try:
            claims = decode_session_token(token)
        except ValueError:
            continue
        subject = claims["sub"].strip()
        if subject:
            return subject
    return None


def _forwarded_ip(request: Request) -> str | None:
    """First syntactically valid address across the configured forwarding headers."""
    for header in settings.rate_limit_ip_headers:
        for candidate in request.headers.get(header, "").split(","):
            candidate = candidate.strip()
            if not candidate:
                continue
            try:
                ip_address(candidate)
            except ValueError:
                continue
            return candidate
    return None


def _from_trusted_proxy(host: str) -> bool:
    try:
        peer = ip_address(host)
    except ValueError:
        return False
    return any(peer in network for network in _trusted_proxy_networks())


def default_client_identifier(request: Request) -> str:
    """``user:<external id>`` for signed-in callers, otherwise the client IP."""
    subject = _session_subject(request)
    if subject is not None:
        return f"user:{subject}"

    host = request.client.host if request.client else None
    if not host:
        return ANONYMOUS_CLIENT
    # Forwarding headers are only believed when the peer is one of our proxies.
    if _from_trusted_proxy(host):
        return _forwarded_ip(request) or host
    return host


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0


class RateLimiter:
    """Counts requests per client in fixed windows of ``window_seconds``.

    A limit or window of zero disables throttling entirely.
    """

    def __init__(
        self,
        redis_client: SupportsRateLimitClient,
        limit: int,
        window_seconds: int,
        prefix: str = "rate-limit",
    ) -> None:
        self.redis = redis_client
        self.limit = max(limit, 0)
        self.window_seconds = max(window_seconds, 0)
        self.prefix = prefix

    @property
    def enabled(self) -> bool:
        return self.limit > 0 and self.window_seconds > 0

    async def check(self, key: str, now: float | None = None) -> RateLimitDecision:
        if not self.enabled:
            return RateLimitDecision(allowed=True)

        now = time.time() if now is None else now
        window = int(now) // self.window_seconds
        redis_key = f"{self.prefix}:{key}:{window}"

        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, self.window_seconds)
        if count <= self.limit:
            return RateLimitDecision(allowed=True)

        window_end = (window + 1) * self.window_seconds
        return RateLimitDecision(allowed=False, retry_after=max(int(window_end - now), 1))

    async def allow(self, key: str) -> bool:
        return (await self.check(key)).allowed


@lru_cache
def get_redis_client() -> SupportsRateLimitClient:
    return Redis.from_url(settings.redis_url, decode_responses=False)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter built from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(
            redis_client=get_redis_client(),
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _rate_limiter


def set_rate_limiter(limiter: RateLimiter | None) -> None:
    """Swap the process-wide limiter; ``None`` rebuilds it from settings."""
    global _rate_limiter
    _rate_limiter = limiter


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        limiter_factory: Callable[[], RateLimiter],
        exempt_paths: Iterable[str] | None = None,
        client_identifier: Callable[[Request], str] | None = None,
    ) -> None:
        super().__init__(app)
        self.limiter_factory = limiter_factory
        self.exempt_paths = frozenset(exempt_paths or ())
        self.client_identifier = client_identifier or default_client_identifier

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client_key = self.client_identifier(request) or ANONYMOUS_CLIENT
        try:
            decision = await self.limiter_factory().check(client_key)
        except (RedisError, OSError):
            logger.warning(
                "Rate limiter unavailable; allowing request",
                extra={"client_key": client_key, "path": request.url.path},
                exc_info=True,
            )
            return await call_next(request)

        if not decision.allowed:
            logger.info(
                "Request throttled",
                extra={"client_key": client_key, "path": request.url.path},
            )
            return JSONResponse(
                {"error": TOO_MANY_REQUESTS_MESSAGE},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={"Retry-After": str(decision.retry_after)},
            )

        return await call_next(request)
