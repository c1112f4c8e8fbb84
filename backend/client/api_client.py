"""Async HTTP client for the v1 API."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class ApiError(Exception):
    """Non-2xx response; ``message`` is the server's ``error`` text."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "Request failed"
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return response.reason_phrase or "Request failed"


class MinigramClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        session_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.session_token = session_token

    async def __aenter__(self) -> "MinigramClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.session_token:
            return {}
        return {"Authorization": f"Bearer {self.session_token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._http.request(
            method,
            f"{API_PREFIX}{path}",
            headers=self._headers(),
            **kwargs,
        )
        if response.is_error:
            message = _error_message(response)
            logger.debug(
                "API request failed",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise ApiError(response.status_code, message)
        return response.json()

    # Posts

    async def list_posts(
        self,
        *,
        limit: int = 10,
        offset: int = 0,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if user_id is not None:
            params["userId"] = user_id
        return await self._request("GET", "/posts", params=params)

    async def get_post(self, post_id: int) -> dict[str, Any]:
        body = await self._request("GET", f"/posts/{post_id}")
        return body["data"]

    async def create_post(
        self,
        image: bytes,
        *,
        filename: str = "image.jpg",
        content_type: str = "image/jpeg",
        caption: str | None = None,
    ) -> dict[str, Any]:
        data = {"caption": caption} if caption is not None else None
        return await self._request(
            "POST",
            "/posts",
            files={"image": (filename, image, content_type)},
            data=data,
        )

    async def delete_post(self, post_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"/posts/{post_id}")

    # Comments

    async def list_comments(self, post_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/comments/{post_id}")

    async def add_comment(self, post_id: int, content: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/comments",
            json={"postId": post_id, "content": content},
        )

    async def delete_comment(self, comment_id: int) -> dict[str, Any]:
        return await self._request("DELETE", "/comments", json={"commentId": comment_id})

    # Likes

    async def like(self, post_id: int) -> dict[str, Any]:
        return await self._request("POST", "/likes", json={"postId": post_id})

    async def unlike(self, post_id: int) -> dict[str, Any]:
        return await self._request("DELETE", "/likes", json={"postId": post_id})

    async def like_status(self, post_id: int) -> bool:
        body = await self._request("GET", f"/likes/{post_id}")
        return bool(body.get("liked"))

    # Follows

    async def follow(self, user_id: str) -> dict[str, Any]:
        return await self._request("POST", "/follows", json={"followingId": user_id})

    async def unfollow(self, user_id: str) -> dict[str, Any]:
        return await self._request("DELETE", "/follows", json={"followingId": user_id})

    async def follow_status(self, user_id: str) -> bool:
        body = await self._request("GET", f"/follows/{user_id}")
        return bool(body.get("following"))

    # Users

    async def sync_user(self) -> dict[str, Any]:
        return await self._request("POST", "/users/sync")

    async def get_user(self, user_id: str) -> dict[str, Any]:
        body = await self._request("GET", f"/users/{user_id}")
        return body["user"]

    async def update_user(self, user_id: str, *, name: str) -> dict[str, Any]:
        return await self._request("PUT", f"/users/{user_id}", json={"name": name})

    async def upload_avatar(
        self,
        user_id: str,
        image: bytes,
        *,
        filename: str = "avatar.jpg",
        content_type: str = "image/jpeg",
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/users/{user_id}/upload-image",
            files={"image": (filename, image, content_type)},
        )

    # Search

    async def search(
        self,
        query: str,
        *,
        type: str = "all",
        limit: int = 20,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/search",
            params={"q": query, "type": type, "limit": limit},
        )
