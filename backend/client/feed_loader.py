"""Incremental feed pagination for infinite-scroll style consumers."""

from __future__ import annotations

import logging
from typing import Any

from .api_client import MinigramClient

logger = logging.getLogger(__name__)

DEFAULT_FEED_PAGE_SIZE = 10


class FeedLoader:
    """Accumulates feed pages, ignoring overlapping loads and duplicate posts.

    ``loading`` is a re-entrancy guard, not a lock: a ``load_more()`` issued
    while another is awaiting its response returns immediately with nothing.
    """

    def __init__(
        self,
        client: MinigramClient,
        *,
        page_size: int = DEFAULT_FEED_PAGE_SIZE,
        user_id: str | None = None,
    ) -> None:
        self.client = client
        self.page_size = page_size
        self.user_id = user_id
        self.posts: list[dict[str, Any]] = []
        self.offset = 0
        self.has_more = True
        self.loading = False
        self._seen_ids: set[int] = set()

    async def load_more(self) -> list[dict[str, Any]]:
        """Fetch the next page and return the posts that were newly appended."""
        if self.loading or not self.has_more:
            return []

        self.loading = True
        try:
            page = await self.client.list_posts(
                limit=self.page_size,
                offset=self.offset,
                user_id=self.user_id,
            )
        finally:
            self.loading = False

        data: list[dict[str, Any]] = page.get("data", [])
        appended = [post for post in data if post["id"] not in self._seen_ids]
        self._seen_ids.update(post["id"] for post in appended)
        self.posts.extend(appended)
        self.offset += len(data)
        self.has_more = bool(page.get("hasMore")) or len(data) >= self.page_size
        if not data:
            self.has_more = False
        logger.debug(
            "Loaded feed page",
            extra={"offset": self.offset, "appended": len(appended), "has_more": self.has_more},
        )
        return appended

    def reset(self) -> None:
        self.posts = []
        self.offset = 0
        self.has_more = True
        self._seen_ids.clear()
