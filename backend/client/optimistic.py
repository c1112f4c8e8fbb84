"""Optimistic like/follow toggles with rollback on failure."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from .api_client import ApiError, MinigramClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToggleState:
    active: bool
    count: int


class OptimisticToggle(ABC):
    """Flip local state first, then confirm it with the server.

    The state captured before the flip is restored when the call raises or
    the server answers without ``success``. There is no retry.
    """

    def __init__(self, client: MinigramClient, *, active: bool, count: int = 0) -> None:
        self.client = client
        self.state = ToggleState(active=active, count=count)

    @property
    def active(self) -> bool:
        return self.state.active

    @property
    def count(self) -> int:
        return self.state.count

    @abstractmethod
    async def _activate(self) -> dict[str, Any]: ...

    @abstractmethod
    async def _deactivate(self) -> dict[str, Any]: ...

    async def toggle(self) -> bool:
        """Apply the transition; return False when it was rolled back."""
        snapshot = ToggleState(active=self.state.active, count=self.state.count)
        target = not snapshot.active
        self.state = ToggleState(
            active=target,
            count=max(snapshot.count + (1 if target else -1), 0),
        )

        try:
            body = await (self._activate() if target else self._deactivate())
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning(
                "Optimistic update failed; rolling back",
                extra={"toggle": type(self).__name__, "target": target},
                exc_info=exc,
            )
            self.state = snapshot
            return False

        if not body.get("success"):
            logger.warning(
                "Server rejected optimistic update; rolling back",
                extra={"toggle": type(self).__name__, "target": target},
            )
            self.state = snapshot
            return False
        return True


class LikeToggle(OptimisticToggle):
    def __init__(
        self,
        client: MinigramClient,
        post_id: int,
        *,
        liked: bool,
        likes_count: int = 0,
    ) -> None:
        super().__init__(client, active=liked, count=likes_count)
        self.post_id = post_id

    async def _activate(self) -> dict[str, Any]:
        return await self.client.like(self.post_id)

    async def _deactivate(self) -> dict[str, Any]:
        return await self.client.unlike(self.post_id)


class FollowToggle(OptimisticToggle):
    def __init__(
        self,
        client: MinigramClient,
        user_id: str,
        *,
        following: bool,
        followers_count: int = 0,
    ) -> None:
        super().__init__(client, active=following, count=followers_count)
        self.user_id = user_id

    async def _activate(self) -> dict[str, Any]:
        return await self.client.follow(self.user_id)

    async def _deactivate(self) -> dict[str, Any]:
        return await self.client.unfollow(self.user_id)
