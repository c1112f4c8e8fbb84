"""Python client for the Minigram HTTP API."""

from .api_client import ApiError, MinigramClient
from .feed_loader import DEFAULT_FEED_PAGE_SIZE, FeedLoader
from .optimistic import FollowToggle, LikeToggle, OptimisticToggle, ToggleState

__all__ = [
    "ApiError",
    "MinigramClient",
    "FeedLoader",
    "DEFAULT_FEED_PAGE_SIZE",
    "OptimisticToggle",
    "LikeToggle",
    "FollowToggle",
    "ToggleState",
]
