"""SQLModel models package."""

from .comment import MAX_COMMENT_LENGTH, Comment
from .follow import Follow
from .like import Like
from .post import MAX_CAPTION_LENGTH, Post
from .user import MAX_DISPLAY_NAME_LENGTH, User

__all__ = [
    "User",
    "Post",
    "Like",
    "Comment",
    "Follow",
    "MAX_CAPTION_LENGTH",
    "MAX_COMMENT_LENGTH",
    "MAX_DISPLAY_NAME_LENGTH",
]
