"""Core configuration and security helpers."""

from .config import Settings, settings
from .logging import configure_logging
from .security import create_session_token, decode_session_token

__all__ = [
    "Settings",
    "settings",
    "configure_logging",
    "create_session_token",
    "decode_session_token",
]
