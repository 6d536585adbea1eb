"""Application service helpers."""

from .chat_store import SqlChatStore, persist_message
from .notifications import notify
from .sessions import TokenSessionVerifier

__all__ = ["SqlChatStore", "TokenSessionVerifier", "notify", "persist_message"]
