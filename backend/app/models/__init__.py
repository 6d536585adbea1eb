"""Database models package."""

from .base import Base
from .chat import Chat, ChatMember, FriendRequest, Message, MessageAttachment, User
from .enums import FriendRequestStatus

__all__ = [
    "Base",
    "User",
    "Chat",
    "ChatMember",
    "Message",
    "MessageAttachment",
    "FriendRequest",
    "FriendRequestStatus",
]
