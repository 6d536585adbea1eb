"""Pydantic schemas for API payloads."""

from .admin import (
    AdminChatRow,
    AdminMessageRow,
    AdminOverview,
    AdminUserRow,
    DashboardCounts,
    DashboardStats,
    RecentMessage,
)
from .auth import AdminVerifyRequest, AuthResponse, LoginRequest, StatusMessage
from .chats import ChatCreate, ChatDetail, ChatMemberRemove, ChatMembersAdd, ChatRename, ChatSummary, GroupSummary
from .messages import MessageAttachmentRead, MessagePage, MessageRead, MessageSender
from .users import FriendRequestAnswer, FriendRequestCreate, FriendRequestRead, PublicUser, UserRead

__all__ = [
    "AdminChatRow",
    "AdminMessageRow",
    "AdminOverview",
    "AdminUserRow",
    "AdminVerifyRequest",
    "AuthResponse",
    "ChatCreate",
    "ChatDetail",
    "ChatMemberRemove",
    "ChatMembersAdd",
    "ChatRename",
    "ChatSummary",
    "DashboardCounts",
    "DashboardStats",
    "FriendRequestAnswer",
    "FriendRequestCreate",
    "FriendRequestRead",
    "GroupSummary",
    "LoginRequest",
    "MessageAttachmentRead",
    "MessagePage",
    "MessageRead",
    "MessageSender",
    "PublicUser",
    "RecentMessage",
    "StatusMessage",
    "UserRead",
]
