"""Schemas for the read-only admin dashboard."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.messages import MessageAttachmentRead
from app.schemas.users import PublicUser


class DashboardCounts(BaseModel):
    groups_count: int
    user_count: int
    messages_count: int
    chat_count: int


class RecentMessage(BaseModel):
    id: int
    content: str
    sender: PublicUser | None
    chat_name: str
    is_group: bool
    created_at: datetime


class AdminOverview(BaseModel):
    stats: DashboardCounts
    recent_messages: list[RecentMessage]


class AdminUserRow(PublicUser):
    username: str
    groups: int
    friends: int


class AdminChatRow(BaseModel):
    id: int
    name: str
    is_group: bool
    avatars: list[str] = Field(default_factory=list)
    members: list[PublicUser]
    creator: PublicUser | None
    total_members: int
    total_messages: int


class AdminMessageRow(BaseModel):
    id: int
    content: str
    attachments: list[MessageAttachmentRead]
    created_at: datetime
    chat_id: int
    is_group: bool
    sender: PublicUser | None


class DashboardStats(DashboardCounts):
    messages_chart: list[int] = Field(..., description="Messages per day for the last 7 days, oldest first")
