"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MessageSender(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    avatar_url: str | None = None


class MessageAttachmentRead(BaseModel):
    """Serialized representation of a stored attachment."""

    model_config = ConfigDict(from_attributes=True)

    public_id: str
    url: str


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    sender: MessageSender | None = None
    content: str
    attachments: list[MessageAttachmentRead] = Field(default_factory=list)
    created_at: datetime


class MessagePage(BaseModel):
    """One page of history, oldest message first."""

    messages: list[MessageRead]
    page: int
    total_pages: int
