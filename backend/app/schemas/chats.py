"""Schemas for chat management endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr

from app.schemas.users import PublicUser


class ChatCreate(BaseModel):
    """Payload for creating a group chat."""

    name: constr(strip_whitespace=True, min_length=1, max_length=255)
    members: list[int] = Field(..., min_length=1, max_length=100)


class ChatMembersAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: int = Field(..., alias="chatId")
    members: list[int] = Field(..., min_length=1, max_length=100)


class ChatMemberRemove(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: int = Field(..., alias="chatId")
    user_id: int = Field(..., alias="userId")


class ChatRename(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=255)


class ChatSummary(BaseModel):
    """Entry in the caller's chat list."""

    id: int
    name: str
    is_group: bool
    avatars: list[str] = Field(default_factory=list)
    members: list[int] = Field(default_factory=list, description="Member ids other than the caller")


class GroupSummary(BaseModel):
    id: int
    name: str
    is_group: bool = True
    avatars: list[str] = Field(default_factory=list)


class ChatDetail(BaseModel):
    """Chat with its members either as ids or populated."""

    id: int
    name: str
    is_group: bool
    creator_id: int | None
    members: list[int] | list[PublicUser]
    created_at: datetime
    updated_at: datetime
