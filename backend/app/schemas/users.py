"""Schemas related to user profiles and friend requests."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    avatar_url: str | None = None


class UserRead(PublicUser):
    """Detailed representation of the current user profile."""

    username: str
    bio: str
    created_at: datetime
    updated_at: datetime


class FriendRequestCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")


class FriendRequestAnswer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: int = Field(..., alias="requestId")
    accept: bool


class FriendRequestRead(BaseModel):
    """Pending request as shown to its receiver."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender: PublicUser
    created_at: datetime
