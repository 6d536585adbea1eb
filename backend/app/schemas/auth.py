"""Schemas for authentication endpoints."""

from pydantic import BaseModel, ConfigDict, Field, constr

from app.schemas.users import UserRead


class LoginRequest(BaseModel):
    """Payload for user login."""

    username: constr(strip_whitespace=True, min_length=1, max_length=64) = Field(..., description="User name")
    password: constr(min_length=1, max_length=128) = Field(..., description="User password")


class AuthResponse(BaseModel):
    """Session issued after registration or login."""

    message: str
    user: UserRead
    access_token: str = Field(..., description="JWT access token, also set as an HttpOnly cookie")
    token_type: str = Field(default="bearer", description="Token type, always 'bearer'")


class AdminVerifyRequest(BaseModel):
    """Payload for unlocking the admin dashboard."""

    model_config = ConfigDict(populate_by_name=True)

    secret_key: constr(min_length=1) = Field(..., alias="secretKey")


class StatusMessage(BaseModel):
    """Plain acknowledgement returned by mutating endpoints."""

    message: str
