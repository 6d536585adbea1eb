"""Security helpers for password hashing, tokens and auth cookies."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import HTTPException, Response, status
from passlib.context import CryptContext

from app.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ADMIN_SCOPE = "admin"


class TokenError(Exception):
    """Raised when a token cannot be decoded or has expired."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hashed counterpart."""

    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storing in the database."""

    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token with an expiration time."""

    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def read_token_claims(token: str) -> Dict[str, Any]:
    """Decode a token, raising ``TokenError`` instead of an HTTP error."""

    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("Could not validate credentials") from exc


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT access token."""

    try:
        return read_token_claims(token)
    except TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


def _set_cookie(response: Response, key: str, token: str, ttl_seconds: int) -> None:
    response.set_cookie(
        key=key,
        value=token,
        max_age=ttl_seconds,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
    )


def set_auth_cookie(response: Response, token: str) -> None:
    """Attach the session token to an HTTP-only cookie."""

    _set_cookie(response, settings.auth_cookie_name, token, settings.access_token_expire_minutes * 60)


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.auth_cookie_name,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
    )


def verify_admin_secret(candidate: str) -> bool:
    """Compare a submitted admin key against the configured one in constant time."""

    return secrets.compare_digest(candidate.encode("utf-8"), settings.admin_secret_key.encode("utf-8"))


def create_admin_token() -> str:
    return create_access_token(
        {"sub": ADMIN_SCOPE, "scope": ADMIN_SCOPE},
        expires_delta=timedelta(minutes=settings.admin_token_expire_minutes),
    )


def set_admin_cookie(response: Response, token: str) -> None:
    _set_cookie(response, settings.admin_cookie_name, token, settings.admin_token_expire_minutes * 60)


def clear_admin_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.admin_cookie_name,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
    )
