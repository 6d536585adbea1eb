"""FastAPI dependencies for the API layer."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from starlette.requests import HTTPConnection

from app.config import get_settings
from app.core.security import ADMIN_SCOPE, decode_access_token
from app.database import get_db, get_session_factory
from app.models import Chat, ChatMember, User
from app.services import SqlChatStore, TokenSessionVerifier
from parley.realtime.hub import RealtimeHub

settings = get_settings()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/user/login", auto_error=False)


def get_current_user(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the session cookie or a bearer token."""

    token = request.cookies.get(settings.auth_cookie_name) or token
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please login to access this route",
        )
    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve a user from a JWT token or raise an HTTP 401 error."""

    payload = decode_access_token(token)
    sub = payload.get("sub")
    if sub is None or payload.get("scope") is not None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user


def require_admin(request: Request) -> None:
    """Allow only holders of a valid admin cookie."""

    token = request.cookies.get(settings.admin_cookie_name)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Only admin can access this route",
        )
    payload = decode_access_token(token)
    if payload.get("scope") != ADMIN_SCOPE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Only admin can access this route",
        )


def get_chat_or_404(chat_id: int, db: Session) -> Chat:
    chat = db.get(Chat, chat_id)
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


def is_chat_member(chat_id: int, user_id: int, db: Session) -> bool:
    stmt = select(ChatMember.id).where(
        ChatMember.chat_id == chat_id,
        ChatMember.user_id == user_id,
    )
    return db.execute(stmt).scalar_one_or_none() is not None


def require_chat_member(chat_id: int, user_id: int, db: Session) -> Chat:
    """Return the chat if the user belongs to it, raising HTTP 404/403 otherwise."""

    chat = get_chat_or_404(chat_id, db)
    if not is_chat_member(chat.id, user_id, db):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this chat",
        )
    return chat


def get_realtime_hub(connection: HTTPConnection) -> RealtimeHub:
    hub = getattr(connection.app.state, "realtime", None)
    if hub is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime service is not running",
        )
    return hub


def get_chat_store(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> SqlChatStore:
    return SqlChatStore(session_factory)


def get_session_verifier(store: SqlChatStore = Depends(get_chat_store)) -> TokenSessionVerifier:
    return TokenSessionVerifier(store)
