"""User accounts, search and friend requests."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_chat_or_404, get_current_user, get_realtime_hub
from app.config import get_settings
from app.core.security import (
    clear_auth_cookie,
    create_access_token,
    get_password_hash,
    set_auth_cookie,
    verify_password,
)
from app.core.storage import delete_blobs, store_blob
from app.database import get_db
from app.models import Chat, ChatMember, FriendRequest, FriendRequestStatus, User
from app.schemas import (
    AuthResponse,
    FriendRequestAnswer,
    FriendRequestCreate,
    FriendRequestRead,
    LoginRequest,
    PublicUser,
    StatusMessage,
    UserRead,
)
from app.services import notify
from parley.realtime.events import friend_request_event, refetch_event
from parley.realtime.hub import RealtimeHub

router = APIRouter()
settings = get_settings()

logger = logging.getLogger(__name__)


def _issue_session(response: Response, user: User, message: str) -> AuthResponse:
    token = create_access_token({"sub": str(user.id)})
    set_auth_cookie(response, token)
    return AuthResponse(message=message, user=UserRead.model_validate(user), access_token=token)


def direct_chats_for(user_id: int, db: Session) -> list[Chat]:
    """Return every one-to-one chat the user takes part in."""

    stmt = (
        select(Chat)
        .join(ChatMember, ChatMember.chat_id == Chat.id)
        .where(Chat.is_group.is_(False), ChatMember.user_id == user_id)
        .options(selectinload(Chat.members).selectinload(ChatMember.user))
        .order_by(Chat.id)
    )
    return list(db.execute(stmt).scalars().unique())


def other_member(chat: Chat, user_id: int) -> User | None:
    for membership in chat.members:
        if membership.user_id != user_id:
            return membership.user
    return None


@router.post("/new", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    response: Response,
    name: str = Form(..., min_length=1, max_length=128),
    username: str = Form(..., min_length=1, max_length=64),
    password: str = Form(..., min_length=1, max_length=128),
    bio: str = Form(..., min_length=1, max_length=512),
    avatar: UploadFile = File(...),
    db: Session = Depends(get_db),
) -> AuthResponse:
    """Register a new user with an avatar and open a session."""

    username = username.strip()
    existing = db.execute(select(User.id).where(User.username == username)).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")

    stored = await store_blob(avatar, "avatars", images_only=True)
    user = User(
        name=name.strip(),
        username=username,
        bio=bio.strip(),
        hashed_password=get_password_hash(password),
        avatar_public_id=stored.public_id,
        avatar_url=stored.url,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        delete_blobs([stored.public_id])
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return _issue_session(response, user, "User created")


@router.post("/login", response_model=AuthResponse)
def login_user(credentials: LoginRequest, response: Response, db: Session = Depends(get_db)) -> AuthResponse:
    """Authenticate a user by username and password."""

    user = db.execute(select(User).where(User.username == credentials.username)).scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username")
    if not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")
    return _issue_session(response, user, f"Welcome back, {user.name}")


@router.get("/profile", response_model=UserRead)
def read_profile(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.get("/logout", response_model=StatusMessage)
def logout_user(response: Response, current_user: User = Depends(get_current_user)) -> StatusMessage:
    clear_auth_cookie(response)
    return StatusMessage(message="Logged out successfully")


@router.get("/search", response_model=list[PublicUser])
def search_users(
    name: str = Query(default="", max_length=128),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[User]:
    """Find users by name that the caller has no direct chat with yet."""

    excluded = {current_user.id}
    for chat in direct_chats_for(current_user.id, db):
        excluded.update(chat.member_ids)

    stmt = select(User).where(User.id.not_in(excluded)).order_by(User.name, User.id)
    if name:
        stmt = stmt.where(func.lower(User.name).contains(name.lower(), autoescape=True))
    return list(db.execute(stmt).scalars())


@router.put("/sendrequest", response_model=StatusMessage)
def send_friend_request(
    payload: FriendRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    """Ask another user to open a direct chat."""

    if payload.user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot send a request to yourself")
    receiver = db.get(User, payload.user_id)
    if receiver is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    existing = db.execute(
        select(FriendRequest.id).where(
            or_(
                and_(FriendRequest.sender_id == current_user.id, FriendRequest.receiver_id == receiver.id),
                and_(FriendRequest.sender_id == receiver.id, FriendRequest.receiver_id == current_user.id),
            )
        )
    ).first()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request already sent")
    if any(receiver.id in chat.member_ids for chat in direct_chats_for(current_user.id, db)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already friends")

    request = FriendRequest(sender_id=current_user.id, receiver_id=receiver.id)
    db.add(request)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request already sent")
    db.refresh(request)

    notify(hub, [receiver.id], friend_request_event(str(request.id), str(current_user.id)))
    return StatusMessage(message="Request sent successfully")


@router.get("/getnotify", response_model=list[FriendRequestRead])
def list_friend_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[FriendRequest]:
    stmt = (
        select(FriendRequest)
        .where(
            FriendRequest.receiver_id == current_user.id,
            FriendRequest.status == FriendRequestStatus.PENDING,
        )
        .options(selectinload(FriendRequest.sender))
        .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
    )
    return list(db.execute(stmt).scalars())


@router.put("/acceptrequest", response_model=StatusMessage)
def answer_friend_request(
    payload: FriendRequestAnswer,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    """Accept or reject a pending request addressed to the caller."""

    request = db.get(FriendRequest, payload.request_id)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    if request.receiver_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not allowed to answer this request",
        )

    if not payload.accept:
        db.delete(request)
        db.commit()
        return StatusMessage(message="Request rejected")

    sender = request.sender
    members = [current_user.id, sender.id]
    chat = Chat(name=f"{sender.name}--{current_user.name}", is_group=False)
    chat.members = [ChatMember(user_id=user_id) for user_id in members]
    db.add(chat)
    db.delete(request)
    db.commit()

    notify(hub, members, refetch_event())
    return StatusMessage(message="Request accepted")


@router.get("/getfriends", response_model=list[PublicUser])
def list_friends(
    chat_id: int | None = Query(default=None, alias="chatId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[User]:
    """List the other member of each direct chat, optionally only those not in ``chatId``."""

    friends = [
        friend
        for friend in (other_member(chat, current_user.id) for chat in direct_chats_for(current_user.id, db))
        if friend is not None
    ]
    if chat_id is None:
        return friends

    chat = get_chat_or_404(chat_id, db)
    existing = set(chat.member_ids)
    return [friend for friend in friends if friend.id not in existing]
