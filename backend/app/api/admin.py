"""Read-only admin dashboard."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import require_admin
from app.core.security import clear_admin_cookie, create_admin_token, set_admin_cookie, verify_admin_secret
from app.database import get_db
from app.models import Chat, ChatMember, Message, User
from app.schemas import (
    AdminChatRow,
    AdminMessageRow,
    AdminOverview,
    AdminUserRow,
    AdminVerifyRequest,
    DashboardCounts,
    DashboardStats,
    MessageAttachmentRead,
    PublicUser,
    RecentMessage,
    StatusMessage,
)

router = APIRouter()

logger = logging.getLogger(__name__)

HISTOGRAM_DAYS = 7


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _public(user: User | None) -> PublicUser | None:
    return PublicUser.model_validate(user) if user is not None else None


def _counts(db: Session) -> DashboardCounts:
    return DashboardCounts(
        groups_count=db.execute(select(func.count(Chat.id)).where(Chat.is_group.is_(True))).scalar_one(),
        user_count=db.execute(select(func.count(User.id))).scalar_one(),
        messages_count=db.execute(select(func.count(Message.id))).scalar_one(),
        chat_count=db.execute(select(func.count(Chat.id))).scalar_one(),
    )


def message_histogram(timestamps: list[datetime], now: datetime, days: int = HISTOGRAM_DAYS) -> list[int]:
    """Bucket timestamps into whole days before ``now``; the last bucket is the most recent day."""

    buckets = [0] * days
    for moment in timestamps:
        age_days = int((now - _as_utc(moment)).total_seconds() // 86400)
        if 0 <= age_days < days:
            buckets[days - 1 - age_days] += 1
    return buckets


@router.post("/verify", response_model=StatusMessage)
def verify_admin(payload: AdminVerifyRequest, response: Response) -> StatusMessage:
    if not verify_admin_secret(payload.secret_key):
        logger.warning("Rejected admin login attempt")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin secret key")
    set_admin_cookie(response, create_admin_token())
    return StatusMessage(message="Admin login successful")


@router.get("/logout", response_model=StatusMessage)
def logout_admin(response: Response) -> StatusMessage:
    clear_admin_cookie(response)
    return StatusMessage(message="Admin logged out")


@router.get("/", response_model=AdminOverview, dependencies=[Depends(require_admin)])
def admin_overview(db: Session = Depends(get_db)) -> AdminOverview:
    stmt = (
        select(Message)
        .options(selectinload(Message.sender), selectinload(Message.chat))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(5)
    )
    recent = [
        RecentMessage(
            id=message.id,
            content=message.content,
            sender=_public(message.sender),
            chat_name=message.chat.name,
            is_group=message.chat.is_group,
            created_at=message.created_at,
        )
        for message in db.execute(stmt).scalars()
    ]
    return AdminOverview(stats=_counts(db), recent_messages=recent)


@router.get("/users", response_model=list[AdminUserRow], dependencies=[Depends(require_admin)])
def admin_users(db: Session = Depends(get_db)) -> list[AdminUserRow]:
    chat_counts = (
        select(ChatMember.user_id, Chat.is_group, func.count(ChatMember.id))
        .join(Chat, Chat.id == ChatMember.chat_id)
        .group_by(ChatMember.user_id, Chat.is_group)
    )
    tallies: dict[tuple[int, bool], int] = {
        (user_id, bool(is_group)): count for user_id, is_group, count in db.execute(chat_counts)
    }
    users = db.execute(select(User).order_by(User.id)).scalars()
    return [
        AdminUserRow(
            id=user.id,
            name=user.name,
            avatar_url=user.avatar_url,
            username=user.username,
            groups=tallies.get((user.id, True), 0),
            friends=tallies.get((user.id, False), 0),
        )
        for user in users
    ]


@router.get("/chats", response_model=list[AdminChatRow], dependencies=[Depends(require_admin)])
def admin_chats(db: Session = Depends(get_db)) -> list[AdminChatRow]:
    message_counts = dict(
        db.execute(select(Message.chat_id, func.count(Message.id)).group_by(Message.chat_id)).all()
    )
    stmt = (
        select(Chat)
        .options(selectinload(Chat.members).selectinload(ChatMember.user), selectinload(Chat.creator))
        .order_by(Chat.id)
    )
    rows = []
    for chat in db.execute(stmt).scalars():
        members = [membership.user for membership in chat.members]
        rows.append(
            AdminChatRow(
                id=chat.id,
                name=chat.name,
                is_group=chat.is_group,
                avatars=[user.avatar_url for user in members[:3] if user.avatar_url],
                members=[PublicUser.model_validate(user) for user in members],
                creator=_public(chat.creator),
                total_members=len(members),
                total_messages=message_counts.get(chat.id, 0),
            )
        )
    return rows


@router.get("/messages", response_model=list[AdminMessageRow], dependencies=[Depends(require_admin)])
def admin_messages(db: Session = Depends(get_db)) -> list[AdminMessageRow]:
    stmt = (
        select(Message)
        .options(
            selectinload(Message.sender),
            selectinload(Message.chat),
            selectinload(Message.attachments),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
    )
    return [
        AdminMessageRow(
            id=message.id,
            content=message.content,
            attachments=[MessageAttachmentRead.model_validate(item) for item in message.attachments],
            created_at=message.created_at,
            chat_id=message.chat_id,
            is_group=message.chat.is_group,
            sender=_public(message.sender),
        )
        for message in db.execute(stmt).scalars()
    ]


@router.get("/stats", response_model=DashboardStats, dependencies=[Depends(require_admin)])
def admin_stats(db: Session = Depends(get_db)) -> DashboardStats:
    now = datetime.now(timezone.utc)
    since = now - timedelta(days=HISTOGRAM_DAYS)
    timestamps = list(
        db.execute(select(Message.created_at).where(Message.created_at >= since)).scalars()
    )
    counts = _counts(db)
    return DashboardStats(**counts.model_dump(), messages_chart=message_histogram(timestamps, now))
