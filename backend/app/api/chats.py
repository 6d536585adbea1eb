"""Group and direct chat management, attachments and message history."""

from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.api.deps import (
    get_chat_or_404,
    get_current_user,
    get_realtime_hub,
    is_chat_member,
    require_chat_member,
)
from app.config import get_settings
from app.core.storage import delete_blobs, store_blob
from app.database import get_db
from app.models import Chat, ChatMember, Message, MessageAttachment, User
from app.schemas import (
    ChatCreate,
    ChatDetail,
    ChatMemberRemove,
    ChatMembersAdd,
    ChatRename,
    ChatSummary,
    GroupSummary,
    MessagePage,
    MessageRead,
    PublicUser,
    StatusMessage,
)
from app.services import notify, persist_message
from parley.realtime.events import (
    AttachmentDescriptor,
    SessionUser,
    alert_event,
    build_ephemeral_message,
    new_message_alert,
    new_message_event,
    refetch_event,
)
from parley.realtime.hub import RealtimeHub

router = APIRouter()
settings = get_settings()

logger = logging.getLogger(__name__)


def _load_chat(chat_id: int, db: Session) -> Chat:
    stmt = (
        select(Chat)
        .where(Chat.id == chat_id)
        .options(selectinload(Chat.members).selectinload(ChatMember.user))
    )
    chat = db.execute(stmt).scalar_one_or_none()
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


def _require_group(chat: Chat) -> None:
    if not chat.is_group:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not a group chat")


def _avatars(users: list[User]) -> list[str]:
    return [user.avatar_url for user in users if user.avatar_url]


def _serialize_summary(chat: Chat, user_id: int) -> ChatSummary:
    others = [membership.user for membership in chat.members if membership.user_id != user_id]
    if chat.is_group:
        name = chat.name
        avatars = _avatars([membership.user for membership in chat.members[:3]])
    else:
        other = others[0] if others else None
        name = other.name if other is not None else chat.name
        avatars = _avatars([other] if other is not None else [])
    return ChatSummary(
        id=chat.id,
        name=name,
        is_group=chat.is_group,
        avatars=avatars,
        members=[user.id for user in others],
    )


def _serialize_detail(chat: Chat, *, populate: bool) -> ChatDetail:
    if populate:
        members = [PublicUser.model_validate(membership.user) for membership in chat.members]
    else:
        members = chat.member_ids
    return ChatDetail(
        id=chat.id,
        name=chat.name,
        is_group=chat.is_group,
        creator_id=chat.creator_id,
        members=members,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


@router.post("/new", response_model=ChatDetail, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: ChatCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> ChatDetail:
    """Create a group chat owned by the caller."""

    member_ids = list(dict.fromkeys([*payload.members, current_user.id]))
    low, high = settings.chat_group_min_members, settings.chat_group_max_members
    if not low <= len(member_ids) <= high:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Group must have between {low} and {high} members",
        )
    found = set(db.execute(select(User.id).where(User.id.in_(member_ids))).scalars())
    missing = [user_id for user_id in member_ids if user_id not in found]
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {missing[0]} not found")

    chat = Chat(name=payload.name, is_group=True, creator_id=current_user.id)
    chat.members = [ChatMember(user_id=user_id) for user_id in member_ids]
    db.add(chat)
    db.commit()
    db.refresh(chat)

    notify(hub, member_ids, alert_event(f"Welcome to {chat.name}", str(chat.id)))
    notify(hub, member_ids, refetch_event())
    return _serialize_detail(chat, populate=False)


@router.get("/my", response_model=list[ChatSummary])
def list_my_chats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ChatSummary]:
    own_chats = select(ChatMember.chat_id).where(ChatMember.user_id == current_user.id)
    stmt = (
        select(Chat)
        .where(Chat.id.in_(own_chats))
        .options(selectinload(Chat.members).selectinload(ChatMember.user))
        .order_by(Chat.updated_at.desc(), Chat.id.desc())
    )
    return [_serialize_summary(chat, current_user.id) for chat in db.execute(stmt).scalars()]


@router.get("/my/group", response_model=list[GroupSummary])
def list_my_groups(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[GroupSummary]:
    stmt = (
        select(Chat)
        .where(Chat.is_group.is_(True), Chat.creator_id == current_user.id)
        .options(selectinload(Chat.members).selectinload(ChatMember.user))
        .order_by(Chat.id)
    )
    return [
        GroupSummary(
            id=chat.id,
            name=chat.name,
            avatars=_avatars([membership.user for membership in chat.members[:3]]),
        )
        for chat in db.execute(stmt).scalars()
    ]


@router.put("/addMembers", response_model=StatusMessage)
def add_members(
    payload: ChatMembersAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    """Add existing users to a group; unknown ids and current members are skipped."""

    chat = _load_chat(payload.chat_id, db)
    _require_group(chat)
    if current_user.id not in chat.member_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this chat")

    current = set(chat.member_ids)
    candidates = [user_id for user_id in dict.fromkeys(payload.members) if user_id not in current]
    new_users = (
        list(db.execute(select(User).where(User.id.in_(candidates)).order_by(User.id)).scalars())
        if candidates
        else []
    )
    if not new_users:
        return StatusMessage(message="No new members to add")
    if len(current) + len(new_users) > settings.chat_group_max_members:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Members limit reached")

    chat.members.extend(ChatMember(user_id=user.id) for user in new_users)
    db.commit()

    member_ids = chat.member_ids
    names = ", ".join(user.username for user in new_users)
    notify(hub, member_ids, alert_event(f"Welcome {names} to the group", str(chat.id)))
    notify(hub, member_ids, refetch_event())
    return StatusMessage(message="Members added successfully")


@router.put("/removeMembers", response_model=StatusMessage)
def remove_member(
    payload: ChatMemberRemove,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    """Remove a member from a group; only the group creator may do this."""

    chat = _load_chat(payload.chat_id, db)
    _require_group(chat)
    if chat.creator_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the group creator can remove members",
        )
    if payload.user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Use leave to exit the group")

    membership = next((item for item in chat.members if item.user_id == payload.user_id), None)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User is not a member of this chat")
    if len(chat.members) - 1 < settings.chat_group_min_members:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Group must have at least {settings.chat_group_min_members} members",
        )

    removed_user = membership.user
    chat.members.remove(membership)
    db.commit()

    remaining = chat.member_ids
    notify(
        hub,
        remaining,
        alert_event(f"Member {removed_user.username} has been removed from the group", str(chat.id)),
    )
    notify(hub, [*remaining, removed_user.id], refetch_event())
    return StatusMessage(message="Member removed successfully")


@router.delete("/leave/{chat_id}", response_model=StatusMessage)
def leave_group(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    """Leave a group; a departing creator hands the group to the earliest remaining member."""

    chat = _load_chat(chat_id, db)
    _require_group(chat)
    membership = next((item for item in chat.members if item.user_id == current_user.id), None)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this chat")
    if len(chat.members) - 1 < settings.chat_group_min_members:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Group must have at least {settings.chat_group_min_members} members",
        )

    chat.members.remove(membership)
    if chat.creator_id == current_user.id:
        chat.creator_id = chat.members[0].user_id
        logger.info("Chat %s handed over to user %s", chat.id, chat.creator_id)
    db.commit()

    remaining = chat.member_ids
    notify(hub, remaining, alert_event(f"User {current_user.username} has left the group", str(chat.id)))
    notify(hub, remaining, refetch_event())
    return StatusMessage(message="Left group successfully")


@router.post("/message", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_attachments(
    chat_id: int = Form(..., alias="chatId"),
    files: list[UploadFile] = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> MessageRead:
    """Store uploaded files and post them to the chat as one message."""

    if not 1 <= len(files) <= settings.max_attachments_per_message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Attach between 1 and {settings.max_attachments_per_message} files",
        )
    chat = _load_chat(chat_id, db)
    if current_user.id not in chat.member_ids:
        logger.warning("User %s tried to post attachments to chat %s", current_user.id, chat_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to send attachments")

    stored = []
    try:
        for upload in files:
            stored.append(await store_blob(upload, f"chats/{chat.id}"))
    except HTTPException:
        delete_blobs(blob.public_id for blob in stored)
        raise
    descriptors = [AttachmentDescriptor(blob.public_id, blob.url) for blob in stored]

    try:
        message = persist_message(
            db,
            chat_id=chat.id,
            sender_id=current_user.id,
            content="",
            attachments=descriptors,
            source="rest",
        )
    except SQLAlchemyError:
        logger.exception("Failed to store attachment message for chat %s", chat.id)
        delete_blobs(blob.public_id for blob in stored)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store message"
        ) from None

    live = build_ephemeral_message(
        SessionUser(id=str(current_user.id), name=current_user.name),
        str(chat.id),
        message.content,
        attachments=descriptors,
        message_id=str(message.id),
        created_at=message.created_at,
    )
    member_ids = chat.member_ids
    notify(hub, member_ids, new_message_event(str(chat.id), live))
    notify(hub, member_ids, new_message_alert(str(chat.id)))
    return MessageRead.model_validate(message)


@router.get("/message/{chat_id}", response_model=MessagePage)
def get_chat_messages(
    chat_id: int,
    page: int = Query(default=1, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessagePage:
    """Return one page of history; page 1 holds the newest messages."""

    require_chat_member(chat_id, current_user.id, db)
    per_page = settings.chat_page_size
    total = db.execute(select(func.count(Message.id)).where(Message.chat_id == chat_id)).scalar_one()
    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id)
        .options(selectinload(Message.sender), selectinload(Message.attachments))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    messages = list(db.execute(stmt).scalars())
    messages.reverse()
    return MessagePage(
        messages=[MessageRead.model_validate(message) for message in messages],
        page=page,
        total_pages=math.ceil(total / per_page),
    )


@router.get("/{chat_id}", response_model=ChatDetail)
def get_chat(
    chat_id: int,
    populate: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatDetail:
    chat = _load_chat(chat_id, db)
    if current_user.id not in chat.member_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this chat")
    return _serialize_detail(chat, populate=populate)


@router.put("/{chat_id}", response_model=StatusMessage)
def rename_group(
    chat_id: int,
    payload: ChatRename,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    chat = _load_chat(chat_id, db)
    _require_group(chat)
    if chat.creator_id != current_user.id:
        logger.warning("User %s tried to rename chat %s", current_user.id, chat_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not allowed to change name")

    chat.name = payload.name
    db.commit()

    notify(hub, chat.member_ids, refetch_event())
    return StatusMessage(message="Renamed group successfully")


@router.delete("/{chat_id}", response_model=StatusMessage)
def delete_chat(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StatusMessage:
    """Delete a chat with its messages and stored attachments."""

    chat = get_chat_or_404(chat_id, db)
    if chat.is_group:
        allowed = chat.creator_id == current_user.id
    else:
        allowed = is_chat_member(chat.id, current_user.id, db)
    if not allowed:
        logger.warning("User %s tried to delete chat %s", current_user.id, chat_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not allowed to delete this chat")

    member_ids = chat.member_ids
    public_ids = list(
        db.execute(
            select(MessageAttachment.public_id)
            .join(Message, Message.id == MessageAttachment.message_id)
            .where(Message.chat_id == chat.id)
        ).scalars()
    )
    db.delete(chat)
    db.commit()
    delete_blobs(public_ids)

    notify(hub, member_ids, refetch_event())
    return StatusMessage(message="Chat deleted successfully")
