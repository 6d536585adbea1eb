"""SQL-backed chat directory used by the realtime layer and the REST API."""

from __future__ import annotations

import logging
from typing import Sequence

import anyio
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models import Chat, ChatMember, Message, MessageAttachment, User
from app.monitoring.metrics import chat_messages_created_total
from parley.realtime.errors import ChatNotFoundError, StorageError
from parley.realtime.events import AttachmentDescriptor, SessionUser, StoredMessage

logger = logging.getLogger(__name__)


def _parse_id(value: str | int) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def persist_message(
    db: Session,
    *,
    chat_id: int,
    sender_id: int,
    content: str,
    attachments: Sequence[AttachmentDescriptor] = (),
    source: str = "realtime",
) -> Message:
    """Insert a message with its attachments and commit."""

    message = Message(chat_id=chat_id, sender_id=sender_id, content=content)
    message.attachments = [
        MessageAttachment(public_id=item.public_id, url=item.url) for item in attachments
    ]
    db.add(message)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(message)
    chat_messages_created_total.labels(source).inc()
    return message


def to_stored_message(message: Message) -> StoredMessage:
    return StoredMessage(
        id=str(message.id),
        chat_id=str(message.chat_id),
        sender_id=str(message.sender_id),
        content=message.content,
        created_at=message.created_at,
        attachments=[AttachmentDescriptor(item.public_id, item.url) for item in message.attachments],
    )


class SqlChatStore:
    """Runs blocking ORM work in worker threads so the event loop stays free."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def get_chat_members(self, chat_id: str) -> list[str]:
        return await anyio.to_thread.run_sync(self._load_members, chat_id)

    async def get_contact_ids(self, user_id: str) -> set[str]:
        return await anyio.to_thread.run_sync(self._load_contacts, user_id)

    async def get_user(self, user_id: str) -> SessionUser | None:
        return await anyio.to_thread.run_sync(self._load_user, user_id)

    async def create_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        attachments: Sequence[AttachmentDescriptor] = (),
    ) -> StoredMessage:
        return await anyio.to_thread.run_sync(
            self._insert_message, sender_id, chat_id, content, tuple(attachments)
        )

    def _load_members(self, chat_id: str) -> list[str]:
        key = _parse_id(chat_id)
        if key is None:
            raise ChatNotFoundError(f"Chat {chat_id!r} does not exist")
        stmt = select(ChatMember.user_id).where(ChatMember.chat_id == key).order_by(ChatMember.id)
        try:
            with self._session_factory() as db:
                members = [str(user_id) for user_id in db.execute(stmt).scalars()]
                chat_exists = bool(members) or db.get(Chat, key) is not None
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not load members of chat {chat_id}") from exc
        if not chat_exists:
            raise ChatNotFoundError(f"Chat {chat_id!r} does not exist")
        return members

    def _load_contacts(self, user_id: str) -> set[str]:
        key = _parse_id(user_id)
        if key is None:
            return set()
        own_chats = select(ChatMember.chat_id).where(ChatMember.user_id == key)
        stmt = (
            select(ChatMember.user_id)
            .where(ChatMember.chat_id.in_(own_chats), ChatMember.user_id != key)
            .distinct()
        )
        try:
            with self._session_factory() as db:
                return {str(contact_id) for contact_id in db.execute(stmt).scalars()}
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not load contacts of user {user_id}") from exc

    def _load_user(self, user_id: str) -> SessionUser | None:
        key = _parse_id(user_id)
        if key is None:
            return None
        with self._session_factory() as db:
            user = db.get(User, key)
            if user is None:
                return None
            return SessionUser(id=str(user.id), name=user.name)

    def _insert_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        attachments: tuple[AttachmentDescriptor, ...],
    ) -> StoredMessage:
        chat_key = _parse_id(chat_id)
        sender_key = _parse_id(sender_id)
        if chat_key is None or sender_key is None:
            raise ChatNotFoundError(f"Chat {chat_id!r} does not exist")
        try:
            with self._session_factory() as db:
                if db.get(Chat, chat_key) is None:
                    raise ChatNotFoundError(f"Chat {chat_id!r} does not exist")
                message = persist_message(
                    db,
                    chat_id=chat_key,
                    sender_id=sender_key,
                    content=content,
                    attachments=attachments,
                )
                return to_stored_message(message)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not store message for chat {chat_id}") from exc
