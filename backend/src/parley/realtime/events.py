"""Wire-level event definitions for the realtime channel."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(str, Enum):
    """Events pushed from the server to connected clients."""

    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"
    NEW_MESSAGE = "new-message"
    NEW_MESSAGE_ALERT = "new-message-alert"
    ONLINE_USERS = "online-user"
    REFETCH_DATA = "refetch-data"
    ALERT = "alert"
    NEW_REQUEST = "new-request"


class InboundKind(str, Enum):
    """Messages a client may send over its connection."""

    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"
    SEND_MESSAGE = "send-message"
    JOIN_ROOM = "join-room"
    EXIT_ROOM = "exit-room"
    PING = "ping"
    PONG = "pong"


@dataclass(slots=True, frozen=True)
class SessionUser:
    """Authenticated identity attached to a live connection."""

    id: str
    name: str


@dataclass(slots=True, frozen=True)
class OutboundEvent:
    """Tagged payload routed to one or more connections."""

    kind: EventKind
    body: Any = None
    chat_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.kind.value, "data": self.body}


@dataclass(slots=True, frozen=True)
class AttachmentDescriptor:
    """Already-uploaded blob referenced by a message."""

    public_id: str
    url: str

    def to_public(self) -> dict[str, str]:
        return {"public_id": self.public_id, "url": self.url}


@dataclass(slots=True)
class StoredMessage:
    """Durable message record returned by the persistence collaborator."""

    id: str
    chat_id: str
    sender_id: str
    content: str
    created_at: datetime
    attachments: list[AttachmentDescriptor] = field(default_factory=list)


def isoformat_utc(moment: datetime) -> str:
    """Render a timestamp the way browsers print ``Date.toISOString()``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_ephemeral_message(
    sender: SessionUser,
    chat_id: str,
    content: str,
    *,
    attachments: Sequence[AttachmentDescriptor] = (),
    message_id: str | None = None,
    created_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the client-visible message payload used for live delivery.

    The identifier is random unless ``message_id`` is supplied; live delivery
    never waits for the durable record, so the two ids generally differ.
    """

    payload: dict[str, Any] = {
        "content": content,
        "_id": message_id or uuid4().hex,
        "sender": {"_id": sender.id, "name": sender.name},
        "chat": chat_id,
        "createdAt": isoformat_utc(created_at or datetime.now(timezone.utc)),
    }
    if attachments:
        payload["attachments"] = [attachment.to_public() for attachment in attachments]
    return payload


def typing_event(kind: EventKind, chat_id: str) -> OutboundEvent:
    if kind not in (EventKind.TYPING_START, EventKind.TYPING_STOP):
        raise ValueError(f"'{kind.value}' is not a typing event")
    return OutboundEvent(kind, {"chatId": chat_id}, chat_id=chat_id)


def new_message_event(chat_id: str, message: dict[str, Any]) -> OutboundEvent:
    return OutboundEvent(
        EventKind.NEW_MESSAGE, {"chatId": chat_id, "message": message}, chat_id=chat_id
    )


def new_message_alert(chat_id: str) -> OutboundEvent:
    return OutboundEvent(EventKind.NEW_MESSAGE_ALERT, {"chatId": chat_id}, chat_id=chat_id)


def presence_snapshot_event(online: Sequence[str]) -> OutboundEvent:
    return OutboundEvent(EventKind.ONLINE_USERS, list(online))


def refetch_event() -> OutboundEvent:
    return OutboundEvent(EventKind.REFETCH_DATA)


def alert_event(message: str, chat_id: str | None = None) -> OutboundEvent:
    body: dict[str, Any] = {"message": message}
    if chat_id is not None:
        body["chatId"] = chat_id
    return OutboundEvent(EventKind.ALERT, body, chat_id=chat_id)


def friend_request_event(request_id: str, sender_id: str) -> OutboundEvent:
    return OutboundEvent(EventKind.NEW_REQUEST, {"requestId": request_id, "senderId": sender_id})


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class _InboundPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    members: list[str] = Field(default_factory=list, max_length=500)

    @field_validator("members", mode="before")
    @classmethod
    def coerce_members(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [_coerce_identifier(item) for item in value]
        return value


class ChatScopedPayload(_InboundPayload):
    """Payload for typing indicators."""

    chat_id: str = Field(alias="chatId", min_length=1)

    @field_validator("chat_id", mode="before")
    @classmethod
    def coerce_chat_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)


class SendMessagePayload(ChatScopedPayload):
    """Payload for a live chat message."""

    message: str = Field(min_length=1)

    @field_validator("message")
    @classmethod
    def reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message must not be blank")
        return value


class RoomPresencePayload(_InboundPayload):
    """Payload for join-room / exit-room intents."""

    user_id: str | None = Field(default=None, alias="userId")

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)
