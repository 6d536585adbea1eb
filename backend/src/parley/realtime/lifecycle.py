"""Authentication, registration and inbound dispatch for one websocket."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, Sequence, TypeVar

from fastapi import status
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from pydantic import ValidationError

from app.monitoring.metrics import (
    realtime_events_total,
    realtime_persistence_failures_total,
    realtime_sessions_replaced_total,
)

from .errors import ChatNotFoundError, InvalidCredentialError, RealtimeError, StorageError
from .events import (
    AttachmentDescriptor,
    ChatScopedPayload,
    EventKind,
    InboundKind,
    RoomPresencePayload,
    SendMessagePayload,
    SessionUser,
    StoredMessage,
    build_ephemeral_message,
    new_message_alert,
    new_message_event,
    presence_snapshot_event,
    typing_event,
)
from .hub import RealtimeHub
from .registry import ClientConnection


logger = logging.getLogger(__name__)

SESSION_REPLACED_CODE = 4001

T = TypeVar("T")


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


class CredentialVerifier(Protocol):
    async def verify(self, token: str) -> SessionUser:
        """Return the session owner or raise ``InvalidCredentialError``."""


class ChatDirectory(Protocol):
    async def get_chat_members(self, chat_id: str) -> list[str]:
        """Return member ids in membership order or raise ``ChatNotFoundError``."""

    async def get_contact_ids(self, user_id: str) -> set[str]:
        """Return every user sharing at least one chat with ``user_id``."""

    async def create_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        attachments: Sequence[AttachmentDescriptor] = (),
    ) -> StoredMessage:
        """Persist a message or raise ``StorageError``."""


def extract_token(websocket: WebSocket, cookie_name: str) -> str | None:
    """Read the session token from the auth cookie, falling back to a bearer header."""

    token = websocket.cookies.get(cookie_name)
    if token:
        return token
    auth_header = websocket.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    send_ping: Callable[[], bool],
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle.

    ``send_ping`` returns False once the connection can no longer be written
    to, which ends the iteration.
    """

    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not send_ping():
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


class ConnectionLifecycleHandler:
    """Drives one websocket through CONNECTING, AUTHENTICATED, ACTIVE and CLOSED."""

    def __init__(
        self,
        hub: RealtimeHub,
        verifier: CredentialVerifier,
        directory: ChatDirectory,
    ) -> None:
        self.hub = hub
        self.verifier = verifier
        self.directory = directory
        self.state = ConnectionState.CONNECTING
        self.user: SessionUser | None = None
        self.connection: ClientConnection | None = None
        self._pending_writes: set[asyncio.Task[None]] = set()

    async def serve(self, websocket: WebSocket) -> None:
        user = await self.authenticate(websocket)
        if user is None:
            return
        await self.activate(websocket, user)
        config = self.hub.config
        try:
            async for raw in iter_keepalive_messages(
                websocket,
                websocket.receive_text,
                timeout_seconds=config.keepalive_timeout_seconds,
                ping_interval_seconds=config.keepalive_ping_interval_seconds,
                send_ping=self._send_ping,
            ):
                await self.dispatch(raw)
        finally:
            await self.close()

    async def authenticate(self, websocket: WebSocket) -> SessionUser | None:
        token = extract_token(websocket, self.hub.config.auth_cookie_name)
        if not token:
            await self._reject(websocket, "Missing token")
            return None
        try:
            user = await self.verifier.verify(token)
        except InvalidCredentialError as exc:
            logger.info("Rejected realtime handshake: %s", exc)
            await self._reject(websocket, "Invalid token")
            return None
        self.user = user
        self.state = ConnectionState.AUTHENTICATED
        return user

    async def _reject(self, websocket: WebSocket, reason: str) -> None:
        self.state = ConnectionState.CLOSED
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=reason)

    async def activate(self, websocket: WebSocket, user: SessionUser) -> ClientConnection:
        await websocket.accept()
        connection = ClientConnection(
            websocket, user.id, queue_size=self.hub.config.outbound_queue_size
        )
        connection.start()
        self.connection = connection
        previous = self.hub.registry.register(user.id, connection)
        self.state = ConnectionState.ACTIVE
        logger.info("Realtime connection opened", extra={"user_id": user.id, "connection_id": connection.id})
        if previous is not None:
            realtime_sessions_replaced_total.inc()
            logger.info(
                "Closing superseded connection",
                extra={"user_id": user.id, "connection_id": previous.id},
            )
            await previous.close(code=SESSION_REPLACED_CODE, reason="Session replaced")
        return connection

    async def close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        connection, user = self.connection, self.user
        if connection is None or user is None:
            return

        # Registry and presence must change together, with no await in between.
        if self.hub.registry.unregister(user.id, connection):
            self.hub.presence.mark_absent(user.id)
            self.hub.router.broadcast_all(presence_snapshot_event(self.hub.presence.snapshot()))
            logger.info("Realtime connection closed", extra={"user_id": user.id, "connection_id": connection.id})
        else:
            logger.debug("Connection %r was already superseded", connection)

        await connection.close()
        await self.wait_for_pending_writes()

    async def wait_for_pending_writes(self) -> None:
        """Let in-flight message writes finish; they outlive the socket."""

        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, raw: str | dict[str, Any]) -> None:
        if isinstance(raw, str):
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Discarding non-JSON realtime frame", extra={"user_id": self._user_id})
                self._send_error("Invalid JSON payload")
                return
        else:
            message = raw

        if not isinstance(message, dict):
            self._send_error("Invalid message format")
            return

        try:
            kind = InboundKind(message.get("type"))
        except ValueError:
            logger.warning(
                "Unsupported realtime message type %r", message.get("type"), extra={"user_id": self._user_id}
            )
            self._send_error("Unsupported message type")
            return

        realtime_events_total.labels(kind.value, "inbound", "received").inc()
        data = message.get("data") or {}

        try:
            if kind is InboundKind.PING:
                self._send_frame({"type": "pong"})
            elif kind is InboundKind.PONG:
                return
            elif kind in (InboundKind.TYPING_START, InboundKind.TYPING_STOP):
                await self._handle_typing(kind, ChatScopedPayload.model_validate(data))
            elif kind is InboundKind.SEND_MESSAGE:
                await self._handle_send_message(SendMessagePayload.model_validate(data))
            else:
                await self._handle_room_presence(kind, RoomPresencePayload.model_validate(data))
        except ValidationError as exc:
            logger.warning(
                "Invalid %s payload: %s",
                kind.value,
                exc.errors(include_url=False),
                extra={"user_id": self._user_id},
            )
            self._send_error(f"Invalid payload for '{kind.value}'")
        except RealtimeError:
            logger.exception("Failed to handle %s event", kind.value, extra={"user_id": self._user_id})
            self._send_error(f"Could not process '{kind.value}'")

    async def _resolve_members(self, chat_id: str) -> list[str] | None:
        try:
            members = await self.directory.get_chat_members(chat_id)
        except ChatNotFoundError:
            logger.warning("Realtime event for unknown chat %s", chat_id, extra={"user_id": self._user_id})
            self._send_error("Chat not found")
            return None
        if self._user_id not in members:
            logger.warning("User is not a member of chat %s", chat_id, extra={"user_id": self._user_id})
            self._send_error("Not a member of this chat")
            return None
        return members

    async def _handle_typing(self, kind: InboundKind, payload: ChatScopedPayload) -> None:
        members = await self._resolve_members(payload.chat_id)
        if members is None:
            return
        self.hub.router.emit_to_users(members, typing_event(EventKind(kind.value), payload.chat_id))

    async def _handle_send_message(self, payload: SendMessagePayload) -> None:
        user = self.user
        if user is None:
            return
        if len(payload.message) > self.hub.config.message_max_length:
            self._send_error("Message is too long")
            return
        members = await self._resolve_members(payload.chat_id)
        if members is None:
            return

        message = build_ephemeral_message(user, payload.chat_id, payload.message)
        router = self.hub.router
        router.emit_to_users(members, new_message_event(payload.chat_id, message))
        router.emit_to_users(members, new_message_alert(payload.chat_id))

        task = asyncio.create_task(self._persist_message(user.id, payload.chat_id, payload.message))
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)

    async def _persist_message(self, sender_id: str, chat_id: str, content: str) -> None:
        # Live delivery is never rolled back if the durable write fails.
        try:
            await self.directory.create_message(sender_id, chat_id, content)
        except (StorageError, ChatNotFoundError):
            realtime_persistence_failures_total.inc()
            logger.exception(
                "Failed to persist live message",
                extra={"user_id": sender_id, "chat_id": chat_id},
            )

    def _on_write_done(self, task: asyncio.Task[None]) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            realtime_persistence_failures_total.inc()
            logger.error(
                "Unexpected error while persisting live message",
                exc_info=exc,
                extra={"user_id": self._user_id},
            )

    async def _handle_room_presence(self, kind: InboundKind, payload: RoomPresencePayload) -> None:
        user_id = self._user_id
        if payload.user_id is not None and payload.user_id != user_id:
            logger.debug("Ignoring userId %s in %s from %s", payload.user_id, kind.value, user_id)

        if kind is InboundKind.JOIN_ROOM:
            self.hub.presence.mark_present(user_id)
        else:
            self.hub.presence.mark_absent(user_id)

        allowed = set(await self.directory.get_contact_ids(user_id)) | {user_id}
        audience = [member for member in payload.members if member in allowed]
        self.hub.router.emit_to_users(audience, presence_snapshot_event(self.hub.presence.snapshot()))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _user_id(self) -> str:
        return self.user.id if self.user is not None else ""

    def _send_frame(self, payload: dict[str, Any]) -> bool:
        if self.connection is None:
            return False
        return self.connection.enqueue(payload)

    def _send_error(self, detail: str) -> None:
        self._send_frame({"type": "error", "detail": detail})

    def _send_ping(self) -> bool:
        if self.connection is None or not self.connection.is_open:
            return False
        self.connection.enqueue({"type": "ping"})
        return True
