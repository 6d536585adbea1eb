"""Mapping of authenticated users to their live websocket connection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Iterable, Iterator
from uuid import uuid4

from fastapi import status
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_dropped_events_total


logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Safely send JSON data through websocket, handling disconnections gracefully.

    Returns True if message was sent successfully, False otherwise.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class ClientConnection:
    """A single live websocket with its own ordered outbound queue.

    Events are enqueued without awaiting and written by one writer task, so
    a slow client only ever backs up its own buffer. When the buffer is full
    the newest event is dropped for this client alone.
    """

    def __init__(self, websocket: WebSocket, user_id: str, *, queue_size: int = 256) -> None:
        self.websocket = websocket
        self.user_id = str(user_id)
        self.id = uuid4().hex
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max(queue_size, 1))
        self._writer: asyncio.Task[None] | None = None
        self._closed = False
        self._send_failed = False

    def __repr__(self) -> str:
        return f"ClientConnection(user_id={self.user_id!r}, id={self.id!r})"

    @property
    def is_open(self) -> bool:
        if self._closed or self._send_failed:
            return False
        return self.websocket.application_state == WebSocketState.CONNECTED

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"ws-writer-{self.id}")

    def enqueue(self, payload: dict[str, Any]) -> bool:
        """Queue ``payload`` for delivery; returns False when it was dropped."""

        if self._closed:
            realtime_dropped_events_total.labels("closed").inc()
            return False
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            realtime_dropped_events_total.labels("queue_full").inc()
            logger.warning(
                "Outbound queue full; dropping event",
                extra={"user_id": self.user_id, "connection_id": self.id, "type": payload.get("type")},
            )
            return False
        return True

    async def _drain(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                if not self._send_failed and not await safe_send_json(self.websocket, payload):
                    self._send_failed = True
                    logger.debug("Stopped writing to %r after a failed send", self)
                if self._send_failed:
                    realtime_dropped_events_total.labels("disconnected").inc()
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been written or discarded."""

        if self._writer is None or self._writer.done():
            return
        await self._queue.join()

    async def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: str | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        writer, self._writer = self._writer, None
        if writer is not None and not writer.done():
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close(code=code, reason=reason)
            except RuntimeError:
                logger.debug("Websocket for %r already closed", self)


class ConnectionRegistry:
    """At most one live connection per user; the newest registration wins.

    Every method is synchronous so a mutation can never interleave with
    another task on the event loop.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, user_id: object) -> bool:
        return str(user_id) in self._connections

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._connections))

    def register(self, user_id: str, connection: ClientConnection) -> ClientConnection | None:
        """Map ``user_id`` to ``connection`` and return the displaced handle, if any."""

        key = str(user_id)
        previous = self._connections.get(key)
        self._connections[key] = connection
        realtime_connections.set(len(self._connections))
        if previous is connection:
            return None
        return previous

    def unregister(self, user_id: str, connection: ClientConnection | None = None) -> bool:
        """Remove the mapping for ``user_id``.

        When ``connection`` is given the entry is only removed if it still
        points at that exact handle.
        """

        key = str(user_id)
        current = self._connections.get(key)
        if current is None:
            return False
        if connection is not None and current is not connection:
            return False
        del self._connections[key]
        realtime_connections.set(len(self._connections))
        return True

    def get(self, user_id: str) -> ClientConnection | None:
        return self._connections.get(str(user_id))

    def resolve(self, user_ids: Iterable[str]) -> list[ClientConnection]:
        """Return open connections for ``user_ids`` in input order, skipping unknown users."""

        seen: set[str] = set()
        resolved: list[ClientConnection] = []
        for user_id in user_ids:
            key = str(user_id)
            if key in seen:
                continue
            seen.add(key)
            connection = self._connections.get(key)
            if connection is not None and connection.is_open:
                resolved.append(connection)
        return resolved

    def connections(self) -> list[ClientConnection]:
        return [connection for connection in self._connections.values() if connection.is_open]

    def clear(self) -> list[ClientConnection]:
        removed = list(self._connections.values())
        self._connections.clear()
        realtime_connections.set(0)
        return removed
