from __future__ import annotations

import pytest
from fastapi.websockets import WebSocketState

from app.monitoring.metrics import realtime_events_total
from parley.realtime.events import (
    EventKind,
    alert_event,
    new_message_alert,
    presence_snapshot_event,
    typing_event,
)
from parley.realtime.registry import ClientConnection, ConnectionRegistry
from parley.realtime.router import EventRouter
from realtime_fakes import DummyWebSocket


def _register(registry: ConnectionRegistry, user_id: str) -> ClientConnection:
    websocket = DummyWebSocket()
    websocket.application_state = WebSocketState.CONNECTED
    connection = ClientConnection(websocket, user_id)
    connection.start()
    registry.register(user_id, connection)
    return connection


async def _drain(*connections: ClientConnection) -> None:
    for connection in connections:
        await connection.drain()


@pytest.fixture()
async def registry():
    registry = ConnectionRegistry()
    yield registry
    for connection in registry.clear():
        await connection.close()


@pytest.mark.anyio
async def test_emit_skips_offline_recipients(registry) -> None:
    router = EventRouter(registry)
    alice = _register(registry, "a")
    bob = _register(registry, "b")

    delivered = router.emit_to_users(["a", "offline", "b"], typing_event(EventKind.TYPING_START, "c1"))
    await _drain(alice, bob)

    assert delivered == 2
    expected = {"type": "typing-start", "data": {"chatId": "c1"}}
    assert alice.websocket.sent == [expected]
    assert bob.websocket.sent == [expected]
    assert realtime_events_total.value("typing-start", "outbound", "emit") == 2


@pytest.mark.anyio
async def test_emit_to_nobody_returns_zero(registry) -> None:
    router = EventRouter(registry)

    assert router.emit_to_users([], new_message_alert("c1")) == 0
    assert router.emit_to_users(["ghost"], new_message_alert("c1")) == 0
    assert router.broadcast_all(presence_snapshot_event([])) == 0


@pytest.mark.anyio
async def test_duplicate_recipients_receive_one_copy(registry) -> None:
    router = EventRouter(registry)
    alice = _register(registry, "a")

    assert router.emit_to_users(["a", "a", "a"], alert_event("hi")) == 1
    await _drain(alice)

    assert alice.websocket.sent == [{"type": "alert", "data": {"message": "hi"}}]


@pytest.mark.anyio
async def test_broadcast_reaches_every_open_connection(registry) -> None:
    router = EventRouter(registry)
    connections = [_register(registry, user_id) for user_id in ("a", "b", "c")]
    connections[2].websocket.application_state = WebSocketState.DISCONNECTED

    delivered = router.broadcast_all(presence_snapshot_event(["a", "b"]))
    await _drain(*connections[:2])

    assert delivered == 2
    for connection in connections[:2]:
        assert connection.websocket.sent == [{"type": "online-user", "data": ["a", "b"]}]
    assert connections[2].websocket.sent == []


@pytest.mark.anyio
async def test_events_keep_emit_order_per_connection(registry) -> None:
    router = EventRouter(registry)
    alice = _register(registry, "a")

    router.emit_to_users(["a"], typing_event(EventKind.TYPING_START, "c1"))
    router.emit_to_users(["a"], new_message_alert("c1"))
    router.emit_to_users(["a"], typing_event(EventKind.TYPING_STOP, "c1"))
    await _drain(alice)

    assert [frame["type"] for frame in alice.websocket.sent] == [
        "typing-start",
        "new-message-alert",
        "typing-stop",
    ]


def test_typing_event_rejects_other_kinds() -> None:
    with pytest.raises(ValueError):
        typing_event(EventKind.ALERT, "c1")
