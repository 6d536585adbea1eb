from __future__ import annotations

import time

from starlette.testclient import WebSocketTestSession


def test_connection_survives_keepalive_timeout(client, make_user, headers_for) -> None:
    """Ensure that the server side keepalive pings keep the socket open."""

    user = make_user("keepalive-user")

    config = client.app.state.realtime.config
    config.keepalive_timeout_seconds = 0.1
    config.keepalive_ping_interval_seconds = 0.05

    with client.websocket_connect("/ws/events", headers=headers_for(user)) as connection:
        _assert_keepalive_sequence(connection)


def _assert_keepalive_sequence(connection: WebSocketTestSession) -> None:
    """Observe two keepalive pings with client responses to keep the connection active."""

    time.sleep(0.15)
    ping = connection.receive_json()
    assert ping["type"] == "ping"
    connection.send_json({"type": "pong"})

    time.sleep(0.12)
    ping_again = connection.receive_json()
    assert ping_again["type"] == "ping"
    connection.send_json({"type": "pong"})

    connection.send_json({"type": "ping"})
    frame = connection.receive_json()
    while frame["type"] == "ping":
        frame = connection.receive_json()
    assert frame["type"] == "pong"
