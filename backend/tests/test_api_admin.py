"""Integration tests for the admin dashboard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.admin import message_histogram
from app.config import get_settings
from app.core.security import create_admin_token
from app.services import persist_message


@pytest.fixture()
def admin_client(client: TestClient) -> TestClient:
    client.cookies.set(get_settings().admin_cookie_name, create_admin_token())
    return client


def test_verify_sets_admin_cookie(client: TestClient):
    settings = get_settings()

    wrong = client.post("/api/v1/admin/verify", json={"secretKey": "guess"})
    assert wrong.status_code == 401

    right = client.post("/api/v1/admin/verify", json={"secretKey": settings.admin_secret_key})
    assert right.status_code == 200
    assert f"{settings.admin_cookie_name}=" in right.headers["set-cookie"]


def test_dashboard_requires_admin_cookie(client: TestClient, make_user, headers_for):
    alice = make_user("alice")

    assert client.get("/api/v1/admin/").status_code == 401
    assert client.get("/api/v1/admin/users", headers=headers_for(alice)).status_code == 401


def test_dashboard_views(admin_client: TestClient, make_user, make_chat, db_session):
    alice, bob, carol = (make_user(name) for name in ("alice", "bob", "carol"))
    direct = make_chat("alice--bob", [alice.id, bob.id])
    group = make_chat("Trio", [alice.id, bob.id, carol.id], is_group=True, creator_id=alice.id)
    persist_message(db_session, chat_id=direct.id, sender_id=alice.id, content="hi", source="rest")
    persist_message(db_session, chat_id=group.id, sender_id=bob.id, content="hello all", source="rest")

    overview = admin_client.get("/api/v1/admin/").json()
    assert overview["stats"] == {"groups_count": 1, "user_count": 3, "messages_count": 2, "chat_count": 2}
    assert [item["content"] for item in overview["recent_messages"]] == ["hello all", "hi"]

    users = {row["username"]: row for row in admin_client.get("/api/v1/admin/users").json()}
    assert (users["alice"]["groups"], users["alice"]["friends"]) == (1, 1)
    assert (users["carol"]["groups"], users["carol"]["friends"]) == (1, 0)

    chats = {row["id"]: row for row in admin_client.get("/api/v1/admin/chats").json()}
    assert chats[group.id]["total_members"] == 3
    assert chats[group.id]["creator"]["id"] == alice.id
    assert chats[direct.id]["total_messages"] == 1

    messages = admin_client.get("/api/v1/admin/messages").json()
    assert {message["chat_id"] for message in messages} == {direct.id, group.id}

    stats = admin_client.get("/api/v1/admin/stats").json()
    assert len(stats["messages_chart"]) == 7
    assert sum(stats["messages_chart"]) == 2
    assert stats["messages_chart"][-1] == 2


def test_admin_logout(admin_client: TestClient):
    response = admin_client.get("/api/v1/admin/logout")

    assert response.status_code == 200
    assert get_settings().admin_cookie_name in response.headers["set-cookie"]


def test_message_histogram_buckets_by_day():
    now = datetime(2026, 10, 19, 12, tzinfo=timezone.utc)
    timestamps = [
        now - timedelta(hours=1),
        now - timedelta(days=1, hours=1),
        now - timedelta(days=6, hours=23),
        now - timedelta(days=8),
        (now - timedelta(hours=2)).replace(tzinfo=None),
    ]

    assert message_histogram(timestamps, now) == [1, 0, 0, 0, 0, 1, 2]
