"""Integration tests for account, search and friend request endpoints."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import select

from app.models import Chat, FriendRequest

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def register(client: TestClient, username: str, *, name: str = "Test User") -> dict[str, Any]:
    response = client.post(
        "/api/v1/user/new",
        data={"name": name, "username": username, "password": "wonderland", "bio": "hello"},
        files={"avatar": ("avatar.png", PNG, "image/png")},
    )
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_register_login_and_profile(client: TestClient, media_root):
    body = register(client, "alice", name="Alice")

    assert body["message"] == "User created"
    assert body["user"]["username"] == "alice"
    avatar_url = body["user"]["avatar_url"]
    assert avatar_url.startswith("/api/v1/media/avatars/")
    assert client.get(avatar_url).content == PNG

    login = client.post("/api/v1/user/login", json={"username": "alice", "password": "wonderland"})
    assert login.status_code == 200
    assert login.json()["message"] == "Welcome back, Alice"

    profile = client.get("/api/v1/user/profile", headers=bearer(login.json()["access_token"]))
    assert profile.status_code == 200
    assert profile.json()["name"] == "Alice"


def test_register_rejects_duplicates_and_non_images(client: TestClient, media_root):
    register(client, "alice")

    duplicate = client.post(
        "/api/v1/user/new",
        data={"name": "Other", "username": "alice", "password": "x", "bio": "y"},
        files={"avatar": ("avatar.png", PNG, "image/png")},
    )
    assert duplicate.status_code == 400

    not_image = client.post(
        "/api/v1/user/new",
        data={"name": "Bob", "username": "bob", "password": "x", "bio": "y"},
        files={"avatar": ("notes.txt", b"text", "text/plain")},
    )
    assert not_image.status_code == 400


def test_login_errors(client: TestClient, make_user):
    make_user("alice")

    unknown = client.post("/api/v1/user/login", json={"username": "ghost", "password": "secret"})
    wrong = client.post("/api/v1/user/login", json={"username": "alice", "password": "nope"})

    assert (unknown.status_code, unknown.json()["detail"]) == (401, "Invalid username")
    assert (wrong.status_code, wrong.json()["detail"]) == (401, "Invalid password")


def test_protected_routes_need_a_session(client: TestClient):
    response = client.get("/api/v1/user/profile")

    assert response.status_code == 401
    assert response.json()["detail"] == "Please login to access this route"


def test_logout_clears_cookie(client: TestClient, make_user, headers_for):
    alice = make_user("alice")

    response = client.get("/api/v1/user/logout", headers=headers_for(alice))

    assert response.status_code == 200
    assert "parley-token=" in response.headers["set-cookie"]


def test_search_excludes_self_and_existing_friends(client: TestClient, make_user, make_chat, headers_for):
    alice = make_user("alice", name="Alice")
    bob = make_user("bob", name="Bob")
    make_user("bobby", name="Bobby")
    make_user("carol", name="Carol")
    make_chat("alice--bob", [alice.id, bob.id])

    everyone = client.get("/api/v1/user/search", headers=headers_for(alice))
    assert [user["name"] for user in everyone.json()] == ["Bobby", "Carol"]

    filtered = client.get("/api/v1/user/search", params={"name": "BOB"}, headers=headers_for(alice))
    assert [user["name"] for user in filtered.json()] == ["Bobby"]


def test_friend_request_accept_flow(client: TestClient, make_user, headers_for, session_factory):
    alice = make_user("alice", name="Alice")
    bob = make_user("bob", name="Bob")

    sent = client.put("/api/v1/user/sendrequest", json={"userId": bob.id}, headers=headers_for(alice))
    assert sent.status_code == 200

    again = client.put("/api/v1/user/sendrequest", json={"userId": alice.id}, headers=headers_for(bob))
    assert (again.status_code, again.json()["detail"]) == (400, "Request already sent")

    inbox = client.get("/api/v1/user/getnotify", headers=headers_for(bob)).json()
    assert [item["sender"]["id"] for item in inbox] == [alice.id]
    request_id = inbox[0]["id"]

    stolen = client.put(
        "/api/v1/user/acceptrequest",
        json={"requestId": request_id, "accept": True},
        headers=headers_for(alice),
    )
    assert stolen.status_code == 403

    accepted = client.put(
        "/api/v1/user/acceptrequest",
        json={"requestId": request_id, "accept": True},
        headers=headers_for(bob),
    )
    assert accepted.status_code == 200

    with session_factory() as session:
        chat = session.execute(select(Chat)).scalar_one()
        assert chat.name == "Alice--Bob"
        assert chat.is_group is False
        assert chat.member_ids == [bob.id, alice.id]
        assert session.execute(select(FriendRequest)).first() is None

    friends = client.get("/api/v1/user/getfriends", headers=headers_for(alice)).json()
    assert [friend["id"] for friend in friends] == [bob.id]

    already = client.put("/api/v1/user/sendrequest", json={"userId": bob.id}, headers=headers_for(alice))
    assert (already.status_code, already.json()["detail"]) == (400, "Already friends")


def test_friend_request_reject_and_bad_targets(client: TestClient, make_user, headers_for, session_factory):
    alice = make_user("alice")
    bob = make_user("bob")

    to_self = client.put("/api/v1/user/sendrequest", json={"userId": alice.id}, headers=headers_for(alice))
    missing = client.put("/api/v1/user/sendrequest", json={"userId": 999}, headers=headers_for(alice))
    assert to_self.status_code == 400
    assert missing.status_code == 404

    client.put("/api/v1/user/sendrequest", json={"userId": bob.id}, headers=headers_for(alice))
    request_id = client.get("/api/v1/user/getnotify", headers=headers_for(bob)).json()[0]["id"]

    rejected = client.put(
        "/api/v1/user/acceptrequest",
        json={"requestId": request_id, "accept": False},
        headers=headers_for(bob),
    )
    assert rejected.json()["message"] == "Request rejected"
    with session_factory() as session:
        assert session.execute(select(Chat)).first() is None
        assert session.execute(select(FriendRequest)).first() is None

    unknown = client.put(
        "/api/v1/user/acceptrequest",
        json={"requestId": request_id, "accept": True},
        headers=headers_for(bob),
    )
    assert unknown.status_code == 404


def test_getfriends_filters_members_of_chat(client: TestClient, make_user, make_chat, headers_for):
    alice, bob, carol, dave = (make_user(name) for name in ("alice", "bob", "carol", "dave"))
    make_chat("alice--bob", [alice.id, bob.id])
    make_chat("alice--carol", [alice.id, carol.id])
    group = make_chat("group", [alice.id, bob.id, dave.id], is_group=True, creator_id=alice.id)

    response = client.get("/api/v1/user/getfriends", params={"chatId": group.id}, headers=headers_for(alice))

    assert [friend["id"] for friend in response.json()] == [carol.id]
