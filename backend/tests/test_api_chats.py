"""Integration tests for chat management and message history endpoints."""

from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import select

from app.models import Chat, Message
from app.services import persist_message


def test_create_group_adds_creator_last(client: TestClient, make_user, headers_for):
    alice, bob, carol = (make_user(name) for name in ("alice", "bob", "carol"))

    response = client.post(
        "/api/v1/chat/new",
        json={"name": "Book club", "members": [bob.id, carol.id, bob.id]},
        headers=headers_for(alice),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["is_group"] is True
    assert body["creator_id"] == alice.id
    assert body["members"] == [bob.id, carol.id, alice.id]


def test_create_group_validates_members(client: TestClient, make_user, headers_for):
    alice, bob = make_user("alice"), make_user("bob")

    too_small = client.post("/api/v1/chat/new", json={"name": "Pair", "members": [bob.id]}, headers=headers_for(alice))
    unknown = client.post(
        "/api/v1/chat/new", json={"name": "Ghosts", "members": [bob.id, 999]}, headers=headers_for(alice)
    )

    assert too_small.status_code == 400
    assert unknown.status_code == 404


def test_my_chats_and_groups(client: TestClient, make_user, make_chat, headers_for):
    alice, bob, carol = (make_user(name, name=name.title()) for name in ("alice", "bob", "carol"))
    direct = make_chat("Alice--Bob", [alice.id, bob.id])
    group = make_chat("Trio", [alice.id, bob.id, carol.id], is_group=True, creator_id=alice.id)

    chats = client.get("/api/v1/chat/my", headers=headers_for(alice)).json()
    by_id = {chat["id"]: chat for chat in chats}
    assert by_id[direct.id]["name"] == "Bob"
    assert by_id[direct.id]["members"] == [bob.id]
    assert by_id[group.id]["name"] == "Trio"
    assert by_id[group.id]["members"] == [bob.id, carol.id]

    groups = client.get("/api/v1/chat/my/group", headers=headers_for(alice)).json()
    assert [item["id"] for item in groups] == [group.id]
    assert client.get("/api/v1/chat/my/group", headers=headers_for(bob)).json() == []


def test_add_and_remove_members(client: TestClient, make_user, make_chat, headers_for, session_factory):
    alice, bob, carol, dave = (make_user(name) for name in ("alice", "bob", "carol", "dave"))
    group = make_chat("Trio", [alice.id, bob.id, carol.id], is_group=True, creator_id=alice.id)

    outsider = client.put(
        "/api/v1/chat/addMembers", json={"chatId": group.id, "members": [dave.id]}, headers=headers_for(dave)
    )
    assert outsider.status_code == 403

    added = client.put(
        "/api/v1/chat/addMembers", json={"chatId": group.id, "members": [dave.id]}, headers=headers_for(bob)
    )
    assert added.json()["message"] == "Members added successfully"

    nothing_new = client.put(
        "/api/v1/chat/addMembers", json={"chatId": group.id, "members": [dave.id]}, headers=headers_for(bob)
    )
    assert nothing_new.json()["message"] == "No new members to add"

    not_creator = client.put(
        "/api/v1/chat/removeMembers", json={"chatId": group.id, "userId": dave.id}, headers=headers_for(bob)
    )
    assert not_creator.status_code == 403

    removed = client.put(
        "/api/v1/chat/removeMembers", json={"chatId": group.id, "userId": dave.id}, headers=headers_for(alice)
    )
    assert removed.status_code == 200

    not_member = client.put(
        "/api/v1/chat/removeMembers", json={"chatId": group.id, "userId": dave.id}, headers=headers_for(alice)
    )
    assert not_member.status_code == 404

    below_minimum = client.put(
        "/api/v1/chat/removeMembers", json={"chatId": group.id, "userId": carol.id}, headers=headers_for(alice)
    )
    assert below_minimum.status_code == 400

    with session_factory() as session:
        assert session.get(Chat, group.id).member_ids == [alice.id, bob.id, carol.id]


def test_creator_leaving_hands_group_to_earliest_member(
    client: TestClient, make_user, make_chat, headers_for, session_factory
):
    alice, bob, carol, dave = (make_user(name) for name in ("alice", "bob", "carol", "dave"))
    group = make_chat("Quartet", [alice.id, bob.id, carol.id, dave.id], is_group=True, creator_id=alice.id)

    response = client.delete(f"/api/v1/chat/leave/{group.id}", headers=headers_for(alice))

    assert response.status_code == 200
    with session_factory() as session:
        chat = session.get(Chat, group.id)
        assert chat.creator_id == bob.id
        assert chat.member_ids == [bob.id, carol.id, dave.id]

    too_few = client.delete(f"/api/v1/chat/leave/{group.id}", headers=headers_for(bob))
    assert too_few.status_code == 400


def test_rename_rules(client: TestClient, make_user, make_chat, headers_for):
    alice, bob, carol = (make_user(name) for name in ("alice", "bob", "carol"))
    group = make_chat("Trio", [alice.id, bob.id, carol.id], is_group=True, creator_id=alice.id)
    direct = make_chat("alice--bob", [alice.id, bob.id])

    assert client.put(f"/api/v1/chat/{group.id}", json={"name": "New"}, headers=headers_for(bob)).status_code == 403
    assert client.put(f"/api/v1/chat/{direct.id}", json={"name": "New"}, headers=headers_for(alice)).status_code == 400
    assert client.put(f"/api/v1/chat/{group.id}", json={"name": "New"}, headers=headers_for(alice)).status_code == 200

    detail = client.get(f"/api/v1/chat/{group.id}", params={"populate": True}, headers=headers_for(bob)).json()
    assert detail["name"] == "New"
    assert [member["id"] for member in detail["members"]] == [alice.id, bob.id, carol.id]


def test_get_chat_requires_membership(client: TestClient, make_user, make_chat, headers_for):
    alice, bob, carol = (make_user(name) for name in ("alice", "bob", "carol"))
    direct = make_chat("alice--bob", [alice.id, bob.id])

    assert client.get(f"/api/v1/chat/{direct.id}", headers=headers_for(carol)).status_code == 403
    assert client.get("/api/v1/chat/999", headers=headers_for(alice)).status_code == 404
    assert client.get(f"/api/v1/chat/{direct.id}", headers=headers_for(bob)).json()["members"] == [alice.id, bob.id]


def test_attachments_are_stored_and_listed(client: TestClient, make_user, make_chat, headers_for, media_root):
    alice, bob, carol = (make_user(name) for name in ("alice", "bob", "carol"))
    direct = make_chat("alice--bob", [alice.id, bob.id])

    forbidden = client.post(
        "/api/v1/chat/message",
        data={"chatId": str(direct.id)},
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
        headers=headers_for(carol),
    )
    assert forbidden.status_code == 403

    response = client.post(
        "/api/v1/chat/message",
        data={"chatId": str(direct.id)},
        files=[("files", ("notes.txt", b"hello", "text/plain")), ("files", ("b.txt", b"world", "text/plain"))],
        headers=headers_for(alice),
    )
    assert response.status_code == 201, response.text
    attachments = response.json()["attachments"]
    assert len(attachments) == 2
    assert client.get(attachments[0]["url"]).content == b"hello"

    history = client.get(f"/api/v1/chat/message/{direct.id}", headers=headers_for(bob)).json()
    assert history["total_pages"] == 1
    assert history["messages"][0]["sender"]["id"] == alice.id
    assert [item["public_id"] for item in history["messages"][0]["attachments"]] == [
        item["public_id"] for item in attachments
    ]


def test_history_pages_newest_first(client: TestClient, make_user, make_chat, headers_for, db_session):
    alice, bob = make_user("alice"), make_user("bob")
    direct = make_chat("alice--bob", [alice.id, bob.id])
    for index in range(25):
        persist_message(db_session, chat_id=direct.id, sender_id=alice.id, content=f"m{index}", source="rest")

    first = client.get(f"/api/v1/chat/message/{direct.id}", headers=headers_for(bob)).json()
    second = client.get(f"/api/v1/chat/message/{direct.id}", params={"page": 2}, headers=headers_for(bob)).json()

    assert first["total_pages"] == 2
    assert [message["content"] for message in first["messages"]] == [f"m{index}" for index in range(5, 25)]
    assert [message["content"] for message in second["messages"]] == [f"m{index}" for index in range(5)]


def test_delete_chat_removes_messages_and_blobs(client: TestClient, make_user, make_chat, headers_for, session_factory, media_root):
    alice, bob, carol = (make_user(name) for name in ("alice", "bob", "carol"))
    group = make_chat("Trio", [alice.id, bob.id, carol.id], is_group=True, creator_id=alice.id)
    upload = client.post(
        "/api/v1/chat/message",
        data={"chatId": str(group.id)},
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
        headers=headers_for(bob),
    )
    public_id = upload.json()["attachments"][0]["public_id"]
    assert (media_root / public_id).is_file()

    assert client.delete(f"/api/v1/chat/{group.id}", headers=headers_for(bob)).status_code == 403
    assert client.delete(f"/api/v1/chat/{group.id}", headers=headers_for(alice)).status_code == 200

    assert not (media_root / public_id).exists()
    with session_factory() as session:
        assert session.get(Chat, group.id) is None
        assert session.execute(select(Message)).first() is None
