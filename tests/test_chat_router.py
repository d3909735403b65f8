"""
Tests de los endpoints HTTP y WebSocket de /api/chats.

La autenticación y el store se reemplazan con dependency_overrides: el
usuario autenticado es el que indique el header X-Test-User.
"""
import pytest
from fastapi import Header
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from socialchat_backend.dependencies import get_current_user_id, get_ws_user_id
from socialchat_backend.exceptions import SubscriptionError, TransientStoreError
from socialchat_backend.main import app
from socialchat_backend.supabase_client import get_chat_store, get_user_directory


@pytest.fixture
def client(store, directory):
    async def current_user(x_test_user: str = Header("A")):
        return x_test_user

    async def ws_user(token: str = "A"):
        return token

    app.dependency_overrides[get_chat_store] = lambda: store
    app.dependency_overrides[get_user_directory] = lambda: directory
    app.dependency_overrides[get_current_user_id] = current_user
    app.dependency_overrides[get_ws_user_id] = ws_user
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def people(directory):
    directory.profiles.update({
        "A": {"displayName": "Alice", "email": "alice@x.com", "photoURL": "https://img/a.png"},
        "B": {"displayName": "", "email": "bob@x.com"},
        "C": {"displayName": "Carla"},
    })
    return directory


def _open_chat(client, other="B", user="A"):
    res = client.post("/api/chats", json={"otherUserId": other}, headers={"X-Test-User": user})
    assert res.status_code == 200, res.text
    return res.json()["chatRoomId"]


class TestCreateChat:

    def test_creates_room_with_directory_profiles(self, client, store, people):
        room_id = _open_chat(client)

        details = store.rooms[room_id]["participantDetails"]
        assert details["A"]["displayName"] == "Alice"
        assert details["B"]["displayName"] == "bob@x.com"

    def test_profiles_in_body_win(self, client, store, people):
        res = client.post("/api/chats", json={
            "otherUserId": "B",
            "other": {"displayName": "Bobby", "email": "bob@x.com"},
        })

        room_id = res.json()["chatRoomId"]
        assert store.rooms[room_id]["participantDetails"]["B"]["displayName"] == "Bobby"

    def test_same_room_from_both_sides(self, client, store, people):
        assert _open_chat(client, "B", "A") == _open_chat(client, "A", "B")
        assert len(store.rooms) == 1

    def test_chat_with_yourself_is_rejected(self, client, people):
        res = client.post("/api/chats", json={"otherUserId": "A"})

        assert res.status_code == 400

    def test_missing_other_user_is_validation_error(self, client):
        res = client.post("/api/chats", json={})

        assert res.status_code == 400
        assert "detail" in res.json()

    def test_transient_store_error_is_503(self, client, store, people):
        async def broken(room_id):
            raise TransientStoreError("sin red")

        store.get_room = broken
        res = client.post("/api/chats", json={"otherUserId": "B"})

        assert res.status_code == 503


class TestSendMessage:

    def test_sends_as_authenticated_user(self, client, store, people):
        room_id = _open_chat(client)

        res = client.post(f"/api/chats/{room_id}/messages", json={"text": "hello"})

        assert res.status_code == 201
        body = res.json()
        assert body["text"] == "hello"
        assert body["chatRoomId"] == room_id
        assert body["user"] == {"id": "A", "name": "Alice", "avatar": "https://img/a.png"}
        assert store.rooms[room_id]["lastMessage"] == "hello"

    def test_explicit_user_must_match(self, client, people):
        room_id = _open_chat(client)

        res = client.post(f"/api/chats/{room_id}/messages", json={
            "text": "hello",
            "user": {"id": "B", "name": "Bob"},
        })

        assert res.status_code == 403

    def test_non_member_is_forbidden(self, client, people):
        room_id = _open_chat(client)

        res = client.post(f"/api/chats/{room_id}/messages", json={"text": "hi"}, headers={"X-Test-User": "C"})

        assert res.status_code == 403

    def test_unknown_room_is_404(self, client):
        res = client.post("/api/chats/nope/messages", json={"text": "hi"})

        assert res.status_code == 404

    def test_empty_text_is_rejected(self, client, store, people):
        room_id = _open_chat(client)

        res = client.post(f"/api/chats/{room_id}/messages", json={"text": ""})

        assert res.status_code == 400
        assert store.messages == {}


class TestUsers:

    def test_lists_everyone_but_the_caller(self, client, people):
        res = client.get("/api/chats/users")

        assert res.status_code == 200
        assert res.json() == [
            {"uid": "B", "email": "bob@x.com"},
            {"uid": "C", "displayName": "Carla"},
        ]


class TestLiveFeeds:

    def test_messages_feed_pushes_snapshots(self, client, people):
        room_id = _open_chat(client)

        with client.websocket_connect(f"/api/chats/ws/rooms/{room_id}/messages?token=A") as ws:
            assert ws.receive_json() == []

            client.post(f"/api/chats/{room_id}/messages", json={"text": "one"})
            assert [m["text"] for m in ws.receive_json()] == ["one"]

            client.post(f"/api/chats/{room_id}/messages", json={"text": "two"}, headers={"X-Test-User": "B"})
            assert [m["text"] for m in ws.receive_json()] == ["two", "one"]

    def test_messages_feed_rejects_non_members(self, client, people):
        room_id = _open_chat(client)

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/api/chats/ws/rooms/{room_id}/messages?token=C") as ws:
                ws.receive_json()

    def test_chat_list_feed_pushes_new_rooms(self, client, people):
        with client.websocket_connect("/api/chats/ws/me?token=C") as ws:
            assert ws.receive_json() == []

            client.post("/api/chats", json={"otherUserId": "C", "other": {"displayName": ""}})

            first = ws.receive_json()
            assert first[0]["otherUserId"] == "A"
            assert first[0]["otherUserName"] == "Alice"

    def test_failed_subscription_closes_with_1011(self, client, store, people):
        async def broken(user_id, on_snapshot, on_error):
            raise SubscriptionError("canal caído")

        store.watch_rooms = broken
        with client.websocket_connect("/api/chats/ws/me?token=C") as ws:
            with pytest.raises(WebSocketDisconnect) as info:
                ws.receive_json()

        assert info.value.code == 1011
