import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from oarigin.main import app
from oarigin.services import narration_client
from oarigin.services.narration_client import NarrationClient

client = TestClient(app)


@pytest.fixture(autouse=True)
def stub_narrator(monkeypatch):
    monkeypatch.setattr(narration_client, "CLIENT", NarrationClient("", provider="stub"))


def _register(username):
    response = client.post("/players/register", json={"username": username})
    assert response.status_code == 200
    body = response.json()
    return body["player_id"], {"Authorization": f"Bearer {body['token']}"}


def _create_room(headers, **payload):
    response = client.post("/rooms", json=payload, headers=headers)
    assert response.status_code == 200
    return response.json()["room"]


def test_auth_errors():
    assert client.post("/rooms", json={}).status_code == 401
    bad = client.post("/rooms", json={}, headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 403
    assert bad.json()["detail"] == "invalid_token"


def test_register_rejects_blank_username():
    response = client.post("/players/register", json={"username": "   "})

    assert response.status_code == 422


def test_full_game_flow():
    alice_id, alice = _register("Alice")
    bob_id, bob = _register("Bob")
    room = _create_room(alice, genre="Sci-Fi")
    room_id = room["id"]
    assert len(room["code"]) == 4

    joined = client.post("/rooms/join", json={"code": f" {room['code']} "}, headers=bob)
    assert joined.status_code == 200
    assert [p["id"] for p in joined.json()["players"]] == [alice_id, bob_id]

    # only the host changes settings or starts
    assert client.patch(f"/rooms/{room_id}/settings", json={"mode": "multiple_choice"}, headers=bob).status_code == 403
    assert client.post(f"/rooms/{room_id}/start", json={"countdown_s": 0}, headers=bob).status_code == 403

    started = client.post(f"/rooms/{room_id}/start", json={"countdown_s": 0}, headers=alice)
    assert started.status_code == 200
    assert started.json()["phase"] == "PLAYING"
    assert started.json()["segments_count"] == 1
    assert started.json()["current_player_id"] == alice_id

    locked = client.patch(f"/rooms/{room_id}/settings", json={"genre": "Horror"}, headers=alice)
    assert locked.status_code == 409
    assert locked.json()["detail"] == "room_locked"

    not_turn = client.post(f"/rooms/{room_id}/actions", json={"text": "I wave"}, headers=bob)
    assert not_turn.status_code == 409
    assert not_turn.json()["detail"] == "not_your_turn"

    empty = client.post(f"/rooms/{room_id}/actions", json={"text": "  "}, headers=alice)
    assert empty.status_code == 422

    action = client.post(f"/rooms/{room_id}/actions", json={"text": "I open the airlock"}, headers=alice)
    assert action.status_code == 200
    body = action.json()
    assert body["segment"]["player_input"] == "I open the airlock"
    assert body["next_player_id"] == bob_id
    assert body["degraded"] is False
    assert body["choices"] == []

    story = client.get(f"/rooms/{room_id}/story", headers=bob).json()
    assert story["count"] == 2

    transcript = client.get(f"/rooms/{room_id}/transcript", headers=bob)
    assert transcript.status_code == 200
    assert f"oarigin-adventure-{room['code']}.txt" in transcript.headers["content-disposition"]
    assert transcript.text.startswith("# OARigin Adventure Transcript")
    assert "> I open the airlock" in transcript.text

    ended = client.post(f"/rooms/{room_id}/end", headers=alice)
    assert ended.status_code == 200
    assert ended.json()["phase"] == "ENDED"
    assert ended.json()["room"]["status"] == "closed"


def test_unknown_room_and_code():
    _, alice = _register("Alice")

    assert client.get("/rooms/doesnotexist", headers=alice).status_code == 404
    missing = client.post("/rooms/join", json={"code": "0000"}, headers=alice)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "room_not_found"


def test_matchmaking_fills_the_same_public_room():
    _, alice = _register("Alice")
    _, bob = _register("Bob")

    first = client.post("/rooms/matchmaking", json={"genre": "Mystery"}, headers=alice).json()
    second = client.post("/rooms/matchmaking", json={}, headers=bob).json()

    assert first["room"]["is_public"] is True
    assert second["room"]["id"] == first["room"]["id"]
    assert len(second["players"]) == 2


def test_leave_hands_host_to_next_player():
    _, alice = _register("Alice")
    bob_id, bob = _register("Bob")
    room = _create_room(alice)
    client.post("/rooms/join", json={"code": room["code"]}, headers=bob)

    left = client.post(f"/rooms/{room['id']}/leave", headers=alice)

    assert left.status_code == 200
    assert left.json()["room"]["host_id"] == bob_id
    assert client.post(f"/rooms/{room['id']}/leave", headers=alice).status_code == 404


def test_chat_is_members_only():
    _, alice = _register("Alice")
    _, eve = _register("Eve")
    room = _create_room(alice)

    posted = client.post(f"/rooms/{room['id']}/chat", json={"message": "hello"}, headers=alice)
    assert posted.status_code == 200
    assert client.post(f"/rooms/{room['id']}/chat", json={"message": "hi"}, headers=eve).status_code == 403

    messages = client.get(f"/rooms/{room['id']}/chat", headers=alice).json()["messages"]
    assert [m["message"] for m in messages] == ["hello"]


def test_room_socket_sends_state_and_pong():
    _, alice = _register("Alice")
    token = alice["Authorization"].split(" ", 1)[1]
    room = _create_room(alice)

    with client.websocket_connect(f"/ws/rooms/{room['id']}?token={token}") as ws:
        first = ws.receive_json()
        assert first["type"] == "room_state"
        assert first["payload"]["room"]["id"] == room["id"]
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_room_socket_rejects_bad_token():
    _, alice = _register("Alice")
    room = _create_room(alice)

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/rooms/{room['id']}?token=bad") as ws:
            ws.receive_json()


def test_health_endpoints():
    assert client.get("/health").json()["ok"] is True

    narration = client.get("/health/narration").json()
    assert narration["ok"] is True
    assert narration["provider"] == "stub"
    assert narration["sample"].startswith("[stub]")
