import pytest
from fastapi.testclient import TestClient

from app import app
from backend import room_directory


@pytest.fixture
def http():
    with TestClient(app) as test_client:
        yield test_client


def join(ws, room_code, username):
    ws.send_json({"type": "join-room", "roomCode": room_code, "username": username})


def test_root_is_plain_text(http):
    response = http.get("/")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "Running" in response.text


def test_health_reports_counts(http):
    response = http.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["connections"] >= 0 and body["rooms"] >= 0


def test_unknown_room_is_404(http):
    assert http.get("/rooms/no-such-room").status_code == 404


def test_websocket_room_scenario(http):
    with http.websocket_connect("/") as alice:
        welcome = alice.receive_json()
        assert welcome["type"] == "welcome"
        alice_id = welcome["clientId"]

        join(alice, "app-R1", "alice")
        assert alice.receive_json() == {
            "type": "room-users",
            "users": [{"clientId": alice_id, "username": "alice", "online": True}],
        }

        with http.websocket_connect("/ws") as bob:
            bob_id = bob.receive_json()["clientId"]
            join(bob, "app-R1", "bob")

            assert alice.receive_json() == {
                "type": "peer-joined",
                "user": {"clientId": bob_id, "username": "bob", "online": True},
            }
            users = bob.receive_json()["users"]
            assert [u["username"] for u in users] == ["alice", "bob"]

            details = http.get("/rooms/app-R1").json()
            assert details["online_users_count"] == 2
            assert [u["display_name"] for u in details["online_users"]] == ["alice", "bob"]

            alice.send_json({"type": "send-message", "message": "hi", "roomCode": "app-R1"})
            assert bob.receive_json() == {"type": "receive-message", "message": "hi", "from": alice_id, "username": "alice"}

            # garbage is dropped without closing anything
            bob.send_text("{not json")
            bob.send_json({"type": "call-offer", "targetPeer": alice_id, "offer": {"sdp": "v=0"}})
            assert alice.receive_json() == {
                "type": "call-offer", "offer": {"sdp": "v=0"}, "from": bob_id, "username": "bob",
            }

        assert alice.receive_json() == {"type": "peer-left", "clientId": bob_id, "username": "bob"}
        assert [c.connection_id for c in room_directory.members("app-R1")] == [alice_id]


def test_failed_registration_closes_socket(http, monkeypatch):
    from starlette.websockets import WebSocketDisconnect

    from backend import connection_registry
    from message_router import message_router

    def refuse(outbox):
        raise RuntimeError("no free connection id")

    before = len(connection_registry)
    monkeypatch.setattr(message_router, "connect", refuse)
    with http.websocket_connect("/") as ws:
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()
    assert len(connection_registry) == before
