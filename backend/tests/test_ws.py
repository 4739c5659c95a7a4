"""Сквозные тесты через WebSocket-эндпоинт."""
import random

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tictactoe.ai import AIOpponent
from tictactoe.auth import IdentityProvider
from tictactoe.clock import TurnClock
from tictactoe.lifecycle import SessionLifecycle
from tictactoe.main import create_app
from tictactoe.persistence import InMemoryGateway
from tictactoe.rating import ResultReporter
from tictactoe.store import SessionStore
from tictactoe.ws_handlers import Services
from tictactoe.ws_manager import WSManager


@pytest.fixture
def services():
    clock = TurnClock()
    manager = WSManager()
    gateway = InMemoryGateway()
    lifecycle = SessionLifecycle(
        store=SessionStore(clock, 60_000),
        clock=clock,
        transport=manager,
        reporter=ResultReporter(gateway),
        ai=AIOpponent(think_min_ms=0, think_max_ms=0, rng=random.Random(1)),
        tick_interval_ms=3_600_000,
    )
    return Services(manager=manager, lifecycle=lifecycle, identity=IdentityProvider(debug=True), gateway=gateway)


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as c:
        yield c


def receive_until(ws, msg_type: str, limit: int = 20) -> dict:
    for _ in range(limit):
        msg = ws.receive_json()
        if msg["type"] == msg_type:
            return msg
    raise AssertionError(f"no {msg_type} message")


def auth(ws, uid: int) -> dict:
    ws.send_json({"type": "auth", "debug_uid": uid})
    return receive_until(ws, "auth_ok")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "sessions": 0, "queued": 0}


def test_first_message_must_be_auth(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "join_queue"})
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 4001


def test_failed_auth_closes(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "auth", "init_data": "garbage"})
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 4003


def test_full_game(client, services):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        assert auth(a, 1)["player_id"] == "dev1"
        auth(b, 2)
        a.send_json({"type": "join_queue"})
        assert receive_until(a, "queue_update")["position"] == 1
        b.send_json({"type": "join_queue"})
        match_a = receive_until(a, "match_found")
        match_b = receive_until(b, "match_found")
        assert match_a["symbol"] == "X" and match_b["symbol"] == "O"
        assert match_a["is_rated"]
        session_id = match_a["session_id"]
        receive_until(a, "board_update")
        receive_until(b, "board_update")

        # Ждём рассылку после каждого хода: соединения обрабатываются независимо
        for ws, cell in [(a, 4), (b, 0), (a, 3), (b, 1), (a, 5)]:
            ws.send_json({"type": "make_move", "session_id": session_id, "cell": cell})
            receive_until(a, "board_update")
            receive_until(b, "board_update")
        over_a = receive_until(a, "game_over")
        over_b = receive_until(b, "game_over")
        assert over_a == over_b == {"type": "game_over", "winner": "X", "reason": "game_complete"}

    assert len(services.gateway.games) == 1
    assert services.gateway.users["dev1"]["rating"] == 1016
    assert services.gateway.users["dev2"]["rating"] == 984


def test_rejected_requests_get_error_frames(client):
    with client.websocket_connect("/ws") as ws:
        auth(ws, 5)
        ws.send_json({"type": "make_move", "cell": 1})
        assert receive_until(ws, "error")["code"] == "invalid_request"
        ws.send_json({"type": "join_game", "session_id": "missing"})
        assert receive_until(ws, "error")["code"] == "session_not_found"
        ws.send_text("{not json")
        ws.send_json({"type": "ping"})
        assert receive_until(ws, "pong") == {"type": "pong"}


def test_ai_game(client):
    with client.websocket_connect("/ws") as ws:
        auth(ws, 9)
        ws.send_json({"type": "create_ai_game", "difficulty": "easy"})
        match = receive_until(ws, "match_found")
        assert not match["is_rated"]
        receive_until(ws, "board_update")
        ws.send_json({"type": "make_move", "session_id": match["session_id"], "cell": 0})
        receive_until(ws, "board_update")
        state = receive_until(ws, "board_update")
        assert state["board"][4] == "O"
        assert state["turn"] == "X"


def test_guest_rejoins_with_token(client):
    with client.websocket_connect("/ws") as b:
        with client.websocket_connect("/ws") as a:
            a.send_json({"type": "auth", "guest": True})
            ok = receive_until(a, "auth_ok")
            guest_id, token = ok["player_id"], ok["guest_token"]
            b.send_json({"type": "auth", "guest": True})
            receive_until(b, "auth_ok")
            a.send_json({"type": "join_queue"})
            receive_until(a, "queue_update")
            b.send_json({"type": "join_queue"})
            session_id = receive_until(a, "match_found")["session_id"]
            receive_until(b, "match_found")

        with client.websocket_connect("/ws") as a2:
            a2.send_json({"type": "auth", "guest": True, "guest_token": token})
            assert receive_until(a2, "auth_ok")["player_id"] == guest_id
            a2.send_json({"type": "join_game", "session_id": session_id})
            match = receive_until(a2, "match_found")
            assert match["symbol"] == "X"
            assert not match["is_rated"]
            receive_until(a2, "board_update")
            receive_until(b, "opponent_reconnected")
            a2.send_json({"type": "make_move", "session_id": session_id, "cell": 4})
            state = receive_until(a2, "board_update")
            assert state["board"][4] == "X"
            assert state["turn"] == "O"
