"""
Обработка сообщений WebSocket: auth, очередь, подключение к партии, ходы.
Сообщения одного соединения обрабатываются строго по очереди.
"""
import json
import logging
from dataclasses import dataclass

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .auth import IdentityProvider
from .constants import DEFAULT_DIFFICULTY
from .errors import GameError, InvalidRequest
from .lifecycle import SessionLifecycle
from .persistence import PersistenceGateway
from .ws_manager import Connection, WSManager

logger = logging.getLogger(__name__)


@dataclass
class Services:
    manager: WSManager
    lifecycle: SessionLifecycle
    identity: IdentityProvider
    gateway: PersistenceGateway


def _session_id(data: dict) -> str:
    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        raise InvalidRequest("session_id is required")
    return session_id


def _cell(data: dict) -> int:
    cell = data.get("cell")
    if isinstance(cell, bool) or not isinstance(cell, int):
        raise InvalidRequest("cell must be an integer")
    return cell


async def handle_ws_message(services: Services, conn: Connection, raw: str) -> bool:
    """
    Обрабатывает одно сообщение от уже авторизованного клиента.
    Возвращает False если соединение нужно закрыть.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("WS: invalid JSON from %s: %s", conn.player_id, e)
        return True
    if not isinstance(data, dict):
        logger.warning("WS: non-object message from %s", conn.player_id)
        return True
    t = data.get("type")
    logger.info("WS: msg from %s type=%s", conn.player_id, t)
    lifecycle = services.lifecycle
    try:
        if t == "join_queue":
            name = str(data.get("display_name") or conn.display_name)
            await lifecycle.join_queue(conn.connection_id, conn.player_id, conn.is_guest, name)
        elif t == "leave_queue":
            lifecycle.leave_queue(conn.connection_id)
        elif t == "create_ai_game":
            difficulty = data.get("difficulty") or DEFAULT_DIFFICULTY
            await lifecycle.create_ai_game(conn.connection_id, conn.player_id, conn.display_name, difficulty)
        elif t in ("join_game", "join_ai_game"):
            await lifecycle.bind(_session_id(data), conn.player_id, conn.connection_id)
        elif t == "make_move":
            await lifecycle.make_move(conn.connection_id, _session_id(data), _cell(data))
        elif t == "ping":
            await services.manager.send(conn.connection_id, {"type": "pong"})
        else:
            raise InvalidRequest(f"unknown message type {t!r}")
    except GameError as e:
        logger.warning("WS: %s rejected for %s: %s", t, conn.player_id, e)
        await services.manager.send(conn.connection_id, {"type": "error", "code": e.code})
    return True


async def ws_auth_and_loop(ws: WebSocket, services: Services) -> None:
    """
    Первое сообщение — auth. Дальше цикл приёма сообщений.
    """
    conn = None
    try:
        await ws.accept()
        logger.info("WS: accepted, waiting for auth")
        raw = await ws.receive_text()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict) or data.get("type") != "auth":
            logger.warning("WS: expected auth, closing 4001")
            await ws.close(code=4001)
            return
        identity = services.identity.resolve(data)
        if identity is None:
            logger.warning("WS: auth failed (invalid init_data or not debug)")
            await ws.close(code=4003)
            return
        if not identity.is_guest:
            try:
                await services.gateway.upsert_user(identity.player_id, identity.display_name)
            except Exception:
                logger.exception("WS: upsert_user failed for %s", identity.player_id)
        conn = await services.manager.connect(ws, identity.player_id, identity.display_name, identity.is_guest)
        logger.info("WS: auth ok player_id=%s name=%s guest=%s", identity.player_id, identity.display_name, identity.is_guest)
        auth_ok = {
            "type": "auth_ok",
            "player_id": identity.player_id,
            "display_name": identity.display_name,
            "is_guest": identity.is_guest,
        }
        if identity.is_guest:
            auth_ok["guest_token"] = services.identity.guest_token(identity.player_id)
        await services.manager.send(conn.connection_id, auth_ok)
        while True:
            msg = await ws.receive_text()
            if not await handle_ws_message(services, conn, msg):
                break
    except WebSocketDisconnect as e:
        logger.info("WS: client disconnected code=%s reason=%s player_id=%s",
                    e.code, e.reason or "", conn.player_id if conn else None)
    except Exception as e:
        logger.exception("WS: error player_id=%s: %s", conn.player_id if conn else None, e)
    finally:
        if conn:
            services.manager.disconnect(conn.connection_id)
            await services.lifecycle.on_connection_lost(conn.connection_id)
            logger.info("WS: disconnected player_id=%s", conn.player_id)
