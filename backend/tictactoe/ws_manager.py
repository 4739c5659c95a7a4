"""
Менеджер WebSocket: подключения по connection_id, отправка сообщений.
Новое подключение того же игрока закрывает старое.
"""
import logging
import uuid
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, ws: WebSocket, connection_id: str, player_id: str, display_name: str, is_guest: bool):
        self.ws = ws
        self.connection_id = connection_id
        self.player_id = player_id
        self.display_name = display_name
        self.is_guest = is_guest


class WSManager:
    def __init__(self):
        self._by_id: dict[str, Connection] = {}
        self._by_player: dict[str, str] = {}  # player_id -> connection_id

    @property
    def count(self) -> int:
        return len(self._by_id)

    def get(self, connection_id: str) -> Connection | None:
        return self._by_id.get(connection_id)

    async def connect(self, ws: WebSocket, player_id: str, display_name: str, is_guest: bool) -> Connection:
        old_id = self._by_player.get(player_id)
        old = self._by_id.get(old_id) if old_id else None
        if old is not None:
            logger.info("WS: replacing connection %s of %s", old.connection_id, player_id)
            try:
                await old.ws.close(code=4000)
            except RuntimeError as e:
                logger.debug("WS: close of old connection %s failed: %s", old.connection_id, e)
        conn = Connection(ws, uuid.uuid4().hex, player_id, display_name, is_guest)
        self._by_id[conn.connection_id] = conn
        self._by_player[player_id] = conn.connection_id
        return conn

    def disconnect(self, connection_id: str) -> None:
        conn = self._by_id.pop(connection_id, None)
        if conn and self._by_player.get(conn.player_id) == connection_id:
            del self._by_player[conn.player_id]

    async def send(self, connection_id: str, payload: dict[str, Any]) -> bool:
        conn = self._by_id.get(connection_id)
        if not conn:
            return False
        try:
            await conn.ws.send_json(payload)
            return True
        except Exception as e:
            logger.warning("send to %s (%s): %s", connection_id, conn.player_id, e)
            return False
