"""
Хранилище пользователей, рейтингов и сыгранных партий.
InMemoryGateway — для разработки и тестов, SupabaseGateway — PostgREST по HTTP.
"""
import json
import logging
from typing import Any, Protocol

import aiohttp

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    pass


class PersistenceGateway(Protocol):
    async def find_user(self, player_id: str) -> dict | None: ...

    async def upsert_user(self, player_id: str, display_name: str) -> None: ...

    async def record_game(
        self,
        session_id: str,
        player_x: str,
        player_o: str,
        winner: str | None,
        final_board: list[str | None],
    ) -> None: ...

    async def update_rating(self, player_id: str, rating: int) -> None: ...


class InMemoryGateway:
    def __init__(self):
        self.users: dict[str, dict[str, Any]] = {}
        self.games: list[dict[str, Any]] = []

    async def find_user(self, player_id: str) -> dict | None:
        user = self.users.get(player_id)
        return dict(user) if user else None

    async def upsert_user(self, player_id: str, display_name: str) -> None:
        user = self.users.setdefault(player_id, {"id": player_id, "rating": None})
        user["display_name"] = display_name

    async def record_game(self, session_id, player_x, player_o, winner, final_board) -> None:
        self.games.append({
            "session_id": session_id,
            "player_x_id": player_x,
            "player_o_id": player_o,
            "winner_id": winner,
            "state": list(final_board),
        })

    async def update_rating(self, player_id: str, rating: int) -> None:
        if player_id not in self.users:
            raise PersistenceError(f"unknown user {player_id}")
        self.users[player_id]["rating"] = rating


class SupabaseGateway:
    """Таблицы users(id, display_name, rating) и games(...) через REST API Supabase."""

    def __init__(self, url: str, service_key: str, timeout_s: float = 10.0):
        self.base = f"{url}/rest/v1"
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: aiohttp.ClientSession | None = None

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers, timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, table: str, **kwargs) -> Any:
        try:
            async with self._http().request(method, f"{self.base}/{table}", **kwargs) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise PersistenceError(f"{method} {table}: HTTP {resp.status} {body[:200]}")
                if resp.content_type == "application/json":
                    return await resp.json()
                return None
        except aiohttp.ClientError as e:
            raise PersistenceError(f"{method} {table}: {e}") from e

    async def find_user(self, player_id: str) -> dict | None:
        rows = await self._request(
            "GET", "users", params={"id": f"eq.{player_id}", "select": "id,rating"}
        )
        return rows[0] if rows else None

    async def upsert_user(self, player_id: str, display_name: str) -> None:
        await self._request(
            "POST",
            "users",
            data=json.dumps([{"id": player_id, "display_name": display_name}]),
            headers={"Prefer": "resolution=merge-duplicates"},
        )

    async def record_game(self, session_id, player_x, player_o, winner, final_board) -> None:
        await self._request("POST", "games", data=json.dumps([{
            "id": session_id,
            "player_x_id": player_x,
            "player_o_id": player_o,
            "winner_id": winner,
            "state": json.dumps(final_board),
        }]))

    async def update_rating(self, player_id: str, rating: int) -> None:
        await self._request(
            "PATCH", "users", params={"id": f"eq.{player_id}"}, data=json.dumps({"rating": rating})
        )


def build_gateway(config) -> PersistenceGateway:
    if config.supabase_url and config.supabase_service_key:
        logger.info("Persistence: Supabase at %s", config.supabase_url)
        return SupabaseGateway(config.supabase_url, config.supabase_service_key)
    logger.info("Persistence: in-memory")
    return InMemoryGateway()
