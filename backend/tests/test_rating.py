"""Тесты Elo и записи результатов."""
from unittest.mock import AsyncMock

import pytest

from tictactoe.constants import STATUS_WON
from tictactoe.models import QueuedPlayer
from tictactoe.persistence import InMemoryGateway, PersistenceError
from tictactoe.rating import ResultReporter, calculate_elo, scores_for


class TestElo:
    def test_equal_ratings_win(self):
        assert calculate_elo(1000, 1000, 1) == 1016
        assert calculate_elo(1000, 1000, 0) == 984

    def test_equal_ratings_draw(self):
        assert calculate_elo(1000, 1000, 0.5) == 1000

    def test_underdog_gains_more(self):
        assert calculate_elo(1000, 1400, 1) - 1000 > calculate_elo(1400, 1000, 1) - 1400

    def test_scores(self):
        assert scores_for(None, "x", "o") == (0.5, 0.5)
        assert scores_for("x", "x", "o") == (1.0, 0.0)
        assert scores_for("o", "x", "o") == (0.0, 1.0)


@pytest.fixture
async def finished(store, gateway):
    await gateway.upsert_user("alice", "Alice")
    await gateway.upsert_user("bob", "Bob")
    store.enqueue(QueuedPlayer("c1", "alice", False, "Alice"))
    s = store.enqueue(QueuedPlayer("c2", "bob", False, "Bob")).session
    s.status = STATUS_WON
    s.winner_id = "alice"
    return s


class TestResultReporter:
    async def test_rated_game(self, gateway, finished):
        assert await ResultReporter(gateway).report(finished)
        assert len(gateway.games) == 1
        assert gateway.games[0]["winner_id"] == "alice"
        assert gateway.users["alice"]["rating"] == 1016
        assert gateway.users["bob"]["rating"] == 984

    async def test_unrated_game_is_skipped(self, finished):
        gw = AsyncMock()
        finished.is_rated = False
        assert not await ResultReporter(gw).report(finished)
        gw.record_game.assert_not_called()
        gw.update_rating.assert_not_called()

    async def test_record_failure_is_swallowed(self, finished):
        gw = AsyncMock()
        gw.record_game.side_effect = PersistenceError("down")
        assert not await ResultReporter(gw).report(finished)
        gw.update_rating.assert_not_called()

    async def test_second_update_failure_rolls_back(self, finished):
        gw = InMemoryGateway()
        gw.users = {"alice": {"id": "alice", "rating": 1200}, "bob": {"id": "bob", "rating": 1100}}
        original = gw.update_rating
        calls = []

        async def flaky(player_id, rating):
            calls.append((player_id, rating))
            if player_id == "bob":
                raise PersistenceError("boom")
            await original(player_id, rating)

        gw.update_rating = flaky
        assert not await ResultReporter(gw).report(finished)
        assert gw.users["alice"]["rating"] == 1200
        assert gw.users["bob"]["rating"] == 1100
        assert calls[-1] == ("alice", 1200)
