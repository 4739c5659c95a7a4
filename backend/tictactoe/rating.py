"""
Рейтинг Эло и запись результата партии.
Ошибки хранилища логируются и проглатываются: на ход партии они не влияют.
"""
import logging

from .models import Session
from .persistence import PersistenceGateway

logger = logging.getLogger(__name__)


def calculate_elo(rating: int, opponent_rating: int, score: float, k: int = 32) -> int:
    expected = 1 / (1 + 10 ** ((opponent_rating - rating) / 400))
    return round(rating + k * (score - expected))


def scores_for(winner_id: str | None, x_id: str, o_id: str) -> tuple[float, float]:
    if winner_id is None:
        return 0.5, 0.5
    if winner_id == x_id:
        return 1.0, 0.0
    return 0.0, 1.0


class ResultReporter:
    def __init__(self, gateway: PersistenceGateway, k: int = 32, default_rating: int = 1000):
        self.gateway = gateway
        self.k = k
        self.default_rating = default_rating

    async def report(self, session: Session) -> bool:
        """
        Записать партию и обновить рейтинги обоих игроков.
        Партии с гостями (и ИИ) не записываются. Возвращает True если всё записано.
        """
        if not session.is_rated:
            return False
        x_id = session.player_x.player_id
        o_id = session.player_o.player_id
        try:
            await self.gateway.record_game(session.id, x_id, o_id, session.winner_id, list(session.board))
            user_x = await self.gateway.find_user(x_id)
            user_o = await self.gateway.find_user(o_id)
        except Exception:
            logger.exception("Failed to record game %s", session.id)
            return False
        if user_x is None or user_o is None:
            logger.warning("Rating skipped for %s: user record missing", session.id)
            return False

        rating_x = user_x.get("rating") or self.default_rating
        rating_o = user_o.get("rating") or self.default_rating
        score_x, score_o = scores_for(session.winner_id, x_id, o_id)
        new_x = calculate_elo(rating_x, rating_o, score_x, self.k)
        new_o = calculate_elo(rating_o, rating_x, score_o, self.k)

        try:
            await self.gateway.update_rating(x_id, new_x)
        except Exception:
            logger.exception("Failed to update rating for %s", x_id)
            return False
        try:
            await self.gateway.update_rating(o_id, new_o)
        except Exception:
            logger.exception("Failed to update rating for %s, rolling back %s", o_id, x_id)
            try:
                await self.gateway.update_rating(x_id, rating_x)
            except Exception:
                logger.exception("Rollback of rating for %s failed", x_id)
            return False
        logger.info("Game %s logged. New ratings: %s=%s, %s=%s", session.id, x_id, new_x, o_id, new_o)
        return True
