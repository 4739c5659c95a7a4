"""
Часы партии: у каждого игрока свой остаток, идут только у того, чей ход.
Вся арифметика времени живёт здесь; остальные модули её не повторяют.
"""
import time
from typing import Callable

from .models import Session


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class TurnClock:
    def __init__(self, now: Callable[[], int] = monotonic_ms):
        self.now = now

    def remaining(self, session: Session, player_id: str) -> int:
        """Остаток игрока в мс с учётом идущего хода."""
        stored = session.timers[player_id]
        if session.turn_started_at is None or player_id != session.turn_player_id:
            return stored
        return max(0, stored - (self.now() - session.turn_started_at))

    def commit_elapsed(self, session: Session) -> int:
        """
        Списать прошедшее время с того, чей ход, и остановить часы.
        Вызывается ровно один раз на переход хода. Возвращает его остаток.
        """
        holder = session.turn_player_id
        remaining = self.remaining(session, holder)
        session.timers[holder] = remaining
        session.turn_started_at = None
        return remaining

    def start_turn(self, session: Session, player_id: str) -> None:
        session.turn_player_id = player_id
        session.turn_started_at = self.now()

    def is_expired(self, session: Session) -> bool:
        if not session.is_playing or session.turn_started_at is None:
            return False
        return self.remaining(session, session.turn_player_id) <= 0

    def snapshot(self, session: Session) -> dict[str, int]:
        """Остатки обоих игроков на текущий момент (для board_update)."""
        return {p.player_id: self.remaining(session, p.player_id) for p in session.players}
