"""
Создание партий из пары ожидающих игроков (или игрока и ИИ).
Первый игрок — X и ходит первым, второй — O.
"""
import uuid

from .clock import TurnClock
from .constants import DEFAULT_DIFFICULTY, DIFFICULTY_KEYS, O, X
from .models import QueuedPlayer, Session, SessionPlayer

AI_DISPLAY_NAME = "ChatGPT"


def create_session(p1: QueuedPlayer, p2: QueuedPlayer, clock: TurnClock, turn_ms: int) -> Session:
    now = clock.now()
    x = SessionPlayer.from_queue(p1, X)
    o = SessionPlayer.from_queue(p2, O)
    return _new_session((x, o), clock, turn_ms, now)


def create_ai_session(
    human: QueuedPlayer,
    clock: TurnClock,
    turn_ms: int,
    difficulty: str = DEFAULT_DIFFICULTY,
) -> Session:
    """Партия против ИИ: человек играет X. У ИИ свой id на каждую партию."""
    now = clock.now()
    x = SessionPlayer.from_queue(human, X)
    ai = SessionPlayer(
        player_id=f"ai_{uuid.uuid4().hex[:12]}",
        symbol=O,
        display_name=AI_DISPLAY_NAME,
        is_guest=True,
        is_ai=True,
    )
    session = _new_session((x, ai), clock, turn_ms, now)
    session.difficulty = difficulty if difficulty in DIFFICULTY_KEYS else DEFAULT_DIFFICULTY
    return session


def _new_session(players: tuple[SessionPlayer, SessionPlayer], clock: TurnClock, turn_ms: int, now: int) -> Session:
    x, o = players
    session = Session(
        id=str(uuid.uuid4()),
        players=players,
        turn_player_id=x.player_id,
        timers={x.player_id: turn_ms, o.player_id: turn_ms},
        turn_started_at=None,
        is_rated=not (x.is_guest or o.is_guest),
        created_at=now,
        last_activity_at=now,
    )
    clock.start_turn(session, x.player_id)
    return session
