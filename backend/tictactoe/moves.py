"""
Применение хода: проверки, часы, победа/ничья, передача хода.
Только изменение данных партии; рассылка и запись результата — забота вызывающего.
"""
from dataclasses import dataclass

from .board import apply_mark, detect_winner, is_draw
from .clock import TurnClock
from .constants import STATUS_DRAW, STATUS_WON
from .errors import GameNotActive, InvalidCell, NotYourTurn, SessionNotFound, TimeoutExpired
from .models import Session
from .store import SessionStore

CONTINUING = "continuing"
WON = "won"
DRAW = "draw"


@dataclass
class MoveResult:
    session: Session
    outcome: str  # continuing | won | draw


def apply_move(store: SessionStore, clock: TurnClock, session_id: str, player_id: str, cell: int) -> MoveResult:
    s = store.get(session_id)
    if s is None:
        raise SessionNotFound(session_id)
    if not s.is_playing:
        raise GameNotActive(session_id)
    if player_id != s.turn_player_id:
        raise NotYourTurn(player_id)
    if isinstance(cell, bool) or not isinstance(cell, int) or not 0 <= cell < len(s.board) or s.board[cell] is not None:
        raise InvalidCell(f"cell {cell!r}")

    mover = s.player(player_id)
    remaining = clock.commit_elapsed(s)
    s.version += 1
    s.last_activity_at = clock.now()
    if remaining <= 0:
        raise TimeoutExpired(player_id)

    s.board = apply_mark(s.board, cell, mover.symbol)
    if detect_winner(s.board) == mover.symbol:
        s.status = STATUS_WON
        s.winner_id = player_id
        return MoveResult(session=s, outcome=WON)
    if is_draw(s.board):
        s.status = STATUS_DRAW
        return MoveResult(session=s, outcome=DRAW)
    clock.start_turn(s, s.opponent(player_id).player_id)
    return MoveResult(session=s, outcome=CONTINUING)
