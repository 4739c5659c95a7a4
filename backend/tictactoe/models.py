"""
Модели in-memory состояния: очередь, партия, привязка соединения.
"""
import asyncio
from dataclasses import dataclass, field

from .board import Board, new_board
from .constants import DEFAULT_DIFFICULTY, STATUS_PLAYING


@dataclass
class QueuedPlayer:
    connection_id: str
    player_id: str
    is_guest: bool
    display_name: str
    joined_at: int = 0  # мс, часы TurnClock


@dataclass
class SessionPlayer:
    player_id: str
    symbol: str  # назначается один раз при создании партии
    display_name: str
    is_guest: bool
    is_ai: bool = False
    connection_id: str | None = None
    disconnected: bool = False

    @classmethod
    def from_queue(cls, entry: QueuedPlayer, symbol: str) -> "SessionPlayer":
        return cls(
            player_id=entry.player_id,
            symbol=symbol,
            display_name=entry.display_name or f"user_{entry.player_id[:8]}",
            is_guest=entry.is_guest,
            connection_id=entry.connection_id,
        )


@dataclass
class Outcome:
    winner_id: str | None
    reason: str
    status: str


@dataclass
class Session:
    id: str
    players: tuple[SessionPlayer, SessionPlayer]
    turn_player_id: str
    timers: dict[str, int]
    turn_started_at: int | None  # None — часы остановлены
    is_rated: bool
    created_at: int
    last_activity_at: int
    board: Board = field(default_factory=new_board)
    status: str = STATUS_PLAYING
    winner_id: str | None = None
    end_reason: str | None = None
    difficulty: str = DEFAULT_DIFFICULTY
    version: int = 0  # растёт при каждом переходе хода
    # Рантайм: таймеры партии, отменяются при завершении
    closed: bool = field(default=False, repr=False)
    tick_task: asyncio.Task | None = field(default=None, repr=False)
    ai_task: asyncio.Task | None = field(default=None, repr=False)
    grace_timers: dict[str, asyncio.Task] = field(default_factory=dict, repr=False)

    @property
    def player_x(self) -> SessionPlayer:
        return self.players[0]

    @property
    def player_o(self) -> SessionPlayer:
        return self.players[1]

    @property
    def is_playing(self) -> bool:
        return self.status == STATUS_PLAYING

    @property
    def is_ai_session(self) -> bool:
        return any(p.is_ai for p in self.players)

    def player(self, player_id: str) -> SessionPlayer | None:
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def opponent(self, player_id: str) -> SessionPlayer:
        return self.players[1] if self.players[0].player_id == player_id else self.players[0]

    def symbol_of(self, player_id: str | None) -> str | None:
        p = self.player(player_id) if player_id else None
        return p.symbol if p else None

    def ai_player(self) -> SessionPlayer | None:
        for p in self.players:
            if p.is_ai:
                return p
        return None


@dataclass
class Binding:
    player_id: str
    session_id: str
