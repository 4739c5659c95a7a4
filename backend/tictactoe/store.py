"""
Хранилище in-memory: очередь пейринга, живые партии, привязки соединений.
Один экземпляр на приложение; его передают всем компонентам.
Игрок может быть либо в очереди, либо в одной живой партии, но не больше.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass

from .clock import TurnClock
from .models import Binding, QueuedPlayer, Session
from .pairing import create_ai_session, create_session

logger = logging.getLogger(__name__)

FINISHED_KEEP = 500  # сколько завершённых партий помнить для переподключения


@dataclass
class QueueResult:
    matched: bool
    position: int = 0
    session: Session | None = None


class SessionStore:
    def __init__(self, clock: TurnClock, turn_ms: int):
        self.clock = clock
        self.turn_ms = turn_ms
        self._queue: list[QueuedPlayer] = []
        self._sessions: dict[str, Session] = {}
        self._finished: OrderedDict[str, Session] = OrderedDict()
        self._bindings: dict[str, Binding] = {}  # connection_id -> Binding

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def is_queued(self, player_id: str) -> bool:
        return any(p.player_id == player_id for p in self._queue)

    def is_busy(self, player_id: str) -> bool:
        return self.is_queued(player_id) or self.session_for_player(player_id) is not None

    def enqueue(self, player: QueuedPlayer) -> QueueResult | None:
        """
        Встать в очередь или сразу получить партию.
        None — игрок (или соединение) уже в очереди либо уже играет.
        """
        if any(p.connection_id == player.connection_id for p in self._queue):
            return None
        if self.is_busy(player.player_id):
            return None
        player.joined_at = self.clock.now()
        self._queue.append(player)
        if len(self._queue) >= 2:
            p1 = self._queue.pop(0)
            p2 = self._queue.pop(0)
            session = create_session(p1, p2, self.clock, self.turn_ms)
            self.add(session)
            logger.info("Matched %s vs %s -> %s", p1.player_id, p2.player_id, session.id)
            return QueueResult(matched=True, session=session)
        return QueueResult(matched=False, position=len(self._queue))

    def start_ai_session(self, player: QueuedPlayer, difficulty: str) -> Session | None:
        """Партия против ИИ. None — игрок уже в очереди или играет."""
        if self.is_busy(player.player_id):
            return None
        player.joined_at = self.clock.now()
        session = create_ai_session(player, self.clock, self.turn_ms, difficulty)
        self.add(session)
        logger.info("AI game %s for %s (%s)", session.id, player.player_id, session.difficulty)
        return session

    def dequeue_by_connection(self, connection_id: str) -> bool:
        """Убрать ожидающего из очереди. Возвращает True если был в очереди."""
        for i, p in enumerate(self._queue):
            if p.connection_id == connection_id:
                self._queue.pop(i)
                return True
        return False

    def add(self, session: Session) -> None:
        self._sessions[session.id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_finished(self, session_id: str) -> Session | None:
        return self._finished.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        """Убрать живую партию. Повторный вызов ничего не делает."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            self._finished[session_id] = session
            while len(self._finished) > FINISHED_KEEP:
                self._finished.popitem(last=False)
        return session

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def session_for_player(self, player_id: str) -> Session | None:
        for s in self._sessions.values():
            if s.player(player_id) is not None:
                return s
        return None

    def bind(self, connection_id: str, player_id: str, session_id: str) -> None:
        self._bindings[connection_id] = Binding(player_id=player_id, session_id=session_id)

    def binding(self, connection_id: str) -> Binding | None:
        return self._bindings.get(connection_id)

    def unbind(self, connection_id: str | None) -> None:
        if connection_id:
            self._bindings.pop(connection_id, None)

    def idle_sessions(self, now: int, max_idle_ms: int) -> list[Session]:
        return [s for s in self._sessions.values() if now - s.last_activity_at > max_idle_ms]
