"""
Жизненный цикл партий: привязка соединений, переподключение, таймеры
отключения, тик часов, ходы ИИ и завершение партии ровно один раз.

Всё работает в одном event loop. После каждого await партию нужно заново
достать из хранилища и проверить, что она жива и в ожидаемом состоянии.
"""
import asyncio
import logging
from typing import Any, Protocol

from .ai import AIOpponent
from .clock import TurnClock
from .constants import (
    REASON_ABANDONED,
    REASON_GAME_COMPLETE,
    REASON_OPPONENT_DISCONNECT,
    REASON_TIMEOUT,
    STATUS_ABANDONED,
    STATUS_DRAW,
    STATUS_WON,
)
from .errors import AlreadyQueued, GameError, InvalidRequest, NotAParticipant, SessionNotFound, TimeoutExpired
from .models import Outcome, QueuedPlayer, Session
from .moves import CONTINUING, apply_move
from .rating import ResultReporter
from .store import QueueResult, SessionStore

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, connection_id: str, payload: dict[str, Any]) -> bool: ...


def _cancel(task: asyncio.Task | None) -> None:
    # Задача, которая сама завершает партию, себя не отменяет
    if task is not None and not task.done() and task is not asyncio.current_task():
        task.cancel()


class SessionLifecycle:
    def __init__(
        self,
        store: SessionStore,
        clock: TurnClock,
        transport: Transport,
        reporter: ResultReporter,
        ai: AIOpponent,
        grace_ms: int = 10_000,
        tick_interval_ms: int = 1_000,
        max_idle_ms: int = 300_000,
        sweep_interval_s: float = 60,
    ):
        self.store = store
        self.clock = clock
        self.transport = transport
        self.reporter = reporter
        self.ai = ai
        self.grace_ms = grace_ms
        self.tick_interval_ms = tick_interval_ms
        self.max_idle_ms = max_idle_ms
        self.sweep_interval_s = sweep_interval_s

    # --- payloads ---

    def board_payload(self, s: Session) -> dict[str, Any]:
        current = None
        if s.is_playing:
            current = self.clock.remaining(s, s.turn_player_id)
        return {
            "type": "board_update",
            "board": list(s.board),
            "turn": s.symbol_of(s.turn_player_id) if s.is_playing else None,
            "timers": self.clock.snapshot(s),
            "current_player_timer": current,
            "status": s.status,
        }

    @staticmethod
    def match_payload(s: Session, player_id: str) -> dict[str, Any]:
        me = s.player(player_id)
        return {
            "type": "match_found",
            "session_id": s.id,
            "symbol": me.symbol,
            "player_id": player_id,
            "opponent_name": s.opponent(player_id).display_name,
            "is_rated": s.is_rated,
        }

    @staticmethod
    def game_over_payload(s: Session) -> dict[str, Any]:
        if s.status == STATUS_DRAW:
            winner = "draw"
        else:
            winner = s.symbol_of(s.winner_id)
        return {"type": "game_over", "winner": winner, "reason": s.end_reason}

    async def _send(self, connection_id: str | None, payload: dict[str, Any]) -> None:
        if connection_id:
            await self.transport.send(connection_id, payload)

    async def _broadcast(self, s: Session, payload: dict[str, Any]) -> None:
        for p in s.players:
            if not p.is_ai and not p.disconnected:
                await self._send(p.connection_id, payload)

    # --- очередь и создание партий ---

    async def join_queue(
        self, connection_id: str, player_id: str, is_guest: bool, display_name: str
    ) -> QueueResult:
        if not player_id:
            raise InvalidRequest("missing player id")
        result = self.store.enqueue(QueuedPlayer(
            connection_id=connection_id,
            player_id=player_id,
            is_guest=bool(is_guest),
            display_name=display_name,
        ))
        if result is None:
            raise AlreadyQueued(player_id)
        if result.matched:
            await self._start_session(result.session)
        else:
            await self._send(connection_id, {"type": "queue_update", "position": result.position})
        return result

    def leave_queue(self, connection_id: str) -> bool:
        return self.store.dequeue_by_connection(connection_id)

    async def create_ai_game(
        self, connection_id: str, player_id: str, display_name: str, difficulty: str
    ) -> Session:
        if not player_id:
            raise InvalidRequest("missing player id")
        session = self.store.start_ai_session(
            QueuedPlayer(connection_id=connection_id, player_id=player_id, is_guest=True, display_name=display_name),
            difficulty,
        )
        if session is None:
            raise AlreadyQueued(player_id)
        await self._start_session(session)
        return session

    async def _start_session(self, s: Session) -> None:
        for p in s.players:
            if p.connection_id:
                self.store.bind(p.connection_id, p.player_id, s.id)
        s.tick_task = asyncio.create_task(self._tick_loop(s.id))
        self._maybe_schedule_ai(s)
        state = self.board_payload(s)
        for p in s.players:
            if not p.is_ai:
                await self._send(p.connection_id, self.match_payload(s, p.player_id))
                await self._send(p.connection_id, state)

    # --- привязка и отключение ---

    async def bind(self, session_id: str, player_id: str, connection_id: str) -> Session:
        """(Пере)привязать соединение к игроку партии и отправить ему полное состояние."""
        s = self.store.get(session_id)
        if s is None:
            finished = self.store.get_finished(session_id)
            if finished is None:
                raise SessionNotFound(session_id)
            if finished.player(player_id) is None:
                raise NotAParticipant(player_id)
            await self._send(connection_id, self.match_payload(finished, player_id))
            await self._send(connection_id, self.board_payload(finished))
            await self._send(connection_id, self.game_over_payload(finished))
            return finished

        p = s.player(player_id)
        if p is None or p.is_ai:
            raise NotAParticipant(player_id)
        if p.connection_id and p.connection_id != connection_id:
            self.store.unbind(p.connection_id)
        p.connection_id = connection_id
        p.disconnected = False
        self.store.bind(connection_id, player_id, s.id)
        _cancel(s.grace_timers.pop(player_id, None))
        s.last_activity_at = self.clock.now()
        logger.info("Player %s bound to %s via %s", player_id, s.id, connection_id)

        await self._send(connection_id, self.match_payload(s, player_id))
        await self._send(connection_id, self.board_payload(s))
        opponent = s.opponent(player_id)
        if not opponent.is_ai and not opponent.disconnected:
            await self._send(opponent.connection_id, {"type": "opponent_reconnected"})
        return s

    async def on_connection_lost(self, connection_id: str) -> None:
        self.store.dequeue_by_connection(connection_id)
        binding = self.store.binding(connection_id)
        self.store.unbind(connection_id)
        if binding is None:
            return
        s = self.store.get(binding.session_id)
        if s is None or s.closed or not s.is_playing:
            return
        p = s.player(binding.player_id)
        if p is None or p.connection_id != connection_id:
            return
        p.disconnected = True
        p.connection_id = None
        logger.info("Player %s disconnected from %s", p.player_id, s.id)

        opponent = s.opponent(p.player_id)
        if s.is_ai_session:
            await self.terminate(s.id, Outcome(opponent.player_id, REASON_OPPONENT_DISCONNECT, STATUS_WON))
            return
        delay_ms = self.grace_delay_ms(s, p.player_id)
        _cancel(s.grace_timers.pop(p.player_id, None))
        s.grace_timers[p.player_id] = asyncio.create_task(self._grace_expired(s.id, p.player_id, delay_ms))
        if not opponent.disconnected:
            await self._send(opponent.connection_id, {"type": "opponent_disconnected"})

    def grace_delay_ms(self, s: Session, player_id: str) -> int:
        """Сколько ждать вернувшегося игрока: не дольше, чем у него осталось на часах."""
        return min(self.grace_ms, self.clock.remaining(s, player_id))

    async def _grace_expired(self, session_id: str, player_id: str, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        s = self.store.get(session_id)
        if s is None or s.closed or not s.is_playing:
            return
        p = s.player(player_id)
        if p is None or not p.disconnected:
            return
        s.grace_timers.pop(player_id, None)
        opponent = s.opponent(player_id)
        # Первым истёк таймер этого игрока — победа сопернику, даже если тот тоже отключён
        logger.info("Player %s did not return to %s, forfeit", player_id, session_id)
        await self.terminate(session_id, Outcome(opponent.player_id, REASON_OPPONENT_DISCONNECT, STATUS_WON))

    # --- ходы ---

    async def make_move(self, connection_id: str, session_id: str, cell: int) -> None:
        binding = self.store.binding(connection_id)
        if binding is None or binding.session_id != session_id:
            if self.store.get(session_id) is None:
                raise SessionNotFound(session_id)
            raise NotAParticipant(connection_id)
        await self._play(session_id, binding.player_id, cell)

    async def _play(self, session_id: str, player_id: str, cell: int) -> None:
        try:
            result = apply_move(self.store, self.clock, session_id, player_id, cell)
        except TimeoutExpired:
            s = self.store.get(session_id)
            logger.info("Player %s ran out of time in %s", player_id, session_id)
            await self.terminate(session_id, Outcome(s.opponent(player_id).player_id, REASON_TIMEOUT, STATUS_WON))
            return
        s = result.session
        if result.outcome == CONTINUING:
            self._maybe_schedule_ai(s)
            await self._broadcast(s, self.board_payload(s))
            return
        await self.terminate(session_id, Outcome(s.winner_id, REASON_GAME_COMPLETE, s.status))

    # --- часы ---

    async def _tick_loop(self, session_id: str) -> None:
        while True:
            await asyncio.sleep(self.tick_interval_ms / 1000)
            s = self.store.get(session_id)
            if s is None or s.closed or not s.is_playing:
                return
            await self.check_timeout(session_id)

    async def check_timeout(self, session_id: str) -> bool:
        """Проверка часов: истекли — поражение по времени, иначе рассылка состояния."""
        s = self.store.get(session_id)
        if s is None or s.closed or not s.is_playing:
            return False
        holder = s.turn_player_id
        grace = s.grace_timers.get(holder)
        # Таймер отключения не длиннее остатка на часах: пока он взведён, исход решает он
        awaiting_rejoin = grace is not None and not grace.done()
        if self.clock.is_expired(s) and not awaiting_rejoin:
            self.clock.commit_elapsed(s)
            s.version += 1
            logger.info("Player %s timed out in %s", holder, session_id)
            await self.terminate(session_id, Outcome(s.opponent(holder).player_id, REASON_TIMEOUT, STATUS_WON))
            return True
        await self._broadcast(s, self.board_payload(s))
        return False

    # --- ИИ ---

    def _maybe_schedule_ai(self, s: Session) -> None:
        ai = s.ai_player()
        if ai is None or not s.is_playing or s.turn_player_id != ai.player_id:
            return
        if s.ai_task is not None and not s.ai_task.done():
            return
        s.ai_task = asyncio.create_task(self._ai_turn(s.id, s.version))

    def _live(self, session_id: str, version: int) -> Session | None:
        s = self.store.get(session_id)
        if s is None or s.closed or not s.is_playing or s.version != version:
            return None
        return s

    async def _ai_turn(self, session_id: str, version: int) -> None:
        await self.ai.think()
        s = self._live(session_id, version)
        if s is None:
            return
        ai = s.ai_player()
        move = await self.ai.select_move(list(s.board), ai.symbol, s.difficulty)
        if move is None or self._live(session_id, version) is None:
            return
        # Пока идёт рассылка этого хода, человек может успеть ответить: следующий ход ИИ — новая задача
        if s.ai_task is asyncio.current_task():
            s.ai_task = None
        try:
            await self._play(session_id, ai.player_id, move)
        except GameError as e:
            logger.warning("AI move %s rejected in %s: %s", move, session_id, e.code)

    # --- завершение ---

    async def terminate(self, session_id: str, outcome: Outcome) -> bool:
        """
        Завершить партию: статус, остановка таймеров, уведомления, запись результата.
        Повторный вызов (гонка таймаута, отключения и хода) ничего не делает.
        Всё до первого await выполняется атомарно относительно других обработчиков.
        """
        s = self.store.get(session_id)
        if s is None or s.closed:
            return False
        s.closed = True
        self.store.remove(session_id)
        if s.turn_started_at is not None:
            self.clock.commit_elapsed(s)
        s.status = outcome.status
        s.winner_id = outcome.winner_id if outcome.status == STATUS_WON else None
        s.end_reason = outcome.reason
        _cancel(s.tick_task)
        _cancel(s.ai_task)
        for task in s.grace_timers.values():
            _cancel(task)
        s.grace_timers.clear()
        for p in s.players:
            self.store.unbind(p.connection_id)
        logger.info("Game %s over: status=%s winner=%s reason=%s", s.id, s.status, s.winner_id, s.end_reason)

        await self._broadcast(s, self.board_payload(s))
        await self._broadcast(s, self.game_over_payload(s))
        if s.status != STATUS_ABANDONED:
            await self.reporter.report(s)
        return True

    # --- фоновая чистка ---

    async def sweep_once(self) -> int:
        idle = self.store.idle_sessions(self.clock.now(), self.max_idle_ms)
        count = 0
        for s in idle:
            logger.info("Removing idle game %s", s.id)
            if await self.terminate(s.id, Outcome(None, REASON_ABANDONED, STATUS_ABANDONED)):
                count += 1
        return count

    async def run_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Idle sweep failed")

    def shutdown(self) -> None:
        for s in self.store.sessions():
            _cancel(s.tick_task)
            _cancel(s.ai_task)
            for task in s.grace_timers.values():
                _cancel(task)
