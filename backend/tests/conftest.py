"""
Общие фикстуры: ручные часы, транспорт-заглушка, собранный SessionLifecycle.
"""
import asyncio
import random

import pytest

from tictactoe.ai import AIOpponent
from tictactoe.clock import TurnClock
from tictactoe.lifecycle import SessionLifecycle
from tictactoe.persistence import InMemoryGateway
from tictactoe.rating import ResultReporter
from tictactoe.store import SessionStore


class ManualClock:
    def __init__(self, start: int = 1_000_000):
        self.t = start

    def __call__(self) -> int:
        return self.t

    def advance(self, ms: int) -> None:
        self.t += ms


class FakeTransport:
    def __init__(self):
        self.sent: list[tuple[str, dict]] = []

    async def send(self, connection_id: str, payload: dict) -> bool:
        self.sent.append((connection_id, payload))
        return True

    def to(self, connection_id: str, msg_type: str | None = None) -> list[dict]:
        return [p for c, p in self.sent if c == connection_id and (msg_type is None or p["type"] == msg_type)]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def clock(manual_clock):
    return TurnClock(now=manual_clock)


@pytest.fixture
def store(clock):
    return SessionStore(clock, turn_ms=60_000)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def ai():
    return AIOpponent(think_min_ms=0, think_max_ms=0, rng=random.Random(7))


@pytest.fixture
async def lifecycle(store, clock, transport, gateway, ai):
    lc = SessionLifecycle(
        store=store,
        clock=clock,
        transport=transport,
        reporter=ResultReporter(gateway),
        ai=ai,
        grace_ms=10_000,
        tick_interval_ms=3_600_000,  # тик вызываем из тестов вручную
        max_idle_ms=300_000,
    )
    yield lc
    lc.shutdown()
    await asyncio.sleep(0)


async def settle(times: int = 5) -> None:
    """Дать отработать созданным задачам."""
    for _ in range(times):
        await asyncio.sleep(0)
