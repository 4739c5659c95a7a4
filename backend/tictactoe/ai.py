"""
ИИ-соперник.
Стратегия по умолчанию: выиграть, заблокировать, центр, угол, край, любая клетка.
Если настроен ключ OpenAI, сначала спрашиваем модель; при ошибке, таймауте
или некорректном ответе — стратегия по умолчанию.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable

import aiohttp

from .board import Board, empty_cells
from .constants import CENTER, CORNERS, DEFAULT_DIFFICULTY, DIFFICULTIES, EDGES, O, WIN_LINES, X

logger = logging.getLogger(__name__)

ExternalStrategy = Callable[[Board, str, str], Awaitable[int | None]]


def find_winning_move(board: Board, symbol: str) -> int | None:
    for line in WIN_LINES:
        cells = [board[i] for i in line]
        if cells.count(symbol) == 2 and cells.count(None) == 1:
            return line[cells.index(None)]
    return None


def default_move(board: Board, symbol: str, rng: random.Random | None = None) -> int | None:
    rng = rng or random.Random()
    available = empty_cells(board)
    if not available:
        return None
    move = find_winning_move(board, symbol)
    if move is not None:
        return move
    move = find_winning_move(board, O if symbol == X else X)
    if move is not None:
        return move
    if board[CENTER] is None:
        return CENTER
    for group in (CORNERS, EDGES):
        free = [i for i in group if board[i] is None]
        if free:
            return rng.choice(free)
    return rng.choice(available)


def board_to_string(board: Board) -> str:
    s = [cell or " " for cell in board]
    rows = [f" {s[i]} | {s[i + 1]} | {s[i + 2]} " for i in (0, 3, 6)]
    return "\n-----------\n".join(rows)


class OpenAIStrategy:
    """Ход от chat-completion модели. Возвращает None, если ответ не разобран."""

    def __init__(self, api_key: str, model: str, base_url: str, timeout_s: float):
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def __call__(self, board: Board, symbol: str, difficulty: str) -> int | None:
        level = next((d for d in DIFFICULTIES if d["key"] == difficulty), DIFFICULTIES[1])
        available = empty_cells(board)
        prompt = (
            f"You are playing tic-tac-toe. You are {symbol}.\n\n"
            f"Current board state:\n{board_to_string(board)}\n\n"
            f"Available moves (0-8, left to right, top to bottom): {', '.join(map(str, available))}\n\n"
            "Choose your next move by responding with ONLY the position number (0-8)."
        )
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": level["prompt"]},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": 10,
            "temperature": level["temperature"],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with aiohttp.ClientSession(timeout=self.timeout) as http:
            async with http.post(self.url, json=body, headers=headers) as resp:
                resp.raise_for_status()
                data = await resp.json()
        text = data["choices"][0]["message"]["content"].strip()
        try:
            return int(text)
        except ValueError:
            logger.warning("AI strategy returned non-numeric move %r", text)
            return None


class AIOpponent:
    def __init__(
        self,
        strategy: ExternalStrategy | None = None,
        think_min_ms: int = 1000,
        think_max_ms: int = 3000,
        strategy_timeout_s: float = 5.0,
        rng: random.Random | None = None,
    ):
        self.strategy = strategy
        self.think_min_ms = think_min_ms
        self.think_max_ms = think_max_ms
        self.strategy_timeout_s = strategy_timeout_s
        self.rng = rng or random.Random()

    def think_delay_ms(self) -> int:
        return self.rng.randint(self.think_min_ms, max(self.think_min_ms, self.think_max_ms))

    async def think(self) -> None:
        await asyncio.sleep(self.think_delay_ms() / 1000)

    async def select_move(self, board: Board, symbol: str, difficulty: str = DEFAULT_DIFFICULTY) -> int | None:
        if self.strategy is not None and empty_cells(board):
            try:
                move = await asyncio.wait_for(
                    self.strategy(list(board), symbol, difficulty), self.strategy_timeout_s
                )
            except asyncio.TimeoutError:
                logger.warning("AI strategy timed out, using fallback")
            except Exception:
                logger.exception("AI strategy failed, using fallback")
            else:
                if isinstance(move, int) and 0 <= move < len(board) and board[move] is None:
                    return move
                logger.warning("AI strategy returned invalid move %r, using fallback", move)
        return default_move(board, symbol, self.rng)


def build_ai(config) -> AIOpponent:
    strategy = None
    if config.openai_api_key:
        strategy = OpenAIStrategy(
            config.openai_api_key,
            config.openai_model,
            config.openai_base_url,
            config.ai_strategy_timeout_s,
        )
    else:
        logger.info("OpenAI API key not configured, AI uses the built-in strategy")
    return AIOpponent(
        strategy=strategy,
        think_min_ms=config.ai_think_min_ms,
        think_max_ms=config.ai_think_max_ms,
        strategy_timeout_s=config.ai_strategy_timeout_s,
    )
