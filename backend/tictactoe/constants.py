"""Константы игры: символы, линии, причины завершения, уровни ИИ."""
from typing import TypedDict

X = "X"
O = "O"

BOARD_SIZE = 9

# 3 строки, 3 столбца, 2 диагонали
WIN_LINES: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)
CENTER = 4
CORNERS = (0, 2, 6, 8)
EDGES = (1, 3, 5, 7)

STATUS_PLAYING = "playing"
STATUS_WON = "won"
STATUS_DRAW = "draw"
STATUS_ABANDONED = "abandoned"

REASON_GAME_COMPLETE = "game_complete"
REASON_TIMEOUT = "timeout"
REASON_OPPONENT_DISCONNECT = "opponent_disconnect"
REASON_ABANDONED = "abandoned"


class Difficulty(TypedDict):
    key: str
    temperature: float
    prompt: str


DIFFICULTIES: list[Difficulty] = [
    {
        "key": "easy",
        "temperature": 0.8,
        "prompt": (
            "You are a casual tic-tac-toe player. Make reasonable moves but don't "
            "always play optimally."
        ),
    },
    {
        "key": "medium",
        "temperature": 0.3,
        "prompt": (
            "You are a competent tic-tac-toe player. Take clear wins and block "
            "obvious threats, but you may make strategic mistakes."
        ),
    },
    {
        "key": "hard",
        "temperature": 0.3,
        "prompt": (
            "You are an expert tic-tac-toe player. Play optimally, always take a "
            "winning move and always block the opponent."
        ),
    },
]

DIFFICULTY_KEYS = [d["key"] for d in DIFFICULTIES]
DEFAULT_DIFFICULTY = "medium"
