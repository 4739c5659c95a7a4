"""
Доска 3x3: чистые функции над списком из 9 клеток.
Клетка — None или символ игрока ("X" / "O").
"""
from .constants import BOARD_SIZE, WIN_LINES
from .errors import InvalidCell

Board = list[str | None]


def new_board() -> Board:
    return [None] * BOARD_SIZE


def empty_cells(board: Board) -> list[int]:
    return [i for i, cell in enumerate(board) if cell is None]


def apply_mark(board: Board, index: int, symbol: str) -> Board:
    """Поставить символ в клетку. Возвращает новую доску, исходная не меняется."""
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidCell(f"cell must be an integer, got {index!r}")
    if not 0 <= index < BOARD_SIZE:
        raise InvalidCell(f"cell {index} is out of range")
    if board[index] is not None:
        raise InvalidCell(f"cell {index} is taken")
    updated = list(board)
    updated[index] = symbol
    return updated


def detect_winner(board: Board) -> str | None:
    for a, b, c in WIN_LINES:
        if board[a] is not None and board[a] == board[b] == board[c]:
            return board[a]
    return None


def is_draw(board: Board) -> bool:
    return all(cell is not None for cell in board) and detect_winner(board) is None
