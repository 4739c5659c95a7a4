"""Тесты функций доски."""
import itertools

import pytest

from tictactoe.board import apply_mark, detect_winner, empty_cells, is_draw, new_board
from tictactoe.constants import WIN_LINES
from tictactoe.errors import InvalidCell


def board_from(s: str) -> list:
    return [None if c == "." else c for c in s]


class TestApplyMark:
    def test_places_symbol_and_keeps_original(self):
        board = new_board()
        updated = apply_mark(board, 4, "X")
        assert updated[4] == "X"
        assert board[4] is None

    @pytest.mark.parametrize("index", [-1, 9, 100])
    def test_out_of_range(self, index):
        with pytest.raises(InvalidCell):
            apply_mark(new_board(), index, "X")

    def test_occupied(self):
        with pytest.raises(InvalidCell):
            apply_mark(board_from("X........"), 0, "O")

    @pytest.mark.parametrize("index", ["4", 4.0, None, True])
    def test_non_integer(self, index):
        with pytest.raises(InvalidCell):
            apply_mark(new_board(), index, "X")


class TestDetectWinner:
    def test_empty_board(self):
        assert detect_winner(new_board()) is None

    @pytest.mark.parametrize("line", WIN_LINES)
    @pytest.mark.parametrize("symbol", ["X", "O"])
    def test_every_line(self, line, symbol):
        board = new_board()
        for i in line:
            board[i] = symbol
        assert detect_winner(board) == symbol

    def test_no_three_in_a_row(self):
        assert detect_winner(board_from("XOXXOOOXX")) is None
        assert detect_winner(board_from("XO.OX....")) is None

    def test_winner_iff_uniform_line(self):
        """Перебор всех досок: победитель есть ровно когда есть однородная линия."""
        for cells in itertools.product([None, "X", "O"], repeat=9):
            board = list(cells)
            uniform = [board[a] for a, b, c in WIN_LINES if board[a] is not None and board[a] == board[b] == board[c]]
            winner = detect_winner(board)
            if uniform:
                assert winner in uniform
            else:
                assert winner is None


class TestIsDraw:
    def test_full_without_winner(self):
        assert is_draw(board_from("XOXXOOOXX"))

    def test_full_with_winner_is_not_draw(self):
        assert not is_draw(board_from("XXXOOXOXO"))

    def test_not_full(self):
        assert not is_draw(board_from("XOXXOOOX."))

    def test_nine_alternating_moves_without_winner(self):
        board = new_board()
        for n, cell in enumerate([0, 1, 2, 4, 3, 5, 7, 6, 8]):
            board = apply_mark(board, cell, "X" if n % 2 == 0 else "O")
            if n < 8:
                assert not is_draw(board)
        assert detect_winner(board) is None
        assert is_draw(board)
        assert empty_cells(board) == []
