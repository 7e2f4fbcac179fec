from __future__ import annotations

from typing import Any, List, Optional, Protocol, Tuple

from .errors import IllegalMove

Board = List[Any]


class Rules(Protocol):
    name: str
    title: str
    marks: Tuple[str, str]
    empty_symbol: str
    move_count: int
    default_idle_timeout: float

    def new_board(self) -> Board: ...

    def apply_move(self, board: Board, move: int, mark: str) -> Any: ...

    def detect_win(self, board: Board, position: Any, mark: str) -> bool: ...

    def is_full(self, board: Board) -> bool: ...

    def legal_moves(self, board: Board) -> List[int]: ...

    def rows(self, board: Board) -> List[List[Optional[str]]]: ...


def _coerce_move(move: Any, upper: int, label: str) -> int:
    # bool is an int subclass; fractions and strings are not moves.
    if isinstance(move, bool) or not isinstance(move, int):
        raise IllegalMove(f"Invalid {label}: {move!r}")
    if move < 0 or move >= upper:
        raise IllegalMove(f"Invalid {label}: {move!r}")
    return move


class TicTacToeRules:
    name = "tictactoe"
    title = "Tic Tac Toe"
    marks = ("❌", "⭕")
    empty_symbol = "\u200b"
    move_count = 9
    default_idle_timeout = 3 * 60.0

    LINES = (
        (0, 1, 2),
        (3, 4, 5),
        (6, 7, 8),
        (0, 3, 6),
        (1, 4, 7),
        (2, 5, 8),
        (0, 4, 8),
        (2, 4, 6),
    )

    def new_board(self) -> Board:
        return [None] * 9

    def apply_move(self, board: Board, move: int, mark: str) -> int:
        cell = _coerce_move(move, 9, "cell")
        if board[cell] is not None:
            raise IllegalMove("This spot is already taken!")
        board[cell] = mark
        return cell

    def detect_win(self, board: Board, position: int, mark: str) -> bool:
        # Every line is checked; only the mover can complete one.
        for a, b, c in self.LINES:
            if board[a] == mark and board[b] == mark and board[c] == mark:
                return True
        return False

    def is_full(self, board: Board) -> bool:
        return all(cell is not None for cell in board)

    def legal_moves(self, board: Board) -> List[int]:
        return [i for i, cell in enumerate(board) if cell is None]

    def rows(self, board: Board) -> List[List[Optional[str]]]:
        return [board[r * 3 : r * 3 + 3] for r in range(3)]


class Connect4Rules:
    name = "connect4"
    title = "Connect 4"
    marks = ("🔴", "🟡")
    empty_symbol = "⚫"
    move_count = 7
    default_idle_timeout = 5 * 60.0

    ROWS = 6
    COLUMNS = 7
    DIRECTIONS = ((0, 1), (1, 0), (1, 1), (1, -1))

    def new_board(self) -> Board:
        return [[None] * self.COLUMNS for _ in range(self.ROWS)]

    def apply_move(self, board: Board, move: int, mark: str) -> Tuple[int, int]:
        col = _coerce_move(move, self.COLUMNS, "column")
        # Row 0 is the top; pieces settle from the bottom up.
        for row in range(self.ROWS - 1, -1, -1):
            if board[row][col] is None:
                board[row][col] = mark
                return row, col
        raise IllegalMove("That column is full!")

    def _in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.ROWS and 0 <= col < self.COLUMNS

    def detect_win(self, board: Board, position: Tuple[int, int], mark: str) -> bool:
        row, col = position
        for dr, dc in self.DIRECTIONS:
            count = 1
            for sign in (1, -1):
                r, c = row + sign * dr, col + sign * dc
                while self._in_bounds(r, c) and board[r][c] == mark:
                    count += 1
                    r += sign * dr
                    c += sign * dc
            if count >= 4:
                return True
        return False

    def is_full(self, board: Board) -> bool:
        return all(cell is not None for cell in board[0])

    def legal_moves(self, board: Board) -> List[int]:
        return [c for c in range(self.COLUMNS) if board[0][c] is None]

    def rows(self, board: Board) -> List[List[Optional[str]]]:
        return [list(row) for row in board]


VARIANTS = {
    "tictactoe": TicTacToeRules,
    "ttt": TicTacToeRules,
    "connect4": Connect4Rules,
    "c4": Connect4Rules,
}


def get_rules(name: str) -> Rules:
    try:
        return VARIANTS[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown game '{name}'. Must be one of {sorted(VARIANTS)}"
        ) from None
