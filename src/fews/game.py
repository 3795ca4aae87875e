"""Core rules for the 3x3 tic-tac-toe game played against the 'Fews AI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

Mark = str  # "X" or "O"
Board = List[str]

PLAYER: Mark = "X"
OPPONENT: Mark = "O"
EMPTY = " "

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


class GameStatus(str, Enum):
    PLAYING = "playing"
    WON = "won"
    DRAW = "draw"


def new_board() -> Board:
    return [EMPTY] * 9


def winning_line(board: Board) -> Optional[Tuple[int, int, int]]:
    """Return the first triple fully owned by a single mark, if any."""
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v != EMPTY and v == board[b] == board[c]:
            return (a, b, c)
    return None


def check_winner(board: Board) -> Optional[Mark]:
    line = winning_line(board)
    return board[line[0]] if line else None


def is_board_full(board: Board) -> bool:
    return all(c != EMPTY for c in board)


def empty_cells(board: Board) -> List[int]:
    return [i for i, c in enumerate(board) if c == EMPTY]


@dataclass
class TicTacToeGame:
    """One game session: the board plus the playing -> won | draw machine."""

    board: Board = field(default_factory=new_board)
    current_player: Mark = PLAYER
    status: GameStatus = GameStatus.PLAYING
    winner: Optional[Mark] = None
    winning_line: Optional[Tuple[int, int, int]] = None
    move_count: int = 0

    @property
    def is_over(self) -> bool:
        return self.status != GameStatus.PLAYING

    def available_moves(self) -> List[int]:
        if self.is_over:
            return []
        return empty_cells(self.board)

    def play_move(self, index: int) -> None:
        """Place the current player's mark and advance the state machine."""
        if self.is_over:
            raise ValueError("Game already finished")
        if not 0 <= index < 9:
            raise ValueError(f"Cell index {index} is outside the board")
        if self.board[index] != EMPTY:
            raise ValueError("Cell already occupied")

        self.board[index] = self.current_player
        self.move_count += 1

        line = winning_line(self.board)
        if line:
            self.status = GameStatus.WON
            self.winner = self.board[line[0]]
            self.winning_line = line
            return
        if is_board_full(self.board):
            self.status = GameStatus.DRAW
            return
        self.current_player = OPPONENT if self.current_player == PLAYER else PLAYER

    def reset(self) -> None:
        self.board = new_board()
        self.current_player = PLAYER
        self.status = GameStatus.PLAYING
        self.winner = None
        self.winning_line = None
        self.move_count = 0
