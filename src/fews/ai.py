"""Minimax opponent for tic-tac-toe with difficulty-weighted random play."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union
import math
import random

from .game import (
    EMPTY,
    OPPONENT,
    PLAYER,
    Board,
    Mark,
    TicTacToeGame,
    check_winner,
    empty_cells,
    is_board_full,
)


WIN_SCORE = 10


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# Chance of playing a uniformly random cell instead of the minimax move.
RANDOM_MOVE_PROBABILITY: Dict[Difficulty, float] = {
    Difficulty.EASY: 0.8,
    Difficulty.MEDIUM: 0.4,
    Difficulty.HARD: 0.0,
}


def minimax(
    board: Board,
    depth: int,
    maximizing: bool,
    alpha: float = -math.inf,
    beta: float = math.inf,
) -> float:
    """Score ``board`` from the opponent's point of view.

    ``OPPONENT`` wins score ``10 - depth`` and ``PLAYER`` wins ``depth - 10``,
    so faster wins and slower losses are preferred. The board is mutated in
    place during the search and every trial is undone before returning.

    Pruning only cuts branches that cannot change the result, so with the
    default full window the score is the same as a plain minimax search.
    """
    winner = check_winner(board)
    if winner == OPPONENT:
        return WIN_SCORE - depth
    if winner == PLAYER:
        return depth - WIN_SCORE
    if is_board_full(board):
        return 0

    if maximizing:
        best = -math.inf
        for i in range(9):
            if board[i] != EMPTY:
                continue
            board[i] = OPPONENT
            score = minimax(board, depth + 1, False, alpha, beta)
            board[i] = EMPTY
            best = max(best, score)
            alpha = max(alpha, best)
            if alpha >= beta:
                break
        return best

    best = math.inf
    for i in range(9):
        if board[i] != EMPTY:
            continue
        board[i] = PLAYER
        score = minimax(board, depth + 1, True, alpha, beta)
        board[i] = EMPTY
        best = min(best, score)
        beta = min(beta, best)
        if alpha >= beta:
            break
    return best


def get_best_move(board: Board) -> int:
    """Best cell for ``OPPONENT``; ties keep the lowest index."""
    if is_board_full(board):
        raise ValueError("No empty cells left on the board")
    best_score = -math.inf
    best_move = 0
    for i in range(9):
        if board[i] != EMPTY:
            continue
        board[i] = OPPONENT
        score = minimax(board, 0, False)
        board[i] = EMPTY
        if score > best_score:
            best_score = score
            best_move = i
    return best_move


def get_random_move(board: Board, rng: Optional[random.Random] = None) -> int:
    moves = empty_cells(board)
    if not moves:
        raise ValueError("No empty cells left on the board")
    return (rng or random).choice(moves)


def get_ai_move(
    board: Board,
    difficulty: Union[Difficulty, str],
    rng: Optional[random.Random] = None,
) -> int:
    """Blend random and optimal play according to ``difficulty``."""
    level = Difficulty(difficulty)
    if level is Difficulty.HARD:
        return get_best_move(board)
    source = rng or random
    if source.random() < RANDOM_MOVE_PROBABILITY[level]:
        return get_random_move(board, rng)
    return get_best_move(board)


@dataclass
class MinimaxAI:
    """AI opponent bound to one mark and difficulty.

      - MinimaxAI(difficulty="hard")
      - choose(game) -> cell index
    """

    player: Mark = OPPONENT
    difficulty: Difficulty = Difficulty.MEDIUM
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        self.difficulty = Difficulty(self.difficulty)

    def choose(self, game: TicTacToeGame) -> int:
        if game.is_over:
            raise ValueError("Game already finished")
        if game.current_player != self.player:
            raise ValueError("It is not this AI player's turn")
        # Search on a copy so the session board is never touched mid-search.
        return get_ai_move(list(game.board), self.difficulty, self.rng)
