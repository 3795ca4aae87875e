"""The 'Fews game core: puzzle progression gate, tic-tac-toe rules and AI."""

from .ai import Difficulty, MinimaxAI, get_ai_move, get_best_move
from .game import TicTacToeGame
from .progress import ProgressGate, ProgressRecord

__all__ = [
    "Difficulty",
    "MinimaxAI",
    "ProgressGate",
    "ProgressRecord",
    "TicTacToeGame",
    "get_ai_move",
    "get_best_move",
]
