"""FastAPI application exposing the tic-tac-toe opponent and puzzle progress."""

from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import threading

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from .ai import Difficulty, MinimaxAI
from .config import Settings
from .game import TicTacToeGame
from .progress import (
    PUZZLE_STEPS,
    InvalidStepError,
    ProgressGate,
    ProgressRecord,
    StepLockedError,
    step_state,
)
from .store import InMemoryStore, JsonFileStore, ProgressStore, StoreError

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """Container for an active tic-tac-toe game and its AI opponent."""

    game: TicTacToeGame
    ai: MinimaxAI
    move_log: List[Dict[str, int | str]] = field(default_factory=list)
    ai_pending: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


SESSIONS: Dict[str, GameSession] = {}
app = FastAPI(
    title="The 'Fews",
    description="Tic-tac-toe against a minimax AI and the step-by-step puzzle",
)

# None means "use FEWS_AI_THINK_DELAY".
AI_THINK_DELAY: Optional[Tuple[float, float]] = None

_settings: Optional[Settings] = None
_gate: Optional[ProgressGate] = None
_GATE_LOCK = threading.Lock()


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def _build_store(settings: Settings) -> ProgressStore:
    if settings.store_path:
        return JsonFileStore(settings.store_path)
    return InMemoryStore()


def get_gate() -> ProgressGate:
    """The process-wide gate; every request must share one store."""
    global _gate
    with _GATE_LOCK:
        if _gate is None:
            settings = get_settings()
            _gate = ProgressGate(
                _build_store(settings), enforce_order=settings.enforce_step_order
            )
        return _gate


def _think_delay() -> Tuple[float, float]:
    if AI_THINK_DELAY is not None:
        return AI_THINK_DELAY
    delay = get_settings().ai_think_delay
    return (delay, delay)


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Identity of the signed-in user; without one there is no progress."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


class NewGameRequest(BaseModel):
    """Request payload for starting a new game."""

    difficulty: Difficulty = Field(
        default=Difficulty.MEDIUM,
        description="How often the AI plays a random cell instead of the best one",
    )


class DifficultyRequest(BaseModel):
    """Request payload for changing the AI strength of a running game."""

    difficulty: Difficulty


class ResetGameRequest(BaseModel):
    """Optional payload for restarting a game, possibly at a new difficulty."""

    difficulty: Optional[Difficulty] = None


class MoveRequest(BaseModel):
    """Request payload for submitting a move on an existing game."""

    model_config = ConfigDict(populate_by_name=True)

    cell_index: int = Field(alias="cellIndex", ge=0, le=8)


# ---- tic-tac-toe sessions ----


def _create_session(difficulty: Difficulty) -> Tuple[str, GameSession]:
    """Create a new game session and register it for later access."""

    session = GameSession(game=TicTacToeGame(), ai=MinimaxAI(difficulty=difficulty))
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = session
    logger.debug("Created %s game %s", difficulty.value, session_id)
    return session_id, session


def _get_session(game_id: str) -> GameSession:
    try:
        return SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc


def _run_ai_turn(game_id: str) -> None:
    session = SESSIONS.get(game_id)
    if not session:
        return

    time.sleep(max(0.0, random.uniform(*_think_delay())))

    with session.lock:
        try:
            game = session.game
            if game.is_over or game.current_player != session.ai.player:
                return
            cell_index = session.ai.choose(game)
            game.play_move(cell_index)
            session.move_log.append(
                {"player": session.ai.player, "cellIndex": cell_index}
            )
        finally:
            session.ai_pending = False


def _serialize_session(game_id: str, session: GameSession) -> Dict[str, object]:
    with session.lock:
        game = session.game
        state: Dict[str, object] = {
            "id": game_id,
            "difficulty": session.ai.difficulty.value,
            "board": [c if c in ("X", "O") else "" for c in game.board],
            "currentPlayer": game.current_player,
            "status": game.status.value,
            "winner": game.winner,
            "winningLine": list(game.winning_line) if game.winning_line else None,
            "availableMoves": game.available_moves(),
            "moveLog": list(session.move_log),
            "aiPending": session.ai_pending,
        }
        if session.move_log:
            state["lastMove"] = session.move_log[-1]
        return state


def _apply_player_move(
    game_id: str,
    session: GameSession,
    cell_index: int,
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    should_schedule_ai = False
    with session.lock:
        game = session.game
        if game.is_over:
            raise HTTPException(status_code=400, detail="Game already finished")

        if session.ai_pending or game.current_player == session.ai.player:
            raise HTTPException(status_code=400, detail="AI is completing its move")

        player = game.current_player
        try:
            game.play_move(cell_index)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        session.move_log.append({"player": player, "cellIndex": cell_index})

        should_schedule_ai = (
            not game.is_over and game.current_player == session.ai.player
        )
        if should_schedule_ai:
            session.ai_pending = True

    if should_schedule_ai and background_tasks is not None:
        background_tasks.add_task(_run_ai_turn, game_id)


@app.post("/api/game")
def create_game(request: NewGameRequest) -> Dict[str, object]:
    game_id, session = _create_session(request.difficulty)
    return _serialize_session(game_id, session)


@app.get("/api/game/{game_id}")
def get_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/move")
def make_move(
    game_id: str, request: MoveRequest, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    session = _get_session(game_id)
    _apply_player_move(game_id, session, request.cell_index, background_tasks)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/reset")
def reset_game(
    game_id: str, request: Optional[ResetGameRequest] = None
) -> Dict[str, object]:
    session = _get_session(game_id)
    with session.lock:
        session.game.reset()
        session.move_log.clear()
        session.ai_pending = False
        if request is not None and request.difficulty is not None:
            session.ai.difficulty = request.difficulty
    return _serialize_session(game_id, session)


@app.put("/api/game/{game_id}/difficulty")
def change_difficulty(game_id: str, request: DifficultyRequest) -> Dict[str, object]:
    """Applies from the AI's next move onwards."""
    session = _get_session(game_id)
    with session.lock:
        session.ai.difficulty = request.difficulty
    return _serialize_session(game_id, session)


# ---- puzzle progress ----


def _serialize_progress(progress: ProgressRecord) -> Dict[str, object]:
    state = progress.to_document()
    state["totalSteps"] = progress.total_steps
    state["steps"] = [
        {
            "id": step.id,
            "title": step.title,
            "description": step.description,
            "state": step_state(progress, step.id).value,
        }
        for step in PUZZLE_STEPS[: progress.total_steps]
    ]
    return state


async def _load_progress(gate: ProgressGate, user_id: str) -> ProgressRecord:
    try:
        return await gate.get_progress(user_id)
    except StoreError as exc:
        logger.exception("Error fetching puzzle progress for %s", user_id)
        raise HTTPException(
            status_code=503, detail="Puzzle progress is unavailable"
        ) from exc


@app.get("/api/puzzle/progress")
async def get_puzzle_progress(
    user_id: str = Depends(get_user_id), gate: ProgressGate = Depends(get_gate)
) -> Dict[str, object]:
    return _serialize_progress(await _load_progress(gate, user_id))


@app.get("/api/puzzle/steps/{step}")
async def open_step(
    step: int,
    user_id: str = Depends(get_user_id),
    gate: ProgressGate = Depends(get_gate),
) -> Dict[str, object]:
    try:
        gate.validate_step(step)
    except InvalidStepError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    progress = await _load_progress(gate, user_id)
    if not gate.is_step_unlocked(progress, step):
        logger.warning("Unauthorized access attempt to step %d by %s", step, user_id)
        raise HTTPException(status_code=403, detail=f"Step {step} is locked")

    info = PUZZLE_STEPS[step - 1]
    return {
        "id": info.id,
        "title": info.title,
        "description": info.description,
        "completed": gate.is_step_completed(progress, step),
    }


@app.post("/api/puzzle/steps/{step}/complete")
async def complete_step(
    step: int,
    user_id: str = Depends(get_user_id),
    gate: ProgressGate = Depends(get_gate),
) -> Dict[str, object]:
    try:
        stored = await gate.complete_step(user_id, step)
    except InvalidStepError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StepLockedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    if not stored:
        raise HTTPException(
            status_code=503, detail="Could not save your progress, try again"
        )
    return _serialize_progress(await _load_progress(gate, user_id))


@app.post("/api/puzzle/reset")
async def reset_puzzle(
    user_id: str = Depends(get_user_id), gate: ProgressGate = Depends(get_gate)
) -> Dict[str, object]:
    progress = await gate.reset_progress(user_id)
    if progress is None:
        raise HTTPException(
            status_code=503, detail="Could not reset your progress, try again"
        )
    return _serialize_progress(progress)
