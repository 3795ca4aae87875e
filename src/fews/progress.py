"""Puzzle progression: which steps a user may play and which they finished."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .store import ProgressStore, StoreError, WriteConflict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PuzzleStep:
    id: int
    title: str
    description: str


PUZZLE_STEPS: Tuple[PuzzleStep, ...] = (
    PuzzleStep(1, "Hidden in Plain Sight", "Find the hidden button to continue."),
    PuzzleStep(2, "The Key to Success", "Unlock the secret with persistence."),
    PuzzleStep(3, "Button Chase", "Catch the elusive button."),
    PuzzleStep(4, "Quick Clicks", "Click the buttons before time runs out."),
    PuzzleStep(5, "The Pattern", "Match the pattern to win."),
    PuzzleStep(6, "Secret Message", "Decipher the secret message."),
)
TOTAL_STEPS = len(PUZZLE_STEPS)


class StepState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


class InvalidStepError(ValueError):
    """Step number outside ``1..TOTAL_STEPS``."""

    def __init__(self, step: Any, total_steps: int = TOTAL_STEPS) -> None:
        super().__init__(f"Invalid step {step!r}; expected 1..{total_steps}")
        self.step = step


class StepLockedError(ValueError):
    """Completion requested for a step whose predecessor is not completed."""

    def __init__(self, step: int) -> None:
        super().__init__(f"Step {step} is locked until step {step - 1} is completed")
        self.step = step


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_current_step(completed_steps: Iterable[int], total_steps: int = TOTAL_STEPS) -> int:
    return min(total_steps, max(completed_steps, default=0) + 1)


@dataclass(frozen=True)
class ProgressRecord:
    """A user's puzzle progress.

    ``completed_steps`` is the only source of truth for gating; the current step
    is always derived from it. ``version`` is the store revision the record was
    read at (``None`` for a record that was never stored).
    """

    user_id: str
    completed_steps: Tuple[int, ...] = ()
    last_updated: datetime = field(default_factory=_utcnow)
    version: Optional[int] = None
    total_steps: int = TOTAL_STEPS

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "completed_steps", tuple(sorted(set(self.completed_steps)))
        )

    @property
    def current_step(self) -> int:
        return derive_current_step(self.completed_steps, self.total_steps)

    def with_step(self, step: int, now: datetime) -> "ProgressRecord":
        return replace(
            self, completed_steps=self.completed_steps + (step,), last_updated=now
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "completedSteps": list(self.completed_steps),
            "currentStep": self.current_step,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_document(
        cls,
        user_id: str,
        data: Dict[str, Any],
        version: Optional[int] = None,
        total_steps: int = TOTAL_STEPS,
    ) -> "ProgressRecord":
        raw_steps = data.get("completedSteps") or []
        if not isinstance(raw_steps, list):
            raise StoreError(f"Malformed completedSteps for {user_id!r}: {raw_steps!r}")
        # Anything outside 1..N in storage is ignored rather than trusted.
        steps = [
            s
            for s in raw_steps
            if isinstance(s, int) and not isinstance(s, bool) and 1 <= s <= total_steps
        ]
        raw_updated = data.get("lastUpdated")
        try:
            last_updated = (
                datetime.fromisoformat(raw_updated) if raw_updated else _utcnow()
            )
        except (TypeError, ValueError) as exc:
            raise StoreError(
                f"Malformed lastUpdated for {user_id!r}: {raw_updated!r}"
            ) from exc
        return cls(
            user_id=data.get("userId") or user_id,
            completed_steps=tuple(steps),
            last_updated=last_updated,
            version=version,
            total_steps=total_steps,
        )


def is_step_unlocked(progress: ProgressRecord, step: int) -> bool:
    return step == 1 or (step - 1) in progress.completed_steps


def is_step_completed(progress: ProgressRecord, step: int) -> bool:
    return step in progress.completed_steps


def step_state(progress: ProgressRecord, step: int) -> StepState:
    if is_step_completed(progress, step):
        return StepState.COMPLETED
    if is_step_unlocked(progress, step):
        return StepState.UNLOCKED
    return StepState.LOCKED


def step_states(progress: ProgressRecord) -> List[Tuple[int, StepState]]:
    return [(s, step_state(progress, s)) for s in range(1, progress.total_steps + 1)]


class ProgressGate:
    """Sequential unlock rules over a :class:`ProgressStore`.

    Reads never create documents; the first document for a user is written by
    the first successful completion (or a reset). Transport failures during
    mutations are logged and reported as ``False``/``None`` so callers can
    offer a retry.
    """

    def __init__(
        self,
        store: ProgressStore,
        total_steps: int = TOTAL_STEPS,
        enforce_order: bool = True,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.total_steps = total_steps
        self.enforce_order = enforce_order
        self.max_attempts = max_attempts
        self.clock = clock

    is_step_unlocked = staticmethod(is_step_unlocked)
    is_step_completed = staticmethod(is_step_completed)

    def validate_step(self, step: Any) -> int:
        if isinstance(step, bool) or not isinstance(step, int):
            raise InvalidStepError(step, self.total_steps)
        if not 1 <= step <= self.total_steps:
            raise InvalidStepError(step, self.total_steps)
        return step

    async def get_progress(self, user_id: str) -> ProgressRecord:
        """Stored progress, or the initial record when none exists yet."""
        doc = await self.store.get(user_id)
        if doc is None:
            return ProgressRecord(
                user_id=user_id, last_updated=self.clock(), total_steps=self.total_steps
            )
        return ProgressRecord.from_document(
            user_id, doc.data, version=doc.version, total_steps=self.total_steps
        )

    async def complete_step(self, user_id: str, step: int) -> bool:
        """Mark ``step`` completed. Returns whether the completion is stored."""
        self.validate_step(step)

        for attempt in range(1, self.max_attempts + 1):
            try:
                progress = await self.get_progress(user_id)
                if is_step_completed(progress, step):
                    return True
                if self.enforce_order and not is_step_unlocked(progress, step):
                    logger.warning(
                        "User %s tried to complete locked step %d", user_id, step
                    )
                    raise StepLockedError(step)

                updated = progress.with_step(step, self.clock())
                await self.store.set(
                    user_id,
                    updated.to_document(),
                    expected_version=progress.version or 0,
                )
                logger.info(
                    "User %s completed step %d (current step %d)",
                    user_id,
                    step,
                    updated.current_step,
                )
                return True
            except WriteConflict as exc:
                logger.warning(
                    "Concurrent update completing step %d for %s (attempt %d/%d): %s",
                    step,
                    user_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
            except StoreError:
                logger.exception("Error completing step %d for %s", step, user_id)
                return False

        logger.error(
            "Gave up completing step %d for %s after %d attempts",
            step,
            user_id,
            self.max_attempts,
        )
        return False

    async def reset_progress(self, user_id: str) -> Optional[ProgressRecord]:
        """Clear every completed step. Returns the new record, ``None`` on failure."""
        initial = ProgressRecord(
            user_id=user_id, last_updated=self.clock(), total_steps=self.total_steps
        )
        try:
            doc = await self.store.set(user_id, initial.to_document())
        except StoreError:
            logger.exception("Error resetting puzzle progress for %s", user_id)
            return None
        logger.info("Reset puzzle progress for %s", user_id)
        return replace(initial, version=doc.version)
