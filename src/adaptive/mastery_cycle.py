"""
Mastery Cycle Tracker.

Session-local reinforcement loop per formula:

    idle -> cycling -> recall -> mastered

A learner cycles through correct answers until the required count is reached,
then a recall check confirms mastery. Any wrong answer before mastery drops the
formula back to cycling with the counter reset. Mastered is terminal until an
explicit reset.

State lives in memory only; long-term mastery comes from statsByFormula.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from src.adaptive.models import MasteryPhase, MasteryState, now_ms


class MasteryEvent(str, Enum):
    """Signal emitted by a mastery cycle transition."""

    WRONG = "wrong"
    CYCLE_CONTINUES = "cycle_continues"
    CYCLE_TO_RECALL = "cycle_to_recall"
    RECALL_CORRECT = "recall_correct"
    AWAITING_RECALL = "awaiting_recall"
    ALREADY_MASTERED = "already_mastered"


@dataclass
class MasteryTransition:
    """Result of recording one attempt."""

    state: MasteryState
    event: MasteryEvent

    @property
    def phase(self) -> MasteryPhase:
        return self.state.phase


class MasteryCycleTracker:
    """
    Track per-formula mastery cycles for one session.

    Args:
        required_correct: Consecutive correct answers before the recall check
        clock: Returns the current time in epoch ms
    """

    def __init__(self, required_correct: int = 3, clock: Callable[[], int] | None = None):
        self.required_correct = max(1, required_correct)
        self.clock = clock or now_ms
        self._states: dict[str, MasteryState] = {}

    def get(self, formula_id: str) -> MasteryState:
        """Current state (idle default for unseen formulas)."""
        return replace(self._states.get(formula_id) or MasteryState())

    def states(self) -> dict[str, MasteryState]:
        return {k: replace(v) for k, v in self._states.items()}

    def record(self, formula_id: str, correct: bool, is_recall: bool = False) -> MasteryTransition:
        """
        Advance a formula's cycle with one attempt.

        Args:
            formula_id: Formula / concept identifier
            correct: Whether the attempt was correct
            is_recall: Whether the attempt was the recall check

        Returns:
            MasteryTransition with the new state and emitted event
        """
        state = self.get(formula_id)

        if state.mastered:
            return MasteryTransition(state, MasteryEvent.ALREADY_MASTERED)

        if not correct:
            state = MasteryState(
                consecutive_correct=0,
                in_cycle=True,
                in_recall=False,
                mastered=False,
                last_failed_at=self.clock(),
            )
            return self._store(formula_id, state, MasteryEvent.WRONG)

        if state.in_recall:
            if is_recall:
                state.in_recall = False
                state.in_cycle = False
                state.mastered = True
                return self._store(formula_id, state, MasteryEvent.RECALL_CORRECT)
            return self._store(formula_id, state, MasteryEvent.AWAITING_RECALL)

        # idle or cycling; a recall flag outside the recall phase counts as a normal answer
        state.in_cycle = True
        state.consecutive_correct += 1
        if state.consecutive_correct >= self.required_correct:
            state.in_cycle = False
            state.in_recall = True
            return self._store(formula_id, state, MasteryEvent.CYCLE_TO_RECALL)
        return self._store(formula_id, state, MasteryEvent.CYCLE_CONTINUES)

    def start_cycle(self, formula_id: str) -> MasteryState:
        """Force a formula into a fresh cycle."""
        state = MasteryState(in_cycle=True, last_failed_at=self.clock())
        self._states[formula_id] = state
        return replace(state)

    def enter_recall(self, formula_id: str) -> MasteryState:
        """Jump straight to the recall check (no-op once mastered)."""
        state = self.get(formula_id)
        if not state.mastered:
            state.in_cycle = False
            state.in_recall = True
            self._states[formula_id] = state
        return replace(state)

    def reset(self, formula_id: str) -> None:
        self._states.pop(formula_id, None)

    def reset_all(self) -> None:
        self._states.clear()

    def _store(self, formula_id: str, state: MasteryState, event: MasteryEvent) -> MasteryTransition:
        self._states[formula_id] = state
        return MasteryTransition(replace(state), event)
