"""
Unit tests for the per-formula mastery cycle.
"""

import pytest

from src.adaptive.mastery_cycle import MasteryCycleTracker, MasteryEvent
from src.adaptive.models import MasteryPhase


@pytest.fixture
def tracker(clock):
    return MasteryCycleTracker(required_correct=3, clock=clock)


def _to_recall(tracker, formula_id="add"):
    for _ in range(3):
        tracker.record(formula_id, True)


class TestCycle:
    """idle -> cycling -> recall."""

    def test_unseen_formula_is_idle(self, tracker):
        assert tracker.get("add").phase is MasteryPhase.IDLE

    def test_three_correct_reach_recall(self, tracker):
        events = [tracker.record("add", True) for _ in range(3)]

        assert [e.event for e in events] == [
            MasteryEvent.CYCLE_CONTINUES,
            MasteryEvent.CYCLE_CONTINUES,
            MasteryEvent.CYCLE_TO_RECALL,
        ]
        assert [e.phase for e in events] == [
            MasteryPhase.CYCLING,
            MasteryPhase.CYCLING,
            MasteryPhase.RECALL,
        ]
        assert events[-1].state.consecutive_correct == 3

    def test_wrong_resets_counter(self, tracker, clock):
        tracker.record("add", True)
        tracker.record("add", True)
        transition = tracker.record("add", False)

        assert transition.event is MasteryEvent.WRONG
        assert transition.phase is MasteryPhase.CYCLING
        assert transition.state.consecutive_correct == 0
        assert transition.state.last_failed_at == clock()

    def test_wrong_from_idle_enters_cycle(self, tracker):
        assert tracker.record("add", False).phase is MasteryPhase.CYCLING

    def test_recall_flag_outside_recall_counts_as_cycle_answer(self, tracker):
        transition = tracker.record("add", True, is_recall=True)
        assert transition.event is MasteryEvent.CYCLE_CONTINUES
        assert transition.state.consecutive_correct == 1

    def test_formulas_are_independent(self, tracker):
        _to_recall(tracker, "add")
        assert tracker.get("ratio").phase is MasteryPhase.IDLE


class TestRecall:
    """recall -> mastered."""

    def test_recall_correct_masters(self, tracker):
        _to_recall(tracker)
        transition = tracker.record("add", True, is_recall=True)

        assert transition.event is MasteryEvent.RECALL_CORRECT
        assert transition.phase is MasteryPhase.MASTERED

    def test_plain_correct_waits_for_recall(self, tracker):
        _to_recall(tracker)
        transition = tracker.record("add", True)

        assert transition.event is MasteryEvent.AWAITING_RECALL
        assert transition.phase is MasteryPhase.RECALL

    def test_recall_wrong_restarts_cycle(self, tracker):
        _to_recall(tracker)
        transition = tracker.record("add", False, is_recall=True)

        assert transition.event is MasteryEvent.WRONG
        assert transition.phase is MasteryPhase.CYCLING
        assert transition.state.consecutive_correct == 0

    def test_mastered_is_terminal(self, tracker):
        _to_recall(tracker)
        tracker.record("add", True, is_recall=True)

        for correct in (True, False):
            transition = tracker.record("add", correct)
            assert transition.event is MasteryEvent.ALREADY_MASTERED
            assert transition.phase is MasteryPhase.MASTERED


class TestControls:
    """Explicit transitions and isolation."""

    def test_get_returns_copy(self, tracker):
        tracker.record("add", True)
        state = tracker.get("add")
        state.consecutive_correct = 99

        assert tracker.get("add").consecutive_correct == 1

    def test_reset_clears_mastery(self, tracker):
        _to_recall(tracker)
        tracker.record("add", True, is_recall=True)
        tracker.reset("add")

        assert tracker.get("add").phase is MasteryPhase.IDLE

    def test_reset_all(self, tracker):
        _to_recall(tracker, "add")
        tracker.record("ratio", True)
        tracker.reset_all()

        assert tracker.states() == {}

    def test_start_cycle_and_enter_recall(self, tracker):
        assert tracker.start_cycle("add").phase is MasteryPhase.CYCLING
        assert tracker.enter_recall("add").phase is MasteryPhase.RECALL
        assert tracker.record("add", True, is_recall=True).event is MasteryEvent.RECALL_CORRECT

    def test_enter_recall_keeps_mastered(self, tracker):
        tracker.enter_recall("add")
        tracker.record("add", True, is_recall=True)
        assert tracker.enter_recall("add").phase is MasteryPhase.MASTERED

    def test_custom_threshold(self, clock):
        tracker = MasteryCycleTracker(required_correct=1, clock=clock)
        assert tracker.record("add", True).event is MasteryEvent.CYCLE_TO_RECALL
