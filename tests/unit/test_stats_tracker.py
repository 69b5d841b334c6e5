"""
Unit tests for rolling stats and weight rebalancing.
"""

import pytest

from src.adaptive.models import EngineConfig, StatsRecord
from src.adaptive.stats_tracker import StatsTracker, record_attempt


class TestRecordAttempt:
    """Single-record updates."""

    def test_missing_record_is_created(self):
        stats = record_attempt(None, True, 1000, now=5)

        assert stats.attempts == 1
        assert stats.correct == 1
        assert stats.avg_time_ms == 1000
        assert stats.ewma == pytest.approx(0.25)
        assert stats.streak == 1
        assert stats.miss_streak == 0
        assert stats.last_attempt_at == 5

    def test_second_attempt_smooths_latency_and_ewma(self):
        stats = record_attempt(None, True, 1000, now=5)
        record_attempt(stats, False, 2000, now=6)

        assert stats.attempts == 2
        assert stats.correct == 1
        assert stats.avg_time_ms == pytest.approx(1300)
        assert stats.ewma == pytest.approx(0.1875)
        assert stats.streak == 0
        assert stats.miss_streak == 1
        assert stats.last_attempt_at == 6

    def test_updates_in_place(self):
        stats = StatsRecord.empty()
        assert record_attempt(stats, True, 10) is stats

    def test_negative_latency_clamps(self):
        stats = record_attempt(None, True, -50)
        assert stats.avg_time_ms == 0

    def test_ewma_stays_in_range(self):
        stats = None
        for _ in range(50):
            stats = record_attempt(stats, True, 100, alpha=0.9)
        assert 0.0 <= stats.ewma <= 1.0
        assert stats.correct <= stats.attempts

    def test_custom_alpha(self):
        stats = record_attempt(None, True, 100, alpha=0.5)
        assert stats.ewma == pytest.approx(0.5)


class TestStatsTracker:
    """Category and formula updates on a model."""

    def test_record_updates_both_records(self, empty_model, clock):
        tracker = StatsTracker()
        category, formula = tracker.record(empty_model, "AR", "add", True, 4000, now=clock())

        assert empty_model.stats_by_category["AR"] is category
        assert empty_model.stats_by_formula["add"] is formula
        assert category.attempts == formula.attempts == 1
        assert category.last_attempt_at == clock()

    def test_uses_configured_alpha(self, empty_model):
        tracker = StatsTracker(EngineConfig(ewma_alpha=0.5))
        category, _ = tracker.record(empty_model, "AR", "add", True, 100)
        assert category.ewma == pytest.approx(0.5)


class TestRebalanceWeights:
    """Sampling weights for weak formulas."""

    def test_missed_formula_is_capped(self, seeded_model):
        tracker = StatsTracker()
        tracker.record(seeded_model, "AR", "add", False, 100)

        # 1 + (1 - 0) * 2.2 = 3.2, * 1.25 for the miss, capped at 3.0
        assert tracker.rebalance_weights(seeded_model, "add") == pytest.approx(3.0)

    def test_correct_answer_weight(self, seeded_model):
        tracker = StatsTracker()
        tracker.record(seeded_model, "AR", "add", True, 100)

        # 1 + (1 - 0.25) * 2.2
        assert tracker.rebalance_weights(seeded_model, "add") == pytest.approx(2.65)

    def test_applies_to_every_question_on_formula(self, seeded_model):
        tracker = StatsTracker()
        tracker.record(seeded_model, "AR", "add", True, 100)
        weight = tracker.rebalance_weights(seeded_model, "add")

        assert seeded_model.question_weights[1] == weight
        assert seeded_model.question_weights[2] == weight
        assert 3 not in seeded_model.question_weights

    def test_strong_formula_weight_falls(self, seeded_model):
        tracker = StatsTracker()
        for _ in range(20):
            tracker.record(seeded_model, "AR", "add", True, 100)
        weight = tracker.rebalance_weights(seeded_model, "add")

        assert 1.0 <= weight < 1.1

    def test_weight_respects_floor(self, seeded_model):
        tracker = StatsTracker(EngineConfig(min_weight=1.5))
        for _ in range(20):
            tracker.record(seeded_model, "AR", "add", True, 100)
        assert tracker.rebalance_weights(seeded_model, "add") == pytest.approx(1.5)
