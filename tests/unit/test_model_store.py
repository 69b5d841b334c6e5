"""
Unit tests for the SQLite model store.
"""

import pytest

from src.adaptive.engine import AdaptiveEngine
from src.adaptive.models import MS_PER_DAY, ReviewItem, Tier
from src.adaptive.stats_tracker import StatsTracker
from src.delivery.state_store import ModelStore

# 2023-11-14 22:13:20 UTC
FIXED_NOW = 1_700_000_000_000


@pytest.fixture
def store(tmp_path):
    store = ModelStore(db_path=tmp_path / "state.db")
    yield store
    store.close()


def _log(store, tier, correct, at=FIXED_NOW, qid=1):
    store.log_attempt(qid, "AR", "add", tier, correct, 1000, attempted_at=at)


class TestModelPersistence:
    """load / save / clear."""

    def test_empty_database_loads_empty_model(self, store):
        model = store.load()
        assert model.question_pool == {}
        assert model.review_queue == []

    def test_round_trip(self, tmp_path, seeded_model, clock):
        engine = AdaptiveEngine(seeded_model, clock=clock)
        engine.handle_post_attempt(1, False, 5000)
        engine.handle_post_attempt(5, True, 3000)

        path = tmp_path / "state.db"
        writer = ModelStore(db_path=path)
        writer.save(seeded_model)
        writer.close()

        reader = ModelStore(db_path=path)
        loaded = reader.load()
        reader.close()

        assert loaded.to_dict() == seeded_model.to_dict()
        assert 1 in loaded.question_weights
        assert loaded.question_pool[6].tier is Tier.VERY_HARD

    def test_corrupt_payload_loads_empty_model(self, store):
        store.conn.execute(
            "INSERT INTO model_state (learner_id, payload, updated_at) VALUES (?, ?, ?)",
            ("default", "{not json", 0),
        )
        store.conn.commit()

        model = store.load()
        assert model.question_pool == {}

    def test_stale_reviews_pruned_on_load(self, store, seeded_model):
        seeded_model.review_queue.append(ReviewItem(question_id=99, due_at=0))
        seeded_model.review_queue.append(ReviewItem(question_id=1, due_at=0))
        store.save(seeded_model)

        model = store.load()
        assert [item.question_id for item in model.review_queue] == [1]

    def test_learners_are_isolated(self, tmp_path, seeded_model):
        path = tmp_path / "state.db"
        alice = ModelStore(db_path=path, learner_id="alice")
        bob = ModelStore(db_path=path, learner_id="bob")

        alice.save(seeded_model)
        assert len(alice.load().question_pool) == 6
        assert bob.load().question_pool == {}

        alice.close()
        bob.close()

    def test_clear(self, store, seeded_model):
        store.save(seeded_model)
        _log(store, Tier.EASY, True)
        store.clear()

        assert store.load().question_pool == {}
        assert store.attempts() == []


class TestAttemptLog:
    """Attempt log and analytics."""

    def test_ids_keep_their_type(self, store):
        store.log_attempt(7, "AR", "add", "easy", True, 100, attempted_at=FIXED_NOW)
        store.log_attempt("7", "AR", "add", "easy", True, 100, attempted_at=FIXED_NOW)

        ids = [a.question_id for a in store.attempts()]
        assert ids == [7, "7"]
        assert isinstance(ids[0], int)

    def test_attempts_since(self, store):
        _log(store, Tier.EASY, True, at=FIXED_NOW - MS_PER_DAY)
        _log(store, Tier.EASY, False, at=FIXED_NOW)

        recent = store.attempts(since=FIXED_NOW)
        assert len(recent) == 1
        assert recent[0].correct is False

    def test_negative_time_clamped(self, store):
        store.log_attempt(1, "AR", "add", "easy", True, -50, attempted_at=FIXED_NOW)
        assert store.attempts()[0].time_ms == 0

    def test_monthly_summaries(self, store):
        _log(store, Tier.EASY, True)
        _log(store, Tier.EASY, False, at=FIXED_NOW - 40 * MS_PER_DAY)
        _log(store, Tier.EASY, True, at=FIXED_NOW - 300 * MS_PER_DAY)

        summaries = store.monthly_summaries(3, now=FIXED_NOW)

        assert [s.month for s in summaries] == ["2023-09", "2023-10", "2023-11"]
        assert [(s.attempts, s.correct) for s in summaries] == [(0, 0), (1, 0), (1, 1)]
        assert summaries[-1].accuracy == 1.0
        assert summaries[0].accuracy == 0.0

    def test_rebuild_stats_matches_live_tracking(self, store, seeded_model):
        tracker = StatsTracker()
        for qid, correct, time_ms in [(1, True, 4000), (3, False, 9000), (5, True, 2000), (1, True, 3000)]:
            q = seeded_model.question_pool[qid]
            tracker.record(seeded_model, q.category, q.formula_id, correct, time_ms, now=FIXED_NOW)
            store.log_attempt(qid, q.category, q.formula_id, q.tier, correct, time_ms, attempted_at=FIXED_NOW)

        expected_categories = {k: v.to_dict() for k, v in seeded_model.stats_by_category.items()}
        expected_formulas = {k: v.to_dict() for k, v in seeded_model.stats_by_formula.items()}

        assert store.rebuild_stats(seeded_model) == 4
        assert {k: v.to_dict() for k, v in seeded_model.stats_by_category.items()} == expected_categories
        assert {k: v.to_dict() for k, v in seeded_model.stats_by_formula.items()} == expected_formulas

    def test_get_stats(self, store):
        _log(store, Tier.EASY, True)
        _log(store, Tier.EASY, True)
        _log(store, Tier.EASY, False)
        _log(store, Tier.EASY, True, at=FIXED_NOW - 10 * MS_PER_DAY)

        stats = store.get_stats(now=FIXED_NOW)
        assert stats["total_attempts"] == 4
        assert stats["total_correct"] == 3
        assert stats["accuracy_percent"] == 75.0
        assert stats["attempts_last_7_days"] == 3

    def test_get_stats_empty(self, store):
        assert store.get_stats(now=FIXED_NOW)["accuracy_percent"] == 0.0


class TestUserDifficulty:
    """Difficulty summary over the last 30 days."""

    def test_unknown_below_five_correct(self, store):
        for _ in range(4):
            _log(store, Tier.EASY, True)
        _log(store, Tier.HARD, False)
        assert store.user_difficulty(now=FIXED_NOW) == "Unknown"

    @pytest.mark.parametrize(
        "tier,expected",
        [(Tier.EASY, "Easy"), (Tier.MEDIUM, "Intermediate"), (Tier.HARD, "Hard")],
    )
    def test_dominant_tier(self, store, tier, expected):
        for _ in range(5):
            _log(store, tier, True)
        assert store.user_difficulty(now=FIXED_NOW) == expected

    def test_upper_tiers_count_as_hard(self, store):
        for tier in (Tier.VERY_HARD, Tier.VERY_HARD, Tier.VERY_HARD, Tier.MASTER, Tier.MASTER):
            _log(store, tier, True)
        assert store.user_difficulty(now=FIXED_NOW) == "Hard"

    def test_mixed_falls_back_to_intermediate(self, store):
        for tier in (Tier.EASY, Tier.MEDIUM, Tier.HARD):
            for _ in range(3):
                _log(store, tier, True)
        assert store.user_difficulty(now=FIXED_NOW) == "Intermediate"

    def test_old_attempts_ignored(self, store):
        for _ in range(5):
            _log(store, Tier.HARD, True, at=FIXED_NOW - 40 * MS_PER_DAY)
        for _ in range(4):
            _log(store, Tier.EASY, True)
        assert store.user_difficulty(now=FIXED_NOW) == "Unknown"
