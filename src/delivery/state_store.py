"""
SQLite Model Store for the tutor.

Provides portable persistence for:
- The learner's AdaptiveUserModel (one JSON payload per learner)
- Attempt log for analytics and for rebuilding stats from scratch

Database location: ~/.tutor/state.db

The adaptive core never touches this module; callers load a model, hand it
to the engine, and save it afterwards.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from loguru import logger

from src.adaptive.models import (
    MS_PER_DAY,
    AdaptiveUserModel,
    EngineConfig,
    QuestionId,
    Tier,
    now_ms,
)
from src.adaptive.stats_tracker import record_attempt

DEFAULT_LEARNER = "default"

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class AttemptRecord:
    """A single logged attempt."""

    id: int
    question_id: QuestionId
    category: str
    formula_id: str
    tier: Tier
    correct: bool
    time_ms: int
    attempted_at: int  # Epoch ms


@dataclass
class MonthlySummary:
    """Attempt totals for one calendar month (UTC)."""

    month: str  # YYYY-MM
    attempts: int
    correct: int

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempts if self.attempts else 0.0


def _month_key(dt: datetime) -> str:
    return f"{dt.year}-{dt.month:02d}"


def _to_utc(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


# =============================================================================
# Model Store
# =============================================================================


class ModelStore:
    """
    SQLite-backed persistence for adaptive learner models.

    Handles:
    - Model payload per learner (load never fails; bad data yields an empty model)
    - Attempt log with monthly summaries and a difficulty-level summary
    """

    DEFAULT_DB_PATH = Path.home() / ".tutor" / "state.db"

    def __init__(self, db_path: Path | None = None, learner_id: str = DEFAULT_LEARNER):
        """
        Initialize the model store.

        Args:
            db_path: Custom database path (defaults to ~/.tutor/state.db)
            learner_id: Key of the learner whose model is loaded and saved
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.learner_id = learner_id

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"ModelStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS model_state (
                learner_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS attempt_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                learner_id TEXT NOT NULL,
                question_id TEXT NOT NULL,
                category TEXT NOT NULL,
                formula_id TEXT NOT NULL,
                tier TEXT NOT NULL,
                correct BOOLEAN NOT NULL,
                time_ms INTEGER DEFAULT 0,
                attempted_at INTEGER NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_attempt_log_time
            ON attempt_log(learner_id, attempted_at)
        """)

        self.conn.commit()

    # =========================================================================
    # Model Operations
    # =========================================================================

    def load(self) -> AdaptiveUserModel:
        """
        Load the learner's model.

        Returns:
            The stored model with stale review entries pruned, or an empty
            model when nothing is stored or the payload is unreadable
        """
        cursor = self.conn.cursor()
        cursor.execute("SELECT payload FROM model_state WHERE learner_id = ?", (self.learner_id,))
        row = cursor.fetchone()

        if row is None:
            logger.info(f"No stored model for {self.learner_id}; starting empty")
            return AdaptiveUserModel.empty()

        try:
            model = AdaptiveUserModel.from_dict(json.loads(row["payload"]))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Stored model for {self.learner_id} is unreadable ({e}); starting empty")
            return AdaptiveUserModel.empty()

        dropped = model.prune_stale_reviews()
        if dropped:
            logger.warning(f"Pruned {len(dropped)} stale review entries on load")

        logger.info(
            f"Loaded model for {self.learner_id}: {len(model.question_pool)} questions, "
            f"{len(model.review_queue)} queued reviews"
        )
        return model

    def save(self, model: AdaptiveUserModel) -> None:
        """Persist the learner's model, replacing any previous payload."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO model_state (learner_id, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(learner_id) DO UPDATE SET
                payload = excluded.payload,
                updated_at = excluded.updated_at
        """,
            (self.learner_id, json.dumps(model.to_dict()), now_ms()),
        )
        self.conn.commit()
        logger.debug(f"Saved model for {self.learner_id}")

    def clear(self) -> None:
        """Delete the learner's model and attempt log."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM model_state WHERE learner_id = ?", (self.learner_id,))
        cursor.execute("DELETE FROM attempt_log WHERE learner_id = ?", (self.learner_id,))
        self.conn.commit()
        logger.info(f"Cleared stored state for {self.learner_id}")

    # =========================================================================
    # Attempt Log Operations
    # =========================================================================

    def log_attempt(
        self,
        question_id: QuestionId,
        category: str,
        formula_id: str,
        tier: Tier | str,
        correct: bool,
        time_ms: int,
        attempted_at: int | None = None,
    ) -> int:
        """
        Log an attempt.

        Returns:
            Attempt record ID
        """
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO attempt_log (
                learner_id, question_id, category, formula_id,
                tier, correct, time_ms, attempted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                self.learner_id,
                # JSON keeps int and str ids apart
                json.dumps(question_id),
                category,
                formula_id,
                Tier.from_value(tier, default=Tier.MEDIUM).value,
                bool(correct),
                max(0, int(time_ms)),
                attempted_at if attempted_at is not None else now_ms(),
            ),
        )
        self.conn.commit()
        return cursor.lastrowid

    def attempts(self, since: int | None = None) -> list[AttemptRecord]:
        """
        Logged attempts, oldest first.

        Args:
            since: Only attempts at or after this epoch ms
        """
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM attempt_log
            WHERE learner_id = ? AND attempted_at >= ?
            ORDER BY attempted_at ASC, id ASC
        """,
            (self.learner_id, since if since is not None else 0),
        )

        return [
            AttemptRecord(
                id=row["id"],
                question_id=json.loads(row["question_id"]),
                category=row["category"],
                formula_id=row["formula_id"],
                tier=Tier.from_value(row["tier"], default=Tier.MEDIUM),
                correct=bool(row["correct"]),
                time_ms=row["time_ms"] or 0,
                attempted_at=row["attempted_at"],
            )
            for row in cursor.fetchall()
        ]

    def monthly_summaries(self, months: int = 12, now: int | None = None) -> list[MonthlySummary]:
        """
        Attempt totals for the last ``months`` calendar months, oldest first.

        Months without attempts are included with zero counts.
        """
        current = _to_utc(now if now is not None else now_ms())

        keys = []
        year, month = current.year, current.month
        for _ in range(max(0, months)):
            keys.append(f"{year}-{month:02d}")
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        keys.reverse()

        totals = {key: [0, 0] for key in keys}
        for attempt in self.attempts():
            key = _month_key(_to_utc(attempt.attempted_at))
            if key in totals:
                totals[key][0] += 1
                totals[key][1] += 1 if attempt.correct else 0

        return [MonthlySummary(month=key, attempts=a, correct=c) for key, (a, c) in totals.items()]

    def rebuild_stats(self, model: AdaptiveUserModel, config: EngineConfig | None = None) -> int:
        """
        Recompute category and formula stats by replaying the attempt log.

        Existing stats on the model are discarded.

        Returns:
            Number of attempts replayed
        """
        cfg = config or EngineConfig()
        model.reset("stats_by_category", "stats_by_formula")

        replayed = 0
        for attempt in self.attempts():
            for stats in (
                model.ensure_category_stats(attempt.category),
                model.ensure_formula_stats(attempt.formula_id),
            ):
                record_attempt(
                    stats,
                    attempt.correct,
                    attempt.time_ms,
                    alpha=cfg.ewma_alpha,
                    latency_alpha=cfg.latency_alpha,
                    now=attempt.attempted_at,
                )
            replayed += 1

        logger.info(f"Rebuilt stats from {replayed} logged attempts")
        return replayed

    def user_difficulty(self, days: int = 30, now: int | None = None) -> str:
        """
        Summarize which difficulty the learner mostly succeeds at.

        Looks at correct answers over the last ``days`` calendar days.
        Hard, very-hard and master attempts all count as hard.

        Returns:
            "Easy", "Intermediate", "Hard", or "Unknown" (fewer than 5 correct)
        """
        current = _to_utc(now if now is not None else now_ms())
        midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
        cutoff = midnight - timedelta(days=max(0, days - 1))
        since = int(cutoff.timestamp() * 1000)

        correct = {"easy": 0, "medium": 0, "hard": 0}
        for attempt in self.attempts(since=since):
            if not attempt.correct:
                continue
            if attempt.tier is Tier.EASY:
                correct["easy"] += 1
            elif attempt.tier is Tier.MEDIUM:
                correct["medium"] += 1
            else:
                correct["hard"] += 1

        total = sum(correct.values())
        if total < 5:
            return "Unknown"
        if correct["hard"] >= 5 and correct["hard"] / total >= 0.5:
            return "Hard"
        if correct["medium"] >= 5 and correct["medium"] / total >= 0.4:
            return "Intermediate"
        if correct["easy"] >= 5 and correct["easy"] / total >= 0.5:
            return "Easy"
        return "Intermediate"

    # =========================================================================
    # Stats & Analytics
    # =========================================================================

    def get_stats(self, now: int | None = None) -> dict:
        """
        Get overall attempt statistics.

        Returns:
            Dictionary with aggregate stats
        """
        now = now if now is not None else now_ms()
        cursor = self.conn.cursor()

        cursor.execute(
            "SELECT COUNT(*) as cnt, SUM(correct) as ok FROM attempt_log WHERE learner_id = ?",
            (self.learner_id,),
        )
        row = cursor.fetchone()
        total = row["cnt"]
        correct = row["ok"] or 0

        cursor.execute(
            "SELECT COUNT(*) as cnt FROM attempt_log WHERE learner_id = ? AND attempted_at >= ?",
            (self.learner_id, now - 7 * MS_PER_DAY),
        )
        last_week = cursor.fetchone()["cnt"]

        return {
            "total_attempts": total,
            "total_correct": correct,
            "accuracy_percent": round(correct * 100.0 / total, 1) if total else 0.0,
            "attempts_last_7_days": last_week,
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
