"""
Adaptive Engine Data Models.

The AdaptiveUserModel is the single aggregate every engine operation reads or
mutates. It is owned by the host application: loading and saving happen in
src.delivery.state_store, never here.

Models:
- Tier: Ordered difficulty classification (easy .. master)
- QuestionDescriptor: A registered practice item
- StatsRecord: Rolling counters for a category or formula
- ReviewItem: A forced re-practice entry with a due timestamp
- AdaptiveUserModel: Root aggregate for one learner
- MasteryState: Session-local mastery cycle state for one formula
- EngineConfig: Tunable constants for the engine
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from src.adaptive.exceptions import InvalidModelState

QuestionId = int | str

MS_PER_MINUTE = 60_000
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Enums
# =============================================================================


class Tier(str, Enum):
    """
    Difficulty tier, used both for questions and for inferred learner skill.

    Tiers are ordered; compare them through ``rank``.
    """

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    VERY_HARD = "very-hard"
    MASTER = "master"

    @classmethod
    def ordered(cls) -> list[Tier]:
        return [cls.EASY, cls.MEDIUM, cls.HARD, cls.VERY_HARD, cls.MASTER]

    @classmethod
    def from_value(cls, value: Tier | str | None, default: Tier | None = None) -> Tier:
        """
        Parse a tier from its value, tolerating case and underscores.

        Args:
            value: Tier, or a string such as "very_hard" / "Very-Hard"
            default: Returned for None or unknown values (raises if not given)

        Returns:
            Matching Tier
        """
        if isinstance(value, Tier):
            return value
        if value is not None:
            normalized = str(value).strip().lower().replace("_", "-").replace(" ", "-")
            for tier in cls:
                if tier.value == normalized:
                    return tier
        if default is not None:
            return default
        raise ValueError(f"Unknown tier: {value!r}")

    @property
    def rank(self) -> int:
        return Tier.ordered().index(self)

    @property
    def default_weight(self) -> float:
        """Difficulty weight assigned when a question does not carry one."""
        return float(self.rank + 1)

    def shift(self, steps: int) -> Tier:
        """Move up (positive) or down (negative) the ladder, clamped at the ends."""
        tiers = Tier.ordered()
        return tiers[max(0, min(len(tiers) - 1, self.rank + steps))]


class ReviewReason(str, Enum):
    """Why an item was queued for re-practice."""

    MISTAKE = "mistake"
    DECAY = "decay"
    MANUAL = "manual"


class MasteryPhase(str, Enum):
    """Derived phase of a MasteryState."""

    IDLE = "idle"
    CYCLING = "cycling"
    RECALL = "recall"
    MASTERED = "mastered"


# =============================================================================
# Records
# =============================================================================


@dataclass
class QuestionDescriptor:
    """A practice item as supplied by the content collaborator."""

    id: QuestionId
    text: str
    choices: list[Any]
    answer: Any
    category: str
    formula_id: str
    tier: Tier = Tier.EASY
    difficulty_weight: float | None = None
    keywords: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.tier = Tier.from_value(self.tier, default=Tier.EASY)
        if self.difficulty_weight is None:
            self.difficulty_weight = self.tier.default_weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "choices": list(self.choices),
            "answer": self.answer,
            "category": self.category,
            "formula_id": self.formula_id,
            "tier": self.tier.value,
            "difficulty_weight": self.difficulty_weight,
            "keywords": list(self.keywords),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionDescriptor:
        """
        Build a descriptor from a dict.

        Accepts ``difficulty`` as an alias for ``tier`` and ``formulaId`` /
        ``difficultyWeight`` camelCase keys, which is how generated banks
        arrive from the refine endpoint.
        """
        return cls(
            id=data["id"],
            text=str(data.get("text", "")),
            choices=list(data.get("choices") or []),
            answer=data.get("answer"),
            category=str(data["category"]),
            formula_id=str(data.get("formula_id") or data.get("formulaId") or f"q_{data['id']}"),
            tier=Tier.from_value(data.get("tier") or data.get("difficulty"), default=Tier.EASY),
            difficulty_weight=data.get("difficulty_weight", data.get("difficultyWeight")),
            keywords=list(data.get("keywords") or []),
        )


@dataclass
class StatsRecord:
    """
    Rolling performance counters for one category or formula.

    A record whose ``last_attempt_at`` is None has never been written.
    """

    attempts: int = 0
    correct: int = 0
    avg_time_ms: float = 0.0
    last_attempt_at: int | None = None
    streak: int = 0  # Consecutive correct
    miss_streak: int = 0  # Consecutive incorrect
    ewma: float = 0.0

    def __post_init__(self):
        self.attempts = max(0, int(self.attempts))
        self.correct = max(0, min(int(self.correct), self.attempts))
        self.ewma = max(0.0, min(1.0, float(self.ewma)))

    @classmethod
    def empty(cls) -> StatsRecord:
        return cls()

    @property
    def is_initialized(self) -> bool:
        return self.last_attempt_at is not None

    @property
    def accuracy(self) -> float:
        """Lifetime ratio correct/attempts (0 with no attempts)."""
        return self.correct / self.attempts if self.attempts else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "correct": self.correct,
            "avg_time_ms": self.avg_time_ms,
            "last_attempt_at": self.last_attempt_at,
            "streak": self.streak,
            "miss_streak": self.miss_streak,
            "ewma": self.ewma,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatsRecord:
        return cls(
            attempts=data.get("attempts", 0),
            correct=data.get("correct", 0),
            avg_time_ms=float(data.get("avg_time_ms", 0.0) or 0.0),
            last_attempt_at=data.get("last_attempt_at"),
            streak=max(0, int(data.get("streak", 0) or 0)),
            miss_streak=max(0, int(data.get("miss_streak", 0) or 0)),
            ewma=data.get("ewma", 0.0) or 0.0,
        )


@dataclass
class ReviewItem:
    """A queued forced re-practice of one question."""

    question_id: QuestionId
    due_at: int  # Epoch ms
    priority: float = 1.0
    reason: ReviewReason = ReviewReason.MISTAKE

    def is_due(self, now: int) -> bool:
        return self.due_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "due_at": self.due_at,
            "priority": self.priority,
            "reason": self.reason.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewItem:
        return cls(
            question_id=data["question_id"],
            due_at=int(data["due_at"]),
            priority=float(data.get("priority", 1.0)),
            reason=ReviewReason(data.get("reason", ReviewReason.MISTAKE.value)),
        )


# =============================================================================
# Root Aggregate
# =============================================================================

RESETTABLE_PARTS = (
    "question_pool",
    "stats_by_category",
    "stats_by_formula",
    "question_weights",
    "review_queue",
)


@dataclass
class AdaptiveUserModel:
    """
    Per-learner adaptive state.

    Passed explicitly into every engine operation and mutated in place.
    """

    question_pool: dict[QuestionId, QuestionDescriptor] = field(default_factory=dict)
    stats_by_category: dict[str, StatsRecord] = field(default_factory=dict)
    stats_by_formula: dict[str, StatsRecord] = field(default_factory=dict)
    question_weights: dict[QuestionId, float] = field(default_factory=dict)
    review_queue: list[ReviewItem] = field(default_factory=list)
    last_session: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> AdaptiveUserModel:
        """Structurally valid model with every map and sequence present."""
        return cls()

    # ---------------------------------------------------------------------
    # Pool
    # ---------------------------------------------------------------------

    def register_question(self, question: QuestionDescriptor) -> bool:
        """
        Add a question to the pool.

        Pool entries are immutable once present (apart from their tier), so
        registering a known id is a no-op.

        Returns:
            True if the question was added
        """
        if question.id in self.question_pool:
            return False
        self.question_pool[question.id] = question
        return True

    def questions_for(self, subject: str | None) -> list[QuestionDescriptor]:
        """Pool entries for a subject (all entries when subject is None), in insertion order."""
        return [
            q for q in self.question_pool.values()
            if subject is None or q.category == subject
        ]

    def weight_for(self, question_id: QuestionId) -> float:
        return self.question_weights.get(question_id, 1.0)

    # ---------------------------------------------------------------------
    # Stats
    # ---------------------------------------------------------------------

    def category_stats(self, category: str) -> StatsRecord:
        """Read-only view; returns an uninitialized record when absent."""
        return self.stats_by_category.get(category) or StatsRecord.empty()

    def formula_stats(self, formula_id: str) -> StatsRecord:
        """Read-only view; returns an uninitialized record when absent."""
        return self.stats_by_formula.get(formula_id) or StatsRecord.empty()

    def ensure_category_stats(self, category: str) -> StatsRecord:
        return self.stats_by_category.setdefault(category, StatsRecord.empty())

    def ensure_formula_stats(self, formula_id: str) -> StatsRecord:
        return self.stats_by_formula.setdefault(formula_id, StatsRecord.empty())

    # ---------------------------------------------------------------------
    # Maintenance
    # ---------------------------------------------------------------------

    def reset(self, *parts: str) -> None:
        """
        Reset named substructures (all of them when none are named).

        Args:
            parts: Any of question_pool, stats_by_category, stats_by_formula,
                question_weights, review_queue
        """
        for part in parts or RESETTABLE_PARTS:
            if part not in RESETTABLE_PARTS:
                raise ValueError(f"Unknown model part: {part}")
            setattr(self, part, [] if part == "review_queue" else {})

    def prune_stale_reviews(self) -> list[InvalidModelState]:
        """
        Drop review entries whose question is not in the pool.

        Returns:
            One InvalidModelState per dropped entry
        """
        problems = []
        kept = []
        for item in self.review_queue:
            if item.question_id in self.question_pool:
                kept.append(item)
            else:
                problem = InvalidModelState(item.question_id)
                logger.warning(problem.message)
                problems.append(problem)
        self.review_queue = kept
        return problems

    # ---------------------------------------------------------------------
    # Serialization
    # ---------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_pool": [q.to_dict() for q in self.question_pool.values()],
            "stats_by_category": {k: v.to_dict() for k, v in self.stats_by_category.items()},
            "stats_by_formula": {k: v.to_dict() for k, v in self.stats_by_formula.items()},
            # Pairs keep integer ids intact through JSON
            "question_weights": [[qid, w] for qid, w in self.question_weights.items()],
            "review_queue": [item.to_dict() for item in self.review_queue],
            "last_session": dict(self.last_session),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdaptiveUserModel:
        pool = {}
        for raw in data.get("question_pool") or []:
            question = QuestionDescriptor.from_dict(raw)
            pool[question.id] = question
        return cls(
            question_pool=pool,
            stats_by_category={
                k: StatsRecord.from_dict(v) for k, v in (data.get("stats_by_category") or {}).items()
            },
            stats_by_formula={
                k: StatsRecord.from_dict(v) for k, v in (data.get("stats_by_formula") or {}).items()
            },
            question_weights={qid: float(w) for qid, w in data.get("question_weights") or []},
            review_queue=[ReviewItem.from_dict(r) for r in data.get("review_queue") or []],
            last_session=dict(data.get("last_session") or {}),
        )


# =============================================================================
# Session State
# =============================================================================


@dataclass
class MasteryState:
    """In-the-moment reinforcement state for one formula (never persisted)."""

    consecutive_correct: int = 0
    in_cycle: bool = False
    in_recall: bool = False
    mastered: bool = False
    last_failed_at: int | None = None

    @property
    def phase(self) -> MasteryPhase:
        if self.mastered:
            return MasteryPhase.MASTERED
        if self.in_recall:
            return MasteryPhase.RECALL
        if self.in_cycle:
            return MasteryPhase.CYCLING
        return MasteryPhase.IDLE


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class EngineConfig:
    """Tunable engine constants."""

    ewma_alpha: float = 0.25
    latency_alpha: float = 0.3
    review_delay_minutes: float = 20.0
    mastery_required_correct: int = 3
    recent_window: int = 8
    min_weight: float = 0.5
    max_weight: float = 3.0
    weight_aggressiveness: float = 2.2
    up_streak_threshold: int = 3
    down_streak_threshold: int = 2
    schedule_decay_reviews: bool = True
    category_min_attempts: int = 5

    @classmethod
    def from_settings(cls, settings: Any) -> EngineConfig:
        """Build from a Settings object (see config.py)."""
        return cls(
            ewma_alpha=settings.ewma_alpha,
            latency_alpha=settings.latency_alpha,
            review_delay_minutes=settings.review_delay_minutes,
            mastery_required_correct=settings.mastery_required_correct,
            recent_window=settings.recent_window,
            min_weight=settings.min_weight,
            max_weight=settings.max_weight,
            weight_aggressiveness=settings.weight_aggressiveness,
            up_streak_threshold=settings.up_streak_threshold,
            down_streak_threshold=settings.down_streak_threshold,
            schedule_decay_reviews=settings.schedule_decay_reviews,
        )
