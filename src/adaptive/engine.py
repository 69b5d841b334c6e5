"""
Adaptive Engine.

Facade over the adaptive components. One engine wraps one learner's
AdaptiveUserModel for one session and wires the attempt pipeline:

    attempt -> stats -> weights -> mastery cycle -> review scheduling
            -> streak tier adjustment

Confidence and score estimation are read-only views and never run on the
attempt path. Persisting the model is the caller's job (see
src.delivery.state_store).
"""

from __future__ import annotations

import random
from collections import deque
from collections.abc import Callable, Collection, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from src.adaptive.confidence import confidence_from_stats, questions_per_topic
from src.adaptive.difficulty import adjust_difficulty_on_streak, recommended_tier_for_category
from src.adaptive.exceptions import UnknownQuestionError
from src.adaptive.mastery_cycle import MasteryCycleTracker, MasteryEvent
from src.adaptive.models import (
    MS_PER_DAY,
    MS_PER_MINUTE,
    AdaptiveUserModel,
    EngineConfig,
    MasteryState,
    QuestionDescriptor,
    QuestionId,
    ReviewItem,
    ReviewReason,
    Tier,
    now_ms,
)
from src.adaptive.question_selector import QuestionSelector
from src.adaptive.review_scheduler import ReviewScheduler
from src.adaptive.score_estimation import FormulaMastery, estimate_afqt
from src.adaptive.stats_tracker import StatsTracker


@dataclass
class AttemptOutcome:
    """What one handled attempt changed."""

    question_id: QuestionId
    correct: bool
    mastery_event: MasteryEvent
    mastery_state: MasteryState
    review_scheduled: ReviewItem | None
    tier_before: Tier
    tier_after: Tier

    @property
    def tier_changed(self) -> bool:
        return self.tier_before is not self.tier_after

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "correct": self.correct,
            "mastery_event": self.mastery_event.value,
            "mastery_phase": self.mastery_state.phase.value,
            "review_scheduled": self.review_scheduled.to_dict() if self.review_scheduled else None,
            "tier_before": self.tier_before.value,
            "tier_after": self.tier_after.value,
        }


def decay_review_days(ewma: float) -> float:
    """Spacing for a decay review: stronger formulas wait longer (at least a day)."""
    return max(1.0, 2 ** (ewma * 3))


class AdaptiveEngine:
    """
    Session facade for one learner.

    Args:
        model: Learner model, mutated in place
        config: Engine constants
        rng: Random source for selection (seed it for deterministic picks)
        clock: Returns the current time in epoch ms
        mastery: Mastery cycle tracker (a fresh one per session by default)
        mode: Session label stored in ``last_session``
    """

    def __init__(
        self,
        model: AdaptiveUserModel,
        config: EngineConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
        mastery: MasteryCycleTracker | None = None,
        mode: str = "practice",
    ):
        self.model = model
        self.config = config or EngineConfig()
        self.clock = clock or now_ms
        self.mode = mode

        self.scheduler = ReviewScheduler(clock=self.clock)
        self.selector = QuestionSelector(rng=rng, scheduler=self.scheduler, clock=self.clock)
        self.tracker = StatsTracker(self.config)
        self.mastery = mastery or MasteryCycleTracker(
            required_correct=self.config.mastery_required_correct,
            clock=self.clock,
        )

        # Recent outcome windows, per category and across all categories (None)
        self._recent: dict[str | None, deque[bool]] = {}

    # =========================================================================
    # Pool
    # =========================================================================

    def register_question(self, question: QuestionDescriptor | dict[str, Any]) -> bool:
        """Add a question (descriptor or dict) to the pool; known ids are ignored."""
        if not isinstance(question, QuestionDescriptor):
            question = QuestionDescriptor.from_dict(question)
        return self.model.register_question(question)

    def register_questions(self, questions: Iterable[QuestionDescriptor | dict[str, Any]]) -> int:
        """Register many questions; returns how many were new."""
        added = sum(1 for q in questions if self.register_question(q))
        if added:
            logger.info(f"Registered {added} questions ({len(self.model.question_pool)} in pool)")
        return added

    # =========================================================================
    # Selection
    # =========================================================================

    def recent_outcomes(self, subject: str | None = None) -> list[bool]:
        return list(self._recent.get(subject, ()))

    def prime_recent(self, history: Iterable[tuple[str, bool]]) -> None:
        """Seed the outcome windows from earlier (category, correct) pairs, oldest first."""
        for category, correct in history:
            self._push_outcome(category, correct)

    def next_question(
        self,
        subject: str | None = None,
        exclude_ids: Collection[QuestionId] = (),
        tier_override: Tier | str | None = None,
        min_tier: Tier | str | None = None,
        recent_outcomes: Sequence[bool] | None = None,
    ) -> QuestionDescriptor:
        """
        Pick the next question for a subject.

        The session's own outcome window is used unless ``recent_outcomes``
        is given.

        Raises:
            NoQuestionsAvailable: If the subject has no registered questions
        """
        window = self.recent_outcomes(subject) if recent_outcomes is None else recent_outcomes
        question_id = self.selector.select(
            self.model,
            subject,
            window,
            tier_override=tier_override,
            exclude_ids=exclude_ids,
            min_tier=min_tier,
            now=self.clock(),
        )
        return self.model.question_pool[question_id]

    # =========================================================================
    # Attempt Pipeline
    # =========================================================================

    def handle_post_attempt(
        self,
        question_id: QuestionId,
        correct: bool,
        time_ms: float,
        is_recall: bool = False,
    ) -> AttemptOutcome:
        """
        Apply one answered question to the model and session state.

        Args:
            question_id: Question that was answered
            correct: Whether the answer was correct
            time_ms: Response latency in milliseconds
            is_recall: Whether this was the recall check of a mastery cycle

        Returns:
            AttemptOutcome describing the changes

        Raises:
            UnknownQuestionError: If the question is not in the pool
        """
        question = self.model.question_pool.get(question_id)
        if question is None:
            raise UnknownQuestionError(question_id)

        cfg = self.config
        now = self.clock()
        tier_before = question.tier

        # 1. Stats and sampling weights
        _, formula_stats = self.tracker.record(
            self.model, question.category, question.formula_id, correct, time_ms, now=now
        )
        self.tracker.rebalance_weights(self.model, question.formula_id)
        self._push_outcome(question.category, correct)

        # 2. Mastery cycle
        transition = self.mastery.record(question.formula_id, correct, is_recall=is_recall)

        # 3. Reviews
        review = None
        if not correct:
            review = self.scheduler.schedule_review(
                self.model,
                question_id,
                cfg.review_delay_minutes,
                priority=1.0 + formula_stats.miss_streak,
                reason=ReviewReason.MISTAKE,
                now=now,
            )
        elif cfg.schedule_decay_reviews and not self.scheduler.pending_for(
            self.model, question_id, ReviewReason.DECAY
        ):
            days = decay_review_days(formula_stats.ewma)
            review = self.scheduler.schedule_review(
                self.model,
                question_id,
                days * MS_PER_DAY / MS_PER_MINUTE,
                priority=0.5,
                reason=ReviewReason.DECAY,
                now=now,
            )

        # 4. Tier adjustment from streaks
        tier_after = adjust_difficulty_on_streak(self.model, question_id, cfg) or tier_before

        self.model.last_session = {"timestamp": now, "mode": self.mode}

        logger.debug(
            f"Attempt on {question_id}: correct={correct} mastery={transition.event.value} "
            f"tier={tier_before.value}->{tier_after.value}"
        )
        return AttemptOutcome(
            question_id=question_id,
            correct=correct,
            mastery_event=transition.event,
            mastery_state=transition.state,
            review_scheduled=review,
            tier_before=tier_before,
            tier_after=tier_after,
        )

    def _push_outcome(self, category: str, correct: bool) -> None:
        size = max(1, self.config.recent_window)
        for key in (category, None):
            self._recent.setdefault(key, deque(maxlen=size)).append(correct)

    # =========================================================================
    # Read Views
    # =========================================================================

    def recommended_tier(self, category: str) -> Tier:
        return recommended_tier_for_category(
            self.model, category, min_attempts=self.config.category_min_attempts
        )

    def category_confidence(self, category: str) -> int:
        return confidence_from_stats(self.model.stats_by_category.get(category), now=self.clock())

    def formula_masteries(self) -> list[FormulaMastery]:
        """
        Mastery summary per formula with recorded stats.

        Mastery is the formula's EWMA; the difficulty weight is the mean of
        the weights of its pool questions (1 when none are registered).
        """
        weights: dict[str, list[float]] = {}
        for question in self.model.question_pool.values():
            weights.setdefault(question.formula_id, []).append(float(question.difficulty_weight))

        out = []
        for formula_id, stats in self.model.stats_by_formula.items():
            formula_weights = weights.get(formula_id)
            out.append(
                FormulaMastery(
                    formula_id=formula_id,
                    mastery=stats.ewma,
                    difficulty_weight=sum(formula_weights) / len(formula_weights) if formula_weights else 1.0,
                )
            )
        return out

    def predicted_score(self) -> int:
        return estimate_afqt(self.model.stats_by_category, self.formula_masteries())

    def dashboard(self) -> dict[str, Any]:
        """Summary of the learner's standing, for display."""
        now = self.clock()
        categories = {}
        for code, stats in sorted(self.model.stats_by_category.items()):
            confidence = confidence_from_stats(stats, now=now)
            categories[code] = {
                "attempts": stats.attempts,
                "correct": stats.correct,
                "accuracy": round(stats.accuracy * 100, 1),
                "ewma": round(stats.ewma, 3),
                "avg_time_ms": round(stats.avg_time_ms),
                "tier": self.recommended_tier(code).value,
                "confidence": confidence,
                "questions_per_topic": questions_per_topic(confidence),
            }

        mastered = sorted(
            formula_id for formula_id, state in self.mastery.states().items() if state.mastered
        )
        return {
            "categories": categories,
            "predicted_score": self.predicted_score(),
            "due_reviews": len(self.scheduler.due_items(self.model, now=now)),
            "queued_reviews": len(self.model.review_queue),
            "mastered_formulas": mastered,
            "pool_size": len(self.model.question_pool),
        }
