"""
Question Selector.

Picks the next practice item for a subject:

1. A due review item always pre-empts fresh selection
2. Otherwise a target tier is derived from the recent outcome window
   (or an explicit override), raised to an optional floor
3. Candidates at the target tier are sampled by question weight
4. Empty tiers relax outward to neighbouring tiers (lower first), then the
   exclusion set is dropped and the same outward search runs again, so a
   subject with any registered question always yields one
"""

from __future__ import annotations

import random
from collections.abc import Callable, Collection, Sequence

from loguru import logger

from src.adaptive.difficulty import classify, raise_to_floor, ratio_from_outcomes
from src.adaptive.exceptions import NoQuestionsAvailable
from src.adaptive.models import AdaptiveUserModel, QuestionDescriptor, QuestionId, Tier, now_ms
from src.adaptive.review_scheduler import ReviewScheduler


def tier_search_order(target: Tier) -> list[Tier]:
    """
    Tiers ordered by distance from ``target``, the lower tier first at each
    distance.

    A minimum tier only raises the target; relaxation still tries the
    easier neighbour first.
    """
    tiers = Tier.ordered()
    order = [target]
    for offset in range(1, len(tiers)):
        for idx in (target.rank - offset, target.rank + offset):
            if 0 <= idx < len(tiers):
                order.append(tiers[idx])
    return order


class QuestionSelector:
    """
    Select question ids from an AdaptiveUserModel.

    Args:
        rng: Random source (seed it in tests for deterministic picks)
        scheduler: Review scheduler consulted before fresh sampling
        clock: Returns the current time in epoch ms
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        scheduler: ReviewScheduler | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.rng = rng or random.Random()
        self.clock = clock or now_ms
        self.scheduler = scheduler or ReviewScheduler(clock=self.clock)

    def target_tier(
        self,
        recent_outcomes: Sequence[bool] | None,
        tier_override: Tier | str | None = None,
        min_tier: Tier | str | None = None,
    ) -> Tier:
        """Tier to aim for before any relaxation."""
        if tier_override is not None:
            tier = Tier.from_value(tier_override)
        else:
            tier = classify(ratio_from_outcomes(recent_outcomes))
        floor = Tier.from_value(min_tier) if min_tier is not None else None
        return raise_to_floor(tier, floor)

    def select(
        self,
        model: AdaptiveUserModel,
        subject_filter: str | None,
        recent_outcomes: Sequence[bool] | None = None,
        tier_override: Tier | str | None = None,
        exclude_ids: Collection[QuestionId] = (),
        min_tier: Tier | str | None = None,
        now: int | None = None,
        consume_review: bool = True,
    ) -> QuestionId:
        """
        Choose the next question id.

        Args:
            model: Learner model (review entries are consumed when picked)
            subject_filter: Category code, or None for any category
            recent_outcomes: Recent correctness window, most recent last
            tier_override: Force this tier instead of deriving one
            exclude_ids: Ids to avoid (e.g. already seen this session)
            min_tier: Never aim below this tier
            now: Evaluation time (epoch ms)
            consume_review: Remove the picked item's due review entries

        Returns:
            A question id from the subject

        Raises:
            NoQuestionsAvailable: If the subject has no registered questions
        """
        now = now if now is not None else self.clock()
        excluded = set(exclude_ids)

        subject_questions = model.questions_for(subject_filter)
        if not subject_questions:
            raise NoQuestionsAvailable(subject_filter)

        # 1. Reviews pre-empt everything
        review = self.scheduler.next_due(model, now=now, subject=subject_filter, exclude_ids=excluded)
        if review is not None:
            if consume_review:
                self.scheduler.consume(model, review.question_id, now=now)
            logger.debug(f"Selected due review {review.question_id} ({review.reason.value})")
            return review.question_id

        # 2. Target tier
        target = self.target_tier(recent_outcomes, tier_override, min_tier)

        # 3-5. Target tier, then outward
        available = [q for q in subject_questions if q.id not in excluded]
        picked = self._pick_nearest(model, available, target)
        if picked is not None:
            return picked

        # Everything for the subject is excluded
        logger.debug(f"All {len(subject_questions)} questions excluded for {subject_filter}; ignoring exclusions")
        return self._pick_nearest(model, subject_questions, target)

    def _pick_nearest(
        self,
        model: AdaptiveUserModel,
        pool: Sequence[QuestionDescriptor],
        target: Tier,
    ) -> QuestionId | None:
        """Sample from the non-empty tier closest to ``target``."""
        for tier in tier_search_order(target):
            candidates = [q for q in pool if q.tier is tier]
            if candidates:
                picked = self._sample(model, candidates)
                logger.debug(
                    f"Selected {picked} at {tier.value} (target {target.value}, "
                    f"{len(candidates)} candidates)"
                )
                return picked
        return None

    def _sample(self, model: AdaptiveUserModel, candidates: list[QuestionDescriptor]) -> QuestionId:
        """Weighted pick by question weight (default 1)."""
        weights = [max(0.0, model.weight_for(q.id)) for q in candidates]
        if sum(weights) <= 0:
            return self.rng.choice(candidates).id
        return self.rng.choices(candidates, weights=weights, k=1)[0].id


def select(
    model: AdaptiveUserModel,
    subject_filter: str | None,
    recent_outcomes: Sequence[bool] | None = None,
    tier_override: Tier | str | None = None,
    exclude_ids: Collection[QuestionId] = (),
    min_tier: Tier | str | None = None,
    rng: random.Random | None = None,
) -> QuestionId:
    """Module-level shortcut for QuestionSelector(rng).select."""
    return QuestionSelector(rng=rng).select(
        model,
        subject_filter,
        recent_outcomes,
        tier_override=tier_override,
        exclude_ids=exclude_ids,
        min_tier=min_tier,
    )
