"""
Review Scheduler.

Due-queue of forced re-practice items. Scheduling is a data annotation only
(a due timestamp on the model); nothing fires on a timer. "Due" is evaluated
lazily whenever selection runs.

The queue is not kept sorted and may hold several entries for the same
question (one per outstanding reason). Consumers use first-due semantics:
earliest due_at wins, ties broken by insertion order.
"""

from __future__ import annotations

from collections.abc import Callable, Collection

from loguru import logger

from src.adaptive.exceptions import InvalidModelState, UnknownQuestionError
from src.adaptive.models import (
    MS_PER_MINUTE,
    AdaptiveUserModel,
    QuestionId,
    ReviewItem,
    ReviewReason,
    now_ms,
)


class ReviewScheduler:
    """
    Schedule and query forced re-reviews on an AdaptiveUserModel.

    Args:
        clock: Returns the current time in epoch ms (defaults to wall clock)
    """

    def __init__(self, clock: Callable[[], int] | None = None):
        self.clock = clock or now_ms

    def schedule_review(
        self,
        model: AdaptiveUserModel,
        question_id: QuestionId,
        delay_minutes: float,
        priority: float = 1.0,
        reason: ReviewReason | str = ReviewReason.MISTAKE,
        now: int | None = None,
    ) -> ReviewItem:
        """
        Queue a question for re-review ``delay_minutes`` from now.

        Negative delays make the item immediately due.

        Raises:
            UnknownQuestionError: If the question is not in the pool
        """
        if question_id not in model.question_pool:
            raise UnknownQuestionError(question_id)

        now = now if now is not None else self.clock()
        item = ReviewItem(
            question_id=question_id,
            due_at=now + int(delay_minutes * MS_PER_MINUTE),
            priority=priority,
            reason=ReviewReason(reason),
        )
        model.review_queue.append(item)
        logger.debug(
            f"Scheduled {item.reason.value} review for {question_id} "
            f"in {delay_minutes:g} min (priority {priority})"
        )
        return item

    def due_items(
        self,
        model: AdaptiveUserModel,
        now: int | None = None,
        subject: str | None = None,
        exclude_ids: Collection[QuestionId] = (),
    ) -> list[ReviewItem]:
        """
        Due entries, earliest first (ties by insertion order).

        Entries whose question is missing from the pool are skipped and logged.

        Args:
            model: Model to scan
            now: Evaluation time (epoch ms)
            subject: Only entries whose question belongs to this category
            exclude_ids: Question ids to skip
        """
        now = now if now is not None else self.clock()
        due = []
        for index, item in enumerate(model.review_queue):
            if not item.is_due(now):
                continue
            question = model.question_pool.get(item.question_id)
            if question is None:
                logger.warning(InvalidModelState(item.question_id).message)
                continue
            if subject is not None and question.category != subject:
                continue
            if item.question_id in exclude_ids:
                continue
            due.append((item.due_at, index, item))

        due.sort(key=lambda entry: (entry[0], entry[1]))
        return [item for _, _, item in due]

    def next_due(
        self,
        model: AdaptiveUserModel,
        now: int | None = None,
        subject: str | None = None,
        exclude_ids: Collection[QuestionId] = (),
    ) -> ReviewItem | None:
        """The first-due entry, or None if nothing is due."""
        due = self.due_items(model, now=now, subject=subject, exclude_ids=exclude_ids)
        return due[0] if due else None

    def consume(
        self,
        model: AdaptiveUserModel,
        question_id: QuestionId,
        now: int | None = None,
    ) -> int:
        """
        Remove every due entry for a question that has just been presented.

        Entries for the same question that are not yet due stay queued.

        Returns:
            Number of entries removed
        """
        now = now if now is not None else self.clock()
        before = len(model.review_queue)
        model.review_queue = [
            item for item in model.review_queue
            if not (item.question_id == question_id and item.is_due(now))
        ]
        return before - len(model.review_queue)

    def pending_for(
        self,
        model: AdaptiveUserModel,
        question_id: QuestionId,
        reason: ReviewReason | None = None,
    ) -> list[ReviewItem]:
        """All queued entries for a question, optionally filtered by reason."""
        return [
            item for item in model.review_queue
            if item.question_id == question_id and (reason is None or item.reason is reason)
        ]


def schedule_review(
    model: AdaptiveUserModel,
    question_id: QuestionId,
    delay_minutes: float,
    priority: float = 1.0,
    reason: ReviewReason | str = ReviewReason.MISTAKE,
    now: int | None = None,
) -> ReviewItem:
    """Module-level shortcut for ReviewScheduler().schedule_review."""
    return ReviewScheduler().schedule_review(
        model, question_id, delay_minutes, priority=priority, reason=reason, now=now
    )
