"""
Stats Tracker.

Maintains rolling per-category and per-formula counters:
- attempts / correct
- exponentially weighted accuracy (EWMA)
- latency average biased toward recent answers
- consecutive-correct and consecutive-miss streaks

Pure data mutation; no I/O.
"""

from __future__ import annotations

from loguru import logger

from src.adaptive.models import AdaptiveUserModel, EngineConfig, StatsRecord, now_ms


def record_attempt(
    stats: StatsRecord | None,
    correct: bool,
    time_ms: float,
    alpha: float = 0.25,
    latency_alpha: float = 0.3,
    now: int | None = None,
) -> StatsRecord:
    """
    Apply one attempt to a stats record.

    A missing record is treated as zeroed before the update.

    Args:
        stats: Record to update in place (None creates a new one)
        correct: Whether the attempt was correct
        time_ms: Response latency in milliseconds (negative clamps to 0)
        alpha: EWMA smoothing constant for accuracy
        latency_alpha: EWMA smoothing constant for latency
        now: Attempt timestamp (epoch ms)

    Returns:
        The updated record
    """
    if stats is None:
        stats = StatsRecord.empty()

    time_ms = max(0.0, float(time_ms))
    outcome = 1.0 if correct else 0.0

    stats.attempts += 1
    stats.correct += 1 if correct else 0

    # First sample seeds the latency average
    if stats.attempts > 1:
        stats.avg_time_ms = latency_alpha * time_ms + (1 - latency_alpha) * stats.avg_time_ms
    else:
        stats.avg_time_ms = time_ms

    stats.ewma = alpha * outcome + (1 - alpha) * stats.ewma
    stats.ewma = max(0.0, min(1.0, stats.ewma))

    if correct:
        stats.streak += 1
        stats.miss_streak = 0
    else:
        stats.streak = 0
        stats.miss_streak += 1

    stats.last_attempt_at = now if now is not None else now_ms()
    return stats


class StatsTracker:
    """
    Updates category and formula stats on an AdaptiveUserModel.

    Records are created lazily on first write.
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def record(
        self,
        model: AdaptiveUserModel,
        category: str,
        formula_id: str,
        correct: bool,
        time_ms: float,
        now: int | None = None,
    ) -> tuple[StatsRecord, StatsRecord]:
        """
        Record an attempt against both the category and the formula.

        Returns:
            (category_stats, formula_stats) after the update
        """
        now = now if now is not None else now_ms()
        category_stats = record_attempt(
            model.ensure_category_stats(category),
            correct,
            time_ms,
            alpha=self.config.ewma_alpha,
            latency_alpha=self.config.latency_alpha,
            now=now,
        )
        formula_stats = record_attempt(
            model.ensure_formula_stats(formula_id),
            correct,
            time_ms,
            alpha=self.config.ewma_alpha,
            latency_alpha=self.config.latency_alpha,
            now=now,
        )
        return category_stats, formula_stats

    def rebalance_weights(self, model: AdaptiveUserModel, formula_id: str) -> float:
        """
        Recompute the sampling weight of every question on a formula.

        Weak formulas (low EWMA, active miss streak) get sampled more often.

        Returns:
            The new weight
        """
        cfg = self.config
        stats = model.formula_stats(formula_id)

        weight = 1 + (1 - stats.ewma) * cfg.weight_aggressiveness
        if stats.miss_streak > 0:
            weight *= 1 + stats.miss_streak * 0.25
        weight = max(cfg.min_weight, min(cfg.max_weight, weight))

        for question in model.question_pool.values():
            if question.formula_id == formula_id:
                model.question_weights[question.id] = weight

        logger.debug(f"Rebalanced formula {formula_id}: weight={weight:.2f}")
        return weight
