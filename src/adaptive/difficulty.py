"""
Difficulty Classification.

Maps an accuracy signal (lifetime ratio or EWMA, 0-1) onto the ordered tier
ladder:

    [0.00, 0.55)  easy
    [0.55, 0.72)  medium
    [0.72, 0.86)  hard
    [0.86, 0.94)  very-hard
    [0.94, 1.00]  master

Also hosts the streak-driven tier adjustment applied to pool questions after
each attempt.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from loguru import logger

from src.adaptive.models import (
    AdaptiveUserModel,
    EngineConfig,
    QuestionId,
    StatsRecord,
    Tier,
)

MEDIUM_THRESHOLD = 0.55
HARD_THRESHOLD = 0.72
VERY_HARD_THRESHOLD = 0.86
MASTER_THRESHOLD = 0.94


def classify(signal: float) -> Tier:
    """
    Classify an accuracy signal into a tier.

    Args:
        signal: Accuracy ratio or EWMA; clamped into [0, 1], NaN counts as 0

    Returns:
        Tier for the signal
    """
    if signal is None or math.isnan(signal):
        return Tier.EASY
    signal = max(0.0, min(1.0, signal))

    if signal >= MASTER_THRESHOLD:
        return Tier.MASTER
    elif signal >= VERY_HARD_THRESHOLD:
        return Tier.VERY_HARD
    elif signal >= HARD_THRESHOLD:
        return Tier.HARD
    elif signal >= MEDIUM_THRESHOLD:
        return Tier.MEDIUM
    return Tier.EASY


def ratio_from_outcomes(outcomes: Sequence[bool] | None) -> float:
    """Fraction of correct outcomes in a window (0 for an empty window)."""
    if not outcomes:
        return 0.0
    return sum(1 for o in outcomes if o) / len(outcomes)


def raise_to_floor(tier: Tier, floor: Tier | None) -> Tier:
    """Raise a tier to at least ``floor``."""
    if floor is not None and tier.rank < floor.rank:
        return floor
    return tier


def classify_stats(stats: StatsRecord | None, min_attempts: int = 0) -> Tier:
    """
    Classify a stats record.

    Uses the EWMA when the record has one, falling back to the raw ratio.
    No data (or fewer than ``min_attempts``) defaults to easy.
    """
    if stats is None or stats.attempts == 0 or stats.attempts < min_attempts:
        return Tier.EASY
    signal = stats.ewma if stats.ewma else stats.accuracy
    return classify(signal)


def recommended_tier_for_category(
    model: AdaptiveUserModel,
    category: str,
    min_attempts: int = 5,
) -> Tier:
    """Recommended practice tier for a category from its accumulated stats."""
    return classify_stats(model.stats_by_category.get(category), min_attempts=min_attempts)


def adjust_difficulty_on_streak(
    model: AdaptiveUserModel,
    question_id: QuestionId,
    config: EngineConfig | None = None,
) -> Tier | None:
    """
    Move a pool question along the tier ladder based on its formula's streaks.

    A success streak of ``up_streak_threshold + 2 * rank`` promotes the
    question one tier; a miss streak of ``down_streak_threshold`` demotes it
    one tier. Only the tier changes; the difficulty weight is fixed at
    registration.

    Returns:
        The question's tier after adjustment, or None if it is not in the pool
    """
    cfg = config or EngineConfig()
    question = model.question_pool.get(question_id)
    if question is None:
        return None

    stats = model.stats_by_formula.get(question.formula_id)
    if stats is None:
        return question.tier

    before = question.tier
    if stats.streak >= cfg.up_streak_threshold + 2 * before.rank and before is not Tier.MASTER:
        question.tier = before.shift(1)
    elif stats.miss_streak >= cfg.down_streak_threshold and before is not Tier.EASY:
        question.tier = before.shift(-1)

    if question.tier is not before:
        logger.debug(f"Question {question_id} moved {before.value} -> {question.tier.value}")
    return question.tier


def adjust_numeric_difficulty(
    current_difficulty: int | None,
    accuracy_percent: float,
    avg_speed_seconds: float,
) -> int:
    """
    Adjust a 1-5 numeric difficulty from accuracy and speed.

    Fast and accurate (>=85%, under 18s) steps up; under 50% steps down.
    """
    new_difficulty = current_difficulty or 3
    if accuracy_percent >= 85 and avg_speed_seconds < 18:
        new_difficulty = min(5, new_difficulty + 1)
    if accuracy_percent < 50:
        new_difficulty = max(1, new_difficulty - 1)
    return max(1, min(5, new_difficulty))
