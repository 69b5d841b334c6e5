"""
Predicted Score Estimation.

Fuses per-category accuracy and per-formula difficulty into a single AFQT-style
estimate in [0, 99]. Accuracy earned on harder material pushes the estimate
further from the midpoint.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from src.adaptive.confidence import round_half_up
from src.adaptive.models import StatsRecord

# Baseline categories always participate, even without attempts
CATEGORY_WEIGHTS = {
    "AR": 1.2,
    "MK": 1.2,
    "WK": 0.9,
    "PC": 0.9,
    "MIXED": 1.0,
}
OTHER_CATEGORY_WEIGHT = 0.9


@dataclass
class FormulaMastery:
    """Mastery summary for one formula, as consumed by the estimator."""

    formula_id: str
    mastery: float = 0.0
    difficulty_weight: float = 1.0


def logistic(x: float) -> float:
    # Split by sign so large magnitudes cannot overflow exp()
    if x >= 0:
        return 1 / (1 + math.exp(-x))
    z = math.exp(x)
    return z / (1 + z)


def _counts(stats: StatsRecord | Mapping[str, Any] | None) -> tuple[int, int]:
    if stats is None:
        return 0, 0
    if isinstance(stats, StatsRecord):
        return stats.attempts, stats.correct
    return int(stats.get("attempts", 0) or 0), int(stats.get("correct", 0) or 0)


def _difficulty_weight(entry: FormulaMastery | Mapping[str, Any]) -> float:
    if isinstance(entry, FormulaMastery):
        weight = entry.difficulty_weight
    else:
        weight = entry.get("difficulty_weight", entry.get("difficultyWeight"))
    return float(weight) if weight else 1.0


def estimate_afqt(
    stats_by_category: Mapping[str, StatsRecord | Mapping[str, Any]] | None = None,
    formula_masteries: Sequence[FormulaMastery | Mapping[str, Any]] | None = None,
) -> int:
    """
    Estimate a composite score.

    Args:
        stats_by_category: Category code -> stats (StatsRecord or mapping with
            attempts/correct)
        formula_masteries: Entries carrying a difficulty weight (defaults to 1)

    Returns:
        Integer in [0, 99]
    """
    stats_by_category = stats_by_category or {}
    formula_masteries = formula_masteries or []

    weights = dict(CATEGORY_WEIGHTS)
    for category in stats_by_category:
        weights.setdefault(category, OTHER_CATEGORY_WEIGHT)

    raw = 0.0
    total_weight = 0.0
    for category, weight in weights.items():
        attempts, correct = _counts(stats_by_category.get(category))
        accuracy = min(1.0, correct / attempts) if attempts > 0 else 0.0
        raw += accuracy * weight
        total_weight += weight

    if formula_masteries:
        difficulty_adj = sum(_difficulty_weight(f) for f in formula_masteries) / len(formula_masteries)
    else:
        difficulty_adj = 1.0

    weighted_accuracy = raw / max(1.0, total_weight)
    scaled = logistic((weighted_accuracy * 2 - 1) * difficulty_adj)
    return max(0, min(99, round_half_up(scaled * 99)))
