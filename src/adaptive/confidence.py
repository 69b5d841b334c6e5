"""
Confidence Estimation.

Fuses accuracy, speed and recency into a 0-100 confidence score:

    speed_factor   = clamp((60 - min(60, seconds)) / 55, 0, 1)   # 5s -> 1, 60s -> 0
    recency_factor = clamp((30 - days) / 30, 0, 1)               # 30+ days -> 0
    confidence     = round(100 * (0.6 * accuracy + 0.3 * speed + 0.1 * recency))
"""

from __future__ import annotations

import math

from src.adaptive.models import MS_PER_DAY, StatsRecord, now_ms

WEIGHT_ACCURACY = 0.6
WEIGHT_SPEED = 0.3
WEIGHT_RECENCY = 0.1

SLOW_SECONDS = 60.0
FAST_SECONDS = 5.0
STALE_DAYS = 30.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_confidence(accuracy_percent: float, avg_speed_seconds: float, recency_days: float) -> int:
    """
    Composite confidence score.

    Args:
        accuracy_percent: Accuracy 0-100 (clamped)
        avg_speed_seconds: Average answer time in seconds (negative counts as instant)
        recency_days: Days since last activity (negative counts as today)

    Returns:
        Integer 0-100
    """
    accuracy = _clamp(accuracy_percent, 0.0, 100.0) / 100
    speed = max(0.0, avg_speed_seconds)
    days = max(0.0, recency_days)

    speed_factor = _clamp((SLOW_SECONDS - min(SLOW_SECONDS, speed)) / (SLOW_SECONDS - FAST_SECONDS), 0.0, 1.0)
    recency_factor = _clamp((STALE_DAYS - days) / STALE_DAYS, 0.0, 1.0)

    score = WEIGHT_ACCURACY * accuracy + WEIGHT_SPEED * speed_factor + WEIGHT_RECENCY * recency_factor
    return int(_clamp(round_half_up(score * 100), 0, 100))


def questions_per_topic(confidence: float) -> int:
    """Practice items to assign per topic; lower confidence means more (floor of 1)."""
    return max(1, 6 - math.floor(confidence / 20))


def confidence_from_stats(stats: StatsRecord | None, now: int | None = None) -> int:
    """Confidence for a stats record; a record with no attempts counts as fully stale."""
    if stats is None or stats.attempts == 0:
        return compute_confidence(0.0, SLOW_SECONDS, STALE_DAYS)

    now = now if now is not None else now_ms()
    if stats.last_attempt_at is None:
        recency_days = STALE_DAYS
    else:
        recency_days = (now - stats.last_attempt_at) / MS_PER_DAY

    return compute_confidence(
        stats.accuracy * 100,
        stats.avg_time_ms / 1000,
        recency_days,
    )
