"""
Answer and Question Text Matching.

Lenient comparison of a typed answer against the expected one:

- Numbers compare by value: commas are ignored, number words are understood
  ("one thousand", "two point five"), and a 2% relative tolerance applies
- Unit spellings are unified before text comparison (metre/meter, km,
  percent/%)
- Remaining text compares after punctuation is stripped, accepting a
  normalized Levenshtein similarity of 0.75

Also detects question text that restates an existing question.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

from rapidfuzz.distance import Levenshtein

from src.adaptive.confidence import round_half_up

ANSWER_SIMILARITY = 0.75
DUPLICATE_SIMILARITY = 0.9
NUMERIC_TOLERANCE = 0.02

SMALL_NUMBERS = {
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    "thirteen": 13, "fourteen": 14, "fifteen": 15, "sixteen": 16,
    "seventeen": 17, "eighteen": 18, "nineteen": 19,
}
TENS = {
    "twenty": 20, "thirty": 30, "forty": 40, "fifty": 50,
    "sixty": 60, "seventy": 70, "eighty": 80, "ninety": 90,
}
SCALES = {"thousand": 1_000, "million": 1_000_000, "billion": 1_000_000_000}

UNIT_SYNONYMS = {
    "metre": "meter",
    "metres": "meters",
    "centimetre": "centimeter",
    "centimetres": "centimeters",
    "kilometre": "kilometer",
    "kilometres": "kilometers",
    "km": "kilometer",
    "kms": "kilometers",
    "percent": "%",
    "per cent": "%",
    "percentage": "%",
}

_UNIT_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in sorted(UNIT_SYNONYMS, key=len, reverse=True)) + r")\b"
)
_PUNCTUATION = re.compile(r"[.,;:?()\"'!]")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


# =============================================================================
# Normalization
# =============================================================================


def normalize_text(value: Any) -> str:
    """Lowercase, strip common punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub("", str(value))
    return " ".join(text.split()).lower()


def map_units(value: Any) -> str:
    """Lowercase and unify unit spellings ("5 metres" -> "5 meters", "50 percent" -> "50%")."""
    text = _UNIT_PATTERN.sub(lambda m: UNIT_SYNONYMS[m.group(1)], str(value).lower())
    return re.sub(r"\s+%", "%", text)


def extract_numbers(text: Any) -> list[str]:
    return _NUMBER.findall(str(text))


def similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]; 0 when either side is empty."""
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a.lower(), b.lower())


# =============================================================================
# Numbers
# =============================================================================


def parse_number(value: Any) -> float | None:
    """Parse a numeric value or string, ignoring commas. None if not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    cleaned = str(value).replace(",", "").strip()
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def words_to_number(value: Any) -> float | None:
    """
    Read an English number phrase.

    Handles units, tens, hundred/thousand/million/billion scales, "and",
    hyphenated compounds, digit tokens and a "point" decimal tail.

    Returns:
        The value, or None if any token is not part of a number phrase
    """
    tokens = re.sub(r"[,\-]", " ", str(value).lower()).split()
    total = 0.0
    current = 0.0
    seen = False

    for index, token in enumerate(tokens):
        if token == "point":
            digits = []
            for tail in tokens[index + 1:]:
                if tail in SMALL_NUMBERS:
                    digits.append(str(SMALL_NUMBERS[tail]))
                elif tail.isdigit():
                    digits.append(tail)
                else:
                    break
            fraction = float("0." + "".join(digits)) if digits else 0.0
            return total + current + fraction

        if token in SMALL_NUMBERS:
            current += SMALL_NUMBERS[token]
        elif token in TENS:
            current += TENS[token]
        elif token == "hundred":
            current = (current or 1) * 100
        elif token in SCALES:
            total += (current or 1) * SCALES[token]
            current = 0.0
        elif token == "and":
            continue
        else:
            number = parse_number(token)
            if number is None:
                return None
            current += number
        seen = True

    return total + current if seen else None


def _as_number(value: Any) -> float | None:
    number = parse_number(value)
    return number if number is not None else words_to_number(value)


# =============================================================================
# Comparison
# =============================================================================


def is_answer_correct(expected: Any, actual: Any, tolerance: float = NUMERIC_TOLERANCE) -> bool:
    """
    Whether a typed answer matches the expected one.

    Args:
        expected: The question's answer (number or text)
        actual: What the learner typed
        tolerance: Relative tolerance for numeric answers (absolute floor of
            the same size for answers near zero)

    Returns:
        True if the answers match numerically or textually
    """
    if expected is None or actual is None:
        return False

    expected_number = _as_number(expected)
    actual_number = _as_number(actual)
    if expected_number is not None and actual_number is not None:
        if abs(expected_number - actual_number) <= max(abs(expected_number) * tolerance, tolerance):
            return True
        # Whole-number answers also accept a value that rounds to them
        if expected_number.is_integer():
            return round_half_up(actual_number) == int(expected_number)
        return False

    expected_text = normalize_text(map_units(expected))
    actual_text = normalize_text(map_units(actual))
    if not expected_text or not actual_text:
        return False
    if expected_text == actual_text:
        return True
    return similarity(expected_text, actual_text) >= ANSWER_SIMILARITY


def is_near_duplicate(
    text: Any,
    existing: Iterable[Any],
    threshold: float = DUPLICATE_SIMILARITY,
) -> bool:
    """
    Whether question text restates one of ``existing``.

    Texts match when their normalized forms are at least ``threshold``
    similar and they carry the same numbers, so a variant with new numbers
    counts as a new question.
    """
    normalized = normalize_text(text)
    if not normalized:
        return False
    numbers = extract_numbers(text)

    for other in existing:
        other_normalized = normalize_text(other)
        if not other_normalized or extract_numbers(other) != numbers:
            continue
        if other_normalized == normalized or similarity(normalized, other_normalized) >= threshold:
            return True
    return False
