"""
Choice Generator.

Repairs a question's answer choices so that:
- the correct answer appears verbatim
- there are at least four distinct choices
- no choice is a placeholder ("Other", "Option B", blank, ...)
- filler distractors are related to the answer where that can be inferred
- the answer avoids a given index (so consecutive questions do not share
  the same correct position)
"""

from __future__ import annotations

import random
import re
from collections.abc import Mapping
from dataclasses import replace
from fractions import Fraction
from typing import Any

from src.adaptive.models import QuestionDescriptor

MIN_CHOICES = 4

PLACEHOLDER_PATTERN = re.compile(
    r"^\s*(other\s*\d*|option\s*[a-z0-9]?|choice\s*[a-z0-9]?|placeholder|tbd|n/a|\?+|-+)?\s*$",
    re.IGNORECASE,
)

FRACTION_PATTERN = re.compile(r"^\s*(\d+)\s*/\s*(\d+)\s*$")

# Related-term catalogue: (question keywords, members)
RELATED_TERMS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (
        ("organ",),
        ("Heart", "Lungs", "Brain", "Kidney", "Liver", "Stomach", "Skin", "Eye", "Ear", "Pancreas"),
    ),
    (
        ("chamber", "atrium", "ventricle"),
        ("Right atrium", "Left atrium", "Right ventricle", "Left ventricle"),
    ),
    (
        ("organelle", "cell"),
        ("Nucleus", "Mitochondria", "Ribosome", "Chloroplast", "Golgi apparatus", "Cell membrane", "Vacuole"),
    ),
    (
        ("gas", "atmosphere", "breathe"),
        ("Oxygen", "Carbon dioxide", "Nitrogen", "Hydrogen", "Helium", "Methane", "Argon"),
    ),
    (
        ("planet", "solar system", "orbit"),
        ("Mercury", "Venus", "Earth", "Mars", "Jupiter", "Saturn", "Uranus", "Neptune"),
    ),
    (
        ("layer", "earth's", "crust", "mantle"),
        ("Crust", "Mantle", "Outer core", "Inner core", "Lithosphere", "Asthenosphere"),
    ),
    (
        ("bone", "skeleton"),
        ("Femur", "Tibia", "Humerus", "Radius", "Skull", "Pelvis", "Sternum"),
    ),
    (
        ("rock",),
        ("Igneous", "Sedimentary", "Metamorphic", "Granite", "Basalt", "Limestone"),
    ),
    (
        ("state of matter", "matter"),
        ("Solid", "Liquid", "Gas", "Plasma"),
    ),
    (
        ("consumer", "producer", "food chain", "organism"),
        ("Producer", "Herbivore", "Carnivore", "Omnivore", "Decomposer", "Heterotroph", "Autotroph"),
    ),
    (
        ("energy",),
        ("Kinetic energy", "Potential energy", "Thermal energy", "Chemical energy", "Nuclear energy"),
    ),
    (
        ("continent",),
        ("Africa", "Asia", "Europe", "North America", "South America", "Australia", "Antarctica"),
    ),
    (
        ("color", "colour"),
        ("Red", "Orange", "Yellow", "Green", "Blue", "Indigo", "Violet"),
    ),
    (
        ("synonym", "means", "feeling", "mood"),
        ("Joyful", "Angry", "Sad", "Calm", "Anxious", "Proud", "Bored"),
    ),
]

# Last resort when nothing about the answer is inferable
GENERIC_DISTRACTORS = (
    "None of these",
    "All of these",
    "Cannot be determined",
    "Not enough information",
    "Both of the first two",
)


def is_placeholder(choice: Any) -> bool:
    return choice is None or bool(PLACEHOLDER_PATTERN.match(str(choice)))


def _key(value: Any) -> str:
    """Comparison key: numbers compare by value, text case-insensitively."""
    text = str(value).strip()
    try:
        return f"num:{float(text.replace(',', ''))}"
    except ValueError:
        return text.lower()


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def _numeric_neighbours(answer: Any) -> list[Any]:
    number = _as_number(answer)
    if number is None:
        return []

    is_integral = float(number).is_integer()
    offsets = [1, -1, 2, -2, 3, 5, -3, 10]
    out: list[Any] = []
    for offset in offsets:
        value = number + offset
        if value < 0 <= number:
            continue
        if is_integral:
            value = int(value)
        else:
            decimals = len(str(number).split(".")[1]) if "." in str(number) else 1
            value = round(value, decimals)
        out.append(value if isinstance(answer, (int, float)) else str(value))
    return out


def _fraction_variants(answer: Any) -> list[str]:
    match = FRACTION_PATTERN.match(str(answer))
    if not match:
        return []
    n, d = int(match.group(1)), int(match.group(2))
    candidates = [
        f"{max(1, n - 1)}/{d}",
        f"{n + 1}/{d}",
        f"{n}/{d + 1}",
        f"{d}/{n}" if n else f"{d}/1",
        f"{n + 2}/{d}",
    ]
    target = Fraction(n, d) if d else None
    out = []
    for c in candidates:
        cn, cd = (int(x) for x in c.split("/"))
        if cd and target is not None and Fraction(cn, cd) == target:
            continue
        out.append(c)
    return out


def _related_terms(answer: Any, choices: list[Any], text: str) -> list[str]:
    """Members of every catalogue group linked to the answer, choices or question text."""
    answer_key = _key(answer)
    choice_keys = {_key(c) for c in choices}
    lowered = text.lower()

    by_answer, by_choices, by_text = [], [], []
    for keywords, members in RELATED_TERMS:
        member_keys = {_key(m) for m in members}
        if answer_key in member_keys:
            by_answer.extend(members)
        elif choice_keys & member_keys:
            by_choices.extend(members)
        elif any(k in lowered for k in keywords):
            by_text.extend(members)
    return by_answer + by_choices + by_text


def _fill_candidates(answer: Any, choices: list[Any], text: str, rng: random.Random) -> list[Any]:
    numeric = _fraction_variants(answer) or _numeric_neighbours(answer)
    related = _related_terms(answer, choices, text)
    rng.shuffle(related)
    return numeric + related + list(GENERIC_DISTRACTORS)


def ensure_choices_include_answer(
    question: QuestionDescriptor | Mapping[str, Any],
    avoid_index: int | None = None,
    rng: random.Random | None = None,
) -> QuestionDescriptor | dict[str, Any]:
    """
    Return a copy of the question with repaired choices.

    Args:
        question: QuestionDescriptor or a mapping with ``answer`` and ``choices``
        avoid_index: Position the answer must not occupy
        rng: Random source for shuffling

    Returns:
        Same type as the input, with at least four choices including the answer
    """
    rng = rng or random.Random()
    if isinstance(question, QuestionDescriptor):
        answer, raw_choices, text = question.answer, list(question.choices), question.text
    else:
        answer = question.get("answer")
        raw_choices = list(question.get("choices") or [])
        text = str(question.get("text") or "")

    answer_key = _key(answer)
    seen = {answer_key}
    distractors: list[Any] = []
    for choice in raw_choices:
        if is_placeholder(choice):
            continue
        key = _key(choice)
        if key in seen:
            continue
        seen.add(key)
        distractors.append(choice)

    if len(distractors) + 1 < MIN_CHOICES:
        for candidate in _fill_candidates(answer, raw_choices, text, rng):
            key = _key(candidate)
            if key in seen or is_placeholder(candidate):
                continue
            seen.add(key)
            distractors.append(candidate)
            if len(distractors) + 1 >= MIN_CHOICES:
                break

    # Numeric fallback never runs dry
    bump = 100
    while len(distractors) + 1 < MIN_CHOICES:
        candidate = f"{answer} ({bump})" if _as_number(answer) is None else bump
        if _key(candidate) not in seen:
            seen.add(_key(candidate))
            distractors.append(candidate)
        bump += 1

    choices = [answer] + distractors
    rng.shuffle(choices)

    if avoid_index is not None and len(choices) > 1 and 0 <= avoid_index < len(choices):
        answer_at = choices.index(answer)
        if answer_at == avoid_index:
            other = rng.choice([i for i in range(len(choices)) if i != avoid_index])
            choices[answer_at], choices[other] = choices[other], choices[answer_at]

    if isinstance(question, QuestionDescriptor):
        return replace(question, choices=choices)
    repaired = dict(question)
    repaired["choices"] = choices
    return repaired
