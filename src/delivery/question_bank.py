"""
Question Bank: Practice Item Loader.

Loads question descriptors from JSON files in either shape:
- a list of question objects
- a ``{category: [question, ...]}`` map (the key fills a missing category)

Malformed entries are skipped with a warning; the rest of the file still loads.
"""

from __future__ import annotations

import json
import random
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from loguru import logger

from src.adaptive.choice_generator import ensure_choices_include_answer
from src.adaptive.models import QuestionDescriptor, QuestionId, Tier
from src.adaptive.text_match import DUPLICATE_SIMILARITY, is_near_duplicate


class QuestionBank:
    """
    Manages a collection of question descriptors.

    Features:
    - Loading from one or more JSON files
    - Optional choice repair on load
    - Rejection of questions restating one already in the same category
    - Grouping by category and tier
    """

    def __init__(
        self,
        repair_choices: bool = True,
        rng: random.Random | None = None,
        duplicate_threshold: float | None = DUPLICATE_SIMILARITY,
    ):
        """
        Initialize the question bank.

        Args:
            repair_choices: Run every loaded question through the choice generator
            rng: Random source for choice shuffling
            duplicate_threshold: Text similarity at which a question with the
                same numbers counts as a restatement (None disables the check)
        """
        self.repair_choices = repair_choices
        self.rng = rng or random.Random()
        self.duplicate_threshold = duplicate_threshold

        # Storage
        self._questions: dict[QuestionId, QuestionDescriptor] = {}
        self._by_category: dict[str, list[QuestionId]] = {}

        # Stats
        self._files_loaded: list[Path] = []
        self._skipped: int = 0
        self._near_duplicates: int = 0

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[QuestionDescriptor]:
        return iter(self._questions.values())

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._questions

    @property
    def categories(self) -> list[str]:
        """Categories with at least one question."""
        return sorted(self._by_category.keys())

    @property
    def skipped(self) -> int:
        """Entries rejected as malformed across all loads."""
        return self._skipped

    @property
    def near_duplicates(self) -> int:
        """Entries rejected as restatements of an earlier question."""
        return self._near_duplicates

    def get(self, question_id: QuestionId) -> QuestionDescriptor | None:
        return self._questions.get(question_id)

    def by_category(self, category: str) -> list[QuestionDescriptor]:
        return [self._questions[qid] for qid in self._by_category.get(category, [])]

    def by_tier(self, tier: Tier | str) -> list[QuestionDescriptor]:
        wanted = Tier.from_value(tier)
        return [q for q in self._questions.values() if q.tier is wanted]

    def add(self, question: QuestionDescriptor) -> bool:
        """Add one question; returns False for a duplicate id or restated text."""
        if question.id in self._questions:
            logger.debug(f"Duplicate question id {question.id} ignored")
            return False
        if self.duplicate_threshold is not None and is_near_duplicate(
            question.text,
            (q.text for q in self.by_category(question.category)),
            threshold=self.duplicate_threshold,
        ):
            self._near_duplicates += 1
            logger.info(f"Question {question.id} restates an existing {question.category} question; ignored")
            return False
        if self.repair_choices:
            question = ensure_choices_include_answer(question, rng=self.rng)
        self._questions[question.id] = question
        self._by_category.setdefault(question.category, []).append(question.id)
        return True

    def load(self, path: Path | str) -> int:
        """
        Load questions from a JSON file.

        Args:
            path: Path to JSON file

        Returns:
            Number of questions loaded from this file
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return 0

        loaded = 0
        for entry in self._entries(data):
            try:
                question = QuestionDescriptor.from_dict(entry)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self._skipped += 1
                logger.warning(f"Invalid question in {path}: {e!r}")
                continue
            if self.add(question):
                loaded += 1

        self._files_loaded.append(path)
        logger.info(f"QuestionBank loaded {loaded} questions from {path.name} ({len(self)} total)")
        return loaded

    def _entries(self, data: Any) -> Iterator[Any]:
        if isinstance(data, list):
            yield from data
        elif isinstance(data, dict):
            for category, items in data.items():
                if not isinstance(items, list):
                    self._skipped += 1
                    logger.warning(f"Category {category} is not a list; skipped")
                    continue
                for item in items:
                    if isinstance(item, dict):
                        item = {"category": category, **item}
                    yield item
        else:
            logger.warning(f"Unsupported question bank shape: {type(data).__name__}")
