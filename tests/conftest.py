"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.adaptive.models import (  # noqa: E402
    MS_PER_MINUTE,
    AdaptiveUserModel,
    QuestionDescriptor,
    Tier,
)

# 2023-11-14 22:13:20 UTC
FIXED_NOW = 1_700_000_000_000


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FixedClock:
    """Injectable clock returning a controllable epoch-ms value."""

    def __init__(self, now: int = FIXED_NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float = 0, days: float = 0) -> int:
        self.now += int(minutes * MS_PER_MINUTE + days * 24 * 60 * MS_PER_MINUTE)
        return self.now


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Clock pinned at FIXED_NOW."""
    return FixedClock()


@pytest.fixture
def rng():
    """Seeded random source."""
    return random.Random(42)


@pytest.fixture
def empty_model():
    """Structurally valid model with nothing in it."""
    return AdaptiveUserModel.empty()


@pytest.fixture
def make_question():
    """Factory for question descriptors with sensible defaults."""

    def _make(
        qid,
        category: str = "AR",
        tier: Tier = Tier.EASY,
        formula_id: str | None = None,
        answer="4",
        choices=None,
        text: str | None = None,
    ) -> QuestionDescriptor:
        return QuestionDescriptor(
            id=qid,
            text=text or f"Question {qid}",
            choices=list(choices) if choices is not None else ["1", "2", "3", "4"],
            answer=answer,
            category=category,
            formula_id=formula_id or f"f_{qid}",
            tier=tier,
        )

    return _make


@pytest.fixture
def sample_questions(make_question):
    """A small mixed pool across two categories and several tiers."""
    return [
        make_question(1, "AR", Tier.EASY, formula_id="add"),
        make_question(2, "AR", Tier.EASY, formula_id="add"),
        make_question(3, "AR", Tier.MEDIUM, formula_id="ratio"),
        make_question(4, "AR", Tier.HARD, formula_id="ratio"),
        make_question(5, "MK", Tier.EASY, formula_id="area"),
        make_question(6, "MK", Tier.VERY_HARD, formula_id="volume"),
    ]


@pytest.fixture
def seeded_model(empty_model, sample_questions):
    """Model with sample_questions registered."""
    for question in sample_questions:
        empty_model.register_question(question)
    return empty_model
