"""
Unit tests for answer checking and near-duplicate detection.
"""

import pytest

from src.adaptive.text_match import (
    is_answer_correct,
    is_near_duplicate,
    map_units,
    normalize_text,
    parse_number,
    similarity,
    words_to_number,
)


class TestNumbers:
    """Number parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1,000", 1000.0),
            (" 7.5 ", 7.5),
            (42, 42.0),
        ],
    )
    def test_parse_number(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", None, True, "nan", "inf"])
    def test_parse_number_rejects(self, raw):
        assert parse_number(raw) is None

    @pytest.mark.parametrize(
        "phrase,expected",
        [
            ("one thousand", 1000),
            ("twenty-one", 21),
            ("one hundred and five", 105),
            ("three million", 3_000_000),
            ("two point five", 2.5),
            ("2 thousand", 2000),
        ],
    )
    def test_words_to_number(self, phrase, expected):
        assert words_to_number(phrase) == expected

    @pytest.mark.parametrize("phrase", ["heart", "and", "", "five apples"])
    def test_words_to_number_rejects(self, phrase):
        assert words_to_number(phrase) is None


class TestNormalization:
    """Text normalization helpers."""

    def test_normalize_text(self):
        assert normalize_text("  Ignored the   Warnings! ") == "ignored the warnings"

    def test_map_units(self):
        assert map_units("5 Metres") == "5 meters"
        assert map_units("50 per cent") == "50%"
        assert map_units("3 km") == "3 kilometer"

    def test_map_units_leaves_words_containing_units(self):
        assert map_units("skmap") == "skmap"

    def test_similarity(self):
        assert similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
        assert similarity("Same", "same") == 1.0
        assert similarity("", "x") == 0.0


class TestIsAnswerCorrect:
    """Lenient answer comparison."""

    @pytest.mark.parametrize("typed", ["1000", "1,000", "1000.0", "one thousand"])
    def test_numeric_spellings(self, typed):
        assert is_answer_correct(1000, typed)

    def test_number_words_with_decimals(self):
        assert is_answer_correct("2.5", "two point five")

    def test_relative_tolerance(self):
        assert is_answer_correct(100, "101.5")
        assert not is_answer_correct(100, "103")

    def test_whole_answer_accepts_rounded_value(self):
        assert is_answer_correct(4, "4.4")
        assert not is_answer_correct(4, "3")

    def test_fractional_answer_needs_tolerance(self):
        assert not is_answer_correct("7.5", "8")

    def test_units(self):
        assert is_answer_correct("5 meters", "5 metres")
        assert is_answer_correct("50%", "50 percent")

    def test_fuzzy_text(self):
        assert is_answer_correct("Mitochondria", "mitochondira")
        assert is_answer_correct("Ignored the warnings", "ignored the warnings.")
        assert not is_answer_correct("Heart", "Liver")

    def test_non_numeric_text_answer(self):
        assert is_answer_correct("$15", "$15")
        assert not is_answer_correct("$15", "$5")

    @pytest.mark.parametrize("expected,typed", [(None, "4"), ("4", None), ("Heart", ""), ("Heart", "   ")])
    def test_missing_values(self, expected, typed):
        assert not is_answer_correct(expected, typed)


class TestNearDuplicate:
    """Question text restatements."""

    def test_same_text_different_punctuation(self):
        assert is_near_duplicate("What is 2 + 2?", ["what is 2 + 2"])

    def test_small_edit_is_duplicate(self):
        assert is_near_duplicate("Which organ pumps blood?", ["Which organ pump blood?"])

    def test_different_numbers_are_distinct(self):
        assert not is_near_duplicate("What is the area of a rectangle 7 by 4?", ["What is the area of a rectangle 12 by 9?"])

    def test_threshold(self):
        existing = ["Which organ pumps the blood?"]
        assert not is_near_duplicate("Which organ pumps blood?", existing)
        assert is_near_duplicate("Which organ pumps blood?", existing, threshold=0.8)

    def test_empty_text(self):
        assert not is_near_duplicate("", [""])
        assert not is_near_duplicate("Anything", [])
