"""
Adaptive engine exceptions.

Only NoQuestionsAvailable and UnknownQuestionError are raised to callers.
InvalidModelState describes a corrupt or stale model entry; the engine logs it
and carries on.
"""

from __future__ import annotations


class AdaptiveEngineError(Exception):
    """Base class for adaptive engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoQuestionsAvailable(AdaptiveEngineError):
    """Raised when a subject has zero registered questions."""

    def __init__(self, subject: str | None):
        label = subject if subject is not None else "<any>"
        super().__init__(f"No questions registered for subject {label}")
        self.subject = subject


class UnknownQuestionError(AdaptiveEngineError):
    """Raised when an attempt references a question missing from the pool."""

    def __init__(self, question_id):
        super().__init__(f"Question {question_id} is not registered in the pool")
        self.question_id = question_id


class InvalidModelState(AdaptiveEngineError):
    """A model entry references data that does not exist (logged, never raised)."""

    def __init__(self, question_id, detail: str = "review entry references a missing question"):
        super().__init__(f"Invalid model state for question {question_id}: {detail}")
        self.question_id = question_id
        self.detail = detail
