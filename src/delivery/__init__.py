"""
Tutor delivery layer.

Collaborators that make the adaptive engine usable end to end. The engine
itself never imports from here.

Components:
- ModelStore: SQLite persistence for the learner model and attempt log
- QuestionBank: JSON loading of practice items
- RefineClient: Async client for the remote refine job
"""

from .question_bank import QuestionBank
from .refine_client import RefineClient, RefinedQuestion, RefineRequest, RefineResponse
from .state_store import AttemptRecord, ModelStore, MonthlySummary

__all__ = [
    # Content
    "QuestionBank",
    # Persistence
    "ModelStore",
    "AttemptRecord",
    "MonthlySummary",
    # Remote refinement
    "RefineClient",
    "RefineRequest",
    "RefineResponse",
    "RefinedQuestion",
]
