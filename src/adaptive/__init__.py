"""
Adaptive Tutoring Engine.

Classifies mastery per category, selects the next practice item, schedules
forced re-reviews of missed items, tracks session mastery cycles, and
estimates confidence and a predicted exam score.

Components:
- StatsTracker: Rolling per-category and per-formula counters
- difficulty: Accuracy signal -> tier classification
- ReviewScheduler: Due-queue of forced re-practice
- QuestionSelector: Picks the next question id
- MasteryCycleTracker: Per-formula session reinforcement state machine
- confidence / score_estimation: Read-only estimators
- choice_generator: Repairs answer choices
- text_match: Lenient answer checking and restated-question detection
- AdaptiveEngine: Facade wiring the attempt pipeline
"""
from src.adaptive.choice_generator import ensure_choices_include_answer
from src.adaptive.confidence import compute_confidence, questions_per_topic
from src.adaptive.difficulty import classify, classify_stats
from src.adaptive.engine import AdaptiveEngine, AttemptOutcome
from src.adaptive.exceptions import (
    AdaptiveEngineError,
    InvalidModelState,
    NoQuestionsAvailable,
    UnknownQuestionError,
)
from src.adaptive.mastery_cycle import MasteryCycleTracker, MasteryEvent
from src.adaptive.models import (
    AdaptiveUserModel,
    EngineConfig,
    MasteryPhase,
    MasteryState,
    QuestionDescriptor,
    ReviewItem,
    ReviewReason,
    StatsRecord,
    Tier,
)
from src.adaptive.question_selector import QuestionSelector
from src.adaptive.review_scheduler import ReviewScheduler
from src.adaptive.score_estimation import FormulaMastery, estimate_afqt
from src.adaptive.stats_tracker import StatsTracker, record_attempt
from src.adaptive.text_match import is_answer_correct, is_near_duplicate

__all__ = [
    # Main engine
    "AdaptiveEngine",
    "AttemptOutcome",
    # Component classes
    "MasteryCycleTracker",
    "QuestionSelector",
    "ReviewScheduler",
    "StatsTracker",
    # Functions
    "classify",
    "classify_stats",
    "compute_confidence",
    "ensure_choices_include_answer",
    "estimate_afqt",
    "is_answer_correct",
    "is_near_duplicate",
    "questions_per_topic",
    "record_attempt",
    # Data models
    "AdaptiveUserModel",
    "EngineConfig",
    "FormulaMastery",
    "MasteryState",
    "QuestionDescriptor",
    "ReviewItem",
    "StatsRecord",
    # Enums
    "MasteryEvent",
    "MasteryPhase",
    "ReviewReason",
    "Tier",
    # Exceptions
    "AdaptiveEngineError",
    "InvalidModelState",
    "NoQuestionsAvailable",
    "UnknownQuestionError",
]
