"""
TNUA Exercise Service Models

Rule-based exercise classification, form scoring and rep counting.
"""

from .exercise_classifier import (
    ExerciseClassifier,
    ExerciseClassification,
    ExerciseType,
)

from .form_scorer import (
    FormScorer,
    FormAssessment,
    FormQuality,
)

from .rep_counter import (
    RepTracker,
    RepCounterState,
    RepPhase,
    COUNTED_EXERCISES,
    advance,
)

__all__ = [
    # Classifier
    "ExerciseClassifier",
    "ExerciseClassification",
    "ExerciseType",
    # Form scorer
    "FormScorer",
    "FormAssessment",
    "FormQuality",
    # Rep counter
    "RepTracker",
    "RepCounterState",
    "RepPhase",
    "COUNTED_EXERCISES",
    "advance",
]
