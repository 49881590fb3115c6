"""
TNUA Session Service Models

Workout session orchestration and the session registry.
"""

from .workout_session import (
    WorkoutSession,
    ExerciseState,
    FrameResult,
    FrameError,
    SessionHandlers,
)

from .session_registry import (
    SessionRegistry,
    get_session_registry,
)

__all__ = [
    "WorkoutSession",
    "ExerciseState",
    "FrameResult",
    "FrameError",
    "SessionHandlers",
    "SessionRegistry",
    "get_session_registry",
]
