"""
TNUA Exercise Service - Rep Counter

Hysteresis state machine over the form score. A rep is the excursion from
out-of-position, above the high watermark, back below the low watermark.
The transition function is pure and returns the new state with the events
it produced; RepTracker adds the per-session bookkeeping around it.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from core.config import EngineConfig, settings
from shared.events import EventType, SessionEvent

from .exercise_classifier import ExerciseType

logger = logging.getLogger(__name__)


# Static holds are scored but never counted
COUNTED_EXERCISES = frozenset({
    ExerciseType.SQUAT,
    ExerciseType.PUSHUP,
    ExerciseType.JUMPING_JACK,
})


class RepPhase(str, Enum):
    OUT_OF_POSITION = "out_of_position"
    IN_POSITION = "in_position"


@dataclass(frozen=True)
class RepCounterState:
    phase: RepPhase = RepPhase.OUT_OF_POSITION
    rep_count: int = 0
    last_rep_time: Optional[float] = None
    exercise: ExerciseType = ExerciseType.UNKNOWN

    @property
    def is_in_position(self) -> bool:
        return self.phase == RepPhase.IN_POSITION


def advance(
    state: RepCounterState,
    form_score: float,
    now: float,
    config: EngineConfig
) -> Tuple[RepCounterState, List[SessionEvent]]:
    """
    Apply one form score to the rep state machine.

    Args:
        state: Current state
        form_score: Score of the current frame (0-100)
        now: Frame time in seconds
        config: Watermarks and cooldown

    Returns:
        (new state, events emitted by the transition)
    """
    if state.phase == RepPhase.OUT_OF_POSITION:
        if form_score > config.rep_high_watermark:
            event = SessionEvent(EventType.POSITION_ENTERED, now, {
                "exercise": state.exercise.value,
                "form_score": round(form_score, 1),
            })
            return replace(state, phase=RepPhase.IN_POSITION), [event]
        return state, []

    if form_score >= config.rep_low_watermark:
        return state, []

    cooled_down = state.last_rep_time is None or now - state.last_rep_time >= config.rep_cooldown
    if not cooled_down:
        event = SessionEvent(EventType.REP_REJECTED, now, {
            "exercise": state.exercise.value,
            "since_last_rep": round(now - state.last_rep_time, 3),
        })
        return replace(state, phase=RepPhase.OUT_OF_POSITION), [event]

    rep_count = state.rep_count + 1
    event = SessionEvent(EventType.REP_COMPLETED, now, {
        "exercise": state.exercise.value,
        "rep_count": rep_count,
    })
    new_state = replace(state, phase=RepPhase.OUT_OF_POSITION, rep_count=rep_count, last_rep_time=now)
    return new_state, [event]


class RepTracker:
    """
    Tracks the active exercise and feeds its form scores through ``advance``.

    The active exercise changes only after the classifier reports the same
    new exercise for ``exercise_switch_frames`` consecutive frames. Switching
    drops the in-position phase but keeps the session's rep count.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or settings.ENGINE
        self.reset()

    def reset(self):
        self.state = RepCounterState()
        self.reps_by_type: Dict[ExerciseType, int] = {}
        self.rep_scores: List[float] = []
        self._candidate: ExerciseType = ExerciseType.UNKNOWN
        self._streak = 0
        self._peak_score = 0.0

    @property
    def active(self) -> ExerciseType:
        return self.state.exercise

    def preview(self, exercise: ExerciseType) -> ExerciseType:
        """Active exercise that ``observe(exercise)`` would leave, without observing it."""
        if exercise == ExerciseType.UNKNOWN or exercise == self.active:
            return self.active
        streak = self._streak + 1 if exercise == self._candidate else 1
        return exercise if streak >= self.config.exercise_switch_frames else self.active

    def observe(self, exercise: ExerciseType, now: float) -> List[SessionEvent]:
        """Register a frame's classification. Returns EXERCISE_CHANGED on a switch."""
        if exercise == ExerciseType.UNKNOWN or exercise == self.active:
            self._candidate = ExerciseType.UNKNOWN
            self._streak = 0
            return []

        if exercise == self._candidate:
            self._streak += 1
        else:
            self._candidate = exercise
            self._streak = 1

        if self._streak < self.config.exercise_switch_frames:
            return []

        previous = self.active
        self.state = replace(self.state, exercise=exercise, phase=RepPhase.OUT_OF_POSITION)
        self._candidate = ExerciseType.UNKNOWN
        self._streak = 0
        self._peak_score = 0.0
        logger.info(f"🏋️ Active exercise: {previous.value} → {exercise.value}")
        return [SessionEvent(EventType.EXERCISE_CHANGED, now, {
            "previous": previous.value,
            "exercise": exercise.value,
        })]

    def record_score(self, form_score: float, now: float) -> List[SessionEvent]:
        """Feed the active exercise's form score to the state machine."""
        if self.active not in COUNTED_EXERCISES:
            return []

        if self.state.is_in_position:
            self._peak_score = max(self._peak_score, form_score)

        self.state, events = advance(self.state, form_score, now, self.config)

        for event in events:
            if event.type == EventType.POSITION_ENTERED:
                self._peak_score = form_score
            elif event.type == EventType.REP_COMPLETED:
                self.reps_by_type[self.active] = self.reps_by_type.get(self.active, 0) + 1
                self.rep_scores.append(self._peak_score)
                event.data["peak_form_score"] = round(self._peak_score, 1)
                logger.info(f"✅ Rep {self.state.rep_count} ({self.active.value}, peak form {self._peak_score:.0f})")
            elif event.type == EventType.REP_REJECTED:
                logger.debug(f"Rep rejected inside cooldown ({self.active.value})")
        return events
