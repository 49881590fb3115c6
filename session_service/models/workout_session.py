"""
TNUA Session Service - Workout Session

Per-session orchestrator. Every frame is smoothed, then fed to the exercise
pipeline (classifier → form scorer → rep counter) and, independently, to the
emergency detector. Results are merged into state snapshots and pushed to
subscribers. A frame never raises: failures are reported through on_error
and the frame is skipped.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from core.config import EngineConfig, settings
from exercise_service.models import (
    ExerciseClassifier,
    ExerciseType,
    FormQuality,
    FormScorer,
    RepTracker,
)
from guardian_service.models import EmergencyDetector, EmergencyState
from shared.errors import ConfigurationError, FrameOrderError, PoseEngineError, PoseFormatError
from shared.events import EventType, SessionEvent
from shared.pose import BLAZEPOSE_LANDMARKS, ENGINE_LANDMARKS, Landmark, Pose
from shared.smoothing import KeypointSmoother
from shared.utils import log_execution_time

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# STATE SNAPSHOTS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExerciseState:
    """Snapshot of the exercise side of a session."""
    type: ExerciseType = ExerciseType.UNKNOWN
    confidence: float = 0.0
    rep_count: int = 0
    is_in_position: bool = False
    form_score: float = 0.0
    last_rep_time: Optional[float] = None
    active_type: ExerciseType = ExerciseType.UNKNOWN
    form_quality: Optional[FormQuality] = None
    feedback: Tuple[str, ...] = ()
    reps_by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 3),
            "rep_count": self.rep_count,
            "is_in_position": self.is_in_position,
            "form_score": round(self.form_score, 1),
            "last_rep_time": self.last_rep_time,
            "active_type": self.active_type.value,
            "form_quality": self.form_quality.value if self.form_quality else None,
            "feedback": list(self.feedback),
            "reps_by_type": dict(self.reps_by_type),
        }


@dataclass(frozen=True)
class FrameError:
    """A frame that could not be processed."""
    message: str
    error_type: str
    timestamp: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "error_type": self.error_type, "timestamp": self.timestamp}


@dataclass
class FrameResult:
    """Outcome of one process_frame call."""
    timestamp: Optional[float]
    processed: bool
    exercise: ExerciseState
    emergency: EmergencyState
    skip_reason: Optional[str] = None
    events: List[SessionEvent] = field(default_factory=list)
    error: Optional[FrameError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "processed": self.processed,
            "skip_reason": self.skip_reason,
            "exercise": self.exercise.to_dict(),
            "emergency": self.emergency.to_dict(),
            "events": [event.to_dict() for event in self.events],
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class SessionHandlers:
    """Callbacks a subscriber can register. Any of them may be omitted."""
    on_exercise_detected: Optional[Callable[[ExerciseState], Any]] = None
    on_emergency_detected: Optional[Callable[[EmergencyState], Any]] = None
    on_emergency_resolved: Optional[Callable[[EmergencyState], Any]] = None
    on_error: Optional[Callable[[FrameError], Any]] = None
    on_frame: Optional[Callable[[FrameResult], Any]] = None


# ═══════════════════════════════════════════════════════════════════════════════
# WORKOUT SESSION
# ═══════════════════════════════════════════════════════════════════════════════

class WorkoutSession:
    """
    Stateful pose-stream session.

    Frames must arrive in timestamp order, one at a time. Configuration and
    the landmark vocabulary are validated at construction, so a session that
    exists is ready to process frames.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        vocabulary: Iterable[Landmark] = BLAZEPOSE_LANDMARKS,
        clock: Callable[[], float] = time.time,
        session_id: Optional[str] = None
    ):
        config = config if config is not None else settings.ENGINE
        if not isinstance(config, EngineConfig):
            raise ConfigurationError(f"Expected EngineConfig, got {type(config).__name__}")

        self.vocabulary: FrozenSet[Landmark] = frozenset(vocabulary)
        missing = ENGINE_LANDMARKS - self.vocabulary
        if missing:
            names = ", ".join(sorted(lm.key for lm in missing))
            raise ConfigurationError(f"Landmark vocabulary lacks required keypoints: {names}")

        self.session_id = session_id or str(uuid.uuid4())[:8]
        self.config = config
        self._clock = clock

        self.smoother = KeypointSmoother(config.smoothing_factor)
        self.classifier = ExerciseClassifier(config)
        self.scorer = FormScorer(config)
        self.reps = RepTracker(config)
        self.emergency = EmergencyDetector(config)

        self._subscribers: List[SessionHandlers] = []
        self._lock = threading.Lock()
        self._exercise_state = ExerciseState()
        self._first_frame_time: Optional[float] = None
        self._last_frame_time: Optional[float] = None
        self._stats = {"processed": 0, "skipped": 0, "errors": 0}
        self._emergencies_raised = 0

        logger.info(f"🆕 Session {self.session_id} created ({len(self.vocabulary)} landmarks)")

    # ─────────────────────────────────────────────────────────────────────────
    # Subscribers
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, handlers: Optional[SessionHandlers] = None, **callbacks) -> Callable[[], None]:
        """
        Register callbacks.

        Usage:
            unsubscribe = session.subscribe(on_exercise_detected=show_reps)
            ...
            unsubscribe()

        Returns:
            Function that removes this subscription
        """
        if handlers is None:
            handlers = SessionHandlers(**callbacks)
        elif callbacks:
            raise TypeError("Pass either a SessionHandlers instance or keyword callbacks, not both")
        self._subscribers.append(handlers)

        def unsubscribe():
            if handlers in self._subscribers:
                self._subscribers.remove(handlers)

        return unsubscribe

    def _notify(self, name: str, payload: Any):
        for handlers in list(self._subscribers):
            callback = getattr(handlers, name)
            if callback is None:
                continue
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Subscriber callback {name} failed in session {self.session_id}")

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def exercise_state(self) -> ExerciseState:
        return self._exercise_state

    @property
    def emergency_state(self) -> EmergencyState:
        return self.emergency.state

    def reset(self):
        """Clear exercise and emergency state. Smoothing history is kept."""
        self.reps.reset()
        self.emergency.reset()
        self._exercise_state = ExerciseState()
        logger.info(f"🔄 Session {self.session_id} reset")

    # ─────────────────────────────────────────────────────────────────────────
    # Frame processing
    # ─────────────────────────────────────────────────────────────────────────

    def process_frame(self, frame: Union[Pose, Mapping[str, Any]], timestamp: Optional[float] = None) -> FrameResult:
        """
        Process one pose frame.

        Args:
            frame: Pose, or a frame dict in wire format (see Pose.from_dict)
            timestamp: Frame time in seconds. Defaults to the frame's own
                timestamp, then to the session clock.

        Returns:
            FrameResult describing what happened. Never raises.
        """
        if not self._lock.acquire(blocking=False):
            return self._fail(FrameOrderError("Frame received while another frame is being processed"), timestamp)
        try:
            return self._process(frame, timestamp)
        except PoseEngineError as e:
            logger.warning(f"⚠️ Session {self.session_id} skipped frame: {e}")
            return self._fail(e, timestamp)
        except Exception as e:
            logger.exception(f"💥 Session {self.session_id} failed to process frame")
            return self._fail(e, timestamp)
        finally:
            self._lock.release()

    @log_execution_time
    def _process(self, frame: Union[Pose, Mapping[str, Any]], timestamp: Optional[float]) -> FrameResult:
        pose = self._parse(frame)

        now = timestamp
        if now is None:
            now = pose.timestamp if pose.timestamp is not None else self._clock()
        if self._last_frame_time is not None and now < self._last_frame_time:
            raise FrameOrderError(f"Frame at {now:.3f}s arrived after frame at {self._last_frame_time:.3f}s")
        self._last_frame_time = now
        if self._first_frame_time is None:
            self._first_frame_time = now

        smoothed = self.smoother.smooth(pose)

        events: List[SessionEvent] = []
        exercise_updated, skip_reason = self._update_exercise(smoothed, now, events)

        emergency_before = self.emergency.state
        events.extend(self.emergency.process(smoothed, now))

        self._stats["processed" if exercise_updated else "skipped"] += 1
        result = FrameResult(
            timestamp=now,
            processed=exercise_updated,
            skip_reason=skip_reason,
            exercise=self._exercise_state,
            emergency=self.emergency.state,
            events=events,
        )

        if exercise_updated:
            self._notify("on_exercise_detected", self._exercise_state)
        for event in events:
            if event.type == EventType.EMERGENCY_DETECTED:
                self._emergencies_raised += 1
                self._notify("on_emergency_detected", self.emergency.state)
            elif event.type == EventType.EMERGENCY_RESOLVED:
                self._notify("on_emergency_resolved", emergency_before)
        self._notify("on_frame", result)
        return result

    def _parse(self, frame: Union[Pose, Mapping[str, Any]]) -> Pose:
        if isinstance(frame, Pose):
            if frame.vocabulary != self.vocabulary:
                raise PoseFormatError(
                    f"Frame carries {len(frame.vocabulary)} landmarks, session expects {len(self.vocabulary)}"
                )
            return frame
        return Pose.from_dict(frame, self.vocabulary)

    def _update_exercise(self, pose: Pose, now: float, events: List[SessionEvent]) -> Tuple[bool, Optional[str]]:
        """Run classifier → scorer → rep counter. Returns (updated, skip_reason)."""
        if pose.score < self.config.confidence_threshold:
            return False, "low_confidence"

        classification = self.classifier.classify(pose)

        # Score before observing so a skipped frame cannot switch the active exercise
        exercise = self.reps.preview(classification.type)
        assessment = None
        if exercise != ExerciseType.UNKNOWN:
            assessment = self.scorer.score(pose, exercise)
            if assessment is None:
                return False, "missing_keypoints"

        events.extend(self.reps.observe(classification.type, now))
        if assessment is not None:
            events.extend(self.reps.record_score(assessment.score, now))

        rep_state = self.reps.state
        self._exercise_state = ExerciseState(
            type=classification.type,
            confidence=classification.confidence,
            rep_count=rep_state.rep_count,
            is_in_position=rep_state.is_in_position,
            form_score=assessment.score if assessment else 0.0,
            last_rep_time=rep_state.last_rep_time,
            active_type=rep_state.exercise,
            form_quality=assessment.quality if assessment else None,
            feedback=tuple(assessment.feedback) if assessment else (),
            reps_by_type={ex.value: n for ex, n in self.reps.reps_by_type.items()},
        )
        return True, None

    def _fail(self, error: Exception, timestamp: Optional[float]) -> FrameResult:
        self._stats["errors"] += 1
        frame_error = FrameError(
            message=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            timestamp=timestamp,
        )
        self._notify("on_error", frame_error)
        return FrameResult(
            timestamp=timestamp,
            processed=False,
            exercise=self._exercise_state,
            emergency=self.emergency.state,
            skip_reason="error",
            error=frame_error,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Summary
    # ─────────────────────────────────────────────────────────────────────────

    def summary(self) -> Dict[str, Any]:
        """Session summary for display or logging."""
        rep_scores = self.reps.rep_scores
        duration = 0.0
        if self._first_frame_time is not None:
            duration = self._last_frame_time - self._first_frame_time
        return {
            "session_id": self.session_id,
            "duration_seconds": round(duration, 1),
            "total_reps": self._exercise_state.rep_count,
            "reps_by_type": dict(self._exercise_state.reps_by_type),
            "avg_form_score": round(sum(rep_scores) / len(rep_scores), 1) if rep_scores else 0.0,
            "emergencies_raised": self._emergencies_raised,
            "emergency_active": self.emergency.state.is_active,
            "frames": dict(self._stats),
        }
