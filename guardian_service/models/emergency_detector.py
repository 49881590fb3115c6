"""
TNUA Guardian Service - Emergency Detector

Detects falls, collapses and a person stuck on the ground from the height of
the torso in the frame. Runs on every confident frame, independently of the
exercise being tracked.

Signal: the mean of the hip and shoulder heights (larger = lower in frame),
compared against the highest body position seen recently (the baseline).
  - fall:     fast drop, more than ``fall_threshold`` within ``fall_window``
  - collapse: drop of more than ``collapse_threshold`` below baseline, or a
              smaller drop (above either threshold) held for ``collapse_dwell``
  - stuck:    still down ``stuck_duration`` after the episode started
An active emergency resolves once no low-body frame has been seen for
``resolution_window``.
"""

import logging
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

from core.config import EngineConfig, settings
from shared.events import EventType, SessionEvent
from shared.geometry import LEFT_RIGHT_PAIRS, collapse_height
from shared.pose import Pose

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class EmergencyType(str, Enum):
    """Emergency kinds. CHOKING is reserved and never produced here."""
    FALL = "fall"
    COLLAPSE = "collapse"
    CHOKING = "choking"
    STUCK = "stuck"
    NONE = "none"


@dataclass(frozen=True)
class EmergencyState:
    type: EmergencyType = EmergencyType.NONE
    confidence: float = 0.0
    last_detection_time: Optional[float] = None
    is_active: bool = False
    onset_time: Optional[float] = None
    last_signal_time: Optional[float] = None
    low_since: Optional[float] = None   # start of the current low posture while idle

    @property
    def is_low(self) -> bool:
        return self.low_since is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 3),
            "last_detection_time": self.last_detection_time,
            "is_active": self.is_active,
            "onset_time": self.onset_time,
        }


@dataclass(frozen=True)
class HeightReading:
    """Torso-height measurements for one frame."""
    signal: float
    fast_drop: float       # vs. highest position within fall_window
    baseline_drop: float   # vs. highest position within baseline_window
    pose_score: float


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════════════

def _detected(state: EmergencyState, kind: EmergencyType, reading: HeightReading, now: float, **extra) -> Tuple[EmergencyState, List[SessionEvent]]:
    new_state = replace(
        state,
        type=kind,
        confidence=reading.pose_score,
        last_detection_time=now,
        is_active=True,
        onset_time=state.onset_time if state.is_active else now,
        last_signal_time=now,
        low_since=None,
    )
    event = SessionEvent(EventType.EMERGENCY_DETECTED, now, {
        "type": kind.value,
        "confidence": round(reading.pose_score, 3),
        "height": round(reading.signal, 3),
        **extra,
    })
    return new_state, [event]


def evaluate(
    state: EmergencyState,
    reading: HeightReading,
    now: float,
    config: EngineConfig
) -> Tuple[EmergencyState, List[SessionEvent]]:
    """
    Apply one frame's height reading to the emergency state.

    Returns:
        (new state, events emitted by the transition)
    """
    still_down = reading.baseline_drop > min(config.fall_threshold, config.collapse_threshold)

    if not state.is_active:
        if not still_down:
            low_since = None
        else:
            low_since = state.low_since if state.is_low else now
        if low_since != state.low_since:
            state = replace(state, low_since=low_since)

        if reading.pose_score <= config.detection_threshold:
            return state, []
        # Fall first: a severe fast drop is a fall even if it also looks like a collapse
        if reading.fast_drop > config.fall_threshold:
            return _detected(state, EmergencyType.FALL, reading, now)
        if reading.baseline_drop > config.collapse_threshold:
            return _detected(state, EmergencyType.COLLAPSE, reading, now)
        if state.is_low and now - state.low_since >= config.collapse_dwell:
            return _detected(state, EmergencyType.COLLAPSE, reading, now, low_for=round(now - state.low_since, 3))
        return state, []

    if still_down:
        state = replace(state, last_signal_time=now)
        if state.type != EmergencyType.STUCK and now - state.onset_time > config.stuck_duration:
            return _detected(state, EmergencyType.STUCK, reading, now, escalated_from=state.type.value)
        if state.type == EmergencyType.STUCK and now - state.last_detection_time > config.stuck_duration:
            return _detected(state, EmergencyType.STUCK, reading, now, reminder=True)
        return state, []

    if now - state.last_signal_time > config.resolution_window:
        event = SessionEvent(EventType.EMERGENCY_RESOLVED, now, {
            "type": state.type.value,
            "duration": round(now - state.onset_time, 3),
        })
        return EmergencyState(), [event]

    return state, []


# ═══════════════════════════════════════════════════════════════════════════════
# EMERGENCY DETECTOR
# ═══════════════════════════════════════════════════════════════════════════════

class EmergencyDetector:
    """
    Stateful wrapper around ``evaluate``.

    Keeps a rolling history of torso heights while the person is upright and
    no emergency is active. The history is frozen while they are down, so the
    baseline keeps pointing at the pre-incident position.
    """

    REQUIRED_LANDMARKS = LEFT_RIGHT_PAIRS["hip"] + LEFT_RIGHT_PAIRS["shoulder"]

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or settings.ENGINE
        self.state = EmergencyState()
        self._history: Deque[Tuple[float, float]] = deque()

    def process(self, pose: Pose, now: float) -> List[SessionEvent]:
        """
        Evaluate a pose.

        Frames without confident hips and shoulders are ignored entirely,
        including the resolution check.

        Args:
            pose: Smoothed pose
            now: Frame time in seconds

        Returns:
            Events emitted for this frame
        """
        if not pose.all_confident(self.REQUIRED_LANDMARKS, self.config.min_keypoint_score):
            return []

        signal = collapse_height(pose)
        if self._tracking:
            self._prune(now)

        reading = HeightReading(
            signal=signal,
            fast_drop=signal - self._highest_since(now - self.config.fall_window, signal),
            baseline_drop=signal - self._highest_since(None, signal),
            pose_score=pose.score,
        )
        self.state, events = evaluate(self.state, reading, now, self.config)

        for event in events:
            if event.type == EventType.EMERGENCY_DETECTED:
                logger.warning(f"🚨 Emergency detected: {event.data['type']} (height {signal:.2f})")
            else:
                logger.info(f"✅ Emergency resolved: {event.data['type']}")

        if self._tracking:
            self._history.append((now, signal))
        return events

    @property
    def _tracking(self) -> bool:
        return not (self.state.is_active or self.state.is_low)

    def _prune(self, now: float):
        horizon = now - self.config.baseline_window
        while self._history and self._history[0][0] < horizon:
            self._history.popleft()

    def _highest_since(self, since: Optional[float], default: float) -> float:
        """Smallest height (highest body position) recorded since ``since``."""
        values = [s for t, s in self._history if since is None or t >= since]
        return min(values, default=default)

    def reset(self):
        """Clear the emergency state and height history (e.g. alert dismissed)."""
        self.state = EmergencyState()
        self._history.clear()
