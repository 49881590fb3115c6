"""
TNUA Shared - Engine Events

Events emitted by the state machines and collected per frame by the
session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class EventType(str, Enum):
    """Engine event types."""
    # Rep counter
    POSITION_ENTERED = "position_entered"
    REP_COMPLETED = "rep_completed"
    REP_REJECTED = "rep_rejected"
    EXERCISE_CHANGED = "exercise_changed"

    # Emergency detector
    EMERGENCY_DETECTED = "emergency_detected"
    EMERGENCY_RESOLVED = "emergency_resolved"


@dataclass(frozen=True)
class SessionEvent:
    """Something that happened while processing a frame."""
    type: EventType
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": round(self.timestamp, 3),
            "data": self.data,
        }
