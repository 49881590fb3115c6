"""
TNUA Guardian Service Models

Fall, collapse and stuck detection from pose keypoints.
"""

from .emergency_detector import (
    EmergencyDetector,
    EmergencyState,
    EmergencyType,
    HeightReading,
    evaluate,
)

__all__ = [
    "EmergencyDetector",
    "EmergencyState",
    "EmergencyType",
    "HeightReading",
    "evaluate",
]
