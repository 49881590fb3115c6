"""
TNUA Shared Module

Pose data model, geometry and smoothing used across all services.
"""

from .errors import (
    PoseEngineError,
    PoseFormatError,
    ConfigurationError,
    VocabularyMismatchError,
    FrameOrderError,
    SessionLimitError,
)
from .events import EventType, SessionEvent
from .pose import (
    Landmark,
    Keypoint,
    Pose,
    BLAZEPOSE_LANDMARKS,
    MOVENET_LANDMARKS,
    ENGINE_LANDMARKS,
    VOCABULARIES,
)
from .smoothing import KeypointSmoother, smooth_pose

__all__ = [
    'PoseEngineError',
    'PoseFormatError',
    'ConfigurationError',
    'VocabularyMismatchError',
    'FrameOrderError',
    'SessionLimitError',
    'EventType',
    'SessionEvent',
    'Landmark',
    'Keypoint',
    'Pose',
    'BLAZEPOSE_LANDMARKS',
    'MOVENET_LANDMARKS',
    'ENGINE_LANDMARKS',
    'VOCABULARIES',
    'KeypointSmoother',
    'smooth_pose',
]
