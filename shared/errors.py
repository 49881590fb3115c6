"""
TNUA Shared Errors

Exception hierarchy for the pose engine.
"""


class PoseEngineError(Exception):
    """Base class for every error raised by the pose engine."""


class PoseFormatError(PoseEngineError, ValueError):
    """A frame is malformed: missing fields, bad values or unknown keypoints."""


class ConfigurationError(PoseEngineError, ValueError):
    """Invalid tunables or landmark vocabulary. Fatal at session start."""


class VocabularyMismatchError(ConfigurationError):
    """Two frames fed to the same smoother carry different landmark sets."""


class FrameOrderError(PoseEngineError):
    """A frame arrived out of order or while another frame was in flight."""


class SessionLimitError(PoseEngineError):
    """No more sessions can be opened."""
