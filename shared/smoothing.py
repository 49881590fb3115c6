"""
TNUA Shared - Keypoint Smoothing

Exponential smoothing of keypoint positions across frames to reduce
estimator jitter. The filter feeds back its own output, so older frames
decay geometrically.
"""

import logging
from typing import List, Optional

import numpy as np

from .errors import ConfigurationError, VocabularyMismatchError
from .pose import Keypoint, Pose

logger = logging.getLogger(__name__)


def _coordinates(pose: Pose) -> np.ndarray:
    """(N, 3) array of x, y, z with NaN for missing values."""
    coords = np.full((len(pose.keypoints), 3), np.nan)
    for i, kp in enumerate(pose.keypoints):
        if kp is None:
            continue
        coords[i, 0] = kp.x
        coords[i, 1] = kp.y
        if kp.z is not None:
            coords[i, 2] = kp.z
    return coords


def smooth_pose(previous: Optional[Pose], current: Pose, alpha: float) -> Pose:
    """
    Blend ``current`` towards ``previous``.

    ``smoothed = previous * alpha + current * (1 - alpha)`` for x and y, and
    for z when both frames carry it. Scores and timestamp come from the
    current frame.

    Raises:
        VocabularyMismatchError: If the frames carry different landmarks
    """
    if previous is None:
        return current

    if previous.vocabulary != current.vocabulary:
        raise VocabularyMismatchError(
            f"Cannot smooth across vocabularies "
            f"({len(previous.vocabulary)} vs {len(current.vocabulary)} landmarks)"
        )

    prev_xyz = _coordinates(previous)
    curr_xyz = _coordinates(current)
    blended = prev_xyz * alpha + curr_xyz * (1.0 - alpha)

    # Keep the current value wherever the previous frame had nothing to blend with
    blended = np.where(np.isnan(prev_xyz), curr_xyz, blended)

    keypoints: List[Optional[Keypoint]] = []
    for i, kp in enumerate(current.keypoints):
        if kp is None:
            keypoints.append(None)
            continue
        z = None if kp.z is None else float(blended[i, 2])
        keypoints.append(Keypoint(
            x=float(blended[i, 0]),
            y=float(blended[i, 1]),
            z=z,
            score=kp.score,
        ))

    return Pose(keypoints=tuple(keypoints), score=current.score, timestamp=current.timestamp)


class KeypointSmoother:
    """
    Stateful exponential smoother.

    Holds the last smoothed pose; the first frame passes through unchanged.
    """

    def __init__(self, alpha: float = 0.7):
        if not 0.0 <= alpha < 1.0:
            raise ConfigurationError(f"Smoothing factor must be in [0, 1), got {alpha}")
        self.alpha = alpha
        self._previous: Optional[Pose] = None

    @property
    def previous(self) -> Optional[Pose]:
        return self._previous

    def smooth(self, pose: Pose) -> Pose:
        smoothed = smooth_pose(self._previous, pose, self.alpha)
        self._previous = smoothed
        return smoothed

    def reset(self):
        logger.debug("Smoothing history cleared")
        self._previous = None
