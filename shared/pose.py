"""
TNUA Shared - Pose Data Model

Landmark vocabulary, keypoints and poses as produced by a pose estimator.
Coordinates are normalised image space: origin top-left, larger y is lower
in the frame.
"""

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from .errors import PoseFormatError


# ═══════════════════════════════════════════════════════════════════════════════
# LANDMARK VOCABULARY
# ═══════════════════════════════════════════════════════════════════════════════

class Landmark(IntEnum):
    """BlazePose body landmarks, indexed as the estimator emits them."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32

    @property
    def key(self) -> str:
        """Wire name, e.g. ``left_hip``."""
        return self.name.lower()

    @classmethod
    def from_key(cls, key: str) -> "Landmark":
        try:
            return cls[key.strip().upper()]
        except KeyError:
            raise PoseFormatError(f"Unknown keypoint name: {key!r}") from None


NUM_LANDMARKS = len(Landmark)

BLAZEPOSE_LANDMARKS: FrozenSet[Landmark] = frozenset(Landmark)

MOVENET_LANDMARKS: FrozenSet[Landmark] = frozenset({
    Landmark.NOSE,
    Landmark.LEFT_EYE, Landmark.RIGHT_EYE,
    Landmark.LEFT_EAR, Landmark.RIGHT_EAR,
    Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER,
    Landmark.LEFT_ELBOW, Landmark.RIGHT_ELBOW,
    Landmark.LEFT_WRIST, Landmark.RIGHT_WRIST,
    Landmark.LEFT_HIP, Landmark.RIGHT_HIP,
    Landmark.LEFT_KNEE, Landmark.RIGHT_KNEE,
    Landmark.LEFT_ANKLE, Landmark.RIGHT_ANKLE,
})

VOCABULARIES: Dict[str, FrozenSet[Landmark]] = {
    "blazepose": BLAZEPOSE_LANDMARKS,
    "movenet": MOVENET_LANDMARKS,
}

# Landmarks the classifier, scorer and emergency detector read
ENGINE_LANDMARKS: FrozenSet[Landmark] = frozenset({
    Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER,
    Landmark.LEFT_ELBOW, Landmark.RIGHT_ELBOW,
    Landmark.LEFT_WRIST, Landmark.RIGHT_WRIST,
    Landmark.LEFT_HIP, Landmark.RIGHT_HIP,
    Landmark.LEFT_KNEE, Landmark.RIGHT_KNEE,
    Landmark.LEFT_ANKLE, Landmark.RIGHT_ANKLE,
})


# ═══════════════════════════════════════════════════════════════════════════════
# KEYPOINT AND POSE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Keypoint:
    """A single detected body point."""
    x: float
    y: float
    score: float
    z: Optional[float] = None

    def to_numpy(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z if self.z is not None else 0.0])

    def to_dict(self) -> Dict[str, Any]:
        data = {"x": self.x, "y": self.y, "score": self.score}
        if self.z is not None:
            data["z"] = self.z
        return data


@dataclass(frozen=True)
class Pose:
    """
    One frame of pose-estimator output.

    ``keypoints`` always has one slot per Landmark; a slot is None when the
    estimator did not report that landmark.
    """
    keypoints: Tuple[Optional[Keypoint], ...]
    score: float
    timestamp: Optional[float] = None
    _vocabulary: FrozenSet[Landmark] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if len(self.keypoints) != NUM_LANDMARKS:
            raise PoseFormatError(
                f"Pose needs {NUM_LANDMARKS} keypoint slots, got {len(self.keypoints)}"
            )
        present = frozenset(Landmark(i) for i, kp in enumerate(self.keypoints) if kp is not None)
        object.__setattr__(self, "_vocabulary", present)

    @property
    def vocabulary(self) -> FrozenSet[Landmark]:
        """Landmarks present in this frame."""
        return self._vocabulary

    def get(self, landmark: Landmark) -> Optional[Keypoint]:
        return self.keypoints[landmark]

    def confident(self, landmark: Landmark, min_score: float) -> Optional[Keypoint]:
        """Return the keypoint only if its score reaches ``min_score``."""
        kp = self.keypoints[landmark]
        if kp is None or kp.score < min_score:
            return None
        return kp

    def all_confident(self, landmarks: Iterable[Landmark], min_score: float) -> bool:
        return all(self.confident(lm, min_score) is not None for lm in landmarks)

    def items(self) -> Iterator[Tuple[Landmark, Keypoint]]:
        for i, kp in enumerate(self.keypoints):
            if kp is not None:
                yield Landmark(i), kp

    def with_timestamp(self, timestamp: float) -> "Pose":
        return Pose(keypoints=self.keypoints, score=self.score, timestamp=timestamp)

    @classmethod
    def from_keypoints(
        cls,
        keypoints: Mapping[Landmark, Keypoint],
        score: float,
        timestamp: Optional[float] = None
    ) -> "Pose":
        slots: List[Optional[Keypoint]] = [None] * NUM_LANDMARKS
        for landmark, kp in keypoints.items():
            slots[Landmark(landmark)] = kp
        return cls(keypoints=tuple(slots), score=score, timestamp=timestamp)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        vocabulary: Optional[FrozenSet[Landmark]] = None
    ) -> "Pose":
        """
        Parse a frame from its wire representation.

        Expected shape::

            {"score": 0.93,
             "timestamp": 12.5,                       # optional, seconds
             "keypoints": [{"name": "left_hip", "x": 0.4, "y": 0.6,
                            "z": -0.1, "score": 0.98}, ...]}

        Args:
            data: Decoded JSON frame
            vocabulary: When given, the frame must carry exactly these landmarks

        Raises:
            PoseFormatError: If the frame is malformed
        """
        if not isinstance(data, Mapping):
            raise PoseFormatError(f"Frame must be an object, got {type(data).__name__}")

        score = _number(data, "score", "frame")
        timestamp = None
        if data.get("timestamp") is not None:
            timestamp = _number(data, "timestamp", "frame")

        raw_keypoints = data.get("keypoints")
        if not isinstance(raw_keypoints, list):
            raise PoseFormatError("Frame is missing a 'keypoints' list")

        keypoints: Dict[Landmark, Keypoint] = {}
        for i, item in enumerate(raw_keypoints):
            if not isinstance(item, Mapping) or not isinstance(item.get("name"), str):
                raise PoseFormatError(f"Keypoint #{i} has no 'name'")
            landmark = Landmark.from_key(item["name"])
            if landmark in keypoints:
                raise PoseFormatError(f"Duplicate keypoint: {landmark.key}")

            z = None
            if item.get("z") is not None:
                z = _number(item, "z", landmark.key)
            keypoints[landmark] = Keypoint(
                x=_number(item, "x", landmark.key),
                y=_number(item, "y", landmark.key),
                score=_number(item, "score", landmark.key),
                z=z,
            )

        if vocabulary is not None:
            present = frozenset(keypoints)
            missing = vocabulary - present
            extra = present - vocabulary
            if missing:
                names = ", ".join(sorted(lm.key for lm in missing))
                raise PoseFormatError(f"Frame is missing expected keypoints: {names}")
            if extra:
                names = ", ".join(sorted(lm.key for lm in extra))
                raise PoseFormatError(f"Frame carries keypoints outside the vocabulary: {names}")

        return cls.from_keypoints(keypoints, score=score, timestamp=timestamp)

    @classmethod
    def from_array(cls, array: np.ndarray, score: float, timestamp: Optional[float] = None) -> "Pose":
        """
        Build a pose from a (33, 3) or (33, 4) array.

        Columns are ``x, y, score`` or ``x, y, z, score``. Rows containing
        NaN are treated as missing landmarks.
        """
        array = np.asarray(array, dtype=float)
        if array.ndim != 2 or array.shape[0] != NUM_LANDMARKS or array.shape[1] not in (3, 4):
            raise PoseFormatError(f"Expected array of shape ({NUM_LANDMARKS}, 3|4), got {array.shape}")

        has_z = array.shape[1] == 4
        slots: List[Optional[Keypoint]] = []
        for row in array:
            if np.isnan(row).any():
                slots.append(None)
                continue
            slots.append(Keypoint(
                x=float(row[0]),
                y=float(row[1]),
                z=float(row[2]) if has_z else None,
                score=float(row[-1]),
            ))
        return cls(keypoints=tuple(slots), score=float(score), timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "score": self.score,
            "keypoints": [{"name": lm.key, **kp.to_dict()} for lm, kp in self.items()],
        }
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data


def _number(data: Mapping[str, Any], key: str, where: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PoseFormatError(f"{where}: '{key}' must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise PoseFormatError(f"{where}: '{key}' must be finite")
    return value
