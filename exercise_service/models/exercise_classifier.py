"""
TNUA Exercise Service - Exercise Classifier

Rule-based recognition of the exercise a pose belongs to. Rules are checked
in a fixed priority order (squat, pushup, plank, jumping jack) and the first
match wins.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from core.config import EngineConfig, settings
from shared.geometry import LEFT_RIGHT_PAIRS, calculate_angle, torso_tilt
from shared.pose import Landmark, Pose
from shared.utils import clamp

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseType(str, Enum):
    """Recognised exercises."""
    SQUAT = "squat"
    PUSHUP = "pushup"
    PLANK = "plank"
    JUMPING_JACK = "jumping_jack"
    UNKNOWN = "unknown"


@dataclass
class ExerciseClassification:
    """Result of classifying one pose."""
    type: ExerciseType
    confidence: float
    angles: Dict[str, float] = field(default_factory=dict)

    @property
    def is_recognised(self) -> bool:
        return self.type != ExerciseType.UNKNOWN

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 3),
            "angles": {name: round(angle, 1) for name, angle in self.angles.items()},
        }


# ═══════════════════════════════════════════════════════════════════════════════
# JOINT ANGLES
# ═══════════════════════════════════════════════════════════════════════════════

def limb_angles(pose: Pose, first: str, vertex: str, last: str, min_score: float) -> Optional[Tuple[float, float]]:
    """
    Left and right angles at ``vertex`` (e.g. "hip", "knee", "ankle").

    Returns None unless all six landmarks are confident.
    """
    angles = []
    for side in (0, 1):
        points = [pose.confident(LEFT_RIGHT_PAIRS[part][side], min_score) for part in (first, vertex, last)]
        if any(p is None for p in points):
            return None
        angles.append(calculate_angle(*points))
    return angles[0], angles[1]


def hip_angles(pose: Pose, min_score: float) -> Optional[Tuple[float, float]]:
    """
    Shoulder-hip-knee angle per side.

    An unreliable shoulder is replaced by the hip itself, which makes the
    angle degenerate (0) so only the knee decides.
    """
    angles = []
    for side in (0, 1):
        hip = pose.confident(LEFT_RIGHT_PAIRS["hip"][side], min_score)
        knee = pose.confident(LEFT_RIGHT_PAIRS["knee"][side], min_score)
        if hip is None or knee is None:
            return None
        shoulder = pose.confident(LEFT_RIGHT_PAIRS["shoulder"][side], min_score) or hip
        angles.append(calculate_angle(shoulder, hip, knee))
    return angles[0], angles[1]


# ═══════════════════════════════════════════════════════════════════════════════
# EXERCISE CLASSIFIER
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseClassifier:
    """
    Classifies a smoothed pose into an ExerciseType.

    Each rule gates on keypoint confidence, checks joint-angle thresholds from
    the EngineConfig and blends a confidence from how clearly the pose
    satisfies them.
    """

    CONFIDENCE_WEIGHTS = {
        ExerciseType.SQUAT: {"knee": 0.7, "hip": 0.3},
        ExerciseType.PUSHUP: {"elbow": 0.6, "alignment": 0.4},
        ExerciseType.PLANK: {"elbow": 0.6, "alignment": 0.4},
        ExerciseType.JUMPING_JACK: {"arms": 0.5, "spread": 0.5},
    }

    # Wrist height above the shoulder that counts as fully raised arms
    ARM_RAISE_REFERENCE = 0.2

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or settings.ENGINE
        self._rules: List[Tuple[ExerciseType, Callable[[Pose], Optional[ExerciseClassification]]]] = [
            (ExerciseType.SQUAT, self._check_squat),
            (ExerciseType.PUSHUP, self._check_pushup),
            (ExerciseType.PLANK, self._check_plank),
            (ExerciseType.JUMPING_JACK, self._check_jumping_jack),
        ]

    def classify(self, pose: Pose) -> ExerciseClassification:
        """
        Classify a pose.

        Args:
            pose: Smoothed pose

        Returns:
            The first matching rule's classification, or UNKNOWN with
            confidence 0
        """
        for exercise, rule in self._rules:
            result = rule(pose)
            if result is not None:
                logger.debug(f"Classified {exercise.value} ({result.confidence:.2f})")
                return result
        return ExerciseClassification(type=ExerciseType.UNKNOWN, confidence=0.0)

    # ─────────────────────────────────────────────────────────────────────────
    # Rules
    # ─────────────────────────────────────────────────────────────────────────

    def _check_squat(self, pose: Pose) -> Optional[ExerciseClassification]:
        cfg = self.config
        knees = limb_angles(pose, "hip", "knee", "ankle", cfg.min_keypoint_score)
        hips = hip_angles(pose, cfg.min_keypoint_score)
        if knees is None or hips is None:
            return None

        if not (max(knees) < cfg.squat_knee_angle and max(hips) < cfg.squat_hip_angle):
            return None

        weights = self.CONFIDENCE_WEIGHTS[ExerciseType.SQUAT]
        confidence = (
            weights["knee"] * (1.0 - min(knees) / 180.0)
            + weights["hip"] * (1.0 - min(hips) / 180.0)
        )
        return ExerciseClassification(
            type=ExerciseType.SQUAT,
            confidence=clamp(confidence),
            angles={"left_knee": knees[0], "right_knee": knees[1], "left_hip": hips[0], "right_hip": hips[1]},
        )

    def _check_pushup(self, pose: Pose) -> Optional[ExerciseClassification]:
        cfg = self.config
        elbows = limb_angles(pose, "shoulder", "elbow", "wrist", cfg.min_keypoint_score)
        if elbows is None or not pose.all_confident(LEFT_RIGHT_PAIRS["hip"], cfg.min_keypoint_score):
            return None

        tilt = torso_tilt(pose)
        if not (max(elbows) < cfg.pushup_elbow_angle and tilt < cfg.torso_horizontal_tolerance):
            return None

        weights = self.CONFIDENCE_WEIGHTS[ExerciseType.PUSHUP]
        confidence = (
            weights["elbow"] * (1.0 - min(elbows) / 180.0)
            + weights["alignment"] * clamp(1.0 - tilt / cfg.torso_horizontal_tolerance)
        )
        return ExerciseClassification(
            type=ExerciseType.PUSHUP,
            confidence=clamp(confidence),
            angles={"left_elbow": elbows[0], "right_elbow": elbows[1]},
        )

    def _check_plank(self, pose: Pose) -> Optional[ExerciseClassification]:
        cfg = self.config
        elbows = limb_angles(pose, "shoulder", "elbow", "wrist", cfg.min_keypoint_score)
        if elbows is None:
            return None

        if not all(cfg.plank_elbow_min <= angle <= cfg.plank_elbow_max for angle in elbows):
            return None

        alignment = 0.5
        if pose.all_confident(LEFT_RIGHT_PAIRS["hip"], cfg.min_keypoint_score):
            alignment = clamp(1.0 - torso_tilt(pose) / cfg.torso_horizontal_tolerance)

        weights = self.CONFIDENCE_WEIGHTS[ExerciseType.PLANK]
        mean_elbow = sum(elbows) / 2.0
        confidence = (
            weights["elbow"] * clamp(1.0 - abs(mean_elbow - 90.0) / 10.0)
            + weights["alignment"] * alignment
        )
        return ExerciseClassification(
            type=ExerciseType.PLANK,
            confidence=clamp(confidence),
            angles={"left_elbow": elbows[0], "right_elbow": elbows[1]},
        )

    def _check_jumping_jack(self, pose: Pose) -> Optional[ExerciseClassification]:
        cfg = self.config
        needed = (
            Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER,
            Landmark.LEFT_WRIST, Landmark.RIGHT_WRIST,
            Landmark.LEFT_ANKLE, Landmark.RIGHT_ANKLE,
        )
        if not pose.all_confident(needed, cfg.min_keypoint_score):
            return None

        left_raise = pose.get(Landmark.LEFT_SHOULDER).y - pose.get(Landmark.LEFT_WRIST).y
        right_raise = pose.get(Landmark.RIGHT_SHOULDER).y - pose.get(Landmark.RIGHT_WRIST).y
        spread = abs(pose.get(Landmark.LEFT_ANKLE).x - pose.get(Landmark.RIGHT_ANKLE).x)

        if not (left_raise > 0 and right_raise > 0 and spread > cfg.jumping_jack_spread):
            return None

        weights = self.CONFIDENCE_WEIGHTS[ExerciseType.JUMPING_JACK]
        confidence = (
            weights["arms"] * clamp(min(left_raise, right_raise) / self.ARM_RAISE_REFERENCE)
            + weights["spread"] * clamp(spread / (cfg.jumping_jack_spread * 1.5))
        )
        return ExerciseClassification(
            type=ExerciseType.JUMPING_JACK,
            confidence=clamp(confidence),
            angles={},
        )
