"""
TNUA Exercise Service - Form Scorer

Scores how well a pose executes a given exercise (0-100) and produces short
coaching cues. Each exercise combines two terms worth up to 50 points.
For squats and pushups the alignment term is scaled by movement depth, so a
rest position scores low and the rep counter sees a clear bottom/top cycle.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from core.config import EngineConfig, settings
from shared.geometry import LEFT_RIGHT_PAIRS, torso_tilt
from shared.pose import Pose
from shared.utils import clamp

from .exercise_classifier import ExerciseType, limb_angles


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class FormQuality(str, Enum):
    """Form quality assessment levels."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @classmethod
    def from_score(cls, score: float) -> "FormQuality":
        if score >= 90:
            return cls.EXCELLENT
        elif score >= 75:
            return cls.GOOD
        elif score >= 50:
            return cls.FAIR
        return cls.POOR


@dataclass
class FormAssessment:
    """Form quality assessment for one frame."""
    exercise_type: ExerciseType
    score: float  # 0-100
    quality: FormQuality
    feedback: List[str] = field(default_factory=list)
    angles: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "exercise_type": self.exercise_type.value,
            "score": round(self.score, 1),
            "quality": self.quality.value,
            "feedback": list(self.feedback),
            "angles": {name: round(angle, 1) for name, angle in self.angles.items()},
        }


# ═══════════════════════════════════════════════════════════════════════════════
# FORM SCORER
# ═══════════════════════════════════════════════════════════════════════════════

class FormScorer:
    """Rule-based form scoring per exercise."""

    FEEDBACK = {
        "squat_depth": "Lower your hips further",
        "knees_over_toes": "Keep your knees behind your toes",
        "back_straight": "Keep your back straighter",
        "body_line": "Keep your body in a straight line",
        "pushup_depth": "Go lower",
        "plank_hips": "Keep your hips in line",
        "arms_higher": "Raise your arms higher",
        "feet_wider": "Jump your feet wider",
    }

    SHALLOW_BEND_ANGLE = 120.0      # knee/elbow angle treated as a shallow rep
    BACK_MIN_INCLINE = 0.5          # radians from horizontal
    PLANK_MIN_BODY_LINE = 160.0
    ARM_RAISE_REFERENCE = 0.2

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or settings.ENGINE

    def score(self, pose: Pose, exercise: ExerciseType) -> Optional[FormAssessment]:
        """
        Assess a pose against an exercise.

        Args:
            pose: Smoothed pose
            exercise: Exercise to score against

        Returns:
            FormAssessment, or None when the exercise is UNKNOWN or the
            keypoints it needs are missing or unreliable
        """
        scorer = {
            ExerciseType.SQUAT: self._score_squat,
            ExerciseType.PUSHUP: self._score_pushup,
            ExerciseType.PLANK: self._score_plank,
            ExerciseType.JUMPING_JACK: self._score_jumping_jack,
        }.get(exercise)
        if scorer is None:
            return None
        return scorer(pose)

    def _assessment(self, exercise: ExerciseType, score: float, feedback: List[str], angles: Dict[str, float]) -> FormAssessment:
        score = clamp(score, 0.0, 100.0)
        return FormAssessment(
            exercise_type=exercise,
            score=score,
            quality=FormQuality.from_score(score),
            feedback=feedback,
            angles=angles,
        )

    def _score_squat(self, pose: Pose) -> Optional[FormAssessment]:
        cfg = self.config
        knees = limb_angles(pose, "hip", "knee", "ankle", cfg.min_keypoint_score)
        if knees is None:
            return None

        mean_knee = sum(knees) / 2.0
        depth = clamp((180.0 - mean_knee) / (180.0 - cfg.squat_depth_angle))

        knee_pts = [pose.get(lm) for lm in LEFT_RIGHT_PAIRS["knee"]]
        ankle_pts = [pose.get(lm) for lm in LEFT_RIGHT_PAIRS["ankle"]]
        knee_x = (knee_pts[0].x + knee_pts[1].x) / 2.0
        ankle_x = (ankle_pts[0].x + ankle_pts[1].x) / 2.0
        alignment = clamp(1.0 - abs(knee_x - ankle_x))

        score = 50.0 * depth + 50.0 * alignment * depth

        feedback = []
        if mean_knee > self.SHALLOW_BEND_ANGLE:
            feedback.append(self.FEEDBACK["squat_depth"])
        if any(abs(k.x - a.x) > cfg.knee_over_toe_tolerance for k, a in zip(knee_pts, ankle_pts)):
            feedback.append(self.FEEDBACK["knees_over_toes"])
        if pose.all_confident(LEFT_RIGHT_PAIRS["shoulder"], cfg.min_keypoint_score):
            shoulder = pose.get(LEFT_RIGHT_PAIRS["shoulder"][0])
            hip = pose.get(LEFT_RIGHT_PAIRS["hip"][0])
            incline = math.atan2(abs(shoulder.y - hip.y), abs(shoulder.x - hip.x))
            if incline < self.BACK_MIN_INCLINE:
                feedback.append(self.FEEDBACK["back_straight"])

        return self._assessment(
            ExerciseType.SQUAT, score, feedback,
            {"left_knee": knees[0], "right_knee": knees[1]},
        )

    def _score_pushup(self, pose: Pose) -> Optional[FormAssessment]:
        cfg = self.config
        elbows = limb_angles(pose, "shoulder", "elbow", "wrist", cfg.min_keypoint_score)
        if elbows is None or not pose.all_confident(LEFT_RIGHT_PAIRS["hip"], cfg.min_keypoint_score):
            return None

        mean_elbow = sum(elbows) / 2.0
        depth = clamp((180.0 - mean_elbow) / (180.0 - cfg.pushup_elbow_angle))
        tilt = torso_tilt(pose)
        alignment = clamp(1.0 - tilt)

        score = 50.0 * depth + 50.0 * alignment * depth

        feedback = []
        if tilt >= cfg.torso_horizontal_tolerance:
            feedback.append(self.FEEDBACK["body_line"])
        if cfg.pushup_elbow_angle <= mean_elbow <= self.SHALLOW_BEND_ANGLE:
            feedback.append(self.FEEDBACK["pushup_depth"])

        return self._assessment(
            ExerciseType.PUSHUP, score, feedback,
            {"left_elbow": elbows[0], "right_elbow": elbows[1]},
        )

    def _score_plank(self, pose: Pose) -> Optional[FormAssessment]:
        cfg = self.config
        elbows = limb_angles(pose, "shoulder", "elbow", "wrist", cfg.min_keypoint_score)
        body = limb_angles(pose, "shoulder", "hip", "ankle", cfg.min_keypoint_score)
        if elbows is None or body is None:
            return None

        body_line = sum(body) / 2.0
        mean_elbow = sum(elbows) / 2.0
        score = 50.0 * (body_line / 180.0) + 50.0 * clamp(1.0 - abs(mean_elbow - 90.0) / 90.0)

        feedback = []
        if body_line < self.PLANK_MIN_BODY_LINE:
            feedback.append(self.FEEDBACK["plank_hips"])

        return self._assessment(
            ExerciseType.PLANK, score, feedback,
            {"left_elbow": elbows[0], "right_elbow": elbows[1], "body_line": body_line},
        )

    def _score_jumping_jack(self, pose: Pose) -> Optional[FormAssessment]:
        cfg = self.config
        needed = LEFT_RIGHT_PAIRS["shoulder"] + LEFT_RIGHT_PAIRS["wrist"] + LEFT_RIGHT_PAIRS["ankle"]
        if not pose.all_confident(needed, cfg.min_keypoint_score):
            return None

        raises = [
            pose.get(shoulder).y - pose.get(wrist).y
            for shoulder, wrist in zip(LEFT_RIGHT_PAIRS["shoulder"], LEFT_RIGHT_PAIRS["wrist"])
        ]
        arms = clamp(min(raises) / self.ARM_RAISE_REFERENCE)
        left_ankle, right_ankle = (pose.get(lm) for lm in LEFT_RIGHT_PAIRS["ankle"])
        spread = clamp(abs(left_ankle.x - right_ankle.x) / cfg.jumping_jack_spread)

        score = 50.0 * arms + 50.0 * spread

        # Cue only the lagging half of an otherwise open position
        feedback = []
        if spread >= 1.0 and arms < 1.0:
            feedback.append(self.FEEDBACK["arms_higher"])
        if arms >= 1.0 and spread < 1.0:
            feedback.append(self.FEEDBACK["feet_wider"])

        return self._assessment(ExerciseType.JUMPING_JACK, score, feedback, {})
