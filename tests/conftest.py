"""
Shared pytest fixtures: synthetic poses with exactly controlled joint angles.

All poses use the full BlazePose vocabulary. Landmarks a builder does not
place sit at the frame centre with the same keypoint score.
"""

import math
from typing import Dict, Optional, Tuple

import pytest

from core.config import EngineConfig
from shared.pose import Keypoint, Landmark, Pose

L = Landmark


def build_pose(
    points: Dict[Landmark, Tuple[float, float]],
    score: float = 0.95,
    keypoint_score: float = 0.9,
    timestamp: Optional[float] = None,
    shift_y: float = 0.0
) -> Pose:
    keypoints = {}
    for landmark in Landmark:
        x, y = points.get(landmark, (0.5, 0.5))
        keypoints[landmark] = Keypoint(x=x, y=y + shift_y, score=keypoint_score)
    return Pose.from_keypoints(keypoints, score=score, timestamp=timestamp)


def _rotate(u: Tuple[float, float], degrees: float) -> Tuple[float, float]:
    r = math.radians(degrees)
    return (u[0] * math.cos(r) - u[1] * math.sin(r), u[0] * math.sin(r) + u[1] * math.cos(r))


def _add(p, v, length: float = 1.0):
    return (p[0] + v[0] * length, p[1] + v[1] * length)


STANDING_POINTS = {
    L.NOSE: (0.50, 0.20),
    L.LEFT_SHOULDER: (0.45, 0.30), L.RIGHT_SHOULDER: (0.55, 0.30),
    L.LEFT_ELBOW: (0.43, 0.42), L.RIGHT_ELBOW: (0.57, 0.42),
    L.LEFT_WRIST: (0.41, 0.54), L.RIGHT_WRIST: (0.59, 0.54),
    L.LEFT_HIP: (0.46, 0.55), L.RIGHT_HIP: (0.54, 0.55),
    L.LEFT_KNEE: (0.46, 0.72), L.RIGHT_KNEE: (0.54, 0.72),
    L.LEFT_ANKLE: (0.46, 0.90), L.RIGHT_ANKLE: (0.54, 0.90),
}

LYING_POINTS = {
    L.NOSE: (0.15, 0.84),
    L.LEFT_SHOULDER: (0.25, 0.84), L.RIGHT_SHOULDER: (0.25, 0.86),
    L.LEFT_ELBOW: (0.35, 0.85), L.RIGHT_ELBOW: (0.35, 0.87),
    L.LEFT_WRIST: (0.45, 0.85), L.RIGHT_WRIST: (0.45, 0.87),
    L.LEFT_HIP: (0.50, 0.85), L.RIGHT_HIP: (0.50, 0.87),
    L.LEFT_KNEE: (0.65, 0.85), L.RIGHT_KNEE: (0.65, 0.87),
    L.LEFT_ANKLE: (0.80, 0.85), L.RIGHT_ANKLE: (0.80, 0.87),
}


class PoseFactory:
    """Builders for recognisable body positions."""

    @staticmethod
    def standing(**kwargs) -> Pose:
        return build_pose(STANDING_POINTS, **kwargs)

    @staticmethod
    def lying(**kwargs) -> Pose:
        return build_pose(LYING_POINTS, **kwargs)

    @staticmethod
    def squat(
        knee_angle: float = 85.0,
        hip_angle: float = 70.0,
        arms_up: bool = False,
        left_x: float = 0.40,
        right_x: float = 0.48,
        **kwargs
    ) -> Pose:
        """
        Side-on squat with both legs at the given knee and hip angles.

        Ankles sit directly below the knees.
        """
        points = {L.NOSE: (0.5, 0.2)}
        sides = (
            (left_x, L.LEFT_HIP, L.LEFT_KNEE, L.LEFT_ANKLE, L.LEFT_SHOULDER, L.LEFT_ELBOW, L.LEFT_WRIST),
            (right_x, L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE, L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST),
        )
        for x, hip_lm, knee_lm, ankle_lm, shoulder_lm, elbow_lm, wrist_lm in sides:
            knee = (x, 0.70)
            ankle = (x, 0.90)
            thigh = _rotate((0.0, 1.0), knee_angle)   # knee → hip
            hip = _add(knee, thigh, 0.2)
            torso = _rotate((-thigh[0], -thigh[1]), -hip_angle)   # hip → shoulder
            shoulder = _add(hip, torso, 0.25)
            if arms_up:
                elbow = (shoulder[0], shoulder[1] - 0.12)
                wrist = (shoulder[0], shoulder[1] - 0.24)
            else:
                elbow = (shoulder[0], shoulder[1] + 0.12)
                wrist = (shoulder[0], shoulder[1] + 0.24)
            points.update({
                hip_lm: hip, knee_lm: knee, ankle_lm: ankle,
                shoulder_lm: shoulder, elbow_lm: elbow, wrist_lm: wrist,
            })
        return build_pose(points, **kwargs)

    @staticmethod
    def pushup(elbow_angle: float = 80.0, tilt: float = 0.02, **kwargs) -> Pose:
        """Side-on pushup/plank: horizontal body, both arms at ``elbow_angle``."""
        points = {L.NOSE: (0.20, 0.60)}
        for dx, (shoulder_lm, elbow_lm, wrist_lm, hip_lm, knee_lm, ankle_lm) in (
            (0.0, (L.LEFT_SHOULDER, L.LEFT_ELBOW, L.LEFT_WRIST, L.LEFT_HIP, L.LEFT_KNEE, L.LEFT_ANKLE)),
            (0.01, (L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST, L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE)),
        ):
            shoulder = (0.30 + dx, 0.60)
            elbow = (shoulder[0], 0.72)
            wrist = _add(elbow, _rotate((0.0, -1.0), elbow_angle), 0.12)
            hip = (0.55 + dx, 0.60 + tilt)
            ankle = (0.80 + dx, 0.60 + 2 * tilt)
            knee = ((hip[0] + ankle[0]) / 2, (hip[1] + ankle[1]) / 2)
            points.update({
                shoulder_lm: shoulder, elbow_lm: elbow, wrist_lm: wrist,
                hip_lm: hip, knee_lm: knee, ankle_lm: ankle,
            })
        return build_pose(points, **kwargs)

    @staticmethod
    def jumping_jack(open_position: bool = True, **kwargs) -> Pose:
        if not open_position:
            return build_pose(STANDING_POINTS, **kwargs)
        points = {
            L.NOSE: (0.50, 0.20),
            L.LEFT_SHOULDER: (0.45, 0.30), L.RIGHT_SHOULDER: (0.55, 0.30),
            L.LEFT_ELBOW: (0.40, 0.22), L.RIGHT_ELBOW: (0.60, 0.22),
            L.LEFT_WRIST: (0.35, 0.05), L.RIGHT_WRIST: (0.65, 0.05),
            L.LEFT_HIP: (0.45, 0.55), L.RIGHT_HIP: (0.55, 0.55),
            L.LEFT_KNEE: (0.325, 0.725), L.RIGHT_KNEE: (0.675, 0.725),
            L.LEFT_ANKLE: (0.20, 0.90), L.RIGHT_ANKLE: (0.80, 0.90),
        }
        # Straight arms: elbow on the shoulder→wrist line
        points[L.LEFT_ELBOW] = (0.40, 0.175)
        points[L.RIGHT_ELBOW] = (0.60, 0.175)
        return build_pose(points, **kwargs)


@pytest.fixture
def poses():
    return PoseFactory


@pytest.fixture
def make_pose():
    return build_pose


@pytest.fixture
def config():
    return EngineConfig()


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
