"""
TNUA Shared - Geometry

Joint angles and body-position measurements on normalised keypoints.
Pose-level helpers return None when a landmark they need is missing.
"""

import math
from typing import Optional, Protocol, Sequence, Tuple

from .pose import Landmark, Pose


class Point(Protocol):
    x: float
    y: float


LEFT_RIGHT_PAIRS = {
    "shoulder": (Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER),
    "elbow": (Landmark.LEFT_ELBOW, Landmark.RIGHT_ELBOW),
    "wrist": (Landmark.LEFT_WRIST, Landmark.RIGHT_WRIST),
    "hip": (Landmark.LEFT_HIP, Landmark.RIGHT_HIP),
    "knee": (Landmark.LEFT_KNEE, Landmark.RIGHT_KNEE),
    "ankle": (Landmark.LEFT_ANKLE, Landmark.RIGHT_ANKLE),
}


def calculate_angle(a: Point, b: Point, c: Point) -> float:
    """
    Angle at vertex ``b`` formed by the segments b→a and b→c.

    Args:
        a, b, c: Points with ``x`` and ``y``

    Returns:
        Angle in degrees within [0, 180]. 0.0 if a or c coincides with b.
    """
    if (a.x == b.x and a.y == b.y) or (c.x == b.x and c.y == b.y):
        return 0.0

    radians = math.atan2(c.y - b.y, c.x - b.x) - math.atan2(a.y - b.y, a.x - b.x)
    angle = abs(math.degrees(radians))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def midpoint(a: Point, b: Point) -> Tuple[float, float]:
    return ((a.x + b.x) / 2.0, (a.y + b.y) / 2.0)


def average_y(*points: Point) -> float:
    return sum(p.y for p in points) / len(points)


def horizontal_distance(a: Point, b: Point) -> float:
    return abs(a.x - b.x)


def body_height(pose: Pose, landmarks: Sequence[Landmark] = LEFT_RIGHT_PAIRS["hip"]) -> Optional[float]:
    """Average y of the given landmarks (hips by default)."""
    points = [pose.get(lm) for lm in landmarks]
    if any(p is None for p in points):
        return None
    return average_y(*points)


def collapse_height(pose: Pose) -> Optional[float]:
    """Mean of the hip and shoulder heights. Grows as the body drops."""
    hips = body_height(pose, LEFT_RIGHT_PAIRS["hip"])
    shoulders = body_height(pose, LEFT_RIGHT_PAIRS["shoulder"])
    if hips is None or shoulders is None:
        return None
    return (hips + shoulders) / 2.0


def torso_tilt(pose: Pose) -> Optional[float]:
    """
    Vertical gap between the shoulder line and the hip line.

    Near zero when the torso is horizontal (plank, pushup).
    """
    shoulders = body_height(pose, LEFT_RIGHT_PAIRS["shoulder"])
    hips = body_height(pose, LEFT_RIGHT_PAIRS["hip"])
    if shoulders is None or hips is None:
        return None
    return abs(shoulders - hips)


def joint_angle(pose: Pose, first: Landmark, vertex: Landmark, last: Landmark) -> Optional[float]:
    """Angle at ``vertex`` between two other landmarks of a pose."""
    a, b, c = pose.get(first), pose.get(vertex), pose.get(last)
    if a is None or b is None or c is None:
        return None
    return calculate_angle(a, b, c)
