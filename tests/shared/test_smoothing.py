"""
Tests for exponential keypoint smoothing.
"""

import pytest

from shared.errors import ConfigurationError, VocabularyMismatchError
from shared.pose import Keypoint, Landmark, Pose
from shared.smoothing import KeypointSmoother, smooth_pose


def uniform_pose(value: float, z=None, score: float = 0.9) -> Pose:
    return Pose.from_keypoints(
        {lm: Keypoint(x=value, y=value, z=z, score=score) for lm in Landmark},
        score=0.9,
    )


def test_first_frame_passes_through():
    smoother = KeypointSmoother(alpha=0.7)
    pose = uniform_pose(0.4)
    assert smoother.smooth(pose) is pose


def test_gap_shrinks_by_alpha_each_frame():
    smoother = KeypointSmoother(alpha=0.7)
    smoother.smooth(uniform_pose(0.0))

    gaps = []
    for _ in range(4):
        smoothed = smoother.smooth(uniform_pose(1.0))
        gaps.append(1.0 - smoothed.get(Landmark.NOSE).x)

    assert gaps == pytest.approx([0.7, 0.49, 0.343, 0.2401])


def test_smoothing_compounds_on_smoothed_output():
    smoother = KeypointSmoother(alpha=0.5)
    smoother.smooth(uniform_pose(0.0))
    smoother.smooth(uniform_pose(1.0))          # 0.5
    third = smoother.smooth(uniform_pose(0.0))  # 0.5 * 0.5 + 0 = 0.25
    assert third.get(Landmark.LEFT_HIP).y == pytest.approx(0.25)


def test_scores_come_from_current_frame():
    previous = uniform_pose(0.0, score=0.2)
    current = uniform_pose(1.0, score=0.8)
    smoothed = smooth_pose(previous, current, 0.7)
    assert smoothed.get(Landmark.NOSE).score == 0.8
    assert smoothed.score == current.score


def test_z_smoothed_only_when_present():
    with_z = smooth_pose(uniform_pose(0.0, z=0.0), uniform_pose(1.0, z=1.0), 0.7)
    assert with_z.get(Landmark.NOSE).z == pytest.approx(0.3)

    new_z = smooth_pose(uniform_pose(0.0), uniform_pose(1.0, z=1.0), 0.7)
    assert new_z.get(Landmark.NOSE).z == pytest.approx(1.0)

    no_z = smooth_pose(uniform_pose(0.0, z=0.5), uniform_pose(1.0), 0.7)
    assert no_z.get(Landmark.NOSE).z is None


def test_vocabulary_mismatch_is_rejected():
    full = uniform_pose(0.5)
    partial = Pose.from_keypoints(
        {lm: kp for lm, kp in full.items() if lm != Landmark.NOSE},
        score=0.9,
    )
    with pytest.raises(VocabularyMismatchError):
        smooth_pose(full, partial, 0.7)


def test_reset_clears_history():
    smoother = KeypointSmoother()
    smoother.smooth(uniform_pose(0.0))
    smoother.reset()
    fresh = uniform_pose(1.0)
    assert smoother.smooth(fresh) is fresh


@pytest.mark.parametrize("alpha", [-0.1, 1.0, 1.5])
def test_invalid_alpha(alpha):
    with pytest.raises(ConfigurationError):
        KeypointSmoother(alpha=alpha)
