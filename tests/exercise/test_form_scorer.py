"""
Tests for form scoring and coaching cues.
"""

import pytest

from exercise_service.models import ExerciseType, FormQuality, FormScorer


@pytest.fixture
def scorer(config):
    return FormScorer(config)


def test_deep_aligned_squat_scores_full(scorer, poses):
    assessment = scorer.score(poses.squat(knee_angle=85, hip_angle=70), ExerciseType.SQUAT)
    assert assessment.score == pytest.approx(100.0)
    assert assessment.quality == FormQuality.EXCELLENT
    assert assessment.feedback == []


def test_standing_scores_zero_against_squat(scorer, poses):
    assessment = scorer.score(poses.standing(), ExerciseType.SQUAT)
    assert assessment.score == pytest.approx(0.0, abs=1e-6)
    assert assessment.quality == FormQuality.POOR
    assert "Lower your hips further" in assessment.feedback


def test_half_squat_sits_between_watermarks(scorer, poses):
    assessment = scorer.score(poses.squat(knee_angle=135, hip_angle=120), ExerciseType.SQUAT)
    assert 30.0 < assessment.score < 80.0


def test_knees_past_toes_cue(scorer, make_pose):
    from shared.pose import Landmark as L
    points = {
        L.LEFT_HIP: (0.30, 0.62), L.RIGHT_HIP: (0.34, 0.62),
        L.LEFT_KNEE: (0.50, 0.70), L.RIGHT_KNEE: (0.54, 0.70),
        L.LEFT_ANKLE: (0.40, 0.90), L.RIGHT_ANKLE: (0.44, 0.90),
        L.LEFT_SHOULDER: (0.36, 0.38), L.RIGHT_SHOULDER: (0.40, 0.38),
    }
    assessment = scorer.score(make_pose(points), ExerciseType.SQUAT)
    assert "Keep your knees behind your toes" in assessment.feedback
    # Misalignment costs points at the same depth
    assert assessment.score < 100.0


def test_pushup_bottom_and_top(scorer, poses):
    bottom = scorer.score(poses.pushup(elbow_angle=80, tilt=0.02), ExerciseType.PUSHUP)
    top = scorer.score(poses.pushup(elbow_angle=170, tilt=0.02), ExerciseType.PUSHUP)
    assert bottom.score == pytest.approx(50 + 50 * 0.98)
    assert top.score < 30.0


def test_pushup_body_line_cue(scorer, poses):
    assessment = scorer.score(poses.pushup(elbow_angle=80, tilt=0.15), ExerciseType.PUSHUP)
    assert "Keep your body in a straight line" in assessment.feedback


def test_plank_straight_body(scorer, poses):
    assessment = scorer.score(poses.pushup(elbow_angle=90, tilt=0.0), ExerciseType.PLANK)
    assert assessment.score == pytest.approx(100.0)


def test_jumping_jack_open_and_closed(scorer, poses):
    opened = scorer.score(poses.jumping_jack(open_position=True), ExerciseType.JUMPING_JACK)
    closed = scorer.score(poses.jumping_jack(open_position=False), ExerciseType.JUMPING_JACK)
    assert opened.score == pytest.approx(100.0)
    assert closed.score < 30.0


def test_unknown_exercise_is_not_scored(scorer, poses):
    assert scorer.score(poses.standing(), ExerciseType.UNKNOWN) is None


def test_unreliable_keypoints_are_not_scored(scorer, poses):
    assert scorer.score(poses.squat(keypoint_score=0.2), ExerciseType.SQUAT) is None
    assert scorer.score(poses.pushup(keypoint_score=0.2), ExerciseType.PUSHUP) is None


@pytest.mark.parametrize("score, quality", [
    (95, FormQuality.EXCELLENT),
    (80, FormQuality.GOOD),
    (60, FormQuality.FAIR),
    (10, FormQuality.POOR),
])
def test_quality_bands(score, quality):
    assert FormQuality.from_score(score) == quality
