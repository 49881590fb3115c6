"""
Tests for the rep-counting hysteresis state machine.
"""

import pytest

from exercise_service.models import ExerciseType, RepCounterState, RepPhase, RepTracker, advance
from shared.events import EventType


def run(scores, interval, config, start=0.0):
    state = RepCounterState(exercise=ExerciseType.SQUAT)
    events = []
    counts = []
    for i, score in enumerate(scores):
        state, emitted = advance(state, score, start + i * interval, config)
        events.extend(emitted)
        counts.append(state.rep_count)
    return state, events, counts


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSITION FUNCTION
# ═══════════════════════════════════════════════════════════════════════════════

def test_one_rep_per_down_crossing(config):
    state, events, counts = run([90, 20, 90, 20, 90, 20], 1.1, config)
    assert counts == [0, 1, 1, 2, 2, 3]
    assert [e.type for e in events].count(EventType.REP_COMPLETED) == 3
    assert state.phase == RepPhase.OUT_OF_POSITION


def test_count_never_decreases(config):
    _, _, counts = run([90, 20, 50, 10, 95, 25, 85, 29, 81, 5], 0.7, config)
    assert counts == sorted(counts)


def test_oscillation_inside_cooldown_does_not_double_count(config):
    state, events, counts = run([90, 20, 90, 20], 0.2, config)
    assert counts == [0, 1, 1, 1]
    assert events[-1].type == EventType.REP_REJECTED
    assert state.phase == RepPhase.OUT_OF_POSITION
    assert state.last_rep_time == pytest.approx(0.2)


def test_rep_after_cooldown_counts_again(config):
    _, _, counts = run([90, 20, 90, 20, 90, 20, 90, 20], 0.2, config)
    # Downs at 0.2 (rep), 0.6 and 1.0 (inside 1 s cooldown), 1.4 (rep)
    assert counts[-1] == 2


def test_scores_between_watermarks_hold_state(config):
    state = RepCounterState(exercise=ExerciseType.SQUAT)
    state, events = advance(state, 50, 0.0, config)
    assert state.phase == RepPhase.OUT_OF_POSITION and events == []

    state, _ = advance(state, 85, 1.0, config)
    state, events = advance(state, 50, 2.0, config)
    assert state.phase == RepPhase.IN_POSITION and events == []


def test_watermarks_are_strict(config):
    state = RepCounterState(exercise=ExerciseType.SQUAT)
    state, _ = advance(state, 80, 0.0, config)
    assert state.phase == RepPhase.OUT_OF_POSITION

    state, _ = advance(state, 80.1, 1.0, config)
    state, _ = advance(state, 30, 2.0, config)
    assert state.phase == RepPhase.IN_POSITION


def test_first_rep_has_no_cooldown(config):
    state = RepCounterState(exercise=ExerciseType.SQUAT)
    state, _ = advance(state, 90, 0.0, config)
    state, events = advance(state, 10, 0.01, config)
    assert state.rep_count == 1
    assert events[0].type == EventType.REP_COMPLETED


def test_advance_is_pure(config):
    state = RepCounterState(exercise=ExerciseType.SQUAT)
    advance(state, 90, 0.0, config)
    assert state.phase == RepPhase.OUT_OF_POSITION


# ═══════════════════════════════════════════════════════════════════════════════
# TRACKER
# ═══════════════════════════════════════════════════════════════════════════════

def test_switch_needs_consecutive_frames(config):
    tracker = RepTracker(config.with_overrides(exercise_switch_frames=3))

    tracker.observe(ExerciseType.SQUAT, 0.0)
    tracker.observe(ExerciseType.SQUAT, 0.1)
    tracker.observe(ExerciseType.PLANK, 0.2)      # breaks the streak
    tracker.observe(ExerciseType.SQUAT, 0.3)
    tracker.observe(ExerciseType.SQUAT, 0.4)
    assert tracker.active == ExerciseType.UNKNOWN

    events = tracker.observe(ExerciseType.SQUAT, 0.5)
    assert tracker.active == ExerciseType.SQUAT
    assert events[0].type == EventType.EXERCISE_CHANGED


def test_unknown_frames_keep_active_exercise(config):
    tracker = RepTracker(config.with_overrides(exercise_switch_frames=1))
    tracker.observe(ExerciseType.SQUAT, 0.0)
    tracker.observe(ExerciseType.UNKNOWN, 0.1)
    assert tracker.active == ExerciseType.SQUAT


def test_switch_resets_phase_but_keeps_count(config):
    tracker = RepTracker(config.with_overrides(exercise_switch_frames=1))
    tracker.observe(ExerciseType.SQUAT, 0.0)
    tracker.record_score(95, 0.0)
    tracker.record_score(10, 1.0)
    tracker.record_score(95, 2.0)
    assert tracker.state.is_in_position

    tracker.observe(ExerciseType.PUSHUP, 2.5)
    assert tracker.active == ExerciseType.PUSHUP
    assert not tracker.state.is_in_position
    assert tracker.state.rep_count == 1
    assert tracker.reps_by_type == {ExerciseType.SQUAT: 1}


def test_plank_is_never_counted(config):
    tracker = RepTracker(config.with_overrides(exercise_switch_frames=1))
    tracker.observe(ExerciseType.PLANK, 0.0)
    for i, score in enumerate([95, 10, 95, 10]):
        assert tracker.record_score(score, i * 2.0) == []
    assert tracker.state.rep_count == 0


def test_completed_rep_reports_peak_score(config):
    tracker = RepTracker(config.with_overrides(exercise_switch_frames=1))
    tracker.observe(ExerciseType.SQUAT, 0.0)
    tracker.record_score(85, 0.0)
    tracker.record_score(97, 0.5)
    events = tracker.record_score(5, 1.5)
    assert events[0].data["peak_form_score"] == 97.0
    assert tracker.rep_scores == [97]


def test_preview_does_not_change_tracker(config):
    tracker = RepTracker(config.with_overrides(exercise_switch_frames=2))
    assert tracker.preview(ExerciseType.SQUAT) == ExerciseType.UNKNOWN

    tracker.observe(ExerciseType.SQUAT, 0.0)
    assert tracker.preview(ExerciseType.SQUAT) == ExerciseType.SQUAT
    assert tracker.preview(ExerciseType.PLANK) == ExerciseType.UNKNOWN
    assert tracker.preview(ExerciseType.UNKNOWN) == ExerciseType.UNKNOWN
    assert tracker.active == ExerciseType.UNKNOWN

    tracker.observe(ExerciseType.SQUAT, 0.1)
    assert tracker.active == ExerciseType.SQUAT
