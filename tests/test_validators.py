import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from liveness.blink_detector import BlinkDetector, BlinkPhase
from liveness.models.challenges import ChallengeDirection
from liveness.motion_validator import SUDDEN_MOVEMENT_REASON, MotionValidator
from liveness.pose import HeadPose
from tests.fixtures.synthetic_landmarks import blink_scores, linear_yaws


def yaw_pose(yaw: float) -> HeadPose:
    return HeadPose(yaw=yaw, pitch=0.0, nose_tip=(0.5, 0.5))


def pitch_pose(pitch: float) -> HeadPose:
    return HeadPose(yaw=0.0, pitch=pitch, nose_tip=(0.5, 0.5))


def feed(validator, poses, direction):
    return [validator.add_frame(pose, direction) for pose in poses]


@pytest.fixture
def validator():
    return MotionValidator()


# --- MotionValidator ---

def test_no_judgment_before_minimum_samples(validator):
    results = feed(validator, [yaw_pose(0.1 * i) for i in range(5)], ChallengeDirection.TURN_LEFT)

    assert all(not r.is_valid and r.progress == 0 and r.rejection_reason is None for r in results)
    assert validator.is_started


def test_slow_left_turn_is_valid(validator):
    results = feed(validator, [yaw_pose(y) for y in linear_yaws(0.0, 0.35, 18)], ChallengeDirection.TURN_LEFT)

    assert results[-1].is_valid
    assert results[-1].progress == 1.0
    # displacement first reaches 0.30 on the 16th sample
    assert not results[14].is_valid
    assert results[15].is_valid


def test_jittery_but_directional_turn_is_valid(validator):
    deltas = [0.05, 0.05, -0.01] * 5 + [0.05, 0.05]
    yaws = [0.0]
    for delta in deltas:
        yaws.append(yaws[-1] + delta)

    results = feed(validator, [yaw_pose(y) for y in yaws], ChallengeDirection.TURN_LEFT)
    assert results[-1].is_valid
    assert results[-1].rejection_reason is None


def test_turn_in_wrong_direction_is_not_valid(validator):
    results = feed(validator, [yaw_pose(y) for y in linear_yaws(0.0, 0.35, 18)], ChallengeDirection.TURN_RIGHT)

    assert not results[-1].is_valid
    assert results[-1].progress == 0.0


def test_right_turn_uses_negative_yaw(validator):
    results = feed(validator, [yaw_pose(y) for y in linear_yaws(0.0, -0.35, 18)], ChallengeDirection.TURN_RIGHT)
    assert results[-1].is_valid


@pytest.mark.parametrize("direction, end", [
    (ChallengeDirection.LOOK_DOWN, 0.2),
    (ChallengeDirection.LOOK_UP, -0.2),
])
def test_vertical_turns_use_pitch_and_lower_threshold(validator, direction, end):
    results = feed(validator, [pitch_pose(p) for p in linear_yaws(0.0, end, 18)], direction)

    assert results[-1].is_valid


def test_horizontal_displacement_of_vertical_size_is_not_enough(validator):
    results = feed(validator, [yaw_pose(y) for y in linear_yaws(0.0, 0.2, 18)], ChallengeDirection.TURN_LEFT)

    assert not results[-1].is_valid
    assert results[-1].progress == pytest.approx(0.2 / 0.30)


def test_sudden_jump_is_rejected(validator):
    poses = [yaw_pose(0.0)] * 5 + [yaw_pose(0.5)]
    results = feed(validator, poses, ChallengeDirection.TURN_LEFT)

    assert results[-1].rejection_reason == SUDDEN_MOVEMENT_REASON
    assert not results[-1].is_valid
    assert results[-1].progress == 0.0


def test_jump_rejection_overrides_valid_motion(validator):
    yaws = linear_yaws(0.0, 0.35, 17) + [0.6]
    results = feed(validator, [yaw_pose(y) for y in yaws], ChallengeDirection.TURN_LEFT)

    assert results[-1].rejection_reason is not None
    assert not results[-1].is_valid


def test_jump_on_the_other_axis_is_ignored(validator):
    poses = [HeadPose(yaw=y, pitch=0.0 if i < 9 else 0.5, nose_tip=(0.5, 0.5))
             for i, y in enumerate(linear_yaws(0.0, 0.35, 18))]
    results = feed(validator, poses, ChallengeDirection.TURN_LEFT)

    assert results[-1].is_valid


def test_spike_self_heals_once_it_leaves_the_window(validator):
    feed(validator, [yaw_pose(0.0)] * 6, ChallengeDirection.TURN_LEFT)
    assert validator.add_frame(yaw_pose(0.3), ChallengeDirection.TURN_LEFT).rejection_reason

    results = feed(validator, [yaw_pose(0.0)] * 18, ChallengeDirection.TURN_LEFT)

    # the window still holds the spike after 17 more frames, not after 18
    assert results[16].rejection_reason is not None
    assert results[17].rejection_reason is None


def test_flat_window_fails_displacement_without_rejection(validator):
    results = feed(validator, [yaw_pose(0.1)] * 12, ChallengeDirection.TURN_LEFT)

    assert results[-1].is_valid is False
    assert results[-1].progress == 0.0
    assert results[-1].rejection_reason is None


def test_progress_is_monotonic_and_clamped(validator):
    results = feed(validator, [yaw_pose(y) for y in linear_yaws(0.0, 0.5, 18)], ChallengeDirection.TURN_LEFT)
    progresses = [r.progress for r in results]

    assert progresses == sorted(progresses)
    assert all(0.0 <= p <= 1.0 for p in progresses)


def test_window_is_truncated_and_reset_clears_it(validator):
    feed(validator, [yaw_pose(0.0)] * 30, ChallengeDirection.TURN_LEFT)
    assert len(validator.pose_history) == 18

    validator.reset()
    assert len(validator.pose_history) == 0
    assert not validator.is_started


# --- BlinkDetector ---

def test_blink_close_then_reopen():
    detector = BlinkDetector()

    assert detector.add_frame(blink_scores(0.9, 0.9)) is False
    assert detector.phase is BlinkPhase.EYES_CLOSED
    assert detector.add_frame(blink_scores(0.1, 0.1)) is True
    assert detector.is_detected


def test_asymmetric_wink_never_leaves_waiting():
    detector = BlinkDetector()
    for _ in range(5):
        assert detector.add_frame(blink_scores(0.9, 0.1)) is False
        assert detector.phase is BlinkPhase.WAITING


def test_hysteresis_requires_full_reopen():
    detector = BlinkDetector()
    detector.add_frame(blink_scores(0.9, 0.9))

    # between the two thresholds: still closed
    assert detector.add_frame(blink_scores(0.3, 0.3)) is False
    assert detector.add_frame(blink_scores(0.1, 0.3)) is False
    assert detector.phase is BlinkPhase.EYES_CLOSED
    assert detector.add_frame(blink_scores(0.15, 0.15)) is True


def test_blink_is_terminal_until_reset():
    detector = BlinkDetector()
    detector.add_frame(blink_scores(0.9, 0.9))
    detector.add_frame(blink_scores(0.1, 0.1))

    assert detector.add_frame(blink_scores(0.9, 0.9)) is True
    assert detector.add_frame(None) is True

    detector.reset()
    assert detector.phase is BlinkPhase.WAITING
    assert detector.add_frame(blink_scores(0.1, 0.1)) is False


@pytest.mark.parametrize("scores", [None, {}, {"eyeBlinkLeft": 0.9}, {"jawOpen": 0.5}])
def test_missing_scores_do_not_transition(scores):
    detector = BlinkDetector()

    assert detector.add_frame(scores) is False
    assert detector.phase is BlinkPhase.WAITING
