import os
import sys
from types import SimpleNamespace

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from liveness.errors import LandmarkSetError
from liveness.face_selector import face_area, select_largest_face
from liveness.pose import CHIN, FOREHEAD, LEFT_EYE_OUTER, RIGHT_EYE_OUTER, extract_head_pose
from tests.fixtures.synthetic_landmarks import blink_scores, make_landmarks


# --- Pose extraction ---

@pytest.mark.parametrize("yaw, pitch", [(0.0, 0.0), (0.2, -0.1), (-0.35, 0.15)])
def test_extract_head_pose_recovers_geometry(yaw, pitch):
    pose = extract_head_pose(make_landmarks(yaw=yaw, pitch=pitch))

    assert pose.yaw == pytest.approx(yaw)
    assert pose.pitch == pytest.approx(pitch)


def test_extract_head_pose_is_scale_invariant():
    small = extract_head_pose(make_landmarks(yaw=0.3, pitch=0.1, scale=0.4))
    large = extract_head_pose(make_landmarks(yaw=0.3, pitch=0.1, scale=1.5))

    assert small.yaw == pytest.approx(large.yaw)
    assert small.pitch == pytest.approx(large.pitch)


def test_extract_head_pose_reports_nose_tip():
    lm = make_landmarks(yaw=0.1, center=(0.4, 0.6))
    pose = extract_head_pose(lm)

    assert pose.nose_tip == pytest.approx((lm[1, 0], lm[1, 1]))


def test_degenerate_eyes_give_zero_yaw():
    lm = make_landmarks(yaw=0.3, pitch=0.1)
    lm[RIGHT_EYE_OUTER, 0] = lm[LEFT_EYE_OUTER, 0] + 0.0005

    pose = extract_head_pose(lm)
    assert pose.yaw == 0.0
    assert pose.pitch == pytest.approx(0.1)


def test_degenerate_face_height_gives_zero_pitch():
    lm = make_landmarks(yaw=0.2, pitch=0.1)
    lm[CHIN, 1] = lm[FOREHEAD, 1]

    pose = extract_head_pose(lm)
    assert pose.pitch == 0.0
    assert pose.yaw == pytest.approx(0.2)


def test_extract_head_pose_accepts_landmark_objects():
    lm = make_landmarks(yaw=-0.2, pitch=0.05)
    points = [SimpleNamespace(x=x, y=y, z=z) for x, y, z in lm]

    pose = extract_head_pose(points)
    assert pose.yaw == pytest.approx(-0.2)
    assert pose.pitch == pytest.approx(0.05)


def test_extract_head_pose_accepts_nested_lists():
    pose = extract_head_pose(make_landmarks(yaw=0.1).tolist())
    assert pose.yaw == pytest.approx(0.1)


def test_short_landmark_set_is_rejected():
    with pytest.raises(LandmarkSetError):
        extract_head_pose(np.zeros((68, 2)))


# --- Face selection ---

def test_select_largest_face_empty_returns_none():
    assert select_largest_face([]) is None
    assert select_largest_face([], []) is None


def test_select_largest_face_picks_bigger_area():
    small = make_landmarks(face_width=0.2, face_height=0.5)   # area 0.10
    large = make_landmarks(face_width=0.5, face_height=0.5)   # area 0.25
    assert face_area(small) == pytest.approx(0.10)
    assert face_area(large) == pytest.approx(0.25)

    selected = select_largest_face([small, large], [blink_scores(0.1, 0.1), blink_scores(0.9, 0.9)])

    assert selected.face_index == 1
    assert selected.landmarks is large
    assert selected.expression_scores["eyeBlinkLeft"] == 0.9


def test_select_largest_face_tie_keeps_first():
    first = make_landmarks(yaw=0.1)
    second = make_landmarks(yaw=-0.1)

    selected = select_largest_face([first, second])
    assert selected.face_index == 0
    assert selected.landmarks is first


def test_select_largest_face_without_scores():
    selected = select_largest_face([make_landmarks()])

    assert selected.face_index == 0
    assert selected.expression_scores is None


def test_ragged_landmark_set_is_rejected():
    ragged = make_landmarks().tolist()
    ragged[-1] = [0.5]

    with pytest.raises(LandmarkSetError):
        extract_head_pose(ragged)
    with pytest.raises(LandmarkSetError):
        select_largest_face([ragged])


def test_non_numeric_landmark_set_is_rejected():
    with pytest.raises(LandmarkSetError):
        extract_head_pose([["a", "b", "c"]] * 478)
