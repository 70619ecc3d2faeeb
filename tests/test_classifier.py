from __future__ import annotations

import pytest

from posecam.vision.classifier import PoseLabel, classify_pose
from posecam.vision.types import Pose, PoseLandmarkType as LT


def _pose(lw_y, rw_y, ls_y=200, rs_y=200, drop=()):
    points = {
        LT.LEFT_WRIST: (100, lw_y),
        LT.RIGHT_WRIST: (300, rw_y),
        LT.LEFT_SHOULDER: (120, ls_y),
        LT.RIGHT_SHOULDER: (280, rs_y),
        LT.NOSE: (200, 120),
    }
    for key in drop:
        points.pop(key)
    return Pose.from_points(points)


def test_example_scenario_is_hands_up():
    assert classify_pose([_pose(50, 50)]) is PoseLabel.HANDS_UP
    assert PoseLabel.HANDS_UP.text == "Mãos para cima"


def test_empty_list_is_no_pose():
    assert classify_pose([]) is PoseLabel.NO_POSE
    assert PoseLabel.NO_POSE.text == "Nenhuma pose detectada"


@pytest.mark.parametrize(
    "lw_y,rw_y,ls_y,rs_y,expected",
    [
        (50, 50, 200, 200, PoseLabel.HANDS_UP),
        (250, 50, 200, 200, PoseLabel.NORMAL),  # only right hand up
        (50, 250, 200, 200, PoseLabel.NORMAL),  # only left hand up
        (250, 250, 200, 200, PoseLabel.NORMAL),
        (200, 50, 200, 200, PoseLabel.NORMAL),  # level with shoulder is not above
        (150, 90, 160, 100, PoseLabel.HANDS_UP),  # compared per side
        (150, 110, 160, 100, PoseLabel.NORMAL),
    ],
)
def test_hands_up_iff_both_wrists_above_their_shoulder(lw_y, rw_y, ls_y, rs_y, expected):
    assert classify_pose([_pose(lw_y, rw_y, ls_y, rs_y)]) is expected


@pytest.mark.parametrize("missing", [LT.LEFT_WRIST, LT.RIGHT_WRIST, LT.LEFT_SHOULDER, LT.RIGHT_SHOULDER])
def test_missing_key_landmark_is_pose_detected(missing):
    assert classify_pose([_pose(50, 50, drop=(missing,))]) is PoseLabel.POSE_DETECTED


def test_pose_without_any_landmark_is_pose_detected():
    assert classify_pose([Pose()]) is PoseLabel.POSE_DETECTED


def test_only_first_pose_is_classified():
    normal = _pose(250, 250)
    hands_up = _pose(50, 50)
    assert classify_pose([normal, hands_up]) is PoseLabel.NORMAL
    assert classify_pose([hands_up, normal]) is PoseLabel.HANDS_UP


def test_labels_are_strings():
    assert PoseLabel.NORMAL == "normal"
    assert PoseLabel.POSE_DETECTED.text == "Pose detectada"
