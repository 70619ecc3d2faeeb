"""Hands-up / normal pose classification from wrist and shoulder heights."""
from __future__ import annotations

from enum import Enum
from typing import Sequence

from posecam.vision.types import Pose, PoseLandmarkType


class PoseLabel(str, Enum):
    NO_POSE = "no_pose"
    HANDS_UP = "hands_up"
    NORMAL = "normal"
    POSE_DETECTED = "pose_detected"

    @property
    def text(self) -> str:
        return _LABEL_TEXT[self]


_LABEL_TEXT = {
    PoseLabel.NO_POSE: "Nenhuma pose detectada",
    PoseLabel.HANDS_UP: "Mãos para cima",
    PoseLabel.NORMAL: "Pose normal",
    PoseLabel.POSE_DETECTED: "Pose detectada",
}


def classify_pose(poses: Sequence[Pose]) -> PoseLabel:
    """Classify the first pose; the others are ignored.

    Image y grows downward, so a wrist is "up" when its y is smaller than the
    shoulder's.
    """
    if not poses:
        return PoseLabel.NO_POSE

    pose = poses[0]
    left_wrist = pose.get(PoseLandmarkType.LEFT_WRIST)
    right_wrist = pose.get(PoseLandmarkType.RIGHT_WRIST)
    left_shoulder = pose.get(PoseLandmarkType.LEFT_SHOULDER)
    right_shoulder = pose.get(PoseLandmarkType.RIGHT_SHOULDER)

    if left_wrist and right_wrist and left_shoulder and right_shoulder:
        if left_wrist.y < left_shoulder.y and right_wrist.y < right_shoulder.y:
            return PoseLabel.HANDS_UP
        return PoseLabel.NORMAL
    return PoseLabel.POSE_DETECTED
