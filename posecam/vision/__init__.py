"""Vision package exports."""

from .classifier import PoseLabel, classify_pose
from .pipeline import CameraScreenController, ScreenSnapshot, ScreenState
from .types import Pose, PoseLandmark, PoseLandmarkType

__all__ = [
    "CameraScreenController",
    "ScreenSnapshot",
    "ScreenState",
    "Pose",
    "PoseLandmark",
    "PoseLandmarkType",
    "PoseLabel",
    "classify_pose",
]
