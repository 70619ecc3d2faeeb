"""Frame, landmark and pose types shared by the camera, detector and overlay."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np


class PoseLandmarkType(Enum):
    """The 33 body keypoints of the MediaPipe pose topology, by model index."""

    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    LEFT_MOUTH = 9
    RIGHT_MOUTH = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


@dataclass(frozen=True)
class PoseLandmark:
    """A single keypoint in pixel coordinates of the detector input image."""

    type: PoseLandmarkType
    x: float
    y: float
    z: float = 0.0
    likelihood: float = 1.0  # not used by the classifier or the overlay


@dataclass(frozen=True)
class Pose:
    """All landmarks detected for one person in one frame."""

    landmarks: Dict[PoseLandmarkType, PoseLandmark] = field(default_factory=dict)

    def get(self, landmark_type: PoseLandmarkType) -> Optional[PoseLandmark]:
        return self.landmarks.get(landmark_type)

    @classmethod
    def from_points(cls, points: Dict[PoseLandmarkType, tuple]) -> "Pose":
        """Build a pose from ``{type: (x, y)}``; handy for fakes and tests."""
        return cls(
            landmarks={
                lt: PoseLandmark(type=lt, x=float(xy[0]), y=float(xy[1]))
                for lt, xy in points.items()
            }
        )


@dataclass(frozen=True)
class Size:
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def aspect_ratio(self) -> float:
        if self.height == 0:
            return 0.0
        return self.width / self.height


ZERO_SIZE = Size(0.0, 0.0)


class InputImageRotation(Enum):
    ROTATION_0 = 0
    ROTATION_90 = 90
    ROTATION_180 = 180
    ROTATION_270 = 270

    @classmethod
    def from_raw_value(cls, degrees: int) -> Optional["InputImageRotation"]:
        """Return the rotation for an exact sensor angle, ``None`` for anything else."""
        for member in cls:
            if member.value == degrees:
                return member
        return None


class InputImageFormat(Enum):
    NV21 = "nv21"
    YUV420 = "yuv420"


@dataclass(frozen=True)
class Plane:
    """One pixel plane of a camera frame.

    ``bytes_per_pixel`` is 1 for planar chroma and 2 for semi-planar chroma,
    where the plane buffer holds interleaved samples of both chroma channels.
    """

    bytes: bytes
    bytes_per_row: int
    bytes_per_pixel: int = 1


@dataclass(frozen=True)
class CameraFrame:
    """Raw YUV 4:2:0 frame as delivered by the camera stream.

    ``planes`` are ordered Y, U (Cb), V (Cr). ``preview`` is the BGR image the
    UI displays; it is never sent to the detector.
    """

    width: int
    height: int
    planes: List[Plane]
    format: InputImageFormat = InputImageFormat.YUV420
    preview: Optional[np.ndarray] = None


@dataclass(frozen=True)
class InputImageMetadata:
    size: Size
    rotation: InputImageRotation
    format: InputImageFormat
    bytes_per_row: int


@dataclass(frozen=True)
class InputImage:
    """Single-buffer frame handed to the pose detector for one call."""

    bytes: bytes
    metadata: InputImageMetadata
