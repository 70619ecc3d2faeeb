"""Pose detector adapters.

The app only forwards frames and reads landmarks back; inference itself is
MediaPipe's job.
"""
from __future__ import annotations

import asyncio
import math
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from loguru import logger

from posecam.core.config import Settings, get_settings
from posecam.vision.frame_converter import nv21_to_rgb
from posecam.vision.types import InputImage, Pose, PoseLandmark, PoseLandmarkType


class PoseDetector(ABC):
    """Detector adapter interface: one formatted frame in, zero or more poses out."""

    @abstractmethod
    async def process_image(self, image: InputImage) -> List[Pose]: ...

    @abstractmethod
    def close(self) -> None: ...


class MediaPipePoseDetector(PoseDetector):
    """MediaPipe Pose, run on a dedicated worker thread.

    Notes:
    - MediaPipe returns normalized coordinates; they are scaled to the pixel
      size of the (rotated) input image.
    - ``visibility`` becomes the landmark likelihood.
    - MediaPipe Pose tracks a single person, so at most one pose is returned.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        try:
            import mediapipe as mp  # type: ignore
        except Exception as e:
            raise RuntimeError("MediaPipe is not installed. Install it with: pip install mediapipe") from e

        self._pose = mp.solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=int(self.settings.model_complexity),
            enable_segmentation=False,
            smooth_landmarks=True,
            min_detection_confidence=float(self.settings.min_detection_confidence),
            min_tracking_confidence=float(self.settings.min_tracking_confidence),
        )
        # The MediaPipe graph must not be entered from two threads at once
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mediapipe")
        self._closed = False

    async def process_image(self, image: InputImage) -> List[Pose]:
        if self._closed:
            raise RuntimeError("Detector is closed")
        rgb = nv21_to_rgb(image)
        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(self._executor, self._pose.process, rgb)
        height, width = int(rgb.shape[0]), int(rgb.shape[1])
        return self._to_poses(results, width, height)

    def _to_poses(self, results, width: int, height: int) -> List[Pose]:
        if not results or not getattr(results, "pose_landmarks", None):
            return []
        raw = results.pose_landmarks.landmark
        min_likelihood = float(self.settings.landmark_min_likelihood)
        landmarks = {}
        for landmark_type in PoseLandmarkType:
            p = raw[landmark_type.value]
            likelihood = float(getattr(p, "visibility", 0.0) or 0.0)
            if likelihood < min_likelihood:
                continue
            landmarks[landmark_type] = PoseLandmark(
                type=landmark_type,
                x=float(p.x) * width,
                y=float(p.y) * height,
                z=float(p.z) * width,
                likelihood=likelihood,
            )
        return [Pose(landmarks=landmarks)]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Queued behind any in-flight process() call on the same worker
        self._executor.submit(self._pose.close)
        self._executor.shutdown(wait=False)
        logger.info("MediaPipe pose detector closed")


# Skeleton in unit coordinates (x right, y down), arms hanging.
_MOCK_BODY = {
    PoseLandmarkType.NOSE: (0.50, 0.18),
    PoseLandmarkType.LEFT_SHOULDER: (0.42, 0.32),
    PoseLandmarkType.RIGHT_SHOULDER: (0.58, 0.32),
    PoseLandmarkType.LEFT_HIP: (0.45, 0.58),
    PoseLandmarkType.RIGHT_HIP: (0.55, 0.58),
    PoseLandmarkType.LEFT_KNEE: (0.45, 0.75),
    PoseLandmarkType.RIGHT_KNEE: (0.55, 0.75),
    PoseLandmarkType.LEFT_ANKLE: (0.45, 0.92),
    PoseLandmarkType.RIGHT_ANKLE: (0.55, 0.92),
}


class MockPoseDetector(PoseDetector):
    """Synthetic single-person detector; the arms swing above and below the shoulders."""

    def __init__(self, latency_s: float = 0.0) -> None:
        self.latency_s = latency_s
        self.calls = 0
        self._progress = 0.0
        self._closed = False

    async def process_image(self, image: InputImage) -> List[Pose]:
        if self._closed:
            raise RuntimeError("Detector is closed")
        self.calls += 1
        if self.latency_s:
            await asyncio.sleep(self.latency_s)
        self._progress = (self._progress + 0.08) % (2 * math.pi)
        lift = math.sin(self._progress)  # >0 raises the arms

        width = float(image.metadata.size.width)
        height = float(image.metadata.size.height)
        points = dict(_MOCK_BODY)
        for side, sx in (("LEFT", 0.42), ("RIGHT", 0.58)):
            outward = -1.0 if side == "LEFT" else 1.0
            points[PoseLandmarkType[f"{side}_ELBOW"]] = (sx + outward * 0.06, 0.42 - 0.22 * lift)
            points[PoseLandmarkType[f"{side}_WRIST"]] = (sx + outward * 0.08, 0.52 - 0.40 * lift)
        return [Pose.from_points({lt: (x * width, y * height) for lt, (x, y) in points.items()})]

    def close(self) -> None:
        self._closed = True


def create_detector(settings: Optional[Settings] = None) -> PoseDetector:
    settings = settings or get_settings()
    if settings.vision_mock:
        logger.info("Using mock pose detector (VISION_MOCK=1)")
        return MockPoseDetector()
    return MediaPipePoseDetector(settings)
