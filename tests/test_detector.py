from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest

from posecam.core.config import Settings
from posecam.vision.classifier import PoseLabel, classify_pose
from posecam.vision.detector import MediaPipePoseDetector, MockPoseDetector, create_detector
from posecam.vision.types import (
    InputImage,
    InputImageFormat,
    InputImageMetadata,
    InputImageRotation,
    PoseLandmarkType,
    Size,
)


def _image(width=640, height=480):
    return InputImage(
        bytes=b"",
        metadata=InputImageMetadata(
            size=Size(width, height),
            rotation=InputImageRotation.ROTATION_0,
            format=InputImageFormat.NV21,
            bytes_per_row=width,
        ),
    )


@pytest.mark.asyncio
async def test_mock_detector_alternates_hands_up_and_normal():
    detector = MockPoseDetector()
    labels = set()
    for _ in range(80):
        poses = await detector.process_image(_image())
        assert len(poses) == 1
        labels.add(classify_pose(poses))
    assert labels == {PoseLabel.HANDS_UP, PoseLabel.NORMAL}
    assert detector.calls == 80


@pytest.mark.asyncio
async def test_mock_detector_uses_pixel_coordinates():
    poses = await MockPoseDetector().process_image(_image(1000, 500))
    shoulder = poses[0].get(PoseLandmarkType.LEFT_SHOULDER)
    assert shoulder.x == pytest.approx(420)
    assert shoulder.y == pytest.approx(160)


@pytest.mark.asyncio
async def test_closed_mock_detector_raises():
    detector = MockPoseDetector()
    detector.close()
    with pytest.raises(RuntimeError):
        await detector.process_image(_image())


def test_create_detector_mock():
    assert isinstance(create_detector(Settings(vision_mock=True)), MockPoseDetector)


def _mediapipe_results(visibility=0.9):
    landmarks = [
        SimpleNamespace(x=i / 40.0, y=i / 80.0, z=-0.1, visibility=visibility)
        for i in range(33)
    ]
    landmarks[PoseLandmarkType.LEFT_WRIST.value].visibility = 0.1
    return SimpleNamespace(pose_landmarks=SimpleNamespace(landmark=landmarks))


def _bare_detector(settings: Settings) -> MediaPipePoseDetector:
    # Skip __init__ so no MediaPipe graph is built
    detector = MediaPipePoseDetector.__new__(MediaPipePoseDetector)
    detector.settings = settings
    return detector


def test_mediapipe_landmarks_are_scaled_to_pixels():
    detector = _bare_detector(Settings())
    poses = detector._to_poses(_mediapipe_results(), width=400, height=800)
    assert len(poses) == 1
    assert len(poses[0].landmarks) == 33
    wrist = poses[0].get(PoseLandmarkType.RIGHT_WRIST)
    assert wrist.x == pytest.approx(16 / 40.0 * 400)
    assert wrist.y == pytest.approx(16 / 80.0 * 800)
    assert wrist.likelihood == pytest.approx(0.9)


def test_mediapipe_low_likelihood_landmarks_are_dropped():
    detector = _bare_detector(Settings(landmark_min_likelihood=0.5))
    poses = detector._to_poses(_mediapipe_results(), width=400, height=800)
    assert PoseLandmarkType.LEFT_WRIST not in poses[0].landmarks
    assert classify_pose(poses) is PoseLabel.POSE_DETECTED


def test_mediapipe_without_detection_returns_empty():
    detector = _bare_detector(Settings())
    assert detector._to_poses(SimpleNamespace(pose_landmarks=None), 10, 10) == []
    assert detector._to_poses(None, 10, 10) == []


class _SlowGraph:
    """Stands in for ``mp.solutions.pose.Pose``; ``process`` blocks until released."""

    def __init__(self) -> None:
        self.events = []
        self.started = threading.Event()
        self.release = threading.Event()

    def process(self, rgb):
        self.events.append("process-start")
        self.started.set()
        self.release.wait(timeout=5)
        self.events.append("process-end")
        return None

    def close(self):
        self.events.append("close")


def test_mediapipe_close_waits_for_running_inference():
    detector = _bare_detector(Settings())
    graph = _SlowGraph()
    detector._pose = graph
    detector._executor = ThreadPoolExecutor(max_workers=1)
    detector._closed = False

    running = detector._executor.submit(graph.process, None)
    assert graph.started.wait(timeout=5)
    detector.close()
    assert graph.events == ["process-start"]

    graph.release.set()
    running.result(timeout=5)
    detector._executor.shutdown(wait=True)
    assert graph.events == ["process-start", "process-end", "close"]
    assert detector._closed
