from __future__ import annotations

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from posecam.core.config import Settings
from posecam.vision.camera import (
    CameraBackend,
    CameraController,
    CameraDescription,
    CameraError,
    LensDirection,
    ResolutionPreset,
)
from posecam.vision.detector import PoseDetector
from posecam.vision.frame_converter import bgr_to_yuv420_frame
from posecam.vision.permissions import PermissionHandler, PermissionStatus
from posecam.vision.pipeline import CameraScreenController
from posecam.vision.types import InputImage, Pose, PoseLandmarkType, Size


class FakePermissions(PermissionHandler):
    def __init__(self, status: PermissionStatus = PermissionStatus.GRANTED) -> None:
        self.status = status
        self.requests = 0

    async def request_camera(self) -> PermissionStatus:
        self.requests += 1
        return self.status


class FakeCameraController(CameraController):
    """Frames are fed through ``frames``; nothing arrives unless a test puts one.

    An exception put on the queue is raised from the read.
    """

    def __init__(self, description, preset, fail: bool = False) -> None:
        super().__init__(description, preset)
        self.fail = fail
        self.frames: "asyncio.Queue[np.ndarray]" = asyncio.Queue()
        self.disposed = False

    async def initialize(self) -> None:
        if self.fail:
            raise CameraError("camera busy")
        width, height = self.preset.value
        self.preview_size = Size(float(width), float(height))

    async def _read_frame(self) -> Optional[np.ndarray]:
        item = await self.frames.get()
        if isinstance(item, Exception):
            raise item
        return item

    def _release(self) -> None:
        self.disposed = True


class FakeCameraBackend(CameraBackend):
    def __init__(self, cameras: Optional[List[CameraDescription]] = None, fail: bool = False) -> None:
        self.cameras = cameras if cameras is not None else [
            CameraDescription("front", 1, LensDirection.FRONT, 270),
            CameraDescription("back", 0, LensDirection.BACK, 90),
        ]
        self.fail = fail
        self.created: List[FakeCameraController] = []

    async def available_cameras(self) -> List[CameraDescription]:
        return list(self.cameras)

    def create_controller(self, description, preset) -> CameraController:
        controller = FakeCameraController(description, preset, fail=self.fail)
        self.created.append(controller)
        return controller


class GatedDetector(PoseDetector):
    """Blocks each call until ``release`` is set; returns queued results or raises."""

    def __init__(self, results: Optional[list] = None, gated: bool = True) -> None:
        self.results = list(results or [])
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        if not gated:
            self.release.set()
        self.calls = 0
        self.images: List[InputImage] = []
        self.closed = False

    async def process_image(self, image: InputImage) -> List[Pose]:
        self.calls += 1
        self.images.append(image)
        self.entered.set()
        await self.release.wait()
        outcome = self.results.pop(0) if self.results else []
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


def hands_up_pose() -> Pose:
    return Pose.from_points(
        {
            PoseLandmarkType.LEFT_WRIST: (100, 50),
            PoseLandmarkType.RIGHT_WRIST: (300, 50),
            PoseLandmarkType.LEFT_SHOULDER: (120, 200),
            PoseLandmarkType.RIGHT_SHOULDER: (280, 200),
        }
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(camera_fps=200, overlay_apply_sensor_rotation=False)


@pytest.fixture
def frame():
    return bgr_to_yuv420_frame(np.full((48, 64, 3), 128, dtype=np.uint8))


@pytest.fixture
def make_controller(settings):
    def _make(
        detector: Optional[PoseDetector] = None,
        permissions: Optional[PermissionHandler] = None,
        cameras: Optional[CameraBackend] = None,
        **overrides,
    ) -> CameraScreenController:
        cfg = settings.model_copy(update=overrides) if overrides else settings
        return CameraScreenController(
            permissions or FakePermissions(),
            cameras or FakeCameraBackend(),
            detector or GatedDetector(gated=False),
            cfg,
            preset=ResolutionPreset.LOW,
        )

    return _make


@pytest.fixture
def fakes():
    """Namespace with the fake classes and pose builders."""

    class _Fakes:
        Permissions = FakePermissions
        CameraBackend = FakeCameraBackend
        Detector = GatedDetector
        hands_up_pose = staticmethod(hands_up_pose)

    return _Fakes
