from __future__ import annotations

import asyncio

import numpy as np
import pytest
from loguru import logger

from posecam.vision.camera import (
    CameraDescription,
    CameraError,
    LensDirection,
    MockCameraBackend,
    OpenCVCameraController,
    ResolutionPreset,
    select_camera,
)


def test_select_prefers_back_camera():
    cameras = [
        CameraDescription("front", 1, LensDirection.FRONT),
        CameraDescription("usb", 2, LensDirection.EXTERNAL),
        CameraDescription("back", 0, LensDirection.BACK),
    ]
    assert select_camera(cameras).name == "back"
    assert select_camera(cameras, LensDirection.FRONT).name == "front"


def test_select_falls_back_to_external():
    cameras = [
        CameraDescription("front", 1, LensDirection.FRONT),
        CameraDescription("usb", 2, LensDirection.EXTERNAL),
    ]
    assert select_camera(cameras).name == "usb"


def test_select_without_match_raises():
    with pytest.raises(CameraError):
        select_camera([CameraDescription("front", 1, LensDirection.FRONT)])
    with pytest.raises(CameraError):
        select_camera([])


def test_resolution_presets():
    assert ResolutionPreset.from_name("medium").value == (720, 480)
    assert ResolutionPreset.from_name(" HIGH ").value == (1280, 720)
    with pytest.raises(ValueError):
        ResolutionPreset.from_name("ultra")


@pytest.mark.asyncio
async def test_mock_camera_streams_yuv_frames(settings):
    backend = MockCameraBackend(settings)
    description = select_camera(await backend.available_cameras())
    assert description.name == "mock-back"
    camera = backend.create_controller(description, ResolutionPreset.LOW)

    with pytest.raises(CameraError):
        await camera.start_image_stream(lambda frame: None)

    await camera.initialize()
    received = []
    got_two = asyncio.Event()

    async def on_frame(frame):
        received.append(frame)
        if len(received) >= 2:
            got_two.set()

    await camera.start_image_stream(on_frame)
    with pytest.raises(CameraError):
        await camera.start_image_stream(on_frame)
    await asyncio.wait_for(got_two.wait(), timeout=2.0)
    await camera.dispose()
    assert not camera.is_streaming

    frame = received[0]
    assert (frame.width, frame.height) == (320, 240)
    assert len(frame.planes) == 3
    assert frame.preview.shape == (240, 320, 3)


class _FlakyCapture:
    def __init__(self, results) -> None:
        self.results = list(results)

    def read(self):
        return self.results.pop(0)


@pytest.mark.asyncio
async def test_repeated_read_failures_warn_once():
    camera = OpenCVCameraController(CameraDescription("usb", 0, LensDirection.EXTERNAL), ResolutionPreset.LOW)
    image = np.zeros((4, 4, 3), dtype=np.uint8)
    camera._cap = _FlakyCapture([(False, None)] * 5 + [(True, image), (False, None)])
    messages = []
    sink_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="INFO")
    try:
        for _ in range(5):
            assert await camera._read_frame() is None
        assert await camera._read_frame() is image
        assert await camera._read_frame() is None
    finally:
        logger.remove(sink_id)
    failures = [m for m in messages if m.startswith("Camera read failed")]
    assert len(failures) == 2
    assert "Camera reads recovered" in messages
