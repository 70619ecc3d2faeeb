"""Camera enumeration, selection and push-style frame streaming."""
from __future__ import annotations

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

import cv2
import numpy as np
from loguru import logger

from posecam.core.config import Settings, get_settings
from posecam.vision.frame_converter import bgr_to_yuv420_frame
from posecam.vision.types import CameraFrame, Size

FrameCallback = Callable[[CameraFrame], Awaitable[None]]


class CameraError(RuntimeError):
    """Camera could not be found, opened or initialized."""


class LensDirection(Enum):
    FRONT = "front"
    BACK = "back"
    EXTERNAL = "external"


class ResolutionPreset(Enum):
    LOW = (320, 240)
    MEDIUM = (720, 480)
    HIGH = (1280, 720)

    @classmethod
    def from_name(cls, name: str) -> "ResolutionPreset":
        try:
            return cls[name.strip().upper()]
        except KeyError as exc:
            raise ValueError(f"Unknown resolution preset: {name!r}") from exc


@dataclass(frozen=True)
class CameraDescription:
    name: str
    index: int
    lens_direction: LensDirection
    sensor_orientation: int = 0


def select_camera(
    cameras: List[CameraDescription],
    preferred: LensDirection = LensDirection.BACK,
) -> CameraDescription:
    """Pick the first camera facing ``preferred``.

    Desktop webcams report no facing (``EXTERNAL``); the first of those is used
    when no camera matches.
    """
    for camera in cameras:
        if camera.lens_direction is preferred:
            return camera
    for camera in cameras:
        if camera.lens_direction is LensDirection.EXTERNAL:
            return camera
    raise CameraError(f"No {preferred.value}-facing camera among {len(cameras)} device(s)")


class CameraController(ABC):
    """One opened camera: initialize, stream frames to a callback, dispose."""

    def __init__(self, description: CameraDescription, preset: ResolutionPreset) -> None:
        self.description = description
        self.preset = preset
        self.preview_size: Optional[Size] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._callbacks: Set[asyncio.Task] = set()

    @property
    def is_initialized(self) -> bool:
        return self.preview_size is not None

    @property
    def is_streaming(self) -> bool:
        return self._stream_task is not None and not self._stream_task.done()

    @abstractmethod
    async def initialize(self) -> None: ...

    @abstractmethod
    async def _read_frame(self) -> Optional[np.ndarray]: ...

    def _release(self) -> None:
        pass

    async def start_image_stream(self, callback: FrameCallback) -> None:
        if not self.is_initialized:
            raise CameraError("Camera must be initialized before streaming")
        if self.is_streaming:
            raise CameraError("Image stream already started")
        self._stream_task = asyncio.create_task(self._stream_loop(callback), name="camera-stream")

    async def stop_image_stream(self) -> None:
        task, self._stream_task = self._stream_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.warning("Image stream ended with error: {}", exc)

    async def dispose(self) -> None:
        try:
            await self.stop_image_stream()
        finally:
            self._release()
        logger.info("Camera '{}' released", self.description.name)

    async def _stream_loop(self, callback: FrameCallback) -> None:
        while True:
            image = await self._read_frame()
            if image is None:
                await asyncio.sleep(0.01)
                continue
            try:
                frame = bgr_to_yuv420_frame(image)
            except Exception as exc:
                logger.warning("Frame conversion error: {}", exc)
                continue
            # Frames are pushed without waiting for the previous callback.
            task = asyncio.create_task(callback(frame))
            self._callbacks.add(task)
            task.add_done_callback(self._callbacks.discard)


class OpenCVCameraController(CameraController):
    """``cv2.VideoCapture`` device; blocking reads run in the default executor."""

    def __init__(self, description: CameraDescription, preset: ResolutionPreset, fps: int = 30) -> None:
        super().__init__(description, preset)
        self.fps = fps
        self._cap = None
        self._read_failing = False

    async def initialize(self) -> None:
        loop = asyncio.get_running_loop()
        self._cap = await loop.run_in_executor(None, self._open)
        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.preview_size = Size(float(width), float(height))
        logger.info(
            "Camera '{}' initialized at {}x{} (requested {}x{})",
            self.description.name, width, height, *self.preset.value,
        )

    def _open(self):  # pragma: no cover - hardware path
        cap = cv2.VideoCapture(int(self.description.index))
        if not cap or not cap.isOpened():
            raise CameraError(f"Camera {self.description.index} could not be opened")
        width, height = self.preset.value
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        cap.set(cv2.CAP_PROP_FPS, int(self.fps))
        # Keep only the newest frame in the driver queue
        try:
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        except Exception:
            pass
        return cap

    async def _read_frame(self) -> Optional[np.ndarray]:
        loop = asyncio.get_running_loop()
        ok, frame = await loop.run_in_executor(None, self._cap.read)
        if not ok:
            if not self._read_failing:
                logger.warning("Camera read failed; retrying until frames arrive again")
            self._read_failing = True
            return None
        if self._read_failing:
            logger.info("Camera reads recovered")
            self._read_failing = False
        return frame

    def _release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class MockCameraController(CameraController):
    """Synthetic frames at a fixed rate, for running without hardware."""

    def __init__(self, description: CameraDescription, preset: ResolutionPreset, fps: int = 30) -> None:
        super().__init__(description, preset)
        self.fps = max(1, int(fps))
        self._progress = 0.0

    async def initialize(self) -> None:
        width, height = self.preset.value
        self.preview_size = Size(float(width), float(height))

    async def _read_frame(self) -> Optional[np.ndarray]:
        await asyncio.sleep(1.0 / self.fps)
        self._progress = (self._progress + 0.12) % (2 * math.pi)
        depth = (math.sin(self._progress) + 1) / 2
        width, height = self.preset.value
        frame = np.zeros((height, width, 3), dtype=np.uint8)
        gradient = int(60 + depth * 140)
        frame[:, :] = (25, 25 + gradient, 40 + gradient)
        cv2.putText(frame, "MOCK", (20, height - 20), cv2.FONT_HERSHEY_SIMPLEX, 1.0, (255, 255, 255), 2, cv2.LINE_AA)
        return frame


class CameraBackend(ABC):
    @abstractmethod
    async def available_cameras(self) -> List[CameraDescription]: ...

    @abstractmethod
    def create_controller(self, description: CameraDescription, preset: ResolutionPreset) -> CameraController: ...


class OpenCVCameraBackend(CameraBackend):
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def available_cameras(self) -> List[CameraDescription]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._probe)

    def _probe(self) -> List[CameraDescription]:  # pragma: no cover - hardware path
        # Probe the configured index first so it wins selection
        first = int(self.settings.camera_index)
        indices = [first] + [i for i in range(int(self.settings.camera_max_probe)) if i != first]
        cameras: List[CameraDescription] = []
        for index in indices:
            cap = cv2.VideoCapture(index)
            try:
                if cap is not None and cap.isOpened():
                    cameras.append(
                        CameraDescription(
                            name=f"camera{index}",
                            index=index,
                            lens_direction=LensDirection.EXTERNAL,
                            sensor_orientation=int(self.settings.camera_sensor_orientation),
                        )
                    )
            finally:
                if cap is not None:
                    cap.release()
        logger.info("Found {} camera(s): {}", len(cameras), [c.name for c in cameras])
        return cameras

    def create_controller(self, description: CameraDescription, preset: ResolutionPreset) -> CameraController:
        return OpenCVCameraController(description, preset, fps=self.settings.camera_fps)


class MockCameraBackend(CameraBackend):
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def available_cameras(self) -> List[CameraDescription]:
        return [
            CameraDescription("mock-front", 1, LensDirection.FRONT, 270),
            CameraDescription("mock-back", 0, LensDirection.BACK, int(self.settings.camera_sensor_orientation)),
        ]

    def create_controller(self, description: CameraDescription, preset: ResolutionPreset) -> CameraController:
        return MockCameraController(description, preset, fps=self.settings.camera_fps)
