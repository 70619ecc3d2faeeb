"""Camera screen controller: permission, camera, detection loop and metrics."""
from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from statistics import median
from typing import List, Optional, Tuple

import numpy as np
from loguru import logger

from posecam.core.config import Settings, get_settings
from posecam.vision.camera import (
    CameraBackend,
    CameraController,
    LensDirection,
    ResolutionPreset,
    select_camera,
)
from posecam.vision.classifier import PoseLabel, classify_pose
from posecam.vision.detector import PoseDetector
from posecam.vision.frame_converter import convert_to_input_image, input_rotation_for
from posecam.vision.overlay import rotation_angle_for
from posecam.vision.permissions import PermissionHandler, PermissionStatus
from posecam.vision.types import CameraFrame, InputImageRotation, Pose, Size


class ScreenState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    PERMISSION_DENIED = "permission_denied"
    PERMISSION_RESTRICTED = "permission_restricted"


class InFlightToken:
    """Proof that the holder owns the single detection slot."""

    def __init__(self, guard: "InFlightGuard") -> None:
        self._guard = guard
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self._guard._release(self)


class InFlightGuard:
    """Single-slot guard: acquire or skip, never queue.

    Only touched from the event loop thread, so no lock is needed.
    """

    def __init__(self) -> None:
        self._token: Optional[InFlightToken] = None
        self.dropped = 0

    @property
    def busy(self) -> bool:
        return self._token is not None

    def try_acquire(self) -> Optional[InFlightToken]:
        if self._token is not None:
            self.dropped += 1
            return None
        self._token = InFlightToken(self)
        return self._token

    def _release(self, token: InFlightToken) -> None:
        if self._token is token:
            self._token = None


@dataclass(frozen=True)
class ScreenSnapshot:
    """Immutable view of the controller for the UI thread."""

    state: ScreenState = ScreenState.UNINITIALIZED
    poses: Tuple[Pose, ...] = ()
    label: PoseLabel = PoseLabel.NO_POSE
    preview_size: Optional[Size] = None
    preview: Optional[np.ndarray] = field(default=None, compare=False, repr=False)
    overlay_rotation: float = 0.0
    fps: float = 0.0
    latency_ms_p50: float = 0.0
    latency_ms_p95: float = 0.0
    frames_processed: int = 0
    frames_dropped: int = 0


class CameraScreenController:
    """Owns the camera and detector for one screen lifetime.

    States go ``UNINITIALIZED -> INITIALIZING -> READY``; a denied or
    restricted permission ends in the matching terminal state. Resources are
    injected and released by :meth:`dispose` (or by leaving ``async with``).
    """

    def __init__(
        self,
        permissions: PermissionHandler,
        cameras: CameraBackend,
        detector: PoseDetector,
        settings: Settings | None = None,
        *,
        preset: Optional[ResolutionPreset] = None,
        preferred_lens: LensDirection = LensDirection.BACK,
    ) -> None:
        self.settings = settings or get_settings()
        self.permissions = permissions
        self.cameras = cameras
        self.detector = detector
        self.preset = preset or ResolutionPreset.from_name(self.settings.camera_resolution)
        self.preferred_lens = preferred_lens

        self.state = ScreenState.UNINITIALIZED
        self.camera: Optional[CameraController] = None
        self.poses: List[Pose] = []
        self.preview_size: Optional[Size] = None
        self._guard = InFlightGuard()
        self._mounted = False
        self._disposed = False
        self._latest_preview: Optional[np.ndarray] = None
        self._frames_processed = 0
        self._latencies: deque[float] = deque(maxlen=max(5, self.settings.pose_latency_window))
        self._fps_window: deque[float] = deque(maxlen=60)
        self._last_result_ts: Optional[float] = None
        self._published_poses_source: Optional[List[Pose]] = None
        self._published_poses: Tuple[Pose, ...] = ()
        self._snapshot = ScreenSnapshot()

    # --- lifecycle ------------------------------------------------------

    async def __aenter__(self) -> "CameraScreenController":
        try:
            await self.start()
        except BaseException:
            await self.dispose()
            raise
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.dispose()

    async def start(self) -> None:
        """Request permission, open the rear camera and start streaming.

        Camera errors propagate and leave the state at ``INITIALIZING``.
        """
        if self.state is not ScreenState.UNINITIALIZED:
            raise RuntimeError(f"Screen already started (state={self.state.value})")
        self._mounted = True
        self._set_state(ScreenState.INITIALIZING)

        status = await self.permissions.request_camera()
        if status is PermissionStatus.DENIED:
            logger.warning("Camera permission denied")
            self._set_state(ScreenState.PERMISSION_DENIED)
            return
        elif status is PermissionStatus.RESTRICTED:
            logger.warning("Camera permission restricted")
            self._set_state(ScreenState.PERMISSION_RESTRICTED)
            return
        elif status is PermissionStatus.GRANTED:
            logger.info("Camera permission granted")

        cameras = await self.cameras.available_cameras()
        if not self._mounted:
            return
        description = select_camera(cameras, self.preferred_lens)
        self.camera = self.cameras.create_controller(description, self.preset)
        await self.camera.initialize()
        if not self._mounted:
            # Disposed while the device was opening; release what initialize() acquired
            await self.camera.dispose()
            return

        self.preview_size = self.camera.preview_size
        await self.camera.start_image_stream(self.process_frame)
        self._set_state(ScreenState.READY)
        logger.info(
            "Screen ready: camera='{}' preview={}x{} orientation={}",
            description.name,
            int(self.preview_size.width),
            int(self.preview_size.height),
            description.sensor_orientation,
        )

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._mounted = False
        try:
            if self.camera is not None:
                await self.camera.dispose()
        finally:
            self.detector.close()
        logger.info(
            "Screen disposed (processed={} dropped={})",
            self._frames_processed,
            self._guard.dropped,
        )

    @property
    def mounted(self) -> bool:
        return self._mounted

    # --- frame stream ---------------------------------------------------

    async def process_frame(self, frame: CameraFrame) -> None:
        """Frame callback: run detection unless one is already in flight."""
        if not self._mounted:
            return
        if frame.preview is not None:
            self._latest_preview = frame.preview
        token = self._guard.try_acquire()
        if token is None:
            self._publish()
            return
        try:
            image = convert_to_input_image(frame, self.input_rotation())
            if image is None:
                return
            start = time.perf_counter()
            poses = await self.detector.process_image(image)
            if not self._mounted:
                return
            self._latencies.append((time.perf_counter() - start) * 1000.0)
            self._update_fps()
            self._frames_processed += 1
            self.poses = poses
        except Exception as exc:
            logger.error("Processing error: {}", exc)
        finally:
            token.release()
            if self._mounted:
                self._publish()

    @property
    def busy(self) -> bool:
        return self._guard.busy

    @property
    def frames_dropped(self) -> int:
        return self._guard.dropped

    # --- derived values -------------------------------------------------

    def input_rotation(self) -> InputImageRotation:
        orientation = self.camera.description.sensor_orientation if self.camera else 0
        return input_rotation_for(orientation)

    def overlay_rotation(self) -> float:
        orientation = self.camera.description.sensor_orientation if self.camera else 0
        return rotation_angle_for(orientation, self.settings.overlay_apply_sensor_rotation)

    @property
    def label(self) -> PoseLabel:
        return classify_pose(self.poses)

    @property
    def snapshot(self) -> ScreenSnapshot:
        return self._snapshot

    def get_latency_p50_p95_ms(self) -> Tuple[float, float]:
        """Return detection latency percentiles in milliseconds."""
        if not self._latencies:
            return 0.0, 0.0
        data = list(self._latencies)
        try:
            p50 = float(np.percentile(data, 50))
            p95 = float(np.percentile(data, 95))
        except Exception:
            p50 = float(median(data))
            p95 = float(sorted(data)[max(0, int(len(data) * 95 / 100) - 1)])
        return p50, p95

    def get_fps_avg(self) -> float:
        if not self._fps_window:
            return 0.0
        return sum(self._fps_window) / len(self._fps_window)

    # --- internal helpers -----------------------------------------------

    def _set_state(self, state: ScreenState) -> None:
        self.state = state
        self._publish()

    def _update_fps(self) -> None:
        now = time.perf_counter()
        if self._last_result_ts is not None:
            delta = now - self._last_result_ts
            if delta > 0:
                self._fps_window.append(1.0 / delta)
        self._last_result_ts = now

    def _publish(self) -> None:
        # Reuse the tuple while the pose list is unchanged so painters can compare by identity
        if self._published_poses_source is not self.poses:
            self._published_poses_source = self.poses
            self._published_poses = tuple(self.poses)
        p50, p95 = self.get_latency_p50_p95_ms()
        self._snapshot = replace(
            self._snapshot,
            state=self.state,
            poses=self._published_poses,
            label=self.label,
            preview_size=self.preview_size,
            preview=self._latest_preview,
            overlay_rotation=self.overlay_rotation(),
            fps=round(self.get_fps_avg(), 2),
            latency_ms_p50=round(p50, 2),
            latency_ms_p95=round(p95, 2),
            frames_processed=self._frames_processed,
            frames_dropped=self._guard.dropped,
        )


class BackgroundPipeline:
    """Runs a controller on its own event loop thread for the Qt UI."""

    def __init__(self, controller: CameraScreenController) -> None:
        self.controller = controller
        self.start_error: Optional[BaseException] = None
        self._loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    @property
    def snapshot(self) -> ScreenSnapshot:
        return self.controller.snapshot

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="PosePipeline", daemon=True)
        self._thread.start()
        logger.info("Pose pipeline thread started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread or not self._thread.is_alive():
            return
        future = asyncio.run_coroutine_threadsafe(self.controller.dispose(), self._loop)
        try:
            future.result(timeout=timeout)
        except Exception as exc:
            logger.warning("Error disposing screen: {}", exc)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)
        logger.info("Pose pipeline thread stopped")

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.create_task(self._start_controller())
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.close()

    async def _start_controller(self) -> None:
        try:
            await self.controller.start()
        except Exception as exc:
            # The screen keeps showing its loading state
            self.start_error = exc
            logger.opt(exception=exc).error("Camera initialization failed: {}", exc)
