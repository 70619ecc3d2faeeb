"""Entry point: Qt overlay (default) or headless CLI mode."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
from loguru import logger

from posecam.core.config import Settings, get_settings
from posecam.core.logging_config import setup_logging
from posecam.vision.camera import CameraBackend, MockCameraBackend, OpenCVCameraBackend
from posecam.vision.detector import MockPoseDetector, create_detector
from posecam.vision.overlay import OpenCVCanvas, PosePainter
from posecam.vision.permissions import DevicePermissionHandler, GrantedPermissionHandler, PermissionHandler
from posecam.vision.pipeline import CameraScreenController, ScreenSnapshot, ScreenState
from posecam.vision.types import Size


def build_controller(settings: Settings, *, mock: bool = False) -> CameraScreenController:
    """Wire the permission handler, camera backend and detector for this run."""
    mock = mock or settings.vision_mock
    if mock:
        permissions: PermissionHandler = GrantedPermissionHandler()
        cameras: CameraBackend = MockCameraBackend(settings)
        detector = MockPoseDetector()
        logger.info("Running with mock camera and detector")
    else:
        permissions = DevicePermissionHandler(settings)
        cameras = OpenCVCameraBackend(settings)
        detector = create_detector(settings)
    return CameraScreenController(permissions, cameras, detector, settings)


def render_snapshot(snapshot: ScreenSnapshot, settings: Settings) -> Optional[np.ndarray]:
    """Draw the overlay on a copy of the snapshot preview; ``None`` without a preview."""
    if snapshot.preview is None or snapshot.preview_size is None:
        return None
    image = snapshot.preview.copy()
    height, width = image.shape[:2]
    PosePainter(
        poses=snapshot.poses,
        preview_size=snapshot.preview_size,
        screen_size=Size(float(width), float(height)),
        rotation=snapshot.overlay_rotation,
        offset=(settings.overlay_offset_x, settings.overlay_offset_y),
    ).paint(OpenCVCanvas(image))
    cv2.putText(image, snapshot.label.text, (16, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA)
    return image


async def cli_loop(
    controller: CameraScreenController,
    settings: Settings,
    *,
    snapshot_path: Optional[Path] = None,
    interval: float = 0.2,
    max_ticks: Optional[int] = None,
) -> None:
    """Print the label whenever it changes; optionally save one annotated frame and stop."""
    async with controller:
        last_label = None
        ticks = 0
        while controller.state is ScreenState.READY:
            snapshot = controller.snapshot
            if snapshot.label is not last_label:
                last_label = snapshot.label
                print(
                    f"[{snapshot.label.value}] {snapshot.label.text} | "
                    f"fps={snapshot.fps} p50={snapshot.latency_ms_p50}ms "
                    f"processed={snapshot.frames_processed} dropped={snapshot.frames_dropped}"
                )
            if snapshot_path is not None and snapshot.frames_processed > 0:
                image = render_snapshot(snapshot, settings)
                if image is not None:
                    snapshot_path.parent.mkdir(parents=True, exist_ok=True)
                    if not cv2.imwrite(str(snapshot_path), image):
                        raise OSError(f"Could not write {snapshot_path}")
                    logger.info("Snapshot written to {}", snapshot_path)
                    return
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                return
            await asyncio.sleep(interval)
        if controller.state is not ScreenState.READY:
            print(f"Camera unavailable: {controller.state.value}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Real-time pose detector with skeleton overlay")
    parser.add_argument("--cli", action="store_true", help="Run headless and print the pose label")
    parser.add_argument("--mock", action="store_true", help="Use a synthetic camera and detector")
    parser.add_argument("--debug", action="store_true", help="Show FPS, latency and dropped frames")
    parser.add_argument("--snapshot", type=Path, default=None, help="CLI mode: save one annotated frame and exit")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging("DEBUG" if args.debug else settings.log_level, settings.log_file)
    controller = build_controller(settings, mock=args.mock)

    if args.cli or args.snapshot:
        asyncio.run(cli_loop(controller, settings, snapshot_path=args.snapshot))
        return

    from posecam.gui.pose_window import PoseApp
    from posecam.vision.pipeline import BackgroundPipeline

    raise SystemExit(PoseApp().run(BackgroundPipeline(controller), settings, debug=args.debug))


if __name__ == "__main__":
    main()
