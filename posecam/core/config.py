"""Core configuration and constants.

Uses environment variables for configuration. Follows PEP8 and Google style docstrings.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal
import os

from pydantic import BaseModel


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Window title.
        environment: Runtime environment.
        log_level: Logging level string.
        log_file: Optional path of a rotating log file.
        camera_index: Preferred OpenCV device index.
        camera_max_probe: How many device indices are probed when enumerating.
        camera_resolution: Resolution preset used to open the stream.
        camera_sensor_orientation: Sensor mounting angle reported for the camera.
        camera_restricted: Camera access disabled by policy.
        vision_mock: Use the synthetic camera and detector.
        overlay_offset_x: Horizontal offset of the overlay translation.
        overlay_offset_y: Vertical offset of the overlay translation.
        overlay_apply_sensor_rotation: Rotate the overlay by the sensor orientation.
    """

    app_name: str = "Detector de Pose em Tempo Real"
    environment: Literal["dev", "prod", "test"] = "dev"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str | None = os.getenv("LOG_FILE") or None

    # Camera
    camera_index: int = int(os.getenv("CAMERA_INDEX", "0"))
    camera_max_probe: int = int(os.getenv("CAMERA_MAX_PROBE", "4"))
    camera_resolution: Literal["low", "medium", "high"] = os.getenv("CAMERA_RESOLUTION", "medium")  # type: ignore[assignment]
    camera_fps: int = int(os.getenv("CAMERA_FPS", "30"))
    camera_sensor_orientation: int = int(os.getenv("CAMERA_SENSOR_ORIENTATION", "0"))
    camera_restricted: bool = _env_flag("CAMERA_RESTRICTED")

    # Pose detection
    model_complexity: int = int(os.getenv("MODEL_COMPLEXITY", "1"))
    min_detection_confidence: float = float(os.getenv("MIN_DETECTION_CONFIDENCE", "0.5"))
    min_tracking_confidence: float = float(os.getenv("MIN_TRACKING_CONFIDENCE", "0.5"))
    landmark_min_likelihood: float = float(os.getenv("LANDMARK_MIN_LIKELIHOOD", "0"))  # 0 keeps all 33
    vision_mock: bool = _env_flag("VISION_MOCK")
    pose_latency_window: int = int(os.getenv("POSE_LATENCY_WINDOW", "90"))

    # Overlay
    overlay_offset_x: float = float(os.getenv("OVERLAY_OFFSET_X", "20"))
    overlay_offset_y: float = float(os.getenv("OVERLAY_OFFSET_Y", "-55"))
    overlay_apply_sensor_rotation: bool = _env_flag("OVERLAY_APPLY_SENSOR_ROTATION")

    # UI
    ui_poll_interval_ms: int = int(os.getenv("UI_POLL_INTERVAL_MS", "33"))  # ~30 Hz


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
