"""Camera access checks.

Desktop platforms have no runtime permission prompt, so access is derived from
policy (``CAMERA_RESTRICTED``) and from whether the video device nodes are
readable by the current user.
"""
from __future__ import annotations

import glob
import os
import sys
from abc import ABC, abstractmethod
from enum import Enum

from loguru import logger

from posecam.core.config import Settings, get_settings


class PermissionStatus(Enum):
    GRANTED = "granted"
    DENIED = "denied"
    RESTRICTED = "restricted"


class PermissionHandler(ABC):
    @abstractmethod
    async def request_camera(self) -> PermissionStatus: ...


class DevicePermissionHandler(PermissionHandler):
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def request_camera(self) -> PermissionStatus:
        if self.settings.camera_restricted:
            logger.warning("Camera access restricted by configuration (CAMERA_RESTRICTED=1)")
            return PermissionStatus.RESTRICTED
        if not sys.platform.startswith("linux"):
            # macOS/Windows prompt on first open; treat as granted here
            return PermissionStatus.GRANTED
        devices = sorted(glob.glob("/dev/video*"))
        if devices and not any(os.access(dev, os.R_OK) for dev in devices):
            logger.warning("No readable video device among {}", devices)
            return PermissionStatus.DENIED
        return PermissionStatus.GRANTED


class GrantedPermissionHandler(PermissionHandler):
    """Always grants; used with the mock camera."""

    async def request_camera(self) -> PermissionStatus:
        return PermissionStatus.GRANTED
