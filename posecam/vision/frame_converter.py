"""YUV 4:2:0 camera frame to NV21 repacking."""
from __future__ import annotations

from typing import Optional

import cv2
import numpy as np
from loguru import logger

from posecam.vision.types import (
    CameraFrame,
    InputImage,
    InputImageFormat,
    InputImageMetadata,
    InputImageRotation,
    Plane,
    Size,
)


def input_rotation_for(sensor_orientation: int) -> InputImageRotation:
    """Map a sensor orientation in degrees to the detector rotation (0 when unknown)."""
    return InputImageRotation.from_raw_value(int(sensor_orientation)) or InputImageRotation.ROTATION_0


def _plane_samples(plane: Plane, width: int, height: int) -> np.ndarray:
    # Sample (r, c) lives at r * bytes_per_row + c * bytes_per_pixel; a short
    # buffer raises IndexError here.
    buf = np.frombuffer(plane.bytes, dtype=np.uint8)
    rows = np.arange(height, dtype=np.int64)[:, None] * int(plane.bytes_per_row)
    cols = np.arange(width, dtype=np.int64)[None, :] * int(plane.bytes_per_pixel)
    return buf[rows + cols]


def yuv420_to_nv21(frame: CameraFrame) -> bytes:
    """Repack a three-plane frame into one NV21 buffer (Y then interleaved V,U)."""
    y_plane, u_plane, v_plane = frame.planes[0], frame.planes[1], frame.planes[2]
    width, height = int(frame.width), int(frame.height)
    chroma_w, chroma_h = (width + 1) // 2, (height + 1) // 2

    y = _plane_samples(y_plane, width, height)
    u = _plane_samples(u_plane, chroma_w, chroma_h)
    v = _plane_samples(v_plane, chroma_w, chroma_h)

    vu = np.stack([v, u], axis=-1)
    return np.concatenate([y.ravel(), vu.ravel()]).tobytes()


def convert_to_input_image(frame: CameraFrame, rotation: InputImageRotation) -> Optional[InputImage]:
    """Build the detector input for ``frame``; ``None`` when the planes can't be read."""
    try:
        nv21 = yuv420_to_nv21(frame)
        return InputImage(
            bytes=nv21,
            metadata=InputImageMetadata(
                size=Size(float(frame.width), float(frame.height)),
                rotation=rotation,
                format=InputImageFormat.NV21,
                bytes_per_row=frame.planes[0].bytes_per_row,
            ),
        )
    except Exception as exc:
        logger.warning("Conversion error: {}", exc)
        return None


def bgr_to_yuv420_frame(image: np.ndarray) -> CameraFrame:
    """Split an OpenCV BGR image into a planar Y/U/V ``CameraFrame``.

    Odd dimensions are cropped to even ones, as I420 requires.
    """
    height, width = image.shape[:2]
    height -= height % 2
    width -= width % 2
    image = image[:height, :width]
    i420 = cv2.cvtColor(image, cv2.COLOR_BGR2YUV_I420).ravel()
    luma = width * height
    chroma = (width // 2) * (height // 2)
    return CameraFrame(
        width=width,
        height=height,
        planes=[
            Plane(bytes=i420[:luma].tobytes(), bytes_per_row=width),
            Plane(bytes=i420[luma:luma + chroma].tobytes(), bytes_per_row=width // 2),
            Plane(bytes=i420[luma + chroma:luma + 2 * chroma].tobytes(), bytes_per_row=width // 2),
        ],
        format=InputImageFormat.YUV420,
        preview=image,
    )


def nv21_to_rgb(image: InputImage) -> np.ndarray:
    """Decode an NV21 ``InputImage`` into an RGB array, applying its rotation."""
    width = int(image.metadata.size.width)
    height = int(image.metadata.size.height)
    yuv = np.frombuffer(image.bytes, dtype=np.uint8)[: width * height * 3 // 2]
    rgb = cv2.cvtColor(yuv.reshape(height * 3 // 2, width), cv2.COLOR_YUV2RGB_NV21)
    rotation = image.metadata.rotation
    if rotation is InputImageRotation.ROTATION_90:
        return cv2.rotate(rgb, cv2.ROTATE_90_CLOCKWISE)
    if rotation is InputImageRotation.ROTATION_180:
        return cv2.rotate(rgb, cv2.ROTATE_180)
    if rotation is InputImageRotation.ROTATION_270:
        return cv2.rotate(rgb, cv2.ROTATE_90_COUNTERCLOCKWISE)
    return rgb
