"""Skeleton overlay: model-to-screen transform and landmark painting."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

import cv2
import numpy as np

from posecam.vision.types import Pose, PoseLandmarkType, Size

Point = Tuple[float, float]
Color = Tuple[int, int, int]  # RGB

DEFAULT_OFFSET: Point = (20.0, -55.0)

LT = PoseLandmarkType
SKELETON_CONNECTIONS: Tuple[Tuple[PoseLandmarkType, PoseLandmarkType], ...] = (
    (LT.LEFT_SHOULDER, LT.RIGHT_SHOULDER),
    (LT.LEFT_SHOULDER, LT.LEFT_ELBOW),
    (LT.LEFT_ELBOW, LT.LEFT_WRIST),
    (LT.RIGHT_SHOULDER, LT.RIGHT_ELBOW),
    (LT.RIGHT_ELBOW, LT.RIGHT_WRIST),
    (LT.LEFT_SHOULDER, LT.LEFT_HIP),
    (LT.RIGHT_SHOULDER, LT.RIGHT_HIP),
    (LT.LEFT_HIP, LT.RIGHT_HIP),
    (LT.LEFT_HIP, LT.LEFT_KNEE),
    (LT.LEFT_KNEE, LT.LEFT_ANKLE),
    (LT.RIGHT_HIP, LT.RIGHT_KNEE),
    (LT.RIGHT_KNEE, LT.RIGHT_ANKLE),
)


@dataclass(frozen=True)
class Paint:
    color: Color
    stroke_width: float
    fill: bool = False


POINT_PAINT = Paint(color=(255, 0, 0), stroke_width=8, fill=True)
LINE_PAINT = Paint(color=(0, 0, 255), stroke_width=4)
POINT_RADIUS = 6.0


# --- affine helpers (3x3 homogeneous, column vectors) ---------------------

def translation(dx: float, dy: float) -> np.ndarray:
    m = np.eye(3)
    m[0, 2] = dx
    m[1, 2] = dy
    return m


def rotation_z(theta: float) -> np.ndarray:
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def scaling(sx: float, sy: float) -> np.ndarray:
    return np.diag([sx, sy, 1.0])


def apply_transform(matrix: np.ndarray, point: Point) -> Point:
    x, y, w = matrix @ np.array([point[0], point[1], 1.0])
    return float(x / w), float(y / w)


def compute_transform(
    preview_size: Size,
    screen_size: Size,
    rotation: float,
    offset: Point = DEFAULT_OFFSET,
) -> np.ndarray:
    """Matrix mapping detector coordinates onto the screen.

    Composed as translate -> rotate -> scale -> translate. The preview width
    and height are swapped against the screen axes because the camera delivers
    landscape frames for a portrait preview. An empty preview yields identity.
    """
    if preview_size.is_empty:
        return np.eye(3)
    scale_x = screen_size.width / preview_size.height
    scale_y = screen_size.height / preview_size.width
    return (
        translation(preview_size.height / 2 + offset[0], preview_size.width / 2 + offset[1])
        @ rotation_z(rotation)
        @ scaling(scale_x, scale_y)
        @ translation(-preview_size.width / 2, -preview_size.height / 2)
    )


def rotation_angle_for(sensor_orientation: int, apply_sensor_rotation: bool = False) -> float:
    """Overlay rotation in radians.

    Returns 0 for every orientation unless ``apply_sensor_rotation`` is set, in
    which case 90 and 270 degree sensors rotate the overlay by that angle.
    """
    if apply_sensor_rotation and sensor_orientation in (90, 270):
        return math.radians(sensor_orientation)
    return 0.0


class Canvas(Protocol):
    def set_transform(self, matrix: np.ndarray) -> None: ...

    def draw_circle(self, center: Point, radius: float, paint: Paint) -> None: ...

    def draw_line(self, start: Point, end: Point, paint: Paint) -> None: ...


class PosePainter:
    """Paints every pose's landmarks and skeleton connections onto a canvas."""

    def __init__(
        self,
        poses: Sequence[Pose],
        preview_size: Size,
        screen_size: Size,
        rotation: float = 0.0,
        offset: Point = DEFAULT_OFFSET,
    ) -> None:
        self.poses = poses
        self.preview_size = preview_size
        self.screen_size = screen_size
        self.rotation = rotation
        self.offset = offset

    def transform(self) -> np.ndarray:
        return compute_transform(self.preview_size, self.screen_size, self.rotation, self.offset)

    def paint(self, canvas: Canvas) -> None:
        canvas.set_transform(self.transform())
        for pose in self.poses:
            for landmark in pose.landmarks.values():
                canvas.draw_circle((landmark.x, landmark.y), POINT_RADIUS, POINT_PAINT)
            for first, second in SKELETON_CONNECTIONS:
                self._draw_connection(canvas, pose, first, second)

    @staticmethod
    def _draw_connection(canvas: Canvas, pose: Pose, first: PoseLandmarkType, second: PoseLandmarkType) -> None:
        start = pose.get(first)
        end = pose.get(second)
        if start is None or end is None:
            return
        canvas.draw_line((start.x, start.y), (end.x, end.y), LINE_PAINT)

    def should_repaint(self, old: "PosePainter") -> bool:
        return old.poses is not self.poses


class OpenCVCanvas:
    """Canvas drawing onto a BGR image; points are mapped through the transform."""

    def __init__(self, image: np.ndarray) -> None:
        self.image = image
        self._matrix = np.eye(3)
        self._scale = 1.0

    def set_transform(self, matrix: np.ndarray) -> None:
        self._matrix = np.asarray(matrix, dtype=float)
        # Uniform size factor for radii and stroke widths
        self._scale = math.sqrt(abs(float(np.linalg.det(self._matrix[:2, :2])))) or 1.0

    def _px(self, point: Point) -> Tuple[int, int]:
        x, y = apply_transform(self._matrix, point)
        return int(round(x)), int(round(y))

    @staticmethod
    def _bgr(color: Color) -> Tuple[int, int, int]:
        r, g, b = color
        return b, g, r

    def draw_circle(self, center: Point, radius: float, paint: Paint) -> None:
        thickness = -1 if paint.fill else max(1, int(round(paint.stroke_width * self._scale)))
        cv2.circle(
            self.image,
            self._px(center),
            max(1, int(round(radius * self._scale))),
            self._bgr(paint.color),
            thickness=thickness,
            lineType=cv2.LINE_AA,
        )

    def draw_line(self, start: Point, end: Point, paint: Paint) -> None:
        cv2.line(
            self.image,
            self._px(start),
            self._px(end),
            self._bgr(paint.color),
            max(1, int(round(paint.stroke_width * self._scale))),
            cv2.LINE_AA,
        )
