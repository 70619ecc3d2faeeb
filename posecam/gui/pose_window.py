"""Qt window: camera preview, skeleton overlay and pose label."""
from __future__ import annotations

import time
from typing import List, Optional, Tuple

import cv2
import numpy as np
from PyQt5 import QtCore, QtGui, QtWidgets

from posecam.core.config import Settings, get_settings
from posecam.vision.overlay import Paint, PosePainter
from posecam.vision.pipeline import BackgroundPipeline, ScreenSnapshot, ScreenState
from posecam.vision.types import Size


class HudStyle:
    """Centralised constants for layout and styling."""

    FONT_FAMILY = "Roboto"
    LABEL_FONT = 18
    LABEL_TOP = 30
    LABEL_LEFT = 16
    LABEL_PAD_X = 12
    LABEL_PAD_Y = 6
    LABEL_OPACITY = 0.45
    CHIP_OPACITY = 0.55
    SPINNER_SIZE = 48

    @staticmethod
    def text_primary(alpha: int = 255) -> QtGui.QColor:
        color = QtGui.QColor(255, 255, 255)
        color.setAlpha(alpha)
        return color


_STATE_MESSAGES = {
    ScreenState.PERMISSION_DENIED: "Acesso à câmera negado",
    ScreenState.PERMISSION_RESTRICTED: "Acesso à câmera restrito",
}


def frame_to_qimage(frame: np.ndarray) -> QtGui.QImage:
    rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    height, width = rgb.shape[:2]
    image = QtGui.QImage(rgb.data, width, height, rgb.strides[0], QtGui.QImage.Format_RGB888)
    # Detach from the numpy buffer
    return image.copy()


class QtCanvas:
    """Overlay canvas backed by a QPainter."""

    def __init__(self, painter: QtGui.QPainter) -> None:
        self.painter = painter

    def set_transform(self, matrix: np.ndarray) -> None:
        transform = QtGui.QTransform(
            float(matrix[0, 0]), float(matrix[1, 0]),
            float(matrix[0, 1]), float(matrix[1, 1]),
            float(matrix[0, 2]), float(matrix[1, 2]),
        )
        self.painter.setTransform(transform, True)

    def draw_circle(self, center: Tuple[float, float], radius: float, paint: Paint) -> None:
        self.painter.setPen(QtCore.Qt.NoPen)
        self.painter.setBrush(QtGui.QColor(*paint.color))
        self.painter.drawEllipse(QtCore.QPointF(*center), radius, radius)

    def draw_line(self, start: Tuple[float, float], end: Tuple[float, float], paint: Paint) -> None:
        pen = QtGui.QPen(QtGui.QColor(*paint.color))
        pen.setWidthF(float(paint.stroke_width))
        self.painter.setPen(pen)
        self.painter.setBrush(QtCore.Qt.NoBrush)
        self.painter.drawLine(QtCore.QPointF(*start), QtCore.QPointF(*end))


class PoseWindow(QtWidgets.QWidget):
    """Polls the pipeline snapshot and repaints when it changes."""

    def __init__(self, pipeline: BackgroundPipeline, settings: Settings | None = None, *, debug: bool = False):
        super().__init__()
        self.pipeline = pipeline
        self.settings = settings or get_settings()
        self.debug = debug
        self._snapshot: ScreenSnapshot = pipeline.snapshot
        self._painter: Optional[PosePainter] = None
        self._preview_pixmap: Optional[QtGui.QPixmap] = None
        self._preview_source: Optional[np.ndarray] = None

        self.setWindowTitle(self.settings.app_name)
        self.setMinimumSize(480, 640)

        self.timer = QtCore.QTimer(self)
        self.timer.timeout.connect(self.poll)
        self.timer.start(self.settings.ui_poll_interval_ms)

    # --------------------------------------------------------------- polling --

    def poll(self) -> None:  # pragma: no cover - GUI only
        snapshot = self.pipeline.snapshot
        if snapshot.state is not ScreenState.READY:
            # Spinner animation
            self._snapshot = snapshot
            self.update()
            return
        if snapshot is self._snapshot:
            return
        self._snapshot = snapshot
        pose_painter = self._make_painter(snapshot)
        preview_changed = snapshot.preview is not None and snapshot.preview is not self._preview_source
        if not preview_changed and self._painter is not None and not pose_painter.should_repaint(self._painter):
            return
        self._painter = pose_painter
        if preview_changed:
            self._preview_source = snapshot.preview
            self._preview_pixmap = QtGui.QPixmap.fromImage(frame_to_qimage(snapshot.preview))
        self.update()

    def _make_painter(self, snapshot: ScreenSnapshot) -> PosePainter:
        return PosePainter(
            poses=snapshot.poses,
            preview_size=snapshot.preview_size or Size(0.0, 0.0),
            screen_size=Size(float(self.width()), float(self.height())),
            rotation=snapshot.overlay_rotation,
            offset=(self.settings.overlay_offset_x, self.settings.overlay_offset_y),
        )

    def closeEvent(self, event):  # pragma: no cover - GUI only
        self.timer.stop()
        self.pipeline.stop()
        super().closeEvent(event)

    # ---------------------------------------------------------------- paint --

    def paintEvent(self, event):  # pragma: no cover - GUI only
        painter = QtGui.QPainter(self)
        painter.setRenderHint(QtGui.QPainter.Antialiasing)
        painter.fillRect(self.rect(), QtGui.QColor(0, 0, 0))

        snapshot = self._snapshot
        if snapshot.state is not ScreenState.READY:
            message = _STATE_MESSAGES.get(snapshot.state)
            if message:
                self._draw_message(painter, message)
            else:
                self._draw_spinner(painter)
            painter.end()
            return

        self._draw_preview(painter, snapshot)
        self._draw_overlay(painter, snapshot)
        self._draw_label(painter, snapshot.label.text)
        if self.debug:
            self._draw_debug_metrics(painter, snapshot)
        painter.end()

    def _draw_preview(self, painter: QtGui.QPainter, snapshot: ScreenSnapshot) -> None:
        if not self._preview_pixmap or not snapshot.preview_size:
            return
        # Letterbox by the camera preview aspect ratio
        target = QtCore.QSize(self.width(), self.height())
        scaled = self._preview_pixmap.scaled(target, QtCore.Qt.KeepAspectRatio, QtCore.Qt.SmoothTransformation)
        painter.drawPixmap(
            (self.width() - scaled.width()) // 2,
            (self.height() - scaled.height()) // 2,
            scaled,
        )

    def _draw_overlay(self, painter: QtGui.QPainter, snapshot: ScreenSnapshot) -> None:
        if not snapshot.preview_size:
            return
        # Screen size may have changed since the last poll
        pose_painter = self._make_painter(snapshot)
        painter.save()
        pose_painter.paint(QtCanvas(painter))
        painter.restore()

    def _draw_label(self, painter: QtGui.QPainter, text: str) -> None:
        painter.save()
        font = QtGui.QFont(HudStyle.FONT_FAMILY, HudStyle.LABEL_FONT)
        painter.setFont(font)
        metrics = painter.fontMetrics()
        rect = QtCore.QRect(
            HudStyle.LABEL_LEFT,
            HudStyle.LABEL_TOP,
            metrics.horizontalAdvance(text) + HudStyle.LABEL_PAD_X * 2,
            metrics.height() + HudStyle.LABEL_PAD_Y * 2,
        )
        painter.fillRect(rect, QtGui.QColor(0, 0, 0, int(255 * HudStyle.LABEL_OPACITY)))
        painter.setPen(HudStyle.text_primary())
        painter.drawText(rect, QtCore.Qt.AlignCenter, text)
        painter.restore()

    def _draw_spinner(self, painter: QtGui.QPainter) -> None:
        painter.save()
        size = HudStyle.SPINNER_SIZE
        rect = QtCore.QRectF((self.width() - size) / 2, (self.height() - size) / 2, size, size)
        pen = QtGui.QPen(QtGui.QColor("#2196F3"))
        pen.setWidth(4)
        painter.setPen(pen)
        start = int((time.monotonic() * 360) % 360) * 16
        painter.drawArc(rect, -start, 270 * 16)
        painter.restore()

    def _draw_message(self, painter: QtGui.QPainter, message: str) -> None:
        painter.save()
        painter.setFont(QtGui.QFont(HudStyle.FONT_FAMILY, HudStyle.LABEL_FONT))
        painter.setPen(HudStyle.text_primary())
        painter.drawText(self.rect(), QtCore.Qt.AlignCenter, message)
        painter.restore()

    def _draw_debug_metrics(self, painter: QtGui.QPainter, snapshot: ScreenSnapshot) -> None:
        items: List[str] = [
            f"FPS {snapshot.fps:.1f}",
            f"p50 {snapshot.latency_ms_p50:.1f} ms",
            f"p95 {snapshot.latency_ms_p95:.1f} ms",
            f"drop {snapshot.frames_dropped}",
        ]
        painter.save()
        painter.setFont(QtGui.QFont(HudStyle.FONT_FAMILY, 12))
        metrics = painter.fontMetrics()
        spacing = 8
        height = metrics.height() + 8
        x_cursor = self.width() - spacing
        y = self.height() - height - spacing
        for text in reversed(items):
            width = metrics.horizontalAdvance(text) + 20
            x_cursor -= width
            rect = QtCore.QRect(x_cursor, y, width, height)
            painter.setPen(QtCore.Qt.NoPen)
            painter.setBrush(QtGui.QColor(0, 0, 0, int(255 * HudStyle.CHIP_OPACITY)))
            painter.drawRoundedRect(rect, height // 2, height // 2)
            painter.setPen(HudStyle.text_primary())
            painter.drawText(rect, QtCore.Qt.AlignCenter, text)
            x_cursor -= spacing
        painter.restore()


class PoseApp:
    def run(self, pipeline: BackgroundPipeline, settings: Settings | None = None, *, debug: bool = False) -> int:  # pragma: no cover
        app = QtWidgets.QApplication([])
        window = PoseWindow(pipeline, settings, debug=debug)
        pipeline.start()
        window.show()
        try:
            return app.exec_()
        finally:
            pipeline.stop()
