"""Fractal canvas: pixel sink widget showing the render as it progresses.

The canvas owns a PixelBuffer sized to the render resolution. The driver
writes pixels into it; the view calls update() once per finished column,
and paintEvent scales the buffer to the widget with nearest-neighbour
sampling. A white scan bar marks the column about to be rendered.
"""

from __future__ import annotations

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtGui import QColor, QImage, QPainter
from PyQt6.QtWidgets import QWidget

from fractal.coloring import RGB, PixelBuffer
from fractal.compute import FractalViewport, pixel_to_plane

DEFAULT_RESOLUTION = 400

# Width of the scan bar drawn ahead of the current column (grid pixels)
SCAN_BAR_WIDTH = 5

BACKGROUND_COLOR = QColor(20, 20, 30)
PLACEHOLDER_COLOR = QColor(100, 100, 120)


class FractalCanvas(QWidget):
    """Widget that displays the fractal image and reports plane coordinates."""

    point_hovered = pyqtSignal(float, float)   # real, imag under the cursor
    seed_selected = pyqtSignal(float, float)   # real, imag (Ctrl+click)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(400, 400)
        self.setMouseTracking(True)
        self.setCursor(Qt.CursorShape.CrossCursor)

        self._viewport = FractalViewport(DEFAULT_RESOLUTION, DEFAULT_RESOLUTION)
        self._buffer = PixelBuffer(DEFAULT_RESOLUTION, DEFAULT_RESOLUTION)
        self._image = self._buffer.to_qimage()
        self._has_content = False
        self._scan_column: int | None = None

    # -- Public interface --

    def get_viewport(self) -> FractalViewport:
        return self._viewport

    def set_viewport(self, viewport: FractalViewport) -> None:
        """Use a new viewport; reallocates the buffer if the grid size changed."""
        if (viewport.width, viewport.height) != (self._buffer.width, self._buffer.height):
            self._buffer = PixelBuffer(viewport.width, viewport.height)
            self._image = self._buffer.to_qimage()
        self._viewport = viewport

    def clear(self) -> None:
        self._buffer.clear()
        self._has_content = False
        self.update()

    def set_pixel(self, x: int, y: int, color: RGB) -> None:
        self._buffer.set_pixel(x, y, color)
        self._has_content = True

    def set_scan_column(self, column: int | None) -> None:
        """Show the scan bar at ``column`` (None hides it) and repaint."""
        self._scan_column = column
        self.update()

    def snapshot(self) -> QImage:
        """Detached copy of the current image, e.g. for saving."""
        return self._image.copy()

    # -- Geometry --

    def _image_rect(self) -> tuple[float, float, float]:
        """Return (img_x, img_y, side) for the square image area."""
        side = min(self.width(), self.height())
        img_x = (self.width() - side) / 2
        img_y = (self.height() - side) / 2
        return img_x, img_y, side

    def _widget_to_grid(self, px: float, py: float) -> tuple[float, float] | None:
        """Convert widget coordinates to fractional grid coordinates."""
        img_x, img_y, side = self._image_rect()
        if side <= 0:
            return None
        nx = (px - img_x) / side
        ny = (py - img_y) / side
        if not (0.0 <= nx < 1.0 and 0.0 <= ny < 1.0):
            return None
        return nx * self._viewport.width, ny * self._viewport.height

    # -- Qt events --

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), BACKGROUND_COLOR)

        if not self._has_content and self._scan_column is None:
            painter.setPen(PLACEHOLDER_COLOR)
            painter.drawText(
                self.rect(),
                Qt.AlignmentFlag.AlignCenter,
                "Enter a formula and press Draw",
            )
            painter.end()
            return

        img_x, img_y, side = self._image_rect()
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, False)
        painter.drawImage(
            int(img_x), int(img_y),
            self._image.scaled(
                int(side), int(side),
                Qt.AspectRatioMode.KeepAspectRatio,
                Qt.TransformationMode.FastTransformation,
            ),
        )

        if self._scan_column is not None:
            scale = side / self._viewport.width
            bar_x = img_x + (self._scan_column + 1) * scale
            bar_w = max(1.0, SCAN_BAR_WIDTH * scale)
            painter.fillRect(int(bar_x), int(img_y), int(bar_w), int(side), QColor(255, 255, 255))

        painter.end()

    def mouseMoveEvent(self, event):
        pos = event.position()
        grid = self._widget_to_grid(pos.x(), pos.y())
        if grid is not None:
            point = pixel_to_plane(self._viewport, *grid)
            self.point_hovered.emit(float(point.real), float(point.imag))
        super().mouseMoveEvent(event)

    def mousePressEvent(self, event):
        if (event.button() == Qt.MouseButton.LeftButton
                and event.modifiers() & Qt.KeyboardModifier.ControlModifier):
            pos = event.position()
            grid = self._widget_to_grid(pos.x(), pos.y())
            if grid is not None:
                point = pixel_to_plane(self._viewport, *grid)
                self.seed_selected.emit(float(point.real), float(point.imag))
                return
        super().mousePressEvent(event)
