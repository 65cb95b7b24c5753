"""Color mapping pipeline: tri-band LUT, classification to RGB, pixel buffer.

Divergence steps are scaled into a band index and looked up in a
pre-computed 768-entry table that ramps red, then green, then blue, so
the palette repeats every 768 scaled steps. Pixels land in a numpy BGRA
buffer that is handed to Qt (or saved) through numpy_to_qimage.
"""

from __future__ import annotations

from typing import NamedTuple, Protocol

import numpy as np
from PyQt6.QtGui import QImage

from fractal.compute import Bounded, Diverged

# One full red -> green -> blue cycle
BAND_PERIOD = 768

# Default scale: floor(step * 255 / budget) + 1
DEFAULT_COLOR_SCALE = 255


class RGB(NamedTuple):
    """8-bit RGB color."""

    r: int
    g: int
    b: int

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


WHITE = RGB(255, 255, 255)
BACKGROUND = RGB(20, 20, 30)


class PixelSink(Protocol):
    """Write-only destination for rendered pixels."""

    def set_pixel(self, x: int, y: int, color: RGB) -> None:
        ...


def build_band_lut(period: int = BAND_PERIOD) -> np.ndarray:
    """Build the tri-band lookup table.

    Entry m is (min(255, m), clamp(m - 256), clamp(m - 512)) with clamp
    limiting to [0, 255].

    Returns:
        (period, 3) uint8 array in RGB order.
    """
    m = np.arange(period, dtype=np.int64)
    lut = np.empty((period, 3), dtype=np.uint8)
    lut[:, 0] = np.minimum(255, m)
    lut[:, 1] = np.clip(m - 256, 0, 255)
    lut[:, 2] = np.clip(m - 512, 0, 255)
    return lut


_BAND_LUT = build_band_lut()


def scaled_step(step: int, iteration_budget: int, scale: int = DEFAULT_COLOR_SCALE) -> int:
    """Scale a divergence step: floor(step * scale / budget) + 1."""
    return (step * scale) // iteration_budget + 1


def band_color(n: int) -> RGB:
    """Color for a scaled step value (periodic with period 768)."""
    r, g, b = _BAND_LUT[n % BAND_PERIOD]
    return RGB(int(r), int(g), int(b))


class ColorMapper:
    """Turns pixel classifications into colors for one render."""

    def __init__(
        self,
        iteration_budget: int,
        inside_color: RGB = WHITE,
        scale: int = DEFAULT_COLOR_SCALE,
    ):
        if iteration_budget < 1:
            raise ValueError(f"iteration_budget must be positive, got {iteration_budget}")
        self.iteration_budget = iteration_budget
        self.inside_color = inside_color
        self.scale = scale

    def color_for(self, classification) -> RGB | None:
        """Return the pixel color, or None when nothing should be drawn.

        Anomalous pixels are skipped; a Fatal classification ends the
        render, so it has no color either.
        """
        if isinstance(classification, Bounded):
            return self.inside_color
        if isinstance(classification, Diverged):
            return band_color(scaled_step(classification.step, self.iteration_budget, self.scale))
        return None


class PixelBuffer:
    """numpy BGRA image implementing the PixelSink protocol.

    Qt's Format_ARGB32 is BGRA in memory on little-endian systems.
    """

    def __init__(self, width: int, height: int, background: RGB = BACKGROUND):
        self.width = width
        self.height = height
        self.pixels = np.empty((height, width, 4), dtype=np.uint8)
        self.clear(background)

    def clear(self, color: RGB = BACKGROUND) -> None:
        self.pixels[:, :, 0] = color.b
        self.pixels[:, :, 1] = color.g
        self.pixels[:, :, 2] = color.r
        self.pixels[:, :, 3] = 255

    def set_pixel(self, x: int, y: int, color: RGB) -> None:
        self.pixels[y, x] = (color.b, color.g, color.r, 255)

    def get_pixel(self, x: int, y: int) -> RGB:
        b, g, r, _ = self.pixels[y, x]
        return RGB(int(r), int(g), int(b))

    def to_qimage(self) -> QImage:
        return numpy_to_qimage(self.pixels)


def numpy_to_qimage(argb: np.ndarray) -> QImage:
    """Create a QImage from an ARGB32 pixel array with GC safety.

    Args:
        argb: (H, W, 4) uint8 BGRA array (contiguous).

    Returns:
        QImage with Format_ARGB32. The numpy array is attached to the
        QImage as _numpy_ref to prevent garbage collection.
    """
    h, w = argb.shape[:2]
    data = np.ascontiguousarray(argb)
    stride = 4 * w
    image = QImage(data.data, w, h, stride, QImage.Format.Format_ARGB32)
    # Prevent GC of the numpy array while QImage is alive
    image._numpy_ref = data
    return image
