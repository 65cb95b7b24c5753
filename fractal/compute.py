"""Fractal compute: render configuration, viewport mapping, escape-time loop.

evaluate_pixel() is the whole per-coordinate algorithm: map the pixel onto
the complex plane, seed Z and C according to the fractal mode, iterate the
compiled formula and classify how the iteration ended. It is deterministic
for a fixed (pixel, viewport, config, formula).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

import numpy as np

from complex_number import Complex
from fractal.environment import (
    ARITHMETIC_IEEE, ARITHMETIC_POLICIES, arithmetic_errstate,
)
from fractal.formula import CompiledFormula, EvaluationError, InvalidType

logger = logging.getLogger(__name__)

# Fractal modes
MODE_MANDELBROT = "mandelbrot"
MODE_JULIA = "julia"
MODES = (MODE_MANDELBROT, MODE_JULIA)

# Initial iterate in Mandelbrot mode
SEED_COORDINATE = "coordinate"  # Z = C (canonical)
SEED_ZERO = "zero"              # Z = 0
SEED_RULES = (SEED_COORDINATE, SEED_ZERO)

DEFAULT_ITERATION_BUDGET = 20
DEFAULT_DIVERGENCE_THRESHOLD = 2.0
DEFAULT_ANOMALY_THRESHOLD = 256
DEFAULT_JULIA_SEED = Complex(-0.8, 0.156)

# Width and height of the default plane window ([-2, 2] x [-2, 2])
DEFAULT_SPAN = 4.0


@dataclass(frozen=True)
class FractalViewport:
    """Pixel grid and the region of the complex plane it covers."""

    width: int
    height: int
    center_real: float = 0.0
    center_imag: float = 0.0
    span: float = DEFAULT_SPAN

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise ValueError(
                f"Viewport must be at least 1x1 pixels, got {self.width}x{self.height}"
            )
        if not self.span > 0:
            raise ValueError(f"Viewport span must be positive, got {self.span}")


@dataclass(frozen=True)
class RenderConfig:
    """Per-render settings supplied by the front end. Read-only to the core."""

    iteration_budget: int = DEFAULT_ITERATION_BUDGET
    mode: str = MODE_MANDELBROT
    julia_seed: Complex = DEFAULT_JULIA_SEED
    anomaly_guard_enabled: bool = False
    divergence_threshold: float = DEFAULT_DIVERGENCE_THRESHOLD
    mandelbrot_seed: str = SEED_COORDINATE
    arithmetic: str = ARITHMETIC_IEEE
    anomaly_threshold: int = DEFAULT_ANOMALY_THRESHOLD

    def __post_init__(self):
        if isinstance(self.iteration_budget, bool) or not isinstance(self.iteration_budget, int):
            raise ValueError(
                f"iteration_budget must be an integer, got {self.iteration_budget!r}"
            )
        if self.iteration_budget < 1:
            raise ValueError(
                f"iteration_budget must be positive, got {self.iteration_budget}"
            )
        if self.mode not in MODES:
            raise ValueError(f"Unknown fractal mode: {self.mode!r}")
        if self.mandelbrot_seed not in SEED_RULES:
            raise ValueError(f"Unknown Mandelbrot seed rule: {self.mandelbrot_seed!r}")
        if self.arithmetic not in ARITHMETIC_POLICIES:
            raise ValueError(f"Unknown arithmetic policy: {self.arithmetic!r}")
        if not isinstance(self.julia_seed, Complex):
            raise ValueError(f"julia_seed must be a Complex, got {self.julia_seed!r}")
        if not self.divergence_threshold > 0:
            raise ValueError(
                f"divergence_threshold must be positive, got {self.divergence_threshold}"
            )
        if self.anomaly_threshold < 0:
            raise ValueError(
                f"anomaly_threshold must be non-negative, got {self.anomaly_threshold}"
            )


# -- Pixel classification --

@dataclass(frozen=True)
class Bounded:
    """Never exceeded the divergence threshold within the iteration budget."""


@dataclass(frozen=True)
class Diverged:
    """Magnitude exceeded the threshold at iteration ``step`` (0-based)."""

    step: int


@dataclass(frozen=True)
class Anomalous:
    """A NaN component appeared at iteration ``step``."""

    step: int


@dataclass(frozen=True)
class Fatal:
    """The formula returned a non-complex value or raised. Aborts the render."""

    message: str


PixelClassification = Union[Bounded, Diverged, Anomalous, Fatal]

BOUNDED = Bounded()


def pixel_to_plane(viewport: FractalViewport, x: float, y: float) -> Complex:
    """Map a pixel coordinate onto the complex plane.

    Columns run left to right along the real axis; rows run top to bottom,
    so the imaginary axis is inverted relative to row order.
    """
    half_span = viewport.span / 2
    real = viewport.center_real - half_span + x * viewport.span / viewport.width
    imag = viewport.center_imag + half_span - y * viewport.span / viewport.height
    return Complex(real, imag)


def plane_to_pixel(viewport: FractalViewport, point: Complex) -> tuple[float, float]:
    """Inverse of pixel_to_plane (fractional pixel coordinates)."""
    half_span = viewport.span / 2
    x = (float(point.real) - viewport.center_real + half_span) * viewport.width / viewport.span
    y = (viewport.center_imag + half_span - float(point.imag)) * viewport.height / viewport.span
    return x, y


def seed_iteration(point: Complex, config: RenderConfig) -> tuple[Complex, Complex]:
    """Return the initial (Z, C) for a plane coordinate."""
    if config.mode == MODE_JULIA:
        return point, config.julia_seed
    if config.mandelbrot_seed == SEED_ZERO:
        return Complex(0.0, 0.0), point
    return point, point


def iterate_point(
    z: Complex,
    c: Complex,
    config: RenderConfig,
    formula: CompiledFormula,
) -> PixelClassification:
    """Run the escape-time loop from an explicit seed."""
    threshold = config.divergence_threshold
    with arithmetic_errstate(config.arithmetic):
        for step in range(config.iteration_budget):
            result = formula(z, c)
            if isinstance(result, InvalidType):
                return Fatal(f"Formula returned a {result.type_name}, expected a complex number")
            if isinstance(result, EvaluationError):
                return Fatal(f"Formula failed: {result.message}")
            z = result.value
            if np.isnan(z.real) or np.isnan(z.imag):
                return Anomalous(step)
            if z.magnitude() > threshold:
                return Diverged(step)
    return BOUNDED


def evaluate_pixel(
    x: int,
    y: int,
    viewport: FractalViewport,
    config: RenderConfig,
    formula: CompiledFormula,
) -> PixelClassification:
    """Classify one pixel of the grid."""
    z, c = seed_iteration(pixel_to_plane(viewport, x, y), config)
    return iterate_point(z, c, config, formula)
