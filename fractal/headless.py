"""Headless renderer: draw a formula fractal straight to an image file.

Standalone script (not part of the GUI) that compiles a formula, runs the
same RenderDriver the window uses without yielding to an event loop, and
saves the pixel buffer as a PNG. Status events go to the log.

Usage:
    python -m fractal.headless --formula "Z*Z + C" --output mandelbrot.png
    python -m fractal.headless --formula-file burning.txt --mode julia --julia -0.8 0.156
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import NamedTuple

from complex_number import Complex
from fractal.coloring import DEFAULT_COLOR_SCALE, ColorMapper, PixelBuffer
from fractal.compute import (
    DEFAULT_ANOMALY_THRESHOLD, DEFAULT_DIVERGENCE_THRESHOLD,
    DEFAULT_ITERATION_BUDGET, DEFAULT_JULIA_SEED, DEFAULT_SPAN,
    MODES, MODE_MANDELBROT, SEED_COORDINATE, SEED_RULES,
    FractalViewport, RenderConfig,
)
from fractal.driver import OUTCOME_COMPLETED, OUTCOME_FATAL, RenderDriver
from fractal.environment import ARITHMETIC_IEEE, ARITHMETIC_POLICIES
from fractal.formula import FormulaCompileError, compile_formula
from fractal.status import (
    AnomalyThresholdExceeded, CompileFailed, FatalAborted, StatusEvent,
    format_status,
)

logger = logging.getLogger(__name__)

DEFAULT_SIZE = 400


class LoggingStatusChannel:
    """StatusChannel that logs each event and keeps it for later inspection."""

    def __init__(self):
        self.events: list[StatusEvent] = []

    def emit(self, event: StatusEvent) -> None:
        self.events.append(event)
        text = format_status(event)
        if isinstance(event, (CompileFailed, FatalAborted)):
            logger.error("%s", text)
        elif isinstance(event, AnomalyThresholdExceeded):
            logger.warning("%s", text)
        else:
            logger.info("%s", text)


class HeadlessResult(NamedTuple):
    """Outcome of a headless render."""

    outcome: str
    buffer: PixelBuffer
    events: list


def render_formula(
    source: str,
    viewport: FractalViewport,
    config: RenderConfig,
    color_scale: int = DEFAULT_COLOR_SCALE,
) -> HeadlessResult:
    """Compile ``source`` and render it into a fresh PixelBuffer.

    Raises:
        FormulaCompileError: if the formula does not compile.
    """
    status = LoggingStatusChannel()
    formula = compile_formula(source)
    buffer = PixelBuffer(viewport.width, viewport.height)
    mapper = ColorMapper(config.iteration_budget, scale=color_scale)
    driver = RenderDriver(viewport, config, formula, buffer, status, mapper)

    t0 = time.monotonic()
    outcome = driver.run()
    logger.info(
        "Rendered %dx%d in %.2f s: %s",
        viewport.width, viewport.height, time.monotonic() - t0, outcome,
    )
    return HeadlessResult(outcome, buffer, status.events)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render an escape-time fractal of a user formula to a PNG file.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--formula", type=str, help="Formula text, e.g. 'Z*Z + C'")
    source.add_argument("--formula-file", type=Path, help="Read the formula from a file")
    parser.add_argument(
        "--output", type=str, default="fractal.png",
        help="Output image path (default: fractal.png)",
    )
    parser.add_argument(
        "--size", type=int, default=DEFAULT_SIZE,
        help=f"Width and height in pixels (default: {DEFAULT_SIZE})",
    )
    parser.add_argument(
        "--iterations", type=int, default=DEFAULT_ITERATION_BUDGET,
        help=f"Iteration budget per pixel (default: {DEFAULT_ITERATION_BUDGET})",
    )
    parser.add_argument("--mode", choices=MODES, default=MODE_MANDELBROT)
    parser.add_argument(
        "--julia", type=float, nargs=2, metavar=("RE", "IM"),
        default=(float(DEFAULT_JULIA_SEED.real), float(DEFAULT_JULIA_SEED.imag)),
        help="Julia seed (used with --mode julia)",
    )
    parser.add_argument(
        "--seed-rule", choices=SEED_RULES, default=SEED_COORDINATE,
        help="Initial Z in Mandelbrot mode: the pixel coordinate or zero",
    )
    parser.add_argument(
        "--guard", action="store_true",
        help="Enable the consecutive-NaN guard",
    )
    parser.add_argument(
        "--guard-threshold", type=int, default=DEFAULT_ANOMALY_THRESHOLD,
        help=f"Consecutive NaNs tolerated per column (default: {DEFAULT_ANOMALY_THRESHOLD})",
    )
    parser.add_argument(
        "--threshold", type=float, default=DEFAULT_DIVERGENCE_THRESHOLD,
        help=f"Escape radius (default: {DEFAULT_DIVERGENCE_THRESHOLD})",
    )
    parser.add_argument("--arithmetic", choices=ARITHMETIC_POLICIES, default=ARITHMETIC_IEEE)
    parser.add_argument(
        "--center", type=float, nargs=2, metavar=("RE", "IM"), default=(0.0, 0.0),
        help="Plane point at the image center (default: 0 0)",
    )
    parser.add_argument(
        "--span", type=float, default=DEFAULT_SPAN,
        help=f"Width of the plane region shown (default: {DEFAULT_SPAN})",
    )
    parser.add_argument(
        "--color-scale", type=int, default=DEFAULT_COLOR_SCALE,
        help=f"Multiplier applied to the escape step before coloring (default: {DEFAULT_COLOR_SCALE})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    if args.formula_file is not None:
        source = args.formula_file.read_text()
    else:
        source = args.formula

    try:
        viewport = FractalViewport(
            width=args.size,
            height=args.size,
            center_real=args.center[0],
            center_imag=args.center[1],
            span=args.span,
        )
        config = RenderConfig(
            iteration_budget=args.iterations,
            mode=args.mode,
            julia_seed=Complex(*args.julia),
            anomaly_guard_enabled=args.guard,
            divergence_threshold=args.threshold,
            mandelbrot_seed=args.seed_rule,
            arithmetic=args.arithmetic,
            anomaly_threshold=args.guard_threshold,
        )
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return 2

    try:
        result = render_formula(source, viewport, config, args.color_scale)
    except FormulaCompileError as exc:
        logger.error("Formula rejected: %s", exc)
        return 1

    if not result.buffer.to_qimage().save(args.output):
        logger.error("Could not write %s", args.output)
        return 1
    logger.info("Saved %s", args.output)

    if result.outcome == OUTCOME_FATAL:
        return 1
    return 0 if result.outcome == OUTCOME_COMPLETED else 3


if __name__ == "__main__":
    sys.exit(main())
