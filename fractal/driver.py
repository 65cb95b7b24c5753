"""Render driver: column-by-column scan with cooperative yielding.

RenderDriver.columns() is a generator that evaluates one full column of
pixels per step and then yields control back to the host. A host cancels
simply by not resuming it (or by calling cancel()). The anomaly guard and
the fatal-abort policy live here.
"""

from __future__ import annotations

import logging
from typing import Iterator, NamedTuple

from fractal.coloring import ColorMapper, PixelSink
from fractal.compute import (
    Anomalous, Fatal, FractalViewport, RenderConfig, evaluate_pixel,
)
from fractal.formula import CompiledFormula
from fractal.status import (
    AnomalyThresholdExceeded, FatalAborted, RenderCompleted, StatusChannel,
)

logger = logging.getLogger(__name__)

OUTCOME_PENDING = "pending"
OUTCOME_RUNNING = "running"
OUTCOME_COMPLETED = "completed"
OUTCOME_FATAL = "fatal"
OUTCOME_ANOMALY_HALTED = "anomaly_halted"
OUTCOME_CANCELLED = "cancelled"

FINISHED_OUTCOMES = (
    OUTCOME_COMPLETED, OUTCOME_FATAL, OUTCOME_ANOMALY_HALTED, OUTCOME_CANCELLED,
)


class ColumnReport(NamedTuple):
    """Yielded after each completed column."""

    column: int
    anomalies: int   # longest run of consecutive NaN pixels in the column
    halted: bool     # the anomaly guard cut the column short


class RenderDriver:
    """Scans the pixel grid column-major, feeding colors to a pixel sink.

    The formula reference is captured at construction; swapping the active
    formula afterwards does not affect this render.
    """

    def __init__(
        self,
        viewport: FractalViewport,
        config: RenderConfig,
        formula: CompiledFormula,
        sink: PixelSink,
        status: StatusChannel,
        mapper: ColorMapper | None = None,
    ):
        self._viewport = viewport
        self._config = config
        self._formula = formula
        self._sink = sink
        self._status = status
        self._mapper = mapper if mapper is not None else ColorMapper(config.iteration_budget)
        self._scan: Iterator[ColumnReport] | None = None
        self._outcome = OUTCOME_PENDING
        self._max_anomalies = 0
        self._columns_done = 0

    @property
    def viewport(self) -> FractalViewport:
        return self._viewport

    @property
    def outcome(self) -> str:
        return self._outcome

    @property
    def finished(self) -> bool:
        return self._outcome in FINISHED_OUTCOMES

    @property
    def max_anomalies(self) -> int:
        """Longest NaN run seen in any column so far."""
        return self._max_anomalies

    @property
    def columns_done(self) -> int:
        return self._columns_done

    def columns(self) -> Iterator[ColumnReport]:
        """Return the column generator. A driver renders only once."""
        if self._scan is not None:
            raise RuntimeError("This render has already been started")
        self._scan = self._scan_columns()
        return self._scan

    def run(self) -> str:
        """Scan every column without yielding; return the outcome."""
        for _ in self.columns():
            pass
        return self._outcome

    def cancel(self) -> None:
        """Stop the scan. Pixels already committed stay committed."""
        if self._scan is not None:
            self._scan.close()
        if not self.finished:
            self._outcome = OUTCOME_CANCELLED
            logger.info("Render cancelled before it started")

    def _scan_columns(self) -> Iterator[ColumnReport]:
        viewport = self._viewport
        config = self._config
        formula = self._formula
        guard = config.anomaly_guard_enabled
        threshold = config.anomaly_threshold

        self._outcome = OUTCOME_RUNNING
        logger.info(
            "Rendering %dx%d %s fractal of %r (budget %d, guard %s)",
            viewport.width, viewport.height, config.mode, formula.source,
            config.iteration_budget, "on" if guard else "off",
        )

        previous_exceeded = False
        try:
            for x in range(viewport.width):
                run = 0
                column_max = 0
                exceeded = False

                for y in range(viewport.height):
                    classification = evaluate_pixel(x, y, viewport, config, formula)

                    if isinstance(classification, Fatal):
                        self._outcome = OUTCOME_FATAL
                        logger.warning(
                            "Render aborted at pixel (%d, %d): %s",
                            x, y, classification.message,
                        )
                        self._status.emit(FatalAborted(classification.message, x, y))
                        return

                    if isinstance(classification, Anomalous):
                        run = run + 1
                        column_max = max(column_max, run)
                        if guard and run > threshold:
                            exceeded = True
                            break
                        continue

                    run = 0
                    self._sink.set_pixel(x, y, self._mapper.color_for(classification))

                self._max_anomalies = max(self._max_anomalies, column_max)

                if exceeded:
                    halted = previous_exceeded
                    self._status.emit(
                        AnomalyThresholdExceeded(x, self._max_anomalies, halted)
                    )
                    if halted:
                        self._outcome = OUTCOME_ANOMALY_HALTED
                        logger.warning(
                            "Render halted at column %d: NaN threshold exceeded twice in a row",
                            x,
                        )
                        return
                previous_exceeded = exceeded

                logger.debug("Column %d done (longest NaN run %d)", x, column_max)
                self._columns_done = x + 1
                yield ColumnReport(x, column_max, exceeded)

        except GeneratorExit:
            self._outcome = OUTCOME_CANCELLED
            logger.info("Render cancelled")
            raise

        self._outcome = OUTCOME_COMPLETED
        logger.info("Render complete (longest NaN run %d)", self._max_anomalies)
        self._status.emit(RenderCompleted(viewport.width, self._max_anomalies))
