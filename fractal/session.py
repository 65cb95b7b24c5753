"""Render session: the formula slot plus at most one active render.

Front ends talk to the core through this class. set_formula() swaps the
active formula only when the new text compiles; start_render() cancels
whatever render is still running, captures the current formula and
returns a fresh driver that step() then advances one column at a time.
"""

from __future__ import annotations

import logging

from fractal.coloring import ColorMapper, PixelSink
from fractal.compute import FractalViewport, RenderConfig
from fractal.driver import RenderDriver
from fractal.formula import CompiledFormula, FormulaCompileError, FormulaSlot
from fractal.status import CompileFailed, StatusChannel

logger = logging.getLogger(__name__)


class RenderSession:
    """Owns the active formula and the active render for one front end."""

    def __init__(self, status: StatusChannel):
        self._status = status
        self._slot = FormulaSlot()
        self._driver: RenderDriver | None = None
        self._columns = None

    @property
    def formula(self) -> CompiledFormula | None:
        return self._slot.formula

    @property
    def driver(self) -> RenderDriver | None:
        return self._driver

    @property
    def rendering(self) -> bool:
        return self._driver is not None and not self._driver.finished

    def set_formula(self, source: str) -> bool:
        """Compile and activate a formula.

        Returns False (and emits CompileFailed) when the text is rejected;
        the previously active formula is kept in that case.
        """
        try:
            self._slot.replace(source)
        except FormulaCompileError as exc:
            logger.info("Formula rejected: %s", exc)
            self._status.emit(CompileFailed(str(exc)))
            return False
        return True

    def start_render(
        self,
        viewport: FractalViewport,
        config: RenderConfig,
        sink: PixelSink,
        mapper: ColorMapper | None = None,
    ) -> RenderDriver:
        """Begin a new render with the active formula."""
        formula = self._slot.formula
        if formula is None:
            raise RuntimeError("No formula has been compiled yet")

        self.cancel()
        self._driver = RenderDriver(viewport, config, formula, sink, self._status, mapper)
        self._columns = self._driver.columns()
        return self._driver

    def step(self) -> bool:
        """Render the next column. Returns False once nothing is left to do."""
        if self._columns is None:
            return False
        try:
            next(self._columns)
        except StopIteration:
            self._columns = None
            return False
        return True

    def cancel(self) -> None:
        """Cancel the active render, if any."""
        if self._driver is not None and not self._driver.finished:
            self._driver.cancel()
        self._columns = None
