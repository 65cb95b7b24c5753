"""Fractal view: orchestrates canvas, controls and the render session.

This is the main coordinator for the renderer. It:
- Compiles the formula when Draw is pressed (keeping the old one on error)
- Starts a render on the canvas through RenderSession
- Steps the render one column per timer tick so the UI stays responsive
- Routes status events to the controls' status line
"""

from __future__ import annotations

import logging

from PyQt6.QtCore import QObject, Qt, QTimer, pyqtSignal
from PyQt6.QtWidgets import QFileDialog, QHBoxLayout, QSplitter, QWidget

from complex_number import Complex
from fractal.canvas import FractalCanvas
from fractal.compute import FractalViewport
from fractal.controls import FractalControls
from fractal.session import RenderSession
from fractal.status import (
    AnomalyThresholdExceeded, CompileFailed, FatalAborted, StatusEvent,
    format_status,
)

logger = logging.getLogger(__name__)


class QtStatusChannel(QObject):
    """StatusChannel that re-emits events as a Qt signal carrying text."""

    message = pyqtSignal(str, bool)   # text, is_error

    def emit(self, event: StatusEvent) -> None:
        is_error = isinstance(event, (CompileFailed, FatalAborted)) or (
            isinstance(event, AnomalyThresholdExceeded) and event.halted
        )
        self.message.emit(format_status(event), is_error)


class FractalView(QWidget):
    """Complete renderer: canvas + controls + column-stepping timer."""

    progress_changed = pyqtSignal(int, int)   # columns done, total columns
    render_finished = pyqtSignal(str)         # driver outcome

    def __init__(self, parent=None):
        super().__init__(parent)

        self.status_channel = QtStatusChannel(self)
        self.session = RenderSession(self.status_channel)

        # UI: 2-pane layout [Canvas | Controls]
        self.canvas = FractalCanvas()
        self.controls = FractalControls()

        self._splitter = QSplitter(Qt.Orientation.Horizontal)
        self._splitter.addWidget(self.canvas)
        self._splitter.addWidget(self.controls)
        self._splitter.setStretchFactor(0, 3)
        self._splitter.setStretchFactor(1, 1)

        layout = QHBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._splitter)

        # One column per tick; interval 0 runs whenever the event loop is idle
        self._timer = QTimer(self)
        self._timer.setInterval(0)
        self._timer.timeout.connect(self._on_tick)

        # Wire signals
        self.status_channel.message.connect(self.controls.show_status)
        self.controls.draw_clicked.connect(self.draw)
        self.controls.cancel_clicked.connect(self.cancel)
        self.controls.save_clicked.connect(self.save_image)
        self.canvas.seed_selected.connect(self._on_seed_selected)

    # -- Public interface --

    def draw(self) -> None:
        """Compile the editor's formula and start a fresh render."""
        if not self.session.set_formula(self.controls.get_formula()):
            # CompileFailed already reached the status line; no render starts
            return

        try:
            config = self.controls.get_config()
        except ValueError as exc:
            self.controls.show_status(str(exc), error=True)
            return

        resolution = self.controls.get_resolution()
        current = self.canvas.get_viewport()
        viewport = FractalViewport(
            width=resolution,
            height=resolution,
            center_real=current.center_real,
            center_imag=current.center_imag,
            span=current.span,
        )
        self.canvas.set_viewport(viewport)
        self.canvas.clear()

        self.session.start_render(viewport, config, self.canvas)
        self.controls.show_status("Rendering...")
        self.controls.set_rendering(True)
        self.canvas.set_scan_column(0)
        self.progress_changed.emit(0, viewport.width)
        self._timer.start()

    def cancel(self) -> None:
        """Stop the running render, leaving committed columns on screen."""
        if not self.session.rendering:
            return
        self.session.cancel()
        self.controls.show_status("Stopped")
        self._finish()

    def save_image(self) -> None:
        path, _ = QFileDialog.getSaveFileName(
            self, "Save Image", "fractal.png", "PNG Images (*.png)",
        )
        if not path:
            return
        if self.canvas.snapshot().save(path):
            logger.info("Saved image to %s", path)
        else:
            logger.error("Could not save image to %s", path)
            self.controls.show_status(f"Could not save image to {path}", error=True)

    # -- Render stepping --

    def _on_tick(self) -> None:
        try:
            more = self.session.step()
        except Exception:
            logger.exception("Render step failed")
            self.session.cancel()
            self.controls.show_status("Internal error while rendering", error=True)
            self._finish()
            return

        driver = self.session.driver
        total = driver.viewport.width
        if more:
            done = driver.columns_done
            self.canvas.set_scan_column(done if done < total else None)
            self.progress_changed.emit(done, total)
            return
        self._finish()

    def _finish(self) -> None:
        self._timer.stop()
        self.canvas.set_scan_column(None)
        self.controls.set_rendering(False)
        driver = self.session.driver
        if driver is not None:
            self.render_finished.emit(driver.outcome)
            logger.debug("Render finished with outcome %s", driver.outcome)

    # -- UI signal handlers --

    def _on_seed_selected(self, real: float, imag: float) -> None:
        """Ctrl+click on the canvas: use the point as the Julia seed."""
        logger.info("Julia seed selected: %.4f %+.4fi", real, imag)
        self.controls.set_julia_seed(Complex(real, imag))
