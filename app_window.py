"""App window: hosts the FractalView with a toolbar and status bar.

The status bar shows the plane coordinate under the cursor and the
progress of the running render.
"""

import logging

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import QLabel, QMainWindow, QStatusBar, QToolBar

from complex_number import Complex
from fractal.driver import OUTCOME_COMPLETED
from fractal.view import FractalView

logger = logging.getLogger(__name__)


class AppWindow(QMainWindow):
    """Top-level window for the formula fractal renderer."""

    def __init__(self):
        super().__init__()
        self.setWindowTitle("Formula Fractals")
        self.resize(1100, 700)

        # --- View ---
        self.fractal_view = FractalView()
        self.setCentralWidget(self.fractal_view)

        # --- Toolbar ---
        toolbar = QToolBar("Render")
        toolbar.setMovable(False)
        self.addToolBar(Qt.ToolBarArea.TopToolBarArea, toolbar)

        self._draw_action = QAction("Draw", self)
        self._draw_action.setShortcut(QKeySequence("Ctrl+Return"))
        self._draw_action.triggered.connect(self.fractal_view.draw)
        toolbar.addAction(self._draw_action)

        self._stop_action = QAction("Stop", self)
        self._stop_action.setShortcut(QKeySequence("Esc"))
        self._stop_action.triggered.connect(self.fractal_view.cancel)
        toolbar.addAction(self._stop_action)

        toolbar.addSeparator()

        self._save_action = QAction("Save Image...", self)
        self._save_action.setShortcut(QKeySequence.StandardKey.Save)
        self._save_action.triggered.connect(self.fractal_view.save_image)
        toolbar.addAction(self._save_action)

        # --- Status bar ---
        self._status_bar = QStatusBar()
        self.setStatusBar(self._status_bar)

        self._coord_label = QLabel()
        self._progress_label = QLabel()
        self._status_bar.addWidget(self._coord_label)
        self._status_bar.addWidget(self._progress_label)

        self.fractal_view.canvas.point_hovered.connect(self._on_point_hovered)
        self.fractal_view.progress_changed.connect(self._on_progress)
        self.fractal_view.render_finished.connect(self._on_render_finished)

    def _on_point_hovered(self, real: float, imag: float) -> None:
        point = Complex(real, imag)
        self._coord_label.setText(f"  C = {point.format()}  ")

    def _on_progress(self, done: int, total: int) -> None:
        if total > 0:
            pct = int(100 * done / total)
            self._progress_label.setText(f"  Rendering... {pct}%  ")

    def _on_render_finished(self, outcome: str) -> None:
        if outcome == OUTCOME_COMPLETED:
            self._progress_label.setText("  Done  ")
        else:
            self._progress_label.setText(f"  Render {outcome.replace('_', ' ')}  ")
        logger.info("Render ended: %s", outcome)
