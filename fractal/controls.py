"""Fractal controls: formula editor, iteration settings, mode, Julia seed.

All controls for the renderer, organized in grouped sections. The panel
only collects values; FractalView turns them into a RenderConfig and
drives the render.
"""

from PyQt6.QtCore import pyqtSignal
from PyQt6.QtGui import QFont
from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QGridLayout,
    QLabel, QPushButton, QComboBox, QGroupBox,
    QSpinBox, QCheckBox, QPlainTextEdit,
)

from complex_number import Complex
from fractal.compute import (
    DEFAULT_ANOMALY_THRESHOLD, DEFAULT_DIVERGENCE_THRESHOLD,
    DEFAULT_ITERATION_BUDGET, DEFAULT_JULIA_SEED,
    MODE_JULIA, MODE_MANDELBROT, SEED_COORDINATE, SEED_ZERO,
    RenderConfig,
)
from fractal.environment import ARITHMETIC_IEEE, ARITHMETIC_STRICT
from ui_common import ComplexInputWidget, make_double_spinbox, make_hint_label

DEFAULT_FORMULA = "Z*Z + C"

RESOLUTIONS = [100, 200, 400, 800]
DEFAULT_RESOLUTION_INDEX = 2

ERROR_STYLE = "color: #e06060;"
OK_STYLE = "color: #60c060;"


class FractalControls(QWidget):
    """Control panel for the formula renderer."""

    draw_clicked = pyqtSignal()
    cancel_clicked = pyqtSignal()
    save_clicked = pyqtSignal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self._init_ui()

    def _init_ui(self):
        main_layout = QVBoxLayout(self)
        main_layout.setContentsMargins(8, 8, 8, 8)

        # --- Formula ---
        formula_group = QGroupBox("Formula f(Z, C)")
        formula_layout = QVBoxLayout()
        formula_group.setLayout(formula_layout)

        self.formula_edit = QPlainTextEdit(DEFAULT_FORMULA)
        font = QFont("Menlo")
        font.setStyleHint(QFont.StyleHint.Monospace)
        self.formula_edit.setFont(font)
        self.formula_edit.setMinimumHeight(90)
        formula_layout.addWidget(self.formula_edit)

        formula_layout.addWidget(make_hint_label(
            "An expression such as Z*Z + C, or statements ending in "
            "'return'. Available: sin, cos, exp, log, sqrt, PI, E, ..., "
            "constant(re, im), and Z.add/multiply/power_to/conjugate/abs."
        ))

        button_row = QHBoxLayout()
        self.draw_btn = QPushButton("Draw")
        self.draw_btn.setDefault(True)
        self.cancel_btn = QPushButton("Stop")
        self.cancel_btn.setEnabled(False)
        self.save_btn = QPushButton("Save Image...")
        button_row.addWidget(self.draw_btn)
        button_row.addWidget(self.cancel_btn)
        button_row.addStretch()
        button_row.addWidget(self.save_btn)
        formula_layout.addLayout(button_row)

        self.status_label = QLabel("No Error")
        self.status_label.setWordWrap(True)
        formula_layout.addWidget(self.status_label)

        main_layout.addWidget(formula_group)

        # --- Iteration ---
        iter_group = QGroupBox("Iteration")
        iter_layout = QGridLayout()
        iter_group.setLayout(iter_layout)

        iter_layout.addWidget(QLabel("Iterations:"), 0, 0)
        self.iterations_spin = QSpinBox()
        self.iterations_spin.setRange(1, 100_000)
        self.iterations_spin.setValue(DEFAULT_ITERATION_BUDGET)
        iter_layout.addWidget(self.iterations_spin, 0, 1)

        iter_layout.addWidget(QLabel("Escape radius:"), 1, 0)
        self.threshold_spin = make_double_spinbox(
            0.01, 1e6, DEFAULT_DIVERGENCE_THRESHOLD, step=0.5, decimals=2,
        )
        iter_layout.addWidget(self.threshold_spin, 1, 1)

        iter_layout.addWidget(QLabel("Arithmetic:"), 2, 0)
        self.arithmetic_combo = QComboBox()
        self.arithmetic_combo.addItem("IEEE (NaN/inf propagate)", ARITHMETIC_IEEE)
        self.arithmetic_combo.addItem("Strict (errors abort)", ARITHMETIC_STRICT)
        iter_layout.addWidget(self.arithmetic_combo, 2, 1)

        self.guard_check = QCheckBox(
            f"Halt after {DEFAULT_ANOMALY_THRESHOLD}+ consecutive NaNs in a column"
        )
        iter_layout.addWidget(self.guard_check, 3, 0, 1, 2)

        main_layout.addWidget(iter_group)

        # --- Mode ---
        mode_group = QGroupBox("Mode")
        mode_layout = QGridLayout()
        mode_group.setLayout(mode_layout)

        mode_layout.addWidget(QLabel("Fractal:"), 0, 0)
        self.mode_combo = QComboBox()
        self.mode_combo.addItem("Mandelbrot", MODE_MANDELBROT)
        self.mode_combo.addItem("Julia", MODE_JULIA)
        mode_layout.addWidget(self.mode_combo, 0, 1)

        mode_layout.addWidget(QLabel("Start Z at:"), 1, 0)
        self.seed_rule_combo = QComboBox()
        self.seed_rule_combo.addItem("C (pixel)", SEED_COORDINATE)
        self.seed_rule_combo.addItem("0", SEED_ZERO)
        mode_layout.addWidget(self.seed_rule_combo, 1, 1)

        mode_layout.addWidget(QLabel("Julia seed:"), 2, 0)
        self.julia_seed = ComplexInputWidget(DEFAULT_JULIA_SEED)
        mode_layout.addWidget(self.julia_seed, 2, 1)

        mode_layout.addWidget(make_hint_label("Ctrl+click the image to pick a Julia seed"), 3, 0, 1, 2)

        mode_layout.addWidget(QLabel("Resolution:"), 4, 0)
        self.resolution_combo = QComboBox()
        for res in RESOLUTIONS:
            self.resolution_combo.addItem(f"{res}x{res}", res)
        self.resolution_combo.setCurrentIndex(DEFAULT_RESOLUTION_INDEX)
        mode_layout.addWidget(self.resolution_combo, 4, 1)

        main_layout.addWidget(mode_group)
        main_layout.addStretch()

        # --- Wire signals ---
        self.draw_btn.clicked.connect(self.draw_clicked.emit)
        self.cancel_btn.clicked.connect(self.cancel_clicked.emit)
        self.save_btn.clicked.connect(self.save_clicked.emit)
        self.mode_combo.currentIndexChanged.connect(self._on_mode_changed)
        self._on_mode_changed(self.mode_combo.currentIndex())

    # -- Public accessors --

    def get_formula(self) -> str:
        return self.formula_edit.toPlainText()

    def get_resolution(self) -> int:
        return self.resolution_combo.currentData()

    def get_config(self) -> RenderConfig:
        """Build a RenderConfig from the current widget values."""
        return RenderConfig(
            iteration_budget=self.iterations_spin.value(),
            mode=self.mode_combo.currentData(),
            julia_seed=self.julia_seed.get_value(),
            anomaly_guard_enabled=self.guard_check.isChecked(),
            divergence_threshold=self.threshold_spin.value(),
            mandelbrot_seed=self.seed_rule_combo.currentData(),
            arithmetic=self.arithmetic_combo.currentData(),
        )

    def set_julia_seed(self, seed: Complex) -> None:
        """Fill in the Julia seed and switch to Julia mode."""
        self.julia_seed.set_value(seed)
        self.mode_combo.setCurrentIndex(self.mode_combo.findData(MODE_JULIA))

    def set_rendering(self, rendering: bool) -> None:
        self.cancel_btn.setEnabled(rendering)

    def show_status(self, text: str, error: bool = False) -> None:
        self.status_label.setText(text)
        self.status_label.setStyleSheet(ERROR_STYLE if error else OK_STYLE)

    # -- Callbacks --

    def _on_mode_changed(self, _index):
        julia = self.mode_combo.currentData() == MODE_JULIA
        self.julia_seed.setEnabled(julia)
        self.seed_rule_combo.setEnabled(not julia)
