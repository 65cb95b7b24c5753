"""Shared UI widgets for the fractal front end.

Contains ComplexInputWidget and small widget factory helpers.
"""

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import QDoubleSpinBox, QGridLayout, QLabel, QWidget

from complex_number import Complex


# ---------------------------------------------------------------------------
# Widget helpers
# ---------------------------------------------------------------------------

def make_double_spinbox(minimum, maximum, value, step=0.01, decimals=4):
    """Create a QDoubleSpinBox with the given range and initial value."""
    spin = QDoubleSpinBox()
    spin.setRange(minimum, maximum)
    spin.setDecimals(decimals)
    spin.setSingleStep(step)
    spin.setValue(value)
    spin.setAlignment(Qt.AlignmentFlag.AlignRight)
    return spin


def make_hint_label(text):
    """Small grey italic label used for hints under a control group."""
    label = QLabel(text)
    label.setWordWrap(True)
    label.setStyleSheet("color: #888; font-style: italic; font-size: 11px;")
    return label


# ---------------------------------------------------------------------------
# ComplexInputWidget
# ---------------------------------------------------------------------------

class ComplexInputWidget(QWidget):
    """Two spin boxes (real and imaginary part) for entering a complex number.

    Emits no signals itself; call get_value() to read the current number.
    The parent can connect the spin boxes' valueChanged to detect changes.
    """

    def __init__(self, value=Complex(0.0, 0.0), limit=4.0, parent=None):
        super().__init__(parent)
        layout = QGridLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self.real_spin = make_double_spinbox(-limit, limit, float(value.real))
        self.imag_spin = make_double_spinbox(-limit, limit, float(value.imag))

        self._add_row(layout, 0, "Re", self.real_spin)
        self._add_row(layout, 1, "Im", self.imag_spin, " i")

    def _add_row(self, layout, row, label_text, spin, unit=""):
        layout.addWidget(QLabel(label_text), row, 0)
        layout.addWidget(spin, row, 1)
        if unit:
            spin.setSuffix(unit)

    def get_value(self):
        """Return the entered number as a Complex."""
        return Complex(self.real_spin.value(), self.imag_spin.value())

    def set_value(self, value):
        self.real_spin.setValue(float(value.real))
        self.imag_spin.setValue(float(value.imag))
