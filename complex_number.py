"""Complex number value type used by the formula sandbox and the renderer.

Every operation returns a new Complex; instances are never mutated.
Components are stored as numpy float64 scalars so that division by zero,
log of zero and friends follow whatever numpy.errstate is active around the
call (IEEE propagation or a raised FloatingPointError). See
fractal.environment.arithmetic_errstate.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass

import numpy as np

# Components at or below this magnitude are shown at full precision by format()
ROUND_DISPLAY_THRESHOLD = 1.5


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_))


def _format_component(value: float) -> str:
    """Format a float the way a user expects to read it: 2.0 -> "2"."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == int(value):
        return str(int(value))
    return repr(value)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True, eq=True)
class Complex:
    """Immutable complex number with rectangular components.

    ``imag`` defaults to 0, so ``Complex(3)`` embeds the real number 3.
    """

    real: float
    imag: float = 0.0

    # numpy scalars defer to our reflected operators instead of broadcasting
    __array_ufunc__ = None

    def __post_init__(self):
        if not _is_real(self.real) or not _is_real(self.imag):
            raise TypeError(
                f"Complex components must be real numbers, got "
                f"{type(self.real).__name__} and {type(self.imag).__name__}"
            )
        object.__setattr__(self, "real", np.float64(self.real))
        object.__setattr__(self, "imag", np.float64(self.imag))

    # -- Arithmetic --

    def conjugate(self) -> Complex:
        """Return the number with its imaginary part negated."""
        return Complex(self.real, -self.imag)

    def add(self, re, im=0.0) -> Complex:
        return Complex(self.real + re, self.imag + im)

    def subtract(self, re, im=0.0) -> Complex:
        return Complex(self.real - re, self.imag - im)

    def multiply(self, re, im=None) -> Complex:
        """Multiply by ``re + im*i``, or scale by ``re`` when ``im`` is omitted."""
        if im is None:
            return Complex(self.real * re, self.imag * re)
        re = np.float64(re)
        im = np.float64(im)
        return Complex(
            self.real * re - self.imag * im,
            self.real * im + self.imag * re,
        )

    def divide(self, re, im=None) -> Complex:
        """Divide by ``re + im*i``, or by the scalar ``re`` when ``im`` is omitted.

        The complex case multiplies by the conjugate over ``re**2 + im**2``.
        A zero divisor yields inf/nan under IEEE rules, or raises
        FloatingPointError when the caller has set numpy to raise.
        """
        if im is None:
            re = np.float64(re)
            return Complex(self.real / re, self.imag / re)
        re = np.float64(re)
        im = np.float64(im)
        divisor = re * re + im * im
        return Complex(
            (self.real * re + self.imag * im) / divisor,
            (self.imag * re - self.real * im) / divisor,
        )

    def power_to(self, re, im=None) -> Complex:
        """Raise to the power ``re + im*i`` (or the real power ``re``).

        Real exponent: magnitude**re at angle*re.
        Complex exponent: exp(ln|z|*re - angle*im) at angle*re + ln|z|*im.
        """
        magnitude = np.sqrt(self.real * self.real + self.imag * self.imag)
        angle = np.arctan2(self.imag, self.real)
        re = np.float64(re)
        if im is None:
            new_magnitude = magnitude ** re
            new_angle = angle * re
        else:
            im = np.float64(im)
            ln_magnitude = np.log(magnitude)
            new_magnitude = np.exp(ln_magnitude * re - angle * im)
            new_angle = angle * re + ln_magnitude * im
        return Complex(
            new_magnitude * np.cos(new_angle),
            new_magnitude * np.sin(new_angle),
        )

    # -- Polar --

    def magnitude(self) -> float:
        return np.sqrt(self.real * self.real + self.imag * self.imag)

    def angle(self) -> float:
        return np.arctan2(self.imag, self.real)

    def abs(self) -> Complex:
        """Magnitude as a real-valued Complex (imaginary part 0)."""
        return Complex(self.magnitude())

    def theta(self) -> Complex:
        """Angle as a real-valued Complex (imaginary part 0)."""
        return Complex(self.angle())

    def is_nan(self) -> bool:
        return bool(np.isnan(self.real) or np.isnan(self.imag))

    # -- Display --

    def format(self, rounded: bool = True) -> str:
        """Render as ``"<real><sign><|imag|>i"``.

        With ``rounded``, a component whose absolute value exceeds 1.5 is
        shown as its nearest integer (so 2.0000000000004 reads as 2); smaller
        components keep full precision. Non-finite components read as
        ``NaN``, ``Infinity`` or ``-Infinity`` and are never rounded.
        """
        real = float(self.real)
        imag = float(self.imag)
        abs_imag = abs(imag)
        if rounded and math.isfinite(real) and abs(real) > ROUND_DISPLAY_THRESHOLD:
            real_text = str(_round_half_up(real))
        else:
            real_text = _format_component(real)
        if rounded and math.isfinite(abs_imag) and abs_imag > ROUND_DISPLAY_THRESHOLD:
            imag_text = str(_round_half_up(abs_imag))
        else:
            imag_text = _format_component(abs_imag)
        sign = "-" if imag < 0 else "+"
        return f"{real_text}{sign}{imag_text}i"

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Complex({float(self.real)!r}, {float(self.imag)!r})"

    # -- Operators --

    def __add__(self, other):
        if isinstance(other, Complex):
            return self.add(other.real, other.imag)
        if _is_real(other):
            return self.add(other)
        return NotImplemented

    def __radd__(self, other):
        return self.__add__(other)

    def __sub__(self, other):
        if isinstance(other, Complex):
            return self.subtract(other.real, other.imag)
        if _is_real(other):
            return self.subtract(other)
        return NotImplemented

    def __rsub__(self, other):
        if _is_real(other):
            return Complex(other).subtract(self.real, self.imag)
        return NotImplemented

    def __mul__(self, other):
        if isinstance(other, Complex):
            return self.multiply(other.real, other.imag)
        if _is_real(other):
            return self.multiply(other)
        return NotImplemented

    def __rmul__(self, other):
        return self.__mul__(other)

    def __truediv__(self, other):
        if isinstance(other, Complex):
            return self.divide(other.real, other.imag)
        if _is_real(other):
            return self.divide(other)
        return NotImplemented

    def __rtruediv__(self, other):
        if _is_real(other):
            return Complex(other).divide(self.real, self.imag)
        return NotImplemented

    def __pow__(self, other):
        if isinstance(other, Complex):
            return self.power_to(other.real, other.imag)
        if _is_real(other):
            return self.power_to(other)
        return NotImplemented

    def __rpow__(self, other):
        if _is_real(other):
            return Complex(other).power_to(self.real, self.imag)
        return NotImplemented

    def __neg__(self):
        return Complex(-self.real, -self.imag)

    def __pos__(self):
        return self

    def __abs__(self):
        return self.magnitude()
