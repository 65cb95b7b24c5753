"""Formula environment: the complete symbol table a formula can reach.

Real-valued math functions and constants (named after the usual
``Math.*`` vocabulary) plus ``constant(re, im)`` for building complex
numbers. Functions are numpy ufunc based so they obey the active
numpy.errstate, the same as Complex arithmetic. There is no
randomness, no I/O and no mutable state in here.
"""

from __future__ import annotations

import functools
import math
from types import MappingProxyType

import numpy as np

from complex_number import Complex

# Name of the complex-constructor capability
CONSTANT_NAME = "constant"

# Arithmetic policies: how division by zero, log(0), sqrt(-1) etc. behave
ARITHMETIC_IEEE = "ieee"      # inf/nan propagate; NaN pixels become anomalies
ARITHMETIC_STRICT = "strict"  # raise; the formula reports an evaluation error
ARITHMETIC_POLICIES = (ARITHMETIC_IEEE, ARITHMETIC_STRICT)


def arithmetic_errstate(policy: str = ARITHMETIC_IEEE) -> np.errstate:
    """Return the numpy.errstate context that implements an arithmetic policy.

    Overflow is ignored under both policies: an overflowing iterate is
    simply a divergent one.
    """
    if policy == ARITHMETIC_IEEE:
        return np.errstate(all="ignore")
    if policy == ARITHMETIC_STRICT:
        return np.errstate(divide="raise", invalid="raise", over="ignore", under="ignore")
    raise ValueError(f"Unknown arithmetic policy: {policy!r}")


def _abs(x):
    """Absolute value; the magnitude for a complex argument."""
    if isinstance(x, Complex):
        return x.magnitude()
    return np.abs(x)


def _round(x):
    """Round half up (toward +inf), so round(-2.5) == -2."""
    return np.floor(np.float64(x) + 0.5)


def _max(*values):
    return functools.reduce(np.maximum, values, np.float64(-np.inf))


def _min(*values):
    return functools.reduce(np.minimum, values, np.float64(np.inf))


def _hypot(*values):
    return functools.reduce(np.hypot, values, np.float64(0.0))


def constant(re, im=0.0) -> Complex:
    """Build the complex number ``re + im*i``."""
    return Complex(re, im)


_FUNCTIONS = {
    "abs": _abs,
    "acos": np.arccos,
    "acosh": np.arccosh,
    "asin": np.arcsin,
    "asinh": np.arcsinh,
    "atan": np.arctan,
    "atan2": np.arctan2,
    "atanh": np.arctanh,
    "cbrt": np.cbrt,
    "ceil": np.ceil,
    "cos": np.cos,
    "cosh": np.cosh,
    "exp": np.exp,
    "expm1": np.expm1,
    "floor": np.floor,
    "hypot": _hypot,
    "log": np.log,
    "log10": np.log10,
    "log1p": np.log1p,
    "log2": np.log2,
    "max": _max,
    "min": _min,
    "pow": np.power,
    "round": _round,
    "sign": np.sign,
    "sin": np.sin,
    "sinh": np.sinh,
    "sqrt": np.sqrt,
    "tan": np.tan,
    "tanh": np.tanh,
    "trunc": np.trunc,
}

_CONSTANTS = {
    "E": np.float64(math.e),
    "LN10": np.float64(math.log(10)),
    "LN2": np.float64(math.log(2)),
    "LOG10E": np.float64(1 / math.log(10)),
    "LOG2E": np.float64(1 / math.log(2)),
    "PI": np.float64(math.pi),
    "SQRT1_2": np.float64(math.sqrt(0.5)),
    "SQRT2": np.float64(math.sqrt(2)),
}


def build_environment() -> MappingProxyType:
    """Build the read-only identifier -> capability mapping."""
    symbols = {**_FUNCTIONS, **_CONSTANTS, CONSTANT_NAME: constant}
    return MappingProxyType(symbols)


# Built once; shared by every compiled formula
FORMULA_ENVIRONMENT = build_environment()
