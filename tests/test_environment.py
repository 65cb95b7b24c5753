"""Tests for fractal/environment.py: symbol table and arithmetic policies."""

import math

import numpy as np
import pytest

from complex_number import Complex
from fractal.environment import (
    ARITHMETIC_IEEE, ARITHMETIC_STRICT, CONSTANT_NAME, FORMULA_ENVIRONMENT,
    arithmetic_errstate, build_environment, constant,
)


class TestSymbolTable:
    """Test the names a formula can reach."""

    def test_math_functions_present(self):
        for name in ("sin", "cos", "tan", "exp", "log", "sqrt", "atan2",
                     "floor", "ceil", "round", "max", "min", "pow", "abs"):
            assert name in FORMULA_ENVIRONMENT

    def test_math_constants(self):
        assert FORMULA_ENVIRONMENT["PI"] == pytest.approx(math.pi)
        assert FORMULA_ENVIRONMENT["E"] == pytest.approx(math.e)
        assert FORMULA_ENVIRONMENT["SQRT2"] == pytest.approx(math.sqrt(2))
        assert FORMULA_ENVIRONMENT["LN2"] == pytest.approx(math.log(2))

    def test_constant_capability(self):
        assert FORMULA_ENVIRONMENT[CONSTANT_NAME] is constant
        assert constant(1, 2) == Complex(1, 2)
        assert constant(3) == Complex(3, 0)

    def test_no_randomness(self):
        assert "random" not in FORMULA_ENVIRONMENT

    def test_read_only(self):
        with pytest.raises(TypeError):
            FORMULA_ENVIRONMENT["sin"] = None

    def test_build_returns_fresh_equal_mapping(self):
        env = build_environment()
        assert dict(env) == dict(FORMULA_ENVIRONMENT)


class TestFunctions:
    """Test the helpers that differ from plain numpy."""

    def test_abs_of_complex_is_magnitude(self):
        assert FORMULA_ENVIRONMENT["abs"](Complex(3, 4)) == 5.0

    def test_abs_of_real(self):
        assert FORMULA_ENVIRONMENT["abs"](-2.0) == 2.0

    def test_round_half_up(self):
        rnd = FORMULA_ENVIRONMENT["round"]
        assert rnd(2.5) == 3.0
        assert rnd(-2.5) == -2.0
        assert rnd(-2.6) == -3.0

    def test_variadic_max_min(self):
        assert FORMULA_ENVIRONMENT["max"](1, 5, 3) == 5.0
        assert FORMULA_ENVIRONMENT["min"](1, 5, 3) == 1.0
        assert FORMULA_ENVIRONMENT["max"]() == -math.inf

    def test_hypot(self):
        assert FORMULA_ENVIRONMENT["hypot"](3, 4) == 5.0


class TestArithmeticErrstate:
    """Test the numpy.errstate policies."""

    def test_ieee_ignores(self):
        with arithmetic_errstate(ARITHMETIC_IEEE):
            assert np.isnan(np.float64(0.0) / np.float64(0.0))
            assert np.log(np.float64(0.0)) == -np.inf

    def test_strict_raises_on_divide(self):
        with arithmetic_errstate(ARITHMETIC_STRICT):
            with pytest.raises(FloatingPointError):
                np.float64(1.0) / np.float64(0.0)

    def test_strict_raises_on_invalid(self):
        with arithmetic_errstate(ARITHMETIC_STRICT):
            with pytest.raises(FloatingPointError):
                np.sqrt(np.float64(-1.0))

    def test_strict_allows_overflow(self):
        with arithmetic_errstate(ARITHMETIC_STRICT):
            assert np.float64(1e308) * np.float64(10.0) == np.inf

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            arithmetic_errstate("lenient")
