"""Formula compiler: user text -> sandboxed callable ``(Z, C) -> FormulaResult``.

Formulas use Python syntax but only a small, whitelisted subset of it:
a single expression (``Z*Z + C``) or a short function body made of
assignments, ``if``/``else`` and ``return``. The parsed tree is checked
node by node and then turned into nested closures, so user text is never
handed to ``eval``/``exec``. The only names a formula can reach are
``Z``, ``C``, its own locals and the symbols of the formula environment.

A successful compile is followed by a canary call with ``Z = C = 0`` to
catch errors that only show up on execution. FormulaSlot keeps the last
formula that passed; a failed compile never touches it.
"""

from __future__ import annotations

import ast
import logging
import numbers
import operator
from typing import Callable, Mapping, NamedTuple, Union

import numpy as np

from complex_number import Complex
from fractal.environment import FORMULA_ENVIRONMENT, arithmetic_errstate

logger = logging.getLogger(__name__)

# Longest formula source accepted by the compiler
MAX_SOURCE_LENGTH = 10_000

PARAMETERS = ("Z", "C")

# Formula-visible method name -> Complex method
COMPLEX_METHODS = {
    "conjugate": "conjugate",
    "add": "add",
    "subtract": "subtract",
    "multiply": "multiply",
    "divide": "divide",
    "power_to": "power_to",
    "powerTo": "power_to",
    "abs": "abs",
    "theta": "theta",
    "magnitude": "magnitude",
    "angle": "angle",
}

COMPLEX_ATTRIBUTES = ("real", "imag")

_CANARY = Complex(0.0, 0.0)

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}

_COMPARISONS = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
}

_OPERATOR_SYMBOLS = {
    ast.Mod: "%",
    ast.FloorDiv: "//",
    ast.MatMult: "@",
    ast.BitXor: "^ (use ** for powers)",
    ast.BitAnd: "&",
    ast.BitOr: "|",
    ast.LShift: "<<",
    ast.RShift: ">>",
    ast.Invert: "~",
    ast.Is: "is",
    ast.IsNot: "is not",
    ast.In: "in",
    ast.NotIn: "not in",
}

_CONSTRUCT_NAMES = {
    "Lambda": "lambda expressions",
    "ListComp": "comprehensions",
    "SetComp": "comprehensions",
    "DictComp": "comprehensions",
    "GeneratorExp": "comprehensions",
    "Subscript": "indexing",
    "Slice": "slicing",
    "JoinedStr": "f-strings",
    "List": "lists",
    "Tuple": "tuples",
    "Dict": "dicts",
    "Set": "sets",
    "NamedExpr": "the walrus operator",
    "Await": "await",
    "Yield": "yield",
    "YieldFrom": "yield",
    "Starred": "star arguments",
    "For": "loops",
    "AsyncFor": "loops",
    "While": "loops",
    "FunctionDef": "function definitions",
    "AsyncFunctionDef": "function definitions",
    "ClassDef": "class definitions",
    "Import": "imports",
    "ImportFrom": "imports",
    "With": "with blocks",
    "AsyncWith": "with blocks",
    "Try": "try blocks",
    "Raise": "raise",
    "Global": "global declarations",
    "Nonlocal": "nonlocal declarations",
    "Delete": "del",
    "Assert": "assert",
    "AnnAssign": "annotated assignments",
}

# Marks a block that finished without reaching a return statement
_FALL_THROUGH = object()

# Errors a running formula may raise; each becomes an EvaluationError
_EVALUATION_ERRORS = (ArithmeticError, TypeError, ValueError, RecursionError)


class FormulaError(Exception):
    """Base class for formula problems."""


class FormulaCompileError(FormulaError):
    """The formula text is invalid or failed its canary invocation."""


class FormulaRuntimeError(FormulaError):
    """Raised by the interpreter while a formula runs."""


class FormulaValue(NamedTuple):
    """The formula produced a complex number."""

    value: Complex


class InvalidType(NamedTuple):
    """The formula produced something that is not a complex number."""

    type_name: str


class EvaluationError(NamedTuple):
    """The formula raised while running."""

    message: str


FormulaResult = Union[FormulaValue, InvalidType, EvaluationError]


def describe_type(value) -> str:
    """Name a formula value's type the way a formula author thinks of it."""
    if isinstance(value, (bool, np.bool_)):
        return "boolean"
    if isinstance(value, Complex):
        return "complex number"
    if isinstance(value, numbers.Number):
        return "number"
    if value is None:
        return "nothing"
    if callable(value):
        return "function"
    return type(value).__name__


def _error(node: ast.AST | None, message: str) -> FormulaCompileError:
    lineno = getattr(node, "lineno", None)
    if lineno is None:
        return FormulaCompileError(message)
    return FormulaCompileError(f"line {lineno}: {message}")


class CompiledFormula:
    """A validated formula bound to its environment.

    Calling it never raises for problems inside the formula; the outcome
    is reported as a FormulaResult instead.
    """

    def __init__(self, source: str, body: Callable[[dict], object]):
        self.source = source
        self._body = body

    def __call__(self, z: Complex, c: Complex) -> FormulaResult:
        scope = {"Z": z, "C": c}
        try:
            result = self._body(scope)
        except (FormulaRuntimeError, *_EVALUATION_ERRORS) as exc:
            return EvaluationError(f"{type(exc).__name__}: {exc}")
        if result is _FALL_THROUGH:
            result = None
        if isinstance(result, Complex):
            return FormulaValue(result)
        return InvalidType(describe_type(result))

    def __repr__(self) -> str:
        return f"CompiledFormula({self.source!r})"


class _FormulaBuilder:
    """Walks a parsed formula, rejecting anything outside the whitelist and
    building one closure per node. Closures take the local scope dict."""

    def __init__(self, environment: Mapping[str, object]):
        self._env = environment
        self._defined = set(PARAMETERS)

    def build(self, tree: ast.Module) -> Callable[[dict], object]:
        body = tree.body
        if not body:
            raise FormulaCompileError("formula is empty")
        steps = []
        last = len(body) - 1
        for index, node in enumerate(body):
            if index == last and isinstance(node, ast.Expr):
                # A trailing bare expression is the formula's value
                value = self._expression(node.value)
                steps.append(value)
            else:
                steps.append(self._statement(node))
        return self._block(steps)

    # -- Statements --

    @staticmethod
    def _block(steps):
        def run(scope):
            for step in steps:
                result = step(scope)
                if result is not _FALL_THROUGH:
                    return result
            return _FALL_THROUGH
        return run

    def _statements(self, nodes):
        return self._block([self._statement(node) for node in nodes])

    def _statement(self, node):
        if isinstance(node, ast.Return):
            return self._return(node)
        if isinstance(node, ast.Assign):
            return self._assign(node)
        if isinstance(node, ast.AugAssign):
            return self._aug_assign(node)
        if isinstance(node, ast.If):
            return self._if(node)
        if isinstance(node, ast.Pass):
            return lambda scope: _FALL_THROUGH
        if isinstance(node, ast.Expr):
            raise _error(node, "expression result is unused; did you mean 'return'?")
        raise _error(node, f"{self._construct_name(node)} are not allowed in formulas")

    def _return(self, node: ast.Return):
        if node.value is None:
            return lambda scope: None
        return self._expression(node.value)

    def _check_assignable(self, target: ast.AST, node: ast.AST) -> str:
        if not isinstance(target, ast.Name):
            raise _error(node, "only simple assignments such as 'w = Z * Z' are allowed")
        if target.id in self._env:
            raise _error(node, f"cannot assign to built-in name '{target.id}'")
        return target.id

    def _assign(self, node: ast.Assign):
        if len(node.targets) != 1:
            raise _error(node, "chained assignment is not allowed")
        name = self._check_assignable(node.targets[0], node)
        value = self._expression(node.value)
        self._defined.add(name)

        def run(scope):
            scope[name] = value(scope)
            return _FALL_THROUGH
        return run

    def _aug_assign(self, node: ast.AugAssign):
        name = self._check_assignable(node.target, node)
        if name not in self._defined:
            raise _error(node, f"name '{name}' is not defined")
        op = self._binary_operator(node.op, node)
        current = self._local(name)
        value = self._expression(node.value)

        def run(scope):
            scope[name] = op(current(scope), value(scope))
            return _FALL_THROUGH
        return run

    def _if(self, node: ast.If):
        test = self._expression(node.test)
        before = set(self._defined)
        body = self._statements(node.body)
        after_body = self._defined
        self._defined = set(before)
        orelse = self._statements(node.orelse)
        # Names assigned on either branch count as defined; a read on a path
        # that skipped the assignment is caught when the formula runs.
        self._defined = after_body | self._defined

        def run(scope):
            if test(scope):
                return body(scope)
            return orelse(scope)
        return run

    # -- Expressions --

    def _expression(self, node):
        handler = getattr(self, f"_expr_{type(node).__name__}", None)
        if handler is None:
            raise _error(node, f"{self._construct_name(node)} are not allowed in formulas")
        return handler(node)

    def _expr_Constant(self, node: ast.Constant):
        raw = node.value
        if isinstance(raw, bool):
            value = raw
        elif isinstance(raw, (int, float)):
            try:
                value = np.float64(raw)
            except OverflowError:
                raise _error(node, "number literal is too large") from None
        elif isinstance(raw, complex):
            value = Complex(raw.real, raw.imag)
        else:
            raise _error(node, f"{type(raw).__name__} literals are not allowed in formulas")
        return lambda scope: value

    def _expr_Name(self, node: ast.Name):
        name = node.id
        if name in self._env:
            value = self._env[name]
            return lambda scope: value
        if name not in self._defined:
            raise _error(node, f"name '{name}' is not defined")
        return self._local(name)

    def _expr_BinOp(self, node: ast.BinOp):
        op = self._binary_operator(node.op, node)
        left = self._expression(node.left)
        right = self._expression(node.right)
        return lambda scope: op(left(scope), right(scope))

    def _expr_UnaryOp(self, node: ast.UnaryOp):
        op = _UNARY_OPERATORS.get(type(node.op))
        if op is None:
            raise _error(node, f"operator {self._operator_symbol(node.op)} is not supported")
        operand = self._expression(node.operand)
        return lambda scope: op(operand(scope))

    def _expr_BoolOp(self, node: ast.BoolOp):
        values = [self._expression(value) for value in node.values]
        is_and = isinstance(node.op, ast.And)

        def run(scope):
            result = None
            for value in values:
                result = value(scope)
                if bool(result) != is_and:
                    return result
            return result
        return run

    def _expr_Compare(self, node: ast.Compare):
        first = self._expression(node.left)
        pairs = []
        for op_node, comparator in zip(node.ops, node.comparators):
            op = _COMPARISONS.get(type(op_node))
            if op is None:
                raise _error(node, f"operator {self._operator_symbol(op_node)} is not supported")
            pairs.append((op, self._expression(comparator)))

        def run(scope):
            left = first(scope)
            for op, comparator in pairs:
                right = comparator(scope)
                if not op(left, right):
                    return False
                left = right
            return True
        return run

    def _expr_IfExp(self, node: ast.IfExp):
        test = self._expression(node.test)
        body = self._expression(node.body)
        orelse = self._expression(node.orelse)
        return lambda scope: body(scope) if test(scope) else orelse(scope)

    def _expr_Attribute(self, node: ast.Attribute):
        attr = node.attr
        if attr in COMPLEX_METHODS:
            raise _error(node, f"method '{attr}' must be called, e.g. Z.{attr}(...)")
        if attr not in COMPLEX_ATTRIBUTES:
            raise _error(node, f"unknown attribute '{attr}'; only .real and .imag exist")
        target = self._expression(node.value)

        def load(scope):
            obj = target(scope)
            if not isinstance(obj, Complex):
                raise FormulaRuntimeError(f"a {describe_type(obj)} has no attribute '{attr}'")
            return getattr(obj, attr)
        return load

    def _expr_Call(self, node: ast.Call):
        if node.keywords:
            raise _error(node, "keyword arguments are not supported")
        args = [self._expression(arg) for arg in node.args]
        func = node.func

        if isinstance(func, ast.Name):
            name = func.id
            if name not in self._env:
                if name in self._defined:
                    raise _error(node, f"'{name}' is not a function")
                raise _error(node, f"unknown function '{name}'")
            target = self._env[name]
            if not callable(target):
                raise _error(node, f"'{name}' is not a function")
            return lambda scope: target(*[arg(scope) for arg in args])

        if isinstance(func, ast.Attribute):
            method = COMPLEX_METHODS.get(func.attr)
            if method is None:
                raise _error(node, f"unknown method '{func.attr}'")
            receiver = self._expression(func.value)
            attr = func.attr

            def call(scope):
                obj = receiver(scope)
                if not isinstance(obj, Complex):
                    raise FormulaRuntimeError(f"a {describe_type(obj)} has no method '{attr}'")
                return getattr(obj, method)(*[arg(scope) for arg in args])
            return call

        raise _error(node, "only environment functions and complex-number methods can be called")

    # -- Helpers --

    @staticmethod
    def _local(name: str):
        def load(scope):
            try:
                return scope[name]
            except KeyError:
                raise FormulaRuntimeError(f"name '{name}' was never assigned") from None
        return load

    def _binary_operator(self, op_node, node):
        op = _BINARY_OPERATORS.get(type(op_node))
        if op is None:
            raise _error(node, f"operator {self._operator_symbol(op_node)} is not supported")
        return op

    @staticmethod
    def _operator_symbol(op_node) -> str:
        return _OPERATOR_SYMBOLS.get(type(op_node), type(op_node).__name__)

    @staticmethod
    def _construct_name(node) -> str:
        name = type(node).__name__
        return _CONSTRUCT_NAMES.get(name, f"{name} nodes")


def compile_formula(
    source: str,
    environment: Mapping[str, object] = FORMULA_ENVIRONMENT,
) -> CompiledFormula:
    """Compile formula text into a CompiledFormula.

    Raises:
        FormulaCompileError: the text is not a valid formula, or the canary
            invocation with Z = C = 0 raised. A canary that returns a
            non-complex value is accepted; the renderer treats that as fatal.
    """
    if not isinstance(source, str):
        raise FormulaCompileError(f"formula must be text, got {type(source).__name__}")
    if len(source) > MAX_SOURCE_LENGTH:
        raise FormulaCompileError(
            f"formula is too long ({len(source)} characters, limit {MAX_SOURCE_LENGTH})"
        )
    if not source.strip():
        raise FormulaCompileError("formula is empty")

    try:
        tree = ast.parse(source, filename="<formula>", mode="exec")
    except SyntaxError as exc:
        raise FormulaCompileError(
            f"line {exc.lineno}, column {exc.offset}: {exc.msg}"
        ) from exc
    except ValueError as exc:
        raise FormulaCompileError(str(exc)) from exc
    except RecursionError as exc:
        raise FormulaCompileError("formula is nested too deeply") from exc

    try:
        body = _FormulaBuilder(environment).build(tree)
    except RecursionError as exc:
        raise FormulaCompileError("formula is nested too deeply") from exc
    except ArithmeticError as exc:
        raise FormulaCompileError(str(exc)) from exc

    formula = CompiledFormula(source, body)

    with arithmetic_errstate():
        canary = formula(_CANARY, _CANARY)
    if isinstance(canary, EvaluationError):
        raise FormulaCompileError(canary.message)

    logger.debug("Compiled formula %r (canary: %s)", source, type(canary).__name__)
    return formula


class FormulaSlot:
    """Holds the active formula with last-known-good semantics."""

    def __init__(self):
        self._formula: CompiledFormula | None = None

    @property
    def formula(self) -> CompiledFormula | None:
        return self._formula

    def replace(self, source: str) -> CompiledFormula:
        """Compile ``source`` and make it the active formula.

        On FormulaCompileError the previous formula stays active and the
        error propagates to the caller.
        """
        formula = compile_formula(source)
        self._formula = formula
        logger.info("Active formula is now %r", source)
        return formula
