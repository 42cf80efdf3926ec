"""Derivatives of single-variable expressions.

Purpose
-------
Produce a :class:`~slope_toolkit.numpify.CompiledFunction` for ``f'(x)`` from
user text. Two strategies are tried in order:

1. Structural differentiation of the expression tree (:func:`differentiate`).
   The result is another tree, compiled exactly like ``f``.
2. A central difference on the compiled original,
   ``(f(x+h) - f(x-h)) / (2h)`` with ``h = 1e-5 * max(1, |x|)``.

The second strategy only runs when the first raises
:class:`DerivativeUnavailable`, e.g. for a comparison used as an arithmetic
value (``(x>0)*x``). Callers never see that exception.

Notes
-----
``abs(u)`` differentiates to ``u' * u / abs(u)``, so the derivative is ``NaN``
exactly at the kink. The renderer relies on this to hide the tangent line at
corners.

Examples
--------
>>> df = compile_derivative("x^2")
>>> df(3.0)
6.0
>>> from slope_toolkit.ExpressionTree import to_source
>>> to_source(derivative_expression("sin(x)"))
'cos(x)'
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np

from .ExpressionTree import (
    BinaryOp,
    Call,
    Conditional,
    Literal,
    Node,
    UnaryOp,
    Variable,
    contains_variable,
)
from .ParseExpression import ExpressionParseError
from .numpify import CompiledFunction, numpify_cached, parse_user_expression

__all__ = [
    "DerivativeUnavailable",
    "compile_derivative",
    "derivative_expression",
    "differentiate",
    "numeric_derivative",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class DerivativeUnavailable(Exception):
    """Raised when no structural rule exists for part of an expression tree."""


# SECTION: constant folding [id: folding]
# =============================================================================

ZERO = Literal(0.0)
ONE = Literal(1.0)


def _number(node: Node) -> Optional[float]:
    if isinstance(node, Literal) and node.name is None:
        return node.value
    return None


def _add(a: Node, b: Node) -> Node:
    na, nb = _number(a), _number(b)
    if na == 0.0:
        return b
    if nb == 0.0:
        return a
    if na is not None and nb is not None:
        return Literal(na + nb)
    return BinaryOp("+", a, b)


def _neg(a: Node) -> Node:
    na = _number(a)
    if na is not None:
        return Literal(-na)
    if isinstance(a, UnaryOp) and a.op == "-":
        return a.operand
    return UnaryOp("-", a)


def _sub(a: Node, b: Node) -> Node:
    na, nb = _number(a), _number(b)
    if nb == 0.0:
        return a
    if na == 0.0:
        return _neg(b)
    if na is not None and nb is not None:
        return Literal(na - nb)
    return BinaryOp("-", a, b)


def _mul(a: Node, b: Node) -> Node:
    na, nb = _number(a), _number(b)
    if na == 0.0 or nb == 0.0:
        return ZERO
    if na == 1.0:
        return b
    if nb == 1.0:
        return a
    if na is not None and nb is not None:
        return Literal(na * nb)
    return BinaryOp("*", a, b)


def _div(a: Node, b: Node) -> Node:
    if _number(b) == 1.0:
        return a
    return BinaryOp("/", a, b)


def _pow(base: Node, exponent: Node) -> Node:
    ne = _number(exponent)
    if ne == 1.0:
        return base
    if ne == 0.0:
        return ONE
    return BinaryOp("^", base, exponent)


def _call(name: str, *args: Node) -> Node:
    return Call(name, tuple(args))


# SECTION: structural rules [id: rules]
# =============================================================================

def _d_call(node: Call) -> Node:
    if node.name == "log" and len(node.args) == 2:
        # log(u, b) == log(u) / log(b)
        u, base = node.args
        return _d(BinaryOp("/", _call("log", u), _call("log", base)))

    (u,) = node.args
    du = _d(u)
    if _number(du) == 0.0:
        return ZERO

    name = node.name
    if name == "sin":
        outer: Node = _call("cos", u)
    elif name == "cos":
        outer = _neg(_call("sin", u))
    elif name == "tan":
        outer = _div(ONE, _pow(_call("cos", u), Literal(2.0)))
    elif name == "asin":
        outer = _div(ONE, _call("sqrt", _sub(ONE, _pow(u, Literal(2.0)))))
    elif name == "acos":
        outer = _neg(_div(ONE, _call("sqrt", _sub(ONE, _pow(u, Literal(2.0))))))
    elif name == "atan":
        outer = _div(ONE, _add(ONE, _pow(u, Literal(2.0))))
    elif name == "sinh":
        outer = _call("cosh", u)
    elif name == "cosh":
        outer = _call("sinh", u)
    elif name == "tanh":
        outer = _div(ONE, _pow(_call("cosh", u), Literal(2.0)))
    elif name == "exp":
        outer = node
    elif name == "log":
        return _div(du, u)
    elif name == "abs":
        # NaN at u == 0 (0/0): the kink has no derivative.
        outer = _div(u, node)
    elif name == "sqrt":
        return _div(du, _mul(Literal(2.0), node))
    else:
        raise DerivativeUnavailable(f"No derivative rule for {name}()")
    return _mul(outer, du)


def _d_power(node: BinaryOp) -> Node:
    u, v = node.left, node.right
    if not contains_variable(v):
        # d(u^n) = n * u^(n-1) * u'
        du = _d(u)
        if _number(du) == 0.0:
            return ZERO
        return _mul(_mul(v, _pow(u, _sub(v, ONE))), du)
    if not contains_variable(u):
        # d(a^v) = a^v * log(a) * v'
        return _mul(_mul(node, _call("log", u)), _d(v))
    # d(u^v) = u^v * (v' * log(u) + v * u' / u)
    return _mul(
        node,
        _add(_mul(_d(v), _call("log", u)), _div(_mul(v, _d(u)), u)),
    )


def _d(node: Node) -> Node:
    if isinstance(node, Literal):
        return ZERO
    if isinstance(node, Variable):
        return ONE
    if isinstance(node, UnaryOp):
        inner = _d(node.operand)
        return _neg(inner) if node.op == "-" else inner
    if isinstance(node, BinaryOp):
        if node.is_comparison:
            raise DerivativeUnavailable(
                f"Comparison {node.op!r} used as a value has no derivative rule"
            )
        u, v = node.left, node.right
        if node.op == "+":
            return _add(_d(u), _d(v))
        if node.op == "-":
            return _sub(_d(u), _d(v))
        if node.op == "*":
            return _add(_mul(_d(u), v), _mul(u, _d(v)))
        if node.op == "/":
            du, dv = _d(u), _d(v)
            if _number(dv) == 0.0:
                return _div(du, v)
            return _div(_sub(_mul(du, v), _mul(u, dv)), _pow(v, Literal(2.0)))
        if node.op == "^":
            return _d_power(node)
        raise DerivativeUnavailable(f"No derivative rule for operator {node.op!r}")
    if isinstance(node, Call):
        return _d_call(node)
    if isinstance(node, Conditional):
        # The condition selects a branch; only the branches are differentiated.
        return Conditional(node.condition, _d(node.then), _d(node.otherwise))
    raise DerivativeUnavailable(f"Unsupported expression node: {type(node).__name__}")


def differentiate(node: Node) -> Node:
    """Return the derivative tree of ``node`` with respect to ``x``.

    Parameters
    ----------
    node : Node
        Expression tree, usually from :func:`~slope_toolkit.ParseExpression.parse_expression`.

    Returns
    -------
    Node
        A lightly constant-folded derivative tree (``0*u``, ``1*u`` and
        ``u+0`` are simplified; nothing else is).

    Raises
    ------
    DerivativeUnavailable
        If part of the tree has no rule (comparisons used as values) or the
        tree is too deep to process.
    """
    try:
        return _d(node)
    except RecursionError as e:
        raise DerivativeUnavailable("Expression is nested too deeply") from e


# SECTION: public entry points [id: compile_derivative]
# =============================================================================

def numeric_derivative(fn: CompiledFunction) -> CompiledFunction:
    """Central-difference derivative of ``fn``.

    The step ``h = 1e-5 * max(1, |x|)`` scales with ``|x|`` to keep the
    relative rounding error bounded for large arguments.
    """

    def _central(x: Any) -> Any:
        h = 1e-5 * np.maximum(1.0, np.abs(x))
        return (fn(x + h) - fn(x - h)) / (2.0 * h)

    return CompiledFunction(_central, label=f"central difference of {fn.label}")


def derivative_expression(expr: Optional[str]) -> Optional[Node]:
    """Return the structural derivative tree for ``expr``, or ``None``.

    ``None`` means either that ``expr`` does not parse or that no structural
    rule applies (the numeric fallback is then used for evaluation).
    """
    try:
        tree = parse_user_expression(expr)
    except ExpressionParseError:
        return None
    try:
        return differentiate(tree)
    except DerivativeUnavailable as exc:
        logger.debug("derivative_expression(%r): %s", expr, exc)
        return None


def compile_derivative(expr: Optional[str]) -> Optional[CompiledFunction]:
    """Compile ``f'`` for user text ``expr``.

    Parameters
    ----------
    expr : str or None
        Raw user input, normalized the same way as for
        :func:`~slope_toolkit.numpify.compile_expression`.

    Returns
    -------
    CompiledFunction or None
        The structural derivative when available, otherwise the central
        difference of ``f``. ``None`` only when ``expr`` itself does not
        compile.
    """
    try:
        tree = parse_user_expression(expr)
    except ExpressionParseError as exc:
        logger.debug("compile_derivative(%r) rejected: %s", expr, exc)
        return None
    try:
        dtree = differentiate(tree)
    except DerivativeUnavailable as exc:
        logger.debug("compile_derivative(%r): falling back to central difference (%s)", expr, exc)
        return numeric_derivative(numpify_cached(tree))
    return numpify_cached(dtree)
