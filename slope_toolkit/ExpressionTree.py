"""Expression tree nodes for single-variable real functions.

Purpose
-------
Defines the tagged tree produced by :mod:`slope_toolkit.ParseExpression` and
consumed by the compiler (:mod:`slope_toolkit.numpify`), the structural
differentiator (:mod:`slope_toolkit.derivatives`) and the SymPy bridge used for
LaTeX labels.

Concepts and structure
----------------------
Six node kinds cover the whole grammar:

- ``Literal``: a real number, optionally carrying a display name (``pi``, ``e``),
- ``Variable``: the independent variable (always ``x`` in practice),
- ``UnaryOp``: prefix ``-`` / ``+``,
- ``BinaryOp``: arithmetic ``+ - * / ^`` and comparisons ``< <= > >= == !=``,
- ``Call``: a named function applied to one or two arguments,
- ``Conditional``: ``cond ? then : otherwise``.

Nodes are frozen dataclasses, hashable and safe to share between compiled
functions; nothing mutates a tree after parsing.

Examples
--------
>>> from slope_toolkit.ExpressionTree import BinaryOp, Literal, Variable, to_source
>>> tree = BinaryOp("^", Variable("x"), Literal(2.0))
>>> to_source(tree)
'x^2'
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple, Union

import sympy as sp
from sympy.logic.boolalg import Boolean

__all__ = [
    "ARITHMETIC_OPERATORS",
    "COMPARISON_OPERATORS",
    "FUNCTION_ARITY",
    "BinaryOp",
    "Call",
    "Conditional",
    "Literal",
    "Node",
    "UnaryOp",
    "Variable",
    "contains_variable",
    "iter_nodes",
    "to_source",
    "to_sympy",
]


ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "^")
COMPARISON_OPERATORS = ("<", "<=", ">", ">=", "==", "!=")

# Supported function names mapped to the accepted argument counts.
FUNCTION_ARITY: dict[str, Tuple[int, ...]] = {
    "sin": (1,),
    "cos": (1,),
    "tan": (1,),
    "asin": (1,),
    "acos": (1,),
    "atan": (1,),
    "sinh": (1,),
    "cosh": (1,),
    "tanh": (1,),
    "exp": (1,),
    "log": (1, 2),
    "abs": (1,),
    "sqrt": (1,),
}


@dataclass(frozen=True)
class Literal:
    """Real constant. ``name`` is set for named constants such as ``pi``."""

    value: float
    name: str | None = None


@dataclass(frozen=True)
class Variable:
    name: str = "x"


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    """Binary arithmetic or comparison node.

    Comparison nodes evaluate to ``1.0`` (true) or ``0.0`` (false) so they can
    appear wherever a number can.
    """

    op: str
    left: "Node"
    right: "Node"

    @property
    def is_comparison(self) -> bool:
        return self.op in COMPARISON_OPERATORS


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Node", ...]


@dataclass(frozen=True)
class Conditional:
    condition: "Node"
    then: "Node"
    otherwise: "Node"


Node = Union[Literal, Variable, UnaryOp, BinaryOp, Call, Conditional]


def iter_nodes(node: Node):
    """Yield ``node`` and all of its descendants (pre-order)."""
    yield node
    if isinstance(node, UnaryOp):
        yield from iter_nodes(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_nodes(node.left)
        yield from iter_nodes(node.right)
    elif isinstance(node, Call):
        for arg in node.args:
            yield from iter_nodes(arg)
    elif isinstance(node, Conditional):
        yield from iter_nodes(node.condition)
        yield from iter_nodes(node.then)
        yield from iter_nodes(node.otherwise)


def contains_variable(node: Node) -> bool:
    """Return True when ``node`` depends on the independent variable."""
    return any(isinstance(n, Variable) for n in iter_nodes(node))


# SECTION: text rendering [id: to_source]
# =============================================================================

# Binding strength used to decide where parentheses are required.
_PRECEDENCE = {
    "?": 0,
    "<": 1, "<=": 1, ">": 1, ">=": 1, "==": 1, "!=": 1,
    "+": 2, "-": 2,
    "*": 3, "/": 3,
    "neg": 4,
    "^": 5,
}


def _format_number(value: float) -> str:
    if math.isfinite(value) and value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def _node_precedence(node: Node) -> int:
    if isinstance(node, Conditional):
        return _PRECEDENCE["?"]
    if isinstance(node, BinaryOp):
        return _PRECEDENCE[node.op]
    if isinstance(node, UnaryOp):
        return _PRECEDENCE["neg"]
    if isinstance(node, Literal) and node.name is None and node.value < 0:
        return _PRECEDENCE["neg"]
    return 10


def to_source(node: Node) -> str:
    """Render ``node`` back to the input syntax (re-parseable)."""

    def wrap(child: Node, min_prec: int) -> str:
        text = to_source(child)
        return f"({text})" if _node_precedence(child) < min_prec else text

    if isinstance(node, Literal):
        return node.name if node.name is not None else _format_number(node.value)
    if isinstance(node, Variable):
        return node.name
    if isinstance(node, UnaryOp):
        return f"{node.op}{wrap(node.operand, _PRECEDENCE['neg'])}"
    if isinstance(node, BinaryOp):
        prec = _PRECEDENCE[node.op]
        if node.op == "^":
            # Right associative: the base needs strictly higher binding.
            return f"{wrap(node.left, prec + 1)}^{wrap(node.right, prec)}"
        sep = f" {node.op} " if prec <= 2 else node.op
        return f"{wrap(node.left, prec)}{sep}{wrap(node.right, prec + 1)}"
    if isinstance(node, Call):
        return f"{node.name}({', '.join(to_source(a) for a in node.args)})"
    if isinstance(node, Conditional):
        return (
            f"{wrap(node.condition, 1)} ? {wrap(node.then, 1)} : {wrap(node.otherwise, 0)}"
        )
    raise TypeError(f"Unsupported expression node: {type(node).__name__}")


# SECTION: SymPy bridge [id: to_sympy]
# =============================================================================

_SYMPY_FUNCTIONS = {
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "asin": sp.asin,
    "acos": sp.acos,
    "atan": sp.atan,
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "exp": sp.exp,
    "abs": sp.Abs,
    "sqrt": sp.sqrt,
}

_SYMPY_RELATIONS = {
    "<": sp.StrictLessThan,
    "<=": sp.LessThan,
    ">": sp.StrictGreaterThan,
    ">=": sp.GreaterThan,
    "==": sp.Eq,
    "!=": sp.Ne,
}

_SYMPY_CONSTANTS = {"pi": sp.pi, "e": sp.E}


def to_sympy(node: Node, x: sp.Symbol | None = None) -> sp.Basic:
    """Convert ``node`` into a SymPy expression.

    Used for display (LaTeX titles) and for cross-checking derivatives in
    tests. Conditionals become :class:`sympy.Piecewise`; comparisons become
    relationals, and a comparison used as a number becomes a 0/1 Piecewise.

    Parameters
    ----------
    node : Node
        Expression tree.
    x : sympy.Symbol, optional
        Symbol bound to the independent variable. Defaults to a real ``x``.

    Returns
    -------
    sympy.Basic
    """
    x = sp.Symbol("x", real=True) if x is None else x

    def conv(n: Node, *, as_condition: bool = False) -> sp.Basic:
        if isinstance(n, Literal):
            if n.name in _SYMPY_CONSTANTS:
                return _SYMPY_CONSTANTS[n.name]
            if math.isfinite(n.value) and n.value == int(n.value):
                return sp.Integer(int(n.value))
            return sp.Float(n.value)
        if isinstance(n, Variable):
            return x
        if isinstance(n, UnaryOp):
            inner = conv(n.operand)
            return -inner if n.op == "-" else inner
        if isinstance(n, BinaryOp):
            left, right = conv(n.left), conv(n.right)
            if n.is_comparison:
                rel = _SYMPY_RELATIONS[n.op](left, right)
                return rel if as_condition else sp.Piecewise((1, rel), (0, True))
            if n.op == "+":
                return left + right
            if n.op == "-":
                return left - right
            if n.op == "*":
                return left * right
            if n.op == "/":
                return left / right
            return left ** right
        if isinstance(n, Call):
            args = [conv(a) for a in n.args]
            if n.name == "log":
                return sp.log(*args)
            return _SYMPY_FUNCTIONS[n.name](*args)
        if isinstance(n, Conditional):
            cond = conv(n.condition, as_condition=True)
            if not isinstance(cond, Boolean):
                cond = sp.Ne(cond, 0)
            return sp.Piecewise((conv(n.then), cond), (conv(n.otherwise), True))
        raise TypeError(f"Unsupported expression node: {type(n).__name__}")

    return conv(node)
