"""
numpify: Compile expression trees to NumPy-callable Python functions
====================================================================

Purpose
-------
Turn an expression tree (see :mod:`slope_toolkit.ExpressionTree`) into a
callable ``f(x)`` that evaluates with NumPy and never raises.

The compiled callable is the ``CompiledFunction`` of the plotting pipeline:

- scalar in, ``float`` out; array in, ``numpy.ndarray`` out (element-wise),
- undefined points (``log(-1)``, ``1/0``, ``sqrt(-2)``, overflow) give ``NaN``,
- ``±inf`` results are reported as ``NaN``,
- the generated source stays inspectable through ``CompiledFunction.source``.

Public API
----------
- :func:`compile_expression` (text in, ``CompiledFunction`` or ``None`` out)
- :func:`numpify` / :func:`numpify_cached` (tree in)
- :class:`CompiledFunction`

Code generation
---------------
Each node is printed as a NumPy expression. Literals are emitted as
``numpy.float64`` so that ``1/0`` follows IEEE rules instead of raising
``ZeroDivisionError``; comparisons become ``1.0``/``0.0`` arrays (NaN when a
side is undefined); conditionals become a NaN-aware ``numpy.where``. The
source is executed once with ``exec`` into a private namespace. Only trees
built by the parser (a closed set of node kinds and function names) are ever
printed, so no user text reaches ``exec`` verbatim.

Examples
--------
>>> f = compile_expression("sin(x) + x^2/5")
>>> round(f(0.0), 12)
0.0
>>> compile_expression("log(x)")(-1.0)
nan
>>> compile_expression("sin(") is None
True

Logging
-------
This module uses Python's standard :mod:`logging` library and is silent by default.
To see compile timings:

>>> import logging
>>> logging.basicConfig(level=logging.DEBUG)
>>> logging.getLogger("slope_toolkit.numpify").setLevel(logging.DEBUG)
"""

from __future__ import annotations

from functools import lru_cache
import logging
import math
import textwrap
import time
from typing import Any, Callable, Dict, Optional, cast

import numpy as np

from .ExpressionTree import (
    BinaryOp,
    Call,
    Conditional,
    Literal,
    Node,
    UnaryOp,
    Variable,
    to_source,
)
from .ParseExpression import ExpressionParseError, normalize_expression, parse_expression


__all__ = [
    "CompiledFunction",
    "compile_expression",
    "numpify",
    "numpify_cached",
    "parse_user_expression",
]


logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class CompiledFunction:
    """Never-raising real function of one variable.

    Parameters
    ----------
    fn : callable
        Raw implementation. It receives a float ndarray (0-d for scalars) and
        may return anything NumPy can coerce to a float array; it may also
        raise, which is reported as ``NaN``.
    symbolic : Node or None
        Expression tree the function was compiled from, if any.
    source : str or None
        Generated Python source, if any.
    label : str
        Short human-readable description used in ``repr``.
    """

    __slots__ = ("_fn", "symbolic", "source", "label")

    def __init__(
        self,
        fn: Callable[[np.ndarray], Any],
        symbolic: Optional[Node] = None,
        source: Optional[str] = None,
        *,
        label: str = "",
    ) -> None:
        self._fn = fn
        self.symbolic = symbolic
        self.source = source
        self.label = label or (to_source(symbolic) if symbolic is not None else "<callable>")

    def __call__(self, x: Any) -> Any:
        scalar = np.ndim(x) == 0
        try:
            with np.errstate(all="ignore"):
                xs = np.asarray(x, dtype=float)
                out = np.asarray(self._fn(xs), dtype=float)
                out = np.broadcast_to(out, xs.shape)
                out = np.where(np.isfinite(out), out, np.nan)
        except (ArithmeticError, ValueError, TypeError) as exc:
            logger.debug("evaluation of %s failed: %s", self.label, exc)
            out = np.full(np.shape(x), np.nan)
        if scalar:
            return float(out)
        return out

    def __repr__(self) -> str:
        return f"CompiledFunction({self.label!r})"


# SECTION: code generation [id: codegen]
# =============================================================================

_NUMPY_FUNCTIONS = {
    "sin": "numpy.sin",
    "cos": "numpy.cos",
    "tan": "numpy.tan",
    "asin": "numpy.arcsin",
    "acos": "numpy.arccos",
    "atan": "numpy.arctan",
    "sinh": "numpy.sinh",
    "cosh": "numpy.cosh",
    "tanh": "numpy.tanh",
    "exp": "numpy.exp",
    "log": "numpy.log",
    "abs": "numpy.abs",
    "sqrt": "numpy.sqrt",
}

_NAMED_CONSTANTS = {"pi": "numpy.pi", "e": "numpy.e"}


_COMPARISON_UFUNCS = {
    "<": np.less,
    "<=": np.less_equal,
    ">": np.greater,
    ">=": np.greater_equal,
    "==": np.equal,
    "!=": np.not_equal,
}


def _compare(op: str, left: Any, right: Any) -> np.ndarray:
    """Comparison as ``1.0`` / ``0.0``; NaN when either side is undefined."""
    left = np.asarray(left, dtype=float)
    right = np.asarray(right, dtype=float)
    truth = np.where(_COMPARISON_UFUNCS[op](left, right), 1.0, 0.0)
    return np.where(np.isnan(left) | np.isnan(right), np.nan, truth)


def _select(condition: Any, then: Any, otherwise: Any) -> np.ndarray:
    """Element-wise ``condition ? then : otherwise``; a NaN condition gives NaN."""
    condition = np.asarray(condition, dtype=float)
    chosen = np.where(condition != 0, then, otherwise)
    return np.where(np.isnan(condition), np.nan, chosen)


def _literal_code(value: float) -> str:
    if math.isnan(value):
        return "numpy.float64(numpy.nan)"
    if math.isinf(value):
        return "numpy.float64(numpy.inf)" if value > 0 else "numpy.float64(-numpy.inf)"
    return f"numpy.float64({value!r})"


def _print_numpy(node: Node, arg_name: str) -> str:
    """Print ``node`` as a NumPy expression in terms of ``arg_name``."""
    if isinstance(node, Literal):
        if node.name in _NAMED_CONSTANTS:
            return f"numpy.float64({_NAMED_CONSTANTS[node.name]})"
        return _literal_code(node.value)
    if isinstance(node, Variable):
        return arg_name
    if isinstance(node, UnaryOp):
        return f"({node.op}{_print_numpy(node.operand, arg_name)})"
    if isinstance(node, BinaryOp):
        left = _print_numpy(node.left, arg_name)
        right = _print_numpy(node.right, arg_name)
        if node.op == "^":
            return f"numpy.power({left}, {right})"
        if node.is_comparison:
            return f"_compare({node.op!r}, {left}, {right})"
        return f"({left} {node.op} {right})"
    if isinstance(node, Call):
        args = [_print_numpy(a, arg_name) for a in node.args]
        if node.name == "log" and len(args) == 2:
            return f"(numpy.log({args[0]}) / numpy.log({args[1]}))"
        return f"{_NUMPY_FUNCTIONS[node.name]}({', '.join(args)})"
    if isinstance(node, Conditional):
        return (
            f"_select({_print_numpy(node.condition, arg_name)}, "
            f"{_print_numpy(node.then, arg_name)}, "
            f"{_print_numpy(node.otherwise, arg_name)})"
        )
    raise TypeError(f"numpify cannot print node type {type(node).__name__}")


def numpify(tree: Node, *, cache: bool = True) -> CompiledFunction:
    """Compile an expression tree into a :class:`CompiledFunction`.

    By default this uses the same LRU-backed cache as :func:`numpify_cached`.
    Pass ``cache=False`` to force a fresh compile.
    """
    if cache:
        return numpify_cached(tree)
    return _numpify_uncached(tree)


def _numpify_uncached(tree: Node) -> CompiledFunction:
    """Compile ``tree`` without consulting the cache.

    Raises
    ------
    TypeError
        If ``tree`` contains an object that is not an expression node.
    """
    log_debug = logger.isEnabledFor(logging.DEBUG)
    t_total0: float | None = time.perf_counter() if log_debug else None

    arg_name = "x"
    expr_code = _print_numpy(tree, arg_name)
    lines = [
        f"def _generated({arg_name}):",
        f"    {arg_name} = numpy.asarray({arg_name}, dtype=float)",
        f"    return ({expr_code}) + numpy.zeros({arg_name}.shape)",
    ]
    src = "\n".join(lines)

    glb: Dict[str, Any] = {"numpy": np, "_select": _select, "_compare": _compare}
    loc: Dict[str, Any] = {}
    exec(src, glb, loc)
    fn = cast(Callable[..., Any], loc["_generated"])
    fn.__doc__ = textwrap.dedent(
        f"""
        Auto-generated NumPy function.

        expr: {to_source(tree)}

        Source:
        {src}
        """
    ).strip()

    if log_debug:
        logger.debug(
            "numpify: compiled %r in %.2f ms",
            to_source(tree),
            1000.0 * (time.perf_counter() - (t_total0 or 0.0)),
        )
    return CompiledFunction(fn, symbolic=tree, source=src)


# ---------------------------------------------------------------------------
# Cached compilation
# ---------------------------------------------------------------------------

_NUMPIFY_CACHE_MAXSIZE = 256


@lru_cache(maxsize=_NUMPIFY_CACHE_MAXSIZE)
def _numpify_cached_impl(tree: Node) -> CompiledFunction:
    """Compile a tree on cache misses for :func:`numpify_cached`."""
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("numpify_cached: cache MISS for %r", to_source(tree))
    return _numpify_uncached(tree)


def numpify_cached(tree: Node) -> CompiledFunction:
    """Cached version of :func:`numpify`.

    Trees are frozen dataclasses, so structurally equal trees share one
    compiled function. Compiled functions hold no mutable state, which makes
    sharing safe.
    """
    return _numpify_cached_impl(tree)


numpify_cached.cache_info = _numpify_cached_impl.cache_info  # type: ignore[attr-defined]
numpify_cached.cache_clear = _numpify_cached_impl.cache_clear  # type: ignore[attr-defined]


# SECTION: text entry point [id: compile_expression]
# =============================================================================

def parse_user_expression(expr: Optional[str]) -> Node:
    """Normalize and parse user text.

    Raises
    ------
    ExpressionParseError
        If the normalized text is empty or does not parse.
    """
    return parse_expression(normalize_expression(expr))


def compile_expression(expr: Optional[str]) -> Optional[CompiledFunction]:
    """Compile user text into a :class:`CompiledFunction`.

    Parameters
    ----------
    expr : str or None
        Raw user input, e.g. ``"sin(x) + x^2/5"`` or ``"|x|"``.

    Returns
    -------
    CompiledFunction or None
        ``None`` when the text is blank or cannot be parsed. Callers show a
        diagnostic in that case; nothing is raised.
    """
    try:
        tree = parse_user_expression(expr)
    except ExpressionParseError as exc:
        logger.debug("compile_expression(%r) rejected: %s", expr, exc)
        return None
    return numpify_cached(tree)
