"""Piecewise expression builder.

Rows of ``(condition, expression)`` become one nested conditional that the
expression parser accepts::

    >>> build_piecewise([("x<0", "-x"), ("", "x^2")])
    '(x<0)?(-x):(x^2)'
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

__all__ = ["DEFAULT_ROWS", "PiecewiseRow", "build_piecewise"]

PiecewiseRow = Tuple[str, str]

# Rows shown by the grapher's piecewise builder before the user edits them.
DEFAULT_ROWS: Tuple[PiecewiseRow, ...] = (("x<0", "-x"), ("", "x^2"))


def build_piecewise(rows: Iterable[Sequence[str]]) -> Optional[str]:
    """Join condition/expression rows into ``(c1)?(e1):(c2)?(e2):(else)``.

    Rows with a blank expression are dropped. The last remaining row, and any
    row with a blank condition, becomes the ``else`` branch and ends the
    chain. Returns ``None`` when no row has an expression.
    """
    parts = [(str(cond).strip(), str(expr).strip()) for cond, expr in rows if str(expr).strip()]
    if not parts:
        return None
    pieces = []
    for i, (cond, expr) in enumerate(parts):
        if i < len(parts) - 1 and cond:
            pieces.append(f"({cond})?({expr}):")
        else:
            pieces.append(f"({expr})")
            break
    return "".join(pieces)
