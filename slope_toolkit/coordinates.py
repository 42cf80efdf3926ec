"""World/screen coordinate mapping and axis ticks.

Purpose
-------
Affine maps between world coordinates (the function's ``x``/``y``) and screen
pixels of one rectangular panel, plus the "nice number" tick placement used
for axis gridlines.

Concepts and structure
----------------------
Screen origin is the top-left corner of the panel, so the ``y`` axis is
inverted::

    sx = (x - x_min) / (x_max - x_min) * W
    sy = H - (y - y_min) / (y_max - y_min) * H

:class:`PanelViewport` bundles one panel's parameters together with its
vertical offset inside the full drawing surface (the lower panel of the
grapher sits below the upper one).

Examples
--------
>>> world_to_screen(0.0, 0.0, 200, 100, -1.0, 1.0, -1.0, 1.0)
(100.0, 50.0)
>>> nice_ticks(0.0, 1.0)
[0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Tuple

import numpy as np

__all__ = [
    "AxisLine",
    "InvalidDomainError",
    "PanelViewport",
    "format_tick",
    "nice_ticks",
    "screen_points",
    "screen_to_world",
    "validate_domain",
    "world_to_screen",
    "zero_axis_lines",
]


class InvalidDomainError(ValueError):
    """Raised for a domain with non-finite bounds or ``x_min >= x_max``."""


def validate_domain(x_min: Any, x_max: Any) -> Tuple[float, float]:
    """Return ``(x_min, x_max)`` as floats or raise :class:`InvalidDomainError`."""
    try:
        lo, hi = float(x_min), float(x_max)
    except (TypeError, ValueError) as e:
        raise InvalidDomainError(f"Domain bounds must be numbers, got {x_min!r}, {x_max!r}") from e
    if not (math.isfinite(lo) and math.isfinite(hi)):
        raise InvalidDomainError(f"Domain bounds must be finite, got [{lo}, {hi}]")
    if lo >= hi:
        raise InvalidDomainError(f"x_min must be smaller than x_max, got [{lo}, {hi}]")
    return lo, hi


def world_to_screen(
    x: Any,
    y: Any,
    width: float,
    height: float,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
) -> Tuple[Any, Any]:
    """Map world ``(x, y)`` to panel pixels. Scalars or NumPy arrays."""
    sx = (x - x_min) / (x_max - x_min) * width
    sy = height - (y - y_min) / (y_max - y_min) * height
    return sx, sy


def screen_to_world(
    sx: Any,
    sy: Any,
    width: float,
    height: float,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
) -> Tuple[Any, Any]:
    """Inverse of :func:`world_to_screen` for the same panel parameters."""
    x = x_min + (sx / width) * (x_max - x_min)
    y = y_min + ((height - sy) / height) * (y_max - y_min)
    return x, y


@dataclass(frozen=True)
class PanelViewport:
    """One panel of the drawing surface.

    Screen coordinates returned by :meth:`to_screen` are surface coordinates:
    the panel-local ``sy`` shifted down by ``y_offset``.
    """

    width: float
    height: float
    x_min: float
    x_max: float
    y_min: float
    y_max: float
    y_offset: float = 0.0

    def to_screen(self, x: Any, y: Any) -> Tuple[Any, Any]:
        sx, sy = world_to_screen(
            x, y, self.width, self.height, self.x_min, self.x_max, self.y_min, self.y_max
        )
        return sx, sy + self.y_offset

    def to_world(self, sx: Any, sy: Any) -> Tuple[Any, Any]:
        return screen_to_world(
            sx,
            sy - self.y_offset,
            self.width,
            self.height,
            self.x_min,
            self.x_max,
            self.y_min,
            self.y_max,
        )

    def contains_sy(self, sy: float) -> bool:
        """True when surface ``sy`` lies inside this panel (edges included)."""
        local = sy - self.y_offset
        return 0.0 <= local <= self.height


# SECTION: ticks [id: nice_ticks]
# =============================================================================

def _nice_step(span: float, target_count: int) -> float:
    raw = span / target_count
    if not (raw > 0.0 and math.isfinite(raw)):
        return 0.0
    magnitude = 10.0 ** math.floor(math.log10(raw))
    if magnitude == 0.0:
        # Subnormal spans: no representable step.
        return 0.0
    mantissa = raw / magnitude
    if mantissa >= 5:
        snapped = 5.0
    elif mantissa >= 2:
        snapped = 2.0
    else:
        snapped = 1.0
    return snapped * magnitude


def nice_ticks(lo: float, hi: float, target_count: int = 8) -> List[float]:
    """Tick values on multiples of a ``{1, 2, 5} * 10**k`` step inside ``[lo, hi]``.

    Parameters
    ----------
    lo, hi : float
        Axis bounds. Order does not matter; ``lo > hi`` is swapped.
    target_count : int
        Desired number of intervals. The result has roughly, not exactly,
        this many ticks.

    Returns
    -------
    list of float
        Strictly increasing values inside ``[lo, hi]``, rounded to 12
        decimals or finer when the step is tiny. Empty when a bound is not
        finite.
    """
    lo, hi = float(lo), float(hi)
    if not (math.isfinite(lo) and math.isfinite(hi)):
        return []
    if lo > hi:
        lo, hi = hi, lo
    span = hi - lo
    if span == 0.0:
        span = 1.0
    if not math.isfinite(span):
        return []
    step = _nice_step(span, max(1, int(target_count)))
    if step <= 0.0 or not math.isfinite(step):
        return []

    # Enough digits to keep neighbouring multiples of ``step`` apart.
    digits = max(12, 3 - math.floor(math.log10(step)))
    first = math.ceil(lo / step)
    ticks: List[float] = []
    for i in range(int(math.floor((hi - lo) / step + 1e-9)) + 2):
        value = round((first + i) * step, digits) + 0.0
        if value < lo:
            continue
        if value > hi:
            break
        if not ticks or value > ticks[-1]:
            ticks.append(value)
    return ticks


def format_tick(value: float) -> str:
    """Compact tick label: ``2`` rather than ``2.0``, ``0.1`` rather than ``0.1000``."""
    return format(value, ".12g")


# SECTION: zero axes [id: zero_axis_lines]
# =============================================================================

@dataclass(frozen=True)
class AxisLine:
    """Line in surface pixels from ``start`` to ``end``."""

    orientation: str  # "horizontal" (y = 0) or "vertical" (x = 0)
    start: Tuple[float, float]
    end: Tuple[float, float]


def zero_axis_lines(viewport: PanelViewport) -> List[AxisLine]:
    """Axis lines for ``y = 0`` and ``x = 0`` when zero is strictly inside the panel range."""
    lines: List[AxisLine] = []
    top = viewport.y_offset
    bottom = viewport.y_offset + viewport.height
    if viewport.y_min < 0.0 < viewport.y_max:
        _, sy = viewport.to_screen(0.0, 0.0)
        lines.append(AxisLine("horizontal", (0.0, float(sy)), (float(viewport.width), float(sy))))
    if viewport.x_min < 0.0 < viewport.x_max:
        sx, _ = viewport.to_screen(0.0, 0.0)
        lines.append(AxisLine("vertical", (float(sx), top), (float(sx), bottom)))
    return lines


def _as_float_array(values: Any) -> np.ndarray:
    return np.asarray(values, dtype=float)


def screen_points(
    viewport: PanelViewport, xs: Any, ys: Any
) -> List[Tuple[float, float]]:
    """Map world sample arrays to a list of surface ``(sx, sy)`` tuples."""
    sx, sy = viewport.to_screen(_as_float_array(xs), _as_float_array(ys))
    return list(zip(np.atleast_1d(sx).tolist(), np.atleast_1d(sy).tolist()))
