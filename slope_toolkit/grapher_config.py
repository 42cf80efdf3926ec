"""Configuration constants for the derivative grapher.

Everything tunable lives here as module constants or frozen dataclasses so
tests and notebooks can pass alternatives explicitly instead of patching
literals inside the renderer.

The detection thresholds are approximate heuristics, not formal
discontinuity detectors. Each test compares an absolute difference and a
relative difference (relative to ``max(relative_floor, max(|a|, |b|))``) and
fires only when both exceed their limits.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = [
    "DEFAULT_DOMAIN",
    "DEFAULT_EXPRESSION",
    "DEFAULT_SAMPLES",
    "DEFAULT_THRESHOLDS",
    "DERIVATIVE_SAMPLE_CAP",
    "MARKER_SAMPLE_CAP",
    "PARSE_ERROR_MESSAGE",
    "PRESETS",
    "PanelLayout",
    "RANGE_SAMPLE_CAP",
    "RendererThresholds",
    "SAMPLE_COUNT_LIMITS",
    "clamp_sample_count",
]


@dataclass(frozen=True)
class RendererThresholds:
    """Jump, corner and marker thresholds used by the renderer.

    Attributes
    ----------
    jump_abs, jump_rel:
        Primary curve: consecutive samples further apart than both limits
        start a new segment.
    continuity_abs, continuity_rel:
        Derivative curve: ``f(x-h)`` vs ``f(x+h)``; failing means ``f`` jumps
        near ``x`` and the derivative segment is broken.
    corner_abs, corner_rel:
        Derivative curve: left vs right one-sided slopes of ``f``; failing
        marks a corner with a pair of hole markers.
    marker_abs, marker_rel, marker_range_fraction:
        Looser test for red marker dots at interval midpoints. A dot is also
        placed when ``|f(x+h) - f(x-h)|`` exceeds ``marker_range_fraction`` of
        the derivative panel's vertical span.
    relative_floor:
        Lower bound for the denominator of every relative difference.
    """

    jump_abs: float = 0.75
    jump_rel: float = 0.4
    continuity_abs: float = 0.6
    continuity_rel: float = 0.35
    corner_abs: float = 0.6
    corner_rel: float = 0.35
    marker_abs: float = 0.3
    marker_rel: float = 0.3
    marker_range_fraction: float = 0.05
    relative_floor: float = 1e-9


DEFAULT_THRESHOLDS = RendererThresholds()


@dataclass(frozen=True)
class PanelLayout:
    """Two equal panels stacked vertically with a fixed gap between them."""

    gap_px: float = 12.0

    def panel_height(self, height: float) -> float:
        return (height - self.gap_px) / 2.0

    def lower_offset(self, height: float) -> float:
        """Top edge of the lower panel in surface pixels."""
        return self.panel_height(height) + self.gap_px


SAMPLE_COUNT_LIMITS: tuple[int, int] = (100, 4000)

# Independent caps keep range estimation and corner scans cheap at high
# display resolution.
RANGE_SAMPLE_CAP = 400
DERIVATIVE_SAMPLE_CAP = 500
MARKER_SAMPLE_CAP = 400

DEFAULT_EXPRESSION = "sin(x) + x^2/5"
DEFAULT_DOMAIN: tuple[float, float] = (-10.0, 10.0)
DEFAULT_SAMPLES = 800

# (button label, expression)
PRESETS: tuple[tuple[str, str], ...] = (
    ("sin(x) + x^2/5", "sin(x) + x^2/5"),
    ("e^(-x^2)", "exp(-x^2)"),
    ("x^3 - 3x", "x^3 - 3*x"),
    ("ln(x)", "log(x)"),
    ("|x|", "abs(x)"),
    ("piecewise", "x<0?-x:x^2"),
)

PARSE_ERROR_MESSAGE = (
    "Could not parse the expression. Use syntax like sin(x), cos(x), tan(x), "
    "exp(x), log(x), abs(x) and ^ for powers. Piecewise: x<0?-x:x^2"
)


def clamp_sample_count(value: Any) -> int:
    """Coerce ``value`` to an int inside :data:`SAMPLE_COUNT_LIMITS`.

    Strings are accepted (``"800"``); blank or non-numeric input clamps to
    the lower limit.
    """
    lo, hi = SAMPLE_COUNT_LIMITS
    try:
        count = int(float(str(value).strip() or "0"))
    except (TypeError, ValueError, OverflowError):
        count = lo
    return max(lo, min(hi, count))
