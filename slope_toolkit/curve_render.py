"""
curve_render: Discontinuity-aware geometry for the derivative grapher
=====================================================================

Purpose
-------
Turn compiled functions plus a domain into drawable geometry: polyline
segments that break at jumps and undefined points, hole markers at corners,
marker dots at suspected non-differentiable points, axes with nice ticks, and
the tangent line. Nothing here draws; :func:`render` returns a
:class:`RenderResult` of plain data in logical (CSS) pixels, and adapters
such as :mod:`slope_toolkit.plotly_adapter` turn it into a picture.

Concepts and structure
----------------------
Surface layout::

    +------------------------------+  sy = 0
    |  upper panel: f, tangent     |
    +------------------------------+  sy = panel_h
    |            gap               |
    +------------------------------+  sy = panel_h + gap
    |  lower panel: f', holes, dots|
    +------------------------------+  sy = H

with ``panel_h = (H - gap) / 2``. Each panel has its own vertical range.

Segmenting a curve is a two-state machine over the ordered samples
(``NO_ACTIVE_SEGMENT`` / ``IN_SEGMENT``):

- a non-finite sample closes the active segment and emits nothing,
- a finite sample whose jump from the previous sample exceeds both the
  absolute and the relative threshold starts a new segment at itself,
- any other finite sample extends (or starts) the active segment.

The derivative panel adds two tests per interior sample ``x`` with half-step
``h``: a continuity test on ``f(x - h)`` vs ``f(x + h)`` that breaks the
segment, and a corner test on the one-sided slopes
``left = (f(x) - f(x-h)) / h`` and ``right = (f(x+h) - f(x)) / h`` that ends the
segment and emits a pair of hole markers at ``(x, left)`` and ``(x, right)``.
The corner test also runs at every interval midpoint, so kinks that fall
between two samples are not missed.

All thresholds come from :class:`~slope_toolkit.grapher_config.RendererThresholds`.
They are approximate heuristics: a steep but continuous function can be
split, and a small jump in a large-valued function can be missed.

Examples
--------
>>> from slope_toolkit.curve_render import GrapherState, render
>>> result = render(GrapherState(expression="x<0 ? -1 : 1", x_min=-2, x_max=2))
>>> len(result.upper.segments)
2
>>> render(GrapherState(expression="sin(")).error is not None
True
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from .coordinates import (
    AxisLine,
    InvalidDomainError,
    PanelViewport,
    format_tick,
    nice_ticks,
    validate_domain,
    zero_axis_lines,
)
from .derivatives import compile_derivative
from .grapher_config import (
    DEFAULT_DOMAIN,
    DEFAULT_EXPRESSION,
    DEFAULT_SAMPLES,
    DEFAULT_THRESHOLDS,
    DERIVATIVE_SAMPLE_CAP,
    MARKER_SAMPLE_CAP,
    PARSE_ERROR_MESSAGE,
    PanelLayout,
    RendererThresholds,
    clamp_sample_count,
)
from .interaction import resolve_tangent_anchor
from .numpify import compile_expression
from .range_estimation import VerticalRange, estimate_range, sample_grid, sample_values

__all__ = [
    "AxesSpec",
    "DiscontinuityMarker",
    "GrapherState",
    "HoleMarker",
    "PanelRender",
    "RenderResult",
    "Segment",
    "TangentLine",
    "Tick",
    "build_axes",
    "discontinuity_markers",
    "render",
    "segment_curve",
    "segment_derivative",
    "tangent_line",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

RealFunction = Callable[[Any], Any]


# SECTION: geometry records [id: records]
# =============================================================================

@dataclass
class Segment:
    """One continuous polyline: world samples and their surface pixels."""

    xs: List[float] = field(default_factory=list)
    ys: List[float] = field(default_factory=list)
    points: List[Tuple[float, float]] = field(default_factory=list)

    def append(self, x: float, y: float, sx: float, sy: float) -> None:
        self.xs.append(float(x))
        self.ys.append(float(y))
        self.points.append((float(sx), float(sy)))

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class HoleMarker:
    """Open circle at a one-sided derivative limit; ``side`` is ``"left"`` or ``"right"``."""

    x: float
    y: float
    sx: float
    sy: float
    side: str


@dataclass(frozen=True)
class DiscontinuityMarker:
    """Filled dot at an interval midpoint where the loose discontinuity test fired."""

    x: float
    y: float
    sx: float
    sy: float


@dataclass(frozen=True)
class TangentLine:
    x: float
    y: float
    slope: float
    start: Tuple[float, float]
    end: Tuple[float, float]
    guide_start: Tuple[float, float]
    guide_end: Tuple[float, float]
    anchor: Tuple[float, float]
    label: str
    label_position: Tuple[float, float]


@dataclass(frozen=True)
class Tick:
    value: float
    position: float  # sx for x ticks, sy for y ticks
    label: str


@dataclass(frozen=True)
class AxesSpec:
    x_ticks: Tuple[Tick, ...]
    y_ticks: Tuple[Tick, ...]
    zero_lines: Tuple[AxisLine, ...]


@dataclass(frozen=True)
class PanelRender:
    viewport: PanelViewport
    axes: AxesSpec
    segments: Tuple[Segment, ...] = ()
    holes: Tuple[HoleMarker, ...] = ()
    markers: Tuple[DiscontinuityMarker, ...] = ()
    tangent: Optional[TangentLine] = None


@dataclass(frozen=True)
class RenderResult:
    """Everything needed to draw one frame.

    ``error`` is set (and both panels are ``None``) when the expression does
    not parse or the domain is invalid.
    """

    width: float
    height: float
    pixel_ratio: float = 1.0
    upper: Optional[PanelRender] = None
    lower: Optional[PanelRender] = None
    y_range: Optional[VerticalRange] = None
    d_range: Optional[VerticalRange] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def backing_size(self) -> Tuple[int, int]:
        """Device-pixel size of the backing store for this frame."""
        return (
            int(math.floor(self.width * self.pixel_ratio)),
            int(math.floor(self.height * self.pixel_ratio)),
        )


# SECTION: helpers [id: helpers]
# =============================================================================

def _exceeds(a: Any, b: Any, abs_limit: float, rel_limit: float, floor: float) -> Any:
    """Dual threshold test on ``|a - b|``; works element-wise on arrays."""
    diff = np.abs(a - b)
    scale = np.maximum(floor, np.maximum(np.abs(a), np.abs(b)))
    return (diff > abs_limit) & (diff / scale > rel_limit)


def _fixed3(value: float) -> str:
    text = f"{value:.3f}"
    return "0.000" if text == "-0.000" else text


def build_axes(viewport: PanelViewport, target_count: int = 8) -> AxesSpec:
    """Gridline ticks for both axes and the zero axis lines of ``viewport``."""
    x_ticks = []
    for value in nice_ticks(viewport.x_min, viewport.x_max, target_count):
        sx, _ = viewport.to_screen(value, viewport.y_min)
        x_ticks.append(Tick(value, float(sx), format_tick(value)))
    y_ticks = []
    for value in nice_ticks(viewport.y_min, viewport.y_max, target_count):
        _, sy = viewport.to_screen(viewport.x_min, value)
        y_ticks.append(Tick(value, float(sy), format_tick(value)))
    return AxesSpec(tuple(x_ticks), tuple(y_ticks), tuple(zero_axis_lines(viewport)))


# SECTION: curve segmentation [id: segment_curve]
# =============================================================================

def segment_curve(
    fn: RealFunction,
    xs: Any,
    viewport: PanelViewport,
    thresholds: RendererThresholds = DEFAULT_THRESHOLDS,
) -> List[Segment]:
    """Split the samples of ``fn`` at ``xs`` into continuous segments.

    Parameters
    ----------
    fn : callable
        Function to plot.
    xs : array_like
        Ordered sample positions.
    viewport : PanelViewport
        Panel used for the screen coordinates.
    thresholds : RendererThresholds
        Uses ``jump_abs`` / ``jump_rel`` / ``relative_floor``.

    Returns
    -------
    list of Segment
        In sample order; no segment contains a non-finite sample or spans a
        detected jump.
    """
    xs = np.asarray(xs, dtype=float)
    with np.errstate(all="ignore"):
        ys = sample_values(fn, xs)
        sxs, sys_ = viewport.to_screen(xs, ys)

    segments: List[Segment] = []
    current: Optional[Segment] = None
    last_y = math.nan
    for x, y, sx, sy in zip(xs.tolist(), ys.tolist(), sxs.tolist(), sys_.tolist()):
        if not math.isfinite(y):
            current = None
            continue
        if current is not None and _exceeds(
            y, last_y, thresholds.jump_abs, thresholds.jump_rel, thresholds.relative_floor
        ):
            current = None
        if current is None:
            current = Segment()
            segments.append(current)
        current.append(x, y, sx, sy)
        last_y = y
    return segments


def _locate_corners(
    fine: np.ndarray, F: np.ndarray, h: float, thresholds: RendererThresholds
) -> List[Tuple[int, float, float, float]]:
    """Corners of ``f`` sampled as ``F`` on the half-step grid ``fine``.

    Returns ``(k, x, left, right)`` per corner in increasing order, where
    ``fine[k]`` is the half-step point the corner was detected at and the
    corner lies within ``[fine[k - 1], fine[k + 1]]``.
    """
    with np.errstate(all="ignore"):
        d = np.diff(F) / h  # d[j]: secant slope over [fine[j], fine[j + 1]]
        inner_left, inner_right = d[:-1], d[1:]  # at fine[1:-1]
        broken = _exceeds(
            F[2:], F[:-2], thresholds.continuity_abs, thresholds.continuity_rel, thresholds.relative_floor
        )
        fire = (
            np.isfinite(inner_left)
            & np.isfinite(inner_right)
            & ~broken
            & _exceeds(
                inner_left,
                inner_right,
                thresholds.corner_abs,
                thresholds.corner_rel,
                thresholds.relative_floor,
            )
        )
        score = np.abs(inner_left - inner_right)

    hits = np.flatnonzero(fire)
    if hits.size == 0:
        return []

    corners: List[Tuple[int, float, float, float]] = []
    for run in np.split(hits, np.flatnonzero(np.diff(hits) > 1) + 1):
        k = int(run[np.argmax(score[run])]) + 1
        left = float(d[k - 2]) if k >= 2 and math.isfinite(d[k - 2]) else float(d[k - 1])
        right = float(d[k + 1]) if k + 1 < d.size and math.isfinite(d[k + 1]) else float(d[k])
        x0, x1 = float(fine[k - 1]), float(fine[k + 1])
        x = float(fine[k])
        if left != right:
            # Where the two one-sided secant lines meet.
            meet = (float(F[k + 1]) - float(F[k - 1]) + left * x0 - right * x1) / (left - right)
            if math.isfinite(meet):
                x = min(max(meet, x0), x1)
        corners.append((k, x + 0.0, left, right))
    return corners


def segment_derivative(
    f: RealFunction,
    df: RealFunction,
    domain: Tuple[float, float],
    samples: int,
    viewport: PanelViewport,
    thresholds: RendererThresholds = DEFAULT_THRESHOLDS,
) -> Tuple[List[Segment], List[HoleMarker]]:
    """Segment the derivative curve and locate corners of ``f``.

    At most :data:`~slope_toolkit.grapher_config.DERIVATIVE_SAMPLE_CAP`
    samples are used, and only interior ones (both neighbours at ``x ± h``
    must exist). ``h = step / 2``.

    A sample breaks the current segment when ``f`` is undefined at ``x ± h``,
    when ``f(x - h)`` and ``f(x + h)`` fail the continuity test, or when
    ``f'(x)`` is not finite.

    Corners are searched on the half-step grid (every sample and every
    interval midpoint), so a kink between two samples is found as well as
    one on a sample. Neighbouring hits are one corner. Its ``x`` is where the
    two outer one-sided secants meet, and its (left, right) hole markers sit
    at the outer one-sided slopes. A corner detected at a midpoint splits
    the derivative segment between its two samples; one detected on a sample
    leaves that sample out, so no segment reaches across the corner.

    Returns
    -------
    (segments, holes)
    """
    x_min, x_max = domain
    n = max(3, min(int(samples), DERIVATIVE_SAMPLE_CAP))
    xs = sample_grid(domain, n)[1:-1]
    fine = sample_grid(domain, 2 * n - 1)
    h = (x_max - x_min) / (2 * n - 2)

    with np.errstate(all="ignore"):
        F = sample_values(f, fine)
        # Neighbours of display sample i sit at fine[2i - 1] and fine[2i + 1].
        f_minus = F[1:-3:2]
        f_plus = F[3:-1:2]
        slopes = sample_values(df, xs)
        undefined_near = ~(np.isfinite(f_minus) & np.isfinite(f_plus))
        jumps = undefined_near | _exceeds(
            f_plus,
            f_minus,
            thresholds.continuity_abs,
            thresholds.continuity_rel,
            thresholds.relative_floor,
        )
        sxs, sys_ = viewport.to_screen(xs, slopes)

    # Grid sample j (``xs[j - 1]``) is fine point 2j.
    break_before = set()
    on_corner = set()
    holes: List[HoleMarker] = []
    for k, x, left, right in _locate_corners(fine, F, h, thresholds):
        if k % 2:
            break_before.add((k - 1) // 2)
        else:
            on_corner.add(k // 2 - 1)
        sx, left_sy = viewport.to_screen(x, left)
        _, right_sy = viewport.to_screen(x, right)
        holes.append(HoleMarker(x, left, float(sx), float(left_sy), "left"))
        holes.append(HoleMarker(x, right, float(sx), float(right_sy), "right"))

    segments: List[Segment] = []
    current: Optional[Segment] = None
    for i, x in enumerate(xs.tolist()):
        if i in break_before:
            current = None
        if jumps[i] or i in on_corner:
            current = None
            continue
        if math.isfinite(slopes[i]):
            if current is None:
                current = Segment()
                segments.append(current)
            current.append(x, slopes[i], sxs[i], sys_[i])
        else:
            current = None
    return segments, holes


def discontinuity_markers(
    f: RealFunction,
    domain: Tuple[float, float],
    samples: int,
    viewport: PanelViewport,
    d_range: VerticalRange,
    thresholds: RendererThresholds = DEFAULT_THRESHOLDS,
) -> List[DiscontinuityMarker]:
    """Marker dots for the derivative panel.

    Each interval of an evenly spaced grid (at most
    :data:`~slope_toolkit.grapher_config.MARKER_SAMPLE_CAP` samples) is
    probed at its midpoint ``xm`` with ``h`` = half the interval, so a corner
    that falls between two display samples is still caught. A dot is placed
    at ``(xm, (left + right) / 2)`` when the one-sided slopes disagree beyond
    the marker thresholds, or when ``|f(xm + h) - f(xm - h)|`` is larger than
    ``marker_range_fraction`` of the derivative panel's span.
    """
    grid = sample_grid(domain, min(int(samples), MARKER_SAMPLE_CAP))
    xm = 0.5 * (grid[:-1] + grid[1:])
    h = 0.5 * (grid[1:] - grid[:-1])

    with np.errstate(all="ignore"):
        f_mid = sample_values(f, xm)
        f_minus = sample_values(f, xm - h)
        f_plus = sample_values(f, xm + h)
        left = (f_mid - f_minus) / h
        right = (f_plus - f_mid) / h
        defined = np.isfinite(left) & np.isfinite(right)
        slope_break = _exceeds(
            left, right, thresholds.marker_abs, thresholds.marker_rel, thresholds.relative_floor
        )
        value_jump = np.abs(f_plus - f_minus) > thresholds.marker_range_fraction * d_range.span
        y_mark = 0.5 * (left + right)
        fire = defined & (slope_break | value_jump) & np.isfinite(y_mark)
        sxs, sys_ = viewport.to_screen(xm, y_mark)

    return [
        DiscontinuityMarker(float(xm[i]), float(y_mark[i]), float(sxs[i]), float(sys_[i]))
        for i in np.flatnonzero(fire)
    ]


def tangent_line(
    f: RealFunction,
    df: RealFunction,
    anchor: Optional[float],
    domain: Tuple[float, float],
    viewport: PanelViewport,
) -> Optional[TangentLine]:
    """Tangent to ``f`` at ``anchor`` (clamped into ``domain``), or ``None``.

    ``None`` when there is no anchor or when ``f`` or ``f'`` is not finite at
    the clamped anchor. The line spans the full domain width.
    """
    if anchor is None or not math.isfinite(anchor):
        return None
    x_min, x_max = domain
    x = min(max(float(anchor), x_min), x_max)
    y = float(f(x))
    slope = float(df(x))
    if not (math.isfinite(y) and math.isfinite(slope)):
        return None

    y_start = slope * (x_min - x) + y
    y_end = slope * (x_max - x) + y
    sx_start, sy_start = viewport.to_screen(x_min, y_start)
    sx_end, sy_end = viewport.to_screen(x_max, y_end)
    sx, sy = viewport.to_screen(x, y)
    top = viewport.y_offset

    label_x = min(max(6.0, sx + 6.0), viewport.width - 180.0)
    label_y = max(14.0, (sy - top) - 6.0) + top
    return TangentLine(
        x=x,
        y=y,
        slope=slope,
        start=(float(sx_start), float(sy_start)),
        end=(float(sx_end), float(sy_end)),
        guide_start=(float(sx), top),
        guide_end=(float(sx), top + viewport.height),
        anchor=(float(sx), float(sy)),
        label=f"x={_fixed3(x)}  f(x)={_fixed3(y)}  f'(x)={_fixed3(slope)}",
        label_position=(float(label_x), float(label_y)),
    )


# SECTION: full frame [id: render]
# =============================================================================

@dataclass(frozen=True)
class GrapherState:
    """Inputs of one frame. ``width``/``height`` are logical (CSS) pixels."""

    expression: str = DEFAULT_EXPRESSION
    x_min: float = DEFAULT_DOMAIN[0]
    x_max: float = DEFAULT_DOMAIN[1]
    samples: int = DEFAULT_SAMPLES
    width: float = 900.0
    height: float = 520.0
    pixel_ratio: float = 1.0
    show_derivative: bool = True
    show_tangent: bool = True
    lock_tangent: bool = False
    tangent_anchor: str = "0"
    hover_x: Optional[float] = None
    thresholds: RendererThresholds = DEFAULT_THRESHOLDS
    layout: PanelLayout = PanelLayout()


def render(state: GrapherState) -> RenderResult:
    """Compute the geometry of one frame from scratch.

    Parameters
    ----------
    state : GrapherState
        Expression, domain, sample count, surface size and toggles.

    Returns
    -------
    RenderResult
        With ``error`` set and no geometry when the domain is invalid or the
        expression does not parse. The derivative panel always gets axes; its
        curve, holes and marker dots only when ``show_derivative`` is on.
    """
    t0 = time.perf_counter()
    width, height = float(state.width), float(state.height)
    base = dict(width=width, height=height, pixel_ratio=float(state.pixel_ratio))

    try:
        domain = validate_domain(state.x_min, state.x_max)
    except InvalidDomainError as exc:
        return RenderResult(error=str(exc), **base)
    panel_h = state.layout.panel_height(height)
    if not (width > 0 and panel_h > 0):
        return RenderResult(error=f"Drawing surface {width:g}x{height:g} is too small", **base)

    f = compile_expression(state.expression)
    if f is None:
        return RenderResult(error=PARSE_ERROR_MESSAGE, **base)
    df = compile_derivative(state.expression)

    samples = clamp_sample_count(state.samples)
    y_range = estimate_range(f, domain, samples)
    d_range = estimate_range(df, domain, samples) if df is not None else VerticalRange(-1.0, 1.0)

    upper_vp = PanelViewport(width, panel_h, domain[0], domain[1], y_range.y_min, y_range.y_max)
    lower_vp = PanelViewport(
        width,
        panel_h,
        domain[0],
        domain[1],
        d_range.y_min,
        d_range.y_max,
        state.layout.lower_offset(height),
    )

    tangent = None
    if state.show_tangent and df is not None:
        anchor = resolve_tangent_anchor(state.lock_tangent, state.tangent_anchor, state.hover_x)
        tangent = tangent_line(f, df, anchor, domain, upper_vp)
    upper = PanelRender(
        viewport=upper_vp,
        axes=build_axes(upper_vp),
        segments=tuple(segment_curve(f, sample_grid(domain, samples), upper_vp, state.thresholds)),
        tangent=tangent,
    )

    lower = PanelRender(viewport=lower_vp, axes=build_axes(lower_vp))
    if state.show_derivative and df is not None:
        d_segments, holes = segment_derivative(
            f, df, domain, samples, lower_vp, state.thresholds
        )
        markers = discontinuity_markers(f, domain, samples, lower_vp, d_range, state.thresholds)
        lower = PanelRender(
            viewport=lower_vp,
            axes=lower.axes,
            segments=tuple(d_segments),
            holes=tuple(holes),
            markers=tuple(markers),
        )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "render(%r): %d f segments, %d f' segments, %d holes, %d markers in %.2f ms",
            state.expression,
            len(upper.segments),
            len(lower.segments),
            len(lower.holes),
            len(lower.markers),
            1000.0 * (time.perf_counter() - t0),
        )
    return RenderResult(
        upper=upper, lower=lower, y_range=y_range, d_range=d_range, **base
    )
