"""Plotly drawing adapter for :class:`~slope_toolkit.curve_render.RenderResult`.

The renderer produces geometry in surface pixels; Plotly wants data
coordinates. Every pixel position is mapped back through its panel's
viewport, so the adapter never re-samples a function and never re-runs a
detection test.

A figure has a fixed set of traces (see :data:`TRACE_NAMES`) on two stacked
subplots. :func:`apply_result` only rewrites trace data, axes, shapes and
annotations, so the same object (including a live ``go.FigureWidget``) can
be updated for every frame.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

import plotly.graph_objects as go

from .coordinates import PanelViewport
from .curve_render import PanelRender, RenderResult, Segment
from .grapher_config import PanelLayout

__all__ = [
    "TRACE_NAMES",
    "apply_result",
    "base_figure",
    "plotly_config",
    "segments_xy",
    "to_plotly_figure",
]

F_COLOR = "#2563eb"
DF_COLOR = "#10b981"
TANGENT_COLOR = "#7c3aed"
GUIDE_COLOR = "#c7d2fe"
MARKER_COLOR = "#ef4444"
LABEL_COLOR = "#1f2937"
GRID_COLOR = "#e5e7eb"
ZERO_AXIS_COLOR = "#94a3b8"
ERROR_COLOR = "#be123c"

TRACE_NAMES: Tuple[str, ...] = (
    "f",
    "tangent_guide",
    "tangent",
    "tangent_anchor",
    "df",
    "holes",
    "markers",
)

_UPPER_AXES = dict(xaxis="x", yaxis="y")
_LOWER_AXES = dict(xaxis="x2", yaxis="y2")


def segments_xy(segments: Iterable[Segment]) -> Tuple[List[Optional[float]], List[Optional[float]]]:
    """Concatenate segments into one x/y pair separated by ``None`` gaps."""
    xs: List[Optional[float]] = []
    ys: List[Optional[float]] = []
    for segment in segments:
        if xs:
            xs.append(None)
            ys.append(None)
        xs.extend(segment.xs)
        ys.extend(segment.ys)
    return xs, ys


def _world(viewport: PanelViewport, point: Tuple[float, float]) -> Tuple[float, float]:
    x, y = viewport.to_world(point[0], point[1])
    return float(x), float(y)


def _trace_data(result: RenderResult) -> Dict[str, Tuple[list, list]]:
    data: Dict[str, Tuple[list, list]] = {name: ([], []) for name in TRACE_NAMES}
    if not result.ok:
        return data

    upper: PanelRender = result.upper  # type: ignore[assignment]
    lower: PanelRender = result.lower  # type: ignore[assignment]
    data["f"] = segments_xy(upper.segments)

    tangent = upper.tangent
    if tangent is not None:
        vp = upper.viewport
        (x0, y0), (x1, y1) = _world(vp, tangent.start), _world(vp, tangent.end)
        data["tangent"] = ([x0, x1], [y0, y1])
        data["tangent_guide"] = ([tangent.x, tangent.x], [vp.y_min, vp.y_max])
        data["tangent_anchor"] = ([tangent.x], [tangent.y])

    data["df"] = segments_xy(lower.segments)
    data["holes"] = ([h.x for h in lower.holes], [h.y for h in lower.holes])
    data["markers"] = ([m.x for m in lower.markers], [m.y for m in lower.markers])
    return data


def base_figure(
    width: float = 900.0,
    height: float = 520.0,
    layout: PanelLayout = PanelLayout(),
    *,
    figure: Optional[go.Figure] = None,
) -> go.Figure:
    """Create (or populate ``figure`` with) the two-panel trace skeleton."""
    fig = go.Figure() if figure is None else figure
    panel_h = layout.panel_height(height)
    split = panel_h / height if height > 0 else 0.5
    fig.update_layout(
        width=int(width),
        height=int(height),
        margin=dict(l=48, r=16, t=16, b=28),
        showlegend=False,
        plot_bgcolor="#ffffff",
        paper_bgcolor="#ffffff",
        hovermode="closest",
        xaxis=dict(anchor="y", showgrid=True, gridcolor=GRID_COLOR, zeroline=False),
        yaxis=dict(domain=[1.0 - split, 1.0], showgrid=True, gridcolor=GRID_COLOR, zeroline=False),
        xaxis2=dict(anchor="y2", matches="x", showgrid=True, gridcolor=GRID_COLOR, zeroline=False),
        yaxis2=dict(domain=[0.0, split], showgrid=True, gridcolor=GRID_COLOR, zeroline=False),
    )
    fig.add_trace(go.Scatter(name="f", mode="lines", line=dict(color=F_COLOR, width=2), **_UPPER_AXES))
    fig.add_trace(
        go.Scatter(
            name="tangent_guide",
            mode="lines",
            line=dict(color=GUIDE_COLOR, width=1, dash="dash"),
            hoverinfo="skip",
            **_UPPER_AXES,
        )
    )
    fig.add_trace(
        go.Scatter(
            name="tangent",
            mode="lines",
            line=dict(color=TANGENT_COLOR, width=2),
            hoverinfo="skip",
            **_UPPER_AXES,
        )
    )
    fig.add_trace(
        go.Scatter(
            name="tangent_anchor",
            mode="markers",
            marker=dict(color=TANGENT_COLOR, size=6),
            hoverinfo="skip",
            **_UPPER_AXES,
        )
    )
    fig.add_trace(go.Scatter(name="df", mode="lines", line=dict(color=DF_COLOR, width=2), **_LOWER_AXES))
    fig.add_trace(
        go.Scatter(
            name="holes",
            mode="markers",
            marker=dict(
                symbol="circle-open",
                size=7,
                color=MARKER_COLOR,
                line=dict(color=MARKER_COLOR, width=1.5),
            ),
            **_LOWER_AXES,
        )
    )
    fig.add_trace(
        go.Scatter(
            name="markers",
            mode="markers",
            marker=dict(color=MARKER_COLOR, size=6),
            **_LOWER_AXES,
        )
    )
    return fig


def _axis_updates(panel: PanelRender) -> Tuple[dict, dict]:
    vp = panel.viewport
    x_axis = dict(
        range=[vp.x_min, vp.x_max],
        tickmode="array",
        tickvals=[t.value for t in panel.axes.x_ticks],
        ticktext=[t.label for t in panel.axes.x_ticks],
    )
    y_axis = dict(
        range=[vp.y_min, vp.y_max],
        tickmode="array",
        tickvals=[t.value for t in panel.axes.y_ticks],
        ticktext=[t.label for t in panel.axes.y_ticks],
    )
    return x_axis, y_axis


def _zero_line_shapes(panel: PanelRender, xref: str, yref: str) -> List[dict]:
    shapes = []
    for line in panel.axes.zero_lines:
        (x0, y0), (x1, y1) = _world(panel.viewport, line.start), _world(panel.viewport, line.end)
        shapes.append(
            dict(
                type="line",
                xref=xref,
                yref=yref,
                x0=x0,
                y0=y0,
                x1=x1,
                y1=y1,
                line=dict(color=ZERO_AXIS_COLOR, width=1),
                layer="below",
            )
        )
    return shapes


def apply_result(fig: go.Figure, result: RenderResult) -> go.Figure:
    """Write one frame into a figure created by :func:`base_figure`.

    Works on ``go.Figure`` and ``go.FigureWidget`` alike; a widget receives
    the whole frame as one batched update.
    """
    data = _trace_data(result)
    with fig.batch_update():
        _apply(fig, result, data)
    return fig


def _apply(fig: go.Figure, result: RenderResult, data: Dict[str, Tuple[list, list]]) -> None:
    for trace in fig.data:
        if trace.name in data:
            xs, ys = data[trace.name]
            trace.x = xs
            trace.y = ys

    annotations: List[dict] = []
    shapes: List[dict] = []
    if not result.ok:
        annotations.append(
            dict(
                text=result.error,
                xref="paper",
                yref="paper",
                x=0.5,
                y=0.5,
                showarrow=False,
                font=dict(color=ERROR_COLOR, size=13),
            )
        )
    else:
        upper: PanelRender = result.upper  # type: ignore[assignment]
        lower: PanelRender = result.lower  # type: ignore[assignment]
        ux, uy = _axis_updates(upper)
        lx, ly = _axis_updates(lower)
        fig.update_layout(xaxis=ux, yaxis=uy, xaxis2=lx, yaxis2=ly)
        shapes.extend(_zero_line_shapes(upper, "x", "y"))
        shapes.extend(_zero_line_shapes(lower, "x2", "y2"))
        tangent = upper.tangent
        if tangent is not None:
            lx_, ly_ = _world(upper.viewport, tangent.label_position)
            annotations.append(
                dict(
                    text=tangent.label,
                    xref="x",
                    yref="y",
                    x=lx_,
                    y=ly_,
                    xanchor="left",
                    yanchor="bottom",
                    showarrow=False,
                    font=dict(color=LABEL_COLOR, size=12),
                )
            )
    fig.layout.annotations = annotations
    fig.layout.shapes = shapes
    fig.update_layout(width=int(result.width), height=int(result.height))


def to_plotly_figure(result: RenderResult, layout: PanelLayout = PanelLayout()) -> go.Figure:
    """Build a standalone ``go.Figure`` for ``result``.

    Examples
    --------
    >>> from slope_toolkit.curve_render import GrapherState, render
    >>> result = render(GrapherState(expression="abs(x)"))
    >>> fig = to_plotly_figure(result)  # doctest: +SKIP
    >>> fig.show(config=plotly_config(result))  # doctest: +SKIP
    """
    fig = base_figure(result.width, result.height, layout)
    return apply_result(fig, result)


def plotly_config(result: RenderResult) -> Dict[str, Any]:
    """Plotly ``config`` exporting images at the frame's device pixel ratio."""
    return {
        "displaylogo": False,
        "toImageButtonOptions": {
            "format": "png",
            "width": int(result.width),
            "height": int(result.height),
            "scale": float(result.pixel_ratio),
        },
    }
