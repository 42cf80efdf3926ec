from __future__ import annotations

import pytest

from slope_toolkit.curve_render import GrapherState, Segment, render
from slope_toolkit.grapher_config import PARSE_ERROR_MESSAGE
from slope_toolkit.plotly_adapter import (
    TRACE_NAMES,
    apply_result,
    base_figure,
    plotly_config,
    segments_xy,
    to_plotly_figure,
)


def _trace(fig, name: str):
    return next(t for t in fig.data if t.name == name)


def _abs_result(**kwargs):
    return render(GrapherState(expression="abs(x)", x_min=-4, x_max=4, samples=129, **kwargs))


def test_segments_are_joined_with_none_gaps() -> None:
    a = Segment([0.0, 1.0], [0.0, 1.0])
    b = Segment([2.0], [5.0])
    assert segments_xy([a, b]) == ([0.0, 1.0, None, 2.0], [0.0, 1.0, None, 5.0])
    assert segments_xy([]) == ([], [])


def test_figure_has_fixed_trace_set() -> None:
    fig = to_plotly_figure(_abs_result())
    assert tuple(t.name for t in fig.data) == TRACE_NAMES


def test_holes_and_curves_are_drawn_in_world_coordinates() -> None:
    result = _abs_result(hover_x=2.0)
    fig = to_plotly_figure(result)

    holes = _trace(fig, "holes")
    assert list(holes.x) == [0.0, 0.0]
    assert list(holes.y) == pytest.approx([-1.0, 1.0])
    assert holes.yaxis == "y2"

    df = _trace(fig, "df")
    assert None in df.x

    tangent = _trace(fig, "tangent")
    assert list(tangent.x) == pytest.approx([-4.0, 4.0])
    assert list(tangent.y) == pytest.approx([-4.0, 4.0])
    assert list(_trace(fig, "tangent_anchor").x) == [2.0]
    assert fig.layout.annotations[0].text == result.upper.tangent.label


def test_axes_follow_the_estimated_ranges() -> None:
    result = _abs_result()
    fig = to_plotly_figure(result)
    assert list(fig.layout.yaxis.range) == pytest.approx(list(result.y_range.as_tuple()))
    assert list(fig.layout.yaxis2.range) == pytest.approx(list(result.d_range.as_tuple()))
    assert list(fig.layout.xaxis.tickvals) == [t.value for t in result.upper.axes.x_ticks]
    assert fig.layout.xaxis2.matches == "x"
    assert len(fig.layout.shapes) == 4


def test_error_result_shows_message_and_clears_traces() -> None:
    fig = base_figure()
    apply_result(fig, _abs_result(hover_x=1.0))
    apply_result(fig, render(GrapherState(expression="sin(")))

    assert len(fig.data) == len(TRACE_NAMES)
    assert all(not t.x for t in fig.data)
    assert fig.layout.annotations[0].text == PARSE_ERROR_MESSAGE
    assert len(fig.layout.shapes) == 0


def test_figure_size_and_export_scale() -> None:
    result = render(GrapherState(width=640, height=400, pixel_ratio=2.0))
    fig = to_plotly_figure(result)
    assert (fig.layout.width, fig.layout.height) == (640, 400)

    config = plotly_config(result)
    assert config["toImageButtonOptions"]["scale"] == 2.0
    assert config["toImageButtonOptions"]["width"] == 640
