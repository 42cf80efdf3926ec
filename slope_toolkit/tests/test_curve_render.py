from __future__ import annotations

import math

import numpy as np
import pytest

from slope_toolkit.coordinates import PanelViewport
from slope_toolkit.curve_render import (
    GrapherState,
    Segment,
    build_axes,
    discontinuity_markers,
    render,
    segment_curve,
    segment_derivative,
    tangent_line,
)
from slope_toolkit.derivatives import compile_derivative
from slope_toolkit.grapher_config import PARSE_ERROR_MESSAGE, RendererThresholds
from slope_toolkit.numpify import compile_expression
from slope_toolkit.range_estimation import VerticalRange, sample_grid


def _spans(segment: Segment, x0: float) -> bool:
    return min(segment.xs) < x0 <= max(segment.xs)


def _unit_viewport() -> PanelViewport:
    return PanelViewport(400, 200, -2.0, 2.0, -1.5, 1.5)


# SECTION: primary curve
# =============================================================================

def test_step_function_splits_at_the_jump() -> None:
    result = render(GrapherState(expression="x<0 ? -1 : 1", x_min=-2, x_max=2))
    assert result.ok
    segments = result.upper.segments
    assert len(segments) == 2
    assert not any(_spans(s, 0.0) for s in segments)
    assert set(segments[0].ys) == {-1.0}
    assert set(segments[1].ys) == {1.0}


def test_large_jump_threshold_keeps_one_segment() -> None:
    f = compile_expression("x<0 ? -1 : 1")
    segments = segment_curve(
        f, sample_grid((-2.0, 2.0), 400), _unit_viewport(), RendererThresholds(jump_abs=10.0)
    )
    assert len(segments) == 1


def test_reciprocal_never_connects_across_the_pole() -> None:
    result = render(GrapherState(expression="1/x", x_min=-5, x_max=5, samples=800))
    segments = result.upper.segments
    assert len(segments) >= 2
    for segment in segments:
        assert not (min(segment.xs) < 0.0 < max(segment.xs))


def test_log_segments_only_cover_the_positive_half() -> None:
    result = render(GrapherState(expression="log(x)"))
    assert result.ok
    assert result.upper.segments
    for segment in result.upper.segments:
        assert min(segment.xs) > 0.0
        assert all(math.isfinite(y) for y in segment.ys)


def test_undefined_samples_close_the_segment() -> None:
    f = compile_expression("sqrt(1 - x^2)")
    segments = segment_curve(f, sample_grid((-2.0, 2.0), 401), _unit_viewport())
    assert len(segments) == 1
    assert all(abs(x) <= 1.0 for x in segments[0].xs)


def test_segment_points_are_surface_pixels() -> None:
    vp = PanelViewport(400, 200, -2.0, 2.0, -1.0, 1.0, y_offset=50.0)
    (segment,) = segment_curve(lambda x: 0.0, np.array([-2.0, 0.0, 2.0]), vp)
    assert segment.points == [(0.0, 150.0), (200.0, 150.0), (400.0, 150.0)]
    assert len(segment) == 3


def test_smooth_default_expression_is_one_segment() -> None:
    result = render(GrapherState())
    assert result.ok
    assert len(result.upper.segments) == 1
    assert len(result.upper.segments[0]) == 800
    assert len(result.lower.segments) == 1
    assert result.lower.holes == ()
    assert result.lower.markers == ()


# SECTION: derivative panel
# =============================================================================

def test_abs_corner_gets_a_pair_of_hole_markers() -> None:
    f = compile_expression("abs(x)")
    df = compile_derivative("abs(x)")
    vp = PanelViewport(640, 254, -4.0, 4.0, -1.5, 1.5)
    segments, holes = segment_derivative(f, df, (-4.0, 4.0), 129, vp)

    assert [(h.x, h.side) for h in holes] == [(0.0, "left"), (0.0, "right")]
    assert holes[0].y == pytest.approx(-1.0)
    assert holes[1].y == pytest.approx(1.0)
    assert len(segments) == 2
    assert all(y == pytest.approx(-1.0) for y in segments[0].ys)
    assert all(y == pytest.approx(1.0) for y in segments[1].ys)
    assert max(segments[0].xs) < 0.0 < min(segments[1].xs)


def _assert_corner_at(result, x0: float) -> None:
    left, right = result.lower.holes
    assert (left.side, right.side) == ("left", "right")
    assert left.x == right.x == pytest.approx(x0, abs=1e-9)
    assert left.y == pytest.approx(-1.0)
    assert right.y == pytest.approx(1.0)
    assert left.sx == right.sx
    assert not any(_spans(s, x0) for s in result.lower.segments)


def test_abs_corner_in_the_default_view() -> None:
    result = render(GrapherState(expression="abs(x)"))
    _assert_corner_at(result, 0.0)
    assert len(result.lower.segments) == 2


@pytest.mark.parametrize(
    "x_min, x_max, samples", [(-4.0, 4.0, 800), (-3.0, 4.1, 500), (-1.7, 2.9, 321)]
)
def test_abs_corner_between_samples(x_min: float, x_max: float, samples: int) -> None:
    result = render(GrapherState(expression="abs(x)", x_min=x_min, x_max=x_max, samples=samples))
    _assert_corner_at(result, 0.0)


def test_shifted_corner_off_the_sample_grid() -> None:
    result = render(GrapherState(expression="abs(x - 0.3)"))
    _assert_corner_at(result, 0.3)
    grid = sample_grid((-10.0, 10.0), 500)
    assert not np.any(np.isclose(grid, 0.3, rtol=0.0, atol=1e-6))


def test_corner_at_a_sample_with_defined_derivative() -> None:
    f = compile_expression("x<0 ? 0 : x")
    df = compile_derivative("x<0 ? 0 : x")
    segments, holes = segment_derivative(f, df, (-4.0, 4.0), 129, _unit_viewport())

    assert [(h.x, h.y) for h in holes] == [(0.0, pytest.approx(0.0)), (0.0, pytest.approx(1.0))]
    assert len(segments) == 2
    assert max(segments[0].xs) < 0.0 < min(segments[1].xs)
    assert set(segments[0].ys) == {0.0}
    assert set(segments[1].ys) == {1.0}


def test_derivative_of_a_step_breaks_near_the_jump() -> None:
    f = compile_expression("x<0 ? -1 : 1")
    df = compile_derivative("x<0 ? -1 : 1")
    segments, holes = segment_derivative(f, df, (-2.0, 2.0), 400, _unit_viewport())
    assert len(segments) >= 2
    assert not any(_spans(s, 0.0) for s in segments)


def test_derivative_sample_count_is_capped() -> None:
    f = compile_expression("x")
    df = compile_derivative("x")
    (segment,), holes = segment_derivative(f, df, (-1.0, 1.0), 4000, _unit_viewport())
    assert len(segment) == 498
    assert holes == []


def test_marker_dot_at_a_step() -> None:
    f = compile_expression("x<0 ? -1 : 1")
    markers = discontinuity_markers(f, (-2.0, 2.0), 400, _unit_viewport(), VerticalRange(-1.0, 1.0))
    assert len(markers) == 1
    assert abs(markers[0].x) < 1e-6


def test_no_marker_dots_for_a_smooth_function() -> None:
    f = compile_expression("x^2")
    assert discontinuity_markers(f, (-2.0, 2.0), 400, _unit_viewport(), VerticalRange(-5.0, 5.0)) == []


def test_derivative_panel_hidden_keeps_axes() -> None:
    result = render(GrapherState(expression="abs(x)", show_derivative=False))
    assert result.lower.segments == ()
    assert result.lower.holes == ()
    assert result.lower.axes.x_ticks


# SECTION: tangent line
# =============================================================================

def test_tangent_is_absent_at_a_kink() -> None:
    result = render(
        GrapherState(expression="abs(x)", x_min=-4, x_max=4, samples=129, lock_tangent=True, tangent_anchor="0")
    )
    assert result.upper.tangent is None
    assert len(result.lower.holes) == 2


def test_hover_tangent_label() -> None:
    result = render(GrapherState(expression="abs(x)", x_min=-4, x_max=4, hover_x=2.0))
    tangent = result.upper.tangent
    assert tangent is not None
    assert tangent.slope == pytest.approx(1.0)
    assert tangent.label == "x=2.000  f(x)=2.000  f'(x)=1.000"


def test_tangent_spans_the_domain() -> None:
    vp = PanelViewport(900, 254, -10.0, 10.0, -12.0, 12.0)
    f = compile_expression("x")
    tangent = tangent_line(f, compile_derivative("x"), 0.0, (-10.0, 10.0), vp)
    assert tangent.start == pytest.approx(vp.to_screen(-10.0, -10.0))
    assert tangent.end == pytest.approx(vp.to_screen(10.0, 10.0))
    assert tangent.guide_start == (450.0, 0.0)
    assert tangent.guide_end == (450.0, 254.0)


def test_tangent_anchor_is_clamped_and_label_kept_on_screen() -> None:
    locked = render(GrapherState(expression="x", lock_tangent=True, tangent_anchor="100"))
    assert locked.upper.tangent.x == 10.0

    hovered = render(GrapherState(expression="x", hover_x=10.0))
    assert hovered.upper.tangent.label_position[0] == 720.0


def test_tangent_respects_toggles_and_anchor_text() -> None:
    assert render(GrapherState(show_tangent=False, hover_x=1.0)).upper.tangent is None
    assert render(GrapherState(hover_x=None)).upper.tangent is None
    assert render(GrapherState(lock_tangent=True, tangent_anchor="x+1")).upper.tangent is None
    pi_half = render(GrapherState(expression="sin(x)", lock_tangent=True, tangent_anchor="pi/2"))
    assert pi_half.upper.tangent.slope == pytest.approx(0.0, abs=1e-12)


# SECTION: frame
# =============================================================================

def test_parse_error_produces_error_result() -> None:
    result = render(GrapherState(expression="sin("))
    assert not result.ok
    assert result.error == PARSE_ERROR_MESSAGE
    assert result.upper is None and result.lower is None


def test_invalid_domain_produces_error_result() -> None:
    result = render(GrapherState(x_min=1, x_max=1))
    assert not result.ok
    assert "x_min" in result.error


def test_surface_too_small_produces_error_result() -> None:
    assert not render(GrapherState(height=10)).ok


def test_panels_are_stacked_with_a_gap() -> None:
    result = render(GrapherState())
    assert result.upper.viewport.height == 254.0
    assert result.upper.viewport.y_offset == 0.0
    assert result.lower.viewport.y_offset == 266.0
    assert result.lower.viewport.y_min == result.d_range.y_min


def test_backing_size_uses_pixel_ratio() -> None:
    result = render(GrapherState(width=300.3, height=200.2, pixel_ratio=1.5))
    assert result.backing_size == (450, 300)
    assert result.width == 300.3


def test_sample_count_is_clamped() -> None:
    result = render(GrapherState(expression="x", samples=10))
    assert len(result.upper.segments[0]) == 100
    result = render(GrapherState(expression="x", samples=10**6))
    assert len(result.upper.segments[0]) == 4000


def test_build_axes_ticks_and_zero_lines() -> None:
    axes = build_axes(PanelViewport(200, 100, -1.0, 1.0, -1.0, 1.0))
    assert [t.value for t in axes.x_ticks][0] == -1.0
    assert axes.x_ticks[0].position == 0.0
    assert axes.y_ticks[-1].position == 0.0
    assert axes.y_ticks[-1].label == "1"
    assert len(axes.zero_lines) == 2
