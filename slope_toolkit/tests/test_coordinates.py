from __future__ import annotations

import math

import numpy as np
import pytest

from slope_toolkit.coordinates import (
    AxisLine,
    InvalidDomainError,
    PanelViewport,
    format_tick,
    nice_ticks,
    screen_points,
    screen_to_world,
    validate_domain,
    world_to_screen,
    zero_axis_lines,
)


def test_world_to_screen_centers_and_inverts_y() -> None:
    assert world_to_screen(0.0, 0.0, 200, 100, -1.0, 1.0, -1.0, 1.0) == (100.0, 50.0)
    assert world_to_screen(-1.0, 1.0, 200, 100, -1.0, 1.0, -1.0, 1.0) == (0.0, 0.0)
    assert world_to_screen(1.0, -1.0, 200, 100, -1.0, 1.0, -1.0, 1.0) == (200.0, 100.0)


def test_screen_to_world_inverts_world_to_screen_for_arrays() -> None:
    params = (640, 254, -10.0, 10.0, -3.5, 21.0)
    xs = np.linspace(-10.0, 10.0, 9)
    ys = np.linspace(-3.5, 21.0, 9)
    sx, sy = world_to_screen(xs, ys, *params)
    bx, by = screen_to_world(sx, sy, *params)
    np.testing.assert_allclose(bx, xs, atol=1e-12)
    np.testing.assert_allclose(by, ys, atol=1e-12)


def test_viewport_applies_vertical_offset() -> None:
    vp = PanelViewport(200, 100, -1.0, 1.0, -1.0, 1.0, y_offset=112.0)
    assert vp.to_screen(0.0, 0.0) == (100.0, 162.0)
    assert vp.to_world(100.0, 162.0) == (0.0, 0.0)
    assert not vp.contains_sy(111.0)
    assert vp.contains_sy(112.0)
    assert vp.contains_sy(212.0)
    assert not vp.contains_sy(212.5)


def test_screen_points_returns_tuples() -> None:
    vp = PanelViewport(200, 100, -1.0, 1.0, -1.0, 1.0)
    assert screen_points(vp, [0.0, 1.0], [0.0, 1.0]) == [(100.0, 50.0), (200.0, 0.0)]


@pytest.mark.parametrize(
    ("lo", "hi"),
    [(1.0, 1.0), (2.0, 1.0), (math.nan, 1.0), (0.0, math.inf), ("a", 1.0), (None, 1.0)],
)
def test_validate_domain_rejects_bad_bounds(lo, hi) -> None:
    with pytest.raises(InvalidDomainError):
        validate_domain(lo, hi)


def test_validate_domain_coerces_numbers() -> None:
    assert validate_domain(-1, "2") == (-1.0, 2.0)
    assert issubclass(InvalidDomainError, ValueError)


def test_nice_ticks_unit_interval() -> None:
    assert nice_ticks(0.0, 1.0) == [0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]


def test_nice_ticks_symmetric_domain_uses_step_two() -> None:
    assert nice_ticks(-10.0, 10.0) == [float(v) for v in range(-10, 11, 2)]


def test_nice_ticks_respects_target_count() -> None:
    assert nice_ticks(0.0, 1.0, 4) == [0.0, 0.2, 0.4, 0.6, 0.8, 1.0]


def test_nice_ticks_swaps_reversed_bounds() -> None:
    assert nice_ticks(10.0, -10.0) == nice_ticks(-10.0, 10.0)


def test_nice_ticks_degenerate_and_non_finite() -> None:
    assert nice_ticks(0.0, 0.0) == [0.0]
    assert nice_ticks(math.nan, 1.0) == []
    assert nice_ticks(0.0, math.inf) == []


def test_nice_ticks_tiny_spans_stay_inside_the_bounds() -> None:
    ticks = nice_ticks(1e-14, 2e-14)
    assert ticks
    assert all(1e-14 <= t <= 2e-14 for t in ticks)
    assert all(a < b for a, b in zip(ticks, ticks[1:]))
    assert ticks[-1] == pytest.approx(2e-14)

    assert nice_ticks(1e-14, 1e-14) == []


def test_nice_ticks_have_no_negative_zero() -> None:
    ticks = nice_ticks(-1.0, 1.0)
    zero = [t for t in ticks if t == 0.0]
    assert zero and math.copysign(1.0, zero[0]) == 1.0


@pytest.mark.parametrize(
    ("value", "label"),
    [(2.0, "2"), (0.1, "0.1"), (-0.5, "-0.5"), (1e-7, "1e-07"), (1250.0, "1250")],
)
def test_format_tick(value: float, label: str) -> None:
    assert format_tick(value) == label


def test_zero_axis_lines_inside_panel() -> None:
    vp = PanelViewport(200, 100, -1.0, 1.0, -1.0, 1.0, y_offset=10.0)
    assert zero_axis_lines(vp) == [
        AxisLine("horizontal", (0.0, 60.0), (200.0, 60.0)),
        AxisLine("vertical", (100.0, 10.0), (100.0, 110.0)),
    ]


def test_zero_axis_lines_require_zero_strictly_inside() -> None:
    assert zero_axis_lines(PanelViewport(200, 100, 1.0, 2.0, 1.0, 2.0)) == []
    only_vertical = zero_axis_lines(PanelViewport(200, 100, -1.0, 1.0, 0.0, 2.0))
    assert [line.orientation for line in only_vertical] == ["vertical"]
