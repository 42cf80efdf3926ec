from __future__ import annotations

from types import SimpleNamespace

import pytest

from slope_toolkit.coordinates import InvalidDomainError
from slope_toolkit.DerivativeGrapher import DerivativeGrapher, expression_latex
from slope_toolkit.grapher_config import PARSE_ERROR_MESSAGE
from slope_toolkit.plotly_adapter import TRACE_NAMES


class _RecordingDebouncer:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.cancelled = 0

    def __call__(self, *args) -> None:
        self.calls.append(args)

    def cancel(self) -> None:
        self.cancelled += 1


def _trace_xs(g: DerivativeGrapher, name: str):
    return next(t for t in g.figure_widget.data if t.name == name).x


def test_expression_latex() -> None:
    assert expression_latex("x^2") == ("x^{2}", "2 x")
    assert expression_latex("sin(") == (None, None)
    f_tex, df_tex = expression_latex("(x>0)*x")
    assert f_tex is not None and df_tex is None


def test_initial_render_and_widgets() -> None:
    g = DerivativeGrapher("abs(x)", x_range=(-4, 4), samples=129)
    assert g.last_result.ok
    assert len(g.last_result.lower.holes) == 2
    assert tuple(t.name for t in g.figure_widget.data) == TRACE_NAMES
    assert "f(x) =" in g.title_html.value
    assert g.widget is g.root_widget
    assert "PASS" in g.self_check_html.value and "FAIL" not in g.self_check_html.value


def test_default_view_shows_the_abs_corner() -> None:
    g = DerivativeGrapher("abs(x)")
    left, right = g.last_result.lower.holes
    assert left.x == pytest.approx(0.0, abs=1e-9)
    assert (left.y, right.y) == (pytest.approx(-1.0), pytest.approx(1.0))
    assert list(_trace_xs(g, "holes")) == [left.x, right.x]


def test_invalid_initial_domain_raises() -> None:
    with pytest.raises(InvalidDomainError):
        DerivativeGrapher(x_range=(1, 1))


def test_x_range_setter_validates() -> None:
    g = DerivativeGrapher("x^2")
    with pytest.raises(InvalidDomainError):
        g.x_range = (3, -3)
    assert g.x_range == (-10.0, 10.0)

    g.x_range = (-2, 5)
    assert g.x_range == (-2.0, 5.0)
    assert (g.x_min_box.value, g.x_max_box.value) == (-2.0, 5.0)
    assert g.last_result.upper.viewport.x_max == 5.0


def test_bad_domain_from_widgets_shows_message_and_keeps_state() -> None:
    g = DerivativeGrapher("abs(x)", x_range=(-4, 4))
    g.x_min_box.value = 5.0
    assert "x_min must be smaller than x_max" in g.message_html.value
    assert g.x_range == (-4.0, 4.0)

    g.x_min_box.value = -1.0
    assert g.x_range == (-1.0, 4.0)
    assert g.message_html.value == ""


def test_parse_error_is_shown_not_raised() -> None:
    g = DerivativeGrapher("x^2")
    g.expression = "sin("
    assert g.last_result.error == PARSE_ERROR_MESSAGE
    assert "Could not parse" in g.message_html.value

    g.expression_text.value = "x^3"
    assert g.expression == "x^3"
    assert g.last_result.ok
    assert g.message_html.value == ""


def test_presets_and_piecewise_update_the_expression() -> None:
    g = DerivativeGrapher()
    g.preset_dropdown.value = "exp(-x^2)"
    assert g.expression == "exp(-x^2)"
    assert g.expression_text.value == "exp(-x^2)"
    assert g.preset_dropdown.value == ""

    assert g.apply_piecewise(g.piecewise_rows) == "(x<0)?(-x):(x^2)"
    assert g.expression == "(x<0)?(-x):(x^2)"
    assert g.apply_piecewise([("", "")]) is None
    assert g.expression == "(x<0)?(-x):(x^2)"


def test_setters_sync_controls() -> None:
    g = DerivativeGrapher("x^2")
    g.samples = "50"
    assert g.samples == 100
    assert g.samples_box.value == 100

    g.lock_tangent = True
    g.tangent_anchor = "1"
    assert g.lock_tangent_checkbox.value is True
    assert g.anchor_text.value == "1"
    assert g.last_result.upper.tangent.slope == pytest.approx(2.0)

    g.show_derivative = False
    assert g.last_result.lower.segments == ()
    g.show_tangent = False
    assert g.last_result.upper.tangent is None


def test_pointer_moves_the_tangent() -> None:
    g = DerivativeGrapher("x^2", width=900, height=520)
    assert g.pointer_move(450.0, 100.0) == 0.0
    assert g.hover_x == 0.0
    assert g.last_result.upper.tangent.slope == pytest.approx(0.0)

    assert g.pointer_move(450.0, 400.0) is None
    assert g.last_result.upper.tangent is None

    g.pointer_move(675.0, 10.0)
    assert g.hover_x == pytest.approx(5.0)
    g.pointer_leave()
    assert g.hover_x is None
    assert g.state.hover_x is None


def test_trace_hover_is_debounced_in_surface_pixels() -> None:
    g = DerivativeGrapher("x^2", width=900, height=520)
    recorder = _RecordingDebouncer()
    g._hover_debouncer = recorder

    g._on_trace_hover(SimpleNamespace(name="f"), SimpleNamespace(xs=[0.0], ys=[0.0]))
    ((sx, sy),) = recorder.calls
    assert sx == pytest.approx(450.0)
    assert g.last_result.upper.viewport.contains_sy(sy)

    g._on_trace_hover(SimpleNamespace(name="df"), SimpleNamespace(xs=[0.0], ys=[0.0]))
    assert not g.last_result.upper.viewport.contains_sy(recorder.calls[1][1])

    g._on_trace_unhover(None, None)
    assert recorder.cancelled == 1
