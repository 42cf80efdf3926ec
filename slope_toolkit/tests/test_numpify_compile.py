from __future__ import annotations

import math

import numpy as np
import pytest

from slope_toolkit.numpify import (
    CompiledFunction,
    compile_expression,
    numpify,
    numpify_cached,
)
from slope_toolkit.ParseExpression import parse_expression


def test_default_expression_evaluates_scalar_and_array() -> None:
    f = compile_expression("sin(x) + x^2/5")
    assert f is not None
    assert isinstance(f(1.0), float)
    assert f(0.0) == pytest.approx(0.0)
    assert f(2.0) == pytest.approx(math.sin(2.0) + 0.8)

    xs = np.linspace(-3.0, 3.0, 7)
    ys = f(xs)
    assert isinstance(ys, np.ndarray)
    assert ys.shape == xs.shape
    np.testing.assert_allclose(ys, np.sin(xs) + xs**2 / 5)


def test_constant_expression_broadcasts_over_arrays() -> None:
    f = compile_expression("5")
    assert f is not None
    np.testing.assert_array_equal(f(np.zeros(4)), np.full(4, 5.0))


@pytest.mark.parametrize(
    ("text", "x"),
    [
        ("log(x)", -1.0),
        ("log(x)", 0.0),
        ("sqrt(x)", -2.0),
        ("1/x", 0.0),
        ("1/0", 3.0),
        ("exp(x)", 1000.0),
        ("x^0.5", -1.0),
        ("asin(x)", 2.0),
    ],
)
def test_undefined_points_evaluate_to_nan(text: str, x: float) -> None:
    f = compile_expression(text)
    assert f is not None
    assert math.isnan(f(x))


def test_nan_points_are_reported_per_element() -> None:
    f = compile_expression("log(x)")
    ys = f(np.array([-1.0, 1.0, math.e]))
    assert math.isnan(ys[0])
    assert ys[1:] == pytest.approx([0.0, 1.0])


@pytest.mark.parametrize("text", ["", "   ", None, "sin(", "foo(x)", "x +"])
def test_compile_expression_returns_none_for_bad_input(text) -> None:
    assert compile_expression(text) is None


def test_absolute_bars_are_accepted() -> None:
    f = compile_expression("|x|")
    assert f(-3.0) == 3.0


def test_conditional_and_comparison_values() -> None:
    f = compile_expression("x<0 ? -x : x^2")
    assert f(-2.0) == 2.0
    assert f(3.0) == 9.0
    np.testing.assert_array_equal(f(np.array([-2.0, 3.0])), [2.0, 9.0])

    g = compile_expression("(x>0)*x")
    assert g(2.0) == 2.0
    assert g(-2.0) == 0.0


def test_nan_condition_selects_nan() -> None:
    f = compile_expression("log(x) ? 1 : 2")
    assert math.isnan(f(-1.0))
    assert f(math.e) == 1.0


@pytest.mark.parametrize(
    "text",
    ["log(x) < 0 ? 1 : 2", "sqrt(x) > 1 ? 5 : 3", "(log(x) > 0) * 1", "x == log(x)"],
)
def test_comparison_with_undefined_side_is_nan(text: str) -> None:
    f = compile_expression(text)
    assert math.isnan(f(-1.0))
    ys = f(np.array([-1.0, 4.0]))
    assert math.isnan(ys[0])
    assert math.isfinite(ys[1])


def test_comparison_truth_values_on_defined_sides() -> None:
    assert compile_expression("sqrt(x) > 1 ? 5 : 3")(4.0) == 5.0
    assert compile_expression("sqrt(x) > 1 ? 5 : 3")(0.25) == 3.0
    assert compile_expression("x <= 1")(1.0) == 1.0
    assert compile_expression("x != 1")(1.0) == 0.0


def test_two_argument_log_and_constants() -> None:
    assert compile_expression("log(8, 2)")(0.0) == pytest.approx(3.0)
    assert compile_expression("2pi")(0.0) == pytest.approx(2 * math.pi)
    assert compile_expression("e^x")(1.0) == pytest.approx(math.e)


def test_generated_source_is_inspectable() -> None:
    f = compile_expression("sin(x)")
    assert "numpy.sin" in f.source
    assert f.symbolic == parse_expression("sin(x)")
    assert "sin(x)" in repr(f)


def test_compiled_function_reports_raising_callables_as_nan() -> None:
    def broken(x):
        raise ZeroDivisionError("boom")

    f = CompiledFunction(broken, label="broken")
    assert math.isnan(f(1.0))
    assert np.isnan(f(np.ones(3))).all()


def test_numpify_cache_behavior() -> None:
    numpify_cached.cache_clear()
    tree = parse_expression("x^3 - 3*x")

    first = numpify(tree)
    second = numpify(parse_expression("x^3 - 3*x"))
    assert first is second
    assert numpify_cached.cache_info().hits >= 1

    fresh = numpify(tree, cache=False)
    assert fresh is not first
    assert fresh(2.0) == first(2.0) == pytest.approx(2.0)
