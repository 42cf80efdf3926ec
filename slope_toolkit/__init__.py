"""Top-level public API for the ``slope_toolkit`` package.

This module re-exports the notebook-facing grapher together with the pure
building blocks it is made of, so users can import from a single namespace:

>>> from slope_toolkit import DerivativeGrapher, compile_expression, render  # doctest: +SKIP

The pipeline is usable without a notebook: ``compile_expression`` and
``compile_derivative`` give never-raising callables, and ``render`` turns a
``GrapherState`` into plain geometry.
"""

# Optional explicit module handle to avoid callable/module name ambiguity.
from . import numpify as numpify_module
from .coordinates import (
    InvalidDomainError,
    PanelViewport,
    nice_ticks,
    screen_to_world,
    validate_domain,
    world_to_screen,
    zero_axis_lines,
)
from .curve_render import (
    GrapherState,
    RenderResult,
    discontinuity_markers,
    render,
    segment_curve,
    segment_derivative,
    tangent_line,
)
from .DerivativeGrapher import DerivativeGrapher, expression_latex
from .derivatives import (
    DerivativeUnavailable,
    compile_derivative,
    derivative_expression,
    differentiate,
    numeric_derivative,
)
from .grapher_config import (
    DEFAULT_EXPRESSION,
    PARSE_ERROR_MESSAGE,
    PRESETS,
    PanelLayout,
    RendererThresholds,
    clamp_sample_count,
)
from .InputConvert import InputConvert
from .interaction import HoverTracker, resolve_tangent_anchor
from .numpify import CompiledFunction, compile_expression, numpify, numpify_cached
from .ParseExpression import ExpressionParseError, normalize_expression, parse_expression
from .piecewise import build_piecewise
from .plotly_adapter import to_plotly_figure
from .range_estimation import VerticalRange, estimate_range, finite_extent
from .self_checks import SELF_CHECK_CASES, run_self_checks
