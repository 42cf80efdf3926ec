"""Interactive derivative grapher for Jupyter notebooks.

Purpose
-------
Wire the pure pipeline (:func:`slope_toolkit.curve_render.render`) to
notebook controls and a Plotly ``FigureWidget``: type ``f(x)``, see ``f`` in
the upper panel and ``f'`` in the lower one, hover to move the tangent line.

Concepts and structure
----------------------
- ``GrapherState`` (frozen) holds every input of a frame. Each control change
  produces a new state and a full re-render; nothing is updated
  incrementally.
- Pointer hover over the ``f`` or ``f'`` trace is converted to surface pixels
  and fed to a :class:`~slope_toolkit.interaction.HoverTracker` through a
  :class:`~slope_toolkit.debouncing.PointerDebouncer`, so fast mouse motion
  renders at most once per tick with the latest position.
- Invalid input never raises inside widget callbacks: parse errors and bad
  domains are shown in the message area. A bad domain from the widgets is
  not applied; the Python setter (``x_range = ...``) raises instead.

Examples
--------
>>> from slope_toolkit import DerivativeGrapher
>>> g = DerivativeGrapher("abs(x)", x_range=(-4, 4))  # doctest: +SKIP
>>> g  # doctest: +SKIP
>>> g.lock_tangent = True  # doctest: +SKIP
>>> g.tangent_anchor = "pi/4"  # doctest: +SKIP

Logging
-------
Render calls are logged on ``slope_toolkit.DerivativeGrapher`` at INFO (at most
once per second) and DEBUG (at most twice per second).
"""

from __future__ import annotations

import dataclasses
import html
import logging
import time
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import ipywidgets as widgets
import plotly.graph_objects as go
import sympy as sp
from IPython.display import display

from .ExpressionTree import to_sympy
from .ParseExpression import ExpressionParseError
from .coordinates import InvalidDomainError, validate_domain
from .curve_render import GrapherState, RenderResult, render
from .debouncing import PointerDebouncer
from .derivatives import derivative_expression
from .grapher_config import (
    DEFAULT_DOMAIN,
    DEFAULT_EXPRESSION,
    DEFAULT_SAMPLES,
    DEFAULT_THRESHOLDS,
    PARSE_ERROR_MESSAGE,
    PRESETS,
    SAMPLE_COUNT_LIMITS,
    PanelLayout,
    RendererThresholds,
    clamp_sample_count,
)
from .interaction import HoverTracker
from .numpify import parse_user_expression
from .piecewise import DEFAULT_ROWS, build_piecewise
from .plotly_adapter import apply_result, base_figure
from .self_checks import run_self_checks

__all__ = ["DerivativeGrapher", "expression_latex"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def expression_latex(expr: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """LaTeX for ``f`` and ``f'`` of ``expr``.

    Returns
    -------
    (str or None, str or None)
        ``f`` is ``None`` when ``expr`` does not parse; ``f'`` is ``None``
        when no structural derivative exists (the numeric fallback is in use).
    """
    try:
        tree = parse_user_expression(expr)
    except ExpressionParseError:
        return None, None
    f_tex = sp.latex(to_sympy(tree))
    dtree = derivative_expression(expr)
    df_tex = sp.latex(to_sympy(dtree)) if dtree is not None else None
    return f_tex, df_tex


class DerivativeGrapher:
    """Notebook widget plotting ``f`` and ``f'`` with a tangent line.

    Parameters
    ----------
    expression : str
        Initial ``f(x)``.
    x_range : tuple of float
        Initial domain ``(x_min, x_max)``.
    samples : int
        Display sample count, clamped into ``[100, 4000]``.
    width, height : float
        Figure size in CSS pixels.
    pixel_ratio : float
        Device pixel ratio recorded in every :class:`RenderResult`.
    show_derivative, show_tangent, lock_tangent : bool
        Initial toggle states.
    tangent_anchor : str
        Locked anchor text, any constant expression (``"pi/2"``).
    thresholds : RendererThresholds
        Jump/corner/marker heuristics.
    layout : PanelLayout
        Panel gap configuration.
    hover_every_ms : int
        Hover render cadence.

    Raises
    ------
    InvalidDomainError
        If ``x_range`` is not a valid domain.
    """

    def __init__(
        self,
        expression: str = DEFAULT_EXPRESSION,
        *,
        x_range: Sequence[float] = DEFAULT_DOMAIN,
        samples: int = DEFAULT_SAMPLES,
        width: float = 900.0,
        height: float = 520.0,
        pixel_ratio: float = 1.0,
        show_derivative: bool = True,
        show_tangent: bool = True,
        lock_tangent: bool = False,
        tangent_anchor: str = "0",
        thresholds: RendererThresholds = DEFAULT_THRESHOLDS,
        layout: PanelLayout = PanelLayout(),
        hover_every_ms: int = 40,
    ) -> None:
        x_min, x_max = validate_domain(*x_range)
        self._state = GrapherState(
            expression=str(expression),
            x_min=x_min,
            x_max=x_max,
            samples=clamp_sample_count(samples),
            width=float(width),
            height=float(height),
            pixel_ratio=float(pixel_ratio),
            show_derivative=bool(show_derivative),
            show_tangent=bool(show_tangent),
            lock_tangent=bool(lock_tangent),
            tangent_anchor=str(tangent_anchor),
            thresholds=thresholds,
            layout=layout,
        )
        self._hover = HoverTracker()
        self._last_result: Optional[RenderResult] = None
        self._syncing = False
        self._render_info_last_log_t = 0.0
        self._render_debug_last_log_t = 0.0

        self.figure_widget = go.FigureWidget()
        base_figure(width, height, layout, figure=self.figure_widget)
        self._hover_debouncer = PointerDebouncer(self._apply_hover, execute_every_ms=hover_every_ms)
        self._build_widgets()
        self._connect_hover()
        self.render(reason="init")

    # SECTION: widgets [id: widgets]
    # =========================================================================

    def _build_widgets(self) -> None:
        s = self._state
        lo, hi = SAMPLE_COUNT_LIMITS
        self.title_html = widgets.HTMLMath(value="", layout=widgets.Layout(margin="0 0 6px 0"))
        self.expression_text = widgets.Text(
            value=s.expression,
            description="f(x)",
            placeholder="e.g. sin(x) + x^2/5",
            continuous_update=False,
            layout=widgets.Layout(width="100%"),
        )
        self.preset_dropdown = widgets.Dropdown(
            options=[("Presets…", "")] + [(label, expr) for label, expr in PRESETS],
            value="",
            layout=widgets.Layout(width="180px"),
        )
        self.x_min_box = widgets.FloatText(value=s.x_min, description="x min")
        self.x_max_box = widgets.FloatText(value=s.x_max, description="x max")
        self.samples_box = widgets.BoundedIntText(
            value=s.samples, min=lo, max=hi, description="samples"
        )
        self.show_derivative_checkbox = widgets.Checkbox(
            value=s.show_derivative, description="derivative", indent=False
        )
        self.show_tangent_checkbox = widgets.Checkbox(
            value=s.show_tangent, description="tangent", indent=False
        )
        self.lock_tangent_checkbox = widgets.Checkbox(
            value=s.lock_tangent, description="lock tangent at", indent=False
        )
        self.anchor_text = widgets.Text(
            value=s.tangent_anchor,
            placeholder="x₀, e.g. pi/2",
            continuous_update=False,
            layout=widgets.Layout(width="120px"),
        )
        self.message_html = widgets.HTML(value="")

        self._piecewise_rows: List[Tuple[widgets.Text, widgets.Text]] = []
        self.piecewise_box = widgets.VBox()
        for cond, expr in DEFAULT_ROWS:
            self._add_piecewise_row(cond, expr)
        self.add_row_button = widgets.Button(description="add row")
        self.use_piecewise_button = widgets.Button(description="use as f(x)")
        self.add_row_button.on_click(lambda _b: self._add_piecewise_row("", ""))
        self.use_piecewise_button.on_click(lambda _b: self.apply_piecewise(self.piecewise_rows))

        checks = run_self_checks()
        self.self_check_html = widgets.HTML(
            value="<br>".join(
                f"{'PASS' if r.passed else 'FAIL'}: {html.escape(r.name)} "
                f"<span style='color:#94a3b8'>({html.escape(r.note)})</span>"
                for r in checks
            )
        )

        for control in (
            self.expression_text,
            self.x_min_box,
            self.x_max_box,
            self.samples_box,
            self.show_derivative_checkbox,
            self.show_tangent_checkbox,
            self.lock_tangent_checkbox,
            self.anchor_text,
        ):
            control.observe(self._on_control_change, names="value")
        self.preset_dropdown.observe(self._on_preset, names="value")

        controls = widgets.VBox(
            [
                widgets.HBox([self.expression_text, self.preset_dropdown]),
                widgets.HBox([self.x_min_box, self.x_max_box, self.samples_box]),
                widgets.HBox(
                    [
                        self.show_derivative_checkbox,
                        self.show_tangent_checkbox,
                        self.lock_tangent_checkbox,
                        self.anchor_text,
                    ]
                ),
                self.message_html,
            ]
        )
        piecewise = widgets.Accordion(
            children=[
                widgets.VBox(
                    [
                        self.piecewise_box,
                        widgets.HBox([self.add_row_button, self.use_piecewise_button]),
                    ]
                ),
                self.self_check_html,
            ]
        )
        piecewise.set_title(0, "Piecewise builder")
        piecewise.set_title(1, "Self checks")
        self.root_widget = widgets.VBox(
            [self.title_html, controls, self.figure_widget, piecewise],
            layout=widgets.Layout(width="100%"),
        )

    def _add_piecewise_row(self, cond: str, expr: str) -> None:
        cond_box = widgets.Text(value=cond, placeholder="condition, e.g. x<0")
        expr_box = widgets.Text(value=expr, placeholder="expression")
        self._piecewise_rows.append((cond_box, expr_box))
        self.piecewise_box.children = tuple(
            widgets.HBox([c, e]) for c, e in self._piecewise_rows
        )

    @property
    def piecewise_rows(self) -> List[Tuple[str, str]]:
        return [(c.value, e.value) for c, e in self._piecewise_rows]

    def _connect_hover(self) -> None:
        for trace in self.figure_widget.data:
            if trace.name in ("f", "df"):
                trace.on_hover(self._on_trace_hover)
                trace.on_unhover(self._on_trace_unhover)

    # SECTION: widget callbacks [id: callbacks]
    # =========================================================================

    def _on_control_change(self, change: dict) -> None:
        if self._syncing:
            return
        try:
            x_min, x_max = validate_domain(self.x_min_box.value, self.x_max_box.value)
        except InvalidDomainError as exc:
            self._show_message(str(exc))
            return
        self._state = dataclasses.replace(
            self._state,
            expression=self.expression_text.value,
            x_min=x_min,
            x_max=x_max,
            samples=clamp_sample_count(self.samples_box.value),
            show_derivative=bool(self.show_derivative_checkbox.value),
            show_tangent=bool(self.show_tangent_checkbox.value),
            lock_tangent=bool(self.lock_tangent_checkbox.value),
            tangent_anchor=str(self.anchor_text.value),
        )
        self.render(reason="control", trigger=change)

    def _on_preset(self, change: dict) -> None:
        expr = change.get("new") or ""
        if expr:
            self.expression = expr
            # Back to the placeholder so the same preset can be picked again.
            self.preset_dropdown.value = ""

    def _on_trace_hover(self, trace: Any, points: Any, _state: Any = None) -> None:
        result = self._last_result
        if result is None or not result.ok or not points.xs:
            return
        panel = result.lower if trace.name == "df" else result.upper
        sx, sy = panel.viewport.to_screen(float(points.xs[0]), float(points.ys[0]))
        self._hover_debouncer(float(sx), float(sy))

    def _on_trace_unhover(self, _trace: Any, _points: Any, _state: Any = None) -> None:
        self._hover_debouncer.cancel()
        self.pointer_leave()

    def _apply_hover(self, sx: float, sy: float) -> None:
        self.pointer_move(sx, sy)

    # SECTION: public API [id: api]
    # =========================================================================

    @property
    def state(self) -> GrapherState:
        return self._state

    @property
    def last_result(self) -> Optional[RenderResult]:
        return self._last_result

    @property
    def hover_x(self) -> Optional[float]:
        return self._hover.hover_x

    @property
    def expression(self) -> str:
        return self._state.expression

    @expression.setter
    def expression(self, value: str) -> None:
        self._update(expression=str(value))

    @property
    def x_range(self) -> Tuple[float, float]:
        return (self._state.x_min, self._state.x_max)

    @x_range.setter
    def x_range(self, value: Sequence[float]) -> None:
        x_min, x_max = validate_domain(*value)
        self._update(x_min=x_min, x_max=x_max)

    @property
    def samples(self) -> int:
        return self._state.samples

    @samples.setter
    def samples(self, value: Any) -> None:
        self._update(samples=clamp_sample_count(value))

    @property
    def show_derivative(self) -> bool:
        return self._state.show_derivative

    @show_derivative.setter
    def show_derivative(self, value: bool) -> None:
        self._update(show_derivative=bool(value))

    @property
    def show_tangent(self) -> bool:
        return self._state.show_tangent

    @show_tangent.setter
    def show_tangent(self, value: bool) -> None:
        self._update(show_tangent=bool(value))

    @property
    def lock_tangent(self) -> bool:
        return self._state.lock_tangent

    @lock_tangent.setter
    def lock_tangent(self, value: bool) -> None:
        self._update(lock_tangent=bool(value))

    @property
    def tangent_anchor(self) -> str:
        return self._state.tangent_anchor

    @tangent_anchor.setter
    def tangent_anchor(self, value: Any) -> None:
        self._update(tangent_anchor=str(value))

    def apply_piecewise(self, rows: Iterable[Sequence[str]]) -> Optional[str]:
        """Replace ``f`` with the piecewise expression built from ``rows``.

        Returns the new expression, or ``None`` (and leaves ``f`` unchanged)
        when every row is blank.
        """
        expr = build_piecewise(rows)
        if expr is not None:
            self.expression = expr
        return expr

    def pointer_move(self, sx: float, sy: float) -> Optional[float]:
        """Feed a pointer position in surface pixels; re-render if hover changed."""
        result = self._last_result
        if result is None or not result.ok:
            return None
        previous = self._hover.hover_x
        hover_x = self._hover.pointer_move(sx, sy, result.upper.viewport)
        if hover_x != previous:
            self._state = dataclasses.replace(self._state, hover_x=hover_x)
            self.render(reason="hover")
        return hover_x

    def pointer_leave(self) -> None:
        if self._hover.hover_x is None:
            return
        self._hover.pointer_leave()
        self._state = dataclasses.replace(self._state, hover_x=None)
        self.render(reason="hover")

    def render(self, reason: str = "manual", trigger: Any = None) -> RenderResult:
        """Recompute the frame from the current state and push it to the figure."""
        self._log_render(reason, trigger)
        result = render(self._state)
        self._last_result = result
        apply_result(self.figure_widget, result)
        if result.ok:
            self._show_message("")
            f_tex, df_tex = expression_latex(self._state.expression)
            df_part = f"$f'(x) = {df_tex}$" if df_tex is not None else "$f'(x)$ (central difference)"
            self.title_html.value = f"$f(x) = {f_tex}$ &nbsp;&nbsp; {df_part}"
        else:
            self._show_message(result.error or PARSE_ERROR_MESSAGE)
        return result

    def _update(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        self._sync_controls()
        self.render(reason="api", trigger=changes)

    def _sync_controls(self) -> None:
        s = self._state
        self._syncing = True
        try:
            self.expression_text.value = s.expression
            self.x_min_box.value = s.x_min
            self.x_max_box.value = s.x_max
            self.samples_box.value = s.samples
            self.show_derivative_checkbox.value = s.show_derivative
            self.show_tangent_checkbox.value = s.show_tangent
            self.lock_tangent_checkbox.value = s.lock_tangent
            self.anchor_text.value = s.tangent_anchor
        finally:
            self._syncing = False

    def _show_message(self, text: str) -> None:
        self.message_html.value = (
            f"<div style='color:#be123c'>{html.escape(text)}</div>" if text else ""
        )

    def _log_render(self, reason: str, trigger: Any) -> None:
        """Log render information with rate-limiting."""
        now = time.monotonic()
        if logger.isEnabledFor(logging.INFO) and (now - self._render_info_last_log_t) > 1.0:
            self._render_info_last_log_t = now
            logger.info(f"render(reason={reason}) expression={self._state.expression!r}")

        if logger.isEnabledFor(logging.DEBUG) and (now - self._render_debug_last_log_t) > 0.5:
            self._render_debug_last_log_t = now
            logger.debug(
                f"x_range={self.x_range} samples={self._state.samples} "
                f"hover_x={self._state.hover_x} trigger={trigger!r}"
            )

    @property
    def widget(self) -> widgets.Widget:
        return self.root_widget

    def _ipython_display_(self, **kwargs: Any) -> None:
        """Display the grapher's widget tree (IPython rich display hook)."""
        display(self.root_widget)
