"""Pointer tracking and tangent-anchor resolution.

The hover state is a single optional world ``x``: set while the pointer is
over the upper (``f``) panel, cleared anywhere else and when the pointer
leaves the surface.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from .InputConvert import InputConvert
from .coordinates import PanelViewport

__all__ = ["HoverTracker", "resolve_tangent_anchor"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class HoverTracker:
    """Current hover ``x`` over the upper panel, or ``None``.

    Examples
    --------
    >>> panel = PanelViewport(400, 254, -10.0, 10.0, -1.0, 1.0)
    >>> tracker = HoverTracker()
    >>> tracker.pointer_move(200.0, 100.0, panel)
    0.0
    >>> tracker.pointer_move(200.0, 300.0, panel) is None
    True
    """

    def __init__(self) -> None:
        self.hover_x: Optional[float] = None

    def pointer_move(self, sx: float, sy: float, surface: PanelViewport) -> Optional[float]:
        """Update from a pointer position in surface pixels.

        Parameters
        ----------
        sx, sy : float
            Pointer position relative to the top-left of the drawing surface.
        surface : PanelViewport
            Viewport of the upper panel. Only positions with
            ``0 <= sy - surface.y_offset <= surface.height`` set the hover.

        Returns
        -------
        float or None
            The new hover ``x``.
        """
        if math.isfinite(sx) and math.isfinite(sy) and surface.contains_sy(sy):
            x, _ = surface.to_world(float(sx), float(sy))
            self.hover_x = float(x)
        else:
            self.hover_x = None
        return self.hover_x

    def pointer_leave(self) -> None:
        self.hover_x = None

    def __repr__(self) -> str:
        return f"HoverTracker(hover_x={self.hover_x!r})"


def resolve_tangent_anchor(
    locked: bool, anchor_text: Any, hover_x: Optional[float]
) -> Optional[float]:
    """Pick the tangent anchor ``x``.

    A locked anchor is parsed with :func:`~slope_toolkit.InputConvert.InputConvert`,
    so constant expressions such as ``pi/2`` or ``2π`` work. Text that is not a
    constant expression yields ``None`` (no tangent), as does an unlocked
    tangent without a hover position. Clamping into the domain is left to
    the renderer.
    """
    if not locked:
        return hover_x
    try:
        value = InputConvert(anchor_text, float)
    except ValueError as exc:
        logger.debug("Ignoring tangent anchor %r: %s", anchor_text, exc)
        return None
    return value if math.isfinite(value) else None
