"""Vertical display range estimation.

A compiled function is sampled on an evenly spaced grid; the finite outputs
give the unpadded extent, which is then padded for display. Non-finite
outputs are skipped, never zeroed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import numpy as np

from .grapher_config import RANGE_SAMPLE_CAP
from .numpify import CompiledFunction

__all__ = [
    "VerticalRange",
    "estimate_range",
    "finite_extent",
    "sample_grid",
    "sample_values",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class VerticalRange:
    y_min: float
    y_max: float

    @property
    def span(self) -> float:
        return self.y_max - self.y_min

    def as_tuple(self) -> Tuple[float, float]:
        return (self.y_min, self.y_max)


def sample_grid(domain: Tuple[float, float], count: int) -> np.ndarray:
    """``count`` (at least 2) evenly spaced x-values covering ``domain``."""
    x_min, x_max = domain
    return np.linspace(float(x_min), float(x_max), max(2, int(count)))


def sample_values(fn: Callable[[Any], Any], xs: np.ndarray) -> np.ndarray:
    """Evaluate ``fn`` on every grid point.

    Compiled functions are evaluated in one vectorized call; any other
    callable is treated as scalar-only and called point by point.
    """
    if isinstance(fn, CompiledFunction):
        return np.asarray(fn(xs), dtype=float)
    return np.array([fn(float(x)) for x in xs], dtype=float)


def finite_extent(
    fn: Callable[[Any], Any], domain: Tuple[float, float], count: int
) -> Optional[Tuple[float, float]]:
    """Min and max of the finite samples of ``fn``, or ``None`` if there are none."""
    with np.errstate(invalid="ignore"):
        ys = sample_values(fn, sample_grid(domain, count))
    finite = ys[np.isfinite(ys)]
    if finite.size == 0:
        return None
    return float(finite.min()), float(finite.max())


def estimate_range(
    fn: Callable[[Any], Any],
    domain: Tuple[float, float],
    sample_count_cap: int,
) -> VerticalRange:
    """Padded vertical range of ``fn`` over ``domain``.

    Parameters
    ----------
    fn : callable
        Function to sample, usually a :class:`~slope_toolkit.numpify.CompiledFunction`.
    domain : tuple of float
        ``(x_min, x_max)``.
    sample_count_cap : int
        Display sample count; range estimation uses at most
        :data:`~slope_toolkit.grapher_config.RANGE_SAMPLE_CAP` of it.

    Returns
    -------
    VerticalRange
        ``[-1, 1]`` when no sample is finite, ``[v - 1, v + 1]`` for a
        constant ``v``, otherwise the extent padded by ``0.1 * span + 1e-9``
        on both ends.
    """
    count = min(int(sample_count_cap), RANGE_SAMPLE_CAP)
    extent = finite_extent(fn, domain, count)
    if extent is None:
        logger.debug("estimate_range: no finite samples over %s", domain)
        return VerticalRange(-1.0, 1.0)
    y_min, y_max = extent
    if y_min == y_max:
        return VerticalRange(y_min - 1.0, y_max + 1.0)
    pad = (y_max - y_min) * 0.1 + 1e-9
    return VerticalRange(y_min - pad, y_max + pad)
