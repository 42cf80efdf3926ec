"""Debouncing for high-frequency pointer events."""

from __future__ import annotations

from typing import Any, Callable, Optional, Tuple
import asyncio
import logging
import threading

__all__ = ["PointerDebouncer"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class PointerDebouncer:
    """Deliver the latest pointer position at most once per tick.

    Hover events arrive far faster than a full re-render can run. Each call
    overwrites the pending ``(sx, sy)`` position; the first call after an idle
    period arms a timer, and when it fires the callback receives whatever
    position is pending at that moment. Intermediate positions are dropped.

    Parameters
    ----------
    callback:
        Called as ``callback(sx, sy)`` with surface pixel coordinates.
    execute_every_ms:
        Minimum delay between a position arriving and its delivery.

    Notes
    -----
    Ticks are scheduled on the running asyncio loop when there is one (the
    Jupyter kernel case) and on a daemon :class:`threading.Timer` otherwise.
    Exceptions raised by the callback are logged and do not stop later ticks.
    """

    def __init__(
        self,
        callback: Callable[[float, float], Any],
        *,
        execute_every_ms: int,
    ) -> None:
        if execute_every_ms <= 0:
            raise ValueError("execute_every_ms must be > 0")
        self._callback = callback
        self._execute_every_s = execute_every_ms / 1000.0

        self._latest: Optional[Tuple[float, float]] = None
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None

    def __call__(self, sx: float, sy: float) -> None:
        with self._lock:
            self._latest = (float(sx), float(sy))
            if self._timer is None:
                self._arm_timer_locked()

    @property
    def has_pending(self) -> bool:
        """True while a position is waiting for the next tick."""
        with self._lock:
            return self._latest is not None

    def cancel(self) -> None:
        """Drop the pending position and stop the armed tick, if any."""
        with self._lock:
            self._latest = None
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _arm_timer_locked(self) -> None:
        delay_s = self._execute_every_s
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            timer = threading.Timer(delay_s, self._on_tick)
            timer.daemon = True
            self._timer = timer
            timer.start()
            return

        self._timer = loop.call_later(delay_s, self._on_tick)

    def _on_tick(self) -> None:
        with self._lock:
            self._timer = None
            position, self._latest = self._latest, None
        if position is None:
            return

        try:
            self._callback(*position)
        except Exception:
            logger.exception("PointerDebouncer callback failed at %r", position)
