"""
common/ticker.py – Logical clock for cache invalidation
========================================================

An ``EventTicker`` records when an object was last modified, expressed as a
value of a process-wide counter. Comparing two tickers tells which object
changed later, without timestamps or content hashing.

Every ``click()`` advances the shared global tick and copies it into the
instance, so ticks of all objects in the process are totally ordered and
never collide.
"""

from __future__ import annotations

import threading
from typing import Tuple

# minor counter carries into the major one at this value
MINOR_TICK_LIMIT = 2 ** 64

_global_tick: Tuple[int, int] = (0, 0)
_global_lock = threading.Lock()


def _advance_global_tick() -> Tuple[int, int]:
    global _global_tick
    with _global_lock:
        major, minor = _global_tick
        minor += 1
        if minor >= MINOR_TICK_LIMIT:
            major += 1
            minor = 0
        _global_tick = (major, minor)
        return _global_tick


class EventTicker:
    """Modification time of a cacheable object."""

    __slots__ = ("_tick",)

    def __init__(self) -> None:
        self._tick: Tuple[int, int] = (0, 0)

    @property
    def tick(self) -> Tuple[int, int]:
        return self._tick

    def click(self) -> None:
        """Advance the global tick and stamp this ticker with it."""
        self._tick = _advance_global_tick()

    def update_from(self, other: "EventTicker") -> None:
        """Take the newer of this and the ``other`` ticker."""
        if other._tick > self._tick:
            self._tick = other._tick

    def copy(self) -> "EventTicker":
        rv = EventTicker()
        rv._tick = self._tick
        return rv

    def __lt__(self, other: "EventTicker") -> bool:
        return self._tick < other._tick

    def __le__(self, other: "EventTicker") -> bool:
        return self._tick <= other._tick

    def __gt__(self, other: "EventTicker") -> bool:
        return self._tick > other._tick

    def __ge__(self, other: "EventTicker") -> bool:
        return self._tick >= other._tick

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EventTicker):
            return NotImplemented
        return self._tick == other._tick

    def __repr__(self) -> str:
        return f"EventTicker{self._tick}"

