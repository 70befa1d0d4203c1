"""
Clock sources for cooldown comparisons.

Cooldowns only need a monotonically non-decreasing clock. The wall
clock is not used so that a system clock adjustment can neither lock
providers out nor let them bypass a cooldown.
"""

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Supplies `now` in seconds."""

    @abstractmethod
    def now(self) -> float:
        pass


class MonotonicClock(Clock):
    """Process-local monotonic clock."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock(Clock):
    """
    Clock advanced explicitly, for simulations and tests.

    Refuses to move backwards.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, value: float) -> float:
        with self._lock:
            if value < self._now:
                raise ValueError("clock cannot move backwards")
            self._now = float(value)
            return self._now
