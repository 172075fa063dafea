"""
Countdown used by break stages and scenario rounds.

A Countdown holds whole seconds and only moves down; the driver (the UI's one-second
tick or a test) calls ``tick()``. Nothing here sleeps or owns a clock.

Examples:
    >>> c = Countdown(2)
    >>> c.tick()
    False
    >>> c.remaining
    1
    >>> c.tick(5)
    True
"""

from __future__ import annotations

from lablab.core.constants import TICK_SECONDS

__all__ = ["Countdown"]


class Countdown:
    """
    Monotonically decreasing seconds counter, floored at zero.

    Args:
        duration (int): Initial seconds; negative values are treated as 0.
    """

    def __init__(self, duration: int) -> None:
        self.duration = max(0, int(duration))
        self.remaining = self.duration

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    @property
    def elapsed(self) -> int:
        return self.duration - self.remaining

    def tick(self, seconds: int = TICK_SECONDS) -> bool:
        """
        Advance the countdown.

        Returns:
            bool: True if this tick made the countdown reach zero.
        """
        if self.expired or seconds <= 0:
            return False
        self.remaining = max(0, self.remaining - int(seconds))
        return self.expired

    def reset(self, duration: int | None = None) -> None:
        """Restart from ``duration`` (or the original duration)."""
        if duration is not None:
            self.duration = max(0, int(duration))
        self.remaining = self.duration

    def __repr__(self) -> str:
        return f"Countdown(remaining={self.remaining}, duration={self.duration})"
