"""
Retry/backoff policy shared by the runtime and the settings loader.

A RetryPolicy bounds how long the runtime keeps trying an unreliable collaborator:
at most ``max_attempts`` tries (hard-capped at 10), each limited by ``attempt_timeout_s``,
with an exponential delay between tries that doubles per attempt and never exceeds
``max_delay_s``.

Examples:
    >>> p = RetryPolicy(max_attempts=5, base_delay_s=0.5, max_delay_s=3.0)
    >>> [p.delay_for(a) for a in range(1, 6)]
    [0.5, 1.0, 2.0, 3.0, 3.0]
"""

from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    DEFAULT_ATTEMPT_TIMEOUT_S,
    DEFAULT_BASE_DELAY_S,
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_MAX_DELAY_S,
    DEFAULT_PROGRESS_ATTEMPTS,
    DEFAULT_PROGRESS_BASE_DELAY_S,
    DEFAULT_PROGRESS_MAX_DELAY_S,
    DEFAULT_WRITE_TIMEOUT_S,
    MAX_FETCH_ATTEMPTS_CAP,
)

__all__ = ["RetryPolicy", "clamp_attempts"]


def clamp_attempts(n: int) -> int:
    """Clamp an attempt budget into ``[1, MAX_FETCH_ATTEMPTS_CAP]``."""
    return max(1, min(int(n), MAX_FETCH_ATTEMPTS_CAP))


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt budget, per-attempt timeout and backoff schedule.

    Attributes:
        max_attempts (int): Total tries including the first (clamped to 1..10).
        base_delay_s (float): Delay after the first failed attempt.
        max_delay_s (float): Cap on any single delay.
        attempt_timeout_s (float): Upper bound on a single attempt.
    """

    max_attempts: int = DEFAULT_FETCH_ATTEMPTS
    base_delay_s: float = DEFAULT_BASE_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S
    attempt_timeout_s: float = DEFAULT_ATTEMPT_TIMEOUT_S

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_attempts", clamp_attempts(self.max_attempts))
        object.__setattr__(self, "base_delay_s", max(0.0, float(self.base_delay_s)))
        object.__setattr__(
            self, "max_delay_s", max(float(self.base_delay_s), float(self.max_delay_s))
        )
        object.__setattr__(self, "attempt_timeout_s", max(0.001, float(self.attempt_timeout_s)))

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after failed attempt number ``attempt`` (1-based).

        Returns:
            float: ``min(base_delay_s * 2 ** (attempt - 1), max_delay_s)``.
        """
        if attempt < 1:
            return 0.0
        return min(self.base_delay_s * (2 ** (attempt - 1)), self.max_delay_s)

    @classmethod
    def for_progress_writes(cls) -> RetryPolicy:
        """Defaults for background progress-write retries."""
        return cls(
            max_attempts=DEFAULT_PROGRESS_ATTEMPTS,
            base_delay_s=DEFAULT_PROGRESS_BASE_DELAY_S,
            max_delay_s=DEFAULT_PROGRESS_MAX_DELAY_S,
            attempt_timeout_s=DEFAULT_WRITE_TIMEOUT_S,
        )
