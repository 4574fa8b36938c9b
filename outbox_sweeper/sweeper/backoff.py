from __future__ import annotations

import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from outbox_sweeper.core.settings import SweeperSettings


class BackoffPolicy:
    """Exponential delay after consecutive store failures.

    The n-th consecutive failure waits ``min(base * 2**(n-1), maximum)``
    seconds. With jitter the delay is scaled by a random factor in
    ``jitter_range`` and still capped at ``maximum``.
    """

    def __init__(
        self,
        base: float = 1.0,
        maximum: float = 60.0,
        *,
        exponential_base: float = 2.0,
        jitter: bool = True,
        jitter_range: tuple[float, float] = (0.5, 1.5),
    ) -> None:
        if base <= 0:
            msg = "Backoff base must be positive"
            raise ValueError(msg)
        if maximum < base:
            msg = "Backoff maximum must be greater than or equal to its base"
            raise ValueError(msg)
        self.base = base
        self.maximum = maximum
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range

    @classmethod
    def from_settings(cls, settings: SweeperSettings) -> BackoffPolicy:
        return cls(
            settings.backoff_base_seconds,
            settings.backoff_max_seconds,
            jitter=settings.backoff_jitter,
        )

    def delay(self, failures: int) -> float:
        """Delay before retrying after ``failures`` consecutive failures (>= 1)."""
        attempt = max(failures, 1) - 1
        # Cap the exponent so long outages cannot overflow the float
        delay = self.base * (self.exponential_base ** min(attempt, 64))
        delay = min(delay, self.maximum)
        if self.jitter:
            delay = min(delay * random.uniform(*self.jitter_range), self.maximum)
        return delay


__all__ = ["BackoffPolicy"]
