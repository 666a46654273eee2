"""
Module: delivery/retry.py
Description: Backoff policy for retrying failed deliveries.

Implements exponential backoff with symmetric jitter. The policy is a
tenacity wait strategy, so the same object schedules engine retry sweeps
and can drive tenacity-based retry loops.
"""

import random
from typing import Optional

from tenacity import RetryCallState
from tenacity.wait import wait_base

# Past this exponent base * 2**n exceeds any sane cap
_MAX_EXPONENT = 62


class ExponentialJitterBackoff(wait_base):
    """
    Exponential backoff capped at a maximum, with +/- jitter.

    delay(n) = min(base * 2**n, maximum) +/- jitter * that capped value,
    clamped to [0, maximum]. Drawn afresh on every call.

    Example:
        >>> backoff = ExponentialJitterBackoff(base=60, maximum=3600)
        >>> 45 <= backoff.delay(0) <= 75
        True
    """

    def __init__(
        self,
        base: float = 60.0,
        maximum: float = 3600.0,
        jitter: float = 0.25,
        rng: Optional[random.Random] = None
    ):
        if base < 0 or maximum < 0:
            raise ValueError("base and maximum must be non-negative")
        if not 0 <= jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

        self.base = base
        self.maximum = maximum
        self.jitter = jitter
        self._random = rng or random.Random()

    def delay(self, attempt: int) -> float:
        """
        Compute the delay before the given retry attempt.

        Args:
            attempt: Zero-based retry attempt; negative values count as 0

        Returns:
            Delay in seconds, between 0 and maximum
        """
        exponent = min(max(attempt, 0), _MAX_EXPONENT)
        capped = min(self.base * (2 ** exponent), self.maximum)

        spread = capped * self.jitter
        jittered = capped + self._random.uniform(-spread, spread)
        return min(max(0.0, jittered), self.maximum)

    def __call__(self, retry_state: RetryCallState) -> float:
        # tenacity numbers attempts from 1
        return self.delay(retry_state.attempt_number - 1)


def exponential_backoff_delay(
    attempt: int,
    base_delay: float = 60.0,
    max_delay: float = 3600.0
) -> float:
    """Shorthand for a one-off ExponentialJitterBackoff(base_delay, max_delay).delay(attempt)."""
    return ExponentialJitterBackoff(base=base_delay, maximum=max_delay).delay(attempt)
