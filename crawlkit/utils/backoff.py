"""
Retry and pacing delay calculation.

Shared by:
- run_windowed (crawlkit/crawler/batch.py) for per-attempt retry delays
- run_windowed for the randomised pause between windows
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryDelayConfig:
    """Linear retry delay with small additive jitter.

    delay(attempt) = base_delay * attempt + uniform(0, jitter_max)

    Example:
        >>> config = RetryDelayConfig(base_delay=2.0)
    """

    base_delay: float = 1.0
    jitter_max: float = 0.1

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.jitter_max < 0:
            raise ValueError("jitter_max must be non-negative")


def calculate_retry_delay(
    attempt: int,
    config: RetryDelayConfig | None = None,
    *,
    add_jitter: bool = True,
) -> float:
    """Calculate the pause before retry number ``attempt``.

    Args:
        attempt: Attempt that just failed (1-indexed).
        config: Delay configuration (default: RetryDelayConfig()).
        add_jitter: Whether to add uniform jitter.

    Returns:
        Delay in seconds.

    Example:
        >>> calculate_retry_delay(1, add_jitter=False)
        1.0
        >>> calculate_retry_delay(3, add_jitter=False)
        3.0
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")

    if config is None:
        config = RetryDelayConfig()

    delay = config.base_delay * attempt
    if add_jitter and config.jitter_max > 0:
        delay += random.uniform(0, config.jitter_max)
    return delay


def calculate_window_delay(min_seconds: float, max_seconds: float) -> float:
    """Random pause between two consecutive batch windows.

    Args:
        min_seconds: Lower bound (inclusive).
        max_seconds: Upper bound (inclusive).

    Returns:
        Delay in seconds within [min_seconds, max_seconds].
    """
    if min_seconds < 0 or max_seconds < min_seconds:
        raise ValueError("require 0 <= min_seconds <= max_seconds")
    return random.uniform(min_seconds, max_seconds)
