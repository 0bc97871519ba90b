"""Retry delays for workflow steps and requeued instances."""

import random


class RetryConfig:
    """Configuration for retry delays."""

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: float = 0.0,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


def exponential_backoff(attempt: int, config: RetryConfig) -> float:
    """Calculate exponential backoff delay.

    Args:
        attempt: The failed attempt number (1-based).
        config: Delay configuration.

    Returns:
        Delay in seconds, capped at ``config.max_delay``.
    """
    delay = config.base_delay * (config.exponential_base ** (max(attempt, 1) - 1))
    if config.jitter:
        # +/- jitter fraction before capping
        delay += random.uniform(-delay * config.jitter, delay * config.jitter)
    return max(0.0, min(delay, config.max_delay))


def countdown_for(attempt: int, config: RetryConfig) -> int:
    """Whole-second countdown for ``Task.retry``."""
    return max(1, round(exponential_backoff(attempt, config)))


# Predefined configs for common scenarios
STEP_RETRY = RetryConfig(
    base_delay=10.0,
    max_delay=300.0,  # Max 5 minutes
    exponential_base=2.0,
    jitter=0.25,
)

SLOT_REQUEUE = RetryConfig(
    base_delay=15.0,
    max_delay=60.0,
    exponential_base=1.5,
    jitter=0.5,
)
