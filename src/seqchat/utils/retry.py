"""Exponential backoff helpers shared by the dispatch layer."""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Delay before the first retry in seconds (default: 1.0)
        max_delay: Maximum delay between individual retries in seconds (default: 30.0)
        backoff_factor: Exponential backoff multiplier (default: 2.0)
        jitter: Add up to 25% random jitter to retry delays (default: False)
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = False

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")


def calculate_delay(retry_count: int, config: RetryConfig) -> float:
    """
    Calculate the delay before retry number ``retry_count``.

    ``delay = min(initial_delay * backoff_factor ** retry_count, max_delay)``,
    so with the defaults the schedule is 1s, 2s, 4s, ... capped at 30s.

    Args:
        retry_count: Retries already performed (0 for the first retry)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    if retry_count < 0:
        retry_count = 0

    delay = config.initial_delay * (config.backoff_factor**retry_count)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.25 * random.random()  # nosec B311 - jitter, not crypto
        delay = min(delay + jitter_amount, config.max_delay)

    return delay
