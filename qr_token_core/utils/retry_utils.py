"""
Retry delay calculation shared by anything that retries a transient failure.
"""

import random


def calculate_exponential_backoff(
    retry_count: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    multiplier: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        retry_count: Current retry attempt (0-based)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        multiplier: Exponential multiplier (default: 2.0)
        jitter: Whether to add ±25% randomization to spread out retries

    Returns:
        Delay in seconds before the next retry, never below ``base_delay``

    Example:
        retry_count=0: ~base_delay
        retry_count=1: ~2 * base_delay
        retry_count=2: ~4 * base_delay
    """
    if retry_count < 0:
        return base_delay

    delay = min(base_delay * (multiplier**retry_count), max_delay)

    if jitter:
        jitter_range = delay * 0.25
        delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(delay, base_delay)
