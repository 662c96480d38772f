"""
Test exponential backoff used by audit delivery retries.
"""

import pytest

from qr_token_core.utils.retry_utils import calculate_exponential_backoff


class TestExponentialBackoff:
    """Test the exponential backoff calculation function."""

    def test_basic_progression(self):
        """Without jitter the delay doubles each retry."""
        for retry_count in range(8):
            delay = calculate_exponential_backoff(
                retry_count=retry_count, base_delay=1, max_delay=300, jitter=False
            )
            assert delay == min(2**retry_count, 300), f"Retry {retry_count}"

    def test_max_delay_cap(self):
        for retry_count in range(10):
            delay = calculate_exponential_backoff(
                retry_count=retry_count, base_delay=10, max_delay=60, jitter=False
            )
            assert delay <= 60

    def test_custom_multiplier(self):
        assert calculate_exponential_backoff(2, base_delay=1, multiplier=3.0, jitter=False) == 9

    @pytest.mark.parametrize("retry_count", range(6))
    def test_jitter_stays_within_bounds(self, retry_count):
        base = min(0.05 * 2**retry_count, 30.0)
        for _ in range(20):
            delay = calculate_exponential_backoff(retry_count, base_delay=0.05)
            assert max(base * 0.75, 0.05) <= delay <= base * 1.25

    def test_negative_retry_count_returns_base(self):
        assert calculate_exponential_backoff(-1, base_delay=0.5) == 0.5

    def test_never_below_base_delay(self):
        for _ in range(50):
            assert calculate_exponential_backoff(0, base_delay=2.0) >= 2.0
