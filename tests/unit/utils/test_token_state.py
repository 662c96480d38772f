"""Test lazy expiry of token records."""

from datetime import UTC, datetime, timedelta

import pytest

from qr_token_core.enums import TokenStatus
from qr_token_core.utils.token_state import effective_status, is_past_expiry

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


class TestIsPastExpiry:
    def test_before_expiry(self):
        assert is_past_expiry(NOW + timedelta(seconds=1), NOW) is False

    def test_boundary_is_still_valid(self):
        """A token is still redeemable at exactly its expires_at."""
        assert is_past_expiry(NOW, NOW) is False

    def test_just_past_boundary_is_expired(self):
        assert is_past_expiry(NOW - timedelta(microseconds=1), NOW) is True

    def test_after_expiry(self):
        assert is_past_expiry(NOW - timedelta(minutes=1), NOW) is True

    def test_naive_datetimes_are_treated_as_utc(self):
        naive_expiry = (NOW + timedelta(minutes=1)).replace(tzinfo=None)

        assert is_past_expiry(naive_expiry, NOW) is False


class TestEffectiveStatus:
    def test_active_within_window(self):
        assert effective_status("active", NOW + timedelta(minutes=5), NOW) is TokenStatus.ACTIVE

    def test_active_at_boundary_stays_active(self):
        assert effective_status("active", NOW, NOW) is TokenStatus.ACTIVE

    def test_active_past_window_reports_expired(self):
        assert effective_status("active", NOW - timedelta(seconds=1), NOW) is TokenStatus.EXPIRED

    @pytest.mark.parametrize("stored", [TokenStatus.USED, TokenStatus.REVOKED])
    def test_terminal_status_wins_over_expiry(self, stored):
        assert effective_status(stored, NOW - timedelta(days=1), NOW) is stored

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            effective_status("pending", NOW, NOW)
