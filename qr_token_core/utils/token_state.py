"""
Lazy expiry for QR token records.

``expired`` is never written by the redemption path. It is derived whenever
a record is read, so a token stored as ``active`` past its ``expires_at``
reports as expired everywhere.
"""

from datetime import datetime
from typing import Optional, Union

from ..db.db_base import ensure_utc, utc_now
from ..enums import TokenStatus


def is_past_expiry(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """True once ``now`` is strictly after ``expires_at``; the boundary instant is still valid."""
    now = ensure_utc(now) if now is not None else utc_now()
    return now > ensure_utc(expires_at)


def effective_status(
    status: Union[TokenStatus, str], expires_at: datetime, now: Optional[datetime] = None
) -> TokenStatus:
    """
    Project the stored status onto the caller-visible status.

    Stored terminal statuses (used, revoked) take precedence over expiry, so
    a token revoked before its window closed keeps reporting ``revoked``.

    Args:
        status: Status column as stored
        expires_at: End of the validity window
        now: Evaluation time (default: current UTC time)

    Returns:
        The effective TokenStatus
    """
    status = TokenStatus(status)
    if status is TokenStatus.ACTIVE and is_past_expiry(expires_at, now):
        return TokenStatus.EXPIRED
    return status
