"""
Enums used across the qr_token_core package.

This module contains enum definitions that are used by multiple modules
to avoid circular import issues.
"""

import enum


class TokenStatus(str, enum.Enum):
    """Lifecycle states of an issued QR token."""

    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"
    REVOKED = "revoked"

    @property
    def is_terminal(self) -> bool:
        return self is not TokenStatus.ACTIVE


class RedemptionOutcome(str, enum.Enum):
    """Caller-visible result of a redemption attempt."""

    SUCCESS = "success"
    MALFORMED_TOKEN = "malformed_token"
    INVALID_SIGNATURE = "invalid_signature"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    REVOKED = "revoked"
    WRONG_ENTITY_TYPE = "wrong_entity_type"
    ERROR = "error"


class RevocationOutcome(str, enum.Enum):
    """Result of a revocation request."""

    REVOKED = "revoked"
    ALREADY_USED = "already_used"
    ALREADY_REVOKED = "already_revoked"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    MALFORMED_TOKEN = "malformed_token"
