"""Pydantic schemas for the QR token core."""

from .audit_schemas import AuditEntry, AuditLogRead
from .token_schemas import (
    IssuedToken,
    RedeemResult,
    RedemptionResult,
    RevocationResult,
    RevokeResult,
    TokenPayload,
    TokenRead,
    TokenStatusResult,
)

__all__ = [
    "AuditEntry",
    "AuditLogRead",
    "IssuedToken",
    "RedeemResult",
    "RedemptionResult",
    "RevocationResult",
    "RevokeResult",
    "TokenPayload",
    "TokenRead",
    "TokenStatusResult",
]
