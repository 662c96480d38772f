"""
Audit trail model for QR token operations.

Rows are append-only; no code path updates or deletes them.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from .db_base import JSON, UUIDMixin, utc_now
from .db_config import Base


class AuditLog(Base, UUIDMixin):
    """One issuance, redemption, revocation or housekeeping event."""

    __tablename__ = "qr_audit_log"

    action = Column(String(50), nullable=False, index=True)
    outcome = Column(String(30), nullable=False)
    is_success = Column(Boolean, nullable=False)

    actor_user_id = Column(String(100), nullable=True, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(100), nullable=True)
    token_id = Column(String(36), nullable=True)
    token_hash = Column(String(64), nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    description = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    context = Column(JSON, nullable=True)
    correlation_id = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    __table_args__ = (Index("ix_qr_audit_log_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return f"<AuditLog(action='{self.action}', outcome='{self.outcome}')>"
