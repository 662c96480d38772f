"""
QR token record model.

Just the data structure. State transitions live in the token repository,
which performs them as conditional updates.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String

from ..enums import TokenStatus
from .db_base import TimestampMixin, UUIDMixin
from .db_config import Base


class QRToken(Base, UUIDMixin, TimestampMixin):
    """Durable lifecycle record of one issued QR token, keyed by token hash."""

    __tablename__ = "qr_tokens"

    # Lookup key; the encoded token itself is never stored
    token_hash = Column(String(64), nullable=False, unique=True)

    # Binding
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(100), nullable=False)
    issued_by_user_id = Column(String(100), nullable=False, index=True)

    # Lifecycle
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=TokenStatus.ACTIVE.value)

    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by_user_id = Column(String(100), nullable=True)

    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by_user_id = Column(String(100), nullable=True)
    revocation_reason = Column(String(500), nullable=True)

    validation_attempts = Column(Integer, nullable=False, default=0)
    last_validation_attempt = Column(DateTime(timezone=True), nullable=True)

    # Advisory provenance
    issued_from_ip = Column(String(45), nullable=True)
    issued_from_device = Column(String(500), nullable=True)
    used_from_ip = Column(String(45), nullable=True)
    used_from_device = Column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_qr_tokens_entity", "entity_type", "entity_id"),
        CheckConstraint(
            "status IN ('active', 'used', 'expired', 'revoked')", name="ck_qr_tokens_status"
        ),
        CheckConstraint(
            "(status = 'used') = (used_at IS NOT NULL)", name="ck_qr_tokens_used_at"
        ),
        CheckConstraint(
            "(status = 'revoked') = (revoked_at IS NOT NULL)", name="ck_qr_tokens_revoked_at"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<QRToken(id='{self.id}', entity='{self.entity_type}:{self.entity_id}', "
            f"status='{self.status}')>"
        )
