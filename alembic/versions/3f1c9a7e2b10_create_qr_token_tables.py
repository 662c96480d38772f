"""create_qr_token_tables

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-17 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7e2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'qr_tokens',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(100), nullable=False),
        sa.Column('issued_by_user_id', sa.String(100), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_by_user_id', sa.String(100), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_by_user_id', sa.String(100), nullable=True),
        sa.Column('revocation_reason', sa.String(500), nullable=True),
        sa.Column('validation_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_validation_attempt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issued_from_ip', sa.String(45), nullable=True),
        sa.Column('issued_from_device', sa.String(500), nullable=True),
        sa.Column('used_from_ip', sa.String(45), nullable=True),
        sa.Column('used_from_device', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('token_hash', name='uq_qr_tokens_token_hash'),
        sa.CheckConstraint(
            "status IN ('active', 'used', 'expired', 'revoked')", name='ck_qr_tokens_status'
        ),
        sa.CheckConstraint(
            "(status = 'used') = (used_at IS NOT NULL)", name='ck_qr_tokens_used_at'
        ),
        sa.CheckConstraint(
            "(status = 'revoked') = (revoked_at IS NOT NULL)", name='ck_qr_tokens_revoked_at'
        ),
    )
    op.create_index('ix_qr_tokens_entity', 'qr_tokens', ['entity_type', 'entity_id'])
    op.create_index('ix_qr_tokens_expires_at', 'qr_tokens', ['expires_at'])
    op.create_index('ix_qr_tokens_issued_by_user_id', 'qr_tokens', ['issued_by_user_id'])

    op.create_table(
        'qr_audit_log',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('outcome', sa.String(30), nullable=False),
        sa.Column('is_success', sa.Boolean(), nullable=False),
        sa.Column('actor_user_id', sa.String(100), nullable=True),
        sa.Column('entity_type', sa.String(50), nullable=True),
        sa.Column('entity_id', sa.String(100), nullable=True),
        sa.Column('token_id', sa.String(36), nullable=True),
        sa.Column('token_hash', sa.String(64), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column(
            'context', sa.Text().with_variant(postgresql.JSONB(), 'postgresql'), nullable=True
        ),
        sa.Column('correlation_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_qr_audit_log_action', 'qr_audit_log', ['action'])
    op.create_index('ix_qr_audit_log_actor_user_id', 'qr_audit_log', ['actor_user_id'])
    op.create_index('ix_qr_audit_log_created_at', 'qr_audit_log', ['created_at'])
    op.create_index('ix_qr_audit_log_entity', 'qr_audit_log', ['entity_type', 'entity_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('qr_audit_log')
    op.drop_table('qr_tokens')
