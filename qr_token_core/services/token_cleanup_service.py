"""
Housekeeping for expired QR token records.

Runs out-of-band (a scheduled job), never on the verification path.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..constants import AuditAction
from ..db.db_base import utc_now
from ..db.db_config import DatabaseManager
from ..exceptions import validation_failed
from ..repositories.token_repository import TokenRepository
from ..schemas.audit_schemas import AuditEntry
from .audit_service import AuditService
from .base_service import SessionManagedService


class TokenCleanupService(SessionManagedService):
    def __init__(
        self,
        session: Optional[Session] = None,
        db_manager: Optional[DatabaseManager] = None,
        audit_service: Optional[AuditService] = None,
        config: Optional[AppConfig] = None,
    ):
        super().__init__(session=session, db_manager=db_manager)
        self.config = config or get_config()
        self.repository = TokenRepository(self.session)
        self.audit = audit_service or AuditService(
            session=None if self._owns_session else self.session,
            db_manager=self._db_manager,
            config=self.config,
        )

    def cleanup_expired_tokens(self, days_old: Optional[int] = None) -> int:
        """
        Delete token records whose validity window ended more than ``days_old`` days ago.

        Args:
            days_old: Retention in days (default: config.security.qr_token_cleanup_days)

        Returns:
            Number of records deleted
        """
        if days_old is None:
            days_old = self.config.security.qr_token_cleanup_days
        if days_old < 1:
            raise validation_failed("days_old", days_old, "must be at least 1")

        cutoff = utc_now() - timedelta(days=days_old)
        with self.transaction():
            deleted = self.repository.delete_stale(cutoff)

        self.logger.info(
            f"Cleaned up {deleted} expired QR tokens",
            extra={"deleted_count": deleted, "days_old": days_old, "cutoff": cutoff.isoformat()},
        )
        self.audit.record(
            AuditEntry(
                action=AuditAction.TOKENS_CLEANED_UP,
                outcome="deleted",
                is_success=True,
                description=f"Deleted {deleted} QR tokens expired before {cutoff.isoformat()}",
                context={"deleted_count": deleted, "days_old": days_old},
            )
        )
        return deleted
