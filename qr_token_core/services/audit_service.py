"""
Audit sink for QR token operations.

Delivery is at-least-once: transient store failures are retried with
exponential backoff, and an entry that still cannot be stored is written to
the error log in full instead of being dropped. Audit failures never reach
the caller of the audited operation.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..constants import AuditAction, Limits
from ..db.db_config import DatabaseManager
from ..exceptions import ErrorCode, RepositoryError, get_correlation_id, validation_failed
from ..repositories.audit_repository import AuditRepository
from ..schemas.audit_schemas import AuditEntry, AuditLogRead
from ..utils.retry_utils import calculate_exponential_backoff
from .base_service import SessionManagedService

TRANSIENT_ERROR_CODES = {
    ErrorCode.DATABASE_ERROR,
    ErrorCode.CONNECTION_ERROR,
    ErrorCode.TIMEOUT_ERROR,
}


def _is_transient(error: Exception) -> bool:
    if isinstance(error, RepositoryError):
        return error.error_code in TRANSIENT_ERROR_CODES
    # Commit-time failures (lock timeouts, dropped connections)
    return True


class AuditService(SessionManagedService):
    """Writes and queries the append-only audit trail."""

    def __init__(
        self,
        session: Optional[Session] = None,
        db_manager: Optional[DatabaseManager] = None,
        config: Optional[AppConfig] = None,
        async_dispatch: Optional[bool] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Args:
            session: Optional injected session (caller owns the transaction)
            db_manager: Manager to open owned sessions from
            config: Application config (default: global config)
            async_dispatch: Write entries on a background executor
                (default: config.features.enable_async_audit)
            executor: Executor for background writes (created on demand)
        """
        super().__init__(session=session, db_manager=db_manager)
        self.config = config or get_config()
        self.repository = AuditRepository(self.session)
        self.max_retries = self.config.security.audit_max_retries
        self.backoff_base = self.config.security.audit_retry_backoff_base

        if async_dispatch is None:
            async_dispatch = self.config.features.enable_async_audit
        if async_dispatch and self._db_manager is None:
            # Background writes need their own sessions
            self.logger.warning(
                "Async audit disabled: no database manager to open worker sessions from"
            )
            async_dispatch = False
        self.async_dispatch = async_dispatch
        self._executor = executor
        self._owns_executor = executor is None
        self._pending: List[Future] = []

    # ==================== WRITE ====================

    def record(self, entry: AuditEntry) -> Optional[Future]:
        """
        Deliver an audit entry.

        Returns:
            The background future when dispatching asynchronously, else None
        """
        if entry.correlation_id is None:
            entry = entry.model_copy(update={"correlation_id": get_correlation_id()})

        if self.async_dispatch:
            future = self._get_executor().submit(self._deliver, entry)
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
            return future

        self._deliver(entry)
        return None

    def _deliver(self, entry: AuditEntry) -> bool:
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                self._persist(entry)
                return True
            except (RepositoryError, SQLAlchemyError) as e:
                last_error = e
                if not _is_transient(e) or attempt == self.max_retries - 1:
                    break
                delay = calculate_exponential_backoff(attempt, base_delay=self.backoff_base)
                self.logger.warning(
                    "Audit write failed, retrying",
                    extra={
                        "action": entry.action,
                        "attempt": attempt + 1,
                        "delay_s": round(delay, 3),
                    },
                )
                time.sleep(delay)

        self.logger.error(
            "Audit entry could not be persisted",
            extra={
                "action": entry.action,
                "audit_entry": entry.model_dump(mode="json"),
                "error_type": type(last_error).__name__ if last_error else None,
                "error_id": getattr(last_error, "error_id", None),
            },
        )
        return False

    def _persist(self, entry: AuditEntry) -> None:
        if self.async_dispatch:
            session = self._db_manager.new_session()
            try:
                AuditRepository(session).create(entry)
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            return

        with self.transaction():
            self.repository.create(entry)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="qr-audit")
        return self._executor

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until background writes submitted so far have finished."""
        pending, self._pending = self._pending, []
        for future in pending:
            future.result(timeout=timeout)

    def close(self):
        self.flush()
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=True)
            self._executor = None
        super().close()

    # ==================== QUERY ====================

    def get_actor_logs(
        self, actor_user_id: str, page: int = 1, page_size: int = Limits.DEFAULT_PAGE_SIZE
    ) -> List[AuditLogRead]:
        """Events performed by one user, newest first."""
        limit, offset = self._page(page, page_size)
        with self.transaction():
            return self.repository.list_by_actor(actor_user_id, limit=limit, offset=offset)

    def get_logs_by_action(
        self,
        action: AuditAction,
        page: int = 1,
        page_size: int = Limits.DEFAULT_PAGE_SIZE,
    ) -> List[AuditLogRead]:
        limit, offset = self._page(page, page_size)
        with self.transaction():
            return self.repository.list_by_action(
                AuditAction(action).value, limit=limit, offset=offset
            )

    def get_token_logs(self, token_id: str) -> List[AuditLogRead]:
        with self.transaction():
            return self.repository.list_by_token(token_id, limit=Limits.MAX_PAGE_SIZE)

    def get_logs_in_date_range(
        self,
        start: datetime,
        end: datetime,
        page: int = 1,
        page_size: int = Limits.DEFAULT_PAGE_SIZE,
    ) -> List[AuditLogRead]:
        """
        Events created between ``start`` and ``end`` inclusive, newest first.

        Raises:
            ValidationError: If ``end`` precedes ``start``
        """
        if end < start:
            raise validation_failed("end", end, "end must not precede start")
        limit, offset = self._page(page, page_size)
        with self.transaction():
            return self.repository.list_in_range(start, end, limit=limit, offset=offset)

    def get_failed_events(
        self,
        since: Optional[datetime] = None,
        page: int = 1,
        page_size: int = Limits.DEFAULT_PAGE_SIZE,
    ) -> List[AuditLogRead]:
        """Unsuccessful events (denials, rejected redemptions), newest first."""
        limit, offset = self._page(page, page_size)
        with self.transaction():
            return self.repository.list_failed(since, limit=limit, offset=offset)

    @staticmethod
    def _page(page: int, page_size: int):
        if page < 1:
            raise validation_failed("page", page, "page must be at least 1")
        if not 1 <= page_size <= Limits.MAX_PAGE_SIZE:
            raise validation_failed(
                "page_size", page_size, f"page_size must be between 1 and {Limits.MAX_PAGE_SIZE}"
            )
        return page_size, (page - 1) * page_size
