"""
Base service with session and transaction management.

Each service owns its own database session unless one is injected. An
injected session belongs to the caller, who commits or rolls it back.
"""

from contextlib import contextmanager
from typing import Optional

from sqlalchemy.orm import Session

from ..db.db_config import DatabaseManager, get_db_manager
from ..utils.logger import get_logger


class SessionManagedService:
    """
    Service that owns and manages its own database session.
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        db_manager: Optional[DatabaseManager] = None,
    ):
        """
        Initialize service with its own session.

        Args:
            session: Optional existing session (for testing or coordination)
            db_manager: Database manager to open an owned session from
                (default: the global manager from initialize_db)
        """
        self.logger = get_logger()
        if session is not None:
            self.session = session
            self._db_manager = db_manager
            self._owns_session = False
        else:
            self._db_manager = db_manager or get_db_manager()
            self.session = self._db_manager.new_session()
            self._owns_session = True

    @contextmanager
    def transaction(self):
        """
        Context manager for transactional operations.

        Usage:
            with service.transaction():
                service.repository.create(...)
                # Auto-commits on success, rollback on exception
        """
        try:
            yield self.session
            if self._owns_session:
                self.session.commit()
        except Exception:
            if self._owns_session:
                self.session.rollback()
            raise

    def commit(self):
        """Manually commit the current transaction."""
        if self._owns_session:
            self.session.commit()

    def rollback(self):
        """Manually rollback the current transaction."""
        if self._owns_session:
            self.session.rollback()

    def close(self):
        """Close the session if we own it."""
        if self._owns_session and self.session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Auto-close session on exit."""
        if exc_type:
            self.rollback()
        else:
            self.commit()
        self.close()
