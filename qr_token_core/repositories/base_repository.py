"""
Base repository implementation with common functionality for all repositories.

Repositories receive a session and never commit or roll back; transaction
boundaries belong to the service layer.
"""

from contextlib import contextmanager
from typing import Any, Generic, NoReturn, Optional, Type, TypeVar

from sqlalchemy import asc, desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import ErrorCode, RepositoryError, duplicate
from ..utils.logger import get_logger

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Base repository with common functionality for all repositories."""

    def __init__(self, session: Session, entity_class: Type[T]):
        """
        Initialize the base repository.

        Args:
            session: SQLAlchemy session for database operations
            entity_class: SQLAlchemy model class this repository handles
        """
        self.session = session
        self.entity_class = entity_class
        self.logger = get_logger()
        self.entity_name = entity_class.__name__

    def _handle_db_error(
        self,
        e: Exception,
        operation_name: str,
        entity_id: Optional[str] = None,
        **context: Any,
    ) -> NoReturn:
        """
        Map database errors onto RepositoryError with a useful error code.

        Args:
            e: The original exception
            operation_name: Name of the operation that failed
            entity_id: Optional entity ID involved in the operation
            **context: Additional context for the error

        Raises:
            RepositoryError: With appropriate error code and context
        """
        # Already mapped; preserve the error code
        if isinstance(e, RepositoryError):
            raise e

        error_context = {
            "operation_name": operation_name,
            "resource": self.entity_name,
            **context,
        }
        if entity_id:
            error_context["record_id"] = entity_id

        if isinstance(e, IntegrityError):
            error_message = str(e.orig).lower() if hasattr(e, "orig") else str(e).lower()

            if "unique constraint" in error_message or "duplicate" in error_message:
                self.logger.warning(
                    f"Duplicate {self.entity_name} in {operation_name}",
                    extra=error_context,
                )
                raise duplicate(resource_type=self.entity_name, cause=e, **error_context)

            self.logger.error(
                f"Integrity constraint violation in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise RepositoryError(
                f"Database constraint violation for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.CONSTRAINT_VIOLATION,
                cause=e,
                **error_context,
            )

        elif isinstance(e, SQLAlchemyError):
            self.logger.error(
                f"Database error in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise RepositoryError(
                f"Database error for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                **error_context,
            )

        else:
            self.logger.error(
                f"Unexpected error in {operation_name}: {str(e)}",
                extra=error_context,
            )
            raise RepositoryError(
                f"Unexpected error for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.INTERNAL_ERROR,
                cause=e,
                **error_context,
            )

    @contextmanager
    def _session_operation(
        self,
        operation_name: str,
        entity_id: Optional[str] = None,
        is_read_only: bool = False,
        **context: Any,
    ):
        """
        Context manager for operations on the injected session with error handling.

        Args:
            operation_name: Name of the operation for error reporting
            entity_id: Optional ID of the record being operated on
            is_read_only: If True, skip the flush
            **context: Extra fields attached to a mapped error

        Yields:
            The existing session

        Raises:
            RepositoryError: If there's a database error
        """
        try:
            yield self.session
            # Flush writes so constraint violations surface here, not at commit
            if not is_read_only:
                self.session.flush()
        except Exception as e:
            self._handle_db_error(e, operation_name, entity_id, **context)

    def _get_by_id(self, entity_id: str) -> Optional[T]:
        query = select(self.entity_class).where(self.entity_class.id == entity_id)
        return self.session.execute(
            query.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _apply_pagination(query, limit: int = 100, offset: int = 0):
        return query.offset(offset).limit(limit)

    def _apply_ordering(self, query, sort_by: Optional[str] = None, sort_direction: str = "desc"):
        """
        Apply ordering to a query.

        Args:
            query: SQLAlchemy query object
            sort_by: Field to sort by (default: created_at)
            sort_direction: Sort direction ('asc' or 'desc')

        Returns:
            Query with ordering applied
        """
        sort_field = getattr(self.entity_class, sort_by or "created_at")

        if sort_direction.lower() == "asc":
            return query.order_by(asc(sort_field))
        return query.order_by(desc(sort_field))
