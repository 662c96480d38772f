"""
Append-only store for the QR token audit trail.

The trail has no update or delete method.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_audit_models import AuditLog
from ..schemas.audit_schemas import AuditEntry, AuditLogRead
from .base_repository import BaseRepository


class AuditRepository(BaseRepository[AuditLog]):
    def __init__(self, session: Session):
        super().__init__(session, AuditLog)

    def create(self, entry: AuditEntry) -> AuditLogRead:
        with self._session_operation("create", action=entry.action):
            record = AuditLog(**entry.model_dump())
            self.session.add(record)
        return AuditLogRead.model_validate(record)

    def list_by_actor(
        self, actor_user_id: str, limit: int = 100, offset: int = 0
    ) -> List[AuditLogRead]:
        return self._list(AuditLog.actor_user_id == actor_user_id, limit=limit, offset=offset)

    def list_by_action(
        self, action: str, limit: int = 100, offset: int = 0
    ) -> List[AuditLogRead]:
        return self._list(AuditLog.action == action, limit=limit, offset=offset)

    def list_by_token(
        self, token_id: str, limit: int = 100, offset: int = 0
    ) -> List[AuditLogRead]:
        return self._list(AuditLog.token_id == token_id, limit=limit, offset=offset)

    def list_in_range(
        self, start: datetime, end: datetime, limit: int = 100, offset: int = 0
    ) -> List[AuditLogRead]:
        return self._list(
            AuditLog.created_at >= start, AuditLog.created_at <= end, limit=limit, offset=offset
        )

    def list_failed(
        self, since: Optional[datetime] = None, limit: int = 100, offset: int = 0
    ) -> List[AuditLogRead]:
        criteria = [AuditLog.is_success.is_(False)]
        if since is not None:
            criteria.append(AuditLog.created_at >= since)
        return self._list(*criteria, limit=limit, offset=offset)

    def _list(self, *criteria, limit: int, offset: int) -> List[AuditLogRead]:
        with self._session_operation("list", is_read_only=True):
            query = self._apply_ordering(select(AuditLog).where(*criteria))
            query = self._apply_pagination(query, limit, offset)
            records = self.session.execute(query).scalars().all()
        return [AuditLogRead.model_validate(record) for record in records]
