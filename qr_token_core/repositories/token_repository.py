"""
Token store for QR token records.

Single-use and revocation are enforced with conditional UPDATE statements
(compare-and-set on ``status``), so exactly one of any number of concurrent
redeemers wins without an in-process lock. The repository flushes but never
commits; callers wrap each operation in one transaction.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..context.request_context import ClientContext
from ..db.db_base import utc_now
from ..db.db_token_models import QRToken
from ..enums import RedemptionOutcome, RevocationOutcome, TokenStatus
from ..schemas.token_schemas import RedeemResult, RevokeResult, TokenRead
from ..utils.hash_utils import hash_prefix
from ..utils.token_state import effective_status
from .base_repository import BaseRepository

_REDEEM_OUTCOMES = {
    TokenStatus.USED: RedemptionOutcome.ALREADY_USED,
    TokenStatus.REVOKED: RedemptionOutcome.REVOKED,
    TokenStatus.EXPIRED: RedemptionOutcome.EXPIRED,
}

_REVOKE_OUTCOMES = {
    TokenStatus.USED: RevocationOutcome.ALREADY_USED,
    TokenStatus.REVOKED: RevocationOutcome.ALREADY_REVOKED,
    TokenStatus.EXPIRED: RevocationOutcome.EXPIRED,
}


class TokenRepository(BaseRepository[QRToken]):
    """Durable record of every issued token's hash, binding and status."""

    def __init__(self, session: Session):
        super().__init__(session, QRToken)

    # ==================== CREATE / READ ====================

    def create(
        self,
        token_hash: str,
        entity_type: str,
        entity_id: str,
        issued_by_user_id: str,
        issued_at: datetime,
        expires_at: datetime,
        client_context: Optional[ClientContext] = None,
    ) -> TokenRead:
        """
        Persist a new ``active`` record.

        Raises:
            RepositoryError: ``ErrorCode.DUPLICATE`` if the hash already exists
        """
        client_context = client_context or ClientContext()
        with self._session_operation("create", token_hash_prefix=hash_prefix(token_hash)):
            record = QRToken(
                token_hash=token_hash,
                entity_type=entity_type,
                entity_id=entity_id,
                issued_by_user_id=issued_by_user_id,
                issued_at=issued_at,
                expires_at=expires_at,
                status=TokenStatus.ACTIVE.value,
                validation_attempts=0,
                issued_from_ip=client_context.ip_address,
                issued_from_device=client_context.user_agent,
            )
            self.session.add(record)

        return TokenRead.from_record(record, issued_at)

    def find_by_hash(self, token_hash: str) -> Optional[TokenRead]:
        with self._session_operation("find_by_hash", is_read_only=True):
            record = self._select_by_hash(token_hash)
        return TokenRead.from_record(record) if record else None

    def get_by_id(self, token_id: str) -> Optional[TokenRead]:
        with self._session_operation("get_by_id", token_id, is_read_only=True):
            record = self._get_by_id(token_id)
        return TokenRead.from_record(record) if record else None

    def list_for_entity(
        self, entity_type: str, entity_id: str, limit: int = 100, offset: int = 0
    ) -> List[TokenRead]:
        """All tokens ever issued for one record, newest first."""
        with self._session_operation("list_for_entity", is_read_only=True):
            query = select(QRToken).where(
                QRToken.entity_type == entity_type, QRToken.entity_id == entity_id
            )
            query = self._apply_ordering(query, "issued_at", "desc")
            query = self._apply_pagination(query, limit, offset)
            records = self.session.execute(query).scalars().all()
        now = utc_now()
        return [TokenRead.from_record(record, now) for record in records]

    def find_active_for_entity(
        self, entity_type: str, entity_id: str, now: Optional[datetime] = None
    ) -> Optional[TokenRead]:
        """Newest token for the record that is still active and inside its window."""
        now = now or utc_now()
        with self._session_operation("find_active_for_entity", is_read_only=True):
            query = (
                select(QRToken)
                .where(
                    QRToken.entity_type == entity_type,
                    QRToken.entity_id == entity_id,
                    QRToken.status == TokenStatus.ACTIVE.value,
                    QRToken.expires_at >= now,
                )
                .order_by(QRToken.issued_at.desc())
                .limit(1)
            )
            record = self.session.execute(query).scalars().first()
        return TokenRead.from_record(record, now) if record else None

    # ==================== STATE TRANSITIONS ====================

    def record_attempt(self, token_hash: str, now: Optional[datetime] = None) -> bool:
        """
        Count a redemption attempt against the record, if one exists.

        Returns:
            True if a record matched the hash
        """
        now = now or utc_now()
        with self._session_operation("record_attempt", token_hash_prefix=hash_prefix(token_hash)):
            matched = self._bump_attempts(token_hash, now)
        return matched > 0

    def try_redeem(
        self,
        token_hash: str,
        redeemer_user_id: str,
        client_context: Optional[ClientContext] = None,
        now: Optional[datetime] = None,
    ) -> RedeemResult:
        """
        Atomically move an active, unexpired record to ``used``.

        The attempt counter is bumped first, which also takes the row's write
        lock before the record is inspected. Expired records are reported
        without writing their status. The final transition is a single
        conditional UPDATE; a zero row count means another caller got there
        first and the record is re-read to classify the loss.
        """
        now = now or utc_now()
        client_context = client_context or ClientContext()

        with self._session_operation("try_redeem", token_hash_prefix=hash_prefix(token_hash)):
            if self._bump_attempts(token_hash, now) == 0:
                return RedeemResult(outcome=RedemptionOutcome.NOT_FOUND)

            record = self._select_by_hash(token_hash)
            status = effective_status(record.status, record.expires_at, now)
            if status is not TokenStatus.ACTIVE:
                return RedeemResult(
                    outcome=_REDEEM_OUTCOMES[status], token=TokenRead.from_record(record, now)
                )

            won = self.session.execute(
                update(QRToken)
                .where(
                    QRToken.token_hash == token_hash,
                    QRToken.status == TokenStatus.ACTIVE.value,
                    QRToken.expires_at >= now,
                )
                .values(
                    status=TokenStatus.USED.value,
                    used_at=now,
                    used_by_user_id=redeemer_user_id,
                    used_from_ip=client_context.ip_address,
                    used_from_device=client_context.user_agent,
                )
                .execution_options(synchronize_session=False)
            ).rowcount

            record = self._select_by_hash(token_hash)
            token = TokenRead.from_record(record, now)
            if won == 1:
                return RedeemResult(outcome=RedemptionOutcome.SUCCESS, token=token)
            return RedeemResult(
                outcome=_REDEEM_OUTCOMES.get(token.status, RedemptionOutcome.EXPIRED), token=token
            )

    def revoke(
        self,
        token_hash: str,
        revoker_user_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RevokeResult:
        """
        Atomically move an active, unexpired record to ``revoked``.

        Anything else reports the record's current terminal state.
        """
        now = now or utc_now()

        with self._session_operation("revoke", token_hash_prefix=hash_prefix(token_hash)):
            record = self._select_by_hash(token_hash)
            if record is None:
                return RevokeResult(outcome=RevocationOutcome.NOT_FOUND)

            status = effective_status(record.status, record.expires_at, now)
            if status is not TokenStatus.ACTIVE:
                return RevokeResult(
                    outcome=_REVOKE_OUTCOMES[status], token=TokenRead.from_record(record, now)
                )

            won = self.session.execute(
                update(QRToken)
                .where(
                    QRToken.token_hash == token_hash,
                    QRToken.status == TokenStatus.ACTIVE.value,
                    QRToken.expires_at >= now,
                )
                .values(
                    status=TokenStatus.REVOKED.value,
                    revoked_at=now,
                    revoked_by_user_id=revoker_user_id,
                    revocation_reason=reason,
                )
                .execution_options(synchronize_session=False)
            ).rowcount

            record = self._select_by_hash(token_hash)
            token = TokenRead.from_record(record, now)
            if won == 1:
                return RevokeResult(outcome=RevocationOutcome.REVOKED, token=token)
            return RevokeResult(
                outcome=_REVOKE_OUTCOMES.get(token.status, RevocationOutcome.EXPIRED), token=token
            )

    # ==================== HOUSEKEEPING ====================

    def delete_stale(self, cutoff: datetime) -> int:
        """
        Remove records whose validity window ended before ``cutoff``.

        Housekeeping only; the verification path never deletes records.

        Returns:
            Number of records deleted
        """
        with self._session_operation("delete_stale"):
            deleted = self.session.execute(
                delete(QRToken)
                .where(QRToken.expires_at < cutoff)
                .execution_options(synchronize_session=False)
            ).rowcount
        return deleted

    # ==================== HELPERS ====================

    def _select_by_hash(self, token_hash: str) -> Optional[QRToken]:
        query = select(QRToken).where(QRToken.token_hash == token_hash)
        return self.session.execute(
            query.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _bump_attempts(self, token_hash: str, now: datetime) -> int:
        return self.session.execute(
            update(QRToken)
            .where(QRToken.token_hash == token_hash)
            .values(
                validation_attempts=QRToken.validation_attempts + 1,
                last_validation_attempt=now,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
