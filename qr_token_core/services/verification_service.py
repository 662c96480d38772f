"""
QR token verification service.

Issues, redeems and revokes single-use QR tokens bound to a record, and
records every attempt in the audit trail.

Lifecycle::

    active --redeem--> used
    active --revoke--> revoked
    active --clock---> expired   (derived on read, never written here)

``used`` and ``revoked`` are terminal and take precedence over expiry.
"""

import secrets
from datetime import timedelta
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..constants import AuditAction, Limits
from ..context.request_context import ClientContext
from ..db.db_base import utc_now
from ..db.db_config import DatabaseManager
from ..enums import RedemptionOutcome, RevocationOutcome, TokenStatus
from ..exceptions import (
    BaseError,
    EntityNotFoundError,
    EntityNotIssuableError,
    ErrorCode,
    ForbiddenError,
    MalformedTokenError,
    RepositoryError,
    ServiceError,
    validation_failed,
)
from ..repositories.token_repository import TokenRepository
from ..schemas.audit_schemas import AuditEntry
from ..schemas.token_schemas import (
    IssuedToken,
    RedemptionResult,
    RevocationResult,
    TokenPayload,
    TokenRead,
    TokenStatusResult,
)
from ..signing.codec import TokenCodec
from ..signing.signer import TokenSigner
from ..utils.hash_utils import hash_prefix, hash_token
from .audit_service import AuditService
from .base_service import SessionManagedService
from .entity_directory import EntityDirectory

_ISSUE_DENIAL_OUTCOMES = (
    (EntityNotFoundError, "entity_not_found"),
    (ForbiddenError, "forbidden"),
    (EntityNotIssuableError, "not_issuable"),
)


class VerificationService(SessionManagedService):
    """
    Orchestrates the QR token lifecycle.

    The redemption path never raises for token problems; it returns a
    ``RedemptionResult`` whose ``to_error()`` builds the matching exception.
    """

    def __init__(
        self,
        entity_directory: EntityDirectory,
        signer: Optional[TokenSigner] = None,
        codec: Optional[TokenCodec] = None,
        session: Optional[Session] = None,
        db_manager: Optional[DatabaseManager] = None,
        audit_service: Optional[AuditService] = None,
        config: Optional[AppConfig] = None,
    ):
        """
        Args:
            entity_directory: Existence and ownership lookups for bound records
            signer: Token signer (default: built from config; fails fast on a bad key)
            codec: Token codec
            session: Optional injected session (caller owns the transaction)
            db_manager: Manager to open owned sessions from
            audit_service: Audit sink (default: one sharing this service's database)
            config: Application config (default: global config)

        Raises:
            SigningUnavailableError: If no usable signing key is configured
        """
        super().__init__(session=session, db_manager=db_manager)
        self.config = config or get_config()
        self.signer = signer or TokenSigner.from_config(self.config)
        self.codec = codec or TokenCodec()
        self.entity_directory = entity_directory
        self.repository = TokenRepository(self.session)
        self.validity = timedelta(minutes=self.config.security.qr_token_expiry_minutes)
        self._owns_audit = audit_service is None
        if audit_service is None:
            audit_service = AuditService(
                session=None if self._owns_session else self.session,
                db_manager=self._db_manager,
                config=self.config,
            )
        self.audit = audit_service

    # ==================== ISSUE ====================

    def issue_token(
        self,
        entity_type: str,
        entity_id: Union[str, int],
        issuer_user_id: str,
        client_context: Optional[ClientContext] = None,
    ) -> IssuedToken:
        """
        Issue a new single-use token for a record the caller owns.

        Args:
            entity_type: Kind of record, e.g. "Prescription"
            entity_id: Identifier of the record
            issuer_user_id: Requesting user; must own the record
            client_context: Advisory IP address and user agent

        Returns:
            IssuedToken carrying the encoded token (returned once, never stored)

        Raises:
            ValidationError: On empty or overlong identifiers
            EntityNotFoundError: If the record does not exist
            ForbiddenError: If the caller does not own the record
            EntityNotIssuableError: If the record no longer accepts tokens
            ServiceError: If a unique token could not be produced
        """
        entity_id = str(entity_id)
        client_context = client_context or ClientContext()
        for field, value, max_length in (
            ("entity_type", entity_type, Limits.MAX_ENTITY_TYPE_LENGTH),
            ("entity_id", entity_id, Limits.MAX_ENTITY_ID_LENGTH),
            ("issuer_user_id", issuer_user_id, Limits.MAX_USER_ID_LENGTH),
        ):
            if not value or not str(value).strip():
                raise validation_failed(field, value, "must be a non-empty string")
            if len(str(value)) > max_length:
                raise validation_failed(
                    field, str(value)[:50], f"must be at most {max_length} characters"
                )

        try:
            self.entity_directory.authorize_issuer(entity_type, entity_id, issuer_user_id)
            self.entity_directory.check_issuable(entity_type, entity_id)
        except (EntityNotFoundError, ForbiddenError, EntityNotIssuableError) as e:
            self._audit(
                AuditAction.TOKEN_ISSUE_DENIED,
                outcome=next(o for cls, o in _ISSUE_DENIAL_OUTCOMES if isinstance(e, cls)),
                is_success=False,
                actor_user_id=issuer_user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                client_context=client_context,
                error_message=e.message,
            )
            raise

        for attempt in range(1, Limits.MAX_ISSUE_ATTEMPTS + 1):
            issued_at = utc_now().replace(microsecond=0)
            expires_at = issued_at + self.validity
            payload = TokenPayload(
                entity_type=entity_type,
                entity_id=entity_id,
                issued_by=issuer_user_id,
                iat=int(issued_at.timestamp()),
                nonce=secrets.token_hex(Limits.NONCE_BYTES),
            )
            raw = payload.to_canonical()
            token = self.codec.encode(raw, self.signer.sign(raw))
            token_hash = hash_token(token)

            try:
                with self.transaction():
                    record = self.repository.create(
                        token_hash=token_hash,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        issued_by_user_id=issuer_user_id,
                        issued_at=issued_at,
                        expires_at=expires_at,
                        client_context=client_context,
                    )
            except RepositoryError as e:
                if e.error_code != ErrorCode.DUPLICATE:
                    raise
                self.logger.warning(
                    "QR token hash collision, regenerating",
                    extra={"attempt": attempt, "entity_type": entity_type},
                )
                continue

            self.logger.info(
                "QR token issued",
                extra={
                    "token_id": record.id,
                    "token_hash_prefix": hash_prefix(token_hash),
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "user_id": issuer_user_id,
                    "expires_at": record.expires_at.isoformat(),
                },
            )
            self._audit(
                AuditAction.TOKEN_ISSUED,
                outcome="issued",
                is_success=True,
                actor_user_id=issuer_user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                token_id=record.id,
                token_hash=token_hash,
                client_context=client_context,
                context={"expires_at": record.expires_at.isoformat()},
            )
            return IssuedToken(
                token=token,
                token_id=record.id,
                entity_type=entity_type,
                entity_id=entity_id,
                expires_at=record.expires_at,
            )

        raise ServiceError(
            "Could not issue a unique QR token",
            error_code=ErrorCode.CONFLICT,
            operation="issue_token",
            attempts=Limits.MAX_ISSUE_ATTEMPTS,
        )

    # ==================== REDEEM ====================

    def redeem_token(
        self,
        token: str,
        redeemer_user_id: str,
        client_context: Optional[ClientContext] = None,
        expected_entity_type: Optional[str] = None,
    ) -> RedemptionResult:
        """
        Redeem a token exactly once.

        Every call writes exactly one audit entry, whatever the outcome.
        On success the entity directory's ``on_redeemed`` hook runs in the
        same transaction as the state change.

        Args:
            token: Encoded token as presented
            redeemer_user_id: User presenting the token
            client_context: Advisory IP address and user agent
            expected_entity_type: Only accept tokens bound to this kind of
                record; any other token is rejected without being consumed

        Returns:
            RedemptionResult; binding fields are populated only on success
        """
        client_context = client_context or ClientContext()
        token_hash = hash_token(token) if isinstance(token, str) else None
        record: Optional[TokenRead] = None
        result = RedemptionResult(outcome=RedemptionOutcome.ERROR)
        error_message: Optional[str] = None

        try:
            try:
                raw, signature = self.codec.split(token)
            except MalformedTokenError as e:
                error_message = e.message
                result = RedemptionResult(outcome=RedemptionOutcome.MALFORMED_TOKEN)
                return result

            if not self.signer.verify(raw, signature):
                with self.transaction():
                    self.repository.record_attempt(token_hash)
                result = RedemptionResult(outcome=RedemptionOutcome.INVALID_SIGNATURE)
                return result

            with self.transaction():
                found = self.repository.find_by_hash(token_hash)
            if found is None:
                result = RedemptionResult(outcome=RedemptionOutcome.NOT_FOUND)
                return result
            record = found

            if expected_entity_type is not None and found.entity_type != expected_entity_type:
                with self.transaction():
                    self.repository.record_attempt(token_hash)
                error_message = f"Expected a {expected_entity_type} token"
                result = RedemptionResult(
                    outcome=RedemptionOutcome.WRONG_ENTITY_TYPE, token_id=found.id
                )
                return result

            with self.transaction():
                redeemed = self.repository.try_redeem(token_hash, redeemer_user_id, client_context)
                if redeemed.outcome is RedemptionOutcome.SUCCESS:
                    self.entity_directory.on_redeemed(
                        found.entity_type, found.entity_id, redeemer_user_id
                    )
            record = redeemed.token or found

            if redeemed.outcome is RedemptionOutcome.SUCCESS:
                result = RedemptionResult(
                    outcome=RedemptionOutcome.SUCCESS,
                    token_id=record.id,
                    entity_type=record.entity_type,
                    entity_id=record.entity_id,
                    issuer_user_id=record.issued_by_user_id,
                    used_at=record.used_at,
                )
            else:
                result = RedemptionResult(outcome=redeemed.outcome, token_id=record.id)
            return result

        except (BaseError, SQLAlchemyError) as e:
            error_message = str(e)
            self.logger.error(
                "QR token redemption failed",
                extra={
                    "token_hash_prefix": hash_prefix(token_hash) if token_hash else None,
                    "user_id": redeemer_user_id,
                    "error_type": type(e).__name__,
                },
                exc_info=e,
            )
            result = RedemptionResult(outcome=RedemptionOutcome.ERROR)
            return result

        finally:
            self._log_redemption(result, token_hash, redeemer_user_id)
            self._audit(
                (
                    AuditAction.TOKEN_REDEEMED
                    if result.is_success
                    else AuditAction.TOKEN_REDEMPTION_FAILED
                ),
                outcome=result.outcome.value,
                is_success=result.is_success,
                actor_user_id=redeemer_user_id,
                entity_type=record.entity_type if record else None,
                entity_id=record.entity_id if record else None,
                token_id=record.id if record else None,
                token_hash=token_hash,
                client_context=client_context,
                error_message=error_message,
            )

    def _log_redemption(
        self, result: RedemptionResult, token_hash: Optional[str], user_id: str
    ) -> None:
        extra = {
            "outcome": result.outcome.value,
            "token_id": result.token_id,
            "token_hash_prefix": hash_prefix(token_hash) if token_hash else None,
            "user_id": user_id,
        }
        if result.is_success:
            self.logger.info("QR token redeemed", extra=extra)
        else:
            self.logger.warning("QR token rejected", extra=extra)

    # ==================== REVOKE ====================

    def revoke_token(
        self,
        token: str,
        revoker_user_id: str,
        reason: Optional[str] = None,
        client_context: Optional[ClientContext] = None,
    ) -> RevocationResult:
        """
        Revoke an active token.

        Only an active, unexpired token can be revoked; otherwise the result
        reports its current terminal state. Every call past argument
        validation writes one audit entry, including calls whose store
        update fails.

        Raises:
            ValidationError: If the reason is too long
            RepositoryError: If the store update fails
        """
        if reason is not None and len(reason) > Limits.MAX_REVOCATION_REASON_LENGTH:
            raise validation_failed(
                "reason",
                reason[:50],
                f"must be at most {Limits.MAX_REVOCATION_REASON_LENGTH} characters",
            )

        client_context = client_context or ClientContext()
        token_hash = hash_token(token) if isinstance(token, str) else None
        record: Optional[TokenRead] = None
        result: Optional[RevocationResult] = None
        error_message: Optional[str] = None

        try:
            try:
                raw, signature = self.codec.split(token)
            except MalformedTokenError as e:
                error_message = e.message
                result = RevocationResult(outcome=RevocationOutcome.MALFORMED_TOKEN)
                return result

            if not self.signer.verify(raw, signature):
                # A forged token was never issued, so there is nothing to revoke
                result = RevocationResult(outcome=RevocationOutcome.NOT_FOUND)
                return result

            with self.transaction():
                revoked = self.repository.revoke(token_hash, revoker_user_id, reason)
            record = revoked.token
            result = RevocationResult(
                outcome=revoked.outcome,
                token_id=record.id if record else None,
                revoked_at=record.revoked_at if record else None,
            )
            return result

        except (BaseError, SQLAlchemyError) as e:
            error_message = str(e)
            raise

        finally:
            is_success = result is not None and result.is_success
            outcome = result.outcome.value if result is not None else "error"
            self.logger.info(
                "QR token revocation processed",
                extra={
                    "outcome": outcome,
                    "token_id": result.token_id if result is not None else None,
                    "user_id": revoker_user_id,
                },
            )
            self._audit(
                AuditAction.TOKEN_REVOKED if is_success else AuditAction.TOKEN_REVOCATION_FAILED,
                outcome=outcome,
                is_success=is_success,
                actor_user_id=revoker_user_id,
                entity_type=record.entity_type if record else None,
                entity_id=record.entity_id if record else None,
                token_id=record.id if record else None,
                token_hash=token_hash,
                client_context=client_context,
                description=reason,
                error_message=error_message,
            )

    # ==================== INSPECT ====================

    def get_token_status(self, token: str) -> TokenStatusResult:
        """
        Report a token's effective status without counting an attempt.

        Tokens that cannot be decoded, fail verification or are unknown
        report ``expired`` with no expiry.
        """
        try:
            raw, signature = self.codec.split(token)
        except MalformedTokenError:
            return TokenStatusResult(status=TokenStatus.EXPIRED)
        if not self.signer.verify(raw, signature):
            return TokenStatusResult(status=TokenStatus.EXPIRED)

        with self.transaction():
            record = self.repository.find_by_hash(hash_token(token))
        if record is None:
            return TokenStatusResult(status=TokenStatus.EXPIRED)
        return TokenStatusResult(status=record.status, expires_at=record.expires_at)

    def get_token_history(
        self,
        entity_type: str,
        entity_id: Union[str, int],
        page: int = 1,
        page_size: int = Limits.DEFAULT_PAGE_SIZE,
    ) -> List[TokenRead]:
        """Every token issued for a record, newest first, with effective statuses."""
        if page < 1 or not 1 <= page_size <= Limits.MAX_PAGE_SIZE:
            raise validation_failed("page_size", page_size, "invalid page or page size")
        with self.transaction():
            return self.repository.list_for_entity(
                entity_type, str(entity_id), limit=page_size, offset=(page - 1) * page_size
            )

    def get_active_token(self, entity_type: str, entity_id: Union[str, int]) -> Optional[TokenRead]:
        """The newest token for a record that can still be redeemed, if any."""
        with self.transaction():
            return self.repository.find_active_for_entity(entity_type, str(entity_id))

    # ==================== HELPERS ====================

    def _audit(
        self,
        action: AuditAction,
        outcome: str,
        is_success: bool,
        client_context: Optional[ClientContext] = None,
        **fields,
    ) -> None:
        client_context = client_context or ClientContext()
        self.audit.record(
            AuditEntry(
                action=action,
                outcome=outcome,
                is_success=is_success,
                ip_address=client_context.ip_address,
                user_agent=client_context.user_agent,
                **fields,
            )
        )

    def close(self):
        if self._owns_audit:
            self.audit.close()
        super().close()
