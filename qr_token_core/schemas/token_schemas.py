"""
Pydantic schemas for QR token issuance, redemption and inspection.
"""

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator

from ..constants import Limits
from ..db.db_base import ensure_utc
from ..enums import RedemptionOutcome, RevocationOutcome, TokenStatus
from ..exceptions import (
    BaseError,
    ErrorCode,
    InvalidSignatureError,
    MalformedTokenError,
    ServiceError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenRevokedError,
    WrongEntityTypeError,
)
from ..utils.json_utils import canonical_dumps, loads
from ..utils.token_state import effective_status

_NONCE_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class TokenPayload(BaseModel):
    """
    The signed body of a QR token.

    ``to_canonical`` produces the exact bytes that are signed; the same
    payload always yields the same bytes.
    """

    entity_type: str = Field(min_length=1, max_length=Limits.MAX_ENTITY_TYPE_LENGTH)
    entity_id: str = Field(min_length=1, max_length=Limits.MAX_ENTITY_ID_LENGTH)
    issued_by: str = Field(min_length=1, max_length=Limits.MAX_USER_ID_LENGTH)
    iat: int = Field(ge=0, description="Issuance time, integer seconds since epoch (UTC)")
    nonce: str = Field(description="128-bit random value, lowercase hex")

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    @field_validator("nonce")
    @classmethod
    def validate_nonce(cls, v: str) -> str:
        if not _NONCE_PATTERN.match(v):
            raise ValueError("nonce must be 32 lowercase hex characters")
        return v

    def to_canonical(self) -> bytes:
        return canonical_dumps(self.model_dump())

    @classmethod
    def from_canonical(cls, raw: bytes) -> "TokenPayload":
        """
        Parse payload bytes, accepting only the canonical encoding.

        Raises:
            MalformedTokenError: If the bytes are not a canonical payload
        """
        try:
            data = loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedTokenError("QR token payload is not valid JSON", cause=e)

        if not isinstance(data, dict):
            raise MalformedTokenError("QR token payload is not an object")

        try:
            payload = cls.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedTokenError(
                "QR token payload has invalid fields", cause=e, error_count=e.error_count()
            )

        if payload.to_canonical() != raw:
            raise MalformedTokenError("QR token payload is not canonically encoded")

        return payload


class IssuedToken(BaseModel):
    """Returned once to the issuer. ``token`` is never stored server-side."""

    token: str
    token_id: str
    entity_type: str
    entity_id: str
    expires_at: datetime

    def __repr__(self) -> str:
        # Keep the bearer value out of reprs and tracebacks
        return (
            f"IssuedToken(token_id='{self.token_id}', "
            f"entity='{self.entity_type}:{self.entity_id}', "
            f"expires_at='{self.expires_at.isoformat()}')"
        )

    __str__ = __repr__


class TokenRead(BaseModel):
    """Read view of a token record with its effective (lazily expired) status."""

    id: str
    entity_type: str
    entity_id: str
    issued_by_user_id: str
    issued_at: datetime
    expires_at: datetime
    status: TokenStatus
    used_at: Optional[datetime] = None
    used_by_user_id: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revoked_by_user_id: Optional[str] = None
    revocation_reason: Optional[str] = None
    validation_attempts: int = 0
    last_validation_attempt: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "issued_at", "expires_at", "used_at", "revoked_at", "last_validation_attempt"
    )
    @classmethod
    def attach_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @classmethod
    def from_record(cls, record: Any, now: Optional[datetime] = None) -> "TokenRead":
        read = cls.model_validate(record)
        return read.model_copy(
            update={"status": effective_status(read.status, read.expires_at, now)}
        )


class RedeemResult(BaseModel):
    """Outcome of the store-level conditional redeem."""

    outcome: RedemptionOutcome
    token: Optional[TokenRead] = None


class RevokeResult(BaseModel):
    """Outcome of the store-level conditional revoke."""

    outcome: RevocationOutcome
    token: Optional[TokenRead] = None


_OUTCOME_ERRORS = {
    RedemptionOutcome.MALFORMED_TOKEN: MalformedTokenError,
    RedemptionOutcome.INVALID_SIGNATURE: InvalidSignatureError,
    RedemptionOutcome.NOT_FOUND: TokenNotFoundError,
    RedemptionOutcome.EXPIRED: TokenExpiredError,
    RedemptionOutcome.ALREADY_USED: TokenAlreadyUsedError,
    RedemptionOutcome.REVOKED: TokenRevokedError,
    RedemptionOutcome.WRONG_ENTITY_TYPE: WrongEntityTypeError,
}


class RedemptionResult(BaseModel):
    """
    Caller-visible result of ``redeem_token``.

    The binding fields are populated only on success; ``outcome`` is always set.
    """

    outcome: RedemptionOutcome
    token_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    issuer_user_id: Optional[str] = None
    used_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.outcome is RedemptionOutcome.SUCCESS

    def to_error(self) -> Optional[BaseError]:
        """
        Build the exception matching a failed outcome.

        Returns:
            None on success, otherwise the matching BaseError subclass instance
        """
        if self.is_success:
            return None
        error_cls = _OUTCOME_ERRORS.get(self.outcome)
        if error_cls is None:
            return ServiceError(
                "QR token redemption failed",
                error_code=ErrorCode.INTERNAL_ERROR,
                operation="redeem_token",
            )
        return error_cls(outcome=self.outcome.value)

    def raise_for_outcome(self) -> "RedemptionResult":
        """Raise the matching error for a failed outcome, else return self."""
        error = self.to_error()
        if error is not None:
            raise error
        return self


class RevocationResult(BaseModel):
    """Result of ``revoke_token``."""

    outcome: RevocationOutcome
    token_id: Optional[str] = None
    revoked_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.outcome is RevocationOutcome.REVOKED


class TokenStatusResult(BaseModel):
    """Answer to a status probe. Unknown tokens report ``expired`` with no expiry."""

    status: TokenStatus
    expires_at: Optional[datetime] = None
