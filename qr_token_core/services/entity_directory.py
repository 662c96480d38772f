"""
Lookup of the records QR tokens are bound to.

Clinical records live outside this package. The verification service needs
to know whether a record exists, who owns it and whether it still accepts
new tokens, and it tells the directory when a token for a record has been
redeemed. An ``EntityDirectory`` covers all of that.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from ..exceptions import EntityNotFoundError, EntityNotIssuableError, permission_denied


class EntityDirectory(ABC):
    """View onto the external record store."""

    @abstractmethod
    def get_owner_id(self, entity_type: str, entity_id: str) -> Optional[str]:
        """
        Return the id of the user who owns the record.

        Returns:
            Owner user id, or None if the record does not exist
        """

    def authorize_issuer(self, entity_type: str, entity_id: str, user_id: str) -> None:
        """
        Check that ``user_id`` may issue a token for the record.

        Raises:
            EntityNotFoundError: If the record does not exist
            ForbiddenError: If the record belongs to another user
        """
        owner_id = self.get_owner_id(entity_type, entity_id)
        if owner_id is None:
            raise EntityNotFoundError(
                f"{entity_type} not found: {entity_id}",
                entity_type=entity_type,
                entity_id=entity_id,
            )
        if owner_id != user_id:
            raise permission_denied(
                "issue_token",
                f"{entity_type}:{entity_id}",
                user_id=user_id,
            )

    def check_issuable(self, entity_type: str, entity_id: str) -> None:
        """
        Check that the record's own state still allows a new token.

        Called after ``authorize_issuer``. Every record is issuable by default;
        override to refuse, for example, a fulfilled or expired prescription.

        Raises:
            EntityNotIssuableError: If the record no longer accepts tokens
        """

    def on_redeemed(self, entity_type: str, entity_id: str, redeemer_user_id: str) -> None:
        """
        Hook run when a token for the record is redeemed.

        Runs inside the redemption transaction, after the token is marked
        used. Raising rolls the redemption back when the service owns its
        session. Does nothing by default.
        """


class StaticEntityDirectory(EntityDirectory):
    """In-memory directory, for tests and local tooling."""

    def __init__(self, owners: Optional[Dict[Tuple[str, str], str]] = None):
        self._owners: Dict[Tuple[str, str], str] = dict(owners or {})
        self._closed: Dict[Tuple[str, str], str] = {}

    def add(self, entity_type: str, entity_id: str, owner_id: str) -> None:
        self._owners[(entity_type, str(entity_id))] = owner_id

    def close(self, entity_type: str, entity_id: str, reason: str = "closed") -> None:
        """Stop the record from accepting new tokens."""
        self._closed[(entity_type, str(entity_id))] = reason

    def get_owner_id(self, entity_type: str, entity_id: str) -> Optional[str]:
        return self._owners.get((entity_type, str(entity_id)))

    def check_issuable(self, entity_type: str, entity_id: str) -> None:
        reason = self._closed.get((entity_type, str(entity_id)))
        if reason is not None:
            raise EntityNotIssuableError(
                f"{entity_type} {entity_id} does not accept new QR tokens: {reason}",
                entity_type=entity_type,
                entity_id=entity_id,
                reason=reason,
            )
