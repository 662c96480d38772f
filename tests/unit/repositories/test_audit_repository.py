"""
Tests for AuditRepository.
"""

from datetime import UTC, datetime, timedelta

from qr_token_core.constants import AuditAction
from qr_token_core.schemas import AuditEntry


def _entry(action=AuditAction.TOKEN_REDEEMED, outcome="success", is_success=True, **kwargs):
    return AuditEntry(action=action, outcome=outcome, is_success=is_success, **kwargs)


class TestAuditRepositoryCreate:
    def test_create_entry(self, audit_repository):
        """Entries are stored with an id, a timestamp and their JSON context."""
        stored = audit_repository.create(
            _entry(
                actor_user_id="user-pharmacist-2",
                token_id="t-1",
                context={"attempt": 1, "source": "scanner"},
            )
        )

        assert stored.id
        assert stored.created_at is not None
        assert stored.action == "QR_TOKEN_REDEEMED"
        assert stored.context == {"attempt": 1, "source": "scanner"}


class TestAuditRepositoryQueries:
    def test_list_by_actor(self, audit_repository):
        audit_repository.create(_entry(actor_user_id="user-a"))
        audit_repository.create(_entry(actor_user_id="user-b"))

        entries = audit_repository.list_by_actor("user-a")

        assert [e.actor_user_id for e in entries] == ["user-a"]

    def test_list_by_action(self, audit_repository):
        audit_repository.create(_entry(action=AuditAction.TOKEN_ISSUED, outcome="issued"))
        audit_repository.create(_entry())

        entries = audit_repository.list_by_action(AuditAction.TOKEN_ISSUED.value)

        assert len(entries) == 1
        assert entries[0].outcome == "issued"

    def test_list_by_token(self, audit_repository):
        audit_repository.create(_entry(token_id="t-1"))
        audit_repository.create(_entry(token_id="t-1", outcome="already_used", is_success=False))
        audit_repository.create(_entry(token_id="t-2"))

        assert len(audit_repository.list_by_token("t-1")) == 2

    def test_list_failed(self, audit_repository):
        audit_repository.create(_entry())
        audit_repository.create(
            _entry(
                action=AuditAction.TOKEN_REDEMPTION_FAILED, outcome="expired", is_success=False
            )
        )

        failed = audit_repository.list_failed()

        assert [e.outcome for e in failed] == ["expired"]

    def test_list_in_range(self, audit_repository):
        audit_repository.create(_entry())
        now = datetime.now(UTC)

        assert len(audit_repository.list_in_range(now - timedelta(hours=1), now)) == 1
        window = (now - timedelta(days=2), now - timedelta(days=1))
        assert audit_repository.list_in_range(*window) == []

    def test_pagination(self, audit_repository):
        for _ in range(3):
            audit_repository.create(_entry(actor_user_id="user-a"))

        assert len(audit_repository.list_by_actor("user-a", limit=2)) == 2
        assert len(audit_repository.list_by_actor("user-a", limit=2, offset=2)) == 1
