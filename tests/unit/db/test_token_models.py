"""
Tests for the database models, column types and configuration.
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from qr_token_core.db import AuditLog, DatabaseConfig, QRToken, ensure_utc
from qr_token_core.enums import TokenStatus
from qr_token_core.exceptions import ValidationError
from tests.fixtures.factories import AuditLogFactory, QRTokenFactory

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


def _token(**overrides):
    fields = dict(
        token_hash="a" * 64,
        entity_type="Prescription",
        entity_id="123",
        issued_by_user_id="user-patient-1",
        issued_at=NOW,
        expires_at=NOW + timedelta(minutes=5),
    )
    fields.update(overrides)
    return QRToken(**fields)


class TestQRTokenModel:
    def test_defaults(self, db_session):
        token = _token()
        db_session.add(token)
        db_session.flush()

        assert token.id
        assert token.status == "active"
        assert token.validation_attempts == 0
        assert token.created_at is not None

    def test_status_constraint(self, db_session):
        db_session.add(_token(status="pending"))

        with pytest.raises(IntegrityError):
            db_session.flush()

    def test_used_requires_used_at(self, db_session):
        db_session.add(_token(status="used"))

        with pytest.raises(IntegrityError):
            db_session.flush()

    def test_revoked_at_only_when_revoked(self, db_session):
        db_session.add(_token(revoked_at=NOW))

        with pytest.raises(IntegrityError):
            db_session.flush()

    def test_repr_has_no_hash(self):
        assert "a" * 64 not in repr(_token())


class TestAuditLogModel:
    def test_json_context_round_trip(self, db_session):
        entry = AuditLog(
            action="QR_TOKEN_REDEEMED",
            outcome="success",
            is_success=True,
            context={"attempt": 2, "tags": ["scanner"]},
        )
        db_session.add(entry)
        db_session.flush()
        db_session.expire(entry)

        assert entry.context == {"attempt": 2, "tags": ["scanner"]}


class TestEnsureUtc:
    def test_naive_gets_utc(self):
        assert ensure_utc(datetime(2026, 1, 1, 12, 0)) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def test_aware_is_converted(self):
        aware = datetime(2026, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert ensure_utc(aware) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert ensure_utc(aware).tzinfo is UTC

    def test_none(self):
        assert ensure_utc(None) is None


class TestDatabaseConfig:
    def test_sqlite_connection_string(self):
        config = DatabaseConfig(db_type="sqlite", database="/tmp/qr.db")

        assert config.get_connection_string() == "sqlite:////tmp/qr.db"
        assert config.is_sqlite

    def test_postgres_connection_string(self):
        config = DatabaseConfig(
            host="db", database="qr", username="svc", password="s3cret", port="5433"
        )

        assert config.get_connection_string() == "postgresql://svc:s3cret@db:5433/qr"
        assert "s3cret" not in repr(config)

    def test_url_wins(self):
        assert DatabaseConfig(url="sqlite://").get_connection_string() == "sqlite://"

    def test_incomplete_postgres_config(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(host="db").get_connection_string()

    def test_unsupported_type(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(db_type="oracle").get_connection_string()


@pytest.mark.usefixtures("factories")
class TestLifecycleRows:
    """Rows in each terminal state satisfy the table constraints."""

    def test_used_row(self, token_repository):
        row = QRTokenFactory(used=True)

        stored = token_repository.find_by_hash(row.token_hash)
        assert stored.status is TokenStatus.USED
        assert stored.used_by_user_id == "user-pharmacist-2"

    def test_revoked_row(self, token_repository):
        row = QRTokenFactory(revoked=True)

        assert token_repository.find_by_hash(row.token_hash).status is TokenStatus.REVOKED

    def test_stale_active_row_reads_expired(self, token_repository):
        row = QRTokenFactory(stale_days=1)

        assert token_repository.find_by_hash(row.token_hash).status is TokenStatus.EXPIRED

    def test_audit_rows(self, audit_repository):
        AuditLogFactory(actor_user_id="user-a")
        AuditLogFactory(actor_user_id="user-a", outcome="expired", is_success=False)

        assert len(audit_repository.list_by_actor("user-a")) == 2
        assert [e.outcome for e in audit_repository.list_failed()] == ["expired"]
