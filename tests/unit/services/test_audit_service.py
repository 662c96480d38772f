"""
Tests for AuditService delivery and queries.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import OperationalError

from qr_token_core.constants import AuditAction
from qr_token_core.context.request_context import request_context
from qr_token_core.exceptions import ErrorCode, RepositoryError, ValidationError
from qr_token_core.schemas import AuditEntry
from qr_token_core.services import AuditService


def _entry(**kwargs):
    fields = dict(action=AuditAction.TOKEN_REDEEMED, outcome="success", is_success=True)
    fields.update(kwargs)
    return AuditEntry(**fields)


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    with patch("qr_token_core.services.audit_service.time.sleep") as sleep:
        yield sleep


# ==================== DELIVERY TESTS ====================


class TestAuditDelivery:
    def test_record_persists_entry(self, audit_service, audit_repository):
        assert audit_service.record(_entry(actor_user_id="user-a")) is None

        assert len(audit_repository.list_by_actor("user-a")) == 1

    def test_correlation_id_from_request(self, audit_service, audit_repository):
        with request_context("req-77"):
            audit_service.record(_entry(actor_user_id="user-a"))

        assert audit_repository.list_by_actor("user-a")[0].correlation_id == "req-77"

    def test_explicit_correlation_id_kept(self, audit_service, audit_repository):
        with request_context("req-77"):
            audit_service.record(_entry(actor_user_id="user-a", correlation_id="job-1"))

        assert audit_repository.list_by_actor("user-a")[0].correlation_id == "job-1"

    def test_transient_failure_is_retried(self, audit_service, no_backoff_sleep):
        with patch.object(
            audit_service, "_persist", side_effect=[RepositoryError("database is locked"), None]
        ) as persist:
            assert audit_service._deliver(_entry()) is True

        assert persist.call_count == 2
        assert no_backoff_sleep.call_count == 1

    def test_sqlalchemy_errors_are_transient(self, audit_service):
        failure = OperationalError("INSERT", {}, Exception("disk I/O error"))

        with patch.object(audit_service, "_persist", side_effect=[failure, None]) as persist:
            assert audit_service._deliver(_entry()) is True

        assert persist.call_count == 2

    def test_gives_up_after_max_retries(self, audit_service, no_backoff_sleep):
        with patch.object(
            audit_service, "_persist", side_effect=RepositoryError("database is locked")
        ) as persist, patch.object(audit_service.logger, "error") as log_error:
            assert audit_service._deliver(_entry(actor_user_id="user-a")) is False

        assert persist.call_count == 3
        assert no_backoff_sleep.call_count == 2
        message = log_error.call_args.args[0]
        fallback = log_error.call_args.kwargs["extra"]["audit_entry"]
        assert message == "Audit entry could not be persisted"
        assert fallback["actor_user_id"] == "user-a"
        assert fallback["action"] == "QR_TOKEN_REDEEMED"

    def test_permanent_failure_not_retried(self, audit_service):
        error = RepositoryError("bad row", error_code=ErrorCode.CONSTRAINT_VIOLATION)

        with patch.object(audit_service, "_persist", side_effect=error) as persist:
            assert audit_service._deliver(_entry()) is False

        assert persist.call_count == 1

    def test_record_never_raises_on_store_failure(self, audit_service):
        with patch.object(audit_service, "_persist", side_effect=RepositoryError("down")):
            assert audit_service.record(_entry()) is None


class TestAsyncDispatch:
    def test_async_requires_db_manager(self, db_session, app_config):
        service = AuditService(session=db_session, config=app_config, async_dispatch=True)

        assert service.async_dispatch is False

    def test_async_default_from_feature_flag(self, db_session, app_config):
        service = AuditService(session=db_session, db_manager=Mock(), config=app_config)

        assert service.async_dispatch is app_config.features.enable_async_audit

    def test_background_write_uses_worker_session(self, db_session, app_config):
        worker_session = Mock()
        db_manager = Mock()
        db_manager.new_session.return_value = worker_session
        executor = ThreadPoolExecutor(max_workers=1)
        service = AuditService(
            session=db_session,
            db_manager=db_manager,
            config=app_config,
            async_dispatch=True,
            executor=executor,
        )

        try:
            with patch("qr_token_core.services.audit_service.AuditRepository") as repository_cls:
                future = service.record(_entry())
                service.flush(timeout=5)

            assert future.result() is True
            repository_cls.assert_called_once_with(worker_session)
            worker_session.commit.assert_called_once()
            worker_session.close.assert_called_once()
        finally:
            service.close()
            executor.shutdown(wait=True)

    def test_background_write_rolls_back_on_failure(self, db_session, app_config):
        worker_session = Mock()
        db_manager = Mock()
        db_manager.new_session.return_value = worker_session
        service = AuditService(
            session=db_session, db_manager=db_manager, config=app_config, async_dispatch=True
        )

        with patch("qr_token_core.services.audit_service.AuditRepository") as repository_cls:
            repository_cls.return_value.create.side_effect = RepositoryError(
                "bad row", error_code=ErrorCode.CONSTRAINT_VIOLATION
            )
            future = service.record(_entry())
            service.close()

        assert future.result() is False
        worker_session.rollback.assert_called_once()
        worker_session.commit.assert_not_called()


# ==================== QUERY TESTS ====================


class TestAuditQueries:
    def test_actor_logs(self, audit_service):
        audit_service.record(_entry(actor_user_id="user-a"))
        audit_service.record(_entry(actor_user_id="user-b"))

        assert [e.actor_user_id for e in audit_service.get_actor_logs("user-a")] == ["user-a"]

    def test_logs_by_action(self, audit_service):
        audit_service.record(_entry(action=AuditAction.TOKEN_REVOKED, outcome="revoked"))
        audit_service.record(_entry())

        entries = audit_service.get_logs_by_action(AuditAction.TOKEN_REVOKED)

        assert [e.outcome for e in entries] == ["revoked"]

    def test_token_logs(self, audit_service):
        audit_service.record(_entry(token_id="t-1"))
        audit_service.record(_entry(token_id="t-2"))

        assert len(audit_service.get_token_logs("t-1")) == 1

    def test_failed_events(self, audit_service):
        audit_service.record(_entry())
        audit_service.record(
            _entry(
                action=AuditAction.TOKEN_ISSUE_DENIED, outcome="forbidden", is_success=False
            )
        )

        failed = audit_service.get_failed_events(since=datetime.now(UTC) - timedelta(hours=1))

        assert [e.outcome for e in failed] == ["forbidden"]

    def test_date_range(self, audit_service):
        audit_service.record(_entry())
        now = datetime.now(UTC)

        assert len(audit_service.get_logs_in_date_range(now - timedelta(minutes=5), now)) == 1

    def test_date_range_rejects_reversed_bounds(self, audit_service):
        now = datetime.now(UTC)

        with pytest.raises(ValidationError):
            audit_service.get_logs_in_date_range(now, now - timedelta(days=1))

    @pytest.mark.parametrize("page, page_size", [(0, 10), (1, 0), (1, 501)])
    def test_page_validation(self, audit_service, page, page_size):
        with pytest.raises(ValidationError):
            audit_service.get_actor_logs("user-a", page=page, page_size=page_size)

    def test_pagination(self, audit_service):
        for _ in range(3):
            audit_service.record(_entry(actor_user_id="user-a"))

        assert len(audit_service.get_actor_logs("user-a", page=2, page_size=2)) == 1
