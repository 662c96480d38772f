"""
Concurrency tests for single-use redemption.

Many threads present the same token at once, each through its own service
and session, against one SQLite file. Exactly one may win.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from qr_token_core.constants import AuditAction
from qr_token_core.enums import RedemptionOutcome, TokenStatus
from qr_token_core.schemas import AuditEntry
from qr_token_core.services import AuditService, VerificationService
from qr_token_core.utils.hash_utils import hash_token
from tests.fixtures.factories import PATIENT_ID, PRESCRIPTION_ID

pytestmark = pytest.mark.integration

WORKERS = 8


def _service(file_db_manager, directory, shared_signer, app_config) -> VerificationService:
    return VerificationService(
        entity_directory=directory,
        signer=shared_signer,
        db_manager=file_db_manager,
        config=app_config,
    )


@pytest.fixture
def issued(file_db_manager, directory, shared_signer, app_config):
    service = _service(file_db_manager, directory, shared_signer, app_config)
    try:
        return service.issue_token("Prescription", PRESCRIPTION_ID, PATIENT_ID)
    finally:
        service.close()


class TestConcurrentRedemption:
    def test_exactly_one_redeemer_wins(
        self, file_db_manager, directory, shared_signer, app_config, issued
    ):
        barrier = threading.Barrier(WORKERS)

        def redeem(worker: int):
            service = _service(file_db_manager, directory, shared_signer, app_config)
            try:
                barrier.wait(timeout=10)
                return service.redeem_token(issued.token, f"user-pharmacist-{worker}")
            finally:
                service.close()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            results = list(pool.map(redeem, range(WORKERS)))

        outcomes = [r.outcome for r in results]
        assert outcomes.count(RedemptionOutcome.SUCCESS) == 1
        assert outcomes.count(RedemptionOutcome.ALREADY_USED) == WORKERS - 1

        winner = next(r for r in results if r.is_success)
        checker = _service(file_db_manager, directory, shared_signer, app_config)
        try:
            with checker.transaction():
                stored = checker.repository.find_by_hash(hash_token(issued.token))
        finally:
            checker.close()

        assert stored.status is TokenStatus.USED
        assert stored.used_at == winner.used_at
        assert stored.validation_attempts == WORKERS

    def test_every_attempt_is_audited(
        self, file_db_manager, directory, shared_signer, app_config, issued
    ):
        barrier = threading.Barrier(WORKERS)

        def redeem(worker: int):
            service = _service(file_db_manager, directory, shared_signer, app_config)
            try:
                barrier.wait(timeout=10)
                return service.redeem_token(issued.token, f"user-pharmacist-{worker}")
            finally:
                service.close()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(redeem, range(WORKERS)))

        audit = AuditService(db_manager=file_db_manager, config=app_config)
        try:
            entries = audit.get_token_logs(issued.token_id)
        finally:
            audit.close()

        actions = [e.action for e in entries]
        assert actions.count(AuditAction.TOKEN_ISSUED.value) == 1
        assert actions.count(AuditAction.TOKEN_REDEEMED.value) == 1
        assert actions.count(AuditAction.TOKEN_REDEMPTION_FAILED.value) == WORKERS - 1


class TestOwnedSessions:
    def test_commits_are_visible_to_other_sessions(
        self, file_db_manager, directory, shared_signer, app_config, issued
    ):
        first = _service(file_db_manager, directory, shared_signer, app_config)
        try:
            assert first.redeem_token(issued.token, "user-pharmacist-2").is_success
        finally:
            first.close()

        second = _service(file_db_manager, directory, shared_signer, app_config)
        try:
            result = second.redeem_token(issued.token, "user-pharmacist-2")
            status = second.get_token_status(issued.token)
        finally:
            second.close()

        assert result.outcome is RedemptionOutcome.ALREADY_USED
        assert status.status is TokenStatus.USED

    def test_async_audit_writes_through_worker_sessions(self, file_db_manager, app_config, issued):
        audit = AuditService(db_manager=file_db_manager, config=app_config, async_dispatch=True)
        try:
            futures = [
                audit.record(
                    AuditEntry(
                        action=AuditAction.TOKEN_REVOCATION_FAILED,
                        outcome="not_found",
                        is_success=False,
                        actor_user_id="user-async",
                    )
                )
                for _ in range(5)
            ]
            audit.flush(timeout=10)
            assert all(f.result() for f in futures)
            assert len(audit.get_actor_logs("user-async")) == 5
        finally:
            audit.close()
