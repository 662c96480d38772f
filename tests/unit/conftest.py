"""
Fixtures for unit tests: signer, codec, entity directory and services wired
to the per-test database session.
"""

import pytest

from qr_token_core.constants import EntityType
from qr_token_core.repositories import AuditRepository, TokenRepository
from qr_token_core.services import (
    AuditService,
    StaticEntityDirectory,
    TokenCleanupService,
    VerificationService,
)
from qr_token_core.signing import TokenCodec, TokenSigner
from tests.fixtures.factories import (
    DOCTOR_NOTE_ID,
    PATIENT_ID,
    PRESCRIPTION_ID,
    AuditLogFactory,
    QRTokenFactory,
)


@pytest.fixture
def signer(signing_key) -> TokenSigner:
    return TokenSigner(signing_key)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec()


@pytest.fixture
def entity_directory() -> StaticEntityDirectory:
    """Prescription 123 and doctor note 77 are owned by the patient."""
    directory = StaticEntityDirectory()
    directory.add(EntityType.PRESCRIPTION.value, PRESCRIPTION_ID, PATIENT_ID)
    directory.add(EntityType.DOCTOR_NOTE.value, DOCTOR_NOTE_ID, PATIENT_ID)
    return directory


@pytest.fixture
def token_repository(db_session) -> TokenRepository:
    return TokenRepository(db_session)


@pytest.fixture
def audit_repository(db_session) -> AuditRepository:
    return AuditRepository(db_session)


@pytest.fixture
def audit_service(db_session, app_config) -> AuditService:
    return AuditService(session=db_session, config=app_config, async_dispatch=False)


@pytest.fixture
def verification_service(
    db_session, app_config, signer, codec, entity_directory, audit_service
) -> VerificationService:
    return VerificationService(
        entity_directory=entity_directory,
        signer=signer,
        codec=codec,
        session=db_session,
        audit_service=audit_service,
        config=app_config,
    )


@pytest.fixture
def cleanup_service(db_session, app_config, audit_service) -> TokenCleanupService:
    return TokenCleanupService(session=db_session, audit_service=audit_service, config=app_config)


@pytest.fixture
def factories(db_session):
    """Bind the row factories to the per-test session."""
    for factory_cls in (QRTokenFactory, AuditLogFactory):
        factory_cls._meta.sqlalchemy_session = db_session
    yield
    for factory_cls in (QRTokenFactory, AuditLogFactory):
        factory_cls._meta.sqlalchemy_session = None
