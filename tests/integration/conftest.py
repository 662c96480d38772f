"""
Fixtures for integration tests: a file-backed SQLite database shared by
worker threads, each of which opens its own session.
"""

import pytest

from qr_token_core.db import DatabaseConfig, DatabaseManager
from qr_token_core.db.db_config import init_db
from qr_token_core.services import StaticEntityDirectory
from qr_token_core.signing import TokenSigner
from tests.fixtures.factories import PATIENT_ID, PRESCRIPTION_ID


@pytest.fixture
def file_db_manager(tmp_path) -> DatabaseManager:
    manager = DatabaseManager(
        DatabaseConfig(
            db_type="sqlite",
            database=str(tmp_path / "qr_tokens.db"),
            development_mode=True,
        )
    )
    init_db(manager)
    yield manager
    manager.drop_tables()
    manager.close()


@pytest.fixture
def directory() -> StaticEntityDirectory:
    directory = StaticEntityDirectory()
    directory.add("Prescription", PRESCRIPTION_ID, PATIENT_ID)
    return directory


@pytest.fixture
def shared_signer(signing_key) -> TokenSigner:
    return TokenSigner(signing_key)
