"""
Shared test fixtures: database setup and application config.
"""

import pytest
from pydantic import SecretStr
from sqlalchemy.orm import Session

from qr_token_core.config import AppConfig, FeatureFlags, SecurityConfig, reset_config, set_config
from qr_token_core.db import DatabaseConfig, DatabaseManager, import_all_models
from qr_token_core.db.db_config import Base, initialize_db
from qr_token_core.utils.logger import reset_logging

TEST_SIGNING_KEY = "test-signing-key-0123456789-abcdefghijklmnop"


@pytest.fixture(scope="session")
def db_config() -> DatabaseConfig:
    """Create SQLite in-memory database configuration for testing."""
    return DatabaseConfig(
        db_type="sqlite",
        database=":memory:",
        echo=False,
        development_mode=True,
    )


@pytest.fixture(scope="session")
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    """Create and initialize database manager with all models."""
    import_all_models()
    return initialize_db(db_config)


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Create a database session for each test.

    Tables are created before and dropped after every test so each one
    starts from an empty database.
    """
    session = db_manager.get_session()
    Base.metadata.create_all(db_manager.engine)

    yield session

    session.rollback()
    session.close()
    db_manager.close_session()
    Base.metadata.drop_all(db_manager.engine)


@pytest.fixture
def signing_key() -> str:
    return TEST_SIGNING_KEY


@pytest.fixture(autouse=True)
def app_config(signing_key) -> AppConfig:
    """Install a deterministic global config for every test."""
    config = AppConfig(
        environment="test",
        security=SecurityConfig(
            qr_signing_key=SecretStr(signing_key),
            qr_token_expiry_minutes=5,
            qr_token_cleanup_days=7,
            audit_max_retries=3,
            audit_retry_backoff_base=0.001,
        ),
        features=FeatureFlags(enable_logs_queue=False, enable_async_audit=False),
    )
    set_config(config)
    yield config
    reset_logging()
    reset_config()
