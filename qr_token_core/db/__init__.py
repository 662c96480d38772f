"""
SQLAlchemy models and database plumbing for the QR token core.
"""

from .db_audit_models import AuditLog
from .db_base import JSON, TimestampMixin, UUIDMixin, ensure_utc, utc_now
from .db_config import (
    Base,
    DatabaseConfig,
    DatabaseManager,
    close_db,
    get_db_manager,
    get_development_config,
    get_production_config,
    import_all_models,
    init_db,
    initialize_db,
    set_db_manager,
)
from .db_token_models import QRToken

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "ensure_utc",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "get_development_config",
    "get_production_config",
    "import_all_models",
    "init_db",
    "initialize_db",
    "set_db_manager",
    # Models
    "AuditLog",
    "QRToken",
]
