"""Service layer for QR token issuance, verification and housekeeping."""

from .audit_service import AuditService
from .base_service import SessionManagedService
from .entity_directory import EntityDirectory, StaticEntityDirectory
from .token_cleanup_service import TokenCleanupService
from .verification_service import VerificationService

__all__ = [
    "AuditService",
    "EntityDirectory",
    "SessionManagedService",
    "StaticEntityDirectory",
    "TokenCleanupService",
    "VerificationService",
]
