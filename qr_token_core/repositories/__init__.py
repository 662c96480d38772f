"""Repository layer for data access."""

from .audit_repository import AuditRepository
from .base_repository import BaseRepository
from .token_repository import TokenRepository

__all__ = ["AuditRepository", "BaseRepository", "TokenRepository"]
