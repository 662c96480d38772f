"""
Pydantic schemas for the QR token audit trail.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import AuditAction


class AuditEntry(BaseModel):
    """An audit event waiting to be written."""

    action: AuditAction
    outcome: str = Field(min_length=1, max_length=30)
    is_success: bool
    actor_user_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    token_id: Optional[str] = None
    token_hash: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    description: Optional[str] = None
    error_message: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    correlation_id: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class AuditLogRead(BaseModel):
    """Stored audit event."""

    id: str
    action: str
    outcome: str
    is_success: bool
    actor_user_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    token_id: Optional[str] = None
    token_hash: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    description: Optional[str] = None
    error_message: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
