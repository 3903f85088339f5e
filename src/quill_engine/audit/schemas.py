"""Pydantic schemas for audit API responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditEventResponse(BaseModel):
    id: str
    document_id: str
    recipient_id: Optional[str] = None
    sequence: int
    event_type: str
    actor: str
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    prev_hash: Optional[str] = None
    event_hash: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditChainVerification(BaseModel):
    valid: bool
    events_checked: int
    break_at: Optional[str] = None
