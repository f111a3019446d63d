"""Pydantic schemas for the audit trail."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class AuditEventRead(BaseModel):
    id: UUID
    event_type: str
    actor_user_id: UUID | None
    target_type: str | None
    target_id: UUID | None
    details: dict | None
    ip_address: str | None
    request_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditEventListResponse(BaseModel):
    items: list[AuditEventRead]


class AuditChainStatus(BaseModel):
    valid: bool
    checked: int
    first_invalid_id: UUID | None = None
