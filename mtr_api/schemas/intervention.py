"""Pydantic schemas for MTR interventions."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from mtr_api.db.enums import (
    CommunicationMethod,
    InterventionCategory,
    InterventionOutcome,
    InterventionType,
    InterventionUrgency,
    Priority,
    TargetAudience,
)
from mtr_api.schemas.common import UTCDatetime


class InterventionCreate(BaseModel):
    """Request to record an intervention on a session."""
    review_id: UUID | None = None
    type: InterventionType
    category: InterventionCategory
    description: str = Field(..., min_length=1, max_length=1000)
    rationale: str = Field(..., min_length=1, max_length=1000)
    target_audience: TargetAudience
    communication_method: CommunicationMethod
    outcome: InterventionOutcome = InterventionOutcome.PENDING
    outcome_details: str | None = Field(None, max_length=1000)
    follow_up_required: bool = False
    follow_up_date: UTCDatetime | None = None
    documentation: str = Field("", max_length=2000)
    priority: Priority = Priority.MEDIUM
    urgency: InterventionUrgency = InterventionUrgency.ROUTINE
    performed_at: UTCDatetime | None = None


class InterventionUpdate(BaseModel):
    """Request to update an intervention (partial)."""
    review_id: UUID | None = None
    description: str | None = Field(None, min_length=1, max_length=1000)
    rationale: str | None = Field(None, min_length=1, max_length=1000)
    target_audience: TargetAudience | None = None
    communication_method: CommunicationMethod | None = None
    outcome: InterventionOutcome | None = None
    outcome_details: str | None = Field(None, max_length=1000)
    follow_up_required: bool | None = None
    follow_up_date: UTCDatetime | None = None
    follow_up_completed: bool | None = None
    documentation: str | None = Field(None, max_length=2000)
    priority: Priority | None = None
    urgency: InterventionUrgency | None = None


class InterventionComplete(BaseModel):
    outcome: InterventionOutcome
    details: str | None = Field(None, max_length=1000)


class InterventionRead(BaseModel):
    """Full intervention response."""
    id: UUID
    workplace_id: UUID
    patient_id: UUID
    review_id: UUID
    type: InterventionType
    category: InterventionCategory
    description: str
    rationale: str
    target_audience: TargetAudience
    communication_method: CommunicationMethod
    outcome: InterventionOutcome
    outcome_details: str | None
    follow_up_required: bool
    follow_up_date: datetime | None
    follow_up_completed: bool
    follow_up_status: str
    documentation: str
    priority: Priority
    urgency: InterventionUrgency
    is_effective: bool
    performed_by: UUID
    performed_at: datetime
    created_at: datetime
    updated_at: datetime
