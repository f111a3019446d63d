"""Pydantic schemas for MTR follow-ups."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field

from mtr_api.db.enums import (
    FollowUpOutcomeStatus,
    FollowUpStatus,
    FollowUpType,
    Priority,
    ReminderType,
)
from mtr_api.schemas.common import UTCDatetime

# Follow-up objectives are short checklist items
Objective = Annotated[str, Field(min_length=1, max_length=300)]


class FollowUpOutcome(BaseModel):
    status: FollowUpOutcomeStatus
    notes: str | None = Field(None, max_length=1000)
    next_actions: list[str] = Field(default_factory=list)
    next_follow_up_date: UTCDatetime | None = None
    adherence_improved: bool | None = None
    problems_resolved: list[UUID] = Field(default_factory=list)
    new_problems_identified: list[UUID] = Field(default_factory=list)


class FollowUpCreate(BaseModel):
    """Request to schedule a follow-up on a session."""
    review_id: UUID | None = None
    type: FollowUpType
    priority: Priority = Priority.MEDIUM
    description: str = Field(..., min_length=1, max_length=1000)
    objectives: list[Objective] = Field(default_factory=list)
    scheduled_date: UTCDatetime
    estimated_duration: int = Field(30, ge=5, le=480)
    assigned_to: UUID | None = Field(None, description="Defaults to the requesting user")
    related_interventions: list[UUID] = Field(default_factory=list)


class FollowUpUpdate(BaseModel):
    """Request to update a follow-up (partial)."""
    review_id: UUID | None = None
    priority: Priority | None = None
    description: str | None = Field(None, min_length=1, max_length=1000)
    objectives: list[Objective] | None = None
    estimated_duration: int | None = Field(None, ge=5, le=480)
    assigned_to: UUID | None = None
    status: FollowUpStatus | None = None
    outcome: FollowUpOutcome | None = None


class FollowUpReschedule(BaseModel):
    new_date: UTCDatetime
    reason: str | None = Field(None, max_length=500)


class FollowUpComplete(BaseModel):
    outcome: FollowUpOutcome


class ReminderRead(BaseModel):
    type: ReminderType
    scheduled_for: datetime
    sent: bool
    sent_at: datetime | None = None
    message: str | None = None


class FollowUpRead(BaseModel):
    """Full follow-up response."""
    id: UUID
    workplace_id: UUID
    patient_id: UUID
    review_id: UUID
    type: FollowUpType
    priority: Priority
    description: str
    objectives: list[str]
    scheduled_date: datetime
    estimated_duration: int
    assigned_to: UUID
    status: FollowUpStatus
    completed_at: datetime | None
    rescheduled_from: datetime | None
    rescheduled_reason: str | None
    reminders: list[ReminderRead]
    reminder_status: str
    outcome: FollowUpOutcome | None
    related_interventions: list[UUID]
    is_overdue: bool
    days_until: int | None
    created_at: datetime
    updated_at: datetime
