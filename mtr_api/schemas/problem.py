"""Pydantic schemas for drug therapy problems."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from mtr_api.db.enums import DTPCategory, DTPSeverity, DTPStatus, DTPType, EvidenceLevel
from mtr_api.schemas.common import ShortText


class ProblemCreate(BaseModel):
    """Request to record a drug therapy problem on a session."""
    review_id: UUID | None = Field(
        None, description="Optional; must match the session in the path when given"
    )
    category: DTPCategory
    subcategory: str | None = Field(None, max_length=100)
    type: DTPType
    severity: DTPSeverity
    evidence_level: EvidenceLevel
    description: str = Field(..., min_length=1, max_length=1000)
    clinical_significance: str | None = Field(None, max_length=1000)
    affected_medications: list[ShortText] = Field(default_factory=list)
    related_conditions: list[ShortText] = Field(default_factory=list)
    risk_factors: list[ShortText] = Field(default_factory=list)


class ProblemUpdate(BaseModel):
    """Request to update a drug therapy problem (partial)."""
    review_id: UUID | None = None
    category: DTPCategory | None = None
    subcategory: str | None = Field(None, max_length=100)
    type: DTPType | None = None
    severity: DTPSeverity | None = None
    evidence_level: EvidenceLevel | None = None
    description: str | None = Field(None, min_length=1, max_length=1000)
    clinical_significance: str | None = Field(None, max_length=1000)
    affected_medications: list[ShortText] | None = None
    related_conditions: list[ShortText] | None = None
    risk_factors: list[ShortText] | None = None
    status: DTPStatus | None = None
    resolution_action: str | None = Field(None, max_length=500)
    resolution_outcome: str | None = Field(None, max_length=500)


class ProblemResolve(BaseModel):
    action: str = Field(..., min_length=1, max_length=500)
    outcome: str = Field(..., min_length=1, max_length=500)


class ProblemResolutionRead(BaseModel):
    action: str | None = None
    outcome: str | None = None
    resolved_at: datetime | None = None
    resolved_by: UUID | None = None


class ProblemRead(BaseModel):
    """Full drug therapy problem response."""
    id: UUID
    workplace_id: UUID
    patient_id: UUID
    review_id: UUID
    category: DTPCategory
    subcategory: str | None
    type: DTPType
    type_display: str
    severity: DTPSeverity
    evidence_level: EvidenceLevel
    priority: str
    description: str
    clinical_significance: str | None
    affected_medications: list[str]
    related_conditions: list[str]
    risk_factors: list[str]
    status: DTPStatus
    resolution: ProblemResolutionRead | None
    identified_by: UUID
    identified_at: datetime
    is_high_severity: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
