"""Pydantic schemas for MTR sessions."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from mtr_api.db.enums import (
    MedicationCategory,
    MTRPriority,
    MTRStatus,
    Priority,
    RecommendationType,
    ReviewType,
)
from mtr_api.schemas.common import UTCDatetime


# =============================================================================
# Medications
# =============================================================================

class MedicationStrength(BaseModel):
    value: float = Field(..., ge=0)
    unit: str = Field(..., max_length=20)


class MedicationInstructions(BaseModel):
    dose: str = Field("", max_length=100)
    frequency: str = Field("", max_length=100)
    route: str = Field("", max_length=50)
    duration: str | None = Field(None, max_length=100)


class Prescriber(BaseModel):
    name: str = Field(..., max_length=100)
    license: str | None = Field(None, max_length=50)
    contact: str | None = Field(None, max_length=100)


class MedicationEntry(BaseModel):
    """One medication in the session's medication history.

    Completeness (drug name, indication, dose, frequency) is checked by the
    medication-history step, so partially filled entries can be saved.
    """
    drug_name: str = Field("", max_length=200)
    generic_name: str | None = Field(None, max_length=200)
    strength: MedicationStrength | None = None
    dosage_form: str | None = Field(None, max_length=50)
    instructions: MedicationInstructions = Field(default_factory=MedicationInstructions)
    category: MedicationCategory = MedicationCategory.PRESCRIBED
    prescriber: Prescriber | None = None
    start_date: date | None = None
    end_date: date | None = None
    indication: str = Field("", max_length=200)
    adherence_score: int | None = Field(None, ge=0, le=100)
    notes: str | None = Field(None, max_length=500)


# =============================================================================
# Therapy plan
# =============================================================================

class Recommendation(BaseModel):
    type: RecommendationType
    medication: str | None = Field(None, max_length=200)
    rationale: str = Field("", max_length=1000)
    priority: Priority = Priority.MEDIUM
    expected_outcome: str = Field("", max_length=500)


class MonitoringParameter(BaseModel):
    parameter: str = Field(..., min_length=1, max_length=200)
    frequency: str = Field(..., min_length=1, max_length=100)
    target_value: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=500)


class TherapyGoal(BaseModel):
    description: str = Field(..., min_length=1, max_length=300)
    target_date: date | None = None
    achieved: bool = False
    achieved_date: date | None = None


class TherapyPlan(BaseModel):
    recommendations: list[Recommendation] = Field(default_factory=list)
    monitoring_plan: list[MonitoringParameter] = Field(default_factory=list)
    counseling_points: list[str] = Field(default_factory=list)
    goals: list[TherapyGoal] = Field(default_factory=list)
    timeline: str | None = Field(None, max_length=500)
    pharmacist_notes: str | None = Field(None, max_length=2000)


class ClinicalOutcomes(BaseModel):
    problems_resolved: int = Field(0, ge=0)
    medications_optimized: int = Field(0, ge=0)
    adherence_improved: bool = False
    adverse_events_reduced: bool = False
    quality_of_life_improved: bool | None = None
    clinical_parameters_improved: bool | None = None
    cost_savings: float | None = Field(None, ge=0)


# =============================================================================
# Requests
# =============================================================================

class MTRSessionCreate(BaseModel):
    """Request to start an MTR session."""
    patient_id: UUID
    priority: MTRPriority = MTRPriority.ROUTINE
    review_type: ReviewType = ReviewType.INITIAL
    referral_source: str | None = Field(None, max_length=100)
    review_reason: str | None = Field(None, max_length=500)
    patient_consent: bool = False
    confidentiality_agreed: bool = False
    estimated_duration: int | None = Field(None, ge=1, le=480)
    next_review_date: UTCDatetime | None = None


class MTRSessionUpdate(BaseModel):
    """Request to update an MTR session (partial)."""
    priority: MTRPriority | None = None
    review_type: ReviewType | None = None
    status: MTRStatus | None = Field(
        None, description="in_progress, on_hold or cancelled; use /complete to finish"
    )
    medications: list[MedicationEntry] | None = None
    plan: TherapyPlan | None = None
    clinical_outcomes: ClinicalOutcomes | None = None
    patient_consent: bool | None = None
    confidentiality_agreed: bool | None = None
    referral_source: str | None = Field(None, max_length=100)
    review_reason: str | None = Field(None, max_length=500)
    estimated_duration: int | None = Field(None, ge=1, le=480)
    next_review_date: UTCDatetime | None = None
    expected_version: int | None = Field(None, ge=1)


class StepUpdate(BaseModel):
    """Complete or reopen a workflow step."""
    completed: bool = True
    data: dict[str, Any] | None = None
    expected_version: int | None = Field(None, ge=1)


class SessionVersion(BaseModel):
    expected_version: int | None = Field(None, ge=1)


# =============================================================================
# Responses
# =============================================================================

class StepStateRead(BaseModel):
    completed: bool
    completed_at: datetime | None = None
    data: dict[str, Any] | None = None


class StepValidationRead(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    can_proceed: bool


class WorkflowStepRead(BaseModel):
    name: str
    title: str
    description: str
    required: bool
    dependencies: list[str]
    order: int


class MTRSessionRead(BaseModel):
    """Full MTR session response."""
    id: UUID
    workplace_id: UUID
    patient_id: UUID
    pharmacist_id: UUID
    review_number: str
    status: MTRStatus
    priority: MTRPriority
    review_type: ReviewType

    steps: dict[str, StepStateRead]
    medications: list[MedicationEntry]
    plan: TherapyPlan | None
    clinical_outcomes: ClinicalOutcomes

    problem_ids: list[UUID] = Field(default_factory=list)
    intervention_ids: list[UUID] = Field(default_factory=list)
    follow_up_ids: list[UUID] = Field(default_factory=list)

    patient_consent: bool
    confidentiality_agreed: bool
    referral_source: str | None
    review_reason: str | None
    estimated_duration: int | None
    next_review_date: datetime | None

    started_at: datetime
    completed_at: datetime | None
    created_by: UUID
    updated_by: UUID | None
    created_at: datetime
    updated_at: datetime
    version: int

    completion_percentage: int
    next_step: str | None
    can_complete: bool = False
    duration_days: int
    is_overdue: bool


class MTRSessionListItem(BaseModel):
    """Compact session for list views."""
    id: UUID
    patient_id: UUID
    pharmacist_id: UUID
    review_number: str
    status: MTRStatus
    priority: MTRPriority
    review_type: ReviewType
    completion_percentage: int
    next_step: str | None
    is_overdue: bool
    started_at: datetime
    completed_at: datetime | None
    created_at: datetime


class MTRSessionListResponse(BaseModel):
    """Paginated session list."""
    items: list[MTRSessionListItem]
    total: int
    page: int
    per_page: int
    pages: int


class StepUpdateResponse(BaseModel):
    session: MTRSessionRead
    validation: StepValidationRead


class ProgressRead(BaseModel):
    session_id: UUID
    completion_percentage: int
    next_step: str | None
    can_complete: bool
    completion_errors: list[str]
    steps: dict[str, StepStateRead]
    version: int
