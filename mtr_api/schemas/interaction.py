"""Pydantic schemas for interaction checks and assessments."""

from uuid import UUID

from pydantic import BaseModel, Field

from mtr_api.schemas.mtr import MedicationEntry
from mtr_api.schemas.problem import ProblemRead


class InteractionCheckRequest(BaseModel):
    """Stateless check over an ad-hoc medication list."""
    medications: list[MedicationEntry] = Field(..., min_length=1)


class InteractionRead(BaseModel):
    drug1: str
    drug2: str
    severity: str
    mechanism: str
    clinical_effect: str
    management: str
    references: list[str]


class DuplicateTherapyRead(BaseModel):
    therapeutic_class: str
    medications: list[str]
    reason: str
    recommendation: str


class ContraindicationRead(BaseModel):
    medication: str
    condition: str
    severity: str
    reason: str
    alternatives: list[str]


class InteractionReportRead(BaseModel):
    has_interactions: bool
    interactions: list[InteractionRead]
    duplicate_therapies: list[DuplicateTherapyRead]
    contraindications: list[ContraindicationRead]
    severity: str


class InteractionCheckResponse(BaseModel):
    report: InteractionReportRead
    knowledge_base_version: str


class InteractionAssessmentResponse(BaseModel):
    session_id: UUID
    interactions: InteractionReportRead
    problems: list[ProblemRead]
