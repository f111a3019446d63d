"""SQLAlchemy ORM models."""

from mtr_api.db.models.audit import AuditLog
from mtr_api.db.models.mtr import (
    DrugTherapyProblem,
    MTRFollowUp,
    MTRIntervention,
    MTRSession,
)
from mtr_api.db.models.workplace import Patient, Workplace, WorkplaceCounter

__all__ = [
    "AuditLog",
    "DrugTherapyProblem",
    "MTRFollowUp",
    "MTRIntervention",
    "MTRSession",
    "Patient",
    "Workplace",
    "WorkplaceCounter",
]
