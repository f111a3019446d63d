"""Enum definitions for application constants."""

from mtr_api.db.enums.audit import AuditEventType
from mtr_api.db.enums.follow_ups import (
    FollowUpOutcomeStatus,
    FollowUpStatus,
    FollowUpType,
    ReminderType,
)
from mtr_api.db.enums.interventions import (
    CommunicationMethod,
    InterventionCategory,
    InterventionOutcome,
    InterventionType,
    InterventionUrgency,
    TargetAudience,
)
from mtr_api.db.enums.mtr import (
    ACTIVE_MTR_STATUSES,
    MedicationCategory,
    MTRPriority,
    MTRStatus,
    MTRStep,
    Priority,
    RecommendationType,
    ReviewType,
)
from mtr_api.db.enums.problems import (
    ContraindicationSeverity,
    DTPCategory,
    DTPSeverity,
    DTPStatus,
    DTPType,
    EvidenceLevel,
)

__all__ = [
    "ACTIVE_MTR_STATUSES",
    "AuditEventType",
    "CommunicationMethod",
    "ContraindicationSeverity",
    "DTPCategory",
    "DTPSeverity",
    "DTPStatus",
    "DTPType",
    "EvidenceLevel",
    "FollowUpOutcomeStatus",
    "FollowUpStatus",
    "FollowUpType",
    "InterventionCategory",
    "InterventionOutcome",
    "InterventionType",
    "InterventionUrgency",
    "MedicationCategory",
    "MTRPriority",
    "MTRStatus",
    "MTRStep",
    "Priority",
    "RecommendationType",
    "ReminderType",
    "ReviewType",
    "TargetAudience",
]
