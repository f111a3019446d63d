"""MTR intervention enums."""

from enum import Enum


class InterventionType(str, Enum):
    RECOMMENDATION = "recommendation"
    COUNSELING = "counseling"
    MONITORING = "monitoring"
    COMMUNICATION = "communication"
    EDUCATION = "education"


class InterventionCategory(str, Enum):
    MEDICATION_CHANGE = "medication_change"
    ADHERENCE_SUPPORT = "adherence_support"
    MONITORING_PLAN = "monitoring_plan"
    PATIENT_EDUCATION = "patient_education"


class TargetAudience(str, Enum):
    PATIENT = "patient"
    PRESCRIBER = "prescriber"
    CAREGIVER = "caregiver"
    HEALTHCARE_TEAM = "healthcare_team"


class CommunicationMethod(str, Enum):
    VERBAL = "verbal"
    WRITTEN = "written"
    PHONE = "phone"
    EMAIL = "email"
    FAX = "fax"
    IN_PERSON = "in_person"


class InterventionOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"
    PENDING = "pending"
    NOT_APPLICABLE = "not_applicable"


class InterventionUrgency(str, Enum):
    """How soon the intervention needs a follow-up."""

    IMMEDIATE = "immediate"
    WITHIN_24H = "within_24h"
    WITHIN_WEEK = "within_week"
    ROUTINE = "routine"
