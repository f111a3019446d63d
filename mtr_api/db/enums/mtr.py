"""MTR session enums."""

from enum import Enum


class MTRStatus(str, Enum):
    """Lifecycle status of an MTR session."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


# Statuses covered by the one-active-session-per-patient rule
ACTIVE_MTR_STATUSES = (MTRStatus.IN_PROGRESS.value, MTRStatus.ON_HOLD.value)


class MTRPriority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    HIGH_RISK = "high_risk"


class ReviewType(str, Enum):
    INITIAL = "initial"
    FOLLOW_UP = "follow_up"
    ANNUAL = "annual"
    TARGETED = "targeted"


class MTRStep(str, Enum):
    """
    The six workflow steps, in declared order.

    Values are the wire names used in the steps map and in URLs.
    """

    PATIENT_SELECTION = "patientSelection"
    MEDICATION_HISTORY = "medicationHistory"
    THERAPY_ASSESSMENT = "therapyAssessment"
    PLAN_DEVELOPMENT = "planDevelopment"
    INTERVENTIONS = "interventions"
    FOLLOW_UP = "followUp"


class MedicationCategory(str, Enum):
    PRESCRIBED = "prescribed"
    OTC = "otc"
    HERBAL = "herbal"
    SUPPLEMENT = "supplement"


class RecommendationType(str, Enum):
    """Therapy plan recommendation kinds."""

    DISCONTINUE = "discontinue"
    ADJUST_DOSE = "adjust_dose"
    SWITCH_THERAPY = "switch_therapy"
    ADD_THERAPY = "add_therapy"
    MONITOR = "monitor"


class Priority(str, Enum):
    """High/medium/low priority shared by recommendations, interventions and follow-ups."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
