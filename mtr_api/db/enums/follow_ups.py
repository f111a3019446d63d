"""MTR follow-up enums."""

from enum import Enum


class FollowUpType(str, Enum):
    PHONE_CALL = "phone_call"
    APPOINTMENT = "appointment"
    LAB_REVIEW = "lab_review"
    ADHERENCE_CHECK = "adherence_check"
    OUTCOME_ASSESSMENT = "outcome_assessment"


class FollowUpStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MISSED = "missed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"


class ReminderType(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    SYSTEM = "system"


class FollowUpOutcomeStatus(str, Enum):
    SUCCESSFUL = "successful"
    PARTIALLY_SUCCESSFUL = "partially_successful"
    UNSUCCESSFUL = "unsuccessful"
