"""Audit event enums."""

from enum import Enum


class AuditEventType(str, Enum):
    """
    MTR audit trail events.

    Written to audit_logs in the same transaction as the change they describe.
    """

    # Sessions
    MTR_SESSION_CREATED = "mtr_session_created"
    MTR_SESSION_UPDATED = "mtr_session_updated"
    MTR_SESSION_DELETED = "mtr_session_deleted"
    MTR_STEP_COMPLETED = "mtr_step_completed"
    MTR_STEP_REOPENED = "mtr_step_reopened"
    MTR_SESSION_COMPLETED = "mtr_session_completed"

    # Drug therapy problems
    DTP_IDENTIFIED = "dtp_identified"
    DTP_UPDATED = "dtp_updated"
    DTP_RESOLVED = "dtp_resolved"
    DTP_DELETED = "dtp_deleted"

    # Interventions
    MTR_INTERVENTION_RECORDED = "mtr_intervention_recorded"
    MTR_INTERVENTION_UPDATED = "mtr_intervention_updated"

    # Follow-ups
    MTR_FOLLOW_UP_SCHEDULED = "mtr_follow_up_scheduled"
    MTR_FOLLOW_UP_UPDATED = "mtr_follow_up_updated"
