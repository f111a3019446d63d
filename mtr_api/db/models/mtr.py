"""MTR session and clinical child-record models."""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mtr_api.core import mtr_steps
from mtr_api.core.config import settings
from mtr_api.db.base import Base
from mtr_api.db.enums import (
    DTPSeverity,
    DTPStatus,
    EvidenceLevel,
    FollowUpStatus,
    InterventionOutcome,
    InterventionUrgency,
    MTRPriority,
    MTRStatus,
    MTRStep,
    Priority,
    ReminderType,
)
from mtr_api.db.types import JSONType, utcnow


# Partial unique index predicate: one open session per patient
ACTIVE_SESSION_PREDICATE = "status IN ('in_progress', 'on_hold') AND NOT is_deleted"

# Minimum free-text lengths for records that need detailed documentation
CRITICAL_DESCRIPTION_MIN_LENGTH = 20
DEFINITE_SIGNIFICANCE_MIN_LENGTH = 20
HIGH_PRIORITY_DOCUMENTATION_MIN_LENGTH = 50

# Follow-up due date derived from intervention urgency
URGENCY_FOLLOW_UP_OFFSETS = {
    InterventionUrgency.IMMEDIATE.value: timedelta(hours=24),
    InterventionUrgency.WITHIN_24H.value: timedelta(hours=24),
    InterventionUrgency.WITHIN_WEEK.value: timedelta(days=7),
    InterventionUrgency.ROUTINE.value: timedelta(days=14),
}

# Default follow-up reminders: (offset before scheduled date, channel)
DEFAULT_REMINDER_OFFSETS = (
    (timedelta(days=1), ReminderType.SYSTEM.value),
    (timedelta(hours=2), ReminderType.EMAIL.value),
)

# Grace period for "scheduled date must not be in the past"
FOLLOW_UP_SCHEDULE_GRACE = timedelta(hours=1)

DTP_TYPE_DISPLAY = {
    "unnecessary": "Unnecessary Drug Therapy",
    "wrongDrug": "Wrong Drug",
    "doseTooLow": "Dose Too Low",
    "doseTooHigh": "Dose Too High",
    "adverseReaction": "Adverse Drug Reaction",
    "inappropriateAdherence": "Inappropriate Adherence",
    "needsAdditional": "Needs Additional Therapy",
    "interaction": "Drug Interaction",
    "duplication": "Duplicate Therapy",
    "contraindication": "Contraindication",
    "monitoring": "Monitoring Required",
}


def _days_between(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / 86400)


def _parse_ts(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def default_clinical_outcomes() -> dict[str, Any]:
    return {
        "problems_resolved": 0,
        "medications_optimized": 0,
        "adherence_improved": False,
        "adverse_events_reduced": False,
        "quality_of_life_improved": None,
        "clinical_parameters_improved": None,
        "cost_savings": None,
    }


# =============================================================================
# MTR Session
# =============================================================================


class MTRSession(Base):
    """
    One medication therapy review episode for one patient.

    Problems, interventions and follow-ups are separate tables related by
    review_id; the relationships below are read-only views over them.

    Concurrency:
    - version is the mapper's version_id_col, so concurrent writers to the
      same session get StaleDataError instead of a lost update.
    - uq_mtr_active_session_per_patient enforces at most one open session
      per patient at the storage layer.
    """

    __tablename__ = "mtr_sessions"
    __table_args__ = (
        UniqueConstraint("workplace_id", "review_number", name="uq_mtr_review_number"),
        Index(
            "uq_mtr_active_session_per_patient",
            "patient_id",
            unique=True,
            postgresql_where=text(ACTIVE_SESSION_PREDICATE),
            sqlite_where=text(ACTIVE_SESSION_PREDICATE),
        ),
        Index("idx_mtr_sessions_workplace_status", "workplace_id", "status"),
        Index("idx_mtr_sessions_workplace_created", "workplace_id", "created_at"),
        Index("idx_mtr_sessions_patient_created", "patient_id", "created_at"),
        Index("idx_mtr_sessions_pharmacist", "workplace_id", "pharmacist_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workplaces.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    pharmacist_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # MTR-YYYYMM-NNNN, unique per workplace
    review_number: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=MTRStatus.IN_PROGRESS.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(20), default=MTRPriority.ROUTINE.value, nullable=False
    )
    review_type: Mapped[str] = mapped_column(String(20), default="initial", nullable=False)

    # {step_name: {completed, completed_at, data}}
    steps: Mapped[dict] = mapped_column(
        JSONType, default=mtr_steps.build_initial_steps, nullable=False
    )
    medications: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    plan: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    clinical_outcomes: Mapped[dict] = mapped_column(
        JSONType, default=default_clinical_outcomes, nullable=False
    )

    patient_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    confidentiality_agreed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    started_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_review_date: Mapped[datetime | None] = mapped_column(nullable=True)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    referral_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    review_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    problems: Mapped[list["DrugTherapyProblem"]] = relationship(
        primaryjoin="and_(DrugTherapyProblem.review_id == MTRSession.id, "
        "DrugTherapyProblem.is_deleted.is_(False))",
        order_by="DrugTherapyProblem.created_at",
        viewonly=True,
    )
    interventions: Mapped[list["MTRIntervention"]] = relationship(
        primaryjoin="and_(MTRIntervention.review_id == MTRSession.id, "
        "MTRIntervention.is_deleted.is_(False))",
        order_by="MTRIntervention.created_at",
        viewonly=True,
    )
    follow_ups: Mapped[list["MTRFollowUp"]] = relationship(
        primaryjoin="and_(MTRFollowUp.review_id == MTRSession.id, "
        "MTRFollowUp.is_deleted.is_(False))",
        order_by="MTRFollowUp.created_at",
        viewonly=True,
    )

    # -------------------------------------------------------------------------
    # Step state
    # -------------------------------------------------------------------------

    def is_step_completed(self, step: MTRStep) -> bool:
        return mtr_steps.is_step_completed(self.steps, step)

    @property
    def completion_percentage(self) -> int:
        return mtr_steps.completion_percentage(self.steps)

    @property
    def next_step(self) -> MTRStep | None:
        return mtr_steps.get_next_step(self.steps)

    def mark_step_complete(
        self, step: MTRStep, data: dict[str, Any] | None = None, now: datetime | None = None
    ) -> None:
        """Set completed=True and completed_at=now, storing data when given."""
        self.steps = mtr_steps.with_step_completed(self.steps, step, now or utcnow(), data)

    def unmark_step(self, step: MTRStep, data: dict[str, Any] | None = None) -> None:
        """Clear completed/completed_at; overwrite data only when given."""
        self.steps = mtr_steps.with_step_cleared(self.steps, step, data)

    def update_step_data(self, step: MTRStep, **values: Any) -> None:
        """Merge values into a step's data without touching its completion."""
        steps = {k: dict(v) for k, v in (self.steps or mtr_steps.build_initial_steps()).items()}
        state = steps.setdefault(step.value, {"completed": False, "completed_at": None, "data": None})
        state["data"] = {**(state.get("data") or {}), **values}
        self.steps = steps

    # -------------------------------------------------------------------------
    # Derived
    # -------------------------------------------------------------------------

    def duration_days(self, now: datetime | None = None) -> int:
        end = self.completed_at or now or utcnow()
        return _days_between(self.started_at, end)

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Open sessions older than the priority's allowance."""
        if self.status in (MTRStatus.COMPLETED.value, MTRStatus.CANCELLED.value):
            return False
        days_open = ((now or utcnow()) - self.started_at).total_seconds() / 86400
        if self.priority == MTRPriority.ROUTINE.value:
            return days_open > settings.MTR_ROUTINE_OVERDUE_DAYS
        return days_open > settings.MTR_URGENT_OVERDUE_DAYS


# =============================================================================
# Drug Therapy Problem
# =============================================================================


class DrugTherapyProblem(Base):
    """
    One identified medication-related problem tied to an MTR session.

    Created by the interaction assessment or directly by a pharmacist.
    Soft-deleted only.
    """

    __tablename__ = "drug_therapy_problems"
    __table_args__ = (
        Index("idx_dtp_review", "review_id", "created_at"),
        Index("idx_dtp_workplace_status", "workplace_id", "status"),
        Index("idx_dtp_workplace_severity", "workplace_id", "severity"),
        Index("idx_dtp_patient", "patient_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workplaces.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    review_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("mtr_sessions.id", ondelete="CASCADE"), nullable=False
    )

    category: Mapped[str] = mapped_column(String(20), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    evidence_level: Mapped[str] = mapped_column(String(20), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    clinical_significance: Mapped[str | None] = mapped_column(Text, nullable=True)
    affected_medications: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    related_conditions: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    risk_factors: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=DTPStatus.IDENTIFIED.value, nullable=False
    )
    # {action, outcome, resolved_at, resolved_by}
    resolution: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    identified_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    identified_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def priority(self) -> str:
        """high / medium / low from severity and evidence level."""
        if self.is_critical:
            return Priority.HIGH.value
        if self.severity == DTPSeverity.MAJOR.value:
            if self.evidence_level in (EvidenceLevel.DEFINITE.value, EvidenceLevel.PROBABLE.value):
                return Priority.HIGH.value
            return Priority.MEDIUM.value
        if self.severity == DTPSeverity.MODERATE.value and self.evidence_level == EvidenceLevel.DEFINITE.value:
            return Priority.MEDIUM.value
        return Priority.LOW.value

    @property
    def type_display(self) -> str:
        return DTP_TYPE_DISPLAY.get(self.type, self.type)

    @property
    def is_high_severity(self) -> bool:
        return self.severity in (DTPSeverity.CRITICAL.value, DTPSeverity.MAJOR.value)

    @property
    def is_critical(self) -> bool:
        return self.severity == DTPSeverity.CRITICAL.value

    @property
    def is_open(self) -> bool:
        return self.status not in (DTPStatus.RESOLVED.value, DTPStatus.NOT_APPLICABLE.value)

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Critical problems open > 1 day, major > 3 days."""
        if not self.is_open:
            return False
        age = (now or utcnow()) - self.identified_at
        if self.is_critical:
            return age > timedelta(days=1)
        if self.severity == DTPSeverity.MAJOR.value:
            return age > timedelta(days=3)
        return False

    def resolution_duration_days(self) -> int | None:
        resolved_at = _parse_ts((self.resolution or {}).get("resolved_at"))
        if self.status != DTPStatus.RESOLVED.value or not resolved_at:
            return None
        return _days_between(self.identified_at, resolved_at)

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if (
            self.is_critical
            and len((self.description or "").strip()) < CRITICAL_DESCRIPTION_MIN_LENGTH
        ):
            errors.append("Critical severity DTPs require detailed description")
        if (
            self.evidence_level == EvidenceLevel.DEFINITE.value
            and len((self.clinical_significance or "").strip()) < DEFINITE_SIGNIFICANCE_MIN_LENGTH
        ):
            errors.append(
                "DTPs with definite evidence level require clinical significance explanation"
            )
        return errors

    def set_status(self, status: str, now: datetime | None = None) -> None:
        """
        Change status, keeping resolution in step.

        Moving to resolved without resolution details fills in a default
        resolution; moving away clears resolved_at.
        """
        now = now or utcnow()
        self.status = status
        resolution = dict(self.resolution or {})
        if status == DTPStatus.RESOLVED.value:
            resolution.setdefault("action", "Status updated to resolved")
            resolution.setdefault("outcome", "Problem resolved")
            if not resolution.get("resolved_at"):
                resolution["resolved_at"] = now.isoformat()
            self.resolution = resolution
        elif self.resolution is not None:
            resolution["resolved_at"] = None
            self.resolution = resolution

    def resolve(
        self, action: str, outcome: str, resolved_by: uuid.UUID, now: datetime | None = None
    ) -> None:
        now = now or utcnow()
        self.resolution = {
            "action": action,
            "outcome": outcome,
            "resolved_at": now.isoformat(),
            "resolved_by": str(resolved_by),
        }
        self.status = DTPStatus.RESOLVED.value
        self.updated_by = resolved_by

    def reopen(self, reopened_by: uuid.UUID) -> None:
        self.status = DTPStatus.IDENTIFIED.value
        if self.resolution is not None:
            self.resolution = {**self.resolution, "resolved_at": None}
        self.updated_by = reopened_by


# =============================================================================
# Intervention
# =============================================================================


class MTRIntervention(Base):
    """One documented pharmacist action tied to an MTR session."""

    __tablename__ = "mtr_interventions"
    __table_args__ = (
        Index("idx_mtr_interventions_review", "review_id", "created_at"),
        Index("idx_mtr_interventions_workplace_outcome", "workplace_id", "outcome"),
        Index(
            "idx_mtr_interventions_follow_up",
            "workplace_id",
            "follow_up_required",
            "follow_up_date",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workplaces.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    review_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("mtr_sessions.id", ondelete="CASCADE"), nullable=False
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    target_audience: Mapped[str] = mapped_column(String(30), nullable=False)
    communication_method: Mapped[str] = mapped_column(String(20), nullable=False)

    outcome: Mapped[str] = mapped_column(
        String(20), default=InterventionOutcome.PENDING.value, nullable=False
    )
    outcome_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    follow_up_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    follow_up_date: Mapped[datetime | None] = mapped_column(nullable=True)
    follow_up_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    documentation: Mapped[str] = mapped_column(Text, default="", nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), default=Priority.MEDIUM.value, nullable=False
    )
    urgency: Mapped[str] = mapped_column(
        String(20), default=InterventionUrgency.ROUTINE.value, nullable=False
    )

    performed_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    performed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    def apply_follow_up_defaults(self) -> None:
        """Derive the follow-up date from urgency, or clear it when not required."""
        if not self.follow_up_required:
            self.follow_up_date = None
            self.follow_up_completed = False
            return
        if self.follow_up_date is None:
            urgency = self.urgency or InterventionUrgency.ROUTINE.value
            self.follow_up_date = self.performed_at + URGENCY_FOLLOW_UP_OFFSETS[urgency]

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if (
            self.priority == Priority.HIGH.value
            and len((self.documentation or "").strip()) < HIGH_PRIORITY_DOCUMENTATION_MIN_LENGTH
        ):
            errors.append("High priority interventions require detailed documentation")
        if self.follow_up_date is not None and self.follow_up_date <= self.performed_at:
            errors.append("Follow-up date must be after intervention date")
        return errors

    def mark_completed(self, outcome: str, details: str | None = None) -> None:
        self.outcome = outcome
        if details is not None:
            self.outcome_details = details
        if self.follow_up_required and outcome in (
            InterventionOutcome.ACCEPTED.value,
            InterventionOutcome.MODIFIED.value,
        ):
            self.follow_up_completed = True

    @property
    def requires_follow_up(self) -> bool:
        return self.follow_up_required and not self.follow_up_completed

    @property
    def is_effective(self) -> bool:
        return self.outcome in (
            InterventionOutcome.ACCEPTED.value,
            InterventionOutcome.MODIFIED.value,
        )

    def is_overdue(self, now: datetime | None = None) -> bool:
        if not self.requires_follow_up or self.follow_up_date is None:
            return False
        return self.follow_up_date < (now or utcnow())

    def follow_up_status(self, now: datetime | None = None) -> str:
        """not_required / completed / overdue / pending."""
        if not self.follow_up_required:
            return "not_required"
        if self.follow_up_completed:
            return "completed"
        if self.is_overdue(now):
            return "overdue"
        return "pending"


# =============================================================================
# Follow-up
# =============================================================================


class FollowUpTransitionError(ValueError):
    """Follow-up cannot move to the requested state."""


class MTRFollowUp(Base):
    """
    One scheduled monitoring or contact event tied to an MTR session.

    reminders is a list of {type, scheduled_for, sent, sent_at, message}.
    """

    __tablename__ = "mtr_follow_ups"
    __table_args__ = (
        Index("idx_mtr_follow_ups_review", "review_id", "created_at"),
        Index("idx_mtr_follow_ups_workplace_scheduled", "workplace_id", "status", "scheduled_date"),
        Index("idx_mtr_follow_ups_assignee", "assigned_to", "scheduled_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workplace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workplaces.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    review_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("mtr_sessions.id", ondelete="CASCADE"), nullable=False
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), default=Priority.MEDIUM.value, nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    objectives: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    scheduled_date: Mapped[datetime] = mapped_column(nullable=False)
    estimated_duration: Mapped[int] = mapped_column(Integer, default=30, nullable=False)  # minutes
    assigned_to: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=FollowUpStatus.SCHEDULED.value, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rescheduled_from: Mapped[datetime | None] = mapped_column(nullable=True)
    rescheduled_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reminders: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    outcome: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    related_interventions: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    def schedule_default_reminders(self, now: datetime | None = None) -> None:
        """Add the default reminders that still fall in the future."""
        now = now or utcnow()
        reminders = list(self.reminders or [])
        for offset, reminder_type in DEFAULT_REMINDER_OFFSETS:
            reminder_time = self.scheduled_date - offset
            if now < reminder_time < self.scheduled_date:
                reminders.append(
                    {
                        "type": reminder_type,
                        "scheduled_for": reminder_time.isoformat(),
                        "sent": False,
                        "sent_at": None,
                        "message": None,
                    }
                )
        self.reminders = reminders

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if self.priority == Priority.HIGH.value and not self.objectives:
            errors.append("High priority follow-ups must have at least one objective")
        if self.status == FollowUpStatus.COMPLETED.value and not self.outcome:
            errors.append("Outcome is required when follow-up is completed")
        return errors

    def set_status(self, status: str, now: datetime | None = None) -> None:
        """Change status; completed stamps completed_at, anything else clears it."""
        if status == FollowUpStatus.COMPLETED.value:
            if self.status != FollowUpStatus.COMPLETED.value or self.completed_at is None:
                self.completed_at = now or utcnow()
        else:
            self.completed_at = None
        self.status = status

    def mark_completed(self, outcome: dict[str, Any], now: datetime | None = None) -> None:
        self.outcome = outcome
        self.set_status(FollowUpStatus.COMPLETED.value, now)

    @property
    def can_reschedule(self) -> bool:
        return self.status in (FollowUpStatus.SCHEDULED.value, FollowUpStatus.MISSED.value)

    def reschedule(
        self, new_date: datetime, reason: str | None = None, now: datetime | None = None
    ) -> None:
        if not self.can_reschedule:
            raise FollowUpTransitionError("Follow-up cannot be rescheduled in current status")
        self.rescheduled_from = self.scheduled_date
        self.scheduled_date = new_date
        self.set_status(FollowUpStatus.SCHEDULED.value)
        if reason:
            self.rescheduled_reason = reason
        self.reminders = []
        self.schedule_default_reminders(now)

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.status in (FollowUpStatus.COMPLETED.value, FollowUpStatus.CANCELLED.value):
            return False
        return self.scheduled_date < (now or utcnow())

    def days_until(self, now: datetime | None = None) -> int | None:
        if self.status in (FollowUpStatus.COMPLETED.value, FollowUpStatus.CANCELLED.value):
            return None
        return _days_between(now or utcnow(), self.scheduled_date)

    @property
    def reminder_status(self) -> str:
        reminders = self.reminders or []
        if not reminders:
            return "none"
        sent = sum(1 for r in reminders if r.get("sent"))
        if sent == 0:
            return "pending"
        if sent == len(reminders):
            return "all_sent"
        return "partial"
