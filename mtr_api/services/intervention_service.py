"""Intervention service - pharmacist actions recorded against an MTR session."""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from mtr_api.core.exceptions import MTRValidationError, NotFoundError, SessionMismatchError
from mtr_api.core.structured_logging import build_log_context
from mtr_api.db.enums import AuditEventType
from mtr_api.db.models import MTRIntervention, MTRSession
from mtr_api.db.types import utcnow
from mtr_api.schemas.intervention import (
    InterventionCreate,
    InterventionRead,
    InterventionUpdate,
)
from mtr_api.services import audit_service
from mtr_api.services.mtr_service import (
    check_review_id,
    commit_changes,
    flush_changes,
    touch_session,
)

logger = logging.getLogger(__name__)

TARGET_TYPE = "mtr_intervention"

_ENUM_FIELDS = {"target_audience", "communication_method", "outcome", "priority", "urgency"}
_PLAIN_FIELDS = {
    "description",
    "rationale",
    "outcome_details",
    "follow_up_required",
    "follow_up_date",
    "follow_up_completed",
    "documentation",
}
# Fields that can be cleared (set to None)
_CLEARABLE_FIELDS = {"outcome_details", "follow_up_date"}


def _raise_if_invalid(db: Session, intervention: MTRIntervention) -> None:
    errors = intervention.validation_errors()
    if errors:
        db.rollback()
        raise MTRValidationError(f"Invalid intervention: {', '.join(errors)}", errors)


def list_interventions(
    db: Session,
    session: MTRSession,
    outcome: str | None = None,
) -> list[MTRIntervention]:
    query = db.query(MTRIntervention).filter(
        MTRIntervention.review_id == session.id,
        MTRIntervention.is_deleted.is_(False),
    )
    if outcome:
        query = query.filter(MTRIntervention.outcome == outcome)
    return query.order_by(MTRIntervention.created_at.asc()).all()


def get_intervention(db: Session, session: MTRSession, intervention_id: UUID) -> MTRIntervention:
    """
    Load an intervention through its session.

    Raises:
        NotFoundError: missing, deleted or outside the session's workplace
        SessionMismatchError: intervention belongs to another session
    """
    intervention = (
        db.query(MTRIntervention)
        .filter(
            MTRIntervention.id == intervention_id,
            MTRIntervention.workplace_id == session.workplace_id,
            MTRIntervention.is_deleted.is_(False),
        )
        .first()
    )
    if not intervention:
        raise NotFoundError("Intervention", intervention_id)
    if intervention.review_id != session.id:
        raise SessionMismatchError(
            "Intervention does not belong to this MTR session",
            {"intervention_id": str(intervention_id), "session_id": str(session.id)},
        )
    return intervention


def create_intervention(
    db: Session,
    session: MTRSession,
    data: InterventionCreate,
    user_id: UUID,
    request: Request | None = None,
) -> MTRIntervention:
    """
    Record an intervention.

    When a follow-up is required and no date is given, the date is derived
    from urgency.
    """
    check_review_id(session, data.review_id)

    intervention = MTRIntervention(
        workplace_id=session.workplace_id,
        patient_id=session.patient_id,
        review_id=session.id,
        type=data.type.value,
        category=data.category.value,
        description=data.description,
        rationale=data.rationale,
        target_audience=data.target_audience.value,
        communication_method=data.communication_method.value,
        outcome=data.outcome.value,
        outcome_details=data.outcome_details,
        follow_up_required=data.follow_up_required,
        follow_up_date=data.follow_up_date,
        follow_up_completed=False,
        documentation=data.documentation,
        priority=data.priority.value,
        urgency=data.urgency.value,
        performed_by=user_id,
        performed_at=data.performed_at or utcnow(),
        created_by=user_id,
    )
    intervention.apply_follow_up_defaults()
    _raise_if_invalid(db, intervention)

    db.add(intervention)
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_INTERVENTION_RECORDED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=intervention.id,
        details={
            "review_id": str(session.id),
            "type": intervention.type,
            "category": intervention.category,
            "follow_up_required": intervention.follow_up_required,
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(intervention)

    logger.info(
        f"Intervention recorded (type={intervention.type})",
        extra=build_log_context(
            user_id=user_id, workplace_id=session.workplace_id, session_id=session.id
        ),
    )
    return intervention


def _record_update(
    db: Session,
    session: MTRSession,
    intervention: MTRIntervention,
    changed: list[str],
    user_id: UUID,
    request: Request | None,
) -> MTRIntervention:
    intervention.updated_by = user_id
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_INTERVENTION_UPDATED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=intervention.id,
        details={
            "review_id": str(session.id),
            "fields": sorted(changed),
            "outcome": intervention.outcome,
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(intervention)
    return intervention


def update_intervention(
    db: Session,
    session: MTRSession,
    intervention: MTRIntervention,
    data: InterventionUpdate,
    user_id: UUID,
    request: Request | None = None,
) -> MTRIntervention:
    """Partial update; follow-up defaults are re-derived afterwards."""
    check_review_id(session, data.review_id)

    update_data = data.model_dump(exclude_unset=True, exclude={"review_id"})
    changed: list[str] = []
    for field, value in update_data.items():
        if value is None and field not in _CLEARABLE_FIELDS:
            continue
        if field in _ENUM_FIELDS:
            setattr(intervention, field, value.value)
        elif field in _PLAIN_FIELDS:
            setattr(intervention, field, value)
        else:
            continue
        changed.append(field)

    if not changed:
        return intervention

    intervention.apply_follow_up_defaults()
    _raise_if_invalid(db, intervention)
    return _record_update(db, session, intervention, changed, user_id, request)


def complete_intervention(
    db: Session,
    session: MTRSession,
    intervention: MTRIntervention,
    outcome: str,
    details: str | None,
    user_id: UUID,
    request: Request | None = None,
) -> MTRIntervention:
    """Record the intervention outcome; accepted or modified closes a required follow-up."""
    intervention.mark_completed(outcome, details)
    return _record_update(db, session, intervention, ["outcome"], user_id, request)


def to_intervention_read(
    intervention: MTRIntervention, now: datetime | None = None
) -> InterventionRead:
    return InterventionRead(
        id=intervention.id,
        workplace_id=intervention.workplace_id,
        patient_id=intervention.patient_id,
        review_id=intervention.review_id,
        type=intervention.type,
        category=intervention.category,
        description=intervention.description,
        rationale=intervention.rationale,
        target_audience=intervention.target_audience,
        communication_method=intervention.communication_method,
        outcome=intervention.outcome,
        outcome_details=intervention.outcome_details,
        follow_up_required=intervention.follow_up_required,
        follow_up_date=intervention.follow_up_date,
        follow_up_completed=intervention.follow_up_completed,
        follow_up_status=intervention.follow_up_status(now),
        documentation=intervention.documentation,
        priority=intervention.priority,
        urgency=intervention.urgency,
        is_effective=intervention.is_effective,
        performed_by=intervention.performed_by,
        performed_at=intervention.performed_at,
        created_at=intervention.created_at,
        updated_at=intervention.updated_at,
    )
