"""Follow-up service - monitoring and contact events scheduled from an MTR session."""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from mtr_api.core.exceptions import (
    BusinessRuleError,
    MTRValidationError,
    NotFoundError,
    SessionMismatchError,
)
from mtr_api.core.structured_logging import build_log_context
from mtr_api.db.enums import AuditEventType, FollowUpStatus
from mtr_api.db.models import MTRFollowUp, MTRIntervention, MTRSession
from mtr_api.db.models.mtr import FOLLOW_UP_SCHEDULE_GRACE, FollowUpTransitionError
from mtr_api.db.types import utcnow
from mtr_api.schemas.follow_up import (
    FollowUpCreate,
    FollowUpOutcome,
    FollowUpRead,
    FollowUpUpdate,
)
from mtr_api.services import audit_service
from mtr_api.services.mtr_service import (
    check_review_id,
    commit_changes,
    flush_changes,
    touch_session,
)

logger = logging.getLogger(__name__)

TARGET_TYPE = "mtr_follow_up"

_PLAIN_FIELDS = {"description", "objectives", "estimated_duration", "assigned_to"}


def _raise_if_invalid(db: Session, follow_up: MTRFollowUp) -> None:
    errors = follow_up.validation_errors()
    if errors:
        db.rollback()
        raise MTRValidationError(f"Invalid follow-up: {', '.join(errors)}", errors)


def _check_not_past(scheduled_date: datetime, now: datetime) -> None:
    if scheduled_date < now - FOLLOW_UP_SCHEDULE_GRACE:
        message = "Scheduled date cannot be in the past"
        raise MTRValidationError(message, [message])


def _check_related_interventions(
    db: Session, session: MTRSession, intervention_ids: list[UUID]
) -> None:
    if not intervention_ids:
        return
    found = {
        row[0]
        for row in db.query(MTRIntervention.id)
        .filter(
            MTRIntervention.id.in_(intervention_ids),
            MTRIntervention.review_id == session.id,
            MTRIntervention.is_deleted.is_(False),
        )
        .all()
    }
    missing = [str(i) for i in intervention_ids if i not in found]
    if missing:
        raise SessionMismatchError(
            "Related interventions must belong to this MTR session",
            {"intervention_ids": missing, "session_id": str(session.id)},
        )


def list_follow_ups(
    db: Session,
    session: MTRSession,
    status: str | None = None,
) -> list[MTRFollowUp]:
    query = db.query(MTRFollowUp).filter(
        MTRFollowUp.review_id == session.id,
        MTRFollowUp.is_deleted.is_(False),
    )
    if status:
        query = query.filter(MTRFollowUp.status == status)
    return query.order_by(MTRFollowUp.scheduled_date.asc()).all()


def get_follow_up(db: Session, session: MTRSession, follow_up_id: UUID) -> MTRFollowUp:
    follow_up = (
        db.query(MTRFollowUp)
        .filter(
            MTRFollowUp.id == follow_up_id,
            MTRFollowUp.workplace_id == session.workplace_id,
            MTRFollowUp.is_deleted.is_(False),
        )
        .first()
    )
    if not follow_up:
        raise NotFoundError("Follow-up", follow_up_id)
    if follow_up.review_id != session.id:
        raise SessionMismatchError(
            "Follow-up does not belong to this MTR session",
            {"follow_up_id": str(follow_up_id), "session_id": str(session.id)},
        )
    return follow_up


def create_follow_up(
    db: Session,
    session: MTRSession,
    data: FollowUpCreate,
    user_id: UUID,
    request: Request | None = None,
) -> MTRFollowUp:
    """
    Schedule a follow-up with the default reminders.

    Raises:
        MTRValidationError: date in the past, or high priority without objectives
        SessionMismatchError: review_id or related interventions from another session
    """
    check_review_id(session, data.review_id)
    now = utcnow()
    _check_not_past(data.scheduled_date, now)
    _check_related_interventions(db, session, data.related_interventions)

    follow_up = MTRFollowUp(
        workplace_id=session.workplace_id,
        patient_id=session.patient_id,
        review_id=session.id,
        type=data.type.value,
        priority=data.priority.value,
        description=data.description,
        objectives=list(data.objectives),
        scheduled_date=data.scheduled_date,
        estimated_duration=data.estimated_duration,
        assigned_to=data.assigned_to or user_id,
        status=FollowUpStatus.SCHEDULED.value,
        reminders=[],
        related_interventions=[str(i) for i in data.related_interventions],
        created_by=user_id,
    )
    follow_up.schedule_default_reminders(now)
    _raise_if_invalid(db, follow_up)

    db.add(follow_up)
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_FOLLOW_UP_SCHEDULED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=follow_up.id,
        details={
            "review_id": str(session.id),
            "type": follow_up.type,
            "scheduled_date": follow_up.scheduled_date.isoformat(),
            "reminders": len(follow_up.reminders),
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(follow_up)

    logger.info(
        f"Follow-up scheduled (type={follow_up.type})",
        extra=build_log_context(
            user_id=user_id, workplace_id=session.workplace_id, session_id=session.id
        ),
    )
    return follow_up


def _record_update(
    db: Session,
    session: MTRSession,
    follow_up: MTRFollowUp,
    changed: list[str],
    user_id: UUID,
    request: Request | None,
) -> MTRFollowUp:
    _raise_if_invalid(db, follow_up)

    follow_up.updated_by = user_id
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_FOLLOW_UP_UPDATED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=follow_up.id,
        details={
            "review_id": str(session.id),
            "fields": sorted(changed),
            "status": follow_up.status,
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(follow_up)
    return follow_up


def update_follow_up(
    db: Session,
    session: MTRSession,
    follow_up: MTRFollowUp,
    data: FollowUpUpdate,
    user_id: UUID,
    request: Request | None = None,
) -> MTRFollowUp:
    """Partial update. Completing through a status change still needs an outcome."""
    check_review_id(session, data.review_id)

    update_data = data.model_dump(exclude_unset=True, exclude={"review_id", "status", "outcome"})
    changed: list[str] = []
    for field, value in update_data.items():
        if value is None:
            continue
        if field == "priority":
            follow_up.priority = value.value
        elif field in _PLAIN_FIELDS:
            setattr(follow_up, field, value)
        else:
            continue
        changed.append(field)

    if data.outcome is not None:
        follow_up.outcome = data.outcome.model_dump(mode="json")
        changed.append("outcome")
    if data.status is not None and data.status.value != follow_up.status:
        follow_up.set_status(data.status.value)
        changed.append("status")

    if not changed:
        return follow_up
    return _record_update(db, session, follow_up, changed, user_id, request)


def reschedule_follow_up(
    db: Session,
    session: MTRSession,
    follow_up: MTRFollowUp,
    new_date: datetime,
    reason: str | None,
    user_id: UUID,
    request: Request | None = None,
) -> MTRFollowUp:
    """
    Move a scheduled or missed follow-up to a new date and regenerate reminders.

    Raises:
        BusinessRuleError: follow-up is in any other status
    """
    now = utcnow()
    _check_not_past(new_date, now)
    try:
        follow_up.reschedule(new_date, reason, now=now)
    except FollowUpTransitionError as exc:
        raise BusinessRuleError(str(exc), {"status": follow_up.status})
    return _record_update(
        db, session, follow_up, ["scheduled_date", "rescheduled_from"], user_id, request
    )


def complete_follow_up(
    db: Session,
    session: MTRSession,
    follow_up: MTRFollowUp,
    outcome: FollowUpOutcome,
    user_id: UUID,
    request: Request | None = None,
) -> MTRFollowUp:
    if follow_up.status in (FollowUpStatus.COMPLETED.value, FollowUpStatus.CANCELLED.value):
        raise BusinessRuleError(
            f"Follow-up is already {follow_up.status}", {"status": follow_up.status}
        )
    follow_up.mark_completed(outcome.model_dump(mode="json"))
    return _record_update(db, session, follow_up, ["status", "outcome"], user_id, request)


def to_follow_up_read(follow_up: MTRFollowUp, now: datetime | None = None) -> FollowUpRead:
    return FollowUpRead(
        id=follow_up.id,
        workplace_id=follow_up.workplace_id,
        patient_id=follow_up.patient_id,
        review_id=follow_up.review_id,
        type=follow_up.type,
        priority=follow_up.priority,
        description=follow_up.description,
        objectives=follow_up.objectives or [],
        scheduled_date=follow_up.scheduled_date,
        estimated_duration=follow_up.estimated_duration,
        assigned_to=follow_up.assigned_to,
        status=follow_up.status,
        completed_at=follow_up.completed_at,
        rescheduled_from=follow_up.rescheduled_from,
        rescheduled_reason=follow_up.rescheduled_reason,
        reminders=follow_up.reminders or [],
        reminder_status=follow_up.reminder_status,
        outcome=follow_up.outcome,
        related_interventions=follow_up.related_interventions or [],
        is_overdue=follow_up.is_overdue(now),
        days_until=follow_up.days_until(now),
        created_at=follow_up.created_at,
        updated_at=follow_up.updated_at,
    )
