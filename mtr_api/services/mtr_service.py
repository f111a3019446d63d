"""MTR session service - session lifecycle and workflow use cases.

Composes the workflow engine, interaction checker and problem synthesizer
with persistence and the audit trail. Each use case runs in one transaction
and commits once; audit rows are written in the same transaction.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import Request
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from mtr_api.core.config import settings
from mtr_api.core.mtr_steps import parse_step
from mtr_api.core.exceptions import (
    BusinessRuleError,
    MTRValidationError,
    NotFoundError,
    PermissionDeniedError,
    SessionMismatchError,
    StateConflictError,
)
from mtr_api.core.structured_logging import build_log_context
from mtr_api.db.enums import (
    ACTIVE_MTR_STATUSES,
    AuditEventType,
    MTRPriority,
    MTRStatus,
    MTRStep,
)
from mtr_api.db.models import (
    DrugTherapyProblem,
    MTRFollowUp,
    MTRIntervention,
    MTRSession,
    Patient,
    WorkplaceCounter,
)
from mtr_api.db.types import utcnow
from mtr_api.schemas.mtr import (
    MedicationEntry,
    MTRSessionCreate,
    MTRSessionListItem,
    MTRSessionRead,
    MTRSessionUpdate,
    TherapyPlan,
)
from mtr_api.services import audit_service
from mtr_api.services.drug_knowledge_base import KnowledgeBase
from mtr_api.services.interaction_checker import InteractionReport, check_interactions
from mtr_api.services.mtr_workflow import (
    ReviewContext,
    StepValidationResult,
    can_complete_workflow,
    validate_step,
)
from mtr_api.services.problem_synthesizer import generate_problems_from_interactions
from mtr_api.utils.pagination import paginate_query

logger = logging.getLogger(__name__)

REVIEW_NUMBER_COUNTER = "mtr_review_number"
REVIEW_NUMBER_CONSTRAINT = "uq_mtr_review_number"
MAX_REVIEW_SEQUENCE = 9999
ACTIVE_SESSION_INDEX = "uq_mtr_active_session_per_patient"

TARGET_TYPE = "mtr_session"

_medications_adapter = TypeAdapter(list[MedicationEntry])


# =============================================================================
# Review numbers
# =============================================================================

def review_period(now: datetime) -> str:
    """YYYYMM in UTC."""
    return now.strftime("%Y%m")


def format_review_number(period: str, sequence: int) -> str:
    return f"MTR-{period}-{sequence:04d}"


def _counter_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Review number counter not supported on {dialect}")
    return insert


def _upsert_counter(db: Session, workplace_id: UUID, counter_type: str, value_expr, initial: int) -> int:
    insert = _counter_insert(db)
    now = utcnow()
    stmt = insert(WorkplaceCounter).values(
        workplace_id=workplace_id,
        counter_type=counter_type,
        current_value=initial,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[WorkplaceCounter.workplace_id, WorkplaceCounter.counter_type],
        set_={"current_value": value_expr, "updated_at": now},
    ).returning(WorkplaceCounter.current_value)
    result = db.execute(stmt).scalar_one_or_none()
    if result is None:
        raise RuntimeError("Failed to generate MTR review number")
    return int(result)


def generate_review_number(db: Session, workplace_id: UUID, now: datetime | None = None) -> str:
    """
    Allocate the next review number for the workplace and month (MTR-YYYYMM-NNNN).

    Uses an atomic INSERT...ON CONFLICT increment on workplace_counters, so
    concurrent callers never receive the same sequence.
    """
    period = review_period(now or utcnow())
    sequence = _upsert_counter(
        db,
        workplace_id,
        f"{REVIEW_NUMBER_COUNTER}:{period}",
        WorkplaceCounter.current_value + 1,
        initial=1,
    )
    if sequence > MAX_REVIEW_SEQUENCE:
        db.rollback()
        raise BusinessRuleError(
            "Monthly review number limit reached",
            {"period": period, "limit": MAX_REVIEW_SEQUENCE},
        )
    return format_review_number(period, sequence)


def _resync_review_counter(db: Session, workplace_id: UUID, period: str) -> None:
    """Move the counter past review numbers that were written without it (e.g. imports)."""
    prefix = f"MTR-{period}-"
    latest = (
        db.query(func.max(MTRSession.review_number))
        .filter(
            MTRSession.workplace_id == workplace_id,
            MTRSession.review_number.like(f"{prefix}%"),
        )
        .scalar()
    )
    if not latest:
        return
    sequence = int(latest[len(prefix):])
    _upsert_counter(
        db,
        workplace_id,
        f"{REVIEW_NUMBER_COUNTER}:{period}",
        func.max(WorkplaceCounter.current_value, sequence)
        if db.get_bind().dialect.name == "sqlite"
        else func.greatest(WorkplaceCounter.current_value, sequence),
        initial=sequence,
    )
    db.commit()


def _integrity_target(error: IntegrityError) -> str:
    constraint_name = getattr(getattr(error.orig, "diag", None), "constraint_name", None)
    if constraint_name:
        return constraint_name
    return str(error.orig) if error.orig else str(error)


def _is_review_number_conflict(error: IntegrityError) -> bool:
    target = _integrity_target(error)
    return REVIEW_NUMBER_CONSTRAINT in target or "mtr_sessions.review_number" in target


def _is_active_session_conflict(error: IntegrityError) -> bool:
    target = _integrity_target(error)
    return ACTIVE_SESSION_INDEX in target or "mtr_sessions.patient_id" in target


# =============================================================================
# Helpers
# =============================================================================

def flush_changes(db: Session) -> None:
    """Flush, turning a version mismatch into StateConflictError."""
    try:
        db.flush()
    except StaleDataError:
        db.rollback()
        raise StateConflictError()


def commit_changes(db: Session) -> None:
    """Commit, turning a version mismatch into StateConflictError."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise StateConflictError()


def check_version(session: MTRSession, expected_version: int | None) -> None:
    """Raise StateConflictError when the client's version is stale."""
    if expected_version is not None and session.version != expected_version:
        raise StateConflictError(expected_version, session.version)


def ensure_editable(session: MTRSession, is_admin: bool) -> None:
    if session.status == MTRStatus.COMPLETED.value and not is_admin:
        raise PermissionDeniedError("Cannot modify a completed MTR session")


def check_review_id(session: MTRSession, review_id: UUID | None) -> None:
    """Sub-entity payloads may repeat the session id, but never name another session."""
    if review_id is not None and review_id != session.id:
        raise SessionMismatchError(
            "Review ID does not match this MTR session",
            {"review_id": str(review_id), "session_id": str(session.id)},
        )


def touch_session(session: MTRSession, user_id: UUID) -> None:
    """Record a child change on the session row so it takes part in version checks."""
    session.updated_by = user_id
    session.updated_at = utcnow()


def _validation_messages(error: ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return messages


def get_patient(db: Session, workplace_id: UUID, patient_id: UUID) -> Patient | None:
    return (
        db.query(Patient)
        .filter(
            Patient.id == patient_id,
            Patient.workplace_id == workplace_id,
            Patient.is_deleted.is_(False),
        )
        .first()
    )


def get_active_session_for_patient(
    db: Session, patient_id: UUID, exclude_session_id: UUID | None = None
) -> MTRSession | None:
    query = db.query(MTRSession).filter(
        MTRSession.patient_id == patient_id,
        MTRSession.status.in_(ACTIVE_MTR_STATUSES),
        MTRSession.is_deleted.is_(False),
    )
    if exclude_session_id:
        query = query.filter(MTRSession.id != exclude_session_id)
    return query.first()


def count_other_active_sessions(db: Session, session: MTRSession) -> int:
    return (
        db.query(MTRSession)
        .filter(
            MTRSession.patient_id == session.patient_id,
            MTRSession.status.in_(ACTIVE_MTR_STATUSES),
            MTRSession.is_deleted.is_(False),
            MTRSession.id != session.id,
        )
        .count()
    )


def _children(db: Session, model, session_id: UUID) -> list:
    return (
        db.query(model)
        .filter(model.review_id == session_id, model.is_deleted.is_(False))
        .order_by(model.created_at.asc())
        .all()
    )


def build_review_context(db: Session, session: MTRSession) -> ReviewContext:
    """Load everything the workflow engine needs about a session's related records."""
    return ReviewContext(
        patient_exists=get_patient(db, session.workplace_id, session.patient_id) is not None,
        other_active_sessions=count_other_active_sessions(db, session),
        problems=_children(db, DrugTherapyProblem, session.id),
        interventions=_children(db, MTRIntervention, session.id),
        follow_ups=_children(db, MTRFollowUp, session.id),
    )


# =============================================================================
# Queries
# =============================================================================

def get_session(
    db: Session, workplace_id: UUID, session_id: UUID, is_admin: bool = False
) -> MTRSession | None:
    """Get a session scoped to the workplace (admins see every workplace)."""
    query = db.query(MTRSession).filter(
        MTRSession.id == session_id,
        MTRSession.is_deleted.is_(False),
    )
    if not is_admin:
        query = query.filter(MTRSession.workplace_id == workplace_id)
    return query.first()


def require_session(
    db: Session, workplace_id: UUID, session_id: UUID, is_admin: bool = False
) -> MTRSession:
    session = get_session(db, workplace_id, session_id, is_admin=is_admin)
    if not session:
        raise NotFoundError("MTR session", session_id)
    return session


def list_sessions(
    db: Session,
    workplace_id: UUID,
    page: int = 1,
    per_page: int = 20,
    status: str | None = None,
    priority: str | None = None,
    review_type: str | None = None,
    pharmacist_id: UUID | None = None,
    patient_id: UUID | None = None,
) -> tuple[list[MTRSession], int]:
    """List sessions for a workplace, newest first."""
    query = db.query(MTRSession).filter(
        MTRSession.workplace_id == workplace_id,
        MTRSession.is_deleted.is_(False),
    )
    if status:
        query = query.filter(MTRSession.status == status)
    if priority:
        query = query.filter(MTRSession.priority == priority)
    if review_type:
        query = query.filter(MTRSession.review_type == review_type)
    if pharmacist_id:
        query = query.filter(MTRSession.pharmacist_id == pharmacist_id)
    if patient_id:
        query = query.filter(MTRSession.patient_id == patient_id)
    query = query.order_by(MTRSession.created_at.desc())
    return paginate_query(query, page, per_page)


def list_patient_sessions(db: Session, workplace_id: UUID, patient_id: UUID) -> list[MTRSession]:
    """MTR history for one patient, newest first."""
    return (
        db.query(MTRSession)
        .filter(
            MTRSession.workplace_id == workplace_id,
            MTRSession.patient_id == patient_id,
            MTRSession.is_deleted.is_(False),
        )
        .order_by(MTRSession.created_at.desc())
        .all()
    )


def list_active_sessions(db: Session, workplace_id: UUID) -> list[MTRSession]:
    return (
        db.query(MTRSession)
        .filter(
            MTRSession.workplace_id == workplace_id,
            MTRSession.status.in_(ACTIVE_MTR_STATUSES),
            MTRSession.is_deleted.is_(False),
        )
        .order_by(MTRSession.priority.asc(), MTRSession.started_at.asc())
        .all()
    )


def list_overdue_sessions(
    db: Session, workplace_id: UUID, now: datetime | None = None
) -> list[MTRSession]:
    """Open sessions past their priority's allowance (7 days routine, 1 day otherwise)."""
    now = now or utcnow()
    routine_cutoff = now - timedelta(days=settings.MTR_ROUTINE_OVERDUE_DAYS)
    urgent_cutoff = now - timedelta(days=settings.MTR_URGENT_OVERDUE_DAYS)
    return (
        db.query(MTRSession)
        .filter(
            MTRSession.workplace_id == workplace_id,
            MTRSession.status.in_(ACTIVE_MTR_STATUSES),
            MTRSession.is_deleted.is_(False),
            or_(
                and_(
                    MTRSession.priority == MTRPriority.ROUTINE.value,
                    MTRSession.started_at < routine_cutoff,
                ),
                and_(
                    MTRSession.priority != MTRPriority.ROUTINE.value,
                    MTRSession.started_at < urgent_cutoff,
                ),
            ),
        )
        .order_by(MTRSession.started_at.asc())
        .all()
    )


def get_progress(db: Session, session: MTRSession) -> dict[str, Any]:
    completion = can_complete_workflow(session)
    next_step = session.next_step
    return {
        "session_id": session.id,
        "completion_percentage": session.completion_percentage,
        "next_step": next_step.value if next_step else None,
        "can_complete": completion.can_proceed,
        "completion_errors": completion.errors,
        "steps": session.steps,
        "version": session.version,
    }


# =============================================================================
# Use cases
# =============================================================================

def create_session(
    db: Session,
    workplace_id: UUID,
    pharmacist_id: UUID,
    data: MTRSessionCreate,
    request: Request | None = None,
) -> MTRSession:
    """
    Start an MTR session for a patient.

    The patient-selection step is completed immediately. Consent flags are
    checked later, when the patient-selection step is validated.

    Raises:
        NotFoundError: patient missing in this workplace
        BusinessRuleError: patient already has an in-progress or on-hold session
    """
    patient = get_patient(db, workplace_id, data.patient_id)
    if not patient:
        raise NotFoundError("Patient", data.patient_id)

    if get_active_session_for_patient(db, patient.id):
        raise BusinessRuleError(
            "Patient already has an active MTR session",
            {"patient_id": str(patient.id)},
        )

    attempts = max(1, settings.MTR_REVIEW_NUMBER_RETRIES)
    for attempt in range(attempts):
        now = utcnow()
        session = MTRSession(
            workplace_id=workplace_id,
            patient_id=patient.id,
            pharmacist_id=pharmacist_id,
            review_number=generate_review_number(db, workplace_id, now),
            status=MTRStatus.IN_PROGRESS.value,
            priority=data.priority.value,
            review_type=data.review_type.value,
            referral_source=data.referral_source,
            review_reason=data.review_reason,
            patient_consent=data.patient_consent,
            confidentiality_agreed=data.confidentiality_agreed,
            estimated_duration=data.estimated_duration,
            next_review_date=data.next_review_date,
            medications=[],
            started_at=now,
            created_by=pharmacist_id,
        )
        session.mark_step_complete(
            MTRStep.PATIENT_SELECTION,
            {"patient_id": str(patient.id), "selected_at": now.isoformat()},
            now=now,
        )
        db.add(session)
        try:
            db.flush()
            break
        except IntegrityError as exc:
            db.rollback()
            if _is_active_session_conflict(exc):
                raise BusinessRuleError(
                    "Patient already has an active MTR session",
                    {"patient_id": str(patient.id)},
                )
            if _is_review_number_conflict(exc) and attempt < attempts - 1:
                logger.warning(
                    "Review number collision, resyncing counter",
                    extra=build_log_context(workplace_id=workplace_id),
                )
                _resync_review_counter(db, workplace_id, review_period(now))
                continue
            raise

    audit_service.log_event(
        db=db,
        workplace_id=workplace_id,
        event_type=AuditEventType.MTR_SESSION_CREATED,
        actor_user_id=pharmacist_id,
        target_type=TARGET_TYPE,
        target_id=session.id,
        details={
            "patient_id": str(patient.id),
            "review_type": session.review_type,
            "priority": session.priority,
            "review_number": session.review_number,
        },
        request=request,
    )
    db.commit()
    db.refresh(session)

    logger.info(
        f"MTR session {session.review_number} created",
        extra=build_log_context(
            user_id=pharmacist_id, workplace_id=workplace_id, session_id=session.id
        ),
    )
    return session


def _apply_step_payload(session: MTRSession, step: MTRStep, data: dict[str, Any]) -> dict[str, Any]:
    """
    Copy record fields submitted with a step onto the session.

    medicationHistory may carry ``medications`` and planDevelopment may carry
    ``plan``; both are validated and stored on the session rather than in the
    step data. Returns the remaining step data.
    """
    remaining = dict(data)
    try:
        if step == MTRStep.MEDICATION_HISTORY and "medications" in remaining:
            medications = _medications_adapter.validate_python(remaining.pop("medications") or [])
            session.medications = [m.model_dump(mode="json") for m in medications]
        if step == MTRStep.PLAN_DEVELOPMENT and "plan" in remaining:
            plan = remaining.pop("plan")
            session.plan = (
                TherapyPlan.model_validate(plan).model_dump(mode="json") if plan else None
            )
    except ValidationError as exc:
        errors = _validation_messages(exc)
        raise MTRValidationError(f"Cannot complete step: {', '.join(errors)}", errors)
    return remaining


def complete_step(
    db: Session,
    session: MTRSession,
    step_name: str,
    step_data: dict[str, Any] | None,
    user_id: UUID,
    expected_version: int | None = None,
    request: Request | None = None,
) -> tuple[MTRSession, StepValidationResult]:
    """
    Validate and complete a workflow step.

    Raises:
        MTRValidationError: any validation error (message lists all of them)
        StateConflictError: session changed since expected_version
    """
    check_version(session, expected_version)

    step_data = step_data or {}
    step = parse_step(step_name)
    try:
        if step is not None:
            step_data = _apply_step_payload(session, step, step_data)

        validation = validate_step(
            step_name, session, build_review_context(db, session), step_data
        )
        if not validation.can_proceed:
            raise MTRValidationError(
                f"Cannot complete step: {', '.join(validation.errors)}",
                validation.errors,
            )
    except MTRValidationError:
        # Discard medications/plan copied onto the session for validation
        db.rollback()
        raise

    session.mark_step_complete(step, step_data or None)
    session.updated_by = user_id
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_STEP_COMPLETED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=session.id,
        details={
            "step": step.value,
            "review_number": session.review_number,
            "warnings": len(validation.warnings),
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(session)
    return session, validation


def reopen_step(
    db: Session,
    session: MTRSession,
    step_name: str,
    step_data: dict[str, Any] | None,
    user_id: UUID,
    expected_version: int | None = None,
    request: Request | None = None,
) -> MTRSession:
    """Mark a step incomplete, optionally replacing its data."""
    check_version(session, expected_version)
    step = parse_step(step_name)
    if step is None:
        message = f"Invalid step name: {step_name}"
        raise MTRValidationError(message, [message])

    session.unmark_step(step, step_data)
    session.updated_by = user_id
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_STEP_REOPENED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=session.id,
        details={"step": step.value, "review_number": session.review_number},
        request=request,
    )
    commit_changes(db)
    db.refresh(session)
    return session


def run_interaction_assessment(
    db: Session,
    session: MTRSession,
    user_id: UUID,
    knowledge_base: KnowledgeBase | None = None,
    request: Request | None = None,
) -> tuple[InteractionReport, list[DrugTherapyProblem]]:
    """
    Check the session's medications and record one problem per finding.

    Also marks interactions as checked on the therapy-assessment step data.

    Raises:
        MTRValidationError: session has no medications
            or a generated problem breaks the documentation rules
    """
    if not session.medications:
        message = "No medications available for interaction checking"
        raise MTRValidationError(message, [message])

    report = check_interactions(session.medications, knowledge_base)
    problems = generate_problems_from_interactions(
        report,
        review_id=session.id,
        patient_id=session.patient_id,
        workplace_id=session.workplace_id,
        identified_by=user_id,
    )

    # Generated problems follow the same documentation rules as manual ones
    errors = [error for problem in problems for error in problem.validation_errors()]
    if errors:
        raise MTRValidationError(
            f"Generated drug therapy problems are invalid: {', '.join(errors)}", errors
        )

    for problem in problems:
        db.add(problem)
        db.flush()
        audit_service.log_event(
            db=db,
            workplace_id=session.workplace_id,
            event_type=AuditEventType.DTP_IDENTIFIED,
            actor_user_id=user_id,
            target_type="dtp",
            target_id=problem.id,
            details={
                "review_id": str(session.id),
                "type": problem.type,
                "severity": problem.severity,
                "source": "interaction_assessment",
            },
            request=request,
        )

    session.update_step_data(
        MTRStep.THERAPY_ASSESSMENT,
        interactions_checked=True,
        interactions_checked_at=utcnow().isoformat(),
        interaction_severity=report.severity,
    )
    session.updated_by = user_id
    commit_changes(db)
    db.refresh(session)
    for problem in problems:
        db.refresh(problem)

    logger.info(
        f"Interaction assessment recorded {len(problems)} problems (severity={report.severity})",
        extra=build_log_context(
            user_id=user_id, workplace_id=session.workplace_id, session_id=session.id
        ),
    )
    return report, problems


def complete_session(
    db: Session,
    session: MTRSession,
    user_id: UUID,
    expected_version: int | None = None,
    request: Request | None = None,
) -> MTRSession:
    """
    Complete the session once every required step is done and a plan exists.

    Raises:
        MTRValidationError: incomplete required steps or missing plan
        BusinessRuleError: session already completed or cancelled
    """
    check_version(session, expected_version)
    if session.status in (MTRStatus.COMPLETED.value, MTRStatus.CANCELLED.value):
        raise BusinessRuleError(f"MTR session is already {session.status}")

    validation = can_complete_workflow(session)
    if not validation.can_proceed:
        raise MTRValidationError(
            f"Cannot complete session: {', '.join(validation.errors)}",
            validation.errors,
        )

    completed_at = utcnow()
    session.status = MTRStatus.COMPLETED.value
    session.completed_at = completed_at
    session.updated_by = user_id
    flush_changes(db)

    context = build_review_context(db, session)
    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_SESSION_COMPLETED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=session.id,
        details={
            "review_number": session.review_number,
            "duration_seconds": int((completed_at - session.started_at).total_seconds()),
            "problems_identified": len(context.problems),
            "interventions_recorded": len(context.interventions),
            "follow_ups_scheduled": len(context.follow_ups),
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(session)
    return session


# Fields copied straight from MTRSessionUpdate
_PLAIN_UPDATE_FIELDS = {
    "patient_consent",
    "confidentiality_agreed",
    "referral_source",
    "review_reason",
    "estimated_duration",
    "next_review_date",
}
# Fields that can be cleared (set to None)
_CLEARABLE_FIELDS = {"referral_source", "review_reason", "estimated_duration", "next_review_date", "plan"}


def update_session(
    db: Session,
    session: MTRSession,
    data: MTRSessionUpdate,
    user_id: UUID,
    is_admin: bool = False,
    request: Request | None = None,
) -> MTRSession:
    """
    Update session fields.

    Uses exclude_unset=True so only explicitly provided fields are updated.
    Completion goes through complete_session, not a status change here.
    """
    ensure_editable(session, is_admin)
    check_version(session, data.expected_version)

    update_data = data.model_dump(exclude_unset=True, exclude={"expected_version"})
    changed: list[str] = []

    for field, value in update_data.items():
        if value is None and field not in _CLEARABLE_FIELDS:
            continue
        if field == "status":
            if value == MTRStatus.COMPLETED:
                raise BusinessRuleError("Use session completion to complete an MTR session")
            session.status = value.value
        elif field in ("priority", "review_type"):
            setattr(session, field, value.value)
        elif field == "medications":
            session.medications = [m.model_dump(mode="json") for m in data.medications]
        elif field == "plan":
            session.plan = data.plan.model_dump(mode="json") if data.plan else None
        elif field == "clinical_outcomes":
            session.clinical_outcomes = data.clinical_outcomes.model_dump(mode="json")
        elif field in _PLAIN_UPDATE_FIELDS:
            setattr(session, field, value)
        else:
            continue
        changed.append(field)

    if not changed:
        return session

    session.updated_by = user_id
    patient_id = session.patient_id
    try:
        flush_changes(db)
    except IntegrityError as exc:
        db.rollback()
        if _is_active_session_conflict(exc):
            raise BusinessRuleError(
                "Patient already has an active MTR session",
                {"patient_id": str(patient_id)},
            )
        raise

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_SESSION_UPDATED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=session.id,
        details={"fields": sorted(changed), "status": session.status},
        request=request,
    )
    commit_changes(db)
    db.refresh(session)
    return session


def delete_session(
    db: Session,
    session: MTRSession,
    user_id: UUID,
    is_admin: bool = False,
    request: Request | None = None,
) -> None:
    """Soft delete. Completed sessions can only be deleted by admins."""
    if session.status == MTRStatus.COMPLETED.value and not is_admin:
        raise PermissionDeniedError("Only administrators can delete completed MTR sessions")

    session.is_deleted = True
    session.updated_by = user_id
    flush_changes(db)
    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.MTR_SESSION_DELETED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=session.id,
        details={"review_number": session.review_number, "status": session.status},
        request=request,
    )
    commit_changes(db)


# =============================================================================
# Read models
# =============================================================================

def to_session_read(session: MTRSession, now: datetime | None = None) -> MTRSessionRead:
    next_step = session.next_step
    return MTRSessionRead(
        id=session.id,
        workplace_id=session.workplace_id,
        patient_id=session.patient_id,
        pharmacist_id=session.pharmacist_id,
        review_number=session.review_number,
        status=session.status,
        priority=session.priority,
        review_type=session.review_type,
        steps=session.steps,
        medications=session.medications or [],
        plan=session.plan,
        clinical_outcomes=session.clinical_outcomes,
        problem_ids=[p.id for p in session.problems],
        intervention_ids=[i.id for i in session.interventions],
        follow_up_ids=[f.id for f in session.follow_ups],
        patient_consent=session.patient_consent,
        confidentiality_agreed=session.confidentiality_agreed,
        referral_source=session.referral_source,
        review_reason=session.review_reason,
        estimated_duration=session.estimated_duration,
        next_review_date=session.next_review_date,
        started_at=session.started_at,
        completed_at=session.completed_at,
        created_by=session.created_by,
        updated_by=session.updated_by,
        created_at=session.created_at,
        updated_at=session.updated_at,
        version=session.version,
        completion_percentage=session.completion_percentage,
        next_step=next_step.value if next_step else None,
        can_complete=can_complete_workflow(session).can_proceed,
        duration_days=session.duration_days(now),
        is_overdue=session.is_overdue(now),
    )


def to_session_list_item(session: MTRSession, now: datetime | None = None) -> MTRSessionListItem:
    next_step = session.next_step
    return MTRSessionListItem(
        id=session.id,
        patient_id=session.patient_id,
        pharmacist_id=session.pharmacist_id,
        review_number=session.review_number,
        status=session.status,
        priority=session.priority,
        review_type=session.review_type,
        completion_percentage=session.completion_percentage,
        next_step=next_step.value if next_step else None,
        is_overdue=session.is_overdue(now),
        started_at=session.started_at,
        completed_at=session.completed_at,
        created_at=session.created_at,
    )
