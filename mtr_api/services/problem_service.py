"""Drug therapy problem service - problems recorded against an MTR session."""

import logging
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from mtr_api.core.exceptions import MTRValidationError, NotFoundError, SessionMismatchError
from mtr_api.core.structured_logging import build_log_context
from mtr_api.db.enums import AuditEventType, DTPStatus
from mtr_api.db.models import DrugTherapyProblem, MTRSession
from mtr_api.db.types import utcnow
from mtr_api.schemas.problem import ProblemCreate, ProblemRead, ProblemUpdate
from mtr_api.services import audit_service
from mtr_api.services.mtr_service import (
    check_review_id,
    commit_changes,
    flush_changes,
    touch_session,
)

logger = logging.getLogger(__name__)

TARGET_TYPE = "dtp"

_ENUM_FIELDS = {"category", "type", "severity", "evidence_level"}
_LIST_FIELDS = {"affected_medications", "related_conditions", "risk_factors"}
_TEXT_FIELDS = {"subcategory", "description", "clinical_significance"}


def _raise_if_invalid(db: Session, problem: DrugTherapyProblem) -> None:
    errors = problem.validation_errors()
    if errors:
        db.rollback()
        raise MTRValidationError(f"Invalid drug therapy problem: {', '.join(errors)}", errors)


def list_problems(
    db: Session,
    session: MTRSession,
    status: str | None = None,
    severity: str | None = None,
) -> list[DrugTherapyProblem]:
    """Problems for a session in identification order."""
    query = db.query(DrugTherapyProblem).filter(
        DrugTherapyProblem.review_id == session.id,
        DrugTherapyProblem.is_deleted.is_(False),
    )
    if status:
        query = query.filter(DrugTherapyProblem.status == status)
    if severity:
        query = query.filter(DrugTherapyProblem.severity == severity)
    return query.order_by(DrugTherapyProblem.created_at.asc()).all()


def get_problem(db: Session, session: MTRSession, problem_id: UUID) -> DrugTherapyProblem:
    """
    Load a problem through its session.

    Raises:
        NotFoundError: missing, deleted or outside the session's workplace
        SessionMismatchError: problem belongs to another session
    """
    problem = (
        db.query(DrugTherapyProblem)
        .filter(
            DrugTherapyProblem.id == problem_id,
            DrugTherapyProblem.workplace_id == session.workplace_id,
            DrugTherapyProblem.is_deleted.is_(False),
        )
        .first()
    )
    if not problem:
        raise NotFoundError("Drug therapy problem", problem_id)
    if problem.review_id != session.id:
        raise SessionMismatchError(
            "Problem does not belong to this MTR session",
            {"problem_id": str(problem_id), "session_id": str(session.id)},
        )
    return problem


def create_problem(
    db: Session,
    session: MTRSession,
    data: ProblemCreate,
    user_id: UUID,
    request: Request | None = None,
) -> DrugTherapyProblem:
    """Record a problem identified by the pharmacist."""
    check_review_id(session, data.review_id)

    now = utcnow()
    problem = DrugTherapyProblem(
        workplace_id=session.workplace_id,
        patient_id=session.patient_id,
        review_id=session.id,
        category=data.category.value,
        subcategory=data.subcategory,
        type=data.type.value,
        severity=data.severity.value,
        evidence_level=data.evidence_level.value,
        description=data.description,
        clinical_significance=data.clinical_significance,
        affected_medications=list(data.affected_medications),
        related_conditions=list(data.related_conditions),
        risk_factors=list(data.risk_factors),
        status=DTPStatus.IDENTIFIED.value,
        identified_by=user_id,
        identified_at=now,
        created_by=user_id,
    )
    _raise_if_invalid(db, problem)

    db.add(problem)
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.DTP_IDENTIFIED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=problem.id,
        details={
            "review_id": str(session.id),
            "type": problem.type,
            "severity": problem.severity,
            "source": "manual",
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(problem)

    logger.info(
        f"Drug therapy problem recorded (severity={problem.severity})",
        extra=build_log_context(
            user_id=user_id, workplace_id=session.workplace_id, session_id=session.id
        ),
    )
    return problem


def update_problem(
    db: Session,
    session: MTRSession,
    problem: DrugTherapyProblem,
    data: ProblemUpdate,
    user_id: UUID,
    request: Request | None = None,
) -> DrugTherapyProblem:
    """
    Partial update. A status change keeps the resolution block consistent;
    resolution_action / resolution_outcome fill in the resolution details.
    """
    check_review_id(session, data.review_id)

    update_data = data.model_dump(
        exclude_unset=True,
        exclude={"review_id", "status", "resolution_action", "resolution_outcome"},
    )
    changed: list[str] = []
    previous_status = problem.status

    for field, value in update_data.items():
        if field in _ENUM_FIELDS:
            if value is None:
                continue
            setattr(problem, field, value.value)
        elif field in _LIST_FIELDS:
            if value is None:
                continue
            setattr(problem, field, list(value))
        elif field in _TEXT_FIELDS:
            if value is None and field == "description":
                continue
            setattr(problem, field, value)
        else:
            continue
        changed.append(field)

    if data.resolution_action is not None or data.resolution_outcome is not None:
        resolution = dict(problem.resolution or {})
        if data.resolution_action is not None:
            resolution["action"] = data.resolution_action
        if data.resolution_outcome is not None:
            resolution["outcome"] = data.resolution_outcome
        problem.resolution = resolution
        changed.append("resolution")

    if data.status is not None and data.status.value != problem.status:
        problem.set_status(data.status.value)
        if problem.status == DTPStatus.RESOLVED.value:
            problem.resolution = {**problem.resolution, "resolved_by": str(user_id)}
        changed.append("status")

    if not changed:
        return problem

    _raise_if_invalid(db, problem)

    problem.updated_by = user_id
    touch_session(session, user_id)
    flush_changes(db)

    resolved = (
        problem.status == DTPStatus.RESOLVED.value
        and previous_status != DTPStatus.RESOLVED.value
    )
    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.DTP_RESOLVED if resolved else AuditEventType.DTP_UPDATED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=problem.id,
        details={
            "review_id": str(session.id),
            "fields": sorted(changed),
            "status": problem.status,
        },
        request=request,
    )
    commit_changes(db)
    db.refresh(problem)
    return problem


def resolve_problem(
    db: Session,
    session: MTRSession,
    problem: DrugTherapyProblem,
    action: str,
    outcome: str,
    user_id: UUID,
    request: Request | None = None,
) -> DrugTherapyProblem:
    problem.resolve(action, outcome, resolved_by=user_id)
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.DTP_RESOLVED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=problem.id,
        details={"review_id": str(session.id), "severity": problem.severity},
        request=request,
    )
    commit_changes(db)
    db.refresh(problem)
    return problem


def reopen_problem(
    db: Session,
    session: MTRSession,
    problem: DrugTherapyProblem,
    user_id: UUID,
    request: Request | None = None,
) -> DrugTherapyProblem:
    problem.reopen(reopened_by=user_id)
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.DTP_UPDATED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=problem.id,
        details={"review_id": str(session.id), "fields": ["status"], "status": problem.status},
        request=request,
    )
    commit_changes(db)
    db.refresh(problem)
    return problem


def delete_problem(
    db: Session,
    session: MTRSession,
    problem: DrugTherapyProblem,
    user_id: UUID,
    request: Request | None = None,
) -> None:
    """Soft delete."""
    problem.is_deleted = True
    problem.updated_by = user_id
    touch_session(session, user_id)
    flush_changes(db)

    audit_service.log_event(
        db=db,
        workplace_id=session.workplace_id,
        event_type=AuditEventType.DTP_DELETED,
        actor_user_id=user_id,
        target_type=TARGET_TYPE,
        target_id=problem.id,
        details={"review_id": str(session.id)},
        request=request,
    )
    commit_changes(db)


def to_problem_read(problem: DrugTherapyProblem) -> ProblemRead:
    return ProblemRead.model_validate(problem)
