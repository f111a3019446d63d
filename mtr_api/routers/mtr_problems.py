"""Drug therapy problems router - problems nested under an MTR session."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from mtr_api.core.deps import RequestContext, get_db, get_request_context
from mtr_api.db.enums import DTPSeverity, DTPStatus
from mtr_api.schemas.problem import ProblemCreate, ProblemRead, ProblemResolve, ProblemUpdate
from mtr_api.services import mtr_service, problem_service

router = APIRouter(prefix="/mtr/sessions/{session_id}/problems", tags=["mtr-problems"])


@router.get("", response_model=list[ProblemRead])
def list_problems(
    session_id: UUID,
    status: DTPStatus | None = None,
    severity: DTPSeverity | None = None,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    problems = problem_service.list_problems(
        db,
        session,
        status=status.value if status else None,
        severity=severity.value if severity else None,
    )
    return [problem_service.to_problem_read(p) for p in problems]


@router.post("", response_model=ProblemRead, status_code=201)
def create_problem(
    session_id: UUID,
    data: ProblemCreate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Record a drug therapy problem. A review_id in the body must match the path."""
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    problem = problem_service.create_problem(db, session, data, ctx.user_id, request=request)
    return problem_service.to_problem_read(problem)


@router.get("/{problem_id}", response_model=ProblemRead)
def get_problem(
    session_id: UUID,
    problem_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    return problem_service.to_problem_read(problem_service.get_problem(db, session, problem_id))


@router.patch("/{problem_id}", response_model=ProblemRead)
def update_problem(
    session_id: UUID,
    problem_id: UUID,
    data: ProblemUpdate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    problem = problem_service.get_problem(db, session, problem_id)
    problem = problem_service.update_problem(
        db, session, problem, data, ctx.user_id, request=request
    )
    return problem_service.to_problem_read(problem)


@router.delete("/{problem_id}", status_code=204)
def delete_problem(
    session_id: UUID,
    problem_id: UUID,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    problem = problem_service.get_problem(db, session, problem_id)
    problem_service.delete_problem(db, session, problem, ctx.user_id, request=request)
    return None


@router.post("/{problem_id}/resolve", response_model=ProblemRead)
def resolve_problem(
    session_id: UUID,
    problem_id: UUID,
    data: ProblemResolve,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    problem = problem_service.get_problem(db, session, problem_id)
    problem = problem_service.resolve_problem(
        db, session, problem, data.action, data.outcome, ctx.user_id, request=request
    )
    return problem_service.to_problem_read(problem)


@router.post("/{problem_id}/reopen", response_model=ProblemRead)
def reopen_problem(
    session_id: UUID,
    problem_id: UUID,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    problem = problem_service.get_problem(db, session, problem_id)
    problem = problem_service.reopen_problem(db, session, problem, ctx.user_id, request=request)
    return problem_service.to_problem_read(problem)
