"""MTR sessions router - session lifecycle and workflow endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from mtr_api.core.config import settings
from mtr_api.core.deps import RequestContext, get_db, get_request_context
from mtr_api.core.exceptions import NotFoundError
from mtr_api.db.enums import MTRPriority, MTRStatus, ReviewType
from mtr_api.schemas.interaction import InteractionAssessmentResponse
from mtr_api.schemas.mtr import (
    MTRSessionCreate,
    MTRSessionListItem,
    MTRSessionListResponse,
    MTRSessionRead,
    MTRSessionUpdate,
    ProgressRead,
    SessionVersion,
    StepUpdate,
    StepUpdateResponse,
)
from mtr_api.services import mtr_service, problem_service
from mtr_api.services.drug_knowledge_base import KnowledgeBase, get_knowledge_base
from mtr_api.services.mtr_workflow import StepValidationResult
from mtr_api.utils.pagination import DEFAULT_PER_PAGE, page_count

router = APIRouter(prefix="/mtr", tags=["mtr"])


@router.get("/sessions", response_model=MTRSessionListResponse)
def list_sessions(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PER_PAGE, ge=1, le=settings.MAX_PAGE_SIZE),
    status: MTRStatus | None = None,
    priority: MTRPriority | None = None,
    review_type: ReviewType | None = None,
    pharmacist_id: UUID | None = None,
    patient_id: UUID | None = None,
):
    """List MTR sessions for the workplace, newest first."""
    sessions, total = mtr_service.list_sessions(
        db=db,
        workplace_id=ctx.workplace_id,
        page=page,
        per_page=per_page,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        review_type=review_type.value if review_type else None,
        pharmacist_id=pharmacist_id,
        patient_id=patient_id,
    )
    return MTRSessionListResponse(
        items=[mtr_service.to_session_list_item(s) for s in sessions],
        total=total,
        page=page,
        per_page=per_page,
        pages=page_count(total, per_page),
    )


@router.post("/sessions", response_model=MTRSessionRead, status_code=201)
def create_session(
    data: MTRSessionCreate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Start an MTR session; the patient-selection step is completed immediately."""
    session = mtr_service.create_session(
        db=db,
        workplace_id=ctx.workplace_id,
        pharmacist_id=ctx.user_id,
        data=data,
        request=request,
    )
    return mtr_service.to_session_read(session)


@router.get("/sessions/active", response_model=list[MTRSessionListItem])
def list_active_sessions(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    sessions = mtr_service.list_active_sessions(db, ctx.workplace_id)
    return [mtr_service.to_session_list_item(s) for s in sessions]


@router.get("/sessions/overdue", response_model=list[MTRSessionListItem])
def list_overdue_sessions(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    sessions = mtr_service.list_overdue_sessions(db, ctx.workplace_id)
    return [mtr_service.to_session_list_item(s) for s in sessions]


@router.get("/sessions/{session_id}", response_model=MTRSessionRead)
def get_session(
    session_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    return mtr_service.to_session_read(session)


@router.patch("/sessions/{session_id}", response_model=MTRSessionRead)
def update_session(
    session_id: UUID,
    data: MTRSessionUpdate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Update session fields.

    Completed sessions are read-only except for administrators.
    """
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    session = mtr_service.update_session(
        db=db,
        session=session,
        data=data,
        user_id=ctx.user_id,
        is_admin=ctx.is_admin,
        request=request,
    )
    return mtr_service.to_session_read(session)


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(
    session_id: UUID,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    mtr_service.delete_session(
        db=db,
        session=session,
        user_id=ctx.user_id,
        is_admin=ctx.is_admin,
        request=request,
    )
    return None


@router.put("/sessions/{session_id}/steps/{step_name}", response_model=StepUpdateResponse)
def update_step(
    session_id: UUID,
    step_name: str,
    data: StepUpdate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Complete (completed=true) or reopen (completed=false) a workflow step.

    Completion returns the validation warnings; any validation error fails
    the request with 400 and leaves the session unchanged.
    """
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    mtr_service.ensure_editable(session, ctx.is_admin)

    if data.completed:
        session, validation = mtr_service.complete_step(
            db=db,
            session=session,
            step_name=step_name,
            step_data=data.data,
            user_id=ctx.user_id,
            expected_version=data.expected_version,
            request=request,
        )
    else:
        session = mtr_service.reopen_step(
            db=db,
            session=session,
            step_name=step_name,
            step_data=data.data,
            user_id=ctx.user_id,
            expected_version=data.expected_version,
            request=request,
        )
        validation = StepValidationResult()

    return StepUpdateResponse(
        session=mtr_service.to_session_read(session),
        validation=validation.to_dict(),
    )


@router.get("/sessions/{session_id}/progress", response_model=ProgressRead)
def get_progress(
    session_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    return mtr_service.get_progress(db, session)


@router.post(
    "/sessions/{session_id}/interaction-assessment",
    response_model=InteractionAssessmentResponse,
)
def run_interaction_assessment(
    session_id: UUID,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    knowledge_base: KnowledgeBase = Depends(get_knowledge_base),
):
    """Check the session's medications and record one problem per finding."""
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    mtr_service.ensure_editable(session, ctx.is_admin)

    report, problems = mtr_service.run_interaction_assessment(
        db=db,
        session=session,
        user_id=ctx.user_id,
        knowledge_base=knowledge_base,
        request=request,
    )
    return InteractionAssessmentResponse(
        session_id=session.id,
        interactions=report.to_dict(),
        problems=[problem_service.to_problem_read(p) for p in problems],
    )


@router.post("/sessions/{session_id}/complete", response_model=MTRSessionRead)
def complete_session(
    session_id: UUID,
    request: Request,
    data: SessionVersion | None = None,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    session = mtr_service.complete_session(
        db=db,
        session=session,
        user_id=ctx.user_id,
        expected_version=data.expected_version if data else None,
        request=request,
    )
    return mtr_service.to_session_read(session)


@router.get("/patients/{patient_id}/sessions", response_model=list[MTRSessionListItem])
def list_patient_sessions(
    patient_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """MTR history for a patient, newest first."""
    if not mtr_service.get_patient(db, ctx.workplace_id, patient_id):
        raise NotFoundError("Patient", patient_id)
    sessions = mtr_service.list_patient_sessions(db, ctx.workplace_id, patient_id)
    return [mtr_service.to_session_list_item(s) for s in sessions]
