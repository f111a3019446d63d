"""Follow-ups router - scheduled follow-ups nested under an MTR session."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from mtr_api.core.deps import RequestContext, get_db, get_request_context
from mtr_api.db.enums import FollowUpStatus
from mtr_api.schemas.follow_up import (
    FollowUpComplete,
    FollowUpCreate,
    FollowUpRead,
    FollowUpReschedule,
    FollowUpUpdate,
)
from mtr_api.services import follow_up_service, mtr_service

router = APIRouter(prefix="/mtr/sessions/{session_id}/follow-ups", tags=["mtr-follow-ups"])


@router.get("", response_model=list[FollowUpRead])
def list_follow_ups(
    session_id: UUID,
    status: FollowUpStatus | None = None,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Follow-ups for a session, soonest first."""
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    follow_ups = follow_up_service.list_follow_ups(
        db, session, status=status.value if status else None
    )
    return [follow_up_service.to_follow_up_read(f) for f in follow_ups]


@router.post("", response_model=FollowUpRead, status_code=201)
def create_follow_up(
    session_id: UUID,
    data: FollowUpCreate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    follow_up = follow_up_service.create_follow_up(db, session, data, ctx.user_id, request=request)
    return follow_up_service.to_follow_up_read(follow_up)


@router.get("/{follow_up_id}", response_model=FollowUpRead)
def get_follow_up(
    session_id: UUID,
    follow_up_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    follow_up = follow_up_service.get_follow_up(db, session, follow_up_id)
    return follow_up_service.to_follow_up_read(follow_up)


@router.patch("/{follow_up_id}", response_model=FollowUpRead)
def update_follow_up(
    session_id: UUID,
    follow_up_id: UUID,
    data: FollowUpUpdate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    follow_up = follow_up_service.get_follow_up(db, session, follow_up_id)
    follow_up = follow_up_service.update_follow_up(
        db, session, follow_up, data, ctx.user_id, request=request
    )
    return follow_up_service.to_follow_up_read(follow_up)


@router.post("/{follow_up_id}/reschedule", response_model=FollowUpRead)
def reschedule_follow_up(
    session_id: UUID,
    follow_up_id: UUID,
    data: FollowUpReschedule,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Only scheduled or missed follow-ups can be rescheduled (409 otherwise)."""
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    follow_up = follow_up_service.get_follow_up(db, session, follow_up_id)
    follow_up = follow_up_service.reschedule_follow_up(
        db,
        session,
        follow_up,
        new_date=data.new_date,
        reason=data.reason,
        user_id=ctx.user_id,
        request=request,
    )
    return follow_up_service.to_follow_up_read(follow_up)


@router.post("/{follow_up_id}/complete", response_model=FollowUpRead)
def complete_follow_up(
    session_id: UUID,
    follow_up_id: UUID,
    data: FollowUpComplete,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    follow_up = follow_up_service.get_follow_up(db, session, follow_up_id)
    follow_up = follow_up_service.complete_follow_up(
        db, session, follow_up, data.outcome, ctx.user_id, request=request
    )
    return follow_up_service.to_follow_up_read(follow_up)
