"""Audit router - API endpoints for viewing the MTR audit trail."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from mtr_api.core.deps import RequestContext, get_db, get_request_context
from mtr_api.schemas.audit import AuditChainStatus, AuditEventListResponse, AuditEventRead
from mtr_api.services import audit_service

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/events", response_model=AuditEventListResponse)
def list_audit_events(
    event_type: str | None = Query(None, description="Filter by event type"),
    actor_user_id: UUID | None = Query(None, description="Filter by actor"),
    target_type: str | None = Query(None, description="Filter by target type"),
    target_id: UUID | None = Query(None, description="Filter by target"),
    start_date: datetime | None = Query(None, description="Filter events after this date"),
    end_date: datetime | None = Query(None, description="Filter events before this date"),
    limit: int = Query(
        audit_service.DEFAULT_AUDIT_LIMIT, ge=1, le=audit_service.MAX_AUDIT_LIMIT
    ),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """List audit events for the workplace, newest first."""
    events = audit_service.list_audit_events(
        db,
        workplace_id=ctx.workplace_id,
        user_id=actor_user_id,
        target_type=target_type,
        target_id=target_id,
        event_type=event_type,
        start=start_date,
        end=end_date,
        limit=limit,
    )
    return AuditEventListResponse(items=[AuditEventRead.model_validate(e) for e in events])


@router.get("/verify", response_model=AuditChainStatus)
def verify_audit_chain(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Recompute the workplace hash chain.

    Requires: administrator
    """
    if not ctx.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    valid, checked, first_invalid_id = audit_service.verify_chain(db, ctx.workplace_id)
    return AuditChainStatus(valid=valid, checked=checked, first_invalid_id=first_invalid_id)
