"""Interventions router - pharmacist actions nested under an MTR session."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from mtr_api.core.deps import RequestContext, get_db, get_request_context
from mtr_api.db.enums import InterventionOutcome
from mtr_api.schemas.intervention import (
    InterventionComplete,
    InterventionCreate,
    InterventionRead,
    InterventionUpdate,
)
from mtr_api.services import intervention_service, mtr_service

router = APIRouter(
    prefix="/mtr/sessions/{session_id}/interventions", tags=["mtr-interventions"]
)


@router.get("", response_model=list[InterventionRead])
def list_interventions(
    session_id: UUID,
    outcome: InterventionOutcome | None = None,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    interventions = intervention_service.list_interventions(
        db, session, outcome=outcome.value if outcome else None
    )
    return [intervention_service.to_intervention_read(i) for i in interventions]


@router.post("", response_model=InterventionRead, status_code=201)
def create_intervention(
    session_id: UUID,
    data: InterventionCreate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    intervention = intervention_service.create_intervention(
        db, session, data, ctx.user_id, request=request
    )
    return intervention_service.to_intervention_read(intervention)


@router.get("/{intervention_id}", response_model=InterventionRead)
def get_intervention(
    session_id: UUID,
    intervention_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    intervention = intervention_service.get_intervention(db, session, intervention_id)
    return intervention_service.to_intervention_read(intervention)


@router.patch("/{intervention_id}", response_model=InterventionRead)
def update_intervention(
    session_id: UUID,
    intervention_id: UUID,
    data: InterventionUpdate,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    intervention = intervention_service.get_intervention(db, session, intervention_id)
    intervention = intervention_service.update_intervention(
        db, session, intervention, data, ctx.user_id, request=request
    )
    return intervention_service.to_intervention_read(intervention)


@router.post("/{intervention_id}/complete", response_model=InterventionRead)
def complete_intervention(
    session_id: UUID,
    intervention_id: UUID,
    data: InterventionComplete,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Record the outcome reported back by the patient or prescriber."""
    session = mtr_service.require_session(db, ctx.workplace_id, session_id, ctx.is_admin)
    intervention = intervention_service.get_intervention(db, session, intervention_id)
    intervention = intervention_service.complete_intervention(
        db,
        session,
        intervention,
        outcome=data.outcome.value,
        details=data.details,
        user_id=ctx.user_id,
        request=request,
    )
    return intervention_service.to_intervention_read(intervention)
