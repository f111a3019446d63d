"""Audit trail tests - events per mutation and hash chain verification."""

import uuid

import pytest

from mtr_api.core.exceptions import MTRValidationError
from mtr_api.db.enums import AuditEventType
from mtr_api.db.models import AuditLog
from mtr_api.schemas.problem import ProblemCreate
from mtr_api.services import audit_service, mtr_service, problem_service


def _event_types(db, workplace_id, **filters) -> list[str]:
    return [e.event_type for e in audit_service.list_audit_events(db, workplace_id, **filters)]


def test_session_creation_is_audited(db, workplace, mtr_session, pharmacist_id):
    events = audit_service.list_audit_events(db, workplace.id)

    assert len(events) == 1
    event = events[0]
    assert event.event_type == AuditEventType.MTR_SESSION_CREATED.value
    assert event.actor_user_id == pharmacist_id
    assert event.target_type == "mtr_session"
    assert event.target_id == mtr_session.id
    assert event.details["review_number"] == mtr_session.review_number
    assert event.prev_hash == audit_service.GENESIS_HASH


def test_each_mutation_appends_an_event(db, workplace, mtr_session, pharmacist_id):
    medications = [
        {
            "drug_name": "Warfarin",
            "indication": "AF",
            "instructions": {"dose": "5mg", "frequency": "daily"},
        },
        {
            "drug_name": "Aspirin",
            "indication": "CAD",
            "instructions": {"dose": "81mg", "frequency": "daily"},
        },
    ]
    mtr_service.complete_step(
        db, mtr_session, "medicationHistory", {"medications": medications}, pharmacist_id
    )
    mtr_service.run_interaction_assessment(db, mtr_session, pharmacist_id)

    # Newest first
    assert _event_types(db, workplace.id) == [
        AuditEventType.DTP_IDENTIFIED.value,
        AuditEventType.MTR_STEP_COMPLETED.value,
        AuditEventType.MTR_SESSION_CREATED.value,
    ]
    step_event = audit_service.list_audit_events(
        db, workplace.id, event_type=AuditEventType.MTR_STEP_COMPLETED.value
    )[0]
    assert step_event.details == {
        "step": "medicationHistory",
        "review_number": mtr_session.review_number,
        "warnings": 0,
    }


def test_failed_mutation_writes_no_event(db, workplace, mtr_session, pharmacist_id):
    with pytest.raises(MTRValidationError):
        mtr_service.complete_step(db, mtr_session, "medicationHistory", {"medications": []}, pharmacist_id)

    assert _event_types(db, workplace.id) == [AuditEventType.MTR_SESSION_CREATED.value]


def test_details_never_carry_free_text(db, workplace, mtr_session, pharmacist_id):
    problem_service.create_problem(
        db,
        mtr_session,
        ProblemCreate(
            category="adherence",
            type="inappropriateAdherence",
            severity="minor",
            evidence_level="possible",
            description="Patient skips evening doses when tired",
        ),
        pharmacist_id,
    )

    event = audit_service.list_audit_events(db, workplace.id, target_type="dtp")[0]
    assert "description" not in event.details
    assert event.details["source"] == "manual"


def test_filters(db, workplace, mtr_session, pharmacist_id):
    assert _event_types(db, workplace.id, user_id=uuid.uuid4()) == []
    assert _event_types(db, workplace.id, target_id=mtr_session.id) == [
        AuditEventType.MTR_SESSION_CREATED.value
    ]
    assert _event_types(db, uuid.uuid4()) == []


def test_chain_verifies(db, workplace, mtr_session, pharmacist_id):
    mtr_service.reopen_step(db, mtr_session, "medicationHistory", None, pharmacist_id)
    mtr_service.delete_session(db, mtr_session, pharmacist_id)

    valid, checked, first_invalid = audit_service.verify_chain(db, workplace.id)

    assert valid is True
    assert checked == 3
    assert first_invalid is None


def test_tampering_is_detected(db, workplace, mtr_session, pharmacist_id):
    mtr_service.reopen_step(db, mtr_session, "medicationHistory", None, pharmacist_id)
    first = (
        db.query(AuditLog)
        .filter(AuditLog.workplace_id == workplace.id)
        .order_by(AuditLog.created_at.asc())
        .first()
    )
    first.details = {**first.details, "priority": "urgent"}
    db.commit()

    valid, checked, first_invalid = audit_service.verify_chain(db, workplace.id)

    assert valid is False
    assert checked == 1
    assert first_invalid == first.id


def test_canonical_json_is_order_independent():
    assert audit_service.canonical_json({"b": 1, "a": 2}) == audit_service.canonical_json(
        {"a": 2, "b": 1}
    )
    assert audit_service.canonical_json(None) == "{}"
