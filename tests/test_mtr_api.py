"""HTTP tests for the MTR endpoints - status codes, error envelope, end-to-end workflow."""

import uuid

import pytest
from httpx import AsyncClient, ASGITransport

from mtr_api.core.deps import ADMIN_HEADER
from mtr_api.main import app
from mtr_api.services.drug_knowledge_base import StaticKnowledgeBase, get_knowledge_base


MEDICATIONS = [
    {
        "drug_name": "Warfarin",
        "indication": "Atrial fibrillation",
        "instructions": {"dose": "5mg", "frequency": "once daily", "route": "oral"},
    },
    {
        "drug_name": "Aspirin",
        "indication": "Secondary prevention",
        "instructions": {"dose": "81mg", "frequency": "once daily", "route": "oral"},
    },
]

PLAN = {
    "recommendations": [
        {
            "type": "discontinue",
            "medication": "Aspirin",
            "rationale": "Bleeding risk outweighs benefit",
            "priority": "high",
            "expected_outcome": "Reduced bleeding risk",
        }
    ]
}


async def _start_session(client: AsyncClient, patient_id) -> dict:
    response = await client.post(
        "/mtr/sessions",
        json={
            "patient_id": str(patient_id),
            "patient_consent": True,
            "confidentiality_agreed": True,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _complete_step(client: AsyncClient, session_id, step: str, data: dict | None = None):
    return await client.put(
        f"/mtr/sessions/{session_id}/steps/{step}",
        json={"completed": True, "data": data},
    )


def _assert_error(response, status_code: int, error_type: str) -> dict:
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["success"] is False
    assert body["error"]["type"] == error_type
    assert body["error"]["message"]
    return body["error"]


# =============================================================================
# Sessions
# =============================================================================

@pytest.mark.asyncio
async def test_create_and_get_session(client, patient):
    created = await _start_session(client, patient.id)

    assert created["status"] == "in_progress"
    assert created["review_number"].startswith("MTR-")
    assert created["steps"]["patientSelection"]["completed"] is True
    assert created["completion_percentage"] == 17
    assert created["next_step"] == "medicationHistory"
    assert created["version"] == 1

    response = await client.get(f"/mtr/sessions/{created['id']}")
    assert response.status_code == 200
    assert response.json()["review_number"] == created["review_number"]


@pytest.mark.asyncio
async def test_duplicate_active_session_conflicts(client, patient):
    await _start_session(client, patient.id)

    response = await client.post(
        "/mtr/sessions", json={"patient_id": str(patient.id)}
    )

    error = _assert_error(response, 409, "BusinessRuleViolation")
    assert error["message"] == "Patient already has an active MTR session"


@pytest.mark.asyncio
async def test_unknown_session_is_not_found(client):
    response = await client.get(f"/mtr/sessions/{uuid.uuid4()}")

    _assert_error(response, 404, "NotFound")


@pytest.mark.asyncio
async def test_malformed_body_is_a_validation_failure(client):
    response = await client.post("/mtr/sessions", json={"patient_id": "not-a-uuid"})

    error = _assert_error(response, 400, "ValidationFailure")
    assert error["details"]["errors"]


@pytest.mark.asyncio
async def test_identity_headers_are_required():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as anonymous:
        response = await anonymous.get("/mtr/sessions")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_sessions(client, patient, make_patient):
    await _start_session(client, patient.id)
    await _start_session(client, make_patient().id)

    response = await client.get("/mtr/sessions", params={"per_page": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["pages"] == 2
    assert len(data["items"]) == 1

    response = await client.get(f"/mtr/patients/{patient.id}/sessions")
    assert response.status_code == 200
    assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_delete_session(client, patient):
    created = await _start_session(client, patient.id)

    response = await client.delete(f"/mtr/sessions/{created['id']}")
    assert response.status_code == 204

    response = await client.get(f"/mtr/sessions/{created['id']}")
    assert response.status_code == 404


# =============================================================================
# Workflow
# =============================================================================

@pytest.mark.asyncio
async def test_warfarin_aspirin_workflow_end_to_end(client, patient):
    session = await _start_session(client, patient.id)
    session_id = session["id"]

    response = await _complete_step(client, session_id, "medicationHistory", {"medications": MEDICATIONS})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["validation"]["can_proceed"] is True
    assert len(body["session"]["medications"]) == 2

    response = await client.post(f"/mtr/sessions/{session_id}/interaction-assessment")
    assert response.status_code == 200, response.text
    assessment = response.json()
    assert assessment["interactions"]["severity"] == "major"
    assert len(assessment["problems"]) == 1
    assert assessment["problems"][0]["severity"] == "major"
    assert assessment["problems"][0]["priority"] == "high"

    response = await _complete_step(client, session_id, "therapyAssessment")
    assert response.status_code == 200
    assert response.json()["validation"]["warnings"] == []

    response = await _complete_step(client, session_id, "planDevelopment", {"plan": PLAN})
    assert response.status_code == 200, response.text

    response = await _complete_step(client, session_id, "interventions")
    assert response.status_code == 200
    assert response.json()["validation"]["warnings"] == [
        "No interventions recorded for therapy plan recommendations"
    ]

    response = await client.get(f"/mtr/sessions/{session_id}/progress")
    assert response.json()["completion_percentage"] == 83
    assert response.json()["can_complete"] is True

    response = await client.post(f"/mtr/sessions/{session_id}/complete")
    assert response.status_code == 200, response.text
    completed = response.json()
    assert completed["status"] == "completed"
    assert len(completed["problem_ids"]) == 1

    # Completed sessions are read-only for pharmacists
    response = await client.put(
        f"/mtr/sessions/{session_id}/steps/followUp", json={"completed": True}
    )
    _assert_error(response, 403, "Forbidden")


@pytest.mark.asyncio
async def test_fresh_session_cannot_complete(client, patient):
    session = await _start_session(client, patient.id)

    response = await client.post(f"/mtr/sessions/{session['id']}/complete")

    error = _assert_error(response, 400, "ValidationFailure")
    assert len(error["details"]["errors"]) == 5
    assert "Therapy plan is required for completion" in error["details"]["errors"]


@pytest.mark.asyncio
async def test_step_validation_errors_block(client, patient):
    session = await _start_session(client, patient.id)

    response = await _complete_step(client, session["id"], "medicationHistory", {"medications": []})

    error = _assert_error(response, 400, "ValidationFailure")
    assert error["details"]["errors"] == ["At least one medication must be recorded"]


@pytest.mark.asyncio
async def test_stale_expected_version_conflicts(client, patient):
    session = await _start_session(client, patient.id)

    response = await client.put(
        f"/mtr/sessions/{session['id']}/steps/medicationHistory",
        json={"completed": True, "data": {"medications": MEDICATIONS}, "expected_version": 7},
    )

    error = _assert_error(response, 409, "StateConflict")
    assert error["details"] == {"expected_version": 7, "actual_version": 1}


@pytest.mark.asyncio
async def test_reopen_step(client, patient):
    session = await _start_session(client, patient.id)
    await _complete_step(client, session["id"], "medicationHistory", {"medications": MEDICATIONS})

    response = await client.put(
        f"/mtr/sessions/{session['id']}/steps/medicationHistory", json={"completed": False}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["session"]["steps"]["medicationHistory"]["completed"] is False
    assert body["validation"] == {"is_valid": True, "errors": [], "warnings": [], "can_proceed": True}


# =============================================================================
# Nested records
# =============================================================================

@pytest.mark.asyncio
async def test_problem_review_id_mismatch(client, patient):
    session = await _start_session(client, patient.id)

    response = await client.post(
        f"/mtr/sessions/{session['id']}/problems",
        json={
            "review_id": str(uuid.uuid4()),
            "category": "adherence",
            "type": "inappropriateAdherence",
            "severity": "minor",
            "evidence_level": "possible",
            "description": "Missed evening doses",
        },
    )

    _assert_error(response, 400, "BusinessRuleViolation")


@pytest.mark.asyncio
async def test_record_intervention_and_follow_up(client, patient):
    session = await _start_session(client, patient.id)
    base = f"/mtr/sessions/{session['id']}"

    response = await client.post(
        f"{base}/interventions",
        json={
            "type": "counseling",
            "category": "patient_education",
            "description": "Explained bleeding signs",
            "rationale": "Anticoagulant therapy",
            "target_audience": "patient",
            "communication_method": "in_person",
            "follow_up_required": True,
            "urgency": "within_week",
        },
    )
    assert response.status_code == 201, response.text
    intervention = response.json()
    assert intervention["follow_up_status"] == "pending"
    assert intervention["follow_up_date"] is not None

    response = await client.post(
        f"{base}/follow-ups",
        json={
            "type": "phone_call",
            "description": "Check understanding of bleeding signs",
            "objectives": ["Patient can list bleeding signs"],
            "scheduled_date": intervention["follow_up_date"],
            "related_interventions": [intervention["id"]],
        },
    )
    assert response.status_code == 201, response.text
    follow_up = response.json()
    assert follow_up["status"] == "scheduled"
    assert follow_up["reminder_status"] == "pending"

    response = await client.get(f"/mtr/sessions/{session['id']}")
    assert response.json()["intervention_ids"] == [intervention["id"]]
    assert response.json()["follow_up_ids"] == [follow_up["id"]]


# =============================================================================
# Reference endpoints
# =============================================================================

@pytest.mark.asyncio
async def test_workflow_steps_endpoint(client):
    response = await client.get("/mtr/workflow/steps")

    assert response.status_code == 200
    steps = response.json()
    assert [s["name"] for s in steps][:2] == ["patientSelection", "medicationHistory"]
    assert len(steps) == 6


@pytest.mark.asyncio
async def test_interaction_check_endpoint(client):
    response = await client.post(
        "/mtr/drug-interactions/check",
        json={"medications": [{"drug_name": "Warfarin"}, {"drug_name": "Aspirin"}]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["report"]["severity"] == "major"
    assert data["report"]["interactions"][0]["management"] == (
        "Monitor INR closely, consider dose adjustment"
    )
    assert data["knowledge_base_version"] == "2024.12"


@pytest.mark.asyncio
async def test_interaction_check_uses_injected_knowledge_base(client):
    app.dependency_overrides[get_knowledge_base] = lambda: StaticKnowledgeBase(version="empty")

    response = await client.post(
        "/mtr/drug-interactions/check",
        json={"medications": [{"drug_name": "Warfarin"}, {"drug_name": "Aspirin"}]},
    )

    data = response.json()
    assert data["report"]["has_interactions"] is False
    assert data["knowledge_base_version"] == "empty"


@pytest.mark.asyncio
async def test_audit_verify_requires_admin(client):
    response = await client.get("/audit/verify")
    assert response.status_code == 403

    response = await client.get("/audit/verify", headers={ADMIN_HEADER: "true"})
    assert response.status_code == 200
    assert response.json()["valid"] is True


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
