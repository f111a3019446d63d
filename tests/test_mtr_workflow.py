"""Workflow engine tests - step table, gating, per-step validation, completion."""

from datetime import datetime, timezone

import pytest

from mtr_api.core import mtr_steps
from mtr_api.db.enums import MTRStep
from mtr_api.services.mtr_workflow import (
    ReviewContext,
    can_complete_workflow,
    validate_step,
)

NOW = datetime(2024, 12, 2, 9, 30, tzinfo=timezone.utc)


def _steps(*completed: MTRStep, data: dict | None = None) -> dict:
    steps = mtr_steps.build_initial_steps()
    for step in completed:
        steps = mtr_steps.with_step_completed(steps, step, NOW)
    for name, step_data in (data or {}).items():
        steps[name]["data"] = step_data
    return steps


def _session(**overrides) -> dict:
    session = {
        "steps": _steps(MTRStep.PATIENT_SELECTION),
        "patient_consent": True,
        "confidentiality_agreed": True,
        "medications": [],
        "plan": None,
    }
    session.update(overrides)
    return session


def _medication(name="Warfarin", indication="AF", dose="5mg", frequency="daily") -> dict:
    return {
        "drug_name": name,
        "indication": indication,
        "instructions": {"dose": dose, "frequency": frequency, "route": "oral"},
    }


ALL_REQUIRED = (
    MTRStep.PATIENT_SELECTION,
    MTRStep.MEDICATION_HISTORY,
    MTRStep.THERAPY_ASSESSMENT,
    MTRStep.PLAN_DEVELOPMENT,
    MTRStep.INTERVENTIONS,
)


# =============================================================================
# Step table
# =============================================================================

def test_workflow_steps_in_order_with_dependencies():
    steps = mtr_steps.get_workflow_steps()

    assert [s["name"] for s in steps] == [
        "patientSelection",
        "medicationHistory",
        "therapyAssessment",
        "planDevelopment",
        "interventions",
        "followUp",
    ]
    assert [s["order"] for s in steps] == [1, 2, 3, 4, 5, 6]
    assert steps[0]["dependencies"] == []
    assert steps[3]["dependencies"] == ["therapyAssessment"]
    assert [s["required"] for s in steps] == [True, True, True, True, True, False]
    assert steps[4]["title"] == "Interventions & Documentation"


def test_next_step_is_first_incomplete_in_order():
    assert mtr_steps.get_next_step(_steps()) == MTRStep.PATIENT_SELECTION
    assert mtr_steps.get_next_step(_steps(MTRStep.PATIENT_SELECTION)) == MTRStep.MEDICATION_HISTORY
    # Out-of-order completion still reports the earliest gap
    assert (
        mtr_steps.get_next_step(_steps(MTRStep.PATIENT_SELECTION, MTRStep.THERAPY_ASSESSMENT))
        == MTRStep.MEDICATION_HISTORY
    )
    assert mtr_steps.get_next_step(_steps(*MTRStep)) is None


def test_completion_percentage_rounds_over_six_steps():
    assert mtr_steps.completion_percentage(_steps()) == 0
    assert mtr_steps.completion_percentage(_steps(MTRStep.PATIENT_SELECTION)) == 17
    assert mtr_steps.completion_percentage(_steps(*ALL_REQUIRED)) == 83
    assert mtr_steps.completion_percentage(_steps(*MTRStep)) == 100


def test_step_completion_keeps_data_unless_replaced():
    steps = mtr_steps.with_step_completed(_steps(), MTRStep.MEDICATION_HISTORY, NOW, {"source": "patient"})
    steps = mtr_steps.with_step_cleared(steps, MTRStep.MEDICATION_HISTORY)

    state = steps["medicationHistory"]
    assert state["completed"] is False
    assert state["completed_at"] is None
    assert state["data"] == {"source": "patient"}

    steps = mtr_steps.with_step_completed(steps, MTRStep.MEDICATION_HISTORY, NOW)
    assert steps["medicationHistory"]["completed_at"] == NOW.isoformat()
    assert steps["medicationHistory"]["data"] == {"source": "patient"}


# =============================================================================
# validate_step
# =============================================================================

def test_unknown_step_short_circuits():
    result = validate_step("billing", _session())

    assert result.errors == ["Invalid step name: billing"]
    assert result.is_valid is False
    assert result.can_proceed is False


def test_unmet_dependency_is_an_error():
    result = validate_step("therapyAssessment", _session())

    assert "Dependency not met: medicationHistory must be completed first" in result.errors
    assert result.can_proceed is False


def test_patient_selection_requires_consent_and_confidentiality():
    session = _session(patient_consent=False, confidentiality_agreed=False)
    result = validate_step(MTRStep.PATIENT_SELECTION, session, ReviewContext(patient_exists=False))

    assert result.errors == [
        "Patient not found",
        "Patient consent is required",
        "Confidentiality agreement is required",
    ]


def test_patient_selection_warns_on_other_active_sessions():
    result = validate_step("patientSelection", _session(), ReviewContext(other_active_sessions=1))

    assert result.can_proceed is True
    assert result.warnings == ["Patient has other active MTR sessions"]


def test_medication_history_requires_a_medication():
    result = validate_step("medicationHistory", _session())

    assert result.errors == ["At least one medication must be recorded"]


def test_medication_history_reports_every_incomplete_medication():
    session = _session(
        medications=[
            _medication(),
            _medication(name="", indication="", dose="", frequency=""),
            _medication(name="Aspirin", frequency=" "),
        ]
    )
    result = validate_step("medicationHistory", session)

    assert result.errors == [
        "Medication 2: Drug name is required",
        "Medication 2: Indication is required",
        "Medication 2: Dose is required",
        "Medication 2: Frequency is required",
        "Medication 3: Frequency is required",
    ]
    assert result.can_proceed is False


def test_duplicate_medication_names_only_warn():
    session = _session(medications=[_medication("Warfarin"), _medication("warfarin")])
    result = validate_step("medicationHistory", session)

    assert result.can_proceed is True
    assert result.warnings == ["Potential duplicate medications detected: warfarin"]


def test_therapy_assessment_issues_are_warnings_only():
    session = _session(steps=_steps(MTRStep.PATIENT_SELECTION, MTRStep.MEDICATION_HISTORY))
    result = validate_step("therapyAssessment", session, ReviewContext())

    assert result.errors == []
    assert result.can_proceed is True
    assert result.warnings == [
        "Drug interactions should be checked",
        "No drug therapy problems identified - please confirm this is correct",
    ]


def test_therapy_assessment_flags_read_from_stored_and_submitted_data():
    steps = _steps(
        MTRStep.PATIENT_SELECTION,
        MTRStep.MEDICATION_HISTORY,
        data={"therapyAssessment": {"interactions_checked": True}},
    )
    result = validate_step(
        "therapyAssessment",
        _session(steps=steps),
        ReviewContext(),
        data={"no_problems_confirmed": True},
    )

    assert result.warnings == []


def test_plan_development_requires_plan():
    steps = _steps(MTRStep.PATIENT_SELECTION, MTRStep.MEDICATION_HISTORY, MTRStep.THERAPY_ASSESSMENT)
    result = validate_step("planDevelopment", _session(steps=steps))

    assert result.errors == ["Therapy plan must be created"]


def test_plan_development_needs_recommendations_when_problems_exist():
    steps = _steps(MTRStep.PATIENT_SELECTION, MTRStep.MEDICATION_HISTORY, MTRStep.THERAPY_ASSESSMENT)
    session = _session(steps=steps, plan={"recommendations": []})
    result = validate_step("planDevelopment", session, ReviewContext(problems=[object()]))

    assert result.errors == ["Plan must include recommendations for identified problems"]


def test_plan_development_checks_each_recommendation():
    steps = _steps(MTRStep.PATIENT_SELECTION, MTRStep.MEDICATION_HISTORY, MTRStep.THERAPY_ASSESSMENT)
    plan = {
        "recommendations": [
            {"type": "monitor", "rationale": "INR drift", "expected_outcome": "Stable INR"},
            {"type": "discontinue", "rationale": "", "expected_outcome": ""},
        ]
    }
    result = validate_step("planDevelopment", _session(steps=steps, plan=plan))

    assert result.errors == [
        "Recommendation 2: Rationale is required",
        "Recommendation 2: Expected outcome is required",
    ]


def test_interventions_and_follow_up_only_warn():
    plan = {"recommendations": [{"rationale": "r", "expected_outcome": "o"}]}
    session = _session(
        steps=_steps(*ALL_REQUIRED[:4]),
        plan=plan,
    )
    interventions_result = validate_step("interventions", session, ReviewContext())
    assert interventions_result.can_proceed is True
    assert interventions_result.warnings == [
        "No interventions recorded for therapy plan recommendations"
    ]

    session["steps"] = _steps(*ALL_REQUIRED)
    follow_up_result = validate_step(
        "followUp",
        session,
        ReviewContext(interventions=[{"follow_up_required": True}]),
    )
    assert follow_up_result.can_proceed is True
    assert follow_up_result.warnings == ["Some interventions require follow-up but none scheduled"]


@pytest.mark.parametrize("step", list(MTRStep))
def test_every_step_has_a_validator(step):
    result = validate_step(step, _session(steps=_steps(*MTRStep), plan={"recommendations": []}))
    assert not any(e.startswith("Invalid step name") for e in result.errors)


# =============================================================================
# can_complete_workflow
# =============================================================================

def test_fresh_session_cannot_complete():
    result = can_complete_workflow(_session())

    assert result.can_proceed is False
    assert result.errors == [
        "Required step not completed: Medication History Collection",
        "Required step not completed: Therapy Assessment",
        "Required step not completed: Plan Development",
        "Required step not completed: Interventions & Documentation",
        "Therapy plan is required for completion",
    ]


def test_follow_up_is_optional_for_completion():
    session = _session(steps=_steps(*ALL_REQUIRED), plan={"recommendations": []})

    assert can_complete_workflow(session).can_proceed is True


def test_plan_is_required_even_when_steps_are_done():
    result = can_complete_workflow(_session(steps=_steps(*MTRStep)))

    assert result.errors == ["Therapy plan is required for completion"]
