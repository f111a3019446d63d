"""Drug therapy problem tests - derived priority, validation, resolution."""

import uuid

import pytest

from mtr_api.core.exceptions import MTRValidationError, NotFoundError, SessionMismatchError
from mtr_api.db.enums import DTPStatus
from mtr_api.db.models import DrugTherapyProblem
from mtr_api.schemas.problem import ProblemCreate, ProblemUpdate
from mtr_api.services import problem_service


def _payload(**overrides) -> ProblemCreate:
    fields = {
        "category": "safety",
        "type": "doseTooHigh",
        "severity": "moderate",
        "evidence_level": "probable",
        "description": "Metoprolol dose above target for current heart rate",
        "clinical_significance": "Bradycardia risk in elderly patient",
        "affected_medications": ["Metoprolol"],
    }
    fields.update(overrides)
    return ProblemCreate(**fields)


@pytest.mark.parametrize(
    "severity,evidence,expected",
    [
        ("critical", "unlikely", "high"),
        ("major", "definite", "high"),
        ("major", "probable", "high"),
        ("major", "possible", "medium"),
        ("moderate", "definite", "medium"),
        ("moderate", "probable", "low"),
        ("minor", "definite", "low"),
    ],
)
def test_priority_from_severity_and_evidence(severity, evidence, expected):
    problem = DrugTherapyProblem(severity=severity, evidence_level=evidence)
    assert problem.priority == expected


def test_create_problem(db, mtr_session, pharmacist_id):
    problem = problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)

    assert problem.review_id == mtr_session.id
    assert problem.patient_id == mtr_session.patient_id
    assert problem.status == DTPStatus.IDENTIFIED.value
    assert problem.identified_by == pharmacist_id
    assert problem.type_display == "Dose Too High"
    assert [p.id for p in problem_service.list_problems(db, mtr_session)] == [problem.id]


def test_critical_problem_needs_detailed_description(db, mtr_session, pharmacist_id):
    with pytest.raises(MTRValidationError) as exc:
        problem_service.create_problem(
            db, mtr_session, _payload(severity="critical", description="Too high"), pharmacist_id
        )

    assert exc.value.errors == ["Critical severity DTPs require detailed description"]


def test_definite_evidence_needs_clinical_significance(db, mtr_session, pharmacist_id):
    with pytest.raises(MTRValidationError) as exc:
        problem_service.create_problem(
            db,
            mtr_session,
            _payload(evidence_level="definite", clinical_significance="Short"),
            pharmacist_id,
        )

    assert exc.value.errors == [
        "DTPs with definite evidence level require clinical significance explanation"
    ]
    assert db.query(DrugTherapyProblem).count() == 0


def test_review_id_must_match_session(db, mtr_session, pharmacist_id):
    with pytest.raises(SessionMismatchError):
        problem_service.create_problem(
            db, mtr_session, _payload(review_id=uuid.uuid4()), pharmacist_id
        )

    problem = problem_service.create_problem(
        db, mtr_session, _payload(review_id=mtr_session.id), pharmacist_id
    )
    assert problem.review_id == mtr_session.id


def test_problem_lookup_is_scoped_to_session(db, make_patient, make_session, mtr_session, pharmacist_id):
    problem = problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)
    other_session = make_session(make_patient())

    with pytest.raises(SessionMismatchError):
        problem_service.get_problem(db, other_session, problem.id)
    with pytest.raises(NotFoundError):
        problem_service.get_problem(db, mtr_session, uuid.uuid4())


def test_resolve_and_reopen(db, mtr_session, pharmacist_id):
    problem = problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)

    problem = problem_service.resolve_problem(
        db, mtr_session, problem, "Dose reduced to 25mg", "Heart rate normalised", pharmacist_id
    )
    assert problem.status == DTPStatus.RESOLVED.value
    assert problem.resolution["action"] == "Dose reduced to 25mg"
    assert problem.resolution["resolved_by"] == str(pharmacist_id)
    assert problem.resolution_duration_days() is not None
    assert problem.is_open is False

    problem = problem_service.reopen_problem(db, mtr_session, problem, pharmacist_id)
    assert problem.status == DTPStatus.IDENTIFIED.value
    assert problem.resolution["resolved_at"] is None
    assert problem.resolution["action"] == "Dose reduced to 25mg"


def test_status_update_to_resolved_fills_resolution(db, mtr_session, pharmacist_id):
    problem = problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)

    problem = problem_service.update_problem(
        db, mtr_session, problem, ProblemUpdate(status=DTPStatus.RESOLVED), pharmacist_id
    )

    assert problem.resolution["action"] == "Status updated to resolved"
    assert problem.resolution["outcome"] == "Problem resolved"
    assert problem.resolution["resolved_at"] is not None
    assert problem.resolution["resolved_by"] == str(pharmacist_id)

    problem = problem_service.update_problem(
        db, mtr_session, problem, ProblemUpdate(status=DTPStatus.MONITORING), pharmacist_id
    )
    assert problem.resolution["resolved_at"] is None


def test_update_keeps_validation_rules(db, mtr_session, pharmacist_id):
    problem = problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)

    with pytest.raises(MTRValidationError):
        problem_service.update_problem(
            db, mtr_session, problem, ProblemUpdate(severity="critical", description="Short"), pharmacist_id
        )

    db.refresh(problem)
    assert problem.severity == "moderate"


def test_deleted_problem_disappears(db, mtr_session, pharmacist_id):
    problem = problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)

    problem_service.delete_problem(db, mtr_session, problem, pharmacist_id)

    assert problem_service.list_problems(db, mtr_session) == []
    db.refresh(mtr_session)
    assert mtr_session.problems == []
    with pytest.raises(NotFoundError):
        problem_service.get_problem(db, mtr_session, problem.id)


def test_problem_changes_bump_session_version(db, mtr_session, pharmacist_id):
    problem_service.create_problem(db, mtr_session, _payload(), pharmacist_id)

    db.refresh(mtr_session)
    assert mtr_session.version == 2
    assert mtr_session.updated_by == pharmacist_id
