"""Follow-up tests - default reminders, scheduling rules, reschedule and completion."""

import uuid
from datetime import timedelta

import pytest

from mtr_api.core.exceptions import BusinessRuleError, MTRValidationError, SessionMismatchError
from mtr_api.db.enums import FollowUpStatus
from mtr_api.db.types import utcnow
from mtr_api.schemas.follow_up import FollowUpCreate, FollowUpOutcome, FollowUpUpdate
from mtr_api.schemas.intervention import InterventionCreate
from mtr_api.services import follow_up_service, intervention_service


def _payload(scheduled_in: timedelta = timedelta(days=3), **overrides) -> FollowUpCreate:
    fields = {
        "type": "lab_review",
        "description": "Check INR after aspirin stopped",
        "objectives": ["INR between 2 and 3"],
        "scheduled_date": utcnow() + scheduled_in,
    }
    fields.update(overrides)
    return FollowUpCreate(**fields)


def _outcome(**overrides) -> FollowUpOutcome:
    fields = {"status": "successful", "notes": "INR 2.4", "adherence_improved": True}
    fields.update(overrides)
    return FollowUpOutcome(**fields)


@pytest.mark.parametrize(
    "scheduled_in,expected_types",
    [
        (timedelta(days=3), ["system", "email"]),
        (timedelta(hours=5), ["email"]),
        (timedelta(minutes=30), []),
    ],
)
def test_default_reminders_only_in_the_future(db, mtr_session, pharmacist_id, scheduled_in, expected_types):
    follow_up = follow_up_service.create_follow_up(
        db, mtr_session, _payload(scheduled_in), pharmacist_id
    )

    assert [r["type"] for r in follow_up.reminders] == expected_types
    assert all(r["sent"] is False for r in follow_up.reminders)
    assert follow_up.reminder_status == ("pending" if expected_types else "none")


def test_create_defaults(db, mtr_session, pharmacist_id):
    follow_up = follow_up_service.create_follow_up(db, mtr_session, _payload(), pharmacist_id)

    assert follow_up.status == FollowUpStatus.SCHEDULED.value
    assert follow_up.assigned_to == pharmacist_id
    assert follow_up.estimated_duration == 30
    assert follow_up.review_id == mtr_session.id
    assert follow_up.is_overdue() is False
    assert follow_up.days_until() == 3


def test_past_date_is_rejected(db, mtr_session, pharmacist_id):
    with pytest.raises(MTRValidationError) as exc:
        follow_up_service.create_follow_up(db, mtr_session, _payload(-timedelta(hours=2)), pharmacist_id)

    assert exc.value.errors == ["Scheduled date cannot be in the past"]


def test_high_priority_needs_objectives(db, mtr_session, pharmacist_id):
    with pytest.raises(MTRValidationError) as exc:
        follow_up_service.create_follow_up(
            db, mtr_session, _payload(priority="high", objectives=[]), pharmacist_id
        )

    assert exc.value.errors == ["High priority follow-ups must have at least one objective"]


def test_related_interventions_must_belong_to_session(db, mtr_session, pharmacist_id):
    intervention = intervention_service.create_intervention(
        db,
        mtr_session,
        InterventionCreate(
            type="monitoring",
            category="monitoring_plan",
            description="Arrange INR check",
            rationale="Aspirin stopped",
            target_audience="patient",
            communication_method="verbal",
            follow_up_required=True,
        ),
        pharmacist_id,
    )

    with pytest.raises(SessionMismatchError):
        follow_up_service.create_follow_up(
            db, mtr_session, _payload(related_interventions=[uuid.uuid4()]), pharmacist_id
        )

    follow_up = follow_up_service.create_follow_up(
        db, mtr_session, _payload(related_interventions=[intervention.id]), pharmacist_id
    )
    assert follow_up.related_interventions == [str(intervention.id)]


def test_reschedule_moves_date_and_rebuilds_reminders(db, mtr_session, pharmacist_id):
    follow_up = follow_up_service.create_follow_up(db, mtr_session, _payload(), pharmacist_id)
    original = follow_up.scheduled_date
    new_date = utcnow() + timedelta(hours=5)

    follow_up = follow_up_service.reschedule_follow_up(
        db, mtr_session, follow_up, new_date, "Lab closed", pharmacist_id
    )

    assert follow_up.scheduled_date == new_date
    assert follow_up.rescheduled_from == original
    assert follow_up.rescheduled_reason == "Lab closed"
    assert follow_up.status == FollowUpStatus.SCHEDULED.value
    assert [r["type"] for r in follow_up.reminders] == ["email"]


def test_completed_follow_up_cannot_be_rescheduled(db, mtr_session, pharmacist_id):
    follow_up = follow_up_service.create_follow_up(db, mtr_session, _payload(), pharmacist_id)
    follow_up = follow_up_service.complete_follow_up(db, mtr_session, follow_up, _outcome(), pharmacist_id)

    with pytest.raises(BusinessRuleError) as exc:
        follow_up_service.reschedule_follow_up(
            db, mtr_session, follow_up, utcnow() + timedelta(days=5), None, pharmacist_id
        )

    assert exc.value.message == "Follow-up cannot be rescheduled in current status"


def test_complete_follow_up(db, mtr_session, pharmacist_id):
    follow_up = follow_up_service.create_follow_up(db, mtr_session, _payload(), pharmacist_id)

    follow_up = follow_up_service.complete_follow_up(db, mtr_session, follow_up, _outcome(), pharmacist_id)

    assert follow_up.status == FollowUpStatus.COMPLETED.value
    assert follow_up.completed_at is not None
    assert follow_up.outcome["status"] == "successful"
    assert follow_up.is_overdue() is False
    assert follow_up.days_until() is None

    with pytest.raises(BusinessRuleError):
        follow_up_service.complete_follow_up(db, mtr_session, follow_up, _outcome(), pharmacist_id)


def test_completing_through_status_needs_outcome(db, mtr_session, pharmacist_id):
    follow_up = follow_up_service.create_follow_up(db, mtr_session, _payload(), pharmacist_id)

    with pytest.raises(MTRValidationError) as exc:
        follow_up_service.update_follow_up(
            db, mtr_session, follow_up, FollowUpUpdate(status=FollowUpStatus.COMPLETED), pharmacist_id
        )

    assert exc.value.errors == ["Outcome is required when follow-up is completed"]


def test_reminder_status_counts_sent_reminders(db, mtr_session, pharmacist_id):
    follow_up = follow_up_service.create_follow_up(db, mtr_session, _payload(), pharmacist_id)
    reminders = [dict(r) for r in follow_up.reminders]

    reminders[0]["sent"] = True
    follow_up.reminders = reminders
    assert follow_up.reminder_status == "partial"

    follow_up.reminders = [{**r, "sent": True} for r in reminders]
    assert follow_up.reminder_status == "all_sent"


def test_follow_up_list_is_ordered_by_date(db, mtr_session, pharmacist_id):
    later = follow_up_service.create_follow_up(db, mtr_session, _payload(timedelta(days=10)), pharmacist_id)
    sooner = follow_up_service.create_follow_up(db, mtr_session, _payload(timedelta(days=2)), pharmacist_id)

    assert [f.id for f in follow_up_service.list_follow_ups(db, mtr_session)] == [sooner.id, later.id]
