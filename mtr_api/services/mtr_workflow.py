"""MTR workflow engine - step dependency gating, per-step validation, completion.

Pure: every function works on a session-like object (steps, medications,
plan, consent flags) plus a ReviewContext snapshot of related records that the
caller has already loaded. Nothing here touches the database or raises for
validation failures; results carry errors and warnings for the service layer
to act on.

Errors block the step. Warnings are informational and never block.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from mtr_api.core.mtr_steps import (
    STEP_DEFINITIONS,
    WORKFLOW_STEPS,
    is_step_completed,
    parse_step,
)
from mtr_api.db.enums import MTRStep


@dataclass
class StepValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    can_proceed: bool = True

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False
        self.can_proceed = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "can_proceed": self.can_proceed,
        }


@dataclass(frozen=True)
class ReviewContext:
    """Related-record snapshot for one session (soft-deleted rows excluded)."""

    patient_exists: bool = True
    other_active_sessions: int = 0
    problems: Sequence[Any] = ()
    interventions: Sequence[Any] = ()
    follow_ups: Sequence[Any] = ()


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _step_data(session: Any, step: MTRStep, data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Stored step data overlaid with the data submitted with this request."""
    stored = ((_get(session, "steps") or {}).get(step.value) or {}).get("data") or {}
    return {**stored, **(data or {})}


# =============================================================================
# Per-step validators
# =============================================================================

StepValidator = Callable[[Any, ReviewContext, dict[str, Any], StepValidationResult], None]


def _validate_patient_selection(session, context, data, result) -> None:
    if not context.patient_exists:
        result.add_error("Patient not found")
    if not _get(session, "patient_consent"):
        result.add_error("Patient consent is required")
    if not _get(session, "confidentiality_agreed"):
        result.add_error("Confidentiality agreement is required")
    if context.other_active_sessions > 0:
        result.add_warning("Patient has other active MTR sessions")


def _validate_medication_history(session, context, data, result) -> None:
    medications = _get(session, "medications") or []
    if not medications:
        result.add_error("At least one medication must be recorded")

    for index, medication in enumerate(medications, start=1):
        instructions = _get(medication, "instructions") or {}
        if _blank(_get(medication, "drug_name")):
            result.add_error(f"Medication {index}: Drug name is required")
        if _blank(_get(medication, "indication")):
            result.add_error(f"Medication {index}: Indication is required")
        if _blank(_get(instructions, "dose")):
            result.add_error(f"Medication {index}: Dose is required")
        if _blank(_get(instructions, "frequency")):
            result.add_error(f"Medication {index}: Frequency is required")

    seen: set[str] = set()
    duplicates: list[str] = []
    for medication in medications:
        name = (_get(medication, "drug_name") or "").strip().lower()
        if not name:
            continue
        if name in seen:
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        result.add_warning(f"Potential duplicate medications detected: {', '.join(duplicates)}")


def _validate_therapy_assessment(session, context, data, result) -> None:
    if not data.get("interactions_checked"):
        result.add_warning("Drug interactions should be checked")
    if not context.problems and not data.get("no_problems_confirmed"):
        result.add_warning("No drug therapy problems identified - please confirm this is correct")


def _validate_plan_development(session, context, data, result) -> None:
    plan = _get(session, "plan")
    if not plan:
        result.add_error("Therapy plan must be created")
        return

    recommendations = _get(plan, "recommendations") or []
    if context.problems and not recommendations:
        result.add_error("Plan must include recommendations for identified problems")

    for index, recommendation in enumerate(recommendations, start=1):
        if _blank(_get(recommendation, "rationale")):
            result.add_error(f"Recommendation {index}: Rationale is required")
        if _blank(_get(recommendation, "expected_outcome")):
            result.add_error(f"Recommendation {index}: Expected outcome is required")


def _validate_interventions(session, context, data, result) -> None:
    recommendations = _get(_get(session, "plan"), "recommendations") or []
    if recommendations and not context.interventions:
        result.add_warning("No interventions recorded for therapy plan recommendations")


def _validate_follow_up(session, context, data, result) -> None:
    needs_follow_up = any(_get(i, "follow_up_required") for i in context.interventions)
    if needs_follow_up and not context.follow_ups:
        result.add_warning("Some interventions require follow-up but none scheduled")


_STEP_VALIDATORS: dict[MTRStep, StepValidator] = {
    MTRStep.PATIENT_SELECTION: _validate_patient_selection,
    MTRStep.MEDICATION_HISTORY: _validate_medication_history,
    MTRStep.THERAPY_ASSESSMENT: _validate_therapy_assessment,
    MTRStep.PLAN_DEVELOPMENT: _validate_plan_development,
    MTRStep.INTERVENTIONS: _validate_interventions,
    MTRStep.FOLLOW_UP: _validate_follow_up,
}

if set(_STEP_VALIDATORS) != set(MTRStep):
    raise RuntimeError("Every MTRStep needs exactly one validator")


# =============================================================================
# Public API
# =============================================================================


def validate_step(
    step_name: str | MTRStep,
    session: Any,
    context: ReviewContext | None = None,
    data: Mapping[str, Any] | None = None,
) -> StepValidationResult:
    """
    Validate whether ``step_name`` can be completed for ``session``.

    Unknown step names short-circuit with a single error. Otherwise every
    unmet dependency is reported, then the step's own rules run.
    """
    step = parse_step(step_name)
    if step is None:
        name = step_name.value if isinstance(step_name, MTRStep) else step_name
        return StepValidationResult(
            is_valid=False,
            errors=[f"Invalid step name: {name}"],
            can_proceed=False,
        )

    context = context or ReviewContext()
    result = StepValidationResult()
    steps = _get(session, "steps")
    for dependency in STEP_DEFINITIONS[step].dependencies:
        if not is_step_completed(steps, dependency):
            result.add_error(f"Dependency not met: {dependency.value} must be completed first")

    _STEP_VALIDATORS[step](session, context, _step_data(session, step, data), result)
    return result


def can_complete_workflow(session: Any) -> StepValidationResult:
    """All required steps completed and a therapy plan present."""
    result = StepValidationResult()
    steps = _get(session, "steps")
    for definition in WORKFLOW_STEPS:
        if definition.required and not is_step_completed(steps, definition.step):
            result.add_error(f"Required step not completed: {definition.title}")
    if not _get(session, "plan"):
        result.add_error("Therapy plan is required for completion")
    return result
