"""MTR workflow step definitions and ordering."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from mtr_api.db.enums import MTRStep


@dataclass(frozen=True)
class StepDefinition:
    step: MTRStep
    title: str
    description: str
    required: bool
    dependencies: tuple[MTRStep, ...]


WORKFLOW_STEPS: tuple[StepDefinition, ...] = (
    StepDefinition(
        step=MTRStep.PATIENT_SELECTION,
        title="Patient Selection",
        description="Select and verify patient for MTR",
        required=True,
        dependencies=(),
    ),
    StepDefinition(
        step=MTRStep.MEDICATION_HISTORY,
        title="Medication History Collection",
        description="Collect comprehensive medication history",
        required=True,
        dependencies=(MTRStep.PATIENT_SELECTION,),
    ),
    StepDefinition(
        step=MTRStep.THERAPY_ASSESSMENT,
        title="Therapy Assessment",
        description="Assess therapy for drug-related problems",
        required=True,
        dependencies=(MTRStep.MEDICATION_HISTORY,),
    ),
    StepDefinition(
        step=MTRStep.PLAN_DEVELOPMENT,
        title="Plan Development",
        description="Develop therapy optimization plan",
        required=True,
        dependencies=(MTRStep.THERAPY_ASSESSMENT,),
    ),
    StepDefinition(
        step=MTRStep.INTERVENTIONS,
        title="Interventions & Documentation",
        description="Record interventions and outcomes",
        required=True,
        dependencies=(MTRStep.PLAN_DEVELOPMENT,),
    ),
    StepDefinition(
        step=MTRStep.FOLLOW_UP,
        title="Follow-Up & Monitoring",
        description="Schedule follow-up and monitoring",
        required=False,
        dependencies=(MTRStep.INTERVENTIONS,),
    ),
)

STEP_DEFINITIONS: dict[MTRStep, StepDefinition] = {d.step: d for d in WORKFLOW_STEPS}

if set(STEP_DEFINITIONS) != set(MTRStep):
    raise RuntimeError("Every MTRStep needs exactly one step definition")


def parse_step(name: str | MTRStep) -> MTRStep | None:
    """Return the step for a wire name, or None if it is not a known step."""
    try:
        return MTRStep(name)
    except ValueError:
        return None


def get_workflow_steps() -> list[dict[str, object]]:
    """Ordered step table with titles, descriptions and dependencies."""
    steps: list[dict[str, object]] = []
    for order, definition in enumerate(WORKFLOW_STEPS, start=1):
        steps.append(
            {
                "name": definition.step.value,
                "title": definition.title,
                "description": definition.description,
                "required": definition.required,
                "dependencies": [dep.value for dep in definition.dependencies],
                "order": order,
            }
        )
    return steps


def build_initial_steps() -> dict[str, dict[str, Any]]:
    """Empty step-state map for a new session."""
    return {
        definition.step.value: {"completed": False, "completed_at": None, "data": None}
        for definition in WORKFLOW_STEPS
    }


def is_step_completed(steps: dict[str, Any] | None, step: MTRStep) -> bool:
    state = (steps or {}).get(step.value) or {}
    return bool(state.get("completed"))


def get_next_step(steps: dict[str, Any] | None) -> MTRStep | None:
    """First step in declared order that is not completed; None when all are."""
    for definition in WORKFLOW_STEPS:
        if not is_step_completed(steps, definition.step):
            return definition.step
    return None


def completion_percentage(steps: dict[str, Any] | None) -> int:
    completed = sum(1 for d in WORKFLOW_STEPS if is_step_completed(steps, d.step))
    return round(completed / len(WORKFLOW_STEPS) * 100)


def with_step_completed(
    steps: dict[str, Any] | None,
    step: MTRStep,
    completed_at: datetime,
    data: dict[str, Any] | None = None,
) -> dict[str, dict[str, Any]]:
    """Return a copy of the step map with ``step`` marked complete.

    Existing step data is kept when no new data is given.
    """
    updated = {**build_initial_steps(), **{k: dict(v) for k, v in (steps or {}).items()}}
    state = updated[step.value]
    state["completed"] = True
    state["completed_at"] = completed_at.isoformat()
    if data is not None:
        state["data"] = data
    return updated


def with_step_cleared(
    steps: dict[str, Any] | None,
    step: MTRStep,
    data: dict[str, Any] | None = None,
) -> dict[str, dict[str, Any]]:
    """Return a copy of the step map with ``step`` marked incomplete."""
    updated = {**build_initial_steps(), **{k: dict(v) for k, v in (steps or {}).items()}}
    state = updated[step.value]
    state["completed"] = False
    state["completed_at"] = None
    if data is not None:
        state["data"] = data
    return updated
