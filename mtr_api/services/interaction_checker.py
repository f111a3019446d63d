"""Interaction checker - pairwise interactions, duplicate therapy and contraindications.

Pure functions over a medication list and a KnowledgeBase. Output ordering is
deterministic: interactions in (i < j) pair order, duplicate classes in order
of first appearance, contraindications in medication order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from mtr_api.services.drug_knowledge_base import (
    Contraindication,
    DrugInteraction,
    KnowledgeBase,
    get_knowledge_base,
)

UNCLASSIFIED = "Other"

SEVERITY_NONE = "none"
SEVERITY_ORDER = ("critical", "major", "moderate", "minor")

CONTRAINDICATION_SEVERITY_MAP = {
    "absolute": "critical",
    "relative": "major",
}


@dataclass(frozen=True)
class DuplicateTherapy:
    therapeutic_class: str
    medications: tuple[str, ...]
    reason: str
    recommendation: str


@dataclass
class InteractionReport:
    has_interactions: bool = False
    interactions: list[DrugInteraction] = field(default_factory=list)
    duplicate_therapies: list[DuplicateTherapy] = field(default_factory=list)
    contraindications: list[Contraindication] = field(default_factory=list)
    severity: str = SEVERITY_NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_interactions": self.has_interactions,
            "interactions": [
                {
                    "drug1": i.drug1,
                    "drug2": i.drug2,
                    "severity": i.severity,
                    "mechanism": i.mechanism,
                    "clinical_effect": i.clinical_effect,
                    "management": i.management,
                    "references": list(i.references),
                }
                for i in self.interactions
            ],
            "duplicate_therapies": [
                {
                    "therapeutic_class": d.therapeutic_class,
                    "medications": list(d.medications),
                    "reason": d.reason,
                    "recommendation": d.recommendation,
                }
                for d in self.duplicate_therapies
            ],
            "contraindications": [
                {
                    "medication": c.medication,
                    "condition": c.condition,
                    "severity": c.severity,
                    "reason": c.reason,
                    "alternatives": list(c.alternatives),
                }
                for c in self.contraindications
            ],
            "severity": self.severity,
        }


def _drug_name(medication: Any) -> str:
    """Medication entries may be dicts (stored JSON) or objects with drug_name."""
    if isinstance(medication, Mapping):
        name = medication.get("drug_name")
    else:
        name = getattr(medication, "drug_name", None)
    return (name or "").strip()


def group_by_class(
    medications: Iterable[Any], knowledge_base: KnowledgeBase
) -> dict[str, list[str]]:
    """Drug names grouped by therapeutic class, classes in first-seen order."""
    classes: dict[str, list[str]] = {}
    for medication in medications:
        name = _drug_name(medication)
        if not name:
            continue
        therapeutic_class = knowledge_base.therapeutic_class(name) or UNCLASSIFIED
        classes.setdefault(therapeutic_class, []).append(name)
    return classes


def overall_severity(report: InteractionReport) -> str:
    if not report.has_interactions:
        return SEVERITY_NONE
    severities = {i.severity for i in report.interactions}
    severities.update(
        CONTRAINDICATION_SEVERITY_MAP.get(c.severity, "major") for c in report.contraindications
    )
    for level in SEVERITY_ORDER:
        if level in severities:
            return level
    return "minor"


def check_interactions(
    medications: list[Any] | None,
    knowledge_base: KnowledgeBase | None = None,
) -> InteractionReport:
    """Check a medication list for interactions, duplicate therapy and contraindications."""
    report = InteractionReport()
    if not medications or len(medications) < 2:
        return report

    kb = knowledge_base or get_knowledge_base()
    names = [_drug_name(m) for m in medications]

    for i in range(len(names)):
        for j in range(i + 1, len(names)):
            if not names[i] or not names[j]:
                continue
            interaction = kb.find_interaction(names[i], names[j])
            if interaction:
                report.interactions.append(interaction)
                report.has_interactions = True

    for therapeutic_class, drugs in group_by_class(medications, kb).items():
        if therapeutic_class == UNCLASSIFIED or len(drugs) < 2:
            continue
        rule = kb.duplicate_therapy_rule(therapeutic_class)
        if rule:
            report.duplicate_therapies.append(
                DuplicateTherapy(
                    therapeutic_class=rule.therapeutic_class,
                    medications=tuple(drugs),
                    reason=rule.reason,
                    recommendation=rule.recommendation,
                )
            )
            report.has_interactions = True

    for name in names:
        if not name:
            continue
        contraindication = kb.find_contraindication(name)
        if contraindication:
            report.contraindications.append(contraindication)
            report.has_interactions = True

    report.severity = overall_severity(report)
    return report
