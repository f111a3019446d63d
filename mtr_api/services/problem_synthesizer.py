"""Turn an interaction report into unsaved DrugTherapyProblem records.

One problem per finding, in report order. No de-duplication across calls;
callers run this once per assessment.
"""

from __future__ import annotations

from uuid import UUID

from mtr_api.db.enums import (
    ContraindicationSeverity,
    DTPCategory,
    DTPSeverity,
    DTPStatus,
    DTPType,
    EvidenceLevel,
)
from mtr_api.db.models import DrugTherapyProblem
from mtr_api.db.types import utcnow
from mtr_api.services.interaction_checker import InteractionReport


def generate_problems_from_interactions(
    report: InteractionReport,
    review_id: UUID,
    patient_id: UUID,
    workplace_id: UUID,
    identified_by: UUID,
) -> list[DrugTherapyProblem]:
    now = utcnow()
    common = {
        "workplace_id": workplace_id,
        "patient_id": patient_id,
        "review_id": review_id,
        "evidence_level": EvidenceLevel.DEFINITE.value,
        "status": DTPStatus.IDENTIFIED.value,
        "risk_factors": [],
        "identified_by": identified_by,
        "identified_at": now,
        "created_by": identified_by,
    }
    problems: list[DrugTherapyProblem] = []

    for interaction in report.interactions:
        problems.append(
            DrugTherapyProblem(
                category=DTPCategory.SAFETY.value,
                subcategory="Drug Interaction",
                type=DTPType.INTERACTION.value,
                severity=interaction.severity,
                description=(
                    f"Drug interaction between {interaction.drug1} and "
                    f"{interaction.drug2}: {interaction.clinical_effect}"
                ),
                clinical_significance=f"{interaction.mechanism}. {interaction.management}",
                affected_medications=[interaction.drug1, interaction.drug2],
                related_conditions=[],
                **common,
            )
        )

    for duplicate in report.duplicate_therapies:
        problems.append(
            DrugTherapyProblem(
                category=DTPCategory.INDICATION.value,
                subcategory="Duplicate Therapy",
                type=DTPType.DUPLICATION.value,
                severity=DTPSeverity.MODERATE.value,
                description=f"Duplicate therapy in {duplicate.therapeutic_class}: {duplicate.reason}",
                clinical_significance=duplicate.recommendation,
                affected_medications=list(duplicate.medications),
                related_conditions=[],
                **common,
            )
        )

    for contraindication in report.contraindications:
        severity = (
            DTPSeverity.CRITICAL.value
            if contraindication.severity == ContraindicationSeverity.ABSOLUTE.value
            else DTPSeverity.MAJOR.value
        )
        problems.append(
            DrugTherapyProblem(
                category=DTPCategory.SAFETY.value,
                subcategory="Contraindication",
                type=DTPType.CONTRAINDICATION.value,
                severity=severity,
                description=(
                    f"Contraindication: {contraindication.medication} in patient with "
                    f"{contraindication.condition}"
                ),
                clinical_significance=(
                    f"{contraindication.reason}. Consider alternatives: "
                    f"{', '.join(contraindication.alternatives)}"
                ),
                affected_medications=[contraindication.medication],
                related_conditions=[contraindication.condition],
                **common,
            )
        )

    return problems
