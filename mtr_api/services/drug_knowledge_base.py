"""Drug knowledge base - interaction, therapeutic-class and contraindication lookups.

The interaction checker depends on the KnowledgeBase protocol only. The
bundled StaticKnowledgeBase holds a small versioned reference dataset; a
deployment backed by a commercial drug database implements the same three
lookups against that API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol


@dataclass(frozen=True)
class DrugInteraction:
    drug1: str
    drug2: str
    severity: str  # critical / major / moderate / minor
    mechanism: str
    clinical_effect: str
    management: str
    references: tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateTherapyRule:
    therapeutic_class: str
    reason: str
    recommendation: str


@dataclass(frozen=True)
class Contraindication:
    medication: str
    condition: str
    severity: str  # absolute / relative
    reason: str
    alternatives: tuple[str, ...] = ()


class KnowledgeBase(Protocol):
    """Read-only drug reference lookups. Drug names are matched case-insensitively."""

    version: str

    def find_interaction(self, drug_a: str, drug_b: str) -> DrugInteraction | None:
        ...

    def therapeutic_class(self, drug_name: str) -> str | None:
        ...

    def duplicate_therapy_rule(self, therapeutic_class: str) -> DuplicateTherapyRule | None:
        ...

    def find_contraindication(self, drug_name: str) -> Contraindication | None:
        ...


def _key(name: str) -> str:
    return name.strip().lower()


@dataclass
class StaticKnowledgeBase:
    """In-memory knowledge base built from constant tables."""

    interactions: Iterable[DrugInteraction] = ()
    class_map: dict[str, str] = field(default_factory=dict)
    duplicate_rules: Iterable[DuplicateTherapyRule] = ()
    contraindications: Iterable[Contraindication] = ()
    version: str = "custom"

    def __post_init__(self) -> None:
        self._interactions: dict[frozenset[str], DrugInteraction] = {}
        for interaction in self.interactions:
            pair = frozenset((_key(interaction.drug1), _key(interaction.drug2)))
            # First entry wins for a repeated pair
            self._interactions.setdefault(pair, interaction)
        self._classes = {_key(drug): cls for drug, cls in self.class_map.items()}
        self._duplicates = {_key(rule.therapeutic_class): rule for rule in self.duplicate_rules}
        self._contraindications: dict[str, Contraindication] = {}
        for contraindication in self.contraindications:
            self._contraindications.setdefault(_key(contraindication.medication), contraindication)

    def find_interaction(self, drug_a: str, drug_b: str) -> DrugInteraction | None:
        a, b = _key(drug_a), _key(drug_b)
        if not a or not b:
            return None
        return self._interactions.get(frozenset((a, b)))

    def therapeutic_class(self, drug_name: str) -> str | None:
        return self._classes.get(_key(drug_name))

    def duplicate_therapy_rule(self, therapeutic_class: str) -> DuplicateTherapyRule | None:
        return self._duplicates.get(_key(therapeutic_class))

    def find_contraindication(self, drug_name: str) -> Contraindication | None:
        return self._contraindications.get(_key(drug_name))


# =============================================================================
# Bundled reference dataset
# =============================================================================

REFERENCE_DATASET_VERSION = "2024.12"

REFERENCE_INTERACTIONS = (
    DrugInteraction(
        drug1="Warfarin",
        drug2="Aspirin",
        severity="major",
        mechanism="Additive anticoagulant effects",
        clinical_effect="Increased risk of bleeding",
        management="Monitor INR closely, consider dose adjustment",
        references=("Lexicomp Drug Interactions",),
    ),
    DrugInteraction(
        drug1="Metformin",
        drug2="Contrast Media",
        severity="major",
        mechanism="Increased risk of lactic acidosis",
        clinical_effect="Potential kidney damage and lactic acidosis",
        management="Discontinue metformin 48 hours before contrast procedure",
        references=("FDA Drug Safety Communication",),
    ),
    DrugInteraction(
        drug1="Simvastatin",
        drug2="Clarithromycin",
        severity="major",
        mechanism="CYP3A4 inhibition",
        clinical_effect="Increased risk of myopathy and rhabdomyolysis",
        management="Avoid combination or reduce simvastatin dose",
        references=("Product Labeling",),
    ),
    DrugInteraction(
        drug1="Digoxin",
        drug2="Furosemide",
        severity="moderate",
        mechanism="Hypokalemia increases digoxin toxicity",
        clinical_effect="Increased risk of digoxin toxicity",
        management="Monitor potassium levels and digoxin levels",
        references=("Clinical Pharmacology",),
    ),
    DrugInteraction(
        drug1="ACE Inhibitor",
        drug2="Potassium Supplement",
        severity="moderate",
        mechanism="Additive hyperkalemic effects",
        clinical_effect="Risk of hyperkalemia",
        management="Monitor serum potassium regularly",
        references=("Drug Interaction Database",),
    ),
)

REFERENCE_CLASS_MAP = {
    "lisinopril": "ACE Inhibitors",
    "enalapril": "ACE Inhibitors",
    "captopril": "ACE Inhibitors",
    "omeprazole": "Proton Pump Inhibitors",
    "lansoprazole": "Proton Pump Inhibitors",
    "pantoprazole": "Proton Pump Inhibitors",
    "simvastatin": "Statins",
    "atorvastatin": "Statins",
    "rosuvastatin": "Statins",
    "metoprolol": "Beta Blockers",
    "propranolol": "Beta Blockers",
    "atenolol": "Beta Blockers",
}

REFERENCE_DUPLICATE_RULES = (
    DuplicateTherapyRule(
        therapeutic_class="ACE Inhibitors",
        reason="Multiple ACE inhibitors prescribed",
        recommendation="Use single ACE inhibitor, discontinue duplicates",
    ),
    DuplicateTherapyRule(
        therapeutic_class="Proton Pump Inhibitors",
        reason="Multiple PPIs prescribed",
        recommendation="Consolidate to single PPI therapy",
    ),
    DuplicateTherapyRule(
        therapeutic_class="Statins",
        reason="Multiple statin medications",
        recommendation="Use single statin, adjust dose as needed",
    ),
    DuplicateTherapyRule(
        therapeutic_class="Beta Blockers",
        reason="Multiple beta blockers prescribed",
        recommendation="Consolidate to single beta blocker therapy",
    ),
)

REFERENCE_CONTRAINDICATIONS = (
    Contraindication(
        medication="Metformin",
        condition="Severe kidney disease (eGFR < 30)",
        severity="absolute",
        reason="Risk of lactic acidosis",
        alternatives=("Insulin", "DPP-4 inhibitors", "SGLT-2 inhibitors"),
    ),
    Contraindication(
        medication="NSAIDs",
        condition="Heart failure",
        severity="relative",
        reason="May worsen heart failure and kidney function",
        alternatives=("Acetaminophen", "Topical analgesics"),
    ),
    Contraindication(
        medication="Beta Blockers",
        condition="Severe asthma",
        severity="absolute",
        reason="May cause bronchospasm",
        alternatives=("Calcium channel blockers", "ACE inhibitors"),
    ),
)

_default_knowledge_base: StaticKnowledgeBase | None = None


def get_knowledge_base() -> KnowledgeBase:
    """Return the shared reference knowledge base (read-only, safe to share)."""
    global _default_knowledge_base
    if _default_knowledge_base is None:
        _default_knowledge_base = StaticKnowledgeBase(
            interactions=REFERENCE_INTERACTIONS,
            class_map=REFERENCE_CLASS_MAP,
            duplicate_rules=REFERENCE_DUPLICATE_RULES,
            contraindications=REFERENCE_CONTRAINDICATIONS,
            version=REFERENCE_DATASET_VERSION,
        )
    return _default_knowledge_base
