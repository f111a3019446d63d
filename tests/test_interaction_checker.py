"""Interaction checker and knowledge base tests."""

import pytest

from mtr_api.services.drug_knowledge_base import (
    REFERENCE_DATASET_VERSION,
    Contraindication,
    DrugInteraction,
    DuplicateTherapyRule,
    StaticKnowledgeBase,
    get_knowledge_base,
)
from mtr_api.services.interaction_checker import check_interactions


def _meds(*names: str) -> list[dict]:
    return [{"drug_name": name} for name in names]


@pytest.fixture
def fixture_kb() -> StaticKnowledgeBase:
    """Small knowledge base independent of the bundled reference data."""
    return StaticKnowledgeBase(
        interactions=(
            DrugInteraction("Alpha", "Beta", "minor", "m1", "e1", "g1"),
            DrugInteraction("Alpha", "Gamma", "moderate", "m2", "e2", "g2"),
            DrugInteraction("Beta", "Gamma", "critical", "m3", "e3", "g3"),
        ),
        class_map={"Delta": "Class D", "Epsilon": "Class D", "Zeta": "Class Z"},
        duplicate_rules=(DuplicateTherapyRule("Class D", "Two class D drugs", "Keep one"),),
        contraindications=(
            Contraindication("Zeta", "Condition Z", "relative", "Reason Z", ("Alpha",)),
        ),
        version="test-1",
    )


def test_single_medication_has_no_findings():
    report = check_interactions(_meds("Warfarin"))

    assert report.to_dict() == {
        "has_interactions": False,
        "interactions": [],
        "duplicate_therapies": [],
        "contraindications": [],
        "severity": "none",
    }


def test_empty_or_missing_medication_list():
    assert check_interactions([]).severity == "none"
    assert check_interactions(None).has_interactions is False


def test_warfarin_aspirin_is_a_major_interaction():
    report = check_interactions(_meds("Warfarin", "Aspirin"))

    assert report.has_interactions is True
    assert len(report.interactions) == 1
    interaction = report.interactions[0]
    assert {interaction.drug1, interaction.drug2} == {"Warfarin", "Aspirin"}
    assert interaction.severity == "major"
    assert report.severity == "major"


def test_interaction_lookup_is_symmetric_and_case_insensitive():
    kb = get_knowledge_base()

    forward = kb.find_interaction("warfarin", "ASPIRIN")
    backward = kb.find_interaction("Aspirin", "Warfarin")

    assert forward is not None
    assert forward == backward
    assert check_interactions(_meds("aspirin", "WARFARIN")).severity == "major"


def test_duplicate_therapy_groups_by_class_in_input_order():
    report = check_interactions(_meds("Omeprazole", "Lisinopril", "pantoprazole", "Enalapril"))

    assert [d.therapeutic_class for d in report.duplicate_therapies] == [
        "Proton Pump Inhibitors",
        "ACE Inhibitors",
    ]
    assert report.duplicate_therapies[0].medications == ("Omeprazole", "pantoprazole")
    assert report.duplicate_therapies[0].recommendation == "Consolidate to single PPI therapy"
    assert report.has_interactions is True
    # Duplicates alone do not raise the overall severity above minor
    assert report.severity == "minor"


def test_unclassified_drugs_never_count_as_duplicates():
    report = check_interactions(_meds("Unknownium", "Mysteryol"))

    assert report.duplicate_therapies == []
    assert report.has_interactions is False


def test_contraindications_follow_medication_order():
    report = check_interactions(_meds("Beta Blockers", "Metformin"))

    assert [c.medication for c in report.contraindications] == ["Beta Blockers", "Metformin"]
    assert report.contraindications[1].alternatives == (
        "Insulin",
        "DPP-4 inhibitors",
        "SGLT-2 inhibitors",
    )
    # Absolute contraindications map to critical
    assert report.severity == "critical"


def test_relative_contraindication_maps_to_major():
    report = check_interactions(_meds("NSAIDs", "Acetaminophen"))

    assert report.severity == "major"


def test_pairs_are_reported_in_index_order(fixture_kb):
    report = check_interactions(_meds("Alpha", "Beta", "Gamma"), fixture_kb)

    assert [(i.drug1, i.drug2) for i in report.interactions] == [
        ("Alpha", "Beta"),
        ("Alpha", "Gamma"),
        ("Beta", "Gamma"),
    ]
    assert report.severity == "critical"


@pytest.mark.parametrize(
    "medications,expected",
    [
        (("Alpha", "Beta"), "minor"),
        (("Alpha", "Beta", "Zeta"), "major"),
        (("Alpha", "Gamma", "Zeta"), "major"),
        (("Alpha", "Beta", "Gamma", "Zeta"), "critical"),
    ],
)
def test_overall_severity_is_the_worst_finding(fixture_kb, medications, expected):
    assert check_interactions(_meds(*medications), fixture_kb).severity == expected


def test_adding_a_medication_never_lowers_severity(fixture_kb):
    order = ["none", "minor", "moderate", "major", "critical"]
    medications: list[str] = []
    previous = "none"
    for name in ("Delta", "Alpha", "Beta", "Epsilon", "Zeta", "Gamma"):
        medications.append(name)
        severity = check_interactions(_meds(*medications), fixture_kb).severity
        assert order.index(severity) >= order.index(previous)
        previous = severity


def test_injected_knowledge_base_replaces_reference_data(fixture_kb):
    report = check_interactions(_meds("Warfarin", "Aspirin"), fixture_kb)

    assert report.has_interactions is False
    assert fixture_kb.version == "test-1"
    assert get_knowledge_base().version == REFERENCE_DATASET_VERSION


def test_medication_objects_and_blank_names_are_accepted(fixture_kb):
    class Entry:
        def __init__(self, drug_name):
            self.drug_name = drug_name

    report = check_interactions([Entry("Alpha"), Entry("  "), Entry("Beta")], fixture_kb)

    assert [(i.drug1, i.drug2) for i in report.interactions] == [("Alpha", "Beta")]
