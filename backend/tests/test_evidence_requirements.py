"""Tests for evidence requirements attached to drafts."""

import pytest

from services.evidence_requirements import DOMAIN_EVIDENCE, EVIDENCE_BY_TYPE, generate_evidence_requirement


def test_kpi_documents_include_domain_documents():
    requirement = generate_evidence_requirement("q1", "KPI", "waste", "provided", False)

    assert requirement.question_type == "KPI"
    assert requirement.evidence_description == EVIDENCE_BY_TYPE["KPI"].description
    assert requirement.acceptable_documents[:5] == EVIDENCE_BY_TYPE["KPI"].documents
    assert "Waste collection manifests" in requirement.acceptable_documents
    assert requirement.methodology_note is None


def test_missing_type_defaults_to_measure():
    requirement = generate_evidence_requirement("q1", None, None, "unknown", False)
    assert requirement.question_type == "MEASURE"
    assert requirement.acceptable_documents == EVIDENCE_BY_TYPE["MEASURE"].documents


def test_documents_are_not_repeated():
    requirement = generate_evidence_requirement("q1", "POLICY", "regulatory", "provided", False)
    assert len(requirement.acceptable_documents) == len(set(requirement.acceptable_documents))


@pytest.mark.parametrize("source,is_estimate", [("estimated", False), ("provided", True)])
def test_methodology_note_for_estimates(source, is_estimate):
    requirement = generate_evidence_requirement("q1", "KPI", "emissions", source, is_estimate)
    assert requirement.methodology_note == DOMAIN_EVIDENCE["emissions"].methodology


def test_no_methodology_note_without_domain_methodology():
    requirement = generate_evidence_requirement("q1", "KPI", "workforce", "estimated", True)
    assert requirement.methodology_note is None
