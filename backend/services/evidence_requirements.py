"""Evidence a reviewer should attach to support a drafted answer."""

from typing import Dict, List, NamedTuple, Optional

from models import ConfidenceSource, EvidenceRequirement, QuestionType


class TypeEvidence(NamedTuple):
    description: str
    documents: List[str]


class DomainEvidence(NamedTuple):
    documents: List[str]
    methodology: Optional[str] = None


EVIDENCE_BY_TYPE: Dict[str, TypeEvidence] = {
    "POLICY": TypeEvidence(
        "Formal policy document, signed by senior management, covering the topic area",
        [
            "Standalone policy document (PDF, signed, dated)",
            "Relevant section of Employee Handbook (with version and page reference)",
            "Board-approved sustainability/ESG strategy document",
            "Management system manual (e.g., ISO 14001, ISO 45001)",
        ],
    ),
    "MEASURE": TypeEvidence(
        "Documentation of specific actions, procedures, or programmes in place",
        [
            "Standard Operating Procedures (SOPs) for the relevant process",
            "Training records or training plan documentation",
            "Inspection/audit reports (internal or external)",
            "Programme descriptions with implementation dates",
            "Meeting minutes demonstrating regular management review",
        ],
    ),
    "KPI": TypeEvidence(
        "Source data with clear methodology and calculation basis",
        [
            "Utility invoices (electricity, gas, water) for the reporting period",
            "Waste manifests or disposal records",
            "HR system reports (headcount, training hours, incident logs)",
            "Third-party verification/assurance statement (if available)",
            "Internal calculation spreadsheet with methodology notes",
        ],
    ),
}

DOMAIN_EVIDENCE: Dict[str, DomainEvidence] = {
    "emissions": DomainEvidence(
        ["Utility invoices", "Fuel purchase records", "GHG inventory calculation spreadsheet"],
        "Estimated using activity data and standard emission factors (IEA 2023 grid factors for Scope 2; "
        "DEFRA factors for Scope 1). Error margin: +/- 5-10% depending on data granularity.",
    ),
    "energy_electricity": DomainEvidence(
        ["Electricity invoices for all sites for the reporting period", "Renewable energy certificates or PPAs"],
        "Annual electricity consumption aggregated from monthly utility invoices. Renewable percentage based "
        "on green tariff or certificate documentation.",
    ),
    "energy_fuel": DomainEvidence(
        ["Natural gas invoices", "Diesel purchase records", "Fleet fuel card statements"],
        "Fuel volumes from supplier invoices. Scope 1 emissions calculated using DEFRA conversion factors.",
    ),
    "energy_water": DomainEvidence(
        ["Water utility invoices or meter readings for all sites"],
        "Annual water withdrawal from metered supply invoices.",
    ),
    "waste": DomainEvidence(
        ["Waste collection manifests", "Recycling certificates", "Hazardous waste consignment notes"],
        "Waste quantities from waste contractor reports. Diversion rate = (recycled + recovered) / total waste.",
    ),
    "workforce": DomainEvidence(["HR system headcount report", "Payroll summary for reporting period"]),
    "health_safety": DomainEvidence(
        ["Incident log/register for the reporting period", "OSHA 300 log or equivalent",
         "Safety committee meeting minutes"],
        "TRIR = (Number of recordable incidents × 200,000) / Total hours worked.",
    ),
    "training": DomainEvidence(
        ["Training records database export", "Training plan with completion status"],
        "Total training hours from LMS or manual records, divided by average headcount.",
    ),
    "regulatory": DomainEvidence(["Certificate copies (ISO 14001, ISO 45001, etc.)", "Latest external audit report"]),
}


def generate_evidence_requirement(
    question_id: str,
    question_type: Optional[QuestionType],
    domain: Optional[str],
    confidence_source: ConfidenceSource,
    is_estimate: bool
) -> EvidenceRequirement:
    """Documents for the question type plus the domain; a methodology note only for estimated answers."""
    qtype = question_type or "MEASURE"
    type_evidence = EVIDENCE_BY_TYPE.get(qtype, EVIDENCE_BY_TYPE["MEASURE"])
    domain_evidence = DOMAIN_EVIDENCE.get(domain) if domain else None

    documents = list(type_evidence.documents)
    if domain_evidence:
        documents.extend(d for d in domain_evidence.documents if d not in documents)

    methodology_note = None
    if (is_estimate or confidence_source == "estimated") and domain_evidence and domain_evidence.methodology:
        methodology_note = domain_evidence.methodology

    return EvidenceRequirement(
        question_id=question_id,
        question_type=qtype,
        evidence_description=type_evidence.description,
        acceptable_documents=documents,
        methodology_note=methodology_note,
    )
