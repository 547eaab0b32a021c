"""Tests for the drafting cascade, confidence labelling and config gating."""

import pytest

import config
from models import (
    ClassificationResult,
    CompanyData,
    CompanyProfile,
    GenerationConfig,
    InformalPractice,
    MatchResult,
    ParsedQuestion,
)
from services.answer_generator import (
    ESTIMATE_ASSUMPTION,
    FORMALIZATION_SENTENCE,
    AnswerGenerator,
    first_sentences,
    generate_answer_drafts,
    next_reporting_year,
    resolve_maturity_band,
)
from services.answer_templates import candidate_templates, fmt
from services.domain_matcher import DomainMatcher
from services.evidence_requirements import DOMAIN_EVIDENCE
from services.industry_context import calculate_maturity

ELECTRICITY_QUESTION = "What was your total electricity consumption and renewable share?"
WASTE_QUESTION = "Describe how waste is handled."


@pytest.fixture(scope="module")
def generator():
    return AnswerGenerator()


def _question(text, framework=None):
    return ParsedQuestion(id="q1", row_index=2, text=text, framework=framework)


def _classified(question_type):
    return ClassificationResult(question_id="q1", question_type=question_type, confidence="medium")


def _draft(generator, matcher, retriever, question, data, **kwargs):
    match = matcher.match(question)
    context = retriever.retrieve(match, data)
    return generator.generate(question, match, context, **kwargs)


def test_csrd_electricity_answer_from_data(generator, matcher, retriever, company_data):
    draft = _draft(generator, matcher, retriever, _question(ELECTRICITY_QUESTION, "CSRD"), company_data)

    assert draft.answer_stage == "rich_template"
    assert "50,000 kWh" in draft.answer
    assert "60%" in draft.answer
    assert "We continue to prioritize the transition to renewable electricity" in draft.answer
    assert draft.answer.endswith("This disclosure is aligned with ESRS reporting requirements under the CSRD.")
    assert draft.answer_confidence == "high"
    assert draft.confidence_source == "provided"
    assert not draft.needs_review
    assert not draft.is_estimate
    assert draft.data_value == "50000"
    assert draft.data_unit == "kWh"
    assert draft.metric_keys_used == ["energy.electricity_kwh_12m", "energy.renewable_share_pct"]


def test_informal_practice_narrative_without_data(generator, matcher, retriever, informal_profile):
    draft = _draft(
        generator, matcher, retriever, _question(WASTE_QUESTION), CompanyData(), profile=informal_profile
    )

    assert draft.answer_stage == "informal_practice"
    assert draft.answer.startswith("Acme Components Ltd operates with a commitment")
    assert "Segregating cardboard and metal scrap at source" in draft.answer
    assert draft.answer.endswith(FORMALIZATION_SENTENCE)
    assert not draft.answer.startswith("We do not")
    assert draft.answer_confidence == "none"
    assert draft.confidence_source == "estimated"
    assert draft.needs_review


def test_unknown_answer_carries_rule_prompt(generator, matcher, retriever):
    draft = _draft(generator, matcher, retriever, _question(WASTE_QUESTION), CompanyData())

    assert draft.answer_stage == "unknown"
    assert draft.confidence_source == "unknown"
    assert draft.prompt_for_missing.startswith("Enter total waste")
    assert draft.answer == f"{config.UNKNOWN_ANSWER} {draft.prompt_for_missing}"
    assert draft.limitations == ["No waste data"]
    assert draft.has_data_gaps


def test_unknown_answer_without_prompt(generator, retriever):
    draft = _draft(generator, DomainMatcher(), retriever, _question(WASTE_QUESTION), CompanyData())
    assert draft.answer == config.UNKNOWN_ANSWER
    assert draft.prompt_for_missing is None


def test_kpi_with_data_never_uses_matrix(generator, matcher, retriever, informal_profile):
    question = _question("What was the total distance of business travel in km?")
    data = CompanyData(business_travel_km=12000, reporting_period="2024")
    draft = _draft(
        generator, matcher, retriever, question, data,
        profile=informal_profile, classification=_classified("KPI"),
    )
    assert draft.answer_stage == "generic_fallback"
    assert draft.answer == "Business Travel: 12,000 km."


def test_policy_with_data_uses_formal_policy_language(generator, retriever, company_data, informal_profile):
    question = _question("Do you have a formal waste policy?")
    match = MatchResult(question_id="q1", primary_domain="waste", topics=["waste_management"], confidence="high")
    context = retriever.retrieve(match, company_data)

    draft = generator.generate(
        question, match, context, profile=informal_profile, classification=_classified("POLICY")
    )
    assert draft.answer_stage == "maturity_matrix"
    assert draft.answer.startswith("Our environmental policy sets out")
    assert draft.answer_confidence == "high"
    assert draft.confidence_source == "provided"


def test_measure_with_informal_practice_describes_operational_controls(
    generator, matcher, retriever, informal_profile
):
    draft = _draft(
        generator, matcher, retriever, _question(WASTE_QUESTION), CompanyData(),
        profile=informal_profile, classification=_classified("MEASURE"),
    )
    assert draft.answer_stage == "maturity_matrix"
    assert "managed through operational controls" in draft.answer
    assert "Segregating cardboard and metal scrap at source" in draft.answer
    assert "Environmental Policy for 2025" in draft.answer
    assert draft.confidence_source == "estimated"


def test_concise_keeps_first_two_sentences(generator, matcher, retriever, company_data):
    draft = _draft(
        generator, matcher, retriever, _question(ELECTRICITY_QUESTION), company_data,
        generation_config=GenerationConfig(verbosity="concise"),
    )
    assert draft.answer == (
        "Our total electricity consumption was 50,000 kWh during 2024. "
        "Of this, 60% (approximately 30,000 kWh) was sourced from renewable energy."
    )


def _emissions_draft(generator, retriever, company_data, gen_config):
    match = MatchResult(
        question_id="q1", primary_domain="emissions", topics=["ghg_emissions", "scope_1"], confidence="high"
    )
    context = retriever.retrieve(match, company_data)
    return generator.generate(_question("Report your Scope 1 emissions."), match, context, gen_config)


def test_detailed_estimate_appends_methodology(generator, retriever, company_data):
    draft = _emissions_draft(generator, retriever, company_data, GenerationConfig(verbosity="detailed"))
    methodology = DOMAIN_EVIDENCE["emissions"].methodology

    assert draft.answer_stage == "rich_template"
    assert draft.answer.endswith(f" Methodology: {methodology}")
    assert draft.methodology == methodology
    assert draft.is_estimate
    assert draft.answer_confidence == "medium"
    assert draft.confidence_source == "estimated"
    assert draft.assumptions == [ESTIMATE_ASSUMPTION]


def test_methodology_and_assumptions_can_be_disabled(generator, retriever, company_data):
    gen_config = GenerationConfig(verbosity="detailed", include_methodology=False, include_assumptions=False)
    draft = _emissions_draft(generator, retriever, company_data, gen_config)
    assert draft.methodology is None
    assert "Methodology:" not in draft.answer
    assert draft.assumptions == []


def test_limitations_can_be_disabled(generator, matcher, retriever):
    draft = _draft(
        generator, matcher, retriever, _question(WASTE_QUESTION), CompanyData(),
        generation_config=GenerationConfig(include_limitations=False),
    )
    assert draft.limitations == []
    assert draft.has_data_gaps


def test_drafts_preserve_input_order(matcher, retriever, company_data):
    questions = [
        ParsedQuestion(id="a", row_index=2, text=ELECTRICITY_QUESTION),
        ParsedQuestion(id="b", row_index=3, text=WASTE_QUESTION),
    ]
    matches = matcher.match_all(questions)
    contexts = [retriever.retrieve(m, company_data) for m in matches]

    drafts = generate_answer_drafts(questions, matches, contexts)
    assert [d.question_id for d in drafts] == ["a", "b"]
    assert drafts[1].answer_stage == "rich_template"
    assert "8,000 kg" in drafts[1].answer


def test_mismatched_inputs_raise(matcher, retriever):
    question = ParsedQuestion(id="a", row_index=2, text=WASTE_QUESTION)
    with pytest.raises(ValueError):
        generate_answer_drafts([question], [], [])


def test_maturity_band_resolution(informal_profile):
    waste = MatchResult(question_id="q1", primary_domain="waste")
    workforce = MatchResult(question_id="q1", primary_domain="workforce")

    assert resolve_maturity_band(None, waste, True) == "formal"
    assert resolve_maturity_band(None, waste, False) == "none"
    assert resolve_maturity_band(informal_profile, waste, False) == "informal"
    assert resolve_maturity_band(informal_profile, waste, True) == "formal"
    assert resolve_maturity_band(informal_profile, workforce, False) == "none"

    formalized = informal_profile.model_copy(update={"informal_practices": [
        InformalPractice(topic="ENVIRONMENT", description="ISO 14001 aligned procedures", is_formalized=True),
    ]})
    assert resolve_maturity_band(formalized, waste, False) == "formal"


def test_reporting_year_from_profile():
    assert next_reporting_year(CompanyProfile(company_name="A", reporting_period="FY2023/24")) == ("2023", "2024")
    assert next_reporting_year(CompanyProfile(company_name="A")) == ("2024", "2025")


def test_first_sentences():
    assert first_sentences("One. Two! Three? Four.", 2) == "One. Two!"


@pytest.mark.parametrize("value,expected", [(50000, "50,000"), (12.34, "12.3"), (0, "0"), (1234.56, "1,234.6")])
def test_fmt(value, expected):
    assert fmt(value) == expected


def _practices(*topics, formalized=0):
    return [
        InformalPractice(topic=topic, description=f"practice {i}", is_formalized=i < formalized)
        for i, topic in enumerate(topics)
    ]


def test_maturity_score_levels():
    assert calculate_maturity(10, "Consulting", []) == ("Emerging", 0)
    assert calculate_maturity(60, "Retail", _practices("LABOR", "ETHICS")) == ("Developing", 25)
    assert calculate_maturity(300, "Food processing", _practices(*["LABOR"] * 3, *["ETHICS"] * 2)) == ("Established", 50)

    many = _practices(*["ENVIRONMENT", "LABOR", "ETHICS", "SUPPLY_CHAIN"] * 2, formalized=2)
    # 10 size + 40 practices + 20 topics + 6 formalized + 5 sector
    assert calculate_maturity(300, "Manufacturing", many) == ("Leading", 81)


def test_company_basics_never_answer_an_emissions_question(generator, matcher, retriever):
    question = _question("What are your company's total Scope 1 emissions?")
    draft = _draft(generator, matcher, retriever, question, CompanyData(company_name="Acme"))

    assert draft.match_result.primary_domain == "emissions"
    assert "company" in draft.match_result.secondary_domains
    assert draft.answer_confidence == "none"
    assert draft.confidence_source == "unknown"
    assert draft.answer_stage == "unknown"
    assert "Acme" not in draft.answer
    assert draft.data_value is None


def test_company_template_only_for_company_questions():
    emissions = MatchResult(
        question_id="q1", primary_domain="emissions", secondary_domains=["company"],
        topics=["ghg_emissions", "scope_1", "company_profile"],
    )
    company = MatchResult(question_id="q1", primary_domain="company", topics=["company_profile"])

    assert "company" not in [t.name for t in candidate_templates(emissions)]
    assert [t.name for t in candidate_templates(company)] == ["company"]


def test_primary_domain_templates_rank_first():
    match = MatchResult(
        question_id="q1", primary_domain="energy_fuel", secondary_domains=["emissions"],
        topics=["ghg_emissions", "scope_1", "energy_consumption"],
    )
    assert [t.name for t in candidate_templates(match)] == ["fuel", "emissions"]


@pytest.mark.parametrize("question_type,fragment", [
    ("POLICY", "scheduled for adoption in 2025"),
    ("MEASURE", "is developing structured measures in this area"),
    ("KPI", "is establishing a baseline for this indicator"),
])
def test_no_practice_no_data_gives_roadmap_framing(generator, retriever, informal_profile, question_type, fragment):
    profile = informal_profile.model_copy(update={"informal_practices": []})
    match = MatchResult(question_id="q1", primary_domain="waste", topics=["waste_management"], confidence="high")
    context = retriever.retrieve(match, CompanyData())

    draft = generator.generate(
        _question("Do you have an environmental policy on waste?"), match, context,
        profile=profile, classification=_classified(question_type),
    )
    assert draft.answer_stage == "maturity_matrix"
    assert fragment in draft.answer
    assert draft.answer_confidence == "none"
    assert draft.confidence_source == "estimated"
