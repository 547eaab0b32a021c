"""Answer drafting: a four-stage cascade from matched data to final text.

Stages run in order and the first one to return text wins:
maturity matrix, rich data templates, informal-practice narrative, generic
fallback. Confidence is computed from the data and the match alone, so the
stage that fired never changes it.
"""

import logging
import re
from functools import lru_cache
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import config
from models import (
    AnswerDraft,
    AnswerStage,
    ClassificationResult,
    CompanyProfile,
    DataContext,
    GenerationConfig,
    InformalPractice,
    MaturityBand,
    MatchResult,
    ParsedQuestion,
    QuestionType,
    RetrievedDataPoint,
)
from services.answer_templates import DataMap, format_value, framework_note, render
from services.confidence_scorer import ConfidenceScorer
from services.data_retrieval import is_reported, primary_points
from services.defensive_rewriter import rewrite_answer
from services.evidence_requirements import generate_evidence_requirement
from services.industry_context import (
    PRACTICE_TOPIC_TO_DOMAINS,
    IndustryKnowledge,
    domain_to_subcategory,
    domain_to_topic,
)
from services.rule_loader import FIELD_TO_METRIC_KEY

logger = logging.getLogger(__name__)

ESTIMATE_ASSUMPTION = "Some values are estimates based on activity data and standard emission factors."
FORMALIZATION_SENTENCE = ("We are in the process of formalizing these practices into documented policies and "
                          "procedures to strengthen our management approach.")
POLICY_LABELS = {
    "LABOR": "Health & Safety",
    "ENVIRONMENT": "Environmental",
    "ETHICS": "Ethics",
    "SUPPLY_CHAIN": "Supply Chain",
}
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_YEAR = re.compile(r"\d{4}")


class StageInput(NamedTuple):
    """Everything a drafting stage may read for one question."""
    question: ParsedQuestion
    match: MatchResult
    context: DataContext
    data: DataMap
    profile: Optional[CompanyProfile]
    question_type: Optional[QuestionType]


class StageAnswer(NamedTuple):
    text: str
    stage: AnswerStage
    used_practice: bool = False


Stage = Callable[[StageInput], Optional[StageAnswer]]


def has_data(context: DataContext, match: MatchResult) -> bool:
    return any(is_reported(p.value) for p in primary_points(context, match))


def resolve_maturity_band(profile: Optional[CompanyProfile], match: MatchResult, data_present: bool) -> MaturityBand:
    """formal: data or a formalized practice; informal: practices only; none otherwise."""
    topic = domain_to_topic(match.primary_domain)
    if profile is None or topic is None:
        return "formal" if data_present else "none"

    practices = [p for p in profile.informal_practices if p.topic == topic]
    if data_present or any(p.is_formalized for p in practices):
        return "formal"
    if practices:
        return "informal"
    return "none"


def relevant_practices(practices: Sequence[InformalPractice], match: MatchResult) -> List[InformalPractice]:
    """Practices whose topic covers any matched domain."""
    domains = set(match.all_domains)
    return [p for p in practices if domains.intersection(PRACTICE_TOPIC_TO_DOMAINS.get(p.topic, []))]


def next_reporting_year(profile: CompanyProfile) -> Tuple[str, str]:
    """(reporting year, following year) taken from the profile's reporting period."""
    found = _YEAR.search(profile.reporting_period or "")
    year = found.group(0) if found else config.DEFAULT_REPORTING_YEAR
    return year, str(int(year) + 1)


def first_sentences(text: str, count: int) -> str:
    return " ".join(_SENTENCE_END.split(text.strip())[:count])


class AnswerGenerator:
    """Runs the drafting cascade and assembles AnswerDraft records."""

    def __init__(
        self,
        knowledge: Optional[IndustryKnowledge] = None,
        scorer: Optional[ConfidenceScorer] = None,
        stages: Optional[Sequence[Stage]] = None
    ):
        self.knowledge = knowledge or IndustryKnowledge()
        self.scorer = scorer or ConfidenceScorer()
        self.stages: List[Stage] = list(stages) if stages is not None else [
            self.maturity_matrix_stage,
            self.rich_template_stage,
            self.informal_practice_stage,
            self.generic_fallback_stage,
        ]
        self._matrix: Dict[Tuple[str, str], Callable[[StageInput], List[str]]] = {
            ("POLICY", "none"): self._policy_roadmap,
            ("POLICY", "informal"): self._policy_practice,
            ("POLICY", "formal"): self._policy_full,
            ("MEASURE", "none"): self._measure_intent,
            ("MEASURE", "informal"): self._measure_operational,
            ("MEASURE", "formal"): self._measure_verified,
            ("KPI", "none"): self._kpi_baseline,
            ("KPI", "informal"): self._kpi_estimated,
            ("KPI", "formal"): lambda s: [],  # data templates handle audited figures
        }

    # ------------------------------------------------------------------
    # Drafting
    # ------------------------------------------------------------------

    def generate(
        self,
        question: ParsedQuestion,
        match: MatchResult,
        context: DataContext,
        generation_config: Optional[GenerationConfig] = None,
        profile: Optional[CompanyProfile] = None,
        classification: Optional[ClassificationResult] = None
    ) -> AnswerDraft:
        """Draft one answer. Never raises for a structurally valid question."""
        gen_config = generation_config or GenerationConfig()
        question_type = classification.question_type if classification else None
        stage_input = StageInput(question, match, context, DataMap(context), profile, question_type)

        result = self._run_stages(stage_input)
        points = context.all_points()
        answer_confidence = self.scorer.answer_confidence(context, match)
        has_estimates = any(p.is_estimate or p.confidence == "medium" for p in points)
        confidence_source = self.scorer.confidence_source(answer_confidence, has_estimates, result.used_practice)

        evidence = generate_evidence_requirement(
            question.id, question_type, match.primary_domain, confidence_source, has_estimates
        )
        methodology = evidence.methodology_note if gen_config.include_methodology else None

        prompt = match.prompt_if_missing or None
        if confidence_source == "unknown":
            answer = config.UNKNOWN_ANSWER + (f" {prompt}" if prompt else "")
            stage: AnswerStage = "unknown"
        else:
            answer = self._apply_verbosity(rewrite_answer(result.text), gen_config, methodology)
            stage = result.stage
        logger.debug(f"Question {question.id}: stage={stage}, confidence={answer_confidence}/{confidence_source}")

        metric_keys: List[str] = []
        for key in [FIELD_TO_METRIC_KEY.get(p.field) for p in points] + list(match.metric_keys):
            if key and key not in metric_keys:
                metric_keys.append(key)

        sourced = primary_points(context, match)
        first = sourced[0] if sourced else None
        gaps = list(context.metadata.data_gaps)
        return AnswerDraft(
            question_id=question.id,
            question_text=question.text,
            category=question.category,
            question_type=question_type,
            match_result=match,
            data_context=context,
            answer=answer,
            answer_stage=stage,
            data_value=str(first.value) if first and first.value is not None else None,
            data_unit=first.unit if first else None,
            data_period=context.metadata.reporting_period,
            data_source=first.source if first else None,
            answer_confidence=answer_confidence,
            confidence_source=confidence_source,
            methodology=methodology,
            assumptions=[ESTIMATE_ASSUMPTION] if has_estimates and gen_config.include_assumptions else [],
            limitations=gaps if gen_config.include_limitations else [],
            suggested_evidence=evidence.acceptable_documents,
            metric_keys_used=metric_keys,
            prompt_for_missing=prompt,
            needs_review=answer_confidence != "high",
            is_estimate=has_estimates,
            has_data_gaps=bool(gaps),
        )

    def _run_stages(self, stage_input: StageInput) -> StageAnswer:
        for stage in self.stages:
            result = stage(stage_input)
            if result is not None and result.text:
                return result
        # The generic fallback always produces text; only reachable with custom stages
        return StageAnswer("", "generic_fallback")

    @staticmethod
    def _apply_verbosity(text: str, gen_config: GenerationConfig, methodology: Optional[str]) -> str:
        if gen_config.verbosity == "concise":
            return first_sentences(text, 2)
        if gen_config.verbosity == "detailed" and methodology:
            return f"{text} Methodology: {methodology}"
        return text

    def _finish(self, text: str, s: StageInput) -> str:
        """Industry wording (with a profile) and the framework note."""
        if s.profile is not None:
            text = self.knowledge.apply_terms(text, s.profile.industry)
        return text + framework_note(s.question.framework)

    # ------------------------------------------------------------------
    # Stage 1: maturity matrix
    # ------------------------------------------------------------------

    def maturity_matrix_stage(self, s: StageInput) -> Optional[StageAnswer]:
        if s.profile is None or s.question_type is None:
            return None
        band = resolve_maturity_band(s.profile, s.match, has_data(s.context, s.match))
        parts = self._matrix[(s.question_type, band)](s)
        if not parts:
            return None
        # Only the formal band is backed by data
        return StageAnswer(self._finish(" ".join(parts), s), "maturity_matrix", used_practice=band != "formal")

    def _topic_practices(self, s: StageInput) -> List[InformalPractice]:
        topic = domain_to_topic(s.match.primary_domain)
        return [p for p in s.profile.informal_practices if p.topic == topic]

    def _approach(self, s: StageInput) -> Optional[str]:
        topic = domain_to_topic(s.match.primary_domain) or "ENVIRONMENT"
        return self.knowledge.management_approach(s.profile.industry, topic)

    def _measures(self, s: StageInput, limit: int) -> List[str]:
        topic = domain_to_topic(s.match.primary_domain)
        subcategory = domain_to_subcategory(s.match.primary_domain)
        if not topic or not subcategory:
            return []
        return self.knowledge.plausible_measures(s.profile.industry, topic, subcategory, limit)

    def _policy(self, s: StageInput, style: str, year: Optional[str] = None) -> Optional[str]:
        topic = domain_to_topic(s.match.primary_domain)
        return self.knowledge.policy_language(s.profile.industry, topic, style, year)

    def _policy_roadmap(self, s: StageInput) -> List[str]:
        _, next_year = next_reporting_year(s.profile)
        vision = self._policy(s, "vision")
        roadmap = self._policy(s, "roadmap", next_year)
        return [
            f"{s.profile.company_name} is {vision or 'committed to responsible management in this area'}.",
            f"{roadmap}." if roadmap else f"We are developing a formalised policy for publication in {next_year}.",
            f"In the interim, our approach is guided by {self._approach(s) or 'established operational practices'}.",
        ]

    def _policy_practice(self, s: StageInput) -> List[str]:
        _, next_year = next_reporting_year(s.profile)
        vision = self._policy(s, "vision")
        informal = self._policy(s, "informal")
        roadmap = self._policy(s, "roadmap", next_year)

        parts = [f"{s.profile.company_name} is {vision or 'committed to responsible management'}."]
        if informal:
            parts.append(f"{informal}.")
        practices = self._topic_practices(s)
        if practices:
            parts.append(f"Current practices include: {'; '.join(p.description for p in practices[:3])}.")
        parts.append(f"{roadmap}." if roadmap else f"We are formalising these practices into a documented policy "
                                                      f"for publication in {next_year}.")
        return parts

    def _policy_full(self, s: StageInput) -> List[str]:
        formal = self._policy(s, "formal")
        parts = [f"{formal}." if formal else
                 f"{s.profile.company_name} maintains a comprehensive management approach in this area."]
        certs = s.data.text("certificationsHeld")
        if certs:
            parts.append(f"This is supported by our certifications: {certs}.")
        goal = s.data.text("primaryGoal")
        if goal:
            parts.append(f"Our policy commitment is further demonstrated by our target: {goal}.")
        return parts

    def _measure_intent(self, s: StageInput) -> List[str]:
        _, next_year = next_reporting_year(s.profile)
        parts = [f"{s.profile.company_name} is developing structured measures in this area."]
        measures = self._measures(s, 2)
        if measures:
            parts.append(f"Planned initiatives for {next_year} include: {'; '.join(measures)}.")
        approach = self._approach(s) or "operational controls managed through our existing business processes"
        parts.append(f"Our management approach encompasses {approach}.")
        return parts

    def _measure_operational(self, s: StageInput) -> List[str]:
        _, next_year = next_reporting_year(s.profile)
        topic = domain_to_topic(s.match.primary_domain)
        subject = "health and safety are" if topic == "LABOR" else "this area is"
        setting = f"our {s.profile.industry.lower()} environment" if s.profile.industry else "our operations"

        controls = self._measures(s, 3) + [p.description for p in self._topic_practices(s)[:2]]
        lead = f"In {setting}, {subject} managed through operational controls"
        parts = [f"{lead} including: {'; '.join(controls)}." if controls else f"{lead}."]
        parts.append(f"While we are currently formalizing these into a standalone "
                     f"{POLICY_LABELS.get(topic, 'Supply Chain')} Policy for {next_year}, these operational "
                     "measures ensure immediate risk mitigation across our operations.")
        return parts

    def _measure_verified(self, s: StageInput) -> List[str]:
        parts = [f"{s.profile.company_name} implements structured measures in this area, "
                 "aligned with our management system."]
        measures = self._measures(s, 3)
        if measures:
            parts.append(f"Key measures include: {'; '.join(measures)}.")
        certs = s.data.text("certificationsHeld")
        if certs:
            parts.append(f"These measures are implemented within the framework of our {certs} management system.")
        return parts

    def _kpi_baseline(self, s: StageInput) -> List[str]:
        _, next_year = next_reporting_year(s.profile)
        return [
            f"{s.profile.company_name} is establishing a baseline for this indicator.",
            f"We are setting up data collection processes to enable quantified reporting in our "
            f"{next_year} disclosure cycle.",
            "Preliminary data sources include utility invoices and operational records.",
        ]

    def _kpi_estimated(self, s: StageInput) -> List[str]:
        year, _ = next_reporting_year(s.profile)
        points = primary_points(s.context, s.match)[:4]
        if points:
            statements = ". ".join(f"{p.label}: {format_value(p)}" for p in points)
            return [
                f"{statements}.",
                "Note: These values are calculated from operational records (utility invoices, production logs). "
                "We are working to establish externally verified reporting for future periods.",
            ]
        return [
            f"{s.profile.company_name} tracks this indicator through operational records such as utility "
            "invoices and production data.",
            f"We are consolidating this data into a formal {year} inventory to establish a baseline for "
            "future reduction targets.",
        ]

    # ------------------------------------------------------------------
    # Stage 2: rich data templates
    # ------------------------------------------------------------------

    def rich_template_stage(self, s: StageInput) -> Optional[StageAnswer]:
        text = render(s.match, s.context, s.question.framework)
        if not text:
            return None
        if s.profile is not None:
            text = self.knowledge.apply_terms(text, s.profile.industry)
        return StageAnswer(text, "rich_template")

    # ------------------------------------------------------------------
    # Stage 3: informal-practice narrative
    # ------------------------------------------------------------------

    def informal_practice_stage(self, s: StageInput) -> Optional[StageAnswer]:
        if s.profile is None or not s.profile.informal_practices:
            return None
        practices = relevant_practices(s.profile.informal_practices, s.match)
        if not practices:
            return None

        formalized = [p for p in practices if p.is_formalized]
        informal = [p for p in practices if not p.is_formalized]
        focus = "environmental" if s.match.primary_domain in ("emissions", "energy_electricity") else "operational"

        # Lead with what is being done
        parts = [f"{s.profile.company_name} operates with a commitment to responsible {focus} management."]
        if formalized:
            parts.append(f"Our established practices include: {'; '.join(p.description for p in formalized)}.")
        if informal:
            parts.append(f"Our current operations include: {'; '.join(p.description for p in informal)}.")

        for topic in dict.fromkeys(p.topic for p in practices):
            approach = self.knowledge.management_approach(s.profile.industry, topic)
            if approach:
                parts.append(f"Our management approach encompasses {approach}.")
                break

        if informal:
            parts.append(FORMALIZATION_SENTENCE)
        return StageAnswer(self._finish(" ".join(parts), s), "informal_practice", used_practice=True)

    # ------------------------------------------------------------------
    # Stage 4: generic fallback
    # ------------------------------------------------------------------

    @staticmethod
    def _fallback_points(s: StageInput) -> List[RetrievedDataPoint]:
        """Primary-domain points first; company basics only when the question is about the company."""
        primary = primary_points(s.context, s.match)
        secondary = [
            p for p in s.context.all_points()
            if p not in primary and (p.domain != "company" or s.match.primary_domain == "company")
        ]
        return primary + secondary

    def generic_fallback_stage(self, s: StageInput) -> Optional[StageAnswer]:
        name = s.profile.company_name if s.profile else "Our organization"
        points = self._fallback_points(s)
        if not points:
            return StageAnswer(
                f"{name} is currently establishing formal data collection processes in this area. We are "
                "committed to developing robust reporting capabilities and will include comprehensive "
                "disclosures in future reporting periods.",
                "generic_fallback",
            )

        statements = [
            f"{p.label}: {format_value(p)}"
            for p in points[:config.MAX_FALLBACK_STATEMENTS] if p.value is not None
        ]
        if not statements:
            return StageAnswer(
                f"{name} is reviewing data collection processes to ensure this information is available "
                "for future reporting cycles.",
                "generic_fallback",
            )
        return StageAnswer(self._finish(". ".join(statements) + ".", s), "generic_fallback")


@lru_cache(maxsize=1)
def default_generator() -> AnswerGenerator:
    return AnswerGenerator()


def generate_answer_drafts(
    questions: Sequence[ParsedQuestion],
    match_results: Sequence[MatchResult],
    data_contexts: Sequence[DataContext],
    generation_config: Optional[GenerationConfig] = None,
    profile: Optional[CompanyProfile] = None,
    classifications: Optional[Sequence[ClassificationResult]] = None,
    generator: Optional[AnswerGenerator] = None
) -> List[AnswerDraft]:
    """Draft answers for parallel lists of questions, matches and contexts, preserving order."""
    if len(match_results) != len(questions) or len(data_contexts) != len(questions):
        raise ValueError(
            f"Input lengths differ: {len(questions)} questions, {len(match_results)} matches, "
            f"{len(data_contexts)} contexts"
        )
    if classifications is not None and len(classifications) != len(questions):
        raise ValueError(f"Expected {len(questions)} classifications, got {len(classifications)}")

    generator = generator or default_generator()
    drafts = [
        generator.generate(
            question, match_results[i], data_contexts[i], generation_config, profile,
            classifications[i] if classifications is not None else None,
        )
        for i, question in enumerate(questions)
    ]
    logger.info(
        f"Drafted {len(drafts)} answers "
        f"({sum(1 for d in drafts if d.confidence_source == 'unknown')} need input)"
    )
    return drafts
