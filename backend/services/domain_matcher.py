"""Rule-based domain matching for ESG questions.

Each question is scored against a static keyword table; structured rules
loaded from CSV are evaluated separately and only attach metric keys and a
prompt for missing data. Matching is deterministic and traceable to the
keywords that fired.
"""

import logging
import re
from typing import Dict, List, NamedTuple, Optional, Pattern, Sequence, Tuple

from models import MappingRule, MatchResult, ParsedQuestion
from services.confidence_scorer import ConfidenceScorer
import config

logger = logging.getLogger(__name__)


class KeywordRule(NamedTuple):
    keywords: Tuple[str, ...]
    domain: str
    topics: Tuple[str, ...]
    weight: int


def _rule(keywords, domain, topics, weight) -> KeywordRule:
    return KeywordRule(tuple(keywords), domain, tuple(topics), weight)


KEYWORD_RULES: List[KeywordRule] = [
    _rule(["scope 1", "scope1", "direct emission", "direct ghg", "stationary combustion", "mobile combustion", "fugitive"],
          "emissions", ["ghg_emissions", "scope_1"], 10),
    _rule(["scope 2", "scope2", "indirect emission", "purchased electricity", "purchased energy", "market-based", "location-based"],
          "energy_electricity", ["ghg_emissions", "scope_2"], 10),
    _rule(["scope 3", "scope3", "value chain", "upstream", "downstream", "business travel", "employee commuting"],
          "transport", ["ghg_emissions", "scope_3"], 10),
    _rule(["greenhouse gas", "ghg", "carbon emission", "co2", "carbon dioxide", "tco2e", "carbon footprint", "climate change"],
          "emissions", ["ghg_emissions", "climate_targets"], 8),
    _rule(["carbon neutral", "net zero", "net-zero", "climate target", "sbti", "science based target", "emission reduction target"],
          "goals", ["climate_targets", "ghg_emissions"], 8),
    _rule(["refrigerant", "hfc", "f-gas", "fluorinated"], "emissions", ["ghg_emissions", "scope_1"], 9),
    _rule(["electricity", "electric", "kwh", "kilowatt", "power consumption", "grid"],
          "energy_electricity", ["energy_consumption"], 9),
    _rule(["renewable", "solar", "wind", "hydro", "green energy", "clean energy", "ppa", "power purchase agreement", "green tariff"],
          "energy_electricity", ["renewable_energy", "energy_consumption"], 9),
    _rule(["natural gas", "fuel oil", "diesel", "petrol", "gasoline", "lpg", "propane", "heating oil", "combustion"],
          "energy_fuel", ["energy_consumption", "scope_1"], 9),
    _rule(["energy consumption", "energy use", "energy intensity", "energy efficiency", "energy management"],
          "energy_electricity", ["energy_consumption"], 7),
    _rule(["water consumption", "water use", "water withdrawal", "water intake", "water intensity"],
          "energy_water", ["water_usage"], 9),
    _rule(["wastewater", "effluent", "water discharge", "water treatment", "water pollution"],
          "effluents", ["water_usage", "pollution"], 9),
    _rule(["water stress", "water scarcity", "water risk", "water stewardship"], "energy_water", ["water_usage"], 7),
    _rule(["waste", "landfill", "incineration", "disposal"], "waste", ["waste_management"], 9),
    _rule(["recycling", "recycle", "recycled", "diversion rate"],
          "waste", ["waste_management", "recycling", "circular_economy"], 9),
    _rule(["hazardous waste", "hazardous material", "dangerous goods", "special waste"],
          "waste", ["waste_management", "pollution"], 10),
    _rule(["circular economy", "circularity", "closed loop", "take-back", "reuse", "refurbish"],
          "waste", ["circular_economy", "waste_management"], 8),
    _rule(["raw material", "material consumption", "material use", "virgin material", "primary material"],
          "materials", ["materials"], 9),
    _rule(["recycled content", "recycled material", "secondary material", "post-consumer", "pre-consumer"],
          "materials", ["materials", "circular_economy"], 9),
    _rule(["packaging", "package", "packaging material", "single-use", "plastic packaging"],
          "packaging", ["packaging", "waste_management"], 9),
    _rule(["supplier", "supply chain", "vendor", "procurement", "sourcing"],
          "materials", ["supplier_management", "supply_chain_social"], 7),
    _rule(["supplier code of conduct", "supplier assessment", "supplier audit", "supplier screening"],
          "buyer_requirements", ["supplier_management", "ethics"], 8),
    _rule(["transport", "transportation", "logistics", "shipping", "freight", "distribution"],
          "transport", ["transport", "logistics"], 9),
    _rule(["fleet", "vehicle", "truck", "delivery"], "transport", ["transport", "scope_1"], 8),
    _rule(["employee", "headcount", "fte", "full-time equivalent", "workforce", "staff", "personnel"],
          "workforce", ["employee_count"], 9),
    _rule(["diversity", "gender", "female", "male", "women", "minority", "inclusion", "dei"],
          "workforce", ["diversity", "employee_count"], 9),
    _rule(["trir", "ltir", "incident rate", "recordable incident", "lost time", "injury", "accident", "fatality"],
          "health_safety", ["health_safety"], 10),
    _rule(["health and safety", "health & safety", "occupational health", "workplace safety", "ohs", "ehs"],
          "health_safety", ["health_safety"], 9),
    _rule(["training", "learning", "development", "skill", "capacity building", "training hours"],
          "training", ["training"], 9),
    _rule(["human rights", "forced labor", "child labor", "modern slavery", "labor rights"],
          "workforce", ["human_rights", "labor_practices"], 9),
    _rule(["wage", "compensation", "living wage", "fair pay", "minimum wage"], "workforce", ["labor_practices"], 8),
    _rule(["certification", "certified", "iso", "accreditation", "standard"],
          "regulatory", ["certifications", "compliance"], 8),
    _rule(["iso 14001", "emas", "environmental management"], "regulatory", ["certifications", "policies"], 9),
    _rule(["iso 45001", "ohsas", "safety management"], "regulatory", ["certifications", "health_safety"], 9),
    _rule(["iatf 16949", "iatf16949", "automotive quality management"], "regulatory", ["certifications", "compliance"], 9),
    _rule(["rohs", "restriction of hazardous substances"], "regulatory", ["certifications", "compliance"], 9),
    _rule(["reach", "reach regulation", "reach compliance", "svhc"], "regulatory", ["certifications", "compliance"], 9),
    _rule(["weee", "waste electrical", "electronic waste", "e-waste"], "waste", ["waste_management", "compliance"], 9),
    _rule(["conflict minerals", "cmrt", "conflict mineral reporting", "3tg", "responsible minerals"],
          "materials", ["supplier_management", "compliance"], 9),
    _rule(["haccp", "food safety", "brc", "fssc 22000"], "regulatory", ["certifications", "compliance"], 9),
    _rule(["oeko-tex", "oeko tex", "gots", "bluesign", "textile standard"], "regulatory", ["certifications", "compliance"], 9),
    _rule(["policy", "policies", "commitment", "statement"], "goals", ["policies"], 6),
    _rule(["compliance", "regulation", "regulatory", "legal", "law", "legislation"], "regulatory", ["compliance"], 7),
    _rule(["csrd", "esrs", "eu taxonomy", "taxonomy alignment"], "regulatory", ["compliance", "transparency"], 9),
    _rule(["ethics", "ethical", "code of conduct", "anti-corruption", "bribery"], "goals", ["ethics", "policies"], 7),
    _rule(["risk", "risk assessment", "risk management", "material risk"], "swot", ["risk_management"], 7),
    _rule(["company", "organization", "business", "enterprise", "corporate"], "company", ["company_profile"], 5),
    _rule(["revenue", "turnover", "sales", "financial"], "financial_context", ["revenue"], 8),
    _rule(["site", "facility", "location", "plant", "factory", "office", "premises"], "site", ["facilities"], 7),
    _rule(["target", "goal", "objective", "commitment", "ambition"], "goals", ["targets", "strategy"], 6),
    _rule(["product", "service", "output", "production volume"], "products", ["production"], 7),
    _rule(["customer", "client", "buyer", "market"], "external_context", ["company_profile"], 6),
    _rule(["ecovadis", "cdp", "questionnaire", "assessment", "rating"],
          "buyer_requirements", ["compliance", "transparency"], 7),
]

# Data points worth collecting, per domain
DOMAIN_SUGGESTIONS: Dict[str, List[str]] = {
    "company": ["Company name", "Industry", "Number of employees", "Revenue band"],
    "site": ["Site locations", "Floor area", "Site types"],
    "goals": ["Sustainability goals", "Target timelines", "Primary motivation"],
    "swot": ["Strengths", "Opportunities", "Risk areas"],
    "regulatory": ["Certifications held", "CSRD applicability", "Compliance frameworks"],
    "materials": ["Material consumption by type", "Recycled content %", "Supplier origins"],
    "packaging": ["Packaging types", "Packaging weight", "Recyclability"],
    "energy_electricity": ["Electricity consumption (kWh)", "Renewable %", "Green tariff status"],
    "energy_fuel": ["Fuel consumption by type", "Heating fuel use"],
    "energy_water": ["Water withdrawal (m3)", "Water sources"],
    "emissions": ["Scope 1 emissions (tCO2e)", "Scope 2 emissions", "Direct emissions"],
    "infrastructure": ["Floor area (m2)", "Building age", "Major equipment"],
    "transport": ["Transport modes", "Distance/tkm", "Fleet composition"],
    "workforce": ["Total FTE", "Gender breakdown", "Contract types"],
    "health_safety": ["TRIR", "LTIR", "Fatalities", "Near misses"],
    "training": ["Training hours per employee", "Safety training", "Sustainability training"],
    "waste": ["Waste by category", "Diversion rate", "Hazardous waste"],
    "products": ["Production volumes", "Product types"],
    "effluents": ["Wastewater discharge", "Treatment level"],
    "external_context": ["Market scope", "Customer types"],
    "financial_context": ["Revenue band", "Sustainability budget"],
    "buyer_requirements": ["Active questionnaires", "Customer requirements"],
}


def normalize_text(text: str) -> str:
    """Lowercase, replace punctuation other than hyphens with spaces, collapse whitespace."""
    text = re.sub(r"[^\w\s-]", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


class _CompiledRule(NamedTuple):
    rule: MappingRule
    regex: Optional[Pattern]
    needle: str


class DomainMatcher:
    """Immutable matcher built from a fixed set of structured rules and the keyword table."""

    def __init__(
        self,
        rules: Optional[Sequence[MappingRule]] = None,
        keyword_rules: Optional[Sequence[KeywordRule]] = None,
        scorer: Optional[ConfidenceScorer] = None
    ):
        self.scorer = scorer or ConfidenceScorer()
        self.keyword_rules = tuple(keyword_rules if keyword_rules is not None else KEYWORD_RULES)
        self._keyword_tests = tuple(
            (rule, tuple((kw, self._keyword_test(kw)) for kw in rule.keywords))
            for rule in self.keyword_rules
        )
        self._rules = self._compile_rules(rules or [])

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    @staticmethod
    def _keyword_test(keyword: str):
        normalized = normalize_text(keyword)
        if " " in normalized:
            return lambda text: normalized in text
        pattern = re.compile(rf"\b{re.escape(normalized)}\b")
        return lambda text: pattern.search(text) is not None

    @staticmethod
    def _compile_rules(rules: Sequence[MappingRule]) -> Tuple[_CompiledRule, ...]:
        compiled = []
        # sorted() is stable, so equal priorities keep file order
        for rule in sorted(rules, key=lambda r: r.priority):
            if rule.pattern_type == "regex":
                try:
                    regex = re.compile(rule.pattern, re.IGNORECASE)
                except re.error as e:
                    logger.warning(f"Skipping mapping rule with invalid regex '{rule.pattern}': {e}")
                    continue
                compiled.append(_CompiledRule(rule, regex, ""))
            else:
                needle = normalize_text(rule.pattern)
                if not needle:
                    continue
                compiled.append(_CompiledRule(rule, None, needle))
        return tuple(compiled)

    def _match_structured_rule(self, normalized: str) -> Optional[MappingRule]:
        for entry in self._rules:
            if entry.regex is not None:
                if entry.regex.search(normalized):
                    return entry.rule
            elif entry.needle in normalized:
                return entry.rule
        return None

    def match(self, question: ParsedQuestion) -> MatchResult:
        """Score a question against the domain taxonomy."""
        search_text = f"{question.text} {question.category or ''} {question.subcategory or ''}"
        normalized = normalize_text(search_text)

        structured = self._match_structured_rule(normalized)

        scores: Dict[str, int] = {}
        topics: Dict[str, List[str]] = {}
        keywords: Dict[str, List[str]] = {}

        for rule, tests in self._keyword_tests:
            for keyword, test in tests:
                if not test(normalized):
                    continue
                scores[rule.domain] = scores.get(rule.domain, 0) + rule.weight
                domain_topics = topics.setdefault(rule.domain, [])
                for topic in rule.topics:
                    if topic not in domain_topics:
                        domain_topics.append(topic)
                domain_keywords = keywords.setdefault(rule.domain, [])
                if keyword not in domain_keywords:
                    domain_keywords.append(keyword)

        # Stable sort: ties keep first-seen order
        ranked = sorted(scores, key=lambda d: scores[d], reverse=True)
        top_score = scores[ranked[0]] if ranked else 0

        all_topics: List[str] = []
        for domain in ranked:
            for topic in topics[domain]:
                if topic not in all_topics:
                    all_topics.append(topic)

        suggestions: List[str] = []
        for domain in ranked[:config.MAX_SECONDARY_DOMAINS]:
            for hint in DOMAIN_SUGGESTIONS.get(domain, [])[:config.SUGGESTIONS_PER_DOMAIN]:
                if hint not in suggestions:
                    suggestions.append(hint)

        return MatchResult(
            question_id=question.id,
            primary_domain=ranked[0] if ranked else None,
            secondary_domains=ranked[1:1 + config.MAX_SECONDARY_DOMAINS],
            topics=all_topics,
            confidence=self.scorer.match_tier(top_score),
            matched_keywords=keywords[ranked[0]] if ranked else [],
            suggested_data_points=suggestions[:config.MAX_SUGGESTED_DATA_POINTS],
            metric_keys=list(structured.metric_keys) if structured else [],
            prompt_if_missing=(structured.prompt_if_missing or None) if structured else None,
            rule_category=(structured.category or None) if structured else None,
        )

    def match_all(self, questions: Sequence[ParsedQuestion]) -> List[MatchResult]:
        return [self.match(q) for q in questions]

    @staticmethod
    def statistics(results: Sequence[MatchResult]) -> dict:
        by_confidence = {"high": 0, "medium": 0, "low": 0, "none": 0}
        by_domain: Dict[str, int] = {}
        for result in results:
            by_confidence[result.confidence] += 1
            if result.primary_domain:
                by_domain[result.primary_domain] = by_domain.get(result.primary_domain, 0) + 1
        return {
            "total": len(results),
            "by_confidence": by_confidence,
            "by_domain": by_domain,
            "unmatched_count": by_confidence["none"],
        }
