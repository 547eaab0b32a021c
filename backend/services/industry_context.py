"""Industry-specific terminology, management approaches and policy language."""

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence

import config
from models import InformalPractice, MaturityLevel

logger = logging.getLogger(__name__)

# Practice topic -> data domains it speaks to
PRACTICE_TOPIC_TO_DOMAINS: Dict[str, List[str]] = {
    "ENVIRONMENT": ["energy_electricity", "energy_fuel", "energy_water", "emissions", "waste"],
    "LABOR": ["workforce", "health_safety", "training"],
    "ETHICS": ["regulatory", "goals"],
    "SUPPLY_CHAIN": ["materials", "transport"],
}

DOMAIN_TO_TOPIC: Dict[str, str] = {
    "energy_electricity": "ENVIRONMENT",
    "energy_fuel": "ENVIRONMENT",
    "energy_water": "ENVIRONMENT",
    "emissions": "ENVIRONMENT",
    "waste": "ENVIRONMENT",
    "effluents": "ENVIRONMENT",
    "workforce": "LABOR",
    "health_safety": "LABOR",
    "training": "LABOR",
    "regulatory": "ETHICS",
    "goals": "ETHICS",
    "materials": "SUPPLY_CHAIN",
    "transport": "SUPPLY_CHAIN",
    "packaging": "SUPPLY_CHAIN",
    "buyer_requirements": "SUPPLY_CHAIN",
}

DOMAIN_TO_SUBCATEGORY: Dict[str, str] = {
    "energy_electricity": "energy",
    "energy_fuel": "energy",
    "emissions": "emissions",
    "waste": "waste",
    "energy_water": "water",
    "health_safety": "health_safety",
    "training": "training",
    "workforce": "labor_practices",
    "regulatory": "governance",
    "goals": "governance",
    "materials": "procurement",
    "transport": "procurement",
    "buyer_requirements": "procurement",
}


def domain_to_topic(domain: Optional[str]) -> Optional[str]:
    return DOMAIN_TO_TOPIC.get(domain) if domain else None


def domain_to_subcategory(domain: Optional[str]) -> Optional[str]:
    return DOMAIN_TO_SUBCATEGORY.get(domain) if domain else None


class IndustryContext(NamedTuple):
    key: str
    industry: str
    terms: Dict[str, str]
    management_approaches: Dict[str, str]
    plausible_measures: Dict[str, Dict[str, List[str]]]
    policy_language: Dict[str, Dict[str, str]]


class IndustryKnowledge:
    """Read-only lookup of industry knowledge loaded once from JSON."""

    def __init__(self, filepath: Optional[Path] = None):
        filepath = Path(filepath or config.INDUSTRY_KNOWLEDGE_FILE)
        with open(filepath, encoding="utf-8") as f:
            raw = json.load(f)

        self._contexts: Dict[str, IndustryContext] = {}
        self._match_order: List[tuple] = []
        for key, entry in raw["industries"].items():
            ctx = IndustryContext(
                key=key,
                industry=entry["industry"],
                terms=entry.get("terms", {}),
                management_approaches=entry.get("management_approaches", {}),
                plausible_measures=entry.get("plausible_measures", {}),
                policy_language=entry.get("policy_language", {}),
            )
            self._contexts[key] = ctx
            for fragment in entry.get("match", []):
                self._match_order.append((fragment.lower(), ctx))
        self._fallback = self._contexts[raw["fallback"]]
        self._term_patterns = {key: self._build_term_pattern(ctx.terms) for key, ctx in self._contexts.items()}
        logger.info(f"Loaded industry knowledge for {len(self._contexts)} industries")

    @staticmethod
    def _build_term_pattern(terms: Dict[str, str]):
        if not terms:
            return None
        # Longest terms first so "safety training" wins over "training"
        ordered = sorted(terms, key=len, reverse=True)
        return re.compile(r"\b(" + "|".join(re.escape(t) for t in ordered) + r")\b", re.IGNORECASE)

    def get_context(self, industry: Optional[str]) -> IndustryContext:
        """Context for an industry label; unmatched industries get the services context."""
        lowered = (industry or "").lower()
        for fragment, ctx in self._match_order:
            if fragment in lowered:
                return ctx
        return self._fallback

    def plausible_measures(
        self,
        industry: Optional[str],
        topic: Optional[str],
        subcategory: Optional[str] = None,
        limit: int = 3
    ) -> List[str]:
        if not topic:
            return []
        topic_measures = self.get_context(industry).plausible_measures.get(topic)
        if not topic_measures:
            return []
        if subcategory and subcategory in topic_measures:
            return topic_measures[subcategory][:limit]
        flattened = [m for measures in topic_measures.values() for m in measures]
        return flattened[:limit]

    def policy_language(
        self,
        industry: Optional[str],
        topic: Optional[str],
        style: str,
        year: Optional[str] = None
    ) -> Optional[str]:
        """Policy sentence for a topic in one of: vision, formal, informal, roadmap."""
        if not topic:
            return None
        text = self.get_context(industry).policy_language.get(topic, {}).get(style)
        if not text:
            return None
        return text.replace("{year}", year or str(int(config.DEFAULT_REPORTING_YEAR) + 1))

    def management_approach(self, industry: Optional[str], topic: Optional[str]) -> Optional[str]:
        if not topic:
            return None
        return self.get_context(industry).management_approaches.get(topic)

    def apply_terms(self, text: str, industry: Optional[str]) -> str:
        """Swap generic terms for industry wording in a single pass."""
        ctx = self.get_context(industry)
        pattern = self._term_patterns.get(ctx.key)
        if pattern is None:
            return text
        lookup = {k.lower(): v for k, v in ctx.terms.items()}

        def replace(m: re.Match) -> str:
            found = m.group(0)
            replacement = lookup[found.lower()]
            if found[0].isupper():
                replacement = replacement[0].upper() + replacement[1:]
            return replacement

        return pattern.sub(replace, text)


HIGH_EXPECTATION_INDUSTRIES = ("manufactur", "chemical", "food", "textile", "electronic", "construction")


class MaturityAssessment(NamedTuple):
    level: MaturityLevel
    score: int


def calculate_maturity(
    employee_count: int,
    industry: Optional[str],
    practices: Sequence[InformalPractice]
) -> MaturityAssessment:
    """Score 0-100 from company size, reported practices and sector expectations."""
    score = 0
    if employee_count >= 250:
        score += 10
    elif employee_count >= 50:
        score += 5

    score += min(len(practices) * 5, 40)
    score += len({p.topic for p in practices}) * 5
    score += sum(3 for p in practices if p.is_formalized)

    lowered = (industry or "").lower()
    if any(term in lowered for term in HIGH_EXPECTATION_INDUSTRIES):
        score += 5

    score = min(score, 100)
    if score >= 70:
        level = "Leading"
    elif score >= 50:
        level = "Established"
    elif score >= 25:
        level = "Developing"
    else:
        level = "Emerging"
    return MaturityAssessment(level, score)
