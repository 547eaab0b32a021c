"""Question type classification: POLICY, MEASURE or KPI.

The type only selects a row of the maturity matrix during drafting, so the
heuristic is kept behind `QuestionClassifier.classify` and can be replaced
without touching the generator.
"""

import logging
import math
import re
from typing import Dict, List, NamedTuple, Optional, Pattern, Sequence, Tuple

from models import ClassificationResult, ParsedQuestion, QuestionType

logger = logging.getLogger(__name__)


class SignalRule(NamedTuple):
    question_type: QuestionType
    patterns: Tuple[Pattern, ...]
    keywords: Tuple[str, ...]
    weight: int


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


SIGNAL_RULES: List[SignalRule] = [
    SignalRule(
        "POLICY",
        _compile(
            r"\bpolicy\b", r"\bpolicies\b", r"\bcommitment\b", r"\bcommit(?:ted|ting)?\b",
            r"\bprinciples?\b", r"\bcode of conduct\b", r"\bstandards?\s+(?:of|for)\b",
            r"\bcharter\b", r"\bstatement\b",
            r"\bdoes your (?:company|organization|organisation)\s+(?:have|adhere|follow|maintain|subscribe)",
            r"\bhave you (?:adopted|implemented|established|signed)\b",
            r"\bformal(?:ized|ised)?\s+(?:approach|framework|guideline)\b",
            r"\boverall\s+(?:approach|strategy|vision|position)\b",
            r"\bmanagement\s+(?:system|approach|framework|standard)\b",
            r"\bsigned?\s+(?:up|on|to)\b", r"\badhere\b",
            r"\bvoluntary\s+(?:initiative|standard|code|pledge)\b",
            r"\bun\s+global\s+compact\b", r"\biso\s+\d+",
        ),
        (
            "policy", "policies", "commitment", "adhere", "principle", "charter",
            "code of conduct", "pledge", "statement", "framework", "vision",
            "strategy", "position", "signed", "subscribe", "management system",
            "management approach", "overall approach", "guideline", "declaration",
        ),
        10,
    ),
    SignalRule(
        "MEASURE",
        _compile(
            r"\bactions?\b", r"\bmeasures?\b", r"\binitiatives?\b", r"\bprocedures?\b",
            r"\bprocess(?:es)?\b", r"\bprogram(?:me|s)?\b", r"\bprojects?\b", r"\btraining\b",
            r"\bimplemented?\b", r"\bsteps?\s+(?:taken|to)\b",
            r"\bwhat\s+(?:actions|measures|steps|initiatives)\b",
            r"\bhow\s+(?:do|does|is|are)\s+(?:you|your|the)\s+(?:company|organization|organisation)?\s*"
            r"(?:manage|address|handle|mitigate|ensure|promote|reduce|prevent)",
            r"\bdescribe\s+(?:your|the)\s+(?:measures|actions|processes|procedures|initiatives|approach|efforts)",
            r"\binspections?\b", r"\baudit(?:s|ing)?\b", r"\bassess(?:ment|ing)?\b",
            r"\bprevention\b", r"\bmitigation\b", r"\bcorrective\b",
            r"\boperational\s+controls?\b", r"\brisk\s+(?:assessment|management|mitigation)\b",
            r"\bdue\s+diligence\b",
        ),
        (
            "actions", "measures", "initiatives", "procedures", "processes",
            "programmes", "projects", "training", "implement", "steps taken",
            "manage", "address", "handle", "mitigate", "ensure", "promote",
            "reduce", "prevent", "inspection", "audit", "assessment", "prevention",
            "corrective", "due diligence", "risk assessment", "operational controls",
        ),
        8,
    ),
    SignalRule(
        "KPI",
        _compile(
            r"\bindicators?\b", r"\bkpis?\b", r"\bmetrics?\b", r"\btotal\b", r"\bnumber\s+of\b",
            r"\bpercentage\b", r"\brate\b", r"\bfrequency\b", r"\bintensity\b",
            r"\bper\s+(?:employee|fte|capita|unit|tonne|revenue)\b", r"\bquantif(?:y|ied)\b",
            r"\bhow\s+(?:much|many)\b",
            r"\bwhat\s+(?:is|are|was|were)\s+(?:your|the)\s+(?:total|annual|monthly)\b",
            r"\bmonitor(?:ing)?\b", r"\btrack(?:ing|ed)?\b", r"\breport(?:ing|ed)?\b", r"\bdata\b",
            r"\bbaseline\b", r"\btargets?\b", r"\btrends?\b", r"\byear[\s-]over[\s-]year\b",
            r"\bscope\s+[123]\s+emission", r"\btco2e?\b", r"\bkwh\b", r"\bm[³3]\b",
            r"\btonnes?\b", r"\bkg\b", r"\bverif(?:y|ied|ication)\b", r"\bthird[\s-]party\b",
            r"\bexternal[\s-](?:audit|assurance|verification)\b",
        ),
        (
            "indicators", "kpi", "metrics", "total", "number of", "percentage",
            "rate", "frequency", "intensity", "per employee", "quantify", "how much",
            "how many", "monitoring", "tracking", "reporting", "data", "baseline",
            "target", "trend", "year-over-year", "verification", "assurance",
            "third-party", "external audit",
        ),
        8,
    ),
]

TYPE_ORDER: Tuple[QuestionType, ...] = ("POLICY", "MEASURE", "KPI")


class QuestionClassifier:
    """Lexical-signal classifier. Each rule contributes at most one pattern hit
    (full weight) and one keyword hit (half weight, rounded up)."""

    def __init__(self, rules: Optional[Sequence[SignalRule]] = None):
        self.rules = tuple(rules if rules is not None else SIGNAL_RULES)

    def _score(self, text: str) -> List[Tuple[QuestionType, int, List[str]]]:
        lowered = text.lower()
        scores: Dict[str, int] = {t: 0 for t in TYPE_ORDER}
        signals: Dict[str, List[str]] = {t: [] for t in TYPE_ORDER}

        for rule in self.rules:
            for pattern in rule.patterns:
                if pattern.search(text):
                    scores[rule.question_type] += rule.weight
                    signals[rule.question_type].append(pattern.pattern.replace(r"\b", "")[:30])
                    break
            for keyword in rule.keywords:
                if keyword in lowered:
                    scores[rule.question_type] += math.ceil(rule.weight / 2)
                    if keyword not in signals[rule.question_type]:
                        signals[rule.question_type].append(keyword)
                    break

        ranked = [(t, scores[t], signals[t]) for t in TYPE_ORDER]
        return sorted(ranked, key=lambda item: item[1], reverse=True)

    def classify(self, question_id: str, text: str, category: Optional[str] = None) -> ClassificationResult:
        combined = f"{text} [{category}]" if category else text
        ranked = self._score(combined)
        top_type, top_score, top_signals = ranked[0]
        runner_score = ranked[1][1]

        if top_score == 0:
            confidence = "low"
        elif top_score >= 15 and top_score - runner_score >= 5:
            confidence = "high"
        elif top_score >= 8:
            confidence = "medium"
        else:
            confidence = "low"

        return ClassificationResult(
            question_id=question_id,
            question_type=top_type if top_score > 0 else "MEASURE",
            confidence=confidence,
            matched_signals=top_signals[:5],
        )

    def classify_question(self, question: ParsedQuestion) -> ClassificationResult:
        return self.classify(question.id, question.text, question.category)

    def classify_all(self, questions: Sequence[ParsedQuestion]) -> List[ClassificationResult]:
        return [self.classify_question(q) for q in questions]

    @staticmethod
    def statistics(results: Sequence[ClassificationResult]) -> Dict[str, int]:
        return {
            "policy": sum(1 for r in results if r.question_type == "POLICY"),
            "measure": sum(1 for r in results if r.question_type == "MEASURE"),
            "kpi": sum(1 for r in results if r.question_type == "KPI"),
            "high_confidence": sum(1 for r in results if r.confidence == "high"),
        }
