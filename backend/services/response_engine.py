"""Batch pipeline: parse, match, classify, retrieve and draft a whole questionnaire."""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import config
from models import (
    AnswerDraft,
    ClassificationResult,
    CompanyData,
    CompanyProfile,
    DataContext,
    GenerationConfig,
    MatchResult,
    MetricKey,
    ParsedQuestion,
    ParseResult,
)
from services.answer_generator import AnswerGenerator, generate_answer_drafts
from services.data_retrieval import DataRetriever
from services.domain_matcher import DomainMatcher
from services.question_classifier import QuestionClassifier
from services.question_parser import QuestionParser
from services.rule_loader import load_mapping_rules, load_metric_keys

logger = logging.getLogger(__name__)


class QuestionAnalysis(NamedTuple):
    match: MatchResult
    classification: ClassificationResult
    context: DataContext


class ResponseEngine:
    """Wires the components together. All rule tables are read-only after
    construction, so questions can be analysed concurrently."""

    def __init__(
        self,
        parser: QuestionParser,
        matcher: DomainMatcher,
        classifier: QuestionClassifier,
        retriever: DataRetriever,
        generator: AnswerGenerator,
        metric_keys: Optional[List[MetricKey]] = None,
        max_workers: Optional[int] = None
    ):
        self.parser = parser
        self.matcher = matcher
        self.classifier = classifier
        self.retriever = retriever
        self.generator = generator
        self.metric_keys = metric_keys or []
        self.max_workers = max_workers or config.MAX_WORKERS

    @classmethod
    def from_defaults(
        cls,
        rules_file: Optional[Path] = None,
        metric_keys_file: Optional[Path] = None,
        max_workers: Optional[int] = None
    ) -> "ResponseEngine":
        rules = load_mapping_rules(rules_file)
        metric_keys = load_metric_keys(metric_keys_file)
        return cls(
            parser=QuestionParser(),
            matcher=DomainMatcher(rules=rules),
            classifier=QuestionClassifier(),
            retriever=DataRetriever(),
            generator=AnswerGenerator(),
            metric_keys=metric_keys,
            max_workers=max_workers,
        )

    def analyse(self, question: ParsedQuestion, company_data: CompanyData) -> QuestionAnalysis:
        match = self.matcher.match(question)
        classification = self.classifier.classify_question(question)
        context = self.retriever.retrieve(match, company_data)
        return QuestionAnalysis(match, classification, context)

    def draft(
        self,
        questions: Sequence[ParsedQuestion],
        company_data: Optional[CompanyData] = None,
        profile: Optional[CompanyProfile] = None,
        generation_config: Optional[GenerationConfig] = None
    ) -> List[AnswerDraft]:
        """Draft answers in input order, analysing questions across a thread pool when configured."""
        company_data = company_data or CompanyData()
        if self.max_workers > 1 and len(questions) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                # map() yields results in submission order
                analyses = list(executor.map(lambda q: self.analyse(q, company_data), questions))
        else:
            analyses = [self.analyse(q, company_data) for q in questions]

        return generate_answer_drafts(
            questions,
            [a.match for a in analyses],
            [a.context for a in analyses],
            generation_config,
            profile,
            [a.classification for a in analyses],
            generator=self.generator,
        )

    def parse_and_draft(
        self,
        file_content: bytes,
        filename: str,
        company_data: Optional[CompanyData] = None,
        profile: Optional[CompanyProfile] = None,
        generation_config: Optional[GenerationConfig] = None
    ) -> Tuple[ParseResult, List[AnswerDraft]]:
        result = self.parser.parse(file_content, filename)
        if not result.success:
            return result, []
        return result, self.draft(result.questions, company_data, profile, generation_config)

    @staticmethod
    def summarize(drafts: Sequence[AnswerDraft]) -> Dict[str, int]:
        summary = {"total": len(drafts)}
        for level in ("high", "medium", "low", "none"):
            summary[level] = sum(1 for d in drafts if d.answer_confidence == level)
        for source in ("provided", "estimated", "unknown"):
            summary[source] = sum(1 for d in drafts if d.confidence_source == source)
        summary["needs_review"] = sum(1 for d in drafts if d.needs_review)
        return summary
