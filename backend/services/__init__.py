"""Services package for the ESG questionnaire response engine."""

from .question_parser import QuestionParser
from .domain_matcher import DomainMatcher
from .question_classifier import QuestionClassifier
from .confidence_scorer import ConfidenceScorer
from .emission_factors import EmissionFactorCalculator
from .data_retrieval import DataRetriever
from .industry_context import IndustryKnowledge, calculate_maturity
from .answer_generator import AnswerGenerator, generate_answer_drafts
from .defensive_rewriter import rewrite_answer
from .response_engine import ResponseEngine

__all__ = [
    "QuestionParser", "DomainMatcher", "QuestionClassifier", "ConfidenceScorer",
    "EmissionFactorCalculator", "DataRetriever", "IndustryKnowledge", "calculate_maturity",
    "AnswerGenerator", "generate_answer_drafts", "rewrite_answer", "ResponseEngine",
]
