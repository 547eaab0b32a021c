"""Confidence scoring for domain matches and drafted answers."""

import logging
from typing import Optional

from models import Confidence, ConfidenceSource, DataContext, MatchResult
from services.data_retrieval import primary_points
import config

logger = logging.getLogger(__name__)


class ConfidenceScorer:
    """Maps match scores and retrieved data to confidence tiers.

    Answer confidence depends only on the data and the match, never on which
    drafting stage produced the text.
    """

    def match_tier(self, score: int) -> Confidence:
        """Tier for a summed keyword score."""
        if score >= config.MATCH_HIGH_SCORE:
            return "high"
        elif score >= config.MATCH_MEDIUM_SCORE:
            return "medium"
        elif score > 0:
            return "low"
        else:
            return "none"

    def answer_confidence(self, context: DataContext, match: MatchResult) -> Confidence:
        """Tier for a drafted answer; "none" when the primary domain has no data.

        Secondary-domain points (company basics, for instance) never stand in
        for a primary domain that has nothing retrieved.
        """
        if not primary_points(context, match):
            return "none"
        points = context.all_points()

        has_high = any(p.confidence == "high" for p in points)
        has_medium = any(p.confidence == "medium" for p in points)
        has_gaps = bool(context.metadata.data_gaps)

        if match.confidence == "high" and has_high and not has_gaps:
            return "high"
        if match.confidence != "none" and (has_high or has_medium):
            return "medium"
        return "low"

    def confidence_source(
        self,
        answer_confidence: Confidence,
        has_estimates: bool,
        used_practice: Optional[bool] = False
    ) -> ConfidenceSource:
        """Classify where the answer's substance came from.

        A reported informal practice lifts an answer with no data from
        "unknown" to "estimated".
        """
        if answer_confidence == "none":
            return "estimated" if used_practice else "unknown"
        if has_estimates or answer_confidence == "low":
            return "estimated"
        return "provided"
