"""Tests for keyword scoring, confidence tiers and structured mapping rules."""

import pytest

from models import MappingRule, ParsedQuestion
from services.domain_matcher import DomainMatcher, KeywordRule, normalize_text


def _question(text: str, **kwargs) -> ParsedQuestion:
    return ParsedQuestion(id="q1", row_index=1, text=text, **kwargs)


def test_electricity_question_matches_with_high_confidence(matcher):
    result = matcher.match(_question("What was your total electricity consumption and renewable share?"))
    assert result.primary_domain == "energy_electricity"
    assert result.confidence == "high"
    assert "renewable_energy" in result.topics
    assert "energy_consumption" in result.topics
    assert result.matched_keywords == ["electricity", "renewable"]


def test_no_keywords_means_no_domain(matcher):
    result = matcher.match(_question("Please describe the gridlock."))
    assert result.primary_domain is None
    assert result.secondary_domains == []
    assert result.confidence == "none"
    assert result.suggested_data_points == []


@pytest.mark.parametrize("weight,tier", [(15, "high"), (14, "medium"), (8, "medium"), (7, "low"), (1, "low")])
def test_confidence_respects_score_thresholds(weight, tier):
    matcher = DomainMatcher(keyword_rules=[KeywordRule(("alpha",), "waste", ("waste_management",), weight)])
    assert matcher.match(_question("Report alpha values")).confidence == tier


def test_weights_accumulate_per_matched_keyword():
    rules = [KeywordRule(("alpha", "beta"), "waste", ("waste_management",), 8)]
    matcher = DomainMatcher(keyword_rules=rules)
    assert matcher.match(_question("alpha only")).confidence == "medium"
    assert matcher.match(_question("alpha and beta")).confidence == "high"


def test_matching_is_deterministic(matcher):
    question = _question("How much waste did you send to landfill and how much was recycled?")
    assert matcher.match(question) == matcher.match(question)


def test_single_words_match_on_word_boundaries_only():
    matcher = DomainMatcher(keyword_rules=[KeywordRule(("grid",), "energy_electricity", ("energy_consumption",), 9)])
    assert matcher.match(_question("Grid electricity use")).primary_domain == "energy_electricity"
    assert matcher.match(_question("Traffic gridlock")).primary_domain is None


def test_multi_word_keywords_match_as_substrings():
    matcher = DomainMatcher(keyword_rules=[KeywordRule(("natural gas",), "energy_fuel", ("scope_1",), 9)])
    assert matcher.match(_question("Natural-gas or natural gas usage?")).primary_domain == "energy_fuel"


def test_category_and_subcategory_are_searched():
    matcher = DomainMatcher(keyword_rules=[KeywordRule(("waste",), "waste", ("waste_management",), 9)])
    result = matcher.match(_question("Please provide figures.", category="Waste"))
    assert result.primary_domain == "waste"


def test_secondary_domains_and_suggestions_are_capped(matcher):
    question = _question(
        "Describe electricity, natural gas, water consumption, waste, employee training, "
        "injury rates and supplier policy at each site"
    )
    result = matcher.match(question)
    assert len(result.secondary_domains) <= 3
    assert len(result.suggested_data_points) <= 6
    assert len(set(result.suggested_data_points)) == len(result.suggested_data_points)
    assert result.primary_domain not in result.secondary_domains


def test_structured_rule_attaches_metadata_without_changing_match():
    rule = MappingRule(
        priority=1, pattern_type="regex", pattern=r"\bkwh\b", category="energy",
        metric_keys=["energy.electricity_kwh_12m"], prompt_if_missing="Enter kWh.",
    )
    question = _question("How many kWh of electricity did you consume?")
    plain = DomainMatcher().match(question)
    with_rule = DomainMatcher(rules=[rule]).match(question)

    assert with_rule.metric_keys == ["energy.electricity_kwh_12m"]
    assert with_rule.prompt_if_missing == "Enter kWh."
    assert with_rule.rule_category == "energy"
    assert with_rule.primary_domain == plain.primary_domain
    assert with_rule.confidence == plain.confidence
    assert with_rule.topics == plain.topics


def test_structured_rules_run_in_priority_order():
    rules = [
        MappingRule(priority=5, pattern_type="substring", pattern="waste", category="late"),
        MappingRule(priority=1, pattern_type="substring", pattern="waste", category="early"),
    ]
    result = DomainMatcher(rules=rules).match(_question("Total waste generated?"))
    assert result.rule_category == "early"


def test_invalid_regex_rule_is_skipped():
    rules = [
        MappingRule(priority=1, pattern_type="regex", pattern="(unclosed", category="broken"),
        MappingRule(priority=2, pattern_type="regex", pattern=r"\bwaste\b", category="waste"),
    ]
    matcher = DomainMatcher(rules=rules)
    assert matcher.rule_count == 1
    assert matcher.match(_question("Total waste generated?")).rule_category == "waste"


def test_default_rules_supply_prompts(matcher):
    result = matcher.match(_question("What was your total waste generated?"))
    assert "waste.total_kg_12m" in result.metric_keys
    assert result.prompt_if_missing.startswith("Enter total waste")


def test_normalize_text_keeps_hyphens():
    assert normalize_text("What's your  Net-Zero, target?") == "what s your net-zero target"


def test_statistics(matcher):
    results = matcher.match_all([
        ParsedQuestion(id="a", row_index=1, text="What was your total electricity consumption and renewable share?"),
        ParsedQuestion(id="b", row_index=2, text="Please describe the gridlock."),
    ])
    stats = DomainMatcher.statistics(results)
    assert stats["total"] == 2
    assert stats["unmatched_count"] == 1
    assert stats["by_confidence"]["high"] == 1
    assert stats["by_domain"] == {"energy_electricity": 1}
