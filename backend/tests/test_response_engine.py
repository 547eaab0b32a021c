"""Tests for the batch pipeline."""

import pytest

from models import ParsedQuestion
from services.response_engine import ResponseEngine

QUESTIONS = [
    "What was your total electricity consumption and renewable share?",
    "Describe how waste is handled.",
    "What were your total Scope 1 emissions?",
    "Please describe the gridlock.",
    "How many employees do you have?",
    "What was your water consumption last year?",
]


def _questions():
    return [ParsedQuestion(id=f"q{i}", row_index=i + 2, text=text) for i, text in enumerate(QUESTIONS)]


@pytest.fixture(scope="module")
def engine():
    return ResponseEngine.from_defaults(max_workers=4)


def test_parallel_drafting_matches_sequential(engine, company_data):
    sequential = ResponseEngine.from_defaults(max_workers=1)

    parallel_drafts = engine.draft(_questions(), company_data)
    sequential_drafts = sequential.draft(_questions(), company_data)

    assert [d.question_id for d in parallel_drafts] == [f"q{i}" for i in range(len(QUESTIONS))]
    assert [d.answer for d in parallel_drafts] == [d.answer for d in sequential_drafts]


def test_drafts_without_company_data(engine):
    drafts = engine.draft(_questions())
    assert all(d.confidence_source == "unknown" for d in drafts)


def test_parse_and_draft(engine, company_data):
    content = b"Question\nWhat was your total electricity consumption and renewable share?\n"
    result, drafts = engine.parse_and_draft(content, "one.csv", company_data)

    assert result.success
    assert len(drafts) == 1
    assert drafts[0].question_id == result.questions[0].id
    assert drafts[0].answer_stage == "rich_template"


def test_parse_failure_yields_no_drafts(engine):
    result, drafts = engine.parse_and_draft(b"hello", "notes.txt")
    assert not result.success
    assert drafts == []


def test_summary_counts(engine, company_data):
    drafts = engine.draft(_questions(), company_data)
    summary = ResponseEngine.summarize(drafts)

    assert summary["total"] == len(QUESTIONS)
    assert summary["provided"] + summary["estimated"] + summary["unknown"] == len(QUESTIONS)
    assert summary["high"] + summary["medium"] + summary["low"] + summary["none"] == len(QUESTIONS)
    assert summary["needs_review"] == len(QUESTIONS) - summary["high"]
