"""Tests for data point retrieval, estimates and data gap detection."""

import math

import pytest
from pydantic import ValidationError

from models import CompanyData, MatchResult
from services.data_retrieval import SCOPE1_GAP, is_reported


def _match(primary, *secondary):
    return MatchResult(question_id="q1", primary_domain=primary, secondary_domains=list(secondary), confidence="high")


def _fields(context):
    return {p.field: p for p in context.all_points()}


def test_emission_estimates_are_flagged(retriever, company_data):
    context = retriever.retrieve(_match("emissions"), company_data)
    points = _fields(context)

    scope1 = points["scope1Estimate"]
    assert scope1.value == 2.0
    assert scope1.confidence == "medium"
    assert scope1.is_estimate
    assert "auto-calculated" in scope1.label

    assert points["scope2Location"].is_estimate
    assert points["scope2Market"].value == 7.7
    assert context.metadata.data_gaps == []


def test_user_override_replaces_estimate(retriever, company_data):
    data = company_data.model_copy(update={"scope1_tco2e": 12.5})
    scope1 = _fields(retriever.retrieve(_match("emissions"), data))["scope1Estimate"]
    assert scope1.value == 12.5
    assert scope1.confidence == "high"
    assert scope1.source == "user"
    assert not scope1.is_estimate


def test_zero_override_is_accepted(retriever):
    context = retriever.retrieve(_match("emissions"), CompanyData(scope1_tco2e=0))
    scope1 = _fields(context)["scope1Estimate"]
    assert scope1.value == 0
    assert scope1.source == "user"
    assert SCOPE1_GAP not in context.metadata.data_gaps


def test_missing_fuel_records_scope1_gap(retriever):
    context = retriever.retrieve(_match("emissions"), CompanyData())
    assert SCOPE1_GAP in context.metadata.data_gaps
    assert context.calculated == []


def test_shared_handler_points_are_not_duplicated(retriever):
    data = CompanyData(certifications="ISO 14001", sustainability_goal="Net zero by 2040")
    context = retriever.retrieve(_match("regulatory", "goals"), data)
    fields = [p.field for p in context.company]
    assert fields == ["certificationsHeld", "primaryGoal"]
    assert context.metadata.data_gaps == []


def test_electricity_gap(retriever):
    context = retriever.retrieve(_match("energy_electricity"), CompanyData())
    assert context.all_points() == []
    assert context.metadata.data_gaps == ["No electricity consumption data"]


@pytest.mark.parametrize("waste", [None, 0])
def test_zero_waste_reads_as_not_reported(retriever, waste):
    context = retriever.retrieve(_match("waste"), CompanyData(total_waste_kg=waste, recycling_percent=50))
    assert context.operational == []
    assert context.metadata.data_gaps == ["No waste data"]


def test_zero_renewable_share_is_kept(retriever):
    context = retriever.retrieve(_match("energy_electricity"), CompanyData(electricity_kwh=1000, renewable_percent=0))
    assert _fields(context)["renewablePercent"].value == 0


def test_zero_fatalities_is_kept(retriever):
    context = retriever.retrieve(_match("health_safety"), CompanyData(fatalities=0, lost_time_incidents=0))
    points = _fields(context)
    assert points["fatalities"].value == 0
    assert points["lostTimeIncidents"].value == 0
    assert context.metadata.data_gaps == []


def test_domain_without_handler_records_gap(retriever, company_data):
    context = retriever.retrieve(_match("packaging"), company_data)
    assert context.all_points() == []
    assert context.metadata.data_gaps == ["No packaging data"]


def test_no_domain_means_empty_context(retriever, company_data):
    context = retriever.retrieve(MatchResult(question_id="q1"), company_data)
    assert context.all_points() == []
    assert context.metadata.data_gaps == []
    assert context.metadata.reporting_period == "2024"


def test_training_totals_use_headcount(retriever):
    data = CompanyData(employee_count=40, training_hours_per_employee=12.5)
    points = _fields(retriever.retrieve(_match("training"), data))
    assert points["totalTrainingHours"].value == 500
    assert points["employeesTrained"].value == 40


@pytest.mark.parametrize("value,expected", [
    (None, False),
    ("", False),
    (0, False),
    (0.0, False),
    (math.nan, False),
    (False, True),
    ("ISO 14001", True),
    (5, True),
    (0.1, True),
])
def test_is_reported(value, expected):
    assert is_reported(value) is expected


@pytest.mark.parametrize("value", [math.inf, -math.inf, math.nan])
def test_company_data_rejects_non_finite_numbers(value):
    with pytest.raises(ValidationError):
        CompanyData(electricity_kwh=value)
