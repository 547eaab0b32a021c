"""Shared fixtures for backend tests."""

import pytest

from models import CompanyData, CompanyProfile, InformalPractice
from services.data_retrieval import DataRetriever
from services.domain_matcher import DomainMatcher
from services.rule_loader import load_mapping_rules


@pytest.fixture
def matcher():
    return DomainMatcher(rules=load_mapping_rules())


@pytest.fixture
def retriever():
    return DataRetriever()


@pytest.fixture
def company_data():
    return CompanyData(
        company_name="Acme Components Ltd",
        industry="Manufacturing",
        country="Germany",
        employee_count=120,
        number_of_sites=2,
        reporting_period="2024",
        electricity_kwh=50000,
        renewable_percent=60,
        natural_gas_m3=1000,
        total_waste_kg=8000,
        recycling_percent=80,
    )


@pytest.fixture
def informal_profile():
    return CompanyProfile(
        company_name="Acme Components Ltd",
        industry="Manufacturing",
        reporting_period="2024",
        employee_count=120,
        informal_practices=[
            InformalPractice(topic="ENVIRONMENT", description="Segregating cardboard and metal scrap at source"),
        ],
    )
