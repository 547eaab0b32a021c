"""Tests for emission factor lookup and Scope 1/2 estimators."""

import pytest

from services.emission_factors import (
    DEFAULT_ELECTRICITY_FACTOR,
    EmissionFactorCalculator,
    round_one,
)


class TestElectricityFactor:
    """Grid factor lookup by country name."""

    @pytest.fixture
    def calc(self) -> EmissionFactorCalculator:
        return EmissionFactorCalculator()

    def test_country_lookup_is_case_insensitive(self, calc):
        exact = calc.electricity_factor("Germany")
        lowered = calc.electricity_factor("germany")
        assert exact.factor == lowered.factor == 0.000385
        assert not lowered.is_default
        assert lowered.source == "IEA 2023 - Germany"

    @pytest.mark.parametrize("country", ["Atlantis", "", None, "   "])
    def test_unknown_country_falls_back_to_default(self, calc, country):
        factor = calc.electricity_factor(country)
        assert factor.is_default
        assert factor.factor == DEFAULT_ELECTRICITY_FACTOR
        assert factor.source.startswith("Global average")

    def test_unknown_country_named_in_source(self, calc):
        assert "Atlantis" in calc.electricity_factor("Atlantis").source

    def test_custom_factor_table(self):
        calc = EmissionFactorCalculator({"Utopia": 0.0001})
        assert calc.supported_countries == ["Utopia"]
        assert calc.scope2_location(1000, "utopia").value == 0.1


class TestScopeEstimates:
    """Scope 1 and Scope 2 estimates from activity data."""

    @pytest.fixture
    def calc(self) -> EmissionFactorCalculator:
        return EmissionFactorCalculator()

    def test_scope1_none_when_both_fuels_absent(self, calc):
        assert calc.scope1(None, None) is None
        assert calc.scope1(0, 0) is None
        assert calc.scope1(0, None) is None

    def test_scope1_sums_fuels(self, calc):
        # 1000 m3 gas * 0.00202 + 500 L diesel * 0.00268 = 2.02 + 1.34
        assert calc.scope1(1000, 500) == 3.4
        assert calc.scope1(1000, None) == 2.0
        assert calc.scope1(None, 1000) == 2.7

    def test_scope2_location(self, calc):
        estimate = calc.scope2_location(40000, "Germany")
        assert estimate.value == 15.4
        assert estimate.source == "IEA 2023 - Germany"
        assert calc.scope2_location(None, "Germany") is None
        assert calc.scope2_location(0, "Germany") is None

    def test_scope2_market_accepts_zero_renewable(self, calc):
        """A renewable share of 0 is an input, not a missing value."""
        market = calc.scope2_market(50000, 0, "Germany")
        assert market is not None
        assert market.value == calc.scope2_location(50000, "Germany").value

    def test_scope2_market_requires_both_inputs(self, calc):
        assert calc.scope2_market(50000, None, "Germany") is None
        assert calc.scope2_market(None, 50, "Germany") is None

    def test_scope2_market_adjusts_for_renewables(self, calc):
        market = calc.scope2_market(40000, 60, "Germany")
        # 40000 * 0.4 * 0.000385 = 6.16
        assert market.value == 6.2
        assert "adjusted for 60% renewable" in market.source

    @pytest.mark.parametrize("percent,expected", [(150, 0.0), (100, 0.0), (-20, 15.4)])
    def test_scope2_market_clamps_percent(self, calc, percent, expected):
        assert calc.scope2_market(40000, percent, "Germany").value == expected


def test_round_one_rounds_half_up():
    assert round_one(2.05) == 2.1
    assert round_one(19.25) == 19.3
    assert round_one(7.7) == 7.7


def test_gas_volume_to_energy():
    assert EmissionFactorCalculator.gas_m3_to_kwh(1000) == 10550.0
