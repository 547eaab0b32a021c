"""Country-specific emission factors and Scope 1/2 estimators.

Scope 2 (electricity) factors vary by national grid mix; Scope 1
(combustion) factors are broadly constant. Sources: IEA 2023, DEFRA 2023.
"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)

# Grid electricity factors, tCO2e per kWh
ELECTRICITY_FACTORS: Dict[str, float] = {
    # Europe
    "Albania": 0.000012,
    "Austria": 0.000090,
    "Belgium": 0.000135,
    "Bosnia and Herzegovina": 0.000700,
    "Bulgaria": 0.000395,
    "Croatia": 0.000175,
    "Czech Republic": 0.000430,
    "Denmark": 0.000120,
    "Estonia": 0.000510,
    "Finland": 0.000070,
    "France": 0.000052,
    "Germany": 0.000385,
    "Greece": 0.000340,
    "Hungary": 0.000230,
    "Iceland": 0.000010,
    "Ireland": 0.000300,
    "Italy": 0.000260,
    "Latvia": 0.000095,
    "Lithuania": 0.000040,
    "Luxembourg": 0.000155,
    "Montenegro": 0.000350,
    "Netherlands": 0.000340,
    "North Macedonia": 0.000480,
    "Norway": 0.000008,
    "Poland": 0.000765,
    "Portugal": 0.000175,
    "Romania": 0.000290,
    "Serbia": 0.000700,
    "Slovakia": 0.000120,
    "Slovenia": 0.000240,
    "Spain": 0.000150,
    "Sweden": 0.000012,
    "Switzerland": 0.000020,
    "Turkey": 0.000430,
    "United Kingdom": 0.000207,
    # Americas
    "United States": 0.000417,
    "Canada": 0.000120,
    "Mexico": 0.000420,
    "Brazil": 0.000070,
    "Argentina": 0.000310,
    "Chile": 0.000350,
    "Colombia": 0.000140,
    # Asia-Pacific
    "Australia": 0.000680,
    "China": 0.000560,
    "India": 0.000720,
    "Indonesia": 0.000720,
    "Japan": 0.000470,
    "South Korea": 0.000420,
    "Malaysia": 0.000580,
    "New Zealand": 0.000100,
    "Philippines": 0.000610,
    "Singapore": 0.000400,
    "Taiwan": 0.000500,
    "Thailand": 0.000440,
    "Vietnam": 0.000480,
    # Middle East & Africa
    "Egypt": 0.000450,
    "Israel": 0.000530,
    "Morocco": 0.000610,
    "Nigeria": 0.000410,
    "Saudi Arabia": 0.000640,
    "South Africa": 0.000920,
    "United Arab Emirates": 0.000430,
}

NATURAL_GAS_FACTOR = 0.00202  # tCO2e per m3
DIESEL_FACTOR = 0.00268  # tCO2e per litre
GAS_M3_TO_KWH = 10.55  # kWh per m3 of natural gas
DEFAULT_ELECTRICITY_FACTOR = 0.0004  # global average, tCO2e per kWh


class ElectricityFactor(NamedTuple):
    factor: float
    is_default: bool
    source: str


class Estimate(NamedTuple):
    value: float
    source: str


def round_one(value: float) -> float:
    """Round half-up to one decimal place."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _is_absent(value: Optional[float]) -> bool:
    return value is None or value == 0 or (isinstance(value, float) and math.isnan(value))


class EmissionFactorCalculator:
    """Estimates Scope 1 and Scope 2 emissions from activity data."""

    def __init__(self, factors: Optional[Dict[str, float]] = None):
        self.factors = dict(factors if factors is not None else ELECTRICITY_FACTORS)
        self._lower = {name.lower(): name for name in self.factors}

    @property
    def supported_countries(self):
        return sorted(self.factors)

    def electricity_factor(self, country: Optional[str] = None) -> ElectricityFactor:
        """Look up the grid factor: exact name, then case-insensitive, then global average."""
        if not country or not country.strip():
            return ElectricityFactor(
                DEFAULT_ELECTRICITY_FACTOR, True, "Global average (no country specified)"
            )

        name = country.strip()
        if name in self.factors:
            return ElectricityFactor(self.factors[name], False, f"IEA 2023 - {name}")

        canonical = self._lower.get(name.lower())
        if canonical:
            return ElectricityFactor(self.factors[canonical], False, f"IEA 2023 - {canonical}")

        logger.debug(f"No grid factor for '{name}', using global average")
        return ElectricityFactor(
            DEFAULT_ELECTRICITY_FACTOR, True, f"Global average ({name} not in database)"
        )

    def scope1(
        self,
        natural_gas_m3: Optional[float] = None,
        diesel_liters: Optional[float] = None
    ) -> Optional[float]:
        """Direct combustion emissions in tCO2e, or None when no fuel was reported."""
        if _is_absent(natural_gas_m3) and _is_absent(diesel_liters):
            return None
        gas = 0.0 if _is_absent(natural_gas_m3) else natural_gas_m3
        diesel = 0.0 if _is_absent(diesel_liters) else diesel_liters
        return round_one(gas * NATURAL_GAS_FACTOR + diesel * DIESEL_FACTOR)

    def scope2_location(
        self,
        electricity_kwh: Optional[float] = None,
        country: Optional[str] = None
    ) -> Optional[Estimate]:
        if _is_absent(electricity_kwh):
            return None
        factor = self.electricity_factor(country)
        return Estimate(round_one(electricity_kwh * factor.factor), factor.source)

    def scope2_market(
        self,
        electricity_kwh: Optional[float] = None,
        renewable_percent: Optional[float] = None,
        country: Optional[str] = None
    ) -> Optional[Estimate]:
        """Market-based Scope 2. A renewable share of 0 is a valid input."""
        if _is_absent(electricity_kwh) or renewable_percent is None:
            return None
        factor = self.electricity_factor(country)
        clamped = max(0.0, min(100.0, float(renewable_percent)))
        value = electricity_kwh * (1 - clamped / 100) * factor.factor
        return Estimate(
            round_one(value),
            f"{factor.source} (adjusted for {renewable_percent}% renewable)"
        )

    @staticmethod
    def gas_m3_to_kwh(natural_gas_m3: float) -> float:
        return round_one(natural_gas_m3 * GAS_M3_TO_KWH)
