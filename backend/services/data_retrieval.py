"""Data retrieval: pulls and derives data points for matched domains."""

import logging
import math
from typing import Callable, Dict, List, Optional

from models import CompanyData, DataContext, DataContextMetadata, MatchResult, RetrievedDataPoint
from services.emission_factors import EmissionFactorCalculator

logger = logging.getLogger(__name__)

# Sentence recorded when a domain has nothing retrievable
DOMAIN_GAP_MESSAGES: Dict[str, str] = {
    "company": "No company profile data",
    "site": "No site data",
    "energy_electricity": "No electricity consumption data",
    "energy_fuel": "No fuel consumption data",
    "energy_water": "No water consumption data",
    "transport": "No Scope 3 / transport data",
    "waste": "No waste data",
    "workforce": "No workforce data",
    "health_safety": "No health and safety incident data",
    "training": "No training data",
    "regulatory": "No certification or compliance data",
    "goals": "No sustainability goal or policy data",
    "financial_context": "No financial context data",
    "materials": "No materials or supplier data",
    "packaging": "No packaging data",
    "effluents": "No wastewater or effluent data",
    "products": "No production data",
    "swot": "No risk assessment data",
    "external_context": "No market or customer data",
    "buyer_requirements": "No customer requirement data",
    "infrastructure": "No infrastructure data",
}

SCOPE1_GAP = "No fuel data for Scope 1 calculation - enter natural gas or diesel consumption"
SCOPE2_GAP = "No electricity data for Scope 2 calculation - enter electricity consumption"


def is_reported(value) -> bool:
    """Presence test for snapshot fields.

    None, "", 0 and NaN all read as "not reported", so an explicitly
    reported zero is indistinguishable from a missing value here.
    """
    if value is None or value == "":
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    return True


# Domains filled by the same handler answer for each other
SHARED_HANDLER_DOMAINS = {
    "regulatory": ("regulatory", "goals"),
    "goals": ("regulatory", "goals"),
}


def primary_points(context: DataContext, match: MatchResult) -> List[RetrievedDataPoint]:
    """Points retrieved for the match's primary domain, in retrieval order."""
    if not match.primary_domain:
        return []
    domains = SHARED_HANDLER_DOMAINS.get(match.primary_domain, (match.primary_domain,))
    return [p for p in context.all_points() if p.domain in domains and p.value is not None]


class _Buckets:
    """Accumulates points for one retrieval, keeping the first of each (domain, field)."""

    def __init__(self):
        self.company: List[RetrievedDataPoint] = []
        self.operational: List[RetrievedDataPoint] = []
        self.calculated: List[RetrievedDataPoint] = []
        self.gaps: List[str] = []
        self.touched = 0

    def _add(self, bucket: List[RetrievedDataPoint], point: RetrievedDataPoint):
        self.touched += 1
        if any(p.domain == point.domain and p.field == point.field for p in bucket):
            return
        bucket.append(point)

    def company_point(self, **kwargs):
        self._add(self.company, RetrievedDataPoint(**kwargs))

    def operational_point(self, **kwargs):
        self._add(self.operational, RetrievedDataPoint(**kwargs))

    def calculated_point(self, **kwargs):
        self._add(self.calculated, RetrievedDataPoint(**kwargs))

    def gap(self, message: str):
        if message not in self.gaps:
            self.gaps.append(message)


class DataRetriever:
    """Builds a DataContext for a match from the flat company snapshot."""

    def __init__(self, calculator: Optional[EmissionFactorCalculator] = None):
        self.calculator = calculator or EmissionFactorCalculator()
        self._handlers: Dict[str, Callable[[_Buckets, CompanyData], None]] = {
            "company": self._company,
            "site": self._company,
            "energy_electricity": self._electricity,
            "energy_fuel": self._fuel,
            "energy_water": self._water,
            "emissions": self._emissions,
            "transport": self._transport,
            "waste": self._waste,
            "workforce": self._workforce,
            "health_safety": self._health_safety,
            "training": self._training,
            "regulatory": self._regulatory,
            "goals": self._regulatory,
            "financial_context": self._financial,
        }

    def retrieve(self, match: MatchResult, data: CompanyData) -> DataContext:
        buckets = _Buckets()
        period = data.reporting_period or None

        for domain in match.all_domains:
            before = (buckets.touched, len(buckets.gaps))
            handler = self._handlers.get(domain)
            if handler:
                handler(buckets, data)
            # Nothing retrieved and no specific gap recorded: note the domain gap
            if (buckets.touched, len(buckets.gaps)) == before and domain in DOMAIN_GAP_MESSAGES:
                buckets.gap(DOMAIN_GAP_MESSAGES[domain])

        return DataContext(
            company=buckets.company,
            operational=buckets.operational,
            calculated=buckets.calculated,
            metadata=DataContextMetadata(
                reporting_period=period,
                data_gaps=buckets.gaps,
                sites_included=[],
            ),
        )

    # ------------------------------------------------------------------
    # Domain handlers
    # ------------------------------------------------------------------

    def _company(self, b: _Buckets, data: CompanyData):
        fields = [
            ("legalEntityName", "Company Name", data.company_name),
            ("industryDescription", "Industry", data.industry),
            ("headquartersCountry", "Country", data.country),
            ("totalFte", "Total Employees (FTE)", data.employee_count),
            ("numberOfSites", "Number of Sites", data.number_of_sites),
            ("revenueBand", "Revenue Band", data.revenue_band),
            ("reportingPeriod", "Reporting Period", data.reporting_period),
        ]
        for field, label, value in fields:
            if is_reported(value):
                b.company_point(domain="company", field=field, label=label, value=value)

    def _electricity(self, b: _Buckets, data: CompanyData):
        if not is_reported(data.electricity_kwh):
            b.gap("No electricity consumption data")
            return
        b.operational_point(
            domain="energy_electricity", field="totalElectricity", label="Total Electricity Consumption",
            value=data.electricity_kwh, unit="kWh", period=data.reporting_period,
        )
        if data.renewable_percent is not None:
            b.operational_point(
                domain="energy_electricity", field="renewablePercent", label="Renewable Electricity",
                value=data.renewable_percent, unit="%", period=data.reporting_period,
            )

    def _fuel(self, b: _Buckets, data: CompanyData):
        if is_reported(data.natural_gas_m3):
            b.operational_point(
                domain="energy_fuel", field="fuel_natural_gas", label="Natural Gas Consumption",
                value=data.natural_gas_m3, unit="m3", period=data.reporting_period,
            )
        if is_reported(data.diesel_liters):
            b.operational_point(
                domain="energy_fuel", field="fuel_diesel", label="Diesel Consumption",
                value=data.diesel_liters, unit="L", period=data.reporting_period,
            )
        if not is_reported(data.natural_gas_m3) and not is_reported(data.diesel_liters):
            b.gap("No fuel consumption data")

    def _water(self, b: _Buckets, data: CompanyData):
        if not is_reported(data.water_m3):
            b.gap("No water consumption data")
            return
        b.operational_point(
            domain="energy_water", field="waterWithdrawal", label="Water Withdrawal",
            value=data.water_m3, unit="m3", period=data.reporting_period,
        )

    def _emissions(self, b: _Buckets, data: CompanyData):
        calc = self.calculator

        # Explicit overrides accept zero; estimates are used only without one
        if data.scope1_tco2e is not None:
            b.calculated_point(
                domain="emissions", field="scope1Estimate", label="Scope 1 Emissions (User Provided)",
                value=data.scope1_tco2e, unit="tCO2e", source="user",
            )
        else:
            scope1 = calc.scope1(data.natural_gas_m3, data.diesel_liters)
            if scope1 is not None:
                b.calculated_point(
                    domain="emissions", field="scope1Estimate", label="Scope 1 Emissions (auto-calculated)",
                    value=scope1, unit="tCO2e", confidence="medium", source="estimate", is_estimate=True,
                )
            else:
                b.gap(SCOPE1_GAP)

        if data.scope2_tco2e is not None:
            b.calculated_point(
                domain="emissions", field="scope2Location", label="Scope 2 Emissions (User Provided)",
                value=data.scope2_tco2e, unit="tCO2e", source="user",
            )
            return

        location = calc.scope2_location(data.electricity_kwh, data.country)
        if location is None:
            b.gap(SCOPE2_GAP)
        else:
            b.calculated_point(
                domain="emissions", field="scope2Location",
                label=f"Scope 2 Location-Based (auto-calculated, {location.source})",
                value=location.value, unit="tCO2e", confidence="medium", source="estimate", is_estimate=True,
            )
        market = calc.scope2_market(data.electricity_kwh, data.renewable_percent, data.country)
        if market is not None:
            b.calculated_point(
                domain="emissions", field="scope2Market",
                label=f"Scope 2 Market-Based (auto-calculated, {market.source})",
                value=market.value, unit="tCO2e", confidence="medium", source="estimate", is_estimate=True,
            )

    def _transport(self, b: _Buckets, data: CompanyData):
        if data.scope3_tco2e is not None:
            b.calculated_point(
                domain="transport", field="scope3Total", label="Scope 3 Emissions (User Provided)",
                value=data.scope3_tco2e, unit="tCO2e", source="user",
            )
        if is_reported(data.scope3_categories):
            b.operational_point(
                domain="transport", field="scope3Categories", label="Scope 3 Categories Reported",
                value=data.scope3_categories,
            )
        activity = [
            ("businessTravel", "Business Travel", data.business_travel_km, "km"),
            ("employeeCommute", "Employee Commuting", data.employee_commute_km, "km"),
            ("freightTransport", "Freight Transport", data.freight_ton_km, "ton-km"),
        ]
        for field, label, value, unit in activity:
            if is_reported(value):
                b.operational_point(
                    domain="transport", field=field, label=label, value=value, unit=unit,
                    period=data.reporting_period,
                )
        if not is_reported(data.scope3_tco2e) and not any(is_reported(a[2]) for a in activity):
            b.gap("No Scope 3 / transport data")

    def _waste(self, b: _Buckets, data: CompanyData):
        if not is_reported(data.total_waste_kg):
            b.gap("No waste data")
            return
        b.operational_point(
            domain="waste", field="totalWaste", label="Total Waste Generated",
            value=data.total_waste_kg, unit="kg", period=data.reporting_period,
        )
        if data.recycling_percent is not None:
            b.operational_point(
                domain="waste", field="diversionRate", label="Waste Diversion Rate",
                value=data.recycling_percent, unit="%",
            )
        if is_reported(data.hazardous_waste_kg):
            b.operational_point(
                domain="waste", field="hazardousWaste", label="Hazardous Waste",
                value=data.hazardous_waste_kg, unit="kg",
            )

    def _workforce(self, b: _Buckets, data: CompanyData):
        if is_reported(data.employee_count):
            b.operational_point(domain="workforce", field="totalFte", label="Total FTE", value=data.employee_count)
        else:
            b.gap("No workforce data")
        if data.female_percent is not None:
            b.operational_point(
                domain="workforce", field="femalePercent", label="Female Employees",
                value=data.female_percent, unit="%",
            )

    def _health_safety(self, b: _Buckets, data: CompanyData):
        # Zero incidents is a meaningful value here, so test for None only
        if data.trir_rate is not None:
            b.operational_point(domain="health_safety", field="trir", label="TRIR", value=data.trir_rate)
        if data.lost_time_incidents is not None:
            b.operational_point(
                domain="health_safety", field="lostTimeIncidents", label="Lost Time Incidents",
                value=data.lost_time_incidents,
            )
        if data.fatalities is not None:
            b.operational_point(domain="health_safety", field="fatalities", label="Fatalities", value=data.fatalities)

    def _training(self, b: _Buckets, data: CompanyData):
        per_employee = data.training_hours_per_employee
        if per_employee is None:
            return
        b.operational_point(
            domain="training", field="trainingHoursPerEmployee", label="Training Hours per Employee",
            value=per_employee, unit="hours",
        )
        if is_reported(data.employee_count):
            b.operational_point(
                domain="training", field="totalTrainingHours", label="Total Training Hours",
                value=per_employee * data.employee_count, unit="hours",
            )
            b.operational_point(
                domain="training", field="employeesTrained", label="Employees Trained",
                value=data.employee_count,
            )

    def _regulatory(self, b: _Buckets, data: CompanyData):
        if is_reported(data.certifications):
            b.company_point(
                domain="regulatory", field="certificationsHeld", label="Certifications Held",
                value=data.certifications,
            )
        if is_reported(data.sustainability_goal):
            b.company_point(
                domain="goals", field="primaryGoal", label="Sustainability Goal",
                value=data.sustainability_goal,
            )

    def _financial(self, b: _Buckets, data: CompanyData):
        if is_reported(data.revenue_band):
            b.company_point(
                domain="financial_context", field="revenueBand", label="Revenue Band",
                value=data.revenue_band,
            )
