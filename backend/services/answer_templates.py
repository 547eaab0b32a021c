"""Data-driven answer templates.

Each template covers a set of domains and topics and composes prose from
retrieved data points. A template returns None when the data it needs is
missing, letting the next candidate try.
"""

import logging
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence

from models import DataContext, MatchResult, RetrievedDataPoint
from services.emission_factors import EmissionFactorCalculator, round_one

logger = logging.getLogger(__name__)

FRAMEWORK_NOTES: Dict[str, str] = {
    "CSRD": " This disclosure is aligned with ESRS reporting requirements under the CSRD.",
    "GRI": " This disclosure follows GRI Standards reporting principles.",
    "CDP": " This information is provided in line with CDP disclosure expectations.",
    "EcoVadis": " This data supports our EcoVadis assessment submission.",
    "SASB": " This metric is reported consistent with SASB industry-specific standards.",
    "TCFD": " This information is disclosed in line with TCFD recommendations.",
    "UN_SDG": " This disclosure supports our contribution to the UN Sustainable Development Goals.",
}


def framework_note(framework: Optional[str]) -> str:
    return FRAMEWORK_NOTES.get(framework or "", "")


def fmt(value: float) -> str:
    """Thousands separators, at most one decimal: 50000 -> '50,000', 12.34 -> '12.3'."""
    text = f"{round_one(value):,.1f}"
    return text[:-2] if text.endswith(".0") else text


def format_value(point: RetrievedDataPoint) -> str:
    if isinstance(point.value, bool):
        text = "Yes" if point.value else "No"
    elif isinstance(point.value, (int, float)):
        text = fmt(point.value)
    else:
        text = str(point.value)
    return f"{text} {point.unit}" if point.unit else text


class DataMap:
    """Field-keyed view over a DataContext; the first point for a field wins."""

    def __init__(self, context: DataContext):
        self.points: Dict[str, RetrievedDataPoint] = {}
        for point in context.all_points():
            self.points.setdefault(point.field, point)
        self.period = context.metadata.reporting_period

    def get(self, field: str) -> Optional[RetrievedDataPoint]:
        return self.points.get(field)

    def has(self, *fields: str) -> bool:
        for field in fields:
            point = self.points.get(field)
            if point is None or point.value in (None, "") or point.value == 0:
                return False
        return True

    def present(self, field: str) -> bool:
        point = self.points.get(field)
        return point is not None and point.value is not None

    def num(self, field: str) -> float:
        point = self.points.get(field)
        if point is None or isinstance(point.value, bool) or not isinstance(point.value, (int, float)):
            return 0
        return point.value

    def text(self, field: str) -> str:
        point = self.points.get(field)
        return "" if point is None or point.value is None else str(point.value)

    def during(self) -> str:
        return f" during {self.period}" if self.period else " during the reporting period"


class AnswerTemplate(NamedTuple):
    name: str
    domains: Sequence[str]
    topics: Sequence[str]
    generate: Callable[[DataMap, Optional[str]], Optional[str]]
    # Only offered when the question's primary domain is one of `domains`
    primary_only: bool = False


def _electricity(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("totalElectricity"):
        return None
    kwh = dm.num("totalElectricity")
    renewable = dm.num("renewablePercent")

    answer = f"Our total electricity consumption was {fmt(kwh)} kWh{dm.during()}."
    if renewable > 0:
        answer += (f" Of this, {fmt(renewable)}% (approximately {fmt(kwh * renewable / 100)} kWh)"
                   " was sourced from renewable energy.")
        if renewable >= 50:
            answer += " We continue to prioritize the transition to renewable electricity across our operations."
        else:
            answer += " We are actively working to increase our share of renewable electricity."
    else:
        answer += " We are evaluating options to increase our renewable electricity procurement."
    return answer + framework_note(framework)


def _emissions(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.present("scope1Estimate") and not dm.present("scope2Location"):
        return None
    scope1 = dm.num("scope1Estimate")
    scope2 = dm.num("scope2Location")
    scope2_market = dm.num("scope2Market")
    period = f" for {dm.period}" if dm.period else " for the reporting period"

    parts = [f"Our greenhouse gas (GHG) emissions{period} are as follows:"]
    if dm.present("scope1Estimate"):
        parts.append(f"Scope 1 (direct) emissions: {fmt(scope1)} tCO2e, covering stationary combustion, "
                     "mobile sources, and any fugitive emissions.")
    if dm.present("scope2Location"):
        parts.append(f"Scope 2 (indirect, location-based) emissions: {fmt(scope2)} tCO2e from purchased electricity.")
        if dm.present("scope2Market"):
            parts.append(f"Scope 2 (market-based) emissions: {fmt(scope2_market)} tCO2e, "
                         "reflecting our renewable energy procurement.")

    if any(p.is_estimate for p in (dm.get("scope1Estimate"), dm.get("scope2Location")) if p):
        parts.append("Note: Some figures are estimates derived from activity data (fuel consumption, electricity use) "
                     "and standard emission factors. We are working to improve the granularity of our GHG inventory.")

    if scope1 + scope2 > 0:
        parts.append(f"Total Scope 1 + Scope 2 (location-based): {fmt(scope1 + scope2)} tCO2e.")
    return " ".join(parts) + framework_note(framework)


def _workforce(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("totalFte"):
        return None
    sites = dm.num("numberOfSites")
    country = dm.text("headquartersCountry")

    answer = (f"As of {dm.period or 'the end of the reporting period'}, our organization employs "
              f"{fmt(dm.num('totalFte'))} full-time equivalent (FTE) employees")
    if sites > 1:
        answer += f" across {fmt(sites)} operational sites"
    if country:
        answer += f", headquartered in {country}"
    return answer + "." + framework_note(framework)


def _diversity(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("totalFte") or not dm.present("femalePercent"):
        return None
    female = dm.num("femalePercent")
    answer = (f"Our workforce of {fmt(dm.num('totalFte'))} FTE employees comprises {fmt(female)}% female "
              f"and {fmt(100 - female)}% male employees.")
    if 40 <= female <= 60:
        answer += " We maintain a relatively balanced gender distribution across our organization."
    elif female < 30:
        answer += (" We are implementing initiatives to attract and retain a more diverse workforce"
                   " and to improve gender balance.")
    return answer + framework_note(framework)


def _health_safety(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    fields = ("trir", "lostTimeIncidents", "fatalities")
    if not any(dm.present(f) for f in fields):
        return None
    parts = [f"Our occupational health and safety performance{dm.during()}:"]
    if dm.present("trir"):
        parts.append(f"Total Recordable Incident Rate (TRIR): {fmt(dm.num('trir'))}.")
    if dm.present("lostTimeIncidents"):
        parts.append(f"Lost time incidents: {fmt(dm.num('lostTimeIncidents'))}.")
    if dm.present("fatalities"):
        parts.append(f"Fatalities: {fmt(dm.num('fatalities'))}.")

    if dm.present("fatalities") and dm.present("lostTimeIncidents"):
        if dm.num("fatalities") == 0 and dm.num("lostTimeIncidents") == 0:
            parts.append("We are pleased to report zero lost time incidents and zero fatalities. Our health and "
                         "safety management system focuses on proactive hazard identification and continuous improvement.")
        elif dm.num("fatalities") == 0:
            parts.append("While we recorded zero fatalities, we continue to investigate all incidents to prevent "
                         "recurrence and strengthen our safety culture.")
    return " ".join(parts) + framework_note(framework)


def _waste(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("totalWaste"):
        return None
    waste = dm.num("totalWaste")
    diversion = dm.num("diversionRate")
    hazardous = dm.num("hazardousWaste")

    answer = f"Our total waste generated{dm.during()} was {fmt(waste)} kg ({fmt(waste / 1000)} tonnes)."
    if diversion > 0:
        answer += (f" We achieved a waste diversion rate of {fmt(diversion)}%, meaning {fmt(waste * diversion / 100)} kg"
                   " was recycled or recovered rather than sent to landfill.")
    if hazardous > 0:
        answer += (f" Of this total, {fmt(hazardous)} kg was classified as hazardous waste, managed in accordance"
                   " with applicable regulations.")
    if diversion >= 75:
        answer += " Our high diversion rate reflects our commitment to circular economy principles and waste minimization."
    elif diversion > 0:
        answer += " We continue to implement waste reduction initiatives to improve our diversion rate."
    return answer + framework_note(framework)


def _water(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("waterWithdrawal"):
        return None
    water = dm.num("waterWithdrawal")
    answer = f"Our total water withdrawal{dm.during()} was {fmt(water)} m³."
    fte = dm.num("totalFte")
    if fte > 0:
        answer += f" This equates to approximately {fmt(water / fte)} m³ per employee."
    answer += " We monitor water usage across our operations and seek to reduce consumption through efficiency measures."
    return answer + framework_note(framework)


def _company(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("legalEntityName"):
        return None
    industry = dm.text("industryDescription")
    country = dm.text("headquartersCountry")
    fte = dm.num("totalFte")
    sites = dm.num("numberOfSites")
    revenue = dm.text("revenueBand")

    answer = f"{dm.text('legalEntityName')} is {f'a {industry} company' if industry else 'an organization'}"
    if country:
        answer += f" headquartered in {country}"
    answer += "."
    if fte:
        answer += f" We employ {fmt(fte)} FTE"
        if sites > 1:
            answer += f" across {fmt(sites)} operational sites"
        answer += "."
    if revenue:
        answer += f" Revenue band: {revenue}."
    if dm.period:
        answer += f" This data covers the reporting period {dm.period}."
    return answer + framework_note(framework)


def _certifications(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("certificationsHeld"):
        return None
    answer = (f"Our organization holds the following certifications and accreditations: {dm.text('certificationsHeld')}. "
              "These certifications are maintained through regular external audits and demonstrate our commitment "
              "to internationally recognized management standards.")
    return answer + framework_note(framework)


def _training(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    if not dm.has("trainingHoursPerEmployee"):
        return None
    total = dm.num("totalTrainingHours")
    trained = dm.num("employeesTrained")
    during = dm.during().strip()

    answer = (f"{during[0].upper()}{during[1:]}, we delivered an average of "
              f"{fmt(dm.num('trainingHoursPerEmployee'))} training hours per employee.")
    if total > 0 and trained > 0:
        answer += f" This represents a total of {fmt(total)} hours of training across our {fmt(trained)} employees."
    answer += " Training programmes cover areas including health and safety, technical skills, and sustainability awareness."
    return answer + framework_note(framework)


def _goals(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    goal = dm.text("primaryGoal")
    if not goal:
        return None
    answer = (f"Our primary sustainability commitment is: {goal}. We are integrating this target into our business "
              "strategy and operational planning, and we track progress against this goal as part of our regular "
              "management review process.")
    return answer + framework_note(framework)


def _fuel(dm: DataMap, framework: Optional[str]) -> Optional[str]:
    gas = dm.num("fuel_natural_gas")
    diesel = dm.num("fuel_diesel")
    if not gas and not diesel:
        return None
    parts = [f"Our fuel consumption{dm.during()}:"]
    if gas:
        parts.append(f"Natural gas: {fmt(gas)} m³ (approximately {fmt(EmissionFactorCalculator.gas_m3_to_kwh(gas))} kWh).")
    if diesel:
        parts.append(f"Diesel: {fmt(diesel)} litres.")
    parts.append("Fuel consumption is a key input for our Scope 1 emissions calculation. We are evaluating "
                 "opportunities to reduce fossil fuel dependency through electrification and energy efficiency measures.")
    return " ".join(parts) + framework_note(framework)


ANSWER_TEMPLATES: List[AnswerTemplate] = [
    AnswerTemplate("electricity", ["energy_electricity"], ["energy_consumption", "renewable_energy"], _electricity),
    AnswerTemplate("emissions", ["emissions"], ["ghg_emissions", "scope_1", "scope_2"], _emissions),
    AnswerTemplate("workforce", ["workforce"], ["employee_count"], _workforce),
    AnswerTemplate("diversity", ["workforce"], ["diversity"], _diversity),
    AnswerTemplate("health_safety", ["health_safety"], ["health_safety"], _health_safety),
    AnswerTemplate("waste", ["waste"], ["waste_management", "recycling"], _waste),
    AnswerTemplate("water", ["energy_water"], ["water_usage"], _water),
    AnswerTemplate("company", ["company"], ["company_profile", "employee_count"], _company, primary_only=True),
    AnswerTemplate("certifications", ["regulatory"], ["certifications"], _certifications),
    AnswerTemplate("training", ["training"], ["training"], _training),
    AnswerTemplate("goals", ["goals"], ["targets", "strategy", "climate_targets"], _goals),
    AnswerTemplate("fuel", ["energy_fuel"], ["energy_consumption", "scope_1"], _fuel),
]


def candidate_templates(
    match: MatchResult,
    templates: Sequence[AnswerTemplate] = ANSWER_TEMPLATES
) -> List[AnswerTemplate]:
    """Templates overlapping the match.

    Templates covering the primary domain come first, then most shared topics;
    ties keep registration order.
    """
    primary = match.primary_domain
    if not primary:
        return []
    domains = set(match.all_domains)
    topics = set(match.topics)
    candidates = [
        t for t in templates
        if domains.intersection(t.domains) and topics.intersection(t.topics)
        and (primary in t.domains or not t.primary_only)
    ]
    return sorted(
        candidates,
        key=lambda t: (primary in t.domains, len(topics.intersection(t.topics))),
        reverse=True,
    )


def render(match: MatchResult, context: DataContext, framework: Optional[str]) -> Optional[str]:
    """First candidate template that has enough data to produce text."""
    dm = DataMap(context)
    for template in candidate_templates(match):
        answer = template.generate(dm, framework)
        if answer:
            logger.debug(f"Template '{template.name}' answered question {match.question_id}")
            return answer
    return None
