"""Loads structured question-mapping rules and the metric key catalogue from CSV."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
from pydantic import ValidationError

from models import MappingRule, MetricKey
import config

logger = logging.getLogger(__name__)

# Data-point field -> canonical metric key, for provenance on drafted answers
FIELD_TO_METRIC_KEY: Dict[str, str] = {
    "totalElectricity": "energy.electricity_kwh_12m",
    "renewablePercent": "energy.renewable_share_pct",
    "fuel_natural_gas": "energy.natural_gas_kwh_12m",
    "fuel_diesel": "energy.fuel_diesel_l_12m",
    "waterWithdrawal": "water.withdrawal_m3_12m",
    "totalWaste": "waste.total_kg_12m",
    "diversionRate": "waste.recycled_kg_12m",
    "hazardousWaste": "waste.hazardous_kg_12m",
    "totalFte": "workforce.headcount_avg_12m",
    "femalePercent": "workforce.female_share_pct",
    "trainingHoursPerEmployee": "workforce.training_hours_12m",
    "trir": "workforce.ltifr_12m",
    "scope1Estimate": "emissions.scope1_tco2e_12m",
    "scope2Location": "emissions.scope2_tco2e_12m",
    "scope3Total": "emissions.scope3_tco2e_12m",
    "certificationsHeld": "governance.iso14001_certified",
}


def _read_csv(filepath: Path) -> Optional[pd.DataFrame]:
    if not filepath.exists():
        logger.warning(f"Rule file not found: {filepath}")
        return None
    try:
        return pd.read_csv(filepath, dtype=str, keep_default_na=False, on_bad_lines="skip")
    except Exception as e:
        logger.error(f"Error reading {filepath}: {e}")
        return None


def _split_keys(value: str) -> List[str]:
    return [k.strip() for k in value.replace(",", ";").split(";") if k.strip()]


def load_mapping_rules(filepath: Optional[Path] = None) -> List[MappingRule]:
    """Load mapping rules, skipping malformed rows. Returns [] if the file is unusable."""
    filepath = Path(filepath or config.MAPPING_RULES_FILE)
    df = _read_csv(filepath)
    if df is None:
        return []

    rules = []
    for idx, row in df.iterrows():
        pattern = row.get("pattern", "").strip()
        if not pattern:
            continue

        priority_raw = row.get("priority", "").strip()
        try:
            priority = int(priority_raw) if priority_raw else 99
        except ValueError:
            logger.warning(f"Skipping rule on row {idx + 2}: bad priority '{priority_raw}'")
            continue

        pattern_type = row.get("pattern_type", "").strip().lower() or "substring"
        if pattern_type == "keyword":
            pattern_type = "substring"

        try:
            rules.append(MappingRule(
                priority=priority,
                pattern_type=pattern_type,
                pattern=pattern,
                category=row.get("category", "").strip(),
                metric_keys=_split_keys(row.get("metric_keys", "")),
                answer_template=row.get("answer_template", "").strip(),
                prompt_if_missing=row.get("prompt_if_missing", "").strip(),
            ))
        except ValidationError as e:
            logger.warning(f"Skipping rule on row {idx + 2}: {e.errors()[0]['msg']}")

    logger.info(f"Loaded {len(rules)} mapping rules from {filepath.name}")
    return rules


def load_metric_keys(filepath: Optional[Path] = None) -> List[MetricKey]:
    filepath = Path(filepath or config.METRIC_KEYS_FILE)
    df = _read_csv(filepath)
    if df is None:
        return []

    keys = []
    for _, row in df.iterrows():
        key = row.get("metric_key", "").strip()
        if not key:
            continue
        keys.append(MetricKey(
            key=key,
            label=row.get("label", "").strip(),
            unit=row.get("unit", "").strip(),
            period=row.get("period", "").strip(),
            allowed_input_type="boolean" if row.get("allowed_input_type", "").strip() == "boolean" else "number",
            definition=row.get("definition", "").strip(),
            notes=row.get("notes", "").strip(),
        ))

    logger.info(f"Loaded {len(keys)} metric keys from {filepath.name}")
    return keys
