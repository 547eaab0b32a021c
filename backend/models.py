"""Pydantic models for the ESG questionnaire response engine."""

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

import config

Confidence = Literal["high", "medium", "low", "none"]
PointConfidence = Literal["high", "medium"]
ConfidenceSource = Literal["provided", "estimated", "unknown"]
DetectionConfidence = Literal["high", "medium", "low"]
QuestionType = Literal["POLICY", "MEASURE", "KPI"]
MaturityBand = Literal["none", "informal", "formal"]
MaturityLevel = Literal["Emerging", "Developing", "Established", "Leading"]
PracticeTopic = Literal["ENVIRONMENT", "LABOR", "ETHICS", "SUPPLY_CHAIN"]
Verbosity = Literal["concise", "standard", "detailed"]
AnswerStage = Literal["maturity_matrix", "rich_template", "informal_practice", "generic_fallback", "unknown"]

Number = Union[int, float]
DataValue = Optional[Union[bool, int, float, str]]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class ColumnMapping(BaseModel):
    """Which source columns hold each question field."""
    question_text: str = ""
    category: Optional[str] = None
    subcategory: Optional[str] = None
    reference_id: Optional[str] = None
    required: Optional[str] = None


class ParsedQuestion(BaseModel):
    """A single normalized questionnaire item. Immutable once parsed."""
    model_config = ConfigDict(frozen=True)

    id: str
    row_index: int
    text: str
    category: Optional[str] = None
    subcategory: Optional[str] = None
    reference_id: Optional[str] = None
    framework: Optional[str] = None
    required: Optional[bool] = None
    raw_row: Dict[str, Any] = Field(default_factory=dict)


class ParseMetadata(BaseModel):
    file_name: str
    total_rows: int = 0
    parsed_rows: int = 0
    detected_framework: Optional[str] = None
    column_mapping: ColumnMapping = Field(default_factory=ColumnMapping)
    available_columns: Optional[List[str]] = None
    auto_detection_confidence: Optional[DetectionConfidence] = None
    sheets_processed: Optional[int] = None


class ParseResult(BaseModel):
    """Outcome of parsing an uploaded questionnaire. Failures are data, not exceptions."""
    success: bool
    questions: List[ParsedQuestion] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    metadata: ParseMetadata


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

class MappingRule(BaseModel):
    """A structured question-mapping rule loaded from CSV."""
    priority: int = 99
    pattern_type: Literal["regex", "substring"] = "substring"
    pattern: str
    category: str = ""
    metric_keys: List[str] = Field(default_factory=list)
    answer_template: str = ""
    prompt_if_missing: str = ""


class MetricKey(BaseModel):
    key: str
    label: str = ""
    unit: str = ""
    period: str = ""
    allowed_input_type: Literal["number", "boolean"] = "number"
    definition: str = ""
    notes: str = ""


class MatchResult(BaseModel):
    """Result of matching a question against the domain taxonomy."""
    question_id: str
    primary_domain: Optional[str] = None
    secondary_domains: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    confidence: Confidence = "none"
    matched_keywords: List[str] = Field(default_factory=list)
    suggested_data_points: List[str] = Field(default_factory=list)
    metric_keys: List[str] = Field(default_factory=list)
    prompt_if_missing: Optional[str] = None
    rule_category: Optional[str] = None

    @property
    def all_domains(self) -> List[str]:
        domains = [self.primary_domain] if self.primary_domain else []
        return domains + list(self.secondary_domains)


class ClassificationResult(BaseModel):
    question_id: str
    question_type: QuestionType
    confidence: DetectionConfidence
    matched_signals: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class RetrievedDataPoint(BaseModel):
    """A single data value pulled or derived for a question.

    `confidence` is "high" for user-provided or directly reported values and
    "medium" for derived ones; `is_estimate` is set at creation and never
    inferred from the label.
    """
    domain: str
    field: str
    label: str
    value: DataValue = None
    unit: Optional[str] = None
    confidence: PointConfidence = "high"
    period: Optional[str] = None
    source: Optional[str] = None
    is_estimate: bool = False


class DataContextMetadata(BaseModel):
    reporting_period: Optional[str] = None
    data_gaps: List[str] = Field(default_factory=list)
    sites_included: List[str] = Field(default_factory=list)


class DataContext(BaseModel):
    company: List[RetrievedDataPoint] = Field(default_factory=list)
    operational: List[RetrievedDataPoint] = Field(default_factory=list)
    calculated: List[RetrievedDataPoint] = Field(default_factory=list)
    metadata: DataContextMetadata = Field(default_factory=DataContextMetadata)

    def all_points(self) -> List[RetrievedDataPoint]:
        return [*self.company, *self.operational, *self.calculated]


class CompanyData(BaseModel):
    """Flat company-data snapshot keyed by business field.

    A numeric 0 is read as "not reported" by the presence test for most
    operational metrics; see `data_retrieval.is_reported`.
    """
    model_config = ConfigDict(allow_inf_nan=False)

    company_name: Optional[str] = None
    industry: Optional[str] = None
    country: Optional[str] = None
    employee_count: Optional[Number] = None
    number_of_sites: Optional[int] = None
    reporting_period: Optional[str] = None
    revenue_band: Optional[str] = None

    electricity_kwh: Optional[Number] = None
    renewable_percent: Optional[Number] = None
    natural_gas_m3: Optional[Number] = None
    diesel_liters: Optional[Number] = None
    water_m3: Optional[Number] = None

    scope1_tco2e: Optional[Number] = None
    scope2_tco2e: Optional[Number] = None
    scope3_tco2e: Optional[Number] = None
    scope3_categories: Optional[str] = None
    business_travel_km: Optional[Number] = None
    employee_commute_km: Optional[Number] = None
    freight_ton_km: Optional[Number] = None

    total_waste_kg: Optional[Number] = None
    recycling_percent: Optional[Number] = None
    hazardous_waste_kg: Optional[Number] = None

    female_percent: Optional[Number] = None
    training_hours_per_employee: Optional[Number] = None
    trir_rate: Optional[Number] = None
    lost_time_incidents: Optional[int] = None
    fatalities: Optional[int] = None

    certifications: Optional[str] = None
    sustainability_goal: Optional[str] = None
    additional_context: Optional[str] = None


# ---------------------------------------------------------------------------
# Company profile
# ---------------------------------------------------------------------------

class InformalPractice(BaseModel):
    """An operational behaviour the company reports, documented or not."""
    topic: PracticeTopic
    description: str
    is_formalized: bool = False
    id: Optional[str] = None


class CompanyProfile(BaseModel):
    company_name: str
    industry: str = ""
    reporting_period: Optional[str] = None
    country: Optional[str] = None
    employee_count: int = 0
    number_of_sites: int = 1
    maturity_level: MaturityLevel = "Emerging"
    maturity_score: int = 0
    informal_practices: List[InformalPractice] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerationConfig(BaseModel):
    """Per-call drafting options.

    `use_llm` and `aggregate_sites` are recognised and echoed back, but
    drafting is always template-based and the snapshot is already
    aggregated across sites.
    """
    verbosity: Verbosity = Field(default_factory=lambda: config.DEFAULT_VERBOSITY)
    include_methodology: bool = True
    include_assumptions: bool = True
    include_limitations: bool = True
    aggregate_sites: bool = True
    use_llm: bool = Field(default_factory=lambda: config.USE_LLM)


class EvidenceRequirement(BaseModel):
    question_id: str
    question_type: QuestionType
    evidence_description: str
    acceptable_documents: List[str] = Field(default_factory=list)
    methodology_note: Optional[str] = None


class AnswerDraft(BaseModel):
    """Final drafted answer for one question. Never mutated after return."""
    model_config = ConfigDict(frozen=True)

    question_id: str
    question_text: str
    category: Optional[str] = None
    question_type: Optional[QuestionType] = None
    match_result: MatchResult
    data_context: DataContext
    answer: str
    answer_stage: AnswerStage
    data_value: Optional[str] = None
    data_unit: Optional[str] = None
    data_period: Optional[str] = None
    data_source: Optional[str] = None
    answer_confidence: Confidence
    confidence_source: ConfidenceSource
    methodology: Optional[str] = None
    assumptions: List[str] = Field(default_factory=list)
    limitations: List[str] = Field(default_factory=list)
    suggested_evidence: List[str] = Field(default_factory=list)
    metric_keys_used: List[str] = Field(default_factory=list)
    prompt_for_missing: Optional[str] = None
    needs_review: bool
    is_estimate: bool
    has_data_gaps: bool


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

class ProcessingStatus(BaseModel):
    """Status update during questionnaire processing."""
    state: str = Field(..., description="processing, ready, or error")
    progress: int = Field(..., ge=0, le=100)
    message: str
    output_filename: Optional[str] = None


class DraftRequest(BaseModel):
    """Body for drafting answers to already-parsed questions."""
    questions: List[ParsedQuestion]
    company_data: CompanyData = Field(default_factory=CompanyData)
    profile: Optional[CompanyProfile] = None
    config: GenerationConfig = Field(default_factory=GenerationConfig)
