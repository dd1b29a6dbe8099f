"""
Analysis schema and validator for untrusted model output.

The reasoning model returns the analytical body of an AnalysisRecord as JSON,
sometimes wrapped in markdown code fences. parse_analysis_body() strips the
fences, decodes, and validates against AnalysisBody. Validation is
all-or-nothing: one bad field rejects the whole payload.

Scores are strict integers (0-100 top level, 1-5 sub-scores). Enumerated fields
must match their literal set exactly, with no case folding.
"""

import logging
import re
from datetime import datetime
from typing import Annotated, Any, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from errors import SchemaViolation
from models import CamelModel, ProductRecord, utcnow

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "2.0"

Score = Annotated[int, Field(ge=0, le=100, strict=True)]
SubScore = Annotated[int, Field(ge=1, le=5, strict=True)]
Level = Literal["Low", "Medium", "High"]
Verdict = Literal["BUILD", "PIVOT", "PARK"]
Status = Literal["completed", "failed", "pending"]
BillingPeriod = Literal["month", "year"]


# ===== Sections =====


class Scores(CamelModel):
    feasibility: Score
    desirability: Score
    viability: Score
    overall: Score


class ProblemAnalysis(CamelModel):
    core_problem: str
    who_experiences_it: str
    why_now: str
    severity_score: SubScore
    market_gap: str


class TargetMarket(CamelModel):
    primary_niche: str
    segment_size: str
    why_this_segment: str
    economic_buyer: str
    end_user: str
    urgency_score: SubScore
    willingness_to_pay_score: SubScore


class SimilarProduct(CamelModel):
    name: str
    description: str
    differentiator: str


class Competition(CamelModel):
    competition_level: Level
    similar_products: list[SimilarProduct]
    direct_competitors: list[str]
    indirect_competitors: list[str]
    alternatives: list[str]
    competitive_gap: str
    copy_risk: Level


class RequiredComponents(CamelModel):
    frontend: str
    backend: str
    database: str
    ai: str
    infrastructure: str
    integrations: list[str]


class TechnicalFeasibility(CamelModel):
    engineering_complexity: SubScore
    estimated_dev_time: str
    required_components: RequiredComponents
    data_sources: list[str]
    integration_risk: Level
    primary_risks: list[str]
    regulatory_concerns: list[str]


class GTMStrategy(CamelModel):
    time_to_gtm: str = Field(alias="timeToGTM")
    simplicity_score: SubScore
    distribution_channels: list[str]
    acquisition_pathway: list[str]
    time_to_first_revenue: str


class PricingTier(CamelModel):
    name: str
    price: float = Field(ge=0)
    currency: str
    billing_period: BillingPeriod
    target_customer: str
    key_features: list[str]


class BusinessModel(CamelModel):
    pricing_model: str
    pricing_tiers: list[PricingTier]
    margin_potential: str
    automation_potential: Level
    monetization_risks: list[str]


class RiskItem(CamelModel):
    score: SubScore
    notes: str


class Risks(CamelModel):
    market: RiskItem
    execution: RiskItem
    reliability: RiskItem
    legal: RiskItem
    ai_dependency: RiskItem


class WeeklyMilestone(CamelModel):
    week: int = Field(ge=1, strict=True)
    milestones: list[str]


class AgentRecommendations(CamelModel):
    use_agents_for: list[str]
    human_judgment_for: list[str]


class BuildPath(CamelModel):
    mvp_scope: list[str]
    defer_to_v2: list[str]
    weekly_roadmap: list[WeeklyMilestone]
    agent_recommendations: AgentRecommendations


class PreRevenueKPI(CamelModel):
    timeframe: str
    metric: str


class Recommendation(CamelModel):
    verdict: Verdict
    confidence: Score
    rationale: str
    alternative_approaches: list[str] | None = None
    pre_revenue_kpis: list[PreRevenueKPI] = Field(alias="preRevenueKPIs")
    next_steps: list[str]


class TokenUsage(CamelModel):
    prompt_tokens: int = Field(ge=0)
    completion_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)
    estimated_cost_usd: float = Field(ge=0, alias="estimatedCostUSD")


class AnalysisMetadata(CamelModel):
    schema_version: str = SCHEMA_VERSION
    model_used: str
    analyzed_at: datetime
    analyzed_by: str
    processing_time_ms: int = Field(ge=0)
    token_usage: TokenUsage | None = None
    reasoning: str | None = None  # chain-of-thought, when the model exposes it
    raw_response: str | None = None  # model text that failed validation, truncated


# ===== Records =====


class AnalysisBody(CamelModel):
    """The part of an analysis the reasoning model is asked to produce."""

    scores: Scores
    summary: str
    problem_analysis: ProblemAnalysis
    target_market: TargetMarket
    competition: Competition
    technical_feasibility: TechnicalFeasibility
    gtm_strategy: GTMStrategy
    business_model: BusinessModel
    risks: Risks
    build_path: BuildPath
    recommendation: Recommendation
    markdown_report: str


class AnalysisRecord(AnalysisBody):
    """The persisted unit of work. Superseded by newer records, never edited."""

    id: str
    product_slug: str = Field(min_length=1)
    source_url: str
    source: str
    product: ProductRecord
    metadata: AnalysisMetadata
    status: Status
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LegacyScore(BaseModel):
    score: Score
    reasoning: str


class LegacyAnalysis(BaseModel):
    """Three-score view served to older consumers and found in old stored rows."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    feasibility: LegacyScore
    desirability: LegacyScore
    viability: LegacyScore
    overall_score: Score
    summary: str


def _stored_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "complete" if "scores" in value else "legacy"
    return "complete" if isinstance(value, AnalysisRecord) else "legacy"


# Decided once when a stored payload is loaded; nothing downstream re-inspects the shape.
StoredAnalysis = Annotated[
    Union[Annotated[AnalysisRecord, Tag("complete")], Annotated[LegacyAnalysis, Tag("legacy")]],
    Discriminator(_stored_kind),
]
_stored_adapter: TypeAdapter = TypeAdapter(StoredAnalysis)


def load_stored(data: Any) -> AnalysisRecord | LegacyAnalysis:
    """Decode a stored analysis payload into its explicit variant. Raises SchemaViolation."""
    try:
        return _stored_adapter.validate_python(data)
    except ValidationError as e:
        raise SchemaViolation("Stored analysis does not match any known shape", _violations(e)) from e


# ===== Parsing untrusted text =====

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove one surrounding ``` / ```json fence pair, if present."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text


def _violations(e: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]


def parse_analysis_body(text: str) -> AnalysisBody:
    """Parse model text into an AnalysisBody or raise SchemaViolation. Never returns partial data."""
    if not text or not text.strip():
        raise SchemaViolation("Model returned empty text")

    payload = strip_code_fences(text)
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise SchemaViolation(f"Model output is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise SchemaViolation(f"Model output is a JSON {type(data).__name__}, expected an object")

    try:
        return AnalysisBody.model_validate(data)
    except ValidationError as e:
        violations = _violations(e)
        raise SchemaViolation(f"Model output failed schema validation ({len(violations)} violation(s))", violations) from e


def validate_record(data: Any) -> list[str]:
    """Return the list of schema violations for a complete record (empty when valid)."""
    if isinstance(data, AnalysisRecord):
        data = data.model_dump(mode="json", by_alias=True)
    try:
        AnalysisRecord.model_validate(data)
    except ValidationError as e:
        return _violations(e)
    return []


def body_json_schema() -> dict:
    """JSON Schema of the model-facing body, embedded in the system prompt."""
    return AnalysisBody.model_json_schema(by_alias=True)
