"""
Analysis orchestrator.

analyze_product(source_url) runs a strict sequence of steps:

    CACHE_CHECK -> CACHE_HIT
                -> REASONING_CALL -> VALIDATION -> PERSIST
                                  -> FALLBACK   -> PERSIST

Exactly one schema-valid AnalysisRecord comes back per call. Reasoning and
validation failures are absorbed into a heuristic fallback record
(status="failed"); only InputValidationError and PersistenceError escape.
"""

import logging
import math
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum
from urllib.parse import urlparse

import httpx
import orjson

from cache import CacheStore, is_fresh
from config import DEFAULT_CACHE_TTL_DAYS, Settings
from errors import InputValidationError, PersistenceError, SchemaViolation
from models import ProductRecord, derive_slug, utcnow
from reasoning import Reasoner, ReasoningClient
from schemas import (
    SCHEMA_VERSION,
    AgentRecommendations,
    AnalysisBody,
    AnalysisMetadata,
    AnalysisRecord,
    BuildPath,
    BusinessModel,
    Competition,
    GTMStrategy,
    LegacyAnalysis,
    LegacyScore,
    ProblemAnalysis,
    Recommendation,
    RequiredComponents,
    RiskItem,
    Risks,
    Scores,
    TargetMarket,
    TechnicalFeasibility,
    Verdict,
    body_json_schema,
    parse_analysis_body,
)
from sources import scrape_product, source_for_url
from taxonomy import TopicProfile, classify_topics

logger = logging.getLogger(__name__)

Scraper = Callable[[str], Awaitable[ProductRecord | None]]

PLACEHOLDER = "Requires AI analysis"
FALLBACK_MODEL = "heuristic-fallback"
FALLBACK_VIABILITY = 70
FALLBACK_CONFIDENCE = 25
FALLBACK_SUB_SCORE = 3
RAW_RESPONSE_LIMIT = 2000

FOUNDER_CONTEXT = (
    "Solo founder, 2-5 hrs/week, $1000 budget, based in Australia, prefers AWS + GitHub + "
    "Copilot + OpenAI for development, wants maximum GTM speed, and builds products in "
    "healthcare, real estate or professional services. Uses agents for research, analysis, "
    "and coding."
)


class AnalysisState(str, Enum):
    CACHE_CHECK = "CACHE_CHECK"
    CACHE_HIT = "CACHE_HIT"
    REASONING_CALL = "REASONING_CALL"
    VALIDATION = "VALIDATION"
    FALLBACK = "FALLBACK"
    PERSIST = "PERSIST"


# =====================================================================
# Prompts
# =====================================================================


def build_system_prompt() -> str:
    schema = orjson.dumps(body_json_schema(), option=orjson.OPT_INDENT_2).decode()
    return f"""You are an expert SaaS strategist and AI product architect. Assess whether the
product described by the user is worth rebuilding as a new SaaS for the founder below.

## Founder context
{FOUNDER_CONTEXT}

## Output rules
- Respond with ONE JSON object and nothing else.
- The object must validate against the JSON Schema below. Every field is required unless the schema says otherwise.
- Top-level scores are integers 0-100. Every other score is an integer 1-5.
- Enumerated values must match exactly: "Low" | "Medium" | "High"; billingPeriod "month" | "year"; verdict "BUILD" | "PIVOT" | "PARK".
- overall should reflect feasibility, desirability and viability for this founder.
- markdownReport is a readable executive summary of the same analysis.

## JSON Schema
{schema}
"""


def build_user_prompt(product: ProductRecord) -> str:
    topics = ", ".join(product.topics) if product.topics else "None listed"
    return f"""Analyze this product:

Name: {product.name}
Tagline: {product.tagline or "N/A"}
Description: {product.description or "N/A"}
Topics: {topics}
Website: {product.canonical_url or "N/A"}
Listing: {product.source_url}
Featured: {product.featured_date or "N/A"}
"""


# =====================================================================
# Heuristic fallback
# =====================================================================


def verdict_for(overall: int) -> Verdict:
    if overall >= 75:
        return "BUILD"
    if overall >= 60:
        return "PIVOT"
    return "PARK"


def fallback_scores(profile: TopicProfile) -> Scores:
    """Topic-adjusted feasibility/desirability, fixed viability, rounded mean overall."""
    feasibility = 60 if profile.tech_heavy else 85
    desirability = 90 if profile.consumer_facing else 70
    viability = FALLBACK_VIABILITY
    overall = math.floor((feasibility + desirability + viability) / 3 + 0.5)
    return Scores(feasibility=feasibility, desirability=desirability, viability=viability, overall=overall)


def _feasibility_note(product: ProductRecord, profile: TopicProfile) -> str:
    if profile.tech_heavy:
        return f"Higher technical complexity suggested by topics: {', '.join(product.topics)}."
    return "Topics suggest a standard stack that off-the-shelf components can cover."


def _desirability_note(profile: TopicProfile) -> str:
    if profile.consumer_facing:
        return "Consumer-facing topics suggest broad demand."
    return "Niche appeal; demand is unverified."


def _fallback_report(product: ProductRecord, scores: Scores, verdict: Verdict, reason: str) -> str:
    return "\n".join(
        [
            f"# {product.name} (Fallback Analysis)",
            "",
            f"> AI analysis was unavailable: {reason}",
            "",
            "## Scores",
            "",
            "| Dimension | Score |",
            "|---|---|",
            f"| Feasibility | {scores.feasibility} |",
            f"| Desirability | {scores.desirability} |",
            f"| Viability | {scores.viability} |",
            f"| Overall | {scores.overall} |",
            "",
            f"**Verdict:** {verdict} (confidence {FALLBACK_CONFIDENCE}/100)",
            "",
            f"Scores are heuristics over the listing topics only. {PLACEHOLDER} for problem, market, "
            "competition, go-to-market, pricing, risks and build path.",
        ]
    )


def build_fallback_body(product: ProductRecord, reason: str) -> AnalysisBody:
    """A complete, schema-valid body built from local heuristics only."""
    profile = classify_topics(product.topics)
    scores = fallback_scores(profile)
    verdict = verdict_for(scores.overall)
    placeholder_risk = RiskItem(score=FALLBACK_SUB_SCORE, notes=PLACEHOLDER)

    return AnalysisBody(
        scores=scores,
        summary=(
            f"{product.name} (Fallback Analysis): heuristic scores from listing topics only. "
            f"{_feasibility_note(product, profile)} {_desirability_note(profile)} "
            f"{PLACEHOLDER} for a reliable assessment."
        ),
        problem_analysis=ProblemAnalysis(
            core_problem=product.tagline or PLACEHOLDER,
            who_experiences_it=PLACEHOLDER,
            why_now=PLACEHOLDER,
            severity_score=FALLBACK_SUB_SCORE,
            market_gap=PLACEHOLDER,
        ),
        target_market=TargetMarket(
            primary_niche=PLACEHOLDER,
            segment_size=PLACEHOLDER,
            why_this_segment=PLACEHOLDER,
            economic_buyer=PLACEHOLDER,
            end_user=PLACEHOLDER,
            urgency_score=FALLBACK_SUB_SCORE,
            willingness_to_pay_score=FALLBACK_SUB_SCORE,
        ),
        competition=Competition(
            competition_level="Medium",
            similar_products=[],
            direct_competitors=[],
            indirect_competitors=[],
            alternatives=[],
            competitive_gap=PLACEHOLDER,
            copy_risk="Medium",
        ),
        technical_feasibility=TechnicalFeasibility(
            engineering_complexity=4 if profile.tech_heavy else 2,
            estimated_dev_time=PLACEHOLDER,
            required_components=RequiredComponents(
                frontend=PLACEHOLDER,
                backend=PLACEHOLDER,
                database=PLACEHOLDER,
                ai=PLACEHOLDER,
                infrastructure=PLACEHOLDER,
                integrations=[],
            ),
            data_sources=[],
            integration_risk="Medium",
            primary_risks=[_feasibility_note(product, profile)],
            regulatory_concerns=[],
        ),
        gtm_strategy=GTMStrategy(
            time_to_gtm=PLACEHOLDER,
            simplicity_score=FALLBACK_SUB_SCORE,
            distribution_channels=[],
            acquisition_pathway=[],
            time_to_first_revenue=PLACEHOLDER,
        ),
        business_model=BusinessModel(
            pricing_model=PLACEHOLDER,
            pricing_tiers=[],
            margin_potential=PLACEHOLDER,
            automation_potential="Medium",
            monetization_risks=[],
        ),
        risks=Risks(
            market=placeholder_risk,
            execution=placeholder_risk,
            reliability=placeholder_risk,
            legal=placeholder_risk,
            ai_dependency=placeholder_risk,
        ),
        build_path=BuildPath(
            mvp_scope=[],
            defer_to_v2=[],
            weekly_roadmap=[],
            agent_recommendations=AgentRecommendations(use_agents_for=[], human_judgment_for=[]),
        ),
        recommendation=Recommendation(
            verdict=verdict,
            confidence=FALLBACK_CONFIDENCE,
            rationale=f"Low-confidence heuristic estimate. {PLACEHOLDER}.",
            pre_revenue_kpis=[],
            next_steps=["Re-run the analysis once the reasoning model is reachable"],
        ),
        markdown_report=_fallback_report(product, scores, verdict, reason),
    )


def placeholder_product(source_url: str, slug: str) -> ProductRecord:
    """Stand-in record when the detail page could not be scraped."""
    name = " ".join(part.capitalize() for part in slug.replace("_", "-").split("-") if part) or slug
    return ProductRecord(name=name or "Unknown product", source_url=source_url)


# =====================================================================
# Legacy view
# =====================================================================


def to_legacy(record: AnalysisRecord) -> LegacyAnalysis:
    """Three-score view of a complete record."""
    tech = record.technical_feasibility
    market = record.target_market
    business = record.business_model
    return LegacyAnalysis(
        feasibility=LegacyScore(
            score=record.scores.feasibility,
            reasoning=f"Engineering complexity {tech.engineering_complexity}/5, estimated dev time: {tech.estimated_dev_time}.",
        ),
        desirability=LegacyScore(
            score=record.scores.desirability,
            reasoning=f"{record.problem_analysis.core_problem} Primary niche: {market.primary_niche}.",
        ),
        viability=LegacyScore(
            score=record.scores.viability,
            reasoning=f"Pricing: {business.pricing_model}. Margin potential: {business.margin_potential}.",
        ),
        overall_score=record.scores.overall,
        summary=record.summary,
    )


# =====================================================================
# Orchestrator
# =====================================================================


def _body_fields(body: AnalysisBody) -> dict:
    return {name: getattr(body, name) for name in AnalysisBody.model_fields}


class Analyzer:
    """Cache-checked, schema-validated analysis with heuristic fallback.

    The store, the reasoning client and the detail scraper are passed in and
    owned by the caller.
    """

    def __init__(
        self,
        store: CacheStore,
        reasoner: Reasoner,
        scraper: Scraper,
        ttl: timedelta | None = timedelta(days=DEFAULT_CACHE_TTL_DAYS),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.reasoner = reasoner
        self.scraper = scraper
        self.ttl = ttl
        self.clock = clock

    @staticmethod
    def validate_url(source_url: str) -> str:
        """Return the origin tag for a product URL or raise InputValidationError."""
        if not isinstance(source_url, str) or not source_url.strip():
            raise InputValidationError("A product URL is required")
        parsed = urlparse(source_url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InputValidationError(f"Not an http(s) URL: {source_url!r}")
        adapter = source_for_url(source_url.strip())
        if adapter is None:
            raise InputValidationError(f"Unsupported product URL: {source_url}")
        return adapter.source

    async def analyze_product(self, source_url: str) -> AnalysisRecord:
        """Entry point: analyze the product at a listing URL."""
        source = self.validate_url(source_url)
        source_url = source_url.strip()
        slug = derive_slug(source_url)

        cached = await self._cache_check(slug)
        if cached is not None:
            return cached

        started = time.monotonic()
        product = await self.scraper(source_url)
        if product is None:
            reason = f"Could not scrape product details from {source_url}"
            logger.warning(f"[{slug}] {reason}")
            record = self._fallback(placeholder_product(source_url, slug), source_url, source, slug, reason, started)
            return await self._persist(record)

        return await self._analyze(product, source_url, source, slug, started)

    async def analyze_record(self, product: ProductRecord, source: str | None = None) -> AnalysisRecord:
        """Analyze an already-scraped product, keyed by its source URL."""
        if source is None:
            source = self.validate_url(product.source_url)
        slug = derive_slug(product.source_url)
        if not slug:
            raise InputValidationError(f"Cannot derive a slug from {product.source_url!r}")

        cached = await self._cache_check(slug)
        if cached is not None:
            return cached
        return await self._analyze(product, product.source_url, source, slug, time.monotonic())

    # ----- states -----

    def _enter(self, slug: str, state: AnalysisState, detail: str = "") -> None:
        logger.info(f"[{slug}] {state.value}{': ' + detail if detail else ''}")

    async def _cache_check(self, slug: str) -> AnalysisRecord | None:
        self._enter(slug, AnalysisState.CACHE_CHECK)
        try:
            cached = await self.store.get_by_slug(slug)
        except PersistenceError as e:
            logger.warning(f"[{slug}] cache read failed, treating as miss: {e}")
            return None
        if cached is None:
            return None
        if not is_fresh(cached.created_at, self.ttl, self.clock()):
            logger.info(f"[{slug}] cached analysis {cached.id} is stale")
            return None
        self._enter(slug, AnalysisState.CACHE_HIT, cached.id)
        return cached

    async def _analyze(
        self, product: ProductRecord, source_url: str, source: str, slug: str, started: float
    ) -> AnalysisRecord:
        self._enter(slug, AnalysisState.REASONING_CALL, getattr(self.reasoner, "model", ""))
        try:
            response = await self.reasoner.call(build_system_prompt(), build_user_prompt(product))
        except Exception as e:
            logger.warning(f"[{slug}] reasoning call failed: {type(e).__name__}: {e}")
            record = self._fallback(product, source_url, source, slug, f"Reasoning call failed: {e}", started)
            return await self._persist(record)

        self._enter(slug, AnalysisState.VALIDATION)
        try:
            body = parse_analysis_body(response.text)
        except SchemaViolation as e:
            logger.warning(f"[{slug}] {e}; first 500 chars: {(response.text or '')[:500]!r}")
            for violation in e.violations[:10]:
                logger.warning(f"[{slug}]   {violation}")
            record = self._fallback(
                product,
                source_url,
                source,
                slug,
                f"Model output failed validation: {e}",
                started,
                raw_response=(response.text or "")[:RAW_RESPONSE_LIMIT],
            )
            return await self._persist(record)

        now = self.clock()
        record = AnalysisRecord(
            **_body_fields(body),
            id=str(uuid.uuid4()),
            product_slug=slug,
            source_url=source_url,
            source=source,
            product=product,
            metadata=AnalysisMetadata(
                schema_version=SCHEMA_VERSION,
                model_used=response.model,
                analyzed_at=now,
                analyzed_by=response.model,
                processing_time_ms=int((time.monotonic() - started) * 1000),
                token_usage=response.token_usage,
                reasoning=response.reasoning,
            ),
            status="completed",
            created_at=now,
            updated_at=now,
        )
        return await self._persist(record)

    def _fallback(
        self,
        product: ProductRecord,
        source_url: str,
        source: str,
        slug: str,
        reason: str,
        started: float,
        raw_response: str | None = None,
    ) -> AnalysisRecord:
        self._enter(slug, AnalysisState.FALLBACK, reason)
        now = self.clock()
        return AnalysisRecord(
            **_body_fields(build_fallback_body(product, reason)),
            id=str(uuid.uuid4()),
            product_slug=slug,
            source_url=source_url,
            source=source,
            product=product,
            metadata=AnalysisMetadata(
                schema_version=SCHEMA_VERSION,
                model_used=FALLBACK_MODEL,
                analyzed_at=now,
                analyzed_by=FALLBACK_MODEL,
                processing_time_ms=int((time.monotonic() - started) * 1000),
                raw_response=raw_response,
            ),
            status="failed",
            error_message=reason,
            created_at=now,
            updated_at=now,
        )

    async def _persist(self, record: AnalysisRecord) -> AnalysisRecord:
        self._enter(record.product_slug, AnalysisState.PERSIST, f"{record.id} ({record.status})")
        try:
            await self.store.save(record)
        except PersistenceError as e:
            raise PersistenceError(f"Analysis {record.id} was produced but not cached: {e}", record=record) from e
        return record


def build_analyzer(settings: Settings, http: httpx.AsyncClient, store: CacheStore) -> Analyzer:
    """Wire an Analyzer to the live reasoning API and detail scrapers over a shared HTTP client."""
    reasoner = ReasoningClient(
        http,
        settings.deepseek_api_key,
        url=settings.reasoning_url,
        model=settings.reasoning_model,
        timeout=settings.reasoning_timeout,
    )

    async def scraper(url: str) -> ProductRecord | None:
        return await scrape_product(http, url, settings.request_timeout)

    return Analyzer(store, reasoner, scraper, ttl=settings.cache_ttl)
