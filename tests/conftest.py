"""Shared fixtures: saved HTML pages, a complete analysis payload, fake collaborators."""

import copy
from pathlib import Path

import pytest

from models import ProductRecord
from reasoning import ReasoningResponse

FIXTURES_DIR = Path(__file__).parent / "fixtures"

FLOWBASE_URL = "https://betalist.com/startups/flowbase"

ANALYSIS_PAYLOAD = {
    "scores": {"feasibility": 72, "desirability": 81, "viability": 64, "overall": 72},
    "summary": "A focused CRM for Australian freelancers is buildable by a solo founder.",
    "problemAnalysis": {
        "coreProblem": "Freelancers juggle clients across spreadsheets and inboxes.",
        "whoExperiencesIt": "Solo consultants and two-person agencies",
        "whyNow": "Freelance work keeps growing and generic CRMs keep getting heavier.",
        "severityScore": 4,
        "marketGap": "No lightweight CRM with local invoicing and GST handling.",
    },
    "targetMarket": {
        "primaryNiche": "Australian allied-health contractors",
        "segmentSize": "~40k practitioners",
        "whyThisSegment": "Compliance-heavy, underserved by US tools",
        "economicBuyer": "The practitioner",
        "endUser": "The practitioner",
        "urgencyScore": 4,
        "willingnessToPayScore": 3,
    },
    "competition": {
        "competitionLevel": "High",
        "similarProducts": [
            {"name": "HoneyBook", "description": "Client flow for creatives", "differentiator": "US-centric"}
        ],
        "directCompetitors": ["HoneyBook", "Dubsado"],
        "indirectCompetitors": ["Notion"],
        "alternatives": ["Spreadsheets"],
        "competitiveGap": "Local compliance",
        "copyRisk": "Medium",
    },
    "technicalFeasibility": {
        "engineeringComplexity": 2,
        "estimatedDevTime": "6-8 weeks",
        "requiredComponents": {
            "frontend": "Next.js",
            "backend": "AWS Lambda",
            "database": "Postgres",
            "ai": "OpenAI for email drafting",
            "infrastructure": "AWS",
            "integrations": ["Stripe", "Xero"],
        },
        "dataSources": ["User-entered client data"],
        "integrationRisk": "Low",
        "primaryRisks": ["Xero API limits"],
        "regulatoryConcerns": ["Privacy Act 1988"],
    },
    "gtmStrategy": {
        "timeToGTM": "4 weeks",
        "simplicityScore": 4,
        "distributionChannels": ["Facebook groups", "Professional associations"],
        "acquisitionPathway": ["Waitlist", "Founding-member discount"],
        "timeToFirstRevenue": "8 weeks",
    },
    "businessModel": {
        "pricingModel": "Subscription",
        "pricingTiers": [
            {
                "name": "Solo",
                "price": 19,
                "currency": "AUD",
                "billingPeriod": "month",
                "targetCustomer": "Single practitioner",
                "keyFeatures": ["Clients", "Invoices"],
            }
        ],
        "marginPotential": "85%+",
        "automationPotential": "High",
        "monetizationRisks": ["Low price ceiling"],
    },
    "risks": {
        "market": {"score": 3, "notes": "Crowded category"},
        "execution": {"score": 2, "notes": "Small scope"},
        "reliability": {"score": 2, "notes": "Standard stack"},
        "legal": {"score": 3, "notes": "Health data handling"},
        "aiDependency": {"score": 1, "notes": "AI is optional"},
    },
    "buildPath": {
        "mvpScope": ["Client list", "Invoices"],
        "deferToV2": ["Scheduling"],
        "weeklyRoadmap": [{"week": 1, "milestones": ["Auth", "Client CRUD"]}],
        "agentRecommendations": {
            "useAgentsFor": ["Competitor research"],
            "humanJudgmentFor": ["Pricing"],
        },
    },
    "recommendation": {
        "verdict": "BUILD",
        "confidence": 70,
        "rationale": "Reachable niche with a clear compliance wedge.",
        "preRevenueKPIs": [{"timeframe": "Week 4", "metric": "50 waitlist signups"}],
        "nextSteps": ["Interview 10 practitioners"],
    },
    "markdownReport": "# FlowBase\n\nBUILD.",
}


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


class FakeReasoner:
    """Stands in for ReasoningClient; counts calls."""

    model = "fake-reasoner"

    def __init__(self, text: str | None = None, error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls = 0
        self.prompts: list[tuple[str, str]] = []

    async def call(self, system_prompt: str, user_prompt: str) -> ReasoningResponse:
        self.calls += 1
        self.prompts.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return ReasoningResponse(text=self.text or "", latency_ms=5, model=self.model)


@pytest.fixture
def analysis_payload() -> dict:
    return copy.deepcopy(ANALYSIS_PAYLOAD)


@pytest.fixture
def flowbase() -> ProductRecord:
    return ProductRecord(
        name="FlowBase",
        tagline="Simple, intuitive CRM tool created specifically for freelancers",
        description="FlowBase is a lightweight SaaS platform for freelancers and small teams.",
        topics=["Developer Tools"],
        canonical_url="https://flowbase.example.com",
        source_url=FLOWBASE_URL,
        featured_date="November 18, 2025",
    )
