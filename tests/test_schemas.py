"""Schema validator tests: fences, all-or-nothing validation, stored-shape union."""

import orjson
import pytest

from errors import SchemaViolation
from schemas import (
    AnalysisRecord,
    LegacyAnalysis,
    body_json_schema,
    load_stored,
    parse_analysis_body,
    strip_code_fences,
    validate_record,
)


def _text(payload: dict) -> str:
    return orjson.dumps(payload).decode()


class TestStripCodeFences:
    """Fence removal."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('  ```\n{"a": 1}```  ') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fences(' {"a": 1} ') == '{"a": 1}'


class TestParseAnalysisBody:
    """Untrusted model text."""

    def test_valid_fenced_payload(self, analysis_payload):
        body = parse_analysis_body(f"```json\n{_text(analysis_payload)}\n```")

        assert body.scores.overall == 72
        assert body.gtm_strategy.time_to_gtm == "4 weeks"
        assert body.recommendation.pre_revenue_kpis[0].metric == "50 waitlist signups"
        assert body.recommendation.alternative_approaches is None

    def test_missing_section(self, analysis_payload):
        del analysis_payload["risks"]
        with pytest.raises(SchemaViolation) as exc:
            parse_analysis_body(_text(analysis_payload))
        assert any(v.startswith("risks") for v in exc.value.violations)

    def test_score_out_of_range(self, analysis_payload):
        analysis_payload["scores"]["overall"] = 101
        with pytest.raises(SchemaViolation):
            parse_analysis_body(_text(analysis_payload))

    def test_sub_score_out_of_range(self, analysis_payload):
        analysis_payload["problemAnalysis"]["severityScore"] = 6
        with pytest.raises(SchemaViolation):
            parse_analysis_body(_text(analysis_payload))

    def test_float_score_rejected(self, analysis_payload):
        analysis_payload["scores"]["feasibility"] = 72.5
        with pytest.raises(SchemaViolation):
            parse_analysis_body(_text(analysis_payload))

    def test_string_score_rejected(self, analysis_payload):
        analysis_payload["scores"]["feasibility"] = "72"
        with pytest.raises(SchemaViolation):
            parse_analysis_body(_text(analysis_payload))

    @pytest.mark.parametrize(
        "path, value",
        [
            (("recommendation", "verdict"), "build"),
            (("competition", "competitionLevel"), "high"),
            (("competition", "copyRisk"), "Extreme"),
            (("technicalFeasibility", "integrationRisk"), "LOW"),
            (("businessModel", "automationPotential"), "Med"),
        ],
    )
    def test_enum_must_match_exactly(self, analysis_payload, path, value):
        analysis_payload[path[0]][path[1]] = value
        with pytest.raises(SchemaViolation):
            parse_analysis_body(_text(analysis_payload))

    def test_billing_period_enum(self, analysis_payload):
        analysis_payload["businessModel"]["pricingTiers"][0]["billingPeriod"] = "week"
        with pytest.raises(SchemaViolation):
            parse_analysis_body(_text(analysis_payload))

    def test_not_json(self):
        with pytest.raises(SchemaViolation):
            parse_analysis_body("The product looks promising! {scores: high}")

    def test_json_array(self):
        with pytest.raises(SchemaViolation):
            parse_analysis_body("[1, 2, 3]")

    def test_empty(self):
        with pytest.raises(SchemaViolation):
            parse_analysis_body("   ")


class TestStoredShapes:
    """Legacy vs complete payloads are told apart once."""

    def _record(self, analysis_payload) -> dict:
        return {
            **analysis_payload,
            "id": "a-1",
            "productSlug": "flowbase",
            "sourceUrl": "https://betalist.com/startups/flowbase",
            "source": "betalist",
            "product": {"name": "FlowBase", "sourceUrl": "https://betalist.com/startups/flowbase"},
            "metadata": {
                "modelUsed": "deepseek-reasoner",
                "analyzedAt": "2025-11-18T10:00:00+00:00",
                "analyzedBy": "deepseek-reasoner",
                "processingTimeMs": 1200,
            },
            "status": "completed",
        }

    def test_complete_payload(self, analysis_payload):
        stored = load_stored(self._record(analysis_payload))
        assert isinstance(stored, AnalysisRecord)
        assert stored.metadata.schema_version == "2.0"

    def test_legacy_payload(self):
        stored = load_stored(
            {
                "feasibility": {"score": 60, "reasoning": "r"},
                "desirability": {"score": 70, "reasoning": "r"},
                "viability": {"score": 65, "reasoning": "r"},
                "overallScore": 65,
                "summary": "s",
            }
        )
        assert isinstance(stored, LegacyAnalysis)
        assert stored.overall_score == 65

    def test_garbage(self):
        with pytest.raises(SchemaViolation):
            load_stored({"hello": "world"})

    def test_validate_record(self, analysis_payload):
        record = self._record(analysis_payload)
        assert validate_record(record) == []
        record["status"] = "done"
        assert validate_record(record) != []


class TestJsonSchema:
    """The schema embedded in the prompt uses wire names."""

    def test_aliases(self):
        schema = body_json_schema()
        assert "problemAnalysis" in schema["properties"]
        assert "markdownReport" in schema["required"]
        assert "timeToGTM" in orjson.dumps(schema).decode()
