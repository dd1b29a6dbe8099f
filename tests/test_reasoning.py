"""Reasoning client tests over httpx.MockTransport."""

import asyncio

import httpx
import orjson
import pytest

from errors import AcquisitionError, ReasoningError
from reasoning import ReasoningClient, estimate_cost

ENVELOPE = {
    "id": "cmpl-1",
    "model": "deepseek-reasoner",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": '{"ok": true}', "reasoning_content": "thinking..."},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 1000, "completion_tokens": 2000, "total_tokens": 3000},
}


def _call(handler, api_key: str | None = "sk-test"):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await ReasoningClient(http, api_key).call("system", "user")

    return asyncio.run(go())


class TestReasoningClient:
    """Envelope handling and failure mapping."""

    def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = orjson.loads(request.content)
            return httpx.Response(200, json=ENVELOPE)

        resp = _call(handler)

        assert resp.text == '{"ok": true}'
        assert resp.reasoning == "thinking..."
        assert resp.model == "deepseek-reasoner"
        assert resp.token_usage.total_tokens == 3000
        assert resp.token_usage.estimated_cost_usd == estimate_cost(1000, 2000)
        assert resp.latency_ms >= 0
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "system"}
        assert seen["body"]["model"] == "deepseek-reasoner"

    def test_missing_key(self):
        with pytest.raises(ReasoningError):
            _call(lambda request: httpx.Response(200, json=ENVELOPE), api_key=None)

    def test_non_2xx(self):
        with pytest.raises(ReasoningError) as exc:
            _call(lambda request: httpx.Response(429, text="rate limited"))
        assert exc.value.status_code == 429
        assert "rate limited" in str(exc.value)

    def test_empty_choices(self):
        with pytest.raises(ReasoningError):
            _call(lambda request: httpx.Response(200, json={"choices": []}))

    def test_not_json(self):
        with pytest.raises(ReasoningError):
            _call(lambda request: httpx.Response(200, text="<html>gateway</html>"))

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ReasoningError, match="timed out"):
            _call(handler)

    def test_is_an_acquisition_failure(self):
        with pytest.raises(AcquisitionError):
            _call(lambda request: httpx.Response(500))

    def test_usage_optional(self):
        envelope = {"choices": [{"message": {"content": "x"}}]}
        resp = _call(lambda request: httpx.Response(200, json=envelope))
        assert resp.token_usage is None
        assert resp.model == "deepseek-reasoner"


class TestEstimateCost:
    """Per-million-token pricing."""

    def test_cost(self):
        assert estimate_cost(1_000_000, 0) == 0.55
        assert estimate_cost(0, 1_000_000) == 2.19
        assert estimate_cost(0, 0) == 0
