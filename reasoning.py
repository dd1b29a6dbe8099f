"""
Reasoning model client.

Speaks the OpenAI-style chat-completions protocol used by DeepSeek. Every
failure (missing key, network error, timeout, non-2xx, malformed envelope) is
raised as ReasoningError; the analyzer turns that into a fallback analysis.
"""

import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx
import orjson
from pydantic import BaseModel, Field, ValidationError

from config import DEFAULT_REASONING_MODEL, DEFAULT_REASONING_TIMEOUT, DEFAULT_REASONING_URL
from errors import ReasoningError
from schemas import TokenUsage

logger = logging.getLogger(__name__)

# USD per million tokens (deepseek-reasoner list prices, cache-miss input)
PRICE_PER_M_INPUT = 0.55
PRICE_PER_M_OUTPUT = 2.19


# ===== Response envelope =====


class _Message(BaseModel):
    role: str = "assistant"
    content: str
    reasoning_content: str | None = None


class _Choice(BaseModel):
    index: int = 0
    message: _Message
    finish_reason: str | None = None


class _Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class _Envelope(BaseModel):
    id: str | None = None
    model: str | None = None
    choices: list[_Choice] = Field(min_length=1)
    usage: _Usage | None = None


@dataclass
class ReasoningResponse:
    text: str
    latency_ms: int
    model: str
    reasoning: str | None = None
    token_usage: TokenUsage | None = None


class Reasoner(Protocol):
    """Anything the analyzer can ask for a completion."""

    model: str

    async def call(self, system_prompt: str, user_prompt: str) -> ReasoningResponse: ...


def estimate_cost(prompt_tokens: int, completion_tokens: int) -> float:
    cost = prompt_tokens / 1_000_000 * PRICE_PER_M_INPUT + completion_tokens / 1_000_000 * PRICE_PER_M_OUTPUT
    return round(cost, 6)


class ReasoningClient:
    """Chat-completions client over a caller-owned httpx.AsyncClient."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None,
        url: str = DEFAULT_REASONING_URL,
        model: str = DEFAULT_REASONING_MODEL,
        timeout: float = DEFAULT_REASONING_TIMEOUT,
    ):
        self._http = http
        self._api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout

    async def call(self, system_prompt: str, user_prompt: str) -> ReasoningResponse:
        if not self._api_key:
            raise ReasoningError("DEEPSEEK_API_KEY is not set")

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

        t0 = time.monotonic()
        try:
            resp = await self._http.post(
                self.url,
                content=orjson.dumps(body),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ReasoningError(f"Reasoning call timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise ReasoningError(f"Reasoning call failed: {e}") from e
        latency_ms = int((time.monotonic() - t0) * 1000)

        if resp.status_code < 200 or resp.status_code >= 300:
            detail = resp.text[:300] if resp.text else ""
            raise ReasoningError(
                f"Reasoning API error: {resp.status_code} {resp.reason_phrase} - {detail}",
                status_code=resp.status_code,
            )

        try:
            envelope = _Envelope.model_validate(orjson.loads(resp.content))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise ReasoningError("Invalid response format from reasoning API") from e

        message = envelope.choices[0].message
        usage = None
        if envelope.usage is not None:
            u = envelope.usage
            usage = TokenUsage(
                prompt_tokens=u.prompt_tokens,
                completion_tokens=u.completion_tokens,
                total_tokens=u.total_tokens or u.prompt_tokens + u.completion_tokens,
                estimated_cost_usd=estimate_cost(u.prompt_tokens, u.completion_tokens),
            )

        logger.info(
            f"Reasoning call ok: {latency_ms}ms, "
            f"{usage.total_tokens if usage else '?'} tokens, model={envelope.model or self.model}"
        )
        return ReasoningResponse(
            text=message.content,
            latency_ms=latency_ms,
            model=envelope.model or self.model,
            reasoning=message.reasoning_content,
            token_usage=usage,
        )
