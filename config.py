"""Settings loaded from the environment (and a .env file at the project root)."""

import math
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Reasoning model ---
DEFAULT_REASONING_URL = "https://api.deepseek.com/chat/completions"
DEFAULT_REASONING_MODEL = "deepseek-reasoner"
DEFAULT_REASONING_TIMEOUT = 120.0  # seconds; reasoning models are slow

# --- Origin fetches ---
DEFAULT_REQUEST_TIMEOUT = 15.0  # seconds
DEFAULT_LIMIT_PER_SOURCE = 5
MAX_LIMIT_PER_SOURCE = 50

# --- Cache ---
DEFAULT_CACHE_TTL_DAYS = 7


@dataclass(frozen=True)
class Settings:
    deepseek_api_key: str | None = None
    reasoning_url: str = DEFAULT_REASONING_URL
    reasoning_model: str = DEFAULT_REASONING_MODEL
    reasoning_timeout: float = DEFAULT_REASONING_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    # None = cached analyses never go stale
    cache_ttl: timedelta | None = timedelta(days=DEFAULT_CACHE_TTL_DAYS)
    supabase_url: str | None = None
    supabase_key: str | None = None
    limit_per_source: int = DEFAULT_LIMIT_PER_SOURCE

    @property
    def use_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def parse_ttl_days(raw: str | None) -> timedelta | None:
    """Parse CACHE_TTL_DAYS. "inf"/"none" disable expiry; "0" disables reuse."""
    if raw is None or not raw.strip():
        return timedelta(days=DEFAULT_CACHE_TTL_DAYS)
    value = raw.strip().lower()
    if value in ("inf", "infinity", "none", "never"):
        return None
    days = float(value)
    if math.isinf(days):
        return None
    return timedelta(days=max(days, 0.0))


def clamp_limit(value: int) -> int:
    """Bound a per-origin entry limit to 1..MAX_LIMIT_PER_SOURCE."""
    return min(max(value, 1), MAX_LIMIT_PER_SOURCE)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        deepseek_api_key=os.environ.get("DEEPSEEK_API_KEY") or None,
        reasoning_url=os.environ.get("DEEPSEEK_API_URL", DEFAULT_REASONING_URL),
        reasoning_model=os.environ.get("DEEPSEEK_MODEL", DEFAULT_REASONING_MODEL),
        reasoning_timeout=_float_env("REASONING_TIMEOUT", DEFAULT_REASONING_TIMEOUT),
        request_timeout=_float_env("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        cache_ttl=parse_ttl_days(os.environ.get("CACHE_TTL_DAYS")),
        supabase_url=os.environ.get("SUPABASE_URL") or None,
        supabase_key=os.environ.get("SUPABASE_SECRET_KEY") or None,
        limit_per_source=clamp_limit(int(os.environ.get("LIMIT_PER_SOURCE", DEFAULT_LIMIT_PER_SOURCE))),
    )
