"""
Cache store for analyses, keyed by product slug.

Two tables' worth of state: one identity row per slug (name, tagline, source,
source URL) and an append-only analysis history per slug. get_by_slug() serves
the most recently created *completed* record, so a fallback never shadows a
real analysis. The store holds no freshness policy of its own: is_fresh() is a
pure function and the analyzer decides when to reuse.

Backends:
  - MemoryCacheStore: process-local, used for tests and when Supabase is not configured
  - SupabaseCacheStore: products / product_analyses tables via supabase-py
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

import httpx
from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client, create_client

from config import Settings
from errors import PersistenceError, SchemaViolation
from models import utcnow
from schemas import AnalysisRecord, LegacyAnalysis, Verdict, load_stored

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20


def is_fresh(created_at: datetime, ttl: timedelta | None, now: datetime | None = None) -> bool:
    """True iff now - created_at < ttl. ttl=None never expires; ttl<=0 is never fresh."""
    if ttl is None:
        return True
    if ttl <= timedelta(0):
        return False
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    now = now or utcnow()
    return now - created_at < ttl


class ProductIdentity(BaseModel):
    """Stable identity row for a slug; analyses attach to it."""

    product_slug: str
    source: str
    source_url: str
    name: str
    tagline: str = ""
    updated_at: datetime


def _identity_for(record: AnalysisRecord) -> ProductIdentity:
    return ProductIdentity(
        product_slug=record.product_slug,
        source=record.source,
        source_url=record.source_url,
        name=record.product.name,
        tagline=record.product.tagline,
        updated_at=utcnow(),
    )


def _refreshes_identity(record: AnalysisRecord) -> bool:
    """Only completed analyses carry a scraped product; fallbacks may hold a placeholder."""
    return record.status == "completed"


class CacheStore(ABC):
    @abstractmethod
    async def save(self, record: AnalysisRecord) -> None:
        """Append the record to its slug's history.

        A completed record upserts the identity row; a failed one only creates
        it when the slug has none yet.
        """

    @abstractmethod
    async def get_by_slug(self, slug: str) -> AnalysisRecord | None:
        """Most recently created completed record for the slug."""

    @abstractmethod
    async def get_by_id(self, analysis_id: str) -> AnalysisRecord | None: ...

    @abstractmethod
    async def get_product(self, slug: str) -> ProductIdentity | None: ...

    @abstractmethod
    async def list_analyses(
        self,
        source: str | None = None,
        verdict: Verdict | None = None,
        min_score: int | None = None,
        max_score: int | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[AnalysisRecord]:
        """Completed records, newest first, filtered by verdict / overall score range / source."""

    @abstractmethod
    async def invalidate(self, slug: str) -> None:
        """Drop the analysis history of a slug. The identity row stays."""

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class MemoryCacheStore(CacheStore):
    def __init__(self) -> None:
        self._products: dict[str, ProductIdentity] = {}
        self._history: dict[str, list[AnalysisRecord]] = {}

    async def save(self, record: AnalysisRecord) -> None:
        if _refreshes_identity(record):
            self._products[record.product_slug] = _identity_for(record)
        else:
            self._products.setdefault(record.product_slug, _identity_for(record))
        history = self._history.setdefault(record.product_slug, [])
        stored = record.model_copy(deep=True)
        for i, existing in enumerate(history):
            if existing.id == record.id:
                history[i] = stored
                return
        history.append(stored)

    async def get_by_slug(self, slug: str) -> AnalysisRecord | None:
        latest: AnalysisRecord | None = None
        for record in self._history.get(slug, []):
            if record.status != "completed":
                continue
            # >= so that the later-saved record wins a timestamp tie
            if latest is None or record.created_at >= latest.created_at:
                latest = record
        return latest.model_copy(deep=True) if latest else None

    async def get_by_id(self, analysis_id: str) -> AnalysisRecord | None:
        for history in self._history.values():
            for record in history:
                if record.id == analysis_id:
                    return record.model_copy(deep=True)
        return None

    async def get_product(self, slug: str) -> ProductIdentity | None:
        identity = self._products.get(slug)
        return identity.model_copy(deep=True) if identity else None

    async def list_analyses(
        self,
        source: str | None = None,
        verdict: Verdict | None = None,
        min_score: int | None = None,
        max_score: int | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[AnalysisRecord]:
        matches = [
            r
            for history in self._history.values()
            for r in history
            if r.status == "completed"
            and (verdict is None or r.recommendation.verdict == verdict)
            and (min_score is None or r.scores.overall >= min_score)
            and (max_score is None or r.scores.overall <= max_score)
            and (source is None or r.source == source)
        ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in matches[offset : offset + limit]]

    async def invalidate(self, slug: str) -> None:
        self._history.pop(slug, None)


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------


class SupabaseCacheStore(CacheStore):
    """Postgres via supabase-py. The client is created by the caller and passed in.

    supabase-py's client is synchronous, so each query runs in a worker thread.
    """

    def __init__(self, client: Client, schema: str = "public"):
        self._client = client
        self._schema = schema

    def _table(self, name: str):
        return self._client.schema(self._schema).table(name)

    async def _run(self, action: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except (APIError, httpx.HTTPError) as e:
            raise PersistenceError(f"Supabase {action} failed: {e}") from e

    @staticmethod
    def _decode(row: dict) -> AnalysisRecord | None:
        try:
            stored = load_stored(row.get("analysis_data"))
        except SchemaViolation as e:
            logger.warning(f"Skipping unreadable stored analysis: {e}")
            return None
        if isinstance(stored, LegacyAnalysis):
            logger.info("Skipping legacy-format stored analysis")
            return None
        return stored

    def _save_sync(self, record: AnalysisRecord) -> None:
        identity = _identity_for(record).model_dump(mode="json")
        refresh = _refreshes_identity(record)
        product_resp = (
            self._table("products")
            .upsert(identity, on_conflict="product_slug", ignore_duplicates=not refresh)
            .execute()
        )
        rows = product_resp.data or self._product_id_sync(record.product_slug)
        product_id = rows[0]["id"] if rows else None

        self._table("product_analyses").upsert(
            {
                "id": record.id,
                "product_id": product_id,
                "product_slug": record.product_slug,
                "analysis_data": record.model_dump(mode="json", by_alias=True),
                "score_overall": record.scores.overall,
                "score_feasibility": record.scores.feasibility,
                "score_desirability": record.scores.desirability,
                "score_viability": record.scores.viability,
                "verdict": record.recommendation.verdict,
                "schema_version": record.metadata.schema_version,
                "model_used": record.metadata.model_used,
                "status": record.status,
                "error_message": record.error_message,
                "processing_time_ms": record.metadata.processing_time_ms,
                "analyzed_at": record.metadata.analyzed_at.isoformat(),
                "created_at": record.created_at.isoformat(),
            },
            on_conflict="id",
        ).execute()

    async def save(self, record: AnalysisRecord) -> None:
        await self._run("save", self._save_sync, record)
        logger.info(f"Saved analysis {record.id} for {record.product_slug} ({record.status})")

    def _latest_sync(self, slug: str) -> list[dict]:
        resp = (
            self._table("product_analyses")
            .select("analysis_data")
            .eq("product_slug", slug)
            .eq("status", "completed")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return resp.data or []

    async def get_by_slug(self, slug: str) -> AnalysisRecord | None:
        rows = await self._run("read", self._latest_sync, slug)
        return self._decode(rows[0]) if rows else None

    def _by_id_sync(self, analysis_id: str) -> list[dict]:
        resp = self._table("product_analyses").select("analysis_data").eq("id", analysis_id).execute()
        return resp.data or []

    async def get_by_id(self, analysis_id: str) -> AnalysisRecord | None:
        rows = await self._run("read", self._by_id_sync, analysis_id)
        return self._decode(rows[0]) if rows else None

    def _product_id_sync(self, slug: str) -> list[dict]:
        resp = self._table("products").select("id").eq("product_slug", slug).limit(1).execute()
        return resp.data or []

    def _product_sync(self, slug: str) -> list[dict]:
        resp = (
            self._table("products")
            .select("product_slug, source, source_url, name, tagline, updated_at")
            .eq("product_slug", slug)
            .execute()
        )
        return resp.data or []

    async def get_product(self, slug: str) -> ProductIdentity | None:
        rows = await self._run("read", self._product_sync, slug)
        return ProductIdentity.model_validate(rows[0]) if rows else None

    def _list_sync(self, source, verdict, min_score, max_score, limit, offset) -> list[dict]:
        query = self._table("product_analyses").select("analysis_data").eq("status", "completed")
        if verdict:
            query = query.eq("verdict", verdict)
        if min_score is not None:
            query = query.gte("score_overall", min_score)
        if max_score is not None:
            query = query.lte("score_overall", max_score)
        if source:
            query = query.eq("analysis_data->>source", source)
        resp = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        return resp.data or []

    async def list_analyses(
        self,
        source: str | None = None,
        verdict: Verdict | None = None,
        min_score: int | None = None,
        max_score: int | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[AnalysisRecord]:
        rows = await self._run("list", self._list_sync, source, verdict, min_score, max_score, limit, offset)
        return [r for r in (self._decode(row) for row in rows) if r is not None]

    def _invalidate_sync(self, slug: str) -> None:
        self._table("product_analyses").delete().eq("product_slug", slug).execute()

    async def invalidate(self, slug: str) -> None:
        await self._run("delete", self._invalidate_sync, slug)
        logger.info(f"Invalidated cached analyses for {slug}")


def create_store(settings: Settings) -> CacheStore:
    """Supabase when credentials are configured, in-memory otherwise."""
    if settings.use_supabase:
        client = create_client(settings.supabase_url, settings.supabase_key)
        logger.info("Using Supabase cache store")
        return SupabaseCacheStore(client)
    logger.info("Supabase not configured; using in-memory cache store")
    return MemoryCacheStore()
