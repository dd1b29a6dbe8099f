"""
FastAPI server over the two core entry points.

- GET  /api/weekly              → shuffled gallery previews from the enabled origins
- POST /api/analyze             → cache-checked analysis of one product URL
- GET  /api/analyses            → stored analyses, filterable by source / verdict / score range
- GET  /api/analyses/{id}       → one stored analysis

The HTTP client, cache store and analyzer are created in the app lifespan and
closed on shutdown; handlers reach them through app.state.services.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Literal

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from aggregator import scrape_multi_source
from analyzer import Analyzer, build_analyzer, to_legacy
from cache import CacheStore, create_store
from config import Settings, clamp_limit, load_settings
from errors import InputValidationError, PersistenceError
from models import MultiSourceConfig

logger = logging.getLogger("server")

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AnalyzeRequest(BaseModel):
    url: str
    legacy: bool = False


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@dataclass
class Services:
    settings: Settings
    http: httpx.AsyncClient
    store: CacheStore
    analyzer: Analyzer


ServicesFactory = Callable[[], AbstractAsyncContextManager[Services]]


@asynccontextmanager
async def live_services() -> AsyncIterator[Services]:
    """Process-lifetime services built from the environment."""
    settings = load_settings()
    store = create_store(settings)
    async with httpx.AsyncClient() as http:
        try:
            yield Services(settings, http, store, build_analyzer(settings, http, store))
        finally:
            await store.close()


def _services(request: Request) -> Services:
    return request.app.state.services


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(services_factory: ServicesFactory = live_services) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with services_factory() as services:
            app.state.services = services
            logger.info("Services ready")
            yield
        logger.info("Services closed")

    app = FastAPI(
        title="Product Viability API",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        max_age=86400,
    )

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/api/weekly")
    async def weekly(
        request: Request,
        betalist: bool = True,
        hackernews: bool = True,
        indiehackers: bool = True,
        alternativeto: bool = False,
        limit: int | None = Query(default=None, ge=1, le=50),
    ):
        """Gallery previews from all enabled origins, in random order."""
        services = _services(request)
        config = MultiSourceConfig(
            betalist=betalist,
            hackernews=hackernews,
            indiehackers=indiehackers,
            alternativeto=alternativeto,
            limit_per_source=clamp_limit(limit or services.settings.limit_per_source),
        )
        previews = await scrape_multi_source(config, services.http, timeout=services.settings.request_timeout)
        return {
            "products": [p.model_dump(mode="json", by_alias=True) for p in previews],
            "count": len(previews),
        }

    @app.post("/api/analyze")
    async def analyze(body: AnalyzeRequest, request: Request):
        """Analyze one product URL. Degraded analyses come back with status "failed"."""
        services = _services(request)
        try:
            record = await services.analyzer.analyze_product(body.url)
        except InputValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PersistenceError as e:
            logger.error(f"Analysis not cached: {e}")
            content: dict = {"error": str(e)}
            if e.record is not None:
                payload = to_legacy(e.record) if body.legacy else e.record
                content["analysis"] = payload.model_dump(mode="json", by_alias=True)
            return ORJSONResponse(status_code=503, content=content)

        payload = to_legacy(record) if body.legacy else record
        return payload.model_dump(mode="json", by_alias=True)

    @app.get("/api/analyses")
    async def list_analyses(
        request: Request,
        source: str | None = None,
        verdict: Literal["BUILD", "PIVOT", "PARK"] | None = None,
        min_score: int | None = Query(default=None, alias="minScore", ge=0, le=100),
        max_score: int | None = Query(default=None, alias="maxScore", ge=0, le=100),
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
    ):
        """Completed analyses, newest first."""
        services = _services(request)
        try:
            records = await services.store.list_analyses(
                source=source,
                verdict=verdict,
                min_score=min_score,
                max_score=max_score,
                limit=limit,
                offset=offset,
            )
        except PersistenceError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {
            "analyses": [r.model_dump(mode="json", by_alias=True) for r in records],
            "count": len(records),
        }

    @app.get("/api/analyses/{analysis_id}")
    async def get_analysis(analysis_id: str, request: Request):
        """One stored analysis by id."""
        try:
            record = await _services(request).store.get_by_id(analysis_id)
        except PersistenceError as e:
            raise HTTPException(status_code=503, detail=str(e))
        if record is None:
            raise HTTPException(status_code=404, detail="Analysis not found")
        return record.model_dump(mode="json", by_alias=True)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="127.0.0.1", port=8000)
