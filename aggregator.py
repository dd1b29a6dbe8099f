"""
Multi-source aggregator.

Fans out to every enabled source adapter concurrently with asyncio.gather,
waits for all of them, concatenates whatever came back and shuffles the result
so the gallery never shows origin-ordered clusters. One failing origin
contributes zero entries and never aborts the call.
"""

import asyncio
import logging
import random
import time
from collections.abc import Mapping
from typing import TypeVar

import httpx

from config import DEFAULT_REQUEST_TIMEOUT
from models import KNOWN_SOURCES, MultiSourceConfig, UnifiedPreview
from sources import ADAPTERS, SourceAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_rng = random.SystemRandom()


def shuffle(items: list[T], rng: random.Random | None = None) -> list[T]:
    """Fisher-Yates shuffle into a new list; every permutation equally likely."""
    rng = rng or _rng
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out


async def scrape_multi_source(
    config: MultiSourceConfig | None = None,
    client: httpx.AsyncClient | None = None,
    adapters: Mapping[str, SourceAdapter] | None = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> list[UnifiedPreview]:
    """Scrape all enabled origins and return their previews in random order."""
    config = config or MultiSourceConfig()
    adapters = adapters if adapters is not None else ADAPTERS
    enabled = [s for s in config.enabled_sources() if s in adapters]
    if not enabled:
        return []

    owns_client = client is None
    client = client or httpx.AsyncClient()
    t0 = time.monotonic()
    try:
        results = await asyncio.gather(
            *[adapters[s].scrape(client, config.limit_per_source, timeout) for s in enabled],
            return_exceptions=True,
        )
    finally:
        if owns_client:
            await client.aclose()

    previews: list[UnifiedPreview] = []
    seen: set[tuple[str, str]] = set()
    for source, result in zip(enabled, results):
        if isinstance(result, BaseException):
            logger.error(f"{source} adapter raised: {result}", exc_info=result)
            continue
        for preview in result:
            if preview.source not in KNOWN_SOURCES:
                logger.warning(f"Dropping preview from unknown origin {preview.source!r}")
                continue
            key = (preview.source, preview.source_url)
            if key in seen:
                continue
            seen.add(key)
            previews.append(preview)

    logger.info(
        f"Collected {len(previews)} product(s) from {len(enabled)} source(s) "
        f"in {time.monotonic() - t0:.1f}s"
    )
    return shuffle(previews)
