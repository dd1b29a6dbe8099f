"""
Command-line entry point.

    python main.py weekly  [--sources betalist hackernews ...] [--limit 5] [--output weekly.json]
    python main.py analyze <url> [--legacy] [--output analysis.json]
    python main.py history [--verdict BUILD] [--min-score 70] [--max-score 100] [--source betalist]

weekly scrapes the enabled listing sites concurrently; analyze runs one
product through the cache-checked analysis pipeline; history lists stored
analyses (meaningful with the Supabase store, the in-memory store starts empty).
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

import httpx
import orjson

from aggregator import scrape_multi_source
from analyzer import build_analyzer, to_legacy
from cache import create_store
from config import Settings, clamp_limit, load_settings
from errors import InputValidationError, PersistenceError
from models import KNOWN_SOURCES, MultiSourceConfig, UnifiedPreview
from schemas import AnalysisRecord

logger = logging.getLogger(__name__)


def _write_json(path: Path, payload) -> None:
    path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
    logger.info(f"Wrote {path}")


# ── Reports ─────────────────────────────────────────────────────────


def print_gallery(previews: list[UnifiedPreview], wall_clock: float) -> None:
    print(f"\n{'='*70}")
    print(f"WEEKLY GALLERY: {len(previews)} products")
    print(f"{'='*70}")

    by_source: dict[str, int] = {}
    for p in previews:
        by_source[p.source] = by_source.get(p.source, 0) + 1
    for source in KNOWN_SOURCES:
        if source in by_source:
            print(f"  {source:<15} {by_source[source]}")
    print(f"  Wall clock: {wall_clock:.2f}s")

    for p in previews:
        print(f"\n  {p.name}  [{p.source}]")
        if p.tagline:
            print(f"    {p.tagline}")
        print(f"    {p.source_url}")
        meta = p.metadata.model_dump(exclude_none=True)
        if meta:
            print(f"    {', '.join(f'{k}={v}' for k, v in meta.items())}")
    print(f"\n{'='*70}")


def print_analysis(record: AnalysisRecord) -> None:
    s = record.scores
    r = record.recommendation
    print(f"\n{'='*70}")
    print(f"ANALYSIS: {record.product.name}")
    print(f"{'='*70}")
    print(f"  Id:      {record.id}")
    print(f"  Slug:    {record.product_slug} ({record.source})")
    print(f"  Status:  {record.status}")
    if record.error_message:
        print(f"  Error:   {record.error_message}")
    print(f"  Model:   {record.metadata.model_used} in {record.metadata.processing_time_ms}ms")
    if record.metadata.token_usage:
        u = record.metadata.token_usage
        print(f"  Tokens:  {u.total_tokens} (~${u.estimated_cost_usd:.4f})")

    print(f"\n── Scores ──")
    print(f"  {'Feasibility':<15} {s.feasibility:>4}")
    print(f"  {'Desirability':<15} {s.desirability:>4}")
    print(f"  {'Viability':<15} {s.viability:>4}")
    print(f"  {'-'*20}")
    print(f"  {'Overall':<15} {s.overall:>4}")

    print(f"\n── Recommendation ──")
    print(f"  {r.verdict} (confidence {r.confidence})")
    print(f"  {r.rationale}")
    for step in r.next_steps:
        print(f"    - {step}")

    print(f"\n── Summary ──")
    print(f"  {record.summary}")
    print(f"\n{'='*70}")


def print_history(records: list[AnalysisRecord]) -> None:
    print(f"\n  {'Created':<20} {'Slug':<28} {'Verdict':<8} {'Overall':>7}")
    print(f"  {'-'*66}")
    for rec in records:
        print(
            f"  {rec.created_at:%Y-%m-%d %H:%M}     {rec.product_slug[:27]:<28} "
            f"{rec.recommendation.verdict:<8} {rec.scores.overall:>7}"
        )
    print(f"\n  {len(records)} analysis(es)")


# ── Commands ────────────────────────────────────────────────────────


async def run_weekly(settings: Settings, args: argparse.Namespace) -> int:
    selected = set(args.sources or [])
    config = MultiSourceConfig(
        **({s: s in selected for s in KNOWN_SOURCES} if selected else {}),
        limit_per_source=clamp_limit(args.limit or settings.limit_per_source),
    )
    t0 = time.monotonic()
    async with httpx.AsyncClient() as http:
        previews = await scrape_multi_source(config, http, timeout=settings.request_timeout)
    print_gallery(previews, time.monotonic() - t0)
    if args.output:
        _write_json(Path(args.output), [p.model_dump(mode="json", by_alias=True) for p in previews])
    return 0


async def run_analyze(settings: Settings, args: argparse.Namespace) -> int:
    store = create_store(settings)
    exit_code = 0
    async with httpx.AsyncClient() as http:
        analyzer = build_analyzer(settings, http, store)
        try:
            record = await analyzer.analyze_product(args.url)
        except InputValidationError as e:
            logger.error(str(e))
            return 2
        except PersistenceError as e:
            logger.error(f"{e}")
            if e.record is None:
                return 1
            record = e.record
            exit_code = 1
        finally:
            await store.close()

    print_analysis(record)
    if args.output:
        payload = to_legacy(record) if args.legacy else record
        _write_json(Path(args.output), payload.model_dump(mode="json", by_alias=True))
    return exit_code


async def run_history(settings: Settings, args: argparse.Namespace) -> int:
    store = create_store(settings)
    try:
        records = await store.list_analyses(
            source=args.source,
            verdict=args.verdict,
            min_score=args.min_score,
            max_score=args.max_score,
            limit=args.limit,
            offset=args.offset,
        )
    except PersistenceError as e:
        logger.error(str(e))
        return 1
    finally:
        await store.close()
    print_history(records)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover early-stage products and assess their viability.")
    sub = parser.add_subparsers(dest="command", required=True)

    weekly = sub.add_parser("weekly", help="Scrape this week's products from the listing sites")
    weekly.add_argument("--sources", nargs="+", choices=KNOWN_SOURCES, help="Origins to query (default: all but alternativeto)")
    weekly.add_argument("--limit", type=int, help="Max products per origin")
    weekly.add_argument("--output", help="Write previews as JSON to this file")

    analyze = sub.add_parser("analyze", help="Analyze one product by its listing URL")
    analyze.add_argument("url")
    analyze.add_argument("--legacy", action="store_true", help="Write the three-score view instead of the full record")
    analyze.add_argument("--output", help="Write the analysis as JSON to this file")

    history = sub.add_parser("history", help="List stored analyses")
    history.add_argument("--source", choices=KNOWN_SOURCES)
    history.add_argument("--verdict", choices=["BUILD", "PIVOT", "PARK"])
    history.add_argument("--min-score", type=int)
    history.add_argument("--max-score", type=int)
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--offset", type=int, default=0)
    return parser


COMMANDS = {"weekly": run_weekly, "analyze": run_analyze, "history": run_history}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    return asyncio.run(COMMANDS[args.command](settings, args))


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(main())
