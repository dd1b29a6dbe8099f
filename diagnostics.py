"""
Diagnostic: run the per-origin extraction rules over saved HTML pages (no network, no model).
Reports which fields each rule set resolved, and by which strategy, for every file.

A file whose name starts with an origin tag (e.g. "betalist-flowbase.html") is
checked against that origin only; any other file is checked against all of them.
"""

import sys
from pathlib import Path

from extractor import SCALAR_FIELDS, extract_fields
from parser import parse_html
from sources import ADAPTERS, SourceAdapter

DATA_DIR = Path(__file__).parent / "data"
LIST_FIELDS = ["topics", "screenshot_urls"]
ALL_FIELDS = list(SCALAR_FIELDS) + LIST_FIELDS


def adapters_for(filepath: Path) -> list[SourceAdapter]:
    for source, adapter in ADAPTERS.items():
        if filepath.name.lower().startswith(source):
            return [adapter]
    return list(ADAPTERS.values())


def _preview(value):
    if isinstance(value, list):
        return value if len(value) <= 5 else f"{len(value)} items: {value[:3]} + {len(value) - 3} more"
    return value if len(value) <= 150 else value[:150] + "..."


def diagnose_html(html: str, adapter: SourceAdapter, label: str = "") -> dict:
    """Resolve one origin's detail rules against a page and record what was found."""
    document = parse_html(html)
    trace: dict[str, str | None] = {}
    fields = extract_fields(document, adapter.detail_rules, trace) if document is not None else {}

    resolved = {name: _preview(fields[name]) if fields.get(name) else None for name in ALL_FIELDS}
    return {
        "file": label,
        "source": adapter.source,
        "fields": resolved,
        "strategies": trace,
        "filled": [name for name in ALL_FIELDS if resolved[name] is not None],
        "missing": [name for name in ALL_FIELDS if resolved[name] is None],
        "listing_entries": len(adapter.listing_from_html(html, 50)),
    }


def diagnose_file(filepath: Path) -> list[dict]:
    html = filepath.read_text(encoding="utf-8")
    return [diagnose_html(html, adapter, filepath.name) for adapter in adapters_for(filepath)]


def _banner(title: str, width: int = 70) -> None:
    print("=" * width)
    print(f"  {title}")
    print("=" * width)


def print_report(report: dict) -> None:
    _banner(f"{report['file']}  [{report['source']}]")
    print(f"  Listing entries found: {report['listing_entries']}")
    print(f"\n  Filled ({len(report['filled'])}/{len(ALL_FIELDS)}):")
    for field in report["filled"]:
        via = report["strategies"].get(field)
        print(f"    {field}: {report['fields'][field]}" + (f"  (via {via})" if via else ""))
    missing = report["missing"]
    print(f"\n  Missing: {', '.join(missing)}" if missing else "\n  Every field resolved")
    print()


def print_coverage(reports: list[dict]) -> None:
    """One row per field, one column per (file, origin) pair."""
    columns = [f"{r['file'][:8]}:{r['source'][:4]}" for r in reports]
    _banner("Field coverage")
    print("field".ljust(20) + "".join(c.ljust(14) for c in columns))
    print("-" * (20 + 14 * len(columns)))
    for field in ALL_FIELDS:
        cells = ["ok" if field in r["filled"] else "--" for r in reports]
        print(field.ljust(20) + "".join(c.ljust(14) for c in cells))


def main(data_dir: Path = DATA_DIR) -> list[dict]:
    html_files = sorted(data_dir.glob("*.html"))
    print(f"Checking extraction rules against {len(html_files)} saved page(s) in {data_dir}\n")

    reports = [report for path in html_files for report in diagnose_file(path)]
    for report in reports:
        print_report(report)
    if reports:
        print_coverage(reports)
    return reports


if __name__ == "__main__":
    main(Path(sys.argv[1]) if len(sys.argv) > 1 else DATA_DIR)
