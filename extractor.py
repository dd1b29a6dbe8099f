"""
Field extractor: declarative rules -> ProductRecord.

A rule set maps each product field to an ordered list of extraction strategies.
Strategies are applied in order and the first non-empty result wins. Topics are
accumulated from every matching element, deduplicated by exact text. A document
whose name cannot be resolved by any strategy yields None.

Nothing raised while walking the markup escapes extract(): a failing strategy
counts as an empty result for that field.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from models import ProductRecord
from parser import absolute_url, attr, collapse, image_src, node_text, select_all, select_first

logger = logging.getLogger(__name__)


# =====================================================================
# Strategy variants
# =====================================================================


@dataclass(frozen=True)
class HeadingText:
    """Text of the first <hN>."""

    level: int = 1


@dataclass(frozen=True)
class SelectorText:
    """Text of the first element matching a CSS selector."""

    selector: str


@dataclass(frozen=True)
class SelectorAttr:
    """Attribute of the first element matching a CSS selector (resolved as a URL for href/src)."""

    selector: str
    attribute: str


@dataclass(frozen=True)
class MetaAttribute:
    """content= of <meta property=key> or <meta name=key>."""

    key: str


@dataclass(frozen=True)
class LongParagraph:
    """First <p> whose text is longer than min_length characters."""

    min_length: int = 100


@dataclass(frozen=True)
class LinkMatching:
    """href of the first link whose text matches a pattern (case-insensitive)."""

    pattern: str


@dataclass(frozen=True)
class TextPattern:
    """A regex group searched in the document's visible text."""

    pattern: str
    group: int = 1


@dataclass(frozen=True)
class DocumentTitle:
    """<title> text, with a trailing " | Site" / " - Site" suffix removed."""

    separators: tuple[str, ...] = (" | ", " - ", " – ")


Strategy = HeadingText | SelectorText | SelectorAttr | MetaAttribute | LongParagraph | LinkMatching | TextPattern | DocumentTitle


@dataclass(frozen=True)
class ScreenshotRule:
    """Images whose source mentions one of the keywords."""

    selector: str = "img"
    keywords: tuple[str, ...] = ("screenshot", "image", "startup")


@dataclass(frozen=True)
class ExtractionRules:
    """Per-origin rule table. base_url resolves relative links."""

    base_url: str
    name: list[Strategy] = field(default_factory=list)
    tagline: list[Strategy] = field(default_factory=list)
    description: list[Strategy] = field(default_factory=list)
    canonical_url: list[Strategy] = field(default_factory=list)
    featured_date: list[Strategy] = field(default_factory=list)
    topic_selectors: list[str] = field(default_factory=list)
    screenshots: ScreenshotRule | None = None
    max_tagline_length: int | None = None


SCALAR_FIELDS = ("name", "tagline", "description", "canonical_url", "featured_date")


# =====================================================================
# Strategy application
# =====================================================================


def _heading_text(s: HeadingText, node: Tag, rules: ExtractionRules) -> str:
    return node_text(select_first(node, f"h{s.level}"))


def _selector_text(s: SelectorText, node: Tag, rules: ExtractionRules) -> str:
    return node_text(select_first(node, s.selector))


def _selector_attr(s: SelectorAttr, node: Tag, rules: ExtractionRules) -> str:
    value = attr(select_first(node, s.selector), s.attribute)
    if s.attribute in ("href", "src"):
        return absolute_url(value, rules.base_url)
    return value


def _meta_attribute(s: MetaAttribute, node: Tag, rules: ExtractionRules) -> str:
    meta = node.find("meta", attrs={"property": s.key}) or node.find("meta", attrs={"name": s.key})
    return collapse(attr(meta, "content"))


def _long_paragraph(s: LongParagraph, node: Tag, rules: ExtractionRules) -> str:
    for p in select_all(node, "p"):
        text = node_text(p)
        if len(text) > s.min_length:
            return text
    return ""


def _link_matching(s: LinkMatching, node: Tag, rules: ExtractionRules) -> str:
    pattern = re.compile(s.pattern, re.IGNORECASE)
    for a in select_all(node, "a[href]"):
        if pattern.search(node_text(a)):
            return absolute_url(attr(a, "href"), rules.base_url)
    return ""


def _text_pattern(s: TextPattern, node: Tag, rules: ExtractionRules) -> str:
    match = re.search(s.pattern, node_text(node), re.IGNORECASE)
    return collapse(match.group(s.group)) if match else ""


def _document_title(s: DocumentTitle, node: Tag, rules: ExtractionRules) -> str:
    title = node_text(select_first(node, "title"))
    for sep in s.separators:
        if sep in title:
            title = title.split(sep, 1)[0]
    return title.strip()


_APPLY: dict[type, Callable[..., str]] = {
    HeadingText: _heading_text,
    SelectorText: _selector_text,
    SelectorAttr: _selector_attr,
    MetaAttribute: _meta_attribute,
    LongParagraph: _long_paragraph,
    LinkMatching: _link_matching,
    TextPattern: _text_pattern,
    DocumentTitle: _document_title,
}


def apply_strategy(strategy: Strategy, node: Tag, rules: ExtractionRules) -> str:
    """Run one strategy; any failure reads as an empty result."""
    try:
        return _APPLY[type(strategy)](strategy, node, rules) or ""
    except Exception as e:
        logger.debug(f"Strategy {strategy!r} failed: {e}")
        return ""


def first_non_empty(strategies: list[Strategy], node: Tag, rules: ExtractionRules) -> tuple[str, Strategy | None]:
    """Apply strategies in order; return the first non-empty value and the strategy that produced it."""
    for strategy in strategies:
        value = apply_strategy(strategy, node, rules)
        if value:
            return value, strategy
    return "", None


def collect_topics(node: Tag, rules: ExtractionRules) -> list[str]:
    topics: list[str] = []
    for selector in rules.topic_selectors:
        for el in select_all(node, selector):
            text = node_text(el)
            if text and text not in topics:
                topics.append(text)
    return topics


def collect_screenshots(node: Tag, rules: ExtractionRules) -> list[str]:
    rule = rules.screenshots
    if rule is None:
        return []
    urls: list[str] = []
    for img in select_all(node, rule.selector):
        src = image_src(img)
        if src and any(k in src for k in rule.keywords):
            urls.append(absolute_url(src, rules.base_url))
    return list(dict.fromkeys(urls))


# =====================================================================
# Entry points
# =====================================================================


def extract_fields(node: Tag, rules: ExtractionRules, trace: dict[str, str | None] | None = None) -> dict:
    """Resolve every field of the rule table against a node.

    When ``trace`` is given it receives, per scalar field, the name of the
    strategy that resolved it (or None).
    """
    fields: dict = {}
    for name in SCALAR_FIELDS:
        value, used = first_non_empty(getattr(rules, name), node, rules)
        fields[name] = value
        if trace is not None:
            trace[name] = type(used).__name__ if used else None

    if rules.max_tagline_length and fields["tagline"]:
        fields["tagline"] = fields["tagline"][: rules.max_tagline_length].strip()

    fields["topics"] = collect_topics(node, rules)
    fields["screenshot_urls"] = collect_screenshots(node, rules)
    return fields


def extract(document: BeautifulSoup | Tag | None, rules: ExtractionRules, source_url: str) -> ProductRecord | None:
    """Extract a ProductRecord, or None when no strategy resolves a name."""
    if document is None:
        return None

    try:
        fields = extract_fields(document, rules)
    except Exception as e:
        logger.warning(f"Extraction failed for {source_url}: {e}")
        return None

    if not fields["name"]:
        return None

    try:
        return ProductRecord(source_url=source_url, **fields)
    except ValidationError as e:
        logger.warning(f"Discarding record from {source_url}: {e.error_count()} invalid field(s)")
        return None
