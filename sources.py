"""
Source adapters: one per listing site.

Each adapter knows its listing URL, how to turn a listing page into
UnifiedPreview entries, and the extraction rules for one of its product detail
pages. Adapters fail closed: a network error, a non-2xx response, an empty
document or a markup surprise yields [] (listing) or None (detail), logged at
WARNING, and is never raised to the caller.
"""

import logging
import re
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from config import DEFAULT_REQUEST_TIMEOUT
from extractor import (
    DocumentTitle,
    ExtractionRules,
    HeadingText,
    LinkMatching,
    LongParagraph,
    MetaAttribute,
    ScreenshotRule,
    SelectorAttr,
    SelectorText,
    TextPattern,
    extract,
)
from models import PreviewMetadata, ProductRecord, Source, UnifiedPreview, derive_slug
from parser import absolute_url, attr, node_text, parse_html, select_all, select_first

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

MAX_TAGLINE_LENGTH = 200


async def fetch_document(
    client: httpx.AsyncClient, url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT
) -> str | None:
    """GET a page with browser headers. None on any failure or an empty body."""
    try:
        resp = await client.get(url, headers=BROWSER_HEADERS, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.warning(f"Fetch failed for {url}: {type(e).__name__}: {e}")
        return None

    if not resp.is_success:
        logger.warning(f"Fetch failed for {url}: HTTP {resp.status_code}")
        return None

    text = resp.text
    if not text or not text.strip():
        logger.warning(f"Fetch returned an empty document for {url}")
        return None
    return text


def _short(text: str, limit: int = MAX_TAGLINE_LENGTH) -> str:
    return text[:limit].strip()


def _first_int(text: str) -> int | None:
    match = re.search(r"(\d[\d,]*)", text or "")
    return int(match.group(1).replace(",", "")) if match else None


# =====================================================================
# Base adapter
# =====================================================================


class SourceAdapter:
    """Listing + detail scraping for one origin."""

    source: Source
    listing_url: str
    base_url: str
    hosts: tuple[str, ...] = ()
    detail_rules: ExtractionRules

    def owns(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.hosts)

    # ----- listing -----

    def parse_listing(self, document: BeautifulSoup, limit: int) -> list[UnifiedPreview]:
        raise NotImplementedError

    def _preview(self, **fields) -> UnifiedPreview | None:
        try:
            return UnifiedPreview(source=self.source, **fields)
        except ValidationError as e:
            logger.debug(f"{self.source}: dropping listing entry ({e.error_count()} invalid field(s))")
            return None

    def listing_from_html(self, html: str | None, limit: int) -> list[UnifiedPreview]:
        document = parse_html(html or "")
        if document is None:
            return []
        try:
            return self.parse_listing(document, limit)[:limit]
        except Exception as e:
            logger.warning(f"{self.source}: listing parse failed: {e}")
            return []

    async def scrape(
        self, client: httpx.AsyncClient, limit: int, timeout: float = DEFAULT_REQUEST_TIMEOUT
    ) -> list[UnifiedPreview]:
        """Fetch and parse the listing page. Never raises."""
        if limit <= 0:
            return []
        html = await fetch_document(client, self.listing_url, timeout)
        previews = self.listing_from_html(html, limit)
        if html and not previews:
            logger.warning(f"{self.source}: no products found on {self.listing_url}")
        else:
            logger.info(f"{self.source}: {len(previews)} product(s)")
        return previews

    # ----- detail -----

    def finish_record(self, record: ProductRecord) -> ProductRecord:
        return record

    def detail_from_html(self, html: str | None, url: str) -> ProductRecord | None:
        record = extract(parse_html(html or ""), self.detail_rules, url)
        if record is None:
            return None
        try:
            return self.finish_record(record)
        except Exception as e:
            logger.warning(f"{self.source}: could not normalise record from {url}: {e}")
            return None

    async def scrape_detail(
        self, client: httpx.AsyncClient, url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT
    ) -> ProductRecord | None:
        """At most one ProductRecord for a detail page. Never raises."""
        html = await fetch_document(client, url, timeout)
        if html is None:
            return None
        record = self.detail_from_html(html, url)
        if record is None:
            logger.warning(f"{self.source}: no product name found on {url}")
        return record


# =====================================================================
# BetaList
# =====================================================================

BETALIST_RULES = ExtractionRules(
    base_url="https://betalist.com",
    name=[HeadingText(1), MetaAttribute("og:title")],
    tagline=[HeadingText(2)],
    description=[LongParagraph(100), MetaAttribute("og:description")],
    canonical_url=[LinkMatching(r"visit\s+site")],
    featured_date=[TextPattern(r"Featured on\s+([A-Za-z]+\s+\d{1,2},\s+\d{4})")],
    topic_selectors=['a[href*="/topics/"]'],
    screenshots=ScreenshotRule(),
)


class BetaListAdapter(SourceAdapter):
    source = "betalist"
    listing_url = "https://betalist.com"
    base_url = "https://betalist.com"
    hosts = ("betalist.com",)
    detail_rules = BETALIST_RULES

    def owns(self, url: str) -> bool:
        return super().owns(url) and "/startups/" in url

    def parse_listing(self, document: BeautifulSoup, limit: int) -> list[UnifiedPreview]:
        previews: list[UnifiedPreview] = []
        seen: set[str] = set()
        for link in select_all(document, 'a[href*="/startups/"]'):
            if len(previews) >= limit:
                break
            href = attr(link, "href")
            if href.rstrip("/").endswith("/visit"):
                continue
            name = node_text(link)
            if not name:  # logo/image links
                continue
            slug = derive_slug(href)
            if not slug or slug in seen:
                continue

            sibling = link.find_next_sibling()
            tagline = node_text(sibling) if isinstance(sibling, Tag) else ""
            url = absolute_url(href, self.base_url)
            preview = self._preview(name=name, tagline=_short(tagline), url=url, source_url=url)
            if preview:
                seen.add(slug)
                previews.append(preview)
        return previews


# =====================================================================
# Hacker News (Show HN)
# =====================================================================

HN_ITEM_URL = "https://news.ycombinator.com/item?id={}"
HN_DEFAULT_TAGLINE = "Check out this product on Hacker News"
_SHOW_HN_RE = re.compile(r"^Show HN:\s*", re.IGNORECASE)


def split_show_title(title: str) -> tuple[str, str]:
    """'Show HN: Foo – does bar' -> ('Foo', 'does bar').

    An en-dash always splits; a hyphen only past the 10th character, so
    hyphenated names survive. No split gives the default tagline.
    """
    name = _SHOW_HN_RE.sub("", title).strip()
    dash = name.find("–")
    hyphen = name.find("-")
    if dash > 0:
        cut = dash
    elif hyphen > 10:
        cut = hyphen
    else:
        return name, HN_DEFAULT_TAGLINE
    head, tail = name[:cut].strip(), name[cut + 1 :].strip()
    if not head:
        return name, HN_DEFAULT_TAGLINE
    return head, tail or HN_DEFAULT_TAGLINE


HN_RULES = ExtractionRules(
    base_url="https://news.ycombinator.com/",
    name=[SelectorText(".titleline > a"), DocumentTitle()],
    tagline=[],
    description=[SelectorText(".toptext")],
    canonical_url=[SelectorAttr(".titleline > a", "href")],
    featured_date=[SelectorAttr(".age", "title"), SelectorText(".age")],
)


class HackerNewsAdapter(SourceAdapter):
    source = "hackernews"
    listing_url = "https://news.ycombinator.com/show"
    base_url = "https://news.ycombinator.com/"
    hosts = ("news.ycombinator.com",)
    detail_rules = HN_RULES

    def parse_listing(self, document: BeautifulSoup, limit: int) -> list[UnifiedPreview]:
        previews: list[UnifiedPreview] = []
        seen: set[str] = set()
        for row in select_all(document, ".athing"):
            if len(previews) >= limit:
                break
            link = select_first(row, ".titleline > a")
            title = node_text(link)
            if not title.startswith("Show HN:"):
                continue
            item_id = attr(row, "id")
            if not item_id or item_id in seen:
                continue

            name, tagline = split_show_title(title)
            meta_row = row.find_next_sibling("tr")
            age = select_first(meta_row, ".age")
            # "discuss" rows have no comment link; the last match is the count link
            comment_links = select_all(meta_row, 'a:-soup-contains("comment")')
            comments = _first_int(node_text(comment_links[-1])) if comment_links else None
            metadata = PreviewMetadata(
                author=node_text(select_first(meta_row, ".hnuser")) or None,
                time_ago=attr(age, "title") or node_text(age) or None,
                comments=comments or 0,
            )
            preview = self._preview(
                name=name,
                tagline=_short(tagline),
                url=absolute_url(attr(link, "href"), self.base_url),
                source_url=HN_ITEM_URL.format(item_id),
                metadata=metadata,
            )
            if preview:
                seen.add(item_id)
                previews.append(preview)
        return previews

    def finish_record(self, record: ProductRecord) -> ProductRecord:
        name, tagline = split_show_title(record.name)
        if not name:
            return record
        return record.model_copy(update={"name": name, "tagline": record.tagline or tagline})


# =====================================================================
# Indie Hackers
# =====================================================================

IH_DEFAULT_TAGLINE = "Building in public on Indie Hackers"
_LAUNCH_RE = re.compile(r"launched|building|made|created|released|introducing", re.IGNORECASE)
_LAUNCH_NAME_RE = re.compile(r"(?:launched|built|made|created|released)\s+([^-–!.]+)", re.IGNORECASE)
_REVENUE_RE = re.compile(r"\$\s?[\d,.]+\s*[kKmM]?\s*(?:/|per\s+)\s*(?:mo|month)\b", re.IGNORECASE)

IH_RULES = ExtractionRules(
    base_url="https://www.indiehackers.com",
    name=[HeadingText(1), MetaAttribute("og:title"), DocumentTitle()],
    tagline=[MetaAttribute("og:description"), MetaAttribute("description")],
    description=[LongParagraph(100), MetaAttribute("og:description")],
    canonical_url=[LinkMatching(r"^\s*(visit|website|try it)")],
    featured_date=[SelectorAttr("time", "datetime"), SelectorText("time")],
    topic_selectors=['a[href*="/group/"]', 'a[href*="/tags/"]'],
    max_tagline_length=MAX_TAGLINE_LENGTH,
)


def launch_name(title: str) -> str:
    match = _LAUNCH_NAME_RE.search(title)
    name = match.group(1).strip() if match else ""
    return name or title[:50].strip()


class IndieHackersAdapter(SourceAdapter):
    source = "indiehackers"
    listing_url = "https://www.indiehackers.com"
    base_url = "https://www.indiehackers.com"
    hosts = ("indiehackers.com",)
    detail_rules = IH_RULES

    def parse_listing(self, document: BeautifulSoup, limit: int) -> list[UnifiedPreview]:
        previews: list[UnifiedPreview] = []
        seen: set[str] = set()
        for link in select_all(document, 'a[href*="/post/"]'):
            if len(previews) >= limit:
                break
            title = node_text(link)
            if not _LAUNCH_RE.search(title):
                continue
            href = attr(link, "href")
            slug = derive_slug(href)
            if not slug or slug in seen:
                continue

            revenue = _REVENUE_RE.search(title)
            url = absolute_url(href, self.base_url)
            preview = self._preview(
                name=launch_name(title),
                tagline=title[:150].strip() or IH_DEFAULT_TAGLINE,
                url=url,
                source_url=url,
                metadata=PreviewMetadata(revenue=revenue.group(0).strip() if revenue else None),
            )
            if preview:
                seen.add(slug)
                previews.append(preview)
        return previews


# =====================================================================
# AlternativeTo
# =====================================================================

AT_DEFAULT_TAGLINE = "Discover alternatives on AlternativeTo"

AT_RULES = ExtractionRules(
    base_url="https://alternativeto.net",
    name=[HeadingText(1), MetaAttribute("og:title"), DocumentTitle()],
    tagline=[MetaAttribute("og:description"), MetaAttribute("description")],
    description=[LongParagraph(100), MetaAttribute("description")],
    canonical_url=[LinkMatching(r"^\s*(visit|official)\s+(website|site)")],
    topic_selectors=['a[href*="/category/"]', 'a[href*="/tag/"]'],
    screenshots=ScreenshotRule(keywords=("screenshot",)),
    max_tagline_length=MAX_TAGLINE_LENGTH,
)


class AlternativeToAdapter(SourceAdapter):
    source = "alternativeto"
    listing_url = "https://alternativeto.net/browse/trending/"
    base_url = "https://alternativeto.net"
    hosts = ("alternativeto.net",)
    detail_rules = AT_RULES

    def parse_listing(self, document: BeautifulSoup, limit: int) -> list[UnifiedPreview]:
        previews: list[UnifiedPreview] = []
        seen: set[str] = set()
        for item in select_all(document, ".app-item, .application-item"):
            if len(previews) >= limit:
                break
            link = select_first(item, ".app-name a, h3 a")
            name = node_text(link)
            if not name:
                continue
            url = absolute_url(attr(link, "href"), self.base_url)
            slug = derive_slug(url) or name.lower()
            if slug in seen:
                continue

            tagline = node_text(select_first(item, ".app-tagline, .description, p")) or AT_DEFAULT_TAGLINE
            likes = " ".join(node_text(el) for el in select_all(item, ".likes, .votes"))
            category = node_text(select_first(item, ".category, .tag"))
            preview = self._preview(
                name=name,
                tagline=_short(tagline),
                url=url,
                source_url=url,
                metadata=PreviewMetadata(likes=_first_int(likes), category=category or None),
            )
            if preview:
                seen.add(slug)
                previews.append(preview)
        return previews


# =====================================================================
# Registry
# =====================================================================

ADAPTERS: dict[str, SourceAdapter] = {
    a.source: a
    for a in (BetaListAdapter(), HackerNewsAdapter(), IndieHackersAdapter(), AlternativeToAdapter())
}


def source_for_url(url: str) -> SourceAdapter | None:
    """The adapter whose site a product URL belongs to, if any."""
    for adapter in ADAPTERS.values():
        if adapter.owns(url):
            return adapter
    return None


async def scrape_product(
    client: httpx.AsyncClient, url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT
) -> ProductRecord | None:
    """Scrape one product detail page from any known origin. Never raises."""
    adapter = source_for_url(url)
    if adapter is None:
        logger.warning(f"No source adapter for {url}")
        return None
    return await adapter.scrape_detail(client, url, timeout)
