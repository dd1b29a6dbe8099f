"""
Markup parsing helpers shared by the field extractor and the source adapters.

Wraps BeautifulSoup (lxml backend) and soupsieve CSS selectors so that a bad
selector or a missing node yields an empty value instead of an exception.
Text-containment queries use soupsieve's ``:-soup-contains("...")``.
"""

import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")


def parse_html(html: str) -> BeautifulSoup | None:
    """Parse a page into a traversable node tree. Returns None for an empty document."""
    if not html or not html.strip():
        return None
    return BeautifulSoup(html, "lxml")


def collapse(text: str | None) -> str:
    """Collapse runs of whitespace and trim."""
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def node_text(node: Tag | None) -> str:
    """Visible text of a node with whitespace collapsed; "" for a missing node."""
    if node is None:
        return ""
    return collapse(node.get_text(" "))


def select_all(node: Tag | None, selector: str) -> list[Tag]:
    if node is None:
        return []
    try:
        return node.select(selector)
    except (SelectorSyntaxError, ValueError) as e:
        logger.debug(f"Bad selector {selector!r}: {e}")
        return []


def select_first(node: Tag | None, selector: str) -> Tag | None:
    matches = select_all(node, selector)
    return matches[0] if matches else None


def attr(node: Tag | None, name: str) -> str:
    """String value of an attribute; multi-valued attributes are space-joined."""
    if node is None:
        return ""
    value = node.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip() if isinstance(value, str) else ""


def absolute_url(href: str, base_url: str) -> str:
    """Resolve a relative href against the origin; protocol-relative URLs get https."""
    href = (href or "").strip()
    if not href:
        return ""
    if href.startswith("//"):
        return "https:" + href
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url, href)


def best_from_srcset(srcset: str | None) -> str | None:
    """Return the highest-resolution URL from an srcset attribute.

    Handles width ('800w') and density ('2x') descriptors; an entry with no
    descriptor counts as a single candidate.
    """
    if not srcset or not isinstance(srcset, str):
        return None

    best_url: str | None = None
    best_value: float = 0

    for entry in srcset.split(","):
        parts = entry.strip().split()
        if not parts:
            continue
        url = parts[0]
        if len(parts) >= 2:
            descriptor = parts[-1].strip().lower()
            try:
                value = float(descriptor[:-1]) if descriptor.endswith(("w", "x")) else 0
            except ValueError:
                value = 0
        else:
            value = 1

        if value >= best_value:
            best_url = url
            best_value = value

    return best_url


def image_src(img: Tag) -> str:
    """Best source URL for an <img>: srcset first, then src / data-src."""
    best = best_from_srcset(attr(img, "srcset") or attr(img, "data-srcset"))
    if best:
        return best
    return attr(img, "src") or attr(img, "data-src")
