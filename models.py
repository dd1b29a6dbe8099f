import re
from datetime import datetime, timezone
from typing import Literal, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Origins we know how to scrape. Anything else is dropped, never propagated.
Source = Literal["betalist", "hackernews", "indiehackers", "alternativeto"]
KNOWN_SOURCES: tuple[str, ...] = get_args(Source)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Path markers that precede a per-product unique segment, tried in order
SLUG_MARKERS = ("/startups/", "/products/", "/product/", "/software/", "/post/")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def derive_slug(url: str) -> str:
    """Stable cache key for a listing URL.

    The path segment after the first known marker, lowercased. Without a
    marker, the whole URL lowercased with non-alphanumerics removed (distinct
    URLs can collide there).
    """
    url = (url or "").strip()
    for marker in SLUG_MARKERS:
        if marker in url:
            segment = url.split(marker, 1)[1]
            segment = re.split(r"[/?#]", segment, maxsplit=1)[0].strip().lower()
            if segment:
                return segment
    return _NON_ALNUM_RE.sub("", url.lower())


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductRecord(CamelModel):
    """One discovered product.

    ``name`` is the only field that has to resolve; everything else degrades to
    an empty value instead of invalidating the record.
    """

    name: str = Field(min_length=1)
    tagline: str = ""
    description: str = ""
    topics: list[str] = []
    # the product's own site; older payloads call it "website"
    canonical_url: str = Field(
        default="",
        validation_alias=AliasChoices("canonicalUrl", "canonical_url", "website"),
        serialization_alias="canonicalUrl",
    )
    source_url: str  # listing page the product was found on
    featured_date: str = ""
    screenshot_urls: list[str] = []
    scraped_at: datetime = Field(default_factory=utcnow)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("topics")
    @classmethod
    def dedupe_topics(cls, v: list[str]) -> list[str]:
        # exact-text dedup, first occurrence wins
        return list(dict.fromkeys(t.strip() for t in v if t and t.strip()))


class PreviewMetadata(CamelModel):
    """Source-specific optional fields shown on gallery cards."""

    author: str | None = None
    comments: int | None = None
    time_ago: str | None = None
    revenue: str | None = None
    likes: int | None = None
    category: str | None = None
    topics: list[str] | None = None
    featured_date: str | None = None


class UnifiedPreview(CamelModel):
    """Reduced cross-source record used for gallery display."""

    name: str = Field(min_length=1)
    tagline: str = ""
    url: str = ""  # canonical product link, may be empty
    source_url: str
    source: Source
    metadata: PreviewMetadata = Field(default_factory=PreviewMetadata)


class MultiSourceConfig(CamelModel):
    """Which origins the aggregator queries, and how many entries each may return."""

    betalist: bool = True
    hackernews: bool = True
    indiehackers: bool = True
    alternativeto: bool = False  # blocks plain HTTP clients most of the time
    limit_per_source: int = Field(default=5, ge=1, le=50)

    def enabled_sources(self) -> list[str]:
        return [s for s in KNOWN_SOURCES if getattr(self, s)]
