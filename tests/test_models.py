"""Record models and slug derivation."""

import pytest
from pydantic import ValidationError

from models import MultiSourceConfig, ProductRecord, UnifiedPreview, derive_slug


class TestProductRecord:
    """Only the name is mandatory."""

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            ProductRecord(name="   ", source_url="https://betalist.com/startups/x")

    def test_other_fields_default_empty(self):
        record = ProductRecord(name="  Flow   Base ", source_url="https://betalist.com/startups/x")
        assert record.name == "Flow Base"
        assert record.tagline == ""
        assert record.topics == []
        assert record.canonical_url == ""
        assert record.scraped_at.tzinfo is not None

    def test_topics_deduplicated(self):
        record = ProductRecord(name="X", source_url="u", topics=["AI", "SaaS", "AI", " "])
        assert record.topics == ["AI", "SaaS"]

    def test_camel_case_wire_format(self):
        record = ProductRecord.model_validate(
            {"name": "X", "sourceUrl": "u", "website": "https://x.example", "featuredDate": "Nov 1, 2025"}
        )
        dumped = record.model_dump(mode="json", by_alias=True)
        assert dumped["canonicalUrl"] == "https://x.example"
        assert dumped["sourceUrl"] == "u"
        assert dumped["featuredDate"] == "Nov 1, 2025"


class TestUnifiedPreview:
    """Origin tags are a closed set."""

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError):
            UnifiedPreview(name="X", source_url="u", source="producthunt")

    def test_metadata_defaults(self):
        preview = UnifiedPreview(name="X", source_url="u", source="hackernews")
        assert preview.metadata.comments is None


class TestMultiSourceConfig:
    """Defaults mirror the gallery."""

    def test_defaults(self):
        config = MultiSourceConfig()
        assert config.enabled_sources() == ["betalist", "hackernews", "indiehackers"]
        assert config.limit_per_source == 5

    def test_limit_bounds(self):
        with pytest.raises(ValidationError):
            MultiSourceConfig(limit_per_source=0)


class TestDeriveSlug:
    """Deterministic cache keys."""

    @pytest.mark.parametrize(
        "url, slug",
        [
            ("https://betalist.com/startups/FlowBase", "flowbase"),
            ("https://betalist.com/startups/flowbase/", "flowbase"),
            ("https://betalist.com/startups/flowbase?ref=home", "flowbase"),
            ("https://www.indiehackers.com/post/launch-day-a1b2", "launch-day-a1b2"),
            ("https://alternativeto.net/software/obsidian/about/", "obsidian"),
        ],
    )
    def test_marker_segment(self, url, slug):
        assert derive_slug(url) == slug

    def test_no_marker_normalises_whole_url(self):
        assert derive_slug("https://news.ycombinator.com/item?id=41000001") == "httpsnewsycombinatorcomitemid41000001"

    def test_idempotent(self):
        url = "https://betalist.com/startups/flowbase"
        assert derive_slug(url) == derive_slug(url)

    def test_empty_segment_falls_back(self):
        assert derive_slug("https://betalist.com/startups/") == "httpsbetalistcomstartups"
