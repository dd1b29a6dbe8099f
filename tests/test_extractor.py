"""Field extractor and markup helper tests."""

from conftest import load_fixture

from extractor import (
    ExtractionRules,
    HeadingText,
    LinkMatching,
    LongParagraph,
    MetaAttribute,
    SelectorText,
    TextPattern,
    extract,
    extract_fields,
)
from parser import absolute_url, best_from_srcset, parse_html, select_all
from sources import BETALIST_RULES

URL = "https://betalist.com/startups/flowbase"


class TestExtractBetaListDetail:
    """Full BetaList rule set against a saved detail page."""

    def test_scalar_fields(self):
        record = extract(parse_html(load_fixture("betalist_detail.html")), BETALIST_RULES, URL)

        assert record is not None
        assert record.name == "FlowBase"
        assert record.tagline == "Simple, intuitive CRM tool created specifically for freelancers"
        assert record.description.startswith("FlowBase is a lightweight")
        assert record.featured_date == "November 18, 2025"
        assert record.source_url == URL

    def test_visit_link_resolved_against_origin(self):
        record = extract(parse_html(load_fixture("betalist_detail.html")), BETALIST_RULES, URL)
        assert record.canonical_url == "https://betalist.com/startups/flowbase/visit"

    def test_topics_deduplicated_in_order(self):
        record = extract(parse_html(load_fixture("betalist_detail.html")), BETALIST_RULES, URL)
        assert record.topics == ["SaaS", "Productivity"]

    def test_screenshots_filtered_by_keyword(self):
        record = extract(parse_html(load_fixture("betalist_detail.html")), BETALIST_RULES, URL)
        assert record.screenshot_urls == [
            "https://betalist.com/uploads/startup/flowbase/screenshot-1.png",
            "https://cdn.betalist.com/images/flowbase-large.png",
        ]

    def test_minimal_page(self):
        """Short paragraphs only: description stays empty, the record is still valid."""
        html = """
        <html><body>
          <h1>Test Startup</h1>
          <h2>The best startup ever</h2>
          <p>This is a detailed description of the startup.</p>
          <a href="/topics/saas">SaaS</a>
          <a href="/topics/ai">AI</a>
          <a href="https://example.com">Visit Site</a>
          <div>Featured on November 19, 2025</div>
        </body></html>
        """
        record = extract(parse_html(html), BETALIST_RULES, "https://betalist.com/startups/test-startup")

        assert record.name == "Test Startup"
        assert record.tagline == "The best startup ever"
        assert record.description == ""
        assert record.topics == ["SaaS", "AI"]
        assert record.canonical_url == "https://example.com"
        assert record.featured_date == "November 19, 2025"


class TestExtractFallbacks:
    """Ordered strategies and the null result."""

    def test_no_name_returns_none(self):
        html = "<html><body><p>Nothing to see here.</p></body></html>"
        assert extract(parse_html(html), BETALIST_RULES, URL) is None

    def test_none_document_returns_none(self):
        assert extract(None, BETALIST_RULES, URL) is None
        assert extract(parse_html("   "), BETALIST_RULES, URL) is None

    def test_blank_heading_falls_through_to_meta(self):
        html = '<html><head><meta property="og:title" content="MetaName"></head><body><h1>  </h1></body></html>'
        record = extract(parse_html(html), BETALIST_RULES, URL)
        assert record.name == "MetaName"

    def test_og_description_when_no_long_paragraph(self):
        html = (
            '<html><head><meta property="og:description" content="From the meta tag"></head>'
            "<body><h1>X</h1><p>short</p></body></html>"
        )
        record = extract(parse_html(html), BETALIST_RULES, URL)
        assert record.description == "From the meta tag"

    def test_bad_selector_reads_as_empty(self):
        rules = ExtractionRules(
            base_url="https://example.com",
            name=[SelectorText("h1[[["), HeadingText(2)],
        )
        record = extract(parse_html("<html><body><h2>Second</h2></body></html>"), rules, "https://example.com/x")
        assert record.name == "Second"

    def test_trace_names_resolving_strategy(self):
        html = '<html><head><meta name="description" content="meta"></head><body><h1>N</h1></body></html>'
        rules = ExtractionRules(
            base_url="https://example.com",
            name=[HeadingText(1)],
            description=[LongParagraph(100), MetaAttribute("description")],
            canonical_url=[LinkMatching("visit")],
            featured_date=[TextPattern(r"Featured on (\w+)")],
        )
        trace: dict = {}
        fields = extract_fields(parse_html(html), rules, trace)

        assert fields["description"] == "meta"
        assert trace["name"] == "HeadingText"
        assert trace["description"] == "MetaAttribute"
        assert trace["canonical_url"] is None
        assert trace["tagline"] is None

    def test_tagline_cap(self):
        rules = ExtractionRules(base_url="https://example.com", name=[HeadingText(1)], tagline=[HeadingText(2)], max_tagline_length=10)
        fields = extract_fields(parse_html("<h1>N</h1><h2>0123456789abcdef</h2>"), rules)
        assert fields["tagline"] == "0123456789"


class TestParserHelpers:
    """URL and selector helpers."""

    def test_absolute_url(self):
        assert absolute_url("/a/b", "https://betalist.com") == "https://betalist.com/a/b"
        assert absolute_url("//cdn.example.com/x.png", "https://betalist.com") == "https://cdn.example.com/x.png"
        assert absolute_url("https://example.com", "https://betalist.com") == "https://example.com"
        assert absolute_url("item?id=1", "https://news.ycombinator.com/") == "https://news.ycombinator.com/item?id=1"
        assert absolute_url("", "https://betalist.com") == ""

    def test_best_from_srcset(self):
        assert best_from_srcset("a.png 400w, b.png 1200w, c.png 800w") == "b.png"
        assert best_from_srcset("a.png 1x, b.png 2x") == "b.png"
        assert best_from_srcset("") is None

    def test_bad_selector_returns_empty_list(self):
        assert select_all(parse_html("<p>x</p>"), "p[[") == []

    def test_contains_pseudo_selector(self):
        doc = parse_html('<a href="1">12 comments</a><a href="2">hide</a>')
        assert [a["href"] for a in select_all(doc, 'a:-soup-contains("comment")')] == ["1"]
