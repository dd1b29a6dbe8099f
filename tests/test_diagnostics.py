"""Offline extraction diagnostics over saved pages."""

from conftest import load_fixture

import diagnostics
from sources import ADAPTERS


class TestDiagnoseHtml:
    """Per-file field coverage."""

    def test_betalist_detail(self):
        report = diagnostics.diagnose_html(load_fixture("betalist_detail.html"), ADAPTERS["betalist"], "flowbase")

        assert report["source"] == "betalist"
        assert report["missing"] == []
        assert report["fields"]["name"] == "FlowBase"
        assert report["fields"]["topics"] == ["SaaS", "Productivity"]
        assert report["strategies"]["name"] is not None

    def test_unrelated_page_reports_missing(self):
        report = diagnostics.diagnose_html("<html><body><p>hi</p></body></html>", ADAPTERS["hackernews"])

        assert "name" in report["missing"]
        assert report["fields"]["name"] is None
        assert report["listing_entries"] == 0


class TestMain:
    """Directory walk and origin selection by file name."""

    def test_prefix_selects_origin(self, tmp_path, capsys):
        (tmp_path / "betalist-flowbase.html").write_text(load_fixture("betalist_detail.html"), encoding="utf-8")

        reports = diagnostics.main(tmp_path)

        assert [r["source"] for r in reports] == ["betalist"]
        out = capsys.readouterr().out
        assert "betalist-flowbase.html" in out
        assert "Field coverage" in out

    def test_unprefixed_file_runs_every_origin(self, tmp_path, capsys):
        (tmp_path / "page.html").write_text(load_fixture("hn_item.html"), encoding="utf-8")

        reports = diagnostics.main(tmp_path)

        assert {r["source"] for r in reports} == set(ADAPTERS)

    def test_empty_directory(self, tmp_path, capsys):
        assert diagnostics.main(tmp_path) == []
