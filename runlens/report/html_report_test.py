"""Unit tests for the HTML report parser."""

from __future__ import annotations

from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from runlens.errors import InvalidFormat
from runlens.report.html_report import (
    parse_html_features,
    parse_html_report,
    parse_html_summary,
    parse_step_logs,
    scan_run_times,
    totals_from_status_group,
)
from runlens.report.model import Totals

STARTED = "Jan 14, 2026, 9:28:24 AM"
ENDED = "Jan 14, 2026, 9:58:10 AM"

LOGIN = {
    "name": "Suite ← Auth ← Login",
    "status": "pass",
    "tags": ["smoke", "auth"],
    "description": "Login flows<br><br>",
    "start": STARTED,
    "end": ENDED,
    "scenarios": [
        {"name": "Valid user", "status": "pass", "steps": [
            {"keyword": "Given", "text": "I open the page", "status": "pass",
             "logs": ["<p class='timestamp'>00:02</p><p>opened</p>"]},
            {"keyword": "When", "text": "I log in", "status": "pass",
             "media": "shots/login.png"},
            {"keyword": "Then", "text": "", "status": "info", "after": True,
             "logs": ["<p>after hook</p>"]},
            {"keyword": "Then", "text": "I see the home page", "status": "pass"},
        ]},
        {"outline": [
            {"name": "Bad password", "status": "fail", "steps": [
                {"keyword": "When", "text": "I log in with x", "status": "fail"},
            ]},
            {"name": "Bad password", "status": "pass", "steps": [
                {"keyword": "When", "text": "I log in with y", "status": "pass"},
            ]},
        ]},
    ],
}

CHECKOUT = {
    "name": "Suite ← Shop ← Checkout",
    "status": "fail",
    "scenarios": [
        {"name": "Pay", "status": "fail", "steps": [
            {"keyword": "Given", "text": "a cart", "status": "pass"},
            {"keyword": "Then", "text": "payment succeeds", "status": "fail",
             "logs": ['<img src="https://cdn.example.com/x.png"> remote']},
        ]},
    ],
}

SKIPPED = {"name": "Suite ← Misc", "status": "warning", "scenarios": []}


def _write(tmp_path: Path, html: str) -> Path:
    path = tmp_path / "index.html"
    path.write_text(html, encoding="utf-8")
    return path


class TestFastScans:
    """Tests for the regex fast paths."""

    def test_totals_from_status_group(self, html_report):
        """Parent-level counters feed the totals."""
        html = html_report([], status_group={
            "passParent": 3, "failParent": 1, "warningParent": 2, "skipParent": 0,
            "passChild": 40,
        })
        totals = totals_from_status_group(html)
        assert totals == Totals.from_counts(3, 1, 2, 0)

    def test_status_group_missing(self, html_report):
        """Without the block there is no fast-path result."""
        assert totals_from_status_group(html_report([])) is None
        assert totals_from_status_group(
            html_report([], status_group={"passChild": 1})
        ) is None

    def test_scan_run_times(self, html_report):
        """Started and Ended are read from the dashboard markup."""
        run = scan_run_times(html_report([], started=STARTED, ended=ENDED))
        assert run.start_time == STARTED
        assert run.end_time == ENDED


class TestParseHtmlReport:
    """Tests for full HTML report parsing."""

    def test_features_in_document_order(self, tmp_path, html_report):
        """Features keep document order, names, paths, tags and status."""
        report = parse_html_report(_write(tmp_path, html_report([LOGIN, CHECKOUT])))
        login, checkout = report.features
        assert login.name == "Suite ← Auth ← Login"
        assert login.path == ("Suite", "Auth", "Login")
        assert login.title == "Login"
        assert login.status == "PASS"
        assert login.tags == ("smoke", "auth")
        assert login.description == "Login flows"
        assert login.start_time == STARTED
        assert login.end_time == ENDED
        assert checkout.path == ("Suite", "Shop", "Checkout")
        assert checkout.status == "FAIL"

    def test_outline_rows_are_disambiguated(self, tmp_path, html_report):
        """Each outline example is a scenario with an ordinal name."""
        report = parse_html_report(_write(tmp_path, html_report([LOGIN])))
        names = [sc.name for sc in report.features[0].scenarios]
        assert names == ["Valid user", "Bad password #1", "Bad password #2"]
        statuses = [sc.status for sc in report.features[0].scenarios]
        assert statuses == ["PASS", "FAIL", "PASS"]

    def test_steps_and_after_step_merge(self, tmp_path, html_report):
        """AFTER_STEP output is appended to the preceding step."""
        report = parse_html_report(_write(tmp_path, html_report([LOGIN])))
        steps = report.features[0].scenarios[0].steps
        assert [(s.keyword, s.text) for s in steps] == [
            ("Given", "I open the page"),
            ("When", "I log in"),
            ("Then", "I see the home page"),
        ]
        login_step = steps[1]
        assert login_step.media_path == "shots/login.png"
        assert [lg.details for lg in login_step.logs] == ["", "<p>after hook</p>"]

    def test_log_timestamps_become_durations(self, tmp_path, html_report):
        """Elapsed-time paragraphs are stripped and summed into durations."""
        report = parse_html_report(_write(tmp_path, html_report([LOGIN])))
        first = report.features[0].scenarios[0].steps[0]
        assert first.logs[0].details == "<p>opened</p>"
        assert first.duration_ms == 2000

    def test_remote_image_stays_inline(self, tmp_path, html_report):
        """Remote images are not extracted as media."""
        report = parse_html_report(_write(tmp_path, html_report([CHECKOUT])))
        step = report.features[0].scenarios[0].steps[1]
        assert step.media_path is None
        assert "https://cdn.example.com/x.png" in step.logs[0].details

    def test_only_local_image_is_extracted(self):
        """Remote and inline images beside a local one stay in the markup."""
        step_el = BeautifulSoup(
            '<li><div><img src="https://cdn.example.com/a.png">'
            '<img src="shots/1.png"><img src="data:image/png;base64,AAAA"></div></li>',
            "lxml",
        ).find("li")
        [log] = parse_step_logs(step_el)
        assert log.media_path == "shots/1.png"
        assert "shots/1.png" not in log.details
        assert "https://cdn.example.com/a.png" in log.details
        assert "data:image/png;base64,AAAA" in log.details

    def test_without_logs(self, tmp_path, html_report):
        """include_logs=False gives the same tree with no logs."""
        path = _write(tmp_path, html_report([LOGIN]))
        full = parse_html_report(path)
        bare = parse_html_report(path, include_logs=False)
        assert bare.features == tuple(f.without_logs() for f in full.features)

    def test_run_times_from_dashboard(self, tmp_path, html_report):
        """Run times come from the dashboard cards."""
        report = parse_html_report(
            _write(tmp_path, html_report([LOGIN], started=STARTED, ended=ENDED))
        )
        assert report.run.start_time == STARTED
        assert report.run.end_time == ENDED

    def test_not_markup(self, tmp_path):
        """A file with no markup at all is rejected."""
        path = tmp_path / "index.html"
        path.write_text("plain text")
        with pytest.raises(InvalidFormat):
            parse_html_report(path)

    def test_parse_is_idempotent(self, tmp_path, html_report):
        """Parsing the same file twice gives equal reports."""
        path = _write(tmp_path, html_report([LOGIN, CHECKOUT]))
        assert parse_html_report(path) == parse_html_report(path)

    def test_features_only(self, tmp_path, html_report):
        """parse_html_features returns the same features as the full parse."""
        path = _write(tmp_path, html_report([LOGIN, CHECKOUT]))
        assert parse_html_features(path) == parse_html_report(path).features


class TestParseHtmlSummary:
    """Tests for the summary-only parse."""

    def test_fast_path_matches_tally(self, tmp_path, html_report):
        """The embedded counters and a DOM tally give the same totals."""
        features = [LOGIN, CHECKOUT, SKIPPED]
        with_block = tmp_path / "a"
        without_block = tmp_path / "b"
        with_block.mkdir()
        without_block.mkdir()
        fast = parse_html_summary(_write(with_block, html_report(features, status_group={
            "passParent": 1, "failParent": 1, "warningParent": 1, "skipParent": 0,
        })))
        tally = parse_html_summary(_write(without_block, html_report(features)))
        assert fast.totals == tally.totals
        assert tally.totals.total == 3

    def test_summary_has_no_features(self, tmp_path, html_report):
        """The summary parse carries run times and totals only."""
        summary = parse_html_summary(_write(tmp_path, html_report(
            [LOGIN], started=STARTED, status_group={"passParent": 1},
        )))
        assert summary.features == ()
        assert summary.run.start_time == STARTED
        assert summary.totals.passed == 1
