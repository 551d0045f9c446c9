"""Unit tests for the persistent report cache."""

from __future__ import annotations

import os

import pytest

from runlens.cache import report_cache
from runlens.cache.freshness import FreshnessCache
from runlens.cache.report_cache import NAMESPACE, CachedReport, ReportCache, cache_key
from runlens.cache.store import CacheStore
from runlens.report.locator import locate_report

FEATURES = [{
    "name": "Suite ← Login",
    "status": "pass",
    "description": "Login flows",
    "scenarios": [
        {"name": "Valid", "status": "pass", "steps": [
            {"keyword": "Given", "text": "I open", "status": "pass", "logs": ["<p>x</p>"]},
        ]},
        {"name": "Invalid", "status": "fail", "steps": []},
    ],
}]


@pytest.fixture
def counted(monkeypatch):
    """Count summary and feature parses done by the report cache."""
    calls = {"summary": 0, "features": 0}
    real_summary = report_cache.parse_summary
    real_features = report_cache.parse_features

    def parse_summary(located):
        calls["summary"] += 1
        return real_summary(located)

    def parse_features(located, include_logs=False):
        calls["features"] += 1
        return real_features(located, include_logs=include_logs)

    monkeypatch.setattr(report_cache, "parse_summary", parse_summary)
    monkeypatch.setattr(report_cache, "parse_features", parse_features)
    return calls


class TestReportCache:
    """Tests for ReportCache freshness handling."""

    def test_parses_once_while_fresh(self, tmp_path, make_run, counted):
        """Repeated lookups of an unchanged artifact parse once."""
        make_run(tmp_path, "run-1", FEATURES, mtime=1_700_000_000)
        located = locate_report(tmp_path / "run-1")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ReportCache(store)
            first = cache.get_or_load(located)
            second = cache.get_or_load(located)
        assert first == second
        assert counted == {"summary": 1, "features": 1}

    def test_reparses_after_mtime_change(self, tmp_path, make_run, counted):
        """Touching the artifact invalidates the entry."""
        artifact = make_run(tmp_path, "run-1", FEATURES, mtime=1_700_000_000)
        located = locate_report(tmp_path / "run-1")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ReportCache(store)
            cache.get_or_load(located)
            os.utime(artifact, (1_700_000_050, 1_700_000_050))
            cache.get_or_load(located)
        assert counted == {"summary": 2, "features": 2}

    def test_entry_survives_reopen(self, tmp_path, make_run, counted):
        """A new store on the same database serves the cached entry."""
        make_run(tmp_path, "run-1", FEATURES, mtime=1_700_000_000)
        located = locate_report(tmp_path / "run-1")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            ReportCache(store).get_or_load(located)
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cached = ReportCache(store).get_or_load(located)
        assert counted["summary"] == 1
        assert cached.features[0].description == "Login flows"

    def test_cached_features_have_no_logs(self, tmp_path, make_run):
        """Entries hold logs-omitted features."""
        make_run(tmp_path, "run-1", FEATURES)
        located = locate_report(tmp_path / "run-1")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            report = ReportCache(store).get_report(located)
        assert report.features[0].scenarios[0].steps[0].logs == ()
        assert report.totals.passed == 1

    def test_scenario_statuses(self, tmp_path, make_run):
        """Scenario statuses are keyed by scenario identity."""
        make_run(tmp_path, "run-1", FEATURES)
        with CacheStore(tmp_path / "cache.sqlite") as store:
            statuses = ReportCache(store).get_scenario_statuses(
                locate_report(tmp_path / "run-1")
            )
        assert statuses == {
            "Suite / Login :: Valid": "PASS",
            "Suite / Login :: Invalid": "FAIL",
        }

    def test_refreshes_entries_without_descriptions(self, tmp_path, make_run, counted):
        """An entry lacking descriptions re-derives only its features."""
        make_run(tmp_path, "run-1", FEATURES, mtime=1_700_000_000)
        located = locate_report(tmp_path / "run-1")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ReportCache(store)
            entry = cache.get_or_load(located)
            old = entry.to_dict()
            for feature in old["features"]:
                del feature["description"]
            raw: FreshnessCache[dict] = FreshnessCache(store, NAMESPACE, lambda v: v, dict)
            raw.put(cache_key(located.path), located.path.stat().st_mtime_ns, old)

            refreshed = cache.get_or_load(located)
            again = cache.get_or_load(located)
        assert refreshed.features[0].description == "Login flows"
        assert again == refreshed
        assert counted == {"summary": 1, "features": 2}

    def test_works_without_database(self, tmp_path, make_run, counted):
        """A closed store degrades to parsing on every call."""
        make_run(tmp_path, "run-1", FEATURES)
        located = locate_report(tmp_path / "run-1")
        cache = ReportCache(CacheStore(tmp_path / "cache.sqlite"))
        cache.get_summary(located)
        cache.get_features(located)
        assert counted == {"summary": 2, "features": 2}


class TestCachedReport:
    """Tests for the cached entry value."""

    def test_round_trip(self, tmp_path, make_run):
        """An entry survives its dict form."""
        make_run(tmp_path, "run-1", FEATURES, started="Jan 14, 2026, 9:00:00 AM")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            entry = ReportCache(store).get_or_load(locate_report(tmp_path / "run-1"))
        assert CachedReport.from_dict(entry.to_dict()) == entry
        assert entry.summary.run.start_time == "Jan 14, 2026, 9:00:00 AM"
        assert not entry.needs_description_refresh
