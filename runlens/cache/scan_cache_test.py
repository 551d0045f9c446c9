"""Unit tests for the directory scan cache."""

from __future__ import annotations

import re
from pathlib import Path

from runlens.cache.scan_cache import CandidateEntry, ScanCache
from runlens.cache.store import CacheStore
from runlens.report.locator import ReportFormat


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _entry(tmp_path: Path, name: str, mtime_ns: int) -> CandidateEntry:
    return CandidateEntry(
        tmp_path / name, tmp_path / name / "index.html", mtime_ns, ReportFormat.HTML,
    )


class TestScanCache:
    """Tests for ScanCache TTL and keying."""

    def test_live_entry_is_returned(self, tmp_path):
        """An entry younger than the TTL is served."""
        clock = FakeClock()
        pattern = re.compile(r"run-\d+")
        candidates = (_entry(tmp_path, "run-2", 20), _entry(tmp_path, "run-1", 10))
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ScanCache(store, 30, clock)
            cache.put(tmp_path, pattern, candidates, 3)
            clock.now += 29
            cached = cache.get(tmp_path, pattern)
        assert cached is not None
        assert cached.candidates == candidates
        assert cached.matched_dirs == 3
        assert cached.cached_at == 1000.0

    def test_expired_entry_is_dropped(self, tmp_path):
        """An entry older than the TTL is a miss and is deleted."""
        clock = FakeClock()
        pattern = re.compile(r"run-\d+")
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ScanCache(store, 30, clock)
            cache.put(tmp_path, pattern, (), 0)
            clock.now += 31
            assert cache.get(tmp_path, pattern) is None
            row = store.fetch_one("SELECT COUNT(*) FROM run_pick_cache")
        assert row == (0,)

    def test_key_includes_flags_and_format(self, tmp_path):
        """Pattern flags and requested format separate entries."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ScanCache(store, 30, FakeClock())
            cache.put(tmp_path, re.compile("run"), (_entry(tmp_path, "run", 1),), 1)
            assert cache.get(tmp_path, re.compile("run", re.IGNORECASE)) is None
            assert cache.get(tmp_path, re.compile("run"), ReportFormat.EXPORT) is None
            assert cache.get(tmp_path, re.compile("run")) is not None

    def test_zero_ttl_disables(self, tmp_path):
        """A TTL of zero never stores or serves entries."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = ScanCache(store, 0, FakeClock())
            assert not cache.enabled
            result = cache.put(tmp_path, re.compile("run"), (), 2)
            assert result.matched_dirs == 2
            assert cache.get(tmp_path, re.compile("run")) is None


class TestCandidateEntry:
    """Tests for CandidateEntry serialization."""

    def test_dict_form(self, tmp_path):
        """Entries serialize with their format and round-trip."""
        entry = CandidateEntry(
            tmp_path / "run-1", tmp_path / "run-1" / "extent.json", 42, ReportFormat.EXPORT,
        )
        data = entry.to_dict()
        assert data["format"] == "json"
        assert data["lastModified"] == 42
        assert CandidateEntry.from_dict(data) == entry
