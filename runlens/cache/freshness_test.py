"""Unit tests for the modification-time validated cache."""

from __future__ import annotations

from runlens.cache.freshness import FreshnessCache
from runlens.cache.store import CacheStore


def _cache(store: CacheStore, namespace: str = "test") -> FreshnessCache[dict]:
    return FreshnessCache(store, namespace, lambda v: v, lambda d: dict(d))


class TestFreshnessCache:
    """Tests for FreshnessCache get/put."""

    def test_hit_on_same_mtime(self, tmp_path):
        """A value is returned while the mtime matches."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = _cache(store)
            cache.put("k", 100, {"a": 1})
            assert cache.get("k", 100) == {"a": 1}

    def test_miss_on_other_mtime(self, tmp_path):
        """Any other mtime, older or newer, is a miss."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = _cache(store)
            cache.put("k", 100, {"a": 1})
            assert cache.get("k", 101) is None
            assert cache.get("k", 99) is None
            assert cache.get("other", 100) is None

    def test_last_write_wins(self, tmp_path):
        """A second put replaces the value and its mtime."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = _cache(store)
            cache.put("k", 100, {"a": 1})
            cache.put("k", 200, {"a": 2})
            assert cache.get("k", 100) is None
            assert cache.get("k", 200) == {"a": 2}

    def test_namespaces_are_separate(self, tmp_path):
        """The same key in two namespaces holds two values."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            _cache(store, "one").put("k", 1, {"v": "one"})
            _cache(store, "two").put("k", 1, {"v": "two"})
            assert _cache(store, "one").get("k", 1) == {"v": "one"}

    def test_undecodable_entry_is_miss(self, tmp_path, caplog):
        """An entry the decoder rejects counts as a miss."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            _cache(store).put("k", 1, {"a": 1})

            def strict(data):
                return data["missing"]

            cache = FreshnessCache(store, "test", lambda v: v, strict)
            assert cache.get("k", 1) is None
            assert "Cache entry unreadable" in caplog.text

    def test_unencodable_value_not_stored(self, tmp_path, caplog):
        """A value that cannot be serialized is logged and skipped."""
        with CacheStore(tmp_path / "cache.sqlite") as store:
            cache = _cache(store)
            cache.put("k", 1, {"a": object()})
            assert cache.get("k", 1) is None
            assert "Cache write failed" in caplog.text

    def test_closed_store_always_misses(self, tmp_path):
        """Without an open store every read is a miss."""
        store = CacheStore(tmp_path / "cache.sqlite")
        cache = _cache(store)
        cache.put("k", 1, {"a": 1})
        assert cache.get("k", 1) is None
