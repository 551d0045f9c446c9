"""Persistent caches: parsed reports and directory scans."""

from runlens.cache.freshness import FreshnessCache
from runlens.cache.report_cache import CachedReport, ReportCache
from runlens.cache.scan_cache import CachedCandidates, CandidateEntry, ScanCache
from runlens.cache.store import DEFAULT_DB_PATH, CacheStore

__all__ = [
    "DEFAULT_DB_PATH",
    "CacheStore",
    "CachedCandidates",
    "CachedReport",
    "CandidateEntry",
    "FreshnessCache",
    "ReportCache",
    "ScanCache",
]
