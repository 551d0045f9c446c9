"""Time-to-live cache of directory scan results.

A new run directory cannot be noticed by watching the modification times
of known artifacts, so scan results expire after a fixed TTL instead.
Entries are keyed by the absolute base directory, the compiled name
pattern (source and flags) and the requested report format.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from runlens.cache.store import CacheStore
from runlens.report.locator import ReportFormat

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0

_SELECT_SQL = """
SELECT cached_at, matched_dirs, candidates_json
FROM run_pick_cache
WHERE base_dir = ? AND dir_pattern = ? AND dir_flags = ? AND report_format = ?
"""
_UPSERT_SQL = """
INSERT INTO run_pick_cache
  (base_dir, dir_pattern, dir_flags, report_format, cached_at, matched_dirs, candidates_json)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(base_dir, dir_pattern, dir_flags, report_format) DO UPDATE SET
  cached_at = excluded.cached_at,
  matched_dirs = excluded.matched_dirs,
  candidates_json = excluded.candidates_json
"""
_DELETE_SQL = """
DELETE FROM run_pick_cache
WHERE base_dir = ? AND dir_pattern = ? AND dir_flags = ? AND report_format = ?
"""


@dataclass(frozen=True)
class CandidateEntry:
    """A matching run directory with its located report artifact."""

    run_dir: Path
    report_path: Path
    mtime_ns: int
    format: ReportFormat

    def to_dict(self) -> dict[str, Any]:
        return {
            "runDir": str(self.run_dir),
            "reportPath": str(self.report_path),
            "lastModified": self.mtime_ns,
            "format": self.format.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CandidateEntry:
        return cls(
            run_dir=Path(data["runDir"]),
            report_path=Path(data["reportPath"]),
            mtime_ns=int(data["lastModified"]),
            format=ReportFormat(data["format"]),
        )


@dataclass(frozen=True)
class CachedCandidates:
    """Scan result: candidates plus the number of directories that matched."""

    candidates: tuple[CandidateEntry, ...] = field(default_factory=tuple)
    matched_dirs: int = 0
    cached_at: float = 0.0


def _key(
    base_dir: Path, pattern: re.Pattern[str], fmt: ReportFormat | None,
) -> tuple[str, str, int, str]:
    return (
        str(Path(base_dir).resolve()),
        pattern.pattern,
        pattern.flags,
        fmt.value if fmt is not None else "auto",
    )


class ScanCache:
    """Persistent scan cache with a fixed time-to-live.

    Args:
        store: Shared cache store.
        ttl_seconds: Entry lifetime; zero or less disables the cache.
        clock: Time source in seconds, replaceable in tests.
    """

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(
        self,
        base_dir: Path,
        pattern: re.Pattern[str],
        fmt: ReportFormat | None = None,
    ) -> CachedCandidates | None:
        """Return the live entry for the scan key; expired entries are dropped."""
        if not self.enabled:
            return None
        key = _key(base_dir, pattern, fmt)
        try:
            row = self.store.fetch_one(_SELECT_SQL, key)
            if row is None:
                return None
            cached_at, matched_dirs, payload = row
            if self._clock() - cached_at > self.ttl_seconds:
                self.store.execute(_DELETE_SQL, key)
                return None
            candidates = tuple(CandidateEntry.from_dict(c) for c in json.loads(payload))
        except (sqlite3.Error, ValueError, KeyError, TypeError) as e:
            logger.warning("Scan cache read failed: base_dir=%s error=%s", base_dir, e)
            return None
        return CachedCandidates(candidates, int(matched_dirs), float(cached_at))

    def put(
        self,
        base_dir: Path,
        pattern: re.Pattern[str],
        candidates: tuple[CandidateEntry, ...],
        matched_dirs: int,
        fmt: ReportFormat | None = None,
    ) -> CachedCandidates:
        """Record a fresh scan result and return it."""
        cached = CachedCandidates(tuple(candidates), matched_dirs, self._clock())
        if not self.enabled:
            return cached
        try:
            payload = json.dumps([c.to_dict() for c in cached.candidates])
            self.store.execute(
                _UPSERT_SQL,
                (*_key(base_dir, pattern, fmt), cached.cached_at, matched_dirs, payload),
            )
        except sqlite3.Error as e:
            logger.warning("Scan cache write failed: base_dir=%s error=%s", base_dir, e)
        return cached
