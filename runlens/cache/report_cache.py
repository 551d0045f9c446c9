"""Persistent cache of per-report parse results.

Each entry holds the report summary (run times and totals) and the
feature list with logs omitted, keyed by the absolute artifact path and
validated by the artifact's modification time.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from runlens.cache.freshness import FreshnessCache
from runlens.cache.store import CacheStore
from runlens.report.locator import LocatedReport
from runlens.report.model import Feature, Report, Run, Totals
from runlens.report.parser import parse_features, parse_summary
from runlens.run.history import scenario_statuses

NAMESPACE = "report"


@dataclass(frozen=True)
class CachedReport:
    """Cached parse result for one artifact."""

    summary: Report
    features: tuple[Feature, ...]

    @property
    def needs_description_refresh(self) -> bool:
        """True for entries written before feature descriptions were stored."""
        return any(f.description is None for f in self.features)

    def as_report(self) -> Report:
        """Summary and features combined into one logs-omitted Report."""
        return Report(
            run=self.summary.run,
            totals=self.summary.totals,
            features=self.features,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "run": self.summary.run.to_dict(),
                "totals": self.summary.totals.to_dict(),
            },
            "features": [f.to_dict() for f in self.features],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CachedReport:
        summary = data["summary"]
        return cls(
            summary=Report(
                run=Run.from_dict(summary.get("run")),
                totals=Totals.from_dict(summary.get("totals")),
            ),
            features=tuple(Feature.from_dict(f) for f in data["features"]),
        )


def cache_key(path: Path) -> str:
    return str(Path(path).resolve())


class ReportCache:
    """Parse-once cache of report summaries and logs-omitted features."""

    def __init__(self, store: CacheStore) -> None:
        self._cache: FreshnessCache[CachedReport] = FreshnessCache(
            store, NAMESPACE, CachedReport.to_dict, CachedReport.from_dict,
        )

    def get_or_load(self, located: LocatedReport) -> CachedReport:
        """Return the cached entry for *located*, parsing on a miss.

        An entry from before feature descriptions were recorded gets only
        its feature list re-derived; the summary is kept.

        Raises:
            InvalidFormat: If the artifact cannot be parsed.
            OSError: If the artifact cannot be read.
        """
        key = cache_key(located.path)
        mtime = located.path.stat().st_mtime_ns

        cached = self._cache.get(key, mtime)
        if cached is not None:
            if not cached.needs_description_refresh:
                return cached
            refreshed = CachedReport(
                summary=cached.summary,
                features=parse_features(located, include_logs=False),
            )
            self._cache.put(key, mtime, refreshed)
            return refreshed

        fresh = CachedReport(
            summary=parse_summary(located),
            features=parse_features(located, include_logs=False),
        )
        self._cache.put(key, mtime, fresh)
        return fresh

    def get_summary(self, located: LocatedReport) -> Report:
        return self.get_or_load(located).summary

    def get_features(self, located: LocatedReport) -> tuple[Feature, ...]:
        return self.get_or_load(located).features

    def get_report(self, located: LocatedReport) -> Report:
        return self.get_or_load(located).as_report()

    def get_scenario_statuses(self, located: LocatedReport) -> dict[str, str]:
        return scenario_statuses(self.get_or_load(located).features)
