"""RunLens: configured access to runs, their details and their history.

A :class:`RunLens` owns the cache store and every cache built on it.  It
has an explicit lifecycle: construct it, :meth:`RunLens.open` it (or use
it as a context manager), call operations, then :meth:`RunLens.close` it.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from runlens.assets import resolve_asset_path, resolve_run_dir
from runlens.cache.report_cache import ReportCache
from runlens.cache.scan_cache import ScanCache
from runlens.cache.store import CacheStore
from runlens.config import FilterItem, RunLensConfig
from runlens.errors import RunLensError
from runlens.repo.picker import PickedRun, RunPicker
from runlens.report.model import Feature, Report, Scenario
from runlens.run.history import (
    FlakySummary,
    ScenarioHistory,
    build_scenario_history,
    compute_flaky_summary,
    flaky_counts_by_feature,
    scenario_key,
)
from runlens.run.run_model import RunModel, RunModelCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunDetails:
    """One run with its full report, run tree and recent-run history."""

    run: PickedRun
    report: Report
    model: RunModel
    recent_runs: tuple[PickedRun, ...] = ()
    histories: dict[str, ScenarioHistory] = field(default_factory=dict)
    feature_flaky_counts: dict[str, int] = field(default_factory=dict)

    @property
    def flaky_scenario_count(self) -> int:
        return sum(1 for h in self.histories.values() if h.flaky)

    def history_for(self, feature: Feature, scenario: Scenario) -> ScenarioHistory | None:
        return self.histories.get(scenario_key(feature.path, scenario.name))

    def to_dict(self) -> dict[str, Any]:
        return {
            "run": self.run.to_dict(),
            "report": self.report.to_dict(),
            "model": self.model.to_dict(),
            "recentRuns": [r.name for r in self.recent_runs],
            "flakyScenarioCount": self.flaky_scenario_count,
            "featureFlakyCounts": dict(self.feature_flaky_counts),
            "histories": [h.to_dict() for h in self.histories.values()],
        }


class RunLens:
    """Facade over picker, caches and history for configured items.

    Args:
        config: Loaded configuration.
        db_path: Cache database location; defaults to the configured one.
    """

    def __init__(self, config: RunLensConfig, db_path: Path | None = None) -> None:
        self.config = config
        self.store = CacheStore(db_path or config.db_path)
        self.report_cache = ReportCache(self.store)
        self.scan_cache = ScanCache(self.store, config.scan_ttl_seconds)
        self.model_cache = RunModelCache()
        self.picker = RunPicker(self.report_cache, self.scan_cache, config.cutoff_date)
        self._open = False

    def open(self) -> RunLens:
        self.store.open()
        self._open = True
        return self

    def close(self) -> None:
        self.store.close()
        self._open = False

    def __enter__(self) -> RunLens:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _item(self, filter_name: str, item_title: str) -> FilterItem:
        if not self._open:
            raise RuntimeError("RunLens is not open")
        return self.config.find_item(filter_name, item_title)

    def latest_run(self, filter_name: str, item_title: str) -> PickedRun | None:
        """Newest run of an item, or None when no run qualifies."""
        item = self._item(filter_name, item_title)
        return self.picker.pick_latest_fast(
            item.base_dir, item.compile_pattern(), item.format,
        )

    def latest_runs(
        self, filter_name: str, item_title: str, limit: int | None = None,
    ) -> list[PickedRun]:
        """Up to *limit* newest runs (default: the history limit)."""
        item = self._item(filter_name, item_title)
        return self.picker.pick_latest_runs(
            item.base_dir,
            item.compile_pattern(),
            limit if limit is not None else self.config.history_limit,
            item.format,
        )

    def runs_between(
        self,
        filter_name: str,
        item_title: str,
        start: datetime.datetime,
        end: datetime.datetime,
    ) -> list[PickedRun]:
        item = self._item(filter_name, item_title)
        return self.picker.pick_runs_between(
            item.base_dir, item.compile_pattern(), start, end, item.format,
        )

    def _recent_runs(self, item: FilterItem, current: PickedRun) -> list[PickedRun]:
        limit = self.config.history_limit
        try:
            recent = self.picker.pick_latest_runs(
                item.base_dir, item.compile_pattern(), limit, item.format,
            )
        except (RunLensError, OSError) as e:
            logger.warning("Cannot load recent runs: item=%s error=%s", item.title, e)
            recent = []
        current_dir = current.run_dir.resolve()
        if not any(r.run_dir.resolve() == current_dir for r in recent):
            recent.insert(0, current)
        return recent[:limit]

    def _histories(self, runs: list[PickedRun]) -> dict[str, ScenarioHistory]:
        per_run: list[tuple[str, dict[str, str]]] = []
        for run in runs:
            try:
                per_run.append((run.name, self.report_cache.get_scenario_statuses(run.located)))
            except (RunLensError, OSError) as e:
                logger.debug("Skipping run for history: dir=%s error=%s", run.run_dir, e)
        return build_scenario_history(per_run)

    def run_details(self, filter_name: str, item_title: str, run: str) -> RunDetails:
        """Full details of one named run.

        Raises:
            NotFound: If the item or the run does not exist.
            PathEscape: If *run* points outside the item's base directory.
            StaleCutoff: If the run is dated before the cutoff.
            InvalidFormat: If the run's report cannot be parsed.
        """
        item = self._item(filter_name, item_title)
        picked = self.picker.find_run(
            item.base_dir, item.compile_pattern(), run, item.format,
        )
        report, model = self.model_cache.load(picked.run_dir, item.format)
        recent = self._recent_runs(item, picked)
        histories = self._histories(recent)
        return RunDetails(
            run=picked,
            report=report,
            model=model,
            recent_runs=tuple(recent),
            histories=histories,
            feature_flaky_counts=flaky_counts_by_feature(report.features, histories),
        )

    def flaky_summary(self, filter_name: str, item_title: str) -> FlakySummary:
        """Flaky scenario count over the item's recent-run window."""
        item = self._item(filter_name, item_title)
        runs = self.picker.pick_latest_runs(
            item.base_dir, item.compile_pattern(), self.config.history_limit, item.format,
        )
        return compute_flaky_summary(
            [r.run_dir for r in runs], item.format, self.report_cache,
        )

    def resolve_asset(
        self, filter_name: str, item_title: str, run: str, path: str,
    ) -> Path:
        """Absolute path of a file inside a run directory.

        Raises:
            PathEscape: If *run* or *path* escapes its parent directory.
            NotFound: If the run or the file does not exist.
        """
        item = self._item(filter_name, item_title)
        run_dir = resolve_run_dir(item.base_dir, run)
        return resolve_asset_path(run_dir, path)
