"""Cross-run scenario history and flaky detection.

A scenario's identity across runs is its ScenarioKey: the cleaned
breadcrumb path joined with ``" / "``, then ``" :: "``, then the
disambiguated scenario name.  The key depends on nothing else, so the same
scenario matches whichever format a run was exported in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from runlens.errors import RunLensError
from runlens.report.locator import ReportFormat, locate_report
from runlens.report.model import Feature
from runlens.report.parser import parse_features
from runlens.report.status import FAIL, KNOWNBUG, PASS, normalize_comparison_status

if TYPE_CHECKING:
    from runlens.cache.report_cache import ReportCache

logger = logging.getLogger(__name__)

PATH_SEP = " / "
KEY_SEP = " :: "


def feature_path_key(path: Iterable[str]) -> str:
    """Join the non-blank breadcrumb segments with the path separator."""
    return PATH_SEP.join(p.strip() for p in path if p and p.strip())


def scenario_key(path: Iterable[str], scenario_name: str) -> str:
    """Build the canonical cross-run identity of a scenario.

    Args:
        path: Feature breadcrumb path (last element is the feature title).
        scenario_name: Disambiguated scenario name (``"Login #2"``).

    Returns:
        ``"<path> :: <name>"``; either side alone when the other is blank,
        or ``""`` when both are blank.
    """
    feature_key = feature_path_key(path)
    scenario = (scenario_name or "").strip()
    if not feature_key:
        return scenario
    if not scenario:
        return feature_key
    return f"{feature_key}{KEY_SEP}{scenario}"


def scenario_statuses(features: Iterable[Feature]) -> dict[str, str]:
    """Map every scenario's key to its raw status.

    Non-scenario feature children carry no identity and are left out.
    """
    out: dict[str, str] = {}
    for feature in features:
        for scenario in feature.scenarios:
            if not scenario.is_scenario:
                continue
            key = scenario_key(feature.path, scenario.name)
            if key:
                out[key] = scenario.status
    return out


def is_flaky(statuses: Iterable[str | None]) -> bool:
    """True when a history holds at least one PASS and one FAIL or KNOWNBUG.

    SKIP, INFO and unrecognized statuses never make a scenario flaky.
    """
    saw_pass = False
    saw_fail = False
    for raw in statuses:
        status = normalize_comparison_status(raw)
        if status == PASS:
            saw_pass = True
        elif status in (FAIL, KNOWNBUG):
            saw_fail = True
    return saw_pass and saw_fail


@dataclass(frozen=True)
class FlakySummary:
    """Flaky identity count over the distinct identities observed."""

    flaky_scenarios: int = 0
    total_scenarios: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "flakyScenarios": self.flaky_scenarios,
            "totalScenarios": self.total_scenarios,
        }


def load_run_statuses(
    run_dir: Path,
    fmt: ReportFormat | None = None,
    report_cache: ReportCache | None = None,
) -> dict[str, str]:
    """Read one run's scenario statuses, through the report cache if given.

    Raises:
        RunLensError: If the run has no parseable report.
        OSError: If the artifact cannot be read.
    """
    located = locate_report(Path(run_dir), fmt)
    if report_cache is not None:
        return scenario_statuses(report_cache.get_features(located))
    return scenario_statuses(parse_features(located, include_logs=False))


def compute_flaky_summary(
    run_dirs: Iterable[Path],
    fmt: ReportFormat | None = None,
    report_cache: ReportCache | None = None,
) -> FlakySummary:
    """Count flaky scenario identities across *run_dirs*.

    Runs that cannot be located or parsed are skipped entirely; they add
    no status to any history.
    """
    history: dict[str, list[str]] = {}
    for run_dir in run_dirs:
        if run_dir is None:
            continue
        try:
            statuses = load_run_statuses(run_dir, fmt, report_cache)
        except (RunLensError, OSError) as e:
            logger.debug("Skipping run for flaky summary: dir=%s error=%s", run_dir, e)
            continue
        for key, status in statuses.items():
            history.setdefault(key, []).append(status)

    flaky = sum(1 for statuses in history.values() if is_flaky(statuses))
    return FlakySummary(flaky_scenarios=flaky, total_scenarios=len(history))


@dataclass(frozen=True)
class RunStatus:
    """A scenario's status in one named run."""

    run: str
    status: str

    def to_dict(self) -> dict[str, Any]:
        return {"run": self.run, "status": self.status}


@dataclass(frozen=True)
class ScenarioHistory:
    """A scenario's statuses across recent runs, most recent first."""

    key: str
    statuses: tuple[RunStatus, ...] = field(default_factory=tuple)

    @property
    def flaky(self) -> bool:
        return is_flaky(rs.status for rs in self.statuses)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "flaky": self.flaky,
            "statuses": [rs.to_dict() for rs in self.statuses],
        }


def build_scenario_history(
    runs: Sequence[tuple[str, Mapping[str, str]]],
) -> dict[str, ScenarioHistory]:
    """Merge per-run status maps into per-scenario histories.

    Args:
        runs: ``(run name, scenario key -> status)`` pairs, most recent
            first.  A scenario absent from a run has no entry for it.

    Returns:
        Histories keyed by ScenarioKey, in first-seen order.
    """
    merged: dict[str, list[RunStatus]] = {}
    for run_name, statuses in runs:
        for key, status in statuses.items():
            merged.setdefault(key, []).append(RunStatus(run_name, status))
    return {key: ScenarioHistory(key, tuple(items)) for key, items in merged.items()}


def flaky_counts_by_feature(
    features: Iterable[Feature],
    histories: Mapping[str, ScenarioHistory],
) -> dict[str, int]:
    """Count flaky scenarios per feature, keyed by the feature path key."""
    counts: dict[str, int] = {}
    for feature in features:
        flaky = 0
        for scenario in feature.scenarios:
            if not scenario.is_scenario:
                continue
            hist = histories.get(scenario_key(feature.path, scenario.name))
            if hist is not None and hist.flaky:
                flaky += 1
        key = feature_path_key(feature.path)
        counts[key] = counts.get(key, 0) + flaky
    return counts
