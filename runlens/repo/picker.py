"""Select the most recent run directories under a base directory.

Candidates are the immediate subdirectories whose name fully matches a
pattern and that hold a report artifact.  They are ranked by the
artifact's modification time, newest first, and reports are parsed lazily
in that order so the common "latest run" query parses a single report.
"""

from __future__ import annotations

import datetime
import logging
import re
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterator

from runlens.assets import resolve_run_dir
from runlens.cache.report_cache import ReportCache
from runlens.cache.scan_cache import CachedCandidates, CandidateEntry, ScanCache
from runlens.errors import InvalidFormat, NotFound, RunLensError, StaleCutoff
from runlens.report.locator import LocatedReport, ReportFormat, locate_report
from runlens.report.model import Report
from runlens.report.parser import parse_report
from runlens.report.timing import is_before_cutoff, resolve_report_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PickedRun:
    """Snapshot of a selected run; the report carries no step logs."""

    run_dir: Path
    report_path: Path
    mtime_ns: int
    report: Report
    format: ReportFormat = ReportFormat.HTML

    @property
    def name(self) -> str:
        return self.run_dir.name

    @property
    def modified_at(self) -> datetime.datetime:
        return datetime.datetime.fromtimestamp(self.mtime_ns / 1e9)

    @property
    def located(self) -> LocatedReport:
        return LocatedReport(self.report_path, self.format)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "runDir": str(self.run_dir),
            "reportPath": str(self.report_path),
            "format": self.format.value,
            "lastModified": self.modified_at.isoformat(timespec="seconds"),
            "run": self.report.run.to_dict(),
            "totals": self.report.totals.to_dict(),
        }


def compile_pattern(
    pattern: str | re.Pattern[str],
    what: str = "directory name pattern",
) -> re.Pattern[str]:
    """Compile a directory-name pattern.

    Args:
        pattern: Regular expression source, or an already compiled pattern.
        what: Description of the pattern's origin for the error message.

    Raises:
        InvalidFormat: If the pattern is not a valid regular expression.
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidFormat(f"Invalid {what} '{pattern}': {e}") from e


def _mtime_date(mtime_ns: int) -> datetime.date:
    return datetime.datetime.fromtimestamp(mtime_ns / 1e9).date()


def _restat(cached: CachedCandidates) -> CachedCandidates:
    """Refresh cached candidates with live artifact mtimes.

    The scan cache only spares the directory listing; artifacts rewritten
    since the scan are re-ranked and vanished ones are dropped.
    """
    live: list[CandidateEntry] = []
    for candidate in cached.candidates:
        try:
            mtime_ns = candidate.report_path.stat().st_mtime_ns
        except OSError:
            logger.debug("Cached candidate vanished: path=%s", candidate.report_path)
            continue
        live.append(replace(candidate, mtime_ns=mtime_ns))
    live.sort(key=lambda c: (-c.mtime_ns, c.run_dir.name))
    return replace(cached, candidates=tuple(live))


class RunPicker:
    """Ranks and parses run directories.

    Args:
        report_cache: Cache used for parsing; None parses every time.
        scan_cache: Cache used for directory listings; None rescans.
        cutoff: Runs dated before this day are never selected.
    """

    def __init__(
        self,
        report_cache: ReportCache | None = None,
        scan_cache: ScanCache | None = None,
        cutoff: datetime.date | None = None,
    ) -> None:
        self.report_cache = report_cache
        self.scan_cache = scan_cache
        self.cutoff = cutoff

    def scan(
        self,
        base_dir: Path,
        pattern: str | re.Pattern[str],
        fmt: ReportFormat | None = None,
    ) -> CachedCandidates:
        """List matching run directories, newest artifact first.

        Directories without a report artifact count as matched but are not
        candidates.  Uses the scan cache while its entry is live.
        """
        base_dir = Path(base_dir)
        regex = compile_pattern(pattern)
        if self.scan_cache is not None:
            cached = self.scan_cache.get(base_dir, regex, fmt)
            if cached is not None:
                return _restat(cached)

        candidates: list[CandidateEntry] = []
        matched = 0
        try:
            children = sorted(base_dir.iterdir())
        except OSError as e:
            logger.warning("Cannot list base directory: dir=%s error=%s", base_dir, e)
            return CachedCandidates()

        for child in children:
            if not regex.fullmatch(child.name) or not child.is_dir():
                continue
            matched += 1
            try:
                located = locate_report(child, fmt)
                mtime_ns = located.path.stat().st_mtime_ns
            except (NotFound, OSError) as e:
                logger.debug("Skipping run directory: dir=%s error=%s", child, e)
                continue
            candidates.append(
                CandidateEntry(child, located.path, mtime_ns, located.format)
            )

        candidates.sort(key=lambda c: (-c.mtime_ns, c.run_dir.name))
        if self.scan_cache is not None:
            return self.scan_cache.put(base_dir, regex, tuple(candidates), matched, fmt)
        return CachedCandidates(tuple(candidates), matched, time.time())

    def _candidates(
        self,
        base_dir: Path,
        pattern: str | re.Pattern[str],
        fmt: ReportFormat | None,
    ) -> list[CandidateEntry]:
        """Scan result with candidates modified before the cutoff pruned."""
        candidates = list(self.scan(base_dir, pattern, fmt).candidates)
        if self.cutoff is None:
            return candidates
        return [c for c in candidates if _mtime_date(c.mtime_ns) >= self.cutoff]

    def load(self, candidate: CandidateEntry) -> PickedRun:
        """Parse a candidate's report (logs omitted) into a PickedRun.

        Raises:
            StaleCutoff: If the report is dated before the cutoff.
            RunLensError: If the report cannot be located or parsed.
            OSError: If the artifact vanished or cannot be read.
        """
        located = LocatedReport(candidate.report_path, candidate.format)
        mtime_ns = located.path.stat().st_mtime_ns
        if self.report_cache is not None:
            report = self.report_cache.get_report(located)
        else:
            report = parse_report(located, include_logs=False)
        if is_before_cutoff(report, located.path, self.cutoff):
            raise StaleCutoff(f"Run is dated before {self.cutoff}: {candidate.run_dir}")
        return PickedRun(candidate.run_dir, located.path, mtime_ns, report, located.format)

    def _iter_loaded(self, candidates: list[CandidateEntry]) -> Iterator[PickedRun]:
        for candidate in candidates:
            try:
                yield self.load(candidate)
            except (RunLensError, OSError) as e:
                logger.debug("Skipping run: dir=%s error=%s", candidate.run_dir, e)

    def pick_latest_runs(
        self,
        base_dir: Path,
        pattern: str | re.Pattern[str],
        limit: int,
        fmt: ReportFormat | None = None,
    ) -> list[PickedRun]:
        """Return up to *limit* runs, newest artifact first.

        Reports are parsed newest first and parsing stops as soon as
        *limit* runs are collected.  Unparseable and cutoff-excluded runs
        are skipped and do not count toward the limit.
        """
        if limit <= 0 or not Path(base_dir).is_dir():
            return []
        started = time.monotonic()
        candidates = self._candidates(base_dir, pattern, fmt)
        picked: list[PickedRun] = []
        for run in self._iter_loaded(candidates):
            picked.append(run)
            if len(picked) >= limit:
                break
        logger.info(
            "Picked runs: base_dir=%s runs=%d candidates=%d totalMs=%d",
            base_dir, len(picked), len(candidates),
            int((time.monotonic() - started) * 1000),
        )
        return picked

    def pick_latest_fast(
        self,
        base_dir: Path,
        pattern: str | re.Pattern[str],
        fmt: ReportFormat | None = None,
    ) -> PickedRun | None:
        """Newest run, parsing only the newest candidate unless it fails."""
        runs = self.pick_latest_runs(base_dir, pattern, 1, fmt)
        return runs[0] if runs else None

    def pick_runs_between(
        self,
        base_dir: Path,
        pattern: str | re.Pattern[str],
        start: datetime.datetime,
        end: datetime.datetime,
        fmt: ReportFormat | None = None,
    ) -> list[PickedRun]:
        """Runs whose report datetime falls in ``[start, end]``, newest first.

        A run's artifact is written after the run starts, so candidates
        modified before *start* are not parsed at all.
        """
        if end < start or not Path(base_dir).is_dir():
            return []
        start_ns = int(start.timestamp() * 1e9)
        candidates = [
            c for c in self._candidates(base_dir, pattern, fmt)
            if c.mtime_ns >= start_ns
        ]
        picked: list[PickedRun] = []
        for run in self._iter_loaded(candidates):
            resolved = resolve_report_datetime(run.report, run.report_path)
            if resolved is not None and start <= resolved <= end:
                picked.append(run)
        return picked

    def find_run(
        self,
        base_dir: Path,
        pattern: str | re.Pattern[str],
        run_name: str,
        fmt: ReportFormat | None = None,
    ) -> PickedRun:
        """Load one named run directory.

        Raises:
            PathEscape: If *run_name* points outside *base_dir*.
            NotFound: If no run directory of that name matches the pattern.
            StaleCutoff: If the run is dated before the cutoff.
            InvalidFormat: If its report cannot be parsed.
        """
        regex = compile_pattern(pattern)
        run_dir = resolve_run_dir(Path(base_dir), run_name)
        if not regex.fullmatch(run_dir.name):
            raise NotFound(f"Run not found: {run_name}")
        located = locate_report(run_dir, fmt)
        candidate = CandidateEntry(
            run_dir, located.path, located.path.stat().st_mtime_ns, located.format,
        )
        return self.load(candidate)
