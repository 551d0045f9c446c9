"""Locate the report artifact inside a run directory.

A run directory holds one artifact per format: the self-contained HTML
report (the largest ``.html``/``.htm`` file directly inside the directory)
or the structured JSON export under a fixed file name.  The format is
decided here, once, and travels with the located artifact.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

from runlens.errors import NotFound

# Fixed file names of the structured export and its optional summary
EXPORT_FILENAME = "extent.json"
EXPORT_SUMMARY_FILENAME = "extent.summary.json"

HTML_SUFFIXES = frozenset({".html", ".htm"})


class ReportFormat(str, enum.Enum):
    """Artifact formats understood by the parsers."""

    HTML = "html"
    EXPORT = "json"

    @classmethod
    def parse(cls, value: str | None) -> ReportFormat | None:
        """Map a config value to a format; ``None``/``"auto"`` mean auto-detect.

        Raises:
            ValueError: If the value names no known format.
        """
        if value is None:
            return None
        v = value.strip().lower()
        if v in ("", "auto"):
            return None
        for fmt in cls:
            if fmt.value == v or fmt.name.lower() == v:
                return fmt
        raise ValueError(
            f"Unknown report format '{value}'. Must be one of: "
            f"auto, {', '.join(f.value for f in cls)}"
        )


@dataclass(frozen=True)
class LocatedReport:
    """A report artifact together with the format it must be parsed as."""

    path: Path
    format: ReportFormat

    @property
    def run_dir(self) -> Path:
        return self.path.parent


def _safe_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return -1


def find_report_html(run_dir: Path) -> Path | None:
    """Return the largest HTML file directly inside *run_dir*, if any."""
    if not run_dir.is_dir():
        return None
    try:
        candidates = [
            p for p in run_dir.iterdir()
            if p.suffix.lower() in HTML_SUFFIXES and p.is_file()
        ]
    except OSError:
        return None
    if not candidates:
        return None
    return max(candidates, key=_safe_size)


def find_export_json(run_dir: Path) -> Path | None:
    """Return the structured export file in *run_dir*, if present."""
    candidate = run_dir / EXPORT_FILENAME
    return candidate if candidate.is_file() else None


def locate_report(
    run_dir: Path, fmt: ReportFormat | None = None,
) -> LocatedReport:
    """Find the report artifact for *run_dir*.

    Args:
        run_dir: Run directory (not searched recursively).
        fmt: Format to look for, or None to prefer the structured export
            and fall back to the HTML report.

    Returns:
        The located artifact.

    Raises:
        NotFound: If no artifact of the requested format exists.
    """
    run_dir = Path(run_dir)
    if fmt in (None, ReportFormat.EXPORT):
        export = find_export_json(run_dir)
        if export is not None:
            return LocatedReport(export, ReportFormat.EXPORT)
        if fmt is ReportFormat.EXPORT:
            raise NotFound(f"Missing {EXPORT_FILENAME} in: {run_dir}")

    html = find_report_html(run_dir)
    if html is None:
        raise NotFound(f"Missing HTML report in: {run_dir}")
    return LocatedReport(html, ReportFormat.HTML)
