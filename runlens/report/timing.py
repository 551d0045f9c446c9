"""Date and duration helpers for report artifacts.

Report timestamps are locale-formatted strings such as
``"Jan 14, 2026, 9:28:24 AM"`` (often with a narrow no-break space before
the meridiem).  They are stored verbatim in the model and parsed lazily
through the helpers here.
"""

from __future__ import annotations

import datetime
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from runlens.report.model import Report

# Accepted report timestamp layouts, tried in order
REPORT_TIME_FORMATS = (
    "%b %d, %Y, %I:%M:%S %p",
    "%b %d, %Y %I:%M:%S %p",
    "%m.%d.%Y %I:%M:%S %p",
)

_WHITESPACE = re.compile(r"\s+")

# Per-log elapsed time and wall-clock paragraphs embedded in log markup
LOG_TIMESTAMP_PATTERN = re.compile(
    r"<p[^>]*class=['\"]timestamp['\"][^>]*>([^<]+)</p>",
    re.IGNORECASE,
)
LOG_LOCALTIME_PATTERN = re.compile(
    r"<p[^>]*class=['\"]localtime['\"][^>]*>.*?</p>",
    re.IGNORECASE | re.DOTALL,
)


def parse_report_datetime(raw: str | None) -> datetime.datetime | None:
    """Parse a report timestamp string, or return None if it does not match."""
    if not raw:
        return None
    s = raw.replace("\u202f", " ").replace("\u00a0", " ")
    s = _WHITESPACE.sub(" ", s).strip()
    if not s:
        return None
    for fmt in REPORT_TIME_FORMATS:
        try:
            return datetime.datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def artifact_mtime(path: Path) -> datetime.datetime:
    """Return the artifact modification time as a naive local datetime."""
    return datetime.datetime.fromtimestamp(path.stat().st_mtime)


def resolve_report_datetime(
    report: Report | None, artifact: Path | None,
) -> datetime.datetime | None:
    """Resolve when a run happened.

    Resolution order: parsed run start time, parsed run end time, then the
    artifact's filesystem modification time.

    Args:
        report: Parsed report (may be None).
        artifact: Report artifact path (may be None).

    Returns:
        The resolved datetime, or None if nothing could be resolved.
    """
    if report is not None:
        start = parse_report_datetime(report.run.start_time)
        if start is not None:
            return start
        end = parse_report_datetime(report.run.end_time)
        if end is not None:
            return end
    if artifact is not None:
        try:
            return artifact_mtime(artifact)
        except OSError:
            return None
    return None


def resolve_report_date(
    report: Report | None, artifact: Path | None,
) -> datetime.date | None:
    """Date part of :func:`resolve_report_datetime`."""
    resolved = resolve_report_datetime(report, artifact)
    return resolved.date() if resolved is not None else None


def is_before_cutoff(
    report: Report | None,
    artifact: Path | None,
    cutoff: datetime.date | None,
) -> bool:
    """True when the report resolves to a date strictly before *cutoff*."""
    if cutoff is None:
        return False
    report_date = resolve_report_date(report, artifact)
    return report_date is not None and report_date < cutoff


def parse_elapsed_millis(raw: str) -> int | None:
    """Parse ``mm:ss``, ``h:mm:ss`` or ``h:mm:ss:ms`` into milliseconds."""
    parts = raw.strip().split(":")
    try:
        values = [int(p) for p in parts]
    except ValueError:
        return None
    if len(values) == 2:
        minutes, seconds = values
        return (minutes * 60 + seconds) * 1000
    if len(values) == 3:
        hours, minutes, seconds = values
        return (hours * 3600 + minutes * 60 + seconds) * 1000
    if len(values) == 4:
        hours, minutes, seconds, millis = values
        return (hours * 3600 + minutes * 60 + seconds) * 1000 + millis
    return None


def extract_log_duration(details: str) -> int | None:
    """Sum all elapsed-time paragraphs in a log's markup.

    Returns:
        Total milliseconds, or None when the markup carries no parseable
        elapsed time.
    """
    if not details:
        return None
    total = 0
    found = False
    for match in LOG_TIMESTAMP_PATTERN.finditer(details):
        millis = parse_elapsed_millis(match.group(1))
        if millis is not None:
            total += millis
            found = True
    return total if found else None


def strip_log_timestamps(details: str) -> str:
    """Remove elapsed-time and wall-clock paragraphs from log markup."""
    if not details:
        return ""
    cleaned = LOG_TIMESTAMP_PATTERN.sub("", details)
    cleaned = LOG_LOCALTIME_PATTERN.sub("", cleaned)
    return cleaned.strip()


def format_duration(delta: datetime.timedelta) -> str:
    """Format a duration as ``m:ss`` or ``h:mm:ss``."""
    total = max(0, int(delta.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
