"""Format dispatch for report parsing.

The format is fixed when the artifact is located; everything downstream
of these two functions sees only the common model.
"""

from __future__ import annotations

from runlens.report.export_report import parse_export_report, parse_export_summary
from runlens.report.html_report import (
    parse_html_features,
    parse_html_report,
    parse_html_summary,
)
from runlens.report.locator import LocatedReport, ReportFormat
from runlens.report.model import Feature, Report


def parse_report(located: LocatedReport, include_logs: bool = True) -> Report:
    """Parse a located artifact into a full Report.

    Args:
        located: Artifact path and format.
        include_logs: When False, steps carry no logs.

    Raises:
        InvalidFormat: If the artifact does not have the expected shape.
        OSError: If the artifact cannot be read.
    """
    if located.format is ReportFormat.EXPORT:
        return parse_export_report(located.path, include_logs=include_logs)
    return parse_html_report(located.path, include_logs=include_logs)


def parse_summary(located: LocatedReport) -> Report:
    """Parse only run times and totals (features are empty)."""
    if located.format is ReportFormat.EXPORT:
        return parse_export_summary(located.path)
    return parse_html_summary(located.path)


def parse_features(located: LocatedReport, include_logs: bool = False) -> tuple[Feature, ...]:
    """Parse only the feature list."""
    if located.format is ReportFormat.EXPORT:
        return parse_export_report(located.path, include_logs=include_logs).features
    return parse_html_features(located.path, include_logs=include_logs)
