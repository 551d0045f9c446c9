"""Report artifacts: location, parsing and the common report model."""

from runlens.report.locator import LocatedReport, ReportFormat, locate_report
from runlens.report.model import (
    Feature,
    Log,
    NodeKind,
    Report,
    Run,
    Scenario,
    Step,
    Totals,
)
from runlens.report.parser import parse_features, parse_report, parse_summary

__all__ = [
    "Feature",
    "LocatedReport",
    "Log",
    "NodeKind",
    "Report",
    "ReportFormat",
    "Run",
    "Scenario",
    "Step",
    "Totals",
    "locate_report",
    "parse_features",
    "parse_report",
    "parse_summary",
]
