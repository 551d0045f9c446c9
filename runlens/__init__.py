"""runlens: latest runs, run trees and flaky scenarios from BDD test reports."""

from runlens.config import RunLensConfig
from runlens.errors import InvalidFormat, NotFound, PathEscape, RunLensError, StaleCutoff
from runlens.service import RunDetails, RunLens

__all__ = [
    "InvalidFormat",
    "NotFound",
    "PathEscape",
    "RunDetails",
    "RunLens",
    "RunLensConfig",
    "RunLensError",
    "StaleCutoff",
]
