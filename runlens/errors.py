"""Error taxonomy for run discovery, parsing, and asset resolution.

Every error raised by the library derives from ``RunLensError`` so callers
that aggregate over many runs can skip a bad candidate with a single
``except`` clause, while single-run callers can still distinguish the
failure kind.
"""

from __future__ import annotations


class RunLensError(Exception):
    """Base class for all runlens errors."""


class NotFound(RunLensError, LookupError):
    """A report artifact, run directory, or configured name does not exist."""


class InvalidFormat(RunLensError, ValueError):
    """An artifact exists but does not have the expected shape."""


class PathEscape(RunLensError, PermissionError):
    """A relative path resolves outside of its authorized base directory."""


class StaleCutoff(RunLensError):
    """A report is dated before the configured cutoff date.

    Selection treats this as "the run does not exist" rather than a hard
    failure.
    """
