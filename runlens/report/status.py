"""Status normalization for report values.

Two normalizations exist on purpose.  Rendering keeps unrecognized values
(upper-cased) so the UI can show whatever the reporting tool emitted.
Cross-run comparison collapses them to ``UNKNOWN`` so flakiness is only ever
decided from recognized statuses.
"""

from __future__ import annotations

import re

PASS = "PASS"
FAIL = "FAIL"
SKIP = "SKIP"
KNOWNBUG = "KNOWNBUG"
INFO = "INFO"
UNKNOWN = "UNKNOWN"

# Statuses that count toward Totals
COUNTED_STATUSES = (PASS, FAIL, KNOWNBUG, SKIP)

_LETTERS_ONLY = re.compile(r"[^A-Z]")


def _canonical(raw: str) -> str | None:
    """Map a raw status to a recognized value, or None if unrecognized."""
    s = raw.strip().upper()
    if s in (PASS, FAIL, SKIP, INFO):
        return s
    if s == "WARNING":
        return KNOWNBUG
    # "Known Bug", "known_bug", "KNOWN-BUG", "knownbug" ...
    if _LETTERS_ONLY.sub("", s) == KNOWNBUG:
        return KNOWNBUG
    return None


def normalize_status(raw: str | None) -> str:
    """Normalize a status for rendering.

    Recognized values map to their canonical form; anything else is
    returned upper-cased and stripped, so it can still be displayed.

    Args:
        raw: Status string as found in the artifact.

    Returns:
        Canonical status, the upper-cased raw value, or ``""`` for None
        and other non-string values.
    """
    if not isinstance(raw, str):
        return ""
    canonical = _canonical(raw)
    if canonical is not None:
        return canonical
    return raw.strip().upper()


def normalize_comparison_status(raw: str | None) -> str:
    """Normalize a status for cross-run comparison.

    Unrecognized values (including empty, None and non-strings) become
    ``UNKNOWN``.
    """
    if not isinstance(raw, str):
        return UNKNOWN
    canonical = _canonical(raw)
    return canonical if canonical is not None else UNKNOWN
