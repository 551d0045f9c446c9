"""Common report model shared by both artifact formats.

Both parsers produce the same immutable value types, so the caches, the
run-model builder and the history analyzer never need to know which format
a run was read from.  Values are frozen; a re-parse produces a new value.

Serialized forms (``to_dict``) use the camel-case keys of the reporting
tool's own summary export so cached entries stay readable.
"""

from __future__ import annotations

import datetime
import enum
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Sequence

from runlens.report.status import (
    FAIL,
    KNOWNBUG,
    PASS,
    SKIP,
    normalize_status,
)
from runlens.report.timing import parse_report_datetime

# Breadcrumb delimiter used in feature names ("Suite ← Area ← Feature")
ARROW = "←"

# Gherkin keywords recognized at the start of a step name
STEP_KEYWORDS = ("Given", "When", "Then", "And", "But", "*")

_REMOTE_MEDIA_PREFIXES = ("http://", "https://", "data:", "blob:")


class NodeKind(str, enum.Enum):
    """Kinds of node in a navigable run tree."""

    ROOT = "ROOT"
    GROUP = "GROUP"
    FEATURE = "FEATURE"
    SCENARIO = "SCENARIO"
    STEP = "STEP"
    HOOK = "HOOK"
    NODE = "NODE"


def parse_arrow_path(name: str | None) -> tuple[str, ...]:
    """Split a feature name on the arrow delimiter into breadcrumb segments.

    Blank segments are dropped.  A name without an arrow is a one-element
    path; a blank name is an empty path.
    """
    if not name:
        return ()
    if ARROW not in name:
        stripped = name.strip()
        return (stripped,) if stripped else ()
    return tuple(p.strip() for p in name.split(ARROW) if p.strip())


def split_step_keyword(
    name: str | None, keyword: str = "",
) -> tuple[str, str]:
    """Split a leading Gherkin keyword off a step name.

    Args:
        name: Step name, e.g. ``"When I log in"``.
        keyword: Keyword already known from elsewhere (e.g. the export's
            node type); it is stripped from the name when present.

    Returns:
        ``(keyword, text)``; the keyword is ``""`` when none is found.
    """
    text = (name or "").strip()
    if keyword:
        if text.startswith(keyword + " "):
            text = text[len(keyword) + 1:].strip()
        return keyword, text
    for kw in STEP_KEYWORDS:
        if text.startswith(kw + " "):
            return kw, text[len(kw) + 1:].strip()
    return "", text


def is_local_media_path(path: str | None) -> bool:
    """True for run-relative media; remote URLs and inline data are not local."""
    if not path or not path.strip():
        return False
    return not path.strip().lower().startswith(_REMOTE_MEDIA_PREFIXES)


def normalize_feature_path(path: Sequence[str], title: str) -> tuple[str, ...]:
    """Return *path* with its last element replaced by *title*.

    An empty path becomes ``(title,)`` (or ``()`` when the title is blank).
    """
    cleaned = [p.strip() for p in path if p and p.strip()]
    title = title.strip()
    if not cleaned:
        return (title,) if title else ()
    if title:
        cleaned[-1] = title
    return tuple(cleaned)


@dataclass(frozen=True)
class Log:
    """One log entry attached to a step.

    ``details`` is the raw detail markup with any local image stripped.
    ``media_path`` is a run-relative path; remote and inline references are
    never extracted and stay inside ``details``.
    """

    details: str
    media_path: str | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "details": self.details,
            "mediaPath": self.media_path,
            "durationMs": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Log:
        return cls(
            details=data.get("details") or "",
            media_path=data.get("mediaPath"),
            duration_ms=data.get("durationMs"),
        )


@dataclass(frozen=True)
class Step:
    """A step (or hook) inside a scenario."""

    keyword: str
    text: str
    status: str
    logs: tuple[Log, ...] = ()
    kind: NodeKind = NodeKind.STEP
    # Nested nodes, kept as they appear in the export
    children: tuple[Step, ...] = ()

    @property
    def duration_ms(self) -> int | None:
        """Sum of the logs' durations, or None if no log carries one."""
        durations = [lg.duration_ms for lg in self.logs if lg.duration_ms is not None]
        return sum(durations) if durations else None

    @property
    def media_path(self) -> str | None:
        """First local media path found in the step's logs."""
        for lg in self.logs:
            if lg.media_path:
                return lg.media_path
        return None

    @property
    def label(self) -> str:
        """Keyword and text joined for display."""
        return f"{self.keyword} {self.text}".strip()

    def with_appended_logs(self, logs: Iterable[Log]) -> Step:
        """Return a copy of this step with *logs* appended."""
        return replace(self, logs=self.logs + tuple(logs))

    def without_logs(self) -> Step:
        return replace(
            self, logs=(), children=tuple(c.without_logs() for c in self.children),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "text": self.text,
            "status": self.status,
            "kind": self.kind.value,
            "logs": [lg.to_dict() for lg in self.logs],
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Step:
        return cls(
            keyword=data.get("keyword") or "",
            text=data.get("text") or "",
            status=data.get("status") or "",
            logs=tuple(Log.from_dict(lg) for lg in data.get("logs") or []),
            kind=NodeKind(data.get("kind") or NodeKind.STEP.value),
            children=tuple(Step.from_dict(c) for c in data.get("children") or []),
        )


@dataclass(frozen=True)
class Scenario:
    """A scenario; ``name`` is already disambiguated within its feature.

    Feature children that are not scenarios (backgrounds, untyped nodes)
    are kept with ``kind`` set to ``NODE``; they carry no scenario identity.
    """

    name: str
    status: str
    steps: tuple[Step, ...] = ()
    original_name: str = ""
    kind: NodeKind = NodeKind.SCENARIO

    @property
    def is_scenario(self) -> bool:
        return self.kind is NodeKind.SCENARIO

    @property
    def display_name(self) -> str:
        return self.original_name or self.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "originalName": self.original_name,
            "status": self.status,
            "kind": self.kind.value,
            "steps": [s.to_dict() for s in self.steps],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Scenario:
        return cls(
            name=data.get("name") or "",
            status=data.get("status") or "",
            steps=tuple(Step.from_dict(s) for s in data.get("steps") or []),
            original_name=data.get("originalName") or "",
            kind=NodeKind(data.get("kind") or NodeKind.SCENARIO.value),
        )


def disambiguate_scenarios(scenarios: Iterable[Scenario]) -> tuple[Scenario, ...]:
    """Suffix repeated scenario names with ``" #k"`` in document order.

    Only names that occur more than once are suffixed, so unique scenarios
    keep their plain name; non-scenario nodes are never counted.
    Parameterized scenarios expanded from one template therefore get
    distinct, order-stable names.
    """
    items = list(scenarios)
    counts = Counter(s.name.strip() for s in items if s.is_scenario)
    seen: Counter[str] = Counter()
    out: list[Scenario] = []
    for sc in items:
        base = sc.name.strip()
        if sc.is_scenario:
            seen[base] += 1
        if sc.is_scenario and counts[base] > 1:
            out.append(replace(sc, name=f"{base} #{seen[base]}", original_name=base))
        else:
            out.append(replace(sc, name=base, original_name=base))
    return tuple(out)


@dataclass(frozen=True)
class Feature:
    """A feature with its breadcrumb path and scenarios.

    ``path``'s last element, when the path is non-empty, is the display
    title.  ``description`` is None only for values restored from a cache
    entry written before descriptions were recorded.
    """

    name: str
    path: tuple[str, ...]
    status: str
    tags: tuple[str, ...] = ()
    description: str | None = ""
    scenarios: tuple[Scenario, ...] = ()
    start_time: str = ""
    end_time: str = ""

    @property
    def title(self) -> str:
        return self.path[-1] if self.path else self.name.strip()

    @property
    def group_path(self) -> tuple[str, ...]:
        return self.path[:-1]

    def without_logs(self) -> Feature:
        return replace(
            self,
            scenarios=tuple(
                replace(sc, steps=tuple(st.without_logs() for st in sc.steps))
                for sc in self.scenarios
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": list(self.path),
            "status": self.status,
            "tags": list(self.tags),
            "description": self.description,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "scenarios": [sc.to_dict() for sc in self.scenarios],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Feature:
        return cls(
            name=data.get("name") or "",
            path=tuple(data.get("path") or ()),
            status=data.get("status") or "",
            tags=tuple(data.get("tags") or ()),
            description=data.get("description"),
            scenarios=tuple(Scenario.from_dict(sc) for sc in data.get("scenarios") or []),
            start_time=data.get("startTime") or "",
            end_time=data.get("endTime") or "",
        )


@dataclass(frozen=True)
class Run:
    """Run timing as locale-formatted strings, parsed on demand."""

    start_time: str = ""
    end_time: str = ""

    def started_at(self) -> datetime.datetime | None:
        return parse_report_datetime(self.start_time)

    def ended_at(self) -> datetime.datetime | None:
        return parse_report_datetime(self.end_time)

    def duration(self) -> datetime.timedelta | None:
        """End minus start, or None if either is missing or end < start."""
        start = self.started_at()
        end = self.ended_at()
        if start is None or end is None or end < start:
            return None
        return end - start

    def to_dict(self) -> dict[str, Any]:
        return {"startTime": self.start_time, "endTime": self.end_time}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Run:
        data = data or {}
        return cls(
            start_time=data.get("startTime") or "",
            end_time=data.get("endTime") or "",
        )


@dataclass(frozen=True)
class Totals:
    """Pass/fail/known-bug/skip counts.

    ``total`` and ``pass_rate`` are always derived through
    :meth:`from_counts`, whichever path produced the counts.
    """

    passed: int = 0
    failed: int = 0
    known_bug: int = 0
    skipped: int = 0
    total: int = 0
    pass_rate: float = 0.0

    @classmethod
    def from_counts(
        cls, passed: int, failed: int, known_bug: int, skipped: int,
    ) -> Totals:
        total = passed + failed + known_bug + skipped
        pass_rate = passed / total if total > 0 else 0.0
        return cls(passed, failed, known_bug, skipped, total, pass_rate)

    @classmethod
    def tally(cls, features: Iterable[Feature]) -> Totals:
        """Count features by normalized status."""
        counts: Counter[str] = Counter(normalize_status(f.status) for f in features)
        return cls.from_counts(counts[PASS], counts[FAIL], counts[KNOWNBUG], counts[SKIP])

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": self.passed,
            "fail": self.failed,
            "knownBug": self.known_bug,
            "skip": self.skipped,
            "total": self.total,
            "passRate": self.pass_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Totals:
        data = data or {}
        return cls.from_counts(
            int(data.get("pass") or 0),
            int(data.get("fail") or 0),
            int(data.get("knownBug") or 0),
            int(data.get("skip") or 0),
        )


@dataclass(frozen=True)
class Report:
    """A parsed report: run timing, totals and ordered features."""

    run: Run = field(default_factory=Run)
    totals: Totals = field(default_factory=Totals)
    features: tuple[Feature, ...] = ()

    def without_logs(self) -> Report:
        return replace(self, features=tuple(f.without_logs() for f in self.features))

    def to_dict(self) -> dict[str, Any]:
        return {
            "run": self.run.to_dict(),
            "totals": self.totals.to_dict(),
            "features": [f.to_dict() for f in self.features],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Report:
        return cls(
            run=Run.from_dict(data.get("run")),
            totals=Totals.from_dict(data.get("totals")),
            features=tuple(Feature.from_dict(f) for f in data.get("features") or []),
        )
