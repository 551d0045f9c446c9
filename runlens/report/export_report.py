"""Parser for the structured JSON export.

The export is an ordered array of feature nodes.  Every node carries a
``bddType`` tag (``com.aventstack....Feature``, ``...Scenario``,
``...Given`` ...) that classifies it; ``children`` nest scenarios under
features and steps under scenarios.  An optional companion summary file
next to the export carries the explicit totals and run times.
"""

from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any

from runlens.errors import InvalidFormat
from runlens.report.locator import EXPORT_SUMMARY_FILENAME
from runlens.report.model import (
    Feature,
    Log,
    NodeKind,
    Report,
    Run,
    Scenario,
    Step,
    Totals,
    disambiguate_scenarios,
    is_local_media_path,
    normalize_feature_path,
    parse_arrow_path,
    split_step_keyword,
)
from runlens.report.status import normalize_status
from runlens.report.timing import (
    extract_log_duration,
    parse_report_datetime,
    strip_log_timestamps,
)

AFTER_STEP = "AFTER_STEP"

# bddType suffix -> step keyword
_STEP_TYPES = {
    "Given": "Given",
    "When": "When",
    "Then": "Then",
    "And": "And",
    "But": "But",
}
_HOOK_TYPE = "Asterisk"
_OUTLINE_TYPE = "ScenarioOutline"


def _type_suffix(bdd_type: str | None) -> str:
    if not bdd_type:
        return ""
    return bdd_type.rsplit(".", 1)[-1]


def classify_node(bdd_type: str | None) -> NodeKind:
    """Map a node's type tag to a node kind; unknown tags are ``NODE``."""
    suffix = _type_suffix(bdd_type)
    if suffix == "Feature":
        return NodeKind.FEATURE
    if suffix in ("Scenario", _OUTLINE_TYPE):
        return NodeKind.SCENARIO
    if suffix in _STEP_TYPES:
        return NodeKind.STEP
    if suffix == _HOOK_TYPE:
        return NodeKind.HOOK
    return NodeKind.NODE


def _text(node: dict[str, Any], key: str) -> str:
    value = node.get(key)
    return value.strip() if isinstance(value, str) else ""


def _pick_name(node: dict[str, Any]) -> str:
    return _text(node, "displayName") or _text(node, "name")


def _status(node: dict[str, Any]) -> str:
    value = node.get("status")
    return normalize_status(value if isinstance(value, str) else None)


def _children(node: dict[str, Any]) -> list[dict[str, Any]]:
    kids = node.get("children")
    if not isinstance(kids, list):
        return []
    return [k for k in kids if isinstance(k, dict)]


def read_path_segments(node: dict[str, Any]) -> tuple[str, ...]:
    """Breadcrumb from the explicit ``path`` field, else from the arrow name."""
    explicit = node.get("path")
    if isinstance(explicit, list):
        segments = tuple(
            s.strip() for s in explicit if isinstance(s, str) and s.strip()
        )
        if segments:
            return segments
    return parse_arrow_path(_text(node, "name"))


def _read_tags(node: dict[str, Any]) -> tuple[str, ...]:
    raw = node.get("categorySet")
    if not isinstance(raw, list):
        return ()
    tags: list[str] = []
    for item in raw:
        if isinstance(item, dict):
            item = item.get("name")
        if isinstance(item, str) and item.strip():
            tags.append(item.strip())
    return tuple(dict.fromkeys(tags))


def read_logs(node: dict[str, Any]) -> list[Log]:
    """Read a node's log entries, extracting local media references."""
    raw_logs = node.get("logs")
    if not isinstance(raw_logs, list):
        return []
    logs: list[Log] = []
    for entry in raw_logs:
        if not isinstance(entry, dict):
            continue
        details = entry.get("details") if isinstance(entry.get("details"), str) else ""
        media_path = None
        media = entry.get("media")
        if isinstance(media, dict):
            ref = media.get("path")
            if isinstance(ref, str) and is_local_media_path(ref):
                media_path = ref.strip()
        logs.append(Log(
            details=strip_log_timestamps(details),
            media_path=media_path,
            duration_ms=extract_log_duration(details),
        ))
    return logs


def _parse_steps(parent_node: dict[str, Any], include_logs: bool) -> tuple[Step, ...]:
    """Parse a node's children as steps, recursing into nested nodes."""
    steps: list[Step] = []
    for child in _children(parent_node):
        suffix = _type_suffix(child.get("bddType"))
        kind = classify_node(child.get("bddType"))
        if kind is NodeKind.STEP:
            keyword = _STEP_TYPES[suffix]
        elif kind is NodeKind.HOOK:
            keyword = "*"
        else:
            kind = NodeKind.NODE
            keyword = ""

        logs = read_logs(child) if include_logs else []
        if _text(child, "description").upper() == AFTER_STEP:
            if include_logs and steps:
                steps[-1] = steps[-1].with_appended_logs(logs)
            continue

        keyword, text = split_step_keyword(_pick_name(child), keyword)
        steps.append(Step(
            keyword=keyword,
            text=text,
            status=_status(child),
            logs=tuple(logs),
            kind=kind,
            children=_parse_steps(child, include_logs),
        ))
    return tuple(steps)


def _parse_scenario(
    node: dict[str, Any],
    include_logs: bool,
    kind: NodeKind = NodeKind.SCENARIO,
) -> Scenario:
    return Scenario(
        name=_pick_name(node),
        status=_status(node),
        steps=_parse_steps(node, include_logs),
        kind=kind,
    )


def _parse_scenarios(feature_node: dict[str, Any], include_logs: bool) -> tuple[Scenario, ...]:
    scenarios: list[Scenario] = []
    for child in _children(feature_node):
        if classify_node(child.get("bddType")) is not NodeKind.SCENARIO:
            scenarios.append(_parse_scenario(child, include_logs, NodeKind.NODE))
            continue
        if _type_suffix(child.get("bddType")) == _OUTLINE_TYPE:
            scenarios.extend(
                _parse_scenario(example, include_logs)
                for example in _children(child)
                if classify_node(example.get("bddType")) is NodeKind.SCENARIO
            )
            continue
        scenarios.append(_parse_scenario(child, include_logs))
    return disambiguate_scenarios(scenarios)


def parse_feature(node: dict[str, Any], include_logs: bool = True) -> Feature:
    """Parse one top-level export node into a Feature."""
    name = _text(node, "name")
    segments = read_path_segments(node)
    title = _text(node, "displayName") or (segments[-1] if segments else name)
    return Feature(
        name=name,
        path=normalize_feature_path(segments, title),
        status=_status(node),
        tags=_read_tags(node),
        description=_text(node, "description"),
        scenarios=_parse_scenarios(node, include_logs),
        start_time=_text(node, "startTime"),
        end_time=_text(node, "endTime"),
    )


def load_export(path: Path) -> list[Any]:
    """Load the export's node array.

    Raises:
        InvalidFormat: If the file is not UTF-8 JSON or its root is not an
            array.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidFormat(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, list):
        raise InvalidFormat(f"{path} root is not an array (expected Feature[])")
    return data


def read_companion_summary(export_path: Path) -> tuple[Run, Totals | None] | None:
    """Read the summary file next to the export, if it exists and is valid.

    Returns:
        ``(run, totals)`` where totals is None when the summary has no
        counters, or None when there is no usable summary file.
    """
    summary_path = Path(export_path).parent / EXPORT_SUMMARY_FILENAME
    if not summary_path.is_file():
        return None
    try:
        data = json.loads(summary_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError):
        return None
    if not isinstance(data, dict):
        return None

    raw_run = data.get("run") if isinstance(data.get("run"), dict) else {}
    run = Run(
        start_time=_text(raw_run, "startTime"),
        end_time=_text(raw_run, "endTime"),
    )
    raw_totals = data.get("totals")
    totals = None
    if isinstance(raw_totals, dict) and any(
        k in raw_totals for k in ("pass", "fail", "knownBug", "skip")
    ):
        try:
            totals = Totals.from_dict(raw_totals)
        except (TypeError, ValueError):
            # Non-numeric counters; tally from the export instead
            totals = None
    return run, totals


def _run_from_features(features: tuple[Feature, ...]) -> Run:
    """Earliest feature start and latest feature end."""
    starts: list[tuple[datetime.datetime, str]] = []
    ends: list[tuple[datetime.datetime, str]] = []
    for f in features:
        st = parse_report_datetime(f.start_time)
        if st is not None:
            starts.append((st, f.start_time))
        et = parse_report_datetime(f.end_time)
        if et is not None:
            ends.append((et, f.end_time))
    return Run(
        start_time=min(starts)[1] if starts else "",
        end_time=max(ends)[1] if ends else "",
    )


def parse_export_report(path: Path, include_logs: bool = True) -> Report:
    """Parse the structured export into a Report.

    Totals come from the companion summary when it carries counters;
    otherwise they are tallied from feature statuses.
    """
    features = tuple(
        parse_feature(node, include_logs)
        for node in load_export(path)
        if isinstance(node, dict)
    )
    companion = read_companion_summary(path)
    run = companion[0] if companion is not None else Run()
    if not run.start_time and not run.end_time:
        run = _run_from_features(features)
    totals = companion[1] if companion is not None and companion[1] is not None else None
    return Report(
        run=run,
        totals=totals if totals is not None else Totals.tally(features),
        features=features,
    )


def parse_export_summary(path: Path) -> Report:
    """Run times and totals only; skips the export when the summary suffices."""
    companion = read_companion_summary(path)
    if companion is not None:
        run, totals = companion
        if totals is not None and (run.start_time or run.end_time):
            return Report(run=run, totals=totals)
    report = parse_export_report(path, include_logs=False)
    return Report(run=report.run, totals=report.totals)
