"""Parser for the self-contained HTML report.

The report is a single interactive page.  Totals and run times are first
recovered with tolerant regex scans over the raw markup (cheap, no DOM);
the DOM walk is only needed for features, scenarios, steps and logs, or
when the fast scans come up empty.

Structure recovered from the DOM::

    li.test-item                       feature (status attribute, title)
      div.accordion > div.card         scenario
        div.scenario_outline           "Scenario Outline": one scenario
          div.card-body.l1             per example row
      div.step.<status>-bg             step; title="AFTER_STEP" marks
                                       hook output of the previous step
        div                            one log entry per child div
"""

from __future__ import annotations

import copy
import re
from pathlib import Path

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from runlens.errors import InvalidFormat
from runlens.report.model import (
    Feature,
    Log,
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
from runlens.report.status import INFO, normalize_status
from runlens.report.timing import extract_log_duration, strip_log_timestamps

STATUS_GROUP_BLOCK = re.compile(r"var\s+statusGroup\s*=\s*\{(.*?)\};", re.DOTALL)
STATUS_GROUP_ENTRY = re.compile(r"(\w+)\s*:\s*(\d+)")
DASHBOARD_STARTED_PATTERN = re.compile(
    r"<p[^>]*>\s*Started\s*</p>\s*<h3[^>]*>([^<]+)</h3>",
    re.IGNORECASE | re.DOTALL,
)
DASHBOARD_ENDED_PATTERN = re.compile(
    r"<p[^>]*>\s*Ended\s*</p>\s*<h3[^>]*>([^<]+)</h3>",
    re.IGNORECASE | re.DOTALL,
)

AFTER_STEP = "AFTER_STEP"

# Step element class -> raw status
_STEP_CLASS_STATUS = (
    ("pass-bg", "PASS"),
    ("fail-bg", "FAIL"),
    ("skip-bg", "SKIP"),
    ("warning-bg", "WARNING"),
    ("info-bg", INFO),
)

_WHITESPACE = re.compile(r"\s+")
_TRAILING_BREAKS = re.compile(r"(<br\s*/?>\s*)+$", re.IGNORECASE)

# Keys of the aggregate-counter block that feed Totals
_PASS_KEY = "passParent"
_FAIL_KEY = "failParent"
_WARNING_KEY = "warningParent"
_SKIP_KEY = "skipParent"


def read_html(path: Path) -> str:
    """Read report markup, tolerating stray undecodable bytes."""
    return Path(path).read_text(encoding="utf-8", errors="replace")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


# ---------------------------------------------------------------------------
# Fast regex scans
# ---------------------------------------------------------------------------


def totals_from_status_group(html: str) -> Totals | None:
    """Read totals from the embedded ``var statusGroup = {...};`` block.

    Returns:
        Totals, or None when the block is absent or carries none of the
        parent-level counters.
    """
    if not html:
        return None
    match = STATUS_GROUP_BLOCK.search(html)
    if match is None:
        return None

    counts = {k: int(v) for k, v in STATUS_GROUP_ENTRY.findall(match.group(1))}
    keys = (_PASS_KEY, _FAIL_KEY, _WARNING_KEY, _SKIP_KEY)
    if not any(k in counts for k in keys):
        return None

    return Totals.from_counts(
        counts.get(_PASS_KEY, 0),
        counts.get(_FAIL_KEY, 0),
        counts.get(_WARNING_KEY, 0),
        counts.get(_SKIP_KEY, 0),
    )


def _scan_value(html: str, pattern: re.Pattern[str]) -> str:
    match = pattern.search(html) if html else None
    return match.group(1).strip() if match else ""


def scan_run_times(html: str) -> Run:
    """Regex scan for the dashboard's Started/Ended values."""
    return Run(
        start_time=_scan_value(html, DASHBOARD_STARTED_PATTERN),
        end_time=_scan_value(html, DASHBOARD_ENDED_PATTERN),
    )


# ---------------------------------------------------------------------------
# DOM helpers
# ---------------------------------------------------------------------------


def _clean_text(s: str) -> str:
    return _WHITESPACE.sub(" ", s.replace("\u00a0", " ")).strip()


def _text_of(el: Tag | None) -> str:
    if el is None:
        return ""
    return _clean_text(el.get_text(" "))


def _own_text(el: Tag) -> str:
    parts = [
        str(child) for child in el.children
        if isinstance(child, NavigableString) and not isinstance(child, Comment)
    ]
    return _clean_text("".join(parts))


def _inner_html(el: Tag | None) -> str:
    return el.decode_contents().strip() if el is not None else ""


def _classes(el: Tag) -> list[str]:
    return [c.lower() for c in el.get("class") or []]


def _first(*elements: Tag | None) -> Tag | None:
    for el in elements:
        if el is not None:
            return el
    return None


def find_dashboard_value(soup: BeautifulSoup, label: str) -> str:
    """DOM lookup of a dashboard card value (``<p>label</p><h3>value</h3>``)."""
    dashboard = soup.select_one("div.container-fluid.p-4.view.dashboard-view")
    if dashboard is None:
        return ""
    for body in dashboard.select("div.card-body"):
        p = body.select_one("p")
        if p is None or _text_of(p).lower() != label.lower():
            continue
        return _text_of(body.select_one("h3"))
    return ""


def _node_name(node: Tag) -> str:
    own = _own_text(node)
    return own if own else _text_of(node)


def _status_from_node(node: Tag) -> str:
    badge = node.select_one("span.badge")
    if badge is not None:
        text = _text_of(badge)
        if text:
            return normalize_status(text)
    return normalize_status(node.get("status"))


def _status_from_class(el: Tag) -> str:
    cls = " ".join(_classes(el))
    for marker, status in _STEP_CLASS_STATUS:
        if marker in cls:
            return normalize_status(status)
    return ""


def _is_after_step(el: Tag) -> bool:
    return str(el.get("title") or "").strip().upper() == AFTER_STEP


def _parse_tags(feature_el: Tag) -> tuple[str, ...]:
    raw = str(feature_el.get("tag") or "")
    tags = [t for t in raw.split() if t]
    if not tags:
        tags = [
            _text_of(badge)
            for badge in feature_el.select("div.detail-head span.badge-pill")
            if _text_of(badge)
        ]
    return tuple(dict.fromkeys(tags))


def _clean_description(html: str) -> str:
    if not html:
        return ""
    cleaned = html.replace("\u00a0", " ").strip()
    return _TRAILING_BREAKS.sub("", cleaned).strip()


def _extract_description(detail_head: Tag | None, feature_el: Tag) -> str:
    candidates = [
        detail_head.select_one("div.m-t-10.m-l-5") if detail_head else None,
        feature_el.select_one(
            "div.test-detail > p.desc, div.test-detail > p.test-desc, "
            "div.test-detail > p.description"
        ),
        detail_head.select_one(".test-desc, .test-description, p.desc, p.description")
        if detail_head else None,
    ]
    for el in candidates:
        description = _clean_description(_inner_html(el))
        if description:
            return description
    return ""


# ---------------------------------------------------------------------------
# Logs, steps, scenarios, features
# ---------------------------------------------------------------------------


def parse_step_logs(step_el: Tag) -> list[Log]:
    """One Log per direct ``div`` child of a step element.

    A local image reference is moved into ``media_path`` and removed from
    the retained markup; remote or inline images are left untouched.
    """
    logs: list[Log] = []
    for child in step_el.find_all("div", recursive=False):
        cleaned = copy.copy(child)
        media_path = None
        for img in cleaned.find_all("img"):
            ref = img.get("data-featherlight") if img.has_attr("data-featherlight") else img.get("src")
            if is_local_media_path(ref):
                media_path = str(ref).strip()
                img.decompose()
                break

        raw = cleaned.decode_contents().strip()
        if not raw and not media_path:
            continue
        logs.append(Log(
            details=strip_log_timestamps(raw),
            media_path=media_path,
            duration_ms=extract_log_duration(raw),
        ))
    return logs


def parse_steps(container: Tag | None, include_logs: bool = True) -> list[Step]:
    """Parse the step elements of a scenario body in document order.

    A step marked ``AFTER_STEP`` is not a step of its own: its logs are
    appended to the immediately preceding step.
    """
    if container is None:
        return []
    steps: list[Step] = []
    for child in container.find_all(recursive=False):
        if "step" not in _classes(child):
            continue

        if _is_after_step(child):
            if include_logs and steps:
                steps[-1] = steps[-1].with_appended_logs(parse_step_logs(child))
            continue

        raw_text = _text_of(child.select_one(":scope > span")) or _own_text(child)
        keyword, text = split_step_keyword(raw_text)
        logs = tuple(parse_step_logs(child)) if include_logs else ()
        steps.append(Step(
            keyword=keyword,
            text=text,
            status=_status_from_class(child),
            logs=logs,
        ))
    return steps


def _parse_scenario_outline(outline: Tag, include_logs: bool) -> list[Scenario]:
    scenarios: list[Scenario] = []
    for body in outline.select("div.card-body.l1"):
        node = body.select_one("div.card-header .node")
        if node is None:
            continue
        container = _first(
            body.select_one("div.card-body.mt-3"),
            body.select_one("div.card-body"),
        )
        scenarios.append(Scenario(
            name=_node_name(node),
            status=_status_from_node(node),
            steps=tuple(parse_steps(container, include_logs)),
        ))
    return scenarios


def _parse_scenario_card(card: Tag, include_logs: bool) -> Scenario | None:
    node = card.select_one(":scope > div.card-header .node")
    if node is None:
        return None
    container = _first(
        card.select_one(":scope > div.collapse > div.card-body"),
        card.select_one(":scope > div > div.card-body"),
        card.select_one(":scope > div.card-body"),
        card.select_one("div.card-body"),
    )
    return Scenario(
        name=_node_name(node),
        status=_status_from_node(node),
        steps=tuple(parse_steps(container, include_logs)),
    )


def parse_scenarios(feature_el: Tag, include_logs: bool = True) -> tuple[Scenario, ...]:
    """Parse a feature's scenarios, expanding scenario outlines."""
    accordion = feature_el.select_one("div.accordion")
    if accordion is None:
        return ()

    scenarios: list[Scenario] = []
    for card in accordion.select(":scope > div.card"):
        outline = card.select_one(":scope > div.scenario_outline")
        if outline is not None:
            expanded = _parse_scenario_outline(outline, include_logs)
            if expanded:
                scenarios.extend(expanded)
                continue
        sc = _parse_scenario_card(card, include_logs)
        if sc is not None:
            scenarios.append(sc)
    return disambiguate_scenarios(scenarios)


def parse_features(soup: BeautifulSoup, include_logs: bool = True) -> tuple[Feature, ...]:
    """Parse all features of a report document in document order."""
    test_view = soup.select_one("div.test-wrapper.view.test-view")
    feature_els = (test_view or soup).select("ul.test-list-item > li.test-item")

    features: list[Feature] = []
    for feature_el in feature_els:
        name = _text_of(feature_el.select_one("div.test-detail > p.name"))
        if not name:
            name = _text_of(feature_el.select_one("div.detail-head h5.test-status"))

        detail_head = feature_el.select_one("div.test-contents .detail-head")
        path = parse_arrow_path(name)
        title = path[-1] if path else name
        features.append(Feature(
            name=name,
            path=normalize_feature_path(path, title),
            status=normalize_status(feature_el.get("status")),
            tags=_parse_tags(feature_el),
            description=_extract_description(detail_head, feature_el),
            scenarios=parse_scenarios(feature_el, include_logs),
            start_time=_text_of(detail_head.select_one("span.badge-success")) if detail_head else "",
            end_time=_text_of(detail_head.select_one("span.badge-danger")) if detail_head else "",
        ))
    return tuple(features)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _check_markup(html: str, path: Path) -> None:
    if "<" not in html:
        raise InvalidFormat(f"Not an HTML report: {path}")


def _run_times(html: str, soup: BeautifulSoup | None) -> Run:
    run = scan_run_times(html)
    if soup is None:
        return run
    return Run(
        start_time=run.start_time or find_dashboard_value(soup, "Started"),
        end_time=run.end_time or find_dashboard_value(soup, "Ended"),
    )


def parse_html_summary(path: Path) -> Report:
    """Parse only run times and totals (no features).

    Uses the regex fast path when the aggregate block is present and only
    falls back to a DOM walk (logs omitted) to tally feature statuses.
    """
    html = read_html(path)
    _check_markup(html, path)
    totals = totals_from_status_group(html)
    if totals is not None:
        return Report(run=scan_run_times(html), totals=totals)

    soup = _soup(html)
    features = parse_features(soup, include_logs=False)
    return Report(run=_run_times(html, soup), totals=Totals.tally(features))


def parse_html_features(path: Path, include_logs: bool = True) -> tuple[Feature, ...]:
    """Parse only the features of a report."""
    html = read_html(path)
    _check_markup(html, path)
    return parse_features(_soup(html), include_logs)


def parse_html_report(path: Path, include_logs: bool = True) -> Report:
    """Parse a complete report: run times, totals and features.

    Args:
        path: HTML report artifact.
        include_logs: False to omit step logs (cheaper, cache-friendly).

    Raises:
        InvalidFormat: If the file carries no markup at all.
    """
    html = read_html(path)
    _check_markup(html, path)
    soup = _soup(html)
    features = parse_features(soup, include_logs)
    totals = totals_from_status_group(html) or Totals.tally(features)
    return Report(run=_run_times(html, soup), totals=totals, features=features)
