"""Shared pytest fixtures: builders for report artifacts and run directories.

Features are described once as plain dicts and rendered into either report
format, so the same logical run can be written as an HTML report or as a
structured export::

    {
        "name": "Suite ← Auth ← Login",
        "status": "pass",
        "tags": ["smoke"],
        "description": "Login flows",
        "scenarios": [
            {"name": "Valid user", "status": "pass", "steps": [
                {"keyword": "Given", "text": "I open the page", "status": "pass",
                 "logs": ["<p>opened</p>"], "media": "shots/1.png",
                 "after": False},
            ]},
            {"outline": [<scenario dict>, ...]},
        ],
    }
"""

from __future__ import annotations

import json
import os
from html import escape
from pathlib import Path
from typing import Any, Callable

import pytest

GHERKIN = "com.aventstack.extentreports.gherkin.model."


def _html_step(step: dict[str, Any]) -> str:
    title = ' title="AFTER_STEP"' if step.get("after") else ""
    logs = "".join(f"<div>{log}</div>" for log in step.get("logs", []))
    if step.get("media"):
        logs += f'<div><img src="{step["media"]}"></div>'
    label = f'{step.get("keyword", "")} {step["text"]}'.strip()
    return (
        f'<div class="step {step.get("status", "pass").lower()}-bg"{title}>'
        f"<span>{escape(label)}</span>{logs}</div>"
    )


def _html_scenario_header(scenario: dict[str, Any]) -> str:
    return (
        f'<div class="card-header"><a class="node" status="{scenario.get("status", "pass")}">'
        f'{escape(scenario["name"])}</a></div>'
    )


def _html_scenario(scenario: dict[str, Any]) -> str:
    if "outline" in scenario:
        rows = "".join(
            f'<div class="card-body l1">{_html_scenario_header(row)}'
            f'<div class="card-body mt-3">{"".join(_html_step(s) for s in row.get("steps", []))}</div>'
            f"</div>"
            for row in scenario["outline"]
        )
        return f'<div class="card"><div class="scenario_outline">{rows}</div></div>'
    steps = "".join(_html_step(s) for s in scenario.get("steps", []))
    return (
        f'<div class="card">{_html_scenario_header(scenario)}'
        f'<div class="collapse"><div class="card-body">{steps}</div></div></div>'
    )


def _html_feature(feature: dict[str, Any]) -> str:
    tags = " ".join(feature.get("tags", []))
    times = ""
    if feature.get("start"):
        times += f'<span class="badge badge-success">{feature["start"]}</span>'
    if feature.get("end"):
        times += f'<span class="badge badge-danger">{feature["end"]}</span>'
    scenarios = "".join(_html_scenario(sc) for sc in feature.get("scenarios", []))
    return (
        f'<li class="test-item" status="{feature.get("status", "pass")}" tag="{tags}">'
        f'<div class="test-detail"><p class="name">{escape(feature["name"])}</p></div>'
        f'<div class="test-contents"><div class="detail-head">{times}'
        f'<div class="m-t-10 m-l-5">{feature.get("description", "")}</div></div>'
        f'<div class="accordion">{scenarios}</div></div></li>'
    )


def build_html_report(
    features: list[dict[str, Any]],
    *,
    status_group: dict[str, int] | None = None,
    started: str = "",
    ended: str = "",
) -> str:
    """Render features as a minimal interactive HTML report."""
    script = ""
    if status_group is not None:
        entries = ", ".join(f"{k}: {v}" for k, v in status_group.items())
        script = f"<script>var statusGroup = {{{entries}}};</script>"
    cards = ""
    for label, value in (("Started", started), ("Ended", ended)):
        if value:
            cards += (
                f'<div class="card"><div class="card-body">'
                f'<p class="m-b-0">{label}</p><h3>{value}</h3></div></div>'
            )
    items = "".join(_html_feature(f) for f in features)
    return (
        "<!DOCTYPE html><html><head><title>Report</title></head><body>"
        f'<div class="container-fluid p-4 view dashboard-view">{cards}</div>'
        f'<div class="test-wrapper view test-view"><ul class="test-list-item">{items}</ul></div>'
        f"{script}</body></html>"
    )


def _export_step(step: dict[str, Any]) -> dict[str, Any]:
    logs: list[dict[str, Any]] = [{"details": d} for d in step.get("logs", [])]
    if step.get("media"):
        logs.append({"details": "", "media": {"path": step["media"]}})
    node: dict[str, Any] = {
        "name": step["text"],
        "bddType": GHERKIN + step.get("type", step.get("keyword") or "Given"),
        "status": step.get("status", "pass").upper(),
        "logs": logs,
    }
    if step.get("after"):
        node["description"] = "AFTER_STEP"
    return node


def _export_scenario(scenario: dict[str, Any]) -> dict[str, Any]:
    if "outline" in scenario:
        return {
            "name": scenario.get("name", "Outline"),
            "bddType": GHERKIN + "ScenarioOutline",
            "children": [_export_scenario(row) for row in scenario["outline"]],
        }
    return {
        "name": scenario["name"],
        "bddType": GHERKIN + "Scenario",
        "status": scenario.get("status", "pass").upper(),
        "children": [_export_step(s) for s in scenario.get("steps", [])],
    }


def build_export(features: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Render features as a structured export node array."""
    nodes = []
    for feature in features:
        node: dict[str, Any] = {
            "name": feature["name"],
            "bddType": GHERKIN + "Feature",
            "status": feature.get("status", "pass").upper(),
            "categorySet": list(feature.get("tags", [])),
            "description": feature.get("description", ""),
            "children": [_export_scenario(sc) for sc in feature.get("scenarios", [])],
        }
        if feature.get("start"):
            node["startTime"] = feature["start"]
        if feature.get("end"):
            node["endTime"] = feature["end"]
        nodes.append(node)
    return nodes


def write_run(
    base_dir: Path,
    name: str,
    features: list[dict[str, Any]],
    *,
    fmt: str = "html",
    mtime: float | None = None,
    summary: dict[str, Any] | None = None,
    **html_options: Any,
) -> Path:
    """Write a run directory holding one report artifact.

    Args:
        base_dir: Directory the run directory is created in.
        name: Run directory name.
        features: Feature dicts (see module docstring).
        fmt: ``"html"`` or ``"json"``.
        mtime: Artifact modification time (epoch seconds), if given.
        summary: Companion summary written next to a JSON export.
        **html_options: Passed to :func:`build_html_report`.

    Returns:
        Path of the written artifact.
    """
    run_dir = base_dir / name
    run_dir.mkdir(parents=True, exist_ok=True)
    if fmt == "json":
        artifact = run_dir / "extent.json"
        artifact.write_text(json.dumps(build_export(features)), encoding="utf-8")
        if summary is not None:
            (run_dir / "extent.summary.json").write_text(json.dumps(summary), encoding="utf-8")
    else:
        artifact = run_dir / "index.html"
        artifact.write_text(build_html_report(features, **html_options), encoding="utf-8")
    if mtime is not None:
        os.utime(artifact, (mtime, mtime))
    return artifact


@pytest.fixture
def html_report() -> Callable[..., str]:
    return build_html_report


@pytest.fixture
def export_report() -> Callable[..., list[dict[str, Any]]]:
    return build_export


@pytest.fixture
def make_run() -> Callable[..., Path]:
    return write_run
