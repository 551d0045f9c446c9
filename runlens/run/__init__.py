"""Run views: the navigable run tree and cross-run history."""

from runlens.run.history import (
    FlakySummary,
    RunStatus,
    ScenarioHistory,
    build_scenario_history,
    compute_flaky_summary,
    is_flaky,
    scenario_key,
)
from runlens.run.run_model import RunModel, RunModelCache, RunNode, build_run_model

__all__ = [
    "FlakySummary",
    "RunModel",
    "RunModelCache",
    "RunNode",
    "RunStatus",
    "ScenarioHistory",
    "build_run_model",
    "build_scenario_history",
    "compute_flaky_summary",
    "is_flaky",
    "scenario_key",
]
