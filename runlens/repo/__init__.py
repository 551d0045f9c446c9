"""Run directory selection."""

from runlens.repo.picker import PickedRun, RunPicker, compile_pattern

__all__ = [
    "PickedRun",
    "RunPicker",
    "compile_pattern",
]
