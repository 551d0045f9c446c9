"""Safe resolution of run directories and files inside them.

Paths are normalized lexically and checked for containment before the
filesystem is touched, so a request such as ``../../etc/passwd`` is
rejected without opening anything.
"""

from __future__ import annotations

import os
from pathlib import Path

from runlens.errors import NotFound, PathEscape


def _contained(base: str, target: str) -> bool:
    try:
        return os.path.commonpath([base, target]) == base
    except ValueError:
        # Different drives
        return False


def resolve_within(base: Path, relative: str) -> Path:
    """Join *relative* onto *base* and normalize, refusing escapes.

    Raises:
        PathEscape: If the normalized path lies outside *base*.
    """
    base_abs = os.path.normpath(os.path.abspath(base))
    target = os.path.normpath(os.path.join(base_abs, relative))
    if not _contained(base_abs, target):
        raise PathEscape(f"Path escapes {base_abs}: {relative}")
    return Path(target)


def resolve_run_dir(base_dir: Path, run: str) -> Path:
    """Resolve a run directory name under a configured base directory.

    Raises:
        PathEscape: If *run* points outside *base_dir* or at the base itself.
        NotFound: If the run directory does not exist.
    """
    run_dir = resolve_within(base_dir, run)
    if run_dir == Path(os.path.normpath(os.path.abspath(base_dir))):
        raise PathEscape(f"Invalid run path: {run!r}")
    if not run_dir.is_dir():
        raise NotFound(f"Run directory not found: {run_dir}")
    return run_dir


def resolve_asset_path(run_dir: Path, relative: str) -> Path:
    """Resolve a media reference to a regular file inside *run_dir*.

    Raises:
        PathEscape: If the reference escapes the run directory.
        NotFound: If no regular file exists there.
    """
    target = resolve_within(run_dir, relative)
    if not target.is_file():
        raise NotFound(f"Asset not found: {relative}")
    return target
