"""Navigable run tree built from a parsed feature list.

The tree is rooted at a synthetic ROOT node.  A feature's breadcrumb path
is walked segment by segment: every segment but the last resolves to a
GROUP node (created on first sight, shared afterwards), and the last
segment names the FEATURE node.  Scenarios and steps hang below their
feature in document order.

Building happens in two phases: a private mutable builder keyed by path
prefix, then a one-shot freeze into immutable RunNode values and a flat
id index populated by a single walk.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

from runlens.report.locator import ReportFormat, locate_report
from runlens.report.model import Feature, Log, NodeKind, Report, Scenario, Step
from runlens.report.parser import parse_report

logger = logging.getLogger(__name__)

ROOT_NAME = "Run"


def make_node_id(kind: NodeKind, name: str, status: str, seq: int) -> str:
    """Build a node id from a content hash plus a sequence number.

    The hash alone may collide for identical (kind, name, status) tuples;
    the strictly increasing *seq* keeps ids unique within one model.
    """
    digest = hashlib.sha256(f"{kind.value}|{name}|{status}".encode()).hexdigest()
    return f"{kind.value}:{digest[:8]}:{seq}"


@dataclass(frozen=True)
class RunNode:
    """Immutable node of a run tree.

    ``name`` is the display name (the leaf segment for groups and
    features); ``full_name`` is the original, unshortened name.
    """

    id: str
    kind: NodeKind
    name: str
    full_name: str
    status: str = ""
    path: tuple[str, ...] = ()
    children: tuple[RunNode, ...] = ()
    logs: tuple[Log, ...] = ()
    media_path: str | None = None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator[RunNode]:
        """Yield this node and all descendants, depth first, pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "fullName": self.full_name,
            "status": self.status,
            "path": list(self.path),
        }
        if self.logs:
            data["logs"] = [lg.to_dict() for lg in self.logs]
        if self.media_path:
            data["mediaPath"] = self.media_path
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data


@dataclass(frozen=True)
class RunModel:
    """A run tree plus its id index.

    The index references the nodes owned by the tree; it holds every node
    reachable from ``root`` exactly once.
    """

    root: RunNode
    by_id: dict[str, RunNode] = field(default_factory=dict)
    feature_count: int = 0

    def find(self, node_id: str) -> RunNode | None:
        return self.by_id.get(node_id)

    @property
    def node_count(self) -> int:
        return len(self.by_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "featureCount": self.feature_count,
            "nodeCount": self.node_count,
            "root": self.root.to_dict(),
        }


class _MutableNode:
    """Builder-side node; never escapes this module."""

    def __init__(
        self,
        node_id: str,
        kind: NodeKind,
        name: str,
        full_name: str,
        status: str = "",
        path: tuple[str, ...] = (),
    ) -> None:
        self.id = node_id
        self.kind = kind
        self.name = name
        self.full_name = full_name
        self.status = status
        self.path = path
        # Interleaved groups and already-frozen feature subtrees
        self.children: list[_MutableNode | RunNode] = []
        self.groups: dict[str, _MutableNode] = {}

    def freeze(self) -> RunNode:
        return RunNode(
            id=self.id,
            kind=self.kind,
            name=self.name,
            full_name=self.full_name,
            status=self.status,
            path=self.path,
            children=tuple(
                c.freeze() if isinstance(c, _MutableNode) else c
                for c in self.children
            ),
        )


class _RunModelBuilder:
    def __init__(self) -> None:
        self._seq = itertools.count(1)
        self.root = _MutableNode(
            self._next_id(NodeKind.ROOT, ROOT_NAME, ""),
            NodeKind.ROOT,
            ROOT_NAME,
            ROOT_NAME,
        )
        self.feature_count = 0

    def _next_id(self, kind: NodeKind, name: str, status: str) -> str:
        return make_node_id(kind, name, status, next(self._seq))

    def _group_for(self, segments: tuple[str, ...]) -> _MutableNode:
        cursor = self.root
        for depth, segment in enumerate(segments):
            group = cursor.groups.get(segment)
            if group is None:
                group = _MutableNode(
                    self._next_id(NodeKind.GROUP, segment, ""),
                    NodeKind.GROUP,
                    segment,
                    segment,
                    path=segments[:depth + 1],
                )
                cursor.groups[segment] = group
                cursor.children.append(group)
            cursor = group
        return cursor

    def _step_node(self, step: Step, path: tuple[str, ...]) -> RunNode:
        label = step.label
        return RunNode(
            id=self._next_id(step.kind, label, step.status),
            kind=step.kind,
            name=label,
            full_name=label,
            status=step.status,
            path=path,
            logs=step.logs,
            media_path=step.media_path,
            children=tuple(self._step_node(c, path) for c in step.children),
        )

    def _scenario_node(self, scenario: Scenario, path: tuple[str, ...]) -> RunNode:
        node_id = self._next_id(scenario.kind, scenario.name, scenario.status)
        return RunNode(
            id=node_id,
            kind=scenario.kind,
            name=scenario.name,
            full_name=scenario.display_name,
            status=scenario.status,
            path=path,
            children=tuple(self._step_node(st, path) for st in scenario.steps),
        )

    def add_feature(self, feature: Feature) -> None:
        path = feature.path or (feature.title,)
        parent = self._group_for(path[:-1])
        node_id = self._next_id(NodeKind.FEATURE, feature.name, feature.status)
        parent.children.append(RunNode(
            id=node_id,
            kind=NodeKind.FEATURE,
            name=path[-1],
            full_name=feature.name,
            status=feature.status,
            path=path,
            children=tuple(self._scenario_node(sc, path) for sc in feature.scenarios),
        ))
        self.feature_count += 1

    def build(self) -> RunModel:
        root = self.root.freeze()
        index: dict[str, RunNode] = {}
        for node in root.walk():
            if node.id in index:
                raise ValueError(f"Duplicate node id in run tree: {node.id}")
            index[node.id] = node
        return RunModel(root=root, by_id=index, feature_count=self.feature_count)


def build_run_model(features: Iterable[Feature]) -> RunModel:
    """Build a navigable run tree from features, preserving their order.

    Group nodes appear in first-seen prefix order, not sorted.
    """
    builder = _RunModelBuilder()
    for feature in features:
        builder.add_feature(feature)
    return builder.build()


class RunModelCache:
    """Process-local cache of full reports and their run models.

    Entries are keyed by the normalized run directory and are valid only
    while the report artifact keeps the modification time it had when the
    model was built.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Path, tuple[int, Report, RunModel]] = {}

    def load(
        self, run_dir: Path, fmt: ReportFormat | None = None,
    ) -> tuple[Report, RunModel]:
        """Return the full report (logs included) and run model for *run_dir*.

        Raises:
            NotFound: If the run directory holds no report artifact.
            InvalidFormat: If the artifact cannot be parsed.
        """
        key = Path(run_dir).resolve()
        located = locate_report(key, fmt)
        mtime_ns = located.path.stat().st_mtime_ns

        with self._lock:
            cached = self._entries.get(key)
        if cached is not None and cached[0] == mtime_ns:
            return cached[1], cached[2]

        report = parse_report(located, include_logs=True)
        model = build_run_model(report.features)
        with self._lock:
            self._entries[key] = (mtime_ns, report, model)
        logger.info(
            "Built run model: dir=%s features=%d nodes=%d",
            key, model.feature_count, model.node_count,
        )
        return report, model

    def get_or_load(self, run_dir: Path, fmt: ReportFormat | None = None) -> RunModel:
        return self.load(run_dir, fmt)[1]

    def invalidate(self, run_dir: Path) -> None:
        with self._lock:
            self._entries.pop(Path(run_dir).resolve(), None)
