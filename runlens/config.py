"""runlens configuration file.

Reads the YAML file that names the filters and items (base directory plus
run directory pattern) the tool can look at, the cache location and the
selection limits.
"""

from __future__ import annotations

import datetime
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from runlens.errors import InvalidFormat, NotFound
from runlens.repo.picker import compile_pattern
from runlens.report.locator import ReportFormat

# Environment variable overriding the cache database location
CACHE_DB_ENV = "RUNLENS_CACHE_DB"

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "cache": {
        "db_path": "~/.runlens/report-cache.sqlite",
        "scan_ttl_seconds": 30,
    },
    "cutoff_date": None,
    "history_limit": 7,
    "filters": [],
}


@dataclass(frozen=True)
class FilterItem:
    """A named run source: a base directory and a run directory pattern."""

    title: str
    base_dir: Path
    dir_name_regex: str
    format: ReportFormat | None = None

    def compile_pattern(self) -> re.Pattern[str]:
        """Compile the directory name pattern.

        Raises:
            InvalidFormat: If the pattern is not a valid regular expression.
        """
        return compile_pattern(
            self.dir_name_regex, f"dir_name_regex for item '{self.title}'",
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterItem:
        title = str(data.get("title") or "").strip()
        base_dir = data.get("base_dir")
        regex = data.get("dir_name_regex")
        if not title or not base_dir or not regex:
            raise InvalidFormat(
                f"Filter item needs title, base_dir and dir_name_regex: {data}"
            )
        try:
            fmt = ReportFormat.parse(data.get("format"))
        except ValueError as e:
            raise InvalidFormat(str(e)) from e
        return cls(
            title=title,
            base_dir=Path(str(base_dir)).expanduser(),
            dir_name_regex=str(regex),
            format=fmt,
        )


@dataclass(frozen=True)
class Filter:
    """A named group of items."""

    name: str
    items: tuple[FilterItem, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Filter:
        name = str(data.get("name") or "").strip()
        if not name:
            raise InvalidFormat(f"Filter needs a name: {data}")
        items = data.get("items") or []
        if not isinstance(items, list):
            raise InvalidFormat(f"Items of filter '{name}' must be a list")
        return cls(name=name, items=tuple(FilterItem.from_dict(i) for i in items))


def _parse_date(value: Any) -> datetime.date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InvalidFormat(f"Invalid cutoff_date '{value}': {e}") from e


class RunLensConfig:
    """Manages the runlens YAML configuration file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._data: dict[str, Any] = self._merge({})
        if path is not None and path.exists():
            self._load()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunLensConfig:
        """Build a config from an in-memory mapping."""
        cfg = cls(None)
        cfg._data = cls._merge(data)
        return cfg

    @staticmethod
    def _merge(data: dict[str, Any]) -> dict[str, Any]:
        cache = data.get("cache") if isinstance(data.get("cache"), dict) else {}
        return {
            **DEFAULT_CONFIG,
            **data,
            "cache": {**DEFAULT_CONFIG["cache"], **cache},
        }

    def _load(self) -> None:
        """Load config from the file."""
        assert self.path is not None
        try:
            data = yaml.safe_load(self.path.read_text())
            if isinstance(data, dict):
                self._data = self._merge(data)
        except (yaml.YAMLError, OSError):
            self._data = self._merge({})

    @property
    def config(self) -> dict[str, Any]:
        """Get the full configuration dict."""
        return dict(self._data)

    @property
    def db_path(self) -> Path:
        """Cache database location; the environment override wins."""
        override = os.environ.get(CACHE_DB_ENV)
        raw = override or self._data["cache"].get("db_path") or DEFAULT_CONFIG["cache"]["db_path"]
        return Path(raw).expanduser()

    @property
    def scan_ttl_seconds(self) -> float:
        """Get the scan cache time-to-live (0 disables it)."""
        return float(
            self._data["cache"].get(
                "scan_ttl_seconds", DEFAULT_CONFIG["cache"]["scan_ttl_seconds"],
            )
        )

    @property
    def cutoff_date(self) -> datetime.date | None:
        """Get the global cutoff date (None = no cutoff)."""
        return _parse_date(self._data.get("cutoff_date"))

    @property
    def history_limit(self) -> int:
        """Get the number of recent runs examined for flakiness."""
        return max(1, int(
            self._data.get("history_limit", DEFAULT_CONFIG["history_limit"])
        ))

    @property
    def filters(self) -> list[Filter]:
        """Get the configured filters.

        Raises:
            InvalidFormat: If a filter or item is malformed.
        """
        raw = self._data.get("filters") or []
        if not isinstance(raw, list):
            raise InvalidFormat("'filters' must be a list")
        return [Filter.from_dict(f) for f in raw if isinstance(f, dict)]

    def find_item(self, filter_name: str, item_title: str) -> FilterItem:
        """Look up an item by filter name and item title.

        Raises:
            NotFound: If the filter or the item does not exist.
        """
        for flt in self.filters:
            if flt.name != filter_name:
                continue
            for item in flt.items:
                if item.title == item_title:
                    return item
            raise NotFound(f"Unknown item '{item_title}' in filter '{filter_name}'")
        raise NotFound(f"Unknown filter '{filter_name}'")
