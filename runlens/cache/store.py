"""SQLite persistence for the freshness caches.

One database file holds both caches.  Every statement runs under a single
process-wide lock that is held for one cache operation only, never for
the parse or scan around it.  The store is an optimization: when the
database cannot be opened the store stays closed and every read is a miss.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Sequence

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("~/.runlens/report-cache.sqlite")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS freshness_cache (
    namespace TEXT NOT NULL,
    cache_key TEXT NOT NULL,
    last_modified INTEGER NOT NULL,
    value_json TEXT NOT NULL,
    updated_at REAL NOT NULL,
    PRIMARY KEY (namespace, cache_key)
);

CREATE TABLE IF NOT EXISTS run_pick_cache (
    base_dir TEXT NOT NULL,
    dir_pattern TEXT NOT NULL,
    dir_flags INTEGER NOT NULL,
    report_format TEXT NOT NULL,
    cached_at REAL NOT NULL,
    matched_dirs INTEGER NOT NULL,
    candidates_json TEXT NOT NULL,
    PRIMARY KEY (base_dir, dir_pattern, dir_flags, report_format)
);
"""


class CacheStore:
    """Lock-serialized handle on the cache database.

    Use as a context manager or call :meth:`open` and :meth:`close`.
    """

    def __init__(self, path: Path | str = DEFAULT_DB_PATH) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> CacheStore:
        """Open the database and create the cache tables if needed.

        Failures are logged and leave the store closed.
        """
        with self._lock:
            if self._conn is not None:
                return self
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    self.path.as_posix(),
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.executescript(_SCHEMA)
            except (sqlite3.Error, OSError) as e:
                logger.warning("Cache store init failed: path=%s error=%s", self.path, e)
                return self
            self._conn = conn
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> CacheStore:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> tuple[Any, ...] | None:
        """Run a query and return its first row, or None.

        Raises:
            sqlite3.Error: If the statement fails.
        """
        with self._lock:
            if self._conn is None:
                return None
            return self._conn.execute(sql, params).fetchone()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Run a write statement; a no-op while the store is closed.

        Raises:
            sqlite3.Error: If the statement fails.
        """
        with self._lock:
            if self._conn is None:
                return
            self._conn.execute(sql, params)
