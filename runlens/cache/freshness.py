"""Modification-time validated cache over the persistent store.

An entry is valid only while the source artifact's live modification time
equals the one recorded when the entry was written.  Any mismatch, a
missing entry, or an entry that no longer decodes is a plain miss.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any, Callable, Generic, TypeVar

from runlens.cache.store import CacheStore

logger = logging.getLogger(__name__)

V = TypeVar("V")

_SELECT_SQL = (
    "SELECT last_modified, value_json FROM freshness_cache "
    "WHERE namespace = ? AND cache_key = ?"
)
_UPSERT_SQL = """
INSERT INTO freshness_cache (namespace, cache_key, last_modified, value_json, updated_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(namespace, cache_key) DO UPDATE SET
  last_modified = excluded.last_modified,
  value_json = excluded.value_json,
  updated_at = excluded.updated_at
"""


class FreshnessCache(Generic[V]):
    """Persistent ``key -> (mtime, value)`` cache.

    Args:
        store: Shared cache store.
        namespace: Separates independent caches within the table.
        encode: Turns a value into a JSON-serializable object.
        decode: Inverse of *encode*; may raise on a malformed entry.
    """

    def __init__(
        self,
        store: CacheStore,
        namespace: str,
        encode: Callable[[V], Any],
        decode: Callable[[Any], V],
    ) -> None:
        self.store = store
        self.namespace = namespace
        self._encode = encode
        self._decode = decode

    def get(self, key: str, mtime: int) -> V | None:
        """Return the cached value iff it was stored at *mtime*."""
        try:
            row = self.store.fetch_one(_SELECT_SQL, (self.namespace, key))
        except sqlite3.Error as e:
            logger.warning("Cache read failed: key=%s error=%s", key, e)
            return None
        if row is None or row[0] != mtime:
            return None
        try:
            return self._decode(json.loads(row[1]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Cache entry unreadable: key=%s error=%s", key, e)
            return None

    def put(self, key: str, mtime: int, value: V) -> None:
        """Store *value* for *key* at *mtime*; last write wins."""
        try:
            payload = json.dumps(self._encode(value), ensure_ascii=False)
            self.store.execute(
                _UPSERT_SQL, (self.namespace, key, mtime, payload, time.time()),
            )
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.warning("Cache write failed: key=%s error=%s", key, e)
