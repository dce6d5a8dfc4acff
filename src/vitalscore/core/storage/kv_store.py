"""Key-value store abstraction behind the result cache.

Two backends: an in-process dict and a SQLite table. Both apply a batch of
sets and deletes atomically, so a reader never sees half of a batch.
"""

from __future__ import annotations

import logging
import threading
from typing import Mapping, Protocol, Sequence, runtime_checkable

from vitalscore.core.storage.database import CacheDatabase

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String-keyed store of encoded values."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def get_many(self, keys: Sequence[str]) -> dict[str, str]: ...

    def apply(
        self,
        sets: Mapping[str, str] | None = None,
        deletes: Sequence[str] = (),
    ) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store guarded by a lock."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self.apply({key: value})

    def delete(self, key: str) -> None:
        self.apply(deletes=[key])

    def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        with self._lock:
            return {k: self._data[k] for k in keys if k in self._data}

    def apply(
        self,
        sets: Mapping[str, str] | None = None,
        deletes: Sequence[str] = (),
    ) -> None:
        with self._lock:
            for key in deletes:
                self._data.pop(key, None)
            self._data.update(sets or {})

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class SQLiteKeyValueStore:
    """Store backed by the ``cache_entries`` table of a ``CacheDatabase``.

    Usage::

        db = CacheDatabase("~/.vitalscore/cache.db")
        db.initialize()
        store = SQLiteKeyValueStore(db)
    """

    def __init__(self, database: CacheDatabase) -> None:
        self._db = database

    def get(self, key: str) -> str | None:
        with self._db.lock:
            row = self._db.connection.execute(
                "SELECT value FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        self.apply({key: value})

    def delete(self, key: str) -> None:
        self.apply(deletes=[key])

    def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        if not keys:
            return {}
        placeholders = ",".join("?" for _ in keys)
        with self._db.lock:
            rows = self._db.connection.execute(
                f"SELECT key, value FROM cache_entries WHERE key IN ({placeholders})",
                tuple(keys),
            ).fetchall()
        return {row["key"]: row["value"] for row in rows}

    def apply(
        self,
        sets: Mapping[str, str] | None = None,
        deletes: Sequence[str] = (),
    ) -> None:
        with self._db.lock:
            conn = self._db.connection
            try:
                for key in deletes:
                    conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                for key, value in (sets or {}).items():
                    conn.execute(
                        """INSERT INTO cache_entries (key, value, updated_at)
                           VALUES (?, ?, datetime('now'))
                           ON CONFLICT(key) DO UPDATE SET
                               value = excluded.value,
                               updated_at = excluded.updated_at""",
                        (key, value),
                    )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def keys(self) -> list[str]:
        with self._db.lock:
            rows = self._db.connection.execute(
                "SELECT key FROM cache_entries ORDER BY key"
            ).fetchall()
        return [row["key"] for row in rows]
