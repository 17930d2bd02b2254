"""
local_db.py - Persistent Key-Value Store

This module provides the durable key-value store that backs the
credential store, the per-identity cache and the pending-operation log.
SQLite is used on-device; an in-memory variant exists for tests.
"""

import sqlite3
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("LocalDB")


class KeyValueStore:
    """
    Base interface for the persistent key-value store.

    Values are strings; callers serialize to JSON themselves.
    set_many/remove_many must apply all keys or none.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str):
        self.set_many({key: value})

    def remove(self, key: str):
        self.remove_many([key])

    def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def set_many(self, items: Dict[str, str]):
        raise NotImplementedError

    def remove_many(self, keys: Iterable[str]):
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in tests and as a throwaway fallback."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def set_many(self, items: Dict[str, str]):
        self._data.update(items)

    def remove_many(self, keys: Iterable[str]):
        for key in keys:
            self._data.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store for on-device persistence."""

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self._ensure_data_dir()
        self._init_db()

    def _ensure_data_dir(self):
        """Create the parent directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema if the table doesn't exist."""
        conn = self._get_connection()
        try:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.commit()
        finally:
            conn.close()
        logger.info(f"SQLite key-value store initialized at: {self.db_path}")

    def get(self, key: str) -> Optional[str]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        return row["value"] if row else None

    def keys(self, prefix: str = "") -> List[str]:
        conn = self._get_connection()
        try:
            # substr() rather than LIKE so '_' and '%' in prefixes stay literal
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        finally:
            conn.close()
        return [row["key"] for row in rows]

    def set_many(self, items: Dict[str, str]):
        if not items:
            return
        conn = self._get_connection()
        try:
            with conn:
                conn.executemany('''
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                ''', list(items.items()))
        finally:
            conn.close()

    def remove_many(self, keys: Iterable[str]):
        keys = list(keys)
        if not keys:
            return
        conn = self._get_connection()
        try:
            with conn:
                conn.executemany(
                    "DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys]
                )
        finally:
            conn.close()
