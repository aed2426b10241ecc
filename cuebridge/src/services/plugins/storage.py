"""Persistent key/value storage for plugins.

Values are JSON-serialized into a single SQLite table and scoped by
plugin id, so two plugins can use the same key without clashing.
Plugins never see the store itself; their context holds a
PluginStorage bound to their own id.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union


logger = logging.getLogger(__name__)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS plugin_storage (
    plugin_id TEXT NOT NULL,
    key TEXT NOT NULL,
    value_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (plugin_id, key)
)
"""


class StorageService:
    """SQLite-backed store shared by all plugins.

    One connection is kept open and guarded by a lock; ``":memory:"``
    gives a throwaway store for tests.

    Example:
        >>> service = StorageService(":memory:")
        >>> service.set("tts", "voice", "F1")
        >>> service.get("tts", "voice")
        'F1'
        >>> service.get("tts", "missing", default=0)
        0
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:") -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute(_SCHEMA)

    @property
    def db_path(self) -> str:
        return self._db_path

    def get(self, plugin_id: str, key: str, default: Any = None) -> Any:
        """Get a value, or default if the key is missing or unreadable."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value_json FROM plugin_storage WHERE plugin_id = ? AND key = ?",
                (plugin_id, key),
            ).fetchone()

        if row is None:
            return default

        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON in plugin storage: {plugin_id}/{key}")
            return default

    def set(self, plugin_id: str, key: str, value: Any) -> None:
        """Store a value.

        Raises:
            ValueError: If value is not JSON-serializable.
        """
        try:
            value_json = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Value is not JSON-serializable: {e}") from e

        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO plugin_storage (plugin_id, key, value_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(plugin_id, key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at = excluded.updated_at
                """,
                (plugin_id, key, value_json, now, now),
            )

    def delete(self, plugin_id: str, key: str) -> bool:
        """Delete a key.

        Returns:
            True if the key was deleted, False if it didn't exist.
        """
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM plugin_storage WHERE plugin_id = ? AND key = ?",
                (plugin_id, key),
            )
            return cursor.rowcount > 0

    def get_all(self, plugin_id: str) -> dict[str, Any]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value_json FROM plugin_storage WHERE plugin_id = ? ORDER BY key",
                (plugin_id,),
            ).fetchall()

        result = {}
        for row in rows:
            try:
                result[row["key"]] = json.loads(row["value_json"])
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON in plugin storage: {plugin_id}/{row['key']}")
        return result

    def clear(self, plugin_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM plugin_storage WHERE plugin_id = ?", (plugin_id,))

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def for_plugin(self, plugin_id: str) -> "PluginStorage":
        return PluginStorage(self, plugin_id)


class PluginStorage:
    """Storage view bound to one plugin id."""

    def __init__(self, service: StorageService, plugin_id: str) -> None:
        self._service = service
        self._plugin_id = plugin_id

    @property
    def plugin_id(self) -> str:
        return self._plugin_id

    def get(self, key: str, default: Any = None) -> Any:
        return self._service.get(self._plugin_id, key, default)

    def set(self, key: str, value: Any) -> None:
        self._service.set(self._plugin_id, key, value)

    def delete(self, key: str) -> bool:
        return self._service.delete(self._plugin_id, key)

    def get_all(self) -> dict[str, Any]:
        return self._service.get_all(self._plugin_id)

    def clear(self) -> None:
        self._service.clear(self._plugin_id)


__all__ = [
    "PluginStorage",
    "StorageService",
]
