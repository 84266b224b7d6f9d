"""
Key/value storage backends.

Capability flags, telemetry counters and the durable log overflow all sit on
a tiny string key/value interface:

- MemoryStorage: session scope, lives as long as the process
- SqliteStorage: durable scope, survives restarts
- NullStorage: storage unavailable, every op is a safe no-op

No backend raises from get/set/remove/keys. Failures are logged and the
operation degrades to its default.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_STATE_DB_PATH = Path.home() / ".config" / "dealdesk" / "state.db"


class KeyValueStorage(ABC):
    """String key/value store used for session and durable state."""

    name: str = "storage"

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or None when absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key if present."""

    @abstractmethod
    def keys(self) -> list[str]:
        """All stored keys."""

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)


class NullStorage(KeyValueStorage):
    """Stand-in used when no storage is available (non-interactive runtimes)."""

    name = "none"

    @property
    def available(self) -> bool:
        return False

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        pass

    def remove(self, key: str) -> None:
        pass

    def keys(self) -> list[str]:
        return []


class MemoryStorage(KeyValueStorage):
    """Process-local session store."""

    name = "session"

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def clear(self) -> None:
        self._data.clear()


class SqliteStorage(KeyValueStorage):
    """
    Durable key/value store backed by a single SQLite table.

    Usage:
        storage = SqliteStorage("/tmp/state.db")
        storage.set("telemetry_vendorFallback", "3")

        with SqliteStorage() as storage:
            ...
    """

    name = "durable"

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize storage.

        Args:
            db_path: Path to SQLite database file. ":memory:" keeps it in RAM.
                     If None, uses the default state location.
        """
        self.db_path = str(db_path) if db_path else str(DEFAULT_STATE_DB_PATH)
        self._conn: sqlite3.Connection | None = None
        self._broken = False

    def __enter__(self) -> SqliteStorage:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def available(self) -> bool:
        return self._connect() is not None

    def _connect(self) -> sqlite3.Connection | None:
        if self._conn is not None:
            return self._conn
        if self._broken:
            return None
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, isolation_level=None)
            if self.db_path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                "CREATE TABLE IF NOT EXISTS kv_store ("
                "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Durable storage unavailable at {self.db_path}: {e}")
            self._broken = True
            return None
        self._conn = conn
        return conn

    def get(self, key: str) -> str | None:
        conn = self._connect()
        if conn is None:
            return None
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Failed to read {key} from durable storage: {e}")
            return None
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        if conn is None:
            return
        try:
            conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, str(value)),
            )
        except sqlite3.Error as e:
            logger.warning(f"Failed to write {key} to durable storage: {e}")

    def remove(self, key: str) -> None:
        conn = self._connect()
        if conn is None:
            return
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            logger.warning(f"Failed to remove {key} from durable storage: {e}")

    def keys(self) -> list[str]:
        conn = self._connect()
        if conn is None:
            return []
        try:
            return [row[0] for row in conn.execute("SELECT key FROM kv_store ORDER BY key")]
        except sqlite3.Error as e:
            logger.warning(f"Failed to list durable storage keys: {e}")
            return []

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
