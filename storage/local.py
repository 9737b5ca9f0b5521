"""
storage/local.py -- SQLite-backed durable key/value store for client state.

Same contract as browser localStorage (string keys, JSON values, last write
wins) on a single SQLite file so it survives process restarts.

Each key has exactly one writer:

    custom_auth_session        -- auth.session.SessionManager
    last_activity              -- auth.activity.IdleMonitor
    rate_limit_<action>[:<id>] -- ratelimit.limiter.RateLimiter

Usage:
    store = LocalStore()
    store.set_item("last_activity", 1700000000.0)
    store.get_item("last_activity")     # returns 1700000000.0
    store.remove_item("last_activity")
    store.close()

Every failure (sqlite3 error, closed connection, corrupt JSON) surfaces as
StorageError so callers handle one exception type.
"""

import json
import sqlite3
from pathlib import Path
from typing import Any, Optional, Union

from storage.errors import StorageError

_DEFAULT_DB = Path(__file__).parent / "honestinvoice_local.db"

_DDL = """
CREATE TABLE IF NOT EXISTS local_storage (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  REAL NOT NULL
);
"""


class LocalStore:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB) -> None:
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            if str(db_path) != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_DDL)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"could not open local storage at {db_path}: {e}") from e

    def get_item(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None if the key is absent."""
        try:
            row = self._conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"read failed for {key!r}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise StorageError(f"corrupt value for {key!r}: {e}") from e

    def set_item(self, key: str, value: Any) -> None:
        """Store value for key as JSON, replacing any existing entry."""
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"value for {key!r} is not JSON-serializable: {e}") from e
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO local_storage (key, value, updated_at) VALUES (?, ?, julianday('now'))",
                (key, payload),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"write failed for {key!r}: {e}") from e

    def remove_item(self, key: str) -> None:
        """Delete key. Removing an absent key is a no-op."""
        try:
            self._conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"delete failed for {key!r}: {e}") from e

    def close(self) -> None:
        self._conn.close()
