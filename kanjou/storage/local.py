"""Local persisted key-value namespace.

A single SQLite table of string keys and string values. This is the client's
whole local state: the diary collection, consent history, sync flags and
session markers all live here as JSON or plain strings.
"""

import contextlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from kanjou.types import utc_now

logger = logging.getLogger(__name__)

# === Well-known keys ===

DIARY_ENTRIES_KEY = "journalEntries"
CONSENT_HISTORIES_KEY = "consent_histories"
AUTO_SYNC_ENABLED_KEY = "auto_sync_enabled"
LAST_SYNC_TIME_KEY = "last_sync_time"
CURRENT_USER_KEY = "line-username"
CURRENT_COUNSELOR_KEY = "current_counselor"

SCHEMA = """
CREATE TABLE IF NOT EXISTS local_storage (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


class LocalStore:
    """String-keyed, string-valued persistent storage.

    Args:
        db_path: SQLite file holding the namespace. Parent directories are
            created on first use.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager that commits on success, rolls back on error and closes."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    # === Key-value operations ===

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Value for {key!r} must be a string, got {type(value).__name__}")
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO local_storage (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, utc_now()),
            )

    def remove(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key FROM local_storage ORDER BY key").fetchall()
        return [row["key"] for row in rows]

    def items(self) -> Dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM local_storage ORDER BY key").fetchall()
        return {row["key"]: row["value"] for row in rows}

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM local_storage")

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM local_storage").fetchone()[0]

    # === JSON helpers ===

    def get_json(self, key: str, default: Any = None) -> Any:
        """Read a JSON value, returning ``default`` when absent or unparseable."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Local key {key!r} does not hold valid JSON: {e}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))
