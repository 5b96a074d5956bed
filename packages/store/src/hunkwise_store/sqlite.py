"""SQLiteStateStore — local file-based state for single-developer runs and CI caches.

Schema:
  review_states — one row per pull request key; saving replaces the row.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from hunkwise_store.base import BaseStateStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS review_states (
    key         TEXT PRIMARY KEY,
    blob        TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""


class SQLiteStateStore(BaseStateStore):
    """Stores review state in a local SQLite database file.

    The database file path defaults to `.hunkwise.db` in the current working
    directory. Configure via .hunkwise.yml: `store_path: /path/to/hunkwise.db`.
    """

    def __init__(self, db_path: str = ".hunkwise.db"):
        # The driver saves from one thread only, but the connection is created
        # before the worker pools exist.
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def load(self, key: str) -> str | None:
        try:
            row = self._conn.execute("SELECT blob FROM review_states WHERE key=?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.warning("SQLiteStateStore.load() failed: %s", e)
            return None
        return row["blob"] if row else None

    def save(self, key: str, blob: str) -> None:
        self._conn.execute(
            """
            INSERT INTO review_states (key, blob, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET blob=excluded.blob, updated_at=excluded.updated_at
            """,
            (key, blob, datetime.now(timezone.utc).isoformat()),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM review_states WHERE key=?", (key,))
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
