# =============================================================================
# compliance_core/persistence/storage.py
# Local Key/Value Storage Backends
# =============================================================================
"""
Durable local key/value storage used by StateStore and BackupManager.

Two logical records live here:
    state.current  -> serialized StateEnvelope
    state.backups  -> serialized list of Backup, newest first

Backends:
- SQLiteStorage: file-backed, every write batch is one transaction
- MemoryStorage: process-local dict, for tests and ephemeral sessions
"""

from __future__ import annotations
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional

from compliance_core.logging import get_logger

logger = get_logger(__name__)

CURRENT_STATE_KEY = "state.current"
BACKUPS_KEY = "state.backups"


class KeyValueStorage(ABC):
    """
    Minimal string key/value store.

    ``apply`` is the only write primitive: a batch of updates where a value
    of None removes the key. Either every update in the batch lands or none
    does.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def apply(self, updates: Mapping[str, Optional[str]]) -> None:
        """Atomically set (str) or remove (None) each key in ``updates``."""

    def set(self, key: str, value: str) -> None:
        self.apply({key: value})

    def delete_many(self, keys: Iterable[str]) -> None:
        self.apply({key: None for key in keys})

    def delete(self, key: str) -> None:
        self.apply({key: None})


class MemoryStorage(KeyValueStorage):
    """In-process storage backed by a dict."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def apply(self, updates: Mapping[str, Optional[str]]) -> None:
        for key, value in updates.items():
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value

    def keys(self):
        return list(self._data.keys())


class SQLiteStorage(KeyValueStorage):
    """
    SQLite-backed key/value storage.

    Each ``apply`` batch runs in a single transaction, so a failed write
    leaves every previous value untouched.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Path):
        """
        Initialize storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(str(self.db_path))
        return self._local.connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create the key/value table if needed."""
        if self._initialized:
            return

        with self.transaction() as conn:
            conn.execute(self.SCHEMA)

        self._initialized = True
        logger.info(f"Local state storage initialized at: {self.db_path}")

    def get(self, key: str) -> Optional[str]:
        self.initialize()
        row = self._get_connection().execute(
            "SELECT value FROM kv_store WHERE key = ?",
            [key],
        ).fetchone()
        return row[0] if row else None

    def apply(self, updates: Mapping[str, Optional[str]]) -> None:
        self.initialize()
        now = datetime.now().isoformat()
        with self.transaction() as conn:
            for key, value in updates.items():
                if value is None:
                    conn.execute("DELETE FROM kv_store WHERE key = ?", [key])
                else:
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                        VALUES (?, ?, ?)
                        """,
                        [key, value, now],
                    )

    def close(self) -> None:
        """Close this thread's database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
