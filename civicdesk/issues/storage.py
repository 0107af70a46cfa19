"""
Issue Storage Backends

Key-value persistence for JSON-serializable records. The issue store only
talks to the StorageBackend interface, so tests run against the in-memory
fake and the CLI runs against SQLite.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Minimal record storage: get, put and list."""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the record stored under key, or None."""

    @abstractmethod
    def put(self, key: str, record: Dict[str, Any]) -> None:
        """Insert or replace the record stored under key."""

    @abstractmethod
    def list(self) -> List[Dict[str, Any]]:
        """Return all records."""


class InMemoryStorage(StorageBackend):
    """Dict-backed storage. Records are copied in and out."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(key)
            return copy.deepcopy(record) if record is not None else None

    def put(self, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records[key] = copy.deepcopy(record)

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]


class SQLiteStorage(StorageBackend):
    """
    SQLite-based record storage.

    Each record is kept as a JSON document next to a few indexed columns
    used for filtering.

    Example:
        storage = SQLiteStorage("data/issues.db")
        storage.put(issue.id, issue.to_dict())
        record = storage.get(issue.id)
    """

    def __init__(self, db_path: str, table: str = "issues"):
        """
        Initialize the storage.

        Args:
            db_path: Path to SQLite database file
            table: Table name (one table per record kind)
        """
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table}")
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.table = table
        self._init_db()
        logger.info(f"SQLiteStorage initialized at {self.db_path} ({table})")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT PRIMARY KEY,
                    status TEXT,
                    category TEXT,
                    created_at TEXT,
                    data TEXT NOT NULL
                )
            """)
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_status ON {self.table}(status)"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_created_at ON {self.table}(created_at)"
            )

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT data FROM {self.table} WHERE id = ?", (key,)
            ).fetchone()

        return json.loads(row["data"]) if row else None

    def put(self, key: str, record: Dict[str, Any]) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"""
                INSERT OR REPLACE INTO {self.table} (id, status, category, created_at, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    key,
                    record.get("status"),
                    record.get("category"),
                    record.get("created_at"),
                    json.dumps(record),
                ),
            )

        logger.debug(f"Saved record {key}")

    def list(self) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT data FROM {self.table} ORDER BY created_at DESC"
            ).fetchall()

        return [json.loads(row["data"]) for row in rows]
