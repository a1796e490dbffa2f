"""
Storage Backend Module

Abstract storage interface with in-memory (testing) and SQLite (persistence)
implementations. Records are JSON documents keyed by id; token amounts are
stored as decimal strings so 256-bit values survive any backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from contextlib import contextmanager
from pathlib import Path
import copy
import json
import sqlite3
import threading


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        return result


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @property
    def in_transaction(self) -> bool:
        """Whether the calling thread has an open transaction"""
        return False

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations.

        Nested blocks are independent savepoints: an inner failure discards
        only the inner writes. A failing commit cleans up after itself, so
        rollback only runs for errors raised inside the block.
        """
        self.begin_transaction()
        try:
            yield
        except Exception:
            self.rollback()
            raise
        self.commit()


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    Each transaction level snapshots the tables on begin and restores its own
    snapshot on rollback. The owning thread holds the lock until the
    outermost level ends.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshots: List[Dict[str, Dict[str, Dict[str, Any]]]] = []
        self._owner: Optional[int] = None

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            # Round-trip through JSON so stored records never alias caller data
            self._data.setdefault(table, {})[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            record = self._data.get(table, {}).get(record_id)
            if record is not None:
                return copy.deepcopy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        with self._lock:
            return [copy.deepcopy(record) for record in self._data.get(table, {}).values()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._data.get(table, {})

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._data.get(table, {}))

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    @property
    def in_transaction(self) -> bool:
        return bool(self._snapshots) and self._owner == threading.get_ident()

    def begin_transaction(self) -> None:
        self._lock.acquire()
        self._snapshots.append(copy.deepcopy(self._data))
        self._owner = threading.get_ident()

    def commit(self) -> None:
        self._end_level(restore=False)

    def rollback(self) -> None:
        self._end_level(restore=True)

    def _end_level(self, restore: bool) -> None:
        if not self._snapshots:
            raise RuntimeError("No transaction in progress")
        snapshot = self._snapshots.pop()
        if restore:
            self._data = snapshot
        if not self._snapshots:
            self._owner = None
        self._lock.release()


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # DEFERRED isolation lets us group several saves into one commit
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._owner: Optional[int] = None
        self._tables: set = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            if not self.in_transaction:
                self._connection.commit()
            self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Upsert keeps the original row (and its seq) for existing ids
            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, data_json, now, now))

            if not self.in_transaction:
                self._connection.commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY seq
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0 and self._owner == threading.get_ident()

    def begin_transaction(self) -> None:
        """Start a database transaction, or a savepoint when already in one"""
        self._lock.acquire()
        try:
            if self._depth == 0:
                if not self._connection.in_transaction:
                    self._connection.execute("BEGIN")
            else:
                self._connection.execute(f"SAVEPOINT sp_{self._depth}")
        except Exception:
            self._lock.release()
            raise
        self._depth += 1
        self._owner = threading.get_ident()

    def commit(self) -> None:
        """Commit the current transaction level"""
        if self._depth == 0:
            raise RuntimeError("No transaction in progress")
        try:
            if self._depth == 1:
                try:
                    self._connection.commit()
                except Exception:
                    self._connection.rollback()
                    self._tables.clear()
                    raise
            else:
                self._connection.execute(f"RELEASE SAVEPOINT sp_{self._depth - 1}")
        finally:
            self._end_level()

    def rollback(self) -> None:
        """Rollback the current transaction level"""
        if self._depth == 0:
            raise RuntimeError("No transaction in progress")
        try:
            if self._depth == 1:
                self._connection.rollback()
            else:
                savepoint = f"sp_{self._depth - 1}"
                self._connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self._connection.execute(f"RELEASE SAVEPOINT {savepoint}")
        finally:
            # Tables created inside the rolled back level may be gone
            self._tables.clear()
            self._end_level()

    def _end_level(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._owner = None
        self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
