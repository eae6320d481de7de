"""
Memory storage backends.

The storage layer is a keyed record store: it saves, loads, filters and
flags memories. Ranking and lifecycle rules live in the memory store.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .types import (
    NEGATIVE_FEEDBACK_STEP,
    POSITIVE_FEEDBACK_STEP,
    FeedbackType,
    Memory,
    MemoryCategory,
    MemoryFilter,
    MemorySource,
    TaskType,
    format_datetime,
    parse_datetime,
    utc_now,
)


logger = logging.getLogger(__name__)


class MemoryStorage(ABC):
    """Abstract base class for memory storage backends."""

    @abstractmethod
    def save(self, memory: Memory) -> str:
        """
        Insert or replace a memory.

        Args:
            memory: The memory to store

        Returns:
            The ID of the stored memory
        """
        pass

    @abstractmethod
    def get(self, memory_id: str) -> Optional[Memory]:
        """
        Load a memory by ID.

        Returns:
            The memory if found, None otherwise
        """
        pass

    @abstractmethod
    def find(self, memory_filter: MemoryFilter) -> List[Memory]:
        """
        Load every memory matching a filter, oldest first.

        Args:
            memory_filter: Owner scope plus equality filters
        """
        pass

    @abstractmethod
    def delete(self, memory_id: str) -> bool:
        """
        Permanently delete a memory.

        Returns:
            True if the memory was deleted, False if not found
        """
        pass

    @abstractmethod
    def increment_usage(self, memory_id: str, used_at: datetime) -> bool:
        """
        Atomically bump usage_count and set last_used_at.

        Returns:
            True if the memory exists
        """
        pass

    @abstractmethod
    def apply_feedback(
        self,
        memory_id: str,
        outcome: FeedbackType,
        updated_at: datetime,
    ) -> Optional[Memory]:
        """
        Atomically apply one feedback event.

        Only importance, the feedback counts, effectiveness_score and
        updated_at change; usage fields are left to increment_usage.

        Returns:
            The updated memory, or None if not found
        """
        pass

    @abstractmethod
    def deactivate(self, memory_ids: Iterable[str]) -> int:
        """
        Soft-delete memories.

        Returns:
            Number of memories that were active and are now inactive
        """
        pass

    def close(self):
        """Release backend resources."""
        pass


class InMemoryStorage(MemoryStorage):
    """
    Process-local storage backed by a dict.

    Copies go in and out so callers never share mutable state with the
    store. Thread-safe.
    """

    def __init__(self):
        self._memories: Dict[str, Memory] = {}
        self._lock = threading.RLock()

    def save(self, memory: Memory) -> str:
        with self._lock:
            self._memories[memory.id] = copy.deepcopy(memory)
        logger.debug(f"Stored memory: {memory.id}")
        return memory.id

    def get(self, memory_id: str) -> Optional[Memory]:
        with self._lock:
            memory = self._memories.get(memory_id)
            return copy.deepcopy(memory) if memory else None

    def find(self, memory_filter: MemoryFilter) -> List[Memory]:
        with self._lock:
            matches = [
                copy.deepcopy(m) for m in self._memories.values()
                if memory_filter.matches(m)
            ]
        matches.sort(key=lambda m: m.created_at)
        return matches

    def delete(self, memory_id: str) -> bool:
        with self._lock:
            deleted = self._memories.pop(memory_id, None) is not None
        if deleted:
            logger.debug(f"Deleted memory: {memory_id}")
        return deleted

    def increment_usage(self, memory_id: str, used_at: datetime) -> bool:
        with self._lock:
            memory = self._memories.get(memory_id)
            if memory is None:
                return False
            memory.touch(used_at)
            return True

    def apply_feedback(
        self,
        memory_id: str,
        outcome: FeedbackType,
        updated_at: datetime,
    ) -> Optional[Memory]:
        with self._lock:
            memory = self._memories.get(memory_id)
            if memory is None:
                return None
            memory.record_feedback(outcome, now=updated_at)
            return copy.deepcopy(memory)

    def deactivate(self, memory_ids: Iterable[str]) -> int:
        count = 0
        now = utc_now()
        with self._lock:
            for memory_id in memory_ids:
                memory = self._memories.get(memory_id)
                if memory is not None and memory.is_active:
                    memory.is_active = False
                    memory.updated_at = now
                    count += 1
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._memories)


class SQLiteStorage(MemoryStorage):
    """
    SQLite-based memory storage.

    Provides persistent storage with SQL-side filtering. Thread-safe via
    one connection per thread. Timestamps are stored as UTC ISO-8601 text
    so they compare correctly as strings.
    """

    # Default database location
    DEFAULT_DB_PATH = ".semantic_context/memory.db"

    # Schema version for migrations
    SCHEMA_VERSION = 1

    # Stay under SQLite's bound-parameter limit
    _BATCH_SIZE = 500

    _COLUMNS = (
        "id", "owner_id", "content", "summary", "category", "source",
        "embedding", "importance", "usage_count", "last_used_at", "tags",
        "related_platform", "related_task_type", "expires_at", "is_active",
        "is_pinned", "positive_feedback_count", "negative_feedback_count",
        "effectiveness_score", "metadata", "created_at", "updated_at",
    )

    def __init__(
        self,
        db_path: Optional[str] = None,
        auto_create: bool = True,
    ):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to the database file. If None, uses default.
            auto_create: Whether to create the database if it doesn't exist.
        """
        if db_path is None:
            db_path = str(Path.home() / self.DEFAULT_DB_PATH)

        self.db_path = db_path
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        if auto_create:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()

    @property
    def _conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "conn", None) is None:
            # Each connection is used by one thread but may be closed from any
            conn = sqlite3.connect(
                self.db_path, timeout=10.0, check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._local.conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database transactions."""
        cursor = self._conn.cursor()
        try:
            yield cursor
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            cursor.close()

    def _ensure_schema(self):
        """Create the database schema if needed."""
        with self._transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)

            cursor.execute("SELECT MAX(version) AS version FROM schema_version")
            row = cursor.fetchone()
            current_version = row["version"] if row and row["version"] else 0

            if current_version < self.SCHEMA_VERSION:
                self._apply_migrations(cursor, current_version)

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        """Apply schema migrations."""
        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS memories (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    summary TEXT,
                    category TEXT NOT NULL,
                    source TEXT NOT NULL,
                    embedding TEXT,
                    importance REAL DEFAULT 0.5,
                    usage_count INTEGER DEFAULT 0,
                    last_used_at TEXT,
                    tags TEXT,
                    related_platform TEXT,
                    related_task_type TEXT,
                    expires_at TEXT,
                    is_active INTEGER DEFAULT 1,
                    is_pinned INTEGER DEFAULT 0,
                    positive_feedback_count INTEGER DEFAULT 0,
                    negative_feedback_count INTEGER DEFAULT 0,
                    effectiveness_score REAL,
                    metadata TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_memories_owner_category
                ON memories(owner_id, category)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_memories_owner_importance
                ON memories(owner_id, importance DESC)
            """)

            cursor.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,)
            )

    def _memory_to_row(self, memory: Memory) -> tuple:
        return (
            memory.id,
            memory.owner_id,
            memory.content,
            memory.summary,
            memory.category.value,
            memory.source.value,
            json.dumps(memory.embedding) if memory.embedding else None,
            memory.importance,
            memory.usage_count,
            format_datetime(memory.last_used_at),
            json.dumps(memory.tags) if memory.tags else None,
            memory.related_platform,
            memory.related_task_type.value if memory.related_task_type else None,
            format_datetime(memory.expires_at),
            int(memory.is_active),
            int(memory.is_pinned),
            memory.positive_feedback_count,
            memory.negative_feedback_count,
            memory.effectiveness_score,
            json.dumps(memory.metadata) if memory.metadata else None,
            format_datetime(memory.created_at),
            format_datetime(memory.updated_at),
        )

    def _row_to_memory(self, row: sqlite3.Row) -> Memory:
        """Convert a database row to a Memory."""
        task_type = row["related_task_type"]

        return Memory(
            id=row["id"],
            owner_id=row["owner_id"],
            content=row["content"],
            summary=row["summary"],
            category=MemoryCategory(row["category"]),
            source=MemorySource(row["source"]),
            embedding=json.loads(row["embedding"]) if row["embedding"] else None,
            importance=row["importance"],
            usage_count=row["usage_count"],
            last_used_at=parse_datetime(row["last_used_at"]),
            tags=json.loads(row["tags"]) if row["tags"] else [],
            related_platform=row["related_platform"],
            related_task_type=TaskType(task_type) if task_type else None,
            expires_at=parse_datetime(row["expires_at"]),
            is_active=bool(row["is_active"]),
            is_pinned=bool(row["is_pinned"]),
            positive_feedback_count=row["positive_feedback_count"],
            negative_feedback_count=row["negative_feedback_count"],
            effectiveness_score=row["effectiveness_score"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=parse_datetime(row["created_at"]),
            updated_at=parse_datetime(row["updated_at"]),
        )

    def save(self, memory: Memory) -> str:
        placeholders = ", ".join("?" * len(self._COLUMNS))
        with self._transaction() as cursor:
            cursor.execute(
                f"INSERT OR REPLACE INTO memories ({', '.join(self._COLUMNS)}) "
                f"VALUES ({placeholders})",
                self._memory_to_row(memory),
            )

        logger.debug(f"Stored memory: {memory.id}")
        return memory.id

    def get(self, memory_id: str) -> Optional[Memory]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM memories WHERE id = ?", (memory_id,))
            row = cursor.fetchone()

        return self._row_to_memory(row) if row else None

    def find(self, memory_filter: MemoryFilter) -> List[Memory]:
        conditions = ["owner_id = ?"]
        params: list = [memory_filter.owner_id]

        if memory_filter.active_only:
            conditions.append("is_active = 1")

        if memory_filter.exclude_expired:
            now = memory_filter.now or utc_now()
            conditions.append("(expires_at IS NULL OR expires_at > ?)")
            params.append(format_datetime(now))

        if memory_filter.category is not None:
            conditions.append("category = ?")
            params.append(memory_filter.category.value)

        if memory_filter.related_platform is not None:
            conditions.append("related_platform = ?")
            params.append(memory_filter.related_platform)

        if memory_filter.related_task_type is not None:
            conditions.append("related_task_type = ?")
            params.append(memory_filter.related_task_type.value)

        if memory_filter.min_importance is not None:
            conditions.append("importance >= ?")
            params.append(memory_filter.min_importance)

        if memory_filter.pinned is not None:
            conditions.append("is_pinned = ?")
            params.append(int(memory_filter.pinned))

        sql = (
            "SELECT * FROM memories WHERE " + " AND ".join(conditions)
            + " ORDER BY created_at ASC"
        )

        with self._transaction() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()

        return [self._row_to_memory(row) for row in rows]

    def delete(self, memory_id: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.debug(f"Deleted memory: {memory_id}")
        return deleted

    def increment_usage(self, memory_id: str, used_at: datetime) -> bool:
        with self._transaction() as cursor:
            cursor.execute(
                """
                UPDATE memories
                SET usage_count = usage_count + 1, last_used_at = ?
                WHERE id = ?
                """,
                (format_datetime(used_at), memory_id),
            )
            return cursor.rowcount > 0

    def apply_feedback(
        self,
        memory_id: str,
        outcome: FeedbackType,
        updated_at: datetime,
    ) -> Optional[Memory]:
        # Right-hand sides of an UPDATE see the old row values
        if outcome == FeedbackType.POSITIVE:
            sql = """
                UPDATE memories
                SET importance = MIN(importance + ?, 1.0),
                    positive_feedback_count = positive_feedback_count + 1,
                    effectiveness_score = CAST(positive_feedback_count + 1 AS REAL)
                        / (positive_feedback_count + negative_feedback_count + 1),
                    updated_at = ?
                WHERE id = ?
            """
            step = POSITIVE_FEEDBACK_STEP
        else:
            sql = """
                UPDATE memories
                SET importance = MAX(importance - ?, 0.0),
                    negative_feedback_count = negative_feedback_count + 1,
                    effectiveness_score = CAST(positive_feedback_count AS REAL)
                        / (positive_feedback_count + negative_feedback_count + 1),
                    updated_at = ?
                WHERE id = ?
            """
            step = NEGATIVE_FEEDBACK_STEP

        with self._transaction() as cursor:
            cursor.execute(sql, (step, format_datetime(updated_at), memory_id))
            if cursor.rowcount == 0:
                return None
            cursor.execute("SELECT * FROM memories WHERE id = ?", (memory_id,))
            row = cursor.fetchone()

        return self._row_to_memory(row)

    def deactivate(self, memory_ids: Iterable[str]) -> int:
        ids = list(memory_ids)
        if not ids:
            return 0

        updated_at = format_datetime(utc_now())
        count = 0
        with self._transaction() as cursor:
            for start in range(0, len(ids), self._BATCH_SIZE):
                chunk = ids[start:start + self._BATCH_SIZE]
                placeholders = ",".join("?" * len(chunk))
                cursor.execute(
                    f"""
                    UPDATE memories SET is_active = 0, updated_at = ?
                    WHERE is_active = 1 AND id IN ({placeholders})
                    """,
                    [updated_at, *chunk],
                )
                count += cursor.rowcount
        return count

    def close(self):
        """Close every connection opened by this storage."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
