"""
Memory System for context assembly.

Stores owner-scoped facts, preferences and patterns, ranks them by
similarity, importance and usage, and learns from feedback.

Key features:
- In-memory and SQLite storage backends
- Vector embeddings for semantic search
- Feedback-driven importance
- Expiry and low-value pruning
- Export/import functionality
"""

from .types import (
    FeedbackType,
    Memory,
    MemoryCategory,
    MemoryFilter,
    MemorySearchResult,
    MemorySource,
    MemoryStats,
    TaskType,
)

from .storage import (
    MemoryStorage,
    InMemoryStorage,
    SQLiteStorage,
)

from .manager import (
    MemoryStore,
)


__all__ = [
    # Types
    "FeedbackType",
    "Memory",
    "MemoryCategory",
    "MemoryFilter",
    "MemorySearchResult",
    "MemorySource",
    "MemoryStats",
    "TaskType",
    # Storage
    "MemoryStorage",
    "InMemoryStorage",
    "SQLiteStorage",
    # Store
    "MemoryStore",
]
