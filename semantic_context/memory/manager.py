"""
Memory Store - High-level interface for the memory system.

Owns the lifecycle of memories: creation with embeddings, ranked search,
feedback-driven importance, usage tracking and pruning. Every operation is
scoped by owner.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from ..embeddings import EmbeddingProvider, SimpleEmbedding
from ..errors import DimensionMismatch, NotFound, ProviderUnavailable, ValidationError
from .storage import InMemoryStorage, MemoryStorage
from .types import (
    FeedbackType,
    Memory,
    MemoryCategory,
    MemoryFilter,
    MemorySearchResult,
    MemorySource,
    MemoryStats,
    TaskType,
    coerce_enum,
    new_memory_id,
    summarize,
    utc_now,
)


logger = logging.getLogger(__name__)


# Relevance weights when a query is present
SIMILARITY_WEIGHT = 0.5
QUERY_IMPORTANCE_WEIGHT = 0.3
QUERY_PINNED_BOOST = 0.3

# Relevance weights without a query
IMPORTANCE_WEIGHT = 0.7
PINNED_BOOST = 0.5

MAX_USAGE_BOOST = 0.2


def usage_boost(usage_count: int) -> float:
    """Usage contributes up to 0.2, reached at 20 uses."""
    return min(usage_count / 100, MAX_USAGE_BOOST)


def query_relevance(memory: Memory, similarity: float) -> float:
    """Relevance of a memory to a query it was compared against."""
    pinned = QUERY_PINNED_BOOST if memory.is_pinned else 0.0
    return (
        similarity * SIMILARITY_WEIGHT
        + memory.importance * QUERY_IMPORTANCE_WEIGHT
        + usage_boost(memory.usage_count)
        + pinned
    )


def standing_relevance(memory: Memory) -> float:
    """Relevance of a memory when no query is given."""
    pinned = PINNED_BOOST if memory.is_pinned else 0.0
    return memory.importance * IMPORTANCE_WEIGHT + usage_boost(memory.usage_count) + pinned


def _require_owner(owner_id: str) -> str:
    if not isinstance(owner_id, str) or not owner_id.strip():
        raise ValidationError("owner_id", "must be a non-empty string")
    return owner_id


def _require_unit_interval(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field_name, "must be a number")
    if not 0.0 <= value <= 1.0:
        raise ValidationError(field_name, "must be between 0 and 1")
    return float(value)


def _require_count(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(field_name, "must be a non-negative integer")
    return value


def _validate_imported(memory: Memory) -> None:
    """Imported records must satisfy the same bounds as created ones."""
    if not isinstance(memory.content, str) or not memory.content.strip():
        raise ValidationError("content", "must be a non-empty string")
    memory.importance = _require_unit_interval(memory.importance, "importance")
    _require_count(memory.usage_count, "usage_count")
    _require_count(memory.positive_feedback_count, "positive_feedback_count")
    _require_count(memory.negative_feedback_count, "negative_feedback_count")
    if memory.effectiveness_score is not None:
        _require_unit_interval(memory.effectiveness_score, "effectiveness_score")


class MemoryStore:
    """
    High-level memory management interface.

    Example usage:
        store = MemoryStore(storage=SQLiteStorage(db_path="memory.db"))

        memory = store.create(
            "owner-1",
            "Customers love behind-the-scenes videos",
            category="performance_insight",
        )

        results = store.search("owner-1", query="video ideas", limit=5)

        store.apply_feedback(memory.id, "positive")
        store.prune("owner-1")
    """

    # Pruning thresholds for the low-value sweep
    PRUNE_MAX_IMPORTANCE = 0.2
    PRUNE_MAX_USAGE = 3
    PRUNE_MIN_AGE_DAYS = 30

    DEFAULT_SEARCH_LIMIT = 10

    def __init__(
        self,
        storage: Optional[MemoryStorage] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the memory store.

        Args:
            storage: Storage backend. Defaults to in-memory storage.
            embedding_provider: Embedding provider. Defaults to simple embeddings.
            clock: Source of the current time.
        """
        self._storage = storage if storage is not None else InMemoryStorage()
        self._embedding_provider = (
            embedding_provider if embedding_provider is not None else SimpleEmbedding()
        )
        self._clock = clock

    @property
    def storage(self) -> MemoryStorage:
        """Get the storage backend."""
        return self._storage

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        """Get the embedding provider."""
        return self._embedding_provider

    # ========== Core Memory Operations ==========

    def create(
        self,
        owner_id: str,
        content: str,
        summary: Optional[str] = None,
        category: Optional[Union[MemoryCategory, str]] = None,
        source: Optional[Union[MemorySource, str]] = None,
        importance: Optional[float] = None,
        tags: Optional[List[str]] = None,
        pinned: bool = False,
        expires_at: Optional[datetime] = None,
        related_platform: Optional[str] = None,
        related_task_type: Optional[Union[TaskType, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Memory:
        """
        Store a new memory.

        The content is embedded first. If the embedding model is
        unavailable the memory is still stored, without an embedding; it
        will not show up in query searches but remains reachable by
        filters and pinning.

        Args:
            owner_id: Owner of the memory
            content: The fact to remember
            summary: Short form; derived from content when omitted
            category: Defaults to general
            source: Defaults to auto_learning
            importance: Importance in [0, 1], default 0.5
            tags: Labels for the memory
            pinned: Always offer this memory to context assembly
            expires_at: When the memory stops applying
            related_platform: Platform the memory applies to
            related_task_type: Task the memory applies to
            metadata: Extra context

        Returns:
            The stored memory

        Raises:
            ValidationError: For malformed fields
        """
        _require_owner(owner_id)
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("content", "must be a non-empty string")

        memory = Memory(
            owner_id=owner_id,
            content=content,
            summary=summary or summarize(content),
            category=(
                coerce_enum(MemoryCategory, category, "category")
                if category is not None else MemoryCategory.GENERAL
            ),
            source=(
                coerce_enum(MemorySource, source, "source")
                if source is not None else MemorySource.AUTO_LEARNING
            ),
            importance=(
                _require_unit_interval(importance, "importance")
                if importance is not None else 0.5
            ),
            tags=list(tags or []),
            is_pinned=bool(pinned),
            expires_at=expires_at,
            related_platform=related_platform,
            related_task_type=(
                coerce_enum(TaskType, related_task_type, "related_task_type")
                if related_task_type is not None else None
            ),
            metadata=dict(metadata or {}),
            created_at=self._clock(),
        )

        try:
            memory.embedding = self._embedding_provider.embed(content)
        except ProviderUnavailable as e:
            logger.warning(
                f"Storing memory for owner {owner_id} without embedding: {e}"
            )

        self._storage.save(memory)

        logger.info(
            f"Created memory {memory.id} for owner {owner_id}, "
            f"category: {memory.category.value}, importance: {memory.importance}"
        )
        return memory

    def get(self, owner_id: str, memory_id: str) -> Memory:
        """
        Retrieve a specific memory by ID.

        Raises:
            NotFound: If the memory does not exist for this owner
        """
        _require_owner(owner_id)
        memory = self._storage.get(memory_id)
        if memory is None or memory.owner_id != owner_id:
            raise NotFound("memory", memory_id)
        return memory

    def search(
        self,
        owner_id: str,
        query: Optional[str] = None,
        category: Optional[Union[MemoryCategory, str]] = None,
        platform: Optional[str] = None,
        task_type: Optional[Union[TaskType, str]] = None,
        min_importance: Optional[float] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        include_inactive: bool = False,
    ) -> List[MemorySearchResult]:
        """
        Search for relevant memories.

        With a query, memories are ranked mostly by similarity to it;
        memories without an embedding are left out. Without a query,
        importance dominates and pinning weighs more.

        Args:
            owner_id: Owner to search within
            query: Search query text
            category: Filter by category
            platform: Filter by related platform
            task_type: Filter by related task type
            min_importance: Minimum importance score
            limit: Maximum results
            include_inactive: Also return inactive and expired memories

        Returns:
            Results sorted by relevance, best first

        Raises:
            ProviderUnavailable: If the query cannot be embedded
        """
        _require_owner(owner_id)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit", "must be a positive integer")

        memory_filter = MemoryFilter(
            owner_id=owner_id,
            active_only=not include_inactive,
            exclude_expired=not include_inactive,
            category=(
                coerce_enum(MemoryCategory, category, "category")
                if category is not None else None
            ),
            related_platform=platform,
            related_task_type=(
                coerce_enum(TaskType, task_type, "task_type")
                if task_type is not None else None
            ),
            min_importance=(
                _require_unit_interval(min_importance, "min_importance")
                if min_importance is not None else None
            ),
            now=self._clock(),
        )

        memories = self._storage.find(memory_filter)
        if not memories:
            return []

        if query:
            results = self._rank_by_query(memories, query)
        else:
            results = [
                MemorySearchResult(memory=memory, score=standing_relevance(memory))
                for memory in memories
            ]

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def _rank_by_query(
        self,
        memories: List[Memory],
        query: str,
    ) -> List[MemorySearchResult]:
        query_embedding = self._embedding_provider.embed(query)

        results = []
        for memory in memories:
            if not memory.has_embedding:
                continue
            try:
                similarity = self._embedding_provider.similarity(
                    query_embedding, memory.embedding
                )
            except DimensionMismatch as e:
                logger.warning(f"Skipping memory {memory.id} in search: {e}")
                continue

            results.append(MemorySearchResult(
                memory=memory,
                score=query_relevance(memory, similarity),
                similarity=similarity,
            ))
        return results

    def get_pinned(self, owner_id: str) -> List[Memory]:
        """
        Get pinned memories, most important first.

        Pinned memories are returned while active, regardless of expiry.
        """
        _require_owner(owner_id)
        memories = self._storage.find(MemoryFilter(
            owner_id=owner_id,
            exclude_expired=False,
            pinned=True,
        ))
        memories.sort(key=lambda m: m.importance, reverse=True)
        return memories

    def get_by_category(
        self,
        owner_id: str,
        category: Union[MemoryCategory, str],
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> List[Memory]:
        """Get active memories of one category, by importance then usage."""
        _require_owner(owner_id)
        memories = self._storage.find(MemoryFilter(
            owner_id=owner_id,
            exclude_expired=False,
            category=coerce_enum(MemoryCategory, category, "category"),
        ))
        memories.sort(key=lambda m: (m.importance, m.usage_count), reverse=True)
        return memories[:limit]

    def record_usage(self, memory_id: str) -> None:
        """
        Record that a memory was included in a built context.

        Usage is telemetry: failures are logged and never raised.
        """
        try:
            if not self._storage.increment_usage(memory_id, self._clock()):
                logger.warning(f"Cannot record usage, memory not found: {memory_id}")
        except Exception as e:
            logger.error(f"Failed to record memory usage for {memory_id}: {e}")

    def apply_feedback(
        self,
        memory_id: str,
        outcome: Union[FeedbackType, str],
        owner_id: Optional[str] = None,
    ) -> Memory:
        """
        Adjust a memory's importance from a feedback event.

        Positive feedback adds 0.05 (capped at 1.0); negative feedback
        removes 0.10 (floored at 0.0). The effectiveness score is
        recomputed afterwards.

        Args:
            memory_id: Memory the feedback is about
            outcome: "positive" or "negative"
            owner_id: When given, the memory must belong to this owner

        Returns:
            The updated memory

        Raises:
            NotFound: If the memory does not exist (for this owner)
        """
        outcome = coerce_enum(FeedbackType, outcome, "outcome")

        if owner_id is not None:
            self.get(owner_id, memory_id)

        # Updated in place so a concurrent usage increment is never overwritten
        memory = self._storage.apply_feedback(memory_id, outcome, self._clock())
        if memory is None:
            raise NotFound("memory", memory_id)

        logger.info(
            f"Updated memory {memory_id} importance to {memory.importance:.2f} "
            f"({outcome.value} feedback)"
        )
        return memory

    def delete(self, owner_id: str, memory_id: str) -> None:
        """
        Permanently delete a memory.

        Raises:
            NotFound: If the memory does not exist for this owner
        """
        self.get(owner_id, memory_id)
        self._storage.delete(memory_id)
        logger.info(f"Deleted memory {memory_id}")

    # ========== Auto-learning ==========

    def learn_from_correction(
        self,
        owner_id: str,
        original_content: str,
        corrected_content: str,
        platform: Optional[str] = None,
        task_type: Optional[Union[TaskType, str]] = None,
        category: Optional[Union[MemoryCategory, str]] = None,
    ) -> Memory:
        """
        Remember a user's edit of generated content.

        Args:
            owner_id: Owner who made the edit
            original_content: Generated text
            corrected_content: Text after the user's edit
            platform: Platform the content was for
            task_type: Task that produced the content
            category: Defaults to correction

        Returns:
            The new memory
        """
        return self.create(
            owner_id,
            f'User prefers: "{corrected_content}" over "{original_content}"',
            summary=f"Correction: {corrected_content[:100]}...",
            category=category or MemoryCategory.CORRECTION,
            source=MemorySource.USER_EDIT,
            importance=0.7,
            related_platform=platform,
            related_task_type=task_type,
            tags=["user_correction", "learning"],
        )

    def learn_from_performance(
        self,
        owner_id: str,
        content: str,
        performance_metric: float,
        platform: Optional[str] = None,
        task_type: Optional[Union[TaskType, str]] = None,
    ) -> Optional[Memory]:
        """
        Remember content that performed exceptionally well or badly.

        Only metrics above 0.8 or below 0.3 produce a memory.

        Returns:
            The new memory, or None for unremarkable performance
        """
        if 0.3 <= performance_metric <= 0.8:
            return None

        is_success = performance_metric > 0.8
        return self.create(
            owner_id,
            content,
            category=(
                MemoryCategory.SUCCESS_PATTERN if is_success
                else MemoryCategory.AVOID_PATTERN
            ),
            source=MemorySource.PERFORMANCE_DATA,
            importance=0.8 if is_success else 0.6,
            related_platform=platform,
            related_task_type=task_type,
            tags=(
                ["high_performance", "success"] if is_success
                else ["low_performance", "avoid"]
            ),
        )

    # ========== Maintenance Operations ==========

    def prune(self, owner_id: str) -> int:
        """
        Deactivate expired and low-value memories.

        Two sweeps over active, unpinned memories:
        expired memories, and memories with importance below 0.2, fewer than
        3 uses and older than 30 days. Pinned memories are never touched.
        Failures are logged and reported as zero pruned.

        Returns:
            Number of memories deactivated
        """
        _require_owner(owner_id)
        now = self._clock()
        cutoff = now - timedelta(days=self.PRUNE_MIN_AGE_DAYS)

        try:
            candidates = self._storage.find(MemoryFilter(
                owner_id=owner_id,
                exclude_expired=False,
                pinned=False,
            ))

            expired_ids = {m.id for m in candidates if m.is_expired(now)}
            low_value_ids = [
                m.id for m in candidates
                if m.id not in expired_ids
                and m.importance < self.PRUNE_MAX_IMPORTANCE
                and m.usage_count < self.PRUNE_MAX_USAGE
                and m.created_at < cutoff
            ]

            total_pruned = (
                self._storage.deactivate(expired_ids)
                + self._storage.deactivate(low_value_ids)
            )
        except Exception as e:
            logger.error(f"Failed to prune memories for owner {owner_id}: {e}")
            return 0

        if total_pruned > 0:
            logger.info(f"Pruned {total_pruned} memories for owner {owner_id}")

        return total_pruned

    # ========== Import/Export ==========

    def export_memories(self, owner_id: str, output_path: str) -> int:
        """
        Export all of an owner's memories, inactive included, to JSON.

        Returns:
            Number of memories exported
        """
        _require_owner(owner_id)
        memories = self._storage.find(MemoryFilter(
            owner_id=owner_id,
            active_only=False,
            exclude_expired=False,
        ))
        entries = [memory.to_dict() for memory in memories]

        with open(output_path, "w") as f:
            json.dump({
                "version": 1,
                "exported_at": utc_now().isoformat(),
                "entries": entries,
            }, f, indent=2)

        logger.info(f"Exported {len(entries)} memories to {output_path}")
        return len(entries)

    def import_memories(self, owner_id: str, input_path: str) -> int:
        """
        Import memories from a JSON export into an owner's memories.

        Every entry is stored under owner_id, whatever owner the file
        names. An entry whose id belongs to another owner gets a fresh id
        so the import never overwrites that owner's memory. Malformed
        entries are skipped with a warning.

        Returns:
            Number of memories imported
        """
        _require_owner(owner_id)
        with open(input_path, "r") as f:
            data = json.load(f)

        if not isinstance(data, dict) or not isinstance(data.get("entries", []), list):
            raise ValidationError("import", f"{input_path} is not a memory export")

        imported = 0
        for entry in data.get("entries", []):
            try:
                memory = Memory.from_dict({**entry, "owner_id": owner_id})
                _validate_imported(memory)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to import memory entry: {e}")
                continue

            existing = self._storage.get(memory.id)
            if existing is not None and existing.owner_id != owner_id:
                logger.warning(
                    f"Memory id {memory.id} belongs to another owner, importing under a new id"
                )
                memory.id = new_memory_id()

            self._storage.save(memory)
            imported += 1

        logger.info(f"Imported {imported} memories from {input_path}")
        return imported

    # ========== Statistics ==========

    def get_stats(self, owner_id: str) -> MemoryStats:
        """Get memory statistics for an owner."""
        _require_owner(owner_id)
        memories = self._storage.find(MemoryFilter(
            owner_id=owner_id,
            active_only=False,
            exclude_expired=False,
        ))

        stats = MemoryStats(total=len(memories))
        active = [m for m in memories if m.is_active]
        stats.active = len(active)
        stats.pinned = sum(1 for m in active if m.is_pinned)
        stats.with_embedding = sum(1 for m in active if m.has_embedding)

        for memory in active:
            key = memory.category.value
            stats.by_category[key] = stats.by_category.get(key, 0) + 1

        if active:
            stats.average_importance = sum(m.importance for m in active) / len(active)

        return stats

    def close(self):
        """Close the store and release resources."""
        self._storage.close()
