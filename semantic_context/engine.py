"""
Context Engine - Owner-facing operations over memories and context assembly.
"""

import logging
from typing import Any, List, Optional, Union

from .config import SemanticContextConfig
from .context import ContextAssembler, ContextBuildRequest, ContextBuildResult
from .context.snapshots import InMemorySnapshotStore
from .embeddings import EmbeddingFactory
from .errors import ValidationError
from .memory import (
    FeedbackType,
    InMemoryStorage,
    Memory,
    MemorySearchResult,
    MemoryStats,
    MemoryStorage,
    MemoryStore,
    SQLiteStorage,
    TaskType,
)


logger = logging.getLogger(__name__)


def create_storage(config: SemanticContextConfig) -> MemoryStorage:
    """Create the storage backend named in the configuration."""
    backend = config.storage.backend.lower()
    if backend == "sqlite":
        return SQLiteStorage(db_path=config.storage.resolved_db_path())
    if backend == "memory":
        return InMemoryStorage()
    raise ValidationError(
        "storage.backend", f"unknown backend '{config.storage.backend}'. Available: memory, sqlite"
    )


class ContextEngine:
    """
    Memory and context operations for many owners.

    Every operation is scoped by owner_id; one owner never sees another's
    memories.

    Example usage:
        engine = ContextEngine.from_config(load_config(), snapshots=snapshots)

        engine.create_memory("owner-1", "Short captions with one emoji work best",
                             category="style_preference", pinned=True)

        result = engine.build_context("owner-1", "caption_generation",
                                      platform="instagram")
        print(result.context)

        engine.close()
    """

    def __init__(
        self,
        memory_store: MemoryStore,
        assembler: ContextAssembler,
        config: Optional[SemanticContextConfig] = None,
    ):
        self.memory_store = memory_store
        self.assembler = assembler
        self.config = config or SemanticContextConfig()

    @classmethod
    def from_config(
        cls,
        config: Optional[SemanticContextConfig] = None,
        snapshots: Optional[InMemorySnapshotStore] = None,
    ) -> "ContextEngine":
        """
        Wire an engine from configuration.

        Args:
            config: Engine configuration. Defaults apply when omitted.
            snapshots: Profile, platform and template snapshots. Context is
                built from memories alone when omitted.

        Returns:
            Configured engine
        """
        config = config or SemanticContextConfig()

        provider = EmbeddingFactory.create(config.embedding)
        storage = create_storage(config)
        memory_store = MemoryStore(storage=storage, embedding_provider=provider)
        assembler = ContextAssembler(
            memory_store,
            profiles=snapshots,
            platforms=snapshots,
            templates=snapshots,
            config=config.context,
        )

        logger.debug(
            f"Context engine ready: embedding={provider.model_name}, "
            f"storage={config.storage.backend}"
        )
        return cls(memory_store, assembler, config)

    # ========== Memories ==========

    def create_memory(self, owner_id: str, content: str, **fields: Any) -> Memory:
        """Store a new memory. See MemoryStore.create for the fields."""
        return self.memory_store.create(owner_id, content, **fields)

    def get_memory(self, owner_id: str, memory_id: str) -> Memory:
        return self.memory_store.get(owner_id, memory_id)

    def search_memories(
        self,
        owner_id: str,
        query: Optional[str] = None,
        **filters: Any,
    ) -> List[MemorySearchResult]:
        """Search an owner's memories. See MemoryStore.search for the filters."""
        return self.memory_store.search(owner_id, query=query, **filters)

    def submit_feedback(
        self,
        owner_id: str,
        memory_id: str,
        outcome: Union[FeedbackType, str],
    ) -> Memory:
        """Apply positive or negative feedback to one of the owner's memories."""
        return self.memory_store.apply_feedback(memory_id, outcome, owner_id=owner_id)

    def learn_from_correction(
        self,
        owner_id: str,
        original_content: str,
        corrected_content: str,
        **fields: Any,
    ) -> Memory:
        return self.memory_store.learn_from_correction(
            owner_id, original_content, corrected_content, **fields
        )

    def learn_from_performance(
        self,
        owner_id: str,
        content: str,
        performance_metric: float,
        **fields: Any,
    ) -> Optional[Memory]:
        return self.memory_store.learn_from_performance(
            owner_id, content, performance_metric, **fields
        )

    def prune(self, owner_id: str) -> int:
        """Deactivate the owner's expired and low-value memories."""
        return self.memory_store.prune(owner_id)

    def delete_memory(self, owner_id: str, memory_id: str) -> None:
        self.memory_store.delete(owner_id, memory_id)

    def get_stats(self, owner_id: str) -> MemoryStats:
        return self.memory_store.get_stats(owner_id)

    def export_memories(self, owner_id: str, output_path: str) -> int:
        """Write the owner's memories to a JSON file."""
        return self.memory_store.export_memories(owner_id, output_path)

    def import_memories(self, owner_id: str, input_path: str) -> int:
        """Load memories from a JSON export into the owner's memories."""
        return self.memory_store.import_memories(owner_id, input_path)

    # ========== Context ==========

    def _request(
        self,
        owner_id: str,
        task_type: Union[TaskType, str],
        platform: Optional[str],
        extra: Optional[str],
        max_tokens: Optional[int],
    ) -> ContextBuildRequest:
        return ContextBuildRequest(
            owner_id=owner_id,
            task_type=task_type,
            platform=platform,
            extra=extra,
            max_tokens=(
                max_tokens if max_tokens is not None
                else self.config.context.extended_budget
            ),
        )

    def build_context(
        self,
        owner_id: str,
        task_type: Union[TaskType, str],
        platform: Optional[str] = None,
        extra: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ContextBuildResult:
        """
        Build context for a generation task.

        Usage of every included memory is recorded in the background.

        Args:
            owner_id: Owner to build for
            task_type: Generation task
            platform: Optional platform to focus on
            extra: Freeform text appended last if it fits
            max_tokens: Token budget, defaults to the extended budget

        Returns:
            The assembled context
        """
        request = self._request(owner_id, task_type, platform, extra, max_tokens)
        return self.assembler.build(request)

    def preview_context(
        self,
        owner_id: str,
        task_type: Union[TaskType, str],
        platform: Optional[str] = None,
        extra: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ContextBuildResult:
        """Build context without recording memory usage."""
        request = self._request(owner_id, task_type, platform, extra, max_tokens)
        return self.assembler.preview(request)

    def close(self) -> None:
        """Wait for pending usage recording, then release storage."""
        self.assembler.shutdown(wait=True)
        self.memory_store.close()

    def __enter__(self) -> "ContextEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
