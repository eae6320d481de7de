"""
Semantic Context - memories and token-bounded context for content generation.

Turns a growing collection of free-text memories about a business into a
small context string for steering a generative model.

Key Features:
- Embedding providers (OpenAI, sentence-transformers, hashing) behind a
  bounded, shared vector cache
- Owner-scoped memory store with similarity, importance and usage ranking
- Feedback-driven importance and maintenance pruning
- Three-tier greedy context assembly under a token budget
"""

__version__ = "0.1.0"

from .errors import (
    SemanticContextError,
    ProviderUnavailable,
    DimensionMismatch,
    NotFound,
    ValidationError,
)

from .config import (
    SemanticContextConfig,
    EmbeddingConfig,
    CacheConfig,
    StorageConfig,
    ContextConfig,
    load_config,
)

from .embeddings import (
    EmbeddingCache,
    EmbeddingProvider,
    EmbeddingFactory,
    OpenAIEmbedding,
    SentenceTransformerEmbedding,
    SimpleEmbedding,
)

from .memory import (
    FeedbackType,
    Memory,
    MemoryCategory,
    MemorySearchResult,
    MemorySource,
    MemoryStats,
    MemoryStore,
    InMemoryStorage,
    SQLiteStorage,
    TaskType,
)

from .context import (
    ContextAssembler,
    ContextBuildRequest,
    ContextBuildResult,
    ContextTier,
    InMemorySnapshotStore,
    load_snapshot_file,
)

from .engine import ContextEngine


__all__ = [
    "__version__",
    # Errors
    "SemanticContextError",
    "ProviderUnavailable",
    "DimensionMismatch",
    "NotFound",
    "ValidationError",
    # Config
    "SemanticContextConfig",
    "EmbeddingConfig",
    "CacheConfig",
    "StorageConfig",
    "ContextConfig",
    "load_config",
    # Embeddings
    "EmbeddingCache",
    "EmbeddingProvider",
    "EmbeddingFactory",
    "OpenAIEmbedding",
    "SentenceTransformerEmbedding",
    "SimpleEmbedding",
    # Memory
    "FeedbackType",
    "Memory",
    "MemoryCategory",
    "MemorySearchResult",
    "MemorySource",
    "MemoryStats",
    "MemoryStore",
    "InMemoryStorage",
    "SQLiteStorage",
    "TaskType",
    # Context
    "ContextAssembler",
    "ContextBuildRequest",
    "ContextBuildResult",
    "ContextTier",
    "InMemorySnapshotStore",
    "load_snapshot_file",
    # Engine
    "ContextEngine",
]
