"""
Context assembly: token-bounded context strings built from memories and
read-only profile, platform and template snapshots.
"""

from .types import (
    ContextTier,
    ContextBuildRequest,
    ContextBuildResult,
    ContextMetadata,
)

from .tokens import estimate_tokens, TokenBudget

from .snapshots import (
    BrandAssets,
    BrandVoice,
    BusinessProfile,
    ContextTemplate,
    InMemorySnapshotStore,
    PlatformProvider,
    PlatformStats,
    Product,
    ProfileProvider,
    TemplateProvider,
    load_snapshot_file,
)

from .builder import ContextAssembler, TASK_QUERIES, task_query


__all__ = [
    # Types
    "ContextTier",
    "ContextBuildRequest",
    "ContextBuildResult",
    "ContextMetadata",
    # Tokens
    "estimate_tokens",
    "TokenBudget",
    # Snapshots
    "BrandAssets",
    "BrandVoice",
    "BusinessProfile",
    "ContextTemplate",
    "InMemorySnapshotStore",
    "PlatformProvider",
    "PlatformStats",
    "Product",
    "ProfileProvider",
    "TemplateProvider",
    "load_snapshot_file",
    # Assembly
    "ContextAssembler",
    "TASK_QUERIES",
    "task_query",
]
