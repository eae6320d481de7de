"""
Context assembly request and result types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..errors import ValidationError
from ..memory.types import TaskType, coerce_enum


DEFAULT_MAX_TOKENS = 800


class ContextTier(Enum):
    """Ordered content blocks of an assembled context."""

    CORE = "core"
    TASK_SPECIFIC = "task_specific"
    EXTENDED = "extended"


@dataclass
class ContextBuildRequest:
    """
    Request to assemble context for one generation task.

    Attributes:
        owner_id: Owner whose memories and snapshots are used
        task_type: Generation task the context is for
        platform: Optional platform to focus on
        extra: Freeform text appended last if it fits
        max_tokens: Token budget for the whole context
    """

    owner_id: str
    task_type: Union[TaskType, str]
    platform: Optional[str] = None
    extra: Optional[str] = None
    max_tokens: int = DEFAULT_MAX_TOKENS

    def __post_init__(self):
        if not isinstance(self.owner_id, str) or not self.owner_id.strip():
            raise ValidationError("owner_id", "must be a non-empty string")
        self.task_type = coerce_enum(TaskType, self.task_type, "task_type")
        if (
            isinstance(self.max_tokens, bool)
            or not isinstance(self.max_tokens, int)
            or self.max_tokens < 1
        ):
            raise ValidationError("max_tokens", "must be a positive integer")
        if self.platform is not None and not isinstance(self.platform, str):
            raise ValidationError("platform", "must be a string")
        if self.extra is not None and not isinstance(self.extra, str):
            raise ValidationError("extra", "must be a string")


@dataclass
class ContextMetadata:
    """Which tiers and sources contributed to a built context."""

    tier: ContextTier = ContextTier.CORE
    tiers_reached: List[ContextTier] = field(default_factory=list)
    business_profile_included: bool = False
    platform_context_included: bool = False
    pinned_memories_count: int = 0
    relevant_memories_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "tiers_reached": [tier.value for tier in self.tiers_reached],
            "business_profile_included": self.business_profile_included,
            "platform_context_included": self.platform_context_included,
            "pinned_memories_count": self.pinned_memories_count,
            "relevant_memories_count": self.relevant_memories_count,
        }


@dataclass
class ContextBuildResult:
    """
    An assembled context.

    Attributes:
        context: The context string, tiers separated by a blank line
        tokens_used: Sum of the estimated cost of every included piece
        memory_ids: Memories included, in order of inclusion
        template_ids: Templates included
        metadata: Tier and source details
    """

    context: str = ""
    tokens_used: int = 0
    memory_ids: List[str] = field(default_factory=list)
    template_ids: List[str] = field(default_factory=list)
    metadata: ContextMetadata = field(default_factory=ContextMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "context": self.context,
            "tokens_used": self.tokens_used,
            "memory_ids": list(self.memory_ids),
            "template_ids": list(self.template_ids),
            "metadata": self.metadata.to_dict(),
        }
