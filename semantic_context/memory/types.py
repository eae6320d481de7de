"""
Memory type definitions for the memory system.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from ..errors import ValidationError


E = TypeVar("E", bound=Enum)


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a datetime from string or return as-is if already datetime.

    Handles ISO format strings including 'Z' suffix for UTC. Naive values
    are taken to be UTC.

    Args:
        value: String or datetime to parse

    Returns:
        Parsed timezone-aware datetime or None
    """
    if value is None:
        return None
    if isinstance(value, str):
        # Handle 'Z' suffix for UTC
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return None


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a sortable UTC ISO-8601 string."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return parsed.isoformat(timespec="microseconds")


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """
    Convert a raw value into a member of a closed set.

    Raises:
        ValidationError: If the value is not a member.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            field_name, f"'{value}' is not one of: {allowed}"
        ) from None


class MemoryCategory(Enum):
    """What kind of knowledge a memory holds."""

    PREFERENCE = "preference"
    PERFORMANCE_INSIGHT = "performance_insight"
    STYLE_PREFERENCE = "style_preference"
    BUSINESS_INFO = "business_info"
    AUDIENCE_INSIGHT = "audience_insight"
    # User corrections to generated output
    CORRECTION = "correction"
    SUCCESS_PATTERN = "success_pattern"
    AVOID_PATTERN = "avoid_pattern"
    SEASONAL = "seasonal"
    CAMPAIGN = "campaign"
    GENERAL = "general"


class MemorySource(Enum):
    """How a memory was created."""

    USER_FEEDBACK = "user_feedback"
    USER_EDIT = "user_edit"
    PERFORMANCE_DATA = "performance_data"
    USER_INPUT = "user_input"
    AUTO_LEARNING = "auto_learning"
    SYSTEM = "system"


class TaskType(Enum):
    """Generation tasks that context can be assembled for."""

    GENERATE_IDEAS = "generate_ideas"
    CAPTION_GENERATION = "caption_generation"
    HOOK_GENERATION = "hook_generation"
    HASHTAG_GENERATION = "hashtag_generation"
    ENHANCEMENT = "enhancement"


class FeedbackType(Enum):
    """Outcome of a feedback event on a memory."""

    POSITIVE = "positive"
    NEGATIVE = "negative"


POSITIVE_FEEDBACK_STEP = 0.05
NEGATIVE_FEEDBACK_STEP = 0.10
SUMMARY_MAX_LENGTH = 100


def new_memory_id() -> str:
    return f"mem_{uuid.uuid4().hex}"


def summarize(content: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    """Derive a summary by truncation."""
    if len(content) <= max_length:
        return content
    return content[:max_length - 3] + "..."


def _dedupe(tags: List[str]) -> List[str]:
    seen = set()
    unique = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            unique.append(tag)
    return unique


@dataclass
class Memory:
    """
    A single learned fact, preference or pattern about an owner.

    Attributes:
        owner_id: Tenant the memory belongs to; every operation is scoped by it
        content: The fact itself
        summary: Shorter text, derived from content when not supplied
        category: Kind of knowledge
        source: How the memory was created
        embedding: Vector for similarity search; None if embedding failed
        importance: Weight in [0, 1], moved only by feedback
        usage_count: Times the memory was included in a built context
        last_used_at: When it was last included
        tags: Free-form labels, unique
        related_platform: Optional platform filter
        related_task_type: Optional task filter
        expires_at: After this the memory is ignored and pruned
        is_active: Soft-delete flag
        is_pinned: Always offered to context assembly
        effectiveness_score: positive / (positive + negative), None before any feedback
        metadata: Extra context about the memory
    """

    owner_id: str
    content: str
    id: Optional[str] = None
    summary: Optional[str] = None
    category: MemoryCategory = MemoryCategory.GENERAL
    source: MemorySource = MemorySource.AUTO_LEARNING
    embedding: Optional[List[float]] = None
    importance: float = 0.5
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    related_platform: Optional[str] = None
    related_task_type: Optional[TaskType] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    is_pinned: bool = False
    positive_feedback_count: int = 0
    negative_feedback_count: int = 0
    effectiveness_score: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Initialize defaults after creation."""
        self.created_at = parse_datetime(self.created_at) or utc_now()
        self.updated_at = parse_datetime(self.updated_at)
        self.expires_at = parse_datetime(self.expires_at)
        self.last_used_at = parse_datetime(self.last_used_at)
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.id is None:
            self.id = new_memory_id()
        if self.summary is None:
            self.summary = summarize(self.content)
        self.tags = _dedupe(self.tags)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the memory is past its expiry."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())

    def record_feedback(self, outcome: FeedbackType, now: Optional[datetime] = None):
        """
        Apply one feedback event.

        Negative feedback moves importance down twice as fast as positive
        feedback moves it up.
        """
        if outcome == FeedbackType.POSITIVE:
            self.positive_feedback_count += 1
            self.importance = min(self.importance + POSITIVE_FEEDBACK_STEP, 1.0)
        else:
            self.negative_feedback_count += 1
            self.importance = max(self.importance - NEGATIVE_FEEDBACK_STEP, 0.0)

        total = self.positive_feedback_count + self.negative_feedback_count
        if total > 0:
            self.effectiveness_score = self.positive_feedback_count / total
        self.updated_at = now or utc_now()

    def touch(self, now: Optional[datetime] = None):
        """Update usage count and time."""
        self.usage_count += 1
        self.last_used_at = now or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "content": self.content,
            "summary": self.summary,
            "category": self.category.value,
            "source": self.source.value,
            "embedding": self.embedding,
            "importance": self.importance,
            "usage_count": self.usage_count,
            "last_used_at": format_datetime(self.last_used_at),
            "tags": list(self.tags),
            "related_platform": self.related_platform,
            "related_task_type": (
                self.related_task_type.value if self.related_task_type else None
            ),
            "expires_at": format_datetime(self.expires_at),
            "is_active": self.is_active,
            "is_pinned": self.is_pinned,
            "positive_feedback_count": self.positive_feedback_count,
            "negative_feedback_count": self.negative_feedback_count,
            "effectiveness_score": self.effectiveness_score,
            "metadata": self.metadata,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Memory":
        """Create from dictionary."""
        task_type = data.get("related_task_type")

        return cls(
            id=data.get("id"),
            owner_id=data["owner_id"],
            content=data.get("content", ""),
            summary=data.get("summary"),
            category=coerce_enum(
                MemoryCategory, data.get("category", "general"), "category"
            ),
            source=coerce_enum(
                MemorySource, data.get("source", "auto_learning"), "source"
            ),
            embedding=data.get("embedding"),
            importance=data.get("importance", 0.5),
            usage_count=data.get("usage_count", 0),
            last_used_at=parse_datetime(data.get("last_used_at")),
            tags=data.get("tags") or [],
            related_platform=data.get("related_platform"),
            related_task_type=(
                coerce_enum(TaskType, task_type, "related_task_type")
                if task_type else None
            ),
            expires_at=parse_datetime(data.get("expires_at")),
            is_active=data.get("is_active", True),
            is_pinned=data.get("is_pinned", False),
            positive_feedback_count=data.get("positive_feedback_count", 0),
            negative_feedback_count=data.get("negative_feedback_count", 0),
            effectiveness_score=data.get("effectiveness_score"),
            metadata=data.get("metadata") or {},
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class MemoryFilter:
    """
    Equality filters a storage backend applies before ranking.

    Attributes:
        owner_id: Required tenant scope
        active_only: Skip soft-deleted memories
        exclude_expired: Skip memories whose expires_at has passed
        category: Match this category
        related_platform: Match this platform
        related_task_type: Match this task type
        min_importance: Minimum importance (inclusive)
        pinned: Match pinned (True) or unpinned (False) memories only
        now: Reference time for expiry checks
    """

    owner_id: str
    active_only: bool = True
    exclude_expired: bool = True
    category: Optional[MemoryCategory] = None
    related_platform: Optional[str] = None
    related_task_type: Optional[TaskType] = None
    min_importance: Optional[float] = None
    pinned: Optional[bool] = None
    now: Optional[datetime] = None

    def matches(self, memory: Memory) -> bool:
        """Evaluate the filter against one memory."""
        if memory.owner_id != self.owner_id:
            return False
        if self.active_only and not memory.is_active:
            return False
        if self.exclude_expired and memory.is_expired(self.now):
            return False
        if self.category is not None and memory.category != self.category:
            return False
        if (
            self.related_platform is not None
            and memory.related_platform != self.related_platform
        ):
            return False
        if (
            self.related_task_type is not None
            and memory.related_task_type != self.related_task_type
        ):
            return False
        if self.min_importance is not None and memory.importance < self.min_importance:
            return False
        if self.pinned is not None and memory.is_pinned != self.pinned:
            return False
        return True


@dataclass
class MemorySearchResult:
    """
    Result of a memory search.

    Attributes:
        memory: The memory
        score: Relevance score (higher is better)
        similarity: Cosine similarity to the query; None without a query
    """

    memory: Memory
    score: float = 0.0
    similarity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "memory": self.memory.to_dict(),
            "score": self.score,
            "similarity": self.similarity,
        }


@dataclass
class MemoryStats:
    """Statistics about one owner's memories."""

    total: int = 0
    active: int = 0
    pinned: int = 0
    with_embedding: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)
    average_importance: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "active": self.active,
            "pinned": self.pinned,
            "with_embedding": self.with_embedding,
            "by_category": self.by_category,
            "average_importance": self.average_importance,
        }
