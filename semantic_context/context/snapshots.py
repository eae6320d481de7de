"""
Read-only snapshots of profile, platform and template data.

Context assembly never owns these records; it reads them through the
provider interfaces below. InMemorySnapshotStore implements all three and
can be filled from a YAML file.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..errors import ValidationError
from ..memory.types import TaskType, coerce_enum


logger = logging.getLogger(__name__)


@dataclass
class BrandVoice:
    """How the brand speaks."""

    tone: str = ""
    keywords: List[str] = field(default_factory=list)
    avoid_words: List[str] = field(default_factory=list)
    style_guidelines: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrandVoice":
        return cls(
            tone=data.get("tone", ""),
            keywords=list(data.get("keywords") or []),
            avoid_words=list(data.get("avoid_words") or []),
            style_guidelines=data.get("style_guidelines"),
        )


@dataclass
class Product:
    """A product or service the business offers."""

    name: str
    description: Optional[str] = None
    price: Optional[str] = None
    highlight: bool = False
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        price = data.get("price")
        return cls(
            name=data["name"],
            description=data.get("description"),
            price=str(price) if price is not None else None,
            highlight=bool(data.get("highlight", False)),
            category=data.get("category"),
        )


@dataclass
class BrandAssets:
    """Visual identity of the brand."""

    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    fonts: List[str] = field(default_factory=list)
    image_style: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrandAssets":
        return cls(
            logo_url=data.get("logo_url"),
            primary_color=data.get("primary_color"),
            secondary_color=data.get("secondary_color"),
            fonts=list(data.get("fonts") or []),
            image_style=data.get("image_style"),
        )


@dataclass
class BusinessProfile:
    """Business facts about an owner."""

    owner_id: str
    business_name: str
    business_type: str = ""
    description: str = ""
    tagline: str = ""
    target_audience: str = ""
    unique_selling_points: List[str] = field(default_factory=list)
    brand_voice: Optional[BrandVoice] = None
    brand_values: List[str] = field(default_factory=list)
    products: List[Product] = field(default_factory=list)
    brand_assets: Optional[BrandAssets] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessProfile":
        voice = data.get("brand_voice")
        assets = data.get("brand_assets")
        return cls(
            owner_id=str(data["owner_id"]),
            business_name=data["business_name"],
            business_type=data.get("business_type", ""),
            description=data.get("description", ""),
            tagline=data.get("tagline", ""),
            target_audience=data.get("target_audience", ""),
            unique_selling_points=list(data.get("unique_selling_points") or []),
            brand_voice=BrandVoice.from_dict(voice) if voice else None,
            brand_values=list(data.get("brand_values") or []),
            products=[Product.from_dict(p) for p in data.get("products") or []],
            brand_assets=BrandAssets.from_dict(assets) if assets else None,
        )


@dataclass
class PlatformStats:
    """Audience and performance figures for one owner on one platform."""

    owner_id: str
    platform: str
    followers_count: int = 0
    average_engagement_rate: float = 0.0
    best_posting_times: List[str] = field(default_factory=list)
    high_performing_topics: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlatformStats":
        return cls(
            owner_id=str(data["owner_id"]),
            platform=data["platform"],
            followers_count=int(data.get("followers_count", 0)),
            average_engagement_rate=float(data.get("average_engagement_rate", 0.0)),
            best_posting_times=list(data.get("best_posting_times") or []),
            high_performing_topics=list(data.get("high_performing_topics") or []),
        )


@dataclass
class ContextTemplate:
    """A reusable context snippet for some task types."""

    id: str
    owner_id: str
    name: str
    content: str
    applicable_task_types: List[TaskType] = field(default_factory=list)
    priority: int = 0
    effectiveness_score: float = 0.0
    is_active: bool = True

    def applies_to(self, task_type: TaskType) -> bool:
        return self.is_active and task_type in self.applicable_task_types

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextTemplate":
        return cls(
            id=str(data["id"]),
            owner_id=str(data["owner_id"]),
            name=data["name"],
            content=data["content"],
            applicable_task_types=[
                coerce_enum(TaskType, t, "applicable_task_types")
                for t in data.get("applicable_task_types") or []
            ],
            priority=int(data.get("priority", 0)),
            effectiveness_score=float(data.get("effectiveness_score", 0.0)),
            is_active=bool(data.get("is_active", True)),
        )


class ProfileProvider(ABC):
    """Source of business profile snapshots."""

    @abstractmethod
    def get_profile(self, owner_id: str) -> Optional[BusinessProfile]:
        """Get the owner's profile, or None if there is none."""
        pass


class PlatformProvider(ABC):
    """Source of per-platform statistics."""

    @abstractmethod
    def get_platform_context(
        self,
        owner_id: str,
        platform: str,
    ) -> Optional[PlatformStats]:
        """Get the owner's stats for a platform, or None."""
        pass


class TemplateProvider(ABC):
    """Source of context templates."""

    @abstractmethod
    def get_templates(
        self,
        owner_id: str,
        task_type: TaskType,
        limit: int = 2,
    ) -> List[ContextTemplate]:
        """
        Get active templates applicable to a task type.

        Returns:
            Templates ordered by priority, then effectiveness, highest first
        """
        pass


class InMemorySnapshotStore(ProfileProvider, PlatformProvider, TemplateProvider):
    """
    Snapshot provider backed by dictionaries.

    Useful for tests, the CLI and embedding applications that already hold
    their snapshot data in memory.
    """

    def __init__(self):
        self._profiles: Dict[str, BusinessProfile] = {}
        self._platforms: Dict[Tuple[str, str], PlatformStats] = {}
        self._templates: Dict[str, ContextTemplate] = {}

    def add_profile(self, profile: BusinessProfile) -> None:
        self._profiles[profile.owner_id] = profile

    def add_platform_stats(self, stats: PlatformStats) -> None:
        self._platforms[(stats.owner_id, stats.platform)] = stats

    def add_template(self, template: ContextTemplate) -> None:
        self._templates[template.id] = template

    def get_profile(self, owner_id: str) -> Optional[BusinessProfile]:
        return self._profiles.get(owner_id)

    def get_platform_context(
        self,
        owner_id: str,
        platform: str,
    ) -> Optional[PlatformStats]:
        return self._platforms.get((owner_id, platform))

    def get_templates(
        self,
        owner_id: str,
        task_type: TaskType,
        limit: int = 2,
    ) -> List[ContextTemplate]:
        templates = [
            t for t in self._templates.values()
            if t.owner_id == owner_id and t.applies_to(task_type)
        ]
        templates.sort(key=lambda t: (t.priority, t.effectiveness_score), reverse=True)
        return templates[:limit]


def load_snapshot_file(file_path: Union[str, Path]) -> InMemorySnapshotStore:
    """
    Load snapshots from a YAML file.

    Example file:
        ```yaml
        profiles:
          - owner_id: "bakery-1"
            business_name: "Crumb & Co"
            business_type: "bakery"
        platforms:
          - owner_id: "bakery-1"
            platform: "instagram"
            followers_count: 12500
        templates:
          - id: "tpl-1"
            owner_id: "bakery-1"
            name: "Weekend special"
            content: "Mention the Saturday sourdough drop."
            applicable_task_types: ["caption_generation"]
        ```

    Args:
        file_path: Path to the YAML file

    Returns:
        A store holding every snapshot in the file

    Raises:
        ValidationError: If an entry is malformed
    """
    with open(file_path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValidationError("snapshots", f"{file_path} must contain a mapping")

    store = InMemorySnapshotStore()
    try:
        for entry in data.get("profiles") or []:
            store.add_profile(BusinessProfile.from_dict(entry))
        for entry in data.get("platforms") or []:
            store.add_platform_stats(PlatformStats.from_dict(entry))
        for entry in data.get("templates") or []:
            store.add_template(ContextTemplate.from_dict(entry))
    except ValidationError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError("snapshots", f"malformed entry in {file_path}: {e}") from e

    logger.debug(
        f"Loaded snapshots from {file_path}: {len(store._profiles)} profiles, "
        f"{len(store._platforms)} platforms, {len(store._templates)} templates"
    )
    return store
