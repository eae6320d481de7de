"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from semantic_context.context import (
    BrandAssets,
    BrandVoice,
    BusinessProfile,
    ContextTemplate,
    InMemorySnapshotStore,
    PlatformStats,
    Product,
)
from semantic_context.embeddings import EmbeddingCache, SimpleEmbedding
from semantic_context.errors import ProviderUnavailable
from semantic_context.memory import InMemoryStorage, MemoryStore, SQLiteStorage, TaskType


class FakeClock:
    """Controllable clock for time-dependent memory rules."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FlakyEmbedding(SimpleEmbedding):
    """Simple embeddings whose model can be switched off."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.available = True

    def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        if not self.available:
            raise ProviderUnavailable("embedding model is down", provider="flaky")
        return super()._embed_texts(texts)


@pytest.fixture
def clock():
    """A clock fixed at a known instant."""
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def embedding():
    """Deterministic offline embeddings with a private cache."""
    return FlakyEmbedding(dimension=64, cache=EmbeddingCache(max_size=100))


@pytest.fixture
def store(embedding, clock):
    """Memory store over in-memory storage."""
    return MemoryStore(
        storage=InMemoryStorage(),
        embedding_provider=embedding,
        clock=clock,
    )


@pytest.fixture
def sqlite_storage(tmp_path):
    """SQLite storage in a temporary directory."""
    storage = SQLiteStorage(db_path=str(tmp_path / "memory.db"))
    yield storage
    storage.close()


@pytest.fixture
def profile():
    """A fully populated business profile."""
    return BusinessProfile(
        owner_id="bakery",
        business_name="Crumb & Co",
        business_type="bakery",
        description="Neighbourhood sourdough bakery",
        tagline="Bread worth waking up for",
        target_audience="Local families",
        unique_selling_points=["Wild yeast", "Organic flour", "Baked at 4am", "Free delivery"],
        brand_voice=BrandVoice(
            tone="warm and playful",
            keywords=["fresh", "local"],
            avoid_words=["cheap"],
        ),
        brand_values=["Craft", "Community"],
        products=[
            Product(name="Country loaf", price="$8", highlight=True),
            Product(name="Baguette", price="$4"),
            Product(name="Cinnamon knot", highlight=True),
        ],
        brand_assets=BrandAssets(primary_color="#F4A261", secondary_color="#264653"),
    )


@pytest.fixture
def snapshots(profile):
    """Snapshot store holding one owner's profile, platform and templates."""
    store = InMemorySnapshotStore()
    store.add_profile(profile)
    store.add_platform_stats(PlatformStats(
        owner_id="bakery",
        platform="instagram",
        followers_count=12500,
        average_engagement_rate=0.05,
        best_posting_times=["7am", "6pm"],
        high_performing_topics=["sourdough", "behind the scenes", "pastries", "coffee"],
    ))
    store.add_template(ContextTemplate(
        id="tpl-weekend",
        owner_id="bakery",
        name="Weekend special",
        content="Mention the Saturday sourdough drop.",
        applicable_task_types=[TaskType.CAPTION_GENERATION],
        priority=5,
    ))
    return store
