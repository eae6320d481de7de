"""
Tests for tiered context assembly.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from semantic_context.config import ContextConfig
from semantic_context.context import (
    BusinessProfile,
    ContextAssembler,
    ContextBuildRequest,
    ContextTier,
    InMemorySnapshotStore,
    TokenBudget,
    estimate_tokens,
)
from semantic_context.context.builder import DEFAULT_TASK_QUERY, TASK_QUERIES, task_query
from semantic_context.errors import ValidationError
from semantic_context.memory import TaskType


CORE_TEXT = (
    "BUSINESS CONTEXT:\n"
    "Crumb & Co (bakery)\n"
    "Tagline: Bread worth waking up for\n"
    "- Neighbourhood sourdough bakery\n"
    "Voice: warm and playful\n"
    "Audience: Local families\n"
    "USPs: Wild yeast, Organic flour, Baked at 4am"
)


@pytest.fixture
def assembler(store, snapshots):
    """Assembler over the bakery snapshots."""
    assembler = ContextAssembler(
        memory_store=store,
        profiles=snapshots,
        platforms=snapshots,
        templates=snapshots,
    )
    yield assembler
    assembler.shutdown()


def request(**kwargs):
    kwargs.setdefault("owner_id", "bakery")
    kwargs.setdefault("task_type", "caption_generation")
    return ContextBuildRequest(**kwargs)


class TestTokens:
    """Test token estimation and budgets."""

    @pytest.mark.parametrize("text,expected", [
        ("", 0),
        ("abc", 1),
        ("abcd", 1),
        ("abcde", 2),
        ("x" * 400, 100),
    ])
    def test_estimate_tokens(self, text, expected):
        """Test the four-characters-per-token estimate rounds up."""
        assert estimate_tokens(text) == expected

    def test_try_add(self):
        """Test pieces are accepted only while they fit."""
        budget = TokenBudget(3)

        assert budget.try_add("12345678") is True
        assert budget.try_add("123456789") is False
        assert budget.try_add("1234") is True

        assert budget.used == 3
        assert budget.remaining == 0
        assert budget.render() == "12345678\n1234"

    def test_try_add_group_all_or_nothing(self):
        """Test a header is only added together with its first item."""
        budget = TokenBudget(4)

        assert budget.try_add_group(["HEADER:", "- a long memory line"]) is False
        assert len(budget) == 0
        assert budget.try_add_group(["HEAD:", "- a"]) is True
        assert budget.parts == ["HEAD:", "- a"]
        assert budget.used == 3


class TestTaskQuery:
    """Test the per-task search query."""

    def test_known_task(self):
        """Test each task has its own query."""
        assert task_query(TaskType.HOOK_GENERATION) == TASK_QUERIES[TaskType.HOOK_GENERATION]

    def test_platform_suffix(self):
        """Test the platform is appended to the query."""
        assert task_query(TaskType.ENHANCEMENT, "tiktok").endswith(" for tiktok")

    def test_default_query(self):
        """Test the fallback query for tasks without one."""
        assert task_query(None) == DEFAULT_TASK_QUERY
        assert task_query(None, "tiktok") == "general content preferences for tiktok"


class TestBuildRequest:
    """Test request validation."""

    @pytest.mark.parametrize("kwargs", [
        {"owner_id": "", "task_type": "caption_generation"},
        {"owner_id": "bakery", "task_type": "poem_generation"},
        {"owner_id": "bakery", "task_type": "caption_generation", "max_tokens": 0},
        {"owner_id": "bakery", "task_type": "caption_generation", "max_tokens": True},
    ])
    def test_invalid_requests(self, kwargs):
        """Test malformed requests are rejected."""
        with pytest.raises(ValidationError):
            ContextBuildRequest(**kwargs)

    def test_task_type_coerced(self):
        """Test the task type string becomes an enum member."""
        assert request().task_type == TaskType.CAPTION_GENERATION


class TestCoreTier:
    """Test the always-included core tier."""

    def test_core_exceeds_tiny_budget(self, assembler):
        """Test core context is returned even when it alone exceeds max_tokens."""
        result = assembler.preview(request(max_tokens=10))

        assert result.context == CORE_TEXT
        assert result.tokens_used == estimate_tokens(CORE_TEXT)
        assert result.tokens_used > 10
        assert result.metadata.tier == ContextTier.CORE
        assert result.metadata.tiers_reached == [ContextTier.CORE]
        assert result.metadata.business_profile_included is True

    def test_minimal_profile(self, store):
        """Test a profile with only a name."""
        snapshots = InMemorySnapshotStore()
        snapshots.add_profile(BusinessProfile(owner_id="solo", business_name="Solo Studio"))
        assembler = ContextAssembler(store, profiles=snapshots)
        try:
            result = assembler.preview(request(owner_id="solo"))
        finally:
            assembler.shutdown()

        assert result.context == "BUSINESS CONTEXT:\nSolo Studio"
        # Header alone does not make an extended tier
        assert "EXTENDED CONTEXT:" not in result.context
        assert ContextTier.EXTENDED in result.metadata.tiers_reached
        assert result.metadata.tier == ContextTier.CORE

    def test_no_profile(self, store):
        """Test an owner without any data gets an empty context."""
        assembler = ContextAssembler(store)
        try:
            result = assembler.preview(request(owner_id="nobody"))
        finally:
            assembler.shutdown()

        assert result.context == ""
        assert result.tokens_used == 0
        assert result.metadata.business_profile_included is False


class TestTaskTier:
    """Test the task-specific tier."""

    def test_pinned_memories(self, assembler, store):
        """Test pinned memories are listed under their header."""
        memory = store.create("bakery", "Always mention free delivery", pinned=True)

        result = assembler.preview(request())

        assert "KEY MEMORIES:\n- Always mention free delivery" in result.context
        assert result.memory_ids == [memory.id]
        assert result.metadata.pinned_memories_count == 1
        assert result.metadata.tier == ContextTier.EXTENDED

    def test_relevant_memories(self, assembler, store):
        """Test task-relevant memories are listed under their header."""
        memory = store.create(
            "bakery",
            "Caption style: short, one emoji, clear call-to-action",
            related_platform="instagram",
            related_task_type="caption_generation",
            importance=0.6,
        )

        result = assembler.preview(request(platform="instagram"))

        assert (
            "RELEVANT INSIGHTS:\n- Caption style: short, one emoji, clear call-to-action"
            in result.context
        )
        assert result.memory_ids == [memory.id]
        assert result.metadata.relevant_memories_count == 1

    def test_relevant_respects_min_importance(self, assembler, store):
        """Test unimportant memories are not offered."""
        store.create(
            "bakery", "Minor caption note",
            related_task_type="caption_generation", importance=0.1,
        )

        result = assembler.preview(request())

        assert "RELEVANT INSIGHTS:" not in result.context
        assert result.memory_ids == []

    def test_memory_included_once(self, assembler, store):
        """Test a pinned memory that is also relevant appears once."""
        memory = store.create(
            "bakery", "Caption tone: warm, never pushy",
            pinned=True,
            related_task_type="caption_generation",
            importance=0.9,
        )

        result = assembler.preview(request())

        assert result.context.count("Caption tone: warm, never pushy") == 1
        assert result.memory_ids == [memory.id]
        assert result.metadata.pinned_memories_count == 1
        assert result.metadata.relevant_memories_count == 0
        assert "RELEVANT INSIGHTS:" not in result.context

    def test_oversized_memory_skipped(self, assembler, store):
        """Test a memory too large for the tier is skipped, later ones still fit."""
        huge = store.create("bakery", "x" * 2000, pinned=True, importance=0.9)
        small = store.create("bakery", "Use first names", pinned=True, importance=0.5)

        result = assembler.preview(request())

        assert result.memory_ids == [small.id]
        assert huge.id not in result.memory_ids
        assert "KEY MEMORIES:\n- Use first names" in result.context

    def test_platform_summary(self, assembler):
        """Test the platform block formatting."""
        result = assembler.preview(request(platform="instagram"))

        assert (
            "PLATFORM: instagram\n"
            "- Followers: 12,500\n"
            "- Avg Engagement: 5.0%\n"
            "- Best times: 7am, 6pm\n"
            "- Top topics: sourdough, behind the scenes, pastries"
        ) in result.context
        assert result.metadata.platform_context_included is True

    def test_unknown_platform(self, assembler):
        """Test a platform without stats adds nothing."""
        result = assembler.preview(request(platform="pinterest"))

        assert "PLATFORM:" not in result.context
        assert result.metadata.platform_context_included is False

    def test_templates(self, assembler):
        """Test applicable templates are included."""
        result = assembler.preview(request())

        assert "TEMPLATE (Weekend special):\nMention the Saturday sourdough drop." in result.context
        assert result.template_ids == ["tpl-weekend"]

    def test_templates_for_other_task(self, assembler):
        """Test templates for other tasks are left out."""
        result = assembler.preview(request(task_type="hook_generation"))

        assert result.template_ids == []

    def test_task_tier_skipped_when_budget_short(self, assembler, store):
        """Test the task tier needs its full allowance, the extended tier does not."""
        store.create("bakery", "Always mention free delivery", pinned=True)

        result = assembler.preview(request(max_tokens=420))

        assert "KEY MEMORIES:" not in result.context
        assert result.memory_ids == []
        assert result.metadata.tiers_reached == [ContextTier.CORE, ContextTier.EXTENDED]
        assert result.metadata.tier == ContextTier.EXTENDED

    def test_tier_order(self, assembler, store):
        """Test tiers appear in order, separated by blank lines."""
        store.create("bakery", "Always mention free delivery", pinned=True)

        result = assembler.preview(request(platform="instagram", extra="New rye loaf"))

        core = result.context.index("BUSINESS CONTEXT:")
        task = result.context.index("KEY MEMORIES:")
        extended = result.context.index("EXTENDED CONTEXT:")
        extra = result.context.index("ADDITIONAL CONTEXT:")
        assert core < task < extended < extra
        assert CORE_TEXT + "\n\nKEY MEMORIES:" in result.context

    def test_task_specific_tier_without_extended(self, store, snapshots):
        """Test the result tier when the extended tier is out of reach."""
        store.create("bakery", "Always mention free delivery", pinned=True)
        assembler = ContextAssembler(
            store,
            profiles=snapshots,
            platforms=snapshots,
            templates=snapshots,
            config=ContextConfig(extended_min_tokens=10000),
        )
        try:
            result = assembler.preview(request())
        finally:
            assembler.shutdown()

        assert result.metadata.tier == ContextTier.TASK_SPECIFIC
        assert "EXTENDED CONTEXT:" not in result.context

    def test_embedding_outage_degrades(self, assembler, store, embedding):
        """Test context still builds when the query cannot be embedded."""
        pinned = store.create("bakery", "Always mention free delivery", pinned=True)
        store.create(
            "bakery", "Caption style notes",
            related_task_type="caption_generation", importance=0.9,
        )
        embedding.available = False

        result = assembler.preview(request())

        assert result.memory_ids == [pinned.id]
        assert "RELEVANT INSIGHTS:" not in result.context
        assert "BUSINESS CONTEXT:" in result.context


class TestExtendedTier:
    """Test the extended tier."""

    def test_extended_lines(self, assembler):
        """Test every extended line for a full profile."""
        result = assembler.preview(request())

        assert (
            "EXTENDED CONTEXT:\n"
            "Brand Values: Craft, Community\n"
            "Products:\n"
            "- Country loaf ($8)\n"
            "- Cinnamon knot\n"
            "Avoid words: cheap\n"
            "Emphasize: fresh, local\n"
            "Brand colors: #F4A261, #264653"
        ) in result.context
        assert "Baguette" not in result.context

    def test_no_highlighted_products(self, store, profile):
        """Test the products block is skipped without highlighted products."""
        for product in profile.products:
            product.highlight = False
        snapshots = InMemorySnapshotStore()
        snapshots.add_profile(profile)
        assembler = ContextAssembler(store, profiles=snapshots)
        try:
            result = assembler.preview(request())
        finally:
            assembler.shutdown()

        assert "Products:" not in result.context
        assert "Brand Values: Craft, Community" in result.context


class TestBudget:
    """Test the overall token bound."""

    @pytest.mark.parametrize("max_tokens", [60, 260, 460, 520, 800, 2000])
    def test_tokens_within_limit(self, assembler, store, max_tokens):
        """Test tokens used never exceed max_tokens once core fits."""
        for i in range(8):
            store.create("bakery", f"Pinned fact number {i} " * 5, pinned=True)

        result = assembler.preview(request(platform="instagram", extra="x" * 300,
                                           max_tokens=max_tokens))

        assert result.tokens_used <= max_tokens

    def test_extra_included_when_it_fits(self, assembler):
        """Test freeform text is appended last."""
        result = assembler.preview(request(extra="Launching a rye loaf on Friday"))

        assert result.context.endswith("ADDITIONAL CONTEXT:\nLaunching a rye loaf on Friday")

    def test_extra_dropped_when_too_large(self, assembler):
        """Test freeform text that does not fit is dropped entirely."""
        without = assembler.preview(request())
        result = assembler.preview(request(extra="y" * 5000))

        assert "ADDITIONAL CONTEXT:" not in result.context
        assert result.tokens_used == without.tokens_used
        assert result.context == without.context


class TestUsageRecording:
    """Test usage recording after a build."""

    def test_build_records_usage(self, store, snapshots):
        """Test every included memory has its usage counted."""
        memory = store.create("bakery", "Always mention free delivery", pinned=True)
        assembler = ContextAssembler(store, profiles=snapshots)

        result = assembler.build(request())
        assembler.shutdown(wait=True)

        assert result.memory_ids == [memory.id]
        assert store.get("bakery", memory.id).usage_count == 1

    def test_preview_does_not_record(self, assembler, store):
        """Test preview leaves usage untouched."""
        memory = store.create("bakery", "Always mention free delivery", pinned=True)

        assembler.preview(request())

        assert store.get("bakery", memory.id).usage_count == 0

    def test_shared_executor_not_shut_down(self, store, snapshots):
        """Test an executor passed in stays usable."""
        memory = store.create("bakery", "Always mention free delivery", pinned=True)
        executor = ThreadPoolExecutor(max_workers=1)
        assembler = ContextAssembler(store, profiles=snapshots, executor=executor)

        assembler.build(request())
        assembler.shutdown()
        executor.submit(lambda: None).result()
        executor.shutdown(wait=True)

        assert store.get("bakery", memory.id).usage_count == 1

    def test_result_to_dict(self, assembler):
        """Test the result serializes its metadata."""
        data = assembler.preview(request(platform="instagram")).to_dict()

        assert data["metadata"]["tier"] == "extended"
        assert data["metadata"]["tiers_reached"] == ["core", "task_specific", "extended"]
        assert data["template_ids"] == ["tpl-weekend"]
