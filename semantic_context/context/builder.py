"""
Context Assembler - Build token-bounded context for generation tasks.

Context is assembled additively in three tiers:

1. Core: business facts from the owner's profile. Always included.
2. Task-specific: pinned memories, memories relevant to the task, platform
   stats and templates, packed greedily into a fixed local budget.
3. Extended: further profile details, packed into whatever remains.

Freeform text supplied with the request is appended last if it fits.
Token costs use the fixed four-characters-per-token estimate.
"""

import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..config import ContextConfig
from ..errors import ProviderUnavailable
from ..memory.manager import MemoryStore
from ..memory.types import TaskType
from .snapshots import (
    BusinessProfile,
    PlatformProvider,
    ProfileProvider,
    TemplateProvider,
)
from .tokens import TokenBudget, estimate_tokens
from .types import (
    ContextBuildRequest,
    ContextBuildResult,
    ContextMetadata,
    ContextTier,
)


logger = logging.getLogger(__name__)


# Search queries used to find memories relevant to each task
TASK_QUERIES = {
    TaskType.GENERATE_IDEAS: "content ideas that work well, successful topics, trending themes",
    TaskType.CAPTION_GENERATION: "caption style preferences, tone, emoji usage, call-to-action",
    TaskType.HOOK_GENERATION: "attention-grabbing hooks, opening lines that work",
    TaskType.HASHTAG_GENERATION: "hashtag strategy, high-performing hashtags",
    TaskType.ENHANCEMENT: "content improvements, optimization tips",
}
DEFAULT_TASK_QUERY = "general content preferences"

CORE_HEADER = "BUSINESS CONTEXT:"
PINNED_HEADER = "KEY MEMORIES:"
RELEVANT_HEADER = "RELEVANT INSIGHTS:"
EXTENDED_HEADER = "EXTENDED CONTEXT:"
EXTRA_HEADER = "ADDITIONAL CONTEXT:"

TIER_SEPARATOR = "\n\n"


def task_query(task_type: TaskType, platform: Optional[str] = None) -> str:
    """Build the memory search query for a task."""
    query = TASK_QUERIES.get(task_type, DEFAULT_TASK_QUERY)
    if platform:
        query += f" for {platform}"
    return query


@dataclass
class _TaskTierState:
    """What the task-specific tier has packed so far."""

    budget: TokenBudget
    memory_ids: List[str] = field(default_factory=list)
    template_ids: List[str] = field(default_factory=list)
    pinned_count: int = 0
    relevant_count: int = 0
    platform_included: bool = False


class ContextAssembler:
    """
    Assembles bounded context strings from memories and snapshots.

    Example usage:
        assembler = ContextAssembler(
            memory_store=store,
            profiles=snapshots,
            platforms=snapshots,
            templates=snapshots,
        )
        result = assembler.build(ContextBuildRequest(
            owner_id="owner-1",
            task_type="caption_generation",
            platform="instagram",
        ))
        print(result.context)
    """

    def __init__(
        self,
        memory_store: MemoryStore,
        profiles: Optional[ProfileProvider] = None,
        platforms: Optional[PlatformProvider] = None,
        templates: Optional[TemplateProvider] = None,
        config: Optional[ContextConfig] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the assembler.

        Args:
            memory_store: Store to read memories from and record usage into
            profiles: Business profile snapshots
            platforms: Platform stats snapshots
            templates: Context template snapshots
            config: Tier budgets and retrieval limits
            executor: Executor for usage recording. One is created if omitted
                and shut down with the assembler.
        """
        self._memory_store = memory_store
        self._profiles = profiles
        self._platforms = platforms
        self._templates = templates
        self.config = config or ContextConfig()

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.usage_workers,
            thread_name_prefix="memory-usage",
        )

        # Candidate producers for the task-specific tier, in packing order
        self._task_producers: List[Callable[[ContextBuildRequest, _TaskTierState], None]] = [
            self._add_pinned_memories,
            self._add_relevant_memories,
            self._add_platform_summary,
            self._add_templates,
        ]

        # Extended tier lines, each packed independently
        self._extended_producers: List[Callable[[BusinessProfile], Optional[str]]] = [
            self._brand_values_line,
            self._highlighted_products_block,
            self._avoid_words_line,
            self._emphasize_line,
            self._brand_colors_line,
        ]

    def build(self, request: ContextBuildRequest) -> ContextBuildResult:
        """
        Build context and record usage of every included memory.

        Usage is recorded in the background; this method does not wait
        for it.
        """
        result = self._assemble(request)
        self._record_usage(result.memory_ids)
        return result

    def preview(self, request: ContextBuildRequest) -> ContextBuildResult:
        """Build context without recording memory usage."""
        return self._assemble(request)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the usage executor if this assembler created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # ========== Assembly ==========

    def _assemble(self, request: ContextBuildRequest) -> ContextBuildResult:
        start_time = time.time()
        max_tokens = request.max_tokens

        sections: List[str] = []
        result = ContextBuildResult()
        metadata = result.metadata
        metadata.tiers_reached.append(ContextTier.CORE)

        # Tier 1: core context, never budget-gated
        profile = self._get_profile(request.owner_id)
        if profile is not None:
            core_text = self._build_core(profile)
            core_tokens = estimate_tokens(core_text)
            if core_tokens > self.config.core_budget:
                logger.debug(
                    f"Core context for {request.owner_id} uses {core_tokens} tokens, "
                    f"over its {self.config.core_budget} token allowance"
                )
            sections.append(core_text)
            result.tokens_used += core_tokens
            metadata.business_profile_included = True

        # Tier 2: task-specific context
        if result.tokens_used + self.config.task_budget <= max_tokens:
            metadata.tiers_reached.append(ContextTier.TASK_SPECIFIC)
            state = _TaskTierState(budget=TokenBudget(self.config.task_budget))
            for producer in self._task_producers:
                producer(request, state)

            if len(state.budget) > 0:
                sections.append(state.budget.render())
                result.tokens_used += state.budget.used
                result.memory_ids.extend(state.memory_ids)
                result.template_ids.extend(state.template_ids)
                metadata.pinned_memories_count = state.pinned_count
                metadata.relevant_memories_count = state.relevant_count
                metadata.platform_context_included = state.platform_included
                metadata.tier = ContextTier.TASK_SPECIFIC

        # Tier 3: extended context
        if result.tokens_used + self.config.extended_min_tokens <= max_tokens:
            metadata.tiers_reached.append(ContextTier.EXTENDED)
            budget = TokenBudget(max_tokens - result.tokens_used)
            if profile is not None:
                self._pack_extended(profile, budget)

            if len(budget) > 1:
                sections.append(budget.render())
                result.tokens_used += budget.used
                metadata.tier = ContextTier.EXTENDED

        # Freeform extra, dropped if it does not fit
        if request.extra:
            extra_text = f"{EXTRA_HEADER}\n{request.extra}"
            extra_tokens = estimate_tokens(extra_text)
            if result.tokens_used + extra_tokens <= max_tokens:
                sections.append(extra_text)
                result.tokens_used += extra_tokens
            else:
                logger.debug(
                    f"Dropped additional context ({extra_tokens} tokens), "
                    f"{max_tokens - result.tokens_used} remaining"
                )

        result.context = TIER_SEPARATOR.join(sections).strip()

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Built context in {duration_ms}ms, tokens: {result.tokens_used}/{max_tokens}, "
            f"tier: {metadata.tier.value}"
        )
        return result

    def _get_profile(self, owner_id: str) -> Optional[BusinessProfile]:
        if self._profiles is None:
            return None
        return self._profiles.get_profile(owner_id)

    def _build_core(self, profile: BusinessProfile) -> str:
        lines = [CORE_HEADER]

        if profile.business_type:
            lines.append(f"{profile.business_name} ({profile.business_type})")
        else:
            lines.append(profile.business_name)
        if profile.tagline:
            lines.append(f"Tagline: {profile.tagline}")
        if profile.description:
            lines.append(f"- {profile.description}")
        if profile.brand_voice and profile.brand_voice.tone:
            lines.append(f"Voice: {profile.brand_voice.tone}")
        if profile.target_audience:
            lines.append(f"Audience: {profile.target_audience}")
        if profile.unique_selling_points:
            lines.append(f"USPs: {', '.join(profile.unique_selling_points[:3])}")

        return "\n".join(lines)

    # ========== Task-specific producers ==========

    def _add_memory_lines(
        self,
        state: _TaskTierState,
        header: str,
        memories: list,
    ) -> int:
        """Pack memory lines under a header; return how many were added."""
        added = 0
        for memory in memories:
            if memory.id in state.memory_ids:
                continue
            line = f"- {memory.content}"
            if added == 0:
                fitted = state.budget.try_add_group([header, line])
            else:
                fitted = state.budget.try_add(line)

            if fitted:
                state.memory_ids.append(memory.id)
                added += 1
            else:
                logger.debug(f"Memory {memory.id} does not fit in remaining budget")
        return added

    def _add_pinned_memories(self, request: ContextBuildRequest, state: _TaskTierState) -> None:
        pinned = self._memory_store.get_pinned(request.owner_id)
        state.pinned_count = self._add_memory_lines(state, PINNED_HEADER, pinned)

    def _add_relevant_memories(self, request: ContextBuildRequest, state: _TaskTierState) -> None:
        try:
            results = self._memory_store.search(
                request.owner_id,
                query=task_query(request.task_type, request.platform),
                platform=request.platform,
                task_type=request.task_type,
                min_importance=self.config.relevant_min_importance,
                limit=self.config.relevant_memory_limit,
            )
        except ProviderUnavailable as e:
            logger.warning(
                f"Building context for {request.owner_id} without relevant memories: {e}"
            )
            return

        memories = [r.memory for r in results]
        state.relevant_count = self._add_memory_lines(state, RELEVANT_HEADER, memories)

    def _add_platform_summary(self, request: ContextBuildRequest, state: _TaskTierState) -> None:
        if not request.platform or self._platforms is None:
            return
        stats = self._platforms.get_platform_context(request.owner_id, request.platform)
        if stats is None:
            return

        lines = [f"\nPLATFORM: {request.platform}"]
        if stats.followers_count > 0:
            lines.append(f"- Followers: {stats.followers_count:,}")
        if stats.average_engagement_rate > 0:
            lines.append(f"- Avg Engagement: {stats.average_engagement_rate * 100:.1f}%")
        if stats.best_posting_times:
            lines.append(f"- Best times: {', '.join(stats.best_posting_times)}")
        if stats.high_performing_topics:
            lines.append(f"- Top topics: {', '.join(stats.high_performing_topics[:3])}")

        state.platform_included = state.budget.try_add("\n".join(lines))

    def _add_templates(self, request: ContextBuildRequest, state: _TaskTierState) -> None:
        if self._templates is None:
            return
        templates = self._templates.get_templates(
            request.owner_id,
            request.task_type,
            limit=self.config.max_templates,
        )
        for template in templates:
            text = f"\nTEMPLATE ({template.name}):\n{template.content}"
            if state.budget.try_add(text):
                state.template_ids.append(template.id)

    # ========== Extended producers ==========

    def _pack_extended(self, profile: BusinessProfile, budget: TokenBudget) -> None:
        if not budget.try_add(EXTENDED_HEADER):
            return
        for producer in self._extended_producers:
            text = producer(profile)
            if text:
                budget.try_add(text)

    def _brand_values_line(self, profile: BusinessProfile) -> Optional[str]:
        if not profile.brand_values:
            return None
        return f"Brand Values: {', '.join(profile.brand_values)}"

    def _highlighted_products_block(self, profile: BusinessProfile) -> Optional[str]:
        highlighted = [p for p in profile.products if p.highlight]
        if not highlighted:
            return None
        lines = ["Products:"]
        for product in highlighted:
            if product.price:
                lines.append(f"- {product.name} ({product.price})")
            else:
                lines.append(f"- {product.name}")
        return "\n".join(lines)

    def _avoid_words_line(self, profile: BusinessProfile) -> Optional[str]:
        if not profile.brand_voice or not profile.brand_voice.avoid_words:
            return None
        return f"Avoid words: {', '.join(profile.brand_voice.avoid_words)}"

    def _emphasize_line(self, profile: BusinessProfile) -> Optional[str]:
        if not profile.brand_voice or not profile.brand_voice.keywords:
            return None
        return f"Emphasize: {', '.join(profile.brand_voice.keywords)}"

    def _brand_colors_line(self, profile: BusinessProfile) -> Optional[str]:
        assets = profile.brand_assets
        if assets is None:
            return None
        colors = [c for c in (assets.primary_color, assets.secondary_color) if c]
        if not colors:
            return None
        return f"Brand colors: {', '.join(colors)}"

    # ========== Usage ==========

    def _record_usage(self, memory_ids: List[str]) -> None:
        for memory_id in memory_ids:
            try:
                self._executor.submit(self._memory_store.record_usage, memory_id)
            except RuntimeError as e:
                # Executor already shut down
                logger.error(f"Failed to schedule usage recording for {memory_id}: {e}")
