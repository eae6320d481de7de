"""
Embedding Factory - Creates embedding providers from configuration.
"""

from typing import TYPE_CHECKING, Dict, List, Optional

from ..errors import ValidationError
from .base import EmbeddingProvider
from .cache import EmbeddingCache
from .openai_provider import OpenAIEmbedding
from .sentence_transformer import SentenceTransformerEmbedding
from .simple import SimpleEmbedding

if TYPE_CHECKING:
    from ..config import EmbeddingConfig


class EmbeddingFactory:
    """Factory for creating embedding providers."""

    # Mapping of provider names to classes
    _providers: Dict[str, type] = {
        "openai": OpenAIEmbedding,
        "sentence-transformers": SentenceTransformerEmbedding,
        "simple": SimpleEmbedding,
    }

    @classmethod
    def register_provider(cls, name: str, provider_class: type):
        """
        Register a custom embedding provider.

        Args:
            name: Provider name.
            provider_class: Class that inherits from EmbeddingProvider.
        """
        if not issubclass(provider_class, EmbeddingProvider):
            raise ValueError("Provider class must inherit from EmbeddingProvider")
        cls._providers[name.lower()] = provider_class

    @classmethod
    def list_providers(cls) -> List[str]:
        """List registered provider names."""
        return sorted(cls._providers)

    @classmethod
    def create(
        cls,
        config: "EmbeddingConfig",
        cache: Optional[EmbeddingCache] = None,
    ) -> EmbeddingProvider:
        """
        Create an embedding provider.

        Args:
            config: Embedding configuration.
            cache: Shared cache. Built from ``config.cache`` when omitted.

        Returns:
            Configured provider instance.

        Raises:
            ValidationError: If the provider is not registered.
        """
        provider_name = config.provider.lower()
        if provider_name not in cls._providers:
            raise ValidationError(
                "embedding.provider",
                f"unknown provider '{config.provider}'. "
                f"Available: {', '.join(cls.list_providers())}",
            )

        if cache is None:
            cache = EmbeddingCache(
                max_size=config.cache.max_size,
                eviction=config.cache.eviction,
            )

        provider_class = cls._providers[provider_name]

        if provider_class is OpenAIEmbedding:
            return OpenAIEmbedding(
                model=config.model or None,
                api_key=config.api_key,
                api_base=config.api_base,
                dimensions=config.dimensions,
                timeout=config.timeout,
                cache=cache,
            )
        if provider_class is SentenceTransformerEmbedding:
            return SentenceTransformerEmbedding(
                model_name=config.model or None,
                cache=cache,
            )
        if provider_class is SimpleEmbedding:
            return SimpleEmbedding(
                dimension=config.dimensions or SimpleEmbedding.DEFAULT_DIMENSION,
                cache=cache,
            )
        return provider_class(cache=cache)
