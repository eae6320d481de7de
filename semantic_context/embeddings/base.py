"""
Embedding providers for semantic search.

Wraps an external embedding model behind a cached, batch-aware interface.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import DimensionMismatch, ProviderUnavailable
from .cache import EmbeddingCache


logger = logging.getLogger(__name__)


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Returns a value in [-1, 1]. A zero-magnitude vector has no direction,
    so its similarity to anything is 0.0.

    Raises:
        DimensionMismatch: If the vectors have different lengths.
    """
    if len(vec1) != len(vec2):
        raise DimensionMismatch(len(vec1), len(vec2))

    dot = sum(a * b for a, b in zip(vec1, vec2))
    mag1 = math.sqrt(sum(a * a for a in vec1))
    mag2 = math.sqrt(sum(b * b for b in vec2))

    if mag1 == 0 or mag2 == 0:
        return 0.0

    cosine = dot / (mag1 * mag2)
    return max(-1.0, min(1.0, cosine))


class EmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    Subclasses implement :meth:`_embed_texts`, which must make exactly one
    call to the underlying model for the whole list it is given. Caching and
    batch partitioning live here so every provider behaves the same way.
    """

    def __init__(self, cache: Optional[EmbeddingCache] = None):
        """
        Initialize the provider.

        Args:
            cache: Shared embedding cache. A private 1000-entry FIFO cache
                is created when omitted.
        """
        self._cache = cache if cache is not None else EmbeddingCache()
        self._calls_lock = threading.Lock()
        self._external_calls = 0

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name of the embedding model (part of every cache key)."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Get the embedding dimension."""
        pass

    @abstractmethod
    def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts with a single model call.

        Args:
            texts: Non-empty list of texts.

        Returns:
            One vector per input text, in input order.

        Raises:
            ProviderUnavailable: If the model cannot be reached.
        """
        pass

    @property
    def cache(self) -> EmbeddingCache:
        """Get the embedding cache."""
        return self._cache

    @property
    def external_calls(self) -> int:
        """Number of calls made to the underlying model."""
        return self._external_calls

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for text.

        Returns the cached vector when present; otherwise calls the model
        once and caches the result.

        Raises:
            ProviderUnavailable: If the model cannot be reached.
        """
        key = self._cache.make_key(text, namespace=self.model_name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        vector = self._call_model([text])[0]
        self._cache.set(key, vector)
        return vector

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts.

        Cached texts are served from the cache; every uncached text goes to
        the model in one call. If that call fails the whole batch fails,
        and nothing already cached is lost.

        Args:
            texts: Texts to embed.

        Returns:
            Vectors in the same order as ``texts``.
        """
        if not texts:
            return []

        keys = [self._cache.make_key(text, namespace=self.model_name) for text in texts]
        results: List[Optional[List[float]]] = [None] * len(texts)

        # Duplicate texts inside one batch are only sent once
        pending: Dict[str, List[int]] = {}
        pending_texts: List[str] = []

        for index, (text, key) in enumerate(zip(texts, keys)):
            if key in pending:
                pending[key].append(index)
                continue
            cached = self._cache.get(key)
            if cached is not None:
                results[index] = cached
            else:
                pending[key] = [index]
                pending_texts.append(text)

        if not pending_texts:
            logger.debug(f"All {len(texts)} embeddings found in cache")
            return results  # type: ignore[return-value]

        vectors = self._call_model(pending_texts)

        for (key, indices), vector in zip(pending.items(), vectors):
            self._cache.set(key, vector)
            for index in indices:
                results[index] = list(vector)

        logger.debug(
            f"Embedded {len(pending_texts)} of {len(texts)} texts "
            f"({len(texts) - sum(len(i) for i in pending.values())} cached)"
        )
        return results  # type: ignore[return-value]

    def similarity(self, vec1: Sequence[float], vec2: Sequence[float]) -> float:
        """Cosine similarity in [-1, 1]; raises DimensionMismatch."""
        return cosine_similarity(vec1, vec2)

    def find_most_similar(
        self,
        query_embedding: Sequence[float],
        candidates: Iterable[Tuple[str, Sequence[float]]],
        top_k: int = 5,
    ) -> List[Tuple[str, float]]:
        """
        Rank candidate vectors by similarity to a query vector.

        Candidates whose dimension differs from the query are skipped.

        Args:
            query_embedding: The query vector.
            candidates: ``(id, vector)`` pairs.
            top_k: Maximum number of results.

        Returns:
            ``(id, similarity)`` pairs, most similar first.
        """
        scored = []
        for identifier, vector in candidates:
            try:
                scored.append((identifier, self.similarity(query_embedding, vector)))
            except DimensionMismatch as e:
                logger.debug(f"Skipping candidate {identifier}: {e}")

        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:top_k]

    def clear_cache(self) -> int:
        """Clear the embedding cache."""
        count = self._cache.invalidate()
        logger.info(f"Embedding cache cleared ({count} entries)")
        return count

    def get_cache_stats(self) -> dict:
        """Cache statistics plus model call counts."""
        stats = self._cache.get_stats()
        stats["model"] = self.model_name
        stats["external_calls"] = self._external_calls
        return stats

    def _call_model(self, texts: List[str]) -> List[List[float]]:
        """Run one model call and check the response shape."""
        with self._calls_lock:
            self._external_calls += 1

        vectors = self._embed_texts(texts)

        if len(vectors) != len(texts):
            raise ProviderUnavailable(
                f"Embedding model returned {len(vectors)} vectors for {len(texts)} texts",
                provider=self.model_name,
            )
        return [list(vector) for vector in vectors]
