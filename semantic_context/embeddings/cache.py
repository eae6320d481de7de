"""
Embedding Cache - Bounded, thread-safe store of computed embedding vectors.

Vectors are keyed by a content hash so identical text never reaches the
embedding model twice while it stays cached. Losing an entry only costs
another model call.
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..errors import ValidationError


logger = logging.getLogger(__name__)


EVICTION_POLICIES = ("fifo", "lru")


@dataclass
class CacheEntry:
    """A cached embedding vector."""

    vector: List[float]
    created_at: float
    hits: int = 0


class EmbeddingCache:
    """
    In-memory bounded cache for embedding vectors.

    Eviction removes the oldest inserted entry once ``max_size`` is
    reached. With the default ``"fifo"`` policy a cache hit does NOT move
    an entry to the back of the queue; ``"lru"`` turns that on.

    The lock only guards get/insert/evict. Callers must never hold it
    while talking to the embedding model.

    Example:
        >>> cache = EmbeddingCache(max_size=2)
        >>> key = cache.make_key("hello", namespace="text-embedding-3-small")
        >>> cache.set(key, [0.1, 0.2])
        >>> cache.get(key)
        [0.1, 0.2]
    """

    def __init__(
        self,
        max_size: int = 1000,
        eviction: str = "fifo",
        enabled: bool = True,
    ):
        """
        Initialize the embedding cache.

        Args:
            max_size: Maximum number of cached vectors.
            eviction: "fifo" (insertion order) or "lru" (recency order).
            enabled: Whether caching is enabled.
        """
        if max_size < 1:
            raise ValidationError("max_size", "cache size must be at least 1")
        if eviction not in EVICTION_POLICIES:
            raise ValidationError(
                "eviction", f"expected one of {', '.join(EVICTION_POLICIES)}"
            )

        self.max_size = max_size
        self.eviction = eviction
        self.enabled = enabled
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def make_key(text: str, namespace: str = "") -> str:
        """
        Generate a cache key for a piece of text.

        The namespace (normally the model name) is part of the key so
        vectors from different models never collide.
        """
        key_str = f"{namespace}\x00{text}"
        return hashlib.sha256(key_str.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[List[float]]:
        """Return a copy of the cached vector, or None on a miss."""
        if not self.enabled:
            return None

        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return None

            entry.hits += 1
            self._hits += 1
            if self.eviction == "lru":
                self._cache.move_to_end(key)

            logger.debug(f"Embedding cache hit for key {key[:16]}...")
            return list(entry.vector)

    def get_many(self, keys: Iterable[str]) -> Dict[str, List[float]]:
        """Look up several keys at once; only hits appear in the result."""
        found = {}
        for key in keys:
            vector = self.get(key)
            if vector is not None:
                found[key] = vector
        return found

    def set(self, key: str, vector: List[float]) -> None:
        """
        Cache a vector.

        Re-inserting an existing key replaces the vector in place and keeps
        its queue position.
        """
        if not self.enabled:
            return

        with self._lock:
            existing = self._cache.get(key)
            if existing is not None:
                existing.vector = list(vector)
                return

            while len(self._cache) >= self.max_size:
                oldest_key, _ = self._cache.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted embedding {oldest_key[:16]}...")

            self._cache[key] = CacheEntry(
                vector=list(vector),
                created_at=time.time(),
            )

    def invalidate(self, key: Optional[str] = None) -> int:
        """
        Drop one entry, or everything when no key is given.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            if key is not None:
                if key in self._cache:
                    del self._cache[key]
                    return 1
                return 0

            count = len(self._cache)
            self._cache.clear()
            return count

    def keys(self) -> List[str]:
        """Keys in eviction order (next to be evicted first)."""
        with self._lock:
            return list(self._cache.keys())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics.
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

            return {
                "enabled": self.enabled,
                "size": len(self._cache),
                "max_size": self.max_size,
                "eviction": self.eviction,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "evictions": self._evictions,
            }

    def reset_stats(self) -> None:
        """Reset cache statistics."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._evictions = 0
