"""
Hash-based local embedding model.
"""

import hashlib
import math
import re
from typing import List, Optional

from .base import EmbeddingProvider
from .cache import EmbeddingCache


_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)


class SimpleEmbedding(EmbeddingProvider):
    """
    Hashed bag-of-words embedding provider.

    Each word is hashed into one of ``dimension`` buckets with a hashed
    sign, weighted by term frequency and L2 normalized. Texts sharing words
    land close together. Deterministic and offline, which makes it the
    provider of choice for tests and for running without an API key.
    """

    DEFAULT_DIMENSION = 128

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        cache: Optional[EmbeddingCache] = None,
    ):
        super().__init__(cache=cache)
        self._dimension = dimension

    @property
    def model_name(self) -> str:
        return f"simple-hash-{self._dimension}"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        return [self._embed_one(text) for text in texts]

    def _embed_one(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        words = self._tokenize(text)
        if not words:
            return vector

        for word in words:
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            index = int.from_bytes(digest[:8], "big") % self._dimension
            sign = 1.0 if digest[8] % 2 == 0 else -1.0
            vector[index] += sign / len(words)

        return self._normalize(vector)

    @staticmethod
    def _tokenize(text: str) -> List[str]:
        # Words shorter than three characters carry little signal
        return [w for w in _WORD_RE.findall(text.lower()) if len(w) > 2]

    @staticmethod
    def _normalize(vector: List[float]) -> List[float]:
        magnitude = math.sqrt(sum(x * x for x in vector))
        if magnitude == 0:
            return vector
        return [x / magnitude for x in vector]
