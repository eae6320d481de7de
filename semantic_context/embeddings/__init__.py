"""
Embedding providers with a bounded, shared vector cache.
"""

from .cache import EmbeddingCache, CacheEntry
from .base import EmbeddingProvider, cosine_similarity
from .simple import SimpleEmbedding
from .openai_provider import OpenAIEmbedding
from .sentence_transformer import SentenceTransformerEmbedding
from .factory import EmbeddingFactory


__all__ = [
    "EmbeddingCache",
    "CacheEntry",
    "EmbeddingProvider",
    "cosine_similarity",
    "SimpleEmbedding",
    "OpenAIEmbedding",
    "SentenceTransformerEmbedding",
    "EmbeddingFactory",
]
