"""
Sentence-transformers based embedding provider.

Provides local semantic embeddings using pre-trained transformer models.
Requires the ``local`` extra (``pip install semantic-context[local]``).
"""

import logging
import threading
from typing import List, Optional

from ..errors import ProviderUnavailable
from .base import EmbeddingProvider
from .cache import EmbeddingCache


logger = logging.getLogger(__name__)


class SentenceTransformerEmbedding(EmbeddingProvider):
    """Embeds text with a locally loaded sentence-transformers model."""

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(
        self,
        model_name: Optional[str] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        super().__init__(cache=cache)
        self._model_name = model_name or self.DEFAULT_MODEL
        self._model = None
        self._dimension: Optional[int] = None
        self._load_lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def model(self):
        """Lazy load the model."""
        with self._load_lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer
                except ImportError as e:
                    raise ProviderUnavailable(
                        "sentence-transformers not installed. "
                        "Install with: pip install semantic-context[local]",
                        provider="sentence-transformers",
                    ) from e

                try:
                    self._model = SentenceTransformer(self._model_name)
                except (OSError, ValueError) as e:
                    raise ProviderUnavailable(
                        f"Could not load embedding model {self._model_name}: {e}",
                        provider="sentence-transformers",
                    ) from e

                self._dimension = self._model.get_sentence_embedding_dimension()
                logger.info(f"Loaded embedding model: {self._model_name}")
        return self._model

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            _ = self.model  # Force load
        return self._dimension or 384  # Default for MiniLM

    def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        embeddings = self.model.encode(texts, convert_to_numpy=True)
        return [e.tolist() for e in embeddings]
