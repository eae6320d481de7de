"""
OpenAI Embedding Provider - Implementation for the OpenAI embeddings API.
"""

import logging
import os
import threading
import time
from typing import List, Optional

from ..errors import ProviderUnavailable
from .base import EmbeddingProvider
from .cache import EmbeddingCache


logger = logging.getLogger(__name__)


class OpenAIEmbedding(EmbeddingProvider):
    """
    OpenAI embeddings provider.

    Uses ``text-embedding-3-small`` by default. Every failure of the
    underlying client (missing key, network, auth, rate limit) surfaces as
    :class:`ProviderUnavailable`; retrying is left to the caller, so the
    client is built with ``max_retries=0``.
    """

    DEFAULT_MODEL = "text-embedding-3-small"
    DEFAULT_DIMENSIONS = 1536

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        cache: Optional[EmbeddingCache] = None,
    ):
        """
        Initialize the OpenAI provider.

        Args:
            model: Embedding model name.
            api_key: API key. Falls back to ``OPENAI_API_KEY``.
            api_base: Custom API base URL.
            dimensions: Requested vector length. Left to the model when None.
            timeout: Request timeout in seconds.
            cache: Shared embedding cache.
        """
        super().__init__(cache=cache)

        self._model = model or self.DEFAULT_MODEL
        # Only sent to the API when set; older models reject the parameter
        self._requested_dimensions = dimensions
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.api_base = api_base
        self.timeout = timeout
        self._client = None

        self._usage_lock = threading.Lock()
        self.prompt_tokens = 0
        self.total_tokens = 0

        if not self.api_key:
            logger.warning(
                "No OpenAI API key provided. Set OPENAI_API_KEY; "
                "embedding calls will fail until then."
            )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._requested_dimensions or self.DEFAULT_DIMENSIONS

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailable(
                    "OpenAI client not initialized. Check OPENAI_API_KEY.",
                    provider="openai",
                )
            try:
                import openai
            except ImportError as e:
                raise ProviderUnavailable(
                    "OpenAI package not installed. Install with: pip install openai",
                    provider="openai",
                ) from e

            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.api_base,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        client = self._get_client()

        import openai

        request = {"model": self._model, "input": texts}
        if self._requested_dimensions:
            request["dimensions"] = self._requested_dimensions

        start_time = time.time()
        try:
            response = client.embeddings.create(**request)
        except openai.OpenAIError as e:
            logger.error(f"Failed to generate embeddings: {e}")
            raise ProviderUnavailable(
                f"OpenAI embedding request failed: {e}",
                provider="openai",
            ) from e

        duration_ms = int((time.time() - start_time) * 1000)

        # The API reports an index per item; do not rely on response order
        items = sorted(response.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in items]

        usage = getattr(response, "usage", None)
        if usage is not None:
            with self._usage_lock:
                self.prompt_tokens += usage.prompt_tokens or 0
                self.total_tokens += usage.total_tokens or 0

        logger.info(
            f"Generated {len(vectors)} embeddings in {duration_ms}ms"
            + (f", tokens: {usage.total_tokens}" if usage is not None else "")
        )
        return vectors

    def get_cache_stats(self) -> dict:
        stats = super().get_cache_stats()
        stats["prompt_tokens"] = self.prompt_tokens
        stats["total_tokens"] = self.total_tokens
        return stats
