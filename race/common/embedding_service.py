"""
Embedding Service

Implements the embedding port for query text.
Uses fastembed by default for on-device embedding generation, or the OpenAI
embeddings API when configured with mode="openai".
"""

import asyncio
import logging
import threading
from collections import OrderedDict
from typing import List, Optional

import numpy as np

from .errors import EmbeddingError, ValidationError

logger = logging.getLogger("race.common.embedding_service")

OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
CACHE_SIZE = 1000


class EmbeddingService:
    """
    Embedding service for RACE query text.

    The underlying model is loaded lazily on first use, once, under a lock.
    Blocking SDK calls run in a worker thread so the event loop stays free for
    concurrent retrieval.

    The query cache belongs to this port implementation, not to the retrieval
    pipeline: it only memoises a pure text -> vector mapping and is touched
    from the event loop thread alone. Pass cache_size=0 to turn it off.
    """

    def __init__(
        self,
        mode: str = "femb",
        model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2",
        openai_api_key: Optional[str] = None,
        cache_size: int = CACHE_SIZE,
    ):
        """
        Initialize embedding service.

        Args:
            mode: "femb" (fastembed, on-device) or "openai"
            model: Model name for the selected mode
            openai_api_key: Required when mode is "openai"
            cache_size: Max cached query embeddings (0 disables the cache)
        """
        self._mode = (mode or "femb").lower()
        self._model = model
        self._openai_api_key = openai_api_key
        self._backend = None
        self._backend_lock = threading.Lock()
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self._cache_size = cache_size

        if self._mode not in ("femb", "openai"):
            raise ValueError(f"Unsupported embedding mode: {mode}")
        if self._mode == "openai" and not openai_api_key:
            raise ValueError("openai embedding mode requires an API key")

    @property
    def mode(self) -> str:
        return self._mode

    def _ensure_backend(self) -> None:
        """Lazily initialize the embedding backend"""
        if self._backend is not None:
            return

        with self._backend_lock:
            if self._backend is not None:
                return

            if self._mode == "femb":
                from fastembed import TextEmbedding

                self._backend = TextEmbedding(model_name=self._model)
            else:
                from openai import OpenAI

                self._backend = OpenAI(api_key=self._openai_api_key)
        logger.info("Initialized embedding backend mode=%s model=%s", self._mode, self._model)

    def _embed_sync(self, texts: List[str]) -> List[List[float]]:
        self._ensure_backend()

        if self._mode == "femb":
            embeddings = list(self._backend.embed(texts))
            return [np.asarray(e, dtype=float).tolist() for e in embeddings]

        model = self._model if self._model.startswith("text-embedding") else OPENAI_EMBEDDING_MODEL
        response = self._backend.embeddings.create(model=model, input=texts)
        return [item.embedding for item in response.data]

    async def embed(self, text: str, user_id: str = "", tag: str = "") -> List[float]:
        """
        Generate an embedding for a single query text.

        Args:
            text: Query text to embed
            user_id: Caller identity (for logging / usage attribution)
            tag: Call-site tag, e.g. "rag_query_embedding"

        Returns:
            Embedding vector

        Raises:
            ValidationError: if text is empty
            EmbeddingError: if the backend fails
        """
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")

        cached = self._cache.get(text)
        if cached is not None:
            self._cache.move_to_end(text)
            return cached

        try:
            vectors = await asyncio.to_thread(self._embed_sync, [text])
        except Exception as e:
            logger.error("Embedding failed for user %s (%s): %s", user_id, tag, e)
            raise EmbeddingError(f"Embedding backend failed: {e}") from e

        if not vectors:
            raise EmbeddingError("Embedding backend returned no vectors")

        vector = vectors[0]
        if self._cache_size > 0:
            self._cache[text] = vector
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        return vector
