"""Embedding generation service for catalog names and search queries."""

import asyncio
import hashlib
import logging
from collections import OrderedDict
from typing import Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from price_ingest.ai.errors import EmbeddingError
from price_ingest.config import settings

logger = logging.getLogger(__name__)

QUERY_MODE = "query"
DOCUMENT_MODE = "document"

_CACHE_MAX_ENTRIES = 10_000


class EmbeddingService:
    """
    Service for generating text embeddings using sentence transformers.
    
    Embeddings are asymmetric: stored catalog names are encoded in document
    mode and incoming raw names in query mode, each with its own prefix.
    Mixing the two modes degrades retrieval, so callers pick the mode
    explicitly.
    
    Features:
    - Lazy model loading
    - Normalized vectors (cosine similarity == dot product)
    - Bounded in-memory cache keyed by mode and text
    """

    def __init__(self, model_name: Optional[str] = None):
        self._model_name = model_name or settings.embedding_model
        self._model: Optional[SentenceTransformer] = None
        self._cache: "OrderedDict[str, np.ndarray]" = OrderedDict()

    def _get_model(self) -> SentenceTransformer:
        """Load the sentence transformer on first use."""
        if self._model is None:
            try:
                logger.info(f"Loading embedding model: {self._model_name}")
                self._model = SentenceTransformer(self._model_name)
                logger.info(f"Successfully loaded model: {self._model_name}")
            except Exception as e:
                raise EmbeddingError(f"Failed to load embedding model {self._model_name}: {e}") from e
        return self._model

    def _prefix(self, mode: str) -> str:
        if mode == QUERY_MODE:
            return settings.embedding_query_prefix
        if mode == DOCUMENT_MODE:
            return settings.embedding_document_prefix
        raise ValueError(f"Unknown embedding mode: {mode}")

    def _get_cache_key(self, text: str, mode: str) -> str:
        """Generate cache key for text."""
        text_hash = hashlib.sha256(text.encode('utf-8')).hexdigest()
        return f"{self._model_name}:{mode}:{text_hash}"

    def generate_embedding(self, text: str, mode: str, use_cache: bool = True) -> np.ndarray:
        """
        Generate embedding for a single text.
        
        Args:
            text: Text to embed
            mode: QUERY_MODE or DOCUMENT_MODE
            use_cache: Whether to use cache
            
        Returns:
            Normalized embedding vector
        """
        if not text or not text.strip():
            raise EmbeddingError("Text cannot be empty")

        prefixed = f"{self._prefix(mode)}{text.strip()}"
        cache_key = self._get_cache_key(text.strip(), mode)

        if use_cache and settings.embedding_cache_enabled and cache_key in self._cache:
            self._cache.move_to_end(cache_key)
            logger.debug(f"Cache hit for embedding: {cache_key[:16]}...")
            return self._cache[cache_key]

        model = self._get_model()
        embedding = model.encode(prefixed, normalize_embeddings=True, show_progress_bar=False)
        embedding = np.asarray(embedding, dtype=np.float32)

        if len(embedding) != settings.embedding_dimension:
            raise EmbeddingError(
                f"Model {self._model_name} produced {len(embedding)}-D vectors, "
                f"expected {settings.embedding_dimension}"
            )

        if use_cache and settings.embedding_cache_enabled:
            self._cache[cache_key] = embedding
            if len(self._cache) > _CACHE_MAX_ENTRIES:
                self._cache.popitem(last=False)

        return embedding

    async def embed_query(self, text: str) -> np.ndarray:
        """Query-mode embedding, computed off the event loop."""
        return await asyncio.to_thread(self.generate_embedding, text, QUERY_MODE)

    async def embed_document(self, text: str) -> np.ndarray:
        """Document-mode embedding, computed off the event loop."""
        return await asyncio.to_thread(self.generate_embedding, text, DOCUMENT_MODE)

    def clear_cache(self):
        """Clear the embedding cache."""
        self._cache.clear()
        logger.info("Embedding cache cleared")

    def get_cache_size(self) -> int:
        """Get the number of cached embeddings."""
        return len(self._cache)


# Global embedding service instance
embedding_service = EmbeddingService()
