"""Tests for embedding service."""

import numpy as np
import pytest

from price_ingest.ai.embedding_service import DOCUMENT_MODE, QUERY_MODE, EmbeddingService
from price_ingest.ai.errors import EmbeddingError
from price_ingest.config import settings


class RecordingModel:
    """SentenceTransformer stand-in that remembers what it was asked to encode."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.inputs = []

    def encode(self, text, normalize_embeddings=True, show_progress_bar=False):
        self.inputs.append(text)
        vector = np.zeros(self.dimension, dtype=np.float32)
        vector[len(self.inputs) % self.dimension] = 1.0
        return vector


def _service(dimension=None) -> EmbeddingService:
    service = EmbeddingService(model_name="test-model")
    service._model = RecordingModel(dimension or settings.embedding_dimension)
    return service


def test_modes_use_their_own_prefix():
    service = _service()

    service.generate_embedding("iPhone 13 128GB", QUERY_MODE)
    service.generate_embedding("iPhone 13 128GB", DOCUMENT_MODE)

    assert service._model.inputs == [
        f"{settings.embedding_query_prefix}iPhone 13 128GB",
        f"{settings.embedding_document_prefix}iPhone 13 128GB",
    ]
    assert service.get_cache_size() == 2


def test_cache_hit_skips_model():
    service = _service()

    first = service.generate_embedding("AirPods Pro", DOCUMENT_MODE)
    second = service.generate_embedding("AirPods Pro", DOCUMENT_MODE)

    assert np.array_equal(first, second)
    assert len(service._model.inputs) == 1

    service.clear_cache()
    assert service.get_cache_size() == 0


def test_empty_text_rejected():
    with pytest.raises(EmbeddingError):
        _service().generate_embedding("   ", QUERY_MODE)


def test_wrong_dimension_rejected():
    service = _service(dimension=16)

    with pytest.raises(EmbeddingError):
        service.generate_embedding("Cargador 20W", QUERY_MODE)


@pytest.mark.asyncio
async def test_async_helpers_pick_mode():
    service = _service()

    vector = await service.embed_query("Galaxy S23")
    await service.embed_document("Galaxy S23")

    assert vector.dtype == np.float32
    assert service._model.inputs[0].startswith(settings.embedding_query_prefix)
    assert service._model.inputs[1].startswith(settings.embedding_document_prefix)
