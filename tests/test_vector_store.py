"""Tests for nearest-neighbour search over catalog embeddings."""

from decimal import Decimal

import numpy as np
import pytest

from price_ingest.db.models import CatalogEntry
from price_ingest.db.vector_store import VectorStore, cosine_similarity
from tests.fakes import blend, unit_vector


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 0]) == 0.0


@pytest.mark.asyncio
async def test_find_nearest_orders_and_filters(db_session):
    query = unit_vector(1)
    rows = [
        ("exact", query),
        ("close", blend(query, unit_vector(2), 0.3)),
        ("far", unit_vector(5)),
        ("no embedding", None),
    ]
    for name, vector in rows:
        db_session.add(CatalogEntry(
            name_normalized=name,
            embedding=vector,
            last_price=Decimal("1"),
            suggested_price_retail=Decimal("1.15"),
            suggested_price_reseller=Decimal("1.05"),
        ))
    await db_session.commit()

    results = await VectorStore().find_nearest(db_session, query, threshold=0.65, limit=5)

    assert [r.entry.name_normalized for r in results] == ["exact", "close"]
    assert results[0].similarity == pytest.approx(1.0, abs=1e-5)
    assert results[0].similarity >= results[1].similarity


@pytest.mark.asyncio
async def test_stored_embedding_round_trips(db_session):
    vector = unit_vector(3, 7)
    entry = CatalogEntry(
        name_normalized="AirPods Pro 2",
        embedding=vector,
        last_price=Decimal("189"),
        suggested_price_retail=Decimal("217.35"),
        suggested_price_reseller=Decimal("198.45"),
    )
    db_session.add(entry)
    await db_session.commit()
    db_session.expunge_all()

    loaded = await db_session.get(CatalogEntry, entry.id)

    assert np.allclose(np.asarray(loaded.embedding), vector, atol=1e-6)
