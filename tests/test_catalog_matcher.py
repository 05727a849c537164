"""Tests for catalog matching: similarity threshold and identity confirmation."""

from decimal import Decimal

import pytest

from price_ingest.catalog.matcher import CatalogMatcher
from price_ingest.db.models import CatalogEntry
from tests.fakes import FakeTextIntelligence, blend, unit_vector


async def _add_entry(db, name, vector):
    entry = CatalogEntry(
        name_normalized=name,
        embedding=vector,
        last_price=Decimal("450"),
        suggested_price_retail=Decimal("517.50"),
        suggested_price_reseller=Decimal("472.50"),
        entry_metadata={"original_name": name},
    )
    db.add(entry)
    await db.commit()
    return entry


@pytest.mark.asyncio
async def test_below_threshold_never_asks_for_confirmation(db_session):
    await _add_entry(db_session, "iPhone 13 128GB", unit_vector(1))
    client = FakeTextIntelligence(vectors={"Galaxy S23": unit_vector(2)})
    matcher = CatalogMatcher(client=client, threshold=0.65)

    result = await matcher.match(db_session, "Galaxy S23")

    assert result.matched is False
    assert client.calls["confirm_identity"] == []


@pytest.mark.asyncio
async def test_candidate_rejected_by_identity_check(db_session):
    await _add_entry(db_session, "iPhone 13 128GB", unit_vector(1))
    # Very close in embedding space, but a different tier
    client = FakeTextIntelligence(
        vectors={"iPhone 13 Pro 128GB": blend(unit_vector(1), unit_vector(2), 0.2)},
        same={("iPhone 13 Pro 128GB", "iPhone 13 128GB"): False},
    )
    matcher = CatalogMatcher(client=client, threshold=0.65)

    result = await matcher.match(db_session, "iPhone 13 Pro 128GB")

    assert result.matched is False
    assert result.candidate_name == "iPhone 13 128GB"
    assert result.similarity >= 0.65
    assert client.calls["confirm_identity"] == [("iPhone 13 Pro 128GB", "iPhone 13 128GB")]


@pytest.mark.asyncio
async def test_confirmed_match(db_session):
    entry = await _add_entry(db_session, "iPhone 13 128GB", unit_vector(1))
    await _add_entry(db_session, "Galaxy S23 256GB", unit_vector(2))
    client = FakeTextIntelligence(
        vectors={"iPhone 13 128GB Blue": blend(unit_vector(1), unit_vector(3), 0.1)},
        same={("iPhone 13 128GB Blue", "iPhone 13 128GB"): True},
    )
    matcher = CatalogMatcher(client=client, threshold=0.65)

    result = await matcher.match(db_session, "iPhone 13 128GB Blue")

    assert result.matched is True
    assert result.confirmed is True
    assert result.entry.id == entry.id


@pytest.mark.asyncio
async def test_empty_catalog(db_session):
    client = FakeTextIntelligence()
    matcher = CatalogMatcher(client=client)

    result = await matcher.match(db_session, "iPhone 13")

    assert result.matched is False
    assert client.calls["embed_query"] == ["iPhone 13"]
