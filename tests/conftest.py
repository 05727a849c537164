"""Shared fixtures: a throwaway SQLite database and seeded reference rows."""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from price_ingest.db.models import Base, Category, Provider
from price_ingest.worker.entry_lock import EntryLockManager


@pytest.fixture
async def engine(tmp_path):
    """Create test database with tables."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def local_locks():
    return EntryLockManager(backend="local", wait_seconds=5)


@pytest.fixture
async def providers(session_factory):
    """Two active providers and one inactive one."""
    async with session_factory() as db:
        rows = [
            Provider(name="Tecno Mayorista", phone_number="5491111111111", is_active=True),
            Provider(name="Celu Import", phone_number="5492222222222", is_active=True),
            Provider(name="Dado de Baja", phone_number="5493333333333", is_active=False),
        ]
        db.add_all(rows)
        await db.commit()
        return {p.name: p for p in rows}


@pytest.fixture
async def categories(session_factory):
    async with session_factory() as db:
        rows = [
            Category(
                name="iPhone",
                description="iPhone nuevos",
                markup_retail=Decimal("0.15"),
                markup_reseller=Decimal("0.05"),
                is_retail_percentage=True,
                is_reseller_percentage=True,
            ),
            Category(
                name="Accesorios",
                markup_retail=Decimal("10"),
                markup_reseller=Decimal("4"),
                is_retail_percentage=False,
                is_reseller_percentage=False,
            ),
            Category(
                name="Otros",
                markup_retail=Decimal("0.30"),
                markup_reseller=Decimal("0.10"),
                is_retail_percentage=True,
                is_reseller_percentage=True,
            ),
        ]
        db.add_all(rows)
        await db.commit()
        return {c.name: c for c in rows}
