"""FastAPI dependencies."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from price_ingest.db.session import get_db
from price_ingest.ingest.dispatcher import MessageDispatcher, message_dispatcher


async def get_database() -> AsyncIterator[AsyncSession]:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_dispatcher() -> MessageDispatcher:
    """Dependency for the message dispatcher (overridden in tests)."""
    return message_dispatcher
