"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from price_ingest.ai.llm_service import llm_service
from price_ingest.api.routes import catalog, messages, webhook
from price_ingest.config import settings
from price_ingest.db.models import Base
from price_ingest.db.session import AsyncSessionLocal, engine
from price_ingest.db.vector_store import vector_store
from price_ingest.ingest.dispatcher import message_dispatcher
from price_ingest.logging_config import setup_logging
from price_ingest.worker.entry_lock import entry_locks

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting price list ingestion service...")

    # The vector type must exist before the catalog table is created
    async with AsyncSessionLocal() as db:
        await vector_store.ensure_extension(db)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    logger.info("Shutting down...")
    await message_dispatcher.drain(timeout=60)
    await llm_service.close()
    await entry_locks.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Price List Ingestion",
    description="Ingest supplier price lists and maintain a deduplicated best-price catalog",
    version="0.1.0",
    lifespan=lifespan,
)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health"],
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

app.include_router(webhook.router)
app.include_router(messages.router)
app.include_router(catalog.router)


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok", "in_flight_messages": message_dispatcher.in_flight}


def run():
    """Console entry point."""
    uvicorn.run(
        "price_ingest.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
