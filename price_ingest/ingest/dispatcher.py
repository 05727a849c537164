"""Fire-and-forget scheduling of pipeline runs."""

import asyncio
import logging
from typing import Optional, Set

from price_ingest.ingest.pipeline import IngestionPipeline, ingestion_pipeline
from price_ingest.metrics import messages_received_total

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """
    Starts one independent pipeline run per inbound message.
    
    The caller never waits for, or hears back from, a run. Tasks are kept
    referenced until they finish so the event loop cannot garbage-collect
    them mid-run; drain() lets shutdown wait for in-flight messages.
    """

    def __init__(self, pipeline: Optional[IngestionPipeline] = None):
        self.pipeline = pipeline or ingestion_pipeline
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        sender_phone: str,
        content: str,
        external_id: Optional[str] = None,
    ) -> asyncio.Task:
        """Schedule a pipeline run and return immediately."""
        messages_received_total.inc()
        task = asyncio.create_task(
            self.pipeline.process(sender_phone, content, external_id=external_id),
            name=f"ingest:{sender_phone}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Pipeline run {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            # process() handles its own errors; reaching here is a bug
            logger.error(
                f"Pipeline run {task.get_name()} failed: {error}",
                exc_info=error,
            )

    async def drain(self, timeout: Optional[float] = None):
        """Wait for in-flight runs (used on shutdown)."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} in-flight messages")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} messages still running after drain timeout")


# Global dispatcher instance
message_dispatcher = MessageDispatcher()
