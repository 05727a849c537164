"""Message ingestion pipeline.

Takes one raw inbound message to a terminal status:

    pending -> ignored    (unknown/inactive provider, not a price list,
                           no items, or an unexpected error)
    pending -> processed  (items were extracted; per-item failures tolerated)

and, for every extracted line item, matches it against the catalog and
either records a new best price on the matched entry or creates a new one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from price_ingest.ai.text_intelligence import (
    ExtractedItem,
    TextIntelligenceClient,
    text_intelligence,
)
from price_ingest.catalog.categories import CategorySet
from price_ingest.catalog.matcher import CatalogMatcher
from price_ingest.db.models import (
    CatalogEntry,
    MessageStatus,
    PriceHistory,
    Provider,
    RawMessage,
)
from price_ingest.db.session import AsyncSessionLocal
from price_ingest.logging_config import get_logger
from price_ingest.metrics import (
    items_processed_total,
    message_processing_seconds,
    messages_duplicate_total,
    messages_finalized_total,
)
from price_ingest.normalize.phone import normalize_phone
from price_ingest.pricing.policy import prices_for
from price_ingest.worker.entry_lock import EntryLockManager, entry_locks

logger = logging.getLogger(__name__)

REASON_PROVIDER_NOT_FOUND = "provider not found"
REASON_PROVIDER_INACTIVE = "provider inactive"
REASON_NOT_A_PRICE_LIST = "not a price list"
REASON_NO_PRODUCTS = "no products found"

# One re-read after a concurrent writer bumped the entry version
_STALE_RETRIES = 1


class ItemOutcomeKind(str, Enum):
    """What happened to one extracted line item."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"  # matched, history written, price not better
    FAILED = "failed"


@dataclass
class ItemOutcome:
    kind: ItemOutcomeKind
    name: str
    price: Decimal
    entry_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.kind is not ItemOutcomeKind.FAILED


@dataclass
class MessageReport:
    """Summary of one pipeline run; the database row is the source of truth."""

    raw_message_id: Optional[int]
    status: str
    reason: Optional[str] = None
    outcomes: List[ItemOutcome] = field(default_factory=list)
    duplicate: bool = False

    @property
    def processed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)


class _TerminalIgnore(Exception):
    """Internal signal for an expected stop condition."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SequentialItemQueue:
    """
    Single-worker FIFO queue for the items of one message.

    Exactly one worker drains the queue, so items are handled in extraction
    order and two updates of the same entry within a message apply in that
    order (last applied wins). It also caps concurrent model calls per
    message at one.
    """

    def __init__(self, handler: Callable[[ExtractedItem], Awaitable[ItemOutcome]]):
        self._handler = handler

    async def run(self, items: List[ExtractedItem]) -> List[ItemOutcome]:
        queue: "asyncio.Queue[ExtractedItem]" = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        outcomes: List[ItemOutcome] = []
        while not queue.empty():
            item = queue.get_nowait()
            try:
                outcomes.append(await self._handler(item))
            finally:
                queue.task_done()
        return outcomes


class IngestionPipeline:
    """
    Orchestrates classification, extraction, matching and persistence.

    process() never raises: expected stops and unexpected errors alike end
    up as the RawMessage's status and reason.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        client: Optional[TextIntelligenceClient] = None,
        matcher: Optional[CatalogMatcher] = None,
        locks: Optional[EntryLockManager] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.client = client or text_intelligence
        self.matcher = matcher or CatalogMatcher(client=self.client)
        self.locks = locks or entry_locks

    async def process(
        self,
        sender_phone: str,
        content: str,
        external_id: Optional[str] = None,
    ) -> MessageReport:
        """
        Run one inbound message through the pipeline.

        Args:
            sender_phone: Sender identifier as delivered by the channel
            content: Message text
            external_id: Channel message id; repeated deliveries are skipped

        Returns:
            MessageReport (informational; callers may ignore it)
        """
        phone = normalize_phone(sender_phone)

        try:
            raw_message_id = await self._create_raw_message(phone, content, external_id)
        except Exception as e:
            logger.exception(f"[STEP 1] Could not record message from {phone}: {e}")
            return MessageReport(raw_message_id=None, status=MessageStatus.IGNORED, reason=str(e))

        if raw_message_id is None:
            messages_duplicate_total.inc()
            logger.info(f"[STEP 1] Duplicate delivery {external_id!r} from {phone}, skipping")
            return MessageReport(
                raw_message_id=None,
                status=MessageStatus.IGNORED,
                reason="duplicate delivery",
                duplicate=True,
            )

        log = get_logger(__name__, raw_message_id=raw_message_id, phone_number=phone)
        log.info(f"[STEP 1] Created raw message id={raw_message_id}")
        log.debug(f"[STEP 1] Content preview: {content[:200]}")

        with message_processing_seconds.time():
            report = await self._run(raw_message_id, phone, content, log)

        messages_finalized_total.labels(
            status=report.status,
            reason=_reason_label(report.reason),
        ).inc()
        return report

    async def _create_raw_message(
        self,
        phone: str,
        content: str,
        external_id: Optional[str],
    ) -> Optional[int]:
        """Insert the pending row; None when external_id was already seen."""
        async with self.session_factory() as db:
            if external_id:
                existing = await db.execute(
                    select(RawMessage.id).where(RawMessage.external_id == external_id)
                )
                if existing.scalar_one_or_none() is not None:
                    return None

            message = RawMessage(
                external_id=external_id,
                phone_number=phone,
                content=content,
                status=MessageStatus.PENDING,
            )
            db.add(message)
            try:
                await db.commit()
            except IntegrityError:
                # Lost a race with a concurrent delivery of the same id
                await db.rollback()
                if external_id:
                    return None
                raise
            return message.id

    async def _run(
        self,
        raw_message_id: int,
        phone: str,
        content: str,
        log: logging.LoggerAdapter,
    ) -> MessageReport:
        try:
            provider = await self._resolve_provider(raw_message_id, phone, log)
            log = get_logger(
                __name__,
                raw_message_id=raw_message_id,
                phone_number=phone,
                provider_id=provider.id,
            )

            log.info("[STEP 3] Detecting price list")
            detection = await self.client.is_price_list(content)
            if not detection.is_list:
                raise _TerminalIgnore(REASON_NOT_A_PRICE_LIST)

            log.info("[STEP 4] Extracting items")
            extraction = await self.client.extract_items(content)
            if not extraction.is_list or not extraction.items:
                raise _TerminalIgnore(REASON_NO_PRODUCTS)
            log.info(f"[STEP 4] Extracted {len(extraction.items)} items")

            async with self.session_factory() as db:
                categories = await CategorySet.load(db)
            log.info(f"[STEP 5] Loaded {len(categories)} categories: {', '.join(categories.names())}")

            log.info(f"[STEP 6] Processing {len(extraction.items)} items")
            queue = SequentialItemQueue(
                lambda item: self._process_item(item, provider.id, categories, log)
            )
            outcomes = await queue.run(extraction.items)

            report = MessageReport(
                raw_message_id=raw_message_id,
                status=MessageStatus.PROCESSED,
                outcomes=outcomes,
            )
            await self._finalize(
                raw_message_id,
                MessageStatus.PROCESSED,
                products_count=report.processed_count,
            )
            log.info(
                f"[COMPLETE] Processed {report.processed_count}/{len(outcomes)} items "
                f"from {provider.name}"
            )
            return report

        except _TerminalIgnore as stop:
            log.warning(f"IGNORED: {stop.reason}")
            await self._finalize_safely(raw_message_id, stop.reason, log)
            return MessageReport(
                raw_message_id=raw_message_id,
                status=MessageStatus.IGNORED,
                reason=stop.reason,
            )
        except Exception as e:
            log.exception(f"[ERROR] Error processing message: {e}")
            reason = str(e) or type(e).__name__
            await self._finalize_safely(raw_message_id, reason, log)
            return MessageReport(
                raw_message_id=raw_message_id,
                status=MessageStatus.IGNORED,
                reason=reason,
            )

    async def _resolve_provider(
        self,
        raw_message_id: int,
        phone: str,
        log: logging.LoggerAdapter,
    ) -> Provider:
        """Step 2: the sender must be a known, active provider."""
        log.info(f"[STEP 2] Looking for provider with phone: {phone}")
        async with self.session_factory() as db:
            result = await db.execute(select(Provider).where(Provider.phone_number == phone))
            provider = result.scalar_one_or_none()

            if provider is None:
                raise _TerminalIgnore(REASON_PROVIDER_NOT_FOUND)

            # Linked even when inactive, so the ignored row shows who sent it
            await db.execute(
                update(RawMessage)
                .where(RawMessage.id == raw_message_id)
                .values(provider_id=provider.id)
            )
            await db.commit()

        if not provider.is_active:
            raise _TerminalIgnore(REASON_PROVIDER_INACTIVE)

        log.info(f"[STEP 2] Found provider id={provider.id} name={provider.name}")
        return provider

    async def _process_item(
        self,
        item: ExtractedItem,
        provider_id: int,
        categories: CategorySet,
        log: logging.LoggerAdapter,
    ) -> ItemOutcome:
        """Per-item sub-pipeline; failures become FAILED outcomes."""
        log.info(f"[STEP 6] Processing: {item.name!r} @ {item.price}")
        try:
            async with self.session_factory() as db:
                match = await self.matcher.match(db, item.name)
                if match.matched:
                    outcome = await self._update_existing(db, match.entry.id, item, provider_id, categories, log)
                else:
                    outcome = await self._create_new(db, item, provider_id, categories, log)
        except Exception as e:
            log.exception(f"[STEP 6] Error processing {item.name!r}: {e}")
            outcome = ItemOutcome(
                kind=ItemOutcomeKind.FAILED,
                name=item.name,
                price=item.price,
                reason=str(e) or type(e).__name__,
            )

        items_processed_total.labels(outcome=outcome.kind.value).inc()
        return outcome

    async def _update_existing(
        self,
        db: AsyncSession,
        entry_id: int,
        item: ExtractedItem,
        provider_id: int,
        categories: CategorySet,
        log: logging.LoggerAdapter,
    ) -> ItemOutcome:
        """
        Record the offer and lower the entry's best price when it improves.

        History is written for every matched item. The entry only changes
        when the new price is lower than the known one, or the known one is
        still zero.
        """
        db.add(PriceHistory(
            catalog_entry_id=entry_id,
            provider_id=provider_id,
            raw_name=item.name,
            price=item.price,
        ))
        await db.commit()

        async with self.locks.hold(entry_id):
            for attempt in range(_STALE_RETRIES + 1):
                result = await db.execute(
                    select(CatalogEntry)
                    .where(CatalogEntry.id == entry_id)
                    .execution_options(populate_existing=True)
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    # The history row above stays; the item is reported FAILED
                    raise LookupError(f"Catalog entry {entry_id} no longer exists")

                current = Decimal(entry.last_price)
                if not (item.price < current or current == 0):
                    log.debug(
                        f"Kept best price {current} for {entry.name_normalized!r} "
                        f"(offer {item.price})"
                    )
                    return ItemOutcome(
                        kind=ItemOutcomeKind.UNCHANGED,
                        name=item.name,
                        price=item.price,
                        entry_id=entry_id,
                    )

                # Missing or stale category reference -> default rule
                prices = prices_for(item.price, categories.by_id(entry.category_id))
                entry.last_price = item.price
                entry.best_provider_id = provider_id
                entry.suggested_price_retail = prices.retail
                entry.suggested_price_reseller = prices.reseller

                try:
                    await db.commit()
                except StaleDataError:
                    await db.rollback()
                    if attempt >= _STALE_RETRIES:
                        raise
                    log.warning(f"Entry {entry_id} changed concurrently, re-reading")
                    continue

                log.info(f"Updated price for {entry.name_normalized!r}: {item.price}")
                return ItemOutcome(
                    kind=ItemOutcomeKind.UPDATED,
                    name=item.name,
                    price=item.price,
                    entry_id=entry_id,
                )

        raise RuntimeError(f"Could not update catalog entry {entry_id}")

    async def _create_new(
        self,
        db: AsyncSession,
        item: ExtractedItem,
        provider_id: int,
        categories: CategorySet,
        log: logging.LoggerAdapter,
    ) -> ItemOutcome:
        """Normalize, classify, price and embed a product the catalog lacks."""
        normalized_name = await self.client.normalize_name(item.name)

        verdict = await self.client.classify_category(
            normalized_name,
            item.price,
            categories.options(),
        )
        category = categories.resolve(verdict.category)
        prices = prices_for(item.price, category)

        embedding = await self.client.embed_document(normalized_name)

        entry = CatalogEntry(
            name_normalized=normalized_name,
            category_id=category.id if category is not None else None,
            embedding=embedding,
            last_price=item.price,
            best_provider_id=provider_id,
            suggested_price_retail=prices.retail,
            suggested_price_reseller=prices.reseller,
            entry_metadata={"original_name": item.name},
        )
        db.add(entry)
        await db.flush()

        db.add(PriceHistory(
            catalog_entry_id=entry.id,
            provider_id=provider_id,
            raw_name=item.name,
            price=item.price,
        ))
        await db.commit()

        log.info(
            f"Created new entry {entry.id}: {normalized_name!r} ({item.price}) "
            f"in {category.name if category is not None else verdict.category!r}"
        )
        return ItemOutcome(
            kind=ItemOutcomeKind.CREATED,
            name=item.name,
            price=item.price,
            entry_id=entry.id,
        )

    async def _finalize(
        self,
        raw_message_id: int,
        status: str,
        reason: Optional[str] = None,
        products_count: Optional[int] = None,
    ):
        """Move the message to its terminal status."""
        values = {
            "status": status,
            "error_message": reason,
            "processed_at": datetime.now(timezone.utc),
        }
        if products_count is not None:
            values["products_count"] = products_count

        async with self.session_factory() as db:
            await db.execute(
                update(RawMessage)
                .where(RawMessage.id == raw_message_id)
                .where(RawMessage.status == MessageStatus.PENDING)
                .values(**values)
            )
            await db.commit()

    async def _finalize_safely(
        self,
        raw_message_id: int,
        reason: str,
        log: logging.LoggerAdapter,
    ):
        try:
            await self._finalize(raw_message_id, MessageStatus.IGNORED, reason=reason)
        except Exception:
            log.exception(f"Could not mark message {raw_message_id} as ignored")


def _reason_label(reason: Optional[str]) -> str:
    """Bounded metric label for a terminal reason."""
    if reason in (
        REASON_PROVIDER_NOT_FOUND,
        REASON_PROVIDER_INACTIVE,
        REASON_NOT_A_PRICE_LIST,
        REASON_NO_PRODUCTS,
    ):
        return reason
    if reason is None:
        return "none"
    return "error"


# Global pipeline instance
ingestion_pipeline = IngestionPipeline()
