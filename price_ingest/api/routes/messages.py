"""Read-only views over ingested messages."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from price_ingest.api.deps import get_database
from price_ingest.db.models import MessageStatus, RawMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


class ProviderSummary(BaseModel):
    id: int
    name: str
    phone_number: str
    is_active: bool

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    """Response model for a raw message."""
    id: int
    external_id: Optional[str]
    phone_number: str
    content: str
    status: str
    error_message: Optional[str]
    provider_id: Optional[int]
    products_count: int
    created_at: datetime
    processed_at: Optional[datetime]
    provider: Optional[ProviderSummary] = None

    class Config:
        from_attributes = True


class MessageStats(BaseModel):
    total_messages: int
    by_status: dict[str, int]
    by_reason: dict[str, int]
    total_products_processed: int


@router.get("", response_model=List[MessageResponse])
async def list_messages(
    status: Optional[str] = None,
    provider_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_database),
):
    """Most recent messages first, optionally filtered."""
    query = (
        select(RawMessage)
        .options(selectinload(RawMessage.provider))
        .order_by(RawMessage.created_at.desc(), RawMessage.id.desc())
        .limit(limit)
    )
    if status:
        query = query.where(RawMessage.status == status)
    if provider_id is not None:
        query = query.where(RawMessage.provider_id == provider_id)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/stats/summary", response_model=MessageStats)
async def message_stats(db: AsyncSession = Depends(get_database)):
    """Counts by status and by ignore reason."""
    total = (await db.execute(select(func.count(RawMessage.id)))).scalar_one()

    status_rows = await db.execute(
        select(RawMessage.status, func.count(RawMessage.id)).group_by(RawMessage.status)
    )
    reason_rows = await db.execute(
        select(RawMessage.error_message, func.count(RawMessage.id))
        .where(RawMessage.status == MessageStatus.IGNORED)
        .group_by(RawMessage.error_message)
    )
    products = (await db.execute(
        select(func.coalesce(func.sum(RawMessage.products_count), 0))
        .where(RawMessage.status == MessageStatus.PROCESSED)
    )).scalar_one()

    return MessageStats(
        total_messages=total,
        by_status={status: count for status, count in status_rows.all()},
        by_reason={(reason or "unknown"): count for reason, count in reason_rows.all()},
        total_products_processed=int(products),
    )


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(message_id: int, db: AsyncSession = Depends(get_database)):
    """Get one message by id."""
    result = await db.execute(
        select(RawMessage)
        .options(selectinload(RawMessage.provider))
        .where(RawMessage.id == message_id)
    )
    message = result.scalar_one_or_none()
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message
