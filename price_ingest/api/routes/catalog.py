"""Read-only catalog views: entry detail and price history provenance."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from price_ingest.api.deps import get_database
from price_ingest.db.models import CatalogEntry, PriceHistory

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


class CatalogEntryResponse(BaseModel):
    id: int
    name_normalized: str
    category_id: Optional[int]
    last_price: Decimal
    best_provider_id: Optional[int]
    suggested_price_retail: Decimal
    suggested_price_reseller: Decimal
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PriceHistoryResponse(BaseModel):
    id: int
    catalog_entry_id: int
    provider_id: int
    raw_name: str
    price: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/{entry_id}", response_model=CatalogEntryResponse)
async def get_entry(entry_id: int, db: AsyncSession = Depends(get_database)):
    entry = await db.get(CatalogEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Catalog entry not found")
    return entry


@router.get("/{entry_id}/history", response_model=List[PriceHistoryResponse])
async def get_entry_history(
    entry_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_database),
):
    """Every offer recorded against an entry, newest first."""
    entry = await db.get(CatalogEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Catalog entry not found")

    result = await db.execute(
        select(PriceHistory)
        .where(PriceHistory.catalog_entry_id == entry_id)
        .order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
        .limit(limit)
    )
    return result.scalars().all()
