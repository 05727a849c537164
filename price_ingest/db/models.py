"""SQLAlchemy database models."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from price_ingest.config import settings

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class MessageStatus:
    """Lifecycle values of RawMessage.status."""

    PENDING = "pending"
    PROCESSED = "processed"
    IGNORED = "ignored"

    TERMINAL = (PROCESSED, IGNORED)


class Provider(Base):
    """Supplier that sends price lists over the messaging channel."""

    __tablename__ = "providers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # Digits only
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class Category(Base):
    """Catalog category carrying the markup rule for both price tiers."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Percentage markups are fractions (0.15 = +15%), fixed markups are amounts
    markup_retail: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), default=Decimal("0.15"), nullable=False
    )
    markup_reseller: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), default=Decimal("0.05"), nullable=False
    )
    is_retail_percentage: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_reseller_percentage: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class CatalogEntry(Base):
    """Canonical, deduplicated record for one distinct commercial product."""

    __tablename__ = "catalog_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name_normalized: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    embedding = mapped_column(Vector(settings.embedding_dimension), nullable=True)

    # Best (lowest) price seen; only decreases, or is set from zero
    last_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    best_provider_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True
    )
    suggested_price_retail: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    suggested_price_reseller: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    entry_metadata: Mapped[dict] = mapped_column(
        "metadata", JsonDocument, default=dict, nullable=False
    )

    # Optimistic concurrency token, bumped by the ORM on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    category: Mapped[Optional["Category"]] = relationship("Category", lazy="raise")
    best_provider: Mapped[Optional["Provider"]] = relationship("Provider", lazy="raise")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "idx_catalog_entries_embedding",
            "embedding",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )


class PriceHistory(Base):
    """Append-only audit trail of every processed line item.

    The parent ids are plain columns: rows must survive admin deletion of the
    catalog entry or provider they were written against.
    """

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    catalog_entry_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    provider_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    raw_name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class RawMessage(Base):
    """One inbound message and the terminal outcome of its ingestion run."""

    __tablename__ = "raw_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Channel-assigned message id; unique so duplicate deliveries are rejected
    external_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default=MessageStatus.PENDING, nullable=False, index=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True
    )
    products_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    provider: Mapped[Optional["Provider"]] = relationship("Provider", lazy="raise")
