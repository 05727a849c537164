"""Vector similarity search over catalog entries using pgvector."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from price_ingest.config import settings
from price_ingest.db.models import CatalogEntry

logger = logging.getLogger(__name__)


@dataclass
class SimilarEntry:
    """A catalog entry paired with its cosine similarity to the query."""

    entry: CatalogEntry
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class VectorStore:
    """
    Nearest-neighbour search over CatalogEntry.embedding.
    
    On PostgreSQL the query runs in the database against the HNSW cosine
    index. Other dialects (SQLite in tests, local tooling) fall back to a
    numpy scan over every embedded entry.
    """

    async def ensure_extension(self, db: AsyncSession):
        """Ensure the pgvector extension is enabled (PostgreSQL only)."""
        if db.get_bind().dialect.name != "postgresql":
            return
        await db.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await db.commit()
        logger.debug("pgvector extension enabled")

    async def find_nearest(
        self,
        db: AsyncSession,
        embedding: Sequence[float],
        threshold: Optional[float] = None,
        limit: int = 5,
    ) -> List[SimilarEntry]:
        """
        Find catalog entries similar to an embedding.
        
        Args:
            db: Database session
            embedding: Query embedding vector
            threshold: Minimum cosine similarity (defaults to settings.similarity_threshold)
            limit: Maximum number of results
            
        Returns:
            Entries with similarity >= threshold, most similar first
        """
        if threshold is None:
            threshold = settings.similarity_threshold

        vector = np.asarray(embedding, dtype=np.float32)

        if db.get_bind().dialect.name == "postgresql":
            return await self._search_pgvector(db, vector, threshold, limit)
        return await self._search_scan(db, vector, threshold, limit)

    async def _search_pgvector(
        self,
        db: AsyncSession,
        vector: np.ndarray,
        threshold: float,
        limit: int,
    ) -> List[SimilarEntry]:
        distance = CatalogEntry.embedding.cosine_distance(vector)
        similarity = (1 - distance).label("similarity")

        query = (
            select(CatalogEntry, similarity)
            .where(CatalogEntry.embedding.is_not(None))
            .where(1 - distance >= threshold)
            .order_by(distance)
            .limit(limit)
        )
        result = await db.execute(query)

        return [
            SimilarEntry(entry=row[0], similarity=float(row[1]))
            for row in result.all()
        ]

    async def _search_scan(
        self,
        db: AsyncSession,
        vector: np.ndarray,
        threshold: float,
        limit: int,
    ) -> List[SimilarEntry]:
        result = await db.execute(
            select(CatalogEntry).where(CatalogEntry.embedding.is_not(None))
        )

        scored = []
        for entry in result.scalars().all():
            score = cosine_similarity(vector, entry.embedding)
            if score >= threshold:
                scored.append(SimilarEntry(entry=entry, similarity=score))

        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:limit]


# Global vector store instance
vector_store = VectorStore()
