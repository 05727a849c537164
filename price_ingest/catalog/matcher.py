"""Catalog matching: vector search plus semantic identity confirmation."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from price_ingest.ai.text_intelligence import TextIntelligenceClient, text_intelligence
from price_ingest.config import settings
from price_ingest.db.models import CatalogEntry
from price_ingest.db.vector_store import VectorStore, vector_store
from price_ingest.metrics import catalog_matches_total

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Outcome of matching one raw name against the catalog."""

    entry: Optional[CatalogEntry]
    similarity: float = 0.0
    candidate_name: Optional[str] = None
    confirmed: bool = False

    @property
    def matched(self) -> bool:
        return self.entry is not None


class CatalogMatcher:
    """
    Finds the existing catalog entry a raw product name refers to.
    
    Two stages:
    1. Query-mode embedding of the raw name, single nearest neighbour over
       stored document-mode embeddings, kept only if similarity >= threshold.
    2. The language model confirms the candidate is the same commercial
       product (model, tier, capacity, and colour when the input names one).
    
    Embedding similarity alone confuses adjacent variants ("13" vs "13 Pro")
    at this threshold; stage 2 is what prevents those merges.
    """

    def __init__(
        self,
        client: Optional[TextIntelligenceClient] = None,
        store: Optional[VectorStore] = None,
        threshold: Optional[float] = None,
    ):
        self.client = client or text_intelligence
        self.store = store or vector_store
        self.threshold = threshold if threshold is not None else settings.match_similarity_threshold

    async def match(self, db: AsyncSession, raw_name: str) -> MatchResult:
        """
        Match a raw product name.
        
        Args:
            db: Database session
            raw_name: Product name as extracted from the message
            
        Returns:
            MatchResult with entry set only when both stages pass
        """
        query_embedding = await self.client.embed_query(raw_name)

        candidates = await self.store.find_nearest(
            db,
            query_embedding,
            threshold=self.threshold,
            limit=1,
        )
        if not candidates:
            catalog_matches_total.labels(decision="below_threshold").inc()
            logger.debug(f"No candidate above {self.threshold} for {raw_name!r}")
            return MatchResult(entry=None)

        best = candidates[0]
        # find_nearest already filters, but the guard must hold for any store
        if best.similarity < self.threshold:
            catalog_matches_total.labels(decision="below_threshold").inc()
            return MatchResult(entry=None, similarity=best.similarity)

        candidate_name = best.entry.name_normalized
        verdict = await self.client.confirm_identity(raw_name, candidate_name)

        if not verdict.same:
            catalog_matches_total.labels(decision="rejected").inc()
            logger.info(
                f"Identity rejected: {raw_name!r} vs {candidate_name!r} "
                f"(similarity={best.similarity:.3f})"
            )
            return MatchResult(
                entry=None,
                similarity=best.similarity,
                candidate_name=candidate_name,
            )

        catalog_matches_total.labels(decision="confirmed").inc()
        logger.info(
            f"Matched {raw_name!r} -> entry {best.entry.id} {candidate_name!r} "
            f"(similarity={best.similarity:.3f})"
        )
        return MatchResult(
            entry=best.entry,
            similarity=best.similarity,
            candidate_name=candidate_name,
            confirmed=True,
        )
