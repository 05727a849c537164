"""Narrow contract over the language model and embedding model.

The ingestion pipeline and catalog matcher only talk to
TextIntelligenceClient; tests swap in a scripted subclass.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

import numpy as np

from price_ingest.ai.embedding_service import EmbeddingService, embedding_service
from price_ingest.ai.llm_service import LLMService, llm_service
from price_ingest.ai.prompts import (
    CATEGORY_CLASSIFICATION_SYSTEM_PROMPT,
    IDENTITY_VALIDATION_SYSTEM_PROMPT,
    ITEM_EXTRACTION_SYSTEM_PROMPT,
    NAME_NORMALIZATION_SYSTEM_PROMPT,
    PRICE_LIST_DETECTION_SYSTEM_PROMPT,
    CategoryClassificationPrompt,
    CategoryOption,
    IdentityValidationPrompt,
    ItemExtractionPrompt,
    NameNormalizationPrompt,
    PriceListDetectionPrompt,
)
from price_ingest.config import settings
from price_ingest.pricing.policy import parse_price

logger = logging.getLogger(__name__)


@dataclass
class PriceListDetection:
    is_list: bool


@dataclass
class ExtractedItem:
    """One product/price pair read from a message."""

    name: str
    price: Decimal


@dataclass
class ExtractionResult:
    is_list: bool
    items: List[ExtractedItem] = field(default_factory=list)


@dataclass
class IdentityVerdict:
    same: bool


@dataclass
class CategoryVerdict:
    category: str
    coerced: bool = False  # True when the model's answer was outside the allowed set


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "si", "sí", "1")
    return bool(value)


class TextIntelligenceClient:
    """
    Classification, extraction, normalization and embedding calls.
    
    Every structured call goes through LLMService.call_llm_json, which owns
    retries and JSON recovery; a response that still cannot be parsed raises
    LLMResponseError to the caller.
    """

    def __init__(
        self,
        llm: Optional[LLMService] = None,
        embeddings: Optional[EmbeddingService] = None,
    ):
        self.llm = llm or llm_service
        self.embeddings = embeddings or embedding_service

    async def is_price_list(self, text: str) -> PriceListDetection:
        """Decide whether a message contains at least one product with a price."""
        prompt = PriceListDetectionPrompt(message=text)
        data = await self.llm.call_llm_json(
            prompt.to_prompt(),
            system_prompt=PRICE_LIST_DETECTION_SYSTEM_PROMPT,
            operation="detect_price_list",
        )
        return PriceListDetection(is_list=_as_bool(data.get("is_list", False)))

    async def extract_items(self, text: str) -> ExtractionResult:
        """Extract name/price pairs from a price list message."""
        prompt = ItemExtractionPrompt(message=text)
        data = await self.llm.call_llm_json(
            prompt.to_prompt(),
            system_prompt=ITEM_EXTRACTION_SYSTEM_PROMPT,
            operation="extract_items",
        )

        if not _as_bool(data.get("is_list", False)):
            return ExtractionResult(is_list=False)

        items = []
        for raw in data.get("items") or []:
            if not isinstance(raw, dict):
                logger.debug(f"Skipping non-object item: {raw!r}")
                continue
            name = str(raw.get("name") or "").strip()
            if not name:
                continue
            items.append(ExtractedItem(name=name, price=parse_price(raw.get("price"))))

        return ExtractionResult(is_list=True, items=items)

    async def normalize_name(self, raw_text: str) -> str:
        """Rewrite a raw product description into its standard commercial name."""
        prompt = NameNormalizationPrompt(raw_name=raw_text)
        response = await self.llm.call_llm(
            prompt.to_prompt(),
            system_prompt=NAME_NORMALIZATION_SYSTEM_PROMPT,
            operation="normalize_name",
        )
        normalized = response.strip().strip("\"'").strip()
        # An empty answer would create a nameless catalog entry
        return normalized or raw_text.strip()

    async def confirm_identity(self, input_name: str, candidate_name: str) -> IdentityVerdict:
        """Ask whether two descriptions denote exactly the same product."""
        prompt = IdentityValidationPrompt(input_name=input_name, candidate_name=candidate_name)
        data = await self.llm.call_llm_json(
            prompt.to_prompt(),
            system_prompt=IDENTITY_VALIDATION_SYSTEM_PROMPT,
            operation="confirm_identity",
        )
        return IdentityVerdict(same=_as_bool(data.get("same", False)))

    async def classify_category(
        self,
        name: str,
        price: Decimal,
        categories: Sequence[CategoryOption],
    ) -> CategoryVerdict:
        """
        Classify a product into one of the given categories.
        
        The answer is only accepted when it exactly names one of the given
        categories; anything else becomes the default category name.
        """
        default = settings.default_category_name
        allowed = {c.name for c in categories}

        prompt = CategoryClassificationPrompt(
            product_name=name,
            price=float(price),
            categories=list(categories),
            default_category=default,
        )
        data = await self.llm.call_llm_json(
            prompt.to_prompt(),
            system_prompt=CATEGORY_CLASSIFICATION_SYSTEM_PROMPT,
            operation="classify_category",
        )

        answer = str(data.get("category") or "").strip()
        if answer in allowed:
            return CategoryVerdict(category=answer)

        logger.debug(f"Category answer {answer!r} not in configured set, using {default!r}")
        return CategoryVerdict(category=default, coerced=True)

    async def embed_document(self, text: str) -> np.ndarray:
        """Embedding for storage alongside a catalog entry."""
        return await self.embeddings.embed_document(text)

    async def embed_query(self, text: str) -> np.ndarray:
        """Embedding for searching the catalog with a raw name."""
        return await self.embeddings.embed_query(text)


# Global client instance
text_intelligence = TextIntelligenceClient()
