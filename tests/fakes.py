"""Scripted stand-ins for the language model and embedding model."""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import numpy as np

from price_ingest.ai.prompts import CategoryOption
from price_ingest.ai.text_intelligence import (
    CategoryVerdict,
    ExtractedItem,
    ExtractionResult,
    IdentityVerdict,
    PriceListDetection,
    TextIntelligenceClient,
)
from price_ingest.config import settings


def unit_vector(*hot: int, dim: Optional[int] = None) -> np.ndarray:
    """Normalized vector with ones at the given positions."""
    vector = np.zeros(dim or settings.embedding_dimension, dtype=np.float32)
    vector[list(hot)] = 1.0
    return vector / np.linalg.norm(vector)


def blend(a: np.ndarray, b: np.ndarray, weight: float) -> np.ndarray:
    """Normalized mix of two vectors; weight is the share of b."""
    mixed = (1 - weight) * a + weight * b
    return (mixed / np.linalg.norm(mixed)).astype(np.float32)


class FakeTextIntelligence(TextIntelligenceClient):
    """
    Answers from dictionaries instead of model calls and records every call.
    
    Unknown names normalize to themselves, embed to a shared fallback vector
    and are classified into the default category.
    """

    def __init__(
        self,
        is_list: bool = True,
        items: Optional[List[ExtractedItem]] = None,
        normalized: Optional[Dict[str, str]] = None,
        same: Optional[Dict[tuple, bool]] = None,
        categories: Optional[Dict[str, str]] = None,
        vectors: Optional[Dict[str, np.ndarray]] = None,
        failing_names: Sequence[str] = (),
    ):
        self.is_list = is_list
        self.items = items or []
        self.normalized = normalized or {}
        self.same = same or {}
        self.categories = categories or {}
        self.vectors = vectors or {}
        self.failing_names = set(failing_names)
        self.calls = defaultdict(list)

    async def is_price_list(self, text: str) -> PriceListDetection:
        self.calls["is_price_list"].append(text)
        return PriceListDetection(is_list=self.is_list)

    async def extract_items(self, text: str) -> ExtractionResult:
        self.calls["extract_items"].append(text)
        return ExtractionResult(is_list=self.is_list, items=list(self.items))

    async def normalize_name(self, raw_text: str) -> str:
        self.calls["normalize_name"].append(raw_text)
        if raw_text in self.failing_names:
            raise ValueError(f"malformed model response for {raw_text}")
        return self.normalized.get(raw_text, raw_text)

    async def confirm_identity(self, input_name: str, candidate_name: str) -> IdentityVerdict:
        self.calls["confirm_identity"].append((input_name, candidate_name))
        return IdentityVerdict(same=self.same.get((input_name, candidate_name), False))

    async def classify_category(
        self,
        name: str,
        price: Decimal,
        categories: Sequence[CategoryOption],
    ) -> CategoryVerdict:
        self.calls["classify_category"].append((name, price, [c.name for c in categories]))
        return CategoryVerdict(category=self.categories.get(name, settings.default_category_name))

    async def embed_document(self, text: str) -> np.ndarray:
        self.calls["embed_document"].append(text)
        return self.vectors.get(text, unit_vector(0))

    async def embed_query(self, text: str) -> np.ndarray:
        self.calls["embed_query"].append(text)
        return self.vectors.get(text, unit_vector(0))


class ScriptedLLM:
    """LLMService stand-in returning canned JSON/text per operation."""

    def __init__(self, json_answers: Optional[dict] = None, text_answers: Optional[dict] = None):
        self.json_answers = json_answers or {}
        self.text_answers = text_answers or {}
        self.prompts = defaultdict(list)

    async def call_llm_json(self, prompt, system_prompt="", operation="generic", use_cache=True):
        self.prompts[operation].append(prompt)
        return self.json_answers[operation]

    async def call_llm(self, prompt, system_prompt="", operation="generic", **kwargs):
        self.prompts[operation].append(prompt)
        return self.text_answers[operation]
