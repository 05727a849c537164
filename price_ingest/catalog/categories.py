"""Closed set of configured categories, loaded once per message."""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from price_ingest.ai.prompts import CategoryOption
from price_ingest.config import settings
from price_ingest.db.models import Category

logger = logging.getLogger(__name__)


class CategorySet:
    """
    Snapshot of the categories table keyed by exact name.
    
    The classifier is only offered these names. resolve() looks a name up by
    exact key and otherwise falls back to the default category explicitly
    (or None when no default is configured, which means the default markup
    rule applies).
    """

    def __init__(self, categories: Iterable[Category], default_name: Optional[str] = None):
        self.default_name = default_name or settings.default_category_name
        self._by_name: Dict[str, Category] = {}
        self._by_id: Dict[int, Category] = {}

        for category in categories:
            self._by_name[category.name] = category
            self._by_id[category.id] = category

    @classmethod
    async def load(cls, db: AsyncSession) -> "CategorySet":
        """Load every category once; callers treat the result as read-only."""
        result = await db.execute(select(Category).order_by(Category.name))
        return cls(result.scalars().all())

    def __len__(self) -> int:
        return len(self._by_name)

    def names(self) -> List[str]:
        """Names offered to the classifier; never empty."""
        if not self._by_name:
            return [self.default_name]
        return list(self._by_name)

    def options(self) -> List[CategoryOption]:
        """Name/description pairs for the classification prompt."""
        if not self._by_name:
            return [CategoryOption(name=self.default_name)]
        return [
            CategoryOption(name=c.name, description=c.description)
            for c in self._by_name.values()
        ]

    @property
    def default(self) -> Optional[Category]:
        return self._by_name.get(self.default_name)

    def by_id(self, category_id: Optional[int]) -> Optional[Category]:
        """Category for an entry's category_id; None when missing or stale."""
        if category_id is None:
            return None
        return self._by_id.get(category_id)

    def resolve(self, name: Optional[str]) -> Optional[Category]:
        """Map a classifier answer onto a configured category."""
        if name:
            category = self._by_name.get(name)
            if category is not None:
                return category

            logger.debug(f"Unknown category {name!r}, falling back to {self.default_name!r}")

        return self.default
