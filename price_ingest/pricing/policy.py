"""Suggested price calculation and free-form price parsing.

Everything here is pure: no I/O, no settings lookups beyond the default
markups, and the same inputs always give the same outputs.
"""

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from price_ingest.config import settings

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Anything that is not a digit or the decimal point
_NON_NUMERIC = re.compile(r"[^0-9.]")


class MarkupRule(Protocol):
    """The markup fields of a Category."""

    markup_retail: Any
    markup_reseller: Any
    is_retail_percentage: bool
    is_reseller_percentage: bool


@dataclass(frozen=True)
class SuggestedPrices:
    """Customer-facing prices derived from a cost."""

    retail: Decimal
    reseller: Decimal


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
    return Decimal(str(value))


def round_cents(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def apply_markup(cost: Any, markup: Any, is_percentage: bool) -> Decimal:
    """Apply one tier's markup: cost * (1 + markup) or cost + markup."""
    cost = _to_decimal(cost)
    markup = _to_decimal(markup)
    if is_percentage:
        return round_cents(cost * (1 + markup))
    return round_cents(cost + markup)


def suggested_prices(cost: Any, category: MarkupRule) -> SuggestedPrices:
    """Compute retail and reseller prices from a category's markup rule.
    
    Each tier honours its own percentage flag independently.
    """
    return SuggestedPrices(
        retail=apply_markup(cost, category.markup_retail, category.is_retail_percentage),
        reseller=apply_markup(cost, category.markup_reseller, category.is_reseller_percentage),
    )


def default_prices(cost: Any) -> SuggestedPrices:
    """Prices used when no category is resolvable (+15% retail, +5% reseller)."""
    return SuggestedPrices(
        retail=apply_markup(cost, settings.default_retail_markup, True),
        reseller=apply_markup(cost, settings.default_reseller_markup, True),
    )


def prices_for(cost: Any, category: Optional[MarkupRule]) -> SuggestedPrices:
    """Category rule when there is one, default rule otherwise."""
    if category is None:
        return default_prices(cost)
    return suggested_prices(cost, category)


def parse_price(value: Any) -> Decimal:
    """
    Parse a price from a number or free-form text.
    
    "1.500,50" and "1,500.50" both give 1500.50: when both separators appear
    the rightmost one is the decimal point and the other is dropped. A lone
    comma is read as the decimal point. Currency symbols and letters are
    stripped. Anything unparseable gives 0.
    
    Args:
        value: int, float, Decimal or string
        
    Returns:
        Parsed price as Decimal (never raises)
    """
    if isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, (int, float, Decimal)):
        try:
            parsed = _to_decimal(value)
        except InvalidOperation:
            return Decimal("0")
        return parsed if parsed.is_finite() else Decimal("0")

    if not value:
        return Decimal("0")

    text = str(value)

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            # 1.500,50 -> 1500.50
            text = text.replace(".", "").replace(",", ".")
        else:
            # 1,500.50 -> 1500.50
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".", 1)

    text = _NON_NUMERIC.sub("", text)

    # "1.234.567" -> keep the leading number only, like a float prefix parse
    match = re.match(r"\d*\.?\d+|\d+", text)
    if not match:
        logger.debug(f"Unparseable price value: {value!r}")
        return Decimal("0")

    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return Decimal("0")
