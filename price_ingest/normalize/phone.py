"""Sender identifier normalization."""

import re
from typing import Optional

_NON_DIGIT = re.compile(r"\D")

# Suffixes the messaging channel appends to chat ids
CHANNEL_SUFFIXES = ("@c.us", "@s.whatsapp.net")


def normalize_phone(raw: Optional[str]) -> str:
    """Reduce a channel sender id ("5491122334455@c.us", "+54 9 11...") to digits."""
    if not raw:
        return ""
    value = raw.strip()
    for suffix in CHANNEL_SUFFIXES:
        if value.endswith(suffix):
            value = value[: -len(suffix)]
            break
    return _NON_DIGIT.sub("", value)
