"""Normalise HTML-laden wholesaler text before it is stored."""

import html
import re
from typing import Any

ARRAY_FIELDS = frozenset({
    "highlights", "shopping_highlights", "food_highlights", "themes", "suitable_for",
    "keywords", "hashtags", "places", "gallery", "images",
})

_BR = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_ANGLE = re.compile(r"[<>]")
_SYMBOLS = re.compile(
    "["
    "\U0001F000-\U0001FFFF"
    "\u2600-\u27BF"
    "\u2300-\u23FF"
    "\U0001F1E0-\U0001F1FF"
    "\uFE00-\uFE0F"
    "\u200D"
    "\u25A0-\u25FF"
    "\u2190-\u21FF"
    "\u2460-\u24FF"
    "\u2500-\u259F"
    "\u3000-\u303F"
    "\u3200-\u32FF"
    "\U000E0000-\U000E007F"
    "]+"
)
_MANY_NEWLINES = re.compile(r"\n{3,}")
_SPACES = re.compile(r"[ \t]+")
_THAI = re.compile("[\u0E00-\u0E7F]")
_URL = re.compile(r"^https?://", re.IGNORECASE)


def clean_text(text: Any) -> Any:
    """Strip markup, entities and emoji from a string; other values pass through."""
    if not isinstance(text, str):
        return text

    text = _BR.sub("\n", text)
    text = _TAG.sub("", text)
    text = html.unescape(text)
    text = _ANGLE.sub("", text)
    text = _SYMBOLS.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _MANY_NEWLINES.sub("\n\n", text)
    text = "\n".join(_SPACES.sub(" ", line).strip() for line in text.split("\n"))
    return text.strip()


def _keep_array_item(item: str) -> bool:
    return bool(_THAI.search(item)) or bool(_URL.match(item)) or len(item) > 5


def clean_record(data: Any, field_name: str = "") -> Any:
    """
    Clean every string in ``data`` recursively.

    Lists stored under :data:`ARRAY_FIELDS` also drop short leftovers such as
    bullet characters and single words, keeping Thai text and URLs.
    """
    if isinstance(data, dict):
        return {key: clean_record(value, key) for key, value in data.items()}
    if isinstance(data, list):
        cleaned = [clean_record(item, field_name) for item in data]
        if field_name in ARRAY_FIELDS:
            cleaned = [
                item for item in cleaned
                if not isinstance(item, str) or (item and _keep_array_item(item))
            ]
        return cleaned
    return clean_text(data)
