"""Path expressions for pulling values out of wholesaler JSON.

Supported syntax:

* ``a.b.c`` walks nested objects.
* ``items[].name`` takes the first element of the ``items`` list and continues.
* ``title|name|label`` tries each alternative and returns the first non-empty value.

Lists nested several levels deep (``periods[].flights[].legs[]``) are expanded
with :func:`flatten_nested_path`, which yields every leaf object in order.
"""

import re
from typing import Any, Iterable, Optional

DEFAULT_DEPARTURE_KEYS = ("Periods", "periods", "Schedules", "schedules", "Departures", "departures")
DEFAULT_ITINERARY_KEYS = (
    "Itinerary", "itinerary", "Itineraries", "itineraries",
    "Days", "days", "Programs", "programs", "Plans", "plans",
)

_LIST_SEGMENT = re.compile(r"\[\]\.?")
_DEFAULT_PREFIX = re.compile(
    r"^(?:[Pp]eriods|[Ss]chedules|[Dd]epartures|[Ff]lights|[Ii]tinerary|[Ii]tineraries"
    r"|[Dd]ays|[Pp]rograms|[Pp]lans)\[\]\."
)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def extract_value(data: Any, path: Optional[str]) -> Any:
    """
    Read ``path`` from ``data``.

    Missing keys, wrong shapes and empty lists give ``None`` rather than raising.
    """
    if not path or data is None:
        return None

    if "|" in path:
        for alternative in path.split("|"):
            value = extract_value(data, alternative.strip())
            if not _is_empty(value):
                return value
        return None

    if "[]" in path:
        head, _, rest = path.partition("[]")
        container = extract_value(data, head) if head else data
        if not isinstance(container, list) or not container:
            return None
        first = container[0]
        rest = rest.lstrip(".")
        return extract_value(first, rest) if rest else first

    current = data
    for key in path.split("."):
        if isinstance(current, dict):
            if key not in current:
                return None
            current = current[key]
        elif isinstance(current, list) and key.isdecimal():
            index = int(key)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def flatten_nested_path(data: Any, path: str) -> list[dict]:
    """
    Expand every ``[]`` in ``path`` and return the dict items at the last level.

    ``flatten_nested_path(doc, "periods[].flights[]")`` returns every flight of
    every period, in document order.
    """
    if not path:
        return []
    # A trailing [] is optional: the last segment always names a list
    segments = [segment for segment in _LIST_SEGMENT.split(path.rstrip("[]").rstrip(".")) if segment]

    level: list[Any] = [data]
    for segment in segments:
        next_level: list[Any] = []
        for node in level:
            value = extract_value(node, segment)
            if isinstance(value, list):
                next_level.extend(value)
            elif isinstance(value, dict):
                next_level.append(value)
        level = next_level

    return [item for item in level if isinstance(item, dict)]


def clean_nested_path(full_path: str, base_path: Optional[str] = None) -> str:
    """
    Make a mapping path relative to the items produced from ``base_path``.

    With ``base_path="periods[].flights[]"`` the mapping path
    ``periods[].flights[].price`` becomes ``price``. Without a base path the
    conventional list prefixes (``periods[].``, ``itinerary[].``) are removed.
    """
    if not full_path:
        return full_path

    if base_path:
        for prefix in (base_path.rstrip("[]") + ".", base_path + "."):
            if full_path.startswith(prefix):
                return full_path[len(prefix):]
        return full_path

    return _DEFAULT_PREFIX.sub("", full_path, count=1)


def _first_list(raw: dict, keys: Iterable[str]) -> list[dict]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    return []


def default_departure_items(raw: dict) -> list[dict]:
    """Departure objects found under the conventional keys of an unconfigured payload."""
    return _first_list(raw, DEFAULT_DEPARTURE_KEYS)


def default_itinerary_items(raw: dict) -> list[dict]:
    """Itinerary objects found under the conventional keys of an unconfigured payload."""
    return _first_list(raw, DEFAULT_ITINERARY_KEYS)
