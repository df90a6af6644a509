"""Lenient date parsing and PHP-style date formatting for wholesaler payloads."""

from datetime import date, datetime
from typing import Any, Optional

DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%Y-%m-%d %H:%M:%S",
)

_FREEFORM_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%Y%m%d",
)

# PHP date() tokens used in transform configs
_PHP_TOKENS = {
    "Y": lambda d: f"{d.year:04d}",
    "y": lambda d: f"{d.year % 100:02d}",
    "m": lambda d: f"{d.month:02d}",
    "n": lambda d: str(d.month),
    "d": lambda d: f"{d.day:02d}",
    "j": lambda d: str(d.day),
    "M": lambda d: d.strftime("%b"),
    "F": lambda d: d.strftime("%B"),
    "D": lambda d: d.strftime("%a"),
    "H": lambda d: f"{getattr(d, 'hour', 0):02d}",
    "i": lambda d: f"{getattr(d, 'minute', 0):02d}",
    "s": lambda d: f"{getattr(d, 'second', 0):02d}",
}


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse the date shapes wholesalers send; ``None`` when nothing fits."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed
    except ValueError:
        pass

    for fmt in _FREEFORM_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


def parse_date(value: Any) -> Optional[date]:
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def format_php(value: date, pattern: str) -> str:
    """Render ``value`` using PHP ``date()`` tokens; backslash escapes a literal."""
    out = []
    escaped = False
    for char in pattern:
        if escaped:
            out.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char in _PHP_TOKENS:
            out.append(_PHP_TOKENS[char](value))
        else:
            out.append(char)
    return "".join(out)
