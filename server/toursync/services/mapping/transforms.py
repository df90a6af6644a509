"""Value transforms applied to extracted wholesaler fields.

Each field mapping names a ``transform_type`` and carries a free-form
``transform_config``. Lookups need the database and are resolved by the
caller through :class:`~toursync.services.mapping.lookup_resolver.LookupResolver`;
everything else is a pure function of the value, the config and the raw record.
"""

import logging
import re
from typing import Any, Callable, Optional

from .dates import format_php, parse_datetime
from .paths import extract_value

logger = logging.getLogger(__name__)

EMPTY_MARKER = "__EMPTY__"

_TEMPLATE_FIELD = re.compile(r"\{([^{}]+)\}")

CustomTransform = Callable[[Any, dict, dict], Any]
_custom_transforms: dict[str, CustomTransform] = {}


def register_custom_transform(name: str, func: CustomTransform) -> None:
    """Make ``func(value, config, raw_record)`` available as ``{"name": name}``."""
    _custom_transforms[name] = func


def infer_lookup_table(our_field: str) -> Optional[str]:
    """``transport_id`` -> ``transports``, ``primary_country_id`` -> ``countries``."""
    if not our_field.endswith("_id"):
        return None
    entity = our_field[:-3].split("_")[-1]
    if entity.endswith("y"):
        return entity[:-1] + "ies"
    return entity + "s"


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
            return True
        except ValueError:
            return False
    return False


def _to_number(value: Any) -> float | int:
    if isinstance(value, (int, float)):
        return value
    number = float(value)
    return int(number) if number.is_integer() and "." not in str(value) else number


def value_map(value: Any, config: dict) -> Any:
    """
    Translate through ``{"map": {...}}`` or ``{"value_map": [{"from", "to"}]}``.

    ``__EMPTY__`` on either side stands for the empty string. With neither
    key configured the value passes through unchanged. Unknown values fall
    back to ``config["default"]`` and otherwise become ``None``; the strings
    ``"true"``/``"false"`` become 1/0 so they land in boolean columns.
    """
    if config.get("map") is None and config.get("value_map") is None:
        return value

    mapping: dict[str, Any] = {}
    for key, target in (config.get("map") or {}).items():
        mapping[str(key)] = target
    for pair in config.get("value_map") or []:
        if isinstance(pair, dict) and "from" in pair:
            mapping[str(pair["from"])] = pair.get("to")

    def translate(item: Any) -> Any:
        key = "" if item is None else str(item)
        if key == "":
            key = EMPTY_MARKER if EMPTY_MARKER in mapping else ""
        if key in mapping:
            result = mapping[key]
        elif "default" in config:
            result = config["default"]
        else:
            return None
        if result == EMPTY_MARKER:
            return ""
        if isinstance(result, str) and result.lower() in ("true", "false"):
            return 1 if result.lower() == "true" else 0
        return result

    if isinstance(value, list):
        return [translate(item) for item in value]
    return translate(value)


def formula(value: Any, config: dict) -> Any:
    """Apply one of ``add``, ``multiply``, ``subtract`` or ``divide``; non-numbers pass through."""
    if not _is_number(value):
        return value
    number = _to_number(value)

    if config.get("add") is not None:
        return number + config["add"]
    if config.get("multiply") is not None:
        return number * config["multiply"]
    if config.get("subtract") is not None:
        return number - config["subtract"]
    if config.get("divide") not in (None, 0):
        return number / config["divide"]
    return value


def split(value: Any, config: dict) -> Any:
    if not value or not isinstance(value, str):
        return []
    string_config = config.get("string_transform") or {}
    delimiter = string_config.get("splitBy") or config.get("delimiter") or " "
    parts = [part.strip() for part in value.split(delimiter)]
    parts = [part for part in parts if part]
    if config.get("index") is not None:
        index = config["index"]
        return parts[index] if -len(parts) <= index < len(parts) else None
    return parts


def concat(value: Any, config: dict, raw_record: dict) -> Any:
    """Fill ``string_transform.template`` placeholders like ``{code} - {name}`` from the raw record."""
    template = (config.get("string_transform") or {}).get("template") or config.get("template")
    if not template:
        return value

    def fill(match: re.Match) -> str:
        field = match.group(1).strip()
        found = extract_value(raw_record, field)
        return "" if found is None else str(found)

    return _TEMPLATE_FIELD.sub(fill, template).strip()


def date_format(value: Any, config: dict) -> Any:
    parsed = parse_datetime(value)
    if parsed is None:
        return value
    return format_php(parsed, config.get("output_format") or "Y-m-d")


def custom(value: Any, config: dict, raw_record: dict) -> Any:
    name = config.get("name")
    func = _custom_transforms.get(name) if name else None
    if func is None:
        logger.warning("Unknown custom transform", extra={"transform_name": name})
        return value
    return func(value, config, raw_record)


def apply_transform(
    value: Any,
    transform_type: Optional[str],
    config: Optional[dict],
    raw_record: Optional[dict] = None,
) -> Any:
    """
    Apply a non-lookup transform.

    ``lookup`` returns the value unchanged; the caller resolves it against
    reference tables. Unknown transform types behave like ``direct``.
    """
    config = config or {}
    raw_record = raw_record or {}

    if transform_type in (None, "", "direct", "lookup"):
        return value
    if transform_type == "value_map":
        return value_map(value, config)
    if transform_type == "formula":
        return formula(value, config)
    if transform_type == "split":
        return split(value, config)
    if transform_type == "concat":
        return concat(value, config, raw_record)
    if transform_type == "date_format":
        return date_format(value, config)
    if transform_type == "custom":
        return custom(value, config, raw_record)

    logger.debug("Unknown transform type treated as direct", extra={"transform_type": transform_type})
    return value
