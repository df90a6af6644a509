"""Coerce mapped values to the data type declared by a section definition."""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .dates import parse_datetime

TRUTHY = ("true", "1", "yes", "on", "active", "enabled")
FALSY = ("false", "0", "no", "off", "inactive", "disabled", "")

_NOT_INT = re.compile(r"[^0-9-]")
_NOT_DECIMAL = re.compile(r"[^0-9.-]")


class FieldDefinition(Protocol):
    """The parts of a section definition the validator reads."""

    field_name: str
    data_type: str
    is_required: bool
    enum_values: Optional[list[str]]
    default_value: Optional[str]


@dataclass
class ValidationResult:
    success: bool
    value: Any = None
    error: Optional[str] = None
    original_value: Any = None
    expected_type: Optional[str] = None

    @classmethod
    def ok(cls, value: Any, original: Any = None) -> "ValidationResult":
        return cls(success=True, value=value, original_value=original)

    @classmethod
    def fail(cls, error: str, original: Any, expected_type: str) -> "ValidationResult":
        return cls(success=False, error=error, original_value=original, expected_type=expected_type)


class TypeValidator:
    """Validate and convert one value at a time."""

    def validate(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        data_type = (definition.data_type or "TEXT").upper()

        if value is None or value == "":
            if definition.is_required and definition.default_value in (None, ""):
                return ValidationResult.fail("Required field is empty", value, data_type)
            return ValidationResult.ok(definition.default_value, value)

        handler = getattr(self, f"_to_{data_type.lower()}", None)
        if handler is None:
            return ValidationResult.fail(f"Unknown data type: {data_type}", value, data_type)

        try:
            return handler(value, definition)
        except (TypeError, ValueError, OverflowError) as e:
            return ValidationResult.fail(str(e), value, data_type)

    def _to_text(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        if isinstance(value, (list, dict)):
            return ValidationResult.ok(json.dumps(value, ensure_ascii=False), value)
        return ValidationResult.ok(str(value), value)

    def _to_int(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        if isinstance(value, bool):
            return ValidationResult.ok(int(value), value)
        if isinstance(value, int):
            return ValidationResult.ok(value, value)
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            number = None
        if number is not None:
            if not math.isfinite(number):
                return ValidationResult.fail(f"Cannot convert '{value}' to INT", value, "INT")
            return ValidationResult.ok(int(number), value)
        digits = _NOT_INT.sub("", text)
        if digits in ("", "-"):
            return ValidationResult.fail(f"Cannot convert '{value}' to INT", value, "INT")
        return ValidationResult.ok(int(digits), value)

    def _to_decimal(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            number = float(value)
        else:
            cleaned = _NOT_DECIMAL.sub("", str(value).replace(",", ""))
            try:
                number = float(cleaned)
            except ValueError:
                number = None
        if number is None or not math.isfinite(number):
            return ValidationResult.fail(f"Cannot convert '{value}' to DECIMAL", value, "DECIMAL")
        return ValidationResult.ok(round(number, 2), value)

    def _to_date(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        parsed = parse_datetime(value)
        if parsed is None:
            return ValidationResult.fail(f"Cannot parse date '{value}'", value, "DATE")
        return ValidationResult.ok(parsed.strftime("%Y-%m-%d"), value)

    def _to_datetime(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        parsed = parse_datetime(value)
        if parsed is None:
            return ValidationResult.fail(f"Cannot parse datetime '{value}'", value, "DATETIME")
        return ValidationResult.ok(parsed.strftime("%Y-%m-%d %H:%M:%S"), value)

    def _to_boolean(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        if isinstance(value, bool):
            return ValidationResult.ok(value, value)
        text = str(value).strip().lower()
        if text in TRUTHY:
            return ValidationResult.ok(True, value)
        if text in FALSY:
            return ValidationResult.ok(False, value)
        return ValidationResult.fail(f"Cannot convert '{value}' to BOOLEAN", value, "BOOLEAN")

    def _to_enum(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        allowed = list(definition.enum_values or [])
        text = str(value)
        if text in allowed:
            return ValidationResult.ok(text, value)
        for option in allowed:
            if option.lower() == text.lower():
                return ValidationResult.ok(option, value)
        return ValidationResult.fail(
            f"Invalid ENUM value '{text}'. Allowed: {', '.join(allowed)}", value, "ENUM"
        )

    def _to_json(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        if isinstance(value, (dict, list)):
            return ValidationResult.ok(value, value)
        try:
            return ValidationResult.ok(json.loads(value), value)
        except (TypeError, ValueError):
            return ValidationResult.fail("Invalid JSON", value, "JSON")

    def _to_array_text(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        return ValidationResult.ok([str(item) for item in self._as_list(value)], value)

    def _to_array_int(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        items = []
        for item in self._as_list(value):
            result = self._to_int(item, definition)
            if not result.success:
                return ValidationResult.fail(result.error, value, "ARRAY_INT")
            items.append(result.value)
        return ValidationResult.ok(items, value)

    def _to_array_decimal(self, value: Any, definition: FieldDefinition) -> ValidationResult:
        items = []
        for item in self._as_list(value):
            result = self._to_decimal(item, definition)
            if not result.success:
                return ValidationResult.fail(result.error, value, "ARRAY_DECIMAL")
            items.append(result.value)
        return ValidationResult.ok(items, value)

    @staticmethod
    def _as_list(value: Any) -> list:
        if isinstance(value, list):
            return value
        if not isinstance(value, str):
            return [value]
        try:
            decoded = json.loads(value)
        except ValueError:
            decoded = None
        if isinstance(decoded, list):
            return decoded
        for separator in (",", "|", ";"):
            if separator in value:
                return [part.strip() for part in value.split(separator) if part.strip()]
        return [value.strip()]
