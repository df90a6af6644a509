"""Unit tests for section-definition type coercion."""

import pytest

from toursync.models.mapping import SectionDefinition
from toursync.services.mapping.type_validator import TypeValidator


def definition(data_type, is_required=False, enum_values=None, default_value=None):
    return SectionDefinition(
        section_name="tour",
        field_name="field",
        data_type=data_type,
        is_required=is_required,
        enum_values=enum_values,
        default_value=default_value,
    )


@pytest.fixture
def validator():
    return TypeValidator()


def test_required_empty_value_fails(validator):
    """Test an empty required field without default is an error."""
    result = validator.validate("", definition("TEXT", is_required=True))
    assert not result.success
    assert result.error == "Required field is empty"


def test_empty_value_uses_default(validator):
    """Test empty values fall back to the definition default."""
    result = validator.validate(None, definition("TEXT", is_required=True, default_value="N/A"))
    assert result.success
    assert result.value == "N/A"


@pytest.mark.parametrize(
    "value,expected",
    [(5, 5), ("12", 12), ("7.9", 7), ("5 days", 5), (True, 1)],
)
def test_int(validator, value, expected):
    """Test integers are extracted from numbers and text."""
    result = validator.validate(value, definition("INT"))
    assert result.success
    assert result.value == expected


def test_int_without_digits_fails(validator):
    """Test text without digits cannot become an INT."""
    result = validator.validate("many", definition("INT"))
    assert not result.success
    assert result.expected_type == "INT"


@pytest.mark.parametrize(
    "value,data_type",
    [("1e400", "INT"), ("-inf", "INT"), (float("inf"), "INT"), (float("nan"), "INT"),
     (float("inf"), "DECIMAL"), (float("nan"), "DECIMAL")],
)
def test_non_finite_numbers_fail(validator, value, data_type):
    """Test overflowing numbers are reported instead of raised."""
    result = validator.validate(value, definition(data_type))
    assert not result.success
    assert result.expected_type == data_type


@pytest.mark.parametrize(
    "value,expected",
    [(29900, 29900.0), ("29,900.50", 29900.5), ("THB 1,250", 1250.0)],
)
def test_decimal(validator, value, expected):
    """Test decimals are cleaned of separators and rounded to cents."""
    result = validator.validate(value, definition("DECIMAL"))
    assert result.success
    assert result.value == pytest.approx(expected)


def test_date_and_datetime(validator):
    """Test dates are normalised to ISO strings."""
    assert validator.validate("01/03/2099", definition("DATE")).value == "2099-03-01"
    assert validator.validate("2099-03-01T10:15:00", definition("DATETIME")).value == "2099-03-01 10:15:00"
    assert not validator.validate("someday", definition("DATE")).success


@pytest.mark.parametrize("value,expected", [("Yes", True), ("active", True), ("0", False), ("off", False)])
def test_boolean(validator, value, expected):
    """Test truthy and falsy spellings."""
    assert validator.validate(value, definition("BOOLEAN")).value is expected


def test_boolean_unknown_fails(validator):
    """Test unrecognised boolean text is an error."""
    assert not validator.validate("perhaps", definition("BOOLEAN")).success


def test_enum_is_case_insensitive(validator):
    """Test enum values match regardless of case and return the canonical option."""
    enum = definition("ENUM", enum_values=["open", "closed"])
    assert validator.validate("OPEN", enum).value == "open"
    failed = validator.validate("pending", enum)
    assert not failed.success
    assert "Allowed: open, closed" in failed.error


def test_arrays(validator):
    """Test arrays split on common separators and JSON lists."""
    assert validator.validate("Tokyo, Osaka", definition("ARRAY_TEXT")).value == ["Tokyo", "Osaka"]
    assert validator.validate("1|2|3", definition("ARRAY_INT")).value == [1, 2, 3]
    assert validator.validate("[1.5, 2]", definition("ARRAY_DECIMAL")).value == [1.5, 2.0]
    assert not validator.validate("a;b", definition("ARRAY_INT")).success


def test_json_and_text(validator):
    """Test JSON decoding and text serialisation of structures."""
    assert validator.validate('{"a": 1}', definition("JSON")).value == {"a": 1}
    assert not validator.validate("{oops", definition("JSON")).success
    assert validator.validate(["a", "b"], definition("TEXT")).value == '["a", "b"]'


def test_unknown_type_fails(validator):
    """Test undeclared data types are reported."""
    result = validator.validate("x", definition("BLOB"))
    assert not result.success
    assert "Unknown data type" in result.error
