"""Unit tests for value transforms and date helpers."""

from datetime import date, datetime

import pytest

from toursync.services.mapping.dates import format_php, parse_date, parse_datetime
from toursync.services.mapping.transforms import (
    apply_transform,
    infer_lookup_table,
    register_custom_transform,
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2099-03-01", datetime(2099, 3, 1)),
        ("01/03/2099", datetime(2099, 3, 1)),
        ("2099/03/01", datetime(2099, 3, 1)),
        ("2099-03-01 08:30:00", datetime(2099, 3, 1, 8, 30)),
        ("2099-03-01T08:30:00Z", datetime(2099, 3, 1, 8, 30)),
        ("1 Mar 2099", datetime(2099, 3, 1)),
        ("20990301", datetime(2099, 3, 1)),
    ],
)
def test_parse_datetime_formats(text, expected):
    """Test the date shapes wholesalers send are all understood."""
    assert parse_datetime(text) == expected


def test_parse_datetime_rejects_garbage():
    """Test unparseable values give None."""
    assert parse_datetime("next tuesday") is None
    assert parse_datetime("") is None
    assert parse_datetime(12345) is None
    assert parse_date(date(2099, 3, 1)) == date(2099, 3, 1)


def test_format_php_tokens():
    """Test PHP date tokens and escapes."""
    value = datetime(2099, 3, 7, 9, 5)
    assert format_php(value, "Y-m-d") == "2099-03-07"
    assert format_php(value, "d/m/y") == "07/03/99"
    assert format_php(value, "j M Y H:i") == "7 Mar 2099 09:05"
    assert format_php(value, "\\Y Y") == "Y 2099"


def test_direct_and_lookup_pass_through():
    """Test direct, lookup and unknown transforms keep the value."""
    assert apply_transform("x", "direct", None) == "x"
    assert apply_transform("Japan", "lookup", {"lookup_table": "countries"}) == "Japan"
    assert apply_transform("x", "does_not_exist", {}) == "x"


def test_value_map():
    """Test value maps, defaults, empty markers and boolean strings."""
    config = {"map": {"A": "open", "F": "sold_out", "__EMPTY__": "closed"}, "default": "open"}
    assert apply_transform("F", "value_map", config) == "sold_out"
    assert apply_transform("", "value_map", config) == "closed"
    assert apply_transform("Z", "value_map", config) == "open"
    assert apply_transform(["A", "F"], "value_map", config) == ["open", "sold_out"]

    assert apply_transform("Y", "value_map", {"value_map": [{"from": "Y", "to": "true"}]}) == 1
    assert apply_transform("N", "value_map", {"map": {"N": "false"}}) == 0
    assert apply_transform("?", "value_map", {"map": {"N": "x"}}) is None


def test_value_map_without_map_keeps_value():
    assert apply_transform("Y", "value_map", {}) == "Y"
    assert apply_transform(["A", "B"], "value_map", {"default": "open"}) == ["A", "B"]
    assert apply_transform("Y", "value_map", {"map": {}}) is None


def test_formula():
    """Test arithmetic formulas on numbers and numeric strings."""
    assert apply_transform(100, "formula", {"multiply": 1.07}) == pytest.approx(107.0)
    assert apply_transform("500", "formula", {"add": 50}) == 550
    assert apply_transform(10, "formula", {"subtract": 3}) == 7
    assert apply_transform(10, "formula", {"divide": 4}) == 2.5
    assert apply_transform(10, "formula", {"divide": 0}) == 10
    assert apply_transform("abc", "formula", {"add": 1}) == "abc"


def test_split():
    """Test splitting strings with delimiters and index selection."""
    assert apply_transform("Tokyo, Osaka ,Kyoto", "split", {"delimiter": ","}) == ["Tokyo", "Osaka", "Kyoto"]
    assert apply_transform("a|b|c", "split", {"string_transform": {"splitBy": "|"}, "index": 1}) == "b"
    assert apply_transform("a|b", "split", {"delimiter": "|", "index": 5}) is None
    assert apply_transform(None, "split", {}) == []


def test_concat_template():
    """Test template placeholders are filled from the raw record."""
    raw = {"code": "ZG001", "info": {"name": "Hokkaido"}}
    config = {"string_transform": {"template": "{code} - {info.name}"}}
    assert apply_transform(None, "concat", config, raw) == "ZG001 - Hokkaido"
    assert apply_transform("keep", "concat", {}, raw) == "keep"


def test_date_format():
    """Test dates are rendered with the configured PHP pattern."""
    assert apply_transform("01/03/2099", "date_format", {"output_format": "Y-m-d"}) == "2099-03-01"
    assert apply_transform("soon", "date_format", {"output_format": "Y-m-d"}) == "soon"


def test_custom_transform_registry():
    """Test registered custom transforms receive value, config and record."""
    register_custom_transform("upper_code", lambda value, config, raw: f"{raw['prefix']}{value}".upper())
    assert apply_transform("abc", "custom", {"name": "upper_code"}, {"prefix": "zg-"}) == "ZG-ABC"
    assert apply_transform("abc", "custom", {"name": "not_registered"}) == "abc"


def test_infer_lookup_table():
    """Test lookup tables are inferred from id field names."""
    assert infer_lookup_table("transport_id") == "transports"
    assert infer_lookup_table("primary_country_id") == "countries"
    assert infer_lookup_table("city_id") == "cities"
    assert infer_lookup_table("title") is None
