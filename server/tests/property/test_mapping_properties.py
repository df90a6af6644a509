"""Property-based tests for mapping and aggregation invariants."""

from hypothesis import given
from hypothesis import strategies as st

from toursync.models.mapping import SectionDefinition
from toursync.services.aggregates import aggregate_value, hotel_star_mode, promotion_type
from toursync.services.mapping.paths import extract_value
from toursync.services.mapping.type_validator import TypeValidator
from toursync.services.sync.tour_sync_service import PERIOD_STATUS_MAP, map_period_status, parse_meal_flag

# Strategies for generating test data
prices = st.floats(min_value=0, max_value=1_000_000, allow_nan=False, allow_infinity=False)
methods = st.sampled_from(["min", "max", "avg", "first", "last", "median"])
stars = st.integers(min_value=1, max_value=5)
percents = st.floats(min_value=0, max_value=100, allow_nan=False)
keys = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=8)
json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=10),
    lambda children: st.lists(children, max_size=3) | st.dictionaries(keys, children, max_size=3),
    max_leaves=10,
)
PROMOTION_RANK = {"none": 0, "normal": 1, "fire_sale": 2}


def definition(data_type):
    return SectionDefinition(section_name="pricing", field_name="price_adult", data_type=data_type, is_required=False)


@given(values=st.lists(prices, min_size=1, max_size=20), method=methods)
def test_aggregate_stays_within_range(values, method):
    """Test every aggregation method returns a value between the min and max."""
    result = aggregate_value(values, method)
    assert min(values) - 0.01 <= result <= max(values) + 0.01


@given(values=st.lists(stars, min_size=1, max_size=30))
def test_hotel_star_mode_is_most_common(values):
    result = hotel_star_mode(values)
    assert result in values
    assert all(values.count(result) >= values.count(other) for other in values)


@given(low=percents, high=percents)
def test_promotion_type_is_monotonic(low, high):
    """Test a bigger discount never gives a weaker promotion type."""
    if low > high:
        low, high = high, low
    thresholds = {"fire_sale_min_percent": 30, "normal_promo_min_percent": 1}
    assert PROMOTION_RANK[promotion_type(low, thresholds)] <= PROMOTION_RANK[promotion_type(high, thresholds)]


@given(path=st.lists(keys, min_size=1, max_size=4), value=json_values)
def test_extract_value_reads_nested_path(path, value):
    data = value
    for key in reversed(path):
        data = {key: data}
    assert extract_value(data, ".".join(path)) == value


@given(data=json_values, path=st.text(alphabet="abc._[]|0", max_size=12))
def test_extract_value_never_raises(data, path):
    """Test arbitrary paths on arbitrary payloads give a value or None."""
    extract_value(data, path)


@given(number=st.integers(min_value=-10**12, max_value=10**12))
def test_int_validation_reads_formatted_numbers(number):
    validator = TypeValidator()
    assert validator.validate(str(number), definition("INT")).value == number
    assert validator.validate(f"{number:,}", definition("INT")).value == number


@given(amount=st.floats(min_value=-10**9, max_value=10**9, allow_nan=False))
def test_decimal_validation_rounds_to_cents(amount):
    result = TypeValidator().validate(f"{amount:,.2f}", definition("DECIMAL"))
    assert result.success
    assert result.value == round(float(f"{amount:.2f}"), 2)


@given(value=st.one_of(st.none(), st.text(max_size=15), st.integers()))
def test_period_status_is_always_known(value):
    assert map_period_status(value) in set(PERIOD_STATUS_MAP.values())


@given(value=st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=15)),
       meal=st.sampled_from(["breakfast", "lunch", "dinner"]))
def test_meal_flag_is_boolean(value, meal):
    assert isinstance(parse_meal_flag(value, meal), bool)
