"""Discount curve, configuration checks and capture price bounds."""
from decimal import Decimal

import pytest

from dropmarket.core.results import InvalidConfigurationError
from dropmarket.services.discount_engine import (
    calculate_discount,
    calculate_final_price,
    discounted_price,
    validate_discount_configuration,
)

# min_value, max_value, min_discount, max_discount
ECONOMICS = (Decimal("5000"), Decimal("30000"), Decimal("30"), Decimal("80"))


def discount_at(value):
    return calculate_discount(value, *ECONOMICS)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("0", "30.00"),
        ("1000", "30.00"),
        ("5000", "30.00"),
        ("17500", "55.00"),
        ("30000", "80.00"),
        ("45000", "80.00"),
    ],
)
def test_discount_curve(value, expected):
    assert discount_at(Decimal(value)) == Decimal(expected)


def test_discount_is_non_decreasing_and_bounded():
    previous = Decimal("0")
    for value in range(0, 40001, 750):
        discount = discount_at(value)
        assert Decimal("30") <= discount <= Decimal("80")
        assert discount >= previous
        previous = discount


def test_accepts_plain_numbers():
    assert calculate_discount(17500, 5000, 30000, 30, 80) == Decimal("55.00")


def test_empty_value_range_is_rejected():
    with pytest.raises(InvalidConfigurationError) as exc_info:
        calculate_discount(100, 5000, 5000, 30, 80)
    assert exc_info.value.reason == "value_range_empty"


@pytest.mark.parametrize(
    "config, reason",
    [
        (("-1", "50", "100", "200"), "discount_out_of_range"),
        (("10", "101", "100", "200"), "discount_out_of_range"),
        (("60", "40", "100", "200"), "discount_order"),
        (("10", "40", "0", "200"), "min_value_not_positive"),
        (("10", "40", "300", "200"), "value_range_empty"),
    ],
)
def test_invalid_configuration(config, reason):
    with pytest.raises(InvalidConfigurationError) as exc_info:
        validate_discount_configuration(*config)
    assert exc_info.value.reason == reason


def test_valid_configuration_passes():
    validate_discount_configuration("30", "80", "5000", "30000")


def test_discounted_price_rounds_to_cents():
    assert discounted_price(Decimal("99.99"), Decimal("33.33")) == Decimal("66.66")
    assert discounted_price(Decimal("100"), Decimal("0")) == Decimal("100.00")


class TestFinalPrice:
    def test_higher_completion_discount_lowers_the_price(self):
        authorized = discounted_price(Decimal("100"), Decimal("30"))
        assert calculate_final_price(Decimal("100"), Decimal("55"), authorized) == Decimal("45.00")

    def test_never_exceeds_the_authorized_amount(self):
        authorized = discounted_price(Decimal("100"), Decimal("55"))
        # A lower completion discount would raise the price above the hold
        assert calculate_final_price(Decimal("100"), Decimal("30"), authorized) == Decimal("45.00")
