"""
Discount Engine.

    progress = clamp((current_value - min_value) / (max_value - min_value), 0, 1)
    discount = min_discount + (max_discount - min_discount) * progress

Non-decreasing in current_value and always within [min_discount,
max_discount]. A degenerate value range is rejected when the supplier list
is configured, never at evaluation time.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from dropmarket.core.results import InvalidConfigurationError

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _d(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    return _d(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_discount_configuration(
    min_discount: Number,
    max_discount: Number,
    min_value: Number,
    max_value: Number,
) -> None:
    """Raise InvalidConfigurationError for an unusable supplier list setup."""
    min_discount, max_discount = _d(min_discount), _d(max_discount)
    min_value, max_value = _d(min_value), _d(max_value)

    if min_discount < 0 or max_discount > HUNDRED or max_discount < 0 or min_discount > HUNDRED:
        raise InvalidConfigurationError(
            "discount_out_of_range", "Discounts must be between 0 and 100 percent"
        )
    if min_discount > max_discount:
        raise InvalidConfigurationError(
            "discount_order", "Minimum discount cannot exceed maximum discount"
        )
    if min_value <= 0:
        raise InvalidConfigurationError(
            "min_value_not_positive", "Minimum reservation value must be greater than zero"
        )
    if min_value >= max_value:
        raise InvalidConfigurationError(
            "value_range_empty", "Minimum reservation value must be below the maximum"
        )


def calculate_discount(
    current_value: Number,
    min_value: Number,
    max_value: Number,
    min_discount: Number,
    max_discount: Number,
) -> Decimal:
    """Discount percentage for the committed value, rounded to cents."""
    current_value, min_value, max_value = _d(current_value), _d(min_value), _d(max_value)
    min_discount, max_discount = _d(min_discount), _d(max_discount)

    span = max_value - min_value
    if span <= 0:
        raise InvalidConfigurationError(
            "value_range_empty", "Minimum reservation value must be below the maximum"
        )

    progress = (current_value - min_value) / span
    progress = min(max(progress, Decimal("0")), Decimal("1"))
    discount = min_discount + (max_discount - min_discount) * progress
    return quantize_money(discount)


def discount_for_list(current_value: Number, supplier_list) -> Decimal:
    """calculate_discount with the economics of a SupplierList row."""
    return calculate_discount(
        current_value,
        supplier_list.min_reservation_value,
        supplier_list.max_reservation_value,
        supplier_list.min_discount,
        supplier_list.max_discount,
    )


def discounted_price(original_price: Number, discount_percentage: Number) -> Decimal:
    """original_price * (1 - discount/100), rounded to cents."""
    price = _d(original_price)
    return quantize_money(price * (HUNDRED - _d(discount_percentage)) / HUNDRED)


def calculate_final_price(
    original_price: Number,
    completion_discount: Number,
    authorized_amount: Number,
) -> Decimal:
    """Capture price at drop completion, never above the authorized amount."""
    return min(quantize_money(authorized_amount), discounted_price(original_price, completion_discount))
