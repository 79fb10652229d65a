"""
Pricing Engine

Pure money arithmetic shared by cart, checkout, bundles and the revenue
ledger. Nothing in this module touches the database or the payment
provider; every function works on ``Decimal`` values (or objects exposing
``price`` / ``discount_price``) and returns amounts quantised to cents.

Author: DSP Development Team
Version: 1.0.0
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Sequence, Tuple

from .exceptions import InvalidInputError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def quantize(amount) -> Decimal:
    """Round an amount to cents (half up)."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_price(course) -> Decimal:
    """
    Price a buyer actually pays for a course.

    The discount price wins whenever it is set and positive, otherwise the
    list price applies.
    """
    discount = course.discount_price
    if discount is not None and Decimal(str(discount)) > 0:
        return quantize(discount)
    return quantize(course.price)


def _validate_percent(discount_percent) -> Decimal:
    try:
        pct = Decimal(str(discount_percent))
    except (ArithmeticError, ValueError, TypeError):
        raise InvalidInputError("discount_percent must be a number") from None
    if not pct.is_finite() or pct < 0 or pct > HUNDRED:
        raise InvalidInputError(
            "discount_percent must be between 0 and 100",
            details={"discount_percent": str(discount_percent)},
        )
    return pct


def discounted_price(original, discount_percent) -> Decimal:
    """original × (1 − pct/100), rounded to cents. Never negative."""
    pct = _validate_percent(discount_percent)
    price = quantize(Decimal(str(original)) * (HUNDRED - pct) / HUNDRED)
    return max(price, ZERO)


def bundle_price(courses: Iterable, discount_percent) -> Tuple[Decimal, Decimal]:
    """
    Compute (original_price, bundle_price) for a set of courses.

    Raises:
        InvalidInputError: courses is empty or the percentage is outside [0, 100]
    """
    courses = list(courses)
    if not courses:
        raise InvalidInputError("A bundle price needs at least one course")
    original = quantize(sum((effective_price(c) for c in courses), ZERO))
    return original, discounted_price(original, discount_percent)


def savings(bundle) -> Decimal:
    return quantize(Decimal(str(bundle.original_price)) - Decimal(str(bundle.bundle_price)))


def split_platform_fee(price, fee_percent) -> Tuple[Decimal, Decimal]:
    """
    Split a sale into (platform_fee, instructor_share).

    The fee is rounded to cents and the share takes the remainder, so both
    parts always add up to the price.
    """
    price = quantize(price)
    fee = quantize(price * Decimal(str(fee_percent)) / HUNDRED)
    return fee, price - fee


def allocate(total, weights: Sequence) -> List[Decimal]:
    """
    Distribute ``total`` proportionally to ``weights``.

    Used to spread a bundle price over its courses. Every share is rounded to
    cents and the last line absorbs the rounding remainder, so the result
    always sums to ``total`` exactly. With all-zero weights the total is split
    evenly.
    """
    total = quantize(total)
    if not weights:
        return []
    weights = [Decimal(str(w)) for w in weights]
    weight_sum = sum(weights, ZERO)
    if weight_sum <= 0:
        weights = [Decimal("1")] * len(weights)
        weight_sum = Decimal(len(weights))

    shares = [quantize(total * w / weight_sum) for w in weights[:-1]]
    shares.append(total - sum(shares, ZERO))
    if shares[-1] < 0:
        # Rounding pushed earlier lines above the total; pull back from the largest.
        deficit = -shares[-1]
        shares[-1] = ZERO
        biggest = max(range(len(shares) - 1), key=lambda i: shares[i])
        shares[biggest] -= deficit
    return shares


def to_minor_units(amount) -> int:
    """Amount in cents as expected by the payment provider."""
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def coupon_discount(subtotal, coupon_type: str, value, max_discount=None) -> Decimal:
    """
    Discount granted by a coupon on ``subtotal``.

    ``coupon_type`` is one of "percentage" (value in percent), "fixed"
    (value is an amount) or "free". The discount is capped by
    ``max_discount`` when given and never exceeds the subtotal.
    """
    subtotal = quantize(subtotal)
    if coupon_type == "percentage":
        discount = subtotal - discounted_price(subtotal, value)
    elif coupon_type == "fixed":
        discount = quantize(value)
    elif coupon_type == "free":
        discount = subtotal
    else:
        raise InvalidInputError(f"Unknown coupon type '{coupon_type}'")
    if max_discount is not None:
        discount = min(discount, quantize(max_discount))
    return max(min(discount, subtotal), ZERO)
