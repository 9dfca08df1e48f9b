"""Coupon evaluation - validity checks and discount computation for subscription payments"""

from datetime import datetime
from decimal import Decimal

from finboard.domain.amortization import to_decimal, to_money
from finboard.domain.exceptions import InvalidInputError
from finboard.domain.models import CouponRule, DiscountResult, DiscountType
from finboard.utils.date_utils import as_utc

MSG_INVALID = "Invalid or expired coupon code"
MSG_EXPIRED = "Coupon has expired"
MSG_EXHAUSTED = "Coupon usage limit exceeded"
MSG_ALREADY_USED = "You have already used this coupon"
MSG_VALID = "Valid coupon code"


def _reject(base_amount: Decimal, message: str) -> DiscountResult:
    return DiscountResult(
        is_valid=False,
        discount_amount=Decimal("0.00"),
        final_amount=to_money(base_amount),
        message=message,
    )


def validate_rule(rule: CouponRule) -> DiscountType:
    """Structural checks on a rule; raises InvalidInputError for a malformed rule"""
    try:
        discount_type = DiscountType(rule.type)
    except ValueError as e:
        raise InvalidInputError(f"Unknown coupon type: {rule.type!r}") from e

    value = to_decimal(rule.value, "value")
    if value < 0:
        raise InvalidInputError("Coupon value must not be negative")
    if discount_type is DiscountType.PERCENTAGE and value > 100:
        raise InvalidInputError("Percentage coupon value must not exceed 100")
    if rule.max_discount_amount is not None and to_decimal(rule.max_discount_amount, "max_discount_amount") < 0:
        raise InvalidInputError("max_discount_amount must not be negative")
    return discount_type


def apply_coupon(
    rule: CouponRule,
    base_amount,
    now: datetime,
    prior_redemptions_by_user: int = 0,
    total_redemptions: int = 0,
) -> DiscountResult:
    """
    Evaluate a coupon against a base amount.

    Validation order (first failure wins):
    1. rule must be active
    2. expires_at, if set, must not be before now
    3. max_uses, if set, must exceed total_redemptions
    4. max_uses_per_user, if set, must exceed prior_redemptions_by_user
    5. base_amount must reach minimum_amount

    Discount:
    - percentage: base * value / 100, capped at max_discount_amount
    - fixed: value, never more than the base amount

    Business-rule failures come back as is_valid=False with discount 0.
    Only a malformed rule or base amount raises InvalidInputError.
    """
    base_amount = to_decimal(base_amount, "base_amount")
    if base_amount < 0:
        raise InvalidInputError("base_amount must not be negative")
    discount_type = validate_rule(rule)

    if not rule.is_active:
        return _reject(base_amount, MSG_INVALID)

    if rule.expires_at is not None and as_utc(rule.expires_at) < as_utc(now):
        return _reject(base_amount, MSG_EXPIRED)

    if rule.max_uses is not None and rule.max_uses <= total_redemptions:
        return _reject(base_amount, MSG_EXHAUSTED)

    if rule.max_uses_per_user is not None and rule.max_uses_per_user <= prior_redemptions_by_user:
        return _reject(base_amount, MSG_ALREADY_USED)

    minimum = to_decimal(rule.minimum_amount or 0, "minimum_amount")
    if base_amount < minimum:
        return _reject(base_amount, f"Minimum purchase amount of {to_money(minimum)} required")

    value = to_decimal(rule.value, "value")
    if discount_type is DiscountType.PERCENTAGE:
        discount = base_amount * value / 100
        if rule.max_discount_amount is not None:
            discount = min(discount, to_decimal(rule.max_discount_amount, "max_discount_amount"))
    else:
        discount = min(value, base_amount)

    discount = to_money(discount)
    final_amount = max(to_money(base_amount) - discount, Decimal("0.00"))

    return DiscountResult(
        is_valid=True,
        discount_amount=discount,
        final_amount=final_amount,
        message=MSG_VALID,
    )
