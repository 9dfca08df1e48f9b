"""Subscription payment lifecycle rules"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from finboard.domain.amortization import to_money
from finboard.domain.exceptions import ConflictError, InvalidInputError
from finboard.utils.date_utils import add_months, add_years, as_utc

BILLING_CYCLES = ("monthly", "yearly")

# Admin-driven transitions; rejected and approved payments are final
ALLOWED_TRANSITIONS = {
    "submitted": {"verified", "approved", "rejected"},
    "pending": {"verified", "approved", "rejected"},
    "verified": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}


def check_status_transition(current: str, target: str) -> None:
    """Raise ConflictError unless current -> target is an allowed admin transition"""
    if target not in {"verified", "approved", "rejected"}:
        raise InvalidInputError(f"Invalid status: {target}")
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ConflictError(f"Payment cannot move from {current} to {target}")


def plan_base_amount(price_monthly: Decimal, price_yearly: Decimal, billing_cycle: str) -> Decimal:
    if billing_cycle not in BILLING_CYCLES:
        raise InvalidInputError(f"Invalid billing cycle: {billing_cycle}")
    return to_money(price_yearly if billing_cycle == "yearly" else price_monthly)


def subscription_period_end(starts_at: datetime, billing_cycle: str) -> datetime:
    """One billing period after starts_at, using calendar months/years"""
    if billing_cycle == "yearly":
        return add_years(starts_at, 1)
    if billing_cycle == "monthly":
        return add_months(starts_at, 1)
    raise InvalidInputError(f"Invalid billing cycle: {billing_cycle}")


def extended_period_end(now: datetime, current_end: Optional[datetime], billing_cycle: str) -> datetime:
    """
    End date of a subscription after an approved payment.

    A still-running subscription is extended from its current end date; a lapsed
    or missing one restarts from now.
    """
    if current_end is not None and as_utc(current_end) > as_utc(now):
        return subscription_period_end(as_utc(current_end), billing_cycle)
    return subscription_period_end(as_utc(now), billing_cycle)
