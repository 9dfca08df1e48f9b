"""Recurring transaction scheduling - next execution dates and monthly equivalents"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from finboard.domain.amortization import to_money
from finboard.domain.exceptions import InvalidInputError
from finboard.domain.models import Frequency, RecurringStats, RecurringTemplate
from finboard.utils.date_utils import add_months, add_years

# Average number of occurrences per month, used to project a template onto a monthly budget
MONTHLY_FACTORS = {
    Frequency.WEEKLY: Decimal("4.33"),
    Frequency.BIWEEKLY: Decimal("2.17"),
    Frequency.MONTHLY: Decimal("1"),
    Frequency.QUARTERLY: Decimal("1") / 3,
    Frequency.YEARLY: Decimal("1") / 12,
}


def parse_frequency(frequency: Union[Frequency, str, None]) -> Optional[Frequency]:
    """Frequency enum for a raw value, or None when unrecognized"""
    try:
        return Frequency(frequency)
    except ValueError:
        return None


def _as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise InvalidInputError(f"Invalid date: {value!r}") from e
    raise InvalidInputError(f"Invalid date: {value!r}")


def next_execution_date(
    current_date: Union[date, str],
    frequency: Union[Frequency, str],
    interval_value: int = 1,
) -> date:
    """
    Advance a date by one recurrence step.

    Rules:
    - weekly:    +7 * interval days
    - biweekly:  +14 * interval days
    - monthly:   +interval calendar months (Jan 31 -> Feb 28/29)
    - quarterly: +3 * interval calendar months
    - yearly:    +interval calendar years
    - anything else advances monthly

    Raises:
        InvalidInputError: interval_value is not a positive integer, or current_date is malformed
    """
    if isinstance(interval_value, bool) or not isinstance(interval_value, int) or interval_value <= 0:
        raise InvalidInputError(f"interval_value must be a positive integer, got {interval_value!r}")

    current = _as_date(current_date)
    freq = parse_frequency(frequency)

    if freq is Frequency.WEEKLY:
        return current + timedelta(days=7 * interval_value)
    elif freq is Frequency.BIWEEKLY:
        return current + timedelta(days=14 * interval_value)
    elif freq is Frequency.MONTHLY:
        return add_months(current, interval_value)
    elif freq is Frequency.QUARTERLY:
        return add_months(current, 3 * interval_value)
    elif freq is Frequency.YEARLY:
        return add_years(current, interval_value)

    logging.warning(
        "Unknown recurrence frequency, advancing monthly",
        extra={"frequency": str(frequency), "interval_value": interval_value},
    )
    return add_months(current, interval_value)


def occurrences_between(
    start: date,
    frequency: Union[Frequency, str],
    interval_value: int,
    until: date,
    end_date: Optional[date] = None,
) -> List[date]:
    """Every execution date from start through until (inclusive), stopping at end_date if set"""
    last = min(until, end_date) if end_date else until
    dates = []
    current = start
    while current <= last:
        dates.append(current)
        current = next_execution_date(current, frequency, interval_value)
    return dates


def monthly_equivalent(amount: Decimal, frequency: Union[Frequency, str]) -> Decimal:
    """Amount projected onto one month; unrecognized frequencies contribute nothing"""
    freq = parse_frequency(frequency)
    if freq is None:
        return Decimal("0")
    return amount * MONTHLY_FACTORS[freq]


def summarize_recurring(templates: Iterable[RecurringTemplate]) -> RecurringStats:
    """
    Aggregate a user's recurring templates.

    Income templates add their monthly equivalent to the net monthly amount,
    expense templates subtract it. Inactive templates still count towards the
    frequency breakdown and the monthly amount.
    """
    stats = RecurringStats()
    net = Decimal("0")

    for template in templates:
        stats.total += 1
        if template.is_active:
            stats.active += 1
        else:
            stats.inactive += 1

        if template.frequency in stats.by_frequency:
            stats.by_frequency[template.frequency] += 1

        equivalent = monthly_equivalent(template.amount, template.frequency)
        if template.transaction_type == "income":
            net += equivalent
        elif template.transaction_type == "expense":
            net -= equivalent

    stats.total_monthly_amount = to_money(net)
    return stats
