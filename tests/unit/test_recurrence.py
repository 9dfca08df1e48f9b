"""Unit tests for recurring schedule advancement and statistics"""

import logging
import pytest
from datetime import date
from decimal import Decimal
from finboard.domain.amortization import to_money
from finboard.domain.exceptions import InvalidInputError
from finboard.domain.models import Frequency, RecurringTemplate
from finboard.domain.recurrence import (
    monthly_equivalent,
    next_execution_date,
    occurrences_between,
    summarize_recurring,
)


@pytest.mark.parametrize(
    "current,frequency,interval,expected",
    [
        (date(2024, 1, 1), "weekly", 1, date(2024, 1, 8)),
        (date(2024, 1, 1), "weekly", 3, date(2024, 1, 22)),
        (date(2024, 1, 1), "biweekly", 1, date(2024, 1, 15)),
        (date(2024, 1, 15), "monthly", 1, date(2024, 2, 15)),
        (date(2024, 1, 15), "monthly", 2, date(2024, 3, 15)),
        (date(2024, 3, 15), "quarterly", 1, date(2024, 6, 15)),
        (date(2024, 3, 15), "yearly", 1, date(2025, 3, 15)),
    ],
)
def test_next_execution_date(current, frequency, interval, expected):
    assert next_execution_date(current, frequency, interval) == expected


def test_month_end_clamps_to_shorter_month():
    """Calendar month arithmetic, not a 30-day approximation"""
    assert next_execution_date(date(2024, 1, 31), Frequency.MONTHLY, 1) == date(2024, 2, 29)
    assert next_execution_date(date(2023, 1, 31), Frequency.MONTHLY, 1) == date(2023, 2, 28)
    assert next_execution_date(date(2024, 11, 30), Frequency.QUARTERLY, 1) == date(2025, 2, 28)


def test_leap_day_yearly_clamps():
    assert next_execution_date(date(2024, 2, 29), Frequency.YEARLY, 1) == date(2025, 2, 28)


def test_accepts_iso_string():
    assert next_execution_date("2024-01-31", "monthly") == date(2024, 2, 29)


def test_unknown_frequency_falls_back_to_monthly(caplog):
    with caplog.at_level(logging.WARNING):
        assert next_execution_date(date(2024, 1, 15), "fortnightly", 1) == date(2024, 2, 15)
    assert "Unknown recurrence frequency" in caplog.text


@pytest.mark.parametrize("interval", [0, -1, 1.5, True, None])
def test_invalid_interval_raises(interval):
    with pytest.raises(InvalidInputError):
        next_execution_date(date(2024, 1, 1), "monthly", interval)


def test_invalid_date_raises():
    with pytest.raises(InvalidInputError):
        next_execution_date("not-a-date", "monthly")


def test_always_moves_forward():
    current = date(2024, 1, 31)
    for frequency in Frequency:
        assert next_execution_date(current, frequency, 1) > current


def test_occurrences_between_inclusive():
    dates = occurrences_between(date(2024, 1, 1), "weekly", 1, until=date(2024, 1, 29))
    assert dates == [date(2024, 1, d) for d in (1, 8, 15, 22, 29)]


def test_occurrences_between_stops_at_end_date():
    dates = occurrences_between(date(2024, 1, 1), "weekly", 1, until=date(2024, 2, 28), end_date=date(2024, 1, 10))
    assert dates == [date(2024, 1, 1), date(2024, 1, 8)]


def test_occurrences_between_empty_when_start_after_window():
    assert occurrences_between(date(2024, 5, 1), "monthly", 1, until=date(2024, 4, 1)) == []


def test_monthly_equivalent():
    assert monthly_equivalent(Decimal("100"), "weekly") == Decimal("433.00")
    assert monthly_equivalent(Decimal("100"), "biweekly") == Decimal("217.00")
    assert monthly_equivalent(Decimal("100"), "monthly") == Decimal("100")
    assert to_money(monthly_equivalent(Decimal("1200"), "yearly")) == Decimal("100.00")
    assert to_money(monthly_equivalent(Decimal("300"), "quarterly")) == Decimal("100.00")
    assert monthly_equivalent(Decimal("100"), "hourly") == Decimal("0")


def test_summarize_recurring():
    templates = [
        RecurringTemplate(frequency="monthly", is_active=True, amount=Decimal("50000"), transaction_type="income"),
        RecurringTemplate(frequency="weekly", is_active=True, amount=Decimal("1000"), transaction_type="expense"),
        RecurringTemplate(frequency="yearly", is_active=False, amount=Decimal("12000"), transaction_type="expense"),
    ]

    stats = summarize_recurring(templates)

    assert stats.total == 3
    assert stats.active == 2
    assert stats.inactive == 1
    assert stats.by_frequency["monthly"] == 1
    assert stats.by_frequency["weekly"] == 1
    assert stats.by_frequency["yearly"] == 1
    assert stats.by_frequency["quarterly"] == 0
    # 50000 - 4330 - 1000
    assert stats.total_monthly_amount == Decimal("44670.00")


def test_summarize_recurring_empty():
    stats = summarize_recurring([])

    assert stats.total == 0
    assert stats.total_monthly_amount == Decimal("0.00")
    assert set(stats.by_frequency) == {f.value for f in Frequency}
