"""Unit tests for subscription payment lifecycle rules"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from finboard.domain.exceptions import ConflictError, InvalidInputError
from finboard.domain.payments import check_status_transition, extended_period_end, plan_base_amount

NOW = datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current,target",
    [
        ("submitted", "verified"),
        ("submitted", "approved"),
        ("submitted", "rejected"),
        ("pending", "approved"),
        ("verified", "approved"),
        ("verified", "rejected"),
    ],
)
def test_allowed_transitions(current, target):
    check_status_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [("approved", "rejected"), ("rejected", "approved"), ("approved", "verified"), ("verified", "verified")],
)
def test_final_states_conflict(current, target):
    with pytest.raises(ConflictError):
        check_status_transition(current, target)


def test_unknown_target_status():
    with pytest.raises(InvalidInputError):
        check_status_transition("submitted", "pending")


def test_plan_base_amount():
    assert plan_base_amount(Decimal("299"), Decimal("2990"), "monthly") == Decimal("299.00")
    assert plan_base_amount(Decimal("299"), Decimal("2990"), "yearly") == Decimal("2990.00")
    with pytest.raises(InvalidInputError):
        plan_base_amount(Decimal("299"), Decimal("2990"), "weekly")


def test_new_subscription_starts_now():
    assert extended_period_end(NOW, None, "monthly") == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)
    assert extended_period_end(NOW, None, "yearly") == datetime(2025, 1, 31, 9, 0, tzinfo=timezone.utc)


def test_running_subscription_extends_from_current_end():
    current_end = datetime(2024, 2, 10, tzinfo=timezone.utc)
    assert extended_period_end(NOW, current_end, "monthly") == datetime(2024, 3, 10, tzinfo=timezone.utc)


def test_lapsed_subscription_restarts_from_now():
    current_end = datetime(2023, 12, 1)
    assert extended_period_end(NOW, current_end, "monthly") == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)
