"""Unit tests for role capabilities"""

import pytest
from finboard.domain.permissions import Action, Role, has_capability, parse_role


def test_plain_user_capabilities():
    assert has_capability("user", Action.MANAGE_OWN_FINANCES)
    assert has_capability("user", Action.SUBMIT_PAYMENT)
    assert not has_capability("user", Action.USE_PREMIUM_FEATURES)
    assert not has_capability("user", Action.MANAGE_COUPONS)


def test_paid_user_gets_premium_only():
    assert has_capability(Role.PAID_USER, Action.USE_PREMIUM_FEATURES)
    assert not has_capability(Role.PAID_USER, Action.MANAGE_PAYMENTS)


@pytest.mark.parametrize("role", ["admin", "super_admin"])
@pytest.mark.parametrize(
    "action",
    [Action.MANAGE_COUPONS, Action.MANAGE_PAYMENTS, Action.VIEW_SUBSCRIPTION_OVERVIEW, Action.MANAGE_OWN_FINANCES],
)
def test_admin_capabilities(role, action):
    assert has_capability(role, action)


def test_only_super_admin_runs_migrations():
    assert has_capability("super_admin", Action.RUN_MIGRATIONS)
    assert not has_capability("admin", Action.RUN_MIGRATIONS)


def test_unknown_role_is_plain_user():
    assert parse_role("wizard") is Role.USER
    assert parse_role(None) is Role.USER
    assert not has_capability("wizard", Action.MANAGE_COUPONS)
