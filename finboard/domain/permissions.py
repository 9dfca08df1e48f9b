"""Role-based capability checks"""

from enum import Enum
from typing import Dict, FrozenSet, Union


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    PAID_USER = "paid_user"
    USER = "user"


class Action(str, Enum):
    MANAGE_OWN_FINANCES = "manage_own_finances"
    SUBMIT_PAYMENT = "submit_payment"
    USE_PREMIUM_FEATURES = "use_premium_features"
    MANAGE_COUPONS = "manage_coupons"
    MANAGE_PAYMENTS = "manage_payments"
    VIEW_SUBSCRIPTION_OVERVIEW = "view_subscription_overview"
    RUN_MIGRATIONS = "run_migrations"


_USER_ACTIONS = frozenset({Action.MANAGE_OWN_FINANCES, Action.SUBMIT_PAYMENT})
_PAID_ACTIONS = _USER_ACTIONS | {Action.USE_PREMIUM_FEATURES}
_ADMIN_ACTIONS = _PAID_ACTIONS | {
    Action.MANAGE_COUPONS,
    Action.MANAGE_PAYMENTS,
    Action.VIEW_SUBSCRIPTION_OVERVIEW,
}

CAPABILITIES: Dict[Role, FrozenSet[Action]] = {
    Role.USER: _USER_ACTIONS,
    Role.PAID_USER: _PAID_ACTIONS,
    Role.ADMIN: _ADMIN_ACTIONS,
    Role.SUPER_ADMIN: _ADMIN_ACTIONS | {Action.RUN_MIGRATIONS},
}


def parse_role(role: Union[Role, str, None]) -> Role:
    """Unknown or missing roles are treated as a plain user"""
    try:
        return Role(role)
    except ValueError:
        return Role.USER


def has_capability(role: Union[Role, str, None], action: Action) -> bool:
    """Single entry point for every authorization decision"""
    return action in CAPABILITIES[parse_role(role)]
