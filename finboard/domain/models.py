"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class Frequency(str, Enum):
    """How often a recurring transaction template repeats"""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class LoanTerms:
    """Fixed-payment loan inputs"""

    principal: Decimal
    annual_rate_percent: Decimal
    term_months: int


@dataclass
class AmortizationRow:
    """One period of an amortization schedule"""

    period: int
    payment: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    remaining_balance: Decimal


@dataclass
class AmortizationSchedule:
    """Monthly payment plus the period-by-period breakdown"""

    principal: Decimal
    monthly_payment: Decimal
    rows: List[AmortizationRow]

    @property
    def total_amount(self) -> Decimal:
        return sum((row.payment for row in self.rows), Decimal("0"))

    @property
    def total_interest(self) -> Decimal:
        return sum((row.interest_portion for row in self.rows), Decimal("0"))

    @property
    def principal_percentage(self) -> Decimal:
        return (self.principal / self.total_amount * 100).quantize(Decimal("0.01"))

    @property
    def interest_percentage(self) -> Decimal:
        return (self.total_interest / self.total_amount * 100).quantize(Decimal("0.01"))


@dataclass
class RecurringTemplate:
    """Fields of a recurring template needed for aggregate statistics"""

    frequency: str
    is_active: bool
    amount: Decimal
    transaction_type: str  # "income" or "expense"


@dataclass
class RecurringStats:
    """Aggregate view over a user's recurring templates"""

    total: int = 0
    active: int = 0
    inactive: int = 0
    by_frequency: Dict[str, int] = field(default_factory=lambda: {f.value: 0 for f in Frequency})
    total_monthly_amount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class CouponRule:
    """Administrator-defined discount rule consulted at checkout"""

    type: DiscountType
    value: Decimal
    minimum_amount: Decimal = Decimal("0")
    max_discount_amount: Optional[Decimal] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    max_uses_per_user: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class DiscountResult:
    """Outcome of evaluating a coupon against a base amount"""

    is_valid: bool
    discount_amount: Decimal
    final_amount: Decimal
    message: str


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as reported by the identity provider"""

    user_id: str
    role: str


@dataclass(frozen=True)
class RequestContext:
    """Per-request state passed explicitly to handlers instead of a global store"""

    principal: Principal
    currency: str
    now: datetime

    @property
    def today(self) -> date:
        return self.now.date()
