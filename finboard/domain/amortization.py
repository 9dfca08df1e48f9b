"""EMI calculation and loan amortization schedules"""

from datetime import date
from decimal import Decimal, DecimalException, ROUND_HALF_UP, localcontext

from finboard.domain.exceptions import InvalidInputError, UnexpectedComputationError
from finboard.domain.models import AmortizationRow, AmortizationSchedule, LoanTerms

CENT = Decimal("0.01")
WORKING_PRECISION = 28
# Below this monthly rate no representable principal accrues a cent of interest
NEGLIGIBLE_MONTHLY_RATE = Decimal("1E-60")


def to_money(value: Decimal) -> Decimal:
    """Round to currency precision (2 decimals, half-up)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, name: str) -> Decimal:
    """Coerce int/float/str/Decimal to a finite Decimal or raise InvalidInputError"""
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{name} must be numeric")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (DecimalException, ValueError, TypeError) as e:
        raise InvalidInputError(f"{name} must be numeric") from e
    if not result.is_finite():
        raise InvalidInputError(f"{name} must be finite")
    return result


def validate_loan_terms(principal, annual_rate_percent, term_months) -> LoanTerms:
    """Normalize raw inputs into LoanTerms, rejecting anything outside the valid domain"""
    principal = to_decimal(principal, "principal")
    annual_rate_percent = to_decimal(annual_rate_percent, "annual_rate_percent")

    if isinstance(term_months, bool) or not isinstance(term_months, int):
        raise InvalidInputError("term_months must be an integer")
    if principal <= 0 or to_money(principal) <= 0:
        raise InvalidInputError("principal must be greater than zero")
    if term_months <= 0:
        raise InvalidInputError("term_months must be greater than zero")
    if annual_rate_percent < 0:
        raise InvalidInputError("annual_rate_percent must not be negative")

    return LoanTerms(
        principal=to_money(principal),
        annual_rate_percent=annual_rate_percent,
        term_months=term_months,
    )


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    return annual_rate_percent / 12 / 100


def _fixed_payment(terms: LoanTerms) -> Decimal:
    r = monthly_rate(terms.annual_rate_percent)
    n = terms.term_months

    if r < NEGLIGIBLE_MONTHLY_RATE:
        # Interest-free loan, or interest too small to reach a cent
        return terms.principal / n

    with localcontext() as ctx:
        # 1 + r must keep every significant digit of r
        ctx.prec = WORKING_PRECISION + max(0, -r.adjusted())
        growth = (1 + r) ** n
        if growth == 1:
            return terms.principal / n
        return terms.principal * r * growth / (growth - 1)


def _emi_for_terms(terms: LoanTerms) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = WORKING_PRECISION
        try:
            payment = to_money(_fixed_payment(terms))
        except DecimalException as e:
            raise UnexpectedComputationError(f"EMI computation failed for {terms}: {e!r}") from e

    if not payment.is_finite():
        raise UnexpectedComputationError(f"EMI computation produced {payment} for {terms}")
    return payment


def calculate_emi(principal, annual_rate_percent, term_months) -> Decimal:
    """
    Equated monthly installment for a fixed-payment loan.

    Formula:
        payment = P * r * (1+r)^n / ((1+r)^n - 1), r = annual% / 12 / 100

    With a zero (or negligibly small) rate the payment is simply P / n.

    Raises:
        InvalidInputError: principal <= 0, term_months <= 0, rate < 0, non-numeric input
        UnexpectedComputationError: overflow or non-finite intermediate result
    """
    return _emi_for_terms(validate_loan_terms(principal, annual_rate_percent, term_months))


def compute_amortization_schedule(principal, annual_rate_percent, term_months) -> AmortizationSchedule:
    """
    Build the month-by-month amortization schedule.

    Requirements:
    - interest_portion = remaining_balance * monthly_rate, rounded to cents
    - principal_portion = payment - interest_portion
    - Last period absorbs the rounding residue: its principal_portion is the
      previous remaining balance and its remaining_balance is exactly 0

    Example:
        100000 at 10% over 12 months -> payment 8791.59,
        first row interest 833.33, principal 7958.26
    """
    terms = validate_loan_terms(principal, annual_rate_percent, term_months)
    payment = _emi_for_terms(terms)
    r = monthly_rate(terms.annual_rate_percent)

    rows = []
    balance = terms.principal
    with localcontext() as ctx:
        ctx.prec = WORKING_PRECISION
        try:
            for period in range(1, terms.term_months + 1):
                interest = to_money(balance * r)

                if period == terms.term_months:
                    principal_portion = balance
                else:
                    # Rounded payments on tiny balances must not overshoot into negative territory
                    principal_portion = min(payment - interest, balance)

                balance = balance - principal_portion
                rows.append(
                    AmortizationRow(
                        period=period,
                        payment=principal_portion + interest,
                        interest_portion=interest,
                        principal_portion=principal_portion,
                        remaining_balance=balance,
                    )
                )
        except DecimalException as e:
            raise UnexpectedComputationError(f"Schedule computation failed for {terms}: {e!r}") from e

    return AmortizationSchedule(principal=terms.principal, monthly_payment=payment, rows=rows)


def calculate_overdue_days(due_date: date, as_of: date) -> int:
    """Days an installment is late as of a given date (0 when not yet due)"""
    return max(0, (as_of - due_date).days)
