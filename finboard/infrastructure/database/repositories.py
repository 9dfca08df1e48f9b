"""Data access layer for loans, recurring transactions, coupons and subscriptions"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from finboard.domain.amortization import to_money
from finboard.domain.models import AmortizationSchedule, CouponRule, DiscountType
from finboard.infrastructure.database.models import (
    Coupon,
    EmiSchedule,
    Loan,
    RecurringTransaction,
    SubscriptionPayment,
    SubscriptionPlan,
    Transaction,
    UserSubscription,
)
from finboard.utils.date_utils import add_months

# Payment states that consume a coupon redemption
REDEEMING_STATUSES = ("submitted", "verified", "approved")


class LoanRepository:
    """Repository for loans and their EMI schedules"""

    def __init__(self, db: Session):
        self.db = db

    def create_loan(
        self,
        user_id: str,
        lender: str,
        loan_type: str,
        currency: str,
        interest_rate: Decimal,
        start_date: date,
        schedule: AmortizationSchedule,
    ) -> Loan:
        """Persist a loan together with one EMI schedule row per period"""
        db_loan = Loan(
            user_id=user_id,
            lender=lender,
            loan_type=loan_type,
            principal_amount=schedule.principal,
            interest_rate=interest_rate,
            tenure_months=len(schedule.rows),
            emi_amount=schedule.monthly_payment,
            outstanding_amount=schedule.principal,
            currency=currency,
            start_date=start_date,
            next_due_date=start_date,
            status="active",
        )
        self.db.add(db_loan)
        self.db.flush()

        for row in schedule.rows:
            self.db.add(
                EmiSchedule(
                    loan_id=db_loan.id,
                    installment_number=row.period,
                    due_date=add_months(start_date, row.period - 1),
                    emi_amount=row.payment,
                    principal_portion=row.principal_portion,
                    interest_portion=row.interest_portion,
                    remaining_balance=row.remaining_balance,
                )
            )
        self.db.flush()
        return db_loan

    def get_loans_by_user(self, user_id: str) -> List[Loan]:
        return (
            self.db.query(Loan)
            .filter(Loan.user_id == user_id)
            .order_by(Loan.created_at.desc())
            .all()
        )

    def get_loan(self, loan_id: uuid.UUID, user_id: str) -> Optional[Loan]:
        """Fetch a loan only if it belongs to the user"""
        return (
            self.db.query(Loan)
            .filter(Loan.id == loan_id, Loan.user_id == user_id)
            .first()
        )

    def get_installment(self, loan_id: uuid.UUID, installment_number: int) -> Optional[EmiSchedule]:
        return (
            self.db.query(EmiSchedule)
            .filter(EmiSchedule.loan_id == loan_id, EmiSchedule.installment_number == installment_number)
            .with_for_update()
            .first()
        )

    def next_unpaid_installment(self, loan_id: uuid.UUID) -> Optional[EmiSchedule]:
        return (
            self.db.query(EmiSchedule)
            .filter(EmiSchedule.loan_id == loan_id, EmiSchedule.status != "paid")
            .order_by(EmiSchedule.installment_number)
            .first()
        )

    def replace_unpaid_installments(
        self, loan: Loan, schedule: AmortizationSchedule, installment_numbers: List[int]
    ) -> None:
        """
        Swap the loan's unpaid installments for the rows of a new schedule.

        Rows are assigned to installment_numbers in order; due dates follow from
        the loan's start_date. Paid installments are left untouched.
        """
        for installment in [i for i in loan.schedules if i.status != "paid"]:
            loan.schedules.remove(installment)
        # Old rows must be gone before new ones reuse their installment numbers
        self.db.flush()

        for number, row in zip(installment_numbers, schedule.rows):
            loan.schedules.append(
                EmiSchedule(
                    installment_number=number,
                    due_date=add_months(loan.start_date, number - 1),
                    emi_amount=row.payment,
                    principal_portion=row.principal_portion,
                    interest_portion=row.interest_portion,
                    remaining_balance=row.remaining_balance,
                )
            )
        self.db.flush()

    def delete_loan(self, loan: Loan) -> None:
        self.db.delete(loan)
        self.db.flush()

    def get_emi_overview(self, user_id: str, today: date, upcoming_until: date) -> List[Dict[str, Any]]:
        """
        Per-currency EMI totals for a user's loans.

        Installment figures come from emi_schedules: overdue means unpaid with a
        due date before today, upcoming means unpaid and due between today and
        upcoming_until inclusive. Only active loans contribute outstanding,
        overdue, upcoming and pending figures; paid-this-month also counts loans
        completed during the month.
        """
        month_start = today.replace(day=1)
        next_month_start = add_months(month_start, 1)
        zero = Decimal("0.00")
        overview: Dict[str, Dict[str, Any]] = {}

        def entry(currency: str) -> Dict[str, Any]:
            return overview.setdefault(
                currency,
                {
                    "currency": currency,
                    "total_active_loans": 0,
                    "total_outstanding_amount": zero,
                    "total_monthly_emi": zero,
                    "overdue_payments": 0,
                    "overdue_amount": zero,
                    "upcoming_payments": 0,
                    "next_payment_date": None,
                    "next_payment_amount": None,
                    "total_paid_this_month": zero,
                    "total_pending_this_month": zero,
                },
            )

        loan_totals = (
            self.db.query(
                Loan.currency,
                func.count(Loan.id),
                func.coalesce(func.sum(Loan.outstanding_amount), 0),
                func.coalesce(func.sum(Loan.emi_amount), 0),
            )
            .filter(Loan.user_id == user_id, Loan.status == "active")
            .group_by(Loan.currency)
            .all()
        )
        for currency, count, outstanding, emi in loan_totals:
            item = entry(currency)
            item["total_active_loans"] = count
            item["total_outstanding_amount"] = to_money(Decimal(str(outstanding)))
            item["total_monthly_emi"] = to_money(Decimal(str(emi)))

        unpaid = (
            self.db.query(Loan.currency, EmiSchedule.due_date, EmiSchedule.emi_amount)
            .join(EmiSchedule, EmiSchedule.loan_id == Loan.id)
            .filter(Loan.user_id == user_id, Loan.status == "active", EmiSchedule.status != "paid")
            .order_by(EmiSchedule.due_date)
            .all()
        )
        for currency, due_date, emi_amount in unpaid:
            item = entry(currency)
            amount = to_money(Decimal(str(emi_amount)))
            if due_date < today:
                item["overdue_payments"] += 1
                item["overdue_amount"] += amount
            else:
                if due_date <= upcoming_until:
                    item["upcoming_payments"] += 1
                if item["next_payment_date"] is None:
                    item["next_payment_date"] = due_date
                    item["next_payment_amount"] = zero
                if due_date == item["next_payment_date"]:
                    item["next_payment_amount"] += amount
            if month_start <= due_date < next_month_start:
                item["total_pending_this_month"] += amount

        paid = (
            self.db.query(
                Loan.currency,
                func.coalesce(func.sum(EmiSchedule.paid_amount), 0),
                func.coalesce(func.sum(EmiSchedule.late_fee), 0),
            )
            .join(EmiSchedule, EmiSchedule.loan_id == Loan.id)
            .filter(
                Loan.user_id == user_id,
                EmiSchedule.status == "paid",
                EmiSchedule.paid_date >= month_start,
                EmiSchedule.paid_date < next_month_start,
            )
            .group_by(Loan.currency)
            .all()
        )
        for currency, paid_amount, late_fees in paid:
            entry(currency)["total_paid_this_month"] = to_money(Decimal(str(paid_amount)) + Decimal(str(late_fees)))

        return [overview[currency] for currency in sorted(overview)]


class RecurringRepository:
    """Repository for recurring templates and the transactions they create"""

    def __init__(self, db: Session):
        self.db = db

    def create_template(
        self,
        user_id: str,
        transaction_template: Dict[str, Any],
        frequency: str,
        interval_value: int,
        start_date: date,
        end_date: Optional[date],
        next_execution: date,
    ) -> RecurringTransaction:
        db_recurring = RecurringTransaction(
            user_id=user_id,
            transaction_template=transaction_template,
            frequency=frequency,
            interval_value=interval_value,
            start_date=start_date,
            end_date=end_date,
            next_execution=next_execution,
            is_active=True,
        )
        self.db.add(db_recurring)
        self.db.flush()
        return db_recurring

    def get_templates_by_user(self, user_id: str) -> List[RecurringTransaction]:
        return (
            self.db.query(RecurringTransaction)
            .filter(RecurringTransaction.user_id == user_id)
            .order_by(RecurringTransaction.created_at.desc())
            .all()
        )

    def get_template(self, recurring_id: uuid.UUID, user_id: str) -> Optional[RecurringTransaction]:
        return (
            self.db.query(RecurringTransaction)
            .filter(RecurringTransaction.id == recurring_id, RecurringTransaction.user_id == user_id)
            .with_for_update()
            .first()
        )

    def get_due_templates(self, user_id: str, as_of: date) -> List[RecurringTransaction]:
        """Active templates whose next execution is on or before as_of"""
        return (
            self.db.query(RecurringTransaction)
            .filter(
                RecurringTransaction.user_id == user_id,
                RecurringTransaction.is_active.is_(True),
                RecurringTransaction.next_execution <= as_of,
            )
            .order_by(RecurringTransaction.next_execution)
            .all()
        )

    def get_active_templates_until(self, user_id: str, until: date) -> List[RecurringTransaction]:
        return (
            self.db.query(RecurringTransaction)
            .filter(
                RecurringTransaction.user_id == user_id,
                RecurringTransaction.is_active.is_(True),
                RecurringTransaction.next_execution <= until,
            )
            .order_by(RecurringTransaction.next_execution)
            .all()
        )

    def create_transaction(
        self,
        user_id: str,
        template: Dict[str, Any],
        on_date: date,
        recurring_id: uuid.UUID,
        default_currency: str,
    ) -> Transaction:
        """Materialize a transaction from a recurring template"""
        db_transaction = Transaction(
            user_id=user_id,
            type=template["type"],
            amount=Decimal(str(template["amount"])),
            currency=template.get("currency") or default_currency,
            description=template.get("description"),
            category=template.get("category"),
            date=on_date,
            is_recurring=True,
            recurring_template_id=recurring_id,
        )
        self.db.add(db_transaction)
        self.db.flush()
        return db_transaction


class CouponRepository:
    """Repository for coupons and their redemption counts"""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> List[Coupon]:
        return self.db.query(Coupon).order_by(Coupon.created_at.desc()).all()

    def get_by_id(self, coupon_id: uuid.UUID) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.id == coupon_id).first()

    def get_by_code(self, code: str, lock: bool = False) -> Optional[Coupon]:
        """Look up a coupon by case-insensitive code; lock=True holds a row lock until commit"""
        query = self.db.query(Coupon).filter(Coupon.code == code.strip().upper())
        if lock:
            query = query.with_for_update()
        return query.first()

    def create_coupon(self, **fields: Any) -> Coupon:
        fields["code"] = fields["code"].strip().upper()
        db_coupon = Coupon(**fields)
        self.db.add(db_coupon)
        self.db.flush()
        return db_coupon

    def update_coupon(self, coupon: Coupon, changes: Dict[str, Any]) -> Coupon:
        for name, value in changes.items():
            setattr(coupon, name, value)
        self.db.flush()
        return coupon

    def delete_coupon(self, coupon: Coupon) -> None:
        self.db.delete(coupon)
        self.db.flush()

    def is_used(self, coupon_id: uuid.UUID) -> bool:
        return (
            self.db.query(SubscriptionPayment.id)
            .filter(SubscriptionPayment.coupon_id == coupon_id)
            .first()
            is not None
        )

    def count_user_redemptions(self, coupon_id: uuid.UUID, user_id: str) -> int:
        return (
            self.db.query(func.count(SubscriptionPayment.id))
            .filter(
                SubscriptionPayment.coupon_id == coupon_id,
                SubscriptionPayment.user_id == user_id,
                SubscriptionPayment.status.in_(REDEEMING_STATUSES),
            )
            .scalar()
        )


class SubscriptionRepository:
    """Repository for plans, payments and user subscriptions"""

    def __init__(self, db: Session):
        self.db = db

    def get_plan_by_name(self, plan_name: str) -> Optional[SubscriptionPlan]:
        return (
            self.db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.plan_name == plan_name, SubscriptionPlan.is_active.is_(True))
            .first()
        )

    def transaction_id_exists(self, transaction_id: str) -> bool:
        return (
            self.db.query(SubscriptionPayment.id)
            .filter(SubscriptionPayment.transaction_id == transaction_id)
            .first()
            is not None
        )

    def create_payment(self, **fields: Any) -> SubscriptionPayment:
        db_payment = SubscriptionPayment(**fields)
        self.db.add(db_payment)
        self.db.flush()
        return db_payment

    def get_payments(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[SubscriptionPayment]:
        query = self.db.query(SubscriptionPayment)
        if status and status != "all":
            query = query.filter(SubscriptionPayment.status == status)
        return (
            query.order_by(SubscriptionPayment.submitted_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count_payments(self, status: Optional[str] = None) -> int:
        query = self.db.query(func.count(SubscriptionPayment.id))
        if status and status != "all":
            query = query.filter(SubscriptionPayment.status == status)
        return query.scalar()

    def get_payments_by_ids(self, payment_ids: Iterable[uuid.UUID]) -> List[SubscriptionPayment]:
        return (
            self.db.query(SubscriptionPayment)
            .filter(SubscriptionPayment.id.in_(list(payment_ids)))
            .with_for_update()
            .all()
        )

    def get_subscription(self, user_id: str) -> Optional[UserSubscription]:
        return self.db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()

    def save_subscription(self, subscription: UserSubscription) -> UserSubscription:
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def get_overview(self, now: datetime, month_start: datetime) -> Dict[str, Any]:
        """Headline numbers for the admin subscription dashboard"""
        approved = SubscriptionPayment.status == "approved"
        total_revenue = (
            self.db.query(func.coalesce(func.sum(SubscriptionPayment.final_amount), 0)).filter(approved).scalar()
        )
        monthly_revenue = (
            self.db.query(func.coalesce(func.sum(SubscriptionPayment.final_amount), 0))
            .filter(approved, SubscriptionPayment.submitted_at >= month_start)
            .scalar()
        )

        return {
            "active_subscriptions": self.db.query(func.count(UserSubscription.id))
            .filter(UserSubscription.status == "active", UserSubscription.end_date > now)
            .scalar(),
            "pending_payments": self.db.query(func.count(SubscriptionPayment.id))
            .filter(SubscriptionPayment.status.in_(("pending", "submitted")))
            .scalar(),
            "total_revenue": Decimal(str(total_revenue)),
            "monthly_revenue": Decimal(str(monthly_revenue)),
            "coupon_usage": self.db.query(func.count(SubscriptionPayment.id))
            .filter(SubscriptionPayment.coupon_id.isnot(None))
            .scalar(),
            "active_coupons": self.db.query(func.count(Coupon.id)).filter(Coupon.is_active.is_(True)).scalar(),
            "total_plans": self.db.query(func.count(SubscriptionPlan.id))
            .filter(SubscriptionPlan.is_active.is_(True))
            .scalar(),
        }


def to_coupon_rule(coupon: Coupon) -> CouponRule:
    """Read-only domain view of a stored coupon"""
    return CouponRule(
        type=DiscountType(coupon.type),
        value=Decimal(str(coupon.value)),
        minimum_amount=Decimal(str(coupon.minimum_amount or 0)),
        max_discount_amount=Decimal(str(coupon.max_discount_amount)) if coupon.max_discount_amount is not None else None,
        expires_at=coupon.expires_at,
        max_uses=coupon.max_uses,
        max_uses_per_user=coupon.max_uses_per_user,
        is_active=coupon.is_active,
    )
