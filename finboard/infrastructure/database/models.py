"""SQLAlchemy ORM models for loans, recurring transactions and subscriptions"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Numeric,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(14, 2)


class Loan(Base):
    """Fixed-payment loan owned by a user"""

    __tablename__ = "loans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    lender = Column(Text, nullable=False)
    loan_type = Column(String(32), nullable=False, default="personal")
    principal_amount = Column(Money, nullable=False)
    interest_rate = Column(Numeric(7, 4), nullable=False)
    tenure_months = Column(Integer, nullable=False)
    emi_amount = Column(Money, nullable=False)
    outstanding_amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="BDT")
    start_date = Column(Date, nullable=False)
    next_due_date = Column(Date, nullable=True)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    schedules = relationship(
        "EmiSchedule",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="EmiSchedule.installment_number",
    )


class EmiSchedule(Base):
    """One amortization row persisted for a loan"""

    __tablename__ = "emi_schedules"
    __table_args__ = (UniqueConstraint("loan_id", "installment_number", name="uq_emi_schedule_installment"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    emi_amount = Column(Money, nullable=False)
    principal_portion = Column(Money, nullable=False)
    interest_portion = Column(Money, nullable=False)
    remaining_balance = Column(Money, nullable=False)
    status = Column(String(16), nullable=False, default="scheduled")
    paid_date = Column(Date, nullable=True)
    paid_amount = Column(Money, nullable=True)
    days_overdue = Column(Integer, nullable=True)
    late_fee = Column(Money, nullable=True)
    payment_method = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)

    loan = relationship("Loan", back_populates="schedules")


class RecurringTransaction(Base):
    """Template that materializes a transaction on each execution date"""

    __tablename__ = "recurring_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    transaction_template = Column(JSON, nullable=False)
    frequency = Column(String(16), nullable=False)
    interval_value = Column(Integer, nullable=False, default=1)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    last_executed = Column(Date, nullable=True)
    next_execution = Column(Date, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class Transaction(Base):
    """Income or expense entry"""

    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    type = Column(String(16), nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="BDT")
    description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    date = Column(Date, nullable=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_template_id = Column(
        UUID(as_uuid=True), ForeignKey("recurring_transactions.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Coupon(Base):
    """Administrator-managed discount code"""

    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(64), nullable=False, unique=True)
    description = Column(Text, nullable=False)
    type = Column(String(16), nullable=False)
    value = Column(Money, nullable=False)
    minimum_amount = Column(Money, nullable=True)
    max_discount_amount = Column(Money, nullable=True)
    max_uses = Column(Integer, nullable=True)
    max_uses_per_user = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String(16), nullable=False, default="public")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    plan_name = Column(String(32), nullable=False, unique=True)
    price_monthly = Column(Money, nullable=False)
    price_yearly = Column(Money, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class SubscriptionPayment(Base):
    """Manually submitted mobile-wallet payment awaiting admin verification"""

    __tablename__ = "subscription_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False)
    payment_method = Column(String(32), nullable=False)
    billing_cycle = Column(String(16), nullable=False)
    transaction_id = Column(String(64), nullable=False, unique=True)
    sender_number = Column(String(20), nullable=False)
    base_amount = Column(Money, nullable=False)
    discount_amount = Column(Money, nullable=False, default=0)
    final_amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="BDT")
    coupon_id = Column(UUID(as_uuid=True), ForeignKey("coupons.id"), nullable=True)
    status = Column(String(16), nullable=False, default="submitted")
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    verified_at = Column(DateTime(timezone=True), nullable=True)

    plan = relationship("SubscriptionPlan")


class UserSubscription(Base):
    """Active plan for a user; extended whenever a payment is approved"""

    __tablename__ = "user_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, unique=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False)
    billing_cycle = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="active")
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
