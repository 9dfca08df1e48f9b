"""Pydantic schemas for API request/response validation"""

import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from finboard.domain.models import DiscountType, Frequency

BD_MOBILE_PATTERN = re.compile(r"^(\+88)?01[3-9]\d{8}$")


# ---------- Loans ----------


class EMICalculationRequest(BaseModel):
    """Request body for POST /v1/loans/emi/calculate"""

    principal: Decimal = Field(..., gt=0, description="Loan principal")
    annual_rate_percent: Decimal = Field(..., ge=0, description="Nominal annual interest rate in percent")
    term_months: int = Field(..., gt=0, le=600, description="Tenure in months")


class AmortizationRowSchema(BaseModel):
    period: int
    payment: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    remaining_balance: Decimal


class EMICalculationResponse(BaseModel):
    """Response for POST /v1/loans/emi/calculate"""

    monthly_payment: Decimal
    total_amount: Decimal
    total_interest: Decimal
    principal_percentage: Decimal
    interest_percentage: Decimal
    schedule: List[AmortizationRowSchema]


class LoanCreateRequest(BaseModel):
    """Request body for POST /v1/loans"""

    lender: str = Field(..., min_length=1)
    loan_type: Literal["personal", "home", "car", "education", "business", "purchase", "other"] = "personal"
    principal_amount: Decimal = Field(..., gt=0)
    interest_rate: Decimal = Field(..., ge=0)
    tenure_months: int = Field(..., gt=0, le=600)
    start_date: date
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class LoanUpdateRequest(BaseModel):
    """
    Partial update for PATCH /v1/loans/{loan_id}.

    Changing principal_amount, interest_rate or tenure_months re-amortizes the
    unpaid installments; paid installments are kept as recorded.
    """

    lender: Optional[str] = Field(None, min_length=1)
    loan_type: Optional[Literal["personal", "home", "car", "education", "business", "purchase", "other"]] = None
    principal_amount: Optional[Decimal] = Field(None, gt=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0)
    tenure_months: Optional[int] = Field(None, gt=0, le=600)


class LoanResponse(BaseModel):
    loan_id: str
    lender: str
    loan_type: str
    principal_amount: Decimal
    interest_rate: Decimal
    tenure_months: int
    emi_amount: Decimal
    outstanding_amount: Decimal
    currency: str
    start_date: date
    next_due_date: Optional[date] = None
    status: str


class LoanListResponse(BaseModel):
    loans: List[LoanResponse]


class InstallmentSchema(BaseModel):
    """Single installment in an EMI schedule"""

    installment_number: int
    due_date: date
    emi_amount: Decimal
    principal_portion: Decimal
    interest_portion: Decimal
    remaining_balance: Decimal
    status: str = "scheduled"
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None
    days_overdue: Optional[int] = None
    late_fee: Optional[Decimal] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class LoanScheduleResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}/schedule"""

    loan_id: str
    installments: List[InstallmentSchema]


class InstallmentPaymentRequest(BaseModel):
    payment_date: Optional[date] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    late_fee: Decimal = Field(Decimal("0"), ge=0)
    payment_method: Optional[str] = Field(None, min_length=1, max_length=32)
    notes: Optional[str] = None


class InstallmentPaymentResponse(BaseModel):
    installment: InstallmentSchema
    loan: LoanResponse


class EmiOverviewItem(BaseModel):
    """EMI totals for the caller's loans in one currency"""

    currency: str
    total_active_loans: int
    total_outstanding_amount: Decimal
    total_monthly_emi: Decimal
    overdue_payments: int
    overdue_amount: Decimal
    upcoming_payments: int
    next_payment_date: Optional[date] = None
    next_payment_amount: Optional[Decimal] = None
    total_paid_this_month: Decimal
    total_pending_this_month: Decimal


class EmiOverviewResponse(BaseModel):
    """Response for GET /v1/loans/overview"""

    as_of: date
    upcoming_window_days: int
    currencies: List[EmiOverviewItem]


# ---------- Recurring transactions ----------


class TransactionTemplate(BaseModel):
    type: Literal["income", "expense"]
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    description: Optional[str] = None
    category: Optional[str] = None


class RecurringCreateRequest(BaseModel):
    """Request body for POST /v1/recurring"""

    transaction_template: TransactionTemplate
    frequency: Frequency
    interval_value: int = Field(1, gt=0)
    start_date: date
    end_date: Optional[date] = None
    next_execution: Optional[date] = None


class RecurringResponse(BaseModel):
    recurring_id: str
    transaction_template: Dict[str, Any]
    frequency: str
    interval_value: int
    start_date: date
    end_date: Optional[date] = None
    last_executed: Optional[date] = None
    next_execution: date
    is_active: bool


class RecurringListResponse(BaseModel):
    recurring: List[RecurringResponse]


class RecurringToggleRequest(BaseModel):
    is_active: bool


class ExecutionResponse(BaseModel):
    """Result of executing one recurring template"""

    recurring_id: str
    transaction_id: str
    executed_on: date
    next_execution: date
    is_active: bool


class ExecutionError(BaseModel):
    recurring_id: str
    error: str


class ExecuteDueResponse(BaseModel):
    executed: int
    errors: List[ExecutionError]


class UpcomingItem(BaseModel):
    recurring_id: str
    date: date
    type: str
    amount: Decimal
    description: Optional[str] = None


class UpcomingResponse(BaseModel):
    days: int
    items: List[UpcomingItem]


class RecurringStatsResponse(BaseModel):
    total: int
    active: int
    inactive: int
    by_frequency: Dict[str, int]
    total_monthly_amount: Decimal


# ---------- Coupons ----------


class CouponValidateRequest(BaseModel):
    """Request body for POST /v1/coupons/validate"""

    code: str = Field(..., min_length=1, max_length=64)
    base_amount: Decimal = Field(..., ge=0)


class DiscountResultSchema(BaseModel):
    """Response for POST /v1/coupons/validate"""

    is_valid: bool
    discount_amount: Decimal
    final_amount: Decimal
    message: str
    coupon_id: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None


class CouponCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=1)
    type: DiscountType
    value: Decimal = Field(..., ge=0)
    max_uses: Optional[int] = Field(None, gt=0)
    max_uses_per_user: Optional[int] = Field(None, gt=0)
    minimum_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    scope: Literal["public", "private"] = "public"
    is_active: bool = True


class CouponUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are changed"""

    description: Optional[str] = Field(None, min_length=1)
    type: Optional[DiscountType] = None
    value: Optional[Decimal] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, gt=0)
    max_uses_per_user: Optional[int] = Field(None, gt=0)
    minimum_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    scope: Optional[Literal["public", "private"]] = None
    is_active: Optional[bool] = None


class CouponSchema(BaseModel):
    coupon_id: str
    code: str
    description: str
    type: str
    value: Decimal
    minimum_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    max_uses: Optional[int] = None
    max_uses_per_user: Optional[int] = None
    used_count: int
    expires_at: Optional[datetime] = None
    scope: str
    is_active: bool


class CouponListResponse(BaseModel):
    coupons: List[CouponSchema]


# ---------- Subscription payments ----------


class PaymentSubmitRequest(BaseModel):
    """Request body for POST /v1/subscription/payments"""

    plan: str = Field(..., min_length=1)
    billing_cycle: Literal["monthly", "yearly"]
    payment_method: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=6, max_length=64)
    sender_number: str
    coupon_code: Optional[str] = None
    upgrade_reason: Optional[str] = None

    @field_validator("sender_number")
    @classmethod
    def validate_sender_number(cls, value: str) -> str:
        compact = re.sub(r"\s", "", value)
        if not BD_MOBILE_PATTERN.match(compact):
            raise ValueError("Invalid mobile number format")
        return compact


class PaymentSubmitResponse(BaseModel):
    payment_id: str
    base_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    status: str
    message: str


class PaymentSchema(BaseModel):
    payment_id: str
    user_id: str
    plan_name: str
    billing_cycle: str
    payment_method: str
    transaction_id: str
    sender_number: str
    base_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    coupon_id: Optional[str] = None
    status: str
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    submitted_at: datetime
    verified_at: Optional[datetime] = None


class PaymentListResponse(BaseModel):
    payments: List[PaymentSchema]
    total: int


class PaymentStatusUpdateRequest(BaseModel):
    status: Literal["verified", "approved", "rejected"]
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class BulkPaymentStatusRequest(BaseModel):
    payment_ids: List[uuid.UUID] = Field(..., min_length=1, max_length=100)
    status: Literal["verified", "approved", "rejected"]
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class BulkPaymentStatusResponse(BaseModel):
    updated: int
    payments: List[PaymentSchema]


class SubscriptionOverviewResponse(BaseModel):
    """Response for GET /v1/admin/subscription/overview"""

    active_subscriptions: int
    pending_payments: int
    total_revenue: Decimal
    monthly_revenue: Decimal
    coupon_usage: int
    active_coupons: int
    total_plans: int


# ---------- Capabilities ----------


class CapabilitiesResponse(BaseModel):
    user_id: str
    role: str
    capabilities: List[str]
