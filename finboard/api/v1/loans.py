"""Loan/EMI endpoints - calculator, persisted schedules, restructuring, installment payments and overview"""

import time
import uuid
import logging
from datetime import timedelta
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from finboard.api.v1.schemas import (
    AmortizationRowSchema,
    EMICalculationRequest,
    EMICalculationResponse,
    EmiOverviewItem,
    EmiOverviewResponse,
    InstallmentPaymentRequest,
    InstallmentPaymentResponse,
    InstallmentSchema,
    LoanCreateRequest,
    LoanListResponse,
    LoanResponse,
    LoanScheduleResponse,
    LoanUpdateRequest,
)
from finboard.api.dependencies import get_request_id, require_capability
from finboard.config import settings
from finboard.domain.amortization import calculate_overdue_days, compute_amortization_schedule, to_money
from finboard.domain.exceptions import ConflictError, InvalidInputError, NotFoundError, UnexpectedComputationError
from finboard.domain.models import RequestContext
from finboard.domain.permissions import Action
from finboard.infrastructure.database.models import EmiSchedule, Loan
from finboard.infrastructure.database.repositories import LoanRepository
from finboard.infrastructure.database.session import get_db
from finboard.infrastructure.observability.logging import log_schedule_computed
from finboard.infrastructure.observability.metrics import schedule_counter
from finboard.utils.date_utils import add_months

router = APIRouter()

own_finances = require_capability(Action.MANAGE_OWN_FINANCES)


def _loan_response(loan: Loan) -> LoanResponse:
    return LoanResponse(
        loan_id=str(loan.id),
        lender=loan.lender,
        loan_type=loan.loan_type,
        principal_amount=loan.principal_amount,
        interest_rate=loan.interest_rate,
        tenure_months=loan.tenure_months,
        emi_amount=loan.emi_amount,
        outstanding_amount=loan.outstanding_amount,
        currency=loan.currency,
        start_date=loan.start_date,
        next_due_date=loan.next_due_date,
        status=loan.status,
    )


def _installment_schema(inst: EmiSchedule) -> InstallmentSchema:
    return InstallmentSchema(
        installment_number=inst.installment_number,
        due_date=inst.due_date,
        emi_amount=inst.emi_amount,
        principal_portion=inst.principal_portion,
        interest_portion=inst.interest_portion,
        remaining_balance=inst.remaining_balance,
        status=inst.status,
        paid_date=inst.paid_date,
        paid_amount=inst.paid_amount,
        days_overdue=inst.days_overdue,
        late_fee=inst.late_fee,
        payment_method=inst.payment_method,
        notes=inst.notes,
    )


def _parse_loan_id(loan_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(loan_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid loan ID format")


def restructure_loan(repo: LoanRepository, loan: Loan, principal_amount, interest_rate, tenure_months) -> None:
    """
    Re-amortize a loan under new terms.

    Paid installments stay as recorded. What is left of the new principal after
    the principal already repaid is spread over the installment numbers the new
    tenure leaves unpaid, at the new rate; emi_amount, outstanding_amount and
    next_due_date follow the rebuilt rows.
    """
    if loan.status != "active":
        raise ConflictError("Only active loans can be restructured")

    paid = [inst for inst in loan.schedules if inst.status == "paid"]
    paid_numbers = {inst.installment_number for inst in paid}
    if paid_numbers and max(paid_numbers) > tenure_months:
        raise InvalidInputError("tenure_months must cover the installments already paid")

    unpaid_numbers = [n for n in range(1, tenure_months + 1) if n not in paid_numbers]
    if not unpaid_numbers:
        raise InvalidInputError("tenure_months must leave at least one unpaid installment")

    principal_amount = to_money(principal_amount)
    repaid = sum((inst.principal_portion for inst in paid), Decimal("0.00"))
    if principal_amount <= repaid:
        raise InvalidInputError("principal_amount must exceed the principal already repaid")

    schedule = compute_amortization_schedule(principal_amount - repaid, interest_rate, len(unpaid_numbers))
    repo.replace_unpaid_installments(loan, schedule, unpaid_numbers)

    loan.principal_amount = principal_amount
    loan.interest_rate = interest_rate
    loan.tenure_months = tenure_months
    loan.emi_amount = schedule.monthly_payment
    loan.outstanding_amount = schedule.principal
    loan.next_due_date = add_months(loan.start_date, unpaid_numbers[0] - 1)


@router.post("/loans/emi/calculate", response_model=EMICalculationResponse)
def calculate_emi_schedule(request_body: EMICalculationRequest, request: Request):
    """
    Stateless EMI calculator.

    Returns the monthly payment, totals, and the full amortization schedule
    without persisting anything.
    """
    try:
        schedule = compute_amortization_schedule(
            request_body.principal,
            request_body.annual_rate_percent,
            request_body.term_months,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnexpectedComputationError as e:
        logging.error(f"EMI computation failed: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Internal server error")

    schedule_counter.labels(persisted="false").inc()

    return EMICalculationResponse(
        monthly_payment=schedule.monthly_payment,
        total_amount=schedule.total_amount,
        total_interest=schedule.total_interest,
        principal_percentage=schedule.principal_percentage,
        interest_percentage=schedule.interest_percentage,
        schedule=[
            AmortizationRowSchema(
                period=row.period,
                payment=row.payment,
                interest_portion=row.interest_portion,
                principal_portion=row.principal_portion,
                remaining_balance=row.remaining_balance,
            )
            for row in schedule.rows
        ],
    )


@router.post("/loans", response_model=LoanResponse, status_code=201)
def create_loan(
    request_body: LoanCreateRequest,
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """
    Create a loan and persist its amortization schedule.

    Flow:
    1. Compute the schedule from principal, rate and tenure
    2. Persist the loan with EMI amount and full outstanding balance
    3. Persist one schedule row per month, first due on start_date
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        schedule = compute_amortization_schedule(
            request_body.principal_amount,
            request_body.interest_rate,
            request_body.tenure_months,
        )
        loan = LoanRepository(db).create_loan(
            user_id=ctx.principal.user_id,
            lender=request_body.lender,
            loan_type=request_body.loan_type,
            currency=(request_body.currency or ctx.currency).upper(),
            interest_rate=request_body.interest_rate,
            start_date=request_body.start_date,
            schedule=schedule,
        )
        db.commit()

    except InvalidInputError as e:
        db.rollback()
        logging.warning(f"Invalid loan terms: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    schedule_counter.labels(persisted="true").inc()
    log_schedule_computed(
        request_id,
        ctx.principal.user_id,
        str(schedule.principal),
        request_body.tenure_months,
        (time.time() - start_time) * 1000,
    )

    return _loan_response(loan)


@router.get("/loans", response_model=LoanListResponse)
def list_loans(ctx: RequestContext = Depends(own_finances), db: Session = Depends(get_db)):
    loans = LoanRepository(db).get_loans_by_user(ctx.principal.user_id)
    return LoanListResponse(loans=[_loan_response(loan) for loan in loans])


@router.get("/loans/overview", response_model=EmiOverviewResponse)
def get_emi_overview(
    days: int = Query(settings.upcoming_window_days, gt=0, le=366),
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """
    EMI dashboard figures per currency: active loans, outstanding balance,
    monthly EMI, overdue and upcoming installments, the next payment, and what
    was paid and is still pending this month.
    """
    items = LoanRepository(db).get_emi_overview(
        ctx.principal.user_id,
        today=ctx.today,
        upcoming_until=ctx.today + timedelta(days=days),
    )
    return EmiOverviewResponse(
        as_of=ctx.today,
        upcoming_window_days=days,
        currencies=[EmiOverviewItem(**item) for item in items],
    )


@router.get("/loans/{loan_id}/schedule", response_model=LoanScheduleResponse)
def get_loan_schedule(
    loan_id: str,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """Persisted EMI schedule with payment status per installment"""
    loan = LoanRepository(db).get_loan(_parse_loan_id(loan_id), ctx.principal.user_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")

    return LoanScheduleResponse(
        loan_id=str(loan.id),
        installments=[_installment_schema(inst) for inst in loan.schedules],
    )


@router.patch("/loans/{loan_id}", response_model=LoanResponse)
def update_loan(
    loan_id: str,
    request_body: LoanUpdateRequest,
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """
    Partial update of a loan.

    lender and loan_type are plain edits. A change to principal_amount,
    interest_rate or tenure_months recomputes emi_amount and rebuilds the
    unpaid schedule rows.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    loan_uuid = _parse_loan_id(loan_id)
    repo = LoanRepository(db)
    restructured = False

    try:
        loan = repo.get_loan(loan_uuid, ctx.principal.user_id)
        if not loan:
            raise NotFoundError("Loan not found")

        changes = {k: v for k, v in request_body.model_dump(exclude_unset=True).items() if v is not None}
        if "lender" in changes:
            loan.lender = changes["lender"]
        if "loan_type" in changes:
            loan.loan_type = changes["loan_type"]

        principal_amount = changes.get("principal_amount", loan.principal_amount)
        interest_rate = changes.get("interest_rate", loan.interest_rate)
        tenure_months = changes.get("tenure_months", loan.tenure_months)
        if (
            principal_amount != loan.principal_amount
            or interest_rate != loan.interest_rate
            or tenure_months != loan.tenure_months
        ):
            restructure_loan(repo, loan, principal_amount, interest_rate, tenure_months)
            restructured = True

        db.commit()

    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except InvalidInputError as e:
        db.rollback()
        logging.warning(f"Invalid loan terms: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if restructured:
        schedule_counter.labels(persisted="true").inc()
        log_schedule_computed(
            request_id,
            ctx.principal.user_id,
            str(loan.principal_amount),
            loan.tenure_months,
            (time.time() - start_time) * 1000,
        )

    return _loan_response(loan)


@router.delete("/loans/{loan_id}", status_code=204)
def delete_loan(
    loan_id: str,
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """Delete a loan together with its schedule"""
    repo = LoanRepository(db)
    loan = repo.get_loan(_parse_loan_id(loan_id), ctx.principal.user_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")

    repo.delete_loan(loan)
    db.commit()
    logging.info("Loan deleted", extra={"request_id": get_request_id(request), "user_id": ctx.principal.user_id, "loan_id": loan_id})


@router.post(
    "/loans/{loan_id}/installments/{installment_number}/pay",
    response_model=InstallmentPaymentResponse,
)
def pay_installment(
    loan_id: str,
    installment_number: int,
    request_body: InstallmentPaymentRequest,
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """
    Mark one EMI installment as paid.

    Records the payment date, days overdue, late fee, payment method and notes.
    The outstanding balance drops by the installment's principal portion,
    next_due_date moves to the next unpaid installment, and the loan completes
    once nothing is left unpaid.
    """
    request_id = get_request_id(request)
    loan_uuid = _parse_loan_id(loan_id)
    repo = LoanRepository(db)

    try:
        loan = repo.get_loan(loan_uuid, ctx.principal.user_id)
        if not loan:
            raise NotFoundError("Loan not found")

        installment = repo.get_installment(loan.id, installment_number)
        if not installment:
            raise NotFoundError("Installment not found")
        if installment.status == "paid":
            raise ConflictError("Installment already paid")

        paid_on = request_body.payment_date or ctx.today
        installment.status = "paid"
        installment.paid_date = paid_on
        installment.paid_amount = to_money(request_body.amount or installment.emi_amount)
        installment.days_overdue = calculate_overdue_days(installment.due_date, paid_on)
        installment.late_fee = to_money(request_body.late_fee)
        installment.payment_method = request_body.payment_method
        installment.notes = request_body.notes

        loan.outstanding_amount = max(to_money(loan.outstanding_amount - installment.principal_portion), Decimal("0.00"))
        db.flush()

        next_unpaid = repo.next_unpaid_installment(loan.id)
        if next_unpaid is None:
            loan.status = "completed"
            loan.next_due_date = None
            loan.outstanding_amount = Decimal("0.00")
        else:
            loan.next_due_date = next_unpaid.due_date

        db.commit()

    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return InstallmentPaymentResponse(
        installment=_installment_schema(installment),
        loan=_loan_response(loan),
    )
