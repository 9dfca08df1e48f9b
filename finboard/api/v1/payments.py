"""Subscription payment endpoints - submission and admin verification"""

import uuid
import logging
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from finboard.api.v1.schemas import (
    BulkPaymentStatusRequest,
    BulkPaymentStatusResponse,
    PaymentListResponse,
    PaymentSchema,
    PaymentStatusUpdateRequest,
    PaymentSubmitRequest,
    PaymentSubmitResponse,
)
from finboard.api.dependencies import get_request_id, require_capability
from finboard.domain.coupons import MSG_INVALID, apply_coupon
from finboard.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from finboard.domain.models import RequestContext
from finboard.domain.payments import check_status_transition, extended_period_end, plan_base_amount
from finboard.domain.permissions import Action
from finboard.infrastructure.database.models import SubscriptionPayment, UserSubscription
from finboard.infrastructure.database.repositories import CouponRepository, SubscriptionRepository, to_coupon_rule
from finboard.infrastructure.database.session import get_db
from finboard.infrastructure.observability.logging import log_payment_status_changed
from finboard.infrastructure.observability.metrics import payment_status_counter
from finboard.utils.date_utils import as_utc

router = APIRouter()

submit_payment_access = require_capability(Action.SUBMIT_PAYMENT)
manage_payments = require_capability(Action.MANAGE_PAYMENTS)


def _payment_schema(payment: SubscriptionPayment) -> PaymentSchema:
    return PaymentSchema(
        payment_id=str(payment.id),
        user_id=payment.user_id,
        plan_name=payment.plan.plan_name,
        billing_cycle=payment.billing_cycle,
        payment_method=payment.payment_method,
        transaction_id=payment.transaction_id,
        sender_number=payment.sender_number,
        base_amount=payment.base_amount,
        discount_amount=payment.discount_amount,
        final_amount=payment.final_amount,
        currency=payment.currency,
        coupon_id=str(payment.coupon_id) if payment.coupon_id else None,
        status=payment.status,
        admin_notes=payment.admin_notes,
        rejection_reason=payment.rejection_reason,
        submitted_at=payment.submitted_at,
        verified_at=payment.verified_at,
    )


def _activate_subscription(repo: SubscriptionRepository, payment: SubscriptionPayment, ctx: RequestContext) -> None:
    """Start or extend the payer's subscription by one billing period"""
    subscription = repo.get_subscription(payment.user_id)
    current_end = subscription.end_date if subscription is not None and subscription.status == "active" else None
    end_date = extended_period_end(ctx.now, current_end, payment.billing_cycle)

    if subscription is None:
        subscription = UserSubscription(user_id=payment.user_id, start_date=ctx.now)
    elif current_end is None or as_utc(current_end) <= as_utc(ctx.now):
        subscription.start_date = ctx.now

    subscription.plan_id = payment.plan_id
    subscription.billing_cycle = payment.billing_cycle
    subscription.status = "active"
    subscription.end_date = end_date
    repo.save_subscription(subscription)


def _apply_status(
    repo: SubscriptionRepository,
    coupons: CouponRepository,
    payment: SubscriptionPayment,
    status: str,
    admin_notes: Optional[str],
    rejection_reason: Optional[str],
    ctx: RequestContext,
) -> None:
    """
    Move a payment to verified/approved/rejected.

    Rejection releases the coupon redemption held at submission; approval
    activates the subscription.
    """
    check_status_transition(payment.status, status)

    payment.status = status
    if admin_notes is not None:
        payment.admin_notes = admin_notes

    if status == "rejected":
        payment.rejection_reason = rejection_reason
        if payment.coupon_id is not None:
            coupon = coupons.get_by_id(payment.coupon_id)
            if coupon is not None:
                coupon.used_count = max(coupon.used_count - 1, 0)
    else:
        payment.verified_at = ctx.now

    if status == "approved":
        _activate_subscription(repo, payment, ctx)


@router.post("/subscription/payments", response_model=PaymentSubmitResponse, status_code=201)
def submit_payment(
    request_body: PaymentSubmitRequest,
    request: Request,
    ctx: RequestContext = Depends(submit_payment_access),
    db: Session = Depends(get_db),
):
    """
    Submit a manual mobile-wallet payment for admin verification.

    Flow:
    1. Resolve the plan and compute the base amount for the billing cycle
    2. Reject duplicate transaction IDs
    3. Re-evaluate the coupon under a row lock and hold one redemption
    4. Persist base, discount and final amounts in the same transaction
    """
    request_id = get_request_id(request)
    repo = SubscriptionRepository(db)
    coupons = CouponRepository(db)

    try:
        plan = repo.get_plan_by_name(request_body.plan)
        if plan is None:
            raise InvalidInputError("Invalid subscription plan")

        if repo.transaction_id_exists(request_body.transaction_id):
            raise ConflictError("Transaction ID already exists")

        base_amount = plan_base_amount(plan.price_monthly, plan.price_yearly, request_body.billing_cycle)
        discount_amount = Decimal("0.00")
        final_amount = base_amount
        coupon_id = None

        if request_body.coupon_code:
            coupon = coupons.get_by_code(request_body.coupon_code, lock=True)
            if coupon is None:
                raise InvalidInputError(MSG_INVALID)

            result = apply_coupon(
                to_coupon_rule(coupon),
                base_amount,
                now=ctx.now,
                prior_redemptions_by_user=coupons.count_user_redemptions(coupon.id, ctx.principal.user_id),
                total_redemptions=coupon.used_count,
            )
            if not result.is_valid:
                raise InvalidInputError(result.message)

            coupon.used_count += 1
            coupon_id = coupon.id
            discount_amount = result.discount_amount
            final_amount = result.final_amount

        payment = repo.create_payment(
            user_id=ctx.principal.user_id,
            plan_id=plan.id,
            payment_method=request_body.payment_method,
            billing_cycle=request_body.billing_cycle,
            transaction_id=request_body.transaction_id,
            sender_number=request_body.sender_number,
            base_amount=base_amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
            currency=ctx.currency,
            coupon_id=coupon_id,
            status="submitted",
            notes=f"Upgrade reason: {request_body.upgrade_reason}" if request_body.upgrade_reason else None,
            submitted_at=ctx.now,
        )
        db.commit()

    except InvalidInputError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except IntegrityError:
        # Concurrent submission with the same transaction ID
        db.rollback()
        raise HTTPException(status_code=409, detail="Transaction ID already exists")

    except Exception as e:
        db.rollback()
        logging.error(f"Payment submission error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to submit payment. Please try again.")

    payment_status_counter.labels(status="submitted").inc()
    logging.info(
        "Payment submitted",
        extra={"request_id": request_id, "user_id": ctx.principal.user_id, "payment_id": str(payment.id)},
    )

    return PaymentSubmitResponse(
        payment_id=str(payment.id),
        base_amount=payment.base_amount,
        discount_amount=payment.discount_amount,
        final_amount=payment.final_amount,
        status=payment.status,
        message="Payment submitted successfully. It will be verified within 12-24 hours.",
    )


@router.get("/admin/subscription/payments", response_model=PaymentListResponse)
def list_payments(
    status: Optional[str] = Query(None, description="Filter by status, or 'all'"),
    limit: int = Query(50, gt=0, le=200),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(manage_payments),
    db: Session = Depends(get_db),
):
    repo = SubscriptionRepository(db)
    return PaymentListResponse(
        payments=[_payment_schema(p) for p in repo.get_payments(status, limit, offset)],
        total=repo.count_payments(status),
    )


def _update_statuses(
    payment_ids: List[uuid.UUID],
    status: str,
    admin_notes: Optional[str],
    rejection_reason: Optional[str],
    request_id: str,
    ctx: RequestContext,
    db: Session,
) -> List[SubscriptionPayment]:
    """All-or-nothing status change for one or more payments"""
    repo = SubscriptionRepository(db)
    coupons = CouponRepository(db)

    try:
        payments = repo.get_payments_by_ids(payment_ids)
        found = {p.id for p in payments}
        missing = [str(pid) for pid in payment_ids if pid not in found]
        if missing:
            raise NotFoundError(f"Payments not found: {', '.join(missing)}")

        for payment in payments:
            _apply_status(repo, coupons, payment, status, admin_notes, rejection_reason, ctx)
        db.commit()

    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except InvalidInputError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Payment status update error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to update payment status")

    payment_status_counter.labels(status=status).inc(len(payments))
    log_payment_status_changed(request_id, ctx.principal.user_id, [str(p.id) for p in payments], status)
    return payments


@router.patch("/admin/subscription/payments/{payment_id}", response_model=PaymentSchema)
def update_payment_status(
    payment_id: str,
    request_body: PaymentStatusUpdateRequest,
    request: Request,
    ctx: RequestContext = Depends(manage_payments),
    db: Session = Depends(get_db),
):
    try:
        payment_uuid = uuid.UUID(payment_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payment ID format")

    payments = _update_statuses(
        [payment_uuid],
        request_body.status,
        request_body.admin_notes,
        request_body.rejection_reason,
        get_request_id(request),
        ctx,
        db,
    )
    return _payment_schema(payments[0])


@router.post("/admin/subscription/payments/bulk-status", response_model=BulkPaymentStatusResponse)
def bulk_update_payment_status(
    request_body: BulkPaymentStatusRequest,
    request: Request,
    ctx: RequestContext = Depends(manage_payments),
    db: Session = Depends(get_db),
):
    """Apply one status to many payments; any missing or invalid transition rolls back the batch"""
    payment_ids = list(dict.fromkeys(request_body.payment_ids))
    payments = _update_statuses(
        payment_ids,
        request_body.status,
        request_body.admin_notes,
        request_body.rejection_reason,
        get_request_id(request),
        ctx,
        db,
    )
    return BulkPaymentStatusResponse(updated=len(payments), payments=[_payment_schema(p) for p in payments])
