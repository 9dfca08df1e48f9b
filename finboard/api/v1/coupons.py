"""Coupon endpoints - user validation and admin management"""

import uuid
import logging
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from finboard.api.v1.schemas import (
    CouponCreateRequest,
    CouponListResponse,
    CouponSchema,
    CouponUpdateRequest,
    CouponValidateRequest,
    DiscountResultSchema,
)
from finboard.api.dependencies import get_request_context, get_request_id, require_capability
from finboard.domain.amortization import to_money
from finboard.domain.coupons import MSG_INVALID, apply_coupon, validate_rule
from finboard.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from finboard.domain.models import CouponRule, DiscountType, RequestContext
from finboard.domain.permissions import Action
from finboard.infrastructure.database.models import Coupon
from finboard.infrastructure.database.repositories import CouponRepository, to_coupon_rule
from finboard.infrastructure.database.session import get_db
from finboard.infrastructure.observability.logging import log_coupon_evaluated
from finboard.infrastructure.observability.metrics import coupon_evaluation_counter, record_coupon_evaluation

router = APIRouter()

manage_coupons = require_capability(Action.MANAGE_COUPONS)


def _coupon_schema(coupon: Coupon) -> CouponSchema:
    return CouponSchema(
        coupon_id=str(coupon.id),
        code=coupon.code,
        description=coupon.description,
        type=coupon.type,
        value=coupon.value,
        minimum_amount=coupon.minimum_amount,
        max_discount_amount=coupon.max_discount_amount,
        max_uses=coupon.max_uses,
        max_uses_per_user=coupon.max_uses_per_user,
        used_count=coupon.used_count,
        expires_at=coupon.expires_at,
        scope=coupon.scope,
        is_active=coupon.is_active,
    )


def _parse_coupon_id(coupon_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(coupon_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid coupon ID format")


def _check_rule(rule_type: str, value: Decimal, max_discount_amount: Decimal | None) -> None:
    """Reject rules the evaluator would consider malformed before they are stored"""
    validate_rule(CouponRule(type=rule_type, value=value, max_discount_amount=max_discount_amount))


@router.post("/coupons/validate", response_model=DiscountResultSchema)
def validate_coupon(
    request_body: CouponValidateRequest,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Check a coupon code against a base amount for the calling user.

    Invalid, expired or exhausted coupons return 200 with is_valid=false and a
    message to show verbatim.
    """
    request_id = get_request_id(request)
    repo = CouponRepository(db)
    coupon = repo.get_by_code(request_body.code)

    if coupon is None:
        coupon_evaluation_counter.labels(outcome="not_found").inc()
        log_coupon_evaluated(request_id, ctx.principal.user_id, request_body.code, False, MSG_INVALID)
        return DiscountResultSchema(
            is_valid=False,
            discount_amount=Decimal("0.00"),
            final_amount=to_money(request_body.base_amount),
            message=MSG_INVALID,
        )

    try:
        result = apply_coupon(
            to_coupon_rule(coupon),
            request_body.base_amount,
            now=ctx.now,
            prior_redemptions_by_user=repo.count_user_redemptions(coupon.id, ctx.principal.user_id),
            total_redemptions=coupon.used_count,
        )
    except (InvalidInputError, ValueError) as e:
        logging.error(f"Malformed coupon {coupon.code}: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    record_coupon_evaluation(result.is_valid)
    log_coupon_evaluated(request_id, ctx.principal.user_id, coupon.code, result.is_valid, result.message)

    return DiscountResultSchema(
        is_valid=result.is_valid,
        discount_amount=result.discount_amount,
        final_amount=result.final_amount,
        message=result.message,
        coupon_id=str(coupon.id) if result.is_valid else None,
        discount_type=coupon.type if result.is_valid else None,
        discount_value=coupon.value if result.is_valid else None,
    )


@router.get("/admin/coupons", response_model=CouponListResponse)
def list_coupons(ctx: RequestContext = Depends(manage_coupons), db: Session = Depends(get_db)):
    return CouponListResponse(coupons=[_coupon_schema(c) for c in CouponRepository(db).get_all()])


@router.post("/admin/coupons", response_model=CouponSchema, status_code=201)
def create_coupon(
    request_body: CouponCreateRequest,
    request: Request,
    ctx: RequestContext = Depends(manage_coupons),
    db: Session = Depends(get_db),
):
    """Create a coupon; codes are stored upper-case and must be unique"""
    request_id = get_request_id(request)
    repo = CouponRepository(db)

    try:
        fields = request_body.model_dump()
        fields["type"] = request_body.type.value
        _check_rule(fields["type"], fields["value"], fields["max_discount_amount"])

        if repo.get_by_code(request_body.code) is not None:
            raise ConflictError("Coupon code already exists")

        coupon = repo.create_coupon(**fields)
        db.commit()

    except InvalidInputError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except (ConflictError, IntegrityError):
        db.rollback()
        raise HTTPException(status_code=409, detail="Coupon code already exists")

    except Exception as e:
        db.rollback()
        logging.error(f"Admin coupon creation error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to create coupon")

    logging.info("Coupon created", extra={"request_id": request_id, "coupon_code": coupon.code, "admin_id": ctx.principal.user_id})
    return _coupon_schema(coupon)


@router.patch("/admin/coupons/{coupon_id}", response_model=CouponSchema)
def update_coupon(
    coupon_id: str,
    request_body: CouponUpdateRequest,
    request: Request,
    ctx: RequestContext = Depends(manage_coupons),
    db: Session = Depends(get_db),
):
    """Partial update; fields absent from the body keep their stored values"""
    request_id = get_request_id(request)
    coupon_uuid = _parse_coupon_id(coupon_id)
    repo = CouponRepository(db)

    try:
        coupon = repo.get_by_id(coupon_uuid)
        if coupon is None:
            raise NotFoundError("Coupon not found")

        changes = request_body.model_dump(exclude_unset=True)
        # Explicit nulls only clear the optional limits
        for required in ("description", "type", "value", "scope", "is_active"):
            if required in changes and changes[required] is None:
                del changes[required]
        if "type" in changes:
            changes["type"] = DiscountType(changes["type"]).value
        _check_rule(
            changes.get("type", coupon.type),
            changes.get("value", coupon.value),
            changes.get("max_discount_amount", coupon.max_discount_amount),
        )

        coupon = repo.update_coupon(coupon, changes)
        db.commit()

    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except InvalidInputError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Admin coupon update error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to update coupon")

    return _coupon_schema(coupon)


@router.delete("/admin/coupons/{coupon_id}", status_code=204)
def delete_coupon(
    coupon_id: str,
    request: Request,
    ctx: RequestContext = Depends(manage_coupons),
    db: Session = Depends(get_db),
):
    """Delete an unused coupon; coupons referenced by payments must be deactivated instead"""
    repo = CouponRepository(db)
    coupon = repo.get_by_id(_parse_coupon_id(coupon_id))
    if coupon is None:
        raise HTTPException(status_code=404, detail="Coupon not found")
    if repo.is_used(coupon.id):
        raise HTTPException(status_code=409, detail="Cannot delete coupon that has been used in payments")

    repo.delete_coupon(coupon)
    db.commit()
