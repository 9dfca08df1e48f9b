"""Recurring transaction endpoints - templates, execution, upcoming and statistics"""

import uuid
import logging
from datetime import timedelta
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from finboard.api.v1.schemas import (
    ExecuteDueResponse,
    ExecutionError,
    ExecutionResponse,
    RecurringCreateRequest,
    RecurringListResponse,
    RecurringResponse,
    RecurringStatsResponse,
    RecurringToggleRequest,
    UpcomingItem,
    UpcomingResponse,
)
from finboard.api.dependencies import get_request_id, require_capability
from finboard.config import settings
from finboard.domain.amortization import to_decimal
from finboard.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from finboard.domain.models import RecurringTemplate, RequestContext
from finboard.domain.permissions import Action
from finboard.domain.recurrence import next_execution_date, occurrences_between, summarize_recurring
from finboard.infrastructure.database.models import RecurringTransaction, Transaction
from finboard.infrastructure.database.repositories import RecurringRepository
from finboard.infrastructure.database.session import get_db
from finboard.infrastructure.observability.logging import log_recurring_executed
from finboard.infrastructure.observability.metrics import record_recurring_execution

router = APIRouter()

own_finances = require_capability(Action.MANAGE_OWN_FINANCES)


def _recurring_response(recurring: RecurringTransaction) -> RecurringResponse:
    return RecurringResponse(
        recurring_id=str(recurring.id),
        transaction_template=recurring.transaction_template,
        frequency=recurring.frequency,
        interval_value=recurring.interval_value,
        start_date=recurring.start_date,
        end_date=recurring.end_date,
        last_executed=recurring.last_executed,
        next_execution=recurring.next_execution,
        is_active=recurring.is_active,
    )


def _parse_recurring_id(recurring_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(recurring_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid recurring transaction ID format")


def execute_template(
    repo: RecurringRepository,
    recurring: RecurringTransaction,
    ctx: RequestContext,
) -> Transaction:
    """
    Materialize the template's next occurrence.

    The new transaction is dated next_execution. The template then records
    last_executed, advances next_execution by one step, and deactivates itself
    once next_execution moves past end_date. Everything that can fail is
    computed before anything is written.
    """
    if not recurring.is_active:
        raise ConflictError("Recurring transaction is not active")

    template = recurring.transaction_template or {}
    if "type" not in template or "amount" not in template:
        raise InvalidInputError("Recurring template is missing type or amount")
    if to_decimal(template["amount"], "amount") <= 0:
        raise InvalidInputError("Recurring template amount must be positive")

    executed_on = recurring.next_execution
    following = next_execution_date(executed_on, recurring.frequency, recurring.interval_value)

    transaction = repo.create_transaction(
        user_id=recurring.user_id,
        template=template,
        on_date=executed_on,
        recurring_id=recurring.id,
        default_currency=ctx.currency,
    )

    recurring.last_executed = executed_on
    recurring.next_execution = following
    if recurring.end_date is not None and following > recurring.end_date:
        recurring.is_active = False

    return transaction


@router.post("/recurring", response_model=RecurringResponse, status_code=201)
def create_recurring(
    request_body: RecurringCreateRequest,
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """Create a recurring template; the first execution defaults to start_date"""
    if request_body.end_date is not None and request_body.end_date < request_body.start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    next_execution = request_body.next_execution or request_body.start_date
    if next_execution < request_body.start_date:
        raise HTTPException(status_code=400, detail="next_execution must not be before start_date")
    if request_body.end_date is not None and next_execution > request_body.end_date:
        raise HTTPException(status_code=400, detail="next_execution must not be after end_date")

    try:
        recurring = RecurringRepository(db).create_template(
            user_id=ctx.principal.user_id,
            transaction_template=request_body.transaction_template.model_dump(mode="json", exclude_none=True),
            frequency=request_body.frequency.value,
            interval_value=request_body.interval_value,
            start_date=request_body.start_date,
            end_date=request_body.end_date,
            next_execution=next_execution,
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _recurring_response(recurring)


@router.get("/recurring", response_model=RecurringListResponse)
def list_recurring(ctx: RequestContext = Depends(own_finances), db: Session = Depends(get_db)):
    templates = RecurringRepository(db).get_templates_by_user(ctx.principal.user_id)
    return RecurringListResponse(recurring=[_recurring_response(r) for r in templates])


@router.patch("/recurring/{recurring_id}", response_model=RecurringResponse)
def toggle_recurring(
    recurring_id: str,
    request_body: RecurringToggleRequest,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """Pause or resume a template"""
    repo = RecurringRepository(db)
    recurring = repo.get_template(_parse_recurring_id(recurring_id), ctx.principal.user_id)
    if not recurring:
        raise HTTPException(status_code=404, detail="Recurring transaction not found")

    recurring.is_active = request_body.is_active
    db.commit()
    return _recurring_response(recurring)


@router.post("/recurring/{recurring_id}/execute", response_model=ExecutionResponse)
def execute_recurring(
    recurring_id: str,
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """Execute one template now, regardless of whether it is due"""
    request_id = get_request_id(request)
    recurring_uuid = _parse_recurring_id(recurring_id)
    repo = RecurringRepository(db)

    try:
        recurring = repo.get_template(recurring_uuid, ctx.principal.user_id)
        if not recurring:
            raise NotFoundError("Recurring transaction not found")

        transaction = execute_template(repo, recurring, ctx)
        db.commit()

    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except InvalidInputError as e:
        db.rollback()
        record_recurring_execution(False)
        logging.error(f"Malformed recurring template: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        db.rollback()
        record_recurring_execution(False)
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    record_recurring_execution(True)
    log_recurring_executed(
        request_id,
        ctx.principal.user_id,
        str(recurring.id),
        transaction.date.isoformat(),
        recurring.next_execution.isoformat(),
    )

    return ExecutionResponse(
        recurring_id=str(recurring.id),
        transaction_id=str(transaction.id),
        executed_on=transaction.date,
        next_execution=recurring.next_execution,
        is_active=recurring.is_active,
    )


@router.post("/recurring/execute-due", response_model=ExecuteDueResponse)
def execute_due_recurring(
    request: Request,
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """
    Execute every active template due on or before today.

    A failing template is logged and reported in errors; the others still run.
    """
    request_id = get_request_id(request)
    repo = RecurringRepository(db)
    executed = 0
    errors = []

    for recurring in repo.get_due_templates(ctx.principal.user_id, ctx.today):
        try:
            transaction = execute_template(repo, recurring, ctx)
        except (InvalidInputError, ConflictError) as e:
            record_recurring_execution(False)
            logging.error(
                f"Failed to execute recurring transaction {recurring.id}: {e}",
                extra={"request_id": request_id},
            )
            errors.append(ExecutionError(recurring_id=str(recurring.id), error=str(e)))
            continue

        executed += 1
        record_recurring_execution(True)
        log_recurring_executed(
            request_id,
            ctx.principal.user_id,
            str(recurring.id),
            transaction.date.isoformat(),
            recurring.next_execution.isoformat(),
        )

    db.commit()
    return ExecuteDueResponse(executed=executed, errors=errors)


@router.get("/recurring/upcoming", response_model=UpcomingResponse)
def get_upcoming_recurring(
    days: int = Query(settings.upcoming_window_days, gt=0, le=366),
    ctx: RequestContext = Depends(own_finances),
    db: Session = Depends(get_db),
):
    """Every scheduled occurrence of active templates within the next N days"""
    until = ctx.today + timedelta(days=days)
    items = []

    for recurring in RecurringRepository(db).get_active_templates_until(ctx.principal.user_id, until):
        template = recurring.transaction_template or {}
        try:
            dates = occurrences_between(
                recurring.next_execution,
                recurring.frequency,
                recurring.interval_value,
                until,
                end_date=recurring.end_date,
            )
        except InvalidInputError as e:
            logging.warning(f"Skipping malformed recurring template {recurring.id}: {e}")
            continue

        items.extend(
            UpcomingItem(
                recurring_id=str(recurring.id),
                date=occurrence,
                type=template.get("type", ""),
                amount=Decimal(str(template.get("amount", 0))),
                description=template.get("description"),
            )
            for occurrence in dates
        )

    items.sort(key=lambda item: item.date)
    return UpcomingResponse(days=days, items=items)


@router.get("/recurring/stats", response_model=RecurringStatsResponse)
def get_recurring_stats(ctx: RequestContext = Depends(own_finances), db: Session = Depends(get_db)):
    templates = RecurringRepository(db).get_templates_by_user(ctx.principal.user_id)
    stats = summarize_recurring(
        RecurringTemplate(
            frequency=r.frequency,
            is_active=r.is_active,
            amount=Decimal(str((r.transaction_template or {}).get("amount", 0))),
            transaction_type=(r.transaction_template or {}).get("type", ""),
        )
        for r in templates
    )

    return RecurringStatsResponse(
        total=stats.total,
        active=stats.active,
        inactive=stats.inactive,
        by_frequency=stats.by_frequency,
        total_monthly_amount=stats.total_monthly_amount,
    )
