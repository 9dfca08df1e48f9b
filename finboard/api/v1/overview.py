"""Admin dashboard numbers and the caller's capability list"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finboard.api.v1.schemas import CapabilitiesResponse, SubscriptionOverviewResponse
from finboard.api.dependencies import get_request_context, require_capability
from finboard.domain.models import RequestContext
from finboard.domain.permissions import Action, has_capability
from finboard.infrastructure.database.repositories import SubscriptionRepository
from finboard.infrastructure.database.session import get_db
from finboard.utils.date_utils import start_of_month

router = APIRouter()


@router.get("/admin/subscription/overview", response_model=SubscriptionOverviewResponse)
def get_subscription_overview(
    ctx: RequestContext = Depends(require_capability(Action.VIEW_SUBSCRIPTION_OVERVIEW)),
    db: Session = Depends(get_db),
):
    """Revenue counts only approved payments; monthly revenue starts at the first of the current month"""
    overview = SubscriptionRepository(db).get_overview(ctx.now, start_of_month(ctx.now))
    return SubscriptionOverviewResponse(**overview)


@router.get("/me/capabilities", response_model=CapabilitiesResponse)
def get_my_capabilities(ctx: RequestContext = Depends(get_request_context)):
    return CapabilitiesResponse(
        user_id=ctx.principal.user_id,
        role=ctx.principal.role,
        capabilities=[action.value for action in Action if has_capability(ctx.principal.role, action)],
    )
