"""Dependency injection for FastAPI endpoints"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request

from finboard.config import settings
from finboard.domain.exceptions import IdentityProviderError
from finboard.domain.models import Principal, RequestContext
from finboard.domain.permissions import Action, has_capability
from finboard.infrastructure.clients.identity import IdentityClient
from finboard.infrastructure.observability.metrics import identity_failures_counter

Clock = Callable[[], datetime]


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_identity_client() -> IdentityClient:
    """Provide identity provider client instance"""
    return IdentityClient()


def get_clock() -> Clock:
    """Provide the wall clock; tests override this to pin 'now'"""
    return lambda: datetime.now(timezone.utc)


async def get_current_principal(
    request: Request,
    authorization: Optional[str] = Header(None),
    identity_client: IdentityClient = Depends(get_identity_client),
) -> Principal:
    """Resolve the bearer token into a principal, or fail with 401/503"""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        principal = await identity_client.get_principal(token.strip())
    except IdentityProviderError as e:
        identity_failures_counter.inc()
        logging.error(f"Identity provider error: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=503, detail="Identity service unavailable")

    if principal is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return principal


def get_request_context(
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    x_currency: Optional[str] = Header(None),
) -> RequestContext:
    """Per-request context: who is calling, in which currency, and when"""
    currency = (x_currency or settings.default_currency).strip().upper()
    return RequestContext(principal=principal, currency=currency, now=clock())


def require_capability(action: Action) -> Callable[..., RequestContext]:
    """Build a dependency that rejects principals lacking the capability with 403"""

    def dependency(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not has_capability(ctx.principal.role, action):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return ctx

    return dependency
