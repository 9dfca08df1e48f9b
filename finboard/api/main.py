"""FastAPI application factory"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from finboard.api.middleware import RequestIDMiddleware, MetricsMiddleware
from finboard.api.v1 import coupons, loans, overview, payments, recurring
from finboard.infrastructure.observability.logging import setup_logging
from finboard.config import settings

setup_logging(settings.log_level)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters are client errors (400)"""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Finboard API",
        description="Personal finance backend: loans, recurring transactions, coupons and subscriptions",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added runs first
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(recurring.router, prefix="/v1", tags=["recurring"])
    app.include_router(coupons.router, prefix="/v1", tags=["coupons"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(overview.router, prefix="/v1", tags=["overview"])

    return app


app = create_app()
