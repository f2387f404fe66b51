"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from performup_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from performup_ledger.api.v1 import accounts, counterparties, journal, payments, schedules
from performup_ledger.infrastructure.observability.logging import setup_logging
from performup_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="PerformUp Ledger",
        description="Payment allocation, obligation schedules and append-only accounting journal",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(schedules.router, prefix="/v1", tags=["schedules"])
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(journal.router, prefix="/v1", tags=["journal"])
    app.include_router(counterparties.router, prefix="/v1", tags=["counterparties"])

    return app


app = create_app()
