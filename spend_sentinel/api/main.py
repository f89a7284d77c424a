"""FastAPI application factory"""

from typing import Optional

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from spend_sentinel.api.middleware import RequestIDMiddleware, MetricsMiddleware
from spend_sentinel.api.v1 import alerts, budgets, forecast, mandates, recurring
from spend_sentinel.infrastructure.observability.logging import setup_logging
from spend_sentinel.services.engine import FinanceEngine, build_engine
from spend_sentinel.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app(engine: Optional[FinanceEngine] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    All routes are ``async def`` so engine calls run on the event-loop thread
    one at a time; the engine itself does no locking.
    """
    app = FastAPI(
        title="Spend Sentinel",
        description="Recurring payments, budgets, forecasts and balance alerts",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.engine = engine or build_engine()

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(recurring.router, prefix="/v1", tags=["recurring"])
    app.include_router(mandates.router, prefix="/v1", tags=["mandates"])
    app.include_router(budgets.router, prefix="/v1", tags=["budgets"])
    app.include_router(forecast.router, prefix="/v1", tags=["forecast"])
    app.include_router(alerts.router, prefix="/v1", tags=["alerts"])

    return app


app = create_app()
