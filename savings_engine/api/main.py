"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from savings_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from savings_engine.api.v1 import balances, deposits, loans, plans, subscriptions, withdrawals
from savings_engine.infrastructure.observability.logging import setup_logging
from savings_engine.config import settings

setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Savings Engine",
        description="Savings plan rules, balance ledger and wallet-backed loans",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # last added = first executed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(plans.router, prefix="/v1", tags=["plans"])
    app.include_router(subscriptions.router, prefix="/v1", tags=["subscriptions"])
    app.include_router(deposits.router, prefix="/v1", tags=["deposits"])
    app.include_router(withdrawals.router, prefix="/v1", tags=["withdrawals"])
    app.include_router(balances.router, prefix="/v1", tags=["balances"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])

    return app


app = create_app()
