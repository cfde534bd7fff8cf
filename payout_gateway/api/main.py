"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from payout_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from payout_gateway.api.v1 import batches, payouts, transfers
from payout_gateway.infrastructure.observability.logging import setup_logging
from payout_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Payout Gateway",
        description="Weekly payout transfers and disbursement batches",
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
    app.include_router(transfers.router, prefix="/v1", tags=["transfers"])
    app.include_router(batches.router, prefix="/v1", tags=["batches"])
    app.include_router(payouts.router, prefix="/v1", tags=["payouts"])

    return app


app = create_app()
