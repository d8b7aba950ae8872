"""FastAPI application for the collections engine"""
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from collections_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from collections_engine.api.v1 import dunning, states, transitions
from collections_engine.infrastructure.observability.logging import setup_logging
from collections_engine.config import settings

V1_ROUTERS = (
    (states.router, "states"),
    (transitions.router, "transitions"),
    (dunning.router, "dunning"),
)


def create_app() -> FastAPI:
    """Build the app with request tracing, health, metrics and the v1 routers"""
    setup_logging(settings.log_level, settings.service_name)

    app = FastAPI(
        title="Collections Engine",
        description="Collection lifecycle state machine and dunning automation service",
        version="0.1.0",
    )

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router, tag in V1_ROUTERS:
        app.include_router(router, prefix="/v1", tags=[tag])

    return app


app = create_app()
