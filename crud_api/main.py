from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from . import health, users
from .config import Settings, get_settings
from .database import StoreManager
from .errors import register_exception_handlers
from .logging_config import configure_logging, shutdown_logging

# module level so that building several apps (tests) does not re-register them
REQUEST_COUNT = Counter(
    "crud_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
REQUEST_LATENCY = Histogram(
    "crud_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
)


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def create_app(settings: Optional[Settings] = None, store: Optional[StoreManager] = None) -> FastAPI:
    """Build the ASGI application. The database connects in the background after startup."""
    settings = settings or get_settings()
    logger = configure_logging(settings)
    store = store or StoreManager(settings, logger=logging.getLogger("crud_api.database"))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "HTTP server started",
            extra={"context": {"host": settings.HOST, "port": settings.PORT, "service": settings.SERVICE_NAME}},
        )
        store.start()
        try:
            yield
        finally:
            logger.info("Shutting down application")
            await store.stop()
            shutdown_logging()

    app = FastAPI(title=settings.SERVICE_NAME, version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.CORS_ALLOW_ORIGIN],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.perf_counter()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            if settings.METRICS_ENABLED:
                route = _route_label(request)
                try:
                    REQUEST_COUNT.labels(method=request.method, route=route, status=status_code).inc()
                    REQUEST_LATENCY.labels(method=request.method, route=route).observe(time.perf_counter() - start)
                except Exception:
                    logger.debug("Could not update metrics for request")

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        if not settings.METRICS_ENABLED:
            return PlainTextResponse("Metrics disabled", status_code=404)
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(users.router)
    return app


__all__ = ["create_app", "REQUEST_COUNT", "REQUEST_LATENCY"]
