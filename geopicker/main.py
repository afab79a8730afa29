"""Main FastAPI application module."""

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from geopicker.api.geocode import health_router, router as geocode_router
from geopicker.core.config import Settings, settings
from geopicker.core.events import create_lifespan
from geopicker.core.logging import configure_logging
from geopicker.middleware.correlation import CorrelationMiddleware
from geopicker.middleware.errors import (
    ErrorHandlingMiddleware,
    register_exception_handlers,
)
from geopicker.middleware.metrics import MetricsMiddleware
from geopicker.middleware.security import SecurityHeadersMiddleware


async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(app_settings: Settings = settings) -> FastAPI:
    """Build the geocoding proxy application."""
    app = FastAPI(
        title=app_settings.app_name,
        description="Geocoding proxy for the checkout location picker",
        version=app_settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=JSONResponse,
        lifespan=create_lifespan(app_settings),
    )

    # Starlette wraps each added middleware around the previous ones, so the
    # error handler added last sees every exception first.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    register_exception_handlers(app)

    app.add_api_route("/metrics", metrics, methods=["GET"], include_in_schema=False)
    app.include_router(health_router)
    app.include_router(geocode_router, prefix=app_settings.api_prefix)
    return app


configure_logging(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
app = create_app()
