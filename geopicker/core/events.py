"""Application startup and shutdown events."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx

from geopicker.core.config import Settings, settings
from geopicker.geocoding.gateway import GeocodingGateway

logger: logging.Logger = logging.getLogger("geopicker.core.events")


def create_http_client(app_settings: Settings) -> httpx.AsyncClient:
    """Create the HTTP client shared by every outbound geocoding call."""
    timeout = app_settings.GEOCODING_TIMEOUT
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        follow_redirects=False,
    )


def create_start_app_handler(
    app: Any, app_settings: Settings = settings
) -> Callable[[], Awaitable[None]]:
    """Create startup event handler.

    Args:
        app: FastAPI application instance
        app_settings: Settings to build the gateway from

    Returns:
        Startup handler function
    """

    async def start_app() -> None:
        client = create_http_client(app_settings)
        try:
            # Fails fast when a strict user agent is required but missing.
            gateway = GeocodingGateway.from_settings(app_settings, client)
        except Exception:
            await client.aclose()
            raise

        app.state.http_client = client
        app.state.gateway = gateway
        logger.info(
            "Application startup complete - "
            f"Geocoder: {gateway.base_url}, "
            f"Default country: {gateway.default_country}"
        )

    return start_app


def create_stop_app_handler(app: Any) -> Callable[[], Awaitable[None]]:
    """Create shutdown event handler.

    Args:
        app: FastAPI application instance

    Returns:
        Shutdown handler function
    """

    async def stop_app() -> None:
        client = getattr(app.state, "http_client", None)
        try:
            if client is not None:
                logger.info("Closing geocoder HTTP client...")
                await client.aclose()
            app.state.gateway = None
            app.state.http_client = None
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
            raise

    return stop_app


def create_lifespan(
    app_settings: Settings = settings,
) -> Callable[[Any], Any]:
    """Wrap the startup and shutdown handlers into a FastAPI lifespan."""

    @asynccontextmanager
    async def lifespan(app: Any) -> AsyncIterator[None]:
        await create_start_app_handler(app, app_settings)()
        try:
            yield
        finally:
            await create_stop_app_handler(app)()

    return lifespan
