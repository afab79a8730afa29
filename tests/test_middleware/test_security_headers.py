"""Tests for security headers middleware."""

import pytest
from fastapi import FastAPI, Response
from httpx import ASGITransport, AsyncClient

from geopicker.middleware.security import (
    DEFAULT_SECURITY_HEADERS,
    SecurityHeadersMiddleware,
)


@pytest.mark.asyncio
async def test_headers_on_every_response(test_app_async_client: AsyncClient) -> None:
    for path in ("/health", "/geocode/reverse"):
        response = await test_app_async_client.get(path)

        for name, value in DEFAULT_SECURITY_HEADERS.items():
            assert response.headers[name] == value


@pytest.mark.asyncio
async def test_handler_cache_control_is_kept() -> None:
    """Test a handler's own Cache-Control wins over the default."""
    app = FastAPI()

    @app.get("/cached")
    async def cached() -> Response:
        return Response("ok", headers={"Cache-Control": "max-age=60"})

    app.add_middleware(SecurityHeadersMiddleware)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/cached")

    assert response.headers["Cache-Control"] == "max-age=60"
    assert response.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_cors_preflight_allows_configured_origin(
    test_app_async_client: AsyncClient,
) -> None:
    response = await test_app_async_client.options(
        "/geocode/search",
        headers={
            "Origin": "http://localhost:8000",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:8000"
