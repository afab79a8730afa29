"""Geocoding proxy endpoints.

The front end never talks to the provider directly. These endpoints validate
the query, forward it through the shared gateway and pass the provider's JSON
through untouched. Failures are raised as ``GeocodingError`` subclasses and
rendered by the error handler as ``{"error": CODE}`` bodies.
"""

import math
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from geopicker.core.config import settings
from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import InvalidParams
from geopicker.geocoding.gateway import GeocodingGateway
from geopicker.geocoding.models import DEFAULT_SEARCH_LIMIT, Coordinate, SearchOptions

router = APIRouter(prefix="/geocode", tags=["geocode"])
health_router = APIRouter(tags=["health"])
logger = get_logger(__name__)


def get_gateway(request: Request) -> GeocodingGateway:
    """Return the gateway created at startup."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Geocoding gateway is not initialized")
    return gateway


def _parse_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _parse_limit(value: Optional[str]) -> int:
    # Fractional limits are truncated; SearchOptions clamps the result.
    number = _parse_float(value)
    return int(number) if number is not None else DEFAULT_SEARCH_LIMIT


@router.get("/reverse")
async def reverse_geocode(
    lat: Optional[str] = Query(None, description="Latitude in decimal degrees"),
    lng: Optional[str] = Query(None, description="Longitude in decimal degrees"),
    gateway: GeocodingGateway = Depends(get_gateway),
) -> JSONResponse:
    """
    Resolve a coordinate to the provider's address payload.

    ### Errors:
    - **400** `{"error": "INVALID_PARAMS"}` for missing or out-of-range lat/lng
    - **429** `{"error": "RATE_LIMITED"}` when the provider throttles
    - **502** `{"error": "UPSTREAM_ERROR", "status": n}` or `{"error": "FETCH_FAILED"}`
    """
    lat_value, lng_value = _parse_float(lat), _parse_float(lng)
    if lat_value is None or lng_value is None:
        raise InvalidParams(f"Invalid coordinate: lat={lat!r} lng={lng!r}")

    payload = await gateway.fetch_reverse(lat_value, lng_value)
    return JSONResponse(content=payload)


@router.get("/search")
async def search_geocode(
    q: Optional[str] = Query(None, description="Free-text address query"),
    countrycodes: Optional[str] = Query(
        None, description="Comma-separated ISO country codes (default from settings)"
    ),
    limit: Optional[str] = Query(None, description="Maximum results, 1 to 10"),
    lat: Optional[str] = Query(None, description="Bias latitude"),
    lng: Optional[str] = Query(None, description="Bias longitude"),
    gateway: GeocodingGateway = Depends(get_gateway),
) -> JSONResponse:
    """
    Search for addresses matching ``q``, best match first.

    Results are biased toward ``lat``/``lng`` when both are given, without
    excluding results outside that area. ``limit`` is clamped silently.
    """
    bias: Optional[Coordinate] = None
    bias_lat, bias_lng = _parse_float(lat), _parse_float(lng)
    if bias_lat is not None and bias_lng is not None:
        try:
            bias = Coordinate(lat=bias_lat, lng=bias_lng)
        except ValueError:
            logger.debug("search_bias_ignored", lat=lat, lng=lng)

    options = SearchOptions(
        limit=_parse_limit(limit),
        country_codes=countrycodes or None,
        bias=bias,
    )
    payload: list[dict[str, Any]] = await gateway.fetch_search(q, options)
    return JSONResponse(content=payload)


@health_router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Liveness check."""
    gateway = getattr(request.app.state, "gateway", None)
    return {
        "status": "healthy" if gateway is not None else "starting",
        "version": settings.version,
        "geocoder": gateway.base_url if gateway is not None else None,
    }
