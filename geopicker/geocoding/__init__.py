"""Geocoding package for the checkout location picker.

This package provides:
- The upstream geocoding gateway (reverse and forward lookup)
- A client for the ``/geocode`` proxy endpoints
- Shared value types and the error taxonomy
"""

from geopicker.geocoding.errors import (
    GeocoderConfigurationError,
    GeocodingError,
    InvalidParams,
    LocationUnavailable,
    RateLimited,
    StaleResponse,
    TransportFailure,
    UpstreamError,
)
from geopicker.geocoding.gateway import GeocodingGateway
from geopicker.geocoding.models import (
    Coordinate,
    ResolvedAddress,
    SearchCandidate,
    SearchOptions,
)
from geopicker.geocoding.proxy_client import ProxyGeocodingClient

__all__ = [
    "Coordinate",
    "GeocoderConfigurationError",
    "GeocodingError",
    "GeocodingGateway",
    "InvalidParams",
    "LocationUnavailable",
    "ProxyGeocodingClient",
    "RateLimited",
    "ResolvedAddress",
    "SearchCandidate",
    "SearchOptions",
    "StaleResponse",
    "TransportFailure",
    "UpstreamError",
]
