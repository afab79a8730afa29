"""Error taxonomy for geocoding and geolocation.

Every error the gateway can raise derives from :class:`GeocodingError`, which
knows its wire identifier and the HTTP status the proxy endpoints answer with.
"""

from typing import Any


class GeocodingError(Exception):
    """Base class for geocoding failures."""

    code: str = "GEOCODING_ERROR"
    http_status: int = 502

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body served by the proxy endpoints."""
        return {"error": self.code}


class InvalidParams(GeocodingError):
    """Caller input was malformed; fatal to that call only."""

    code = "INVALID_PARAMS"
    http_status = 400


class RateLimited(GeocodingError):
    """Upstream answered 429. Callers must not retry automatically."""

    code = "RATE_LIMITED"
    http_status = 429


class UpstreamError(GeocodingError):
    """Upstream answered with a non-2xx status other than 429."""

    code = "UPSTREAM_ERROR"
    http_status = 502

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = status
        super().__init__(message or f"Upstream geocoder returned HTTP {status}")

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "status": self.status}


class TransportFailure(GeocodingError):
    """Network, DNS, timeout or undecodable response."""

    code = "FETCH_FAILED"
    http_status = 502


class LocationUnavailable(GeocodingError):
    """Device geolocation failed on every accuracy profile."""

    code = "LOCATION_UNAVAILABLE"
    http_status = 503


class StaleResponse(GeocodingError):
    """A completion whose request token is no longer current.

    Internal only: never surfaced to users, never rendered by the API.
    """

    code = "STALE"

    def __init__(self, token: int, current: int) -> None:
        self.token = token
        self.current = current
        super().__init__(f"Response for token {token} superseded by {current}")


class GeocoderConfigurationError(RuntimeError):
    """Raised at startup when the gateway cannot be configured safely."""


# Wire identifier -> error class, used to map proxy responses back.
ERRORS_BY_CODE: dict[str, type[GeocodingError]] = {
    InvalidParams.code: InvalidParams,
    RateLimited.code: RateLimited,
    TransportFailure.code: TransportFailure,
}
