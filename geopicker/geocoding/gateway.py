"""Upstream geocoding gateway.

This module is the only place that talks to the external geocoding provider
(OpenStreetMap Nominatim). It:
- Validates coordinates and queries before any outbound call
- Injects the identifying User-Agent, contact email and locale hint
- Maps upstream failures to the typed errors in ``geopicker.geocoding.errors``

There is deliberately no cache, queue or local rate limiter here: the
upstream 429 is the only backpressure signal and it is passed on untouched.
"""

import time
from typing import Any, Optional

import httpx

from geopicker.core.config import Settings
from geopicker.core.logging import get_logger
from geopicker.core.metrics import GEOCODER_LATENCY, GEOCODER_REQUESTS_TOTAL
from geopicker.geocoding.errors import (
    GeocoderConfigurationError,
    InvalidParams,
    RateLimited,
    TransportFailure,
    UpstreamError,
)
from geopicker.geocoding.models import (
    Coordinate,
    ResolvedAddress,
    SearchCandidate,
    SearchOptions,
    is_valid_coordinate,
)

logger = get_logger(__name__)

FALLBACK_USER_AGENT = "geopicker/0.1 (checkout location picker)"
MIN_QUERY_LENGTH = 2


class GeocodingGateway:
    """Stateless forwarder for reverse and forward lookups."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: Optional[str] = None,
        email: Optional[str] = None,
        accept_language: Optional[str] = None,
        default_country: str = "ma",
        timeout: float = 10.0,
        strict_user_agent: bool = False,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: Shared HTTP client; one is created (and owned) if omitted
            base_url: Provider root URL
            user_agent: Identifying client string required by the provider
            email: Optional contact address forwarded as ``email``
            accept_language: Optional locale hint
            default_country: Country restriction used when a search has none
            timeout: Per-request timeout in seconds
            strict_user_agent: Refuse to start without a configured user agent

        Raises:
            GeocoderConfigurationError: If strict and no user agent is set
        """
        if not user_agent:
            if strict_user_agent:
                raise GeocoderConfigurationError(
                    "NOMINATIM_USER_AGENT must be set when "
                    "NOMINATIM_STRICT_USER_AGENT is enabled"
                )
            logger.warning(
                "nominatim_user_agent_missing",
                fallback_user_agent=FALLBACK_USER_AGENT,
            )
            user_agent = FALLBACK_USER_AGENT

        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.email = email
        self.accept_language = accept_language
        self.default_country = default_country
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=timeout / 3)
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "GeocodingGateway":
        """Build a gateway from application settings."""
        return cls(
            client,
            base_url=settings.NOMINATIM_BASE_URL,
            user_agent=settings.NOMINATIM_USER_AGENT,
            email=settings.NOMINATIM_EMAIL,
            accept_language=settings.NOMINATIM_ACCEPT_LANGUAGE,
            default_country=settings.GEOCODING_DEFAULT_COUNTRY,
            timeout=settings.GEOCODING_TIMEOUT,
            strict_user_agent=settings.NOMINATIM_STRICT_USER_AGENT,
        )

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        if self.accept_language:
            headers["Accept-Language"] = self.accept_language
        return headers

    def _common_params(self) -> dict[str, str]:
        params = {"format": "json", "addressdetails": "1"}
        if self.email:
            params["email"] = self.email
        if self.accept_language:
            params["accept-language"] = self.accept_language
        return params

    async def _get(self, operation: str, path: str, params: dict[str, str]) -> Any:
        """Perform one outbound GET and map failures to typed errors."""
        url = f"{self.base_url}/{path}"
        start_time = time.monotonic()
        try:
            response = await self._client.get(
                url, params=params, headers=self.headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            GEOCODER_REQUESTS_TOTAL.labels(
                operation=operation, outcome="transport_error"
            ).inc()
            logger.warning(
                "geocoder_transport_failure", operation=operation, error=str(e)
            )
            raise TransportFailure(str(e)) from e
        finally:
            GEOCODER_LATENCY.labels(operation=operation).observe(
                time.monotonic() - start_time
            )

        if response.status_code == 429:
            GEOCODER_REQUESTS_TOTAL.labels(
                operation=operation, outcome="rate_limited"
            ).inc()
            logger.warning("geocoder_rate_limited", operation=operation)
            raise RateLimited("Upstream geocoder is rate limiting requests")

        if not response.is_success:
            GEOCODER_REQUESTS_TOTAL.labels(
                operation=operation, outcome="upstream_error"
            ).inc()
            logger.warning(
                "geocoder_upstream_error",
                operation=operation,
                status_code=response.status_code,
            )
            raise UpstreamError(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            GEOCODER_REQUESTS_TOTAL.labels(
                operation=operation, outcome="transport_error"
            ).inc()
            raise TransportFailure(f"Undecodable {operation} response") from e

        GEOCODER_REQUESTS_TOTAL.labels(operation=operation, outcome="success").inc()
        return data

    async def fetch_reverse(self, lat: Any, lng: Any) -> dict[str, Any]:
        """Reverse lookup returning the raw provider payload.

        Raises:
            InvalidParams: If lat/lng are not finite numbers in range
            RateLimited: On upstream 429
            UpstreamError: On any other non-2xx upstream status
            TransportFailure: On network failure or undecodable body
        """
        if not is_valid_coordinate(lat, lng):
            raise InvalidParams(f"Invalid coordinate: lat={lat!r} lng={lng!r}")

        params = self._common_params()
        params.update({"lat": str(lat), "lon": str(lng)})
        data = await self._get("reverse", "reverse", params)
        if not isinstance(data, dict):
            raise TransportFailure("Unexpected reverse response shape")
        return data

    async def reverse_lookup(self, lat: Any, lng: Any) -> ResolvedAddress:
        """Resolve a coordinate to a parsed address."""
        payload = await self.fetch_reverse(lat, lng)
        if payload.get("error") and not payload.get("display_name"):
            # Nominatim answers 200 with an error body when nothing is there.
            raise UpstreamError(200, str(payload["error"]))
        coordinate = Coordinate(lat=lat, lng=lng)
        address = ResolvedAddress.from_payload(coordinate, payload)
        logger.debug("reverse_lookup_resolved", lat=lat, lng=lng)
        return address

    async def fetch_search(
        self, query: Optional[str], options: Optional[SearchOptions] = None
    ) -> list[dict[str, Any]]:
        """Forward lookup returning the raw provider payload.

        Raises:
            InvalidParams: If the trimmed query is shorter than 2 characters
            RateLimited: On upstream 429
            UpstreamError: On any other non-2xx upstream status
            TransportFailure: On network failure or undecodable body
        """
        q = (query or "").strip()
        if len(q) < MIN_QUERY_LENGTH:
            raise InvalidParams("Search query must have at least 2 characters")

        options = options or SearchOptions()
        params = self._common_params()
        params.update(
            {
                "q": q,
                "limit": str(options.limit),
                "countrycodes": (options.country_codes or self.default_country)
                .strip()
                .lower(),
            }
        )
        if options.bias is not None:
            params["viewbox"] = options.bias.viewbox()
            params["bounded"] = "0"

        data = await self._get("search", "search", params)
        if not isinstance(data, list):
            raise TransportFailure("Unexpected search response shape")
        return data

    async def forward_lookup(
        self, query: Optional[str], options: Optional[SearchOptions] = None
    ) -> list[SearchCandidate]:
        """Resolve free text to candidate addresses, best match first."""
        candidates: list[SearchCandidate] = []
        for entry in await self.fetch_search(query, options):
            try:
                candidates.append(SearchCandidate.from_payload(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("search_candidate_skipped", error=str(e))
        return candidates

    async def aclose(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()
