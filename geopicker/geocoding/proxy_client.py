"""Client for the ``/geocode`` proxy endpoints.

Front ends never call the provider directly; they go through the proxy. This
client speaks that contract and turns the proxy's error bodies back into the
gateway's typed errors, so a picker session behaves the same whichever of the
two it is given.
"""

from typing import Any, Optional

import httpx

from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import (
    ERRORS_BY_CODE,
    InvalidParams,
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


def _status_from_body(body: dict[str, Any], fallback: int) -> int:
    try:
        return int(body.get("status") or fallback)
    except (TypeError, ValueError):
        return fallback


class ProxyGeocodingClient:
    """Reverse/forward lookup through the deployed proxy."""

    def __init__(self, client: httpx.AsyncClient, prefix: str = "/geocode") -> None:
        self._client = client
        self.prefix = prefix.rstrip("/")

    def _raise_for_error(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        code = body.get("error") if isinstance(body, dict) else None
        if code == UpstreamError.code:
            raise UpstreamError(_status_from_body(body, response.status_code))
        error_class = ERRORS_BY_CODE.get(code or "")
        if error_class is not None:
            raise error_class(f"Proxy answered {response.status_code} {code}")
        raise UpstreamError(response.status_code)

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        try:
            response = await self._client.get(f"{self.prefix}/{path}", params=params)
        except httpx.HTTPError as e:
            raise TransportFailure(str(e)) from e
        self._raise_for_error(response)
        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure("Undecodable proxy response") from e

    async def reverse_lookup(self, lat: float, lng: float) -> ResolvedAddress:
        if not is_valid_coordinate(lat, lng):
            raise InvalidParams(f"Invalid coordinate: lat={lat!r} lng={lng!r}")
        payload = await self._get("reverse", {"lat": lat, "lng": lng})
        if not isinstance(payload, dict):
            raise TransportFailure("Unexpected reverse response shape")
        if payload.get("error") and not payload.get("display_name"):
            raise UpstreamError(200, str(payload["error"]))
        return ResolvedAddress.from_payload(Coordinate(lat=lat, lng=lng), payload)

    async def forward_lookup(
        self, query: str, options: Optional[SearchOptions] = None
    ) -> list[SearchCandidate]:
        if len((query or "").strip()) < 2:
            raise InvalidParams("Search query must have at least 2 characters")
        options = options or SearchOptions()
        params: dict[str, Any] = {"q": query.strip(), "limit": options.limit}
        if options.country_codes:
            params["countrycodes"] = options.country_codes
        if options.bias is not None:
            params["lat"] = options.bias.lat
            params["lng"] = options.bias.lng

        payload = await self._get("search", params)
        if not isinstance(payload, list):
            raise TransportFailure("Unexpected search response shape")

        candidates = []
        for entry in payload:
            try:
                candidates.append(SearchCandidate.from_payload(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("search_candidate_skipped", error=str(e))
        return candidates

