"""Device geolocation with an accuracy fallback chain."""

import asyncio
import ipaddress
from enum import Enum
from typing import Optional, Protocol

import httpx

from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import LocationUnavailable
from geopicker.geocoding.models import Coordinate, is_valid_coordinate

logger = get_logger(__name__)

HIGH_ACCURACY_TIMEOUT = 5.0
LOW_ACCURACY_TIMEOUT = 10.0


class PositionErrorCode(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"


class PositionError(Exception):
    """A single failed position attempt."""

    def __init__(self, code: PositionErrorCode, message: str = "") -> None:
        self.code = code
        super().__init__(message or code.value)


class PositionSource(Protocol):
    """Where fixes come from (browser bridge, device API, IP lookup...)."""

    async def current_position(
        self, *, high_accuracy: bool, timeout: float
    ) -> Coordinate: ...


class IpApiPositionSource:
    """Approximate position from the caller's public IP (ip-api.com).

    IP lookups have one accuracy profile, so ``high_accuracy`` is ignored.
    Private and loopback addresses can't be located and fail immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        ip: Optional[str] = None,
        url: str = "http://ip-api.com/json",
    ) -> None:
        self._client = client
        self.ip = ip
        self.url = url.rstrip("/")

    def _is_private(self) -> bool:
        if not self.ip:
            return False
        if self.ip == "localhost":
            return True
        try:
            address = ipaddress.ip_address(self.ip)
        except ValueError:
            return False
        return address.is_private or address.is_loopback or address.is_link_local

    async def current_position(
        self, *, high_accuracy: bool, timeout: float
    ) -> Coordinate:
        if self._is_private():
            raise PositionError(
                PositionErrorCode.POSITION_UNAVAILABLE, f"Private address {self.ip}"
            )

        url = f"{self.url}/{self.ip}" if self.ip else self.url
        try:
            response = await self._client.get(
                url, params={"fields": "status,message,lat,lon"}, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise PositionError(PositionErrorCode.TIMEOUT, str(e)) from e
        except httpx.HTTPError as e:
            raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE, str(e)) from e

        if response.status_code != 200:
            raise PositionError(
                PositionErrorCode.POSITION_UNAVAILABLE,
                f"IP geolocation returned HTTP {response.status_code}",
            )
        try:
            data = response.json()
        except ValueError as e:
            raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE, str(e)) from e

        lat, lng = data.get("lat"), data.get("lon")
        if data.get("status") != "success" or not is_valid_coordinate(lat, lng):
            raise PositionError(
                PositionErrorCode.POSITION_UNAVAILABLE,
                data.get("message") or "IP geolocation failed",
            )
        return Coordinate(lat=lat, lng=lng)


class GeolocationAcquirer:
    """High-accuracy fix first, then one relaxed attempt."""

    def __init__(
        self,
        source: PositionSource,
        *,
        high_accuracy_timeout: float = HIGH_ACCURACY_TIMEOUT,
        low_accuracy_timeout: float = LOW_ACCURACY_TIMEOUT,
    ) -> None:
        self._source = source
        self.high_accuracy_timeout = high_accuracy_timeout
        self.low_accuracy_timeout = low_accuracy_timeout

    async def _attempt(self, high_accuracy: bool, timeout: float) -> Coordinate:
        try:
            return await asyncio.wait_for(
                self._source.current_position(
                    high_accuracy=high_accuracy, timeout=timeout
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise PositionError(PositionErrorCode.TIMEOUT) from e

    async def acquire(self) -> Coordinate:
        """Return the current device coordinate.

        Raises:
            LocationUnavailable: If both accuracy profiles fail
        """
        try:
            return await self._attempt(True, self.high_accuracy_timeout)
        except PositionError as e:
            logger.info(
                "high_accuracy_position_failed", code=e.code.value, error=str(e)
            )

        try:
            return await self._attempt(False, self.low_accuracy_timeout)
        except PositionError as e:
            logger.warning(
                "low_accuracy_position_failed", code=e.code.value, error=str(e)
            )
            raise LocationUnavailable(str(e)) from e

    async def acquire_or_default(self, default: Coordinate) -> Coordinate:
        """Like :meth:`acquire` but falls back to ``default``."""
        try:
            return await self.acquire()
        except LocationUnavailable:
            return default
