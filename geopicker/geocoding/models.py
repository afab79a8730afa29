"""Value types shared by the gateway and the picker session."""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Viewbox half-width, in degrees, around a search bias coordinate.
BIAS_VIEWBOX_DEGREES = 0.5

MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 10
DEFAULT_SEARCH_LIMIT = 5


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """Return True when lat/lng are finite numbers inside WGS84 ranges."""
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp a search result limit into [1, 10], defaulting to 5."""
    if limit is None:
        return DEFAULT_SEARCH_LIMIT
    return min(MAX_SEARCH_LIMIT, max(MIN_SEARCH_LIMIT, int(limit)))


class Coordinate(BaseModel):
    """Immutable WGS84 point."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)

    def viewbox(self, delta: float = BIAS_VIEWBOX_DEGREES) -> str:
        """Nominatim viewbox string ``left,top,right,bottom`` around this point."""
        return (
            f"{self.lng - delta},{self.lat - delta},"
            f"{self.lng + delta},{self.lat + delta}"
        )


class ResolvedAddress(BaseModel):
    """Address produced by a reverse lookup."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    display_name: str
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(
        cls, coordinate: Coordinate, payload: dict[str, Any]
    ) -> "ResolvedAddress":
        """Parse a Nominatim reverse payload.

        Street falls back from road to suburb to the first segment of the
        display name; city falls back from city to town, village, then state.
        When the payload has no display name the coordinate itself is used.
        """
        address = payload.get("address") or {}
        display_name = (payload.get("display_name") or "").strip()
        if not display_name:
            display_name = payload.get("name") or f"{coordinate.lat}, {coordinate.lng}"

        street = (
            address.get("road")
            or address.get("suburb")
            or display_name.split(",")[0].strip()
            or None
        )
        city = (
            address.get("city")
            or address.get("town")
            or address.get("village")
            or address.get("state")
        )

        return cls(
            coordinate=coordinate,
            display_name=display_name,
            street=street,
            city=city,
            postal_code=address.get("postcode"),
            country=address.get("country"),
            raw=payload,
        )


class SearchCandidate(BaseModel):
    """One forward lookup suggestion."""

    model_config = ConfigDict(frozen=True)

    id: str
    coordinate: Coordinate
    display_name: str
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SearchCandidate":
        """Parse one entry of a Nominatim search response."""
        coordinate = Coordinate(lat=float(payload["lat"]), lng=float(payload["lon"]))
        candidate_id = payload.get("place_id") or payload.get("osm_id")
        if candidate_id is None:
            candidate_id = f"{coordinate.lat},{coordinate.lng}"
        return cls(
            id=str(candidate_id),
            coordinate=coordinate,
            display_name=payload.get("display_name") or "",
            raw=payload,
        )


class SearchOptions(BaseModel):
    """Forward lookup options."""

    limit: int = DEFAULT_SEARCH_LIMIT
    country_codes: Optional[str] = None
    bias: Optional[Coordinate] = None

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return clamp_limit(value)
