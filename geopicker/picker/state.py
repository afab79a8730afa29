"""Shared state primitives for a picker session."""

from enum import Enum
from typing import Callable, Optional, Protocol

from geopicker.geocoding.errors import StaleResponse
from geopicker.geocoding.models import (
    Coordinate,
    ResolvedAddress,
    SearchCandidate,
    SearchOptions,
)


class MovementState(str, Enum):
    """Lifecycle of the map viewport as seen by the resolver."""

    IDLE = "idle"
    MOVING = "moving"
    SETTLING = "settling"
    RESOLVING = "resolving"


class RequestSequence:
    """Monotonic request tokens for one logical operation.

    A completion may only touch shared state when its token is still the
    current one. After :meth:`close` no token is ever current again.
    """

    def __init__(self) -> None:
        self._current = 0
        self._closed = False

    @property
    def current(self) -> int:
        return self._current

    @property
    def closed(self) -> bool:
        return self._closed

    def next(self) -> int:
        """Issue a new token, making every earlier one stale."""
        self._current += 1
        return self._current

    def invalidate(self) -> None:
        """Make the outstanding token stale without issuing a request."""
        self._current += 1

    def is_current(self, token: int) -> bool:
        return not self._closed and token == self._current

    def check(self, token: int) -> None:
        """Raise :class:`StaleResponse` unless ``token`` is current."""
        if not self.is_current(token):
            raise StaleResponse(token, self._current)

    def close(self) -> None:
        self._closed = True


class Geocoder(Protocol):
    """What the picker needs from the gateway or the proxy client."""

    async def reverse_lookup(self, lat: float, lng: float) -> ResolvedAddress: ...

    async def forward_lookup(
        self, query: str, options: Optional[SearchOptions] = None
    ) -> list[SearchCandidate]: ...


MoveStartHandler = Callable[[], None]
MoveEndHandler = Callable[[Coordinate], None]


class MapView(Protocol):
    """Capability provided by the map rendering widget."""

    @property
    def center(self) -> Coordinate: ...

    def subscribe(
        self, on_move_start: MoveStartHandler, on_move_end: MoveEndHandler
    ) -> Callable[[], None]:
        """Register movement listeners; returns an unsubscribe callable."""
        ...

    def fly_to(
        self, coordinate: Coordinate, zoom: Optional[int] = None, duration: float = 0.0
    ) -> None: ...

    def set_view(
        self, coordinate: Coordinate, zoom: Optional[int] = None, animate: bool = False
    ) -> None: ...
