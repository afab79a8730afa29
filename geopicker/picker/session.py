"""Picker session: one map, one resolver, one search box.

A session is the explicit context object for everything a single open
location picker owns. Nothing here is shared between sessions, so two
pickers open at the same time cannot see each other's tokens or timers.
"""

import asyncio
from types import TracebackType
from typing import Any, Callable, Optional

from geopicker.core.config import Settings
from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import LocationUnavailable
from geopicker.geocoding.models import Coordinate, ResolvedAddress, SearchCandidate
from geopicker.picker.geolocation import GeolocationAcquirer, PositionSource
from geopicker.picker.resolver import MapAddressResolver
from geopicker.picker.search import SearchAutocompleteController
from geopicker.picker.state import Geocoder, MapView, MovementState
from geopicker.picker.timers import TimerWheel

logger = get_logger(__name__)

DEFAULT_CENTER = Coordinate(lat=33.5731, lng=-7.5898)  # Casablanca
FLY_TO_ZOOM = 17
FLY_TO_DURATION = 1.5


class PickerSession:
    """Wires the map widget to the resolver, search and geolocation."""

    def __init__(
        self,
        geocoder: Geocoder,
        map_view: MapView,
        *,
        position_source: Optional[PositionSource] = None,
        initial_coordinate: Optional[Coordinate] = None,
        initial_text: Optional[str] = None,
        default_center: Coordinate = DEFAULT_CENTER,
        on_address_resolved: Optional[Callable[[ResolvedAddress], None]] = None,
        on_state_change: Optional[Callable[[MovementState], None]] = None,
        on_candidates: Optional[Callable[[list[SearchCandidate]], None]] = None,
        settle_delay: float = 0.35,
        search_debounce: float = 0.5,
        search_min_chars: int = 3,
        country_codes: Optional[str] = None,
        search_limit: int = 5,
        high_accuracy_timeout: float = 5.0,
        low_accuracy_timeout: float = 10.0,
        abort_stale_requests: bool = True,
    ) -> None:
        self.map_view = map_view
        self.initial_coordinate = initial_coordinate
        self.initial_text = initial_text
        self.default_center = default_center
        self.timers = TimerWheel()

        self.resolver = MapAddressResolver(
            geocoder,
            self.timers,
            settle_delay=settle_delay,
            on_address_resolved=on_address_resolved,
            on_state_change=on_state_change,
            on_display_name=self._mirror_display_name,
            abort_stale_requests=abort_stale_requests,
        )
        self.search = SearchAutocompleteController(
            geocoder,
            self.timers,
            movement_state=lambda: self.resolver.state,
            map_center=self._current_center,
            fly_to=self._fly_to_candidate,
            on_candidates=on_candidates,
            debounce=search_debounce,
            min_chars=search_min_chars,
            country_codes=country_codes,
            limit=search_limit,
            abort_stale_requests=abort_stale_requests,
        )
        self.acquirer: Optional[GeolocationAcquirer] = None
        if position_source is not None:
            self.acquirer = GeolocationAcquirer(
                position_source,
                high_accuracy_timeout=high_accuracy_timeout,
                low_accuracy_timeout=low_accuracy_timeout,
            )

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._is_locating = False
        self._opened = False
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        geocoder: Geocoder,
        map_view: MapView,
        **kwargs: Any,
    ) -> "PickerSession":
        """Build a session with timings and defaults taken from settings."""
        options: dict[str, Any] = {
            "default_center": Coordinate(
                lat=settings.PICKER_DEFAULT_LAT, lng=settings.PICKER_DEFAULT_LNG
            ),
            "settle_delay": settings.PICKER_SETTLE_DEBOUNCE_MS / 1000,
            "search_debounce": settings.PICKER_SEARCH_DEBOUNCE_MS / 1000,
            "search_min_chars": settings.PICKER_SEARCH_MIN_CHARS,
            "country_codes": settings.GEOCODING_DEFAULT_COUNTRY,
            "search_limit": settings.GEOCODING_SEARCH_LIMIT,
            "high_accuracy_timeout": settings.GEOLOCATION_HIGH_ACCURACY_TIMEOUT,
            "low_accuracy_timeout": settings.GEOLOCATION_LOW_ACCURACY_TIMEOUT,
        }
        options.update(kwargs)
        return cls(geocoder, map_view, **options)

    @property
    def start_center(self) -> Coordinate:
        """Where the map widget should be created."""
        return self.initial_coordinate or self.default_center

    @property
    def state(self) -> MovementState:
        return self.resolver.state

    @property
    def is_resolving(self) -> bool:
        return self.resolver.is_resolving

    @property
    def address(self) -> Optional[ResolvedAddress]:
        return self.resolver.address

    @property
    def is_locating(self) -> bool:
        return self._is_locating

    @property
    def closed(self) -> bool:
        return self._closed

    def _current_center(self) -> Optional[Coordinate]:
        return self.map_view.center

    def _mirror_display_name(self, display_name: str) -> None:
        self.search.mirror_text(display_name)

    def _fly_to_candidate(self, coordinate: Coordinate) -> None:
        self.map_view.fly_to(coordinate, zoom=FLY_TO_ZOOM)

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def open(self) -> None:
        """Mount: subscribe to the map and place it.

        With an initial coordinate the map jumps there once without a
        lookup; without one, geolocation runs once in the background.
        """
        if self._opened or self._closed:
            return
        self._opened = True
        self._unsubscribe = self.map_view.subscribe(
            self.resolver.move_start, self.resolver.move_end
        )

        if self.initial_coordinate is not None:
            self.resolver.position_initially(self.map_view, self.initial_coordinate)
            if self.initial_text:
                self.search.mirror_text(self.initial_text)
        elif self.acquirer is not None:
            self._spawn(self.locate_me())

    async def locate_me(self) -> Optional[Coordinate]:
        """Fly the map to the device position.

        Returns:
            The coordinate flown to, or None if no position was available
        """
        if self._closed or self.acquirer is None or self._is_locating:
            return None
        self._is_locating = True
        try:
            coordinate = await self.acquirer.acquire()
        except LocationUnavailable:
            logger.info(
                "geolocation_unavailable",
                fallback_lat=self.start_center.lat,
                fallback_lng=self.start_center.lng,
            )
            return None
        finally:
            self._is_locating = False

        if self._closed:
            return None
        self.map_view.fly_to(coordinate, zoom=FLY_TO_ZOOM, duration=FLY_TO_DURATION)
        return coordinate

    def close(self) -> None:
        """Unmount: cancel timers and in-flight work, drop map listeners."""
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.resolver.close()
        self.search.close()
        self.timers.close()
        for task in list(self._tasks):
            task.cancel()

    async def __aenter__(self) -> "PickerSession":
        self.open()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()
