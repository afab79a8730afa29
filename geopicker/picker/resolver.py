"""Map address resolver.

Turns map movement into a resolved address:

    IDLE -> MOVING -> SETTLING -> RESOLVING -> IDLE

Any movement start forces MOVING and makes the in-flight lookup stale. A
movement end starts the settle timer; only a timer that fires with no
intervening movement issues a reverse lookup. Every lookup carries a token
from the session's reverse sequence and only the lookup holding the current
token may write the address.
"""

import asyncio
from typing import Callable, Optional

from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import GeocodingError, TransportFailure
from geopicker.geocoding.models import Coordinate, ResolvedAddress
from geopicker.picker.state import Geocoder, MapView, MovementState, RequestSequence
from geopicker.picker.timers import TimerWheel

logger = get_logger(__name__)

REVERSE_TIMER = "reverse"
DEFAULT_SETTLE_DELAY = 0.35
INITIAL_ZOOM = 16


class MapAddressResolver:
    """Single funnel from map center to resolved address."""

    def __init__(
        self,
        geocoder: Geocoder,
        timers: TimerWheel,
        *,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        on_address_resolved: Optional[Callable[[ResolvedAddress], None]] = None,
        on_state_change: Optional[Callable[[MovementState], None]] = None,
        on_display_name: Optional[Callable[[str], None]] = None,
        abort_stale_requests: bool = True,
    ) -> None:
        """Initialize the resolver.

        Args:
            geocoder: Gateway or proxy client used for reverse lookups
            timers: The owning session's timer wheel
            settle_delay: Quiet period (seconds) after a movement end
            on_address_resolved: Called with each applied address
            on_state_change: Called with the new state on every transition
            on_display_name: Mirrors the display name into a bound text field
            abort_stale_requests: Also cancel the superseded lookup task
        """
        self._geocoder = geocoder
        self._timers = timers
        self.settle_delay = settle_delay
        self._on_address_resolved = on_address_resolved
        self._on_state_change = on_state_change
        self._on_display_name = on_display_name
        self.abort_stale_requests = abort_stale_requests

        self._state = MovementState.IDLE
        self._sequence = RequestSequence()
        self._address: Optional[ResolvedAddress] = None
        self._last_error: Optional[GeocodingError] = None
        self._pending_center: Optional[Coordinate] = None
        self._in_flight: Optional[asyncio.Task[Optional[ResolvedAddress]]] = None
        self._tasks: set[asyncio.Task[Optional[ResolvedAddress]]] = set()
        self._positioning = False
        self._initial_bypass = False
        self._initialized = False
        self._closed = False

    @property
    def state(self) -> MovementState:
        return self._state

    @property
    def is_resolving(self) -> bool:
        return self._state is MovementState.RESOLVING

    @property
    def address(self) -> Optional[ResolvedAddress]:
        """Last successfully applied address; authoritative until replaced."""
        return self._address

    @property
    def last_error(self) -> Optional[GeocodingError]:
        return self._last_error

    @property
    def resolution_failed(self) -> bool:
        """Soft failure indicator: the latest lookup failed."""
        return self._last_error is not None

    @property
    def in_flight(self) -> Optional[asyncio.Task[Optional[ResolvedAddress]]]:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def _set_state(self, state: MovementState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def position_initially(
        self, map_view: MapView, coordinate: Coordinate, zoom: int = INITIAL_ZOOM
    ) -> bool:
        """Place the map on a known coordinate without resolving it.

        Runs at most once per resolver. A movement started by the jump is
        absorbed: its movement end does not start a lookup, wherever the
        widget reports the center. A widget that jumps without emitting
        movement leaves nothing to absorb.

        Returns:
            True if the map was positioned, False if already done
        """
        if self._initialized or self._closed:
            return False
        self._initialized = True
        self._positioning = True
        try:
            map_view.set_view(coordinate, zoom=zoom, animate=False)
        finally:
            self._positioning = False
        return True

    def move_start(self) -> None:
        """Handle drag/zoom/fly-to start."""
        if self._closed:
            return
        # Only a movement that starts inside set_view arms the bypass.
        self._initial_bypass = self._positioning
        self._timers.cancel(REVERSE_TIMER)
        self._pending_center = None
        if self._state is MovementState.RESOLVING:
            self._sequence.invalidate()
            self._release_in_flight()
        self._last_error = None
        self._set_state(MovementState.MOVING)

    def move_end(self, center: Coordinate) -> None:
        """Handle a movement end at ``center``."""
        if self._closed:
            return
        if self._initial_bypass:
            self._initial_bypass = False
            logger.debug("initial_position_absorbed", lat=center.lat, lng=center.lng)
            self._set_state(MovementState.IDLE)
            return

        self._pending_center = center
        self._set_state(MovementState.SETTLING)
        self._timers.schedule(REVERSE_TIMER, self.settle_delay, self._on_settled)

    def _on_settled(self) -> None:
        center = self._pending_center
        if self._closed or center is None or self._state is not MovementState.SETTLING:
            return
        self._pending_center = None
        self.resolve(center)

    def resolve(self, center: Coordinate) -> asyncio.Task[Optional[ResolvedAddress]]:
        """Issue a reverse lookup for ``center`` right away.

        Every call takes a fresh token, so of several overlapping calls only
        the last one issued can ever be applied.
        """
        if self._closed:
            raise RuntimeError("Resolver is closed")
        self._timers.cancel(REVERSE_TIMER)
        self._release_in_flight()

        token = self._sequence.next()
        self._set_state(MovementState.RESOLVING)
        logger.debug("reverse_lookup_issued", token=token, lat=center.lat, lng=center.lng)

        task = asyncio.get_running_loop().create_task(self._resolve(token, center))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._in_flight = task
        return task

    async def _lookup(self, center: Coordinate) -> ResolvedAddress:
        try:
            return await self._geocoder.reverse_lookup(center.lat, center.lng)
        except GeocodingError:
            raise
        except Exception as e:
            logger.exception("reverse_lookup_crashed", lat=center.lat, lng=center.lng)
            raise TransportFailure(f"Geocoder raised {e.__class__.__name__}") from e

    async def _resolve(
        self, token: int, center: Coordinate
    ) -> Optional[ResolvedAddress]:
        try:
            address = await self._lookup(center)
        except GeocodingError as e:
            if not self._sequence.is_current(token):
                logger.debug("stale_reverse_error_dropped", token=token)
                return None
            self._last_error = e
            self._in_flight = None
            logger.warning(
                "reverse_lookup_failed",
                error_type=e.__class__.__name__,
                error_message=str(e),
                lat=center.lat,
                lng=center.lng,
            )
            self._set_state(MovementState.IDLE)
            return None

        if not self._sequence.is_current(token):
            logger.debug(
                "stale_reverse_result_dropped",
                token=token,
                current=self._sequence.current,
            )
            return None

        self._in_flight = None
        self._address = address
        self._last_error = None
        self._set_state(MovementState.IDLE)
        if self._on_display_name is not None:
            self._on_display_name(address.display_name)
        if self._on_address_resolved is not None:
            self._on_address_resolved(address)
        return address

    def _release_in_flight(self) -> None:
        task, self._in_flight = self._in_flight, None
        if self.abort_stale_requests and task is not None and not task.done():
            task.cancel()

    def close(self) -> None:
        """Tear down: no completion may write to this resolver afterwards."""
        if self._closed:
            return
        self._closed = True
        self._timers.cancel(REVERSE_TIMER)
        self._sequence.close()
        self._in_flight = None
        for task in list(self._tasks):
            task.cancel()
        self._on_address_resolved = None
        self._on_state_change = None
        self._on_display_name = None
