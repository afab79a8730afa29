"""Search autocomplete controller.

Keystrokes restart a debounce timer; when it fires the controller searches
only if the query is long enough, the map is idle, the suggestion panel is
open and no rate-limit suppression is active. Results are applied only when
their forward-search token is still current.

Selecting a suggestion never writes an address: it flies the map to the
candidate and lets the resolver derive the address from the new center.
"""

import asyncio
from typing import Callable, Optional

from geopicker.core.logging import get_logger
from geopicker.geocoding.errors import GeocodingError, RateLimited, TransportFailure
from geopicker.geocoding.models import (
    DEFAULT_SEARCH_LIMIT,
    Coordinate,
    SearchCandidate,
    SearchOptions,
)
from geopicker.picker.state import Geocoder, MovementState, RequestSequence
from geopicker.picker.timers import TimerWheel

logger = get_logger(__name__)

SEARCH_TIMER = "search"
DEFAULT_SEARCH_DEBOUNCE = 0.5
DEFAULT_MIN_CHARS = 3


class SearchAutocompleteController:
    """Debounced forward lookup for the address field."""

    def __init__(
        self,
        geocoder: Geocoder,
        timers: TimerWheel,
        *,
        movement_state: Callable[[], MovementState],
        map_center: Callable[[], Optional[Coordinate]],
        fly_to: Callable[[Coordinate], None],
        on_candidates: Optional[Callable[[list[SearchCandidate]], None]] = None,
        debounce: float = DEFAULT_SEARCH_DEBOUNCE,
        min_chars: int = DEFAULT_MIN_CHARS,
        country_codes: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        abort_stale_requests: bool = True,
    ) -> None:
        self._geocoder = geocoder
        self._timers = timers
        self._movement_state = movement_state
        self._map_center = map_center
        self._fly_to = fly_to
        self._on_candidates = on_candidates
        self.debounce = debounce
        self.min_chars = min_chars
        self.country_codes = country_codes
        self.limit = limit
        self.abort_stale_requests = abort_stale_requests

        self._sequence = RequestSequence()
        self._query = ""
        self._candidates: list[SearchCandidate] = []
        self._is_open = False
        self._is_searching = False
        self._rate_limited = False
        self._last_error: Optional[GeocodingError] = None
        self._last_selected_id: Optional[str] = None
        self._in_flight: Optional[asyncio.Task[None]] = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def query(self) -> str:
        return self._query

    @property
    def candidates(self) -> list[SearchCandidate]:
        return list(self._candidates)

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def is_searching(self) -> bool:
        return self._is_searching

    @property
    def rate_limited(self) -> bool:
        return self._rate_limited

    @property
    def last_error(self) -> Optional[GeocodingError]:
        return self._last_error

    @property
    def in_flight(self) -> Optional[asyncio.Task[None]]:
        return self._in_flight

    def type_text(self, text: str) -> None:
        """A user keystroke: open the panel and restart the debounce."""
        if self._closed:
            return
        self._query = text
        self._is_open = True
        self._rate_limited = False
        self._last_selected_id = None
        self._timers.schedule(SEARCH_TIMER, self.debounce, self._on_debounce)

    def mirror_text(self, text: str) -> None:
        """Show ``text`` in the field without searching for it."""
        if self._closed:
            return
        self._query = text
        self._timers.cancel(SEARCH_TIMER)

    def focus(self) -> None:
        """Reopen suggestions for a query the user already typed."""
        if self._closed or len(self._query) < self.min_chars:
            return
        self._is_open = True
        self._last_selected_id = None
        self._timers.schedule(SEARCH_TIMER, self.debounce, self._on_debounce)

    def blur(self) -> None:
        """Close the suggestion panel (click outside)."""
        self._is_open = False

    def _skip_reason(self) -> Optional[str]:
        if len(self._query) < self.min_chars:
            return "query_too_short"
        if self._movement_state() is not MovementState.IDLE:
            return "map_moving"
        if not self._is_open:
            return "panel_closed"
        if self._rate_limited:
            return "rate_limited"
        return None

    def _on_debounce(self) -> None:
        if self._closed:
            return
        reason = self._skip_reason()
        if reason is not None:
            logger.debug("search_skipped", reason=reason)
            return
        self._start_search(self._query)

    def _release_in_flight(self) -> None:
        task, self._in_flight = self._in_flight, None
        if self.abort_stale_requests and task is not None and not task.done():
            task.cancel()

    def _start_search(self, query: str) -> asyncio.Task[None]:
        self._release_in_flight()
        token = self._sequence.next()
        options = SearchOptions(
            limit=self.limit,
            country_codes=self.country_codes,
            bias=self._map_center(),
        )
        self._is_searching = True
        task = asyncio.get_running_loop().create_task(
            self._search(token, query, options)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._in_flight = task
        return task

    async def _lookup(
        self, query: str, options: SearchOptions
    ) -> list[SearchCandidate]:
        try:
            return await self._geocoder.forward_lookup(query, options)
        except GeocodingError:
            raise
        except Exception as e:
            logger.exception("search_crashed", query=query)
            raise TransportFailure(f"Geocoder raised {e.__class__.__name__}") from e

    async def _search(self, token: int, query: str, options: SearchOptions) -> None:
        try:
            candidates = await self._lookup(query, options)
        except GeocodingError as e:
            if not self._sequence.is_current(token):
                return
            self._in_flight = None
            self._is_searching = False
            self._last_error = e
            self._candidates = []
            if isinstance(e, RateLimited):
                # Hold off until the next keystroke; never retry on our own.
                self._rate_limited = True
            logger.warning(
                "search_failed",
                error_type=e.__class__.__name__,
                error_message=str(e),
            )
            return

        if not self._sequence.is_current(token):
            logger.debug("stale_search_result_dropped", token=token)
            return

        self._in_flight = None
        self._is_searching = False
        self._last_error = None
        self._candidates = candidates
        self._last_selected_id = None
        if self._on_candidates is not None:
            self._on_candidates(self.candidates)

    def select(self, candidate: SearchCandidate) -> bool:
        """Fly the map to ``candidate``.

        Returns:
            True if a fly-to was issued, False when the same candidate is
            picked again before new suggestions are shown
        """
        if self._closed or candidate.id == self._last_selected_id:
            return False
        self._last_selected_id = candidate.id
        self._timers.cancel(SEARCH_TIMER)
        self._sequence.invalidate()
        self._release_in_flight()
        self._is_searching = False
        self._is_open = False
        self._candidates = []
        self._fly_to(candidate.coordinate)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._timers.cancel(SEARCH_TIMER)
        self._sequence.close()
        self._in_flight = None
        for task in list(self._tasks):
            task.cancel()
        self._on_candidates = None
