"""Tests for the map address resolver."""

import asyncio
from typing import Optional

import pytest

from geopicker.geocoding.errors import RateLimited, TransportFailure, UpstreamError
from geopicker.geocoding.models import Coordinate, ResolvedAddress
from geopicker.picker.resolver import MapAddressResolver
from geopicker.picker.state import MovementState
from geopicker.picker.timers import TimerWheel
from tests.fixtures.geocoding import FakeGeocoder, FakeMapView, make_address, run_pending

SETTLE = 0.01
WAIT = 0.05

A = Coordinate(lat=33.5731, lng=-7.5898)
B = Coordinate(lat=33.5950, lng=-7.6187)
C = Coordinate(lat=33.5883, lng=-7.6114)


class Recorder:
    """Collects everything the resolver reports."""

    def __init__(self) -> None:
        self.states: list[MovementState] = []
        self.addresses: list[ResolvedAddress] = []
        self.display_names: list[str] = []


def build_resolver(
    geocoder: FakeGeocoder, recorder: Recorder, abort_stale_requests: bool = True
) -> MapAddressResolver:
    return MapAddressResolver(
        geocoder,
        TimerWheel(),
        settle_delay=SETTLE,
        on_address_resolved=recorder.addresses.append,
        on_state_change=recorder.states.append,
        on_display_name=recorder.display_names.append,
        abort_stale_requests=abort_stale_requests,
    )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def resolver(fake_geocoder: FakeGeocoder, recorder: Recorder) -> MapAddressResolver:
    return build_resolver(fake_geocoder, recorder)


class TestMovementStateMachine:
    @pytest.mark.asyncio
    async def test_resolves_after_settle(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        resolver.move_start()
        resolver.move_end(A)

        assert resolver.state is MovementState.SETTLING
        assert fake_geocoder.reverse_calls == []

        await asyncio.sleep(WAIT)
        assert resolver.state is MovementState.RESOLVING
        assert resolver.is_resolving
        assert fake_geocoder.reverse_calls == [(A.lat, A.lng)]

        fake_geocoder.complete_reverse(0, make_address(A.lat, A.lng, "Bd Mohammed V"))
        await run_pending()

        assert resolver.state is MovementState.IDLE
        assert resolver.address is not None
        assert resolver.address.display_name == "Bd Mohammed V"
        assert recorder.addresses == [resolver.address]
        assert recorder.display_names == ["Bd Mohammed V"]
        assert recorder.states == [
            MovementState.MOVING,
            MovementState.SETTLING,
            MovementState.RESOLVING,
            MovementState.IDLE,
        ]

    @pytest.mark.asyncio
    async def test_debounce_coalesces_rapid_movement(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        """Test several movements inside the settle window cost one lookup."""
        for center in (A, B, C):
            resolver.move_start()
            resolver.move_end(center)

        await asyncio.sleep(WAIT)

        assert fake_geocoder.reverse_calls == [(C.lat, C.lng)]

    @pytest.mark.asyncio
    async def test_movement_start_cancels_settle_timer(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        resolver.move_end(A)
        resolver.move_start()

        await asyncio.sleep(WAIT)

        assert fake_geocoder.reverse_calls == []
        assert resolver.state is MovementState.MOVING

    @pytest.mark.asyncio
    async def test_movement_during_lookup_discards_it(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        """Test a lookup overtaken by movement never writes the address."""
        resolver.move_end(A)
        await asyncio.sleep(WAIT)
        resolver.move_start()

        fake_geocoder.complete_reverse(0)
        await run_pending()

        assert resolver.state is MovementState.MOVING
        assert resolver.address is None
        assert recorder.addresses == []


class TestLatestWins:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("abort_stale_requests", [False, True])
    async def test_out_of_order_completions(
        self,
        fake_geocoder: FakeGeocoder,
        recorder: Recorder,
        abort_stale_requests: bool,
    ) -> None:
        """Test lookups A, B, C completing as C, A, B leave C applied."""
        resolver = build_resolver(fake_geocoder, recorder, abort_stale_requests)

        for center in (A, B, C):
            resolver.resolve(center)
            await run_pending()

        for index in (2, 0, 1):
            fake_geocoder.complete_reverse(index)
            await run_pending()

        assert resolver.address is not None
        assert resolver.address.coordinate == C
        assert [a.coordinate for a in recorder.addresses] == [C]
        assert resolver.state is MovementState.IDLE
        if abort_stale_requests:
            assert fake_geocoder.reverse_cancelled(0)
            assert fake_geocoder.reverse_cancelled(1)

    @pytest.mark.asyncio
    async def test_across_movements(
        self, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        resolver = build_resolver(fake_geocoder, recorder, abort_stale_requests=False)

        resolver.move_end(A)
        await asyncio.sleep(WAIT)
        resolver.move_start()
        resolver.move_end(B)
        await asyncio.sleep(WAIT)

        fake_geocoder.complete_reverse(1)
        await run_pending()
        fake_geocoder.complete_reverse(0)
        await run_pending()

        assert resolver.address is not None
        assert resolver.address.coordinate == B
        assert len(recorder.addresses) == 1

    @pytest.mark.asyncio
    async def test_stale_error_is_dropped(
        self, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        resolver = build_resolver(fake_geocoder, recorder, abort_stale_requests=False)

        resolver.resolve(A)
        resolver.resolve(B)
        await run_pending()
        fake_geocoder.complete_reverse(0, UpstreamError(500))
        await run_pending()

        assert resolver.last_error is None
        assert resolver.state is MovementState.RESOLVING

        fake_geocoder.complete_reverse(1)
        await run_pending()
        assert resolver.address is not None
        assert resolver.address.coordinate == B


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_keeps_previous_address(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        resolver.resolve(A)
        await run_pending()
        fake_geocoder.complete_reverse(0)
        await run_pending()
        previous: Optional[ResolvedAddress] = resolver.address

        resolver.resolve(B)
        await run_pending()
        error = UpstreamError(503)
        fake_geocoder.complete_reverse(1, error)
        await run_pending()

        assert resolver.address == previous
        assert resolver.resolution_failed
        assert resolver.last_error is error
        assert resolver.state is MovementState.IDLE
        assert len(recorder.addresses) == 1

    @pytest.mark.asyncio
    async def test_rate_limited_lookup_is_not_retried(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        resolver.move_end(A)
        await asyncio.sleep(WAIT)
        fake_geocoder.complete_reverse(0, RateLimited())
        await asyncio.sleep(WAIT)

        assert len(fake_geocoder.reverse_calls) == 1
        assert isinstance(resolver.last_error, RateLimited)
        assert resolver.state is MovementState.IDLE

    @pytest.mark.asyncio
    async def test_next_movement_clears_failure(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        resolver.resolve(A)
        await run_pending()
        fake_geocoder.complete_reverse(0, UpstreamError(500))
        await run_pending()

        resolver.move_start()

        assert not resolver.resolution_failed

    @pytest.mark.asyncio
    async def test_unexpected_geocoder_error_is_transport_failure(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        task = resolver.resolve(A)
        await run_pending()
        fake_geocoder.complete_reverse(0, ValueError("malformed status"))
        await run_pending()

        assert task.done()
        assert task.result() is None
        assert isinstance(resolver.last_error, TransportFailure)
        assert resolver.state is MovementState.IDLE
        assert resolver.in_flight is None


class TestTeardown:
    @pytest.mark.asyncio
    async def test_completion_after_close_is_ignored(
        self, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        resolver = build_resolver(fake_geocoder, recorder, abort_stale_requests=False)
        resolver.resolve(A)
        await run_pending()

        resolver.close()
        fake_geocoder.complete_reverse(0)
        await run_pending()

        assert resolver.closed
        assert resolver.address is None
        assert recorder.addresses == []

    @pytest.mark.asyncio
    async def test_close_cancels_settle_timer(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        resolver.move_end(A)
        resolver.close()

        await asyncio.sleep(WAIT)

        assert fake_geocoder.reverse_calls == []

    @pytest.mark.asyncio
    async def test_events_after_close_are_ignored(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder, recorder: Recorder
    ) -> None:
        resolver.close()
        resolver.move_start()
        resolver.move_end(A)
        await asyncio.sleep(WAIT)

        assert fake_geocoder.reverse_calls == []
        assert recorder.states == []
        with pytest.raises(RuntimeError):
            resolver.resolve(A)


class TestInitialPositioning:
    @pytest.mark.asyncio
    async def test_initial_jump_does_not_resolve(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        map_view = FakeMapView(Coordinate(lat=0, lng=0))
        map_view.subscribe(resolver.move_start, resolver.move_end)

        assert resolver.position_initially(map_view, A)
        await asyncio.sleep(WAIT)

        assert map_view.set_view_calls == [(A, 16, False)]
        assert fake_geocoder.reverse_calls == []
        assert resolver.state is MovementState.IDLE

    @pytest.mark.asyncio
    async def test_runs_once(self, resolver: MapAddressResolver) -> None:
        map_view = FakeMapView(A)

        assert resolver.position_initially(map_view, A)
        assert not resolver.position_initially(map_view, B)
        assert len(map_view.set_view_calls) == 1

    @pytest.mark.asyncio
    async def test_user_movement_after_jump_resolves(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        map_view = FakeMapView(Coordinate(lat=0, lng=0))
        map_view.subscribe(resolver.move_start, resolver.move_end)
        resolver.position_initially(map_view, A)
        await run_pending()

        map_view.drag_to(B)
        await asyncio.sleep(WAIT)

        assert fake_geocoder.reverse_calls == [(B.lat, B.lng)]

    @pytest.mark.asyncio
    async def test_snapped_center_is_still_absorbed(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        """Test a widget that rounds the requested center to its pixel grid."""
        map_view = SnappingMapView(Coordinate(lat=0, lng=0))
        map_view.subscribe(resolver.move_start, resolver.move_end)

        resolver.position_initially(map_view, A)
        await asyncio.sleep(WAIT)

        assert map_view.center != A
        assert fake_geocoder.reverse_calls == []
        assert resolver.state is MovementState.IDLE

    @pytest.mark.asyncio
    async def test_silent_jump_leaves_first_zoom_resolvable(
        self, resolver: MapAddressResolver, fake_geocoder: FakeGeocoder
    ) -> None:
        map_view = SilentMapView(Coordinate(lat=0, lng=0))
        map_view.subscribe(resolver.move_start, resolver.move_end)

        resolver.position_initially(map_view, A)
        await run_pending()
        # A zoom keeps the center where the jump left it
        map_view.drag_to(A)
        await asyncio.sleep(WAIT)

        assert fake_geocoder.reverse_calls == [(A.lat, A.lng)]


class SnappingMapView(FakeMapView):
    """Reports the jump target rounded to two decimals."""

    def set_view(
        self, coordinate: Coordinate, zoom: Optional[int] = None, animate: bool = False
    ) -> None:
        snapped = Coordinate(lat=round(coordinate.lat, 2), lng=round(coordinate.lng, 2))
        self.set_view_calls.append((coordinate, zoom, animate))
        self._move(snapped)


class SilentMapView(FakeMapView):
    """Jumps without emitting any movement events."""

    def set_view(
        self, coordinate: Coordinate, zoom: Optional[int] = None, animate: bool = False
    ) -> None:
        self.set_view_calls.append((coordinate, zoom, animate))
        self._center = coordinate
