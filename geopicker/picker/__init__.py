"""Interactive map address-resolution engine.

- Map address resolver (movement state machine, latest-wins lookups)
- Search autocomplete controller
- Geolocation acquirer
- Picker session tying them to one map widget
"""

from geopicker.picker.geolocation import (
    GeolocationAcquirer,
    IpApiPositionSource,
    PositionError,
    PositionErrorCode,
    PositionSource,
)
from geopicker.picker.resolver import MapAddressResolver
from geopicker.picker.search import SearchAutocompleteController
from geopicker.picker.session import PickerSession
from geopicker.picker.state import Geocoder, MapView, MovementState, RequestSequence
from geopicker.picker.timers import TimerWheel

__all__ = [
    "GeolocationAcquirer",
    "Geocoder",
    "IpApiPositionSource",
    "MapAddressResolver",
    "MapView",
    "MovementState",
    "PickerSession",
    "PositionError",
    "PositionErrorCode",
    "PositionSource",
    "RequestSequence",
    "SearchAutocompleteController",
    "TimerWheel",
]
