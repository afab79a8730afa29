"""Test fixture package for geopicker.

Contains fixtures for:
- The FastAPI app with a mocked upstream geocoder
- Scripted fakes for the geocoder, map widget and position source
"""

from .geocoding import (
    FakeGeocoder,
    FakeMapView,
    FakePositionSource,
    UpstreamStub,
    make_address,
    make_candidate,
    run_pending,
)

__all__ = [
    "FakeGeocoder",
    "FakeMapView",
    "FakePositionSource",
    "UpstreamStub",
    "make_address",
    "make_candidate",
    "run_pending",
]
