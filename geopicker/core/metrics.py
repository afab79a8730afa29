"""Prometheus metrics shared by the middleware and the geocoding gateway."""

from prometheus_client import Counter, Histogram

REQUESTS_TOTAL = Counter(
    "app_http_requests_total",
    "Total number of HTTP requests",
    labelnames=["method", "path"],
)

RESPONSES_TOTAL = Counter(
    "app_http_responses_total",
    "Total number of HTTP responses",
    labelnames=["status_code"],
)

GEOCODER_REQUESTS_TOTAL = Counter(
    "geocoder_upstream_requests_total",
    "Outbound requests to the geocoding provider",
    labelnames=["operation", "outcome"],
)

GEOCODER_LATENCY = Histogram(
    "geocoder_upstream_latency_seconds",
    "Latency of outbound geocoding requests",
    labelnames=["operation"],
)
