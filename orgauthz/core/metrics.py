"""Application metrics using the Prometheus client library.

All metrics are defined here so there is one inventory of what the
service measures.  Other modules import a metric and increment or
observe it at the point of action.

The HTTP metrics are recorded by MetricsMiddleware for every request.
AUTHZ_DECISIONS is recorded by the enforcement pipeline, one sample
per evaluated requirement:

  rate(authz_decisions_total{outcome="deny"}[5m])

is the first thing to look at when users report lockouts after a
permission change.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

AUTHZ_DECISIONS = Counter(
    "authz_decisions_total",
    "Authorization decisions by mechanism and outcome",
    ["mechanism", "outcome"],  # structural|permission, allow|deny
)
