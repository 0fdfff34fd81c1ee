"""Prometheus metrics collectors for veily-guard.

Client-side view of the anonymize/restore traffic sent to Veily Core.
"""

from prometheus_client import Counter, Gauge, Histogram

# Request metrics
REQUEST_LATENCY = Histogram(
    "veily_guard_request_duration_seconds",
    "Veily Core request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

REQUEST_COUNT = Counter(
    "veily_guard_requests_total",
    "Total requests sent to Veily Core",
    ["method", "endpoint", "status"],
)

TRANSPORT_ERRORS = Counter(
    "veily_guard_transport_errors_total",
    "Transport failures (timeouts, connection errors, HTTP >= 400)",
    ["error_type"],
)

# Transit encryption metrics
KEY_RESOLUTIONS = Counter(
    "veily_guard_key_resolutions_total",
    "Inbound public key lookups",
    ["source"],
)

PROTOCOL_ERRORS = Counter(
    "veily_guard_protocol_errors_total",
    "Responses rejected for violating the protocol",
    ["reason"],
)

# Connection pool
POOLED_CLIENTS = Gauge(
    "veily_guard_pooled_clients",
    "Number of pooled HTTP clients (one per origin)",
)
