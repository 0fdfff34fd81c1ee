"""Prometheus metrics module for veily-guard."""

from veily_guard.metrics.collectors import (
    KEY_RESOLUTIONS,
    POOLED_CLIENTS,
    PROTOCOL_ERRORS,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    TRANSPORT_ERRORS,
)

__all__ = [
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "TRANSPORT_ERRORS",
    "KEY_RESOLUTIONS",
    "PROTOCOL_ERRORS",
    "POOLED_CLIENTS",
]
