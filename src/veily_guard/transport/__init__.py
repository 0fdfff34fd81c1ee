"""Pooled JSON transport for Veily Core."""

from veily_guard.transport.http import HTTPTransport, origin_of
from veily_guard.transport.pool import (
    TransportPool,
    get_transport_pool,
    reset_transport_pool,
)

__all__ = [
    "HTTPTransport",
    "TransportPool",
    "get_transport_pool",
    "reset_transport_pool",
    "origin_of",
]
