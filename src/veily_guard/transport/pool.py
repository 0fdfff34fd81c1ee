"""
Process-wide pool of HTTP clients, one per Veily Core origin and event loop.

The first request to an origin pays the TCP/TLS (and HTTP/2) handshake;
every later request on the same event loop, from any configuration, reuses
the same client and its keep-alive connections. Connections belong to the
loop that opened them, so a new loop (e.g. a second asyncio.run()) gets a
fresh client and clients of closed loops are dropped.
"""

import asyncio
import threading
from typing import Optional

import httpx

from veily_guard.config.settings import GuardConfig
from veily_guard.logging.setup import get_logger
from veily_guard.metrics.collectors import POOLED_CLIENTS
from veily_guard.transport.http import HTTPTransport, origin_of

logger = get_logger(__name__)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    """Return the running event loop, or None when called from sync code."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class _PooledClient:
    """A pooled client and the event loop its connections are bound to."""

    __slots__ = ("client", "loop")

    def __init__(
        self,
        client: httpx.AsyncClient,
        loop: Optional[asyncio.AbstractEventLoop],
    ) -> None:
        self.client = client
        self.loop = loop

    def usable_from(self, loop: Optional[asyncio.AbstractEventLoop]) -> bool:
        if self.client.is_closed:
            return False
        if self.loop is None or loop is None:
            return True
        return self.loop is loop

    @property
    def orphaned(self) -> bool:
        return self.loop is not None and self.loop.is_closed()


class TransportPool:
    """Registry of pooled httpx.AsyncClient instances keyed by origin.

    Thread Safety:
        Get-or-create runs under a lock, so concurrent first use of an
        origin never builds duplicate clients. The lock is never held
        across an await.

    Event loops:
        A client created outside any loop is adopted by the first loop that
        uses it. After that, only that loop reuses it; another loop gets a
        replacement. Clients whose loop has closed are discarded without
        closing, since their connections can no longer be shut down.

    Example:
        >>> pool = TransportPool()
        >>> transport = pool.get_transport(cfg)
        >>> await transport.post_json("/v1/anonymize", body)
        >>> await pool.aclose()
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limits: Optional[httpx.Limits] = None,
    ) -> None:
        """Initialize the pool.

        Args:
            transport: Optional httpx transport for every client (e.g.
                httpx.MockTransport in tests).
            limits: Connection limits per client.
        """
        self._clients: dict[str, _PooledClient] = {}
        self._lock = threading.Lock()
        self._transport = transport
        self._limits = limits or httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
        )

    def _create_client(self, http2: bool) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(transport=self._transport)
        return httpx.AsyncClient(http2=http2, limits=self._limits)

    def get_client(self, origin: str, http2: bool = True) -> httpx.AsyncClient:
        """Get or create the shared client for an origin on the current loop.

        Args:
            origin: scheme://host[:port] of the remote service.
            http2: Whether a newly created client negotiates HTTP/2.

        Returns:
            The pooled client.
        """
        loop = _running_loop()
        with self._lock:
            entry = self._clients.get(origin)
            if entry is not None and entry.usable_from(loop):
                if entry.loop is None:
                    entry.loop = loop
                return entry.client

            if entry is not None and not entry.client.is_closed:
                logger.debug(
                    "Replacing pooled HTTP client bound to another event loop",
                    extra={"event": "pool_client_rebound", "origin": origin},
                )

            client = self._create_client(http2)
            self._clients[origin] = _PooledClient(client, loop)
            POOLED_CLIENTS.set(len(self._clients))
            logger.debug(
                "Created pooled HTTP client",
                extra={"event": "pool_client_created", "origin": origin, "http2": http2},
            )
            return client

    def get_transport(self, cfg: GuardConfig) -> HTTPTransport:
        """Bind a configuration onto the pooled client for its origin."""
        client = self.get_client(origin_of(cfg.base_url), http2=cfg.http2)
        return HTTPTransport(
            client,
            cfg.base_url,
            api_key=cfg.api_key.get_secret_value(),
            headers=cfg.headers,
            timeout=cfg.timeout_seconds,
        )

    async def aclose(self) -> None:
        """Close and forget every pooled client.

        Clients bound to an already closed event loop are only forgotten.
        """
        with self._lock:
            entries = list(self._clients.values())
            self._clients.clear()
            POOLED_CLIENTS.set(0)

        for entry in entries:
            if not entry.orphaned:
                await entry.client.aclose()

        if entries:
            logger.debug(
                "Closed pooled HTTP clients",
                extra={"event": "pool_closed", "client_count": len(entries)},
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, origin: str) -> bool:
        with self._lock:
            return origin in self._clients


_default_pool: Optional[TransportPool] = None
_default_pool_lock = threading.Lock()


def get_transport_pool() -> TransportPool:
    """Get the process-wide default pool, creating it on first use."""
    global _default_pool

    if _default_pool is None:
        with _default_pool_lock:
            # Double-check locking pattern
            if _default_pool is None:
                _default_pool = TransportPool()
    return _default_pool


async def reset_transport_pool() -> None:
    """Close and drop the default pool (intended for test teardown)."""
    global _default_pool

    with _default_pool_lock:
        pool = _default_pool
        _default_pool = None

    if pool is not None:
        await pool.aclose()
