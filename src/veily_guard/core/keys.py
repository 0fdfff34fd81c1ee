"""
Inbound public key discovery for transit encryption.

When a private key is configured, prompts are encrypted with the tenant's
inbound public key. The key and its id are fetched once per credential from
Veily Core and cached for the lifetime of the resolver.
"""

import asyncio
import functools
import threading
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from veily_guard.api.models import InboundPublicKeyResponse
from veily_guard.crypto import ALGORITHM, HASH_ALGORITHM, validate_public_key
from veily_guard.errors import KeyDiscoveryError
from veily_guard.logging.setup import get_logger
from veily_guard.metrics.collectors import KEY_RESOLUTIONS, PROTOCOL_ERRORS
from veily_guard.transport.http import HTTPTransport
from veily_guard.utils.text import fingerprint_secret

logger = get_logger(__name__)


INBOUND_PUBLIC_KEY_PATH = "/v1/transit-crypto/inbound-public-key"


@dataclass(frozen=True)
class ResolvedKey:
    """Inbound key material for one credential."""

    key_id: str
    public_key: str
    algorithm: str = ALGORITHM
    hash_algorithm: str = HASH_ALGORITHM

    def __repr__(self) -> str:
        return f"ResolvedKey(key_id={self.key_id!r}, algorithm={self.algorithm!r})"


def _squash(name: str) -> str:
    return name.replace("-", "").replace("_", "").upper()


def check_declared_algorithm(declared: Optional[str], expected: str, name: str) -> None:
    """Reject a server-declared algorithm that differs from ours.

    Absent declarations are accepted; spelling variants such as ``sha256``
    and ``SHA-256`` compare equal.

    Raises:
        KeyDiscoveryError: If the declared algorithm is a different one.
    """
    if declared is None:
        return
    if _squash(declared) != _squash(expected):
        raise KeyDiscoveryError(f"Unsupported {name} {declared!r}; expected {expected}")


class KeyResolver:
    """Cache of inbound public keys keyed by credential.

    Entries never expire; build a new resolver (or call invalidate()) to
    pick up a rotated key.

    Concurrent first lookups for the same credential share one in-flight
    fetch. Failed fetches are not cached, so the next caller tries again.

    Example:
        >>> resolver = KeyResolver()
        >>> key = await resolver.resolve("vk_live_123", transport)
        >>> key.key_id
        'tenant-123-inbound-456'
    """

    def __init__(self, path: str = INBOUND_PUBLIC_KEY_PATH) -> None:
        self.path = path
        self._cache: dict[str, ResolvedKey] = {}
        self._pending: dict[tuple[asyncio.AbstractEventLoop, str], asyncio.Task] = {}
        self._lock = threading.Lock()

    def get_cached(self, credential: str) -> Optional[ResolvedKey]:
        """Return the cached key for a credential without any I/O."""
        with self._lock:
            return self._cache.get(credential)

    async def resolve(self, credential: str, transport: HTTPTransport) -> ResolvedKey:
        """Return the inbound key for ``credential``, fetching it if needed.

        Args:
            credential: The bearer credential the key belongs to.
            transport: Transport bound to the same credential.

        Returns:
            The resolved key material.

        Raises:
            KeyDiscoveryError: If the discovery response is unusable.
            TransportError: If the discovery request fails.
        """
        loop = asyncio.get_running_loop()
        pending_key = (loop, credential)

        with self._lock:
            cached = self._cache.get(credential)
            if cached is not None:
                KEY_RESOLUTIONS.labels(source="cache").inc()
                return cached

            task = self._pending.get(pending_key)
            if task is None or task.done():
                task = loop.create_task(self._fetch(credential, transport))
                self._pending[pending_key] = task
                task.add_done_callback(functools.partial(self._forget, pending_key))

        # Shielded so one cancelled waiter does not abort the shared fetch
        return await asyncio.shield(task)

    def _forget(self, pending_key: tuple, task: asyncio.Task) -> None:
        with self._lock:
            if self._pending.get(pending_key) is task:
                del self._pending[pending_key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves
            task.exception()

    async def _fetch(self, credential: str, transport: HTTPTransport) -> ResolvedKey:
        data = await transport.get_json(self.path)

        if not isinstance(data, dict):
            PROTOCOL_ERRORS.labels(reason="invalid_key_response").inc()
            raise KeyDiscoveryError(f"Invalid response from {self.path}. Expected a JSON object.")

        try:
            response = InboundPublicKeyResponse.model_validate(data)
        except ValidationError:
            PROTOCOL_ERRORS.labels(reason="invalid_key_response").inc()
            raise KeyDiscoveryError(
                f"Invalid response from {self.path}. Missing publicKey or keyId."
            ) from None

        if not validate_public_key(response.public_key):
            PROTOCOL_ERRORS.labels(reason="invalid_public_key").inc()
            raise KeyDiscoveryError(
                "Invalid public key format received from API. Expected PEM format."
            )

        check_declared_algorithm(response.algorithm, ALGORITHM, "algorithm")
        check_declared_algorithm(response.hash_algorithm, HASH_ALGORITHM, "hash algorithm")

        resolved = ResolvedKey(key_id=response.key_id, public_key=response.public_key)

        with self._lock:
            self._cache[credential] = resolved

        KEY_RESOLUTIONS.labels(source="network").inc()
        logger.info(
            "Inbound public key resolved",
            extra={
                "event": "key_resolved",
                "key_id": resolved.key_id,
                "credential": fingerprint_secret(credential),
            },
        )
        return resolved

    def invalidate(self, credential: Optional[str] = None) -> None:
        """Drop one cached key, or all of them when credential is None."""
        with self._lock:
            if credential is None:
                self._cache.clear()
            else:
                self._cache.pop(credential, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, credential: str) -> bool:
        with self._lock:
            return credential in self._cache


_default_resolver: Optional[KeyResolver] = None
_default_resolver_lock = threading.Lock()


def get_key_resolver() -> KeyResolver:
    """Get the process-wide default resolver, creating it on first use."""
    global _default_resolver

    if _default_resolver is None:
        with _default_resolver_lock:
            if _default_resolver is None:
                _default_resolver = KeyResolver()
    return _default_resolver


def reset_key_resolver() -> None:
    """Drop the default resolver and its cache (intended for tests)."""
    global _default_resolver

    with _default_resolver_lock:
        _default_resolver = None
