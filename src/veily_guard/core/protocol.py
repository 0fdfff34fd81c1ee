"""
Anonymize/restore correlation protocol.

anonymize() sends a prompt to Veily Core and returns the safe prompt plus a
RestoreHandle bound to the server-issued mapping id. The handle later sends
the LLM output back so the original values are put back in place.

    prompt ──► [seal] ──► POST /v1/anonymize ──► safePrompt + mappingId
                                                          │
    restored ◄── [open] ◄── POST /v1/restore ◄── llm_output

The mapping id only lives inside the handle; it is never persisted or
logged. Calling restore() more than once is allowed, and whether the second
call succeeds is up to the server.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from veily_guard.api.models import (
    AnonymizeRequest,
    AnonymizeResponse,
    ReplacementStats,
    RestoreRequest,
    RestoreResponse,
)
from veily_guard.config.settings import (
    ConfigInput,
    GuardConfig,
    OptionsInput,
    ensure_config,
    ensure_options,
)
from veily_guard.core.keys import KeyResolver, get_key_resolver
from veily_guard.core.overlay import EncryptedOverlay, PlaintextOverlay, TransitOverlay
from veily_guard.errors import ConfigurationError, ProtocolError
from veily_guard.logging.setup import get_logger
from veily_guard.metrics.collectors import PROTOCOL_ERRORS
from veily_guard.transport.http import HTTPTransport
from veily_guard.transport.pool import TransportPool, get_transport_pool

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuardContext:
    """A validated configuration bound to its transport and overlay."""

    config: GuardConfig
    transport: HTTPTransport
    overlay: TransitOverlay

    @property
    def encryption_enabled(self) -> bool:
        return self.overlay.active


async def prepare_context(
    cfg: ConfigInput,
    *,
    pool: Optional[TransportPool] = None,
    key_resolver: Optional[KeyResolver] = None,
) -> GuardContext:
    """Validate a configuration and provision its transport and overlay.

    With a private key configured, the inbound public key is resolved here
    (once per credential) so that every later call can encrypt.

    Args:
        cfg: GuardConfig or a mapping of its fields.
        pool: Transport pool; the process default when omitted.
        key_resolver: Key cache; the process default when omitted.

    Returns:
        Ready-to-use GuardContext.

    Raises:
        ConfigurationError: If the configuration is invalid.
        KeyDiscoveryError: If the inbound public key response is unusable.
        TransportError: If key discovery fails on the network.
    """
    config = ensure_config(cfg)
    transport = (pool if pool is not None else get_transport_pool()).get_transport(config)

    overlay: TransitOverlay
    if config.private_key is not None:
        resolver = key_resolver if key_resolver is not None else get_key_resolver()
        resolved = await resolver.resolve(config.api_key.get_secret_value(), transport)
        overlay = EncryptedOverlay(resolved, config.private_key)
    else:
        overlay = PlaintextOverlay()

    return GuardContext(config=config, transport=transport, overlay=overlay)


@dataclass(frozen=True)
class RestoreHandle:
    """Restore capability for one anonymize call.

    Bundles the mapping id with everything needed to restore: the transport,
    the restore path and the overlay that decrypts the response.
    """

    mapping_id: str
    transport: HTTPTransport
    restore_path: str
    overlay: TransitOverlay

    async def restore(self, llm_output: str) -> str:
        """Send LLM output back to Veily Core and return the restored text.

        Args:
            llm_output: Text produced from the safe prompt.

        Returns:
            The text with original values put back.

        Raises:
            ConfigurationError: If llm_output is not a string.
            ProtocolError: If the response is malformed, encrypted without a
                private key, or encrypted with an unexpected key id.
            DecryptionError: If an encrypted output cannot be decrypted.
            TransportError: If the request fails.
        """
        if not isinstance(llm_output, str):
            raise ConfigurationError("llm_output must be a string")

        request = RestoreRequest(
            mapping_id=self.mapping_id,
            output=llm_output,
            encrypt_response=self.overlay.active or None,
        )
        data = await self.transport.post_json(self.restore_path, request.to_wire())

        try:
            response = RestoreResponse.model_validate(data)
        except ValidationError:
            PROTOCOL_ERRORS.labels(reason="invalid_restore_response").inc()
            raise ProtocolError(
                f"Invalid response from {self.restore_path}. Missing output."
            ) from None

        restored = self.overlay.open(response)

        logger.info(
            "Restore completed",
            extra={
                "event": "restore_completed",
                "encrypted": response.is_encrypted,
                "output_length": len(restored),
            },
        )
        return restored

    def __repr__(self) -> str:
        return f"RestoreHandle(restore_path={self.restore_path!r}, overlay={self.overlay!r})"


@dataclass(frozen=True)
class AnonymizeResult:
    """Safe prompt plus the handle that restores its eventual output.

    Example:
        >>> result = await anonymize("Email juan@example.com", cfg)
        >>> answer = await call_llm(result.safe_prompt)
        >>> await result.restore(answer)
    """

    safe_prompt: str
    handle: RestoreHandle
    stats: Optional[ReplacementStats] = None

    @property
    def mapping_id(self) -> str:
        return self.handle.mapping_id

    async def restore(self, llm_output: str) -> str:
        """Shortcut for ``self.handle.restore(llm_output)``."""
        return await self.handle.restore(llm_output)

    def __repr__(self) -> str:
        return f"AnonymizeResult(stats={self.stats!r}, handle={self.handle!r})"


async def anonymize_with_context(
    ctx: GuardContext,
    prompt: str,
    options: OptionsInput = None,
) -> AnonymizeResult:
    """Anonymize a prompt using an already prepared context.

    Raises:
        ConfigurationError: If prompt is not a string or options are invalid.
        ProtocolError: If the response lacks safePrompt or mappingId.
        EncryptionError: If the prompt is too large to encrypt.
        TransportError: If the request fails.
    """
    if not isinstance(prompt, str):
        raise ConfigurationError("prompt must be a string")
    opts = ensure_options(options)

    anonymize_path = ctx.config.anonymize_path
    request = AnonymizeRequest(prompt=ctx.overlay.seal(prompt), ttl=opts.ttl)
    data = await ctx.transport.post_json(anonymize_path, request.to_wire())

    try:
        response = AnonymizeResponse.model_validate(data)
    except ValidationError:
        PROTOCOL_ERRORS.labels(reason="invalid_anonymize_response").inc()
        raise ProtocolError(
            f"Invalid response from {anonymize_path}. Missing safePrompt or mappingId."
        ) from None

    logger.info(
        "Anonymize completed",
        extra={
            "event": "anonymize_completed",
            "encrypted": ctx.overlay.active,
            "ttl": opts.ttl,
            "replaced": response.stats.replaced if response.stats else None,
            "pii_types": response.stats.types if response.stats else None,
        },
    )

    handle = RestoreHandle(
        mapping_id=response.mapping_id,
        transport=ctx.transport,
        restore_path=ctx.config.restore_path,
        overlay=ctx.overlay,
    )
    return AnonymizeResult(safe_prompt=response.safe_prompt, handle=handle, stats=response.stats)


async def anonymize(
    prompt: str,
    cfg: ConfigInput,
    options: OptionsInput = None,
    *,
    pool: Optional[TransportPool] = None,
    key_resolver: Optional[KeyResolver] = None,
) -> AnonymizeResult:
    """Anonymize a prompt and return the safe prompt with its restore handle.

    All local validation (prompt type, configuration, options) happens
    before any request is sent.

    Args:
        prompt: Text that may contain PII.
        cfg: GuardConfig or a mapping of its fields.
        options: AnonymizeOptions or a mapping such as ``{"ttl": 3600}``.
        pool: Transport pool; the process default when omitted.
        key_resolver: Key cache; the process default when omitted.

    Returns:
        AnonymizeResult with safe_prompt, stats and restore().

    Raises:
        ConfigurationError: On invalid prompt, configuration or options.
        ProtocolError: If Veily Core answers with an unusable response.
        TransportError: If a request fails.
    """
    if not isinstance(prompt, str):
        raise ConfigurationError("prompt must be a string")
    ensure_options(options)

    ctx = await prepare_context(cfg, pool=pool, key_resolver=key_resolver)
    return await anonymize_with_context(ctx, prompt, options)
