"""
High-level helpers built on the anonymize/restore protocol.

wrap() runs one full cycle around a caller-supplied function, and
GuardSession validates a configuration once for many cycles.
"""

import inspect
from typing import Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from veily_guard.api.models import UsageMetrics
from veily_guard.config.settings import (
    ConfigInput,
    GuardConfig,
    OptionsInput,
    ensure_config,
    ensure_options,
)
from veily_guard.core.keys import KeyResolver
from veily_guard.core.protocol import (
    AnonymizeResult,
    GuardContext,
    anonymize_with_context,
    prepare_context,
)
from veily_guard.errors import ConfigurationError, ProtocolError
from veily_guard.logging.setup import get_logger
from veily_guard.metrics.collectors import PROTOCOL_ERRORS
from veily_guard.transport.http import HTTPTransport
from veily_guard.transport.pool import TransportPool, get_transport_pool

logger = get_logger(__name__)


METRICS_PATH = "/v1/metrics"

Caller = Callable[[str], Union[str, Awaitable[str]]]


async def _call(caller: Caller, safe_prompt: str) -> str:
    result = caller(safe_prompt)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _protect(ctx: GuardContext, prompt: str, caller: Caller, options: OptionsInput) -> str:
    result = await anonymize_with_context(ctx, prompt, options)
    output = await _call(caller, result.safe_prompt)
    return await result.restore(output)


def _check_wrap_args(prompt: object, caller: object) -> None:
    if not isinstance(prompt, str):
        raise ConfigurationError("prompt must be a string")
    if not callable(caller):
        raise ConfigurationError("caller must be callable")


async def wrap(
    prompt: str,
    caller: Caller,
    cfg: ConfigInput,
    options: OptionsInput = None,
    *,
    pool: Optional[TransportPool] = None,
    key_resolver: Optional[KeyResolver] = None,
) -> str:
    """Anonymize a prompt, run ``caller`` on the safe text, restore its output.

    ``caller`` may be a coroutine function or a plain function returning a
    string. Errors from any stage propagate unchanged.

    Args:
        prompt: Text that may contain PII.
        caller: Function receiving the safe prompt, e.g. an LLM call.
        cfg: GuardConfig or a mapping of its fields.
        options: AnonymizeOptions or a mapping such as ``{"ttl": 3600}``.
        pool: Transport pool; the process default when omitted.
        key_resolver: Key cache; the process default when omitted.

    Returns:
        The caller's output with original values restored.

    Raises:
        ConfigurationError: If prompt is not a string, caller is not
            callable, or cfg/options are invalid. No request is sent.

    Example:
        >>> async def echo(text):
        ...     return text
        >>> await wrap("Contact: juan.perez@example.com", echo, cfg)
        'Contact: juan.perez@example.com'
    """
    _check_wrap_args(prompt, caller)
    opts = ensure_options(options)

    ctx = await prepare_context(cfg, pool=pool, key_resolver=key_resolver)
    return await _protect(ctx, prompt, caller, opts)


async def _fetch_usage_metrics(transport: HTTPTransport) -> UsageMetrics:
    data = await transport.get_json(METRICS_PATH)
    try:
        return UsageMetrics.model_validate(data)
    except ValidationError:
        PROTOCOL_ERRORS.labels(reason="invalid_metrics_response").inc()
        raise ProtocolError(f"Invalid response from {METRICS_PATH}.") from None


async def fetch_usage_metrics(
    cfg: ConfigInput,
    *,
    pool: Optional[TransportPool] = None,
) -> UsageMetrics:
    """Fetch usage counters for the credential from ``GET /v1/metrics``.

    Raises:
        ConfigurationError: If the configuration is invalid.
        ProtocolError: If the response is not a metrics object.
        TransportError: If the request fails.
    """
    config = ensure_config(cfg)
    transport = (pool if pool is not None else get_transport_pool()).get_transport(config)
    return await _fetch_usage_metrics(transport)


class GuardSession:
    """A configuration validated once and reused for many cycles.

    Create one with create_session(); the overlay (and with it the inbound
    public key) is provisioned at that point.

    Example:
        >>> session = await create_session({"api_key": "vk_live_123"})
        >>> answer = await session.protect("Call +56 9 9876 5432", call_llm)
    """

    def __init__(self, ctx: GuardContext) -> None:
        self._ctx = ctx

    @property
    def config(self) -> GuardConfig:
        return self._ctx.config

    @property
    def encryption_enabled(self) -> bool:
        return self._ctx.encryption_enabled

    async def protect(self, prompt: str, caller: Caller, options: OptionsInput = None) -> str:
        """Same as wrap(), without re-validating the configuration."""
        _check_wrap_args(prompt, caller)
        return await _protect(self._ctx, prompt, caller, options)

    async def anonymize(self, prompt: str, options: OptionsInput = None) -> AnonymizeResult:
        """Same as anonymize(), without re-validating the configuration."""
        return await anonymize_with_context(self._ctx, prompt, options)

    async def usage_metrics(self) -> UsageMetrics:
        """Fetch usage counters for this session's credential."""
        return await _fetch_usage_metrics(self._ctx.transport)

    def __repr__(self) -> str:
        return (
            f"GuardSession(base_url={self.config.base_url!r}, "
            f"encryption_enabled={self.encryption_enabled})"
        )


async def create_session(
    cfg: ConfigInput,
    *,
    pool: Optional[TransportPool] = None,
    key_resolver: Optional[KeyResolver] = None,
) -> GuardSession:
    """Validate ``cfg`` once and return a GuardSession bound to it.

    Raises:
        ConfigurationError: If the configuration is invalid.
        KeyDiscoveryError: If the inbound public key response is unusable.
        TransportError: If key discovery fails on the network.
    """
    ctx = await prepare_context(cfg, pool=pool, key_resolver=key_resolver)
    logger.info(
        "Guard session created",
        extra={"event": "session_created", "encryption_enabled": ctx.encryption_enabled},
    )
    return GuardSession(ctx)
