"""Core protocol for veily-guard."""

from veily_guard.core.keys import (
    KeyResolver,
    ResolvedKey,
    get_key_resolver,
    reset_key_resolver,
)
from veily_guard.core.overlay import EncryptedOverlay, PlaintextOverlay, TransitOverlay
from veily_guard.core.protocol import (
    AnonymizeResult,
    GuardContext,
    RestoreHandle,
    anonymize,
    anonymize_with_context,
    prepare_context,
)
from veily_guard.core.session import (
    GuardSession,
    create_session,
    fetch_usage_metrics,
    wrap,
)

__all__ = [
    "KeyResolver",
    "ResolvedKey",
    "get_key_resolver",
    "reset_key_resolver",
    "TransitOverlay",
    "PlaintextOverlay",
    "EncryptedOverlay",
    "GuardContext",
    "RestoreHandle",
    "AnonymizeResult",
    "prepare_context",
    "anonymize",
    "anonymize_with_context",
    "GuardSession",
    "create_session",
    "fetch_usage_metrics",
    "wrap",
]
