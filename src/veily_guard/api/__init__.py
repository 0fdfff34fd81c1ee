"""Wire models for the Veily Core HTTP API."""

from veily_guard.api.models import (
    AnonymizeRequest,
    AnonymizeResponse,
    EncryptableField,
    ErrorResponse,
    InboundPublicKeyResponse,
    ReplacementStats,
    RestoreRequest,
    RestoreResponse,
    UsageMetrics,
)

__all__ = [
    "EncryptableField",
    "ReplacementStats",
    "AnonymizeRequest",
    "AnonymizeResponse",
    "RestoreRequest",
    "RestoreResponse",
    "InboundPublicKeyResponse",
    "UsageMetrics",
    "ErrorResponse",
]
