"""
veily-guard: keep PII out of LLM prompts

Client for Veily Core. Prompts are anonymized before they reach an LLM and
the original values are restored in the LLM's answer, optionally with
RSA-OAEP transit encryption of both payloads.
"""

__version__ = "1.1.0"

from veily_guard.config import AnonymizeOptions, GuardConfig, load_config_from_yaml
from veily_guard.core import (
    AnonymizeResult,
    GuardSession,
    RestoreHandle,
    anonymize,
    create_session,
    fetch_usage_metrics,
    wrap,
)
from veily_guard.crypto import (
    create_encryptable_field,
    decrypt_with_private_key,
    encrypt_with_public_key,
    validate_private_key,
    validate_public_key,
)
from veily_guard.errors import (
    ConfigurationError,
    CryptoError,
    DecryptionError,
    EncryptionError,
    GuardError,
    HTTPStatusError,
    InvalidKeyError,
    KeyDiscoveryError,
    KeyMismatchError,
    ProtocolError,
    TransportConnectionError,
    TransportError,
    TransportTimeoutError,
)
from veily_guard.transport import reset_transport_pool

__all__ = [
    "anonymize",
    "wrap",
    "create_session",
    "fetch_usage_metrics",
    "AnonymizeResult",
    "RestoreHandle",
    "GuardSession",
    "GuardConfig",
    "AnonymizeOptions",
    "load_config_from_yaml",
    "reset_transport_pool",
    "encrypt_with_public_key",
    "decrypt_with_private_key",
    "validate_public_key",
    "validate_private_key",
    "create_encryptable_field",
    "GuardError",
    "ConfigurationError",
    "ProtocolError",
    "KeyMismatchError",
    "KeyDiscoveryError",
    "TransportError",
    "TransportTimeoutError",
    "TransportConnectionError",
    "HTTPStatusError",
    "CryptoError",
    "InvalidKeyError",
    "EncryptionError",
    "DecryptionError",
]
