"""Exception hierarchy for veily-guard.

Every error raised by this package derives from GuardError. Messages are
kept free of prompts, decrypted values, credentials and request headers.
"""

from typing import Optional


class GuardError(Exception):
    """Base exception for all veily-guard errors."""


class ConfigurationError(GuardError, ValueError):
    """Raised when configuration or call arguments are invalid.

    Always raised before any network call is attempted.
    """


class ProtocolError(GuardError):
    """Raised when a response from Veily Core violates the protocol."""


class KeyMismatchError(ProtocolError):
    """Raised when an encrypted response names an unexpected key id."""

    def __init__(self, expected: Optional[str], received: Optional[str]) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Key ID mismatch. Expected {expected}, got {received}")


class TransportError(GuardError):
    """Base exception for transport-level failures."""


class TransportTimeoutError(TransportError):
    """Raised when a request exceeds the configured timeout."""


class TransportConnectionError(TransportError):
    """Raised when the connection to Veily Core fails."""


class HTTPStatusError(TransportError):
    """Raised when Veily Core answers with a status code >= 400."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP error {status_code}: {message}")


class CryptoError(GuardError):
    """Base exception for transit encryption failures."""


class InvalidKeyError(CryptoError, ValueError):
    """Raised when key material is not in the expected PEM format."""


class EncryptionError(CryptoError):
    """Raised when encryption fails."""


class DecryptionError(CryptoError):
    """Raised when decryption fails. No partial plaintext is ever returned."""


class KeyDiscoveryError(ProtocolError, ConfigurationError):
    """Raised when the inbound public key endpoint returns unusable data.

    Both a protocol violation and a fatal configuration problem: the
    encryption overlay cannot be provisioned for this credential.
    """
