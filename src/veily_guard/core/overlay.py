"""
Transit encryption overlay strategies.

The overlay is chosen once, when a configuration is prepared: without a
private key every payload travels as plain text (PlaintextOverlay); with one,
prompts are sealed with the tenant's inbound public key and encrypted restore
responses are opened with the caller's private key (EncryptedOverlay).
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import SecretStr

from veily_guard.api.models import EncryptableField, RestoreResponse, TextOrEncrypted
from veily_guard.core.keys import ResolvedKey, check_declared_algorithm
from veily_guard.crypto import (
    ALGORITHM,
    HASH_ALGORITHM,
    create_encryptable_field,
    decrypt_with_private_key,
    encrypt_with_public_key,
)
from veily_guard.errors import KeyDiscoveryError, KeyMismatchError, ProtocolError
from veily_guard.logging.setup import get_logger
from veily_guard.metrics.collectors import PROTOCOL_ERRORS

logger = get_logger(__name__)


class TransitOverlay(ABC):
    """Strategy applied to outbound prompts and inbound restore responses."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """True when payloads are encrypted in transit."""

    @property
    def key_id(self) -> Optional[str]:
        return None

    @abstractmethod
    def seal(self, text: str) -> TextOrEncrypted:
        """Prepare outbound text for the wire."""

    @abstractmethod
    def open(self, response: RestoreResponse) -> str:
        """Extract plain text from a restore response.

        Raises:
            ProtocolError: If the response cannot be handled by this overlay.
            DecryptionError: If an encrypted output cannot be decrypted.
        """


class PlaintextOverlay(TransitOverlay):
    """No-op overlay used when no private key is configured."""

    @property
    def active(self) -> bool:
        return False

    def seal(self, text: str) -> TextOrEncrypted:
        return text

    def open(self, response: RestoreResponse) -> str:
        if response.is_encrypted:
            PROTOCOL_ERRORS.labels(reason="missing_private_key").inc()
            raise ProtocolError(
                "Received encrypted response but no private_key provided for decryption"
            )
        return response.output

    def __repr__(self) -> str:
        return "PlaintextOverlay()"


class EncryptedOverlay(TransitOverlay):
    """RSA-OAEP overlay bound to one resolved inbound key and a private key.

    Example:
        >>> overlay = EncryptedOverlay(resolved, cfg.private_key)
        >>> field = overlay.seal("Contact: jane@example.com")
        >>> field.key_id == resolved.key_id
        True
    """

    def __init__(self, resolved: ResolvedKey, private_key: SecretStr) -> None:
        self._resolved = resolved
        self._private_key = private_key

    @property
    def active(self) -> bool:
        return True

    @property
    def key_id(self) -> str:
        return self._resolved.key_id

    def seal(self, text: str) -> EncryptableField:
        cipher = encrypt_with_public_key(text, self._resolved.public_key)
        return create_encryptable_field(cipher, self._resolved.key_id)

    def open(self, response: RestoreResponse) -> str:
        if not response.is_encrypted:
            # Server chose not to encrypt; the plain output is still valid
            return response.output

        output = response.output
        if not isinstance(output, EncryptableField):
            PROTOCOL_ERRORS.labels(reason="malformed_encrypted_output").inc()
            raise ProtocolError(
                "Invalid encrypted response: output is not an encrypted field"
            )

        for received in (response.key_id, output.key_id):
            if received is not None and received != self.key_id:
                PROTOCOL_ERRORS.labels(reason="key_mismatch").inc()
                logger.error(
                    "Restore response encrypted with unexpected key",
                    extra={
                        "event": "key_mismatch",
                        "expected_key_id": self.key_id,
                        "received_key_id": received,
                    },
                )
                raise KeyMismatchError(self.key_id, received)

        try:
            check_declared_algorithm(response.algorithm, ALGORITHM, "algorithm")
            check_declared_algorithm(response.hash_algorithm, HASH_ALGORITHM, "hash algorithm")
        except KeyDiscoveryError as exc:
            PROTOCOL_ERRORS.labels(reason="unsupported_algorithm").inc()
            raise ProtocolError(str(exc)) from None

        return decrypt_with_private_key(output.value, self._private_key.get_secret_value())

    def __repr__(self) -> str:
        return f"EncryptedOverlay(key_id={self.key_id!r})"
