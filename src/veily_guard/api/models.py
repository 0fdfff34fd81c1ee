"""
Pydantic models for the Veily Core wire protocol.

Field names are snake_case in Python and camelCase on the wire; always dump
with ``by_alias=True``. Text fields that may travel encrypted are typed as
``Union[str, EncryptableField]`` and told apart by the ``encrypted`` flag.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base model accepting both snake_case and camelCase input."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialize to a JSON-ready dict using wire field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Transit Encryption Models
# ============================================================================

class EncryptableField(WireModel):
    """An encrypted text value (RSA-OAEP, base64 ciphertext)."""

    value: str = Field(..., min_length=1, description="Base64 cipher text")
    encrypted: Literal[True] = Field(default=True, description="Always true")
    key_id: str = Field(..., alias="keyId", min_length=1, description="Key ID used for encryption")


TextOrEncrypted = Union[str, EncryptableField]


class InboundPublicKeyResponse(WireModel):
    """Response from GET /v1/transit-crypto/inbound-public-key."""

    key_id: str = Field(..., alias="keyId", min_length=1)
    public_key: str = Field(..., alias="publicKey", min_length=1)
    algorithm: Optional[str] = None
    hash_algorithm: Optional[str] = Field(None, alias="hashAlgorithm")


# ============================================================================
# Anonymize / Restore Models
# ============================================================================

class ReplacementStats(WireModel):
    """Replacement statistics reported by the anonymize endpoint."""

    replaced: int = Field(0, ge=0, description="Number of values replaced")
    types: list[str] = Field(default_factory=list, description="Distinct PII categories")


class AnonymizeRequest(WireModel):
    """Request body for POST /v1/anonymize."""

    prompt: TextOrEncrypted
    ttl: Optional[int] = Field(None, description="Mapping retention in seconds")


class AnonymizeResponse(WireModel):
    """Response body for POST /v1/anonymize."""

    safe_prompt: str = Field(..., alias="safePrompt", description="Anonymized prompt")
    mapping_id: str = Field(..., alias="mappingId", min_length=1, description="Correlation token")
    stats: Optional[ReplacementStats] = None


class RestoreRequest(WireModel):
    """Request body for POST /v1/restore.

    No partner key id is ever sent: the server must answer with the
    tenant's inbound key.
    """

    mapping_id: str = Field(..., alias="mappingId")
    output: TextOrEncrypted
    encrypt_response: Optional[bool] = Field(None, alias="encryptResponse")


class RestoreResponse(WireModel):
    """Response body for POST /v1/restore."""

    output: TextOrEncrypted
    encrypted: Optional[bool] = None
    key_id: Optional[str] = Field(None, alias="keyId")
    algorithm: Optional[str] = None
    hash_algorithm: Optional[str] = Field(None, alias="hashAlgorithm")

    @property
    def is_encrypted(self) -> bool:
        """True if either the envelope or the output field claims encryption."""
        return self.encrypted is True or isinstance(self.output, EncryptableField)


# ============================================================================
# Misc Models
# ============================================================================

class UsageMetrics(WireModel):
    """Response body for GET /v1/metrics."""

    total_cycles: int = Field(0, alias="totalCycles")
    successful_deliveries: int = Field(0, alias="successfulDeliveries")
    completed_cycles: int = Field(0, alias="completedCycles")
    total_pii_replaced: int = Field(0, alias="totalPiiReplaced")
    pii_types: list[str] = Field(default_factory=list, alias="piiTypes")


class ErrorResponse(WireModel):
    """Error body returned with HTTP status >= 400."""

    message: Optional[str] = None
    error: Optional[str] = None
