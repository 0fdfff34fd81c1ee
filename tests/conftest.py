"""Pytest fixtures and configuration."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from veily_guard.core.keys import KeyResolver
from veily_guard.crypto import decrypt_with_private_key, encrypt_with_public_key
from veily_guard.transport.pool import TransportPool


TEST_API_KEY = "vk_test_0123456789abcdef"
TEST_BASE_URL = "https://core.veily.test"
TEST_KEY_ID = "test-key-id"

CONTACT_PROMPT = "Contact: juan.perez@example.com, +56 9 9876 5432, Juan Pérez"

# (original, fake, type) substitutions applied by the fake service
FAKE_REPLACEMENTS = [
    ("juan.perez@example.com", "fake.user@example.com", "email"),
    ("Juan Pérez", "Fake Name", "name"),
    ("+56 9 9876 5432", "+XX X XXXX XXXX", "phone"),
]


@dataclass(frozen=True)
class KeyPair:
    private_pem: str
    public_pem: str


def generate_key_pair() -> KeyPair:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return KeyPair(private_pem=private_pem, public_pem=public_pem)


@dataclass
class FakeVeilyCore:
    """In-memory stand-in for Veily Core, served through httpx.MockTransport.

    Replaces the FAKE_REPLACEMENTS values on anonymize and reverts them on
    restore. Prompts sent as encrypted fields are decrypted with the tenant
    key pair, and restore responses are encrypted when asked to.
    """

    keys: KeyPair
    api_key: str = TEST_API_KEY
    key_id: str = TEST_KEY_ID
    requests: list = field(default_factory=list)
    mappings: dict = field(default_factory=dict)
    # path -> callable(request) returning an httpx.Response, for odd replies
    overrides: dict = field(default_factory=dict)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.overrides:
            return self.overrides[path](request)

        if request.headers.get("authorization") != f"Bearer {self.api_key}":
            return httpx.Response(401, json={"message": "Unauthorized"})

        if request.method == "GET" and path == "/v1/transit-crypto/inbound-public-key":
            return httpx.Response(
                200,
                json={
                    "keyId": self.key_id,
                    "algorithm": "RSA-OAEP",
                    "hashAlgorithm": "SHA-256",
                    "publicKey": self.keys.public_pem,
                },
            )
        if request.method == "POST" and path.endswith("/anonymize"):
            return self._anonymize(json.loads(request.content))
        if request.method == "POST" and path.endswith("/restore"):
            return self._restore(json.loads(request.content))
        if request.method == "GET" and path == "/v1/metrics":
            return httpx.Response(
                200,
                json={
                    "totalCycles": len(self.mappings),
                    "successfulDeliveries": len(self.mappings),
                    "completedCycles": len(self.paths("/v1/restore")),
                    "totalPiiReplaced": 3 * len(self.mappings),
                    "piiTypes": ["email", "name", "phone"],
                },
            )
        return httpx.Response(404, json={"error": "Not found"})

    def _anonymize(self, body: dict) -> httpx.Response:
        ttl = body.get("ttl")
        if ttl is not None and not 0 < ttl <= 86400:
            return httpx.Response(400, json={"message": "ttl must be between 1 and 86400"})

        prompt = body["prompt"]
        if isinstance(prompt, dict):
            prompt = decrypt_with_private_key(prompt["value"], self.keys.private_pem)

        replaced = []
        for original, fake, pii_type in FAKE_REPLACEMENTS:
            if original in prompt:
                prompt = prompt.replace(original, fake)
                replaced.append((original, fake, pii_type))

        mapping_id = f"map_{len(self.mappings) + 1}"
        self.mappings[mapping_id] = replaced
        return httpx.Response(
            200,
            json={
                "safePrompt": prompt,
                "mappingId": mapping_id,
                "stats": {
                    "replaced": len(replaced),
                    "types": sorted({pii_type for _, _, pii_type in replaced}),
                },
            },
        )

    def _restore(self, body: dict) -> httpx.Response:
        replaced = self.mappings.get(body["mappingId"])
        if replaced is None:
            return httpx.Response(404, json={"message": "Mapping not found or expired"})

        output = body["output"]
        for original, fake, _ in replaced:
            output = output.replace(fake, original)

        if body.get("encryptResponse"):
            cipher = encrypt_with_public_key(output, self.keys.public_pem)
            return httpx.Response(
                200,
                json={
                    "output": {"value": cipher, "encrypted": True, "keyId": self.key_id},
                    "encrypted": True,
                    "keyId": self.key_id,
                    "algorithm": "RSA-OAEP",
                    "hashAlgorithm": "SHA-256",
                },
            )
        return httpx.Response(200, json={"output": output})

    def paths(self, path: str) -> list[httpx.Request]:
        """Recorded requests for one path."""
        return [request for request in self.requests if request.url.path == path]

    def body(self, request: httpx.Request) -> Any:
        return json.loads(request.content)


def make_pool(handler: Callable[[httpx.Request], Any]) -> TransportPool:
    """Pool whose clients all answer through ``handler``."""
    return TransportPool(transport=httpx.MockTransport(handler))


@pytest.fixture(scope="session")
def key_pair() -> KeyPair:
    """Tenant RSA key pair (2048-bit, PKCS#8 / SPKI PEM)."""
    return generate_key_pair()


@pytest.fixture(scope="session")
def other_key_pair() -> KeyPair:
    """An unrelated key pair for cross-key tests."""
    return generate_key_pair()


@pytest.fixture
def fake_core(key_pair) -> FakeVeilyCore:
    return FakeVeilyCore(keys=key_pair)


@pytest.fixture
def pool(fake_core) -> TransportPool:
    return make_pool(fake_core.handler)


@pytest.fixture
def key_resolver() -> KeyResolver:
    return KeyResolver()


@pytest.fixture
def cfg() -> dict:
    """Plain configuration without transit encryption."""
    return {"api_key": TEST_API_KEY, "base_url": TEST_BASE_URL}


@pytest.fixture
def encrypted_cfg(key_pair) -> dict:
    """Configuration with a private key, enabling transit encryption."""
    return {
        "api_key": TEST_API_KEY,
        "base_url": TEST_BASE_URL,
        "private_key": key_pair.private_pem,
    }


@pytest.fixture(autouse=True)
def clear_core_url(monkeypatch):
    """Keep VEILY_CORE_URL from the environment out of the tests."""
    monkeypatch.delenv("VEILY_CORE_URL", raising=False)
