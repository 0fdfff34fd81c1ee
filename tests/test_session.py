"""Tests for wrap(), create_session() and usage metrics."""

import asyncio

import httpx
import pytest

from conftest import CONTACT_PROMPT, TEST_API_KEY
from veily_guard.api.models import UsageMetrics
from veily_guard.core.keys import INBOUND_PUBLIC_KEY_PATH
from veily_guard.core.session import GuardSession, create_session, fetch_usage_metrics, wrap
from veily_guard.errors import ConfigurationError, HTTPStatusError, ProtocolError


async def echo(text):
    return text


class TestWrap:
    """Tests for wrap()."""

    @pytest.mark.asyncio
    async def test_echo_returns_original(self, cfg, pool, key_resolver, fake_core):
        restored = await wrap(CONTACT_PROMPT, echo, cfg, pool=pool, key_resolver=key_resolver)

        assert restored == CONTACT_PROMPT
        assert [request.url.path for request in fake_core.requests] == [
            "/v1/anonymize",
            "/v1/restore",
        ]

    @pytest.mark.asyncio
    async def test_echo_returns_original_encrypted(
        self, encrypted_cfg, pool, key_resolver, fake_core
    ):
        restored = await wrap(
            CONTACT_PROMPT, echo, encrypted_cfg, pool=pool, key_resolver=key_resolver
        )

        assert restored == CONTACT_PROMPT

    @pytest.mark.asyncio
    async def test_caller_sees_only_safe_prompt(self, cfg, pool, key_resolver):
        seen = []

        async def llm(text):
            seen.append(text)
            return f"Hello Fake Name, I saw: {text}"

        restored = await wrap(CONTACT_PROMPT, llm, cfg, pool=pool, key_resolver=key_resolver)

        assert "juan.perez@example.com" not in seen[0]
        assert restored == f"Hello Juan Pérez, I saw: {CONTACT_PROMPT}"

    @pytest.mark.asyncio
    async def test_sync_caller(self, cfg, pool, key_resolver):
        restored = await wrap(CONTACT_PROMPT, lambda text: text, cfg, pool=pool, key_resolver=key_resolver)
        assert restored == CONTACT_PROMPT

    @pytest.mark.asyncio
    async def test_options_forwarded(self, cfg, pool, key_resolver, fake_core):
        await wrap("hi", echo, cfg, {"ttl": 60}, pool=pool, key_resolver=key_resolver)

        assert fake_core.body(fake_core.paths("/v1/anonymize")[0])["ttl"] == 60

    @pytest.mark.asyncio
    async def test_non_string_prompt_sends_nothing(self, cfg, pool, key_resolver, fake_core):
        with pytest.raises(ConfigurationError, match="prompt must be a string"):
            await wrap(123, echo, cfg, pool=pool, key_resolver=key_resolver)

        assert fake_core.requests == []

    @pytest.mark.asyncio
    async def test_non_callable_caller(self, cfg, pool, key_resolver, fake_core):
        with pytest.raises(ConfigurationError, match="caller must be callable"):
            await wrap("hi", "not callable", cfg, pool=pool, key_resolver=key_resolver)

        assert fake_core.requests == []

    @pytest.mark.asyncio
    async def test_caller_error_propagates_unchanged(self, cfg, pool, key_resolver, fake_core):
        class LLMDown(Exception):
            pass

        async def failing(text):
            raise LLMDown("upstream unavailable")

        with pytest.raises(LLMDown, match="upstream unavailable"):
            await wrap("hi", failing, cfg, pool=pool, key_resolver=key_resolver)

        assert fake_core.paths("/v1/restore") == []

    @pytest.mark.asyncio
    async def test_anonymize_error_propagates(self, cfg, pool, key_resolver, fake_core):
        fake_core.overrides["/v1/anonymize"] = lambda request: httpx.Response(
            500, json={"message": "boom"}
        )

        with pytest.raises(HTTPStatusError, match="boom"):
            await wrap("hi", echo, cfg, pool=pool, key_resolver=key_resolver)

    @pytest.mark.asyncio
    async def test_concurrent_cycles_are_independent(self, cfg, pool, key_resolver, fake_core):
        prompts = [f"Ticket {i}: Juan Pérez" for i in range(5)]

        results = await asyncio.gather(
            *(wrap(prompt, echo, cfg, pool=pool, key_resolver=key_resolver) for prompt in prompts)
        )

        assert results == prompts
        assert len(fake_core.mappings) == 5

    @pytest.mark.asyncio
    async def test_empty_injected_registries_are_used(
        self, monkeypatch, encrypted_cfg, pool, key_resolver, fake_core
    ):
        def no_default():
            raise AssertionError("process default used instead of the injected one")

        monkeypatch.setattr("veily_guard.core.protocol.get_transport_pool", no_default)
        monkeypatch.setattr("veily_guard.core.protocol.get_key_resolver", no_default)
        monkeypatch.setattr("veily_guard.core.session.get_transport_pool", no_default)
        assert len(pool) == 0
        assert len(key_resolver) == 0

        restored = await wrap(
            CONTACT_PROMPT, echo, encrypted_cfg, pool=pool, key_resolver=key_resolver
        )
        await fetch_usage_metrics(encrypted_cfg, pool=pool)

        assert restored == CONTACT_PROMPT
        assert len(pool) == 1
        assert TEST_API_KEY in key_resolver
        assert len(fake_core.paths(INBOUND_PUBLIC_KEY_PATH)) == 1
        assert len(fake_core.paths("/v1/metrics")) == 1

    @pytest.mark.asyncio
    async def test_invalid_ttl_rejected_before_key_discovery(
        self, encrypted_cfg, pool, key_resolver, fake_core
    ):
        with pytest.raises(ConfigurationError, match="Invalid options"):
            await wrap("hi", echo, encrypted_cfg, {"ttl": 0}, pool=pool, key_resolver=key_resolver)

        assert fake_core.requests == []


class TestGuardSession:
    """Tests for create_session() and GuardSession."""

    @pytest.mark.asyncio
    async def test_protect(self, cfg, pool, key_resolver):
        session = await create_session(cfg, pool=pool, key_resolver=key_resolver)

        assert isinstance(session, GuardSession)
        assert session.encryption_enabled is False
        assert await session.protect(CONTACT_PROMPT, echo) == CONTACT_PROMPT

    @pytest.mark.asyncio
    async def test_anonymize(self, cfg, pool, key_resolver):
        session = await create_session(cfg, pool=pool, key_resolver=key_resolver)

        result = await session.anonymize(CONTACT_PROMPT, {"ttl": 120})

        assert result.stats.replaced == 3
        assert await result.restore(result.safe_prompt) == CONTACT_PROMPT

    @pytest.mark.asyncio
    async def test_key_resolved_at_creation(self, encrypted_cfg, pool, key_resolver, fake_core):
        session = await create_session(encrypted_cfg, pool=pool, key_resolver=key_resolver)
        assert len(fake_core.paths(INBOUND_PUBLIC_KEY_PATH)) == 1

        await session.protect("hi", echo)
        await session.protect("there", echo)

        assert session.encryption_enabled is True
        assert len(fake_core.paths(INBOUND_PUBLIC_KEY_PATH)) == 1

    @pytest.mark.asyncio
    async def test_invalid_config_rejected_at_creation(self, pool, key_resolver, fake_core):
        with pytest.raises(ConfigurationError):
            await create_session({"api_key": ""}, pool=pool, key_resolver=key_resolver)

        assert fake_core.requests == []

    @pytest.mark.asyncio
    async def test_protect_validates_arguments(self, cfg, pool, key_resolver, fake_core):
        session = await create_session(cfg, pool=pool, key_resolver=key_resolver)

        with pytest.raises(ConfigurationError, match="prompt must be a string"):
            await session.protect(None, echo)
        with pytest.raises(ConfigurationError, match="caller must be callable"):
            await session.protect("hi", None)

        assert fake_core.requests == []

    @pytest.mark.asyncio
    async def test_repr_hides_credential(self, cfg, pool, key_resolver):
        session = await create_session(cfg, pool=pool, key_resolver=key_resolver)
        assert TEST_API_KEY not in repr(session)


class TestUsageMetrics:
    """Tests for fetch_usage_metrics() and GuardSession.usage_metrics()."""

    @pytest.mark.asyncio
    async def test_fetch(self, cfg, pool, key_resolver, fake_core):
        await wrap(CONTACT_PROMPT, echo, cfg, pool=pool, key_resolver=key_resolver)

        metrics = await fetch_usage_metrics(cfg, pool=pool)

        assert isinstance(metrics, UsageMetrics)
        assert metrics.total_cycles == 1
        assert metrics.completed_cycles == 1
        assert metrics.total_pii_replaced == 3
        assert metrics.pii_types == ["email", "name", "phone"]

    @pytest.mark.asyncio
    async def test_session_usage_metrics(self, cfg, pool, key_resolver):
        session = await create_session(cfg, pool=pool, key_resolver=key_resolver)

        metrics = await session.usage_metrics()

        assert metrics.total_cycles == 0

    @pytest.mark.asyncio
    async def test_invalid_metrics_response(self, cfg, pool, fake_core):
        fake_core.overrides["/v1/metrics"] = lambda request: httpx.Response(200, text="nope")

        with pytest.raises(ProtocolError, match="/v1/metrics"):
            await fetch_usage_metrics(cfg, pool=pool)
