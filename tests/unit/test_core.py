"""
Unit tests for security helpers, log redaction and the TTL cache.
"""

from datetime import timedelta

import pytest
import structlog

from devhub.core.logging import REDACTED, LogContext, bind_context, clear_context, redact_secrets, unbind_context
from devhub.core.security import canonical_credentials, generate_request_id, hash_secret, verify_secret
from devhub.repositories.cache_repo import InMemoryCacheRepository


def test_request_ids_are_unique() -> None:
    first, second = generate_request_id(), generate_request_id()
    assert first.startswith("req_")
    assert first != second


def test_hash_secret_round_trip() -> None:
    digest = hash_secret("hunter2")
    assert digest != "hunter2"
    assert verify_secret("hunter2", digest)
    assert not verify_secret("hunter3", digest)


def test_redaction_reaches_nested_payloads() -> None:
    event = {
        "event": "Log analysis request",
        "payload": {
            "query": "why?",
            "github_token": "ghp_abc",
            "user_info": {"email": "ada@example.com"},
            "attached_documents": [{"password": "pw", "name": "doc"}],
        },
        "token": None,
    }
    redacted = redact_secrets(None, "info", event)
    assert redacted["payload"]["github_token"] == REDACTED
    assert redacted["payload"]["attached_documents"][0] == {"password": REDACTED, "name": "doc"}
    assert redacted["payload"]["query"] == "why?"
    assert redacted["token"] is None


class TestInMemoryCache:
    @pytest.mark.asyncio
    async def test_set_get_delete(self) -> None:
        cache = InMemoryCacheRepository()
        await cache.set("repos:acme", [{"name": "api"}])
        assert await cache.get("repos:acme") == [{"name": "api"}]
        assert await cache.delete("repos:acme") is True
        assert await cache.delete("repos:acme") is False
        assert await cache.get("repos:acme") is None

    @pytest.mark.asyncio
    async def test_expired_entries_are_dropped(self) -> None:
        cache = InMemoryCacheRepository()
        await cache.set("k", "v", ttl_seconds=60)
        cache._cache["k"]["expires_at"] -= timedelta(seconds=120)
        assert await cache.get("k") is None
        assert "k" not in cache._cache

    @pytest.mark.asyncio
    async def test_writes_sweep_expired_entries(self) -> None:
        cache = InMemoryCacheRepository()
        await cache.set("repos:old", [1], ttl_seconds=60)
        cache._cache["repos:old"]["expires_at"] -= timedelta(seconds=120)

        await cache.set("repos:new", [2])
        assert set(cache._cache) == {"repos:new"}

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        cache = InMemoryCacheRepository()
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.clear()
        assert await cache.get("a") is None


def test_canonical_credentials_ignore_key_order() -> None:
    first = canonical_credentials({"username": "a", "password": "b"})
    assert first == canonical_credentials({"password": "b", "username": "a"})
    assert first == '{"password":"b","username":"a"}'


def test_log_context_is_scoped() -> None:
    clear_context()
    bind_context(request_id="req_1")

    with LogContext(chat_id="c-1"):
        assert structlog.contextvars.get_contextvars() == {"request_id": "req_1", "chat_id": "c-1"}
    assert structlog.contextvars.get_contextvars() == {"request_id": "req_1"}

    unbind_context("request_id")
    assert structlog.contextvars.get_contextvars() == {}
