"""Tests for API key authentication and per-caller admission."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.aggregator.access import PERMISSION_ADMIN, PERMISSION_SECURITY_READ, AccessController
from app.aggregator.rate_limiter import RateLimitPolicy, SlidingWindowRateLimiter
from app.aggregator.stores import ApiKeyRecord, MemoryApiKeyStore
from app.core.exceptions import ForbiddenError, RateLimitError, UnauthorizedError
from app.core.security import extract_api_key, generate_api_key, hash_api_key


async def _store_key(store: MemoryApiKeyStore, **kwargs) -> str:
    raw_key, key_hash = generate_api_key()
    await store.create(ApiKeyRecord(id=uuid.uuid4(), key_hash=key_hash, name="k", **kwargs))
    return raw_key


@pytest.fixture
def access(key_store) -> AccessController:
    return AccessController(key_store, SlidingWindowRateLimiter(), RateLimitPolicy(2, 10))


class TestApiKeyHelpers:
    def test_generated_key_matches_hash(self):
        raw_key, key_hash = generate_api_key()
        assert raw_key.startswith("br_")
        assert hash_api_key(raw_key) == key_hash
        assert len(key_hash) == 64

    def test_extract_prefers_header(self):
        assert extract_api_key("abc", "Bearer xyz") == "abc"
        assert extract_api_key(None, "Bearer xyz") == "xyz"
        assert extract_api_key(None, "Basic xyz") is None
        assert extract_api_key(None, None) is None


class TestAccessController:
    @pytest.mark.asyncio
    async def test_anonymous_uses_ip_and_default_tier(self, access):
        caller = await access.authenticate(None, "10.0.0.1")
        assert caller.is_anonymous
        assert caller.identity == "ip:10.0.0.1"
        assert caller.policy == RateLimitPolicy(2, 10)

    @pytest.mark.asyncio
    async def test_valid_key_uses_key_limits(self, access, key_store):
        raw_key = await _store_key(key_store, permissions=[PERMISSION_SECURITY_READ], rate_limit_per_minute=7)
        caller = await access.authenticate(raw_key, "10.0.0.1")

        assert not caller.is_anonymous
        assert caller.identity == f"key:{hash_api_key(raw_key)}"
        assert caller.policy.per_minute == 7
        assert PERMISSION_SECURITY_READ in caller.permissions

    @pytest.mark.asyncio
    async def test_unknown_key_rejected(self, access):
        with pytest.raises(UnauthorizedError):
            await access.authenticate("br_not-a-real-key", "10.0.0.1")

    @pytest.mark.asyncio
    async def test_inactive_key_rejected(self, access, key_store):
        raw_key = await _store_key(key_store, is_active=False)
        with pytest.raises(UnauthorizedError):
            await access.authenticate(raw_key, None)

    @pytest.mark.asyncio
    async def test_expired_key_rejected(self, access, key_store):
        raw_key = await _store_key(key_store, expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        with pytest.raises(UnauthorizedError):
            await access.authenticate(raw_key, None)

    @pytest.mark.asyncio
    async def test_admit_enforces_limits_and_touches_key(self, access, key_store):
        raw_key = await _store_key(key_store, rate_limit_per_minute=1)
        caller = await access.authenticate(raw_key, None)

        await access.admit(caller)
        stored = await key_store.lookup(caller.key.key_hash)
        assert stored.last_used_at is not None

        with pytest.raises(RateLimitError):
            await access.admit(caller)

    @pytest.mark.asyncio
    async def test_anonymous_callers_limited_per_ip(self, access):
        first = await access.authenticate(None, "10.0.0.1")
        other = await access.authenticate(None, "10.0.0.2")

        await access.admit(first)
        await access.admit(first)
        with pytest.raises(RateLimitError):
            await access.admit(first)
        await access.admit(other)

    @pytest.mark.asyncio
    async def test_require(self, access, key_store):
        anonymous = await access.authenticate(None, "10.0.0.1")
        with pytest.raises(UnauthorizedError):
            AccessController.require(anonymous, PERMISSION_SECURITY_READ)

        reader = await access.authenticate(
            await _store_key(key_store, permissions=[PERMISSION_SECURITY_READ]), None
        )
        AccessController.require(reader, PERMISSION_SECURITY_READ)
        with pytest.raises(ForbiddenError):
            AccessController.require(reader, PERMISSION_ADMIN)
