"""Quote Cache — memoizes whole AggregatedResults per bucketed request key.

Key format:
    quotes:v1:{from}:{to}:{token}:{amount_bucket}:{slippage_bucket}

Amounts are rounded to 2 significant figures and slippage to 0.25% steps so
near-identical queries share an entry. Values are JSON snapshots written
with last-writer-wins semantics. The cache is an optimisation only: any
backend failure is logged and the caller proceeds as on a miss.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

import redis.asyncio as aioredis
from pydantic import TypeAdapter
from redis.exceptions import RedisError

from app.aggregator.pricing import canonical_chain
from app.aggregator.types import AggregatedResult, RouteRequest

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "quotes:v1"
DEFAULT_TTL_SECONDS = 30

_RESULT_ADAPTER = TypeAdapter(AggregatedResult)
_BACKEND_ERRORS = (RedisError, ConnectionError, OSError, asyncio.TimeoutError)


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class MemoryCacheBackend:
    """In-process backend with per-entry expiry. Used in development and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (self._clock() + ttl, value)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """Shared backend on Redis; entries expire through SET ... EX."""

    def __init__(self, url: str, command_timeout: float = 3.0):
        self._redis = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=command_timeout,
            socket_connect_timeout=command_timeout,
        )

    @property
    def client(self) -> aioredis.Redis:
        return self._redis

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._redis.set(key, value, ex=ttl)

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()


# ---------------------------------------------------------------------------
# Key building
# ---------------------------------------------------------------------------


def bucket_amount(amount: float) -> str:
    """Round to 2 significant figures: 1234.5 → "1200", 0.01234 → "0.012"."""
    if not math.isfinite(amount) or amount <= 0:
        return "0"
    ndigits = 1 - math.floor(math.log10(amount))
    rounded = round(amount, ndigits)
    text = f"{rounded:.{max(0, ndigits)}f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def bucket_slippage(slippage: float) -> str:
    return f"{round(slippage * 4) / 4:.2f}"


def build_cache_key(request: RouteRequest) -> str:
    return ":".join(
        [
            CACHE_KEY_PREFIX,
            canonical_chain(request.from_chain),
            canonical_chain(request.to_chain),
            request.token.strip().upper(),
            bucket_amount(request.amount),
            bucket_slippage(request.slippage),
        ]
    )


# ---------------------------------------------------------------------------
# Cache facade
# ---------------------------------------------------------------------------


class QuoteCache:
    """Read/write AggregatedResult snapshots, degrading to a miss on any error."""

    def __init__(self, backend: CacheBackend, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.backend = backend
        self.ttl_seconds = ttl_seconds

    async def get(self, request: RouteRequest) -> AggregatedResult | None:
        key = build_cache_key(request)
        try:
            raw = await self.backend.get(key)
        except _BACKEND_ERRORS as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None

        try:
            result = _RESULT_ADAPTER.validate_json(raw)
        except ValueError as e:
            logger.warning("Discarding undecodable cache entry %s: %s", key, e)
            return None

        age = (datetime.now(timezone.utc) - result.created_at).total_seconds()
        if age > self.ttl_seconds:
            return None

        result.from_cache = True
        return result

    async def set(self, request: RouteRequest, result: AggregatedResult) -> None:
        key = build_cache_key(request)
        try:
            await self.backend.set(key, _RESULT_ADAPTER.dump_json(result).decode(), self.ttl_seconds)
        except _BACKEND_ERRORS as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def healthy(self) -> bool:
        try:
            return await self.backend.ping()
        except _BACKEND_ERRORS:
            return False

    async def close(self) -> None:
        await self.backend.close()
