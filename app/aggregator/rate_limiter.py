"""Inbound Rate Limiter — per-caller sliding windows (minute + hour).

Each caller identity keeps the timestamps of its accepted requests. A new
request is admitted only if both the trailing-minute and trailing-hour
counts are below the caller's limits; rejected attempts are not recorded.

Check-and-record is atomic per identity:
  - SlidingWindowRateLimiter: one asyncio.Lock per identity (single process)
  - RedisRateLimiter: one Lua script over a sorted set (shared across workers)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.exceptions import RateLimitError

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 3600.0


@dataclass(frozen=True)
class RateLimitPolicy:
    per_minute: int
    per_hour: int


@dataclass
class RateLimitDecision:
    """Result of an accepted hit."""

    remaining_minute: int
    remaining_hour: int


class RateLimiter(Protocol):
    async def hit(self, identity: str, policy: RateLimitPolicy) -> RateLimitDecision: ...

    async def close(self) -> None: ...


def _reject(identity: str, window: str, retry_after: float) -> RateLimitError:
    logger.info("Rate limit exceeded for %s (per %s)", identity, window)
    return RateLimitError(
        f"Rate limit exceeded: too many requests per {window}",
        retry_after=max(retry_after, 0.0),
        window=window,
    )


@dataclass
class _IdentityBucket:
    """Accepted-request timestamps for one caller, oldest first."""

    entries: deque[float] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # hit() calls holding or waiting for the lock
    pending: int = 0

    def _prune(self, now: float) -> None:
        cutoff = now - HOUR
        while self.entries and self.entries[0] <= cutoff:
            self.entries.popleft()

    def _minute_entries(self, now: float) -> list[float]:
        cutoff = now - MINUTE
        return [ts for ts in self.entries if ts > cutoff]

    def idle(self, now: float) -> bool:
        return self.pending == 0 and (not self.entries or self.entries[-1] <= now - HOUR)


class SlidingWindowRateLimiter:
    """In-process limiter.

    Usage:
        limiter = SlidingWindowRateLimiter()
        decision = await limiter.hit("key:abc", RateLimitPolicy(100, 1000))
        # raises RateLimitError(retry_after=...) when over either limit
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = MINUTE):
        self._clock = clock
        self._buckets: dict[str, _IdentityBucket] = {}
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    def _get_bucket(self, identity: str) -> _IdentityBucket:
        bucket = self._buckets.get(identity)
        if bucket is None:
            bucket = self._buckets[identity] = _IdentityBucket()
        return bucket

    def _sweep(self, now: float) -> None:
        """Drop buckets with nothing left in the hour window."""
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        stale = [identity for identity, bucket in self._buckets.items() if bucket.idle(now)]
        for identity in stale:
            del self._buckets[identity]
        if stale:
            logger.debug("Evicted %d idle rate-limit buckets", len(stale))

    async def hit(self, identity: str, policy: RateLimitPolicy) -> RateLimitDecision:
        self._sweep(self._clock())
        bucket = self._get_bucket(identity)
        bucket.pending += 1
        try:
            async with bucket.lock:
                now = self._clock()
                bucket._prune(now)

                in_minute = bucket._minute_entries(now)
                if len(in_minute) >= policy.per_minute:
                    raise _reject(identity, "minute", in_minute[0] + MINUTE - now if in_minute else MINUTE)
                if len(bucket.entries) >= policy.per_hour:
                    raise _reject(identity, "hour", bucket.entries[0] + HOUR - now if bucket.entries else HOUR)

                bucket.entries.append(now)
                return RateLimitDecision(
                    remaining_minute=policy.per_minute - len(in_minute) - 1,
                    remaining_hour=policy.per_hour - len(bucket.entries),
                )
        finally:
            bucket.pending -= 1

    def get_stats(self, identity: str) -> dict:
        bucket = self._buckets.get(identity) or _IdentityBucket()
        now = self._clock()
        bucket._prune(now)
        return {
            "identity": identity,
            "last_minute": len(bucket._minute_entries(now)),
            "last_hour": len(bucket.entries),
        }

    async def close(self) -> None:
        self._buckets.clear()


# KEYS[1] = sorted set of accepted-request timestamps
# ARGV = now, per_minute, per_hour, member
_SLIDING_WINDOW_LUA = """
local now = tonumber(ARGV[1])
local per_minute = tonumber(ARGV[2])
local per_hour = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', now - 3600)
local hour = redis.call('ZCARD', KEYS[1])
local minute = redis.call('ZCOUNT', KEYS[1], '(' .. (now - 60), '+inf')
if minute >= per_minute then
  local oldest = redis.call('ZRANGEBYSCORE', KEYS[1], '(' .. (now - 60), '+inf', 'WITHSCORES', 'LIMIT', 0, 1)
  local wait = 60
  if oldest[2] then wait = tonumber(oldest[2]) + 60 - now end
  return {0, 'minute', tostring(wait)}
end
if hour >= per_hour then
  local oldest = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
  local wait = 3600
  if oldest[2] then wait = tonumber(oldest[2]) + 3600 - now end
  return {0, 'hour', tostring(wait)}
end
redis.call('ZADD', KEYS[1], now, ARGV[4])
redis.call('EXPIRE', KEYS[1], 3600)
return {1, tostring(per_minute - minute - 1), tostring(per_hour - hour - 1)}
"""


class RedisRateLimiter:
    """Limiter shared by all workers. Fails open when Redis is unreachable."""

    key_prefix = "ratelimit:v1"

    def __init__(
        self,
        client: aioredis.Redis,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = client
        self._clock = clock
        self._script = client.register_script(_SLIDING_WINDOW_LUA)

    async def hit(self, identity: str, policy: RateLimitPolicy) -> RateLimitDecision:
        now = self._clock()
        member = f"{now:.6f}:{uuid.uuid4().hex}"
        try:
            allowed, first, second = await self._script(
                keys=[f"{self.key_prefix}:{identity}"],
                args=[now, policy.per_minute, policy.per_hour, member],
            )
        except (RedisError, ConnectionError, OSError) as e:
            logger.warning("Rate limiter backend unavailable, admitting %s: %s", identity, e)
            return RateLimitDecision(remaining_minute=policy.per_minute, remaining_hour=policy.per_hour)

        if int(allowed) != 1:
            window = first.decode() if isinstance(first, bytes) else str(first)
            raise _reject(identity, window, float(second))
        return RateLimitDecision(remaining_minute=int(first), remaining_hour=int(second))

    async def close(self) -> None:
        # The client belongs to the cache backend that created it
        return None
