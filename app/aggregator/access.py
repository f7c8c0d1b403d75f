"""Access Controller — API key → caller context, plus inbound rate limiting.

Anonymous callers are identified by client IP and get the conservative tier;
keyed callers use the per-key limits stored with the key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.aggregator.rate_limiter import RateLimitDecision, RateLimiter, RateLimitPolicy
from app.aggregator.stores import ApiKeyRecord, ApiKeyStore
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.security import hash_api_key

logger = logging.getLogger(__name__)

PERMISSION_SECURITY_READ = "security:read"
PERMISSION_ADMIN = "admin:manage"


@dataclass
class CallerContext:
    identity: str
    policy: RateLimitPolicy
    key: ApiKeyRecord | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_anonymous(self) -> bool:
        return self.key is None


class AccessController:
    def __init__(
        self,
        key_store: ApiKeyStore,
        limiter: RateLimiter,
        anonymous_policy: RateLimitPolicy,
    ):
        self.key_store = key_store
        self.limiter = limiter
        self.anonymous_policy = anonymous_policy

    async def authenticate(self, raw_key: str | None, client_ip: str | None) -> CallerContext:
        """Resolve the caller. Raises UnauthorizedError for bad keys."""
        if not raw_key:
            return CallerContext(identity=f"ip:{client_ip or 'unknown'}", policy=self.anonymous_policy)

        key_hash = hash_api_key(raw_key)
        record = await self.key_store.lookup(key_hash)
        if record is None:
            raise UnauthorizedError("Invalid API key")
        if not record.is_active:
            raise UnauthorizedError("API key is inactive")
        if record.is_expired():
            raise UnauthorizedError("API key has expired")

        return CallerContext(
            identity=f"key:{record.key_hash}",
            policy=RateLimitPolicy(record.rate_limit_per_minute, record.rate_limit_per_hour),
            key=record,
            permissions=frozenset(record.permissions),
        )

    async def admit(self, caller: CallerContext) -> RateLimitDecision:
        """Count one request against the caller's limits and mark the key as used.

        Raises RateLimitError when over either window.
        """
        decision = await self.limiter.hit(caller.identity, caller.policy)
        if caller.key is not None:
            try:
                await self.key_store.touch(caller.key.key_hash)
            except Exception:
                logger.warning("Failed to record last_used_at for key %s", caller.key.id, exc_info=True)
        return decision

    @staticmethod
    def require(caller: CallerContext, permission: str) -> None:
        if caller.is_anonymous:
            raise UnauthorizedError("API key required")
        if permission not in caller.permissions:
            raise ForbiddenError(f"Requires '{permission}' permission")
