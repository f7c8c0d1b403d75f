"""Quote Service — orchestrator integrating all aggregation components.

Main entry point for a route query:
  1. Validates the RouteRequest (before any other work)
  2. Admits the caller through the rate limiter
  3. Serves a fresh cache snapshot when one exists
  4. Fans out to provider adapters under per-call and global deadlines
  5. Normalizes quotes and merges security scores
  6. Ranks, caches and returns the AggregatedResult

Usage:
    container = await build_container(settings)
    result = await container.quotes.get_quotes(request, caller)
    await container.close()
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

import httpx

from app.aggregator.access import AccessController, CallerContext
from app.aggregator.adapters import BaseBridgeAdapter, build_adapters
from app.aggregator.cache import MemoryCacheBackend, QuoteCache, RedisCacheBackend
from app.aggregator.dispatcher import FanOutDispatcher
from app.aggregator.normalizer import apply_batch_context, normalize_quote
from app.aggregator.pricing import canonical_chain
from app.aggregator.rate_limiter import (
    RateLimiter,
    RateLimitPolicy,
    RedisRateLimiter,
    SlidingWindowRateLimiter,
)
from app.aggregator.ranking import rank_quotes
from app.aggregator.security_scorer import neutral_score, score_security
from app.aggregator.stores import (
    ApiKeyStore,
    MemoryApiKeyStore,
    MemorySecurityStore,
    SecurityStore,
    SqlApiKeyStore,
    SqlSecurityStore,
)
from app.aggregator.types import AggregatedResult, RankingWeights, RouteRequest, SecurityScore
from app.core.config import Settings
from app.core.exceptions import RateLimitError, StorageError, ValidationError
from app.core.metrics import (
    CACHE_LOOKUPS,
    PROVIDER_ERRORS,
    PROVIDER_FANOUT_DURATION,
    QUOTE_REQUESTS,
    RATE_LIMIT_REJECTIONS,
)

logger = logging.getLogger(__name__)

MAX_SLIPPAGE_PERCENT = 50.0


def validate_route_request(request: RouteRequest) -> RouteRequest:
    """Check shape and ranges; return the request with canonical chain/token names."""
    from_chain = canonical_chain(request.from_chain or "")
    to_chain = canonical_chain(request.to_chain or "")
    token = (request.token or "").strip().upper()

    if not from_chain or not to_chain:
        raise ValidationError("Source and destination chains are required")
    if not token:
        raise ValidationError("Token is required")
    if from_chain == to_chain:
        raise ValidationError("Source and destination chains must differ")
    if not math.isfinite(request.amount) or request.amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    if not math.isfinite(request.slippage) or not 0 <= request.slippage <= MAX_SLIPPAGE_PERCENT:
        raise ValidationError(f"Slippage must be between 0 and {MAX_SLIPPAGE_PERCENT:g} percent")

    weights = request.weights
    if weights is not None:
        values = (weights.cost_weight, weights.speed_weight, weights.security_weight)
        if any(not math.isfinite(v) or v < 0 for v in values) or sum(values) <= 0:
            raise ValidationError("Ranking weights must be non-negative and not all zero")

    return replace(request, from_chain=from_chain, to_chain=to_chain, token=token)


class QuoteService:
    """Aggregates, scores and ranks quotes for one RouteRequest."""

    def __init__(
        self,
        adapters: Sequence[BaseBridgeAdapter],
        dispatcher: FanOutDispatcher,
        cache: QuoteCache,
        security_store: SecurityStore,
        access: AccessController | None = None,
        default_weights: RankingWeights | None = None,
        today: Callable[[], date] = lambda: datetime.now(timezone.utc).date(),
    ):
        self.adapters = list(adapters)
        self.dispatcher = dispatcher
        self.cache = cache
        self.security_store = security_store
        self.access = access
        self.default_weights = (default_weights or RankingWeights()).normalized()
        self._today = today

    async def get_quotes(self, request: RouteRequest, caller: CallerContext | None = None) -> AggregatedResult:
        try:
            request = validate_route_request(request)
        except ValidationError:
            QUOTE_REQUESTS.labels(outcome="invalid").inc()
            raise

        if caller is not None and self.access is not None:
            try:
                await self.access.admit(caller)
            except RateLimitError as e:
                QUOTE_REQUESTS.labels(outcome="rejected").inc()
                RATE_LIMIT_REJECTIONS.labels(
                    window=e.window, caller="anonymous" if caller.is_anonymous else "key"
                ).inc()
                raise

        weights = request.weights.normalized() if request.weights else self.default_weights

        cached = await self.cache.get(request)
        if cached is not None:
            CACHE_LOOKUPS.labels(result="hit").inc()
            QUOTE_REQUESTS.labels(outcome="cached").inc()
            if cached.weights != weights:
                cached.routes = rank_quotes(cached.routes, weights)
                cached.weights = weights
            cached.request = request.echo()
            return cached
        CACHE_LOOKUPS.labels(result="miss").inc()

        result = await self._aggregate(request, weights)
        await self.cache.set(request, result)
        QUOTE_REQUESTS.labels(outcome="fresh").inc()
        return result

    async def _aggregate(self, request: RouteRequest, weights: RankingWeights) -> AggregatedResult:
        outcome = await self.dispatcher.dispatch(request, self.adapters)
        PROVIDER_FANOUT_DURATION.observe(outcome.elapsed_seconds)
        for error in outcome.errors:
            PROVIDER_ERRORS.labels(provider=error.provider.value, kind=error.kind.value).inc()

        quotes = [normalize_quote(raw, request) for raw in outcome.quotes]
        scores = await self.security_scores({q.bridge for q in quotes})
        apply_batch_context(quotes, scores)

        result = AggregatedResult(
            routes=rank_quotes(quotes, weights),
            errors=sorted(outcome.errors, key=lambda e: e.provider.display_name),
            request=request.echo(),
            weights=weights,
        )
        logger.info(
            "Aggregated %s→%s %s %s: %d routes (%d available), %d errors",
            request.from_chain,
            request.to_chain,
            request.amount,
            request.token,
            len(result.routes),
            result.available_routes,
            len(result.errors),
        )
        return result

    async def security_scores(self, bridges: set[str]) -> dict[str, SecurityScore]:
        """Fetch and score security history for several bridges concurrently."""
        names = sorted(bridges)
        scores = await asyncio.gather(*(self.security_score(name) for name in names))
        return dict(zip(names, scores))

    async def security_score(self, bridge: str) -> SecurityScore:
        try:
            record = await self.security_store.fetch(bridge)
        except StorageError as e:
            logger.warning("Security history unavailable for %s, using neutral score: %s", bridge, e)
            return neutral_score()
        return score_security(record, self._today())


# ---------------------------------------------------------------------------
# Lifespan wiring
# ---------------------------------------------------------------------------


@dataclass
class ServiceContainer:
    """Shared handles built at startup and released at shutdown."""

    quotes: QuoteService
    access: AccessController
    security_store: SecurityStore
    key_store: ApiKeyStore
    cache: QuoteCache
    limiter: RateLimiter
    http_client: httpx.AsyncClient | None = None

    async def close(self) -> None:
        await self.limiter.close()
        await self.cache.close()
        if self.http_client is not None:
            await self.http_client.aclose()


def _assemble(
    settings: Settings,
    adapters: Sequence[BaseBridgeAdapter],
    cache: QuoteCache,
    limiter: RateLimiter,
    security_store: SecurityStore,
    key_store: ApiKeyStore,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceContainer:
    access = AccessController(
        key_store=key_store,
        limiter=limiter,
        anonymous_policy=RateLimitPolicy(
            settings.anonymous_rate_limit_per_minute,
            settings.anonymous_rate_limit_per_hour,
        ),
    )
    service = QuoteService(
        adapters=adapters,
        dispatcher=FanOutDispatcher(settings.provider_timeout_seconds, settings.global_timeout_seconds),
        cache=cache,
        security_store=security_store,
        access=access,
        default_weights=RankingWeights(
            settings.default_cost_weight,
            settings.default_speed_weight,
            settings.default_security_weight,
        ),
    )
    return ServiceContainer(
        quotes=service,
        access=access,
        security_store=security_store,
        key_store=key_store,
        cache=cache,
        limiter=limiter,
        http_client=http_client,
    )


async def build_container(settings: Settings) -> ServiceContainer:
    """Production wiring: PostgreSQL stores, Redis cache/limiter when configured."""
    from app.db.postgres import async_session_factory

    http_client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    adapters = build_adapters(
        settings.enabled_bridges,
        client=http_client,
        timeout=settings.provider_timeout_seconds,
    )

    limiter: RateLimiter
    if settings.redis_url:
        backend = RedisCacheBackend(settings.redis_url, settings.redis_command_timeout_seconds)
        limiter = RedisRateLimiter(backend.client)
        cache = QuoteCache(backend, settings.quote_cache_ttl_seconds)
    else:
        limiter = SlidingWindowRateLimiter()
        cache = QuoteCache(MemoryCacheBackend(), settings.quote_cache_ttl_seconds)

    logger.info(
        "Quote service ready: %d adapters, cache=%s",
        len(adapters),
        "redis" if settings.redis_url else "memory",
    )
    return _assemble(
        settings,
        adapters,
        cache,
        limiter,
        SqlSecurityStore(async_session_factory),
        SqlApiKeyStore(async_session_factory),
        http_client,
    )


def build_memory_container(
    settings: Settings,
    adapters: Sequence[BaseBridgeAdapter],
    security_store: MemorySecurityStore | None = None,
    key_store: MemoryApiKeyStore | None = None,
) -> ServiceContainer:
    """Self-contained wiring with in-process backends (local runs and tests)."""
    return _assemble(
        settings,
        adapters,
        QuoteCache(MemoryCacheBackend(), settings.quote_cache_ttl_seconds),
        SlidingWindowRateLimiter(),
        security_store or MemorySecurityStore(),
        key_store or MemoryApiKeyStore(),
    )
