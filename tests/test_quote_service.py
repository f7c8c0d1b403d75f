"""End-to-end tests for the quote service with stub adapters and in-memory backends."""

from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from app.aggregator.cache import MemoryCacheBackend, QuoteCache
from app.aggregator.dispatcher import FanOutDispatcher
from app.aggregator.service import QuoteService, validate_route_request
from app.aggregator.stores import MemorySecurityStore
from app.aggregator.types import (
    AuditEvent,
    BridgeProvider,
    ExploitEvent,
    ProviderErrorKind,
    RankingWeights,
    RouteRequest,
)
from app.core.exceptions import StorageError, ValidationError
from tests.conftest import TODAY, StubAdapter, make_raw


class FailingSecurityStore:
    async def fetch(self, bridge):
        raise StorageError("Security history unavailable")

    async def list_records(self, bridge=None):
        raise StorageError("Security history unavailable")


def _service(adapters, security_store, **kwargs) -> QuoteService:
    return QuoteService(
        adapters=adapters,
        dispatcher=FanOutDispatcher(provider_timeout=0.2, global_timeout=0.5),
        cache=QuoteCache(MemoryCacheBackend(), ttl_seconds=30),
        security_store=security_store,
        today=lambda: TODAY,
        **kwargs,
    )


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"from_chain": ""},
            {"token": "  "},
            {"to_chain": "Ethereum"},
            {"amount": 0},
            {"amount": -5},
            {"amount": float("nan")},
            {"slippage": -0.1},
            {"slippage": 51},
            {"weights": RankingWeights(0, 0, 0)},
            {"weights": RankingWeights(-1, 1, 1)},
        ],
    )
    def test_rejects_bad_requests(self, kwargs):
        params = dict(from_chain="ethereum", to_chain="polygon", token="USDC", amount=1000, slippage=0.5)
        params.update(kwargs)
        with pytest.raises(ValidationError):
            validate_route_request(RouteRequest(**params))

    def test_canonicalizes(self):
        request = validate_route_request(
            RouteRequest(from_chain=" Ethereum ", to_chain="POLYGON", token="usdc", amount=10)
        )
        assert (request.from_chain, request.to_chain, request.token) == ("ethereum", "polygon", "USDC")

    @pytest.mark.asyncio
    async def test_invalid_request_never_reaches_adapters(self, adapters, security_store):
        service = _service(adapters, security_store)
        with pytest.raises(ValidationError):
            await service.get_quotes(
                RouteRequest(from_chain="ethereum", to_chain="ethereum", token="USDC", amount=1)
            )
        assert all(a.calls == 0 for a in adapters)


class TestGetQuotes:
    @pytest.mark.asyncio
    async def test_one_provider_times_out(self, route_request, security_store):
        adapters = [
            StubAdapter(BridgeProvider.ACROSS, make_raw(BridgeProvider.ACROSS, seconds=60)),
            StubAdapter(BridgeProvider.HOP, delay=1.0),
            StubAdapter(BridgeProvider.STARGATE, make_raw(BridgeProvider.STARGATE, seconds=180)),
        ]
        result = await _service(adapters, security_store).get_quotes(route_request)

        assert len(result.routes) == 2
        assert len(result.errors) == 1
        assert result.errors[0].provider == BridgeProvider.HOP
        assert result.errors[0].kind == ProviderErrorKind.TIMEOUT
        assert result.total_routes == 3
        assert result.available_routes == 2

        body = result.to_dict()
        assert body["errors"] == [{"bridge": "Hop", "error": "Timeout after 0.2s"}]
        assert body["metadata"]["total_routes"] == 3

    @pytest.mark.asyncio
    async def test_routes_ranked_and_invariants_hold(self, route_request, adapters, security_store):
        result = await _service(adapters, security_store).get_quotes(route_request)

        assert [q.rank for q in result.routes] == [1, 2, 3]
        scores = [q.score for q in result.routes]
        assert scores == sorted(scores, reverse=True)
        for quote in result.routes:
            assert quote.output.minimum <= quote.output.expected
            assert quote.cost.total_fee_usd >= 0

    @pytest.mark.asyncio
    async def test_security_merged_per_bridge(self, route_request, adapters, security_store):
        result = await _service(adapters, security_store).get_quotes(route_request)
        by_bridge = {q.bridge: q for q in result.routes}

        assert by_bridge["Hop"].security.has_audit is True
        # No recorded history: base score, no audit credit
        assert by_bridge["Stargate"].security.score == 1.0
        assert by_bridge["Stargate"].security.has_audit is False

    @pytest.mark.asyncio
    async def test_repeat_request_served_from_cache(self, route_request, adapters, security_store):
        service = _service(adapters, security_store)

        first = await service.get_quotes(route_request)
        calls = [a.calls for a in adapters]
        second = await service.get_quotes(route_request)

        assert [a.calls for a in adapters] == calls
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.to_dict() == first.to_dict()

    @pytest.mark.asyncio
    async def test_cache_hit_reranks_for_different_weights(self, route_request, security_store):
        adapters = [
            StubAdapter(BridgeProvider.ACROSS, make_raw(BridgeProvider.ACROSS, fee=5.0, seconds=60)),
            StubAdapter(BridgeProvider.HOP, make_raw(BridgeProvider.HOP, fee=0.5, seconds=1200)),
        ]
        service = _service(adapters, security_store)

        fast_first = await service.get_quotes(
            replace(route_request, weights=RankingWeights(0, 1, 0))
        )
        cheap_first = await service.get_quotes(
            replace(route_request, weights=RankingWeights(1, 0, 0))
        )

        assert fast_first.routes[0].bridge == "Across"
        assert cheap_first.from_cache is True
        assert cheap_first.routes[0].bridge == "Hop"
        assert adapters[0].calls == 1

    @pytest.mark.asyncio
    async def test_large_exploit_ranks_below_audited_bridge(self, route_request):
        store = MemorySecurityStore()
        store.add_exploit("Across", ExploitEvent(date=date(2025, 3, 29), loss_amount=600_000_000))
        store.add_audit("Hop", AuditEvent(firm="Trail of Bits", date=date(2023, 1, 1), result="passed"))
        store.add_audit("Hop", AuditEvent(firm="OpenZeppelin", date=date(2024, 1, 1), result="passed"))
        adapters = [StubAdapter(BridgeProvider.ACROSS), StubAdapter(BridgeProvider.HOP)]

        result = await _service(adapters, store).get_quotes(route_request)

        assert [q.bridge for q in result.routes] == ["Hop", "Across"]
        assert result.routes[0].score > result.routes[1].score

    @pytest.mark.asyncio
    async def test_bridge_without_history_ranks_above_exploited_bridge(self, route_request):
        store = MemorySecurityStore()
        store.add_exploit("Across", ExploitEvent(date=date(2025, 12, 1), loss_amount=50_000))
        adapters = [StubAdapter(BridgeProvider.ACROSS), StubAdapter(BridgeProvider.HOP)]

        result = await _service(adapters, store).get_quotes(route_request)

        assert [q.bridge for q in result.routes] == ["Hop", "Across"]
        assert result.routes[0].security.score > result.routes[1].security.score

    @pytest.mark.asyncio
    async def test_security_store_failure_uses_neutral_score(self, route_request, adapters):
        result = await _service(adapters, FailingSecurityStore()).get_quotes(route_request)

        assert len(result.routes) == 3
        assert all(q.security.score == 0.5 for q in result.routes)

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, route_request, security_store):
        adapters = [StubAdapter(p, exc=RuntimeError("down")) for p in (BridgeProvider.ACROSS, BridgeProvider.HOP)]
        result = await _service(adapters, security_store).get_quotes(route_request)

        assert result.routes == []
        assert result.total_routes == 2
        assert result.available_routes == 0
