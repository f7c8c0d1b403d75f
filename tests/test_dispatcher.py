"""Tests for the fan-out dispatcher: per-call timeouts, global deadline, failure isolation."""

from __future__ import annotations

import asyncio
import time

import pytest

from app.aggregator.dispatcher import FanOutDispatcher
from app.aggregator.types import BridgeProvider, ProviderError, ProviderErrorKind, RawQuote, RouteRequest
from tests.conftest import StubAdapter, make_raw


class _StubbornAdapter(StubAdapter):
    """Takes a long time to honour cancellation."""

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        self.calls += 1
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            await asyncio.sleep(0.5)
            raise
        return make_raw(self.provider)


class _WrongTypeAdapter(StubAdapter):
    async def quote(self, request: RouteRequest):
        return {"fee": 1}


class TestFanOutDispatcher:
    def test_global_must_exceed_provider_timeout(self):
        with pytest.raises(ValueError):
            FanOutDispatcher(provider_timeout=5.0, global_timeout=5.0)

    @pytest.mark.asyncio
    async def test_all_succeed(self, route_request):
        dispatcher = FanOutDispatcher(provider_timeout=0.5, global_timeout=1.0)
        adapters = [StubAdapter(BridgeProvider.ACROSS), StubAdapter(BridgeProvider.HOP)]

        outcome = await dispatcher.dispatch(route_request, adapters)

        assert set(outcome.results) == {BridgeProvider.ACROSS, BridgeProvider.HOP}
        assert len(outcome.quotes) == 2
        assert outcome.errors == []

    @pytest.mark.asyncio
    async def test_no_adapters(self, route_request):
        outcome = await FanOutDispatcher(0.1, 0.2).dispatch(route_request, [])
        assert outcome.results == {}

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, route_request):
        dispatcher = FanOutDispatcher(provider_timeout=1.0, global_timeout=2.0)
        adapters = [StubAdapter(p, delay=0.2) for p in (BridgeProvider.ACROSS, BridgeProvider.HOP, BridgeProvider.SYNAPSE)]

        started = time.monotonic()
        outcome = await dispatcher.dispatch(route_request, adapters)

        assert time.monotonic() - started < 0.5
        assert len(outcome.quotes) == 3

    @pytest.mark.asyncio
    async def test_slow_provider_times_out_others_kept(self, route_request):
        dispatcher = FanOutDispatcher(provider_timeout=0.1, global_timeout=0.5)
        adapters = [
            StubAdapter(BridgeProvider.ACROSS),
            StubAdapter(BridgeProvider.HOP, delay=2.0),
        ]

        outcome = await dispatcher.dispatch(route_request, adapters)

        assert isinstance(outcome.results[BridgeProvider.ACROSS], RawQuote)
        error = outcome.results[BridgeProvider.HOP]
        assert isinstance(error, ProviderError)
        assert error.kind == ProviderErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_raising_adapter_is_isolated(self, route_request):
        dispatcher = FanOutDispatcher(provider_timeout=0.5, global_timeout=1.0)
        adapters = [
            StubAdapter(BridgeProvider.ACROSS, exc=RuntimeError("boom")),
            StubAdapter(BridgeProvider.STARGATE),
        ]

        outcome = await dispatcher.dispatch(route_request, adapters)

        assert outcome.results[BridgeProvider.ACROSS].kind == ProviderErrorKind.INTERNAL
        assert isinstance(outcome.results[BridgeProvider.STARGATE], RawQuote)

    @pytest.mark.asyncio
    async def test_wrong_result_type_is_malformed(self, route_request):
        outcome = await FanOutDispatcher(0.5, 1.0).dispatch(route_request, [_WrongTypeAdapter(BridgeProvider.HOP)])
        assert outcome.results[BridgeProvider.HOP].kind == ProviderErrorKind.MALFORMED

    @pytest.mark.asyncio
    async def test_global_deadline_bounds_latency(self, route_request):
        dispatcher = FanOutDispatcher(provider_timeout=0.05, global_timeout=0.3)
        adapters = [StubAdapter(BridgeProvider.ACROSS), _StubbornAdapter(BridgeProvider.CBRIDGE)]

        started = time.monotonic()
        outcome = await dispatcher.dispatch(route_request, adapters)
        elapsed = time.monotonic() - started

        assert elapsed < 0.6
        assert isinstance(outcome.results[BridgeProvider.ACROSS], RawQuote)
        error = outcome.results[BridgeProvider.CBRIDGE]
        assert isinstance(error, ProviderError)
        assert error.kind == ProviderErrorKind.CANCELLED

        # Let the cancelled task unwind before the loop closes
        await asyncio.sleep(0.6)

    @pytest.mark.asyncio
    async def test_duplicate_provider_rejected(self, route_request):
        adapters = [StubAdapter(BridgeProvider.HOP), StubAdapter(BridgeProvider.HOP, make_raw(BridgeProvider.HOP, fee=9))]

        with pytest.raises(ValueError, match="hop"):
            await FanOutDispatcher(0.5, 1.0).dispatch(route_request, adapters)
        assert all(a.calls == 0 for a in adapters)
