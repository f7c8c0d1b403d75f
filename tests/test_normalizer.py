"""Tests for the quote normalizer."""

from __future__ import annotations

import pytest

from app.aggregator.normalizer import (
    apply_batch_context,
    categorize_timing,
    format_timing,
    normalize_quote,
)
from app.aggregator.types import (
    BridgeProvider,
    QuoteStatus,
    QuoteWarning,
    SecurityLevel,
    SecurityScore,
    TimingCategory,
)
from tests.conftest import make_raw


class TestTiming:
    @pytest.mark.parametrize(
        "seconds,category",
        [(0, TimingCategory.FAST), (120, TimingCategory.FAST), (121, TimingCategory.MEDIUM),
         (600, TimingCategory.MEDIUM), (601, TimingCategory.SLOW)],
    )
    def test_categories(self, seconds, category):
        assert categorize_timing(seconds) == category

    def test_display(self):
        assert format_timing(45) == "~45 sec"
        assert format_timing(180) == "~3 min"
        assert format_timing(7200) == "~2 hr"


class TestNormalizeQuote:
    def test_costs_sum_into_total(self, route_request):
        quote = normalize_quote(make_raw(BridgeProvider.ACROSS, fee=1.25, gas=0.75), route_request)

        assert quote.bridge == "Across"
        assert quote.cost.bridge_fee_usd == 1.25
        assert quote.cost.gas_estimate_usd == 0.75
        assert quote.cost.total_fee_usd == 2.0
        assert quote.cost.gas_details is not None

    def test_negative_components_clamped(self, route_request):
        quote = normalize_quote(make_raw(BridgeProvider.HOP, fee=-3.0, gas=0.5), route_request)
        assert quote.cost.bridge_fee_usd == 0.0
        assert quote.cost.total_fee_usd == 0.5

    def test_minimum_defaults_from_slippage(self, route_request):
        quote = normalize_quote(make_raw(BridgeProvider.HOP, expected=1000.0), route_request)
        assert quote.output.minimum == pytest.approx(995.0)

    def test_reported_minimum_clamped_to_expected(self, route_request):
        raw = make_raw(BridgeProvider.HOP, expected=990.0, minimum_output=995.0)
        quote = normalize_quote(raw, route_request)
        assert quote.output.minimum == 990.0
        assert quote.output.minimum <= quote.output.expected

    def test_timing_details(self, route_request):
        quote = normalize_quote(make_raw(BridgeProvider.CBRIDGE, seconds=1200), route_request)
        assert quote.timing.seconds == 1200
        assert quote.timing.display == "~20 min"
        assert quote.timing.category == TimingCategory.SLOW

    def test_no_liquidity_is_unavailable_with_warning(self, route_request):
        raw = make_raw(BridgeProvider.SYNAPSE, liquidity_available=False)
        quote = normalize_quote(raw, route_request)
        assert quote.available is False
        assert quote.status == QuoteStatus.UNAVAILABLE
        assert QuoteWarning.LOW_LIQUIDITY in quote.warnings

    def test_hard_failure_still_yields_quote(self, route_request):
        raw = make_raw(BridgeProvider.ACROSS, status=QuoteStatus.UNAVAILABLE)
        quote = normalize_quote(raw, route_request)
        assert quote.available is False
        assert quote.warnings == []

    def test_degraded_stays_available(self, route_request):
        quote = normalize_quote(make_raw(BridgeProvider.HOP, status=QuoteStatus.DEGRADED), route_request)
        assert quote.available is True
        assert quote.status == QuoteStatus.DEGRADED


class TestBatchContext:
    def _batch(self, route_request, times: dict[BridgeProvider, int]):
        return [normalize_quote(make_raw(p, seconds=s), route_request) for p, s in times.items()]

    def test_slow_route_relative_to_median(self, route_request):
        quotes = self._batch(
            route_request,
            {BridgeProvider.ACROSS: 60, BridgeProvider.HOP: 120, BridgeProvider.CBRIDGE: 1200},
        )
        apply_batch_context(quotes, {})

        slow = {q.provider for q in quotes if QuoteWarning.SLOW_ROUTE in q.warnings}
        assert slow == {BridgeProvider.CBRIDGE}

    def test_single_quote_never_slow(self, route_request):
        quotes = self._batch(route_request, {BridgeProvider.ACROSS: 5000})
        apply_batch_context(quotes, {})
        assert quotes[0].warnings == []

    def test_security_merge_and_low_security_warning(self, route_request):
        quotes = self._batch(route_request, {BridgeProvider.ACROSS: 60, BridgeProvider.HOP: 60})
        scores = {
            "Across": SecurityScore(score=0.95, level=SecurityLevel.HIGH, has_audit=True),
            "Hop": SecurityScore(score=0.3, level=SecurityLevel.LOW, has_exploit=True),
        }
        apply_batch_context(quotes, scores)

        by_provider = {q.provider: q for q in quotes}
        assert by_provider[BridgeProvider.ACROSS].security.score == 0.95
        assert QuoteWarning.LOW_SECURITY in by_provider[BridgeProvider.HOP].warnings
        assert QuoteWarning.LOW_SECURITY not in by_provider[BridgeProvider.ACROSS].warnings

    def test_missing_score_is_neutral(self, route_request):
        quotes = self._batch(route_request, {BridgeProvider.STARGATE: 60})
        apply_batch_context(quotes, {})
        assert quotes[0].security.score == 0.5
        assert QuoteWarning.LOW_SECURITY not in quotes[0].warnings
