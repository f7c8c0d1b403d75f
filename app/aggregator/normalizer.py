"""Quote Normalizer — RawQuote → comparable Quote.

Applies normalization in two passes:
  - per quote: USD cost totals, minimum-received fallback, timing bucket
  - per batch: security merge plus batch-relative warnings (slow_route, low_security)
"""

from __future__ import annotations

import logging
import math
import statistics

from app.aggregator.types import (
    CostDetails,
    OutputDetails,
    Quote,
    QuoteStatus,
    QuoteWarning,
    RawQuote,
    RouteRequest,
    SecurityScore,
    TimingCategory,
    TimingDetails,
)

logger = logging.getLogger(__name__)

FAST_THRESHOLD_SECONDS = 120
MEDIUM_THRESHOLD_SECONDS = 600
SLOW_ROUTE_MEDIAN_FACTOR = 2.0
LOW_SECURITY_THRESHOLD = 0.5


def categorize_timing(seconds: int) -> TimingCategory:
    if seconds <= FAST_THRESHOLD_SECONDS:
        return TimingCategory.FAST
    if seconds <= MEDIUM_THRESHOLD_SECONDS:
        return TimingCategory.MEDIUM
    return TimingCategory.SLOW


def format_timing(seconds: int) -> str:
    """Human display like "~45 sec", "~3 min", "~2 hr"."""
    if seconds < 60:
        return f"~{seconds} sec"
    if seconds < 3600:
        return f"~{seconds // 60} min"
    return f"~{seconds // 3600} hr"


def _non_negative(value: float | None) -> float:
    if value is None or not math.isfinite(value) or value < 0:
        return 0.0
    return float(value)


def normalize_quote(raw: RawQuote, request: RouteRequest) -> Quote:
    """Convert one provider's RawQuote into the canonical Quote.

    Security, score and rank are filled in later by the batch steps.
    """
    bridge_fee = _non_negative(raw.bridge_fee_usd)
    gas_fee = _non_negative(raw.gas.total_usd)

    expected = _non_negative(raw.expected_output)
    if raw.minimum_output is None:
        minimum = expected * (1 - request.slippage / 100)
    else:
        minimum = raw.minimum_output
    minimum = min(_non_negative(minimum), expected)

    seconds = int(_non_negative(raw.est_time_seconds))
    available = raw.status != QuoteStatus.UNAVAILABLE and raw.liquidity_available

    warnings: list[QuoteWarning] = []
    if not raw.liquidity_available:
        warnings.append(QuoteWarning.LOW_LIQUIDITY)

    return Quote(
        provider=raw.provider,
        bridge=raw.provider.display_name,
        cost=CostDetails(
            bridge_fee_usd=round(bridge_fee, 6),
            gas_estimate_usd=round(gas_fee, 6),
            total_fee_usd=round(bridge_fee + gas_fee, 6),
            gas_details=raw.gas,
        ),
        output=OutputDetails(
            input=_non_negative(raw.amount_in) or request.amount,
            expected=expected,
            minimum=minimum,
        ),
        timing=TimingDetails(
            seconds=seconds,
            display=format_timing(seconds),
            category=categorize_timing(seconds),
        ),
        available=available,
        status=raw.status if available else QuoteStatus.UNAVAILABLE,
        warnings=warnings,
    )


def apply_batch_context(
    quotes: list[Quote],
    security: dict[str, SecurityScore],
) -> list[Quote]:
    """Merge per-bridge security scores and add the batch-relative warnings."""
    for quote in quotes:
        quote.security = security.get(quote.bridge, SecurityScore())
        if quote.security.score < LOW_SECURITY_THRESHOLD:
            _warn(quote, QuoteWarning.LOW_SECURITY)

    available_times = [q.timing.seconds for q in quotes if q.available]
    if len(available_times) >= 2:
        median = statistics.median(available_times)
        if median > 0:
            for quote in quotes:
                if quote.available and quote.timing.seconds > SLOW_ROUTE_MEDIAN_FACTOR * median:
                    _warn(quote, QuoteWarning.SLOW_ROUTE)
    return quotes


def _warn(quote: Quote, warning: QuoteWarning) -> None:
    if warning not in quote.warnings:
        quote.warnings.append(warning)
