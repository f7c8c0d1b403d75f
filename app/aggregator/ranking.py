"""Ranking Engine — weighted cost/speed/security score and stable ordering.

Each metric is min-max scaled against the available quotes of the batch
(all quotes when none is available). Lower fee and lower time are better;
higher security is better. A metric with no spread scales to 1.0.

Order: available first, then higher score, lower total fee, lower time,
bridge name. Ranks are 1..N in that order.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from app.aggregator.types import Quote, RankingWeights


def _scaler(values: Sequence[float], lower_is_better: bool) -> Callable[[float], float]:
    lo, hi = min(values), max(values)
    spread = hi - lo
    if spread <= 0:
        return lambda _v: 1.0

    def scale(value: float) -> float:
        ratio = (hi - value) / spread if lower_is_better else (value - lo) / spread
        return min(1.0, max(0.0, ratio))

    return scale


def sort_key(quote: Quote) -> tuple:
    return (
        not quote.available,
        -quote.score,
        quote.cost.total_fee_usd,
        quote.timing.seconds,
        quote.bridge,
    )


def rank_quotes(quotes: Sequence[Quote], weights: RankingWeights | None = None) -> list[Quote]:
    """Score and order quotes. Sets ``score`` and ``rank`` on every quote."""
    if not quotes:
        return []

    w = (weights or RankingWeights()).normalized()
    pool = [q for q in quotes if q.available] or list(quotes)

    cost = _scaler([q.cost.total_fee_usd for q in pool], lower_is_better=True)
    speed = _scaler([q.timing.seconds for q in pool], lower_is_better=True)
    security = _scaler([q.security.score for q in pool], lower_is_better=False)

    for quote in quotes:
        quote.score = round(
            w.cost_weight * cost(quote.cost.total_fee_usd)
            + w.speed_weight * speed(quote.timing.seconds)
            + w.security_weight * security(quote.security.score),
            6,
        )

    ranked = sorted(quotes, key=sort_key)
    for position, quote in enumerate(ranked, start=1):
        quote.rank = position
    return ranked
