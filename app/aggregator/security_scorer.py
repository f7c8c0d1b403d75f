"""Security Scorer — audit/exploit history → bounded score in [0, 1].

Scoring model (per bridge):
  score = 1.0 + audit_bonus − Σ exploit_penalty, clamped to [0, 1]

  exploit_penalty = 0.6 × severity × decay
    severity = min(1, log10(1 + loss) / log10(1 + 1e9))   unknown loss → $1M
    decay    = 0.5 ^ (age_years / 2)                       floored at 0.5 for losses ≥ $100M

  audit_bonus = Σ 0.1 × 0.5^k over passed audits, k = how many earlier passed
                audits the same firm has; capped at 0.3

Events are deduplicated and sorted before summing with math.fsum, so the
result does not depend on record order. Missing history is not a
penalty: no events means base score. The evaluation date is an explicit
argument; nothing here reads the clock.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date

from app.aggregator.types import (
    AuditEvent,
    ExploitEvent,
    SecurityLevel,
    SecurityRecord,
    SecurityScore,
)

logger = logging.getLogger(__name__)

BASE_SCORE = 1.0
NEUTRAL_SCORE = 0.5

EXPLOIT_MAX_PENALTY = 0.6
LOSS_SEVERITY_CAP_USD = 1_000_000_000
UNKNOWN_LOSS_USD = 1_000_000
EXPLOIT_HALF_LIFE_YEARS = 2.0
SEVERE_LOSS_USD = 100_000_000
SEVERE_DECAY_FLOOR = 0.5

AUDIT_BONUS = 0.1
REPEAT_AUDIT_FACTOR = 0.5
AUDIT_BONUS_CAP = 0.3

HIGH_CUTOFF = 0.8
MEDIUM_CUTOFF = 0.5

_DAYS_PER_YEAR = 365.25


def categorize_security(score: float) -> SecurityLevel:
    if score >= HIGH_CUTOFF:
        return SecurityLevel.HIGH
    if score >= MEDIUM_CUTOFF:
        return SecurityLevel.MEDIUM
    return SecurityLevel.LOW


def neutral_score() -> SecurityScore:
    """Score used when the security store is unreachable."""
    return SecurityScore(score=NEUTRAL_SCORE, level=categorize_security(NEUTRAL_SCORE))


def _loss_usd(exploit: ExploitEvent) -> float:
    loss = exploit.loss_amount
    if loss is None or not math.isfinite(loss) or loss < 0:
        return float(UNKNOWN_LOSS_USD)
    return float(loss)


def exploit_penalty(exploit: ExploitEvent, as_of: date) -> float:
    loss = _loss_usd(exploit)
    severity = min(1.0, math.log10(1 + loss) / math.log10(1 + LOSS_SEVERITY_CAP_USD))

    # Future-dated incidents count as brand new
    age_years = max(0, (as_of - exploit.date).days) / _DAYS_PER_YEAR
    decay = 0.5 ** (age_years / EXPLOIT_HALF_LIFE_YEARS)
    if loss >= SEVERE_LOSS_USD:
        decay = max(decay, SEVERE_DECAY_FLOOR)

    return EXPLOIT_MAX_PENALTY * severity * decay


def audit_bonus(audits: list[AuditEvent]) -> float:
    unique = sorted({(a.firm.strip().lower(), a.date) for a in audits if a.passed})
    seen_per_firm: dict[str, int] = defaultdict(int)
    terms: list[float] = []
    for firm, _ in unique:
        terms.append(AUDIT_BONUS * REPEAT_AUDIT_FACTOR ** seen_per_firm[firm])
        seen_per_firm[firm] += 1
    return min(AUDIT_BONUS_CAP, math.fsum(terms))


def score_security(record: SecurityRecord | None, as_of: date) -> SecurityScore:
    """Derive the SecurityScore for one bridge as of a given date.

    A bridge with no recorded events starts from the base score like any
    other, so a clean history never scores below an exploited one.
    """
    if record is None:
        record = SecurityRecord(bridge="")

    exploits = sorted(set(record.exploits), key=lambda e: (e.date, _loss_usd(e), e.description))
    penalties = [exploit_penalty(e, as_of) for e in exploits]

    raw = math.fsum([BASE_SCORE, audit_bonus(record.audits)] + [-p for p in penalties])
    score = round(min(1.0, max(0.0, raw)), 4)

    return SecurityScore(
        score=score,
        level=categorize_security(score),
        has_audit=any(a.passed for a in record.audits),
        has_exploit=bool(record.exploits),
    )
