"""Tests for the security scorer."""

from __future__ import annotations

import random
from datetime import date

import pytest

from app.aggregator.security_scorer import (
    AUDIT_BONUS_CAP,
    audit_bonus,
    categorize_security,
    exploit_penalty,
    score_security,
)
from app.aggregator.types import AuditEvent, ExploitEvent, SecurityLevel, SecurityRecord

AS_OF = date(2026, 1, 1)


def _exploit(loss: float | None, when: date = date(2025, 6, 1)) -> ExploitEvent:
    return ExploitEvent(date=when, loss_amount=loss, description="incident")


def _audit(firm: str, when: date, result: str = "passed") -> AuditEvent:
    return AuditEvent(firm=firm, date=when, result=result)


class TestLevels:
    def test_cutoffs(self):
        assert categorize_security(0.8) == SecurityLevel.HIGH
        assert categorize_security(0.79) == SecurityLevel.MEDIUM
        assert categorize_security(0.5) == SecurityLevel.MEDIUM
        assert categorize_security(0.49) == SecurityLevel.LOW


class TestScoreSecurity:
    def test_missing_record_starts_from_base_score(self):
        score = score_security(None, AS_OF)
        assert score.score == 1.0
        assert score.level == SecurityLevel.HIGH
        assert not score.has_audit and not score.has_exploit

    def test_empty_record_starts_from_base_score(self):
        assert score_security(SecurityRecord(bridge="X"), AS_OF).score == 1.0

    def test_clean_history_never_below_exploited(self):
        clean = score_security(None, AS_OF)
        small = SecurityRecord(bridge="X", exploits=[_exploit(50_000, date(2025, 12, 1))])
        assert clean.score > score_security(small, AS_OF).score
        assert clean.score >= score_security(SecurityRecord(bridge="X"), AS_OF).score

    def test_audited_bridge_without_exploits(self):
        record = SecurityRecord(bridge="Hop", audits=[_audit("Solidified", date(2021, 5, 5))])
        score = score_security(record, AS_OF)
        assert score.score == 1.0
        assert score.level == SecurityLevel.HIGH
        assert score.has_audit is True

    def test_failed_audit_does_not_count(self):
        record = SecurityRecord(bridge="X", audits=[_audit("A", date(2023, 1, 1), "issues found")])
        assert score_security(record, AS_OF).has_audit is False

    def test_old_exploit_still_flagged(self):
        record = SecurityRecord(bridge="X", exploits=[_exploit(10_000, date(2010, 1, 1))])
        score = score_security(record, AS_OF)
        assert score.has_exploit is True
        assert score.score > 0.99

    def test_non_increasing_in_loss(self):
        losses = [None, 0, 1_000, 1_000_000, 50_000_000, 100_000_000, 600_000_000, 5_000_000_000]
        known = sorted(l for l in losses if l is not None)
        scores = [score_security(SecurityRecord(bridge="X", exploits=[_exploit(l)]), AS_OF).score for l in known]
        assert scores == sorted(scores, reverse=True)

    def test_non_decreasing_in_audit_count(self):
        audits = [
            _audit("Trail of Bits", date(2021, 1, 1)),
            _audit("Trail of Bits", date(2022, 1, 1)),
            _audit("OpenZeppelin", date(2022, 6, 1)),
            _audit("Zellic", date(2023, 1, 1)),
            _audit("Zellic", date(2024, 1, 1)),
        ]
        exploits = [_exploit(50_000_000)]
        scores = [
            score_security(SecurityRecord(bridge="X", audits=audits[:n], exploits=exploits), AS_OF).score
            for n in range(len(audits) + 1)
        ]
        assert scores == sorted(scores)

    def test_bounded(self):
        exploits = [_exploit(1e12, date(2025, 12, 1)) for _ in range(3)] + [_exploit(700_000_000, date(2025, 1, 1))]
        record = SecurityRecord(bridge="X", exploits=exploits)
        score = score_security(record, AS_OF)
        assert 0.0 <= score.score <= 1.0
        assert score.level == SecurityLevel.LOW

    def test_order_independent(self):
        audits = [_audit("A", date(2021, 1, 1)), _audit("B", date(2022, 1, 1)), _audit("A", date(2023, 1, 1))]
        exploits = [_exploit(3_000_000, date(2022, 2, 2)), _exploit(None, date(2024, 4, 4)), _exploit(90_000_000)]
        baseline = score_security(SecurityRecord(bridge="X", audits=audits, exploits=exploits), AS_OF)

        rng = random.Random(7)
        for _ in range(10):
            a, e = audits[:], exploits[:]
            rng.shuffle(a)
            rng.shuffle(e)
            assert score_security(SecurityRecord(bridge="X", audits=a, exploits=e), AS_OF) == baseline

    def test_rounded_to_four_decimals(self):
        record = SecurityRecord(bridge="X", exploits=[_exploit(1_234_567)])
        score = score_security(record, AS_OF).score
        assert score == round(score, 4)


class TestPenaltyAndBonus:
    def test_penalty_decays_with_age(self):
        recent = exploit_penalty(_exploit(10_000_000, date(2025, 12, 1)), AS_OF)
        old = exploit_penalty(_exploit(10_000_000, date(2019, 12, 1)), AS_OF)
        assert old < recent

    def test_severe_losses_never_fully_decay(self):
        ancient = exploit_penalty(_exploit(600_000_000, date(2000, 1, 1)), AS_OF)
        fresh = exploit_penalty(_exploit(600_000_000, AS_OF), AS_OF)
        assert ancient == pytest.approx(fresh * 0.5)

    def test_unknown_loss_counts_as_one_million(self):
        assert exploit_penalty(_exploit(None), AS_OF) == exploit_penalty(_exploit(1_000_000), AS_OF)

    def test_future_dated_exploit_counts_as_new(self):
        assert exploit_penalty(_exploit(1_000_000, date(2027, 1, 1)), AS_OF) == exploit_penalty(
            _exploit(1_000_000, AS_OF), AS_OF
        )

    def test_repeat_audits_by_same_firm_diminish(self):
        assert audit_bonus([_audit("A", date(2021, 1, 1)), _audit("A", date(2022, 1, 1))]) == pytest.approx(0.15)
        assert audit_bonus([_audit("A", date(2021, 1, 1)), _audit("B", date(2022, 1, 1))]) == pytest.approx(0.2)

    def test_duplicate_audit_counted_once(self):
        dup = _audit("A", date(2021, 1, 1))
        assert audit_bonus([dup, dup]) == pytest.approx(0.1)

    def test_bonus_capped(self):
        audits = [_audit(f"Firm {i}", date(2020, 1, i + 1)) for i in range(10)]
        assert audit_bonus(audits) == AUDIT_BONUS_CAP
