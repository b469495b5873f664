"""
Tests for the greedy bank matcher (ledger_engines.matching).

Tests cover:
- Window boundaries (inclusive) and amount tolerance
- Direction: bank credit (money in) matches a debit on the bank ledger
- One-to-one claiming: a voucher is never matched twice
- Deterministic ordering and tie-break by voucher id
- Greedy non-optimality is documented behavior
- Constructor validation and trace logging
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from ledger_engines.matching import GreedyBankMatcher, MatchPlan
from ledger_kernel.domain.bank import CandidateEntry, StatementLineRef

ZERO = Decimal("0")
DAY = date(2024, 3, 1)


def _line(day_offset=0, credit="0", debit="0", line_id=None):
    return StatementLineRef(
        id=line_id or uuid4(),
        transaction_date=DAY + timedelta(days=day_offset),
        debit=Decimal(debit),
        credit=Decimal(credit),
    )


def _candidate(day_offset=0, debit="0", credit="0", voucher_id=None, line_seq=0):
    return CandidateEntry(
        entry_id=uuid4(),
        voucher_id=voucher_id or uuid4(),
        voucher_date=DAY + timedelta(days=day_offset),
        line_seq=line_seq,
        debit=Decimal(debit),
        credit=Decimal(credit),
    )


@pytest.fixture
def matcher():
    return GreedyBankMatcher(tolerance=Decimal("0.01"), window_days=3)


class TestFits:
    """Single pair acceptance rule."""

    def test_deposit_matches_bank_debit(self, matcher):
        assert matcher.fits(_line(credit="1000"), _candidate(debit="1000"))

    def test_withdrawal_matches_bank_credit(self, matcher):
        assert matcher.fits(_line(debit="250"), _candidate(credit="250"))

    def test_direction_mismatch_rejected(self, matcher):
        assert not matcher.fits(_line(credit="1000"), _candidate(credit="1000"))

    def test_amount_within_tolerance(self, matcher):
        assert matcher.fits(_line(credit="100.01"), _candidate(debit="100.00"))

    def test_amount_beyond_tolerance(self, matcher):
        assert not matcher.fits(_line(credit="100.02"), _candidate(debit="100.00"))

    @pytest.mark.parametrize("gap", [-3, 0, 3])
    def test_window_inclusive(self, matcher, gap):
        assert matcher.fits(_line(day_offset=gap, credit="10"), _candidate(debit="10"))

    @pytest.mark.parametrize("gap", [-4, 4, 7])
    def test_outside_window(self, matcher, gap):
        assert not matcher.fits(_line(day_offset=gap, credit="10"), _candidate(debit="10"))


class TestMatch:
    """Full greedy pass."""

    def test_within_window_is_matched(self, matcher):
        """Bank credit on day 5, voucher debit on day 3."""
        line = _line(day_offset=4, credit="1000")
        candidate = _candidate(day_offset=2, debit="1000")

        plan = matcher.match(lines=[line], candidates=[candidate])

        assert plan.matched_count == 1
        pair = plan.pairs[0]
        assert pair.bank_transaction_id == line.id
        assert pair.voucher_id == candidate.voucher_id
        assert pair.entry_id == candidate.entry_id
        assert pair.day_gap == 2
        assert pair.amount_difference == ZERO

    def test_seven_day_gap_stays_unmatched(self, matcher):
        """Bank credit on day 10, voucher debit on day 3."""
        line = _line(day_offset=9, credit="1000")
        plan = matcher.match(lines=[line], candidates=[_candidate(day_offset=2, debit="1000")])

        assert plan.matched_count == 0
        assert plan.unmatched_line_ids == (line.id,)

    def test_no_candidates(self, matcher):
        line = _line(credit="5")
        plan = matcher.match(lines=[line], candidates=[])
        assert plan == MatchPlan(pairs=(), unmatched_line_ids=(line.id,))

    def test_voucher_claimed_once(self, matcher):
        """Two identical lines, one voucher: the second line stays unmatched."""
        first = _line(day_offset=0, credit="50")
        second = _line(day_offset=1, credit="50")
        candidate = _candidate(day_offset=0, debit="50")

        plan = matcher.match(lines=[second, first], candidates=[candidate])

        assert plan.matched_count == 1
        assert plan.pairs[0].bank_transaction_id == first.id
        assert plan.unmatched_line_ids == (second.id,)

    def test_claimed_voucher_excludes_its_other_entries(self, matcher):
        """A voucher with two entries on the bank ledger is matched once."""
        voucher_id = uuid4()
        lines = [_line(credit="20"), _line(day_offset=1, credit="20")]
        candidates = [
            _candidate(debit="20", voucher_id=voucher_id, line_seq=0),
            _candidate(debit="20", voucher_id=voucher_id, line_seq=1),
        ]

        plan = matcher.match(lines=lines, candidates=candidates)

        assert plan.matched_count == 1

    def test_earliest_candidate_wins(self, matcher):
        line = _line(day_offset=2, credit="75")
        early = _candidate(day_offset=0, debit="75")
        late = _candidate(day_offset=3, debit="75")

        plan = matcher.match(lines=[line], candidates=[late, early])

        assert plan.pairs[0].voucher_id == early.voucher_id

    def test_same_date_tie_broken_by_voucher_id(self, matcher):
        low = UUID("00000000-0000-0000-0000-000000000001")
        high = UUID("ffffffff-0000-0000-0000-000000000001")
        line = _line(credit="10")

        plan = matcher.match(
            lines=[line],
            candidates=[_candidate(debit="10", voucher_id=high), _candidate(debit="10", voucher_id=low)],
        )

        assert plan.pairs[0].voucher_id == low

    def test_deterministic(self, matcher):
        lines = [_line(day_offset=i % 3, credit=str(10 + i % 2)) for i in range(6)]
        candidates = [_candidate(day_offset=i % 4, debit=str(10 + i % 2)) for i in range(6)]

        first = matcher.match(lines=lines, candidates=candidates)
        second = matcher.match(lines=list(reversed(lines)), candidates=list(reversed(candidates)))

        assert first == second

    def test_greedy_is_not_optimal(self, matcher):
        """
        Line A takes the first voucher that fits it, which was also the only
        voucher line B fitted.  B stays unmatched although A-second, B-first
        would have matched both.
        """
        line_a = _line(day_offset=0, credit="10.00")
        line_b = _line(day_offset=1, credit="10.02")
        fits_both = _candidate(day_offset=0, debit="10.01")
        fits_a_only = _candidate(day_offset=1, debit="10.00")

        plan = matcher.match(lines=[line_a, line_b], candidates=[fits_both, fits_a_only])

        assert plan.matched_count == 1
        assert plan.pairs[0].bank_transaction_id == line_a.id
        assert plan.pairs[0].voucher_id == fits_both.voucher_id
        assert plan.unmatched_line_ids == (line_b.id,)

    def test_match_logged(self, matcher, captured_logs):
        matcher.match(lines=[_line(credit="1")], candidates=[_candidate(debit="1")])

        messages = [r["message"] for r in captured_logs()]
        assert "bank_match_plan_built" in messages
        trace = next(r for r in captured_logs() if r["message"] == "engine_trace")
        assert trace["engine_name"] == "bank_matching"
        assert trace["result_size"] == 1


class TestConstruction:
    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            GreedyBankMatcher(tolerance=Decimal("-1"))

    def test_negative_window_rejected(self):
        with pytest.raises(ValueError):
            GreedyBankMatcher(window_days=-1)
