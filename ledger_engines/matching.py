"""
ledger_engines.matching -- Greedy bank statement to voucher matcher.

Responsibility:
    Pairs unmatched bank statement lines with voucher entries posted on the
    bank-linked ledger.  A pair is accepted when the amounts agree within
    the tolerance and the dates lie within the day window.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The bank reconciliation
    service loads ``StatementLineRef`` and ``CandidateEntry`` objects,
    calls ``GreedyBankMatcher.match`` and persists the resulting pairs.

Invariants enforced:
    - Each statement line is paired with at most one voucher, and each
      voucher with at most one statement line.  Once a voucher is claimed
      its other entries on the ledger are no longer candidates.
    - Deterministic: statement lines are visited by (date, id) and
      candidates by (voucher date, voucher id, line seq).  Identical inputs
      give identical pairs.

Algorithm:
    Single greedy pass: each statement line takes the first unclaimed
    candidate that fits.  This is NOT globally optimal: an early line can
    take a candidate that a later line fitted better, leaving the later
    line unmatched while an assignment covering both existed.  Such lines
    are left for manual matching.

Usage:
    from ledger_engines.matching import GreedyBankMatcher

    plan = GreedyBankMatcher(tolerance=Decimal("0.01"), window_days=3).match(
        lines=unmatched_lines,
        candidates=candidate_entries,
    )
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.bank import CandidateEntry, StatementLineRef
from ledger_kernel.domain.values import DEFAULT_TOLERANCE
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

DEFAULT_WINDOW_DAYS = 3


@dataclass(frozen=True)
class MatchPair:
    """One accepted statement line / voucher pairing."""

    bank_transaction_id: UUID
    voucher_id: UUID
    entry_id: UUID
    day_gap: int
    amount_difference: Decimal


@dataclass(frozen=True)
class MatchPlan:
    """Outcome of a matcher run.  Nothing here is persisted yet."""

    pairs: tuple[MatchPair, ...]
    unmatched_line_ids: tuple[UUID, ...]

    @property
    def matched_count(self) -> int:
        return len(self.pairs)


class GreedyBankMatcher:
    """Greedy first-fit matcher over one bank account's lines.

    The matcher holds only its thresholds, so one instance can be reused
    across calls and threads.
    """

    def __init__(
        self,
        tolerance: Decimal = DEFAULT_TOLERANCE,
        window_days: int = DEFAULT_WINDOW_DAYS,
    ):
        if tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        if window_days < 0:
            raise ValueError("window_days must be non-negative")
        self.tolerance = tolerance
        self.window_days = window_days

    def fits(self, line: StatementLineRef, candidate: CandidateEntry) -> bool:
        """Amount within tolerance and date within the window."""
        if abs(line.amount - candidate.amount) > self.tolerance:
            return False
        return abs((line.transaction_date - candidate.voucher_date).days) <= self.window_days

    @traced_engine("bank_matching", "1.0")
    def match(
        self,
        lines: Sequence[StatementLineRef],
        candidates: Sequence[CandidateEntry],
    ) -> MatchPlan:
        ordered_lines = sorted(lines, key=lambda l: (l.transaction_date, str(l.id)))
        ordered_candidates = sorted(
            candidates,
            key=lambda c: (c.voucher_date, str(c.voucher_id), c.line_seq),
        )
        candidate_dates = [c.voucher_date for c in ordered_candidates]
        window = timedelta(days=self.window_days)

        claimed: set[UUID] = set()
        pairs: list[MatchPair] = []
        unmatched: list[UUID] = []

        for line in ordered_lines:
            start = bisect_left(candidate_dates, line.transaction_date - window)
            latest = line.transaction_date + window
            chosen = None
            for candidate in ordered_candidates[start:]:
                if candidate.voucher_date > latest:
                    break
                if candidate.voucher_id in claimed:
                    continue
                if self.fits(line, candidate):
                    chosen = candidate
                    break

            if chosen is None:
                unmatched.append(line.id)
                continue

            claimed.add(chosen.voucher_id)
            pairs.append(
                MatchPair(
                    bank_transaction_id=line.id,
                    voucher_id=chosen.voucher_id,
                    entry_id=chosen.entry_id,
                    day_gap=(line.transaction_date - chosen.voucher_date).days,
                    amount_difference=line.amount - chosen.amount,
                )
            )

        logger.info(
            "bank_match_plan_built",
            extra={
                "line_count": len(ordered_lines),
                "candidate_count": len(ordered_candidates),
                "matched_count": len(pairs),
                "unmatched_count": len(unmatched),
            },
        )
        return MatchPlan(pairs=tuple(pairs), unmatched_line_ids=tuple(unmatched))
