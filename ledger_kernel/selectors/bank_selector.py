"""
Module: ledger_kernel.selectors.bank_selector
Responsibility: Read-only queries behind bank matching and reconciliation:
    unmatched statement lines, candidate voucher entries on the linked
    ledger, vouchers already linked to a statement line, and summaries.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Candidate entries exclude vouchers already linked to a statement
      line of the same bank account, reversal vouchers, and vouchers
      outside the matchable statuses.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.bank import CandidateEntry, StatementLineRef
from ledger_kernel.domain.values import to_decimal
from ledger_kernel.domain.vouchers import VoucherStatus
from ledger_kernel.models.bank import (
    BankReconciliation,
    BankTransaction,
    ReconciliationStatus,
)
from ledger_kernel.models.voucher import Voucher, VoucherEntry
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MatchSummary:
    total_transactions: int
    matched_count: int
    unmatched_count: int
    unmatched_debit: Decimal
    unmatched_credit: Decimal


class BankSelector(BaseSelector[BankTransaction]):
    """Read side of bank matching."""

    def __init__(self, session: Session):
        super().__init__(session)

    def existing_dedup_keys(self, bank_account_id: UUID, dates: Iterable[date]) -> set[tuple]:
        """Dedup keys of stored lines on the given dates."""
        day_list = sorted(set(dates))
        if not day_list:
            return set()
        rows = self.session.execute(
            select(
                BankTransaction.transaction_date,
                BankTransaction.description,
                BankTransaction.reference_no,
                BankTransaction.debit,
                BankTransaction.credit,
            ).where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.transaction_date.in_(day_list),
            )
        ).all()
        return {
            (r.transaction_date, r.description, r.reference_no, to_decimal(r.debit), to_decimal(r.credit))
            for r in rows
        }

    def unmatched_transactions(self, bank_account_id: UUID, limit: int | None = None) -> list[StatementLineRef]:
        """Unmatched lines, oldest first."""
        query = (
            select(BankTransaction)
            .where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.is_matched.is_(False),
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.id)
        )
        if limit is not None:
            query = query.limit(limit)
        return [
            StatementLineRef(
                id=t.id,
                transaction_date=t.transaction_date,
                debit=to_decimal(t.debit),
                credit=to_decimal(t.credit),
            )
            for t in self.session.execute(query).scalars().all()
        ]

    def count_unmatched(self, bank_account_id: UUID) -> int:
        return self.session.execute(
            select(func.count(BankTransaction.id)).where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.is_matched.is_(False),
            )
        ).scalar_one()

    def linked_voucher_ids(self, bank_account_id: UUID) -> set[UUID]:
        """Vouchers already linked to a statement line of this account."""
        rows = self.session.execute(
            select(BankTransaction.matched_voucher_id).where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.matched_voucher_id.is_not(None),
            )
        ).scalars().all()
        return set(rows)

    def transaction_for_voucher(self, voucher_id: UUID, bank_account_id: UUID) -> BankTransaction | None:
        """The line of this account the voucher is linked to, if any."""
        return self.session.execute(
            select(BankTransaction).where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.matched_voucher_id == voucher_id,
            )
        ).scalars().first()

    def voucher_touches_ledger(self, voucher_id: UUID, ledger_id: UUID) -> bool:
        return self.session.execute(
            select(VoucherEntry.id)
            .where(VoucherEntry.voucher_id == voucher_id, VoucherEntry.ledger_id == ledger_id)
            .limit(1)
        ).first() is not None

    def candidate_entries(
        self,
        ledger_id: UUID,
        statuses: Iterable[VoucherStatus],
        exclude_voucher_ids: set[UUID],
    ) -> list[CandidateEntry]:
        """
        Matchable entries on the linked ledger, ordered by voucher date,
        voucher id, then line sequence.
        """
        query = (
            select(
                VoucherEntry.id.label("entry_id"),
                VoucherEntry.voucher_id,
                VoucherEntry.line_seq,
                VoucherEntry.debit,
                VoucherEntry.credit,
                Voucher.voucher_date,
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == ledger_id,
                Voucher.status.in_(sorted(s.value for s in statuses)),
                Voucher.reversal_of_id.is_(None),
            )
        )
        candidates = [
            CandidateEntry(
                entry_id=row.entry_id,
                voucher_id=row.voucher_id,
                voucher_date=row.voucher_date,
                line_seq=row.line_seq,
                debit=to_decimal(row.debit),
                credit=to_decimal(row.credit),
            )
            for row in self.session.execute(query).all()
            if row.voucher_id not in exclude_voucher_ids
        ]
        candidates.sort(key=lambda c: (c.voucher_date, str(c.voucher_id), c.line_seq))
        return candidates

    def summary(self, bank_account_id: UUID) -> MatchSummary:
        rows = self.session.execute(
            select(
                BankTransaction.is_matched,
                func.count(BankTransaction.id).label("n"),
                func.sum(BankTransaction.debit).label("debit_total"),
                func.sum(BankTransaction.credit).label("credit_total"),
            )
            .where(BankTransaction.bank_account_id == bank_account_id)
            .group_by(BankTransaction.is_matched)
        ).all()
        matched = unmatched = 0
        unmatched_debit = unmatched_credit = Decimal("0")
        for row in rows:
            if row.is_matched:
                matched = row.n
            else:
                unmatched = row.n
                unmatched_debit = to_decimal(row.debit_total)
                unmatched_credit = to_decimal(row.credit_total)
        return MatchSummary(
            total_transactions=matched + unmatched,
            matched_count=matched,
            unmatched_count=unmatched,
            unmatched_debit=unmatched_debit,
            unmatched_credit=unmatched_credit,
        )

    def reconciliation_for_period(
        self,
        bank_account_id: UUID,
        period_end: date,
        status: ReconciliationStatus | None = None,
    ) -> BankReconciliation | None:
        query = select(BankReconciliation).where(
            BankReconciliation.bank_account_id == bank_account_id,
            BankReconciliation.period_end == period_end,
        )
        if status is not None:
            query = query.where(BankReconciliation.status == status.value)
        return self.session.execute(
            query.order_by(BankReconciliation.created_at.desc())
        ).scalars().first()

    def reconciliations(self, bank_account_id: UUID) -> list[BankReconciliation]:
        return list(
            self.session.execute(
                select(BankReconciliation)
                .where(BankReconciliation.bank_account_id == bank_account_id)
                .order_by(BankReconciliation.period_end)
            ).scalars().all()
        )
