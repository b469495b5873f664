"""Bank matching value objects shared by the bank selector and the matcher."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class StatementLineRef:
    """Unmatched bank statement line, as the matcher sees it."""

    id: UUID
    transaction_date: date
    debit: Decimal
    credit: Decimal

    @property
    def amount(self) -> Decimal:
        """Inflow-positive: credit - debit."""
        return self.credit - self.debit


@dataclass(frozen=True)
class CandidateEntry:
    """Voucher entry on the bank-linked ledger that may be matched."""

    entry_id: UUID
    voucher_id: UUID
    voucher_date: date
    line_seq: int
    debit: Decimal
    credit: Decimal

    @property
    def amount(self) -> Decimal:
        """Debit-positive: debit - credit (money into the bank ledger)."""
        return self.debit - self.credit
