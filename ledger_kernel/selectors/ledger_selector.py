"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only balance queries over voucher entries: per-ledger
    running balances, per-ledger activity totals over a date window, ledger
    opening balances, and ledger statement lines.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/.  Statement engines consume the rows returned here.

Invariants enforced:
    - No stored balances.  Every figure is opening balance plus the sum of
      entries on vouchers whose status is visible under the posting policy.
    - Visibility is always an explicit status set passed by the caller.
    - All sums are Decimal; database floats (SQLite) are coerced through
      ``to_decimal``.

Failure modes:
    - LedgerNotFoundError for an unknown ledger id.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.values import BalancePair, Side, signed_amount, to_decimal
from ledger_kernel.domain.vouchers import VoucherStatus
from ledger_kernel.exceptions import LedgerNotFoundError
from ledger_kernel.models.chart import Ledger
from ledger_kernel.models.voucher import Voucher, VoucherEntry
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerActivity:
    """Debit and credit totals of one ledger over a window."""

    ledger_id: UUID
    debit: Decimal
    credit: Decimal

    @property
    def net(self) -> Decimal:
        return self.debit - self.credit


@dataclass(frozen=True)
class LedgerOpening:
    """A ledger's identity and opening balance (debit-positive)."""

    ledger_id: UUID
    name: str
    group_id: UUID
    opening_net: Decimal
    is_active: bool


@dataclass(frozen=True)
class StatementLine:
    """One voucher entry as it appears on a ledger statement."""

    voucher_id: UUID
    entry_id: UUID
    voucher_number: str
    voucher_date: date
    status: VoucherStatus
    debit: Decimal
    credit: Decimal
    narration: str | None


def _status_values(statuses: Iterable[VoucherStatus]) -> list[str]:
    return sorted(s.value for s in statuses)


class LedgerSelector(BaseSelector[VoucherEntry]):
    """
    Authoritative balance reads.

    Every method takes the set of visible voucher statuses, so the same
    query serves both strict (approved only) and tentative posting.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get_ledger(self, ledger_id: UUID) -> Ledger:
        ledger = self.session.get(Ledger, ledger_id)
        if ledger is None:
            raise LedgerNotFoundError(str(ledger_id))
        return ledger

    def ledger_totals(
        self,
        ledger_id: UUID,
        statuses: Iterable[VoucherStatus],
        as_of: date | None = None,
    ) -> tuple[Decimal, Decimal]:
        """Sum of debits and credits on one ledger up to ``as_of``."""
        query = (
            select(
                func.sum(VoucherEntry.debit).label("debit_total"),
                func.sum(VoucherEntry.credit).label("credit_total"),
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == ledger_id,
                Voucher.status.in_(_status_values(statuses)),
            )
        )
        if as_of is not None:
            query = query.where(Voucher.voucher_date <= as_of)

        row = self.session.execute(query).one()
        return to_decimal(row.debit_total), to_decimal(row.credit_total)

    def running_balance(
        self,
        ledger_id: UUID,
        as_of: date,
        statuses: Iterable[VoucherStatus],
    ) -> BalancePair:
        """
        Opening balance plus every visible entry dated on or before ``as_of``.

        The window starts at the ledger's creation, which keeps the result
        equal to the ledger's trial-balance closing on the same date.

        Raises:
            LedgerNotFoundError: Unknown ledger.
        """
        ledger = self.get_ledger(ledger_id)
        debit_total, credit_total = self.ledger_totals(ledger_id, statuses, as_of)
        opening = signed_amount(to_decimal(ledger.opening_balance), Side(ledger.opening_side))
        return BalancePair.from_net(opening + debit_total - credit_total)

    def activity_by_ledger(
        self,
        tenant_id: UUID,
        statuses: Iterable[VoucherStatus],
        date_from: date | None = None,
        date_to: date | None = None,
        before: date | None = None,
    ) -> dict[UUID, LedgerActivity]:
        """
        Debit/credit totals per ledger for a tenant.

        Args:
            date_from: Inclusive lower bound on voucher date.
            date_to: Inclusive upper bound on voucher date.
            before: Exclusive upper bound (entries strictly before).
        """
        query = (
            select(
                VoucherEntry.ledger_id,
                func.sum(VoucherEntry.debit).label("debit_total"),
                func.sum(VoucherEntry.credit).label("credit_total"),
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                Voucher.tenant_id == tenant_id,
                Voucher.status.in_(_status_values(statuses)),
            )
            .group_by(VoucherEntry.ledger_id)
        )
        if date_from is not None:
            query = query.where(Voucher.voucher_date >= date_from)
        if date_to is not None:
            query = query.where(Voucher.voucher_date <= date_to)
        if before is not None:
            query = query.where(Voucher.voucher_date < before)

        return {
            row.ledger_id: LedgerActivity(
                ledger_id=row.ledger_id,
                debit=to_decimal(row.debit_total),
                credit=to_decimal(row.credit_total),
            )
            for row in self.session.execute(query).all()
        }

    def openings(self, tenant_id: UUID) -> list[LedgerOpening]:
        """Every ledger of the tenant with its signed opening balance."""
        ledgers = self.session.execute(
            select(Ledger).where(Ledger.tenant_id == tenant_id).order_by(Ledger.name)
        ).scalars().all()
        return [
            LedgerOpening(
                ledger_id=l.id,
                name=l.name,
                group_id=l.group_id,
                opening_net=signed_amount(to_decimal(l.opening_balance), Side(l.opening_side)),
                is_active=l.is_active,
            )
            for l in ledgers
        ]

    def statement_lines(
        self,
        ledger_id: UUID,
        statuses: Iterable[VoucherStatus],
        date_from: date,
        date_to: date,
    ) -> list[StatementLine]:
        """Visible entries of one ledger in ``[date_from, date_to]``, in date order."""
        query = (
            select(
                VoucherEntry.id.label("entry_id"),
                VoucherEntry.debit,
                VoucherEntry.credit,
                VoucherEntry.narration.label("entry_narration"),
                Voucher.id.label("voucher_id"),
                Voucher.voucher_number,
                Voucher.voucher_date,
                Voucher.status,
                Voucher.narration.label("voucher_narration"),
            )
            .join(Voucher, Voucher.id == VoucherEntry.voucher_id)
            .where(
                VoucherEntry.ledger_id == ledger_id,
                Voucher.status.in_(_status_values(statuses)),
                Voucher.voucher_date >= date_from,
                Voucher.voucher_date <= date_to,
            )
            .order_by(Voucher.voucher_date, Voucher.voucher_number, VoucherEntry.line_seq)
        )
        return [
            StatementLine(
                voucher_id=row.voucher_id,
                entry_id=row.entry_id,
                voucher_number=row.voucher_number,
                voucher_date=row.voucher_date,
                status=VoucherStatus(row.status),
                debit=to_decimal(row.debit),
                credit=to_decimal(row.credit),
                narration=row.entry_narration or row.voucher_narration,
            )
            for row in self.session.execute(query).all()
        ]

    def has_entries(self, ledger_id: UUID) -> bool:
        """True if any voucher entry, in any status, targets the ledger."""
        count = self.session.execute(
            select(func.count(VoucherEntry.id)).where(VoucherEntry.ledger_id == ledger_id)
        ).scalar_one()
        return count > 0

