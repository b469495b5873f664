"""
Voucher domain types (``ledger_kernel.domain.vouchers``).

Responsibility
--------------
Pure value objects for voucher posting: the voucher status state machine,
voucher type natures, the posting-visibility rules, the caller-facing
input DTOs, and the balance validation every submitted voucher passes.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  May import only from
``domain/values`` and ``exceptions``.

Invariants enforced
-------------------
* ``VOUCHER_TRANSITIONS`` is the only source of legal status moves.
  CANCELLED and REJECTED are terminal.
* A voucher has at least two entries; each entry has exactly one
  non-zero, non-negative side; debits equal credits within tolerance.
* REJECTED vouchers are never visible to balances.  DRAFT and
  PENDING_APPROVAL are visible only under tentative posting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.values import DEFAULT_TOLERANCE, ZERO, within_tolerance
from ledger_kernel.exceptions import (
    InsufficientEntriesError,
    InvalidEntryAmountError,
    InvalidTransitionError,
    UnbalancedVoucherError,
)

MIN_ENTRIES = 2


class VoucherStatus(str, Enum):
    """Voucher lifecycle states."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


VOUCHER_TRANSITIONS: dict[VoucherStatus, frozenset[VoucherStatus]] = {
    VoucherStatus.DRAFT: frozenset({VoucherStatus.PENDING_APPROVAL}),
    VoucherStatus.PENDING_APPROVAL: frozenset({
        VoucherStatus.APPROVED,
        VoucherStatus.REJECTED,
    }),
    VoucherStatus.APPROVED: frozenset({VoucherStatus.CANCELLED}),
    VoucherStatus.REJECTED: frozenset(),
    VoucherStatus.CANCELLED: frozenset(),
}

TERMINAL_VOUCHER_STATUSES: frozenset[VoucherStatus] = frozenset(
    status for status, targets in VOUCHER_TRANSITIONS.items() if not targets
)

DELETABLE_STATUSES: frozenset[VoucherStatus] = frozenset({
    VoucherStatus.DRAFT,
    VoucherStatus.REJECTED,
})

# Statuses a voucher may be created in.
INITIAL_STATUSES: frozenset[VoucherStatus] = frozenset({
    VoucherStatus.DRAFT,
    VoucherStatus.PENDING_APPROVAL,
})


class VoucherNature(str, Enum):
    """Business nature of a voucher type."""

    PAYMENT = "payment"
    RECEIPT = "receipt"
    CONTRA = "contra"
    JOURNAL = "journal"
    SALES = "sales"
    PURCHASE = "purchase"
    DEBIT_NOTE = "debit_note"
    CREDIT_NOTE = "credit_note"


def can_transition(current: VoucherStatus, target: VoucherStatus) -> bool:
    return target in VOUCHER_TRANSITIONS[current]


def validate_transition(voucher_id: UUID | str, current: VoucherStatus, target: VoucherStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is in the table."""
    if not can_transition(current, target):
        raise InvalidTransitionError(str(voucher_id), current.value, target.value)


def visible_statuses(include_unapproved: bool) -> frozenset[VoucherStatus]:
    """Statuses whose entries count toward balances.

    CANCELLED stays visible because its reversal voucher is APPROVED;
    together they net to zero while both remain on the books.
    """
    statuses = {VoucherStatus.APPROVED, VoucherStatus.CANCELLED}
    if include_unapproved:
        statuses |= {VoucherStatus.DRAFT, VoucherStatus.PENDING_APPROVAL}
    return frozenset(statuses)


def matchable_statuses(include_unapproved: bool) -> frozenset[VoucherStatus]:
    """Statuses whose entries may be matched to bank lines."""
    return visible_statuses(include_unapproved) - {VoucherStatus.CANCELLED}


@dataclass(frozen=True)
class EntryInput:
    """One leg of a voucher as submitted by a caller."""

    ledger_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    narration: str | None = None


@dataclass(frozen=True)
class VoucherHeader:
    """Voucher header as submitted by a caller."""

    tenant_id: UUID
    voucher_type_id: UUID
    fiscal_year_id: UUID
    voucher_date: date
    created_by_id: UUID
    narration: str | None = None
    reference_no: str | None = None


@dataclass(frozen=True)
class VoucherTotals:
    total_debit: Decimal
    total_credit: Decimal

    @property
    def difference(self) -> Decimal:
        return abs(self.total_debit - self.total_credit)


def validate_entries(
    entries: list[EntryInput] | tuple[EntryInput, ...],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> VoucherTotals:
    """Check entry count, per-entry amounts and overall balance.

    Raises:
        InsufficientEntriesError: fewer than two entries.
        InvalidEntryAmountError: negative side, or not exactly one side
            non-zero.  Carries the entry index.
        UnbalancedVoucherError: debits and credits differ beyond
            ``tolerance``.  Carries the difference.
    """
    if len(entries) < MIN_ENTRIES:
        raise InsufficientEntriesError(len(entries), MIN_ENTRIES)

    total_debit = ZERO
    total_credit = ZERO
    for index, entry in enumerate(entries):
        if entry.debit < 0 or entry.credit < 0:
            raise InvalidEntryAmountError(index, entry.debit, entry.credit, "amounts must be non-negative")
        if entry.debit != 0 and entry.credit != 0:
            raise InvalidEntryAmountError(index, entry.debit, entry.credit, "both sides are non-zero")
        if entry.debit == 0 and entry.credit == 0:
            raise InvalidEntryAmountError(index, entry.debit, entry.credit, "both sides are zero")
        total_debit += entry.debit
        total_credit += entry.credit

    if not within_tolerance(total_debit, total_credit, tolerance):
        raise UnbalancedVoucherError(total_debit, total_credit)

    return VoucherTotals(total_debit=total_debit, total_credit=total_credit)


def format_voucher_number(prefix: str, year: int, counter: int, width: int = 5) -> str:
    """``PAY/`` + year + ``/`` + zero-padded counter, e.g. ``PAY/2024/00001``."""
    return f"{prefix}{year}/{counter:0{width}d}"


def round_off_entry(totals: VoucherTotals, ledger_id: UUID) -> EntryInput | None:
    """Entry that absorbs ``debit - credit``, or None for an exact balance."""
    residue = totals.total_debit - totals.total_credit
    if residue == 0:
        return None
    if residue > 0:
        return EntryInput(ledger_id=ledger_id, credit=residue, narration="Round off")
    return EntryInput(ledger_id=ledger_id, debit=-residue, narration="Round off")
