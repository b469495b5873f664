"""
VoucherService -- validated, atomic voucher posting and status lifecycle.

Responsibility:
    Accepts balanced multi-entry vouchers, numbers them, drives them through
    the status state machine, cancels approved vouchers by reversal, and
    deletes vouchers that never reached the books.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  The caller commits.

Invariants enforced:
    - Every voucher has >= 2 entries, each entry has exactly one non-zero
      non-negative side, and debits equal credits within the policy
      tolerance.  Validation runs before anything is added to the session.
    - Stored entries balance exactly: a residue inside the tolerance is
      posted to the policy's round-off ledger in the same SAVEPOINT.
    - Header and entries are written inside one SAVEPOINT: a failure leaves
      no partial voucher behind.
    - Ledgers and fiscal year belong to the voucher's tenant; the date lies
      inside the fiscal year; the year is open.
    - Status changes follow VOUCHER_TRANSITIONS only and lock the voucher
      row first, so the status write and the resulting balance visibility
      change in the same transaction.
    - Cancellation never edits posted amounts: it adds an APPROVED
      reversal voucher (sides swapped, reversal_of_id set) and marks the
      original CANCELLED.
    - Only DRAFT and REJECTED vouchers can be deleted.

Failure modes:
    - ValidationError subclasses for bad input (nothing written).
    - InvalidTransitionError for an illegal status change.
    - VoucherNotDeletableError when deleting a voucher that reached the
      approval path.
    - NotFoundError subclasses for unknown ids.

Audit relevance:
    Every state change stamps actor and clock time and is logged with the
    voucher id bound to the log context.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.templates import VoucherTypeTemplate
from ledger_kernel.domain.values import to_decimal
from ledger_kernel.domain.vouchers import (
    DELETABLE_STATUSES,
    INITIAL_STATUSES,
    EntryInput,
    VoucherHeader,
    VoucherNature,
    VoucherStatus,
    VoucherTotals,
    format_voucher_number,
    round_off_entry,
    validate_entries,
    validate_transition,
)
from ledger_kernel.exceptions import (
    CrossTenantLedgerError,
    DateOutsideFiscalYearError,
    DuplicateNameError,
    FiscalYearClosedError,
    FiscalYearNotFoundError,
    InactiveLedgerError,
    LedgerNotFoundError,
    VoucherNotDeletableError,
    VoucherNotFoundError,
    VoucherTypeNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bank import BankTransaction
from ledger_kernel.models.chart import Ledger
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.voucher import Voucher, VoucherEntry, VoucherType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.chart_service import ChartService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.voucher")


@dataclass(frozen=True)
class CancellationResult:
    """Outcome of cancelling an approved voucher."""

    original: Voucher
    reversal: Voucher
    cleared_bank_transaction_ids: tuple[UUID, ...] = ()


class VoucherService(BaseService[Voucher]):
    """
    Voucher posting engine.

    Non-goals:
        - Does NOT commit.  Wrap calls in ``session_scope()`` or
          ``run_in_transaction()``.
        - Does NOT compute balances (LedgerSelector / StatementService).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: PostingPolicy | None = None,
        sequence_service: SequenceService | None = None,
        fiscal_year_service: FiscalYearService | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or PostingPolicy()
        self._sequences = sequence_service or SequenceService(session)
        self._fiscal_years = fiscal_year_service or FiscalYearService(session, self.clock)
        self._chart = ChartService(session, self.clock)

    # -- voucher types ------------------------------------------------------

    def create_voucher_type(
        self,
        tenant_id: UUID,
        name: str,
        nature: VoucherNature,
        prefix: str,
        actor_id: UUID,
        initial_status: VoucherStatus = VoucherStatus.DRAFT,
    ) -> VoucherType:
        """
        Raises:
            ValueError: initial_status is not DRAFT or PENDING_APPROVAL.
            DuplicateNameError: Type name already used by the tenant.
        """
        initial_status = VoucherStatus(initial_status)
        if initial_status not in INITIAL_STATUSES:
            raise ValueError(f"Vouchers cannot start in status {initial_status.value}")
        existing = self.session.execute(
            select(VoucherType).where(
                VoucherType.tenant_id == tenant_id,
                VoucherType.name == name,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateNameError("voucher type", name)

        voucher_type = VoucherType(
            tenant_id=tenant_id,
            name=name,
            nature=VoucherNature(nature).value,
            prefix=prefix,
            initial_status=initial_status.value,
            created_by_id=actor_id,
        )
        self.session.add(voucher_type)
        self.session.flush()
        logger.info(
            "voucher_type_created",
            extra={"tenant_id": str(tenant_id), "voucher_type": name, "prefix": prefix},
        )
        return voucher_type

    def seed_voucher_types(
        self,
        tenant_id: UUID,
        templates: tuple[VoucherTypeTemplate, ...],
        actor_id: UUID,
    ) -> dict[str, VoucherType]:
        """Create the default voucher types, reusing ones that exist by name."""
        result: dict[str, VoucherType] = {}
        for template in templates:
            existing = self.session.execute(
                select(VoucherType).where(
                    VoucherType.tenant_id == tenant_id,
                    VoucherType.name == template.name,
                )
            ).scalar_one_or_none()
            result[template.name] = existing or self.create_voucher_type(
                tenant_id=tenant_id,
                name=template.name,
                nature=template.nature,
                prefix=template.prefix,
                actor_id=actor_id,
                initial_status=template.initial_status,
            )
        return result

    def get_voucher_type(self, voucher_type_id: UUID) -> VoucherType:
        voucher_type = self.session.get(VoucherType, voucher_type_id)
        if voucher_type is None:
            raise VoucherTypeNotFoundError(str(voucher_type_id))
        return voucher_type

    # -- lookups ------------------------------------------------------------

    def get_voucher(self, voucher_id: UUID) -> Voucher:
        voucher = self.session.get(Voucher, voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        return voucher

    def _lock_voucher(self, voucher_id: UUID) -> Voucher:
        voucher = self.session.execute(
            select(Voucher)
            .where(Voucher.id == voucher_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        return voucher

    # -- validation helpers -------------------------------------------------

    def _check_ledgers(self, tenant_id: UUID, entries: list[EntryInput]) -> None:
        ledger_ids = {e.ledger_id for e in entries}
        ledgers = {
            l.id: l
            for l in self.session.execute(
                select(Ledger).where(Ledger.id.in_(ledger_ids))
            ).scalars().all()
        }
        for entry in entries:
            ledger = ledgers.get(entry.ledger_id)
            if ledger is None:
                raise LedgerNotFoundError(str(entry.ledger_id))
            if ledger.tenant_id != tenant_id:
                raise CrossTenantLedgerError(str(entry.ledger_id), str(tenant_id))
            if not ledger.is_active:
                raise InactiveLedgerError(str(entry.ledger_id))

    def _check_fiscal_year(self, tenant_id: UUID, fiscal_year_id: UUID, voucher_date: date) -> FiscalYear:
        fiscal_year = self._fiscal_years.get(fiscal_year_id)
        if fiscal_year.tenant_id != tenant_id:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        if fiscal_year.is_closed:
            raise FiscalYearClosedError(str(fiscal_year_id))
        if not fiscal_year.contains(voucher_date):
            raise DateOutsideFiscalYearError(
                voucher_date, fiscal_year.start_date, fiscal_year.end_date
            )
        return fiscal_year

    def _next_number(self, tenant_id: UUID, voucher_type: VoucherType, fiscal_year: FiscalYear) -> str:
        counter = self._sequences.next_value(
            SequenceService.voucher_counter_name(tenant_id, voucher_type.id, fiscal_year.id)
        )
        return format_voucher_number(
            voucher_type.prefix,
            fiscal_year.start_date.year,
            counter,
            self._policy.voucher_number_width,
        )

    def _round_off(self, header: VoucherHeader, totals: VoucherTotals) -> EntryInput | None:
        """Balancing entry on the tenant's round-off ledger, if one is needed."""
        if totals.total_debit == totals.total_credit:
            return None
        ledger = self._chart.round_off_ledger(
            header.tenant_id,
            self._policy.round_off_ledger,
            self._policy.round_off_group,
            header.created_by_id,
        )
        if not ledger.is_active:
            raise InactiveLedgerError(str(ledger.id))
        return round_off_entry(totals, ledger.id)

    # -- posting ------------------------------------------------------------

    def submit_voucher(
        self,
        header: VoucherHeader,
        entries: list[EntryInput] | tuple[EntryInput, ...],
    ) -> Voucher:
        """
        Validate and persist a voucher with its entries.

        The voucher starts in its type's initial status (usually DRAFT).

        Raises:
            InsufficientEntriesError, InvalidEntryAmountError,
            UnbalancedVoucherError: Entry validation failed.
            VoucherTypeNotFoundError: Unknown or foreign voucher type.
            LedgerNotFoundError, CrossTenantLedgerError, InactiveLedgerError:
                An entry targets a ledger that cannot be posted to.
            FiscalYearNotFoundError, FiscalYearClosedError,
            DateOutsideFiscalYearError: Fiscal year checks failed.
        """
        entries = [
            EntryInput(
                ledger_id=e.ledger_id,
                debit=to_decimal(e.debit),
                credit=to_decimal(e.credit),
                narration=e.narration,
            )
            for e in entries
        ]
        totals = validate_entries(entries, self._policy.tolerance)

        voucher_type = self.get_voucher_type(header.voucher_type_id)
        if voucher_type.tenant_id != header.tenant_id or not voucher_type.is_active:
            raise VoucherTypeNotFoundError(str(header.voucher_type_id))
        self._check_ledgers(header.tenant_id, entries)
        fiscal_year = self._check_fiscal_year(
            header.tenant_id, header.fiscal_year_id, header.voucher_date
        )

        with LogContext.bind(tenant_id=header.tenant_id, actor_id=header.created_by_id):
            with self.session.begin_nested():
                round_off = self._round_off(header, totals)
                if round_off is not None:
                    entries.append(round_off)
                voucher = Voucher(
                    tenant_id=header.tenant_id,
                    voucher_number=self._next_number(header.tenant_id, voucher_type, fiscal_year),
                    voucher_type_id=voucher_type.id,
                    fiscal_year_id=fiscal_year.id,
                    voucher_date=header.voucher_date,
                    reference_no=header.reference_no,
                    narration=header.narration,
                    status=VoucherStatus(voucher_type.initial_status).value,
                    created_by_id=header.created_by_id,
                )
                if voucher.status == VoucherStatus.PENDING_APPROVAL.value:
                    voucher.submitted_at = self.clock.now()
                voucher.entries = [
                    VoucherEntry(
                        ledger_id=e.ledger_id,
                        debit=e.debit,
                        credit=e.credit,
                        narration=e.narration,
                        line_seq=index,
                        created_by_id=header.created_by_id,
                    )
                    for index, e in enumerate(entries)
                ]
                self.session.add(voucher)
                self.session.flush()

            logger.info(
                "voucher_submitted",
                extra={
                    "voucher_id": str(voucher.id),
                    "voucher_number": voucher.voucher_number,
                    "status": voucher.status,
                    "entry_count": len(entries),
                    "total_debit": str(totals.total_debit),
                    "total_credit": str(totals.total_credit),
                    "round_off": str(totals.total_debit - totals.total_credit),
                },
            )
        return voucher

    # -- lifecycle ----------------------------------------------------------

    def transition_status(
        self,
        voucher_id: UUID,
        target: VoucherStatus,
        actor_id: UUID,
    ) -> Voucher:
        """
        Move a voucher to ``target`` under a row lock.

        A move to CANCELLED is routed through ``cancel_voucher`` so the
        reversal is always written.

        Raises:
            InvalidTransitionError: Not in the transition table.
        """
        target = VoucherStatus(target)
        if target == VoucherStatus.CANCELLED:
            return self.cancel_voucher(voucher_id, actor_id).original

        with LogContext.bind(voucher_id=voucher_id, actor_id=actor_id):
            voucher = self._lock_voucher(voucher_id)
            current = VoucherStatus(voucher.status)
            validate_transition(voucher.id, current, target)

            now = self.clock.now()
            if target == VoucherStatus.PENDING_APPROVAL:
                voucher.submitted_at = now
            elif target == VoucherStatus.APPROVED:
                voucher.approved_by_id = actor_id
                voucher.approved_at = now
            elif target == VoucherStatus.REJECTED:
                voucher.rejected_by_id = actor_id
                voucher.rejected_at = now
            voucher.status = target.value
            voucher.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "voucher_status_changed",
                extra={
                    "voucher_number": voucher.voucher_number,
                    "from_status": current.value,
                    "to_status": target.value,
                },
            )
        return voucher

    def submit_for_approval(self, voucher_id: UUID, actor_id: UUID) -> Voucher:
        return self.transition_status(voucher_id, VoucherStatus.PENDING_APPROVAL, actor_id)

    def approve(self, voucher_id: UUID, actor_id: UUID) -> Voucher:
        return self.transition_status(voucher_id, VoucherStatus.APPROVED, actor_id)

    def reject(self, voucher_id: UUID, actor_id: UUID) -> Voucher:
        return self.transition_status(voucher_id, VoucherStatus.REJECTED, actor_id)

    def cancel_voucher(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        reversal_date: date | None = None,
    ) -> CancellationResult:
        """
        Cancel an APPROVED voucher by posting its reversal.

        The reversal is dated ``reversal_date`` or, by default, the
        original's date, so balances on every date net to zero.  Any bank
        match on the original is cleared.

        Raises:
            InvalidTransitionError: The voucher is not APPROVED.
            FiscalYearClosedError, DateOutsideFiscalYearError,
            FiscalYearNotFoundError: The reversal date cannot be posted to.
        """
        with LogContext.bind(voucher_id=voucher_id, actor_id=actor_id):
            with self.session.begin_nested():
                original = self._lock_voucher(voucher_id)
                current = VoucherStatus(original.status)
                validate_transition(original.id, current, VoucherStatus.CANCELLED)

                posting_date = reversal_date or original.voucher_date
                if reversal_date is None:
                    fiscal_year_id = original.fiscal_year_id
                else:
                    fiscal_year_id = self._fiscal_years.require_for_date(
                        original.tenant_id, posting_date
                    ).id
                fiscal_year = self._check_fiscal_year(
                    original.tenant_id, fiscal_year_id, posting_date
                )
                voucher_type = self.get_voucher_type(original.voucher_type_id)

                now = self.clock.now()
                reversal = Voucher(
                    tenant_id=original.tenant_id,
                    voucher_number=self._next_number(original.tenant_id, voucher_type, fiscal_year),
                    voucher_type_id=voucher_type.id,
                    fiscal_year_id=fiscal_year.id,
                    voucher_date=posting_date,
                    reference_no=original.reference_no,
                    narration=f"Reversal of {original.voucher_number}",
                    status=VoucherStatus.APPROVED.value,
                    approved_by_id=actor_id,
                    approved_at=now,
                    reversal_of_id=original.id,
                    created_by_id=actor_id,
                )
                reversal.entries = [
                    VoucherEntry(
                        ledger_id=e.ledger_id,
                        debit=e.credit,
                        credit=e.debit,
                        narration=e.narration,
                        line_seq=e.line_seq,
                        created_by_id=actor_id,
                    )
                    for e in original.entries
                ]
                self.session.add(reversal)

                original.status = VoucherStatus.CANCELLED.value
                original.cancelled_by_id = actor_id
                original.cancelled_at = now
                original.updated_by_id = actor_id

                cleared = self._clear_bank_links(original.id)
                self.session.flush()

            logger.info(
                "voucher_cancelled",
                extra={
                    "voucher_number": original.voucher_number,
                    "reversal_id": str(reversal.id),
                    "reversal_number": reversal.voucher_number,
                    "cleared_bank_matches": len(cleared),
                },
            )
        return CancellationResult(
            original=original,
            reversal=reversal,
            cleared_bank_transaction_ids=tuple(cleared),
        )

    def delete_voucher(self, voucher_id: UUID, actor_id: UUID) -> None:
        """
        Delete a DRAFT or REJECTED voucher and its entries.

        Raises:
            VoucherNotDeletableError: Any other status; cancel instead.
        """
        with LogContext.bind(voucher_id=voucher_id, actor_id=actor_id):
            voucher = self._lock_voucher(voucher_id)
            status = VoucherStatus(voucher.status)
            if status not in DELETABLE_STATUSES:
                raise VoucherNotDeletableError(str(voucher_id), status.value)

            self._clear_bank_links(voucher.id)
            number = voucher.voucher_number
            self.session.delete(voucher)
            self.session.flush()
            logger.info(
                "voucher_deleted",
                extra={"voucher_number": number, "status": status.value},
            )

    def _clear_bank_links(self, voucher_id: UUID) -> list[UUID]:
        linked = self.session.execute(
            select(BankTransaction).where(BankTransaction.matched_voucher_id == voucher_id)
        ).scalars().all()
        for txn in linked:
            txn.clear_match()
        return [t.id for t in linked]
