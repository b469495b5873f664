"""
BankReconciliationService -- statement import, matching and reconciliation.

Responsibility:
    Imports bank statement lines idempotently, matches them to vouchers
    (greedy automatic pass plus manual match/unmatch), and records
    reconciliation periods comparing the statement balance with the book
    balance of the bank-linked ledger.

Architecture position:
    Services -- imperative shell.  Reads through ``BankSelector`` and
    ``LedgerSelector``, delegates pairing to ``GreedyBankMatcher`` and
    writes through the ORM.  Flush-only; the caller commits.

Invariants enforced:
    - A statement line is matched to at most one voucher, and a voucher
      to at most one statement line per bank account.  A contra between
      two bank-linked ledgers reconciles on both statements.
    - A matched voucher has an entry on the account's linked ledger.
    - Matching and reconciliation lock the bank account row first, so two
      matchers on the same account serialize instead of double-claiming.
    - Re-importing a statement inserts nothing: lines are keyed on
      (date, description, reference, debit, credit) within the batch and
      against stored lines, and the table carries the same unique key.
    - A COMPLETED reconciliation is never recomputed.

Failure modes:
    - BankImportLimitError, InvalidBankLineError: bad import batch (nothing
      inserted).
    - BankLedgerNotLinkedError: no ledger to match or reconcile against.
    - AlreadyMatchedError, VoucherAlreadyLinkedError,
      VoucherNotMatchableError: manual match refused.
    - ReconciliationCompletedError: the period is already completed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.matching import GreedyBankMatcher, MatchPair
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.values import ZERO, to_decimal
from ledger_kernel.domain.vouchers import VoucherStatus
from ledger_kernel.exceptions import (
    AlreadyMatchedError,
    BankImportLimitError,
    BankTransactionNotFoundError,
    InvalidBankLineError,
    ReconciliationCompletedError,
    VoucherAlreadyLinkedError,
    VoucherNotFoundError,
    VoucherNotMatchableError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bank import (
    BankAccount,
    BankReconciliation,
    BankTransaction,
    ReconciliationStatus,
)
from ledger_kernel.models.voucher import Voucher
from ledger_kernel.selectors.bank_selector import BankSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.bank_account_service import BankAccountService

logger = get_logger("services.bank_reconciliation")


@dataclass(frozen=True)
class BankLineInput:
    """One statement line as parsed by the caller (CSV, API feed, ...)."""

    transaction_date: date
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    reference_no: str | None = None
    balance: Decimal | None = None


@dataclass(frozen=True)
class AutoMatchResult:
    matched_count: int
    remaining_unmatched: int
    pairs: tuple[MatchPair, ...] = ()


@dataclass(frozen=True)
class ReconciliationSummary:
    bank_account_id: UUID
    ledger_id: UUID | None
    total_transactions: int
    matched_count: int
    unmatched_count: int
    unmatched_debit: Decimal
    unmatched_credit: Decimal
    book_balance: Decimal | None
    last_completed: BankReconciliation | None


class BankReconciliationService:
    """Bank statement side of the books.

    Contract:
        - ``import_bank_transactions`` returns the number of new lines.
        - ``auto_match`` processes at most ``max_auto_match_items`` lines
          per call; call again while ``remaining_unmatched`` shrinks.

    Non-goals:
        - Does NOT parse CSV or any file format (caller builds
          ``BankLineInput``).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        policy: PostingPolicy | None = None,
        clock: Clock | None = None,
        bank_accounts: BankAccountService | None = None,
        matcher: GreedyBankMatcher | None = None,
    ) -> None:
        self._session = session
        self._policy = policy or PostingPolicy()
        self._clock = clock or SystemClock()
        self._accounts = bank_accounts or BankAccountService(session, self._clock)
        self._matcher = matcher or GreedyBankMatcher(
            tolerance=self._policy.tolerance,
            window_days=self._policy.match_window_days,
        )
        self._bank = BankSelector(session)
        self._ledgers = LedgerSelector(session)

    # -- import ---------------------------------------------------------------

    def import_bank_transactions(
        self,
        bank_account_id: UUID,
        lines: Iterable[BankLineInput],
        actor_id: UUID,
        import_source: str = "CSV",
    ) -> int:
        """
        Insert statement lines not already present.

        Returns:
            Number of lines inserted.  Re-running the same batch returns 0.

        Raises:
            BankImportLimitError: More lines than ``max_import_lines``.
            InvalidBankLineError: Negative amount or both sides non-zero.
        """
        lines = list(lines)
        if len(lines) > self._policy.max_import_lines:
            raise BankImportLimitError(len(lines), self._policy.max_import_lines)

        prepared = []
        for index, line in enumerate(lines):
            debit = to_decimal(line.debit)
            credit = to_decimal(line.credit)
            if debit < 0 or credit < 0:
                raise InvalidBankLineError(index, "amounts must be non-negative")
            if debit != 0 and credit != 0:
                raise InvalidBankLineError(index, "debit and credit are both non-zero")
            key = (
                line.transaction_date,
                line.description or "",
                line.reference_no or "",
                debit,
                credit,
            )
            prepared.append((key, line))

        with LogContext.bind(bank_account_id=bank_account_id, actor_id=actor_id):
            account = self._accounts.lock_bank_account(bank_account_id)
            seen = self._bank.existing_dedup_keys(
                account.id, {key[0] for key, _ in prepared}
            )

            inserted = 0
            for key, line in prepared:
                if key in seen:
                    continue
                seen.add(key)
                transaction_date, description, reference_no, debit, credit = key
                self._session.add(
                    BankTransaction(
                        bank_account_id=account.id,
                        transaction_date=transaction_date,
                        description=description,
                        reference_no=reference_no,
                        debit=debit,
                        credit=credit,
                        balance=to_decimal(line.balance) if line.balance is not None else None,
                        import_source=import_source,
                        created_by_id=actor_id,
                    )
                )
                inserted += 1
            self._session.flush()

            logger.info(
                "bank_transactions_imported",
                extra={
                    "received": len(prepared),
                    "inserted": inserted,
                    "duplicates": len(prepared) - inserted,
                    "import_source": import_source,
                },
            )
        return inserted

    # -- matching -------------------------------------------------------------

    def auto_match(self, bank_account_id: UUID, actor_id: UUID) -> AutoMatchResult:
        """
        Greedy automatic matching of unmatched lines on one bank account.

        Candidates are entries on the linked ledger whose voucher is
        matchable under the policy, is not a reversal and is not already
        linked to a statement line of this account.

        Raises:
            BankLedgerNotLinkedError: The account has no linked ledger.
        """
        with LogContext.bind(bank_account_id=bank_account_id, actor_id=actor_id):
            with self._session.begin_nested():
                account = self._accounts.lock_bank_account(bank_account_id)
                ledger_id = self._accounts.require_linked_ledger(account)

                lines = self._bank.unmatched_transactions(
                    account.id, limit=self._policy.max_auto_match_items
                )
                candidates = self._bank.candidate_entries(
                    ledger_id,
                    self._policy.matchable_statuses,
                    self._bank.linked_voucher_ids(account.id),
                )
                plan = self._matcher.match(lines=lines, candidates=candidates)

                now = self._clock.now()
                for pair in plan.pairs:
                    txn = self._session.get(BankTransaction, pair.bank_transaction_id)
                    txn.mark_matched(pair.voucher_id, actor_id, now)
                self._session.flush()

            remaining = self._bank.count_unmatched(account.id)
            logger.info(
                "bank_auto_match_completed",
                extra={
                    "lines_considered": len(lines),
                    "candidates": len(candidates),
                    "matched_count": plan.matched_count,
                    "remaining_unmatched": remaining,
                },
            )
        return AutoMatchResult(
            matched_count=plan.matched_count,
            remaining_unmatched=remaining,
            pairs=plan.pairs,
        )

    def _load_transaction(self, bank_transaction_id: UUID) -> tuple[BankAccount, BankTransaction]:
        """Lock the owning account, then re-read the line under that lock."""
        txn = self._session.get(BankTransaction, bank_transaction_id)
        if txn is None:
            raise BankTransactionNotFoundError(str(bank_transaction_id))
        account = self._accounts.lock_bank_account(txn.bank_account_id)
        txn = self._session.execute(
            select(BankTransaction)
            .where(BankTransaction.id == bank_transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        return account, txn

    def manual_match(
        self,
        bank_transaction_id: UUID,
        voucher_id: UUID,
        actor_id: UUID,
    ) -> BankTransaction:
        """
        Link a statement line to a voucher chosen by the user.

        Raises:
            AlreadyMatchedError: The line is already matched.
            VoucherAlreadyLinkedError: The voucher is matched to another line
                of the same account.
            VoucherNotMatchableError: The voucher status cannot be matched,
                or the voucher has no entry on the linked ledger.
            BankLedgerNotLinkedError: The account has no linked ledger.
            VoucherNotFoundError: Unknown voucher or another tenant's.
        """
        with LogContext.bind(voucher_id=voucher_id, actor_id=actor_id):
            account, txn = self._load_transaction(bank_transaction_id)
            if txn.is_matched:
                raise AlreadyMatchedError(
                    str(txn.id),
                    str(txn.matched_voucher_id) if txn.matched_voucher_id else None,
                )

            voucher = self._session.get(Voucher, voucher_id)
            if voucher is None or voucher.tenant_id != account.tenant_id:
                raise VoucherNotFoundError(str(voucher_id))
            status = VoucherStatus(voucher.status)
            if status not in self._policy.matchable_statuses:
                raise VoucherNotMatchableError(str(voucher_id), status.value)
            ledger_id = self._accounts.require_linked_ledger(account)
            if not self._bank.voucher_touches_ledger(voucher_id, ledger_id):
                raise VoucherNotMatchableError(
                    str(voucher_id), status.value, reason="no entry on the bank ledger"
                )

            other = self._bank.transaction_for_voucher(voucher_id, account.id)
            if other is not None:
                raise VoucherAlreadyLinkedError(str(voucher_id), str(other.id))

            txn.mark_matched(voucher_id, actor_id, self._clock.now())
            self._session.flush()
            logger.info(
                "bank_transaction_matched",
                extra={"bank_transaction_id": str(txn.id), "bank_account_id": str(account.id)},
            )
        return txn

    def unmatch(self, bank_transaction_id: UUID, actor_id: UUID | None = None) -> BankTransaction:
        """Clear a line's match.  Unmatching an unmatched line does nothing."""
        _, txn = self._load_transaction(bank_transaction_id)
        if not txn.is_matched:
            return txn
        previous = txn.matched_voucher_id
        txn.clear_match()
        if actor_id is not None:
            txn.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "bank_transaction_unmatched",
            extra={
                "bank_transaction_id": str(txn.id),
                "previous_voucher_id": str(previous),
            },
        )
        return txn

    # -- reconciliation -------------------------------------------------------

    def book_balance(self, account: BankAccount, as_of: date) -> Decimal:
        """Linked ledger balance on ``as_of``, debit-positive."""
        ledger_id = self._accounts.require_linked_ledger(account)
        return self._ledgers.running_balance(
            ledger_id, as_of, self._policy.visible_statuses
        ).net

    def _open_record(
        self,
        account: BankAccount,
        period_start: date,
        period_end: date,
        statement_balance: Decimal,
        actor_id: UUID,
        notes: str | None,
    ) -> BankReconciliation:
        if period_start > period_end:
            raise ValueError(
                f"period_start ({period_start}) cannot be after period_end ({period_end})"
            )
        completed = self._bank.reconciliation_for_period(
            account.id, period_end, ReconciliationStatus.COMPLETED
        )
        if completed is not None:
            raise ReconciliationCompletedError(str(completed.id))

        book = self.book_balance(account, period_end)
        statement_balance = to_decimal(statement_balance)

        record = self._bank.reconciliation_for_period(
            account.id, period_end, ReconciliationStatus.IN_PROGRESS
        )
        if record is None:
            record = BankReconciliation(
                bank_account_id=account.id,
                status=ReconciliationStatus.IN_PROGRESS.value,
                created_by_id=actor_id,
            )
            self._session.add(record)
        else:
            record.updated_by_id = actor_id
        record.period_start = period_start
        record.period_end = period_end
        record.statement_balance = statement_balance
        record.book_balance = book
        record.difference = statement_balance - book
        if notes is not None:
            record.notes = notes
        return record

    def start_reconciliation(
        self,
        bank_account_id: UUID,
        period_start: date,
        period_end: date,
        statement_balance: Decimal,
        actor_id: UUID,
        notes: str | None = None,
    ) -> BankReconciliation:
        """
        Open (or refresh) the IN_PROGRESS reconciliation for a period.

        Raises:
            ReconciliationCompletedError: The period was already completed.
        """
        with LogContext.bind(bank_account_id=bank_account_id, actor_id=actor_id):
            account = self._accounts.lock_bank_account(bank_account_id)
            record = self._open_record(
                account, period_start, period_end, statement_balance, actor_id, notes
            )
            self._session.flush()
            logger.info(
                "bank_reconciliation_started",
                extra={
                    "reconciliation_id": str(record.id),
                    "period_end": period_end,
                    "statement_balance": str(record.statement_balance),
                    "book_balance": str(record.book_balance),
                    "difference": str(record.difference),
                },
            )
        return record

    def complete_reconciliation(
        self,
        bank_account_id: UUID,
        period_start: date,
        period_end: date,
        statement_balance: Decimal,
        actor_id: UUID,
        notes: str | None = None,
    ) -> BankReconciliation:
        """
        Recompute and freeze the reconciliation for a period.

        Later imports or postings never change a completed record.

        Raises:
            ReconciliationCompletedError: The period was already completed.
        """
        with LogContext.bind(bank_account_id=bank_account_id, actor_id=actor_id):
            account = self._accounts.lock_bank_account(bank_account_id)
            record = self._open_record(
                account, period_start, period_end, statement_balance, actor_id, notes
            )
            record.status = ReconciliationStatus.COMPLETED.value
            record.completed_at = self._clock.now()
            record.completed_by_id = actor_id
            self._session.flush()
            logger.info(
                "bank_reconciliation_completed",
                extra={
                    "reconciliation_id": str(record.id),
                    "period_end": period_end,
                    "difference": str(record.difference),
                },
            )
        return record

    def reconciliation_summary(
        self,
        bank_account_id: UUID,
        as_of: date | None = None,
    ) -> ReconciliationSummary:
        """Match counts, unmatched totals, book balance and last completion."""
        account = self._accounts.get_bank_account(bank_account_id)
        summary = self._bank.summary(account.id)
        book = None
        if account.ledger_id is not None:
            book = self.book_balance(account, as_of or self._clock.today())
        completed = [
            r for r in self._bank.reconciliations(account.id)
            if r.status == ReconciliationStatus.COMPLETED.value
        ]
        return ReconciliationSummary(
            bank_account_id=account.id,
            ledger_id=account.ledger_id,
            total_transactions=summary.total_transactions,
            matched_count=summary.matched_count,
            unmatched_count=summary.unmatched_count,
            unmatched_debit=summary.unmatched_debit,
            unmatched_credit=summary.unmatched_credit,
            book_balance=book,
            last_completed=completed[-1] if completed else None,
        )
