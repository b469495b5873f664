"""
Typed exception hierarchy for the ledger kernel.

Every error a caller can act on has its own class, a machine-readable
``code`` class attribute, and structured attributes carrying the data a
UI or API needs (amounts, ids, dates). Callers catch by type, never by
message text.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError                 recoverable, bad caller input
    |   +-- InsufficientEntriesError
    |   +-- InvalidEntryAmountError
    |   +-- UnbalancedVoucherError
    |   +-- CrossTenantLedgerError
    |   +-- InactiveLedgerError
    |   +-- DateOutsideFiscalYearError
    |   +-- FiscalYearClosedError
    |   +-- InvalidOpeningBalanceError
    |   +-- BankImportLimitError
    |   +-- InvalidBankLineError
    |   +-- BankLedgerNotLinkedError
    |
    +-- StructuralError                 corrupt chart of accounts, halt reports
    |   +-- MissingParentGroupError
    |   +-- GroupCycleError
    |   +-- SystemGroupProtectedError
    |
    +-- StateError                      illegal lifecycle step, re-fetch state
    |   +-- InvalidTransitionError
    |   +-- VoucherNotDeletableError
    |   +-- VoucherNotMatchableError
    |   +-- ReconciliationCompletedError
    |   +-- FiscalYearAlreadyClosedError
    |
    +-- ConflictError                   duplicate input, retry with other input
    |   +-- DuplicateNameError
    |   +-- DuplicateAccountNumberError
    |   +-- AlreadyMatchedError
    |   +-- VoucherAlreadyLinkedError
    |   +-- FiscalYearOverlapError
    |
    +-- IntegrityError                  posting invariant violated, a bug
    |   +-- TrialBalanceMismatchError
    |
    +-- NotFoundError
        +-- GroupNotFoundError
        +-- LedgerNotFoundError
        +-- FiscalYearNotFoundError
        +-- VoucherTypeNotFoundError
        +-- VoucherNotFoundError
        +-- BankAccountNotFoundError
        +-- BankTransactionNotFoundError

===============================================================================
HANDLING GUIDE
===============================================================================

ValidationError / ConflictError:
    Report to the caller with the structured attributes. Nothing was
    written.

StateError:
    The caller's view is stale. Re-read the voucher or reconciliation
    and decide again.

StructuralError:
    The tenant's chart of accounts is corrupt. Report generation for the
    tenant must stop; do not render partial statements.

IntegrityError:
    Already logged at CRITICAL where it was detected. Surface it, page
    someone, never swallow it.
"""

from datetime import date
from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class ValidationError(LedgerKernelError):
    """Base exception for malformed or inconsistent caller input."""

    code: str = "VALIDATION_ERROR"


class InsufficientEntriesError(ValidationError):
    """A voucher needs at least two entries."""

    code: str = "INSUFFICIENT_ENTRIES"

    def __init__(self, entry_count: int, minimum: int = 2):
        self.entry_count = entry_count
        self.minimum = minimum
        super().__init__(
            f"Voucher needs at least {minimum} entries, got {entry_count}"
        )


class InvalidEntryAmountError(ValidationError):
    """An entry must have exactly one non-zero, non-negative side."""

    code: str = "INVALID_ENTRY_AMOUNT"

    def __init__(self, index: int, debit: Decimal, credit: Decimal, reason: str):
        self.index = index
        self.debit = debit
        self.credit = credit
        self.reason = reason
        super().__init__(
            f"Entry {index} is invalid (debit={debit}, credit={credit}): {reason}"
        )


class UnbalancedVoucherError(ValidationError):
    """Total debits and total credits differ beyond tolerance."""

    code: str = "UNBALANCED_VOUCHER"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = abs(total_debit - total_credit)
        super().__init__(
            f"Voucher is unbalanced: debit={total_debit}, credit={total_credit}, "
            f"difference={self.difference}"
        )


class CrossTenantLedgerError(ValidationError):
    """An entry references a ledger owned by another tenant."""

    code: str = "CROSS_TENANT_LEDGER"

    def __init__(self, ledger_id: str, tenant_id: str):
        self.ledger_id = ledger_id
        self.tenant_id = tenant_id
        super().__init__(
            f"Ledger {ledger_id} does not belong to tenant {tenant_id}"
        )


class InactiveLedgerError(ValidationError):
    """Posting to a deactivated ledger."""

    code: str = "INACTIVE_LEDGER"

    def __init__(self, ledger_id: str):
        self.ledger_id = ledger_id
        super().__init__(f"Ledger {ledger_id} is inactive")


class DateOutsideFiscalYearError(ValidationError):
    """Voucher date is outside the fiscal year window."""

    code: str = "DATE_OUTSIDE_FISCAL_YEAR"

    def __init__(self, voucher_date: date, start_date: date, end_date: date):
        self.voucher_date = voucher_date
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Date {voucher_date} is outside fiscal year {start_date} to {end_date}"
        )


class FiscalYearClosedError(ValidationError):
    """Posting into a closed fiscal year."""

    code: str = "FISCAL_YEAR_CLOSED"

    def __init__(self, fiscal_year_id: str):
        self.fiscal_year_id = fiscal_year_id
        super().__init__(f"Fiscal year {fiscal_year_id} is closed")


class InvalidOpeningBalanceError(ValidationError):
    """Opening balance must be a non-negative magnitude."""

    code: str = "INVALID_OPENING_BALANCE"

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__(f"Opening balance must be non-negative, got {amount}")


class BankImportLimitError(ValidationError):
    """Import batch exceeds the per-call ceiling."""

    code: str = "BANK_IMPORT_LIMIT"

    def __init__(self, line_count: int, limit: int):
        self.line_count = line_count
        self.limit = limit
        super().__init__(
            f"Import of {line_count} lines exceeds the limit of {limit}"
        )


class InvalidBankLineError(ValidationError):
    """A bank statement line has invalid amounts."""

    code: str = "INVALID_BANK_LINE"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Bank line {index} is invalid: {reason}")


class BankLedgerNotLinkedError(ValidationError):
    """The bank account has no ledger to match or reconcile against."""

    code: str = "BANK_LEDGER_NOT_LINKED"

    def __init__(self, bank_account_id: str):
        self.bank_account_id = bank_account_id
        super().__init__(
            f"Bank account {bank_account_id} is not linked to a ledger"
        )


# Structural (chart of accounts)


class StructuralError(LedgerKernelError):
    """Base exception for a corrupt chart-of-accounts hierarchy."""

    code: str = "STRUCTURAL_ERROR"


class MissingParentGroupError(StructuralError):
    """A group's declared parent does not exist."""

    code: str = "MISSING_PARENT_GROUP"

    def __init__(self, group_id: str, parent_id: str):
        self.group_id = group_id
        self.parent_id = parent_id
        super().__init__(
            f"Group {group_id} references missing parent {parent_id}"
        )


class GroupCycleError(StructuralError):
    """The parent chain of a group loops back on itself."""

    code: str = "GROUP_CYCLE"

    def __init__(self, group_id: str, path: list[str]):
        self.group_id = group_id
        self.path = path
        super().__init__(
            f"Cycle detected in group hierarchy at {group_id}: {' -> '.join(path)}"
        )


class SystemGroupProtectedError(StructuralError):
    """System groups cannot be removed or deactivated."""

    code: str = "SYSTEM_GROUP_PROTECTED"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Group {group_id} is system-protected")


# State


class StateError(LedgerKernelError):
    """Base exception for illegal lifecycle operations."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """Voucher status transition not in the transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, voucher_id: str, from_status: str, to_status: str):
        self.voucher_id = voucher_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Voucher {voucher_id} cannot move from {from_status} to {to_status}"
        )


class VoucherNotDeletableError(StateError):
    """Only DRAFT or REJECTED vouchers may be deleted."""

    code: str = "VOUCHER_NOT_DELETABLE"

    def __init__(self, voucher_id: str, status: str):
        self.voucher_id = voucher_id
        self.status = status
        super().__init__(
            f"Voucher {voucher_id} is {status} and cannot be deleted; cancel it instead"
        )


class VoucherNotMatchableError(StateError):
    """Voucher cannot be matched to a bank line: wrong status or no bank entry."""

    code: str = "VOUCHER_NOT_MATCHABLE"

    def __init__(self, voucher_id: str, status: str, reason: str | None = None):
        self.voucher_id = voucher_id
        self.status = status
        self.reason = reason
        detail = reason or f"voucher is {status}"
        super().__init__(f"Voucher {voucher_id} cannot be matched: {detail}")


class ReconciliationCompletedError(StateError):
    """A completed reconciliation is a permanent record."""

    code: str = "RECONCILIATION_COMPLETED"

    def __init__(self, reconciliation_id: str):
        self.reconciliation_id = reconciliation_id
        super().__init__(f"Reconciliation {reconciliation_id} is already completed")


class FiscalYearAlreadyClosedError(StateError):
    code: str = "FISCAL_YEAR_ALREADY_CLOSED"

    def __init__(self, fiscal_year_id: str):
        self.fiscal_year_id = fiscal_year_id
        super().__init__(f"Fiscal year {fiscal_year_id} is already closed")


# Conflict


class ConflictError(LedgerKernelError):
    """Base exception for duplicate or already-claimed resources."""

    code: str = "CONFLICT"


class DuplicateNameError(ConflictError):
    """Group or ledger name already used in this tenant."""

    code: str = "DUPLICATE_NAME"

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"A {kind} named {name!r} already exists")


class DuplicateAccountNumberError(ConflictError):
    """Bank account number already registered for this tenant."""

    code: str = "DUPLICATE_ACCOUNT_NUMBER"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Bank account number {account_number} already exists")


class AlreadyMatchedError(ConflictError):
    """Bank transaction is already matched to a voucher."""

    code: str = "ALREADY_MATCHED"

    def __init__(self, bank_transaction_id: str, voucher_id: str | None):
        self.bank_transaction_id = bank_transaction_id
        self.voucher_id = voucher_id
        super().__init__(
            f"Bank transaction {bank_transaction_id} is already matched "
            f"to voucher {voucher_id}"
        )


class VoucherAlreadyLinkedError(ConflictError):
    """Voucher is already linked to another bank transaction."""

    code: str = "VOUCHER_ALREADY_LINKED"

    def __init__(self, voucher_id: str, bank_transaction_id: str):
        self.voucher_id = voucher_id
        self.bank_transaction_id = bank_transaction_id
        super().__init__(
            f"Voucher {voucher_id} is already linked to bank transaction "
            f"{bank_transaction_id}"
        )


class FiscalYearOverlapError(ConflictError):
    """Fiscal years of one tenant must not overlap."""

    code: str = "FISCAL_YEAR_OVERLAP"

    def __init__(self, name: str, existing_name: str):
        self.name = name
        self.existing_name = existing_name
        super().__init__(f"Fiscal year {name} overlaps existing fiscal year {existing_name}")


# Integrity


class IntegrityError(LedgerKernelError):
    """Base exception for violated posting invariants (always a bug)."""

    code: str = "INTEGRITY_ERROR"


class TrialBalanceMismatchError(IntegrityError):
    """Closing debit and credit totals of a trial balance differ."""

    code: str = "TRIAL_BALANCE_MISMATCH"

    def __init__(self, tenant_id: str, as_of: date, total_debit: Decimal, total_credit: Decimal):
        self.tenant_id = tenant_id
        self.as_of = as_of
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.difference = abs(total_debit - total_credit)
        super().__init__(
            f"Trial balance for tenant {tenant_id} as of {as_of} does not balance: "
            f"debit={total_debit}, credit={total_credit}"
        )


# Not found


class NotFoundError(LedgerKernelError):
    """Base exception for missing rows."""

    code: str = "NOT_FOUND"


class GroupNotFoundError(NotFoundError):
    code: str = "GROUP_NOT_FOUND"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Account group not found: {group_id}")


class LedgerNotFoundError(NotFoundError):
    code: str = "LEDGER_NOT_FOUND"

    def __init__(self, ledger_id: str):
        self.ledger_id = ledger_id
        super().__init__(f"Ledger not found: {ledger_id}")


class FiscalYearNotFoundError(NotFoundError):
    code: str = "FISCAL_YEAR_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Fiscal year not found: {reference}")


class VoucherTypeNotFoundError(NotFoundError):
    code: str = "VOUCHER_TYPE_NOT_FOUND"

    def __init__(self, voucher_type_id: str):
        self.voucher_type_id = voucher_type_id
        super().__init__(f"Voucher type not found: {voucher_type_id}")


class VoucherNotFoundError(NotFoundError):
    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher not found: {voucher_id}")


class BankAccountNotFoundError(NotFoundError):
    code: str = "BANK_ACCOUNT_NOT_FOUND"

    def __init__(self, bank_account_id: str):
        self.bank_account_id = bank_account_id
        super().__init__(f"Bank account not found: {bank_account_id}")


class BankTransactionNotFoundError(NotFoundError):
    code: str = "BANK_TRANSACTION_NOT_FOUND"

    def __init__(self, bank_transaction_id: str):
        self.bank_transaction_id = bank_transaction_id
        super().__init__(f"Bank transaction not found: {bank_transaction_id}")
