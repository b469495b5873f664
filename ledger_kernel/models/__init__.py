"""SQLAlchemy ORM models for the ledger kernel."""

from ledger_kernel.models.bank import (
    BankAccount,
    BankReconciliation,
    BankTransaction,
    ReconciliationStatus,
)
from ledger_kernel.models.chart import AccountGroup, Ledger
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.voucher import Voucher, VoucherEntry, VoucherType

__all__ = [
    "AccountGroup",
    "BankAccount",
    "BankReconciliation",
    "BankTransaction",
    "FiscalYear",
    "Ledger",
    "ReconciliationStatus",
    "Voucher",
    "VoucherEntry",
    "VoucherType",
]
