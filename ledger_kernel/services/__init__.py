"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.bank_account_service import BankAccountService
from ledger_kernel.services.chart_service import ChartService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.voucher_service import CancellationResult, VoucherService

__all__ = [
    "BankAccountService",
    "CancellationResult",
    "ChartService",
    "FiscalYearService",
    "SequenceService",
    "VoucherService",
]
