"""Read-only query selectors."""

from ledger_kernel.selectors.bank_selector import BankSelector
from ledger_kernel.selectors.chart_selector import ChartSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["BankSelector", "ChartSelector", "LedgerSelector"]
