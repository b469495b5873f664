"""
Module: ledger_engines
Responsibility:
    Pure calculation engines consumed by ledger_services: the greedy bank
    matcher and statement aggregation (trial balance, profit & loss,
    balance sheet).

Architecture position:
    Engines -- zero I/O.  May import ledger_kernel.domain, the kernel
    exceptions and logging.  MUST NOT touch a database session or import
    ledger_services.

Invariants enforced:
    - Engines never read the clock; dates arrive as parameters.
    - Decimal-only arithmetic.
    - Identical inputs give identical outputs.
"""

from ledger_engines.matching import GreedyBankMatcher, MatchPair, MatchPlan
from ledger_engines.statements import (
    BalanceSheet,
    BalanceSheetLine,
    LedgerFigures,
    ProfitAndLoss,
    ProfitAndLossRow,
    StatementAggregator,
    TrialBalance,
    TrialBalanceRow,
)
from ledger_engines.tracer import traced_engine

__all__ = [
    "BalanceSheet",
    "BalanceSheetLine",
    "GreedyBankMatcher",
    "LedgerFigures",
    "MatchPair",
    "MatchPlan",
    "ProfitAndLoss",
    "ProfitAndLossRow",
    "StatementAggregator",
    "TrialBalance",
    "TrialBalanceRow",
    "traced_engine",
]
