"""Orchestration layer: statements, bank reconciliation and the service container."""

from ledger_services.bank_reconciliation_service import (
    AutoMatchResult,
    BankLineInput,
    BankReconciliationService,
    ReconciliationSummary,
)
from ledger_services.orchestrator import LedgerOrchestrator
from ledger_services.statement_service import (
    LedgerStatement,
    LedgerStatementLine,
    StatementService,
)

__all__ = [
    "AutoMatchResult",
    "BankLineInput",
    "BankReconciliationService",
    "LedgerOrchestrator",
    "LedgerStatement",
    "LedgerStatementLine",
    "ReconciliationSummary",
    "StatementService",
]
