"""
ledger_services.orchestrator -- DI container for ledger services.

Responsibility:
    Creates every kernel and orchestration service exactly once for a
    session, wires shared collaborators (clock, policy, sequence and
    fiscal-year services), and exposes them as attributes.

Architecture position:
    Services -- top of the service layer.  The only place where services
    are constructed and composed.

Invariants enforced:
    - Single-instance lifecycle: one SequenceService and one
      FiscalYearService per orchestrator, shared by every consumer.
    - All services share the same Session, Clock and PostingPolicy.

Usage:
    from ledger_services.orchestrator import LedgerOrchestrator

    with session_scope() as session:
        ledger = LedgerOrchestrator(session, policy=get_posting_policy())
        voucher = ledger.vouchers.submit_voucher(header, entries)
        ledger.vouchers.submit_for_approval(voucher.id, actor_id)
        ledger.vouchers.approve(voucher.id, approver_id)
        tb = ledger.statements.trial_balance(tenant_id, as_of)
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_engines.matching import GreedyBankMatcher
from ledger_engines.statements import StatementAggregator
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.templates import ChartTemplate
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.chart import AccountGroup
from ledger_kernel.models.voucher import VoucherType
from ledger_kernel.services.bank_account_service import BankAccountService
from ledger_kernel.services.chart_service import ChartService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.voucher_service import VoucherService
from ledger_services.bank_reconciliation_service import BankReconciliationService
from ledger_services.statement_service import StatementService

logger = get_logger("services.orchestrator")


class LedgerOrchestrator:
    """Central factory for ledger services.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
        - Does NOT own the Session lifecycle (no commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        policy: PostingPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.policy = policy or PostingPolicy()
        self.clock = clock or SystemClock()

        # Foundational services
        self.sequences = SequenceService(session)
        self.fiscal_years = FiscalYearService(session, self.clock)
        self.chart = ChartService(session, self.clock)
        self.bank_accounts = BankAccountService(session, self.clock)

        # Posting (depends on sequences, fiscal years)
        self.vouchers = VoucherService(
            session,
            clock=self.clock,
            policy=self.policy,
            sequence_service=self.sequences,
            fiscal_year_service=self.fiscal_years,
        )

        # Reporting and bank side (pure engines configured from the policy)
        self.statements = StatementService(
            session,
            policy=self.policy,
            clock=self.clock,
            aggregator=StatementAggregator(self.policy.tolerance),
            fiscal_year_service=self.fiscal_years,
        )
        self.bank_reconciliation = BankReconciliationService(
            session,
            policy=self.policy,
            clock=self.clock,
            bank_accounts=self.bank_accounts,
            matcher=GreedyBankMatcher(
                tolerance=self.policy.tolerance,
                window_days=self.policy.match_window_days,
            ),
        )

    def setup_tenant(
        self,
        tenant_id: UUID,
        template: ChartTemplate,
        actor_id: UUID,
    ) -> tuple[dict[str, AccountGroup], dict[str, VoucherType]]:
        """Seed the default chart and voucher types for a tenant.  Idempotent."""
        groups = self.chart.seed_default_chart(tenant_id, template, actor_id)
        voucher_types = self.vouchers.seed_voucher_types(
            tenant_id, template.voucher_types, actor_id
        )
        logger.info(
            "tenant_setup_completed",
            extra={
                "tenant_id": str(tenant_id),
                "group_count": len(groups),
                "voucher_type_count": len(voucher_types),
            },
        )
        return groups, voucher_types
