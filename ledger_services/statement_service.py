"""
StatementService -- running balances, trial balance, P&L, balance sheet.

Responsibility:
    Loads the chart tree and per-ledger entry totals through the kernel
    selectors and hands them to ``StatementAggregator``.  Applies the
    posting policy's visibility rule to every query.

Architecture position:
    Services -- imperative shell over kernel selectors and pure engines.
    Read-only: never adds, flushes or commits.

Invariants enforced:
    - Balances are derived from opening balance plus visible entries on
      every call.  The same inputs always give the same figures.
    - Only APPROVED and CANCELLED vouchers count (a CANCELLED voucher is
      offset by its approved reversal).  DRAFT and PENDING_APPROVAL count
      only when the policy includes unapproved vouchers.  REJECTED never
      counts.
    - A trial balance whose closing totals differ is raised, never shown.

Failure modes:
    - LedgerNotFoundError, FiscalYearNotFoundError for unknown ids.
    - StructuralError when the tenant's chart is corrupt.
    - TrialBalanceMismatchError when posted data does not balance.
    - ValueError for an inverted date range.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_engines.statements import (
    BalanceSheet,
    LedgerFigures,
    ProfitAndLoss,
    StatementAggregator,
    TrialBalance,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.values import ZERO, BalancePair
from ledger_kernel.domain.vouchers import VoucherStatus
from ledger_kernel.exceptions import FiscalYearNotFoundError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.selectors.chart_selector import ChartSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.fiscal_year_service import FiscalYearService

logger = get_logger("services.statements")


@dataclass(frozen=True)
class LedgerStatementLine:
    voucher_id: UUID
    voucher_number: str
    voucher_date: date
    status: VoucherStatus
    debit: Decimal
    credit: Decimal
    narration: str | None
    running: BalancePair


@dataclass(frozen=True)
class LedgerStatement:
    """Account statement of one ledger over ``[start, end]``."""

    ledger_id: UUID
    ledger_name: str
    start: date
    end: date
    opening: BalancePair
    lines: tuple[LedgerStatementLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    closing: BalancePair


class StatementService:
    """Report queries for one session under one posting policy.

    Non-goals:
        - No presentation formatting; results are plain numeric rows.
        - No caching; every call reads the current entries.
    """

    def __init__(
        self,
        session: Session,
        policy: PostingPolicy | None = None,
        clock: Clock | None = None,
        aggregator: StatementAggregator | None = None,
        fiscal_year_service: FiscalYearService | None = None,
    ) -> None:
        self._session = session
        self._policy = policy or PostingPolicy()
        self._clock = clock or SystemClock()
        self._aggregator = aggregator or StatementAggregator(self._policy.tolerance)
        self._fiscal_years = fiscal_year_service or FiscalYearService(session, self._clock)
        self._ledgers = LedgerSelector(session)
        self._chart = ChartSelector(session)

    @property
    def visible_statuses(self) -> frozenset[VoucherStatus]:
        return self._policy.visible_statuses

    def _fiscal_year_for(
        self,
        tenant_id: UUID,
        as_of: date,
        fiscal_year_id: UUID | None,
    ) -> FiscalYear | None:
        if fiscal_year_id is None:
            return self._fiscal_years.find_for_date(tenant_id, as_of)
        fiscal_year = self._fiscal_years.get(fiscal_year_id)
        if fiscal_year.tenant_id != tenant_id:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        return fiscal_year

    def _nets_through(self, tenant_id: UUID, openings: dict[UUID, Decimal], **bounds) -> dict[UUID, Decimal]:
        nets = dict(openings)
        activity = self._ledgers.activity_by_ledger(tenant_id, self.visible_statuses, **bounds)
        for ledger_id, act in activity.items():
            nets[ledger_id] = nets.get(ledger_id, ZERO) + act.net
        return nets

    # -- balances -------------------------------------------------------------

    def ledger_running_balance(self, ledger_id: UUID, as_of: date | None = None) -> BalancePair:
        """Ledger balance on ``as_of`` (default: clock today) as a debit/credit pair."""
        as_of = as_of or self._clock.today()
        return self._ledgers.running_balance(ledger_id, as_of, self.visible_statuses)

    def trial_balance(
        self,
        tenant_id: UUID,
        as_of: date | None = None,
        fiscal_year_id: UUID | None = None,
        include_zero_rows: bool = False,
    ) -> TrialBalance:
        """
        Opening, period and closing figures for every ledger of the tenant.

        The period runs from the fiscal year's start (the given year, or
        the one containing ``as_of``) to ``as_of``.  Without a fiscal year
        every entry up to ``as_of`` is period activity.

        Raises:
            TrialBalanceMismatchError: Closing totals differ.
        """
        as_of = as_of or self._clock.today()
        with LogContext.bind(tenant_id=tenant_id):
            fiscal_year = self._fiscal_year_for(tenant_id, as_of, fiscal_year_id)
            period_start = fiscal_year.start_date if fiscal_year else None

            tree = self._chart.load_tree(tenant_id)
            opening_nets = {o.ledger_id: o.opening_net for o in self._ledgers.openings(tenant_id)}
            if period_start is not None:
                opening_nets = self._nets_through(tenant_id, opening_nets, before=period_start)
            period = self._ledgers.activity_by_ledger(
                tenant_id,
                self.visible_statuses,
                date_from=period_start,
                date_to=as_of,
            )

            figures = {}
            for ledger_id in set(opening_nets) | set(period):
                act = period.get(ledger_id)
                figures[ledger_id] = LedgerFigures(
                    ledger_id=ledger_id,
                    opening_net=opening_nets.get(ledger_id, ZERO),
                    period_debit=act.debit if act else ZERO,
                    period_credit=act.credit if act else ZERO,
                )

            result = self._aggregator.trial_balance(
                tree,
                figures,
                tenant_id=tenant_id,
                as_of=as_of,
                period_start=period_start,
                include_zero_rows=include_zero_rows,
            )
            logger.info(
                "trial_balance_computed",
                extra={
                    "as_of": as_of,
                    "row_count": len(result.rows),
                    "total_closing_debit": str(result.total_closing_debit),
                    "total_closing_credit": str(result.total_closing_credit),
                },
            )
        return result

    def profit_and_loss(self, tenant_id: UUID, start: date, end: date) -> ProfitAndLoss:
        """
        Income and expenses from entries dated in ``[start, end]``.

        Raises:
            ValueError: start is after end.
        """
        if start > end:
            raise ValueError(f"start ({start}) cannot be after end ({end})")
        with LogContext.bind(tenant_id=tenant_id):
            tree = self._chart.load_tree(tenant_id)
            activity = self._ledgers.activity_by_ledger(
                tenant_id, self.visible_statuses, date_from=start, date_to=end
            )
            result = self._aggregator.profit_and_loss(
                tree,
                {ledger_id: act.net for ledger_id, act in activity.items()},
                start=start,
                end=end,
            )
            logger.info(
                "profit_and_loss_computed",
                extra={
                    "start": start,
                    "end": end,
                    "gross_profit": str(result.gross_profit),
                    "net_profit": str(result.net_profit),
                },
            )
        return result

    def balance_sheet(self, tenant_id: UUID, as_of: date | None = None) -> BalanceSheet:
        """
        Assets, liabilities and equity as of ``as_of``.

        Profit before the current fiscal year's start is reported as
        retained earnings, profit since then as current year profit.
        """
        as_of = as_of or self._clock.today()
        with LogContext.bind(tenant_id=tenant_id):
            tree = self._chart.load_tree(tenant_id)
            openings = {o.ledger_id: o.opening_net for o in self._ledgers.openings(tenant_id)}
            closing = self._nets_through(tenant_id, openings, date_to=as_of)

            fiscal_year = self._fiscal_years.find_for_date(tenant_id, as_of)
            prior: dict[UUID, Decimal] = {}
            if fiscal_year is not None:
                prior = self._nets_through(tenant_id, openings, before=fiscal_year.start_date)

            result = self._aggregator.balance_sheet(tree, closing, prior, as_of=as_of)
            logger.info(
                "balance_sheet_computed",
                extra={
                    "as_of": as_of,
                    "total_assets": str(result.total_assets),
                    "total_liabilities": str(result.total_liabilities),
                    "total_equity": str(result.total_equity),
                },
            )
        return result

    def ledger_statement(self, ledger_id: UUID, start: date, end: date) -> LedgerStatement:
        """
        Opening balance on the day before ``start``, each visible entry in
        the range with the running balance after it, and the closing.
        """
        if start > end:
            raise ValueError(f"start ({start}) cannot be after end ({end})")
        ledger = self._ledgers.get_ledger(ledger_id)
        opening = self._ledgers.running_balance(
            ledger_id, start - timedelta(days=1), self.visible_statuses
        )

        running = opening.net
        total_debit = total_credit = ZERO
        lines: list[LedgerStatementLine] = []
        for line in self._ledgers.statement_lines(ledger_id, self.visible_statuses, start, end):
            running += line.debit - line.credit
            total_debit += line.debit
            total_credit += line.credit
            lines.append(
                LedgerStatementLine(
                    voucher_id=line.voucher_id,
                    voucher_number=line.voucher_number,
                    voucher_date=line.voucher_date,
                    status=line.status,
                    debit=line.debit,
                    credit=line.credit,
                    narration=line.narration,
                    running=BalancePair.from_net(running),
                )
            )

        return LedgerStatement(
            ledger_id=ledger.id,
            ledger_name=ledger.name,
            start=start,
            end=end,
            opening=opening,
            lines=tuple(lines),
            total_debit=total_debit,
            total_credit=total_credit,
            closing=BalancePair.from_net(running),
        )
