"""
ledger_engines.statements -- Trial balance, profit & loss and balance sheet.

Responsibility:
    Turns per-ledger debit-positive nets (loaded by the statement service)
    and a validated ``ChartTree`` into report structures.  Every figure is
    derived; nothing here is stored.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Trial balance: sum of closing debits equals sum of closing credits
      within the tolerance.  A mismatch means a voucher reached the books
      unbalanced; it is logged at CRITICAL and raised as
      ``TrialBalanceMismatchError``.  It is never rendered silently.
    - Profit & loss: income is credit - debit, expenses are debit - credit.
      Rows with a zero amount are left out of the output but still counted
      in the totals.
    - Balance sheet: group figures are recursive rollups signed by each
      group's nature.  Profit not yet closed to capital is carried into
      equity as retained earnings (before the fiscal year) and current
      year profit.

Failure modes:
    - TrialBalanceMismatchError (IntegrityError) from ``trial_balance``.
    - Nets for ledgers missing from the tree are ignored; the service
      loads both from the same tenant.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.chart import ChartTree
from ledger_kernel.domain.values import (
    DEFAULT_TOLERANCE,
    ZERO,
    BalancePair,
    Nature,
    natural_amount,
)
from ledger_kernel.exceptions import TrialBalanceMismatchError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.statements")

_PERCENT = Decimal("0.01")
_PROFIT_NATURES = frozenset({Nature.INCOME, Nature.EXPENSES})


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class LedgerFigures:
    """One ledger's inputs to a trial balance.

    ``opening_net`` is the signed opening balance plus every visible entry
    before the period start.  Period totals cover period start .. as_of.
    """

    ledger_id: UUID
    opening_net: Decimal = ZERO
    period_debit: Decimal = ZERO
    period_credit: Decimal = ZERO

    @property
    def closing_net(self) -> Decimal:
        return self.opening_net + self.period_debit - self.period_credit

    @property
    def is_zero(self) -> bool:
        return self.opening_net == 0 and self.period_debit == 0 and self.period_credit == 0


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class TrialBalanceRow:
    ledger_id: UUID
    ledger_name: str
    group_id: UUID
    group_name: str
    nature: Nature
    opening: BalancePair
    period_debit: Decimal
    period_credit: Decimal
    closing: BalancePair


@dataclass(frozen=True)
class TrialBalance:
    as_of: date
    period_start: date | None
    rows: tuple[TrialBalanceRow, ...]
    total_opening_debit: Decimal
    total_opening_credit: Decimal
    total_period_debit: Decimal
    total_period_credit: Decimal
    total_closing_debit: Decimal
    total_closing_credit: Decimal
    tolerance: Decimal = DEFAULT_TOLERANCE

    @property
    def difference(self) -> Decimal:
        return self.total_closing_debit - self.total_closing_credit

    @property
    def is_balanced(self) -> bool:
        return abs(self.difference) <= self.tolerance


@dataclass(frozen=True)
class ProfitAndLossRow:
    ledger_id: UUID
    ledger_name: str
    group_id: UUID
    group_name: str
    amount: Decimal


@dataclass(frozen=True)
class ProfitAndLoss:
    start: date
    end: date
    income: tuple[ProfitAndLossRow, ...]
    direct_expenses: tuple[ProfitAndLossRow, ...]
    indirect_expenses: tuple[ProfitAndLossRow, ...]
    total_income: Decimal
    total_direct_expenses: Decimal
    total_indirect_expenses: Decimal

    @property
    def total_expenses(self) -> Decimal:
        return self.total_direct_expenses + self.total_indirect_expenses

    @property
    def gross_profit(self) -> Decimal:
        return self.total_income - self.total_direct_expenses

    @property
    def net_profit(self) -> Decimal:
        return self.gross_profit - self.total_indirect_expenses

    @property
    def gross_margin_pct(self) -> Decimal | None:
        """Gross profit as a percentage of income; None without income."""
        return _percent(self.gross_profit, self.total_income)

    @property
    def net_margin_pct(self) -> Decimal | None:
        return _percent(self.net_profit, self.total_income)


@dataclass(frozen=True)
class BalanceSheetLine:
    group_id: UUID
    name: str
    depth: int
    amount: Decimal


@dataclass(frozen=True)
class BalanceSheet:
    as_of: date
    assets: tuple[BalanceSheetLine, ...]
    liabilities: tuple[BalanceSheetLine, ...]
    equity: tuple[BalanceSheetLine, ...]
    total_assets: Decimal
    total_liabilities: Decimal
    capital: Decimal
    retained_earnings: Decimal
    current_year_profit: Decimal
    tolerance: Decimal = DEFAULT_TOLERANCE

    @property
    def total_equity(self) -> Decimal:
        return self.capital + self.retained_earnings + self.current_year_profit

    @property
    def difference(self) -> Decimal:
        return self.total_assets - (self.total_liabilities + self.total_equity)

    @property
    def is_balanced(self) -> bool:
        return abs(self.difference) <= self.tolerance


def _percent(part: Decimal, whole: Decimal) -> Decimal | None:
    if whole == 0:
        return None
    return (part * 100 / whole).quantize(_PERCENT, rounding=ROUND_HALF_UP)


# =============================================================================
# Aggregator
# =============================================================================


class StatementAggregator:
    """Builds statements from a chart tree and per-ledger nets."""

    def __init__(self, tolerance: Decimal = DEFAULT_TOLERANCE):
        self.tolerance = tolerance

    @traced_engine("trial_balance", "1.0", fingerprint_fields=("as_of", "period_start"))
    def trial_balance(
        self,
        tree: ChartTree,
        figures: Mapping[UUID, LedgerFigures],
        *,
        tenant_id: UUID,
        as_of: date,
        period_start: date | None = None,
        include_zero_rows: bool = False,
    ) -> TrialBalance:
        """
        One row per ledger.

        Ledgers with no figures are left out unless ``include_zero_rows``
        is set, and inactive ledgers appear only while they still carry
        figures.  Retiring a ledger therefore never unbalances totals.

        Raises:
            TrialBalanceMismatchError: Closing totals differ by more than
                the tolerance.
        """
        rows: list[TrialBalanceRow] = []
        for record in tree.ledgers():
            fig = figures.get(record.id) or LedgerFigures(ledger_id=record.id)
            if fig.is_zero and (not record.is_active or not include_zero_rows):
                continue
            group = tree.group_of_ledger(record.id)
            rows.append(
                TrialBalanceRow(
                    ledger_id=record.id,
                    ledger_name=record.name,
                    group_id=group.id,
                    group_name=group.name,
                    nature=group.nature,
                    opening=BalancePair.from_net(fig.opening_net),
                    period_debit=fig.period_debit,
                    period_credit=fig.period_credit,
                    closing=BalancePair.from_net(fig.closing_net),
                )
            )
        rows.sort(key=lambda r: (r.nature.precedence, r.group_name, r.ledger_name))

        result = TrialBalance(
            as_of=as_of,
            period_start=period_start,
            rows=tuple(rows),
            total_opening_debit=sum((r.opening.debit for r in rows), ZERO),
            total_opening_credit=sum((r.opening.credit for r in rows), ZERO),
            total_period_debit=sum((r.period_debit for r in rows), ZERO),
            total_period_credit=sum((r.period_credit for r in rows), ZERO),
            total_closing_debit=sum((r.closing.debit for r in rows), ZERO),
            total_closing_credit=sum((r.closing.credit for r in rows), ZERO),
            tolerance=self.tolerance,
        )

        if abs(result.difference) > self.tolerance:
            logger.critical(
                "trial_balance_mismatch",
                extra={
                    "tenant_id": str(tenant_id),
                    "as_of": as_of,
                    "total_closing_debit": str(result.total_closing_debit),
                    "total_closing_credit": str(result.total_closing_credit),
                    "difference": str(result.difference),
                },
            )
            raise TrialBalanceMismatchError(
                str(tenant_id),
                as_of,
                result.total_closing_debit,
                result.total_closing_credit,
            )
        return result

    @traced_engine("profit_and_loss", "1.0", fingerprint_fields=("start", "end"))
    def profit_and_loss(
        self,
        tree: ChartTree,
        period_nets: Mapping[UUID, Decimal],
        *,
        start: date,
        end: date,
    ) -> ProfitAndLoss:
        """
        Income and expenses over ``[start, end]``.

        ``period_nets`` holds debit-positive nets of entries in the range
        only.  Expenses under a group flagged ``affects_gross_profit`` (or
        with such an ancestor) are direct; the rest are indirect.
        """
        income: list[ProfitAndLossRow] = []
        direct: list[ProfitAndLossRow] = []
        indirect: list[ProfitAndLossRow] = []
        total_income = total_direct = total_indirect = ZERO

        for record in tree.ledgers():
            group = tree.group_of_ledger(record.id)
            if group.nature not in _PROFIT_NATURES:
                continue
            amount = natural_amount(group.nature, period_nets.get(record.id, ZERO))
            row = ProfitAndLossRow(
                ledger_id=record.id,
                ledger_name=record.name,
                group_id=group.id,
                group_name=group.name,
                amount=amount,
            )
            if group.nature == Nature.INCOME:
                total_income += amount
                bucket = income
            elif tree.affects_gross_profit(group.id):
                total_direct += amount
                bucket = direct
            else:
                total_indirect += amount
                bucket = indirect
            if amount != 0:
                bucket.append(row)

        return ProfitAndLoss(
            start=start,
            end=end,
            income=tuple(income),
            direct_expenses=tuple(direct),
            indirect_expenses=tuple(indirect),
            total_income=total_income,
            total_direct_expenses=total_direct,
            total_indirect_expenses=total_indirect,
        )

    @traced_engine("balance_sheet", "1.0", fingerprint_fields=("as_of",))
    def balance_sheet(
        self,
        tree: ChartTree,
        closing_nets: Mapping[UUID, Decimal],
        prior_nets: Mapping[UUID, Decimal],
        *,
        as_of: date,
    ) -> BalanceSheet:
        """
        Position as of ``as_of``.

        Args:
            closing_nets: Debit-positive net per ledger (opening balance plus
                entries up to ``as_of``).
            prior_nets: The same figure up to the day before the fiscal year
                start.  Income/expense ledgers in it form retained earnings;
                empty when no fiscal year applies, which puts all profit in
                the current year.
        """
        rollups = tree.rollups(closing_nets)
        sections: dict[Nature, list[BalanceSheetLine]] = {
            Nature.ASSETS: [],
            Nature.LIABILITIES: [],
            Nature.EQUITY: [],
        }
        totals: dict[Nature, Decimal] = {n: ZERO for n in sections}

        for root in tree.resolve_hierarchy():
            if root.nature not in sections:
                continue
            totals[root.nature] += rollups[root.id]
            for node in tree.walk(root.id):
                amount = rollups[node.id]
                if node.id != root.id and amount == 0:
                    continue
                sections[root.nature].append(
                    BalanceSheetLine(
                        group_id=node.id,
                        name=node.name,
                        depth=node.depth,
                        amount=amount,
                    )
                )

        retained = current = ZERO
        for record in tree.ledgers():
            if tree.nature_of_ledger(record.id) not in _PROFIT_NATURES:
                continue
            prior = prior_nets.get(record.id, ZERO)
            retained -= prior
            current -= closing_nets.get(record.id, ZERO) - prior

        sheet = BalanceSheet(
            as_of=as_of,
            assets=tuple(sections[Nature.ASSETS]),
            liabilities=tuple(sections[Nature.LIABILITIES]),
            equity=tuple(sections[Nature.EQUITY]),
            total_assets=totals[Nature.ASSETS],
            total_liabilities=totals[Nature.LIABILITIES],
            capital=totals[Nature.EQUITY],
            retained_earnings=retained,
            current_year_profit=current,
            tolerance=self.tolerance,
        )
        if abs(sheet.difference) > self.tolerance:
            logger.error(
                "balance_sheet_unbalanced",
                extra={"as_of": as_of, "difference": str(sheet.difference)},
            )
        return sheet
