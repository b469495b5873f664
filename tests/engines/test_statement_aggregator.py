"""
Tests for the pure statement engine (ledger_engines.statements).

Tests cover:
- Trial balance rows, ordering, zero-row and inactive-ledger handling
- Trial balance mismatch raises and is logged at CRITICAL
- Profit & loss: direct vs indirect split, gross/net profit, margins
- Balance sheet: section rollups, retained earnings vs current year profit
- Input fingerprint of the trace decorator
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.statements import LedgerFigures, StatementAggregator
from ledger_engines.tracer import compute_input_fingerprint
from ledger_kernel.domain.chart import ChartTree, GroupRecord, LedgerRecord
from ledger_kernel.domain.values import Nature, Side
from ledger_kernel.exceptions import TrialBalanceMismatchError

D = Decimal
AS_OF = date(2024, 12, 31)


class Chart:
    """Tiny chart with one ledger per role, keyed by ledger name."""

    def __init__(self, inactive: tuple[str, ...] = ()):
        g = {}
        g["Assets"] = GroupRecord(id=uuid4(), name="Assets", nature=Nature.ASSETS)
        g["Bank Accounts"] = GroupRecord(
            id=uuid4(), name="Bank Accounts", nature=Nature.ASSETS, parent_id=g["Assets"].id
        )
        g["Liabilities"] = GroupRecord(id=uuid4(), name="Liabilities", nature=Nature.LIABILITIES)
        g["Income"] = GroupRecord(id=uuid4(), name="Income", nature=Nature.INCOME)
        g["Expenses"] = GroupRecord(id=uuid4(), name="Expenses", nature=Nature.EXPENSES)
        g["Direct"] = GroupRecord(
            id=uuid4(),
            name="Direct",
            nature=Nature.EXPENSES,
            parent_id=g["Expenses"].id,
            affects_gross_profit=True,
        )
        g["Indirect"] = GroupRecord(
            id=uuid4(), name="Indirect", nature=Nature.EXPENSES, parent_id=g["Expenses"].id
        )
        g["Equity"] = GroupRecord(id=uuid4(), name="Equity", nature=Nature.EQUITY)

        placement = {
            "Bank": "Bank Accounts",
            "Loan": "Liabilities",
            "Sales": "Income",
            "Purchases": "Direct",
            "Rent": "Indirect",
            "Capital": "Equity",
        }
        self.groups = g
        self.ledgers = {
            name: LedgerRecord(
                id=uuid4(),
                name=name,
                group_id=g[group].id,
                is_active=name not in inactive,
            )
            for name, group in placement.items()
        }
        self.tree = ChartTree.build(g.values(), self.ledgers.values())

    def id(self, name):
        return self.ledgers[name].id

    def nets(self, **amounts):
        return {self.id(name): D(str(v)) for name, v in amounts.items()}

    def figures(self, **rows):
        """rows: name=(opening_net, period_debit, period_credit)."""
        return {
            self.id(name): LedgerFigures(self.id(name), D(o), D(dr), D(cr))
            for name, (o, dr, cr) in rows.items()
        }


@pytest.fixture
def aggregator():
    return StatementAggregator(tolerance=D("0.01"))


# =============================================================================
# Trial balance
# =============================================================================


class TestTrialBalance:
    """Per-ledger rows and equality check."""

    def test_sale_scenario(self, aggregator):
        chart = Chart()
        figures = chart.figures(Bank=("0", "1000", "0"), Sales=("0", "0", "1000"))

        tb = aggregator.trial_balance(chart.tree, figures, tenant_id=uuid4(), as_of=AS_OF)

        assert [r.ledger_name for r in tb.rows] == ["Bank", "Sales"]
        assert tb.total_closing_debit == D("1000")
        assert tb.total_closing_credit == D("1000")
        assert tb.is_balanced
        bank = tb.rows[0]
        assert bank.closing.debit == D("1000")
        assert bank.closing.side == Side.DEBIT

    def test_opening_and_period_columns(self, aggregator):
        chart = Chart()
        figures = chart.figures(
            Bank=("500", "200", "50"),
            Capital=("-500", "0", "0"),
            Sales=("0", "0", "150"),
        )

        tb = aggregator.trial_balance(chart.tree, figures, tenant_id=uuid4(), as_of=AS_OF)

        assert tb.total_opening_debit == D("500")
        assert tb.total_opening_credit == D("500")
        assert tb.total_period_debit == D("200")
        assert tb.total_period_credit == D("200")
        assert tb.total_closing_debit == D("650")
        assert tb.total_closing_credit == D("650")

    def test_rows_ordered_by_nature_then_name(self, aggregator):
        chart = Chart()
        figures = chart.figures(
            Capital=("-100", "0", "0"),
            Rent=("0", "40", "0"),
            Bank=("100", "0", "40"),
        )

        tb = aggregator.trial_balance(chart.tree, figures, tenant_id=uuid4(), as_of=AS_OF)

        assert [r.nature for r in tb.rows] == [Nature.ASSETS, Nature.EXPENSES, Nature.EQUITY]

    def test_zero_rows_omitted_by_default(self, aggregator):
        chart = Chart()
        tb = aggregator.trial_balance(chart.tree, {}, tenant_id=uuid4(), as_of=AS_OF)
        assert tb.rows == ()
        assert tb.is_balanced

    def test_zero_rows_included_on_request(self, aggregator):
        chart = Chart()
        tb = aggregator.trial_balance(
            chart.tree, {}, tenant_id=uuid4(), as_of=AS_OF, include_zero_rows=True
        )
        assert len(tb.rows) == len(chart.ledgers)

    def test_inactive_ledger_with_balance_kept(self, aggregator):
        chart = Chart(inactive=("Loan",))
        figures = chart.figures(Bank=("0", "300", "0"), Loan=("0", "0", "300"))

        tb = aggregator.trial_balance(
            chart.tree, figures, tenant_id=uuid4(), as_of=AS_OF, include_zero_rows=True
        )

        names = [r.ledger_name for r in tb.rows]
        assert "Loan" in names
        assert tb.is_balanced

    def test_inactive_zero_ledger_dropped_even_with_zero_rows(self, aggregator):
        chart = Chart(inactive=("Loan",))
        tb = aggregator.trial_balance(
            chart.tree, {}, tenant_id=uuid4(), as_of=AS_OF, include_zero_rows=True
        )
        assert "Loan" not in [r.ledger_name for r in tb.rows]

    def test_mismatch_raises_and_logs_critical(self, aggregator, captured_logs):
        chart = Chart()
        figures = chart.figures(Bank=("0", "1000", "0"), Sales=("0", "0", "900"))

        with pytest.raises(TrialBalanceMismatchError) as exc_info:
            aggregator.trial_balance(chart.tree, figures, tenant_id=uuid4(), as_of=AS_OF)

        assert exc_info.value.difference == D("100")
        critical = [r for r in captured_logs() if r["message"] == "trial_balance_mismatch"]
        assert critical and critical[0]["level"] == "CRITICAL"

    def test_difference_within_tolerance_passes(self, aggregator):
        chart = Chart()
        figures = chart.figures(Bank=("0", "100.01", "0"), Sales=("0", "0", "100"))
        tb = aggregator.trial_balance(chart.tree, figures, tenant_id=uuid4(), as_of=AS_OF)
        assert tb.difference == D("0.01")


# =============================================================================
# Profit & loss
# =============================================================================


class TestProfitAndLoss:
    """Income statement."""

    def test_gross_and_net_profit(self, aggregator):
        chart = Chart()
        nets = chart.nets(Sales=-1000, Purchases=600, Rent=150, Bank=-250)

        pl = aggregator.profit_and_loss(chart.tree, nets, start=date(2024, 1, 1), end=AS_OF)

        assert pl.total_income == D("1000")
        assert pl.total_direct_expenses == D("600")
        assert pl.total_indirect_expenses == D("150")
        assert pl.gross_profit == D("400")
        assert pl.net_profit == D("250")
        assert pl.total_expenses == D("750")
        assert pl.gross_margin_pct == D("40.00")
        assert pl.net_margin_pct == D("25.00")

    def test_rows_split_by_group(self, aggregator):
        chart = Chart()
        nets = chart.nets(Sales=-1000, Purchases=600, Rent=150)

        pl = aggregator.profit_and_loss(chart.tree, nets, start=date(2024, 1, 1), end=AS_OF)

        assert [r.ledger_name for r in pl.income] == ["Sales"]
        assert [r.ledger_name for r in pl.direct_expenses] == ["Purchases"]
        assert [r.ledger_name for r in pl.indirect_expenses] == ["Rent"]

    def test_zero_rows_omitted(self, aggregator):
        chart = Chart()
        pl = aggregator.profit_and_loss(
            chart.tree, chart.nets(Sales=-10), start=date(2024, 1, 1), end=AS_OF
        )
        assert pl.direct_expenses == ()
        assert pl.indirect_expenses == ()

    def test_loss(self, aggregator):
        chart = Chart()
        pl = aggregator.profit_and_loss(
            chart.tree, chart.nets(Sales=-100, Rent=300), start=date(2024, 1, 1), end=AS_OF
        )
        assert pl.net_profit == D("-200")

    def test_margins_none_without_income(self, aggregator):
        chart = Chart()
        pl = aggregator.profit_and_loss(
            chart.tree, chart.nets(Rent=50), start=date(2024, 1, 1), end=AS_OF
        )
        assert pl.gross_margin_pct is None
        assert pl.net_margin_pct is None


# =============================================================================
# Balance sheet
# =============================================================================


class TestBalanceSheet:
    """Financial position."""

    def test_current_year_profit_balances_sheet(self, aggregator):
        chart = Chart()
        # capital 1000 in, sales 400 banked, rent 100 paid
        closing = chart.nets(Bank=1300, Capital=-1000, Sales=-400, Rent=100)

        sheet = aggregator.balance_sheet(chart.tree, closing, {}, as_of=AS_OF)

        assert sheet.total_assets == D("1300")
        assert sheet.total_liabilities == D("0")
        assert sheet.capital == D("1000")
        assert sheet.retained_earnings == D("0")
        assert sheet.current_year_profit == D("300")
        assert sheet.total_equity == D("1300")
        assert sheet.is_balanced

    def test_prior_profit_is_retained(self, aggregator):
        chart = Chart()
        prior = chart.nets(Bank=1200, Capital=-1000, Sales=-200)
        closing = chart.nets(Bank=1500, Capital=-1000, Sales=-500)

        sheet = aggregator.balance_sheet(chart.tree, closing, prior, as_of=AS_OF)

        assert sheet.retained_earnings == D("200")
        assert sheet.current_year_profit == D("300")
        assert sheet.is_balanced

    def test_sections_list_groups_with_depth(self, aggregator):
        chart = Chart()
        closing = chart.nets(Bank=700, Loan=-700)

        sheet = aggregator.balance_sheet(chart.tree, closing, {}, as_of=AS_OF)

        assert [(l.name, l.depth, l.amount) for l in sheet.assets] == [
            ("Assets", 0, D("700")),
            ("Bank Accounts", 1, D("700")),
        ]
        assert sheet.liabilities[0].amount == D("700")

    def test_zero_subgroups_skipped_roots_kept(self, aggregator):
        chart = Chart()
        sheet = aggregator.balance_sheet(chart.tree, {}, {}, as_of=AS_OF)
        assert [l.name for l in sheet.assets] == ["Assets"]
        assert [l.name for l in sheet.equity] == ["Equity"]

    def test_unbalanced_sheet_reported(self, aggregator, captured_logs):
        chart = Chart()
        sheet = aggregator.balance_sheet(chart.tree, chart.nets(Bank=10), {}, as_of=AS_OF)

        assert not sheet.is_balanced
        assert any(r["message"] == "balance_sheet_unbalanced" for r in captured_logs())


class TestInputFingerprint:
    """Deterministic trace fingerprints."""

    def test_same_inputs_same_fingerprint(self):
        kwargs = {"as_of": AS_OF, "period_start": date(2024, 1, 1)}
        assert compute_input_fingerprint(("as_of", "period_start"), kwargs) == \
            compute_input_fingerprint(("as_of", "period_start"), dict(reversed(kwargs.items())))

    def test_different_inputs_differ(self):
        a = compute_input_fingerprint(("as_of",), {"as_of": AS_OF})
        b = compute_input_fingerprint(("as_of",), {"as_of": date(2024, 6, 30)})
        assert a != b
        assert len(a) == 16
