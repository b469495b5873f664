"""
Tests for the chart-of-accounts tree (ledger_kernel.domain.chart).

Tests cover:
- Building the arena from flat rows; root and sibling ordering; depth
- Structural validation: missing parent, missing ledger group, cycles
  (self-loop, two-node, long chain)
- Navigation: ancestors, root_of, walk order, ledgers in tree order
- affects_gross_profit inherited from ancestors
- Recursive rollup signed by each group's nature
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.chart import ChartTree, GroupRecord, LedgerRecord
from ledger_kernel.domain.values import Nature
from ledger_kernel.exceptions import GroupCycleError, MissingParentGroupError


def _group(name, nature, parent=None, sequence=0, direct=False):
    return GroupRecord(
        id=uuid4(),
        name=name,
        nature=nature,
        parent_id=parent.id if parent else None,
        sequence=sequence,
        affects_gross_profit=direct,
    )


@pytest.fixture
def chart():
    """Small chart: assets/current/bank, income/sales, expenses/direct+indirect."""
    equity = _group("Capital", Nature.EQUITY)
    expenses = _group("Expenses", Nature.EXPENSES)
    direct = _group("Direct", Nature.EXPENSES, expenses, sequence=1, direct=True)
    freight = _group("Freight", Nature.EXPENSES, direct)
    indirect = _group("Indirect", Nature.EXPENSES, expenses, sequence=2)
    income = _group("Income", Nature.INCOME)
    assets = _group("Assets", Nature.ASSETS)
    current = _group("Current", Nature.ASSETS, assets, sequence=1)
    fixed = _group("Fixed", Nature.ASSETS, assets, sequence=2)
    liabilities = _group("Liabilities", Nature.LIABILITIES)

    groups = [equity, expenses, direct, freight, indirect, income, assets, current, fixed, liabilities]
    ledgers = {
        "bank": LedgerRecord(id=uuid4(), name="Bank", group_id=current.id),
        "cash": LedgerRecord(id=uuid4(), name="Cash", group_id=current.id),
        "van": LedgerRecord(id=uuid4(), name="Van", group_id=fixed.id),
        "sales": LedgerRecord(id=uuid4(), name="Sales", group_id=income.id),
        "carriage": LedgerRecord(id=uuid4(), name="Carriage", group_id=freight.id),
        "rent": LedgerRecord(id=uuid4(), name="Rent", group_id=indirect.id),
    }
    tree = ChartTree.build(groups, ledgers.values())
    named = {g.name: g for g in groups}
    return tree, named, ledgers


# =============================================================================
# Construction and ordering
# =============================================================================


class TestBuild:
    """Arena construction from flat rows."""

    def test_roots_in_nature_precedence(self, chart):
        tree, _, _ = chart
        assert [n.name for n in tree.resolve_hierarchy()] == [
            "Assets", "Liabilities", "Income", "Expenses", "Capital",
        ]

    def test_siblings_ordered_by_sequence(self, chart):
        tree, named, _ = chart
        assert [c.name for c in tree.children(named["Assets"].id)] == ["Current", "Fixed"]

    def test_depth(self, chart):
        tree, named, _ = chart
        assert tree.node(named["Expenses"].id).depth == 0
        assert tree.node(named["Direct"].id).depth == 1
        assert tree.node(named["Freight"].id).depth == 2

    def test_len_and_contains(self, chart):
        tree, named, _ = chart
        assert len(tree) == 10
        assert named["Fixed"].id in tree
        assert uuid4() not in tree

    def test_ledgers_listed_in_tree_order(self, chart):
        tree, _, _ = chart
        assert [l.name for l in tree.ledgers()] == [
            "Bank", "Cash", "Van", "Sales", "Carriage", "Rent",
        ]

    def test_empty_chart(self):
        tree = ChartTree.build([])
        assert tree.resolve_hierarchy() == []
        assert tree.ledgers() == []


class TestStructuralValidation:
    """Stored hierarchy is never trusted."""

    def test_missing_parent(self):
        orphan = GroupRecord(id=uuid4(), name="Orphan", nature=Nature.ASSETS, parent_id=uuid4())
        with pytest.raises(MissingParentGroupError) as exc_info:
            ChartTree.build([orphan])
        assert exc_info.value.group_id == str(orphan.id)

    def test_ledger_with_unknown_group(self):
        group = _group("Assets", Nature.ASSETS)
        ledger = LedgerRecord(id=uuid4(), name="Stray", group_id=uuid4())
        with pytest.raises(MissingParentGroupError):
            ChartTree.build([group], [ledger])

    def test_self_loop(self):
        gid = uuid4()
        looped = GroupRecord(id=gid, name="Loop", nature=Nature.ASSETS, parent_id=gid)
        with pytest.raises(GroupCycleError):
            ChartTree.build([looped])

    def test_two_node_cycle(self):
        a_id, b_id = uuid4(), uuid4()
        a = GroupRecord(id=a_id, name="A", nature=Nature.ASSETS, parent_id=b_id)
        b = GroupRecord(id=b_id, name="B", nature=Nature.ASSETS, parent_id=a_id)
        with pytest.raises(GroupCycleError) as exc_info:
            ChartTree.build([a, b])
        assert len(exc_info.value.path) == 3

    def test_cycle_below_valid_root(self):
        """A loop that never reaches a root is still found."""
        root = _group("Root", Nature.ASSETS)
        ids = [uuid4() for _ in range(4)]
        chain = [
            GroupRecord(id=ids[i], name=f"G{i}", nature=Nature.ASSETS, parent_id=ids[(i + 1) % 4])
            for i in range(4)
        ]
        with pytest.raises(GroupCycleError):
            ChartTree.build([root, *chain])


# =============================================================================
# Navigation
# =============================================================================


class TestNavigation:
    """Ancestor chains and walks."""

    def test_ancestors_parent_first(self, chart):
        tree, named, _ = chart
        assert [a.name for a in tree.ancestors(named["Freight"].id)] == ["Direct", "Expenses"]

    def test_root_of(self, chart):
        tree, named, _ = chart
        assert tree.root_of(named["Freight"].id).name == "Expenses"
        assert tree.root_of(named["Income"].id).name == "Income"

    def test_walk_subtree_preorder(self, chart):
        tree, named, _ = chart
        assert [n.name for n in tree.walk(named["Expenses"].id)] == [
            "Expenses", "Direct", "Freight", "Indirect",
        ]

    def test_nature_of_ledger(self, chart):
        tree, _, ledgers = chart
        assert tree.nature_of_ledger(ledgers["rent"].id) == Nature.EXPENSES

    def test_affects_gross_profit_inherited(self, chart):
        tree, named, _ = chart
        assert tree.affects_gross_profit(named["Direct"].id)
        assert tree.affects_gross_profit(named["Freight"].id)
        assert not tree.affects_gross_profit(named["Indirect"].id)
        assert not tree.affects_gross_profit(named["Expenses"].id)


# =============================================================================
# Rollups
# =============================================================================


class TestRollup:
    """Recursive balances signed by nature."""

    def test_asset_rollup_is_debit_positive(self, chart):
        tree, named, ledgers = chart
        nets = {
            ledgers["bank"].id: Decimal("1000"),
            ledgers["cash"].id: Decimal("-200"),
            ledgers["van"].id: Decimal("5000"),
        }
        assert tree.rollup(named["Current"].id, nets) == Decimal("800")
        assert tree.rollup(named["Assets"].id, nets) == Decimal("5800")

    def test_income_rollup_is_credit_positive(self, chart):
        tree, named, ledgers = chart
        nets = {ledgers["sales"].id: Decimal("-1500")}
        assert tree.rollup(named["Income"].id, nets) == Decimal("1500")

    def test_missing_ledgers_count_as_zero(self, chart):
        tree, named, _ = chart
        assert tree.rollup(named["Assets"].id, {}) == Decimal("0")

    def test_rollups_match_rollup(self, chart):
        tree, named, ledgers = chart
        nets = {
            ledgers["carriage"].id: Decimal("120"),
            ledgers["rent"].id: Decimal("300"),
            ledgers["bank"].id: Decimal("-420"),
        }
        all_rollups = tree.rollups(nets)
        for group in named.values():
            assert all_rollups[group.id] == tree.rollup(group.id, nets)
        assert all_rollups[named["Expenses"].id] == Decimal("420")
