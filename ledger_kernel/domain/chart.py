"""
Chart of accounts tree (``ledger_kernel.domain.chart``).

Responsibility
--------------
Rebuilds the group hierarchy from flat rows into an arena of nodes keyed
by id, validates it, and answers structural questions: ordered forest,
ancestors, a ledger's nature, whether a group affects gross profit, and
the recursive rollup of signed balances.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Selectors load the rows and call
``ChartTree.build``; engines consume the tree.

Invariants enforced
-------------------
* Every declared parent exists (``MissingParentGroupError``).
* The parent graph is acyclic, verified by walking every node's parent
  chain with a visited set (``GroupCycleError``).  Stored data is never
  trusted.
* Every ledger belongs to exactly one existing group.
* Roots are ordered ASSETS, LIABILITIES, INCOME, EXPENSES, EQUITY, then
  by sequence and name.  Siblings are ordered by sequence and name.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.values import ZERO, Nature, natural_amount
from ledger_kernel.exceptions import GroupCycleError, MissingParentGroupError


@dataclass(frozen=True)
class GroupRecord:
    """Flat account-group row as loaded from storage."""

    id: UUID
    name: str
    nature: Nature
    parent_id: UUID | None = None
    sequence: int = 0
    affects_gross_profit: bool = False
    is_system: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class LedgerRecord:
    """Flat ledger row as loaded from storage."""

    id: UUID
    name: str
    group_id: UUID
    is_active: bool = True


@dataclass
class GroupNode:
    """Arena node.  Children and ledgers are referenced by id."""

    record: GroupRecord
    depth: int = 0
    child_ids: list[UUID] = field(default_factory=list)
    ledger_ids: list[UUID] = field(default_factory=list)

    @property
    def id(self) -> UUID:
        return self.record.id

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def nature(self) -> Nature:
        return self.record.nature

    @property
    def parent_id(self) -> UUID | None:
        return self.record.parent_id


def _sibling_key(record: GroupRecord) -> tuple:
    return (record.sequence, record.name)


def _root_key(record: GroupRecord) -> tuple:
    return (record.nature.precedence, record.sequence, record.name)


def _check_acyclic(records: Mapping[UUID, GroupRecord]) -> None:
    cleared: set[UUID] = set()
    for start in records:
        if start in cleared:
            continue
        path: list[UUID] = []
        visited: set[UUID] = set()
        current: UUID | None = start
        while current is not None and current not in cleared:
            if current in visited:
                cycle_from = path.index(current)
                raise GroupCycleError(
                    str(start),
                    [str(g) for g in path[cycle_from:]] + [str(current)],
                )
            visited.add(current)
            path.append(current)
            current = records[current].parent_id
        cleared.update(path)


class ChartTree:
    """Validated, ordered chart-of-accounts hierarchy."""

    def __init__(
        self,
        nodes: dict[UUID, GroupNode],
        root_ids: list[UUID],
        ledgers: dict[UUID, LedgerRecord],
    ):
        self._nodes = nodes
        self._root_ids = root_ids
        self._ledgers = ledgers

    @classmethod
    def build(
        cls,
        groups: Iterable[GroupRecord],
        ledgers: Iterable[LedgerRecord] = (),
    ) -> ChartTree:
        """Build and validate the tree from flat rows.

        Raises:
            MissingParentGroupError: a group's parent, or a ledger's
                group, is not among ``groups``.
            GroupCycleError: a parent chain loops.
        """
        records = {g.id: g for g in groups}
        for record in records.values():
            if record.parent_id is not None and record.parent_id not in records:
                raise MissingParentGroupError(str(record.id), str(record.parent_id))
        _check_acyclic(records)

        nodes = {gid: GroupNode(record=rec) for gid, rec in records.items()}
        for record in sorted(records.values(), key=_sibling_key):
            if record.parent_id is not None:
                nodes[record.parent_id].child_ids.append(record.id)

        ledger_map: dict[UUID, LedgerRecord] = {}
        for ledger in sorted(ledgers, key=lambda l: l.name):
            if ledger.group_id not in nodes:
                raise MissingParentGroupError(str(ledger.id), str(ledger.group_id))
            nodes[ledger.group_id].ledger_ids.append(ledger.id)
            ledger_map[ledger.id] = ledger

        root_ids = [
            r.id for r in sorted(
                (r for r in records.values() if r.parent_id is None),
                key=_root_key,
            )
        ]

        tree = cls(nodes, root_ids, ledger_map)
        for node in tree.walk():
            if node.parent_id is not None:
                node.depth = nodes[node.parent_id].depth + 1
        return tree

    # -- navigation ---------------------------------------------------------

    @property
    def root_ids(self) -> tuple[UUID, ...]:
        return tuple(self._root_ids)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, group_id: UUID) -> GroupNode:
        return self._nodes[group_id]

    def children(self, group_id: UUID) -> list[GroupNode]:
        return [self._nodes[c] for c in self._nodes[group_id].child_ids]

    def resolve_hierarchy(self) -> list[GroupNode]:
        """The forest: root nodes in nature precedence order."""
        return [self._nodes[r] for r in self._root_ids]

    def walk(self, group_id: UUID | None = None) -> Iterator[GroupNode]:
        """Depth-first pre-order walk of the whole forest or one subtree."""
        stack = [group_id] if group_id is not None else list(reversed(self._root_ids))
        while stack:
            node = self._nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.child_ids))

    def ancestors(self, group_id: UUID) -> list[GroupNode]:
        """Parent first, root last."""
        result = []
        parent_id = self._nodes[group_id].parent_id
        while parent_id is not None:
            parent = self._nodes[parent_id]
            result.append(parent)
            parent_id = parent.parent_id
        return result

    def root_of(self, group_id: UUID) -> GroupNode:
        chain = self.ancestors(group_id)
        return chain[-1] if chain else self._nodes[group_id]

    # -- ledgers ------------------------------------------------------------

    def ledger(self, ledger_id: UUID) -> LedgerRecord:
        return self._ledgers[ledger_id]

    def ledgers(self) -> list[LedgerRecord]:
        """All ledgers in tree order."""
        return [
            self._ledgers[lid]
            for node in self.walk()
            for lid in node.ledger_ids
        ]

    def group_of_ledger(self, ledger_id: UUID) -> GroupNode:
        return self._nodes[self._ledgers[ledger_id].group_id]

    def nature_of_ledger(self, ledger_id: UUID) -> Nature:
        return self.group_of_ledger(ledger_id).nature

    def affects_gross_profit(self, group_id: UUID) -> bool:
        """True if the group or any ancestor is flagged as direct."""
        node = self._nodes[group_id]
        if node.record.affects_gross_profit:
            return True
        return any(a.record.affects_gross_profit for a in self.ancestors(group_id))

    # -- aggregation --------------------------------------------------------

    def rollup(self, group_id: UUID, debit_nets: Mapping[UUID, Decimal]) -> Decimal:
        """Recursive signed balance of a group.

        Each directly owned ledger's debit-positive net is converted with
        this group's nature (debit - credit for ASSETS/EXPENSES, credit -
        debit otherwise).  Child rollups are added as computed by the
        child.  Ledgers missing from ``debit_nets`` count as zero.
        """
        node = self._nodes[group_id]
        total = ZERO
        for ledger_id in node.ledger_ids:
            total += natural_amount(node.nature, debit_nets.get(ledger_id, ZERO))
        for child_id in node.child_ids:
            total += self.rollup(child_id, debit_nets)
        return total

    def rollups(self, debit_nets: Mapping[UUID, Decimal]) -> dict[UUID, Decimal]:
        """Rollup of every group, computed bottom-up in one pass."""
        result: dict[UUID, Decimal] = {}
        for node in reversed(list(self.walk())):
            total = ZERO
            for ledger_id in node.ledger_ids:
                total += natural_amount(node.nature, debit_nets.get(ledger_id, ZERO))
            for child_id in node.child_ids:
                total += result[child_id]
            result[node.id] = total
        return result
