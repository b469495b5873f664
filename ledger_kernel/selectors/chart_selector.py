"""
Module: ledger_kernel.selectors.chart_selector
Responsibility: Loads a tenant's groups and ledgers and rebuilds the
    validated ChartTree.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - The tree is rebuilt and re-validated on every load.  A corrupt
      hierarchy raises StructuralError here, before any report is rendered.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.chart import ChartTree, GroupRecord, LedgerRecord
from ledger_kernel.domain.values import Nature
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.chart import AccountGroup, Ledger
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.chart")


def group_record(group: AccountGroup) -> GroupRecord:
    return GroupRecord(
        id=group.id,
        name=group.name,
        nature=Nature(group.nature),
        parent_id=group.parent_id,
        sequence=group.sequence,
        affects_gross_profit=group.affects_gross_profit,
        is_system=group.is_system,
        is_active=group.is_active,
    )


class ChartSelector(BaseSelector[AccountGroup]):
    """Read side of the chart of accounts."""

    def __init__(self, session: Session):
        super().__init__(session)

    def group_records(self, tenant_id: UUID) -> list[GroupRecord]:
        groups = self.session.execute(
            select(AccountGroup).where(AccountGroup.tenant_id == tenant_id)
        ).scalars().all()
        return [group_record(g) for g in groups]

    def ledger_records(self, tenant_id: UUID) -> list[LedgerRecord]:
        ledgers = self.session.execute(
            select(Ledger).where(Ledger.tenant_id == tenant_id)
        ).scalars().all()
        return [
            LedgerRecord(id=l.id, name=l.name, group_id=l.group_id, is_active=l.is_active)
            for l in ledgers
        ]

    def load_tree(self, tenant_id: UUID) -> ChartTree:
        """
        Build the tenant's chart tree, including inactive nodes.

        Raises:
            StructuralError: Missing parent or cyclic parent chain.
        """
        try:
            return ChartTree.build(
                self.group_records(tenant_id),
                self.ledger_records(tenant_id),
            )
        except Exception:
            logger.error(
                "chart_tree_invalid",
                extra={"tenant_id": str(tenant_id)},
                exc_info=True,
            )
            raise
