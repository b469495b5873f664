"""
ChartService -- maintenance of the chart-of-accounts tree.

Responsibility:
    Creates groups and ledgers, re-parents groups, retires groups and
    ledgers, and seeds a tenant's default system-protected chart.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Names are unique per tenant (DuplicateNameError before the database
      constraint fires).
    - A parent must exist in the same tenant.
    - Re-parenting never creates a cycle.
    - Groups owning ledgers or sub-groups, and ledgers with entries or a
      bank link, are soft-deactivated instead of deleted.
    - System groups cannot be retired.

Failure modes:
    - GroupNotFoundError / LedgerNotFoundError for unknown or foreign ids.
    - GroupCycleError when a move would close a loop.
    - SystemGroupProtectedError when retiring a seeded group.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.templates import ChartTemplate
from ledger_kernel.domain.values import ZERO, Nature, Side
from ledger_kernel.exceptions import (
    DuplicateNameError,
    GroupCycleError,
    GroupNotFoundError,
    InvalidOpeningBalanceError,
    LedgerNotFoundError,
    SystemGroupProtectedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.bank import BankAccount
from ledger_kernel.models.chart import AccountGroup, Ledger
from ledger_kernel.selectors.chart_selector import ChartSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.chart")


class ChartService(BaseService[AccountGroup]):
    """Write side of the chart of accounts."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._chart_selector = ChartSelector(session)
        self._ledger_selector = LedgerSelector(session)

    # -- lookups ------------------------------------------------------------

    def get_group(self, group_id: UUID, tenant_id: UUID | None = None) -> AccountGroup:
        group = self.session.get(AccountGroup, group_id)
        if group is None or (tenant_id is not None and group.tenant_id != tenant_id):
            raise GroupNotFoundError(str(group_id))
        return group

    def get_ledger(self, ledger_id: UUID, tenant_id: UUID | None = None) -> Ledger:
        ledger = self.session.get(Ledger, ledger_id)
        if ledger is None or (tenant_id is not None and ledger.tenant_id != tenant_id):
            raise LedgerNotFoundError(str(ledger_id))
        return ledger

    def find_group_by_name(self, tenant_id: UUID, name: str) -> AccountGroup | None:
        return self.session.execute(
            select(AccountGroup).where(
                AccountGroup.tenant_id == tenant_id,
                AccountGroup.name == name,
            )
        ).scalar_one_or_none()

    def find_ledger_by_name(self, tenant_id: UUID, name: str) -> Ledger | None:
        return self.session.execute(
            select(Ledger).where(Ledger.tenant_id == tenant_id, Ledger.name == name)
        ).scalar_one_or_none()

    # -- groups -------------------------------------------------------------

    def create_group(
        self,
        tenant_id: UUID,
        name: str,
        nature: Nature,
        actor_id: UUID,
        parent_id: UUID | None = None,
        affects_gross_profit: bool = False,
        sequence: int = 0,
        is_system: bool = False,
    ) -> AccountGroup:
        """
        Create an account group.

        Raises:
            DuplicateNameError: Name already used by a group of the tenant.
            GroupNotFoundError: parent_id unknown or in another tenant.
        """
        if self.find_group_by_name(tenant_id, name) is not None:
            raise DuplicateNameError("group", name)
        if parent_id is not None:
            self.get_group(parent_id, tenant_id)

        group = AccountGroup(
            tenant_id=tenant_id,
            name=name,
            nature=Nature(nature).value,
            parent_id=parent_id,
            affects_gross_profit=affects_gross_profit,
            sequence=sequence,
            is_system=is_system,
            created_by_id=actor_id,
        )
        self.session.add(group)
        self.session.flush()

        logger.info(
            "group_created",
            extra={
                "tenant_id": str(tenant_id),
                "group_id": str(group.id),
                "group_name": name,
                "nature": group.nature,
            },
        )
        return group

    def move_group(self, group_id: UUID, new_parent_id: UUID | None, actor_id: UUID) -> AccountGroup:
        """
        Re-parent a group.

        Raises:
            GroupCycleError: new_parent_id is the group itself or one of its
                descendants.
        """
        group = self.get_group(group_id)
        if new_parent_id is not None:
            self.get_group(new_parent_id, group.tenant_id)
            tree = self._chart_selector.load_tree(group.tenant_id)
            chain = [new_parent_id] + [a.id for a in tree.ancestors(new_parent_id)]
            if group_id in chain:
                raise GroupCycleError(
                    str(group_id),
                    [str(g) for g in [group_id] + chain[: chain.index(group_id) + 1]],
                )

        group.parent_id = new_parent_id
        group.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "group_moved",
            extra={
                "group_id": str(group_id),
                "new_parent_id": str(new_parent_id) if new_parent_id else None,
            },
        )
        return group

    def deactivate_group(self, group_id: UUID, actor_id: UUID) -> bool:
        """
        Retire a group.

        Returns:
            True if the group was deleted, False if it was soft-deactivated
            because it still owns ledgers or sub-groups.

        Raises:
            SystemGroupProtectedError: The group is system-protected.
        """
        group = self.get_group(group_id)
        if group.is_system:
            raise SystemGroupProtectedError(str(group_id))

        child_count = self.session.execute(
            select(func.count(AccountGroup.id)).where(AccountGroup.parent_id == group_id)
        ).scalar_one()
        ledger_count = self.session.execute(
            select(func.count(Ledger.id)).where(Ledger.group_id == group_id)
        ).scalar_one()

        if child_count or ledger_count:
            group.is_active = False
            group.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "group_deactivated",
                extra={
                    "group_id": str(group_id),
                    "child_count": child_count,
                    "ledger_count": ledger_count,
                },
            )
            return False

        self.session.delete(group)
        self.session.flush()
        logger.info("group_deleted", extra={"group_id": str(group_id)})
        return True

    # -- ledgers ------------------------------------------------------------

    def create_ledger(
        self,
        tenant_id: UUID,
        name: str,
        group_id: UUID,
        actor_id: UUID,
        opening_balance: Decimal = ZERO,
        opening_side: Side = Side.DEBIT,
    ) -> Ledger:
        """
        Create a ledger under a group.

        Raises:
            DuplicateNameError: Name already used by a ledger of the tenant.
            GroupNotFoundError: group_id unknown or in another tenant.
            InvalidOpeningBalanceError: Negative opening balance.
        """
        if opening_balance < 0:
            raise InvalidOpeningBalanceError(opening_balance)
        if self.find_ledger_by_name(tenant_id, name) is not None:
            raise DuplicateNameError("ledger", name)
        self.get_group(group_id, tenant_id)

        ledger = Ledger(
            tenant_id=tenant_id,
            name=name,
            group_id=group_id,
            opening_balance=opening_balance,
            opening_side=Side(opening_side).value,
            created_by_id=actor_id,
        )
        self.session.add(ledger)
        self.session.flush()

        logger.info(
            "ledger_created",
            extra={
                "tenant_id": str(tenant_id),
                "ledger_id": str(ledger.id),
                "ledger_name": name,
                "opening_balance": str(opening_balance),
                "opening_side": ledger.opening_side,
            },
        )
        return ledger

    def round_off_ledger(
        self,
        tenant_id: UUID,
        ledger_name: str,
        group_name: str,
        actor_id: UUID,
    ) -> Ledger:
        """
        The tenant's round-off ledger, created on first use.

        A missing group is created as a system-protected root EXPENSES
        group.
        """
        ledger = self.find_ledger_by_name(tenant_id, ledger_name)
        if ledger is not None:
            return ledger

        group = self.find_group_by_name(tenant_id, group_name) or self.create_group(
            tenant_id=tenant_id,
            name=group_name,
            nature=Nature.EXPENSES,
            actor_id=actor_id,
            is_system=True,
        )
        return self.create_ledger(
            tenant_id=tenant_id,
            name=ledger_name,
            group_id=group.id,
            actor_id=actor_id,
        )

    def remove_ledger(self, ledger_id: UUID, actor_id: UUID) -> bool:
        """
        Retire a ledger.

        Returns:
            True if deleted, False if soft-deactivated because entries or a
            bank account still reference it.
        """
        ledger = self.get_ledger(ledger_id)
        has_entries = self._ledger_selector.has_entries(ledger_id)
        bank_linked = self.session.execute(
            select(func.count(BankAccount.id)).where(BankAccount.ledger_id == ledger_id)
        ).scalar_one() > 0

        if has_entries or bank_linked:
            ledger.is_active = False
            ledger.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "ledger_deactivated",
                extra={"ledger_id": str(ledger_id), "has_entries": has_entries},
            )
            return False

        self.session.delete(ledger)
        self.session.flush()
        logger.info("ledger_deleted", extra={"ledger_id": str(ledger_id)})
        return True

    # -- seeding ------------------------------------------------------------

    def seed_default_chart(
        self,
        tenant_id: UUID,
        template: ChartTemplate,
        actor_id: UUID,
    ) -> dict[str, AccountGroup]:
        """
        Create the template's groups as system-protected groups.

        Groups that already exist by name are reused, so seeding twice is
        harmless.

        Returns:
            Group name -> AccountGroup for every template group.
        """
        groups: dict[str, AccountGroup] = {}
        created = 0
        for item in template.groups:
            existing = self.find_group_by_name(tenant_id, item.name)
            if existing is not None:
                groups[item.name] = existing
                continue
            parent_id = groups[item.parent].id if item.parent else None
            groups[item.name] = self.create_group(
                tenant_id=tenant_id,
                name=item.name,
                nature=item.nature,
                actor_id=actor_id,
                parent_id=parent_id,
                affects_gross_profit=item.affects_gross_profit,
                sequence=item.sequence,
                is_system=True,
            )
            created += 1

        logger.info(
            "default_chart_seeded",
            extra={"tenant_id": str(tenant_id), "groups_created": created},
        )
        return groups
