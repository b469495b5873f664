"""
Module: ledger_kernel.models.chart
Responsibility: ORM persistence for the chart of accounts -- account groups
    (tree nodes) and ledgers (leaf accounts that voucher entries post to).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - Group and ledger names are unique per tenant (uq_group_tenant_name,
      uq_ledger_tenant_name).
    - A group's nature is fixed at creation; ChartService never updates it.
    - Ledgers carry no stored running balance.  Balances are always derived
      from the opening balance plus visible voucher entries.

Failure modes:
    - DuplicateNameError raised by ChartService on a name collision.
    - StructuralError from ChartTree when stored parent links are corrupt.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.values import ZERO, Side, signed_amount


class AccountGroup(TrackedBase):
    """
    Node in the chart-of-accounts tree.

    Contract:
        parent_id is nullable (root groups).  Groups that own ledgers or
        sub-groups are soft-deactivated, never hard-deleted.  System groups
        (seeded defaults) cannot be removed at all.
    """

    __tablename__ = "account_groups"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_group_tenant_name"),
        Index("idx_group_tenant", "tenant_id"),
        Index("idx_group_parent", "parent_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # ASSETS, LIABILITIES, INCOME, EXPENSES or EQUITY
    nature: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("account_groups.id"),
        nullable=True,
    )

    # Direct income/expense groups feed gross profit
    affects_gross_profit: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Display order among siblings
    sequence: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    is_system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    ledgers: Mapped[list["Ledger"]] = relationship(
        back_populates="group",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<AccountGroup {self.name} ({self.nature})>"


class Ledger(TrackedBase):
    """
    Leaf account.

    Contract:
        opening_balance is a non-negative magnitude; opening_side says which
        side it sits on.  A ledger belongs to exactly one group.
    """

    __tablename__ = "ledgers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_ledger_tenant_name"),
        Index("idx_ledger_tenant", "tenant_id"),
        Index("idx_ledger_group", "group_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    group_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("account_groups.id"),
        nullable=False,
    )

    opening_balance: Mapped[Decimal] = mapped_column(
        default=ZERO,
        nullable=False,
    )

    # DEBIT or CREDIT
    opening_side: Mapped[str] = mapped_column(
        String(10),
        default=Side.DEBIT.value,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    group: Mapped["AccountGroup"] = relationship(
        back_populates="ledgers",
    )

    def __repr__(self) -> str:
        return f"<Ledger {self.name}>"

    @property
    def signed_opening(self) -> Decimal:
        """Opening balance in debit-positive form."""
        return signed_amount(self.opening_balance, Side(self.opening_side))
