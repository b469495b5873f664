"""
Module: ledger_kernel.models.fiscal_year
Responsibility: ORM persistence for tenant fiscal years.  The tenant
    management collaborator owns the calendar; the kernel stores the window
    and the closed flag so postings can be validated against it.
Architecture position: Kernel > Models.

Invariants enforced:
    - start_date <= end_date (FiscalYearService).
    - Fiscal years of one tenant do not overlap (FiscalYearService).
    - A closed fiscal year accepts no new vouchers (VoucherService).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class FiscalYear(TrackedBase):
    """Accounting year window for one tenant."""

    __tablename__ = "fiscal_years"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_fiscal_year_tenant_name"),
        Index("idx_fiscal_year_dates", "tenant_id", "start_date", "end_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # e.g. "FY2024-25"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    is_closed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<FiscalYear {self.name}: {self.start_date} to {self.end_date}>"

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def close(self, actor_id: UUID, closed_at: datetime) -> None:
        """Mark the year closed.

        Raises:
            ValueError: If the year is already closed.
        """
        if self.is_closed:
            raise ValueError(f"Fiscal year {self.name} is already closed")
        self.is_closed = True
        self.closed_at = closed_at
        self.closed_by_id = actor_id
        self.updated_by_id = actor_id
