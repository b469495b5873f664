"""
FiscalYearService -- fiscal year windows and closing.

Responsibility:
    Records the fiscal years supplied by tenant management, finds the year
    that contains a date, and closes years.  VoucherService consults it to
    reject postings outside the window or into a closed year.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - start_date <= end_date.
    - Years of one tenant never overlap, so ``find_for_date`` is unambiguous.
    - Closing locks the row; a second close raises.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.exceptions import (
    FiscalYearAlreadyClosedError,
    FiscalYearNotFoundError,
    FiscalYearOverlapError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.services.base import BaseService

logger = get_logger("services.fiscal_year")


class FiscalYearService(BaseService[FiscalYear]):
    """Fiscal year lifecycle for one session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def create_fiscal_year(
        self,
        tenant_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalYear:
        """
        Create a fiscal year.

        Raises:
            ValueError: If start_date > end_date.
            FiscalYearOverlapError: If the window overlaps an existing year.
        """
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        overlapping = self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.start_date <= end_date,
                FiscalYear.end_date >= start_date,
            )
        ).scalars().first()
        if overlapping is not None:
            raise FiscalYearOverlapError(name, overlapping.name)

        fiscal_year = FiscalYear(
            tenant_id=tenant_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            created_by_id=actor_id,
        )
        self.session.add(fiscal_year)
        self.session.flush()

        logger.info(
            "fiscal_year_created",
            extra={
                "tenant_id": str(tenant_id),
                "fiscal_year": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return fiscal_year

    def get(self, fiscal_year_id: UUID) -> FiscalYear:
        fiscal_year = self.session.get(FiscalYear, fiscal_year_id)
        if fiscal_year is None:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        return fiscal_year

    def find_for_date(self, tenant_id: UUID, day: date) -> FiscalYear | None:
        return self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.start_date <= day,
                FiscalYear.end_date >= day,
            )
        ).scalars().first()

    def require_for_date(self, tenant_id: UUID, day: date) -> FiscalYear:
        fiscal_year = self.find_for_date(tenant_id, day)
        if fiscal_year is None:
            raise FiscalYearNotFoundError(f"tenant {tenant_id} on {day}")
        return fiscal_year

    def close_fiscal_year(self, fiscal_year_id: UUID, actor_id: UUID) -> FiscalYear:
        """
        Close a fiscal year.  No vouchers can be submitted into it afterwards.

        Raises:
            FiscalYearNotFoundError: Unknown id.
            FiscalYearAlreadyClosedError: Already closed.
        """
        fiscal_year = self.session.execute(
            select(FiscalYear)
            .where(FiscalYear.id == fiscal_year_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if fiscal_year is None:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        if fiscal_year.is_closed:
            raise FiscalYearAlreadyClosedError(str(fiscal_year_id))

        fiscal_year.close(actor_id, self.clock.now())
        self.session.flush()

        logger.info(
            "fiscal_year_closed",
            extra={"fiscal_year_id": str(fiscal_year_id), "actor_id": str(actor_id)},
        )
        return fiscal_year
