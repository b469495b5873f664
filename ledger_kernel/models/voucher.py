"""
Module: ledger_kernel.models.voucher
Responsibility: ORM persistence for voucher types, vouchers (transaction
    headers) and voucher entries (debit/credit legs).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - voucher_number is unique per tenant (uq_voucher_tenant_number).
    - Every voucher has >= 2 entries and balances within tolerance
      (validated by VoucherService before any row is added).
    - status moves only along VOUCHER_TRANSITIONS (VoucherService).
    - Posted effect is never edited: cancellation adds a reversal voucher
      linked through reversal_of_id.

Failure modes:
    - IntegrityError (database) on a duplicate voucher number, which the
      locked sequence counter makes unreachable in practice.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.values import ZERO
from ledger_kernel.domain.vouchers import VoucherStatus


class VoucherType(TrackedBase):
    """
    Tenant-configured voucher type (Payment, Receipt, Journal, ...).

    initial_status decides whether new vouchers start as DRAFT or go
    straight to PENDING_APPROVAL.
    """

    __tablename__ = "voucher_types"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_voucher_type_tenant_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    nature: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    # Voucher number prefix, e.g. "PAY/"
    prefix: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    initial_status: Mapped[str] = mapped_column(
        String(20),
        default=VoucherStatus.DRAFT.value,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<VoucherType {self.name} ({self.prefix})>"


class Voucher(TrackedBase):
    """
    Financial transaction header owning two or more entries.

    created_by_id (from TrackedBase) is the creator.  The approved_*,
    rejected_* and cancelled_* pairs are stamped by the status transition
    that reaches that state.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "voucher_number", name="uq_voucher_tenant_number"),
        Index("idx_voucher_tenant_date", "tenant_id", "voucher_date"),
        Index("idx_voucher_status", "status"),
        Index("idx_voucher_fiscal_year", "fiscal_year_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    voucher_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    voucher_type_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("voucher_types.id"),
        nullable=False,
    )

    fiscal_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_years.id"),
        nullable=False,
    )

    voucher_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # External reference (cheque number, invoice number)
    reference_no: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    narration: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=VoucherStatus.DRAFT.value,
        nullable=False,
    )

    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    approved_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    rejected_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancelled_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Set on the reversal voucher created by cancellation
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    entries: Mapped[list["VoucherEntry"]] = relationship(
        back_populates="voucher",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VoucherEntry.line_seq",
    )

    voucher_type: Mapped["VoucherType"] = relationship(
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_number} status={self.status}>"

    @property
    def status_enum(self) -> VoucherStatus:
        return VoucherStatus(self.status)

    @property
    def total_debit(self) -> Decimal:
        return sum((e.debit for e in self.entries), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((e.credit for e in self.entries), ZERO)

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class VoucherEntry(TrackedBase):
    """
    One debit or credit leg of a voucher.

    Exactly one of debit/credit is non-zero; both are non-negative.
    """

    __tablename__ = "voucher_entries"

    __table_args__ = (
        Index("idx_entry_voucher", "voucher_id"),
        Index("idx_entry_ledger", "ledger_id"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=False,
    )

    ledger_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledgers.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(
        default=ZERO,
        nullable=False,
    )

    credit: Mapped[Decimal] = mapped_column(
        default=ZERO,
        nullable=False,
    )

    narration: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # Order within the voucher
    line_seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    voucher: Mapped["Voucher"] = relationship(
        back_populates="entries",
    )

    def __repr__(self) -> str:
        return f"<VoucherEntry ledger={self.ledger_id} dr={self.debit} cr={self.credit}>"

    @property
    def net(self) -> Decimal:
        """Debit-positive net of this leg."""
        return self.debit - self.credit
