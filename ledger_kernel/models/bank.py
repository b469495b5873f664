"""
Module: ledger_kernel.models.bank
Responsibility: ORM persistence for bank accounts, imported bank statement
    lines and reconciliation period records.
Architecture position: Kernel > Models.

Invariants enforced:
    - account_number is unique per tenant (uq_bank_account_tenant_number).
    - Statement lines are unique on (bank account, date, description,
      reference, debit, credit) so re-importing a statement inserts nothing
      (uq_bank_txn_dedup).  Description and reference are stored as empty
      strings rather than NULL so the constraint applies.
    - A statement line is matched to at most one voucher: is_matched and
      matched_voucher_id are set and cleared together.
    - A COMPLETED reconciliation is a permanent record and is never
      recomputed.

Audit relevance:
    matched_by_id / matched_at record who linked a bank line to the books.
    completed_by_id / completed_at freeze the reconciliation figures.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.values import ZERO
from ledger_kernel.models.chart import Ledger


class ReconciliationStatus(str, Enum):
    """Lifecycle of a bank reconciliation record."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BankAccount(TrackedBase):
    """A tenant's bank account, linked to the ledger that mirrors it."""

    __tablename__ = "bank_accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "account_number", name="uq_bank_account_tenant_number"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    account_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    bank_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Ledger whose entries are matched against this account's statement
    ledger_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledgers.id"),
        nullable=True,
    )

    ledger: Mapped["Ledger | None"] = relationship(
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<BankAccount {self.account_name} {self.account_number}>"


class BankTransaction(TrackedBase):
    """One imported bank statement line."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        UniqueConstraint(
            "bank_account_id",
            "transaction_date",
            "description",
            "reference_no",
            "debit",
            "credit",
            name="uq_bank_txn_dedup",
        ),
        Index("idx_bank_txn_account_date", "bank_account_id", "transaction_date"),
        Index("idx_bank_txn_matched", "bank_account_id", "is_matched"),
        Index("idx_bank_txn_voucher", "matched_voucher_id"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_accounts.id"),
        nullable=False,
    )

    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        default="",
        nullable=False,
    )

    reference_no: Mapped[str] = mapped_column(
        String(100),
        default="",
        nullable=False,
    )

    # Money leaving the account, from the bank's point of view
    debit: Mapped[Decimal] = mapped_column(
        default=ZERO,
        nullable=False,
    )

    # Money entering the account, from the bank's point of view
    credit: Mapped[Decimal] = mapped_column(
        default=ZERO,
        nullable=False,
    )

    # Running balance as printed on the statement
    balance: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    import_source: Mapped[str] = mapped_column(
        String(20),
        default="CSV",
        nullable=False,
    )

    is_matched: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    matched_voucher_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    matched_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<BankTransaction {self.transaction_date} dr={self.debit} "
            f"cr={self.credit} matched={self.is_matched}>"
        )

    @property
    def signed_amount(self) -> Decimal:
        """Inflow-positive amount (credit - debit)."""
        return self.credit - self.debit

    def mark_matched(self, voucher_id: UUID, actor_id: UUID, matched_at: datetime) -> None:
        self.is_matched = True
        self.matched_voucher_id = voucher_id
        self.matched_at = matched_at
        self.matched_by_id = actor_id
        self.updated_by_id = actor_id

    def clear_match(self) -> None:
        self.is_matched = False
        self.matched_voucher_id = None
        self.matched_at = None
        self.matched_by_id = None


class BankReconciliation(TrackedBase):
    """Reconciliation of one bank account for one statement period."""

    __tablename__ = "bank_reconciliations"

    __table_args__ = (
        Index("idx_bank_recon_account_period", "bank_account_id", "period_end"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_accounts.id"),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Closing balance printed on the bank statement
    statement_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    # Ledger balance at period_end, debit-positive
    book_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    # statement_balance - book_balance
    difference: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=ReconciliationStatus.IN_PROGRESS.value,
        nullable=False,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<BankReconciliation {self.period_start}..{self.period_end} "
            f"status={self.status}>"
        )

    @property
    def is_completed(self) -> bool:
        return self.status == ReconciliationStatus.COMPLETED
